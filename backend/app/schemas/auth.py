"""
Pydantic Schemas - Dashboard PIN
SignalBridge Webhook Relay

Fields are optional so that a missing value answers 400 from the
route instead of a 422 from validation.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class VerifyPinRequest(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    pin: Optional[str] = None


class ChangePinRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    current_pin: Optional[str] = Field(default=None, alias="currentPin")
    new_pin: Optional[str] = Field(default=None, alias="newPin")
