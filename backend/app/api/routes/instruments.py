"""
Instrument search endpoint
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from app.core.container import AppContainer, get_container


router = APIRouter()


@router.get("/search")
async def search_instruments(
    q: Optional[str] = Query(None, description="Symbol or name fragment (min 2 chars)"),
    instrument_type: Optional[str] = Query(None, alias="type", description="EQUITY, FUTURE or OPTION"),
    container: AppContainer = Depends(get_container),
) -> List[Dict[str, Any]]:
    """Search the in-memory instrument directory."""
    return [inst.to_dict() for inst in container.directory.search(q, instrument_type=instrument_type)]
