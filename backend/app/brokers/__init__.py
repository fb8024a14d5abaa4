"""
Broker Integrations
SignalBridge Webhook Relay

Upstox is the only broker: OAuth, positions, funds and order placement
over its v2 REST API.
"""

from app.brokers.upstox import UpstoxClient, extract_error_message


__all__ = [
    "UpstoxClient",
    "extract_error_message",
]
