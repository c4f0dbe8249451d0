"""Exchange integration module for gridpilot."""

from gridpilot.exchange.base import ExchangeGateway
from gridpilot.exchange.hyperliquid_client import (
    HyperliquidClient,
    create_hyperliquid_client,
    market_symbol,
)
from gridpilot.exchange.translator import translate_grid_orders, translate_order

__all__ = [
    "ExchangeGateway",
    "HyperliquidClient",
    "create_hyperliquid_client",
    "market_symbol",
    "translate_grid_orders",
    "translate_order",
]
