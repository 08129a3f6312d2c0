"""
PUMP SWAP Trading - Token creation and bundled buy/sell engine.
"""

from .engine import (
    BuyRequest,
    CreateTokenRequest,
    SellRequest,
    TokenCreationResult,
    TradeResult,
    TradingEngine,
)

__all__ = [
    "TradingEngine",
    "CreateTokenRequest",
    "BuyRequest",
    "SellRequest",
    "TokenCreationResult",
    "TradeResult",
]
