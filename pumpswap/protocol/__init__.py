"""
PUMP SWAP Protocol - Pump.fun program interface, metadata rules and Jito bundles.
"""

from .jito import (
    MAX_BUNDLE_TRANSACTIONS,
    Bundle,
    BundleClient,
    BundleStatus,
    calculate_bundle_fee,
)
from .metadata import (
    MetadataPolicy,
    MetadataValidator,
    TokenMetadata,
    ValidationResult,
)
from .pumpfun import (
    BUY_DISCRIMINATOR,
    CREATE_DISCRIMINATOR,
    PUMP_PROGRAM_ID,
    SELL_DISCRIMINATOR,
    TRADING_FEE,
    BondingCurveAccount,
    BondingCurveState,
    PumpFunProgram,
    TradeQuote,
    quote_buy,
    quote_buy_legs,
    quote_sell,
    quote_sell_legs,
    sol_for_tokens,
    tokens_for_sol,
)

__all__ = [
    "PumpFunProgram",
    "BondingCurveState",
    "BondingCurveAccount",
    "TradeQuote",
    "TRADING_FEE",
    "tokens_for_sol",
    "sol_for_tokens",
    "quote_buy",
    "quote_sell",
    "quote_buy_legs",
    "quote_sell_legs",
    "PUMP_PROGRAM_ID",
    "CREATE_DISCRIMINATOR",
    "BUY_DISCRIMINATOR",
    "SELL_DISCRIMINATOR",
    "TokenMetadata",
    "MetadataPolicy",
    "MetadataValidator",
    "ValidationResult",
    "BundleClient",
    "Bundle",
    "BundleStatus",
    "MAX_BUNDLE_TRANSACTIONS",
    "calculate_bundle_fee",
]
