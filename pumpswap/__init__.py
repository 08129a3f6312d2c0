"""
PUMP SWAP - pump.fun token launches and MEV-protected bundled trading over Telegram.

Usage:
    from pumpswap import PumpSwapBot, BotConfig

    config = BotConfig()
    bot = PumpSwapBot(config)
    await bot.start()
"""

__version__ = "1.0.0"

# Bot
from pumpswap.bot import PumpSwapBot, build_engine

# Core configuration
from pumpswap.config import BotConfig

# Core components
from pumpswap.core.client import SolanaClient
from pumpswap.core.users import InMemorySessionStore, SessionState, SessionStore, UserManager
from pumpswap.core.wallet import Wallet, WalletManager

# Exceptions
from pumpswap.exceptions import (
    BondingCurveMigratedError,
    BundleTimeoutError,
    ConfigError,
    ErrorKind,
    InsufficientLiquidityError,
    PumpSwapError,
    RelayError,
    RpcError,
    ValidationError,
    WalletError,
)

# Logger
from pumpswap.logger import PumpSwapLogger

# Protocol
from pumpswap.protocol.jito import Bundle, BundleClient, BundleStatus, calculate_bundle_fee
from pumpswap.protocol.metadata import (
    MetadataPolicy,
    MetadataValidator,
    TokenMetadata,
    ValidationResult,
)
from pumpswap.protocol.pumpfun import (
    BondingCurveState,
    PumpFunProgram,
    TradeQuote,
    sol_for_tokens,
    tokens_for_sol,
)

# Trading
from pumpswap.trading.engine import (
    BuyRequest,
    CreateTokenRequest,
    SellRequest,
    TokenCreationResult,
    TradeResult,
    TradingEngine,
)

# UI
from pumpswap.ui.commands import TelegramCommands

__all__ = [
    # Config
    "BotConfig",
    # Exceptions
    "ErrorKind",
    "PumpSwapError",
    "ValidationError",
    "InsufficientLiquidityError",
    "BondingCurveMigratedError",
    "RelayError",
    "BundleTimeoutError",
    "RpcError",
    "WalletError",
    "ConfigError",
    # Logger
    "PumpSwapLogger",
    # Core
    "SolanaClient",
    "Wallet",
    "WalletManager",
    "SessionStore",
    "InMemorySessionStore",
    "SessionState",
    "UserManager",
    # Protocol
    "BondingCurveState",
    "TradeQuote",
    "tokens_for_sol",
    "sol_for_tokens",
    "PumpFunProgram",
    "TokenMetadata",
    "MetadataPolicy",
    "MetadataValidator",
    "ValidationResult",
    "Bundle",
    "BundleClient",
    "BundleStatus",
    "calculate_bundle_fee",
    # Trading
    "TradingEngine",
    "CreateTokenRequest",
    "BuyRequest",
    "SellRequest",
    "TokenCreationResult",
    "TradeResult",
    # UI
    "TelegramCommands",
    # Bot
    "PumpSwapBot",
    "build_engine",
]
