#!/usr/bin/env python3
"""
PUMP SWAP - Custom Exception Hierarchy

Structured error types for precise error handling. Every error carries a
closed ErrorKind so callers (Telegram handlers, the HTTP API) can render or
map it without string matching.
"""

from enum import Enum


class ErrorKind(Enum):
    """Closed set of failure categories."""

    VALIDATION = "validation"
    INSUFFICIENT_LIQUIDITY = "insufficient_liquidity"
    RELAY = "relay"
    TIMEOUT = "timeout"
    RPC = "rpc"
    WALLET = "wallet"
    CONFIG = "config"


class PumpSwapError(Exception):
    """Base exception for all PUMP SWAP errors."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(PumpSwapError):
    """Input rejected before any network call."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str = "", errors: list[str] | None = None):
        super().__init__(message)
        self.errors = list(errors) if errors else ([message] if message else [])


class InsufficientLiquidityError(PumpSwapError):
    """Not enough liquidity for the requested trade."""

    kind = ErrorKind.INSUFFICIENT_LIQUIDITY


class BondingCurveMigratedError(InsufficientLiquidityError):
    """Token has already migrated to Raydium; bonding curve is complete."""

    pass


class RelayError(PumpSwapError):
    """Bundle relay refused or failed the submission."""

    kind = ErrorKind.RELAY


class BundleTimeoutError(PumpSwapError):
    """Bundle did not settle inside the confirmation window."""

    kind = ErrorKind.TIMEOUT


class RpcError(PumpSwapError):
    """Solana RPC returned nothing usable."""

    kind = ErrorKind.RPC


class WalletError(PumpSwapError):
    """Wallet or key management error."""

    kind = ErrorKind.WALLET


class ConfigError(PumpSwapError):
    """Invalid or missing configuration."""

    kind = ErrorKind.CONFIG
