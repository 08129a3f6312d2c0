#!/usr/bin/env python3
"""
PUMP SWAP - Core Configuration

Bot configuration and environment management.
"""

import json
import os
from dataclasses import dataclass, fields

from dotenv import load_dotenv

_dotenv_loaded = False


def _ensure_dotenv() -> None:
    """Load .env file exactly once, on first call."""
    global _dotenv_loaded
    if not _dotenv_loaded:
        load_dotenv()
        _dotenv_loaded = True


DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"
DEFAULT_BUNDLE_URL = "https://mainnet.block-engine.jito.wtf/api/v1/bundles"
DEFAULT_TIP_ACCOUNT = "96gYZGLnJYVFmbjzopPSU6QiEV5fGqZNyN9nmNhvrZU5"


@dataclass
class BotConfig:
    """
    Everything the bot needs to talk to Telegram, Solana and the bundle relay.
    Secrets and endpoints left empty are filled from the environment.
    """

    # Telegram
    telegram_token: str = ""

    # Network & Connection
    rpc_url: str = ""
    jito_bundle_url: str = ""
    jito_tip_account: str = DEFAULT_TIP_ACCOUNT
    jito_tip_lamports: int = 10_000
    relay_timeout_seconds: float = 30.0

    # Bundle lifecycle
    bundle_max_retries: int = 3
    bundle_confirm_timeout_seconds: float = 30.0
    bundle_poll_interval_seconds: float = 2.0

    # Pump.fun Program
    pumpfun_program: str = "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"

    # Fees - platform cut goes to fee_address on every trade
    fee_address: str = ""
    fee_percentage: float = 0.008
    trading_fee: float = 0.005
    creation_fee_sol: float = 0.01

    # Trading limits
    min_sol_amount: float = 0.02
    max_wallets_per_bundle: int = 16
    max_slippage_bps: int = 500  # 5% max slippage
    priority_fee_micro_lamports: int = 100_000
    compute_unit_limit: int = 200_000

    # Token metadata policy
    require_social_links: bool = True

    # Wallets & Sessions
    encryption_key: str = ""
    wallets_file: str = ""
    session_timeout_seconds: int = 600

    # Logging
    log_level: str = "INFO"
    log_file: str = "pumpswap_bot.log"

    def __post_init__(self):
        """Fill env-based defaults after dataclass init (avoids module-level side effects)."""
        _ensure_dotenv()
        if not self.telegram_token:
            self.telegram_token = os.getenv("TELEGRAM_BOT_TOKEN", "")
        if not self.rpc_url:
            self.rpc_url = os.getenv("SOLANA_RPC_URL", DEFAULT_RPC_URL)
        if not self.jito_bundle_url:
            self.jito_bundle_url = os.getenv("JITO_BUNDLE_URL", DEFAULT_BUNDLE_URL)
        if not self.fee_address:
            self.fee_address = os.getenv("FEE_ADDRESS", "")
        if not self.encryption_key:
            self.encryption_key = os.getenv("ENCRYPTION_KEY", "")
        if not self.wallets_file:
            self.wallets_file = os.getenv("WALLETS_FILE", "")

    @classmethod
    def from_json(cls, path: str) -> "BotConfig":
        """Load a config file; unknown keys are ignored."""
        with open(path) as f:
            raw = json.load(f)
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in raw.items() if k in known})

    def __repr__(self) -> str:
        """Redact sensitive fields to prevent accidental secret leakage in logs."""
        token_display = "***" if self.telegram_token else "(empty)"
        key_display = "***" if self.encryption_key else "(empty)"
        return (
            f"BotConfig(rpc_url='{self.rpc_url[:30]}...', "
            f"jito_bundle_url='{self.jito_bundle_url}', "
            f"telegram_token='{token_display}', "
            f"encryption_key='{key_display}', "
            f"fee_percentage={self.fee_percentage})"
        )

    def validate(self) -> list[str]:
        """Return every configuration problem found, empty when usable."""
        errors = []

        if not self.rpc_url:
            errors.append("RPC URL required - get one from QuickNode or Helius")

        if self.rpc_url and not self.rpc_url.startswith("https://"):
            if not self.rpc_url.startswith("http://127.0.0.1") and not self.rpc_url.startswith(
                "http://localhost"
            ):
                errors.append("RPC URL must use HTTPS (plaintext HTTP leaks wallet data)")

        if not self.jito_bundle_url:
            errors.append("Bundle relay URL required (set JITO_BUNDLE_URL)")

        if not self.telegram_token:
            errors.append("Telegram bot token required (set TELEGRAM_BOT_TOKEN)")

        if not self.fee_address:
            errors.append("Fee address required (set FEE_ADDRESS)")

        if not (0.0 <= self.fee_percentage < 1.0):
            errors.append("Fee percentage must be between 0 and 1")

        if not (0.0 <= self.trading_fee < 1.0):
            errors.append("Trading fee must be between 0 and 1")

        if self.min_sol_amount <= 0:
            errors.append("Minimum SOL amount must be positive")

        if not (1 <= self.max_wallets_per_bundle <= 16):
            errors.append("Wallets per bundle must be between 1 and 16")

        if self.jito_tip_lamports <= 0:
            errors.append("Jito tip must be positive")

        if self.bundle_max_retries < 1:
            errors.append("Bundle retries must be at least 1")

        if self.bundle_poll_interval_seconds <= 0:
            errors.append("Bundle poll interval must be positive")

        if not (0 <= self.max_slippage_bps <= 10_000):
            errors.append("Slippage must be between 0 and 10000 bps")

        if self.wallets_file and not self.encryption_key:
            errors.append("Encryption key required when wallets are persisted (set ENCRYPTION_KEY)")

        return errors
