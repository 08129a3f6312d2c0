"""
PUMP SWAP Test Suite - Shared Fixtures
"""

import struct
from unittest.mock import AsyncMock, MagicMock

import pytest
from cryptography.fernet import Fernet
from solders.hash import Hash
from solders.keypair import Keypair

from pumpswap.config import BotConfig
from pumpswap.core.wallet import WalletManager
from pumpswap.logger import PumpSwapLogger
from pumpswap.protocol.pumpfun import BondingCurveState

# A fresh pump.fun curve: 30 SOL virtual, 1.073B virtual tokens (6 decimals)
FRESH_VIRTUAL_SOL = 30_000_000_000
FRESH_VIRTUAL_TOKENS = 1_073_000_000_000_000
FRESH_SUPPLY = 1_000_000_000_000_000


def curve_account_bytes(
    virtual_tokens: int = FRESH_VIRTUAL_TOKENS,
    virtual_sol: int = FRESH_VIRTUAL_SOL,
    real_tokens: int = 793_100_000_000_000,
    real_sol: int = 0,
    supply: int = FRESH_SUPPLY,
    complete: bool = False,
) -> bytes:
    """Raw bonding curve account data as the RPC returns it."""
    return (
        b"\x17" * 8
        + struct.pack("<5Q", virtual_tokens, virtual_sol, real_tokens, real_sol, supply)
        + bytes([1 if complete else 0])
        + b"\x00" * 32
    )


@pytest.fixture
def fee_address():
    return str(Keypair().pubkey())


@pytest.fixture
def bot_config(tmp_path, fee_address):
    """Fully populated bot configuration for tests."""
    return BotConfig(
        telegram_token="123456:TEST-TOKEN",
        rpc_url="https://rpc.example.com",
        jito_bundle_url="https://relay.example.com/api/v1/bundles",
        fee_address=fee_address,
        encryption_key=Fernet.generate_key().decode(),
        log_file=str(tmp_path / "pumpswap_test.log"),
    )


@pytest.fixture
def logger(bot_config):
    """Logger instance for tests."""
    return PumpSwapLogger(bot_config)


@pytest.fixture
def curve_state():
    """Round-number curve used by the pricing tests."""
    return BondingCurveState(
        token_address="TestMint1111111111111111111111111111111111",
        current_price=0.001,
        total_supply=1_000_000.0,
        sol_reserve=1000.0,
        token_reserve=1_000_000.0,
    )


@pytest.fixture
def wallet_manager(bot_config):
    return WalletManager(bot_config.encryption_key)


@pytest.fixture
def solana_client():
    """SolanaClient stand-in with a fresh curve and funded wallets."""
    client = MagicMock()
    client.get_account_info = AsyncMock(return_value=curve_account_bytes())
    client.get_balance = AsyncMock(return_value=10.0)
    client.get_token_balance = AsyncMock(return_value=1_000_000_000.0)
    # Rent formula of the live cluster: (128 + size) bytes * 6960 lamports
    client.get_minimum_balance_for_rent_exemption = AsyncMock(
        side_effect=lambda size: (128 + size) * 6960
    )
    client.get_latest_blockhash = AsyncMock(return_value=Hash.default())
    client.send_transaction = AsyncMock(return_value="5igSignature")
    client.close = AsyncMock()
    return client


@pytest.fixture
def curve_bytes():
    """Factory for raw bonding curve account data."""
    return curve_account_bytes
