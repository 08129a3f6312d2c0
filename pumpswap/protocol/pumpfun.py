#!/usr/bin/env python3
"""
PUMP SWAP - Pump.fun Program Interface

This module handles direct interaction with the pump.fun bonding curve program.
It decodes on-chain state, prices trades, and builds create/buy/sell instructions.

The bonding curve is constant product over the virtual reserves:
- k = sol_reserve * token_reserve
- Buys push SOL in and take tokens out, sells do the reverse
- Migration: Happens at 100% curve completion (~85 SOL raised)
"""

import hashlib
import logging
import math
import struct
from dataclasses import dataclass
from typing import List, Optional, Tuple

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYS_PROGRAM_ID
from solders.token.associated import get_associated_token_address

from pumpswap.exceptions import (
    BondingCurveMigratedError,
    InsufficientLiquidityError,
    ValidationError,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#                        PUMP.FUN PROGRAM CONSTANTS
# ═══════════════════════════════════════════════════════════════════════════

PUMP_PROGRAM_ID = Pubkey.from_string("6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P")
PUMP_GLOBAL = Pubkey.from_string("4wTV1YmiEkRvAtNtsSGPtUrqRYQMe5SKy2uB4Jjaxnjf")
PUMP_FEE_RECIPIENT = Pubkey.from_string("CebN5WGQ4jvEPvsVU4EoHEpgzq1VV7AbicfhtW4xC9iM")
PUMP_EVENT_AUTHORITY = Pubkey.from_string("Ce6TQqeHC9p8KetsN6JsjHK7UTZk7nasjjnr7XxXp9F1")
PUMP_MINT_AUTHORITY = Pubkey.from_string("TSLvdd1pWpHVjahSpsvCXUbgwsL3JAcvokwaKt1eokM")

# Programs and sysvars
TOKEN_PROGRAM = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
METADATA_PROGRAM = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")
RENT_SYSVAR = Pubkey.from_string("SysvarRent111111111111111111111111111111111")

# Instruction discriminators (Anchor-style: sha256("global:<method>")[:8])
CREATE_DISCRIMINATOR = hashlib.sha256(b"global:create").digest()[:8]
BUY_DISCRIMINATOR = hashlib.sha256(b"global:buy").digest()[:8]
SELL_DISCRIMINATOR = hashlib.sha256(b"global:sell").digest()[:8]

# Unit conversion
LAMPORTS_PER_SOL = 1_000_000_000
TOKEN_DECIMALS = 6
TOKEN_BASE_UNITS = 10 ** TOKEN_DECIMALS

# Fraction of every trade kept by the curve
TRADING_FEE = 0.005

MIGRATION_THRESHOLD_SOL = 85_000_000_000  # 85 SOL triggers Raydium migration

# discriminator + 5 * u64 + complete flag
BONDING_CURVE_ACCOUNT_SIZE = 8 + 5 * 8 + 1


# ═══════════════════════════════════════════════════════════════════════════
#                           BONDING CURVE MODEL
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class BondingCurveState:
    """
    Pricing view of a token's bonding curve, in SOL and whole tokens.
    """
    token_address: str
    current_price: float  # SOL per token
    total_supply: float
    sol_reserve: float
    token_reserve: float
    complete: bool = False  # Has migrated to Raydium?

    def __post_init__(self):
        if self.sol_reserve < 0 or self.token_reserve < 0:
            raise ValidationError(
                f"Reserves must be non-negative (sol={self.sol_reserve}, "
                f"tokens={self.token_reserve})"
            )

    @property
    def invariant(self) -> float:
        return self.sol_reserve * self.token_reserve

    def after_trade(self, sol_delta: float, token_delta: float) -> "BondingCurveState":
        """Curve state once a trade moving these reserve deltas has landed."""
        sol_reserve = self.sol_reserve + sol_delta
        token_reserve = self.token_reserve + token_delta
        return BondingCurveState(
            token_address=self.token_address,
            current_price=sol_reserve / token_reserve if token_reserve > 0 else 0.0,
            total_supply=self.total_supply,
            sol_reserve=sol_reserve,
            token_reserve=token_reserve,
            complete=self.complete,
        )


@dataclass
class TradeQuote:
    """Priced trade against a curve snapshot."""
    side: str  # "buy" or "sell"
    amount_in: float
    amount_out: float
    fee: float
    price_impact_pct: float


def _check_tradable(amount: float, state: BondingCurveState, what: str) -> None:
    if not math.isfinite(amount):
        raise ValidationError(f"{what} must be a finite number, got {amount}")
    if amount <= 0:
        raise ValidationError(f"{what} must be positive, got {amount}")
    if state.complete:
        raise BondingCurveMigratedError(
            f"Bonding curve for {state.token_address} is complete"
        )
    if state.sol_reserve <= 0 or state.token_reserve <= 0:
        raise InsufficientLiquidityError(
            f"Bonding curve for {state.token_address} has an empty reserve"
        )


def tokens_for_sol(
    sol_in: float,
    state: BondingCurveState,
    trading_fee: float = TRADING_FEE
) -> float:
    """
    Tokens received for sol_in SOL, net of the trading fee.

    k = S * T, T' = k / (S + sol_in), out = (T - T') * (1 - fee)
    """
    _check_tradable(sol_in, state, "SOL amount")
    k = state.sol_reserve * state.token_reserve
    new_token_reserve = k / (state.sol_reserve + sol_in)
    raw_tokens = state.token_reserve - new_token_reserve
    return raw_tokens * (1 - trading_fee)


def sol_for_tokens(
    tokens_in: float,
    state: BondingCurveState,
    trading_fee: float = TRADING_FEE
) -> float:
    """
    SOL figure for selling tokens_in tokens.

    T' = T - tokens_in, S' = k / T', out = (S' - S) * (1 + fee).
    The fee is added on the SOL leg; callers treat the result as the
    gross figure the fee and slippage bounds are derived from.
    """
    _check_tradable(tokens_in, state, "Token amount")
    new_token_reserve = state.token_reserve - tokens_in
    if new_token_reserve <= 0:
        raise InsufficientLiquidityError(
            f"Selling {tokens_in} tokens would drain the reserve of {state.token_reserve}"
        )
    k = state.sol_reserve * state.token_reserve
    new_sol_reserve = k / new_token_reserve
    raw_sol = new_sol_reserve - state.sol_reserve
    return raw_sol * (1 + trading_fee)


def quote_buy(
    sol_in: float,
    state: BondingCurveState,
    trading_fee: float = TRADING_FEE
) -> TradeQuote:
    """Buy quote with fee amount and price impact."""
    tokens_out = tokens_for_sol(sol_in, state, trading_fee)
    raw_tokens = tokens_out / (1 - trading_fee) if trading_fee < 1 else 0.0

    new_sol = state.sol_reserve + sol_in
    new_tokens = state.token_reserve - raw_tokens
    original_price = state.sol_reserve / state.token_reserve
    new_price = new_sol / new_tokens if new_tokens > 0 else float("inf")
    price_impact = ((new_price - original_price) / original_price) * 100

    return TradeQuote(
        side="buy",
        amount_in=sol_in,
        amount_out=tokens_out,
        fee=raw_tokens - tokens_out,
        price_impact_pct=price_impact,
    )


def quote_sell(
    tokens_in: float,
    state: BondingCurveState,
    trading_fee: float = TRADING_FEE
) -> TradeQuote:
    """Sell quote with fee amount and price impact."""
    sol_out = sol_for_tokens(tokens_in, state, trading_fee)
    raw_sol = sol_out / (1 + trading_fee)

    new_tokens = state.token_reserve - tokens_in
    new_sol = state.sol_reserve + raw_sol
    original_price = state.sol_reserve / state.token_reserve
    new_price = new_sol / new_tokens
    price_impact = ((new_price - original_price) / original_price) * 100

    return TradeQuote(
        side="sell",
        amount_in=tokens_in,
        amount_out=sol_out,
        fee=sol_out - raw_sol,
        price_impact_pct=price_impact,
    )


def quote_buy_legs(
    sol_amounts: List[float],
    state: BondingCurveState,
    trading_fee: float = TRADING_FEE
) -> List[TradeQuote]:
    """
    Quote bundled buys in execution order.

    Every leg lands on the curve left behind by the legs before it, so later
    wallets get fewer tokens for the same SOL.
    """
    quotes = []
    for sol_in in sol_amounts:
        quote = quote_buy(sol_in, state, trading_fee)
        raw_tokens = quote.amount_out + quote.fee
        state = state.after_trade(sol_in, -raw_tokens)
        quotes.append(quote)
    return quotes


def quote_sell_legs(
    token_amounts: List[float],
    state: BondingCurveState,
    trading_fee: float = TRADING_FEE
) -> List[TradeQuote]:
    """
    Quote bundled sells in execution order.

    Raises InsufficientLiquidityError when the legs together would drain
    the token reserve, even if each leg alone fits.
    """
    quotes = []
    for tokens_in in token_amounts:
        quote = quote_sell(tokens_in, state, trading_fee)
        raw_sol = quote.amount_out - quote.fee
        state = state.after_trade(raw_sol, -tokens_in)
        quotes.append(quote)
    return quotes


# ═══════════════════════════════════════════════════════════════════════════
#                          ON-CHAIN ACCOUNT LAYOUT
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class BondingCurveAccount:
    """
    Raw bonding curve account fields, in lamports and token base units.
    """
    virtual_token_reserves: int
    virtual_sol_reserves: int  # lamports
    real_token_reserves: int
    real_sol_reserves: int  # lamports
    token_total_supply: int
    complete: bool  # Has migrated to Raydium?

    def get_migration_progress(self) -> float:
        """How close to Raydium migration (0-100%)."""
        return min(100.0, (self.real_sol_reserves / MIGRATION_THRESHOLD_SOL) * 100)

    def to_curve_state(self, token_address: str) -> BondingCurveState:
        sol_reserve = self.virtual_sol_reserves / LAMPORTS_PER_SOL
        token_reserve = self.virtual_token_reserves / TOKEN_BASE_UNITS
        price = sol_reserve / token_reserve if token_reserve else 0.0
        return BondingCurveState(
            token_address=token_address,
            current_price=price,
            total_supply=self.token_total_supply / TOKEN_BASE_UNITS,
            sol_reserve=sol_reserve,
            token_reserve=token_reserve,
            complete=self.complete,
        )


def _encode_string(value: str) -> bytes:
    raw = value.encode("utf-8")
    return struct.pack("<I", len(raw)) + raw


def _decode_string(data: bytes, offset: int) -> Tuple[str, int]:
    length = struct.unpack("<I", data[offset:offset + 4])[0]
    offset += 4
    return data[offset:offset + length].decode("utf-8"), offset + length


class PumpFunProgram:
    """
    Interface to the pump.fun bonding curve program.
    Handles account decoding and instruction building.
    """

    def __init__(self, program_id: Pubkey = PUMP_PROGRAM_ID):
        self.program_id = program_id

    def decode_bonding_curve(self, account_data: bytes) -> Optional[BondingCurveAccount]:
        """
        Decode bonding curve account data.

        Account layout:
        - 8 bytes: discriminator
        - 8 bytes: virtual_token_reserves
        - 8 bytes: virtual_sol_reserves
        - 8 bytes: real_token_reserves
        - 8 bytes: real_sol_reserves
        - 8 bytes: token_total_supply
        - 1 byte: complete
        """
        if len(account_data) < BONDING_CURVE_ACCOUNT_SIZE:
            logger.warning("Bonding curve account too short: %d bytes", len(account_data))
            return None

        (
            virtual_token_reserves,
            virtual_sol_reserves,
            real_token_reserves,
            real_sol_reserves,
            token_total_supply,
        ) = struct.unpack_from("<5Q", account_data, 8)

        return BondingCurveAccount(
            virtual_token_reserves=virtual_token_reserves,
            virtual_sol_reserves=virtual_sol_reserves,
            real_token_reserves=real_token_reserves,
            real_sol_reserves=real_sol_reserves,
            token_total_supply=token_total_supply,
            complete=bool(account_data[48]),
        )

    def build_create_instruction(
        self,
        creator: Pubkey,
        token_mint: Pubkey,
        name: str,
        symbol: str,
        uri: str
    ) -> Instruction:
        """
        Build a create instruction for a new pump.fun token.

        Instruction format:
        - 8 bytes: discriminator (create)
        - u32 length + utf-8 bytes: name
        - u32 length + utf-8 bytes: symbol
        - u32 length + utf-8 bytes: uri
        """
        bonding_curve, _ = self.derive_bonding_curve_address(token_mint)
        associated_bonding_curve = self.get_associated_bonding_curve_address(
            bonding_curve, token_mint
        )
        metadata, _ = self.derive_metadata_address(token_mint)

        instruction_data = CREATE_DISCRIMINATOR
        instruction_data += _encode_string(name)
        instruction_data += _encode_string(symbol)
        instruction_data += _encode_string(uri)

        accounts = [
            AccountMeta(pubkey=token_mint, is_signer=True, is_writable=True),
            AccountMeta(pubkey=PUMP_MINT_AUTHORITY, is_signer=False, is_writable=False),
            AccountMeta(pubkey=bonding_curve, is_signer=False, is_writable=True),
            AccountMeta(pubkey=associated_bonding_curve, is_signer=False, is_writable=True),
            AccountMeta(pubkey=PUMP_GLOBAL, is_signer=False, is_writable=False),
            AccountMeta(pubkey=METADATA_PROGRAM, is_signer=False, is_writable=False),
            AccountMeta(pubkey=metadata, is_signer=False, is_writable=True),
            AccountMeta(pubkey=creator, is_signer=True, is_writable=True),
            AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(pubkey=TOKEN_PROGRAM, is_signer=False, is_writable=False),
            AccountMeta(pubkey=ASSOCIATED_TOKEN_PROGRAM, is_signer=False, is_writable=False),
            AccountMeta(pubkey=RENT_SYSVAR, is_signer=False, is_writable=False),
            AccountMeta(pubkey=PUMP_EVENT_AUTHORITY, is_signer=False, is_writable=False),
            AccountMeta(pubkey=self.program_id, is_signer=False, is_writable=False),
        ]

        return Instruction(
            program_id=self.program_id,
            accounts=accounts,
            data=instruction_data
        )

    def parse_create_instruction(self, instruction_data: bytes) -> Optional[dict]:
        """Recover name/symbol/uri from create instruction data."""
        if instruction_data[:8] != CREATE_DISCRIMINATOR:
            return None
        try:
            name, offset = _decode_string(instruction_data, 8)
            symbol, offset = _decode_string(instruction_data, offset)
            uri, _ = _decode_string(instruction_data, offset)
        except (struct.error, UnicodeDecodeError) as e:
            logger.error("Failed to parse create instruction: %s", e)
            return None
        return {"name": name, "symbol": symbol, "uri": uri}

    def build_buy_instruction(
        self,
        buyer: Pubkey,
        token_mint: Pubkey,
        token_amount: int,  # base units
        max_sol_cost: int  # lamports, slippage bound
    ) -> Instruction:
        """
        Build a buy instruction for the pump.fun program.

        Instruction format:
        - 8 bytes: discriminator (buy)
        - 8 bytes: amount (tokens to receive, base units)
        - 8 bytes: max_sol_cost (for slippage protection)
        """
        bonding_curve, _ = self.derive_bonding_curve_address(token_mint)
        associated_bonding_curve = self.get_associated_bonding_curve_address(
            bonding_curve, token_mint
        )
        buyer_token_account = get_associated_token_address(buyer, token_mint)

        instruction_data = BUY_DISCRIMINATOR
        instruction_data += struct.pack('<Q', token_amount)
        instruction_data += struct.pack('<Q', max_sol_cost)

        accounts = [
            AccountMeta(pubkey=PUMP_GLOBAL, is_signer=False, is_writable=False),
            AccountMeta(pubkey=PUMP_FEE_RECIPIENT, is_signer=False, is_writable=True),
            AccountMeta(pubkey=token_mint, is_signer=False, is_writable=False),
            AccountMeta(pubkey=bonding_curve, is_signer=False, is_writable=True),
            AccountMeta(pubkey=associated_bonding_curve, is_signer=False, is_writable=True),
            AccountMeta(pubkey=buyer_token_account, is_signer=False, is_writable=True),
            AccountMeta(pubkey=buyer, is_signer=True, is_writable=True),
            AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(pubkey=TOKEN_PROGRAM, is_signer=False, is_writable=False),
            AccountMeta(pubkey=RENT_SYSVAR, is_signer=False, is_writable=False),
            AccountMeta(pubkey=PUMP_EVENT_AUTHORITY, is_signer=False, is_writable=False),
            AccountMeta(pubkey=self.program_id, is_signer=False, is_writable=False),
        ]

        return Instruction(
            program_id=self.program_id,
            accounts=accounts,
            data=instruction_data
        )

    def build_sell_instruction(
        self,
        seller: Pubkey,
        token_mint: Pubkey,
        token_amount: int,  # base units
        min_sol_output: int  # lamports, slippage bound
    ) -> Instruction:
        """
        Build a sell instruction for the pump.fun program.

        Instruction format:
        - 8 bytes: discriminator (sell)
        - 8 bytes: amount (tokens)
        - 8 bytes: min_sol_output (for slippage protection)
        """
        bonding_curve, _ = self.derive_bonding_curve_address(token_mint)
        associated_bonding_curve = self.get_associated_bonding_curve_address(
            bonding_curve, token_mint
        )
        seller_token_account = get_associated_token_address(seller, token_mint)

        instruction_data = SELL_DISCRIMINATOR
        instruction_data += struct.pack('<Q', token_amount)
        instruction_data += struct.pack('<Q', min_sol_output)

        accounts = [
            AccountMeta(pubkey=PUMP_GLOBAL, is_signer=False, is_writable=False),
            AccountMeta(pubkey=PUMP_FEE_RECIPIENT, is_signer=False, is_writable=True),
            AccountMeta(pubkey=token_mint, is_signer=False, is_writable=False),
            AccountMeta(pubkey=bonding_curve, is_signer=False, is_writable=True),
            AccountMeta(pubkey=associated_bonding_curve, is_signer=False, is_writable=True),
            AccountMeta(pubkey=seller_token_account, is_signer=False, is_writable=True),
            AccountMeta(pubkey=seller, is_signer=True, is_writable=True),
            AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(pubkey=ASSOCIATED_TOKEN_PROGRAM, is_signer=False, is_writable=False),
            AccountMeta(pubkey=TOKEN_PROGRAM, is_signer=False, is_writable=False),
            AccountMeta(pubkey=PUMP_EVENT_AUTHORITY, is_signer=False, is_writable=False),
            AccountMeta(pubkey=self.program_id, is_signer=False, is_writable=False),
        ]

        return Instruction(
            program_id=self.program_id,
            accounts=accounts,
            data=instruction_data
        )

    def build_create_ata_instruction(
        self,
        payer: Pubkey,
        owner: Pubkey,
        token_mint: Pubkey
    ) -> Instruction:
        """Idempotent associated token account creation (no-op if it exists)."""
        ata = get_associated_token_address(owner, token_mint)
        accounts = [
            AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
            AccountMeta(pubkey=ata, is_signer=False, is_writable=True),
            AccountMeta(pubkey=owner, is_signer=False, is_writable=False),
            AccountMeta(pubkey=token_mint, is_signer=False, is_writable=False),
            AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(pubkey=TOKEN_PROGRAM, is_signer=False, is_writable=False),
        ]
        return Instruction(
            program_id=ASSOCIATED_TOKEN_PROGRAM,
            accounts=accounts,
            data=bytes([1])
        )

    def derive_bonding_curve_address(self, token_mint: Pubkey) -> Tuple[Pubkey, int]:
        """
        Derive the bonding curve PDA for a token.
        PDA = findProgramAddress(["bonding-curve", token_mint], PUMP_PROGRAM)
        """
        seeds = [b"bonding-curve", bytes(token_mint)]
        return Pubkey.find_program_address(seeds, self.program_id)

    def get_associated_bonding_curve_address(
        self,
        bonding_curve: Pubkey,
        token_mint: Pubkey
    ) -> Pubkey:
        """
        Get the associated token account for the bonding curve.
        This holds the actual token reserves.
        """
        return get_associated_token_address(bonding_curve, token_mint)

    def derive_metadata_address(self, token_mint: Pubkey) -> Tuple[Pubkey, int]:
        seeds = [b"metadata", bytes(METADATA_PROGRAM), bytes(token_mint)]
        return Pubkey.find_program_address(seeds, METADATA_PROGRAM)
