#!/usr/bin/env python3
"""
PUMP SWAP - Trading Engine

Token creation and multi-wallet buy/sell bundles against pump.fun's
bonding curve program.
"""

import math
from dataclasses import dataclass, field
from typing import Optional

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from pumpswap.config import BotConfig
from pumpswap.core.client import SolanaClient
from pumpswap.core.wallet import Wallet, WalletManager, decode_private_key
from pumpswap.exceptions import (
    BondingCurveMigratedError,
    ErrorKind,
    PumpSwapError,
    RpcError,
    ValidationError,
)
from pumpswap.logger import PumpSwapLogger
from pumpswap.protocol.jito import (
    Bundle,
    BundleClient,
    BundleStatus,
    calculate_bundle_fee,
    encode_transaction,
)
from pumpswap.protocol.metadata import MetadataPolicy, MetadataValidator, TokenMetadata
from pumpswap.protocol.pumpfun import (
    BONDING_CURVE_ACCOUNT_SIZE,
    LAMPORTS_PER_SOL,
    TOKEN_BASE_UNITS,
    BondingCurveState,
    PumpFunProgram,
    TradeQuote,
    quote_buy,
    quote_buy_legs,
    quote_sell,
    quote_sell_legs,
)

# Rent for mint, bonding curve and metadata accounts when the RPC cannot quote it
CREATION_BUFFER_SOL = 0.02
TX_FEE_BUFFER_SOL = 0.001

# Accounts a launch creates: mint, bonding curve, curve token account, metadata
MINT_ACCOUNT_SIZE = 82
TOKEN_ACCOUNT_SIZE = 165
METADATA_ACCOUNT_SIZE = 679
CREATION_ACCOUNT_SIZES = (
    MINT_ACCOUNT_SIZE,
    BONDING_CURVE_ACCOUNT_SIZE,
    TOKEN_ACCOUNT_SIZE,
    METADATA_ACCOUNT_SIZE,
)


@dataclass
class CreateTokenRequest:
    metadata: TokenMetadata
    user_id: int = 0
    wallet_id: str = ""
    signing_key: str = ""  # optional raw key instead of a stored wallet


@dataclass
class BuyRequest:
    token_address: str
    sol_amounts: list[float]
    wallet_ids: list[str]
    user_id: int = 0


@dataclass
class SellRequest:
    token_address: str
    token_amounts: list[float]
    wallet_ids: list[str]
    user_id: int = 0


@dataclass
class TokenCreationResult:
    token_address: str
    signature: str
    creator: str
    metadata: TokenMetadata
    fee_paid: float

    def to_dict(self) -> dict:
        return {
            "token_address": self.token_address,
            "signature": self.signature,
            "creator": self.creator,
            "metadata": self.metadata.to_dict(),
            "fee_paid": self.fee_paid,
        }


@dataclass
class TradeResult:
    success: bool
    side: str
    token_address: str
    bundle: Optional[Bundle] = None
    quotes: list[TradeQuote] = field(default_factory=list)
    fee_paid: float = 0.0  # platform fee, SOL
    bundle_fee: float = 0.0  # relay fee estimate, SOL
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "side": self.side,
            "token_address": self.token_address,
            "bundle": self.bundle.to_dict() if self.bundle else None,
            "quotes": [q.__dict__ for q in self.quotes],
            "fee_paid": self.fee_paid,
            "bundle_fee": self.bundle_fee,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
        }


def parse_mint(token_address: str) -> Pubkey:
    try:
        return Pubkey.from_string(token_address)
    except ValueError as e:
        raise ValidationError(f"Invalid token address: {token_address}") from e


class TradingEngine:
    """
    Quotes against live curve state, builds one signed transaction per
    wallet and hands the batch to the bundle relay.
    """

    def __init__(
        self,
        config: BotConfig,
        wallets: WalletManager,
        solana_client: SolanaClient,
        bundles: BundleClient,
        logger: PumpSwapLogger,
    ):
        self.config = config
        self.wallets = wallets
        self.client = solana_client
        self.bundles = bundles
        self.logger = logger

        self.pumpfun = PumpFunProgram(Pubkey.from_string(config.pumpfun_program))
        self.validator = MetadataValidator(
            MetadataPolicy(require_social_links=config.require_social_links)
        )
        self.fee_address = Pubkey.from_string(config.fee_address) if config.fee_address else None

    # ═══════════════════════════════════════════════════════════════════════
    #                               PRICING
    # ═══════════════════════════════════════════════════════════════════════

    async def fetch_bonding_curve(self, token_address: str) -> BondingCurveState:
        """Current curve state for a mint, read from chain."""
        mint = parse_mint(token_address)
        bonding_curve, _ = self.pumpfun.derive_bonding_curve_address(mint)

        account_data = await self.client.get_account_info(bonding_curve)
        if not account_data:
            raise RpcError(f"Bonding curve account not found for {token_address}")

        account = self.pumpfun.decode_bonding_curve(account_data)
        if account is None:
            raise RpcError(f"Cannot decode bonding curve for {token_address}")

        return account.to_curve_state(token_address)

    async def quote_buy(self, token_address: str, sol_amount: float) -> TradeQuote:
        state = await self.fetch_bonding_curve(token_address)
        quote = quote_buy(sol_amount, state, self.config.trading_fee)
        self.logger.trade_quoted("buy", token_address, quote.amount_in, quote.amount_out)
        return quote

    async def quote_sell(self, token_address: str, token_amount: float) -> TradeQuote:
        state = await self.fetch_bonding_curve(token_address)
        quote = quote_sell(token_amount, state, self.config.trading_fee)
        self.logger.trade_quoted("sell", token_address, quote.amount_in, quote.amount_out)
        return quote

    # ═══════════════════════════════════════════════════════════════════════
    #                            TOKEN CREATION
    # ═══════════════════════════════════════════════════════════════════════

    async def creation_rent_sol(self) -> float:
        """Rent a launch locks up, or CREATION_BUFFER_SOL if the RPC cannot say."""
        lamports = 0
        for size in CREATION_ACCOUNT_SIZES:
            rent = await self.client.get_minimum_balance_for_rent_exemption(size)
            if rent is None:
                return CREATION_BUFFER_SOL
            lamports += rent
        return lamports / LAMPORTS_PER_SOL

    async def _sol_balance(self, owner: Pubkey, label: str) -> float:
        balance = await self.client.get_balance(owner)
        if balance is None:
            raise RpcError(f"Could not fetch SOL balance for {label} {owner}")
        return balance

    def _resolve_signer(self, user_id: int, wallet_id: str, signing_key: str) -> Keypair:
        if signing_key:
            return decode_private_key(signing_key)
        if not wallet_id:
            raise ValidationError("A wallet or signing key is required")
        wallet = self.wallets.resolve_wallets(user_id, [wallet_id])[0]
        return self.wallets.get_keypair(wallet)

    async def create_token(self, request: CreateTokenRequest) -> TokenCreationResult:
        """
        Launch a token on pump.fun from the creator's wallet.

        Raises:
            ValidationError: bad metadata or not enough SOL
            WalletError: unknown wallet or undecryptable key
            RpcError: balance, blockhash or broadcast unavailable
        """
        self.validator.validate(request.metadata).raise_if_invalid()

        creator = self._resolve_signer(request.user_id, request.wallet_id, request.signing_key)

        required = (
            self.config.creation_fee_sol + await self.creation_rent_sol() + TX_FEE_BUFFER_SOL
        )
        balance = await self._sol_balance(creator.pubkey(), "creator wallet")
        if balance < required:
            raise ValidationError(
                f"Insufficient SOL balance: {balance:.4f} < {required:.4f} required"
            )

        mint = Keypair()
        metadata = request.metadata
        instructions = [
            set_compute_unit_limit(self.config.compute_unit_limit),
            set_compute_unit_price(self.config.priority_fee_micro_lamports),
            self.pumpfun.build_create_instruction(
                creator=creator.pubkey(),
                token_mint=mint.pubkey(),
                name=metadata.name,
                symbol=metadata.symbol,
                uri=metadata.image_url,
            ),
        ]
        if self.fee_address and self.config.creation_fee_sol > 0:
            instructions.append(transfer(TransferParams(
                from_pubkey=creator.pubkey(),
                to_pubkey=self.fee_address,
                lamports=int(self.config.creation_fee_sol * LAMPORTS_PER_SOL),
            )))

        blockhash = await self.client.get_latest_blockhash()
        if blockhash is None:
            raise RpcError("Failed to get recent blockhash")

        message = Message.new_with_blockhash(instructions, creator.pubkey(), blockhash)
        transaction = Transaction([creator, mint], message, blockhash)

        signature = await self.client.send_transaction(transaction)
        if not signature:
            raise RpcError("Token creation transaction was not accepted by the RPC node")

        token_address = str(mint.pubkey())
        self.logger.token_created(token_address, metadata.name, metadata.symbol)
        return TokenCreationResult(
            token_address=token_address,
            signature=signature,
            creator=str(creator.pubkey()),
            metadata=metadata,
            fee_paid=self.config.creation_fee_sol,
        )

    # ═══════════════════════════════════════════════════════════════════════
    #                             BUNDLED TRADES
    # ═══════════════════════════════════════════════════════════════════════

    def validate_trade(self, side: str, amounts: list[float], wallet_ids: list[str]) -> None:
        """Collect every shape problem of a buy/sell request."""
        errors = []
        if not wallet_ids:
            errors.append("At least one wallet is required")
        if len(wallet_ids) > self.config.max_wallets_per_bundle:
            errors.append(
                f"Too many wallets: {len(wallet_ids)} (max {self.config.max_wallets_per_bundle})"
            )
        if len(amounts) != len(wallet_ids):
            errors.append(
                f"Got {len(amounts)} amounts for {len(wallet_ids)} wallets; counts must match"
            )
        for amount in amounts:
            if not math.isfinite(amount):
                errors.append(f"Amount must be a finite number, got {amount}")
            elif amount <= 0:
                errors.append(f"Amount must be positive, got {amount}")
            elif side == "buy" and amount < self.config.min_sol_amount:
                errors.append(
                    f"Minimum buy is {self.config.min_sol_amount} SOL, got {amount}"
                )
        if errors:
            raise ValidationError("; ".join(errors), errors=errors)

    def _build_transaction(
        self, keypair: Keypair, instructions: list, blockhash, with_tip: bool
    ) -> str:
        payer = keypair.pubkey()
        all_instructions = [
            set_compute_unit_limit(self.config.compute_unit_limit),
            set_compute_unit_price(self.config.priority_fee_micro_lamports),
            *instructions,
        ]
        if with_tip:
            all_instructions.append(self.bundles.build_tip_instruction(payer))
        message = Message.new_with_blockhash(all_instructions, payer, blockhash)
        transaction = Transaction([keypair], message, blockhash)
        return encode_transaction(transaction)

    def _platform_fee_instruction(self, payer: Pubkey, sol_amount: float):
        lamports = int(sol_amount * self.config.fee_percentage * LAMPORTS_PER_SOL)
        if not self.fee_address or lamports <= 0:
            return None
        return transfer(TransferParams(
            from_pubkey=payer, to_pubkey=self.fee_address, lamports=lamports
        ))

    async def _submit(
        self, side: str, token_address: str, transactions: list[str],
        quotes: list[TradeQuote], fee_paid: float, wait_for_confirmation: bool
    ) -> TradeResult:
        result = TradeResult(
            success=False,
            side=side,
            token_address=token_address,
            quotes=quotes,
            fee_paid=fee_paid,
            bundle_fee=calculate_bundle_fee(len(transactions)),
        )
        submit = (
            self.bundles.submit_buy_bundle if side == "buy" else self.bundles.submit_sell_bundle
        )
        try:
            bundle = await submit(transactions, self.config.bundle_max_retries)
        except PumpSwapError as e:
            if e.kind is ErrorKind.VALIDATION:
                raise
            self.logger.error(f"{side.capitalize()} bundle failed", e)
            result.error, result.error_kind = str(e), e.kind
            return result

        self.logger.bundle_submitted(bundle.bundle_id, len(transactions), side)

        if wait_for_confirmation and bundle.status is BundleStatus.PENDING:
            bundle = await self.bundles.wait_for_bundle_confirmation(
                bundle.bundle_id, self.config.bundle_confirm_timeout_seconds
            )
            self.logger.bundle_settled(bundle.bundle_id, bundle.status.value, bundle.error)

        result.bundle = bundle
        if bundle.status is BundleStatus.FAILED or bundle.status is BundleStatus.REJECTED:
            result.error = bundle.error or f"Bundle {bundle.status.value}"
            result.error_kind = bundle.error_kind or ErrorKind.RELAY
        else:
            result.success = True
        return result

    def _load_signers(self, user_id: int, wallet_ids: list[str]) -> list[tuple[Wallet, Keypair]]:
        wallets = self.wallets.resolve_wallets(user_id, wallet_ids)
        return [(w, self.wallets.get_keypair(w)) for w in wallets]

    async def buy(self, request: BuyRequest, wait_for_confirmation: bool = True) -> TradeResult:
        """
        One buy per wallet, submitted as a single bundle.

        Raises:
            ValidationError: malformed request, bad mint or short balance
            WalletError: unknown wallet
            InsufficientLiquidityError: curve empty or migrated
            RpcError: curve account, balance or blockhash unavailable
        """
        self.validate_trade("buy", request.sol_amounts, request.wallet_ids)
        mint = parse_mint(request.token_address)
        signers = self._load_signers(request.user_id, request.wallet_ids)

        state = await self.fetch_bonding_curve(request.token_address)
        if state.complete:
            raise BondingCurveMigratedError(f"{request.token_address} has migrated to Raydium")

        slippage = self.config.max_slippage_bps / 10_000
        quotes = quote_buy_legs(request.sol_amounts, state, self.config.trading_fee)

        for (wallet, keypair), sol_amount in zip(signers, request.sol_amounts):
            needed = sol_amount * (1 + slippage + self.config.fee_percentage) + TX_FEE_BUFFER_SOL
            balance = await self._sol_balance(keypair.pubkey(), f"wallet '{wallet.name}'")
            if balance < needed:
                raise ValidationError(
                    f"Wallet '{wallet.name}' has {balance:.4f} SOL, needs {needed:.4f}"
                )

        blockhash = await self.client.get_latest_blockhash()
        if blockhash is None:
            raise RpcError("Failed to get recent blockhash")

        transactions = []
        fee_paid = 0.0
        for index, ((wallet, keypair), sol_amount, quote) in enumerate(
            zip(signers, request.sol_amounts, quotes)
        ):
            buyer = keypair.pubkey()
            instructions = [
                self.pumpfun.build_create_ata_instruction(buyer, buyer, mint),
                self.pumpfun.build_buy_instruction(
                    buyer=buyer,
                    token_mint=mint,
                    token_amount=int(quote.amount_out * TOKEN_BASE_UNITS),
                    max_sol_cost=int(sol_amount * (1 + slippage) * LAMPORTS_PER_SOL),
                ),
            ]
            fee_ix = self._platform_fee_instruction(buyer, sol_amount)
            if fee_ix is not None:
                instructions.append(fee_ix)
                fee_paid += sol_amount * self.config.fee_percentage
            transactions.append(
                self._build_transaction(keypair, instructions, blockhash, with_tip=index == 0)
            )

        self.logger.info(
            f"Buying {request.token_address[:8]}... with {len(transactions)} wallets, "
            f"{sum(request.sol_amounts):.4f} SOL total"
        )
        return await self._submit(
            "buy", request.token_address, transactions, quotes, fee_paid, wait_for_confirmation
        )

    async def sell(self, request: SellRequest, wait_for_confirmation: bool = True) -> TradeResult:
        """
        One sell per wallet, submitted as a single bundle.

        Raises:
            ValidationError: malformed request, bad mint or short token balance
            WalletError: unknown wallet
            InsufficientLiquidityError: sell would drain the curve, or migrated
            RpcError: curve account, balance or blockhash unavailable
        """
        self.validate_trade("sell", request.token_amounts, request.wallet_ids)
        mint = parse_mint(request.token_address)
        signers = self._load_signers(request.user_id, request.wallet_ids)

        state = await self.fetch_bonding_curve(request.token_address)
        if state.complete:
            raise BondingCurveMigratedError(f"{request.token_address} has migrated to Raydium")

        slippage = self.config.max_slippage_bps / 10_000
        quotes = quote_sell_legs(request.token_amounts, state, self.config.trading_fee)

        for (wallet, keypair), token_amount in zip(signers, request.token_amounts):
            held = await self.client.get_token_balance(keypair.pubkey(), mint)
            if held is None:
                raise RpcError(f"Could not fetch token balance for wallet '{wallet.name}'")
            if held < token_amount:
                raise ValidationError(
                    f"Wallet '{wallet.name}' holds {held:,.2f} tokens, selling {token_amount:,.2f}"
                )

        blockhash = await self.client.get_latest_blockhash()
        if blockhash is None:
            raise RpcError("Failed to get recent blockhash")

        transactions = []
        fee_paid = 0.0
        for index, ((wallet, keypair), token_amount, quote) in enumerate(
            zip(signers, request.token_amounts, quotes)
        ):
            seller = keypair.pubkey()
            instructions = [
                self.pumpfun.build_sell_instruction(
                    seller=seller,
                    token_mint=mint,
                    token_amount=int(token_amount * TOKEN_BASE_UNITS),
                    min_sol_output=int(quote.amount_out * (1 - slippage) * LAMPORTS_PER_SOL),
                ),
            ]
            fee_ix = self._platform_fee_instruction(seller, quote.amount_out)
            if fee_ix is not None:
                instructions.append(fee_ix)
                fee_paid += quote.amount_out * self.config.fee_percentage
            transactions.append(
                self._build_transaction(keypair, instructions, blockhash, with_tip=index == 0)
            )

        self.logger.info(
            f"Selling {request.token_address[:8]}... from {len(transactions)} wallets"
        )
        return await self._submit(
            "sell", request.token_address, transactions, quotes, fee_paid, wait_for_confirmation
        )

    async def get_bundle_status(self, bundle_id: str) -> Bundle:
        return await self.bundles.get_bundle_status(bundle_id)

    async def get_recent_bundles(self, wallet_address: str, limit: int = 10) -> list[dict]:
        """Relay history of bundles paid for by wallet_address."""
        try:
            Pubkey.from_string(wallet_address)
        except ValueError as e:
            raise ValidationError(f"Invalid wallet address: {wallet_address}") from e
        return await self.bundles.get_recent_bundles(wallet_address, limit)

    async def get_wallet_balances(self, user_id: int) -> list[Wallet]:
        """Refresh and return every wallet of a user."""
        wallets = self.wallets.get_wallets(user_id)
        for wallet in wallets:
            await self.wallets.refresh_balance(wallet, self.client)
        return wallets

    async def close(self):
        await self.bundles.close()
        await self.client.close()
