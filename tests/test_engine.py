#!/usr/bin/env python3
"""
PUMP SWAP - Trading engine tests

Chain and relay are mocked; transactions are really built and signed.

Run with: pytest tests/test_engine.py -v
"""

import base64
from unittest.mock import AsyncMock

import base58
import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from pumpswap.exceptions import (
    BondingCurveMigratedError,
    ErrorKind,
    InsufficientLiquidityError,
    RelayError,
    RpcError,
    ValidationError,
    WalletError,
)
from pumpswap.protocol.jito import Bundle, BundleClient, BundleStatus
from pumpswap.protocol.metadata import TokenMetadata
from pumpswap.trading.engine import (
    BuyRequest,
    CreateTokenRequest,
    SellRequest,
    TradingEngine,
)

USER_ID = 42
MINT = str(Keypair().pubkey())


def decode(blob: str) -> Transaction:
    return Transaction.from_bytes(base64.b64decode(blob))


def good_metadata() -> TokenMetadata:
    return TokenMetadata(
        name="Moon Cat",
        symbol="MCAT",
        description="A cat that goes to the moon",
        image_url="https://example.com/cat.png",
        telegram_link="https://t.me/mooncat",
        twitter_link="https://twitter.com/mooncat",
    )


@pytest.fixture
def bundles(bot_config):
    client = BundleClient(bot_config.jito_bundle_url, tip_account=bot_config.jito_tip_account)

    async def accept(transactions, max_retries):
        return Bundle("b-1", BundleStatus.PENDING, transactions,
                      client.tip_account, client.tip_lamports)

    client.submit_bundle_with_retry = AsyncMock(side_effect=accept)
    client.wait_for_bundle_confirmation = AsyncMock(
        return_value=Bundle("b-1", BundleStatus.ACCEPTED, [], client.tip_account,
                            client.tip_lamports, slot=99)
    )
    return client


@pytest.fixture
def engine(bot_config, wallet_manager, solana_client, bundles, logger):
    return TradingEngine(bot_config, wallet_manager, solana_client, bundles, logger)


@pytest.fixture
def two_wallets(wallet_manager):
    return [
        wallet_manager.create_wallet(USER_ID, "alpha"),
        wallet_manager.create_wallet(USER_ID, "beta"),
    ]


class TestBuy:

    @pytest.mark.asyncio
    async def test_one_transaction_per_wallet(self, engine, bundles, two_wallets):
        request = BuyRequest(MINT, [0.1, 0.2], [w.id for w in two_wallets], USER_ID)

        result = await engine.buy(request)

        assert result.success
        assert result.bundle.status is BundleStatus.ACCEPTED
        assert len(result.quotes) == 2
        assert result.fee_paid == pytest.approx(0.3 * 0.008)

        transactions = bundles.submit_bundle_with_retry.await_args.args[0]
        assert len(transactions) == 2
        for blob, wallet in zip(transactions, two_wallets):
            tx = decode(blob)
            assert tx.message.account_keys[0] == Pubkey.from_string(wallet.public_key)
            tx.verify()

    @pytest.mark.asyncio
    async def test_tip_only_in_first_transaction(self, engine, bundles, two_wallets):
        await engine.buy(BuyRequest(MINT, [0.1, 0.1], [w.id for w in two_wallets], USER_ID))

        tip = Pubkey.from_string(bundles.tip_account)
        first, second = bundles.submit_bundle_with_retry.await_args.args[0]
        assert tip in decode(first).message.account_keys
        assert tip not in decode(second).message.account_keys

    @pytest.mark.asyncio
    async def test_wallet_names_resolve(self, engine, two_wallets):
        result = await engine.buy(BuyRequest(MINT, [0.1], ["Alpha"], USER_ID))
        assert result.success

    @pytest.mark.asyncio
    async def test_no_wait_leaves_bundle_pending(self, engine, bundles, two_wallets):
        result = await engine.buy(
            BuyRequest(MINT, [0.1], [two_wallets[0].id], USER_ID), wait_for_confirmation=False
        )
        assert result.success
        assert result.bundle.status is BundleStatus.PENDING
        bundles.wait_for_bundle_confirmation.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_count_mismatch(self, engine, bundles, two_wallets):
        with pytest.raises(ValidationError, match="counts must match"):
            await engine.buy(BuyRequest(MINT, [0.1], [w.id for w in two_wallets], USER_ID))
        bundles.submit_bundle_with_retry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_too_many_wallets(self, engine, bundles):
        ids = [f"w{i}" for i in range(17)]
        with pytest.raises(ValidationError, match="max 16"):
            await engine.buy(BuyRequest(MINT, [0.1] * 17, ids, USER_ID))
        bundles.submit_bundle_with_retry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_below_minimum(self, engine, two_wallets):
        with pytest.raises(ValidationError) as exc_info:
            await engine.buy(BuyRequest(MINT, [0.001, -1], [w.id for w in two_wallets], USER_ID))
        assert len(exc_info.value.errors) == 2

    @pytest.mark.asyncio
    async def test_unknown_wallet(self, engine, two_wallets):
        with pytest.raises(WalletError, match="ghost"):
            await engine.buy(BuyRequest(MINT, [0.1], ["ghost"], USER_ID))

    @pytest.mark.asyncio
    async def test_other_users_wallets_are_invisible(self, engine, two_wallets):
        with pytest.raises(WalletError):
            await engine.buy(BuyRequest(MINT, [0.1], [two_wallets[0].id], USER_ID + 1))

    @pytest.mark.asyncio
    async def test_bad_mint(self, engine, two_wallets):
        with pytest.raises(ValidationError, match="Invalid token address"):
            await engine.buy(BuyRequest("not-a-mint", [0.1], [two_wallets[0].id], USER_ID))

    @pytest.mark.asyncio
    async def test_short_balance(self, engine, solana_client, bundles, two_wallets):
        solana_client.get_balance.return_value = 0.05
        with pytest.raises(ValidationError, match="alpha"):
            await engine.buy(BuyRequest(MINT, [0.1], [two_wallets[0].id], USER_ID))
        bundles.submit_bundle_with_retry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_migrated_curve(self, engine, solana_client, curve_bytes, two_wallets):
        solana_client.get_account_info.return_value = curve_bytes(complete=True)
        with pytest.raises(BondingCurveMigratedError):
            await engine.buy(BuyRequest(MINT, [0.1], [two_wallets[0].id], USER_ID))

    @pytest.mark.asyncio
    async def test_missing_curve_account(self, engine, solana_client, two_wallets):
        solana_client.get_account_info.return_value = None
        with pytest.raises(RpcError):
            await engine.buy(BuyRequest(MINT, [0.1], [two_wallets[0].id], USER_ID))

    @pytest.mark.asyncio
    async def test_relay_exhaustion_is_reported(self, engine, bundles, two_wallets):
        bundles.submit_bundle_with_retry.side_effect = RelayError("failed after 3 attempts")

        result = await engine.buy(BuyRequest(MINT, [0.1], [two_wallets[0].id], USER_ID))

        assert not result.success
        assert result.error_kind is ErrorKind.RELAY
        assert result.bundle is None
        assert "3 attempts" in result.error

    @pytest.mark.asyncio
    async def test_confirmation_timeout_is_reported(self, engine, bundles, two_wallets):
        bundles.wait_for_bundle_confirmation.return_value = Bundle(
            "b-1", BundleStatus.FAILED, [], bundles.tip_account, 0,
            error="Bundle confirmation timeout", error_kind=ErrorKind.TIMEOUT,
        )

        result = await engine.buy(BuyRequest(MINT, [0.1], [two_wallets[0].id], USER_ID))

        assert not result.success
        assert result.error_kind is ErrorKind.TIMEOUT
        assert result.to_dict()["error_kind"] == "timeout"

    @pytest.mark.asyncio
    async def test_later_legs_price_against_earlier_ones(self, engine, two_wallets):
        result = await engine.buy(
            BuyRequest(MINT, [1.0, 1.0], [w.id for w in two_wallets], USER_ID)
        )
        first, second = result.quotes
        assert second.amount_out < first.amount_out

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [float("nan"), float("inf")])
    async def test_non_finite_amount(self, engine, bundles, two_wallets, amount):
        with pytest.raises(ValidationError, match="finite"):
            await engine.buy(BuyRequest(MINT, [amount], [two_wallets[0].id], USER_ID))
        bundles.submit_bundle_with_retry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unreadable_balance_is_an_rpc_error(
        self, engine, solana_client, bundles, two_wallets
    ):
        solana_client.get_balance.return_value = None
        with pytest.raises(RpcError, match="alpha"):
            await engine.buy(BuyRequest(MINT, [0.1], [two_wallets[0].id], USER_ID))
        bundles.submit_bundle_with_retry.assert_not_awaited()


class TestSell:

    @pytest.mark.asyncio
    async def test_sell(self, engine, bundles, two_wallets):
        result = await engine.sell(
            SellRequest(MINT, [1_000_000.0, 2_000_000.0], [w.id for w in two_wallets], USER_ID)
        )

        assert result.success
        assert result.side == "sell"
        expected_fee = sum(q.amount_out for q in result.quotes) * 0.008
        assert result.fee_paid == pytest.approx(expected_fee)
        assert len(bundles.submit_bundle_with_retry.await_args.args[0]) == 2

    @pytest.mark.asyncio
    async def test_sell_more_than_reserve(self, engine, two_wallets):
        with pytest.raises(InsufficientLiquidityError):
            await engine.sell(SellRequest(MINT, [2_000_000_000.0], [two_wallets[0].id], USER_ID))

    @pytest.mark.asyncio
    async def test_sell_more_than_held(self, engine, solana_client, bundles, two_wallets):
        solana_client.get_token_balance.return_value = 10.0
        with pytest.raises(ValidationError, match="holds"):
            await engine.sell(SellRequest(MINT, [1000.0], [two_wallets[0].id], USER_ID))
        bundles.submit_bundle_with_retry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sell_has_no_minimum(self, engine, two_wallets):
        result = await engine.sell(SellRequest(MINT, [0.5], [two_wallets[0].id], USER_ID))
        assert result.success

    @pytest.mark.asyncio
    async def test_legs_together_cannot_drain_reserve(self, engine, bundles, two_wallets):
        # Each leg alone fits the 1.073B token reserve, both together do not
        request = SellRequest(MINT, [600_000_000.0, 600_000_000.0],
                              [w.id for w in two_wallets], USER_ID)
        with pytest.raises(InsufficientLiquidityError):
            await engine.sell(request)
        bundles.submit_bundle_with_retry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unreadable_token_balance_is_an_rpc_error(
        self, engine, solana_client, bundles, two_wallets
    ):
        solana_client.get_token_balance.return_value = None
        with pytest.raises(RpcError, match="alpha"):
            await engine.sell(SellRequest(MINT, [1000.0], [two_wallets[0].id], USER_ID))
        bundles.submit_bundle_with_retry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_goes_through_sell_submission(self, engine, bundles, two_wallets):
        bundles.submit_sell_bundle = AsyncMock(wraps=bundles.submit_sell_bundle)
        await engine.sell(SellRequest(MINT, [1000.0], [two_wallets[0].id], USER_ID))
        bundles.submit_sell_bundle.assert_awaited_once()


class TestCreateToken:

    @pytest.mark.asyncio
    async def test_create_from_stored_wallet(self, engine, solana_client, two_wallets):
        creator = two_wallets[0]
        result = await engine.create_token(
            CreateTokenRequest(good_metadata(), user_id=USER_ID, wallet_id=creator.id)
        )

        assert result.signature == "5igSignature"
        assert result.creator == creator.public_key
        assert result.fee_paid == pytest.approx(0.01)

        tx = solana_client.send_transaction.await_args.args[0]
        assert len(tx.signatures) == 2
        assert tx.message.account_keys[0] == Pubkey.from_string(creator.public_key)
        assert Pubkey.from_string(result.token_address) in tx.message.account_keys

    @pytest.mark.asyncio
    async def test_create_with_signing_key(self, engine):
        keypair = Keypair()
        result = await engine.create_token(
            CreateTokenRequest(good_metadata(), signing_key=base58.b58encode(bytes(keypair)).decode())
        )
        assert result.creator == str(keypair.pubkey())

    @pytest.mark.asyncio
    async def test_invalid_metadata_stops_before_chain(self, engine, solana_client, two_wallets):
        bad = TokenMetadata(name="", symbol="TOOLONGSYMBOL", description="x", image_url="nope")
        with pytest.raises(ValidationError) as exc_info:
            await engine.create_token(
                CreateTokenRequest(bad, user_id=USER_ID, wallet_id=two_wallets[0].id)
            )
        assert len(exc_info.value.errors) == 4
        solana_client.get_balance.assert_not_awaited()
        solana_client.send_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_needs_creation_fee_plus_buffer(self, engine, solana_client, two_wallets):
        solana_client.get_balance.return_value = 0.02
        with pytest.raises(ValidationError, match="Insufficient SOL"):
            await engine.create_token(
                CreateTokenRequest(good_metadata(), user_id=USER_ID, wallet_id=two_wallets[0].id)
            )
        solana_client.send_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_broadcast_failure(self, engine, solana_client, two_wallets):
        solana_client.send_transaction.return_value = None
        with pytest.raises(RpcError):
            await engine.create_token(
                CreateTokenRequest(good_metadata(), user_id=USER_ID, wallet_id=two_wallets[0].id)
            )

    @pytest.mark.asyncio
    async def test_requires_a_signer(self, engine):
        with pytest.raises(ValidationError):
            await engine.create_token(CreateTokenRequest(good_metadata()))

    @pytest.mark.asyncio
    async def test_rent_comes_from_rpc(self, engine, solana_client):
        rent = await engine.creation_rent_sol()
        assert rent == pytest.approx((4 * 128 + 82 + 49 + 165 + 679) * 6960 / 1e9)
        assert solana_client.get_minimum_balance_for_rent_exemption.await_count == 4

    @pytest.mark.asyncio
    async def test_unknown_rent_falls_back_to_buffer(self, engine, solana_client, two_wallets):
        solana_client.get_minimum_balance_for_rent_exemption.side_effect = None
        solana_client.get_minimum_balance_for_rent_exemption.return_value = None
        solana_client.get_balance.return_value = 0.025
        with pytest.raises(ValidationError, match="0.0310 required"):
            await engine.create_token(
                CreateTokenRequest(good_metadata(), user_id=USER_ID, wallet_id=two_wallets[0].id)
            )

    @pytest.mark.asyncio
    async def test_unreadable_balance_stops_launch(self, engine, solana_client, two_wallets):
        solana_client.get_balance.return_value = None
        with pytest.raises(RpcError):
            await engine.create_token(
                CreateTokenRequest(good_metadata(), user_id=USER_ID, wallet_id=two_wallets[0].id)
            )
        solana_client.send_transaction.assert_not_awaited()


class TestQueries:

    @pytest.mark.asyncio
    async def test_quote_buy_uses_live_curve(self, engine):
        quote = await engine.quote_buy(MINT, 1.0)
        # 1 SOL into a 30 SOL curve buys a bit over 3% of 1.073B virtual tokens
        assert 34_000_000 < quote.amount_out < 35_000_000

    @pytest.mark.asyncio
    async def test_wallet_balances(self, engine, two_wallets):
        wallets = await engine.get_wallet_balances(USER_ID)
        assert [w.balance for w in wallets] == [10.0, 10.0]

    @pytest.mark.asyncio
    async def test_bundle_status_passthrough(self, engine, bundles):
        bundles.get_bundle_status = AsyncMock(
            return_value=Bundle("b-9", BundleStatus.ACCEPTED, [], bundles.tip_account, 0)
        )
        bundle = await engine.get_bundle_status("b-9")
        assert bundle.succeeded

    @pytest.mark.asyncio
    async def test_recent_bundles(self, engine, bundles):
        wallet = str(Keypair().pubkey())
        bundles.get_recent_bundles = AsyncMock(return_value=[{"bundle_id": "b-1"}])
        assert await engine.get_recent_bundles(wallet, limit=3) == [{"bundle_id": "b-1"}]
        bundles.get_recent_bundles.assert_awaited_once_with(wallet, 3)

    @pytest.mark.asyncio
    async def test_recent_bundles_bad_address(self, engine, bundles):
        bundles.get_recent_bundles = AsyncMock()
        with pytest.raises(ValidationError, match="Invalid wallet address"):
            await engine.get_recent_bundles("nope")
        bundles.get_recent_bundles.assert_not_awaited()
