#!/usr/bin/env python3
"""
PUMP SWAP - Jito Bundle Client

Submit pre-signed transactions as atomic bundles through a Jito relay to
avoid front-running. Either every transaction in a bundle lands or none do.

Bundle lifecycle:
    pending -> accepted | rejected | failed   (all three terminal)

Jito Block Engines:
- Mainnet: https://mainnet.block-engine.jito.wtf
- NY: https://ny.mainnet.block-engine.jito.wtf
- Amsterdam: https://amsterdam.mainnet.block-engine.jito.wtf
- Frankfurt: https://frankfurt.mainnet.block-engine.jito.wtf
- Tokyo: https://tokyo.mainnet.block-engine.jito.wtf
"""

import asyncio
import base64
import binascii
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

import aiohttp
from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer

from pumpswap.exceptions import (
    BundleTimeoutError,
    ErrorKind,
    RelayError,
    ValidationError,
)

logger = logging.getLogger(__name__)

MAX_BUNDLE_TRANSACTIONS = 16
MAX_TRANSACTION_BYTES = 1232  # Solana packet limit

BASE_BUNDLE_FEE_SOL = 0.00001
PER_TRANSACTION_FEE_SOL = 0.000001

CONFIRMATION_TIMEOUT_ERROR = "Bundle confirmation timeout"


class BundleStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not BundleStatus.PENDING

    @classmethod
    def from_relay(cls, raw: str | None) -> "BundleStatus":
        """Normalise the relay's status vocabulary."""
        value = (raw or "").strip().lower()
        if value in ("accepted", "landed", "success", "confirmed", "finalized"):
            return cls.ACCEPTED
        if value in ("rejected", "invalid"):
            return cls.REJECTED
        if value == "failed":
            return cls.FAILED
        return cls.PENDING


@dataclass
class Bundle:
    """A submitted (or refused) bundle and its last known state."""

    bundle_id: str
    status: BundleStatus
    transactions: list[str]  # base64 blobs
    tip_account: str
    tip_amount: int  # lamports
    submitted_at: datetime = field(default_factory=datetime.now)
    processed_at: datetime | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    slot: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is BundleStatus.ACCEPTED

    def raise_for_status(self) -> None:
        """Raise the matching error for a rejected or failed bundle."""
        if self.status in (BundleStatus.PENDING, BundleStatus.ACCEPTED):
            return
        message = self.error or f"Bundle {self.bundle_id} {self.status.value}"
        if self.error_kind is ErrorKind.TIMEOUT:
            raise BundleTimeoutError(message)
        raise RelayError(message)

    def to_dict(self) -> dict:
        return {
            "bundle_id": self.bundle_id,
            "status": self.status.value,
            "transactions": len(self.transactions),
            "tip_account": self.tip_account,
            "tip_amount": self.tip_amount,
            "submitted_at": self.submitted_at.isoformat(),
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "slot": self.slot,
        }


def encode_transaction(transaction) -> str:
    """Serialize a signed transaction to the relay's base64 wire form."""
    return base64.b64encode(bytes(transaction)).decode("utf-8")


def calculate_bundle_fee(transaction_count: int) -> float:
    """Relay fee estimate in SOL for a bundle of transaction_count transactions."""
    return BASE_BUNDLE_FEE_SOL + PER_TRANSACTION_FEE_SOL * transaction_count


class BundleClient:
    """
    Interface to a Jito relay for MEV-protected bundle submission.

    The relay accepts {transactions, tip_account, tip_amount} on POST to
    bundle_url and serves status at bundle_url/<bundle_id>.
    """

    # Jito tip accounts
    TIP_ACCOUNTS = [
        "96gYZGLnJYVFmbjzopPSU6QiEV5fGqZNyN9nmNhvrZU5",
        "HFqU5x63VTqvQss8hp11i4wVV8bD44PvwucfZ2bU7gRe",
        "Cw8CFyM9FkoMi7K7Crf6HNQqf4uEMzpKw6QNghXLvLkY",
        "ADaUMid9yfUytqMBgopwjb2DTLSokTSzL1zt6iGPaS49",
        "DfXygSm4jCyNCybVYYK6DwvWqjKee8pbDmJGcLWNDXjh",
        "ADuUkR4vqLUMWXxW9gh6D6L8pMSawimctcNZ5pGwDcEt",
        "DttWaMuVvTiduZRnguLF7jNxTgiMBZ1hyAumKUiL2KRL",
        "3AVi9Tg9Uo68tJfuvoKvqKNWKkC5wPdSSdeBnizKZ6jT",
    ]

    def __init__(
        self,
        bundle_url: str,
        tip_account: str = TIP_ACCOUNTS[0],
        tip_lamports: int = 10000,  # Default 0.00001 SOL tip
        timeout_seconds: float = 30.0,
        poll_interval_seconds: float = 2.0,
    ):
        self.bundle_url = bundle_url.rstrip("/")
        # bundle_url is <root>/bundles; stats and tips live next to it
        self.api_root = self.bundle_url.rsplit("/", 1)[0]
        self.tip_account = tip_account
        self.tip_lamports = tip_lamports
        self.timeout = timeout_seconds
        self.poll_interval = poll_interval_seconds
        self.session: aiohttp.ClientSession | None = None

    async def initialize(self):
        """Initialize HTTP session."""
        if not self.session:
            self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))

    async def close(self):
        """Close HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None

    def build_tip_instruction(self, payer: Pubkey, tip_lamports: int | None = None) -> Instruction:
        """Transfer of the relay tip from payer to the configured tip account."""
        return transfer(
            TransferParams(
                from_pubkey=payer,
                to_pubkey=Pubkey.from_string(self.tip_account),
                lamports=tip_lamports or self.tip_lamports,
            )
        )

    # ═══════════════════════════════════════════════════════════════════════
    #                              VALIDATION
    # ═══════════════════════════════════════════════════════════════════════

    def validate_transactions(self, transactions: list[str]) -> None:
        """
        Reject a batch the relay would refuse anyway.

        Raises:
            ValidationError: empty batch, more than 16 transactions, a blob
                that is not base64, or a blob over the packet limit
        """
        if not transactions:
            raise ValidationError("Bundle must contain at least one transaction")

        if len(transactions) > MAX_BUNDLE_TRANSACTIONS:
            raise ValidationError(
                f"Bundle has {len(transactions)} transactions (max {MAX_BUNDLE_TRANSACTIONS})"
            )

        errors = []
        for index, blob in enumerate(transactions):
            try:
                raw = base64.b64decode(blob, validate=True)
            except (binascii.Error, ValueError, TypeError):
                errors.append(f"Transaction {index} is not valid base64")
                continue
            if not raw:
                errors.append(f"Transaction {index} is empty")
            elif len(raw) > MAX_TRANSACTION_BYTES:
                errors.append(
                    f"Transaction {index} is {len(raw)} bytes (max {MAX_TRANSACTION_BYTES})"
                )

        if errors:
            raise ValidationError("; ".join(errors), errors=errors)

    # ═══════════════════════════════════════════════════════════════════════
    #                          SUBMISSION & STATUS
    # ═══════════════════════════════════════════════════════════════════════

    def _failed(self, bundle_id: str, transactions: list[str], error: str,
                kind: ErrorKind = ErrorKind.RELAY) -> Bundle:
        return Bundle(
            bundle_id=bundle_id,
            status=BundleStatus.FAILED,
            transactions=transactions,
            tip_account=self.tip_account,
            tip_amount=self.tip_lamports,
            processed_at=datetime.now(),
            error=error,
            error_kind=kind,
        )

    async def submit_bundle(self, transactions: list[str]) -> Bundle:
        """
        Submit one bundle. Never raises for relay trouble; a refused or
        unreachable relay yields a failed Bundle carrying the reason.

        Raises:
            ValidationError: before any network call, see validate_transactions
        """
        self.validate_transactions(transactions)

        if not self.session:
            await self.initialize()

        payload = {
            "transactions": transactions,
            "tip_account": self.tip_account,
            "tip_amount": self.tip_lamports,
        }

        try:
            async with self.session.post(self.bundle_url, json=payload) as response:
                if not 200 <= response.status < 300:
                    body = await response.text()
                    error = f"HTTP {response.status}: {body[:200]}"
                    logger.warning("Bundle submission refused: %s", error)
                    return self._failed("", transactions, error)
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning("Bundle submission failed: %s", e)
            return self._failed("", transactions, str(e) or type(e).__name__)

        bundle_id = data.get("bundle_id") if isinstance(data, dict) else None
        if not bundle_id:
            return self._failed("", transactions, "Relay response missing bundle_id")

        status = BundleStatus.from_relay(data.get("status", "pending"))
        bundle = Bundle(
            bundle_id=bundle_id,
            status=status,
            transactions=transactions,
            tip_account=self.tip_account,
            tip_amount=self.tip_lamports,
            error=data.get("error"),
        )
        if status.is_terminal:
            bundle.processed_at = datetime.now()
            if status is not BundleStatus.ACCEPTED:
                bundle.error = bundle.error or f"Relay {status.value} bundle"
                bundle.error_kind = ErrorKind.RELAY

        logger.info("Bundle %s submitted (%d tx, %s)", bundle_id, len(transactions), status.value)
        return bundle

    async def get_bundle_status(self, bundle_id: str) -> Bundle:
        """Poll the relay once. Transport failures come back as a failed Bundle."""
        if not self.session:
            await self.initialize()

        try:
            url = f"{self.bundle_url}/{bundle_id}"
            async with self.session.get(url) as response:
                if not 200 <= response.status < 300:
                    return self._failed(bundle_id, [], f"HTTP {response.status}")
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning("Status poll for %s failed: %s", bundle_id, e)
            return self._failed(bundle_id, [], str(e) or type(e).__name__)

        if not isinstance(data, dict):
            return self._failed(bundle_id, [], "Malformed status response")

        status = BundleStatus.from_relay(data.get("status"))
        bundle = Bundle(
            bundle_id=bundle_id,
            status=status,
            transactions=data.get("transactions") or [],
            tip_account=self.tip_account,
            tip_amount=self.tip_lamports,
            error=data.get("error"),
            slot=data.get("slot"),
        )
        if status.is_terminal:
            bundle.processed_at = datetime.now()
            if status is not BundleStatus.ACCEPTED:
                bundle.error_kind = ErrorKind.RELAY
        return bundle

    async def submit_bundle_with_retry(
        self, transactions: list[str], max_retries: int = 3
    ) -> Bundle:
        """
        Submit with exponential backoff (2s, 4s, 8s...) between attempts.

        Returns the first pending or accepted Bundle.

        Raises:
            ValidationError: immediately, never retried
            RelayError: every attempt failed; carries the last reason
        """
        last_error = "no attempts made"

        for attempt in range(1, max_retries + 1):
            bundle = await self.submit_bundle(transactions)

            if bundle.status in (BundleStatus.PENDING, BundleStatus.ACCEPTED):
                return bundle

            last_error = bundle.error or bundle.status.value
            logger.warning(
                "Bundle attempt %d/%d failed: %s", attempt, max_retries, last_error
            )

            if attempt < max_retries:
                await asyncio.sleep(2**attempt)  # Exponential backoff

        raise RelayError(f"Bundle submission failed after {max_retries} attempts: {last_error}")

    async def wait_for_bundle_confirmation(
        self, bundle_id: str, max_wait_seconds: float = 30.0
    ) -> Bundle:
        """
        Poll until the bundle reaches a terminal status or the wait expires.
        On expiry returns a failed Bundle with a timeout error.
        """
        deadline = time.monotonic() + max_wait_seconds

        while True:
            remaining = deadline - time.monotonic()
            try:
                # A hung status call must not outlive the deadline
                bundle = await asyncio.wait_for(
                    self.get_bundle_status(bundle_id), timeout=max(remaining, 0.0)
                )
            except asyncio.TimeoutError:
                break
            if bundle.status.is_terminal:
                return bundle

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            await asyncio.sleep(min(self.poll_interval, remaining))

        logger.warning("Bundle %s not confirmed within %.1fs", bundle_id, max_wait_seconds)
        return self._failed(bundle_id, [], CONFIRMATION_TIMEOUT_ERROR, ErrorKind.TIMEOUT)

    async def submit_buy_bundle(self, transactions: list[str], max_retries: int = 3) -> Bundle:
        logger.info("Submitting buy bundle with %d transactions", len(transactions))
        return await self.submit_bundle_with_retry(transactions, max_retries)

    async def submit_sell_bundle(self, transactions: list[str], max_retries: int = 3) -> Bundle:
        logger.info("Submitting sell bundle with %d transactions", len(transactions))
        return await self.submit_bundle_with_retry(transactions, max_retries)

    def calculate_bundle_fee(self, transaction_count: int) -> float:
        return calculate_bundle_fee(transaction_count)

    # ═══════════════════════════════════════════════════════════════════════
    #                           RELAY INFORMATION
    # ═══════════════════════════════════════════════════════════════════════

    async def _get_json(self, url: str, params: dict | None = None):
        if not self.session:
            await self.initialize()
        async with self.session.get(url, params=params) as response:
            response.raise_for_status()
            return await response.json()

    async def get_recent_bundles(self, wallet_address: str, limit: int = 10) -> list[dict]:
        try:
            data = await self._get_json(
                f"{self.bundle_url}/wallet/{wallet_address}", params={"limit": limit}
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning("Recent bundles lookup failed: %s", e)
            return []
        if not isinstance(data, dict):
            return []
        return data.get("bundles") or []

    async def calculate_optimal_tip(self) -> int:
        """Relay-suggested tip in lamports, falling back to the configured tip."""
        try:
            data = await self._get_json(f"{self.api_root}/tip-suggestions")
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning("Tip suggestion lookup failed: %s", e)
            return self.tip_lamports
        suggested = data.get("suggested_tip")
        return int(suggested) if suggested else self.tip_lamports

    async def get_bundle_stats(self) -> dict:
        try:
            data = await self._get_json(f"{self.api_root}/stats")
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning("Bundle stats lookup failed: %s", e)
            data = {}
        return {
            "total_bundles": data.get("total_bundles", 0),
            "accepted_bundles": data.get("accepted_bundles", 0),
            "rejected_bundles": data.get("rejected_bundles", 0),
            "average_confirmation_time": data.get("average_confirmation_time", 0),
        }
