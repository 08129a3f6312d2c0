#!/usr/bin/env python3
"""
PUMP SWAP - Wallet Management

Per-user keypairs, encrypted at rest with Fernet.
Never logs private keys. Never stores them unencrypted.
"""

import base64
import binascii
import json
import logging
import os
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime

import base58
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from pumpswap.exceptions import RpcError, WalletError

logger = logging.getLogger(__name__)

# Stable salt so the same passphrase opens the same wallets file
_KDF_SALT = b"pumpswap-wallet-store"


def derive_fernet_key(secret: str) -> bytes:
    """Use secret as a Fernet key if it is one, else stretch it with scrypt."""
    try:
        Fernet(secret.encode())
        return secret.encode()
    except ValueError:
        pass
    kdf = Scrypt(salt=_KDF_SALT, length=32, n=2**14, r=8, p=1)
    return base64.urlsafe_b64encode(kdf.derive(secret.encode()))


def decode_private_key(private_key: str) -> Keypair:
    """
    Accept a secret key as a JSON byte array, base58 or base64.
    64-byte keys are full keypairs, 32-byte keys are seeds.
    """
    text = private_key.strip()
    if not text:
        raise WalletError("Private key is empty")

    candidates: list[bytes] = []
    if text.startswith("["):
        try:
            candidates.append(bytes(json.loads(text)))
        except (ValueError, TypeError) as e:
            raise WalletError(f"Invalid JSON private key: {e}") from e
    else:
        try:
            candidates.append(base58.b58decode(text))
        except ValueError:
            pass
        try:
            candidates.append(base64.b64decode(text, validate=True))
        except (binascii.Error, ValueError):
            pass

    for raw in candidates:
        try:
            if len(raw) == 64:
                return Keypair.from_bytes(raw)
            if len(raw) == 32:
                return Keypair.from_seed(raw)
        except ValueError:
            continue

    raise WalletError("Invalid private key format (expected base58, base64 or JSON array)")


@dataclass
class Wallet:
    id: str
    user_id: int
    name: str
    public_key: str
    encrypted_private_key: str
    balance: float = 0.0
    is_active: bool = True
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    last_used: str | None = None

    def to_public_dict(self) -> dict:
        """Everything except the ciphertext."""
        data = asdict(self)
        data.pop("encrypted_private_key")
        return data


class WalletManager:
    """
    Wallet store keyed by user id.

    With wallets_file set, wallets are persisted as JSON containing only
    ciphertext; without it they live for the process lifetime.
    """

    def __init__(self, encryption_key: str = "", wallets_file: str = ""):
        if encryption_key:
            self.fernet = Fernet(derive_fernet_key(encryption_key))
        else:
            logger.warning("No encryption key configured; using an ephemeral key")
            self.fernet = Fernet(Fernet.generate_key())
        self.wallets_file = wallets_file
        self._wallets: dict[int, dict[str, Wallet]] = {}
        if wallets_file:
            self._load()

    def _load(self):
        if not os.path.exists(self.wallets_file):
            return
        try:
            with open(self.wallets_file) as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            raise WalletError(f"Cannot read wallets file {self.wallets_file}: {e}") from e
        for user_id, wallets in raw.items():
            self._wallets[int(user_id)] = {
                wallet_id: Wallet(**data) for wallet_id, data in wallets.items()
            }
        logger.info("Loaded wallets for %d users", len(self._wallets))

    def _save(self):
        if not self.wallets_file:
            return
        data = {
            str(user_id): {wallet_id: asdict(w) for wallet_id, w in wallets.items()}
            for user_id, wallets in self._wallets.items()
        }
        with open(self.wallets_file, "w") as f:
            json.dump(data, f, indent=2)

    def _store(self, user_id: int, name: str, keypair: Keypair) -> Wallet:
        name = name.strip()
        if not name:
            raise WalletError("Wallet name is required")
        if self._find_by_name(user_id, name):
            raise WalletError(f"Wallet '{name}' already exists")

        secret = base58.b58encode(bytes(keypair)).decode()
        wallet = Wallet(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=name,
            public_key=str(keypair.pubkey()),
            encrypted_private_key=self.fernet.encrypt(secret.encode()).decode(),
        )
        self._wallets.setdefault(user_id, {})[wallet.id] = wallet
        self._save()
        return wallet

    def create_wallet(self, user_id: int, name: str) -> Wallet:
        wallet = self._store(user_id, name, Keypair())
        logger.info("Created wallet %s for user %s: %s", wallet.name, user_id, wallet.public_key)
        return wallet

    def import_wallet(self, user_id: int, name: str, private_key: str) -> Wallet:
        wallet = self._store(user_id, name, decode_private_key(private_key))
        logger.info("Imported wallet %s for user %s: %s", wallet.name, user_id, wallet.public_key)
        return wallet

    def get_wallets(self, user_id: int) -> list[Wallet]:
        return list(self._wallets.get(user_id, {}).values())

    def get_active_wallets(self, user_id: int) -> list[Wallet]:
        return [w for w in self.get_wallets(user_id) if w.is_active]

    def _find_by_name(self, user_id: int, name: str) -> Wallet | None:
        for wallet in self._wallets.get(user_id, {}).values():
            if wallet.name.lower() == name.lower():
                return wallet
        return None

    def find_wallet(self, user_id: int, ref: str) -> Wallet | None:
        """Look a wallet up by id, then by name."""
        wallet = self._wallets.get(user_id, {}).get(ref)
        return wallet or self._find_by_name(user_id, ref)

    def resolve_wallets(self, user_id: int, refs: list[str]) -> list[Wallet]:
        """Resolve every reference or fail naming the unknown ones."""
        wallets, missing = [], []
        for ref in refs:
            wallet = self.find_wallet(user_id, ref)
            if wallet is None:
                missing.append(ref)
            elif not wallet.is_active:
                raise WalletError(f"Wallet '{wallet.name}' is inactive")
            else:
                wallets.append(wallet)
        if missing:
            raise WalletError(f"Unknown wallet(s): {', '.join(missing)}")
        return wallets

    def get_keypair(self, wallet: Wallet) -> Keypair:
        """Decrypt a wallet's keypair and mark it used."""
        try:
            secret = self.fernet.decrypt(wallet.encrypted_private_key.encode()).decode()
        except InvalidToken as e:
            raise WalletError(f"Cannot decrypt wallet '{wallet.name}' (wrong key?)") from e
        wallet.last_used = datetime.now().isoformat()
        return Keypair.from_bytes(base58.b58decode(secret))

    def remove_wallet(self, user_id: int, ref: str) -> Wallet:
        wallet = self.find_wallet(user_id, ref)
        if wallet is None:
            raise WalletError(f"Unknown wallet: {ref}")
        del self._wallets[user_id][wallet.id]
        self._save()
        return wallet

    def validate_wallet_ownership(self, user_id: int, wallet_id: str) -> bool:
        return wallet_id in self._wallets.get(user_id, {})

    async def refresh_balance(self, wallet: Wallet, client) -> float:
        """Fetch the SOL balance through a SolanaClient and cache it."""
        balance = await client.get_balance(Pubkey.from_string(wallet.public_key))
        if balance is None:
            raise RpcError(f"Could not fetch balance for wallet '{wallet.name}'")
        wallet.balance = balance
        return balance
