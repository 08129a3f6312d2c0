#!/usr/bin/env python3
"""
PUMP SWAP - Wallet store tests

Run with: pytest tests/test_wallet.py -v
"""

import base64
import json
from unittest.mock import AsyncMock

import base58
import pytest
from cryptography.fernet import Fernet
from solders.keypair import Keypair

from pumpswap.core.wallet import WalletManager, decode_private_key, derive_fernet_key
from pumpswap.exceptions import ErrorKind, RpcError, WalletError


class TestKeyFormats:

    def setup_method(self):
        self.keypair = Keypair()
        self.secret = bytes(self.keypair)

    def test_base58(self):
        key = base58.b58encode(self.secret).decode()
        assert decode_private_key(key).pubkey() == self.keypair.pubkey()

    def test_base64(self):
        key = base64.b64encode(self.secret).decode()
        assert decode_private_key(key).pubkey() == self.keypair.pubkey()

    def test_json_array(self):
        key = json.dumps(list(self.secret))
        assert decode_private_key(key).pubkey() == self.keypair.pubkey()

    def test_seed_only(self):
        seed = bytes(range(32))
        key = base58.b58encode(seed).decode()
        assert decode_private_key(key).pubkey() == Keypair.from_seed(seed).pubkey()

    @pytest.mark.parametrize("key", ["", "   ", "garbage!", "[1, 2, 3]", "[not json"])
    def test_rejects_garbage(self, key):
        with pytest.raises(WalletError) as exc_info:
            decode_private_key(key)
        assert exc_info.value.kind is ErrorKind.WALLET


class TestEncryptionKey:

    def test_fernet_key_used_as_is(self):
        key = Fernet.generate_key().decode()
        assert derive_fernet_key(key) == key.encode()

    def test_passphrase_is_stretched(self):
        derived = derive_fernet_key("correct horse battery staple")
        Fernet(derived)
        assert derived == derive_fernet_key("correct horse battery staple")
        assert derived != derive_fernet_key("another passphrase")


class TestWalletManager:

    def test_create_wallet(self, wallet_manager):
        wallet = wallet_manager.create_wallet(1, "main")

        assert wallet.user_id == 1
        assert wallet.is_active
        keypair = wallet_manager.get_keypair(wallet)
        assert str(keypair.pubkey()) == wallet.public_key
        assert wallet.last_used is not None

    def test_ciphertext_does_not_contain_secret(self, wallet_manager):
        keypair = Keypair()
        secret = base58.b58encode(bytes(keypair)).decode()
        wallet = wallet_manager.import_wallet(1, "imported", secret)

        assert wallet.public_key == str(keypair.pubkey())
        assert secret not in wallet.encrypted_private_key
        assert "encrypted_private_key" not in wallet.to_public_dict()

    def test_duplicate_name_rejected(self, wallet_manager):
        wallet_manager.create_wallet(1, "main")
        with pytest.raises(WalletError, match="already exists"):
            wallet_manager.create_wallet(1, "MAIN")
        # Names are per user
        wallet_manager.create_wallet(2, "main")

    def test_blank_name_rejected(self, wallet_manager):
        with pytest.raises(WalletError):
            wallet_manager.create_wallet(1, "  ")

    def test_lookup_by_id_and_name(self, wallet_manager):
        wallet = wallet_manager.create_wallet(1, "main")
        assert wallet_manager.find_wallet(1, wallet.id) is wallet
        assert wallet_manager.find_wallet(1, "Main") is wallet
        assert wallet_manager.find_wallet(2, wallet.id) is None
        assert wallet_manager.validate_wallet_ownership(1, wallet.id)
        assert not wallet_manager.validate_wallet_ownership(2, wallet.id)

    def test_resolve_names_every_unknown(self, wallet_manager):
        wallet_manager.create_wallet(1, "main")
        with pytest.raises(WalletError, match="one, two"):
            wallet_manager.resolve_wallets(1, ["main", "one", "two"])

    def test_inactive_wallet_not_tradable(self, wallet_manager):
        wallet = wallet_manager.create_wallet(1, "main")
        wallet.is_active = False
        assert wallet_manager.get_active_wallets(1) == []
        with pytest.raises(WalletError, match="inactive"):
            wallet_manager.resolve_wallets(1, ["main"])

    def test_remove_wallet(self, wallet_manager):
        wallet_manager.create_wallet(1, "main")
        wallet_manager.remove_wallet(1, "main")
        assert wallet_manager.get_wallets(1) == []
        with pytest.raises(WalletError):
            wallet_manager.remove_wallet(1, "main")

    def test_wrong_key_cannot_decrypt(self, wallet_manager):
        wallet = wallet_manager.create_wallet(1, "main")
        other = WalletManager(Fernet.generate_key().decode())
        with pytest.raises(WalletError, match="Cannot decrypt"):
            other.get_keypair(wallet)

    @pytest.mark.asyncio
    async def test_refresh_balance(self, wallet_manager):
        wallet = wallet_manager.create_wallet(1, "main")
        client = AsyncMock()
        client.get_balance.return_value = 1.5

        assert await wallet_manager.refresh_balance(wallet, client) == 1.5
        assert wallet.balance == 1.5

    @pytest.mark.asyncio
    async def test_unreadable_balance_keeps_cached_value(self, wallet_manager):
        wallet = wallet_manager.create_wallet(1, "main")
        wallet.balance = 2.0
        client = AsyncMock()
        client.get_balance.return_value = None

        with pytest.raises(RpcError, match="main"):
            await wallet_manager.refresh_balance(wallet, client)
        assert wallet.balance == 2.0


class TestPersistence:

    def test_round_trip_through_file(self, tmp_path):
        path = str(tmp_path / "wallets.json")
        first = WalletManager("my passphrase", path)
        wallet = first.create_wallet(7, "main")

        second = WalletManager("my passphrase", path)
        loaded = second.find_wallet(7, "main")

        assert loaded.id == wallet.id
        assert str(second.get_keypair(loaded).pubkey()) == wallet.public_key

    def test_file_holds_only_ciphertext(self, tmp_path):
        path = tmp_path / "wallets.json"
        manager = WalletManager("my passphrase", str(path))
        keypair = Keypair()
        secret = base58.b58encode(bytes(keypair)).decode()
        manager.import_wallet(7, "main", secret)

        assert secret not in path.read_text()

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "wallets.json"
        path.write_text("{not json")
        with pytest.raises(WalletError):
            WalletManager("my passphrase", str(path))
