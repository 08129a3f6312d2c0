#!/usr/bin/env python3
"""
PUMP SWAP - Session store and user registry tests

Run with: pytest tests/test_sessions.py -v
"""

import time
from unittest.mock import patch

from pumpswap.core.users import InMemorySessionStore, SessionState, UserManager


class TestInMemorySessionStore:

    def test_unknown_user_is_idle(self):
        store = InMemorySessionStore()
        session = store.get(1)
        assert session.state is SessionState.IDLE
        assert session.data == {}

    def test_set_and_update(self):
        store = InMemorySessionStore()
        store.set(1, SessionState.WAITING_FOR_TOKEN_SYMBOL, {"name": "Moon Cat"})
        store.update_data(1, symbol="MCAT")

        session = store.get(1)
        assert session.state is SessionState.WAITING_FOR_TOKEN_SYMBOL
        assert session.data == {"name": "Moon Cat", "symbol": "MCAT"}

    def test_set_replaces_data(self):
        store = InMemorySessionStore()
        store.set(1, SessionState.WAITING_FOR_WALLET_NAME, {"stale": True})
        store.set(1, SessionState.WAITING_FOR_PRIVATE_KEY)
        assert store.get(1).data == {}

    def test_sessions_are_per_user(self):
        store = InMemorySessionStore()
        store.set(1, SessionState.WAITING_FOR_WALLET_NAME)
        assert store.get(2).state is SessionState.IDLE

    def test_clear(self):
        store = InMemorySessionStore()
        store.set(1, SessionState.WAITING_FOR_WALLET_NAME)
        store.clear(1)
        store.clear(1)
        assert store.get(1).state is SessionState.IDLE

    def test_stale_session_expires(self):
        store = InMemorySessionStore(timeout_seconds=600)
        store.set(1, SessionState.WAITING_FOR_PRIVATE_KEY, {"name": "main"})

        later = time.monotonic() + 601
        with patch("pumpswap.core.users.time.monotonic", return_value=later):
            session = store.get(1)

        assert session.state is SessionState.IDLE
        assert session.data == {}

    def test_fresh_session_survives(self):
        store = InMemorySessionStore(timeout_seconds=600)
        store.set(1, SessionState.WAITING_FOR_PRIVATE_KEY)
        assert store.get(1).state is SessionState.WAITING_FOR_PRIVATE_KEY


class TestUserManager:

    def test_get_or_create(self):
        users = UserManager()
        first = users.get_or_create_user(1, "alice")
        again = users.get_or_create_user(1)

        assert first is again
        assert again.username == "alice"
        assert users.count() == 1
        assert users.get_user(2) is None

    def test_username_updates(self):
        users = UserManager()
        users.get_or_create_user(1, "alice")
        assert users.get_or_create_user(1, "alice_new").username == "alice_new"
