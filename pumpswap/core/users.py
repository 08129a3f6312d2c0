#!/usr/bin/env python3
"""
PUMP SWAP - Users and Conversation Sessions

Multi-step Telegram flows (naming a wallet, the token wizard) keep their
progress in a SessionStore keyed by user id. The store is injected into the
command layer; nothing here is module-global.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class SessionState(Enum):
    IDLE = "idle"
    WAITING_FOR_WALLET_NAME = "waiting_for_wallet_name"
    WAITING_FOR_IMPORT_NAME = "waiting_for_import_name"
    WAITING_FOR_PRIVATE_KEY = "waiting_for_private_key"
    WAITING_FOR_TOKEN_NAME = "waiting_for_token_name"
    WAITING_FOR_TOKEN_SYMBOL = "waiting_for_token_symbol"
    WAITING_FOR_TOKEN_DESCRIPTION = "waiting_for_token_description"
    WAITING_FOR_TOKEN_IMAGE = "waiting_for_token_image"
    WAITING_FOR_TELEGRAM_LINK = "waiting_for_telegram_link"
    WAITING_FOR_TWITTER_LINK = "waiting_for_twitter_link"


@dataclass
class UserSession:
    user_id: int
    state: SessionState = SessionState.IDLE
    data: dict[str, Any] = field(default_factory=dict)
    updated_at: float = field(default_factory=time.monotonic)


@dataclass
class User:
    id: int
    username: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    last_active: datetime = field(default_factory=datetime.now)


class SessionStore(ABC):
    """Session persistence interface keyed by Telegram user id."""

    @abstractmethod
    def get(self, user_id: int) -> UserSession:
        """Current session, a fresh idle one if none exists."""

    @abstractmethod
    def set(self, user_id: int, state: SessionState, data: Optional[dict] = None) -> UserSession:
        """Move to state, replacing the session data."""

    @abstractmethod
    def update_data(self, user_id: int, **values) -> UserSession:
        """Merge values into the session data, keeping the state."""

    @abstractmethod
    def clear(self, user_id: int) -> None:
        """Drop back to idle."""


class InMemorySessionStore(SessionStore):
    """
    Process-local store. Sessions untouched for timeout_seconds are
    discarded on the next read.
    """

    def __init__(self, timeout_seconds: float = 600):
        self.timeout_seconds = timeout_seconds
        self._sessions: dict[int, UserSession] = {}

    def get(self, user_id: int) -> UserSession:
        session = self._sessions.get(user_id)
        if session and time.monotonic() - session.updated_at > self.timeout_seconds:
            del self._sessions[user_id]
            session = None
        return session or UserSession(user_id=user_id)

    def set(self, user_id: int, state: SessionState, data: Optional[dict] = None) -> UserSession:
        session = UserSession(user_id=user_id, state=state, data=dict(data or {}))
        self._sessions[user_id] = session
        return session

    def update_data(self, user_id: int, **values) -> UserSession:
        session = self.get(user_id)
        session.data.update(values)
        session.updated_at = time.monotonic()
        self._sessions[user_id] = session
        return session

    def clear(self, user_id: int) -> None:
        self._sessions.pop(user_id, None)


class UserManager:
    def __init__(self):
        self._users: dict[int, User] = {}

    def get_or_create_user(self, user_id: int, username: str = "") -> User:
        user = self._users.get(user_id)
        if user is None:
            user = User(id=user_id, username=username)
            self._users[user_id] = user
        else:
            user.last_active = datetime.now()
            if username:
                user.username = username
        return user

    def get_user(self, user_id: int) -> Optional[User]:
        return self._users.get(user_id)

    def count(self) -> int:
        return len(self._users)
