"""
PUMP SWAP Core - RPC client, wallets, users and sessions.
"""

from .client import SolanaClient
from .users import InMemorySessionStore, SessionState, SessionStore, UserManager
from .wallet import Wallet, WalletManager

__all__ = [
    "SolanaClient",
    "Wallet",
    "WalletManager",
    "SessionStore",
    "InMemorySessionStore",
    "SessionState",
    "UserManager",
]
