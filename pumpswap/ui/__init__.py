"""
PUMP SWAP UI - Telegram command handlers and message rendering.
"""

from .commands import TelegramCommands

__all__ = [
    "TelegramCommands",
]
