#!/usr/bin/env python3
"""
PUMP SWAP - Logging System

Short, readable lines for every launch, bundle and trade.
"""

import logging
from logging.handlers import RotatingFileHandler

from .config import BotConfig


class PumpSwapLogger:
    """
    Domain-level logging on top of the PUMPSWAP stdlib logger.
    """

    def __init__(self, config: BotConfig):
        self.logger = logging.getLogger("PUMPSWAP")
        self.logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))

        # logging.getLogger returns the same instance, so handlers stack
        # if this class is instantiated more than once (tests, API + bot).
        if not self.logger.handlers:
            console = logging.StreamHandler()
            console.setFormatter(logging.Formatter(
                '%(asctime)s | %(levelname)8s | %(message)s',
                datefmt='%H:%M:%S'
            ))
            self.logger.addHandler(console)

            if config.log_file:
                file_handler = RotatingFileHandler(
                    config.log_file,
                    maxBytes=10_000_000,  # 10MB
                    backupCount=5
                )
                file_handler.setFormatter(logging.Formatter(
                    '%(asctime)s | %(levelname)8s | %(name)s | %(message)s'
                ))
                self.logger.addHandler(file_handler)

    def token_created(self, token_address: str, name: str, symbol: str):
        self.logger.info(f"TOKEN CREATED: {name} ({symbol}) -> {token_address}")

    def trade_quoted(self, side: str, token: str, amount_in: float, amount_out: float):
        self.logger.info(
            f"QUOTE {side.upper()}: {amount_in:.6f} in -> {amount_out:.6f} out | {token[:8]}..."
        )

    def bundle_submitted(self, bundle_id: str, tx_count: int, side: str):
        self.logger.info(f"BUNDLE SUBMITTED: {bundle_id} ({tx_count} tx, {side})")

    def bundle_settled(self, bundle_id: str, status: str, error: str | None = None):
        """Terminal outcome of a bundle."""
        if error:
            self.logger.warning(f"BUNDLE {status.upper()}: {bundle_id} | {error}")
        else:
            self.logger.info(f"BUNDLE {status.upper()}: {bundle_id}")

    def error(self, context: str, error: Exception):
        self.logger.error(f"{context}: {str(error)}")

    def info(self, message: str):
        self.logger.info(message)

    def warning(self, message: str):
        self.logger.warning(message)

    def debug(self, message: str):
        self.logger.debug(message)
