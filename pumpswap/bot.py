#!/usr/bin/env python3
"""
PUMP SWAP Bot - The Orchestrator

Wires configuration, wallets, the Solana client, the bundle relay and the
Telegram command layer into one running bot.
"""

import asyncio
from pathlib import Path

from telegram.ext import Application

from pumpswap.config import BotConfig
from pumpswap.core.client import SolanaClient
from pumpswap.core.users import InMemorySessionStore, SessionStore, UserManager
from pumpswap.core.wallet import WalletManager
from pumpswap.exceptions import ConfigError
from pumpswap.logger import PumpSwapLogger
from pumpswap.protocol.jito import BundleClient
from pumpswap.trading.engine import TradingEngine
from pumpswap.ui.commands import TelegramCommands


def build_engine(config: BotConfig, logger: PumpSwapLogger,
                 wallets: WalletManager | None = None) -> TradingEngine:
    """Assemble a TradingEngine and its collaborators from config."""
    wallets = wallets or WalletManager(config.encryption_key, config.wallets_file)
    bundles = BundleClient(
        bundle_url=config.jito_bundle_url,
        tip_account=config.jito_tip_account,
        tip_lamports=config.jito_tip_lamports,
        timeout_seconds=config.relay_timeout_seconds,
        poll_interval_seconds=config.bundle_poll_interval_seconds,
    )
    return TradingEngine(config, wallets, SolanaClient(config, logger), bundles, logger)


class PumpSwapBot:
    """
    Owns every long-lived component and the Telegram application.
    """

    def __init__(self, config: BotConfig, sessions: SessionStore | None = None):
        self.config = config
        self.logger = PumpSwapLogger(config)

        errors = config.validate()
        if errors:
            for error in errors:
                self.logger.error("Configuration error", Exception(error))
            raise ConfigError("Invalid configuration: " + "; ".join(errors))

        self.wallets = WalletManager(config.encryption_key, config.wallets_file)
        self.engine = build_engine(config, self.logger, self.wallets)
        self.sessions = sessions or InMemorySessionStore(config.session_timeout_seconds)
        self.users = UserManager()
        self.commands = TelegramCommands(self.engine, self.wallets, self.sessions, self.users)

        self.application = self.build_application()

    def build_application(self) -> Application:
        application = Application.builder().token(self.config.telegram_token).build()
        self.commands.register(application)
        return application

    async def start(self):
        """Poll Telegram until cancelled."""
        self._print_banner()
        await self.engine.bundles.initialize()

        async with self.application:
            await self.application.start()
            await self.application.updater.start_polling()
            self.logger.info("Bot is polling for updates")
            try:
                await asyncio.Event().wait()
            finally:
                await self.application.updater.stop()
                await self.application.stop()

    async def stop(self):
        """Graceful shutdown."""
        await self.engine.close()
        self.logger.info("PUMP SWAP stopped.")

    def _print_banner(self):
        banner = """
=====================================================================
                        PUMP SWAP BOT v1.0
=====================================================================
  RPC: {rpc:<60}
  Relay: {relay:<58}
  Tip: {tip:<60}
  Max wallets per bundle: {wallets:<41}
=====================================================================
        """.format(
            rpc=self.config.rpc_url[:40],
            relay=self.config.jito_bundle_url[:50],
            tip=f"{self.config.jito_tip_lamports} lamports",
            wallets=self.config.max_wallets_per_bundle,
        )
        print(banner)


async def main():
    """Command line entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description="PUMP SWAP - pump.fun token launches and bundled trades over Telegram",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with settings from .env
  python -m pumpswap

  # Run with a config file and verbose logs
  python -m pumpswap --config config/config.json --log-level DEBUG

Environment Variables (or use .env file):
  TELEGRAM_BOT_TOKEN      - Bot token from @BotFather
  SOLANA_RPC_URL          - Your Solana RPC endpoint (QuickNode, Helius, etc.)
  JITO_BUNDLE_URL         - Bundle relay endpoint
  FEE_ADDRESS             - Wallet receiving the platform fee
  ENCRYPTION_KEY          - Fernet key or passphrase for stored wallets
  WALLETS_FILE            - Optional: persist encrypted wallets to this file
        """,
    )
    parser.add_argument("--config", type=str, help="Path to config JSON file")
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )
    parser.add_argument("--tip", type=int, help="Jito tip in lamports (default: 10000)")

    args = parser.parse_args()

    if args.config and Path(args.config).exists():
        config = BotConfig.from_json(args.config)
    else:
        config = BotConfig()

    if args.log_level:
        config.log_level = args.log_level
    if args.tip:
        config.jito_tip_lamports = args.tip

    bot = PumpSwapBot(config)
    try:
        await bot.start()
    except KeyboardInterrupt:
        pass
    finally:
        await bot.stop()


if __name__ == "__main__":
    asyncio.run(main())
