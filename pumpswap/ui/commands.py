#!/usr/bin/env python3
"""
PUMP SWAP - Telegram Command Layer

Parses user text, calls into the trading engine and renders the outcome.
Multi-step flows keep their progress in the injected SessionStore.
"""

import functools
import logging
import math
import shlex

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from pumpswap.core.users import SessionState, SessionStore, UserManager
from pumpswap.core.wallet import WalletManager
from pumpswap.exceptions import PumpSwapError, ValidationError, WalletError
from pumpswap.protocol.jito import calculate_bundle_fee
from pumpswap.protocol.metadata import TokenMetadata
from pumpswap.trading.engine import (
    BuyRequest,
    CreateTokenRequest,
    SellRequest,
    TradingEngine,
)
from pumpswap.ui import messages

logger = logging.getLogger(__name__)

SKIP_WORDS = {"skip", "-", "none"}


# ═══════════════════════════════════════════════════════════════════════════
#                              ARGUMENT PARSING
# ═══════════════════════════════════════════════════════════════════════════

def parse_amounts(raw: str) -> list[float]:
    """'0.1,0.2' -> [0.1, 0.2]"""
    amounts = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            amount = float(part)
        except ValueError as e:
            raise ValidationError(f"Not a number: {part}") from e
        if not math.isfinite(amount):
            raise ValidationError(f"Not a finite number: {part}")
        amounts.append(amount)
    if not amounts:
        raise ValidationError("At least one amount is required")
    return amounts


def parse_wallet_refs(raw: str) -> list[str]:
    refs = [r.strip() for r in raw.split(",") if r.strip()]
    if not refs:
        raise ValidationError("At least one wallet is required")
    return refs


def parse_trade_args(args: list[str]) -> tuple[str, list[float], list[str]]:
    """<mint> <amounts> <wallets> -> (mint, amounts, wallet refs)"""
    if len(args) != 3:
        raise ValidationError("Usage: <mint> <amount,amount,...> <wallet,wallet,...>")
    return args[0], parse_amounts(args[1]), parse_wallet_refs(args[2])


def split_command_text(text: str) -> list[str]:
    """Arguments after the command word, honouring quotes."""
    try:
        parts = shlex.split(text)
    except ValueError as e:
        raise ValidationError(f"Cannot parse arguments: {e}") from e
    return parts[1:]


def parse_create_args(args: list[str]) -> TokenMetadata:
    """<name> <symbol> <description> <image_url> [telegram] [twitter]"""
    if not 4 <= len(args) <= 6:
        raise ValidationError(
            'Usage: /create <name> <symbol> "<description>" <image_url> [telegram] [twitter]'
        )
    return TokenMetadata(
        name=args[0],
        symbol=args[1].upper(),
        description=args[2],
        image_url=args[3],
        telegram_link=args[4] if len(args) > 4 else "",
        twitter_link=args[5] if len(args) > 5 else "",
    )


def main_menu() -> InlineKeyboardMarkup:
    keyboard = [
        [
            InlineKeyboardButton("Create Token", callback_data="create_token"),
            InlineKeyboardButton("Wallets", callback_data="manage_wallets"),
        ],
        [
            InlineKeyboardButton("Buy", callback_data="buy_tokens"),
            InlineKeyboardButton("Sell", callback_data="sell_tokens"),
        ],
        [
            InlineKeyboardButton("Balance", callback_data="check_balance"),
            InlineKeyboardButton("Help", callback_data="help_info"),
        ],
    ]
    return InlineKeyboardMarkup(keyboard)


def wallet_menu() -> InlineKeyboardMarkup:
    keyboard = [
        [
            InlineKeyboardButton("New Wallet", callback_data="create_wallet"),
            InlineKeyboardButton("Import Wallet", callback_data="import_wallet"),
        ],
        [InlineKeyboardButton("List Wallets", callback_data="list_wallets")],
        [InlineKeyboardButton("Back", callback_data="main_menu")],
    ]
    return InlineKeyboardMarkup(keyboard)


async def reply(update: Update, text: str, markup: InlineKeyboardMarkup | None = None):
    """Edit the message behind a button press, otherwise answer in chat."""
    if update.callback_query:
        await update.callback_query.edit_message_text(text=text, reply_markup=markup)
    else:
        await update.effective_message.reply_text(text, reply_markup=markup)


def guarded(handler):
    """Render typed errors to the user instead of letting them escape."""

    @functools.wraps(handler)
    async def wrapper(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        try:
            return await handler(self, update, context)
        except PumpSwapError as e:
            logger.info("%s rejected for user %s: %s", handler.__name__,
                        update.effective_user.id if update.effective_user else "?", e)
            await reply(update, messages.render_error(e))

    return wrapper


class TelegramCommands:
    """
    Handlers for every command, button and free-text reply.
    """

    def __init__(
        self,
        engine: TradingEngine,
        wallets: WalletManager,
        sessions: SessionStore,
        users: UserManager,
    ):
        self.engine = engine
        self.wallets = wallets
        self.sessions = sessions
        self.users = users

    def register(self, application: Application):
        commands = {
            "start": self.start,
            "help": self.help,
            "wallet": self.wallet_menu,
            "wallets": self.list_wallets,
            "create_wallet": self.create_wallet,
            "import_wallet": self.import_wallet,
            "create": self.create_token,
            "buy": self.buy,
            "sell": self.sell,
            "quote": self.quote,
            "balance": self.balance,
            "status": self.status,
            "recent": self.recent_bundles,
            "cancel": self.cancel,
        }
        for name, handler in commands.items():
            application.add_handler(CommandHandler(name, handler))
        application.add_handler(CallbackQueryHandler(self.on_button))
        application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, self.on_text))

    def _user_id(self, update: Update) -> int:
        user = update.effective_user
        self.users.get_or_create_user(user.id, user.username or "")
        return user.id

    # ═══════════════════════════════════════════════════════════════════════
    #                                 MENUS
    # ═══════════════════════════════════════════════════════════════════════

    async def start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user_id = self._user_id(update)
        self.sessions.clear(user_id)
        await reply(update, messages.WELCOME, main_menu())

    async def help(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await reply(update, messages.HELP)

    async def wallet_menu(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        self._user_id(update)
        await reply(update, "Wallet management", wallet_menu())

    async def cancel(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        self.sessions.clear(self._user_id(update))
        await reply(update, "Cancelled.", main_menu())

    async def on_button(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()
        user_id = self._user_id(update)

        action = query.data
        if action == "main_menu":
            await reply(update, messages.WELCOME, main_menu())
        elif action == "manage_wallets":
            await reply(update, "Wallet management", wallet_menu())
        elif action == "list_wallets":
            await self.list_wallets(update, context)
        elif action == "check_balance":
            await self.balance(update, context)
        elif action == "help_info":
            await reply(update, messages.HELP)
        elif action == "create_wallet":
            self.sessions.set(user_id, SessionState.WAITING_FOR_WALLET_NAME)
            await reply(update, "Send a name for the new wallet.")
        elif action == "import_wallet":
            self.sessions.set(user_id, SessionState.WAITING_FOR_IMPORT_NAME)
            await reply(update, "Send a name for the imported wallet.")
        elif action == "create_token":
            self.sessions.set(user_id, SessionState.WAITING_FOR_TOKEN_NAME)
            await reply(update, "Token name? (1-32 characters)")
        elif action == "buy_tokens":
            await reply(update, "Usage: /buy <mint> <sol,sol,...> <wallet,wallet,...>")
        elif action == "sell_tokens":
            await reply(update, "Usage: /sell <mint> <tokens,tokens,...> <wallet,wallet,...>")
        else:
            logger.warning("Unknown callback data: %s", action)

    # ═══════════════════════════════════════════════════════════════════════
    #                                WALLETS
    # ═══════════════════════════════════════════════════════════════════════

    @guarded
    async def list_wallets(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user_id = self._user_id(update)
        await reply(update, messages.render_wallets(self.wallets.get_wallets(user_id)))

    @guarded
    async def create_wallet(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user_id = self._user_id(update)
        if not context.args:
            self.sessions.set(user_id, SessionState.WAITING_FOR_WALLET_NAME)
            await reply(update, "Send a name for the new wallet.")
            return
        wallet = self.wallets.create_wallet(user_id, " ".join(context.args))
        await reply(update, f"Wallet created\n\n{messages.render_wallet(wallet)}")

    @guarded
    async def import_wallet(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user_id = self._user_id(update)
        args = context.args or []
        if len(args) < 2:
            self.sessions.set(user_id, SessionState.WAITING_FOR_IMPORT_NAME)
            await reply(update, "Send a name for the imported wallet.")
            return
        await self._forget_secret(update)
        wallet = self.wallets.import_wallet(user_id, args[0], " ".join(args[1:]))
        await reply(update, f"Wallet imported\n\n{messages.render_wallet(wallet)}")

    async def _forget_secret(self, update: Update):
        """Remove a message that carried a private key from the chat."""
        try:
            await update.effective_message.delete()
        except TelegramError as e:
            logger.warning("Could not delete key message: %s", e)

    @guarded
    async def balance(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user_id = self._user_id(update)
        wallets = await self.engine.get_wallet_balances(user_id)
        await reply(update, messages.render_wallets(wallets))

    # ═══════════════════════════════════════════════════════════════════════
    #                                TRADING
    # ═══════════════════════════════════════════════════════════════════════

    @guarded
    async def quote(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        args = context.args or []
        if len(args) != 2:
            raise ValidationError("Usage: /quote <mint> <sol_amount>")
        sol_amount = parse_amounts(args[1])[0]
        quote = await self.engine.quote_buy(args[0], sol_amount)
        await reply(update, messages.render_quote(quote, args[0]))

    @guarded
    async def buy(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user_id = self._user_id(update)
        mint, amounts, refs = parse_trade_args(context.args or [])
        await reply(
            update,
            f"Submitting buy bundle ({len(refs)} wallets, "
            f"est. relay fee {calculate_bundle_fee(len(refs)):.6f} SOL)...",
        )
        result = await self.engine.buy(BuyRequest(
            token_address=mint, sol_amounts=amounts, wallet_ids=refs, user_id=user_id
        ))
        await update.effective_message.reply_text(messages.render_trade(result))

    @guarded
    async def sell(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user_id = self._user_id(update)
        mint, amounts, refs = parse_trade_args(context.args or [])
        await reply(update, f"Submitting sell bundle ({len(refs)} wallets)...")
        result = await self.engine.sell(SellRequest(
            token_address=mint, token_amounts=amounts, wallet_ids=refs, user_id=user_id
        ))
        await update.effective_message.reply_text(messages.render_trade(result))

    @guarded
    async def status(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        args = context.args or []
        if args:
            bundle = await self.engine.get_bundle_status(args[0])
            await reply(update, messages.render_bundle(bundle))
            return
        user_id = self._user_id(update)
        wallets = self.wallets.get_wallets(user_id)
        session = self.sessions.get(user_id)
        await reply(
            update,
            f"Status\n"
            f"  Wallets: {len(wallets)} ({len(self.wallets.get_active_wallets(user_id))} active)\n"
            f"  Session: {session.state.value}\n"
            f"  Relay: {self.engine.bundles.bundle_url}\n"
            f"  Tip: {self.engine.bundles.tip_lamports} lamports",
        )

    @guarded
    async def recent_bundles(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user_id = self._user_id(update)
        args = context.args or []
        if not args:
            raise ValidationError("Usage: /recent <wallet>")
        wallet = self.wallets.resolve_wallets(user_id, [args[0]])[0]
        bundles = await self.engine.get_recent_bundles(wallet.public_key)
        await reply(update, messages.render_recent_bundles(wallet, bundles))

    # ═══════════════════════════════════════════════════════════════════════
    #                             TOKEN CREATION
    # ═══════════════════════════════════════════════════════════════════════

    def _creator_wallet(self, user_id: int):
        active = self.wallets.get_active_wallets(user_id)
        if not active:
            raise WalletError("Create or import a wallet before launching a token")
        return active[0]

    async def _launch(self, update: Update, user_id: int, metadata: TokenMetadata):
        wallet = self._creator_wallet(user_id)
        await update.effective_message.reply_text(
            f"Creating {metadata.symbol} from wallet {wallet.name}..."
        )
        result = await self.engine.create_token(CreateTokenRequest(
            metadata=metadata, user_id=user_id, wallet_id=wallet.id
        ))
        await update.effective_message.reply_text(messages.render_token_created(result))

    @guarded
    async def create_token(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user_id = self._user_id(update)
        args = split_command_text(update.effective_message.text or "")
        if not args:
            self.sessions.set(user_id, SessionState.WAITING_FOR_TOKEN_NAME)
            await reply(update, "Token name? (1-32 characters)")
            return
        metadata = parse_create_args(args)
        result = self.engine.validator.validate(metadata)
        if not result.is_valid:
            await reply(update, messages.render_validation(result))
            return
        await self._launch(update, user_id, metadata)

    # ═══════════════════════════════════════════════════════════════════════
    #                           FREE TEXT / SESSIONS
    # ═══════════════════════════════════════════════════════════════════════

    @guarded
    async def on_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user_id = self._user_id(update)
        session = self.sessions.get(user_id)
        text = (update.effective_message.text or "").strip()
        state = session.state

        if state is SessionState.IDLE:
            await reply(update, "Pick an action or send /help.", main_menu())

        elif state is SessionState.WAITING_FOR_WALLET_NAME:
            # A rejected name leaves the prompt open for another try
            wallet = self.wallets.create_wallet(user_id, text)
            self.sessions.clear(user_id)
            await reply(update, f"Wallet created\n\n{messages.render_wallet(wallet)}")

        elif state is SessionState.WAITING_FOR_IMPORT_NAME:
            self.sessions.set(user_id, SessionState.WAITING_FOR_PRIVATE_KEY, {"name": text})
            await reply(update, "Now send the private key. The message will be deleted.")

        elif state is SessionState.WAITING_FOR_PRIVATE_KEY:
            await self._forget_secret(update)
            name = session.data.get("name", "imported")
            self.sessions.clear(user_id)
            wallet = self.wallets.import_wallet(user_id, name, text)
            await update.effective_chat.send_message(
                f"Wallet imported\n\n{messages.render_wallet(wallet)}"
            )

        else:
            await self._token_wizard(update, user_id, state, text)

    async def _token_wizard(self, update: Update, user_id: int, state: SessionState, text: str):
        steps = [
            (SessionState.WAITING_FOR_TOKEN_NAME, "name", "Symbol? (1-8 characters)"),
            (SessionState.WAITING_FOR_TOKEN_SYMBOL, "symbol", "Description? (1-200 characters)"),
            (SessionState.WAITING_FOR_TOKEN_DESCRIPTION, "description", "Image URL?"),
            (SessionState.WAITING_FOR_TOKEN_IMAGE, "image_url",
             "Telegram link? (send 'skip' for none)"),
            (SessionState.WAITING_FOR_TELEGRAM_LINK, "telegram_link",
             "Twitter link? (send 'skip' for none)"),
            (SessionState.WAITING_FOR_TWITTER_LINK, "twitter_link", None),
        ]
        for index, (step_state, key, prompt) in enumerate(steps):
            if step_state is not state:
                continue
            value = text
            if key == "symbol":
                value = text.upper()
            elif key in ("telegram_link", "twitter_link") and text.lower() in SKIP_WORDS:
                value = ""
            session = self.sessions.update_data(user_id, **{key: value})

            if prompt is not None:
                self.sessions.set(user_id, steps[index + 1][0], session.data)
                await reply(update, prompt)
                return

            self.sessions.clear(user_id)
            metadata = TokenMetadata(**session.data)
            result = self.engine.validator.validate(metadata)
            if not result.is_valid:
                await reply(
                    update,
                    f"{messages.render_validation(result)}\n\nSend /create to start over.",
                )
                return
            await update.effective_message.reply_text(
                messages.render_metadata_summary(metadata)
            )
            await self._launch(update, user_id, metadata)
            return
