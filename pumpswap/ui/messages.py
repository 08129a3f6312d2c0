"""
PUMP SWAP - Telegram message rendering

Plain-text replies. Kept free of telegram imports so they are easy to test.
"""

from pumpswap.core.wallet import Wallet
from pumpswap.exceptions import PumpSwapError
from pumpswap.protocol.jito import Bundle
from pumpswap.protocol.metadata import TokenMetadata, ValidationResult
from pumpswap.protocol.pumpfun import TradeQuote
from pumpswap.trading.engine import TokenCreationResult, TradeResult

WELCOME = (
    "Welcome to PUMP SWAP\n\n"
    "Create pump.fun tokens and trade them from several wallets at once, "
    "bundled through Jito for MEV protection.\n\n"
    "Start with /create_wallet, fund it, then /buy or /create."
)

HELP = """Commands

Wallets
/create_wallet [name] - generate a new wallet
/import_wallet [name] [key] - import a base58, base64 or JSON key
/wallets - list your wallets
/balance - refresh SOL balances

Tokens
/create <name> <symbol> <description> <image_url> [telegram] [twitter]
/create - step-by-step token wizard

Trading
/quote <mint> <sol_amount>
/buy <mint> <sol,sol,...> <wallet,wallet,...>
/sell <mint> <tokens,tokens,...> <wallet,wallet,...>
/status [bundle_id]
/recent <wallet> - bundles the relay has seen from a wallet

Wallets can be referred to by name or id. One amount per wallet, up to 16 wallets per bundle.
/cancel aborts any step-by-step flow."""


def short(address: str, n: int = 6) -> str:
    if len(address) <= 2 * n:
        return address
    return f"{address[:n]}...{address[-n:]}"


def render_error(error: PumpSwapError) -> str:
    lines = [f"Error ({error.kind.value}): {error.message or error}"]
    errors = getattr(error, "errors", None) or []
    if len(errors) > 1:
        lines += [f" - {e}" for e in errors]
    return "\n".join(lines)


def render_validation(result: ValidationResult) -> str:
    if result.is_valid and not result.warnings:
        return "Metadata looks good."
    lines = ["Metadata is valid." if result.is_valid else "Metadata has problems:"]
    lines += [f" x {e}" for e in result.errors]
    lines += [f" ! {w}" for w in result.warnings]
    return "\n".join(lines)


def render_wallet(wallet: Wallet) -> str:
    state = "" if wallet.is_active else " (inactive)"
    return (
        f"{wallet.name}{state}\n"
        f"  Address: {wallet.public_key}\n"
        f"  Balance: {wallet.balance:.4f} SOL\n"
        f"  ID: {wallet.id}"
    )


def render_wallets(wallets: list[Wallet]) -> str:
    if not wallets:
        return "You have no wallets yet. Use /create_wallet or /import_wallet."
    total = sum(w.balance for w in wallets)
    body = "\n\n".join(render_wallet(w) for w in wallets)
    return f"Your wallets ({len(wallets)})\n\n{body}\n\nTotal: {total:.4f} SOL"


def render_quote(quote: TradeQuote, token_address: str) -> str:
    if quote.side == "buy":
        return (
            f"Buy quote for {short(token_address)}\n"
            f"  Spend: {quote.amount_in:.6f} SOL\n"
            f"  Receive: {quote.amount_out:,.2f} tokens\n"
            f"  Fee: {quote.fee:,.2f} tokens\n"
            f"  Price impact: {quote.price_impact_pct:.2f}%"
        )
    return (
        f"Sell quote for {short(token_address)}\n"
        f"  Sell: {quote.amount_in:,.2f} tokens\n"
        f"  SOL: {quote.amount_out:.6f}\n"
        f"  Fee: {quote.fee:.6f} SOL\n"
        f"  Price impact: {quote.price_impact_pct:.2f}%"
    )


def render_bundle(bundle: Bundle) -> str:
    lines = [
        f"Bundle {bundle.bundle_id or '(none)'}",
        f"  Status: {bundle.status.value}",
    ]
    if bundle.slot:
        lines.append(f"  Slot: {bundle.slot}")
    if bundle.processed_at:
        lines.append(f"  Processed: {bundle.processed_at:%H:%M:%S}")
    if bundle.error:
        lines.append(f"  Error: {bundle.error}")
    return "\n".join(lines)


def render_recent_bundles(wallet: Wallet, bundles: list[dict]) -> str:
    if not bundles:
        return f"No recent bundles for {wallet.name}"
    lines = [f"Recent bundles for {wallet.name}"]
    for entry in bundles:
        bundle_id = entry.get("bundle_id") or entry.get("id") or "?"
        lines.append(f"  {short(str(bundle_id))}  {entry.get('status', 'unknown')}")
    return "\n".join(lines)


def render_trade(result: TradeResult) -> str:
    side = result.side.capitalize()
    if not result.success:
        kind = result.error_kind.value if result.error_kind else "error"
        return f"{side} failed ({kind}): {result.error}"

    lines = [f"{side} bundle submitted for {short(result.token_address)}"]
    if result.bundle:
        lines.append(render_bundle(result.bundle))
    if result.side == "buy":
        tokens = sum(q.amount_out for q in result.quotes)
        lines.append(f"  Expected tokens: {tokens:,.2f}")
    else:
        sol = sum(q.amount_out for q in result.quotes)
        lines.append(f"  Expected SOL: {sol:.6f}")
    lines.append(f"  Platform fee: {result.fee_paid:.6f} SOL")
    lines.append(f"  Bundle fee: {result.bundle_fee:.6f} SOL")
    return "\n".join(lines)


def render_token_created(result: TokenCreationResult) -> str:
    return (
        f"Token created: {result.metadata.name} ({result.metadata.symbol})\n"
        f"  Mint: {result.token_address}\n"
        f"  Signature: {result.signature}\n"
        f"  Creation fee: {result.fee_paid} SOL"
    )


def render_metadata_summary(metadata: TokenMetadata) -> str:
    return (
        f"Name: {metadata.name}\n"
        f"Symbol: {metadata.symbol}\n"
        f"Description: {metadata.description}\n"
        f"Image: {metadata.image_url}\n"
        f"Telegram: {metadata.telegram_link or '-'}\n"
        f"Twitter: {metadata.twitter_link or '-'}"
    )
