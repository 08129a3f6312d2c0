#!/usr/bin/env python3
"""
PUMP SWAP - Token Metadata Validation

Gates token creation before any transaction is built. Every rule runs and
every violation is reported, so a user fixes the whole form in one pass.
"""

from dataclasses import dataclass, field

from pydantic import AnyUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from pumpswap.exceptions import ValidationError

NAME_MAX_LENGTH = 32
SYMBOL_MAX_LENGTH = 8
DESCRIPTION_MAX_LENGTH = 200

_url_adapter = TypeAdapter(AnyUrl)


def is_valid_url(value: str) -> bool:
    if not value:
        return False
    try:
        _url_adapter.validate_python(value)
    except PydanticValidationError:
        return False
    return True


@dataclass(frozen=True)
class TokenMetadata:
    name: str
    symbol: str
    description: str
    image_url: str
    telegram_link: str = ""
    twitter_link: str = ""

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "description": self.description,
            "image_url": self.image_url,
            "telegram_link": self.telegram_link,
            "twitter_link": self.twitter_link,
        }


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def raise_if_invalid(self) -> None:
        if not self.is_valid:
            raise ValidationError("; ".join(self.errors), errors=self.errors)


@dataclass(frozen=True)
class MetadataPolicy:
    """
    Product rules that are not structural.

    require_social_links: missing Telegram/Twitter links are an error when
    True and a warning when False.
    """
    require_social_links: bool = True


class MetadataValidator:
    """Collects every rule violation for a TokenMetadata."""

    def __init__(self, policy: MetadataPolicy | None = None):
        self.policy = policy or MetadataPolicy()

    def validate(self, metadata: TokenMetadata) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []

        name = metadata.name or ""
        symbol = metadata.symbol or ""
        description = metadata.description or ""
        image_url = metadata.image_url or ""

        if not (1 <= len(name) <= NAME_MAX_LENGTH):
            errors.append(f"Token name must be 1-{NAME_MAX_LENGTH} characters")

        if not (1 <= len(symbol) <= SYMBOL_MAX_LENGTH):
            errors.append(f"Token symbol must be 1-{SYMBOL_MAX_LENGTH} characters")

        if not (1 <= len(description) <= DESCRIPTION_MAX_LENGTH):
            errors.append(f"Description must be 1-{DESCRIPTION_MAX_LENGTH} characters")

        if not is_valid_url(image_url):
            errors.append("Invalid image URL")
        elif not image_url.startswith("https://"):
            warnings.append("Image URL is not HTTPS; some wallets will not display it")

        missing = []
        if not metadata.telegram_link:
            missing.append("Telegram")
        if not metadata.twitter_link:
            missing.append("Twitter")
        if missing:
            message = f"{' and '.join(missing)} link{'s' if len(missing) > 1 else ''}"
            if self.policy.require_social_links:
                errors.append(f"{message} required")
            else:
                warnings.append(f"{message} missing")

        for label, link in (("Telegram", metadata.telegram_link),
                            ("Twitter", metadata.twitter_link)):
            if link and not is_valid_url(link):
                warnings.append(f"{label} link does not look like a URL")

        if symbol and symbol != symbol.upper():
            warnings.append("Symbols are conventionally upper case")

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)
