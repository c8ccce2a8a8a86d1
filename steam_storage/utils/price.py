"""
Steam Storage — Marketplace price string parsing

The Steam Community Market returns prices as locale-formatted strings with
the currency mark attached: "$10.00", "10,00€", "1 234,56 pуб.". A price is
parsed by stripping the currency's mark, dropping the group separator of the
currency's culture and normalizing its decimal separator to '.'.

All money values use Decimal, never float.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from steam_storage.errors import PriceParseError

# Languages writing "1.234,56" (comma decimal). Everything else is "1,234.56".
_COMMA_DECIMAL_LANGUAGES = frozenset({
    "az", "be", "bg", "cs", "da", "de", "el", "es", "et", "fi", "fr", "hr",
    "hu", "id", "it", "kk", "lt", "lv", "nb", "nl", "no", "pl", "pt", "ro",
    "ru", "sk", "sl", "sr", "sv", "tr", "uk", "vi",
})

# Cultures that break their language's rule.
_CULTURE_OVERRIDES: dict[str, str] = {
    "de-ch": ".",
    "es-mx": ".",
    "fr-ch": ".",
    "it-ch": ".",
}

_NOISE = re.compile(r"[^0-9.,\-]")

CENT = Decimal("0.01")


def decimal_separator(culture_info: str) -> str:
    """
    Return the decimal separator used by a culture name such as 'ru-RU'.

    Unknown or empty cultures fall back to '.'.
    """
    culture = (culture_info or "").strip().lower().replace("_", "-")
    if culture in _CULTURE_OVERRIDES:
        return _CULTURE_OVERRIDES[culture]
    language = culture.split("-", 1)[0]
    return "," if language in _COMMA_DECIMAL_LANGUAGES else "."


def parse_price(raw: str | None, mark: str = "", culture_info: str = "en-US") -> Decimal:
    """
    Convert a marketplace price string to Decimal.

    Args:
        raw: Price text as returned upstream (e.g. "9,00€").
        mark: Currency symbol to strip (e.g. "€").
        culture_info: Culture deciding which separator is the decimal one.

    Returns:
        The price as a non-negative Decimal.

    Raises:
        PriceParseError: If nothing numeric remains after normalization.
    """
    if raw is None or not raw.strip():
        raise PriceParseError(str(raw), "empty price")

    text = raw.replace(mark, "") if mark else raw
    # Anything that is not a digit or a separator: spaces, NBSP, residual symbols
    text = _NOISE.sub("", text).strip(".,")

    decimal_sep = decimal_separator(culture_info)
    group_sep = "," if decimal_sep == "." else "."
    text = text.replace(group_sep, "").replace(decimal_sep, ".")

    if not text or text.count(".") > 1:
        raise PriceParseError(raw, "no numeric value")

    try:
        value = Decimal(text)
    except InvalidOperation as e:
        raise PriceParseError(raw, str(e)) from e

    if value < 0:
        raise PriceParseError(raw, "negative price")
    return value


def quantize_money(amount: Decimal) -> Decimal:
    """Round a money amount to cents, half up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)
