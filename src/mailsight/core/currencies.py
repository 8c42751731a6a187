from __future__ import annotations

DEFAULT_CURRENCY = "USD"

KNOWN_CURRENCIES: frozenset[str] = frozenset(
    {"USD", "EUR", "GBP", "INR", "JPY", "CAD", "AUD", "SGD", "CHF", "CNY", "AED"}
)

_SYMBOLS: dict[str, str] = {
    "$": "USD",
    "US$": "USD",
    "€": "EUR",
    "£": "GBP",
    "₹": "INR",
    "RS": "INR",
    "RS.": "INR",
    "¥": "JPY",
}


def normalize_currency(raw: str | None) -> str | None:
    """Map a model- or user-supplied currency value onto a known ISO code."""
    if not raw:
        return None
    value = str(raw).strip().upper()
    if not value:
        return None
    if value in _SYMBOLS:
        return _SYMBOLS[value]
    if value in KNOWN_CURRENCIES:
        return value
    return None
