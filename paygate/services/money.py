"""
Money formatting helpers for GBP amounts held in pence.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CURRENCY_SYMBOL = "£"

_STATUS_TEXT = {
    "COMPLETED": "Completed",
    "PENDING": "Pending",
    "FAILED": "Failed",
    "CANCELED": "Cancelled",
}


def format_amount(amount_minor: int) -> str:
    """Render pence as a display string, e.g. 2500 -> "£25.00"."""
    sign = "-" if amount_minor < 0 else ""
    pounds, pence = divmod(abs(amount_minor), 100)
    return f"{sign}{CURRENCY_SYMBOL}{pounds}.{pence:02d}"


def parse_amount(amount: str) -> int:
    """
    Parse a display string back into pence, e.g. "£1,025.50" -> 102550.

    Raises:
        ValueError: If the string is not a number once symbols are stripped
    """
    cleaned = amount.replace(CURRENCY_SYMBOL, "").replace(",", "").strip()
    try:
        value = Decimal(cleaned)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {amount!r}") from exc
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def payment_status_text(status: str) -> str:
    """Human-readable label for a Square payment status."""
    return _STATUS_TEXT.get(status.upper(), status)
