import re
from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Any

from app.utils.exceptions import InvalidInputException


_CURRENCY_CODE_RE = re.compile(r"^[A-Z]{3}$")


def validate_currency_code(code: Any) -> str:
    """Return the ISO 4217 code upper-cased, or raise InvalidInputException."""
    if not isinstance(code, str):
        raise InvalidInputException("Invalid currency code")
    normalized = code.strip().upper()
    if not _CURRENCY_CODE_RE.fullmatch(normalized):
        raise InvalidInputException("Invalid currency code")
    return normalized


_TXN_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")


def normalize_txn_id(txn_id: Any) -> str:
    """Normalize a gateway transaction id; returns "" when missing or malformed.

    The notification path treats an empty id as a rejected candidate rather than an error.
    """
    if txn_id is None or isinstance(txn_id, bool):
        return ""
    normalized = str(txn_id).strip()
    if not _TXN_ID_RE.fullmatch(normalized):
        return ""
    return normalized


# --- Amount validation ---

DEFAULT_MAX_AMOUNT_SCALE = 2
DEFAULT_MAX_AMOUNT_PRECISION = 18  # total digits in the decimal string (excluding sign and '.')
DEFAULT_CURRENCY_EXPONENT = 2

_AMOUNT_STR_RE = re.compile(r"^-?\d+(?:\.\d+)?$")


def parse_amount_decimal(
    amount: Any,
    *,
    max_scale: int | None = DEFAULT_MAX_AMOUNT_SCALE,
    max_precision: int | None = DEFAULT_MAX_AMOUNT_PRECISION,
    require_positive: bool = False,
) -> Decimal:
    """Parse a pledge amount given as a plain decimal string (or Decimal).

    Accepts only plain decimal strings like: 1, 10.5, 10.00

    Rejects NaN/Infinity, exponent notation, surrounding whitespace and
    excessive scale/precision. With require_positive=True, enforces amount > 0.
    """

    if amount is None or isinstance(amount, bool):
        raise InvalidInputException("Invalid amount format")

    if isinstance(amount, Decimal):
        if not amount.is_finite():
            raise InvalidInputException("Invalid amount format")
        amount_str = format(amount, "f")
    else:
        amount_str = amount if isinstance(amount, str) else str(amount)

    if not amount_str or amount_str != amount_str.strip():
        raise InvalidInputException("Invalid amount format")

    if _AMOUNT_STR_RE.fullmatch(amount_str) is None:
        raise InvalidInputException("Invalid amount format")

    unsigned = amount_str[1:] if amount_str.startswith("-") else amount_str
    if "." in unsigned:
        int_part, frac_part = unsigned.split(".", 1)
    else:
        int_part, frac_part = unsigned, ""

    if max_scale is not None and len(frac_part.rstrip("0")) > max_scale:
        raise InvalidInputException("Invalid amount format")

    if max_precision is not None and (len(int_part) + len(frac_part)) > max_precision:
        raise InvalidInputException("Invalid amount format")

    try:
        as_decimal = Decimal(amount_str)
    except (InvalidOperation, ValueError):
        raise InvalidInputException("Invalid amount format")

    if require_positive and as_decimal <= 0:
        raise InvalidInputException("Amount must be positive")

    return as_decimal


def to_minor_units(amount: Decimal, *, exponent: int = DEFAULT_CURRENCY_EXPONENT) -> int:
    """Major units -> gateway minor units: scale, truncate toward zero, drop the sign."""
    scaled = amount * (Decimal(10) ** exponent)
    return abs(int(scaled.to_integral_value(rounding=ROUND_DOWN)))


def from_minor_units(amount: Any, *, exponent: int = DEFAULT_CURRENCY_EXPONENT) -> Decimal:
    """Gateway minor units -> major units.

    Non-positive (or missing) amounts normalize to exactly 0; downstream funding
    totals rely on that instead of a rejection.
    """
    if amount is None or isinstance(amount, bool):
        return Decimal("0")
    try:
        minor = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not minor.is_finite() or minor <= 0:
        return Decimal("0")
    quantum = Decimal(1).scaleb(-exponent)
    return (minor / (Decimal(10) ** exponent)).quantize(quantum, rounding=ROUND_DOWN)
