from decimal import Decimal, InvalidOperation
import math
import re


def parse_ambiguous_decimal(num_str: str) -> Decimal:
    """
    Convert a number string of unknown locale format into a Decimal.

    - Spaces, commas and dots are all treated as possible separators.
    - Whichever of ``,`` / ``.`` comes last is taken as the decimal point
      when both are present.
    - A currency prefix such as ``S$`` or ``$`` is stripped.
    """
    if not isinstance(num_str, str):
        return Decimal(num_str)

    cleaned = num_str.strip().replace(" ", "")
    if not cleaned:
        raise ValueError("Input string cannot be empty")

    last_dot = cleaned.rfind(".")
    last_comma = cleaned.rfind(",")

    if last_dot != -1 and last_comma != -1:
        if last_comma > last_dot:
            # "1.234,56"
            final = cleaned.replace(".", "").replace(",", ".")
        else:
            # "1,234.56"
            final = cleaned.replace(",", "")
    elif last_comma != -1:
        # "1,234,567" is grouping, "12,50" is a decimal comma
        if cleaned.count(",") > 1:
            final = cleaned.replace(",", "")
        else:
            final = cleaned.replace(",", ".")
    elif cleaned.count(".") > 1:
        # "1.234.567"
        parts = cleaned.split(".")
        final = "".join(parts[:-1]) + "." + parts[-1]
    else:
        final = cleaned

    final = re.sub(r"[^0-9.\-]", "", final)
    try:
        return Decimal(final)
    except InvalidOperation:
        raise ValueError(f"Cannot convert {num_str!r} to a number (cleaned to {final!r})")


def coerce_amount(value: object) -> float:
    """Best-effort numeric coercion of a stored ``amount``.

    Missing values become ``0.0``; anything unparseable becomes ``nan`` so the
    caller can decide how to aggregate it.
    """
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, Decimal):
        return float(value)
    try:
        return float(parse_ambiguous_decimal(str(value)))
    except (ValueError, InvalidOperation):
        return math.nan


def finite_or_zero(value: float) -> float:
    return value if math.isfinite(value) else 0.0
