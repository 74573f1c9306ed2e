"""
Rendering of source values as CSV field text.

Drivers hand back a mix of Python types; this module decides how each one
looks in the output file. NULL is returned as None, which the csv writer
renders as an empty field, the same as an empty string.
"""
import math
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional


def _format_float(value: float) -> str:
    # Shortest round-trip digits, never exponent notation
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return "0" if text == "-0" else text


def format_value(value: Any) -> Optional[str]:
    """
    Convert one source value into its CSV text.

    - None stays None (empty field)
    - bytes are decoded as UTF-8, invalid sequences replaced
    - booleans become "1" / "0"
    - integers use plain decimal digits
    - floats use the shortest exact decimal form without an exponent
    - Decimal keeps its precision, without an exponent
    - dates and times use ISO 8601
    - everything else goes through str()
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, Decimal):
        if value.is_nan():
            return "NaN"
        if value.is_infinite():
            return "+Inf" if value > 0 else "-Inf"
        return format(value, "f")
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)
