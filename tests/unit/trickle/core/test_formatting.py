"""
Tests for CSV value rendering.
"""
import math
from datetime import date, datetime, time
from decimal import Decimal

import pytest

from trickle.core.formatting import format_value


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, None),
        ("", ""),
        ("plain", "plain"),
        (b"caf\xc3\xa9", "café"),
        (b"\xff", "�"),
        (True, "1"),
        (False, "0"),
        (0, "0"),
        (-42, "-42"),
        (12345678901234567890, "12345678901234567890"),
        (1.5, "1.5"),
        (0.1, "0.1"),
        (100.0, "100"),
        (1e20, "100000000000000000000"),
        (1.5e-7, "0.00000015"),
        (-0.0, "0"),
        (math.nan, "NaN"),
        (math.inf, "+Inf"),
        (-math.inf, "-Inf"),
        (Decimal("12.340"), "12.340"),
        (Decimal("1E+3"), "1000"),
        (date(2025, 1, 15), "2025-01-15"),
        (datetime(2025, 1, 15, 8, 30), "2025-01-15T08:30:00"),
        (time(8, 30, 5), "08:30:05"),
    ],
)
def test_format_value(value, expected):
    assert format_value(value) == expected


def test_unknown_types_use_str():
    class Custom:
        def __str__(self):
            return "custom!"

    assert format_value(Custom()) == "custom!"
