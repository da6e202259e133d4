"""
SQL result helpers.

Depending on the select shape, SQLModel returns COUNT results either as a
plain int or as a 1-tuple Row. scalar_int() accepts both.
"""
from typing import Any


def scalar_int(x: Any) -> int:
    """Coerce a COUNT/aggregate result (int or 1-tuple Row) to int."""
    try:
        return int(x[0])
    except (TypeError, IndexError, KeyError):
        return int(x)
