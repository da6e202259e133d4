"""
Deterministic ordering for string identifiers.

Ids arrive as strings but are usually database integers, so "9" must sort
before "10". Numeric ids sort numerically ahead of non-numeric ones; the
rest sort lexicographically.
"""

from typing import Iterable, Tuple


def id_sort_key(value: str) -> Tuple[int, int, str]:
    text = str(value)
    if text.isdigit():
        return (0, int(text), text)
    return (1, 0, text)


def id_set_sort_key(values: Iterable[str]) -> Tuple[Tuple[int, int, str], ...]:
    return tuple(sorted(id_sort_key(v) for v in values))


def sorted_ids(values: Iterable[str]) -> list:
    return sorted(values, key=id_sort_key)
