"""Provides utilities to work with arbitrary collections like lists, sets and tuples."""

from __future__ import annotations

from collections.abc import Iterable


def is_strictly_increasing(values: Iterable[int]) -> bool:
    """Checks, whether every value in a sequence is larger than its predecessor.

    Empty sequences and sequences of a single value are considered strictly increasing.
    """
    values = list(values)
    return all(first < second for first, second in zip(values, values[1:]))
