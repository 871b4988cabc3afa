"""In-memory implementations of the storage layer contract.

The storage layer is not part of relbound's core. These handles exist to make relbound usable without any further
infrastructure, e.g. for tests, examples or small data sets. They implement the `StorageHandle` protocol: tables are kept
as a sorted list and answer prefix lookups via bisection, streams can only be consumed linearly. Tables additionally keep
the `FrequencyStatistics` of their sort key.

Use `table_source` and `stream_source` to create sources that are backed by these handles in one go.
"""
from __future__ import annotations

import bisect
import itertools
import math
from collections.abc import Callable, Iterable, Iterator, Sequence
from typing import Optional

from ._sources import Source, SourceKind


class MemoryTable:
    """A sorted table that is kept entirely in memory.

    The rows are sorted once when the table is created: first by the sort key and afterwards by the remaining values of each
    row. Therefore, all values of the rows have to be comparable to each other.

    Parameters
    ----------
    rows : Iterable[Sequence]
        The tuples of the table. They do not have to be sorted.
    sort_key : Sequence[int], optional
        The offsets of the attributes that the table is sorted by. This has to agree with the sorted prefix of the `Source`
        that uses the table. Defaults to an unsorted table, which can only be scanned in full.
    """

    def __init__(self, rows: Iterable[Sequence], sort_key: Sequence[int] = ()) -> None:
        self._sort_key = tuple(sort_key)
        self._rows: list[tuple] = sorted((tuple(row) for row in rows), key=lambda row: (self._key_of(row), row))
        self._keys: list[tuple] = [self._key_of(row) for row in self._rows]

        # largest group of equal key prefixes, indexed by prefix length
        self._max_frequencies: list[int] = [len(self._rows)]
        for prefix_len in range(1, len(self._sort_key) + 1):
            groups = itertools.groupby(key[:prefix_len] for key in self._keys)
            self._max_frequencies.append(max((sum(1 for _ in group) for _, group in groups), default=0))

    def _key_of(self, row: tuple) -> tuple:
        return tuple(row[offset] for offset in self._sort_key)

    def max_frequency(self, prefix_length: int) -> int:
        """Determines the size of the largest group of tuples that share the same key prefix of a specific length.

        This implements the optional `FrequencyStatistics` of the storage layer.
        """
        if not 0 <= prefix_length <= len(self._sort_key):
            raise ValueError(f"Prefix length {prefix_length} does not fit the sort key {self._sort_key}")
        return self._max_frequencies[prefix_length]

    def estimate(self, prefix: tuple, *, position: Optional[int] = None) -> int:
        lower, upper = self._range(prefix)
        if position is not None:
            return 1 if self._valid_position(position, lower, upper) else 0
        return upper - lower

    def scan(self, prefix: tuple, *, position: Optional[int] = None) -> Iterator[tuple[int, tuple]]:
        lower, upper = self._range(prefix)
        if position is not None:
            if self._valid_position(position, lower, upper):
                yield position, self._rows[position]
            return
        for current_position in range(lower, upper):
            yield current_position, self._rows[current_position]

    def _range(self, prefix: tuple) -> tuple[int, int]:
        """Determines the (half-open) range of positions that share a specific key prefix."""
        if not prefix:
            return 0, len(self._rows)
        if len(prefix) > len(self._sort_key):
            raise ValueError(f"Prefix {prefix} is longer than the sort key {self._sort_key}")
        prefix_len = len(prefix)
        lower = bisect.bisect_left(self._keys, prefix, key=lambda key: key[:prefix_len])
        upper = bisect.bisect_right(self._keys, prefix, lo=lower, key=lambda key: key[:prefix_len])
        return lower, upper

    @staticmethod
    def _valid_position(position: object, lower: int, upper: int) -> bool:
        return isinstance(position, int) and not isinstance(position, bool) and lower <= position < upper

    def __len__(self) -> int:
        return len(self._rows)

    def __repr__(self) -> str:
        return f"MemoryTable(rows={len(self._rows)}, sort_key={self._sort_key})"


class MemoryStream:
    """A stream of tuples that can only be consumed from the beginning.

    Each scan restarts the stream. To model sources such as files that are re-read on every scan, the rows can be supplied as
    a factory that produces a fresh iterator for each scan.

    Parameters
    ----------
    rows : Iterable[Sequence] | Callable[[], Iterable[Sequence]]
        The tuples of the stream, or a callable that produces them. Plain iterables have to be re-iterable (e.g. a list).
    length : Optional[int], optional
        The number of tuples, if it is known upfront. This is only used to answer position lookups beyond the end of the
        stream. Full scans are always estimated as unbounded.
    """

    def __init__(self, rows: Iterable[Sequence] | Callable[[], Iterable[Sequence]], *,
                 length: Optional[int] = None) -> None:
        self._rows = rows
        self._length = length

    def estimate(self, prefix: tuple, *, position: Optional[int] = None) -> int | float:
        self._ensure_no_prefix(prefix)
        if position is None:
            return math.inf
        if self._length is not None and not 0 <= position < self._length:
            return 0
        return 1

    def scan(self, prefix: tuple, *, position: Optional[int] = None) -> Iterator[tuple[int, tuple]]:
        self._ensure_no_prefix(prefix)
        rows = self._rows() if callable(self._rows) else self._rows
        numbered_rows = ((current_position, tuple(row)) for current_position, row in enumerate(rows))
        if position is None:
            yield from numbered_rows
        elif isinstance(position, int) and position >= 0:
            yield from itertools.islice(numbered_rows, position, position + 1)

    @staticmethod
    def _ensure_no_prefix(prefix: tuple) -> None:
        if prefix:
            raise ValueError(f"Streams cannot be searched by attribute values, got prefix {prefix}")

    def __repr__(self) -> str:
        length = self._length if self._length is not None else "?"
        return f"MemoryStream(rows={length})"


def table_source(rows: Iterable[Sequence], attributes: Sequence[str], *, sorted_prefix: int | Sequence[int] = 0,
                 position: Optional[str] = None) -> Source:
    """Creates a table source that is backed by a `MemoryTable` sorted according to the `sorted_prefix`.

    See `Source` for the meaning of the parameters.

    Raises
    ------
    SchemaError
        If the source metadata is malformed
    """
    # validate the metadata before the rows are sorted
    schema = Source(SourceKind.Table, None, attributes, position=position, sorted_prefix=sorted_prefix)
    return Source(SourceKind.Table, MemoryTable(rows, schema.sorted_prefix), attributes, position=position,
                  sorted_prefix=schema.sorted_prefix)


def stream_source(rows: Iterable[Sequence] | Callable[[], Iterable[Sequence]], attributes: Sequence[str], *,
                  position: Optional[str] = None, length: Optional[int] = None) -> Source:
    """Creates a stream source that is backed by a `MemoryStream`.

    See `Source` and `MemoryStream` for the meaning of the parameters.
    """
    return Source(SourceKind.Stream, MemoryStream(rows, length=length), attributes, position=position)
