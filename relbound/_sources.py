"""Sources describe the physical access paths that back a relation.

A source is either a *table* or a *stream*. Tables are stored in a sorted order and support binary search on a prefix of
their sort key, whereas streams can only be consumed linearly. Both kinds can carry an explicit *position* column, which is
the ordinal of each tuple in stored order. Since positions are monotonic in stored order, a table with a position column can
also be searched on any prefix of its sort key, followed by the position. This derived index is free and never has to be
built explicitly.

The actual data is accessed through a `StorageHandle`. relbound does not care how the storage layer is implemented, as long
as it can estimate and scan the tuples that match a prefix of the sort key. See `relbound.storage` for in-memory
implementations.
"""
from __future__ import annotations

import enum
import re
from collections.abc import Collection, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

from ._core import SchemaError
from .util import collections as collection_utils


class SourceKind(enum.Enum):
    """The different kinds of access paths."""
    Table = "table"
    Stream = "stream"

    @staticmethod
    def parse(kind: SourceKind | str) -> SourceKind:
        """Reads a kind tag, either from an existing enum value or from its textual representation.

        Raises
        ------
        SchemaError
            If the tag does not denote a known source kind
        """
        if isinstance(kind, SourceKind):
            return kind
        if isinstance(kind, str):
            for candidate in SourceKind:
                if candidate.value == kind.lower():
                    return candidate
        raise SchemaError("Unknown source kind", kind)


@runtime_checkable
class StorageHandle(Protocol):
    """The capabilities that the storage layer has to provide for an already-opened, read-only source.

    Both operations receive a *prefix binding*, i.e. the values of the leading attributes of the sort key of the source (in
    sort key order). The empty prefix denotes the entire source. Additionally, a position can be requested, in which case
    only the tuple at that position may be produced (if it also matches the prefix).

    Positions are zero-based ordinals of the tuples in stored order.
    """

    def estimate(self, prefix: tuple, *, position: Optional[int] = None) -> int | float:
        """Determines how many tuples match the prefix. Unbounded sources return ``math.inf``."""
        ...

    def scan(self, prefix: tuple, *, position: Optional[int] = None) -> Iterator[tuple[int, tuple]]:
        """Lazily produces all matching tuples in stored order, each along with its position."""
        ...


@runtime_checkable
class FrequencyStatistics(Protocol):
    """Optional statistics that a storage handle can keep in addition to the `StorageHandle` operations.

    The statistics bound how many tuples can match a prefix binding before the actual values of the prefix are known. This
    is the case during planning, when variables are only bound symbolically.
    """

    def max_frequency(self, prefix_length: int) -> int | float:
        """Determines the largest number of tuples that share the same values on the first `prefix_length` key attributes."""
        ...


_AttributeNamePattern = re.compile(r"^[A-Za-z_][A-Za-z0-9_\-?*]*$")
"""Attribute names have to be identifier-like symbols."""


def _check_attribute_name(name: object) -> str:
    if not isinstance(name, str) or not _AttributeNamePattern.match(name):
        raise SchemaError("Invalid attribute name", name)
    return name


@dataclass(frozen=True)
class IndexMatch:
    """Describes how well an access path of a source serves a set of bound attributes.

    Attributes
    ----------
    key : tuple[str, ...]
        The bisectable attribute sequence that is used for the lookup. If the sequence ends with the position column of the
        source, it is a derived (prefix, position) index.
    exact : bool
        Whether the bound attributes are exactly the attributes of the key. Otherwise, the remaining bound attributes have to
        be checked for each tuple produced by the lookup.
    """
    key: tuple[str, ...]
    exact: bool

    def __len__(self) -> int:
        return len(self.key)


class Source:
    """Describes a single access path, i.e. a table or a stream.

    Sources are immutable once they have been constructed. Construction validates all metadata and fails with a
    `SchemaError` if anything is malformed.

    Parameters
    ----------
    kind : SourceKind | str
        Whether this is a *table* or a *stream*.
    data : StorageHandle
        The handle to the actual data. The sort order of the data has to agree with the declared sorted prefix, this is not
        checked here.
    attributes : Sequence[str]
        The names of the attributes of each tuple, in stored order. Names have to be identifier-like and unique.
    position : Optional[str], optional
        The name of the position column, if the source provides one. The position is not part of the stored tuples, but
        is added to each scanned tuple as the final value.
    sorted_prefix : int | Sequence[int], optional
        The attributes that the source is sorted by. This can either be a length *k*, which denotes the first *k*
        attributes, or the explicit offsets of the sort key attributes. Offsets have to be strictly increasing and within
        the attribute bounds. Streams cannot be sorted on any attribute. Defaults to an unsorted source.

    Raises
    ------
    SchemaError
        If the kind is unknown, an attribute name is invalid or duplicated, or the sorted prefix is malformed.
    """

    def __init__(self, kind: SourceKind | str, data: StorageHandle, attributes: Sequence[str], *,
                 position: Optional[str] = None, sorted_prefix: int | Sequence[int] = 0) -> None:
        self._kind = SourceKind.parse(kind)
        self._data = data
        self._attributes = tuple(_check_attribute_name(attr) for attr in attributes)
        self._position = _check_attribute_name(position) if position is not None else None

        seen_names: set[str] = set()
        for name in self.columns():
            if name in seen_names:
                raise SchemaError("Duplicate attribute name", name)
            seen_names.add(name)

        self._sorted_prefix = self._parse_sorted_prefix(sorted_prefix)
        if self._kind == SourceKind.Stream and self._sorted_prefix:
            raise SchemaError("Streams can only be searched on their position, not on attributes", sorted_prefix)

        # the order in which the storage handle produces the attribute values. Only views deviate from the attribute order.
        self._stored_attributes = self._attributes

    def _parse_sorted_prefix(self, sorted_prefix: int | Sequence[int]) -> tuple[int, ...]:
        n_attributes = len(self._attributes)
        if isinstance(sorted_prefix, bool):
            raise SchemaError("Sorted prefix must be a length or a sequence of offsets", sorted_prefix)
        if isinstance(sorted_prefix, int):
            if not 0 <= sorted_prefix <= n_attributes:
                raise SchemaError("Sorted prefix length out of range", sorted_prefix)
            return tuple(range(sorted_prefix))

        offsets = tuple(sorted_prefix)
        for offset in offsets:
            if isinstance(offset, bool) or not isinstance(offset, int) or not 0 <= offset < n_attributes:
                raise SchemaError("Sorted prefix offset out of range", offset)
        if not collection_utils.is_strictly_increasing(offsets):
            raise SchemaError("Sorted prefix offsets must be strictly increasing", offsets)
        return offsets

    @property
    def kind(self) -> SourceKind:
        """Get the kind of this source."""
        return self._kind

    @property
    def data(self) -> StorageHandle:
        """Get the handle to the stored tuples."""
        return self._data

    @property
    def position(self) -> Optional[str]:
        """Get the name of the position column, if there is one."""
        return self._position

    @property
    def attributes(self) -> tuple[str, ...]:
        """Get the names of the stored attributes. This does not include the position column."""
        return self._attributes

    @property
    def sorted_prefix(self) -> tuple[int, ...]:
        """Get the offsets of the attributes that the source is sorted by, in sort order."""
        return self._sorted_prefix

    def columns(self) -> tuple[str, ...]:
        """Provides the names of all values of a scanned tuple, i.e. the attributes followed by the position (if any)."""
        return self._attributes + ((self._position,) if self._position is not None else ())

    def sort_key(self) -> tuple[str, ...]:
        """Provides the names of the attributes that the source is sorted by, in sort order."""
        return tuple(self._attributes[offset] for offset in self._sorted_prefix)

    def is_table(self) -> bool:
        return self._kind == SourceKind.Table

    def is_stream(self) -> bool:
        return self._kind == SourceKind.Stream

    def is_finite(self) -> bool:
        """Checks, whether the source is bounded. Streams are always treated as unbounded."""
        return self.is_table()

    def index_keys(self) -> Sequence[tuple[str, ...]]:
        """Provides all attribute sequences that can be used to bisect this source.

        These are all non-empty prefixes of the sort key. Furthermore, if the source has a position column, each prefix
        (including the empty one) followed by the position column is also bisectable. Since streams do not have a sort key,
        they can at most be searched by their position.

        Returns
        -------
        Sequence[tuple[str, ...]]
            The keys, plain prefixes before the derived position indexes and shorter keys before longer ones
        """
        sort_key = self.sort_key()
        keys = [sort_key[:length] for length in range(1, len(sort_key) + 1)]
        if self._position is not None:
            keys.extend(sort_key[:length] + (self._position,) for length in range(len(sort_key) + 1))
        return keys

    def match(self, bound_attributes: Collection[str]) -> Optional[IndexMatch]:
        """Determines the best bisectable key for a set of bound attributes.

        A key that consists of exactly the bound attributes is preferred. Otherwise, the longest key whose attributes are all
        bound is used.

        Parameters
        ----------
        bound_attributes : Collection[str]
            The attributes for which values are available

        Returns
        -------
        Optional[IndexMatch]
            The key or ``None`` if the source can only be scanned in full for these attributes.
        """
        bound_attributes = frozenset(bound_attributes)
        best_match: Optional[IndexMatch] = None
        for key in self.index_keys():
            key_attributes = frozenset(key)
            if key_attributes == bound_attributes:
                return IndexMatch(key, exact=True)
            if key_attributes <= bound_attributes and (best_match is None or len(key) > len(best_match)):
                best_match = IndexMatch(key, exact=False)
        return best_match

    def estimate(self, binding: Mapping[str, Any]) -> int | float:
        """Asks the storage layer how many tuples are produced for specific attribute values.

        The estimate is exact if the bound attributes exactly match an index key. Otherwise, it is an upper bound that only
        considers the key values.
        """
        prefix, position = self._prefix_binding(binding)
        return self._data.estimate(prefix, position=position)

    def max_frequency(self, key: Sequence[str]) -> Optional[int | float]:
        """Bounds the number of tuples that share the same values on an index key, without knowing the values.

        Keys that end with the position column identify a single tuple. Plain sort key prefixes are answered by the storage
        layer if it keeps `FrequencyStatistics`.

        Parameters
        ----------
        key : Sequence[str]
            One of the `index_keys` of this source

        Returns
        -------
        Optional[int | float]
            The bound, or ``None`` if the storage layer does not provide statistics for the key
        """
        key = tuple(key)
        if self._position is not None and key and key[-1] == self._position:
            return 1
        if key != self.sort_key()[:len(key)] or not isinstance(self._data, FrequencyStatistics):
            return None
        return self._data.max_frequency(len(key))

    def scan(self, binding: Optional[Mapping[str, Any]] = None) -> Iterator[tuple]:
        """Lazily produces all tuples that match the given attribute values.

        The best index key for the bound attributes is used to narrow down the scanned range. All other bound attributes are
        checked for each tuple individually.

        Parameters
        ----------
        binding : Optional[Mapping[str, Any]], optional
            Values for some of the `columns()` of the source. If omitted, the entire source is scanned.

        Yields
        ------
        Iterator[tuple]
            The matching tuples, with values in `columns()` order
        """
        binding = binding or {}
        prefix, position = self._prefix_binding(binding)
        projection = (None if self._stored_attributes == self._attributes
                      else [self._stored_attributes.index(attr) for attr in self._attributes])
        checks = [(index, binding[column]) for index, column in enumerate(self.columns()) if column in binding]

        for stored_position, stored_row in self._data.scan(prefix, position=position):
            row = tuple(stored_row) if projection is None else tuple(stored_row[index] for index in projection)
            if self._position is not None:
                row += (stored_position,)
            if all(row[index] == value for index, value in checks):
                yield row

    def reordered(self, attributes: Sequence[str]) -> Source:
        """Provides a virtual view of this source that presents its attributes in a different order.

        The view shares the storage handle of this source, no data is copied. Its sort key is the same as the sort key of
        this source, but the offsets are computed with respect to the new attribute order. This makes it possible to expose
        the sort key as a true prefix of the attributes.

        Parameters
        ----------
        attributes : Sequence[str]
            A permutation of the `attributes` of this source. The position column is not part of the permutation.

        Returns
        -------
        Source
            The view

        Raises
        ------
        SchemaError
            If the attributes are not a permutation of the current attributes, or if the sort key attributes would not
            appear in increasing order in the new order.
        """
        attributes = tuple(attributes)
        if sorted(attributes) != sorted(self._attributes):
            raise SchemaError("View attributes must be a permutation of the source attributes", attributes)
        offsets = [attributes.index(attr) for attr in self.sort_key()]
        view = Source(self._kind, self._data, attributes, position=self._position, sorted_prefix=offsets)
        view._stored_attributes = self._stored_attributes
        return view

    def _prefix_binding(self, binding: Mapping[str, Any]) -> tuple[tuple, Optional[int]]:
        """Translates attribute values into the prefix binding of the storage layer."""
        unknown_columns = [column for column in binding if column not in self.columns()]
        if unknown_columns:
            raise ValueError(f"Attributes {unknown_columns} are not provided by source {self}")

        index_match = self.match(binding.keys())
        if index_match is None:
            return (), None

        key = index_match.key
        if self._position is not None and key and key[-1] == self._position:
            return tuple(binding[attr] for attr in key[:-1]), binding[self._position]
        return tuple(binding[attr] for attr in key), None

    def __repr__(self) -> str:
        return (f"Source(kind={self._kind.value}, attributes={self._attributes}, position={self._position}, "
                f"sorted_prefix={self._sorted_prefix})")

    def __str__(self) -> str:
        position = f"; {self._position}" if self._position else ""
        return f"{self._kind.value}({', '.join(self._attributes)}{position})"
