"""Contains utilities to access and modify dictionaries more conveniently."""

from __future__ import annotations

import typing
from collections.abc import Iterator, Mapping

K = typing.TypeVar("K")
V = typing.TypeVar("V")


def stringify(d: Mapping[K, V]) -> str:
    """Generates a string-representation of a dictionary.

    In contrast to calling ``str()`` directly, this method generates proper string representations of both keys and values and
    does not use ``repr()`` for them. Nested objects are stilled formatted according to ``str()`` however.

    Parameters
    ----------
    d : Mapping[K, V]
        The dictionary to stringify

    Returns
    -------
    str
        The string representation
    """
    items_str = ", ".join(f"{k}: {v}" for k, v in d.items())
    return "{" + items_str + "}"


class frozendict(Mapping[K, V]):
    """Read-only variant of a normal Python dictionary.

    Once the dictionary has been created, its key/value pairs can no longer be modified. At the same time, this allows the
    dictionary to be hashable, as long as all of its values are hashable, too.

    Parameters
    ----------
    items : any, optional
        Supports the same argument types as the normal dictionary. If no items are supplied, an empty frozen dictionary is
        returned.
    """

    def __init__(self, items=None, **kwargs) -> None:
        self._data: dict[K, V] = dict(items or {}, **kwargs)
        self._hash_val: int | None = None

    def __getitem__(self, key: K) -> V:
        return self._data[key]

    def __iter__(self) -> Iterator[K]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __hash__(self) -> int:
        if self._hash_val is None:
            self._hash_val = hash(frozenset(self._data.items()))
        return self._hash_val

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Mapping):
            return dict(self._data) == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"frozendict({self._data!r})"

    def __str__(self) -> str:
        return stringify(self._data)
