"""Contains utilities to store and load objects more conveniently to/from JSON.

More specifically, this module introduces the `JsonizeEncoder`, which can be accessed via the `to_json` utility method.
This encoder allows to transform instances of any class to JSON by providing a `__json__` method in the class
implementation. This method does not take any (required) parameters and returns a JSON-izeable representation of the
current instance, e.g. a `dict` or a `list`.

Plans and cost models use this to export their contents. Cost models can also be read back, since their JSON
representation is just a flat dictionary of constants.
"""

from __future__ import annotations

import abc
import enum
import json
import math
from pathlib import Path
from typing import IO, Any, Protocol, runtime_checkable

jsondict = dict
"""Type alias for a JSON-izeable dictionary."""


@runtime_checkable
class Jsonizable(Protocol):
    """Protocol to indicate that a certain class provides the `__json__` method."""

    @abc.abstractmethod
    def __json__(self) -> jsondict:
        raise NotImplementedError


class JsonizeEncoder(json.JSONEncoder):
    """The JsonizeEncoder allows to transform instances of any class to JSON.

    This can be achieved by providing a `__json__` method in the class implementation. Enums are exported by their value,
    sets as lists and paths as strings. Infinite floats are exported as the string ``"inf"`` to keep the output valid JSON.
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, enum.Enum):
            return obj.value
        elif isinstance(obj, (set, frozenset)):
            return sorted(obj, key=str)
        elif isinstance(obj, Path):
            return str(obj)
        elif isinstance(obj, Jsonizable):
            return _replace_infinity(obj.__json__())
        return json.JSONEncoder.default(self, obj)

    def iterencode(self, o: Any, _one_shot: bool = False):
        return super().iterencode(_replace_infinity(o), _one_shot)


def _replace_infinity(obj: Any) -> Any:
    if isinstance(obj, float) and math.isinf(obj):
        return "inf"
    if isinstance(obj, dict):
        return {k: _replace_infinity(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_replace_infinity(v) for v in obj]
    return obj


def to_json(obj: Any, *args, **kwargs) -> str | None:
    """Utility to transform any object to a JSON object, while making use of the `JsonizeEncoder`.

    All arguments other than the object itself are passed to the default Python `json.dumps` function.
    """
    if obj is None:
        return None
    kwargs.pop("cls", None)
    return json.dumps(obj, *args, cls=JsonizeEncoder, **kwargs)


def to_json_dump(obj: Any, file: IO, *args, **kwargs) -> None:
    """Utility to transform any object to a JSON object and write it to a file, while making use of the `JsonizeEncoder`.

    All arguments other than the object itself are passed to the default Python `json.dump` function.
    """
    kwargs.pop("cls", None)
    json.dump(obj, file, *args, cls=JsonizeEncoder, **kwargs)
