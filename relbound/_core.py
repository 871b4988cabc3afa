"""Fundamental value types that are shared by all parts of relbound."""
from __future__ import annotations

import math
from numbers import Number
from typing import Any

from .util._errors import StateError
from .util.jsonize import jsondict

Cost = float
"""Type alias for a cost estimate."""


class SchemaError(ValueError):
    """Indicates that the metadata of a source, degree constraint or relation is malformed.

    Schema errors are only ever raised while constructing these objects. Since construction is pure and deterministic,
    retrying does not make sense. In addition to the usual error message, the error stores the offending value for
    diagnostic purposes.

    Parameters
    ----------
    message : str
        Describes what is wrong
    value : Any, optional
        The value that caused the error, e.g. a duplicate attribute name or an invalid kind tag
    """

    def __init__(self, message: str, value: Any = None) -> None:
        super().__init__(f"{message}: {value!r}" if value is not None else message)
        self.value = value


class Cardinality(Number):
    """Cardinalities represent the number of tuples in a relation or an intermediate result.

    Our cardinality model can be in one of three states:

    - A valid cardinality can be any non-negative integer. This is the default and most common state.
    - An unknown cardinality is represented by NaN.
    - An unbounded cardinality is represented by inf. This is the estimate of every stream, since streams can only be
      consumed linearly and their length is unknown upfront.

    Cardinalities are just wrappers around their integer value that also catch the two special cases. Use cardinalities as
    you would use normal numbers. Notice that cardinalities are immutable, so all mathematical operators return a new
    cardinality instance. Comparisons involving unknown cardinalities are always false, just like for NaN floats.

    To construct valid cardinalities, it is probably easiest to just create a new instance and passing the desired value.
    The `of()` factory method can be used for better readability. Additionally, the `unknown()` and `infinite()` factory
    methods can be used to create cardinalities in the special states.
    """

    @staticmethod
    def of(value: int | float | Cardinality) -> Cardinality:
        """Creates a new cardinality with a specific value. This is just a shorthand for `Cardinality(value)`."""
        if isinstance(value, Cardinality):
            return value
        return Cardinality(value)

    @staticmethod
    def unknown() -> Cardinality:
        """Creates a new cardinality with an unknown value."""
        return Cardinality(math.nan)

    @staticmethod
    def infinite() -> Cardinality:
        """Creates a new cardinality with an infinite value."""
        return Cardinality(math.inf)

    def __init__(self, value: int | float) -> None:
        if value < 0:
            raise ValueError(f"Cardinalities cannot be negative: {value}")
        self._nan = math.isnan(value)
        self._inf = math.isinf(value)
        self._valid = not self._nan and not self._inf
        # estimates are upper bounds, fractional tuples are rounded up
        self._value = math.ceil(value) if self._valid else -1

    __slots__ = ("_nan", "_inf", "_valid", "_value")
    __match_args__ = ("_valid", "_value")

    @property
    def value(self) -> int:
        """Get the value wrapped by this cardinality instance. If the cardinality is invalid, a `StateError` is raised."""
        if not self._valid:
            raise StateError("Not a valid cardinality. Use is_valid() to check, or get() to handle special values yourself.")
        return self._value

    def isnan(self) -> bool:
        """Checks, whether cardinality value is *NaN*."""
        return self._nan

    def isinf(self) -> bool:
        """Checks, whether cardinality value is infinite."""
        return self._inf

    def is_valid(self) -> bool:
        """Checks, whether this cardinality is valid, i.e. neither *NaN* nor infinite."""
        return self._valid

    def get(self) -> float:
        """Provides the value of this cardinality as a float. Special states are mapped to *NaN* and *inf*."""
        return float(self)

    def __json__(self) -> jsondict:
        return float(self)

    def __bool__(self) -> bool:
        return self._valid

    def __float__(self) -> float:
        if self._nan:
            return math.nan
        if self._inf:
            return math.inf
        return float(self._value)

    def __int__(self) -> int:
        return self.value

    def __add__(self, other: object) -> Cardinality:
        if isinstance(other, (Cardinality, int, float)):
            return Cardinality(self.get() + float(other))
        return NotImplemented

    __radd__ = __add__

    def __mul__(self, other: object) -> Cardinality:
        if not isinstance(other, (Cardinality, int, float)):
            return NotImplemented
        other_value = float(other)
        if (self._valid and self._value == 0) or (other_value == 0 and not self._nan):
            # an empty relation stays empty, no matter how large the partner is
            return Cardinality(0)
        return Cardinality(self.get() * other_value)

    __rmul__ = __mul__

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, (Cardinality, int, float)):
            return NotImplemented
        return self.get() < float(other)

    def __le__(self, other: object) -> bool:
        if not isinstance(other, (Cardinality, int, float)):
            return NotImplemented
        return self.get() <= float(other)

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, (Cardinality, int, float)):
            return NotImplemented
        return self.get() > float(other)

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, (Cardinality, int, float)):
            return NotImplemented
        return self.get() >= float(other)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Cardinality):
            if self._nan and other._nan:
                return True
            return self.get() == other.get()
        if isinstance(other, (int, float)):
            return self.get() == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.get()) if not self._nan else hash("nan-cardinality")

    def __repr__(self) -> str:
        if self._nan:
            return "Cardinality(unknown)"
        if self._inf:
            return "Cardinality(inf)"
        return f"Cardinality({self._value})"

    def __str__(self) -> str:
        if self._nan:
            return "NaN"
        if self._inf:
            return "inf"
        return str(self._value)
