"""Degree constraints are generalized functional dependencies between the attributes of a relation."""
from __future__ import annotations

import math
from collections.abc import Collection, Iterable
from typing import Optional

from ._core import SchemaError
from .util.jsonize import jsondict


def _parse_bound(bound: object, name: str) -> int | float:
    if isinstance(bound, bool) or not isinstance(bound, (int, float)):
        raise SchemaError(f"{name} must be a non-negative integer", bound)
    if isinstance(bound, float) and not math.isinf(bound):
        if not bound.is_integer():
            raise SchemaError(f"{name} must be a non-negative integer", bound)
        bound = int(bound)
    if bound < 0:
        raise SchemaError(f"{name} must be a non-negative integer", bound)
    return bound


def _attribute_set(attributes: str | Iterable[str]) -> frozenset[str]:
    return frozenset([attributes]) if isinstance(attributes, str) else frozenset(attributes)


class DegreeConstraint:
    """A degree constraint bounds how many range tuples can occur for a single domain tuple.

    More precisely, for any fixed assignment of values to the `domain` attributes, the number of distinct value combinations
    of the `range` attributes lies within [`lower_bound`, `upper_bound`]. A functional dependency is the special case of an
    upper bound of 1.

    Degree constraints are immutable and are only consumed by the cardinality estimator.

    Parameters
    ----------
    lower_bound : int
        The minimum number of range tuples per domain tuple
    upper_bound : Optional[int | float]
        The maximum number of range tuples per domain tuple. ``None`` or ``math.inf`` denote an unbounded constraint.
    domain : Iterable[str]
        The attributes that are fixed
    range : Iterable[str]
        The attributes whose number of distinct values is bounded

    Raises
    ------
    SchemaError
        If the bounds are not non-negative integers, if the lower bound exceeds the upper bound, or if domain and range
        share attributes.
    """

    @staticmethod
    def functional_dependency(domain: Iterable[str], range: Iterable[str]) -> DegreeConstraint:
        """Creates a constraint stating that the `domain` attributes determine the `range` attributes."""
        return DegreeConstraint(1, 1, domain, range)

    @staticmethod
    def uniqueness(key: Iterable[str], attributes: Iterable[str]) -> DegreeConstraint:
        """Creates a constraint stating that the `key` attributes identify a tuple among all `attributes` of a relation.

        This is the functional dependency from the key to all other attributes.
        """
        key = _attribute_set(key)
        return DegreeConstraint.functional_dependency(key, [attr for attr in attributes if attr not in key])

    def __init__(self, lower_bound: int, upper_bound: Optional[int | float], domain: Iterable[str],
                 range: Iterable[str]) -> None:
        self._lower_bound = _parse_bound(lower_bound, "Lower bound")
        if math.isinf(self._lower_bound):
            raise SchemaError("Lower bound must be finite", lower_bound)
        self._upper_bound = math.inf if upper_bound is None else _parse_bound(upper_bound, "Upper bound")
        if self._lower_bound > self._upper_bound:
            raise SchemaError("Lower bound exceeds upper bound", (lower_bound, upper_bound))

        self._domain = _attribute_set(domain)
        self._range = _attribute_set(range)
        overlap = self._domain & self._range
        if overlap:
            raise SchemaError("Domain and range of a degree constraint must be disjoint", sorted(overlap))

    @property
    def lower_bound(self) -> int:
        return self._lower_bound

    @property
    def upper_bound(self) -> int | float:
        """Get the upper bound of the constraint. Unbounded constraints return ``math.inf``."""
        return self._upper_bound

    @property
    def domain(self) -> frozenset[str]:
        return self._domain

    @property
    def range(self) -> frozenset[str]:
        return self._range

    def attributes(self) -> frozenset[str]:
        """Provides all attributes that are mentioned by the constraint."""
        return self._domain | self._range

    def is_bounded(self) -> bool:
        return not math.isinf(self._upper_bound)

    def is_functional_dependency(self) -> bool:
        return self._upper_bound == 1

    def applies_to(self, bound_attributes: Collection[str], target: str) -> bool:
        """Checks, whether the constraint bounds the values of an attribute once some attributes are fixed.

        This is the case if all domain attributes are bound and the target is part of the range.
        """
        return self._domain <= frozenset(bound_attributes) and target in self._range

    def __json__(self) -> jsondict:
        return {"lower_bound": self._lower_bound, "upper_bound": self._upper_bound,
                "domain": sorted(self._domain), "range": sorted(self._range)}

    def __hash__(self) -> int:
        return hash((self._lower_bound, self._upper_bound, self._domain, self._range))

    def __eq__(self, other: object) -> bool:
        return (isinstance(other, type(self))
                and self._lower_bound == other._lower_bound and self._upper_bound == other._upper_bound
                and self._domain == other._domain and self._range == other._range)

    def __repr__(self) -> str:
        return str(self)

    def __str__(self) -> str:
        upper = "*" if not self.is_bounded() else self._upper_bound
        domain = ", ".join(sorted(self._domain))
        range_ = ", ".join(sorted(self._range))
        return f"({domain}) -> [{self._lower_bound}..{upper}] ({range_})"
