"""Cardinality estimation for partially bound query atoms.

The estimator answers a single question for the planner: if an atom is resolved under the current bindings, how many values
can a specific variable take? To answer this, it consults (in this order) the indexes of the relation, its degree
constraints, and finally the full extent of the relation.
"""
from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, NamedTuple, Optional

from ._constraints import DegreeConstraint
from ._core import Cardinality
from ._query import Atom, QueryGraph, Variable
from .util.dicts import stringify
from .util.jsonize import jsondict


class Binding:
    """Keeps track of the variables that are bound while a query is planned.

    Some variables are bound to actual values, e.g. by constants of the query. All other variables are bound *symbolically*:
    the planner knows that their values will be available once the plan is executed, but it does not know the values
    themselves. Bindings are immutable, binding further variables creates a new instance.

    Parameters
    ----------
    values : Optional[Mapping[Variable, Any]], optional
        Variables with known values
    symbolic : Iterable[Variable], optional
        Variables that are bound without a known value
    """

    @staticmethod
    def of(constants: Mapping[Variable, Any]) -> Binding:
        """Creates a binding that only consists of known values."""
        return Binding(constants)

    def __init__(self, values: Optional[Mapping[Variable, Any]] = None, symbolic: Iterable[Variable] = ()) -> None:
        self._values = dict(values or {})
        self._symbolic = frozenset(symbolic) - self._values.keys()

    def bind(self, variables: Iterable[Variable]) -> Binding:
        """Creates a new binding where the given variables are (at least) bound symbolically."""
        return Binding(self._values, self._symbolic | frozenset(variables))

    def is_bound(self, variable: Variable) -> bool:
        return variable in self._values or variable in self._symbolic

    def is_known(self, variable: Variable) -> bool:
        """Checks, whether the actual value of a variable is available."""
        return variable in self._values

    def known_values(self) -> dict[Variable, Any]:
        return dict(self._values)

    def bound_variables(self) -> frozenset[Variable]:
        return frozenset(self._values) | self._symbolic

    def __contains__(self, variable: object) -> bool:
        return variable in self._values or variable in self._symbolic

    def __eq__(self, other: object) -> bool:
        return (isinstance(other, type(self))
                and self._values == other._values and self._symbolic == other._symbolic)

    def __repr__(self) -> str:
        return f"Binding(values={self._values}, symbolic={set(self._symbolic)})"

    def __str__(self) -> str:
        symbolic = ", ".join(str(var) for var in sorted(self._symbolic))
        return f"{stringify(self._values)} + [{symbolic}]" if symbolic else stringify(self._values)


class EstimationMethod(enum.Enum):
    """Describes which kind of information an estimate is based on. The members are listed in order of preference."""
    Index = "index"
    Degree = "degree"
    Scan = "scan"


@dataclass(frozen=True)
class Estimate:
    """The estimated number of values of a variable after resolving an atom.

    Attributes
    ----------
    cardinality : Cardinality
        The estimate. This is exact for index-backed estimates and an upper bound otherwise.
    method : EstimationMethod
        Where the estimate comes from
    atom : int
        The index of the atom in the query graph
    variable : Optional[Variable]
        The variable that was estimated. This is ``None`` if all variables of the atom are already bound, in which case the
        atom can only confirm the current binding.
    unbound : int
        How many variables of the atom are still unbound. This is used to break ties between estimates.
    constraint : Optional[DegreeConstraint], optional
        The degree constraint that produced the estimate, if any
    index_key : Optional[tuple[str, ...]], optional
        The index key that produced the estimate, if any
    """
    cardinality: Cardinality
    method: EstimationMethod
    atom: int
    variable: Optional[Variable]
    unbound: int
    constraint: Optional[DegreeConstraint] = None
    index_key: Optional[tuple[str, ...]] = None

    def sort_key(self) -> tuple[float, int, int]:
        """Provides the key that orders estimates by preference: cheapest first, then fewer unbound variables, then atom."""
        return self.cardinality.get(), self.unbound, self.atom

    def __json__(self) -> jsondict:
        return {"cardinality": self.cardinality, "method": self.method, "atom": self.atom,
                "variable": str(self.variable) if self.variable is not None else None,
                "unbound": self.unbound, "constraint": self.constraint, "index_key": self.index_key}

    def __str__(self) -> str:
        target = self.variable if self.variable is not None else "*"
        return f"|{target}@{self.atom}| = {self.cardinality} ({self.method.value})"


class _IndexEstimate(NamedTuple):
    cardinality: Cardinality
    key: tuple[str, ...]
    exact: bool
    """Whether the count is exact (all key values are known) or a bound from the key statistics."""


class CardinalityEstimator:
    """Estimates result sizes based on the access paths and degree constraints of the relations.

    The estimator uses the following sources of information, in order of preference:

    1. if the bound attributes of the atom exactly match an index key and all of their values are known, the storage layer
       is asked for the exact number of matching tuples (without producing them). If the values are only bound
       symbolically, the largest number of tuples per key value is used instead, as long as the storage layer keeps such
       statistics and no degree constraint provides a tighter bound.
    2. otherwise, the smallest upper bound of all degree constraints whose domain is bound and whose range contains the
       target variable is used. If multiple constraints provide the same bound, the one with the smaller domain is used. If
       these are equal as well, the constraint that was declared first wins.
    3. if no constraint applies, the total number of tuples of the relation is used. For streams, this is unbounded.

    The estimator itself is stateless and can be shared by concurrent planners.
    """

    def estimate(self, query: QueryGraph, binding: Binding, atom: int, variable: Variable) -> Estimate:
        """Estimates how many values a variable can take after resolving an atom under the current binding.

        Parameters
        ----------
        query : QueryGraph
            The query that contains the atom
        binding : Binding
            The currently bound variables
        atom : int
            The index of the atom in the query graph
        variable : Variable
            The (unbound) target variable. It has to occur in the atom.

        Returns
        -------
        Estimate
            The estimate along with its provenance

        Raises
        ------
        ValueError
            If the variable does not occur in the atom
        """
        query_atom = query.atom(atom)
        if variable not in query_atom:
            raise ValueError(f"Variable {variable} does not occur in atom {query_atom}")
        relation = query_atom.relation
        bound_variables = [var for var in query_atom.variables() if binding.is_bound(var)]
        unbound = len(query_atom.variables()) - len(bound_variables)
        bound_attributes = query_atom.attributes(bound_variables)

        index_estimate = self._index_estimate(query_atom, binding, bound_variables)
        constraint = self._tightest_constraint(relation.degree_constraints(), bound_attributes,
                                               query_atom.attributes_of(variable))
        if index_estimate is not None and (index_estimate.exact or constraint is None
                                           or index_estimate.cardinality <= constraint.upper_bound):
            return Estimate(index_estimate.cardinality, EstimationMethod.Index, atom, variable, unbound,
                            index_key=index_estimate.key)

        if constraint is not None:
            return Estimate(Cardinality(constraint.upper_bound), EstimationMethod.Degree, atom, variable, unbound,
                            constraint=constraint)

        return Estimate(relation.extent(), EstimationMethod.Scan, atom, variable, unbound)

    def estimate_atom(self, query: QueryGraph, binding: Binding, atom: int) -> Estimate:
        """Determines the cheapest unbound variable of an atom.

        Ties are broken by declaration order of the variables. If all variables of the atom are bound already, the atom only
        confirms the current binding. Such atoms are estimated via their index if possible, and as a single tuple
        otherwise.
        """
        query_atom = query.atom(atom)
        unbound_variables = [var for var in query_atom.variables() if not binding.is_bound(var)]
        if unbound_variables:
            estimates = [self.estimate(query, binding, atom, var) for var in unbound_variables]
            return min(estimates, key=lambda est: est.cardinality.get())

        index_estimate = self._index_estimate(query_atom, binding, query_atom.variables())
        if index_estimate is not None:
            return Estimate(index_estimate.cardinality, EstimationMethod.Index, atom, None, 0, index_key=index_estimate.key)
        return Estimate(Cardinality(1), EstimationMethod.Degree, atom, None, 0)

    def estimate_output(self, query: QueryGraph, binding: Binding, atom: int) -> Cardinality:
        """Estimates how many tuples an atom contributes for each tuple of the current intermediate result.

        In contrast to `estimate_atom`, which only considers the cheapest variable, this accounts for all variables that the
        atom binds. If all bound values are known and exactly match an index key, the count of the storage layer is used.
        Otherwise, the output is bounded by the product of the estimates of all unbound variables, by the statistics of a
        matching index key, and by the total number of tuples of the relation, whichever is smallest.

        Parameters
        ----------
        query : QueryGraph
            The query that contains the atom
        binding : Binding
            The currently bound variables
        atom : int
            The index of the atom in the query graph

        Returns
        -------
        Cardinality
            The estimated number of atom tuples per intermediate tuple
        """
        query_atom = query.atom(atom)
        bound_variables = [var for var in query_atom.variables() if binding.is_bound(var)]
        unbound_variables = [var for var in query_atom.variables() if not binding.is_bound(var)]

        index_estimate = self._index_estimate(query_atom, binding, bound_variables)
        if index_estimate is not None and index_estimate.exact:
            return index_estimate.cardinality
        if not unbound_variables:
            return self.estimate_atom(query, binding, atom).cardinality

        variable_bound = Cardinality(1)
        for var in unbound_variables:
            variable_bound = variable_bound * self.estimate(query, binding, atom, var).cardinality
        bounds = [variable_bound, query_atom.relation.extent()]
        if index_estimate is not None:
            bounds.append(index_estimate.cardinality)
        return min(bounds, key=Cardinality.get)

    def describe(self) -> jsondict:
        """Provides a JSON-serializable representation of the estimation strategy."""
        return {"name": "degree-constraint-estimator",
                "priority": [method.value for method in EstimationMethod]}

    def _index_estimate(self, atom: Atom, binding: Binding, bound_variables: Iterable[Variable]) -> Optional[_IndexEstimate]:
        bound_variables = list(bound_variables)
        if not bound_variables:
            return None
        bound_attributes = atom.attributes(bound_variables)
        index_match = atom.relation.index_match(bound_attributes)
        if index_match is None or not index_match.exact:
            return None

        if all(binding.is_known(var) for var in bound_variables):
            relation_binding = atom.relation_binding(binding.known_values())
            return _IndexEstimate(atom.relation.lookup(relation_binding).cardinality, index_match.key, True)

        frequency = atom.relation.key_frequency(bound_attributes)
        return _IndexEstimate(frequency, index_match.key, False) if frequency is not None else None

    @staticmethod
    def _tightest_constraint(constraints: Iterable[DegreeConstraint], bound_attributes: frozenset[str],
                             target_attributes: Iterable[str]) -> Optional[DegreeConstraint]:
        target_attributes = list(target_attributes)
        candidates = [(constraint.upper_bound, len(constraint.domain), position, constraint)
                      for position, constraint in enumerate(constraints)
                      if constraint.is_bounded()
                      and any(constraint.applies_to(bound_attributes, target) for target in target_attributes)]
        if not candidates:
            return None
        return min(candidates, key=lambda candidate: candidate[:3])[3]

    def __repr__(self) -> str:
        return str(self)

    def __str__(self) -> str:
        return "CardinalityEstimator()"
