"""Evaluation of join plans.

The executor consumes a `JoinPlan` and produces the result tuples of the query lazily. Intermediate results are streams of
*rows*, i.e. mappings from the variables that are bound so far to their values. Each plan step extends the rows according to
its join strategy:

- *iterate* (and every lookup) probes the relation of the atom once per row.
- *intermediate* reads the relation once, stores it in a hash table keyed by the join variables and probes the table once
  per row.
- *filter* collects all rows in a hash table keyed by the join variables and scans the relation once, emitting all matching
  combinations.

All strategies produce the same result. Only the order of the rows differs.
"""
from __future__ import annotations

import collections
import itertools
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from typing import Any, Optional

from ._costs import JoinStrategy
from ._planner import JoinOrderPlanner, JoinPlan, PlanStep
from ._query import Atom, QueryGraph, Variable

Row = dict[Variable, Any]
"""An intermediate result tuple: the values of all variables that are bound so far."""


class Cursor(Iterable[Row]):
    """A lazy, restartable sequence of query results.

    Iterating the cursor evaluates the query plan from scratch. To abandon an evaluation, simply stop iterating.

    Parameters
    ----------
    producer : Callable[[], Iterator[Row]]
        Creates a fresh iterator over the result rows
    variables : Sequence[Variable]
        The variables of the query, in order of their first occurrence
    """

    def __init__(self, producer: Callable[[], Iterator[Row]], variables: Sequence[Variable]) -> None:
        self._producer = producer
        self._variables = tuple(variables)

    @property
    def variables(self) -> tuple[Variable, ...]:
        return self._variables

    def tuples(self, order: Optional[Sequence[Variable | str]] = None) -> Iterator[tuple]:
        """Provides the result rows as plain tuples.

        Parameters
        ----------
        order : Optional[Sequence[Variable | str]], optional
            The variables (or their names) that should be included in each tuple. Defaults to all query variables.
        """
        order = self._variables if order is None else [var if isinstance(var, Variable) else Variable(var)
                                                        for var in order]
        for row in self:
            yield tuple(row[var] for var in order)

    def __iter__(self) -> Iterator[Row]:
        return iter(self._producer())

    def __repr__(self) -> str:
        return f"Cursor(variables={[var.name for var in self._variables]})"


def _join_key(row: Mapping[Variable, Any], variables: Sequence[Variable]) -> tuple:
    return tuple(row[var] for var in variables)


def _atom_assignments(atom: Atom, binding: Mapping[str, Any]) -> Iterator[Row]:
    """Looks up the tuples of an atom and translates them into variable assignments."""
    for row in atom.relation.lookup(binding).tuples:
        assignment = atom.variable_binding(row)
        if assignment is not None:
            yield assignment


def _iterate(atom: Atom, rows: Iterable[Row]) -> Iterator[Row]:
    for row in rows:
        for assignment in _atom_assignments(atom, atom.relation_binding(row)):
            yield row | assignment


def _intermediate(step: PlanStep, atom: Atom, rows: Iterable[Row], constants: Mapping[Variable, Any]) -> Iterator[Row]:
    join_variables = sorted(step.bound_variables)
    hash_table: Optional[dict[tuple, list[Row]]] = None
    for row in rows:
        if hash_table is None:
            # the relation is only materialized once the first row arrives
            hash_table = collections.defaultdict(list)
            for assignment in _atom_assignments(atom, atom.relation_binding(constants)):
                hash_table[_join_key(assignment, join_variables)].append(assignment)
        for assignment in hash_table.get(_join_key(row, join_variables), ()):
            yield row | assignment


def _filter(step: PlanStep, atom: Atom, rows: Iterable[Row], constants: Mapping[Variable, Any]) -> Iterator[Row]:
    join_variables = sorted(step.bound_variables)
    bound_rows: dict[tuple, list[Row]] = collections.defaultdict(list)
    for row in rows:
        bound_rows[_join_key(row, join_variables)].append(row)
    if not bound_rows:
        return

    for assignment in _atom_assignments(atom, atom.relation_binding(constants)):
        for row in bound_rows.get(_join_key(assignment, join_variables), ()):
            yield row | assignment


def _execute_step(step: PlanStep, query: QueryGraph, rows: Iterable[Row]) -> Iterator[Row]:
    atom = query.atom(step.atom)
    match step.strategy:
        case JoinStrategy.Iterate:
            return _iterate(atom, rows)
        case JoinStrategy.Intermediate:
            return _intermediate(step, atom, rows, query.constants())
        case JoinStrategy.Filter:
            return _filter(step, atom, rows, query.constants())
        case _:
            raise ValueError(f"Unknown join strategy: {step.strategy}")


def _execute_plan(plan: JoinPlan, query: QueryGraph, rows: Iterable[Row]) -> Iterator[Row]:
    for step in plan.steps:
        rows = _execute_step(step, query, rows)
    if not plan.branches:
        yield from rows
        return

    for row in rows:
        branch_results: list[list[Row]] = []
        for branch in plan.branches:
            # branches only depend on the cut variables, so each one is evaluated on its own for the current row
            results = list(_execute_plan(branch, query, [row]))
            if not results:
                break
            branch_results.append(results)
        else:
            for combination in itertools.product(*branch_results):
                merged = dict(row)
                for partial_row in combination:
                    merged.update(partial_row)
                yield merged


def execute(plan: JoinPlan, query: QueryGraph) -> Cursor:
    """Evaluates a plan for a query.

    The plan has to be computed for the same query, e.g. by a `JoinOrderPlanner`. The evaluation only starts once the cursor
    is iterated.

    Parameters
    ----------
    plan : JoinPlan
        The plan to evaluate
    query : QueryGraph
        The query that the plan was computed for

    Returns
    -------
    Cursor
        The result rows, each containing all variables of the query (including those bound by constants)
    """
    constants = query.constants()
    return Cursor(lambda: _execute_plan(plan, query, [dict(constants)]), query.variables())


def evaluate(query: QueryGraph, planner: Optional[JoinOrderPlanner] = None) -> Cursor:
    """Plans and evaluates a query in one go. If no planner is given, a default `JoinOrderPlanner` is used."""
    planner = planner if planner is not None else JoinOrderPlanner()
    return execute(planner.plan(query), query)
