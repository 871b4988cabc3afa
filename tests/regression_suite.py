from __future__ import annotations

import abc
import collections
import unittest
from collections.abc import Iterable, Sequence
from typing import Any, Optional

import relbound as rb
from relbound import storage


def _stringify_result_set(result_set: Sequence[tuple]) -> str:
    """Transforms a result set into a string representation.

    Since result sets can become quite large, this cuts the result set to only contain the first 5 values if
    necessary.
    """
    if len(result_set) > 5:
        shortened_result_set = list(result_set[:5])
        return f"result set ({len(result_set)} elements total) :: first 5 = {shortened_result_set}"
    return f"result set ({len(result_set)} elements) :: contents = {list(result_set)}"


def _assert_unordered_result_sets_equal(first_set: Sequence[tuple], second_set: Sequence[tuple]) -> None:
    """Compares two unordered result sets and makes sure they contain exactly the same rows, including duplicates."""
    if collections.Counter(first_set) != collections.Counter(second_set):
        first_set_str = _stringify_result_set(first_set)
        second_set_str = _stringify_result_set(second_set)
        raise AssertionError(f"Result sets differ: {first_set_str} vs. {second_set_str}")


def _assert_ordered_result_sets_equal(first_set: Sequence[tuple], second_set: Sequence[tuple]) -> None:
    """Compares two ordered results sets and makes sure they contain exactly the same rows in exactly the same order."""
    for cursor, row in enumerate(first_set):
        comparison_row = second_set[cursor]
        if row != comparison_row:
            first_set_str = _stringify_result_set(first_set)
            second_set_str = _stringify_result_set(second_set)
            raise AssertionError(f"Result sets differ: {first_set_str} vs {second_set_str}")


class ResultSetTestCase(unittest.TestCase, abc.ABC):
    """Abstract test case that provides assertions on the result sets of evaluated queries."""

    def assertResultSetsEqual(self, first_set: Iterable[tuple], second_set: Iterable[tuple], *,
                              ordered: bool = False) -> None:
        """Assertion that fails if the two result sets differ.

        Ordering can be accounted for by the `ordered` argument. By default, result sets are assumed to be unordered.
        """
        first_set, second_set = list(first_set), list(second_set)
        if len(first_set) != len(second_set):
            first_set_str = _stringify_result_set(first_set)
            second_set_str = _stringify_result_set(second_set)
            raise AssertionError(f"Result sets have different length: {first_set_str} and {second_set_str}")

        if ordered:
            _assert_ordered_result_sets_equal(first_set, second_set)
        else:
            _assert_unordered_result_sets_equal(first_set, second_set)


def brute_force_join(query: rb.QueryGraph) -> list[tuple]:
    """Computes the result of a query by a nested-loop join over the full relations, in declaration order.

    This intentionally ignores all access paths, estimates and plans and serves as the reference result.
    """
    rows: list[dict] = [dict(query.constants())]
    for atom in query.atoms():
        relation_tuples = list(atom.relation.lookup({}).tuples)
        extended_rows = []
        for row in rows:
            for relation_tuple in relation_tuples:
                assignment = atom.variable_binding(relation_tuple)
                if assignment is None:
                    continue
                if any(var in row and row[var] != value for var, value in assignment.items()):
                    continue
                extended_rows.append(row | assignment)
        rows = extended_rows
    return [tuple(row[var] for var in query.variables()) for row in rows]


class RecordingHandle:
    """Storage handle that forwards all calls to another handle and remembers them."""

    def __init__(self, handle: rb.StorageHandle) -> None:
        self.handle = handle
        self.calls: list[tuple[str, tuple, Optional[int]]] = []

    def estimate(self, prefix: tuple, *, position: Optional[int] = None) -> int | float:
        self.calls.append(("estimate", prefix, position))
        return self.handle.estimate(prefix, position=position)

    def scan(self, prefix: tuple, *, position: Optional[int] = None):
        self.calls.append(("scan", prefix, position))
        return self.handle.scan(prefix, position=position)


class RecordingStatisticsHandle(RecordingHandle):
    """Recording handle that also forwards the key statistics of a `MemoryTable`."""

    def max_frequency(self, prefix_length: int) -> int | float:
        self.calls.append(("max_frequency", (), prefix_length))
        return self.handle.max_frequency(prefix_length)


def make_table(name: str, attributes: Sequence[str], rows: Iterable[Sequence[Any]], *, sorted_prefix: int = 0,
               constraints: Iterable[rb.DegreeConstraint] = ()) -> rb.TableRelation:
    """Creates a relation that is backed by a single in-memory table. All attributes are typed as ``int``."""
    source = storage.table_source(rows, attributes, sorted_prefix=sorted_prefix)
    return rb.TableRelation(name, attributes, [int] * len(attributes), [source], constraints=constraints)


def tree_query() -> rb.QueryGraph:
    """Provides a chain of five atoms whose middle atom is much smaller than all others.

    The atoms are R1(a, b) - R2(b, c) - M(c, d) - R3(d, e) - R4(e, f). Resolving M first cuts the remaining atoms into the
    components {R1, R2} and {R3, R4}.
    """
    r1 = make_table("R1", ["a", "b"], [(i, i % 5) for i in range(20)], sorted_prefix=1)
    r2 = make_table("R2", ["b", "c"], [(i % 5, i % 7) for i in range(30)], sorted_prefix=1)
    m = make_table("M", ["c", "d"], [(1, 2), (3, 4)], sorted_prefix=1)
    r3 = make_table("R3", ["d", "e"], [(i % 6, i % 4) for i in range(24)], sorted_prefix=1)
    r4 = make_table("R4", ["e", "f"], [(i % 4, i) for i in range(10)], sorted_prefix=1)
    atoms = [rb.Atom(r1, {"a": "a", "b": "b"}),
             rb.Atom(r2, {"b": "b", "c": "c"}),
             rb.Atom(m, {"c": "c", "d": "d"}),
             rb.Atom(r3, {"d": "d", "e": "e"}),
             rb.Atom(r4, {"e": "e", "f": "f"})]
    return rb.QueryGraph(atoms)


def chain_query() -> rb.QueryGraph:
    """Provides a chain of three atoms S(x, y) - T(y, z) - U(z, w) without any constants."""
    s = make_table("S", ["x", "y"], [(i, i % 4) for i in range(12)], sorted_prefix=1)
    t = make_table("T", ["y", "z"], [(i % 4, i % 3) for i in range(9)])
    u = make_table("U", ["z", "w"], [(i % 3, i) for i in range(15)], sorted_prefix=1)
    atoms = [rb.Atom(s, {"x": "x", "y": "y"}),
             rb.Atom(t, {"y": "y", "z": "z"}),
             rb.Atom(u, {"z": "z", "w": "w"})]
    return rb.QueryGraph(atoms)
