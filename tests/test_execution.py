"""Tests for plan execution. All results are compared against a brute-force nested-loop join."""
from __future__ import annotations

import dataclasses
import unittest

import relbound as rb
from relbound import storage

from tests import regression_suite


def _force_strategy(plan: rb.JoinPlan, strategy: rb.JoinStrategy) -> rb.JoinPlan:
    """Rewrites all steps of a plan (including its branches) to use a specific join strategy."""
    steps = tuple(dataclasses.replace(step, strategy=strategy) for step in plan.steps)
    branches = tuple(_force_strategy(branch, strategy) for branch in plan.branches)
    return dataclasses.replace(plan, steps=steps, branches=branches)


class DisconnectedExecutionTests(regression_suite.ResultSetTestCase):
    def test_tree_query_matches_brute_force(self) -> None:
        query = regression_suite.tree_query()
        plan = rb.JoinOrderPlanner().plan(query)
        self.assertTrue(plan.is_split())

        result = rb.execute(plan, query)
        expected = regression_suite.brute_force_join(query)
        self.assertGreater(len(expected), 0)
        self.assertResultSetsEqual(result.tuples(), expected)

    def test_isolated_atom_is_cross_product(self) -> None:
        lonely = regression_suite.make_table("L", ["k"], [(1,), (2,)])
        chain = regression_suite.chain_query()
        query = rb.QueryGraph(list(chain.atoms()) + [rb.Atom(lonely, {"k": "k"})])

        result = list(rb.evaluate(query).tuples())
        self.assertResultSetsEqual(result, regression_suite.brute_force_join(query))
        self.assertEqual(len(result), 2 * len(regression_suite.brute_force_join(chain)))

    def test_empty_branch(self) -> None:
        empty = regression_suite.make_table("E", ["k"], [])
        chain = regression_suite.chain_query()
        query = rb.QueryGraph(list(chain.atoms()) + [rb.Atom(empty, {"k": "k"})])
        self.assertEqual(list(rb.evaluate(query)), [])


class StrategyEquivalenceTests(regression_suite.ResultSetTestCase):
    def test_all_strategies_agree(self) -> None:
        for query in (regression_suite.chain_query(), regression_suite.tree_query()):
            plan = rb.JoinOrderPlanner().plan(query)
            expected = regression_suite.brute_force_join(query)
            for strategy in rb.JoinStrategy:
                with self.subTest(query=str(query), strategy=strategy):
                    result = rb.execute(_force_strategy(plan, strategy), query)
                    self.assertResultSetsEqual(result.tuples(), expected)

    def test_strategies_with_constants(self) -> None:
        query = regression_suite.chain_query()
        query = rb.QueryGraph(query.atoms(), constants={"z": 1})
        plan = rb.JoinOrderPlanner().plan(query)
        expected = regression_suite.brute_force_join(query)
        self.assertTrue(all(row[2] == 1 for row in expected))
        for strategy in rb.JoinStrategy:
            with self.subTest(strategy=strategy):
                self.assertResultSetsEqual(rb.execute(_force_strategy(plan, strategy), query).tuples(), expected)


class BindingSemanticsTests(regression_suite.ResultSetTestCase):
    def test_constants(self) -> None:
        relation = regression_suite.make_table("R", ["a", "b"], [(i % 3, i) for i in range(9)], sorted_prefix=1)
        query = rb.QueryGraph([rb.Atom(relation, {"x": "a", "y": "b"})], constants={"x": 2})
        self.assertResultSetsEqual(rb.evaluate(query).tuples(), [(2, 2), (2, 5), (2, 8)])

    def test_repeated_variable(self) -> None:
        relation = regression_suite.make_table("R", ["a", "b"], [(1, 1), (1, 2), (3, 3)])
        query = rb.QueryGraph([rb.Atom(relation, {"x": ("a", "b")})])
        self.assertResultSetsEqual(rb.evaluate(query).tuples(), [(1,), (3,)])
        self.assertResultSetsEqual(rb.evaluate(query).tuples(), regression_suite.brute_force_join(query))

    def test_duplicate_tuples(self) -> None:
        relation = regression_suite.make_table("R", ["a"], [(1,), (1,)])
        other = regression_suite.make_table("S", ["a", "b"], [(1, 5)])
        query = rb.QueryGraph([rb.Atom(relation, {"x": "a"}), rb.Atom(other, {"x": "a", "y": "b"})])
        self.assertResultSetsEqual(rb.evaluate(query).tuples(), [(1, 5), (1, 5)])

    def test_stream_join(self) -> None:
        stream = rb.TableRelation("log", ["k", "v"], [int, str],
                                  [storage.stream_source([(1, "a"), (2, "b"), (1, "c")], ["k", "v"])])
        table = regression_suite.make_table("T", ["k"], [(1,), (3,)])
        query = rb.QueryGraph([rb.Atom(stream, {"k": "k", "v": "v"}), rb.Atom(table, {"k": "k"})])
        self.assertResultSetsEqual(rb.evaluate(query).tuples(), [(1, "a"), (1, "c")])


class CursorTests(regression_suite.ResultSetTestCase):
    def test_cursor_is_restartable(self) -> None:
        cursor = rb.evaluate(regression_suite.chain_query())
        self.assertResultSetsEqual(cursor.tuples(), cursor.tuples())
        self.assertGreater(len(list(cursor)), 0)

    def test_cursor_projection(self) -> None:
        query = regression_suite.chain_query()
        cursor = rb.evaluate(query)
        self.assertEqual(cursor.variables, query.variables())
        self.assertResultSetsEqual(cursor.tuples(["w", "x"]),
                                   [(row[3], row[0]) for row in regression_suite.brute_force_join(query)])

    def test_rows_contain_all_variables(self) -> None:
        query = rb.QueryGraph(regression_suite.chain_query().atoms(), constants={"y": 1})
        for row in rb.evaluate(query):
            self.assertEqual(set(row), set(query.variables()))


if __name__ == "__main__":
    unittest.main()
