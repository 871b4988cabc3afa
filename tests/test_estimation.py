"""Tests for the cardinality estimator."""
from __future__ import annotations

import unittest

import relbound as rb
from relbound import storage

from tests import regression_suite


def _recorded_relation(constraints=(), *, sorted_prefix: int = 0,
                       statistics: bool = False) -> tuple[rb.TableRelation, regression_suite.RecordingHandle]:
    rows = [(i % 10, i, i % 3) for i in range(30)]
    handle_type = regression_suite.RecordingStatisticsHandle if statistics else regression_suite.RecordingHandle
    handle = handle_type(storage.MemoryTable(rows, sort_key=range(sorted_prefix)))
    source = rb.Source(rb.SourceKind.Table, handle, ["a", "b", "c"], sorted_prefix=sorted_prefix)
    relation = rb.TableRelation("R", ["a", "b", "c"], [int, int, int], [source], constraints=constraints)
    return relation, handle


x, y, z = rb.Variable("x"), rb.Variable("y"), rb.Variable("z")


class DegreeEstimateTests(unittest.TestCase):
    def test_functional_dependency_without_source_lookup(self) -> None:
        relation, handle = _recorded_relation([rb.DegreeConstraint.functional_dependency(["a"], ["b"])])
        query = rb.QueryGraph([rb.Atom(relation, {x: "a", y: "b"})])
        estimator = rb.CardinalityEstimator()

        for binding in (rb.Binding(symbolic=[x]), rb.Binding({x: 4})):
            estimate = estimator.estimate(query, binding, 0, y)
            self.assertLessEqual(estimate.cardinality, 1)
            self.assertEqual(estimate.method, rb.EstimationMethod.Degree)
        self.assertEqual(handle.calls, [])

    def test_tightest_constraint_wins(self) -> None:
        loose = rb.DegreeConstraint(0, 5, ["a"], ["b"])
        tight = rb.DegreeConstraint(0, 3, ["a", "c"], ["b"])
        relation, _ = _recorded_relation([loose, tight])
        query = rb.QueryGraph([rb.Atom(relation, {x: "a", y: "b", z: "c"})])

        estimate = rb.CardinalityEstimator().estimate(query, rb.Binding(symbolic=[x, z]), 0, y)
        self.assertEqual(estimate.cardinality, 3)
        self.assertIs(estimate.constraint, tight)

    def test_ties_prefer_smaller_domain(self) -> None:
        wide = rb.DegreeConstraint(0, 5, ["a", "c"], ["b"])
        narrow = rb.DegreeConstraint(0, 5, ["a"], ["b"])
        relation, _ = _recorded_relation([wide, narrow])
        query = rb.QueryGraph([rb.Atom(relation, {x: "a", y: "b", z: "c"})])

        estimate = rb.CardinalityEstimator().estimate(query, rb.Binding(symbolic=[x, z]), 0, y)
        self.assertIs(estimate.constraint, narrow)

    def test_ties_prefer_declaration_order(self) -> None:
        first = rb.DegreeConstraint(0, 5, ["a"], ["b"])
        second = rb.DegreeConstraint(1, 5, ["c"], ["b"])
        relation, _ = _recorded_relation([first, second])
        query = rb.QueryGraph([rb.Atom(relation, {x: "a", y: "b", z: "c"})])

        estimate = rb.CardinalityEstimator().estimate(query, rb.Binding(symbolic=[x, z]), 0, y)
        self.assertIs(estimate.constraint, first)

    def test_unbound_domain_does_not_apply(self) -> None:
        relation, _ = _recorded_relation([rb.DegreeConstraint.functional_dependency(["a"], ["b"])])
        query = rb.QueryGraph([rb.Atom(relation, {x: "a", y: "b"})])
        estimate = rb.CardinalityEstimator().estimate(query, rb.Binding(), 0, y)
        self.assertEqual(estimate.method, rb.EstimationMethod.Scan)
        self.assertEqual(estimate.cardinality, 30)


class IndexEstimateTests(unittest.TestCase):
    def test_exact_index_count(self) -> None:
        relation, handle = _recorded_relation([rb.DegreeConstraint(0, 10, ["a"], ["b"])], sorted_prefix=1)
        query = rb.QueryGraph([rb.Atom(relation, {x: "a", y: "b"})], constants={x: 4})

        estimate = rb.CardinalityEstimator().estimate(query, rb.Binding.of(query.constants()), 0, y)
        self.assertEqual(estimate.method, rb.EstimationMethod.Index)
        self.assertEqual(estimate.cardinality, 3)
        self.assertEqual(estimate.index_key, ("a",))
        self.assertNotIn("scan", [call[0] for call in handle.calls])

    def test_symbolic_values_without_statistics(self) -> None:
        relation, handle = _recorded_relation([rb.DegreeConstraint(0, 10, ["a"], ["b"])], sorted_prefix=1)
        query = rb.QueryGraph([rb.Atom(relation, {x: "a", y: "b"})])

        estimate = rb.CardinalityEstimator().estimate(query, rb.Binding(symbolic=[x]), 0, y)
        self.assertEqual(estimate.method, rb.EstimationMethod.Degree)
        self.assertEqual(estimate.cardinality, 10)
        self.assertEqual(handle.calls, [])

    def test_symbolic_values_use_key_statistics(self) -> None:
        relation, handle = _recorded_relation([rb.DegreeConstraint(0, 10, ["a"], ["b"])], sorted_prefix=1, statistics=True)
        query = rb.QueryGraph([rb.Atom(relation, {x: "a", y: "b"})])

        estimate = rb.CardinalityEstimator().estimate(query, rb.Binding(symbolic=[x]), 0, y)
        # every a value occurs three times
        self.assertEqual(estimate.method, rb.EstimationMethod.Index)
        self.assertEqual(estimate.cardinality, 3)
        self.assertEqual(estimate.index_key, ("a",))
        self.assertEqual([call[0] for call in handle.calls], ["max_frequency"])

    def test_tighter_constraint_beats_key_statistics(self) -> None:
        relation, _ = _recorded_relation([rb.DegreeConstraint.functional_dependency(["a"], ["b"])], sorted_prefix=1,
                                         statistics=True)
        query = rb.QueryGraph([rb.Atom(relation, {x: "a", y: "b"})])

        estimate = rb.CardinalityEstimator().estimate(query, rb.Binding(symbolic=[x]), 0, y)
        self.assertEqual(estimate.method, rb.EstimationMethod.Degree)
        self.assertEqual(estimate.cardinality, 1)

    def test_non_exact_index_is_ignored(self) -> None:
        relation, _ = _recorded_relation(sorted_prefix=1)
        query = rb.QueryGraph([rb.Atom(relation, {x: "a", y: "b", z: "c"})], constants={x: 4, z: 1})

        estimate = rb.CardinalityEstimator().estimate(query, rb.Binding.of(query.constants()), 0, y)
        self.assertEqual(estimate.method, rb.EstimationMethod.Scan)


class ScanEstimateTests(unittest.TestCase):
    def test_full_extent(self) -> None:
        relation, _ = _recorded_relation()
        query = rb.QueryGraph([rb.Atom(relation, {x: "a"})])
        estimate = rb.CardinalityEstimator().estimate(query, rb.Binding(), 0, x)
        self.assertEqual(estimate.method, rb.EstimationMethod.Scan)
        self.assertEqual(estimate.cardinality, 30)

    def test_streams_are_unbounded(self) -> None:
        stream = storage.stream_source([(1,), (2,)], ["a"])
        relation = rb.TableRelation("S", ["a"], [int], [stream])
        query = rb.QueryGraph([rb.Atom(relation, {x: "a"})])
        estimate = rb.CardinalityEstimator().estimate(query, rb.Binding(), 0, x)
        self.assertTrue(estimate.cardinality.isinf())


class AtomEstimateTests(unittest.TestCase):
    def test_cheapest_variable(self) -> None:
        relation, _ = _recorded_relation([rb.DegreeConstraint(0, 4, [], ["c"])])
        query = rb.QueryGraph([rb.Atom(relation, {x: "a", y: "b", z: "c"})])
        estimate = rb.CardinalityEstimator().estimate_atom(query, rb.Binding(), 0)
        self.assertEqual(estimate.variable, z)
        self.assertEqual(estimate.cardinality, 4)
        self.assertEqual(estimate.unbound, 3)

    def test_ties_prefer_declaration_order(self) -> None:
        relation, _ = _recorded_relation()
        query = rb.QueryGraph([rb.Atom(relation, {y: "b", x: "a"})])
        estimate = rb.CardinalityEstimator().estimate_atom(query, rb.Binding(), 0)
        self.assertEqual(estimate.variable, y)

    def test_fully_bound_atom(self) -> None:
        relation, _ = _recorded_relation()
        query = rb.QueryGraph([rb.Atom(relation, {x: "a", y: "b"})])
        estimate = rb.CardinalityEstimator().estimate_atom(query, rb.Binding(symbolic=[x, y]), 0)
        self.assertIsNone(estimate.variable)
        self.assertEqual(estimate.cardinality, 1)
        self.assertEqual(estimate.unbound, 0)

    def test_foreign_variable(self) -> None:
        relation, _ = _recorded_relation()
        query = rb.QueryGraph([rb.Atom(relation, {x: "a"})])
        with self.assertRaises(ValueError):
            rb.CardinalityEstimator().estimate(query, rb.Binding(), 0, y)

class OutputEstimateTests(unittest.TestCase):
    def test_product_of_variable_estimates(self) -> None:
        relation, _ = _recorded_relation([rb.DegreeConstraint(0, 2, ["a"], ["b"]), rb.DegreeConstraint(0, 3, ["a"], ["c"])])
        query = rb.QueryGraph([rb.Atom(relation, {x: "a", y: "b", z: "c"})])
        output = rb.CardinalityEstimator().estimate_output(query, rb.Binding(symbolic=[x]), 0)
        self.assertEqual(output, 6)

    def test_capped_by_extent(self) -> None:
        relation, _ = _recorded_relation()
        query = rb.QueryGraph([rb.Atom(relation, {x: "a", y: "b", z: "c"})])
        output = rb.CardinalityEstimator().estimate_output(query, rb.Binding(), 0)
        self.assertEqual(output, 30)

    def test_capped_by_key_statistics(self) -> None:
        relation, _ = _recorded_relation(sorted_prefix=1, statistics=True)
        query = rb.QueryGraph([rb.Atom(relation, {x: "a", y: "b", z: "c"})])
        output = rb.CardinalityEstimator().estimate_output(query, rb.Binding(symbolic=[x]), 0)
        self.assertEqual(output, 3)

    def test_exact_lookup_count(self) -> None:
        relation, _ = _recorded_relation(sorted_prefix=1)
        query = rb.QueryGraph([rb.Atom(relation, {x: "a", y: "b", z: "c"})], constants={x: 4})
        output = rb.CardinalityEstimator().estimate_output(query, rb.Binding.of(query.constants()), 0)
        self.assertEqual(output, 3)

    def test_fully_bound_atom(self) -> None:
        relation, _ = _recorded_relation()
        query = rb.QueryGraph([rb.Atom(relation, {x: "a", y: "b"})])
        output = rb.CardinalityEstimator().estimate_output(query, rb.Binding(symbolic=[x, y]), 0)
        self.assertEqual(output, 1)



class BindingTests(unittest.TestCase):
    def test_binding_states(self) -> None:
        binding = rb.Binding.of({x: 1}).bind([y])
        self.assertTrue(binding.is_bound(x))
        self.assertTrue(binding.is_known(x))
        self.assertTrue(binding.is_bound(y))
        self.assertFalse(binding.is_known(y))
        self.assertFalse(binding.is_bound(z))
        self.assertEqual(binding.bound_variables(), frozenset({x, y}))
        self.assertEqual(binding.known_values(), {x: 1})

    def test_binding_is_immutable(self) -> None:
        binding = rb.Binding()
        binding.bind([x])
        self.assertFalse(binding.is_bound(x))

    def test_binding_str(self) -> None:
        self.assertEqual(str(rb.Binding.of({x: 1}).bind([z, y])), "{x: 1} + [y, z]")
        self.assertEqual(str(rb.Binding()), "{}")


if __name__ == "__main__":
    unittest.main()
