"""Tests for atoms and the query graph."""
from __future__ import annotations

import unittest

import relbound as rb

from tests import regression_suite


a, b, c, d, x = (rb.Variable(name) for name in "abcdx")


class AtomTests(unittest.TestCase):
    def setUp(self) -> None:
        self.relation = regression_suite.make_table("R", ["p", "q", "r"], [(1, 1, 2), (1, 2, 3)])

    def test_bindings(self) -> None:
        atom = rb.Atom(self.relation, {"a": "p", x: ("q", "r")})
        self.assertEqual(atom.variables(), (a, x))
        self.assertEqual(atom.attributes_of("x"), ("q", "r"))
        self.assertEqual(atom.attributes([x, b]), frozenset({"q", "r"}))
        self.assertIn(a, atom)
        self.assertNotIn(b, atom)
        self.assertEqual(atom.label, "R(p=a, q=x, r=x)")

    def test_relation_binding(self) -> None:
        atom = rb.Atom(self.relation, {"a": "p", "x": ("q", "r")})
        self.assertEqual(atom.relation_binding({x: 5, b: 7}), {"q": 5, "r": 5})

    def test_variable_binding(self) -> None:
        atom = rb.Atom(self.relation, {"a": "p", "x": ("q", "r")})
        self.assertEqual(atom.variable_binding((3, 4, 4)), {a: 3, x: 4})
        self.assertIsNone(atom.variable_binding((3, 4, 5)))

    def test_unknown_attribute(self) -> None:
        with self.assertRaises(ValueError):
            rb.Atom(self.relation, {"a": "s"})

    def test_attribute_bound_twice(self) -> None:
        with self.assertRaises(ValueError):
            rb.Atom(self.relation, {"a": "p", "b": ("q", "p")})

    def test_empty_bindings(self) -> None:
        with self.assertRaises(ValueError):
            rb.Atom(self.relation, {})
        with self.assertRaises(ValueError):
            rb.Atom(self.relation, {"a": ()})


class QueryGraphTests(unittest.TestCase):
    def test_structure(self) -> None:
        query = regression_suite.tree_query()
        self.assertEqual(len(query), 5)
        self.assertTrue(query.is_connected())
        self.assertEqual([var.name for var in query.variables()], ["a", "b", "c", "d", "e", "f"])
        self.assertEqual(query.neighbors(2), [1, 3])
        self.assertEqual(query.shared_variables(1, 2), frozenset({c}))
        self.assertEqual(query.shared_variables(0, 4), frozenset())
        self.assertEqual(query.atoms_with(b), [0, 1])
        self.assertEqual(query.nx_graph().number_of_edges(), 4)

    def test_components(self) -> None:
        query = regression_suite.tree_query()
        self.assertEqual(query.components(range(5)), [frozenset(range(5))])
        self.assertEqual(query.components([0, 1, 3, 4], bound=[c, d]), [frozenset({0, 1}), frozenset({3, 4})])
        self.assertEqual(query.components([0, 1, 2], bound=[b]), [frozenset({0}), frozenset({1, 2})])

    def test_constants(self) -> None:
        query = rb.QueryGraph(regression_suite.tree_query().atoms(), constants={"c": 3})
        self.assertEqual(query.constants(), {c: 3})
        with self.assertRaises(TypeError):
            query.constants()[c] = 4
        self.assertIn("c=3", str(query))

    def test_invalid_queries(self) -> None:
        with self.assertRaises(ValueError):
            rb.QueryGraph([])
        with self.assertRaises(ValueError):
            rb.QueryGraph(regression_suite.chain_query().atoms(), constants={"q": 1})


if __name__ == "__main__":
    unittest.main()
