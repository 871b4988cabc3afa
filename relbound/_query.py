"""The query graph is the interface between a query front end and the planner.

A conjunctive query is a list of atoms. Each atom references a relation and maps query variables to attributes of that
relation. Atoms that share a variable are connected in the query graph. Additionally, the front end can supply constant
values for some of the variables.

The graph is stored as a networkx graph whose nodes are the atom indices. Each edge carries the set of variables that are
shared by its endpoints in the *variables* attribute.
"""
from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Optional

import networkx as nx

from ._relations import Relation
from .util import networkx as nx_utils
from .util.dicts import frozendict


@dataclass(frozen=True, order=True)
class Variable:
    """A query variable. Variables are identified by their name only."""
    name: str

    def __str__(self) -> str:
        return self.name


def _as_variable(variable: Variable | str) -> Variable:
    return variable if isinstance(variable, Variable) else Variable(variable)


class Atom:
    """An atom references a relation and binds some of its attributes to query variables.

    A variable can be mapped to multiple attributes of the same relation. In this case, all these attributes have to
    contain the same value for a tuple to match.

    Parameters
    ----------
    relation : Relation
        The relation that provides the tuples of the atom
    bindings : Mapping[Variable | str, str | Sequence[str]]
        The attribute(s) that each variable refers to. Variables can also be given by their name.

    Raises
    ------
    ValueError
        If an attribute does not belong to the relation, if an attribute is mapped to more than one variable, or if the atom
        does not bind any variable.
    """

    def __init__(self, relation: Relation, bindings: Mapping[Variable | str, str | Sequence[str]]) -> None:
        self._relation = relation
        self._bindings: dict[Variable, tuple[str, ...]] = {}
        seen_attributes: set[str] = set()
        for variable, attributes in bindings.items():
            attributes = (attributes,) if isinstance(attributes, str) else tuple(attributes)
            if not attributes:
                raise ValueError(f"Variable {variable} is not mapped to any attribute of {relation}")
            for attr in attributes:
                if attr not in relation.attribute_names():
                    raise ValueError(f"Attribute {attr} does not belong to relation {relation}")
                if attr in seen_attributes:
                    raise ValueError(f"Attribute {attr} of relation {relation} is bound to multiple variables")
                seen_attributes.add(attr)
            self._bindings[_as_variable(variable)] = attributes
        if not self._bindings:
            raise ValueError(f"Atom over {relation} does not bind any variables")

    @property
    def relation(self) -> Relation:
        return self._relation

    @property
    def label(self) -> str:
        """Get a short description of the atom for diagnostic purposes."""
        bindings = ", ".join(f"{attr}={var}" for var, attributes in self._bindings.items() for attr in attributes)
        return f"{self._relation.name}({bindings})"

    def variables(self) -> tuple[Variable, ...]:
        """Provides all variables of the atom in declaration order."""
        return tuple(self._bindings)

    def attributes_of(self, variable: Variable | str) -> tuple[str, ...]:
        """Provides the attributes that a variable is mapped to.

        Raises
        ------
        KeyError
            If the variable does not occur in the atom
        """
        return self._bindings[_as_variable(variable)]

    def attributes(self, variables: Iterable[Variable]) -> frozenset[str]:
        """Provides all attributes that are mapped to any of the given variables. Foreign variables are ignored."""
        return frozenset(attr for var in variables for attr in self._bindings.get(var, ()))

    def relation_binding(self, values: Mapping[Variable, Any]) -> dict[str, Any]:
        """Translates a variable assignment into an assignment of relation attributes. Foreign variables are ignored."""
        return {attr: values[var] for var, attributes in self._bindings.items() if var in values for attr in attributes}

    def variable_binding(self, row: Sequence) -> Optional[dict[Variable, Any]]:
        """Translates a relation tuple into a variable assignment.

        Returns
        -------
        Optional[dict[Variable, Any]]
            The assignment, or ``None`` if the tuple maps a variable to multiple distinct values.
        """
        attribute_names = self._relation.attribute_names()
        assignment: dict[Variable, Any] = {}
        for var, attributes in self._bindings.items():
            values = {row[attribute_names.index(attr)] for attr in attributes} if len(attributes) > 1 else None
            if values is not None and len(values) > 1:
                return None
            assignment[var] = row[attribute_names.index(attributes[0])]
        return assignment

    def __contains__(self, variable: object) -> bool:
        return variable in self._bindings

    def __repr__(self) -> str:
        return f"Atom({self.label})"

    def __str__(self) -> str:
        return self.label


class QueryGraph:
    """The query graph connects all atoms that share a variable.

    Query graphs are transient: they are built by the front end for a single query and are never modified afterwards. The
    planner only keeps track of bound variables in separate data structures.

    Parameters
    ----------
    atoms : Sequence[Atom]
        The atoms of the query. Their position in this sequence is their index in the graph and determines the declaration
        order that is used for tie-breaking.
    constants : Optional[Mapping[Variable | str, Any]], optional
        Values for variables that are fixed by the query

    Raises
    ------
    ValueError
        If the query does not contain any atoms, or if a constant refers to a variable that no atom uses.
    """

    def __init__(self, atoms: Sequence[Atom], constants: Optional[Mapping[Variable | str, Any]] = None) -> None:
        self._atoms = tuple(atoms)
        if not self._atoms:
            raise ValueError("Query graph requires at least one atom")

        variables: dict[Variable, None] = {}
        for atom in self._atoms:
            variables.update(dict.fromkeys(atom.variables()))
        self._variables = tuple(variables)

        self._constants = frozendict({_as_variable(var): value for var, value in (constants or {}).items()})
        unknown_variables = [var for var in self._constants if var not in variables]
        if unknown_variables:
            raise ValueError(f"Constants refer to unknown variables: {unknown_variables}")

        self._graph = nx.Graph()
        self._graph.add_nodes_from(range(len(self._atoms)))
        for i, atom in enumerate(self._atoms):
            for j in range(i + 1, len(self._atoms)):
                shared = frozenset(atom.variables()) & frozenset(self._atoms[j].variables())
                if shared:
                    self._graph.add_edge(i, j, variables=shared)

    def atoms(self) -> tuple[Atom, ...]:
        return self._atoms

    def atom(self, index: int) -> Atom:
        return self._atoms[index]

    def variables(self) -> tuple[Variable, ...]:
        """Provides all variables of the query, in order of their first occurrence."""
        return self._variables

    def constants(self) -> frozendict[Variable, Any]:
        return self._constants

    def shared_variables(self, first: int, second: int) -> frozenset[Variable]:
        """Provides the variables that two atoms have in common. Unconnected atoms share no variables."""
        if not self._graph.has_edge(first, second):
            return frozenset()
        return self._graph.edges[first, second]["variables"]

    def neighbors(self, index: int) -> list[int]:
        """Provides the indices of all atoms that share at least one variable with an atom, in declaration order."""
        return sorted(self._graph.neighbors(index))

    def atoms_with(self, variable: Variable) -> list[int]:
        """Provides the indices of all atoms that use a variable."""
        return [index for index, atom in enumerate(self._atoms) if variable in atom]

    def components(self, among: Iterable[int], *, bound: Collection[Variable] = ()) -> list[frozenset[int]]:
        """Determines the connected components of a subset of the atoms.

        Atoms are only considered connected if they share a variable that is not bound yet. Bound variables do not link
        atoms anymore, since their values are already fixed when the atoms are resolved.

        Parameters
        ----------
        among : Iterable[int]
            The indices of the atoms to consider
        bound : Collection[Variable], optional
            Variables that are already bound

        Returns
        -------
        list[frozenset[int]]
            The components, ordered by their smallest atom index
        """
        bound = frozenset(bound)

        def linked(first: int, second: int, data: dict) -> bool:
            return bool(data["variables"] - bound)

        return nx_utils.nx_connected_subsets(self._graph, among, edge_filter=linked)

    def is_connected(self) -> bool:
        return nx.is_connected(self._graph)

    def nx_graph(self) -> nx.Graph:
        """Provides a copy of the underlying networkx graph."""
        return self._graph.copy()

    def __len__(self) -> int:
        return len(self._atoms)

    def __repr__(self) -> str:
        return str(self)

    def __str__(self) -> str:
        atoms = ", ".join(atom.label for atom in self._atoms)
        constants = ", ".join(f"{var}={value!r}" for var, value in self._constants.items())
        return f"{atoms} | {constants}" if constants else atoms
