"""Relations combine one or more sources with degree constraints into a queryable unit.

All relations implement the same small capability surface: they provide their attribute names and types, their degree
constraints and a `lookup` operation that produces the tuples matching a partial binding of the attributes. Two concrete
variants exist: `TableRelation` is backed by actual sources, while `ReorderedView` presents an existing table relation with
a different attribute order without copying any data.
"""
from __future__ import annotations

import abc
from collections.abc import Callable, Collection, Iterable, Iterator, Mapping, Sequence
from typing import Any, NamedTuple, Optional

from ._constraints import DegreeConstraint
from ._core import Cardinality, SchemaError
from ._sources import IndexMatch, Source
from .util import collections as collection_utils


class TupleSequence(Iterable[tuple]):
    """A lazily produced sequence of tuples.

    The tuples are only computed when the sequence is iterated. Each new iteration restarts the production from scratch, so
    the sequence can be consumed as often as necessary. Ceasing to iterate is enough to abandon the sequence.

    Parameters
    ----------
    producer : Callable[[], Iterator[tuple]]
        Creates a fresh iterator over the tuples
    finite : bool, optional
        Whether the iteration is bounded. This is false for sequences that are backed by streams.
    """

    def __init__(self, producer: Callable[[], Iterator[tuple]], *, finite: bool = True) -> None:
        self._producer = producer
        self._finite = finite

    def is_finite(self) -> bool:
        return self._finite

    def __iter__(self) -> Iterator[tuple]:
        return iter(self._producer())

    def __repr__(self) -> str:
        return f"TupleSequence(finite={self._finite})"


class LookupResult(NamedTuple):
    """The result of a relation lookup: the (estimated) number of tuples along with the lazy tuples themselves."""
    cardinality: Cardinality
    tuples: TupleSequence


class Relation(abc.ABC):
    """The basic interface that all relations provide.

    Relations are read-only once they have been created. All operations are safe to be called by concurrently running
    queries.

    Parameters
    ----------
    name : str
        A name of the relation. It is only used for diagnostic purposes and does not need to be unique.
    """

    def __init__(self, name: str) -> None:
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @abc.abstractmethod
    def attribute_names(self) -> tuple[str, ...]:
        """Provides the names of the attributes of the relation, in tuple order."""
        raise NotImplementedError

    @abc.abstractmethod
    def attribute_types(self) -> tuple:
        """Provides the types of the attributes of the relation. The types are never checked by relbound."""
        raise NotImplementedError

    @abc.abstractmethod
    def degree_constraints(self) -> tuple[DegreeConstraint, ...]:
        """Provides all degree constraints that hold on the relation, in declaration order."""
        raise NotImplementedError

    @abc.abstractmethod
    def lookup(self, binding: Mapping[str, Any]) -> LookupResult:
        """Determines all tuples of the relation that match a partial binding of its attributes.

        Parameters
        ----------
        binding : Mapping[str, Any]
            Values for some of the attributes of the relation. The empty binding produces the entire relation.

        Returns
        -------
        LookupResult
            The number of tuples along with the lazy tuples. The number is exact if the bound attributes match an index of
            the relation exactly, an upper bound otherwise. The tuples are produced in `attribute_names` order.

        Raises
        ------
        ValueError
            If the binding contains attributes that do not belong to the relation
        """
        raise NotImplementedError

    def index_match(self, bound_attributes: Collection[str]) -> Optional[IndexMatch]:
        """Determines the best index that the relation provides for a set of bound attributes.

        Relations without any bisectable access path always return ``None``.
        """
        return None

    def key_frequency(self, bound_attributes: Collection[str]) -> Optional[Cardinality]:
        """Bounds how many tuples can share the same values on some bound attributes, without knowing these values.

        The bound is only available if the bound attributes exactly match an index key of the relation and the access path
        keeps statistics about its keys. Otherwise, ``None`` is returned.
        """
        return None

    def extent(self) -> Cardinality:
        """Provides the total number of tuples in the relation. Unbounded relations return an infinite cardinality."""
        return self.lookup({}).cardinality

    def _ensure_known_attributes(self, attributes: Iterable[str]) -> None:
        unknown_attributes = [attr for attr in attributes if attr not in self.attribute_names()]
        if unknown_attributes:
            raise ValueError(f"Attributes {unknown_attributes} do not belong to relation {self}")

    def __repr__(self) -> str:
        return str(self)

    def __str__(self) -> str:
        return f"{self._name}({', '.join(self.attribute_names())})"


class TableRelation(Relation):
    """A relation that is backed by a number of sources.

    The first source is the *primary* source that stores the entire relation. All further sources are auxiliary access paths
    such as indexes. An auxiliary source either has to provide all relation attributes itself, or it has to provide the
    position column of the primary source. In the latter case, the remaining attributes are fetched from the primary source
    by position.

    Parameters
    ----------
    name : str
        The name of the relation
    attributes : Sequence[str]
        The attribute names, in tuple order. These have to be unique.
    types : Sequence[Any]
        The attribute types, parallel to the `attributes`
    sources : Sequence[Source]
        The access paths of the relation. The first one is the primary source, whose columns have to cover all attributes.
    constraints : Iterable[DegreeConstraint], optional
        The degree constraints that hold on the relation. They may only refer to the relation attributes.

    Raises
    ------
    SchemaError
        If the number of attributes and types differs, attribute names are duplicated, no source is given, the primary
        source does not cover the attributes, an auxiliary source is unusable, or a constraint refers to unknown attributes.
    """

    def __init__(self, name: str, attributes: Sequence[str], types: Sequence[Any], sources: Sequence[Source], *,
                 constraints: Iterable[DegreeConstraint] = ()) -> None:
        super().__init__(name)
        attributes, types, sources = tuple(attributes), tuple(types), tuple(sources)
        if len(attributes) != len(types):
            raise SchemaError("Number of attribute names and types differs", (len(attributes), len(types)))

        seen_attributes: set[str] = set()
        for attr in attributes:
            if attr in seen_attributes:
                raise SchemaError("Duplicate attribute name", attr)
            seen_attributes.add(attr)

        if not sources:
            raise SchemaError("Relation requires at least one source", name)
        primary = sources[0]
        missing_attributes = [attr for attr in attributes if attr not in primary.columns()]
        if missing_attributes:
            raise SchemaError("Primary source does not provide all relation attributes", missing_attributes)
        for auxiliary in sources[1:]:
            covers_relation = all(attr in auxiliary.columns() for attr in attributes)
            refers_to_primary = primary.position is not None and primary.position in auxiliary.columns()
            if not covers_relation and not refers_to_primary:
                raise SchemaError("Auxiliary source neither covers the relation nor refers to primary positions",
                                  auxiliary)

        constraints = tuple(constraints)
        for constraint in constraints:
            unknown_attributes = constraint.attributes() - seen_attributes
            if unknown_attributes:
                raise SchemaError("Degree constraint refers to unknown attributes", sorted(unknown_attributes))

        self._attributes = attributes
        self._types = types
        self._sources = sources
        self._constraints = constraints

    def attribute_names(self) -> tuple[str, ...]:
        return self._attributes

    def attribute_types(self) -> tuple:
        return self._types

    def degree_constraints(self) -> tuple[DegreeConstraint, ...]:
        return self._constraints

    def sources(self) -> tuple[Source, ...]:
        """Provides all access paths of the relation. The primary source comes first."""
        return self._sources

    @property
    def primary(self) -> Source:
        return self._sources[0]

    def index_match(self, bound_attributes: Collection[str]) -> Optional[IndexMatch]:
        source = self._select_source(frozenset(bound_attributes))
        return source[1]

    def key_frequency(self, bound_attributes: Collection[str]) -> Optional[Cardinality]:
        source, index_match = self._select_source(frozenset(bound_attributes))
        if index_match is None or not index_match.exact:
            return None
        frequency = source.max_frequency(index_match.key)
        return Cardinality(frequency) if frequency is not None else None

    def lookup(self, binding: Mapping[str, Any]) -> LookupResult:
        self._ensure_known_attributes(binding.keys())
        binding = dict(binding)
        source, _ = self._select_source(frozenset(binding.keys()))
        source_binding = {attr: value for attr, value in binding.items() if attr in source.columns()}

        cardinality = Cardinality(source.estimate(source_binding))
        tuples = TupleSequence(lambda: self._produce(source, source_binding, binding), finite=source.is_finite())
        return LookupResult(cardinality, tuples)

    def reordered(self, attributes: Sequence[str]) -> ReorderedView:
        """Provides a view of this relation with a different attribute order.

        Views are cheap to create and share all sources with this relation. They are not cached, so every call creates a
        new view.
        """
        return ReorderedView(self, attributes)

    def _select_source(self, bound_attributes: frozenset[str]) -> tuple[Source, Optional[IndexMatch]]:
        """Determines the access path that is used for a lookup on specific attributes.

        A source whose index key matches the bound attributes exactly is preferred. Otherwise, the source with the longest
        usable index key is chosen. If no source provides a usable index key, the primary source has to be scanned in full.
        Ties are broken by declaration order.
        """
        best_source, best_match = self.primary, None
        for source in self._sources:
            source_attributes = bound_attributes & frozenset(source.columns())
            index_match = source.match(source_attributes)
            if index_match is None:
                continue

            exact = index_match.exact and source_attributes == bound_attributes
            index_match = IndexMatch(index_match.key, exact)
            if exact:
                return source, index_match
            if best_match is None or len(index_match) > len(best_match):
                best_source, best_match = source, index_match
        return best_source, best_match

    def _produce(self, source: Source, source_binding: Mapping[str, Any],
                 binding: Mapping[str, Any]) -> Iterator[tuple]:
        """Scans a source and turns its tuples into relation tuples, applying all bound attributes."""
        columns = source.columns()
        fetch_from_primary = any(attr not in columns for attr in self._attributes)
        primary_position = self.primary.position

        for row in source.scan(source_binding):
            values = dict(zip(columns, row))
            if fetch_from_primary:
                position = values[primary_position]
                primary_row = next(self.primary.scan({primary_position: position}), None)
                if primary_row is None:
                    continue
                values = dict(zip(self.primary.columns(), primary_row)) | values
            if all(values[attr] == value for attr, value in binding.items()):
                yield tuple(values[attr] for attr in self._attributes)


class ReorderedView(Relation):
    """A virtual relation that presents a table relation with a different attribute order.

    The view does not copy any data. Lookups are delegated to the underlying relation and its tuples are rearranged on the
    fly. Consequently, the view provides exactly the same access paths and degree constraints as the underlying relation.

    Parameters
    ----------
    relation : TableRelation
        The relation to present
    attributes : Sequence[str]
        A permutation of the attributes of the `relation`

    Raises
    ------
    SchemaError
        If the attributes are not a permutation of the relation attributes
    """

    def __init__(self, relation: TableRelation, attributes: Sequence[str]) -> None:
        attributes = tuple(attributes)
        if sorted(attributes) != sorted(relation.attribute_names()) or len(set(attributes)) != len(attributes):
            raise SchemaError("View attributes must be a permutation of the relation attributes", attributes)
        super().__init__(relation.name)
        self._relation = relation
        self._attributes = attributes
        self._permutation = tuple(relation.attribute_names().index(attr) for attr in attributes)

    @property
    def base(self) -> TableRelation:
        """Get the relation that is presented by this view."""
        return self._relation

    def attribute_names(self) -> tuple[str, ...]:
        return self._attributes

    def attribute_types(self) -> tuple:
        base_types = self._relation.attribute_types()
        return tuple(base_types[index] for index in self._permutation)

    def degree_constraints(self) -> tuple[DegreeConstraint, ...]:
        return self._relation.degree_constraints()

    def sources(self) -> tuple[Source, ...]:
        """Provides the sources of the underlying relation, rearranged to follow the attribute order of this view.

        The view only changes the order in which attributes are presented. Lookups and index matches always use the access
        paths of the underlying relation, so the rearranged sources describe the same storage in view order.

        A source is only rearranged if its sort key attributes keep their relative order in the view. Otherwise, the sort
        key would no longer be a bisectable prefix of the rearranged attributes and the source is provided in its original
        order instead.
        """
        rearranged_sources = []
        for source in self._relation.sources():
            view_order = [attr for attr in self._attributes if attr in source.attributes]
            view_order += [attr for attr in source.attributes if attr not in view_order]
            sort_offsets = [view_order.index(attr) for attr in source.sort_key()]
            if collection_utils.is_strictly_increasing(sort_offsets):
                rearranged_sources.append(source.reordered(view_order))
            else:
                rearranged_sources.append(source)
        return tuple(rearranged_sources)

    def index_match(self, bound_attributes: Collection[str]) -> Optional[IndexMatch]:
        return self._relation.index_match(bound_attributes)

    def key_frequency(self, bound_attributes: Collection[str]) -> Optional[Cardinality]:
        return self._relation.key_frequency(bound_attributes)

    def lookup(self, binding: Mapping[str, Any]) -> LookupResult:
        self._ensure_known_attributes(binding.keys())
        cardinality, base_tuples = self._relation.lookup(binding)
        permutation = self._permutation
        tuples = TupleSequence(lambda: (tuple(row[index] for index in permutation) for row in base_tuples),
                               finite=base_tuples.is_finite())
        return LookupResult(cardinality, tuples)

    def __str__(self) -> str:
        return f"{self.name}[{', '.join(self._attributes)}]"
