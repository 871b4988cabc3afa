"""relbound - A minimal relational substrate with a cost-based join order planner.

On a high level, relbound is designed for the following workflow: the data of each relation is provided by one or more
*sources*, i.e. sorted tables or linear streams. Sources are combined into *relations*, which additionally carry *degree
constraints* (generalized functional dependencies) on their attributes. A query front end formulates conjunctive queries
over these relations as a *query graph*: a list of atoms, each binding query variables to the attributes of a relation.
The *planner* turns the query graph into a join plan. It greedily resolves the atom with the cheapest estimated
cardinality, selects an evaluation strategy for each join based on a small cost model and splits the query into
independent components whenever the query graph falls apart. Finally, the plan is *executed* to produce the result tuples
lazily.

On a high-level, the relbound project is structured as follows:

- this module provides the entire public interface: sources, degree constraints, relations, query graphs, the estimator,
  the cost model, the planner and the executor
- the `storage` module contains in-memory storage handles, which are sufficient for tests, examples and small data sets
- the `presets` module provides pre-defined cost models
- the `util` package contains algorithms and types that do not belong to specific parts of relbound and are more general
  in nature

Most of the functionality is available directly from the main package, so generally you just need to
``import relbound as rb``.


General Workflow
----------------

1. create the sources of each relation, e.g. using `storage.table_source` and `storage.stream_source`
2. combine the sources into a `TableRelation` and declare its `DegreeConstraint` instances
3. formulate the query as a `QueryGraph` of `Atom` instances, optionally with constant values for some variables
4. compute the plan using a `JoinOrderPlanner` (which uses a `CardinalityEstimator` and a `CostModel`)
5. evaluate the plan using `execute`, or use `evaluate` to combine planning and evaluation
"""
from . import (
    presets,
    storage,
    util
)
from ._core import Cost, Cardinality, SchemaError
from ._sources import SourceKind, StorageHandle, FrequencyStatistics, IndexMatch, Source
from ._constraints import DegreeConstraint
from ._relations import Relation, TableRelation, ReorderedView, LookupResult, TupleSequence
from ._query import Variable, Atom, QueryGraph
from ._estimation import Binding, EstimationMethod, Estimate, CardinalityEstimator
from ._costs import JoinStrategy, StrategyCosts, CostModel, calibrate
from ._planner import PlanningError, AtomState, StepKind, PlanStep, JoinPlan, JoinOrderPlanner
from ._execution import Cursor, execute, evaluate

__version__ = "0.1.0"

__all__ = [
    "presets", "storage", "util",
    "Cost", "Cardinality", "SchemaError",
    "SourceKind", "StorageHandle", "FrequencyStatistics", "IndexMatch", "Source",
    "DegreeConstraint",
    "Relation", "TableRelation", "ReorderedView", "LookupResult", "TupleSequence",
    "Variable", "Atom", "QueryGraph",
    "Binding", "EstimationMethod", "Estimate", "CardinalityEstimator",
    "JoinStrategy", "StrategyCosts", "CostModel", "calibrate",
    "PlanningError", "AtomState", "StepKind", "PlanStep", "JoinPlan", "JoinOrderPlanner",
    "Cursor", "execute", "evaluate"
]
