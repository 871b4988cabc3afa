"""The join order planner turns a query graph into an evaluation plan.

Planning follows a greedy scheme that always resolves the cheapest atom of the *entire* frontier, rather than only looking
at the neighbors of the most recently resolved atom. Once resolving an atom cuts the remaining query graph into independent
components, each component is planned on its own and the results are merged on the variables that were bound at the time
of the cut.

Planning is purely symbolic: the planner only consults the estimator and the cost model and never produces any tuples. See
`relbound.execute` to evaluate the resulting plan.
"""
from __future__ import annotations

import enum
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Optional

from ._core import Cardinality
from ._costs import CostModel, JoinStrategy, StrategyCosts
from ._estimation import Binding, CardinalityEstimator, Estimate
from ._query import QueryGraph, Variable
from . import util
from .util.jsonize import jsondict


class PlanningError(util.LogicError):
    """Indicates that the planner could not resolve a query graph.

    By construction, every disconnected part of a query graph and every isolated atom is planned as an independent
    component. Therefore, this error is only raised if the planner stops making progress, which indicates a bug.
    """


class AtomState(enum.Enum):
    """The lifecycle of an atom during planning.

    Atoms start out as unresolved. As soon as one of their variables becomes bound, they join the frontier. Once they are
    selected by the planner, they are resolved.
    """
    Unresolved = "unresolved"
    Frontier = "frontier"
    Resolved = "resolved"


class StepKind(enum.Enum):
    """Describes how an atom is resolved.

    A *lookup* fetches the tuples of an atom directly from an index whose key consists of exactly the bound attributes. All
    other atoms are *joined* with the current intermediate result by one of the join strategies.
    """
    Lookup = "lookup"
    Join = "join"


@dataclass(frozen=True)
class PlanStep:
    """A single resolution step of a join plan.

    Attributes
    ----------
    atom : int
        The index of the atom that is resolved in this step
    label : str
        A short description of the atom
    kind : StepKind
        Whether the atom is looked up or joined
    strategy : JoinStrategy
        How the atom is combined with the intermediate result. Lookups always probe the atom for each intermediate tuple.
    bound_variables : frozenset[Variable]
        The variables of the atom that are bound when the atom is resolved. These are the join variables of the step.
    estimate : Estimate
        The estimate that made the planner select this atom
    bound_size : Cardinality
        The estimated size of the intermediate result before the step (*B*)
    extent : Cardinality
        The size of the relation of the atom (*L*)
    fanout : Cardinality
        The estimated number of tuples of the atom per intermediate tuple. The intermediate result after the step is
        estimated as `bound_size` times `fanout`.
    costs : Optional[StrategyCosts]
        The costs of all join strategies. This is ``None`` for lookups.
    """
    atom: int
    label: str
    kind: StepKind
    strategy: JoinStrategy
    bound_variables: frozenset[Variable]
    estimate: Estimate
    bound_size: Cardinality
    extent: Cardinality
    fanout: Cardinality
    costs: Optional[StrategyCosts] = None

    def __json__(self) -> jsondict:
        return {"atom": self.atom, "label": self.label, "kind": self.kind, "strategy": self.strategy,
                "bound_variables": sorted(var.name for var in self.bound_variables), "estimate": self.estimate,
                "bound_size": self.bound_size, "extent": self.extent, "fanout": self.fanout, "costs": self.costs}

    def __str__(self) -> str:
        if self.kind == StepKind.Lookup:
            return f"LOOKUP {self.label}"
        return f"{self.strategy.value.upper()} {self.label}"


@dataclass(frozen=True)
class JoinPlan:
    """The result of planning a query (or a component of a query).

    A plan first executes its `steps` in order. If the query graph falls apart afterwards, each of the independent
    `branches` is evaluated for every intermediate tuple and the branch results are combined by a cross product. Branches
    are sorted by their estimated cardinality, smallest first.

    Attributes
    ----------
    steps : tuple[PlanStep, ...]
        The sequential resolution steps
    branches : tuple[JoinPlan, ...], optional
        The plans of the independent components after the cut, if there are any
    cut_variables : frozenset[Variable], optional
        The variables that were bound when the query graph was cut. The branch results are merged on these variables.
    cardinality : Cardinality, optional
        The estimated number of result tuples of the plan
    """
    steps: tuple[PlanStep, ...]
    branches: tuple[JoinPlan, ...] = ()
    cut_variables: frozenset[Variable] = field(default_factory=frozenset)
    cardinality: Cardinality = field(default_factory=lambda: Cardinality(1))

    def iter_steps(self) -> Iterator[PlanStep]:
        """Provides all steps of the plan, including those of its branches (depth-first)."""
        yield from self.steps
        for branch in self.branches:
            yield from branch.iter_steps()

    def join_order(self) -> list[int]:
        """Provides the indices of the atoms in the order in which they are resolved (depth-first for branches)."""
        return [step.atom for step in self.iter_steps()]

    def strategies(self) -> list[tuple[int, StepKind, JoinStrategy]]:
        """Provides the kind and strategy of each step, in join order."""
        return [(step.atom, step.kind, step.strategy) for step in self.iter_steps()]

    def is_split(self) -> bool:
        """Checks, whether the plan contains independent branches."""
        return bool(self.branches)

    def inspect(self, *, indentation: int = 0) -> str:
        """Produces a human-readable representation of the plan."""
        padding = " " * indentation
        lines = [f"{padding}{step}  [B={step.bound_size}, L={step.extent}, out={step.fanout}, est={step.estimate}]"
                 for step in self.steps]
        if self.branches:
            cut = ", ".join(sorted(var.name for var in self.cut_variables))
            lines.append(f"{padding}SPLIT on ({cut}) into {len(self.branches)} components")
            for branch in self.branches:
                lines.append(f"{padding}  <- component (est. {branch.cardinality})")
                lines.append(branch.inspect(indentation=indentation + 4))
        return "\n".join(lines)

    def __json__(self) -> jsondict:
        return {"steps": list(self.steps), "branches": list(self.branches),
                "cut_variables": sorted(var.name for var in self.cut_variables), "cardinality": self.cardinality}

    def __str__(self) -> str:
        return self.inspect()


class JoinOrderPlanner:
    """Determines the join order and join strategies for conjunctive queries.

    The planner maintains a frontier of atoms that have at least one bound variable. In each iteration, it asks the estimator
    for the cheapest unbound variable of every frontier atom and resolves the atom with the overall lowest estimate. Ties are
    broken in favor of atoms with fewer unbound variables, and then by declaration order. If the frontier is empty (e.g. at
    the very beginning of a query without constants), all unresolved atoms are candidates.

    An atom is resolved by a lookup if its bound attributes exactly match an index key. Otherwise, it is joined with the
    intermediate result and the cost model selects the join strategy.

    After each resolution, the planner checks whether the unresolved atoms still form a single connected component, where
    bound variables no longer connect atoms. If they do not, each component is planned independently. Isolated atoms simply
    form their own component.

    Parameters
    ----------
    estimator : Optional[CardinalityEstimator], optional
        The estimator to use. Defaults to a `CardinalityEstimator`.
    cost_model : Optional[CostModel], optional
        The cost model to select join strategies. Defaults to unit costs.
    verbose : bool, optional
        Whether to log the planning progress to stderr. Defaults to *False*.
    """

    def __init__(self, estimator: Optional[CardinalityEstimator] = None, cost_model: Optional[CostModel] = None, *,
                 verbose: bool = False) -> None:
        self.estimator = estimator if estimator is not None else CardinalityEstimator()
        self.cost_model = cost_model if cost_model is not None else CostModel()
        self._verbose = verbose

    def plan(self, query: QueryGraph) -> JoinPlan:
        """Computes the evaluation plan of a query.

        Planning is deterministic: the same query graph always produces the same plan.

        Raises
        ------
        PlanningError
            If the planner stops making progress. This should never happen.
        """
        log = util.make_logger(self._verbose, prefix=util.timestamp)
        log("Planning query", query)
        binding = Binding.of(query.constants())
        plan = self._plan_component(query, frozenset(range(len(query))), binding, log)
        log("Final plan:", plan.inspect(), sep="\n")
        return plan

    def describe(self) -> jsondict:
        """Provides a JSON-serializable representation of the planner settings."""
        return {"name": "global-frontier-greedy", "estimator": self.estimator.describe(), "cost_model": self.cost_model}

    def _plan_component(self, query: QueryGraph, atoms: frozenset[int], binding: Binding, log) -> JoinPlan:
        states = {atom: AtomState.Unresolved for atom in atoms}
        steps: list[PlanStep] = []
        bound_size = Cardinality(1)

        while True:
            remaining = sorted(atom for atom, state in states.items() if state != AtomState.Resolved)
            if not remaining:
                return JoinPlan(tuple(steps), cardinality=bound_size)

            components = query.components(remaining, bound=binding.bound_variables())
            if len(components) > 1:
                log("Remaining atoms fall apart into components", [sorted(component) for component in components])
                branches = [self._plan_component(query, component, binding, log) for component in components]
                branches.sort(key=lambda branch: branch.cardinality.get())
                cardinality = bound_size
                for branch in branches:
                    cardinality = cardinality * branch.cardinality
                return JoinPlan(tuple(steps), tuple(branches), cut_variables=binding.bound_variables(),
                                cardinality=cardinality)

            for atom in remaining:
                if states[atom] == AtomState.Unresolved and any(binding.is_bound(var)
                                                                for var in query.atom(atom).variables()):
                    states[atom] = AtomState.Frontier
            frontier = [atom for atom in remaining if states[atom] == AtomState.Frontier]
            candidates = frontier if frontier else remaining

            estimates = [self.estimator.estimate_atom(query, binding, atom) for atom in candidates]
            log("Frontier estimates:", ", ".join(str(estimate) for estimate in estimates))
            best_estimate = min(estimates, key=Estimate.sort_key)
            if states[best_estimate.atom] == AtomState.Resolved:
                raise PlanningError(f"Atom {best_estimate.atom} was selected for resolution twice")

            fanout = self.estimator.estimate_output(query, binding, best_estimate.atom)
            step = self._resolve(query, binding, best_estimate, bound_size, fanout)
            log("Selected step", step, "with costs", step.costs if step.costs is not None else "n/a")
            steps.append(step)
            states[step.atom] = AtomState.Resolved
            binding = binding.bind(query.atom(step.atom).variables())
            bound_size = bound_size * step.fanout

    def _resolve(self, query: QueryGraph, binding: Binding, estimate: Estimate, bound_size: Cardinality,
                 fanout: Cardinality) -> PlanStep:
        atom = query.atom(estimate.atom)
        relation = atom.relation
        bound_variables = frozenset(var for var in atom.variables() if binding.is_bound(var))
        bound_attributes = atom.attributes(bound_variables)
        index_match = relation.index_match(bound_attributes) if bound_attributes else None
        extent = relation.extent()

        if index_match is not None and index_match.exact:
            return PlanStep(estimate.atom, atom.label, StepKind.Lookup, JoinStrategy.Iterate, bound_variables, estimate,
                            bound_size, extent, fanout)

        # without an index, every probe has to scan the entire relation
        probe_cost = 1.0 if index_match is not None else extent.get()
        costs = self.cost_model.costs(bound_size, extent, probe_cost=probe_cost)
        return PlanStep(estimate.atom, atom.label, StepKind.Join, costs.cheapest(), bound_variables, estimate,
                        bound_size, extent, fanout, costs)

    def __repr__(self) -> str:
        return str(self)

    def __str__(self) -> str:
        return f"JoinOrderPlanner(estimator={self.estimator}, cost_model={self.cost_model})"
