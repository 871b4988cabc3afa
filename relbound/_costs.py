"""The cost model decides how a join with a (potentially large) relation is evaluated.

Each join combines the current intermediate result of size *B* with a relation of size *L*. Three strategies are available:

- *iterate* probes the relation once for each intermediate tuple: ``B * c1 * probe``, where *probe* is the cost of a single
  probe (1 if the relation provides a usable index, *L* if it has to be scanned).
- *intermediate* materializes the relation into a hash table first and probes the table for each intermediate tuple:
  ``L * log2(L) + B * c2``.
- *filter* scans the relation once and tests each tuple for membership in the intermediate result: ``L * c3``.

The per-operation constants *c1*, *c2* and *c3* default to unit costs. Since the actual constants depend on the machine,
`calibrate` measures them empirically.
"""
from __future__ import annotations

import bisect
import enum
import json
import math
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np

from ._core import Cardinality, Cost
from .util import jsonize
from .util.jsonize import jsondict


class JoinStrategy(enum.Enum):
    """The evaluation strategies for a join. The members are listed in tie-breaking order."""
    Iterate = "iterate"
    Intermediate = "intermediate"
    Filter = "filter"


def _scale(*factors: float) -> Cost:
    """Multiplies cost factors such that a zero factor always produces zero costs, even if another factor is unbounded."""
    if any(factor == 0 for factor in factors):
        return 0.0
    return float(np.prod(factors, dtype=float))


@dataclass(frozen=True)
class StrategyCosts:
    """The estimated costs of all join strategies for a single join."""
    iterate: Cost
    intermediate: Cost
    filter: Cost

    def of(self, strategy: JoinStrategy) -> Cost:
        match strategy:
            case JoinStrategy.Iterate:
                return self.iterate
            case JoinStrategy.Intermediate:
                return self.intermediate
            case JoinStrategy.Filter:
                return self.filter

    def cheapest(self) -> JoinStrategy:
        """Selects the strategy with the lowest costs.

        Ties are broken in favor of iterate (which does not require any additional memory), and then intermediate.
        """
        return min(JoinStrategy, key=self.of)

    def __json__(self) -> jsondict:
        return {"iterate": self.iterate, "intermediate": self.intermediate, "filter": self.filter}

    def __str__(self) -> str:
        return f"iterate={self.iterate}, intermediate={self.intermediate}, filter={self.filter}"


@dataclass(frozen=True)
class CostModel:
    """The per-operation cost constants of the join strategies.

    Attributes
    ----------
    iterate_cost : float
        The costs *c1* of probing a relation for a single intermediate tuple
    lookup_cost : float
        The costs *c2* of probing a materialized hash table
    membership_cost : float
        The costs *c3* of testing a single tuple for membership in the intermediate result
    """
    iterate_cost: float = 1.0
    lookup_cost: float = 1.0
    membership_cost: float = 1.0

    def __post_init__(self) -> None:
        for name in ("iterate_cost", "lookup_cost", "membership_cost"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or not math.isfinite(value) or value < 0:
                raise ValueError(f"{name} must be a finite non-negative number, not {value!r}")

    @staticmethod
    def load_json(source: str | Path | Mapping[str, float]) -> CostModel:
        """Reads a cost model from a JSON file or from an already parsed JSON dictionary.

        Missing constants fall back to unit costs, unknown keys are an error.
        """
        if isinstance(source, Mapping):
            constants = dict(source)
        else:
            with open(source, "r") as json_file:
                constants = json.load(json_file)

        unknown_keys = set(constants) - {"iterate_cost", "lookup_cost", "membership_cost"}
        if unknown_keys:
            raise ValueError(f"Unknown cost constants: {sorted(unknown_keys)}")
        return CostModel(**{key: float(value) for key, value in constants.items()})

    def save_json(self, path: str | Path) -> None:
        with open(path, "w") as json_file:
            jsonize.to_json_dump(self, json_file, indent=2)

    def costs(self, bound_size: Cardinality | float, large_size: Cardinality | float, *,
              probe_cost: float = 1.0) -> StrategyCosts:
        """Estimates the costs of all join strategies.

        Parameters
        ----------
        bound_size : Cardinality | float
            The size *B* of the current intermediate result
        large_size : Cardinality | float
            The size *L* of the relation that should be joined. This can be unbounded for streams.
        probe_cost : float, optional
            The costs of a single probe of the relation. This should be 1 if the relation can be probed via an index and *L*
            if it has to be scanned.

        Returns
        -------
        StrategyCosts
            The costs of each strategy
        """
        bound_size, large_size = float(bound_size), float(large_size)
        if math.isnan(bound_size) or math.isnan(large_size):
            raise ValueError(f"Cannot compute join costs for unknown sizes: B={bound_size}, L={large_size}")

        iterate = _scale(bound_size, self.iterate_cost, probe_cost)
        # sorting a relation of at most one tuple is free
        materialization = _scale(large_size, np.log2(large_size)) if large_size > 1 else 0.0
        intermediate = materialization + _scale(bound_size, self.lookup_cost)
        filter_costs = _scale(large_size, self.membership_cost)
        return StrategyCosts(iterate, intermediate, filter_costs)

    def select(self, bound_size: Cardinality | float, large_size: Cardinality | float, *,
               probe_cost: float = 1.0) -> JoinStrategy:
        """Determines the cheapest join strategy. See `costs` and `StrategyCosts.cheapest` for details."""
        return self.costs(bound_size, large_size, probe_cost=probe_cost).cheapest()

    def __json__(self) -> jsondict:
        return {"iterate_cost": self.iterate_cost, "lookup_cost": self.lookup_cost,
                "membership_cost": self.membership_cost}

    def __str__(self) -> str:
        return f"CostModel(c1={self.iterate_cost}, c2={self.lookup_cost}, c3={self.membership_cost})"


def _time_per_operation(operation: Callable[[int], object], inputs: Sequence[int]) -> float:
    start = time.perf_counter_ns()
    for value in inputs:
        operation(value)
    end = time.perf_counter_ns()
    return (end - start) / len(inputs)


def calibrate(sample_size: int = 10_000, repetitions: int = 5, *, seed: Optional[int] = None) -> CostModel:
    """Measures the per-operation cost constants on the current machine.

    The measurement uses a synthetic workload of `sample_size` integers. For each constant, the corresponding operation is
    timed for all inputs: a bisection probe into a sorted list for *c1*, a hash table lookup for *c2* and a set membership
    test for *c3*. Each measurement is repeated and the median time per operation is used. Finally, all constants are
    normalized such that *c3* = 1.

    Parameters
    ----------
    sample_size : int, optional
        The number of values in the synthetic relation
    repetitions : int, optional
        How often each measurement is repeated
    seed : Optional[int], optional
        Seed for the synthetic data, to make the workload reproducible

    Returns
    -------
    CostModel
        The calibrated constants
    """
    if sample_size < 1 or repetitions < 1:
        raise ValueError("Calibration requires at least one sample and one repetition")
    rng = np.random.default_rng(seed)
    values = rng.integers(0, 4 * sample_size, size=sample_size)
    probes = rng.integers(0, 4 * sample_size, size=sample_size).tolist()

    sorted_values = sorted(values.tolist())
    hash_table = {value: [value] for value in sorted_values}
    value_set = set(sorted_values)

    measurements = {"iterate_cost": [], "lookup_cost": [], "membership_cost": []}
    for _ in range(repetitions):
        measurements["iterate_cost"].append(
            _time_per_operation(lambda probe: bisect.bisect_left(sorted_values, probe), probes))
        measurements["lookup_cost"].append(_time_per_operation(hash_table.get, probes))
        measurements["membership_cost"].append(_time_per_operation(value_set.__contains__, probes))

    medians = {name: float(np.median(timings)) for name, timings in measurements.items()}
    baseline = medians["membership_cost"] if medians["membership_cost"] > 0 else 1.0
    return CostModel(**{name: median / baseline for name, median in medians.items()})
