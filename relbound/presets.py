"""Presets allow to set up the planner quickly by providing pre-defined cost models.

Currently supported presets are:

- ``"unit"``: all per-operation constants are 1. This is the default of the `JoinOrderPlanner` and produces fully
  reproducible plans across machines.
- ``"calibrated"``: the constants are measured on the current machine, see `calibrate`. The measurement is only performed
  once per process.
"""
from __future__ import annotations

import functools
from typing import Literal

from ._costs import CostModel, calibrate


@functools.cache
def _calibrated_model() -> CostModel:
    return calibrate()


def fetch(key: Literal["unit", "calibrated"]) -> CostModel:
    """Provides the cost model registered under a specific key.

    All registration happens statically and cannot be changed at runtime.

    Parameters
    ----------
    key : Literal["unit", "calibrated"]
        The key which was used to register the cost model. The comparison happens case-insensitively.

    Returns
    -------
    CostModel
        The cost model that was registered under the given key

    Raises
    ------
    ValueError
        If the key is none of the allowed values.
    """
    match key.lower():
        case "unit":
            return CostModel()
        case "calibrated":
            return _calibrated_model()
        case _:
            raise ValueError(f"Unknown presets for key '{key}'")
