# Copyright (C) 2025 Gil Benezer
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""
Constrained Parameter Solver

Stacks the per-variable sensitivity blocks into one design matrix and solves

    minimize ||design @ theta - target||^2   subject to  lb <= theta <= ub

with target = (Q - x0) stacked variable by variable. Unbounded entries are
replaced by finite sentinels (±1e100).
"""

import warnings
from typing import Mapping, Sequence

import numpy as np
from scipy.optimize import lsq_linear

from intmatch.exceptions import LeastSquaresFailure
from intmatch.types.core import (
    BoundsLike,
    InitialConditionVector,
    ParameterVector,
    SensitivityMatrix,
    TrajectoryMatrix,
)
from intmatch.types.fitting import UNBOUNDED_LOWER, UNBOUNDED_UPPER


def normalize_bounds(
    bounds: BoundsLike, parameters: Sequence[str], fill: float
) -> np.ndarray:
    """
    Convert caller bounds to a finite (p,) array.

    Args:
        bounds: None, a length-p sequence, or a mapping parameter → bound
        parameters: Parameter names
        fill: Sentinel for missing, NaN and infinite entries

    Examples:
        >>> normalize_bounds({"b": 0.0}, ["a", "b"], -1e100)
        array([-1.e+100,  0.e+00])
    """
    p = len(parameters)
    if bounds is None:
        return np.full(p, fill)

    if isinstance(bounds, Mapping):
        unknown = sorted(set(bounds) - set(parameters))
        if unknown:
            raise ValueError(f"Bounds given for unknown parameters {unknown}")
        values = [bounds.get(name) for name in parameters]
    else:
        values = list(np.asarray(bounds, dtype=object).reshape(-1))
        if len(values) != p:
            raise ValueError(f"Got {len(values)} bounds for {p} parameters")

    out = np.array([np.nan if v is None else float(v) for v in values], dtype=float)
    out[~np.isfinite(out)] = fill
    return out


def stack_design(G: Sequence[SensitivityMatrix]) -> np.ndarray:
    """Stack per-variable (N, p) blocks into an (N*d, p) design matrix"""
    return np.vstack(G)


def stack_target(Q: TrajectoryMatrix, x0: InitialConditionVector) -> np.ndarray:
    """(Q - x0) flattened column by column to match stack_design"""
    return (Q - x0[np.newaxis, :]).reshape(-1, order="F")


def solve_parameters(
    G: Sequence[SensitivityMatrix],
    Q: TrajectoryMatrix,
    x0: InitialConditionVector,
    parameters: Sequence[str],
    pars_min: BoundsLike = None,
    pars_max: BoundsLike = None,
    trace: int = 0,
) -> ParameterVector:
    """
    Box-constrained least-squares estimate of the linear parameters.

    Args:
        G: Per-variable sensitivity blocks, each (N, p)
        Q: Residual trajectories smooth - Z (N, d)
        x0: Initial conditions (d,), all known
        parameters: Parameter names
        pars_min: Lower bounds (None = unbounded)
        pars_max: Upper bounds (None = unbounded)
        trace: Verbosity; above 2, solutions with active bounds are reported
            as warnings

    Returns:
        theta (p,)

    Raises:
        LeastSquaresFailure: On rank-deficient design, infeasible bounds,
            non-finite inputs or an unsuccessful solve
    """
    design = stack_design(G)
    target = stack_target(Q, x0)
    lb = normalize_bounds(pars_min, parameters, UNBOUNDED_LOWER)
    ub = normalize_bounds(pars_max, parameters, UNBOUNDED_UPPER)

    if not (np.all(np.isfinite(design)) and np.all(np.isfinite(target))):
        raise LeastSquaresFailure("Design matrix or target contains non-finite values")

    infeasible = [name for name, lo, hi in zip(parameters, lb, ub) if not lo < hi]
    if infeasible:
        raise LeastSquaresFailure(f"Lower bound is not below upper bound for {infeasible}")

    rank = np.linalg.matrix_rank(design)
    if rank < design.shape[1]:
        raise LeastSquaresFailure(
            f"Design matrix is rank deficient (rank {rank} < {design.shape[1]} parameters)"
        )

    try:
        result = lsq_linear(design, target, bounds=(lb, ub), method="bvls")
    except (ValueError, np.linalg.LinAlgError) as e:
        raise LeastSquaresFailure(f"Constrained least squares failed: {e}") from e

    if not result.success:
        raise LeastSquaresFailure(f"Constrained least squares did not converge: {result.message}")

    if trace > 2 and np.any(result.active_mask != 0):
        active = [name for name, flag in zip(parameters, result.active_mask) if flag != 0]
        warnings.warn(f"Parameter estimates at their bounds: {active}", RuntimeWarning)

    return np.asarray(result.x, dtype=float)
