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
Initial-Condition Estimator

Closed-form profile estimator for unknown initial conditions.

Mathematical Background
----------------------
With Q = smooth - Z, the integral-matching criterion is

    J(x0, theta) = sum_i int (Q_i(t) - x0_i - G_i(t) theta)^2 dt

Setting dJ/dtheta = 0 gives theta(x0) = B^{-1} (int Gtx dt - A^T x0), where

    A[i, :] = int G_i dt                      (d, p)
    B       = int sum_i G_i^T G_i dt          (p, p)
    Gtx(t)  = sum_i G_i(t)^T Q_i(t)           (p,)

Substituting back into dJ/dx0 = 0 leaves the d x d system

    (T I - A B^{-1} A^T) x0 = int Q dt - A B^{-1} int Gtx dt

with T the length of the time domain.
"""

from typing import Mapping, Optional, Sequence, Tuple

import numpy as np

from intmatch.exceptions import SingularSystemError
from intmatch.integration.integrals import definite_integral
from intmatch.types.core import (
    AggregateSensitivityMatrix,
    GramMatrix,
    InitialConditionsLike,
    InitialConditionVector,
    SensitivityMatrix,
    TrajectoryMatrix,
)


# ============================================================================
# Caller-Supplied Initial Conditions
# ============================================================================


def initial_condition_vector(
    x0: InitialConditionsLike, variables: Sequence[str]
) -> Optional[np.ndarray]:
    """
    Normalize caller-supplied initial conditions.

    Args:
        x0: None, a length-d sequence (None/NaN = unknown), or a mapping
            variable name → value (absent names are unknown)
        variables: Variable names, in equation order

    Returns:
        (d,) float array with NaN marking unknown entries, or None if x0 is None

    Examples:
        >>> initial_condition_vector({"y": 2.0}, ["x", "y"])
        array([nan,  2.])
        >>> initial_condition_vector([1.0, None], ["x", "y"])
        array([ 1., nan])
    """
    if x0 is None:
        return None

    if isinstance(x0, Mapping):
        unknown = sorted(set(x0) - set(variables))
        if unknown:
            raise ValueError(f"Initial conditions given for unknown variables {unknown}")
        values = [x0.get(name) for name in variables]
    else:
        values = list(np.asarray(x0, dtype=object).reshape(-1))
        if len(values) != len(variables):
            raise ValueError(f"Got {len(values)} initial conditions for {len(variables)} variables")

    return np.array([np.nan if v is None else float(v) for v in values], dtype=float)


def needs_estimation(x0: Optional[np.ndarray]) -> bool:
    """True when any initial condition is unknown"""
    return x0 is None or bool(np.any(np.isnan(x0)))


def merge_initial_conditions(
    given: Optional[np.ndarray], estimate: InitialConditionVector
) -> InitialConditionVector:
    """Keep every known entry of `given`; fill the unknown ones from `estimate`"""
    merged = np.array(estimate, dtype=float)
    if given is not None:
        known = ~np.isnan(given)
        merged[known] = given[known]
    return merged


# ============================================================================
# Aggregates
# ============================================================================


def aggregate_sensitivity_row(G_i: SensitivityMatrix, dt: float) -> np.ndarray:
    """Row of A for one variable: each sensitivity column integrated over the grid"""
    return definite_integral(G_i, dt)


def sensitivity_gram(
    G: Sequence[SensitivityMatrix], Q: TrajectoryMatrix, dt: float
) -> Tuple[GramMatrix, np.ndarray]:
    """
    Integrated Gram matrix B and integrated cross term Gtx.

    At each grid point k the sensitivity rows of all variables form the
    (p, d) matrix g_k; B integrates g_k g_k^T and Gtx integrates g_k Q[k].

    Returns:
        (B, int_Gtx) with shapes (p, p) and (p,)
    """
    g = np.stack(G, axis=2)  # (N, p, d)
    gtg = np.einsum("kpd,kqd->kpq", g, g)
    Gtx = np.einsum("kpd,kd->kp", g, Q)
    return definite_integral(gtg, dt), definite_integral(Gtx, dt)


# ============================================================================
# Profile Estimator
# ============================================================================


def _checked_solve(matrix: np.ndarray, rhs: np.ndarray, name: str) -> np.ndarray:
    try:
        singular_values = np.linalg.svd(matrix, compute_uv=False)
    except np.linalg.LinAlgError as e:
        raise SingularSystemError(f"{name} could not be factorized: {e}") from e

    if not singular_values[0] > 0 or singular_values[-1] / singular_values[0] < np.finfo(float).eps:
        raise SingularSystemError(
            f"{name} is computationally singular "
            f"(reciprocal condition number {singular_values[-1] / max(singular_values[0], 1e-300):.3g})"
        )
    try:
        return np.linalg.solve(matrix, rhs)
    except np.linalg.LinAlgError as e:
        raise SingularSystemError(f"{name} is singular: {e}") from e


def estimate_initial_conditions(
    A: AggregateSensitivityMatrix,
    B: GramMatrix,
    Q: TrajectoryMatrix,
    int_Gtx: np.ndarray,
    span: float,
    dt: float,
) -> InitialConditionVector:
    """
    Solve the profile equations for x0.

    Args:
        A: Domain-integrated sensitivities (d, p)
        B: Integrated Gram matrix (p, p)
        Q: Residual trajectories smooth - Z (N, d)
        int_Gtx: Integrated cross term (p,)
        span: Length T of the time domain
        dt: Grid spacing

    Returns:
        Estimated initial conditions (d,)

    Raises:
        SingularSystemError: If B or the d x d system is singular
    """
    d = A.shape[0]
    int_Q = definite_integral(Q, dt)

    Binv_At = _checked_solve(B, A.T, "Gram matrix B")
    Binv_Gtx = _checked_solve(B, int_Gtx, "Gram matrix B")

    system = span * np.eye(d) - A @ Binv_At
    rhs = int_Q - A @ Binv_Gtx
    return _checked_solve(system, rhs, "Initial-condition system")
