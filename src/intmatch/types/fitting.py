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
Fitting Types

Configuration and result containers for integral-matching fits:
- SmoothingMethod: allowed smoothing strategies
- TimeGrid: the uniform evaluation grid of one call
- FitOptions: per-call configuration
- IntegralMatchingFit: immutable snapshot of estimates and intermediates

Mathematical Background
----------------------
For dx_i/dt = f_i(t, x; theta) affine in theta, integrating from the
start of the grid gives

    x_i(t) = x0_i + Z_i(t) + G_i(t) @ theta

where Z_i integrates f_i with theta = 0 and column j of G_i integrates
df_i/dtheta_j. Replacing x by a smoothed trajectory turns parameter
estimation into linear least squares in (x0, theta).

Usage
-----
>>> fit = integral_matching_fit(equations, ["a", "b"], t, obs)
>>> fit.theta_dict
{'a': 0.98, 'b': 2.01}
>>> fit.G[0].shape  # (N, p)
"""

from dataclasses import dataclass, field
from typing import Dict, Literal, Optional, Tuple

import numpy as np

from intmatch.types.core import (
    AggregateSensitivityMatrix,
    GramMatrix,
    GridVector,
    InitialConditionVector,
    ParameterVector,
    SensitivityMatrix,
    TrajectoryMatrix,
)

SmoothingMethod = Literal["splines", "kernel", "none"]
"""
Smoothing strategy used to turn observations into grid trajectories.

- 'splines': smoothing spline, penalty chosen by generalized cross-validation
- 'kernel': local-linear regression with an Epanechnikov kernel
- 'none': cubic interpolation through the raw observations
"""

SMOOTHING_METHODS: Tuple[str, ...] = ("splines", "kernel", "none")

# Finite stand-ins for unbounded parameters
UNBOUNDED_LOWER = -1e100
UNBOUNDED_UPPER = 1e100


def _freeze(array: Optional[np.ndarray]) -> Optional[np.ndarray]:
    if array is None:
        return None
    array = np.asarray(array, dtype=float)
    array.setflags(write=False)
    return array


# ============================================================================
# Evaluation Grid
# ============================================================================


@dataclass(frozen=True, eq=False)
class TimeGrid:
    """
    Uniform evaluation grid shared by all variables of one fit.

    Attributes
    ----------
    t : GridVector
        Grid points (N,)
    dt : float
        Grid spacing
    min_time : float
        Earliest observation time across variables
    max_time : float
        Latest observation time across variables
    """

    t: GridVector
    dt: float
    min_time: float
    max_time: float

    def __post_init__(self):
        object.__setattr__(self, "t", _freeze(self.t))

    @property
    def n_points(self) -> int:
        """Number of grid points N"""
        return int(self.t.size)

    @property
    def span(self) -> float:
        """Length of the observed time domain"""
        return float(self.max_time - self.min_time)


# ============================================================================
# Configuration
# ============================================================================


@dataclass(frozen=True, eq=False)
class FitOptions:
    """
    Per-call configuration of an integral-matching fit.

    Attributes
    ----------
    smoothing : SmoothingMethod
        Smoothing strategy ('splines', 'kernel', 'none')
    grid_size : int
        Number of grid points; 0 uses the largest observation count.
        Ignored by kernel smoothing, whose grid follows the sampling.
    bw_factor : float
        Kernel bandwidth multiplier applied to the largest sampling gap
        (values below 1 are treated as 1)
    trace : int
        Verbosity. 1 prints stage summaries, 2 surfaces failures as
        warnings, 3 also surfaces solver warnings and prints estimates.
    raise_on_failure : bool
        Re-raise numerical failures instead of returning None

    Examples
    --------
    >>> options = FitOptions(smoothing="kernel", bw_factor=2.0)
    >>> fit = integral_matching_fit(eqs, pars, t, obs, options=options)
    """

    smoothing: SmoothingMethod = "splines"
    grid_size: int = 0
    bw_factor: float = 1.5
    trace: int = 0
    raise_on_failure: bool = False

    def __post_init__(self):
        if self.smoothing not in SMOOTHING_METHODS:
            raise ValueError(
                f"Unknown smoothing method '{self.smoothing}'. "
                f"Choose from {SMOOTHING_METHODS}"
            )
        if int(self.grid_size) != self.grid_size or self.grid_size < 0:
            raise ValueError(f"grid_size must be a non-negative integer, got {self.grid_size}")
        if self.grid_size == 1:
            raise ValueError("grid_size must be at least 2")
        if not np.isfinite(self.bw_factor) or self.bw_factor <= 0:
            raise ValueError(f"bw_factor must be positive and finite, got {self.bw_factor}")
        if self.trace < 0:
            raise ValueError(f"trace must be non-negative, got {self.trace}")


# ============================================================================
# Fit Snapshot
# ============================================================================


@dataclass(frozen=True, eq=False)
class IntegralMatchingFit:
    """
    Immutable snapshot of an integral-matching fit.

    Holds the estimates together with every intermediate matrix so that a
    later call can recompute only a subset of variables, and so the
    refinement stage can start from it.

    Attributes
    ----------
    theta : Optional[ParameterVector]
        Parameter estimates (p,); None when there are no linear parameters
    x0 : Optional[InitialConditionVector]
        Initial conditions (d,); given values are kept, unknown ones are
        estimated. None if none were given and none were estimated.
    variables : Tuple[str, ...]
        State variable names, in equation order
    parameters : Tuple[str, ...]
        Linear parameter names
    grid : TimeGrid
        Evaluation grid
    smooth : TrajectoryMatrix
        Smoothed trajectories (N, d)
    Z : TrajectoryMatrix
        Integrated free terms (N, d)
    G : Tuple[SensitivityMatrix, ...]
        Integrated sensitivities, one (N, p) block per variable. With no
        parameters each block is the integrated full equation (N,).
    A : Optional[AggregateSensitivityMatrix]
        Domain-integrated sensitivities (d, p), only when x0 was estimated
    B : Optional[GramMatrix]
        Integrated sensitivity Gram matrix (p, p), only when x0 was estimated
    smoothing : str
        Smoothing method that produced `smooth`

    Examples
    --------
    >>> fit.theta_dict
    {'alpha': 0.51}
    >>> fit.sensitivity('x').shape
    (200, 1)
    >>> x_hat = fit.fitted_trajectory()
    """

    theta: Optional[ParameterVector]
    x0: Optional[InitialConditionVector]
    variables: Tuple[str, ...]
    parameters: Tuple[str, ...]
    grid: TimeGrid
    smooth: TrajectoryMatrix
    Z: TrajectoryMatrix
    G: Tuple[SensitivityMatrix, ...]
    A: Optional[AggregateSensitivityMatrix] = None
    B: Optional[GramMatrix] = None
    smoothing: str = "splines"
    _index: Dict[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "variables", tuple(self.variables))
        object.__setattr__(self, "parameters", tuple(self.parameters))
        for name in ("theta", "x0", "smooth", "Z", "A", "B"):
            object.__setattr__(self, name, _freeze(getattr(self, name)))
        object.__setattr__(self, "G", tuple(_freeze(block) for block in self.G))
        object.__setattr__(self, "_index", {name: i for i, name in enumerate(self.variables)})

    # ========================================================================
    # Accessors
    # ========================================================================

    @property
    def n_points(self) -> int:
        """Grid size N"""
        return self.grid.n_points

    @property
    def t(self) -> GridVector:
        """Grid points"""
        return self.grid.t

    @property
    def residual(self) -> TrajectoryMatrix:
        """Q = smooth - Z, the part of the trajectory explained by x0 and theta"""
        return self.smooth - self.Z

    @property
    def theta_dict(self) -> Dict[str, float]:
        if self.theta is None:
            return {}
        return dict(zip(self.parameters, self.theta.tolist()))

    @property
    def x0_dict(self) -> Dict[str, float]:
        if self.x0 is None:
            return {}
        return dict(zip(self.variables, self.x0.tolist()))

    def sensitivity(self, variable: str) -> SensitivityMatrix:
        """G block of one variable, looked up by name"""
        if variable not in self._index:
            raise KeyError(f"Unknown variable '{variable}'. Known: {list(self.variables)}")
        return self.G[self._index[variable]]

    # ========================================================================
    # Derived Quantities
    # ========================================================================

    def fitted_trajectory(self) -> TrajectoryMatrix:
        """
        Trajectory implied by the estimates, x0 + Z + G @ theta.

        Returns
        -------
        TrajectoryMatrix
            (N, d) trajectory on the grid

        Raises
        ------
        ValueError
            If some initial condition is unknown
        """
        if self.x0 is None or np.any(np.isnan(self.x0)):
            raise ValueError("Fitted trajectory requires every initial condition")

        fitted = self.Z + self.x0[np.newaxis, :]
        if self.theta is not None:
            for i, block in enumerate(self.G):
                fitted[:, i] += block @ self.theta
        return fitted

    def integral_matching_loss(self) -> float:
        """
        Integral-matching criterion of the estimates.

        Sum over variables and grid points of the squared difference between
        the smoothed and fitted trajectories, scaled by the grid spacing.
        """
        diff = self.smooth - self.fitted_trajectory()
        return float(np.sum(diff**2) * self.grid.dt)
