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
Smoothing Engine

Turns the raw observations of one variable into a trajectory on the fit grid.

Strategies
----------
splines
    Cubic smoothing spline. The roughness penalty is selected by generalized
    cross-validation (scipy.interpolate.make_smoothing_spline).
kernel
    Local-linear regression with the Epanechnikov kernel
    K(s) = 0.75 (1 - s^2) 1{|s| <= 1}. At grid point t_k, with
    s_i = (time_i - t_k)/b and U_i = [1, s_i]:

        M = sum_i K(s_i) U_i U_i^T / (n b)
        W_i = e_1^T M^{-1} U_i K(s_i) / (n b)
        smooth(t_k) = sum_i W_i y_i

    The bandwidth is b = max(1, bw_factor) * max(diff(time)).
none
    Cubic interpolation through the observations; reproduces them exactly at
    the observation times.
"""

import numpy as np
from scipy.interpolate import CubicSpline, make_smoothing_spline

from intmatch.exceptions import SmoothingError
from intmatch.types.core import GridVector, ObservationVector, TimeVector
from intmatch.types.fitting import SMOOTHING_METHODS, SmoothingMethod

# Local normal matrices with a smaller reciprocal condition number are singular
_RCOND_TOL = 1e-12


def epanechnikov_kernel(s: np.ndarray) -> np.ndarray:
    """Quadratic kernel with support [-1, 1]"""
    return 0.75 * (1 - s**2) * (np.abs(s) <= 1)


def kernel_bandwidth(time: TimeVector, bw_factor: float = 1.5) -> float:
    """Bandwidth of the local-linear smoother for one variable"""
    return max(1.0, bw_factor) * float(np.max(np.diff(time)))


def local_linear_weights(time: TimeVector, t_k: float, bandwidth: float) -> np.ndarray:
    """
    Weights of the local-linear estimate at one grid point.

    Args:
        time: Observation times (n,)
        t_k: Grid point
        bandwidth: Kernel half-width b

    Returns:
        Weights W (n,) such that the smoothed value is W @ observations

    Raises:
        SmoothingError: If the local 2x2 normal matrix is singular
    """
    n = time.size
    s = (time - t_k) / bandwidth
    ker = epanechnikov_kernel(s)
    U = np.vstack([np.ones(n), s])  # (2, n)

    M = (U * ker) @ U.T / (n * bandwidth)
    singular_values = np.linalg.svd(M, compute_uv=False)
    if not singular_values[0] > 0 or singular_values[-1] < _RCOND_TOL * singular_values[0]:
        raise SmoothingError(
            f"Local kernel fit at t={t_k:g} is degenerate "
            f"({int(np.count_nonzero(ker))} points in bandwidth {bandwidth:g})"
        )
    try:
        coef = np.linalg.solve(M, np.array([1.0, 0.0]))
    except np.linalg.LinAlgError as e:
        raise SmoothingError(f"Local kernel fit at t={t_k:g} is singular: {e}") from e

    return (coef @ U) * ker / (n * bandwidth)


def kernel_smooth(
    time: TimeVector,
    values: ObservationVector,
    grid: GridVector,
    bw_factor: float = 1.5,
) -> np.ndarray:
    """
    Local-linear kernel regression evaluated at every grid point.

    Examples:
        >>> t = np.linspace(0, 1, 11)
        >>> kernel_smooth(t, 2 * t + 1, np.array([0.25, 0.5]))
        array([1.5, 2. ])
    """
    bandwidth = kernel_bandwidth(time, bw_factor)
    smooth = np.empty(grid.size)
    for k, t_k in enumerate(grid):
        smooth[k] = local_linear_weights(time, t_k, bandwidth) @ values
    return smooth


def spline_smooth(time: TimeVector, values: ObservationVector, grid: GridVector) -> np.ndarray:
    """Smoothing spline with GCV-selected penalty, evaluated on the grid"""
    if time.size < 5:
        raise ValueError(f"Spline smoothing needs at least 5 observations, got {time.size}")
    spline = make_smoothing_spline(time, values)
    return spline(grid)


def interpolate(time: TimeVector, values: ObservationVector, grid: GridVector) -> np.ndarray:
    """Cubic spline interpolation through the observations"""
    return CubicSpline(time, values)(grid)


def smooth_observations(
    time: TimeVector,
    values: ObservationVector,
    grid: GridVector,
    method: SmoothingMethod = "splines",
    bw_factor: float = 1.5,
) -> np.ndarray:
    """
    Smooth one variable's observations onto the grid.

    Args:
        time: Strictly increasing observation times (n,)
        values: Observations (n,)
        grid: Evaluation grid (N,)
        method: 'splines', 'kernel' or 'none'
        bw_factor: Kernel bandwidth multiplier (kernel only)

    Returns:
        Smoothed trajectory (N,)

    Raises:
        SmoothingError: If a local kernel fit is degenerate
        ValueError: On an unknown method
    """
    if method == "splines":
        return spline_smooth(time, values, grid)
    elif method == "kernel":
        return kernel_smooth(time, values, grid, bw_factor)
    elif method == "none":
        return interpolate(time, values, grid)
    else:
        raise ValueError(f"Unknown smoothing method '{method}'. Choose from {SMOOTHING_METHODS}")
