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
Grid construction and observation normalization.

Every per-variable quantity of a fit lives on one uniform grid spanning the
earliest to the latest observation time.
"""

from typing import List, Mapping, Sequence, Tuple, Union

import numpy as np

from intmatch.types.core import ArrayLike, ObservationVector, TimeVector
from intmatch.types.fitting import SMOOTHING_METHODS, SmoothingMethod, TimeGrid

# Relative slack when counting kernel grid steps over the span
_STEP_TOLERANCE = 1e-10


def normalize_observations(
    variables: Sequence[str],
    time: Union[ArrayLike, Sequence[ArrayLike], Mapping[str, ArrayLike]],
    observations: Union[Sequence[ArrayLike], Mapping[str, ArrayLike], np.ndarray],
) -> Tuple[List[TimeVector], List[ObservationVector]]:
    """
    Align time and observation inputs with the variable order.

    Args:
        variables: Variable names, in equation order
        time: One shared time vector, or one per variable (sequence or
            mapping by variable name)
        observations: One value vector per variable (sequence, mapping by
            variable name, or an (n_obs, d) array sharing the time vector)

    Returns:
        (times, values): lists of 1D float arrays, one per variable

    Raises:
        ValueError: On missing variables, length mismatches, non-finite or
            non-increasing times, or fewer than two samples
    """
    d = len(variables)

    if isinstance(observations, Mapping):
        missing = [v for v in variables if v not in observations]
        if missing:
            raise ValueError(f"Missing observations for variables {missing}")
        values = [observations[v] for v in variables]
    elif isinstance(observations, np.ndarray) and observations.ndim == 2:
        if observations.shape[1] != d:
            raise ValueError(f"Observation matrix has {observations.shape[1]} columns, expected {d}")
        values = [observations[:, i] for i in range(d)]
    else:
        values = list(observations)
        if len(values) != d:
            raise ValueError(f"Got {len(values)} observation vectors for {d} variables")

    if isinstance(time, Mapping):
        missing = [v for v in variables if v not in time]
        if missing:
            raise ValueError(f"Missing time vectors for variables {missing}")
        times = [time[v] for v in variables]
    elif isinstance(time, np.ndarray) and time.ndim == 1:
        times = [time] * d
    elif len(time) > 0 and np.ndim(time[0]) == 0:
        # Ragged per-variable lists must not be converted as a whole
        times = [time] * d
    else:
        times = list(time)
        if len(times) != d:
            raise ValueError(f"Got {len(times)} time vectors for {d} variables")

    out_times, out_values = [], []
    for name, t_i, y_i in zip(variables, times, values):
        t_i = np.asarray(t_i, dtype=float).reshape(-1)
        y_i = np.asarray(y_i, dtype=float).reshape(-1)
        if t_i.size != y_i.size:
            raise ValueError(
                f"Variable '{name}' has {t_i.size} time points but {y_i.size} observations"
            )
        if t_i.size < 2:
            raise ValueError(f"Variable '{name}' needs at least 2 observations")
        if not (np.all(np.isfinite(t_i)) and np.all(np.isfinite(y_i))):
            raise ValueError(f"Variable '{name}' has non-finite times or observations")
        if not np.all(np.diff(t_i) > 0):
            raise ValueError(f"Variable '{name}' requires strictly increasing time")
        out_times.append(t_i)
        out_values.append(y_i)

    return out_times, out_values


def build_time_grid(
    times: Sequence[TimeVector],
    smoothing: SmoothingMethod = "splines",
    grid_size: int = 0,
) -> TimeGrid:
    """
    Build the uniform evaluation grid of a fit.

    Args:
        times: Per-variable, strictly increasing time vectors
        smoothing: Smoothing method; 'kernel' derives the step from sampling
        grid_size: Number of grid points for non-kernel smoothing; 0 uses
            the largest number of observations among the variables

    Returns:
        TimeGrid spanning [min first time, max last time]

    Examples:
        >>> grid = build_time_grid([np.array([0., 1., 2.]), np.array([0., 4.])])
        >>> grid.t
        array([0., 2., 4.])
        >>> build_time_grid([np.array([0., 1., 3.])], smoothing="kernel").dt
        0.5
    """
    if smoothing not in SMOOTHING_METHODS:
        raise ValueError(f"Unknown smoothing method '{smoothing}'. Choose from {SMOOTHING_METHODS}")
    if len(times) == 0:
        raise ValueError("At least one time vector is required")

    min_time = float(min(t_i[0] for t_i in times))
    max_time = float(max(t_i[-1] for t_i in times))
    span = max_time - min_time
    if span <= 0:
        raise ValueError("Observations must span a positive time interval")

    if smoothing == "kernel":
        dt = float(min(np.min(np.diff(t_i)) for t_i in times)) / 2
        n_steps = int(np.floor(span / dt * (1 + _STEP_TOLERANCE)))
        t = min_time + dt * np.arange(n_steps + 1)
    else:
        if grid_size > 0:
            n_points = int(grid_size)
        else:
            n_points = max(t_i.size for t_i in times)
        if n_points < 2:
            raise ValueError(f"Grid needs at least 2 points, got {n_points}")
        dt = span / (n_points - 1)
        t = np.linspace(min_time, max_time, n_points)

    return TimeGrid(t=t, dt=dt, min_time=min_time, max_time=max_time)
