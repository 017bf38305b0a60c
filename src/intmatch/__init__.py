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
intmatch - Integral-Matching Estimates for Separable ODE Systems
================================================================

Initial estimates of the linear parameters (and unknown initial conditions)
of an ODE system, computed from smoothed observations by matching integrals
of the right-hand sides. No ODE is solved.

>>> import numpy as np
>>> from intmatch import integral_matching_fit
>>>
>>> t = np.linspace(0, 10, 101)
>>> fit = integral_matching_fit(
...     {"x": "a*x - b*x*y", "y": "c*x*y - d*y"},
...     ["a", "b", "c", "d"],
...     t,
...     {"x": x_obs, "y": y_obs},
... )
>>> fit.theta_dict, fit.x0_dict
"""

from importlib import metadata

try:
    __version__ = metadata.version("intmatch")
except metadata.PackageNotFoundError:
    __version__ = "unknown"

from .exceptions import (
    InconsistentCacheError,
    IntegralMatchingError,
    LeastSquaresFailure,
    SingularSystemError,
    SmoothingError,
)
from .fitting import integral_matching_fit, refit
from .smoothing import build_time_grid, smooth_observations
from .symbolic import EquationSystem, EquationValidationError
from .types import FitOptions, IntegralMatchingFit, SmoothingMethod, TimeGrid
from .visualization import FitPlotter

__all__ = [
    "integral_matching_fit",
    "refit",
    "EquationSystem",
    "FitOptions",
    "IntegralMatchingFit",
    "TimeGrid",
    "SmoothingMethod",
    "build_time_grid",
    "smooth_observations",
    "FitPlotter",
    "IntegralMatchingError",
    "SmoothingError",
    "SingularSystemError",
    "LeastSquaresFailure",
    "InconsistentCacheError",
    "EquationValidationError",
]
