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
Core Types for Integral Matching

Fundamental array aliases shared by every stage of the fitting pipeline:
- Observation containers (per-variable time and value vectors)
- Grid-aligned matrices (smoothed trajectories, free terms, sensitivities)
- Aggregate matrices used by the initial-condition profile estimator
- Symbol tables passed to the expression evaluator

Shape conventions
-----------------
- N : number of grid points
- d : number of state variables (equations)
- p : number of linear parameters

Usage
-----
>>> from intmatch.types.core import TrajectoryMatrix, SensitivityMatrix
>>>
>>> def residual(smooth: TrajectoryMatrix, Z: TrajectoryMatrix) -> TrajectoryMatrix:
...     return smooth - Z
"""

from typing import Dict, Mapping, Optional, Sequence, Union

import numpy as np

# ============================================================================
# Basic Array Types
# ============================================================================

ArrayLike = Union[np.ndarray, Sequence[float]]
"""
Anything convertible to a 1D or 2D float array with ``np.asarray``.
"""

TimeVector = np.ndarray
"""
Strictly increasing observation times for one variable.

Shape: (n_obs,)
"""

ObservationVector = np.ndarray
"""
Observed values for one variable, aligned with its TimeVector.

Shape: (n_obs,)
"""

GridVector = np.ndarray
"""
Uniform evaluation grid shared by all variables.

Shape: (N,)
"""

# ============================================================================
# Grid-Aligned Matrices
# ============================================================================

TrajectoryMatrix = np.ndarray
"""
One column per state variable, one row per grid point.

Used for smoothed trajectories, the free-term matrix Z and the
residual Q = smooth - Z.

Shape: (N, d)
"""

SensitivityMatrix = np.ndarray
"""
Integrated partial derivatives of one equation with respect to each
linear parameter (the design-matrix block of that variable).

Shape: (N, p)
"""

AggregateSensitivityMatrix = np.ndarray
"""
Domain-integrated sensitivities, A[i, j] = integral of G[i][:, j].

Shape: (d, p)
"""

GramMatrix = np.ndarray
"""
Integrated Gram matrix of the per-grid-point sensitivity rows.

Shape: (p, p)
"""

ParameterVector = np.ndarray
"""
Linear parameter estimates, ordered like the parameter list.

Shape: (p,)
"""

InitialConditionVector = np.ndarray
"""
Initial conditions at the start of the grid, ordered like the variables.

Shape: (d,)
"""

# ============================================================================
# Inputs
# ============================================================================

SymbolTable = Dict[str, Union[np.ndarray, float]]
"""
Explicit binding of symbol names to numeric vectors for expression
evaluation.

Examples
--------
>>> table: SymbolTable = {"t": grid, "x": smooth[:, 0], "y": smooth[:, 1]}
"""

InitialConditionsLike = Optional[Union[Sequence[Optional[float]], Mapping[str, float], np.ndarray]]
"""
Caller-supplied initial conditions.

Either a length-d sequence where NaN/None marks an unknown entry, or a
mapping from variable name to value where absent names are unknown.
"""

BoundsLike = Optional[Union[Sequence[Optional[float]], Mapping[str, float], np.ndarray]]
"""
Per-parameter lower or upper bounds.

Either a length-p sequence or a mapping from parameter name to bound.
None, NaN and infinite entries mean unbounded.
"""

VariableSelection = Optional[Sequence[Union[int, str]]]
"""
Subset of variables to recompute in incremental mode, as 0-based
indices or variable names.
"""
