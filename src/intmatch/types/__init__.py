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
Types Module - Shared Type Definitions for intmatch

Usage
-----
>>> from intmatch.types import TrajectoryMatrix, IntegralMatchingFit, FitOptions

Module Organization
------------------
- core: array aliases and input shapes
- fitting: grid, options and the fit snapshot
"""

from .core import (
    AggregateSensitivityMatrix,
    ArrayLike,
    BoundsLike,
    GramMatrix,
    GridVector,
    InitialConditionsLike,
    InitialConditionVector,
    ObservationVector,
    ParameterVector,
    SensitivityMatrix,
    SymbolTable,
    TimeVector,
    TrajectoryMatrix,
    VariableSelection,
)
from .fitting import (
    SMOOTHING_METHODS,
    UNBOUNDED_LOWER,
    UNBOUNDED_UPPER,
    FitOptions,
    IntegralMatchingFit,
    SmoothingMethod,
    TimeGrid,
)
