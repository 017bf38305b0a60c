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
Free-Term and Sensitivity Integrators

Integrate equation-derived expressions along the smoothed trajectories:

    Z[:, i]     = cumint f_i(t, x_smooth; theta = 0) dt
    G[i][:, j]  = cumint df_i/dtheta_j (t, x_smooth) dt

Integration uses the trapezoid rule on the uniform grid, computed with unit
spacing and scaled by dt, and starts from zero at the first grid point.
"""

from typing import Iterable

import numpy as np
import sympy as sp
from scipy.integrate import cumulative_trapezoid, trapezoid

from intmatch.symbolic.codegen_utils import evaluate_on_grid
from intmatch.symbolic.equation_system import EquationSystem
from intmatch.types.core import SensitivityMatrix, SymbolTable, TrajectoryMatrix


def cumulative_integral(values: np.ndarray, dt: float) -> np.ndarray:
    """
    Cumulative trapezoid integral along axis 0, starting at 0.

    Examples:
        >>> cumulative_integral(np.array([1.0, 1.0, 1.0]), 0.5)
        array([0. , 0.5, 1. ])
    """
    return cumulative_trapezoid(values, axis=0, initial=0) * dt


def definite_integral(values: np.ndarray, dt: float) -> np.ndarray:
    """Trapezoid integral along axis 0 over the whole grid"""
    return trapezoid(values, axis=0) * dt


def integrate_expression(expr: sp.Expr, symbol_table: SymbolTable, n_points: int, dt: float) -> np.ndarray:
    """Evaluate an expression on the grid and integrate it cumulatively"""
    return cumulative_integral(evaluate_on_grid(expr, symbol_table, n_points), dt)


def integrate_free_terms(
    system: EquationSystem,
    symbol_table: SymbolTable,
    Z: TrajectoryMatrix,
    selected: Iterable[int],
    dt: float,
) -> TrajectoryMatrix:
    """
    Fill the columns of Z for the selected variables.

    Args:
        system: Parsed equations
        symbol_table: Variables bound to smoothed trajectories, time to grid
        Z: (N, d) matrix updated in place
        selected: Indices of the variables to recompute
        dt: Grid spacing

    Returns:
        Z
    """
    n_points = Z.shape[0]
    for i in selected:
        expr = system.free_term(system.variables[i])
        Z[:, i] = integrate_expression(expr, symbol_table, n_points, dt)
    return Z


def integrate_sensitivities(
    system: EquationSystem,
    variable: str,
    symbol_table: SymbolTable,
    n_points: int,
    dt: float,
) -> SensitivityMatrix:
    """
    Integrated sensitivities of one equation.

    Returns:
        (N, p) matrix; column j integrates the derivative with respect to
        the j-th parameter
    """
    G = np.zeros((n_points, system.n_params))
    for j, derivative in enumerate(system.sensitivities(variable)):
        G[:, j] = integrate_expression(derivative, symbol_table, n_points, dt)
    return G

