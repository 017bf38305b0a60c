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
Code generation utilities for equation evaluation on a time grid.

Converts SymPy expressions into NumPy callables and evaluates them against
an explicit symbol table (name → vector). Expressions that do not depend on
any bound symbol evaluate to a scalar, which is broadcast to the grid.
"""

from typing import Callable, List, Sequence

import numpy as np
import sympy as sp

from intmatch.types.core import SymbolTable

# Helper functions


def _numpy_min(*args):
    """
    Handle SymPy Min for NumPy.

    SymPy's Min can take arbitrary number of arguments: Min(x, y, z)
    NumPy's np.minimum only takes 2 arguments.

    Examples:
        >>> _numpy_min(1, 2, 3)
        1
        >>> _numpy_min(np.array([1, 2]), np.array([3, 0]))
        array([1, 0])
    """
    if len(args) == 0:
        raise ValueError("Min requires at least one argument")
    result = args[0]
    for arg in args[1:]:
        result = np.minimum(result, arg)
    return result


def _numpy_max(*args):
    """
    Handle SymPy Max for NumPy.

    Examples:
        >>> _numpy_max(1, 2, 3)
        3
    """
    if len(args) == 0:
        raise ValueError("Max requires at least one argument")
    result = args[0]
    for arg in args[1:]:
        result = np.maximum(result, arg)
    return result


SYMPY_TO_NUMPY_LAMBDIFY = {
    "Min": _numpy_min,
    "Max": _numpy_max,
}


def generate_numpy_function(expr: sp.Expr, symbols: Sequence[sp.Symbol]) -> Callable:
    """
    Generate a NumPy function from a scalar SymPy expression.

    Args:
        expr: SymPy expression
        symbols: Input symbols in call order

    Returns:
        Callable taking one argument per symbol and returning an array
        (0-d when the expression is constant)

    Examples:
        >>> x, t = sp.symbols('x t')
        >>> f = generate_numpy_function(x * sp.exp(-t), [t, x])
        >>> f(np.array([0.0, 1.0]), np.array([2.0, 2.0]))
        array([2.        , 0.73575888])
    """
    func = sp.lambdify(list(symbols), expr, modules=[SYMPY_TO_NUMPY_LAMBDIFY, "numpy"])

    def wrapped_func(*args):
        return np.asarray(func(*args), dtype=float)

    return wrapped_func


def broadcast_to_grid(values, n_points: int) -> np.ndarray:
    """
    Bring an evaluated expression to grid shape.

    Scalars (and length-1 arrays) are repeated n_points times; anything
    else must already have n_points entries.
    """
    values = np.asarray(values, dtype=float)
    if values.size == 1:
        return np.full(n_points, values.item())
    values = values.reshape(-1)
    if values.size != n_points:
        raise ValueError(f"Expression evaluated to {values.size} values, expected {n_points}")
    return values


def evaluate_on_grid(expr: sp.Expr, symbol_table: SymbolTable, n_points: int) -> np.ndarray:
    """
    Evaluate an expression at every grid point.

    Args:
        expr: SymPy expression whose free symbols are all named in symbol_table
        symbol_table: Mapping of symbol name to grid vector (or scalar)
        n_points: Grid length N

    Returns:
        Array of shape (N,)

    Raises:
        KeyError: If the expression uses a symbol missing from the table

    Examples:
        >>> x, t = sp.symbols('x t')
        >>> evaluate_on_grid(2 * x, {'x': np.ones(3), 't': np.arange(3.0)}, 3)
        array([2., 2., 2.])
        >>> evaluate_on_grid(sp.Integer(4), {}, 3)
        array([4., 4., 4.])
    """
    used: List[sp.Symbol] = sorted(expr.free_symbols, key=lambda s: s.name)
    missing = [s.name for s in used if s.name not in symbol_table]
    if missing:
        raise KeyError(f"No values bound for symbols {missing}")

    if not used:
        return broadcast_to_grid(float(expr), n_points)

    func = generate_numpy_function(expr, used)
    return broadcast_to_grid(func(*[symbol_table[s.name] for s in used]), n_points)
