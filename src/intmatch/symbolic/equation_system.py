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
Equation System for Integral Matching

Parses the right-hand sides of an ODE system into SymPy expression trees
and derives the two expression families the fit integrates:

- Free terms: each equation with every linear parameter set to zero
- Sensitivities: the partial derivative of each equation with respect to
  each linear parameter

Parsing binds every variable, parameter and the time symbol through an
explicit local dictionary, so identifiers are matched as whole symbols and
never as substrings.

Checks:
- Names are valid, unique identifiers and do not collide
- Every free symbol is a declared variable, parameter or time
- No undefined function calls
- Every equation is affine in every parameter
- Parameters absent from all equations (warning only)
"""

import keyword
import warnings
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import sympy as sp
from sympy.core.function import AppliedUndef
from sympy.parsing.sympy_parser import parse_expr, standard_transformations
from typing_extensions import TypedDict

from intmatch.types.core import GridVector, SymbolTable, TrajectoryMatrix

EquationLike = Union[str, sp.Expr, float, int]


# ============================================================================
# Exceptions
# ============================================================================


class EquationValidationError(ValueError):
    """Raised when an equation system definition is invalid"""
    pass


# ============================================================================
# Validation Result Container
# ============================================================================


class EquationSystemInfo(TypedDict):
    """
    Summary of a validated equation system.

    Fields
    ------
    n_vars : int
        Number of state variables d
    n_params : int
        Number of linear parameters p
    variables : List[str]
        Variable names in equation order
    parameters : List[str]
        Linear parameter names
    """
    n_vars: int
    n_params: int
    variables: List[str]
    parameters: List[str]


@dataclass
class EquationValidationResult:
    """
    Container for validation results.

    Attributes
    ----------
    is_valid : bool
        True if the system passed all validation checks
    errors : List[str]
        Validation errors (empty if valid)
    warnings : List[str]
        Non-fatal issues
    info : EquationSystemInfo
        Summary of the validated system
    """
    is_valid: bool
    errors: List[str]
    warnings: List[str]
    info: EquationSystemInfo


# ============================================================================
# Equation System
# ============================================================================


class EquationSystem:
    """
    ODE right-hand sides that are affine in a set of linear parameters.

    Parameters
    ----------
    equations : Mapping[str, EquationLike]
        Variable name → right-hand side of d(variable)/dt. Strings are parsed
        with SymPy; SymPy expressions are matched to variables and parameters
        by symbol name.
    parameters : Sequence[str]
        Names of the linear parameters, in estimation order
    time_symbol : str
        Name under which equations may reference time
    validate : bool
        Validate on construction and raise EquationValidationError on failure

    Examples
    --------
    >>> system = EquationSystem(
    ...     {"x": "alpha*x - beta*x*y", "y": "delta*x*y - gamma*y"},
    ...     ["alpha", "beta", "gamma", "delta"],
    ... )
    >>> system.free_term("x")
    0
    >>> system.sensitivity("x", "beta")
    -x*y
    """

    def __init__(
        self,
        equations: Mapping[str, EquationLike],
        parameters: Sequence[str] = (),
        time_symbol: str = "t",
        validate: bool = True,
    ):
        if isinstance(parameters, str):
            parameters = [parameters]
        self.variables: Tuple[str, ...] = tuple(str(name) for name in equations.keys())
        self.parameters: Tuple[str, ...] = tuple(str(name) for name in parameters)
        self.time_symbol = str(time_symbol)

        self._raw = dict(zip(self.variables, equations.values()))
        self.symbols: Dict[str, sp.Symbol] = {
            name: sp.Symbol(name) for name in (*self.variables, *self.parameters, self.time_symbol)
        }

        self._errors: List[str] = []
        self._warnings: List[str] = []
        self.expressions: Dict[str, Optional[sp.Expr]] = {
            name: self._parse(name, rhs) for name, rhs in self._raw.items()
        }
        self._parse_errors = list(self._errors)

        self._free_terms: Dict[str, sp.Expr] = {}
        self._sensitivities: Dict[Tuple[str, str], sp.Expr] = {}

        if validate:
            self.validate(raise_on_error=True)

    # ========================================================================
    # Properties
    # ========================================================================

    @property
    def n_vars(self) -> int:
        """Number of state variables d"""
        return len(self.variables)

    @property
    def n_params(self) -> int:
        """Number of linear parameters p"""
        return len(self.parameters)

    @property
    def parameter_symbols(self) -> List[sp.Symbol]:
        return [self.symbols[name] for name in self.parameters]

    def __repr__(self) -> str:
        return (
            f"EquationSystem(variables={list(self.variables)}, "
            f"parameters={list(self.parameters)})"
        )

    # ========================================================================
    # Parsing
    # ========================================================================

    def _parse(self, variable: str, rhs: EquationLike) -> Optional[sp.Expr]:
        if isinstance(rhs, sp.Basic):
            # Rebind by name so user-built symbols with assumptions still match
            rebind = {s: self.symbols[s.name] for s in rhs.free_symbols if s.name in self.symbols}
            return sp.sympify(rhs).xreplace(rebind)

        if isinstance(rhs, (int, float, np.number)):
            return sp.Float(rhs) if isinstance(rhs, (float, np.floating)) else sp.Integer(int(rhs))

        if not isinstance(rhs, str) or not rhs.strip():
            self._errors.append(f"Equation for '{variable}' must be a non-empty string or SymPy expression")
            return None

        try:
            expr = parse_expr(
                rhs.replace("^", "**"),
                local_dict=dict(self.symbols),
                transformations=standard_transformations,
                evaluate=True,
            )
        except Exception as e:
            self._errors.append(f"Could not parse equation for '{variable}': {rhs!r} ({e})")
            return None

        if not isinstance(expr, sp.Expr):
            self._errors.append(f"Equation for '{variable}' is not a scalar expression: {rhs!r}")
            return None
        return expr

    # ========================================================================
    # Validation
    # ========================================================================

    def validate(self, raise_on_error: bool = True) -> EquationValidationResult:
        """
        Validate the equation system.

        Parameters
        ----------
        raise_on_error : bool
            If True, raise EquationValidationError on validation failure

        Returns
        -------
        EquationValidationResult

        Raises
        ------
        EquationValidationError
            If validation fails and raise_on_error=True
        """
        self._errors = list(self._parse_errors)
        self._warnings = []

        self._validate_names()
        if len(self._errors) == 0:
            self._validate_symbols()
        if len(self._errors) == 0:
            self._validate_affine()
            self._check_parameter_usage()

        result = EquationValidationResult(
            is_valid=len(self._errors) == 0,
            errors=self._errors.copy(),
            warnings=self._warnings.copy(),
            info=EquationSystemInfo(
                n_vars=self.n_vars,
                n_params=self.n_params,
                variables=list(self.variables),
                parameters=list(self.parameters),
            ),
        )

        for warning in result.warnings:
            warnings.warn(f"Equation system warning: {warning}", UserWarning)

        if not result.is_valid and raise_on_error:
            raise EquationValidationError(self._format_error_message())

        return result

    def _validate_names(self):
        if self.n_vars == 0:
            self._errors.append("At least one equation is required")

        for kind, names in (("variable", self.variables), ("parameter", self.parameters)):
            for name in names:
                if not name.isidentifier() or keyword.iskeyword(name):
                    self._errors.append(f"Invalid {kind} name '{name}'")
            duplicates = sorted({name for name in names if names.count(name) > 1})
            if duplicates:
                self._errors.append(f"Duplicate {kind} names: {duplicates}")

        overlap = sorted(set(self.variables) & set(self.parameters))
        if overlap:
            self._errors.append(f"Names used as both variable and parameter: {overlap}")

        if self.time_symbol in self.variables or self.time_symbol in self.parameters:
            self._errors.append(f"Time symbol '{self.time_symbol}' collides with a variable or parameter")

    def _validate_symbols(self):
        known = set(self.symbols)
        for variable, expr in self.expressions.items():
            unknown = sorted(s.name for s in expr.free_symbols if s.name not in known)
            if unknown:
                self._errors.append(f"Equation for '{variable}' uses undefined symbols {unknown}")
            undefined = sorted(str(f.func) for f in expr.atoms(AppliedUndef))
            if undefined:
                self._errors.append(f"Equation for '{variable}' calls undefined functions {undefined}")

    def _validate_affine(self):
        parameter_symbols = set(self.parameter_symbols)
        for variable in self.variables:
            for parameter in self.parameters:
                derivative = self.sensitivity(variable, parameter)
                if derivative.free_symbols & parameter_symbols:
                    self._errors.append(
                        f"Equation for '{variable}' is not linear in '{parameter}': "
                        f"d/d{parameter} = {derivative}"
                    )

    def _check_parameter_usage(self):
        used = set()
        for expr in self.expressions.values():
            used |= {s.name for s in expr.free_symbols}
        for parameter in self.parameters:
            if parameter not in used:
                self._warnings.append(f"Parameter '{parameter}' does not appear in any equation")

    def _format_error_message(self) -> str:
        msg = "Equation system validation failed:\n\n"
        for i, error in enumerate(self._errors, 1):
            msg += f"  {i}. {error}\n"
        return msg

    # ========================================================================
    # Derived Expressions
    # ========================================================================

    def expression(self, variable: str) -> sp.Expr:
        if variable not in self.expressions:
            raise KeyError(f"Unknown variable '{variable}'. Known: {list(self.variables)}")
        expr = self.expressions[variable]
        if expr is None:
            raise EquationValidationError(f"Equation for '{variable}' could not be parsed")
        return expr

    def free_term(self, variable: str) -> sp.Expr:
        """
        Right-hand side of `variable` with every linear parameter set to zero.

        Examples
        --------
        >>> EquationSystem({"x": "a*x + 2"}, ["a"]).free_term("x")
        2
        """
        if variable not in self._free_terms:
            zeros = {symbol: sp.Integer(0) for symbol in self.parameter_symbols}
            self._free_terms[variable] = self.expression(variable).xreplace(zeros)
        return self._free_terms[variable]

    def sensitivity(self, variable: str, parameter: str) -> sp.Expr:
        """
        Partial derivative of the right-hand side of `variable` with respect
        to `parameter`.
        """
        if parameter not in self.parameters:
            raise KeyError(f"Unknown parameter '{parameter}'. Known: {list(self.parameters)}")
        key = (variable, parameter)
        if key not in self._sensitivities:
            self._sensitivities[key] = sp.diff(self.expression(variable), self.symbols[parameter])
        return self._sensitivities[key]

    def sensitivities(self, variable: str) -> List[sp.Expr]:
        """Partial derivatives of one equation, ordered like the parameters"""
        return [self.sensitivity(variable, parameter) for parameter in self.parameters]

    # ========================================================================
    # Evaluation Support
    # ========================================================================

    def symbol_table(self, t: GridVector, smooth: TrajectoryMatrix) -> SymbolTable:
        """
        Bind variables to smoothed trajectory columns and time to the grid.

        Parameters are deliberately left unbound; free terms and
        sensitivities never contain them.
        """
        table: SymbolTable = {self.time_symbol: np.asarray(t, dtype=float)}
        for i, variable in enumerate(self.variables):
            table[variable] = smooth[:, i]
        return table
