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
Exceptions raised by the integral-matching pipeline.

Numerical failures derive from IntegralMatchingError; the top-level fit
converts them into "no estimate produced". InconsistentCacheError is a
contract violation and is never converted.
"""


class IntegralMatchingError(Exception):
    """Base class for numerical failures of an integral-matching fit"""
    pass


class SmoothingError(IntegralMatchingError):
    """Raised when a local kernel fit is degenerate at a grid point"""
    pass


class SingularSystemError(IntegralMatchingError):
    """Raised when the Gram matrix B or the initial-condition system is singular"""
    pass


class LeastSquaresFailure(IntegralMatchingError):
    """Raised when the box-constrained least-squares solve fails"""
    pass


class InconsistentCacheError(ValueError):
    """Raised when a previous fit does not match the current call"""
    pass
