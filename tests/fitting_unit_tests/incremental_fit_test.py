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
Tests for incremental refits from a previous snapshot.

Tests cover:
1. Selecting every variable reproduces a fresh fit exactly
2. Partial updates match a fresh fit with the new equations
3. The previous snapshot is never modified
4. Inconsistent snapshots are rejected
"""

import numpy as np
import pytest

from intmatch import InconsistentCacheError, integral_matching_fit, refit
from intmatch.fitting.integral_matching import resolve_selection

# ============================================================================
# Fixtures
# ============================================================================

EQUATIONS = {"x": "a*y", "y": "-b*x"}
CHANGED = {"x": "a*y", "y": "-b*x + 0.1*t"}
PARAMETERS = ["a", "b"]


@pytest.fixture
def data():
    t = np.linspace(0, 10, 201)
    return t, {"x": np.cos(t), "y": -0.5 * np.sin(t)}


@pytest.fixture
def first_fit(data):
    t, obs = data
    return integral_matching_fit(EQUATIONS, PARAMETERS, t, obs, smoothing="none")


def assert_same_fit(fit, expected, exact=True):
    check = np.testing.assert_array_equal if exact else (
        lambda a, b: np.testing.assert_allclose(a, b, rtol=0, atol=1e-12)
    )
    check(fit.smooth, expected.smooth)
    check(fit.Z, expected.Z)
    for block, other in zip(fit.G, expected.G):
        check(block, other)
    check(fit.A, expected.A)
    check(fit.B, expected.B)
    check(fit.x0, expected.x0)
    check(fit.theta, expected.theta)


# ============================================================================
# Test Class 1: Selection
# ============================================================================


class TestResolveSelection:
    def test_none(self):
        assert resolve_selection(None, ["x", "y"]) is None

    def test_names_and_indices(self):
        assert resolve_selection(["z", 0, "x"], ["x", "y", "z"]) == [0, 2]

    def test_single_name(self):
        assert resolve_selection("y", ["x", "y"]) == [1]

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown variable 'w'"):
            resolve_selection(["w"], ["x", "y"])

    def test_index_out_of_range(self):
        with pytest.raises(ValueError, match="out of range"):
            resolve_selection([2], ["x", "y"])


# ============================================================================
# Test Class 2: Equivalence With Fresh Fits
# ============================================================================


class TestIncrementalEquivalence:
    def test_all_variables_is_bit_identical(self, data, first_fit):
        t, obs = data
        updated = refit(first_fit, ["x", "y"], EQUATIONS, t, obs, smoothing="none")
        fresh = integral_matching_fit(EQUATIONS, PARAMETERS, t, obs, smoothing="none")
        assert_same_fit(updated, fresh)

    def test_partial_update_matches_fresh_fit(self, data, first_fit):
        t, obs = data
        updated = refit(first_fit, ["y"], CHANGED, t, obs, smoothing="none")
        fresh = integral_matching_fit(CHANGED, PARAMETERS, t, obs, smoothing="none")

        assert_same_fit(updated, fresh, exact=False)
        assert not np.allclose(updated.Z[:, 1], first_fit.Z[:, 1])

    def test_selection_by_index(self, data, first_fit):
        t, obs = data
        by_name = refit(first_fit, ["y"], CHANGED, t, obs, smoothing="none")
        by_index = refit(first_fit, [1], CHANGED, t, obs, smoothing="none")
        assert_same_fit(by_name, by_index)

    def test_unselected_blocks_reused(self, data, first_fit):
        """Stale data for an unselected variable is not reread"""
        t, obs = data
        perturbed = {"x": obs["x"] + 1.0, "y": obs["y"]}
        updated = refit(first_fit, ["y"], EQUATIONS, t, perturbed, smoothing="none")
        np.testing.assert_array_equal(updated.smooth[:, 0], first_fit.smooth[:, 0])
        np.testing.assert_array_equal(updated.G[0], first_fit.G[0])

    def test_previous_without_aggregates(self, data):
        """A snapshot fitted with known x0 has no A; it is rebuilt in full"""
        t, obs = data
        known = integral_matching_fit(EQUATIONS, PARAMETERS, t, obs, x0=[1.0, 0.0], smoothing="none")
        assert known.A is None

        updated = refit(known, ["y"], CHANGED, t, obs, smoothing="none")
        fresh = integral_matching_fit(CHANGED, PARAMETERS, t, obs, smoothing="none")
        assert_same_fit(updated, fresh, exact=False)

    def test_selection_without_previous_fit(self, data, first_fit):
        t, obs = data
        fit = integral_matching_fit(EQUATIONS, PARAMETERS, t, obs, smoothing="none", vars2update=["y"])
        assert_same_fit(fit, first_fit)

    def test_previous_fit_untouched(self, data, first_fit):
        t, obs = data
        Z_before = np.array(first_fit.Z)
        theta_before = np.array(first_fit.theta)

        refit(first_fit, ["y"], CHANGED, t, obs, smoothing="none")

        np.testing.assert_array_equal(first_fit.Z, Z_before)
        np.testing.assert_array_equal(first_fit.theta, theta_before)


# ============================================================================
# Test Class 3: Inconsistent Snapshots
# ============================================================================


class TestInconsistentSnapshot:
    def test_parameter_mismatch(self, data, first_fit):
        t, obs = data
        with pytest.raises(InconsistentCacheError, match="parameters"):
            refit(first_fit, ["y"], {"x": "a*y + c", "y": "-b*x"}, t, obs,
                  parameters=["a", "b", "c"], smoothing="none")

    def test_variable_mismatch(self, data, first_fit):
        t, obs = data
        with pytest.raises(InconsistentCacheError, match="variables"):
            refit(first_fit, ["y"], {"y": "-b*x", "x": "a*y"}, t, {"y": obs["y"], "x": obs["x"]},
                  smoothing="none")

    def test_grid_mismatch(self, data, first_fit):
        t, obs = data
        with pytest.raises(InconsistentCacheError, match="grid size 201 != 51"):
            refit(first_fit, ["y"], EQUATIONS, t, obs, smoothing="none", grid_size=51)

    def test_mismatch_is_raised_not_swallowed(self, data, first_fit):
        t, obs = data
        with pytest.raises(InconsistentCacheError):
            integral_matching_fit(
                EQUATIONS, PARAMETERS, t, obs, smoothing="none",
                grid_size=51, previous_fit=first_fit,
            )

    def test_is_value_error(self):
        assert issubclass(InconsistentCacheError, ValueError)
