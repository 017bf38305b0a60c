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
Unit tests for grid construction and observation normalization.
"""

import numpy as np
import pytest

from intmatch.smoothing.grid import build_time_grid, normalize_observations

# ============================================================================
# Observation Normalization
# ============================================================================


class TestNormalizeObservations:
    """Accepted input layouts and validation"""

    def test_shared_time_sequence(self):
        t = [0.0, 1.0, 2.0]
        times, values = normalize_observations(["x", "y"], t, [[1, 2, 3], [4, 5, 6]])
        assert len(times) == 2
        np.testing.assert_array_equal(times[1], t)
        np.testing.assert_array_equal(values[1], [4.0, 5.0, 6.0])

    def test_matrix_observations(self):
        t = np.arange(4.0)
        obs = np.column_stack([t, 2 * t])
        times, values = normalize_observations(["x", "y"], t, obs)
        np.testing.assert_array_equal(values[1], 2 * t)

    def test_mappings_reordered(self):
        times, values = normalize_observations(
            ["x", "y"],
            {"y": [0.0, 2.0], "x": [0.0, 1.0, 2.0]},
            {"y": [7.0, 8.0], "x": [1.0, 2.0, 3.0]},
        )
        assert times[0].size == 3
        np.testing.assert_array_equal(values[1], [7.0, 8.0])

    def test_per_variable_times(self):
        times, _ = normalize_observations(["x", "y"], [[0, 1], [0, 2, 4]], [[1, 1], [2, 2, 2]])
        np.testing.assert_array_equal(times[1], [0.0, 2.0, 4.0])

    def test_per_variable_arrays_of_unequal_length(self):
        t_x, t_y = np.linspace(0, 5, 51), np.linspace(0, 5, 41)
        times, values = normalize_observations(["x", "y"], [t_x, t_y], [np.exp(-t_x), np.exp(-t_y)])
        assert [t_i.size for t_i in times] == [51, 41]
        assert [y_i.size for y_i in values] == [51, 41]

    def test_shared_time_array(self):
        t = np.linspace(0, 1, 3)
        times, _ = normalize_observations(["x", "y"], t, [[1, 2, 3], [4, 5, 6]])
        np.testing.assert_array_equal(times[0], times[1])

    def test_missing_variable(self):
        with pytest.raises(ValueError, match="Missing observations"):
            normalize_observations(["x", "y"], [0, 1], {"x": [1, 2]})

    def test_wrong_count(self):
        with pytest.raises(ValueError, match="2 observation vectors for 3"):
            normalize_observations(["x", "y", "z"], [0, 1], [[1, 2], [3, 4]])

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="3 time points but 2"):
            normalize_observations(["x"], [0, 1, 2], [[1, 2]])

    def test_too_few_samples(self):
        with pytest.raises(ValueError, match="at least 2"):
            normalize_observations(["x"], [0.0], [[1.0]])

    def test_non_finite(self):
        with pytest.raises(ValueError, match="non-finite"):
            normalize_observations(["x"], [0, 1, 2], [[1, np.nan, 2]])

    def test_not_increasing(self):
        with pytest.raises(ValueError, match="strictly increasing"):
            normalize_observations(["x"], [0, 2, 1], [[1, 2, 3]])


# ============================================================================
# Grid Construction
# ============================================================================


class TestBuildTimeGrid:
    """Grid size, step and span per smoothing method"""

    def test_default_size_is_largest_count(self):
        grid = build_time_grid([np.array([0.0, 1.0, 2.0]), np.array([0.0, 4.0])])
        np.testing.assert_array_equal(grid.t, [0.0, 2.0, 4.0])
        assert grid.dt == 2.0
        assert grid.n_points == 3

    def test_explicit_grid_size(self):
        grid = build_time_grid([np.linspace(1, 3, 5)], smoothing="none", grid_size=21)
        assert grid.n_points == 21
        assert grid.t[0] == 1.0 and grid.t[-1] == 3.0
        assert grid.dt == pytest.approx(0.1)

    def test_span_covers_all_variables(self):
        grid = build_time_grid([np.array([1.0, 2.0]), np.array([0.5, 3.0])])
        assert grid.min_time == 0.5
        assert grid.max_time == 3.0
        assert grid.span == 2.5

    def test_kernel_step_is_half_smallest_gap(self):
        grid = build_time_grid([np.array([0.0, 1.0, 3.0])], smoothing="kernel")
        assert grid.dt == 0.5
        np.testing.assert_allclose(grid.t, np.arange(0.0, 3.01, 0.5))

    def test_kernel_ignores_grid_size(self):
        grid = build_time_grid([np.linspace(0, 1, 11)], smoothing="kernel", grid_size=7)
        assert grid.n_points == 21

    def test_kernel_grid_stays_inside_span(self):
        grid = build_time_grid([np.array([0.0, 0.3, 1.0])], smoothing="kernel")
        assert grid.t[-1] <= 1.0 + 1e-12
        assert np.all(np.diff(grid.t) > 0)

    def test_unknown_method(self):
        with pytest.raises(ValueError, match="Unknown smoothing"):
            build_time_grid([np.array([0.0, 1.0])], smoothing="loess")

    def test_zero_span(self):
        with pytest.raises(ValueError, match="positive time interval"):
            build_time_grid([np.array([1.0, 1.0])])

    def test_grid_is_read_only(self):
        grid = build_time_grid([np.array([0.0, 1.0])])
        with pytest.raises(ValueError):
            grid.t[0] = 5.0
