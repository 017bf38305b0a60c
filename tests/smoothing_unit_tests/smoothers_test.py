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
Unit tests for the smoothing engine.

Tests cover:
1. Epanechnikov kernel and bandwidth
2. Local-linear weights and degenerate neighbourhoods
3. Kernel, spline and interpolation smoothers
4. Method dispatch
"""

import numpy as np
import pytest

from intmatch.exceptions import IntegralMatchingError, SmoothingError
from intmatch.smoothing.smoothers import (
    epanechnikov_kernel,
    interpolate,
    kernel_bandwidth,
    kernel_smooth,
    local_linear_weights,
    smooth_observations,
    spline_smooth,
)

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def noisy_sine():
    rng = np.random.default_rng(42)
    t = np.linspace(0, 2 * np.pi, 80)
    truth = np.sin(t)
    return t, truth, truth + 0.1 * rng.standard_normal(t.size)


# ============================================================================
# Test Class 1: Kernel and Bandwidth
# ============================================================================


class TestKernel:
    def test_support(self):
        np.testing.assert_array_equal(epanechnikov_kernel(np.array([-1.5, 1.0, 1.5])), [0.0, 0.0, 0.0])

    def test_peak(self):
        assert epanechnikov_kernel(np.array([0.0]))[0] == 0.75

    def test_bandwidth_uses_largest_gap(self):
        assert kernel_bandwidth(np.array([0.0, 1.0, 3.0]), 1.5) == 3.0

    def test_bandwidth_factor_floor(self):
        assert kernel_bandwidth(np.array([0.0, 1.0, 3.0]), 0.5) == 2.0


# ============================================================================
# Test Class 2: Local-Linear Weights
# ============================================================================


class TestLocalLinearWeights:
    def test_weights_sum_to_one(self):
        time = np.linspace(0, 1, 21)
        for t_k in (0.0, 0.33, 1.0):
            weights = local_linear_weights(time, t_k, 0.1)
            assert weights.sum() == pytest.approx(1.0)

    def test_weights_reproduce_position(self):
        time = np.linspace(0, 1, 21)
        weights = local_linear_weights(time, 0.42, 0.1)
        assert weights @ time == pytest.approx(0.42)

    def test_single_point_in_window(self):
        """Bandwidth equal to the gap leaves one observation at a sample point"""
        with pytest.raises(SmoothingError, match="degenerate"):
            local_linear_weights(np.array([0.0, 1.0, 2.0]), 0.0, 1.0)

    def test_empty_window(self):
        with pytest.raises(SmoothingError):
            local_linear_weights(np.array([0.0, 1.0]), 10.0, 0.5)

    def test_is_a_fit_failure(self):
        assert issubclass(SmoothingError, IntegralMatchingError)


# ============================================================================
# Test Class 3: Smoothers
# ============================================================================


class TestKernelSmooth:
    def test_reproduces_linear_data(self):
        t = np.linspace(0, 1, 11)
        grid = np.linspace(0, 1, 41)
        np.testing.assert_allclose(kernel_smooth(t, 2 * t + 1, grid), 2 * grid + 1, atol=1e-12)

    def test_irregular_sampling_linear(self):
        t = np.array([0.0, 0.1, 0.15, 0.4, 0.5, 0.7, 0.75, 1.0])
        grid = np.linspace(0, 1, 9)
        np.testing.assert_allclose(kernel_smooth(t, 3 - t, grid, bw_factor=2.0), 3 - grid, atol=1e-12)

    def test_reduces_noise(self, noisy_sine):
        t, truth, noisy = noisy_sine
        smooth = kernel_smooth(t, noisy, t, bw_factor=4.0)
        assert np.mean((smooth - truth) ** 2) < np.mean((noisy - truth) ** 2)


class TestSplineSmooth:
    def test_reproduces_linear_data(self):
        t = np.linspace(0, 2, 15)
        grid = np.linspace(0, 2, 31)
        np.testing.assert_allclose(spline_smooth(t, 0.5 * t - 1, grid), 0.5 * grid - 1, atol=1e-6)

    def test_reduces_noise(self, noisy_sine):
        t, truth, noisy = noisy_sine
        smooth = spline_smooth(t, noisy, t)
        assert np.mean((smooth - truth) ** 2) < np.mean((noisy - truth) ** 2)

    def test_needs_five_points(self):
        t = np.arange(4.0)
        with pytest.raises(ValueError, match="at least 5"):
            spline_smooth(t, t, t)


class TestInterpolate:
    def test_passes_through_observations(self):
        t = np.array([0.0, 0.3, 0.5, 1.2, 2.0])
        y = np.array([1.0, -1.0, 2.0, 0.5, 3.0])
        np.testing.assert_allclose(interpolate(t, y, t), y, rtol=1e-12, atol=1e-12)

    def test_cubic_exact(self):
        t = np.linspace(0, 1, 6)
        grid = np.linspace(0, 1, 17)
        np.testing.assert_allclose(interpolate(t, t**2, grid), grid**2, atol=1e-12)


# ============================================================================
# Test Class 4: Dispatch
# ============================================================================


class TestSmoothObservations:
    @pytest.mark.parametrize("method", ["splines", "kernel", "none"])
    def test_output_on_grid(self, method):
        t = np.linspace(0, 1, 11)
        grid = np.linspace(0, 1, 23)
        assert smooth_observations(t, t, grid, method).shape == (23,)

    def test_unknown_method(self):
        t = np.linspace(0, 1, 11)
        with pytest.raises(ValueError, match="Unknown smoothing"):
            smooth_observations(t, t, t, "loess")
