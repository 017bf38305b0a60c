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
Tests for the Plotly fit diagnostics and themes.
"""

import numpy as np
import plotly.graph_objects as go
import pytest

from intmatch import FitPlotter, integral_matching_fit
from intmatch.visualization.themes import ColorSchemes, PlotThemes, shade_color

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def data():
    t = np.linspace(0, 10, 101)
    return t, {"x": np.cos(t), "y": -0.5 * np.sin(t)}


@pytest.fixture
def fit(data):
    t, obs = data
    return integral_matching_fit({"x": "a*y", "y": "-b*x"}, ["a", "b"], t, obs, smoothing="none")


# ============================================================================
# Trajectory Plots
# ============================================================================


class TestPlotTrajectories:
    def test_with_observations(self, fit, data):
        t, obs = data
        fig = FitPlotter().plot_trajectories(fit, t, obs)

        assert isinstance(fig, go.Figure)
        # observed, smoothed and fitted per variable
        assert len(fig.data) == 6
        assert fig.layout.title.text == "Integral Matching Fit"

    def test_without_observations(self, fit):
        fig = FitPlotter().plot_trajectories(fit, title="Smoothed")
        assert len(fig.data) == 4
        assert fig.layout.title.text == "Smoothed"

    def test_unknown_x0_skips_fitted(self):
        t = np.linspace(0, 1, 11)
        pure = integral_matching_fit({"x": "1"}, [], t, [t], smoothing="none")
        fig = FitPlotter().plot_trajectories(pure)
        assert len(fig.data) == 1

    def test_theme_applied(self, fit):
        fig = FitPlotter(default_theme="publication").plot_trajectories(fit)
        assert fig.layout.font.family == "Times New Roman, serif"


# ============================================================================
# Sensitivity Plots
# ============================================================================


class TestPlotSensitivities:
    def test_one_trace_per_parameter(self, fit):
        fig = FitPlotter().plot_sensitivities(fit, "x")
        assert [trace.name for trace in fig.data] == ["∂/∂a", "∂/∂b"]

    def test_without_parameters(self):
        t = np.linspace(0, 1, 11)
        pure = integral_matching_fit({"x": "1"}, [], t, [t], smoothing="none")
        fig = FitPlotter().plot_sensitivities(pure, "x")
        assert len(fig.data) == 1
        np.testing.assert_allclose(fig.data[0].y, t, atol=1e-12)

    def test_unknown_variable(self, fit):
        with pytest.raises(KeyError):
            FitPlotter().plot_sensitivities(fit, "z")


# ============================================================================
# Themes
# ============================================================================


class TestThemes:
    def test_colors_cycle(self):
        colors = ColorSchemes.get_colors("colorblind_safe", n_colors=10)
        assert colors[8] == colors[0]

    def test_unknown_scheme(self):
        with pytest.raises(ValueError, match="Unknown color scheme"):
            ColorSchemes.get_colors("rainbow")

    def test_custom_theme_dict(self):
        assert PlotThemes.get_theme({"font_size": 20})["template"] == "plotly_white"

    def test_unknown_theme(self):
        with pytest.raises(ValueError):
            PlotThemes.get_theme("dark")

    def test_shade_color(self):
        assert shade_color("#000000", 0.5) == "#7f7f7f"
        assert shade_color("#ffffff", -1.0) == "#000000"
