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
Diagnostic plots for integral-matching fits.

Interactive Plotly figures showing how well the smoothed trajectories follow
the observations and how closely the trajectory implied by the estimates
(x0 + Z + G theta) follows the smoothed one.

Examples
--------
>>> plotter = FitPlotter()
>>> fig = plotter.plot_trajectories(fit, time=t, observations=obs)
>>> fig.show()
>>>
>>> fig = plotter.plot_sensitivities(fit, "x", theme="publication")
"""

from typing import Dict, Mapping, Optional, Sequence, Union

import numpy as np
import plotly.graph_objects as go
from plotly.subplots import make_subplots

from intmatch.smoothing.grid import normalize_observations
from intmatch.types.core import ArrayLike
from intmatch.types.fitting import IntegralMatchingFit
from intmatch.visualization.themes import ColorSchemes, PlotThemes, shade_color


class FitPlotter:
    """
    Plotly visualizations of an IntegralMatchingFit.

    Attributes
    ----------
    default_theme : str
        Theme applied when a method is called without one
    """

    def __init__(self, default_theme: str = "default"):
        self.default_theme = default_theme

    # =========================================================================
    # Trajectories
    # =========================================================================

    def plot_trajectories(
        self,
        fit: IntegralMatchingFit,
        time: Optional[Union[ArrayLike, Sequence[ArrayLike], Mapping[str, ArrayLike]]] = None,
        observations: Optional[Union[Sequence[ArrayLike], Mapping[str, ArrayLike], np.ndarray]] = None,
        title: str = "Integral Matching Fit",
        theme: Optional[Union[str, Dict]] = None,
    ) -> go.Figure:
        """
        One panel per variable: observations, smoothed and fitted trajectories.

        The fitted trajectory is drawn only when every initial condition is
        known or estimated.

        Parameters
        ----------
        fit : IntegralMatchingFit
            Result to visualize
        time, observations : optional
            Raw data in any form accepted by integral_matching_fit
        title : str
            Figure title
        theme : str or dict, optional
            Theme preset or custom dict

        Returns
        -------
        go.Figure
        """
        theme = theme or self.default_theme
        config = PlotThemes.get_theme(theme)
        colors = ColorSchemes.get_colors(config["color_scheme"], n_colors=len(fit.variables))

        raw = None
        if time is not None and observations is not None:
            raw = normalize_observations(fit.variables, time, observations)

        fitted = None
        if fit.x0 is not None and not np.any(np.isnan(fit.x0)):
            fitted = fit.fitted_trajectory()

        fig = make_subplots(
            rows=len(fit.variables),
            cols=1,
            shared_xaxes=True,
            subplot_titles=list(fit.variables),
        )

        for i, (name, color) in enumerate(zip(fit.variables, colors)):
            row = i + 1
            if raw is not None:
                fig.add_trace(
                    go.Scatter(
                        x=raw[0][i],
                        y=raw[1][i],
                        mode="markers",
                        name=f"{name} observed",
                        marker=dict(color=color, size=6),
                    ),
                    row=row,
                    col=1,
                )
            fig.add_trace(
                go.Scatter(
                    x=fit.t,
                    y=fit.smooth[:, i],
                    mode="lines",
                    name=f"{name} smoothed ({fit.smoothing})",
                    line=dict(color=shade_color(color, 0.4), width=2),
                ),
                row=row,
                col=1,
            )
            if fitted is not None:
                fig.add_trace(
                    go.Scatter(
                        x=fit.t,
                        y=fitted[:, i],
                        mode="lines",
                        name=f"{name} integral match",
                        line=dict(color=shade_color(color, -0.3), width=2, dash="dash"),
                    ),
                    row=row,
                    col=1,
                )
            fig.update_yaxes(title_text=name, row=row, col=1)

        fig.update_xaxes(title_text="Time", row=len(fit.variables), col=1)
        fig.update_layout(title=title, height=max(300, 250 * len(fit.variables)))

        return PlotThemes.apply_theme(fig, theme=theme)

    # =========================================================================
    # Sensitivities
    # =========================================================================

    def plot_sensitivities(
        self,
        fit: IntegralMatchingFit,
        variable: str,
        title: Optional[str] = None,
        theme: Optional[Union[str, Dict]] = None,
    ) -> go.Figure:
        """
        Integrated sensitivity columns G[variable][:, j] over the grid.

        Without linear parameters the single curve is the integrated
        equation.
        """
        theme = theme or self.default_theme
        config = PlotThemes.get_theme(theme)
        block = np.asarray(fit.sensitivity(variable))
        if block.ndim == 1:
            block = block[:, np.newaxis]
            labels = [f"∫ d{variable}/dt"]
        else:
            labels = [f"∂/∂{name}" for name in fit.parameters]

        colors = ColorSchemes.get_colors(config["color_scheme"], n_colors=block.shape[1])
        fig = go.Figure()
        for j, (label, color) in enumerate(zip(labels, colors)):
            fig.add_trace(
                go.Scatter(x=fit.t, y=block[:, j], mode="lines", name=label, line=dict(color=color, width=2))
            )

        fig.update_layout(
            title=title or f"Integrated sensitivities of {variable}",
            xaxis_title="Time",
            yaxis_title="G",
        )
        return PlotThemes.apply_theme(fig, theme=theme)
