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
Colors and themes for fit diagnostics.

Each state variable gets one base color; its observations are drawn in that
color, the smoothed curve in a lighter shade and the fitted trajectory in a
darker one.
"""

from typing import Dict, List, Optional, Union

import plotly.graph_objects as go


class ColorSchemes:
    """
    Categorical palettes for per-variable traces.

    Examples
    --------
    >>> ColorSchemes.get_colors("colorblind_safe", n_colors=3)
    ['#0173B2', '#DE8F05', '#029E73']
    """

    PLOTLY = [
        "#636EFA",
        "#EF553B",
        "#00CC96",
        "#AB63FA",
        "#FFA15A",
        "#19D3F3",
        "#FF6692",
        "#B6E880",
        "#FF97FF",
        "#FECB52",
    ]

    # Wong palette
    COLORBLIND_SAFE = [
        "#0173B2",
        "#DE8F05",
        "#029E73",
        "#CC78BC",
        "#CA9161",
        "#949494",
        "#ECE133",
        "#56B4E9",
    ]

    @staticmethod
    def get_colors(scheme: str = "plotly", n_colors: Optional[int] = None) -> List[str]:
        """
        Palette by name, cycled to `n_colors` entries if given.

        Raises
        ------
        ValueError
            If the scheme is unknown
        """
        palettes = {"plotly": ColorSchemes.PLOTLY, "colorblind_safe": ColorSchemes.COLORBLIND_SAFE}
        key = scheme.lower()
        if key not in palettes:
            raise ValueError(f"Unknown color scheme '{scheme}'. Available: {sorted(palettes)}")
        colors = palettes[key]
        if n_colors is None:
            return list(colors)
        return [colors[i % len(colors)] for i in range(n_colors)]


class PlotThemes:
    """
    Layout presets for diagnostic figures.

    Examples
    --------
    >>> fig = PlotThemes.apply_theme(fig, theme="publication")
    """

    DEFAULT = {
        "color_scheme": "plotly",
        "template": "plotly_white",
        "font_family": "Arial, sans-serif",
        "font_size": 12,
    }

    PUBLICATION = {
        "color_scheme": "colorblind_safe",
        "template": "simple_white",
        "font_family": "Times New Roman, serif",
        "font_size": 14,
    }

    @staticmethod
    def get_theme(theme: Union[str, Dict]) -> Dict:
        if isinstance(theme, dict):
            return {**PlotThemes.DEFAULT, **theme}
        if not isinstance(theme, str):
            raise TypeError("theme must be str or dict")
        presets = {"default": PlotThemes.DEFAULT, "publication": PlotThemes.PUBLICATION}
        if theme.lower() not in presets:
            raise ValueError(f"Unknown theme '{theme}'. Available: default, publication")
        return presets[theme.lower()]

    @staticmethod
    def apply_theme(fig: go.Figure, theme: Union[str, Dict] = "default") -> go.Figure:
        """Apply template and fonts of a preset (or custom dict) to a figure"""
        config = PlotThemes.get_theme(theme)
        fig.update_layout(
            template=config["template"],
            font=dict(family=config["font_family"], size=config["font_size"]),
        )
        return fig


def shade_color(hex_color: str, factor: float) -> str:
    """
    Move a hex color toward white (factor > 0) or black (factor < 0).

    Examples
    --------
    >>> shade_color("#000000", 0.5)
    '#7f7f7f'
    """
    hex_color = hex_color.lstrip("#")
    rgb = [int(hex_color[i : i + 2], 16) for i in (0, 2, 4)]
    if factor > 0:
        rgb = [int(c + (255 - c) * factor) for c in rgb]
    else:
        rgb = [int(c * (1 + factor)) for c in rgb]
    r, g, b = (max(0, min(255, c)) for c in rgb)
    return f"#{r:02x}{g:02x}{b:02x}"
