"""Rendering and display modules."""

from .display_modes import DisplayMode, layout_rects
from .radar_display import PLACEHOLDER_TEXT, RadarDisplayWidget, RadarRenderer
from .renderer import Renderer

__all__ = ['DisplayMode', 'layout_rects', 'PLACEHOLDER_TEXT', 'RadarDisplayWidget', 'RadarRenderer', 'Renderer']
