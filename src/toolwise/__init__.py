"""Toolwise - experience learning for tool-using agents.

Records every tool call as an experience, recommends tools with an
epsilon-greedy selector and mines recurring failures into error patterns.
"""

__version__ = "0.1.0"

from toolwise.config import Settings, get_settings, reload_settings

__all__ = ["Settings", "get_settings", "reload_settings", "__version__"]
