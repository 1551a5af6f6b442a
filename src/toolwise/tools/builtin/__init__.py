"""Built-in tools registered in the default catalog.

The names line up with the selector's fallback heuristics, so a fresh
install with no recorded experience still resolves "calculation" requests
to a sensible tool.
"""

from toolwise.tools.builtin.echo import EchoTool
from toolwise.tools.builtin.math_calculate import MathCalculateTool

__all__ = ["EchoTool", "MathCalculateTool"]
