"""Arithmetic calculator tool.

Evaluates plain arithmetic expressions by walking the Python AST, so only
numbers, the usual binary/unary operators and parentheses are accepted.
"""

import ast
import operator
from typing import Any

from pydantic import BaseModel, Field

from toolwise.tools.base import BaseTool, RiskLevel, ToolResult

_BINARY_OPS: dict[type[ast.operator], Any] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: dict[type[ast.unaryop], Any] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

# Keeps "9 ** 9 ** 9" from pinning the event loop
MAX_EXPONENT = 1000


class MathCalculateParams(BaseModel):
    """Parameters for the calculator tool."""

    expression: str = Field(
        ...,
        description="Arithmetic expression, e.g. '(2 + 3) * 4'",
        min_length=1,
        max_length=500,
    )


def evaluate_expression(expression: str) -> int | float:
    """Evaluate an arithmetic expression safely.

    Raises:
        ValueError: If the expression contains anything but arithmetic
        ZeroDivisionError: On division by zero
    """
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as e:
        raise ValueError(f"Invalid expression: {expression!r}") from e

    return _evaluate(tree.body)


def _evaluate(node: ast.AST) -> int | float:
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        if isinstance(node.value, bool):
            raise ValueError("Booleans are not numbers here")
        return node.value

    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left = _evaluate(node.left)
        right = _evaluate(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise ValueError(f"Exponent too large: {right}")
        return _BINARY_OPS[type(node.op)](left, right)

    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_evaluate(node.operand))

    raise ValueError(f"Unsupported expression element: {type(node).__name__}")


class MathCalculateTool(BaseTool[MathCalculateParams]):
    """Evaluate arithmetic expressions."""

    name = "math_calculate"
    description = "Evaluate an arithmetic expression (+, -, *, /, //, %, **, parentheses)"
    risk_level = RiskLevel.LOW
    parameters_schema = MathCalculateParams

    async def execute(self, params: MathCalculateParams) -> ToolResult:
        result = evaluate_expression(params.expression)
        return ToolResult.success_result(data=result, expression=params.expression)
