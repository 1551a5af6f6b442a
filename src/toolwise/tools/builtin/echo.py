"""Echo tool - Simple tool for testing.

This tool echoes back the input message. It is handy for exercising the
recorder and the selector without side effects.
"""

from pydantic import BaseModel, Field

from toolwise.tools.base import BaseTool, RiskLevel, ToolResult


class EchoParams(BaseModel):
    """Parameters for the echo tool."""

    message: str = Field(..., description="Message to echo back")
    uppercase: bool = Field(
        default=False,
        description="Whether to convert the message to uppercase",
    )
    repeat: int = Field(
        default=1,
        description="Number of times to repeat the message",
        ge=1,
        le=10,
    )


class EchoTool(BaseTool[EchoParams]):
    """Echo tool that returns the input message."""

    name = "echo"
    description = "Echo back a message, optionally in uppercase and repeated"
    risk_level = RiskLevel.LOW
    parameters_schema = EchoParams

    async def execute(self, params: EchoParams) -> ToolResult:
        message = params.message

        if params.uppercase:
            message = message.upper()

        if params.repeat > 1:
            message = " ".join([message] * params.repeat)

        return ToolResult.success_result(
            data=message,
            original_message=params.message,
        )
