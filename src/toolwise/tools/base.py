"""Base infrastructure for Toolwise tools.

This module provides the foundational classes for tools the agent can call:
risk classification, result handling, and parameter validation. Every tool
run produces a ToolResult, which is what the experience recorder learns from.
"""

import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field, ValidationError

# Type variable for tool parameters
TParams = TypeVar("TParams", bound=BaseModel)


class RiskLevel(str, Enum):
    """Risk level classification for tool operations."""

    LOW = "low"  # Read-only, no side effects
    MEDIUM = "medium"  # Reversible side effects
    HIGH = "high"  # Irreversible/sensitive operations
    CRITICAL = "critical"  # Dangerous/bulk operations

    def __str__(self) -> str:
        return self.value


class ToolErrorKind(str, Enum):
    """Category of a failed tool run, recorded as the experience error type."""

    TOOL_NOT_FOUND = "tool_not_found"
    INVALID_ARGUMENTS = "invalid_arguments"
    TIMEOUT = "timeout"
    API_ERROR = "api_error"
    EXECUTION_ERROR = "execution_error"

    def __str__(self) -> str:
        return self.value


class ToolResult(BaseModel):
    """Result from tool execution.

    Contains the execution result, success status, error information,
    and metadata about the execution.
    """

    success: bool = Field(..., description="Whether the tool executed successfully")
    data: Any = Field(default=None, description="The actual result data")
    error: str | None = Field(default=None, description="Error message if failed")
    error_kind: ToolErrorKind | None = Field(
        default=None,
        description="Category of the failure, if failed",
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Execution metadata (time, tokens, etc.)",
    )

    @classmethod
    def success_result(cls, data: Any, **metadata: Any) -> "ToolResult":
        """Create a successful result.

        Args:
            data: The result data
            **metadata: Additional metadata

        Returns:
            ToolResult: Successful tool result
        """
        return cls(success=True, data=data, error=None, metadata=metadata)

    @classmethod
    def error_result(
        cls,
        error: str,
        kind: ToolErrorKind = ToolErrorKind.EXECUTION_ERROR,
        **metadata: Any,
    ) -> "ToolResult":
        """Create an error result.

        Args:
            error: Error message
            kind: Failure category
            **metadata: Additional metadata

        Returns:
            ToolResult: Error tool result
        """
        return cls(success=False, data=None, error=error, error_kind=kind, metadata=metadata)

    def __str__(self) -> str:
        if self.success:
            return f"Success: {self.data}"
        return f"Error: {self.error}"


class BaseTool(ABC, Generic[TParams]):
    """Abstract base class for all tools.

    Subclasses set the ``name``, ``description``, ``risk_level`` and
    ``parameters_schema`` class attributes and implement ``execute()``.

    Type Parameters:
        TParams: Pydantic model defining the tool's parameters
    """

    name: str
    description: str
    risk_level: RiskLevel
    parameters_schema: type[BaseModel]

    def __init__(self):
        """Initialize the tool.

        Validates that required class attributes are set.
        """
        required_attrs = ["name", "description", "risk_level", "parameters_schema"]
        for attr in required_attrs:
            if not hasattr(self, attr):
                raise ValueError(
                    f"Tool must define '{attr}' class attribute. "
                    f"Subclass {self.__class__.__name__} is missing it."
                )

        if not issubclass(self.parameters_schema, BaseModel):
            raise ValueError(
                f"parameters_schema must be a Pydantic BaseModel subclass, "
                f"got {type(self.parameters_schema)}"
            )

    @abstractmethod
    async def execute(self, params: TParams) -> ToolResult:
        """Execute the tool with validated parameters.

        Args:
            params: Validated parameters conforming to parameters_schema

        Returns:
            ToolResult: Result of the execution
        """
        pass

    def validate_params(self, raw_params: dict[str, Any]) -> BaseModel:
        """Parse and validate raw parameters.

        Raises:
            ValidationError: If parameters are invalid
        """
        return self.parameters_schema(**raw_params)

    async def run(self, raw_params: dict[str, Any]) -> ToolResult:
        """Run the tool with parameter validation and error handling.

        This is the main entry point for tool execution. It never raises:
        validation problems, timeouts and execution failures all come back
        as error results tagged with a ToolErrorKind.

        Args:
            raw_params: Raw parameter dictionary

        Returns:
            ToolResult: Execution result, with ``execution_time`` in metadata
        """
        start_time = time.perf_counter()

        try:
            validated_params = self.validate_params(raw_params)
            result = await self.execute(validated_params)

        except ValidationError as e:
            return ToolResult.error_result(
                error=f"Parameter validation failed: {e}",
                kind=ToolErrorKind.INVALID_ARGUMENTS,
                execution_time=time.perf_counter() - start_time,
            )

        except TimeoutError as e:
            return ToolResult.error_result(
                error=f"Tool execution timed out: {e}",
                kind=ToolErrorKind.TIMEOUT,
                execution_time=time.perf_counter() - start_time,
            )

        except Exception as e:
            return ToolResult.error_result(
                error=f"Tool execution failed: {type(e).__name__}: {e}",
                kind=ToolErrorKind.EXECUTION_ERROR,
                execution_time=time.perf_counter() - start_time,
            )

        result.metadata["execution_time"] = time.perf_counter() - start_time
        return result

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__} "
            f"name='{self.name}' "
            f"risk={self.risk_level.value}>"
        )
