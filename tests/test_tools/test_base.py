"""Tests for tool base classes."""

import asyncio

import pytest
from pydantic import BaseModel, Field

from toolwise.tools import BaseTool, RiskLevel, ToolErrorKind, ToolResult


class TestEnums:
    """Test tool enums."""

    def test_string_representation(self):
        assert str(RiskLevel.LOW) == "low"
        assert str(ToolErrorKind.TIMEOUT) == "timeout"


class TestToolResult:
    """Test ToolResult model."""

    def test_success_result(self):
        result = ToolResult.success_result(data="test data", extra_info="metadata")

        assert result.success is True
        assert result.data == "test data"
        assert result.error is None
        assert result.error_kind is None
        assert result.metadata["extra_info"] == "metadata"

    def test_error_result_defaults_to_execution_error(self):
        result = ToolResult.error_result(error="Something went wrong", error_code=500)

        assert result.success is False
        assert result.error_kind == ToolErrorKind.EXECUTION_ERROR
        assert result.metadata["error_code"] == 500

    def test_error_result_with_kind(self):
        result = ToolResult.error_result(error="slow", kind=ToolErrorKind.TIMEOUT)

        assert result.error_kind == ToolErrorKind.TIMEOUT
        assert "Error" in str(result)


class SampleParams(BaseModel):
    """Parameters for the sample tool."""

    mode: str = Field(default="ok")
    count: int = Field(default=1, ge=1)


class SampleTool(BaseTool[SampleParams]):
    """Tool whose behaviour is driven by its parameters."""

    name = "sample"
    description = "Sample tool"
    risk_level = RiskLevel.LOW
    parameters_schema = SampleParams

    async def execute(self, params: SampleParams) -> ToolResult:
        if params.mode == "timeout":
            raise asyncio.TimeoutError("upstream too slow")
        if params.mode == "crash":
            raise RuntimeError("kaboom")
        return ToolResult.success_result(data=params.count)


class TestBaseTool:
    """Test BaseTool.run error mapping."""

    def test_missing_attributes(self):
        class Incomplete(BaseTool):
            name = "incomplete"

            async def execute(self, params):
                return ToolResult.success_result(data=None)

        with pytest.raises(ValueError, match="description"):
            Incomplete()

    @pytest.mark.asyncio
    async def test_run_success_adds_execution_time(self):
        result = await SampleTool().run({"count": 3})

        assert result.success is True
        assert result.data == 3
        assert result.metadata["execution_time"] >= 0

    @pytest.mark.asyncio
    async def test_run_invalid_arguments(self):
        result = await SampleTool().run({"count": 0})

        assert result.success is False
        assert result.error_kind == ToolErrorKind.INVALID_ARGUMENTS
        assert "Parameter validation failed" in result.error

    @pytest.mark.asyncio
    async def test_run_timeout(self):
        result = await SampleTool().run({"mode": "timeout"})

        assert result.error_kind == ToolErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_run_execution_error(self):
        result = await SampleTool().run({"mode": "crash"})

        assert result.error_kind == ToolErrorKind.EXECUTION_ERROR
        assert "RuntimeError: kaboom" in result.error
        assert "execution_time" in result.metadata

    def test_repr(self):
        assert repr(SampleTool()) == "<SampleTool name='sample' risk=low>"
