"""Tests for the experience recorder."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from toolwise.learning import ErrorAnalyzer, ExperienceFilters, ExperienceRecorder
from toolwise.tools import ToolErrorKind


@pytest.fixture
def recorder(experience_store, catalog):
    """Recorder without an analyzer."""
    return ExperienceRecorder(experience_store, catalog)


class TestRunTool:
    """Tests for ExperienceRecorder.run_tool."""

    @pytest.mark.asyncio
    async def test_successful_run_is_recorded(self, recorder, experience_store, fake_store):
        result, experience = await recorder.run_tool(
            "math_calculate",
            {"expression": "6 * 7"},
            query="what is 6 times 7",
            intent="calculation",
            conversation_id="session-1",
        )

        assert result.success is True
        assert result.data == 42
        assert experience.success is True
        assert experience.tool_called == "math_calculate"
        assert experience.result == 42
        assert experience.response == "42"
        assert experience.confidence == 1.0
        assert experience.latency_ms >= 0
        assert experience.id in fake_store.documents

        stored = await experience_store.query(
            ExperienceFilters(query="6 times 7", conversation_id="session-1")
        )
        assert [e.id for e in stored] == [experience.id]

    @pytest.mark.asyncio
    async def test_failed_run_records_error_kind(self, recorder):
        result, experience = await recorder.run_tool(
            "math_calculate",
            {"expression": "1 / 0"},
            query="divide one by zero",
            intent="calculation",
        )

        assert result.success is False
        assert experience.success is False
        assert experience.error_type == "execution_error"
        assert "ZeroDivisionError" in experience.error
        assert experience.confidence == 0.0

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, recorder):
        result, experience = await recorder.run_tool(
            "math_calculate", {}, query="calculate", intent="calculation"
        )

        assert result.error_kind == ToolErrorKind.INVALID_ARGUMENTS
        assert experience.error_type == "invalid_arguments"

    @pytest.mark.asyncio
    async def test_unknown_tool(self, recorder, fake_store):
        result, experience = await recorder.run_tool(
            "web_search", {"q": "news"}, query="latest news", intent="information_retrieval"
        )

        assert result.error_kind == ToolErrorKind.TOOL_NOT_FOUND
        assert experience.error_type == "tool_not_found"
        assert experience.latency_ms == 0
        assert experience.id in fake_store.documents

    @pytest.mark.asyncio
    async def test_store_failure_does_not_hide_result(self, recorder, fake_store):
        fake_store.fail = True

        result, experience = await recorder.run_tool(
            "echo", {"message": "hi"}, query="say hi", intent="chat"
        )

        assert result.success is True
        assert result.data == "hi"
        assert fake_store.documents == {}


class TestRecord:
    """Tests for forwarding failures to the analyzer."""

    @pytest.mark.asyncio
    async def test_failures_are_forwarded(self, experience_store, catalog, make_experience):
        analyzer = MagicMock()
        analyzer.observe_failure = AsyncMock(return_value=None)
        recorder = ExperienceRecorder(experience_store, catalog, analyzer=analyzer)

        failure = make_experience(success=False, error="boom")
        assert await recorder.record(make_experience()) is True
        assert await recorder.record(failure) is True

        analyzer.observe_failure.assert_awaited_once_with(failure)

    @pytest.mark.asyncio
    async def test_unstored_failure_is_not_forwarded(
        self, experience_store, catalog, fake_store, make_experience
    ):
        analyzer = MagicMock()
        analyzer.observe_failure = AsyncMock()
        recorder = ExperienceRecorder(experience_store, catalog, analyzer=analyzer)
        fake_store.fail = True

        assert await recorder.record(make_experience(success=False)) is False
        analyzer.observe_failure.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_repeated_failures_become_a_pattern(self, experience_store, catalog):
        analyzer = ErrorAnalyzer(experience_store)
        recorder = ExperienceRecorder(experience_store, catalog, analyzer=analyzer)

        for _ in range(3):
            await recorder.run_tool(
                "guess_calc", {"expression": "2+2"}, query="guess 2+2", intent="calculation"
            )

        patterns = analyzer.get_patterns()
        assert len(patterns) == 1
        assert patterns[0].failed_tools == ["guess_calc"]
        assert patterns[0].label == "execution_error"
