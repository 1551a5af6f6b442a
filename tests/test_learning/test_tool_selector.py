"""Tests for the epsilon-greedy tool selector."""

import random

import pytest
from pydantic import ValidationError

from toolwise.learning import (
    DecisionStrategy,
    NoToolAvailableError,
    ToolRecommendation,
    ToolSelector,
    ToolStats,
)
from toolwise.learning.tool_selector import EXPLORATION_CONFIDENCE, FALLBACK_CONFIDENCE
from toolwise.tools import ToolRegistry
from toolwise.tools.builtin import EchoTool


async def _seed_calculation_log(experience_store, make_experience):
    """math_calculate succeeds 4/5 at 50ms, guess_calc fails 3/3."""
    for success in (True, True, True, True, False):
        await experience_store.record(
            make_experience(tool_called="math_calculate", success=success, latency_ms=50)
        )
    for _ in range(3):
        await experience_store.record(
            make_experience(
                tool_called="guess_calc",
                success=False,
                error_type="execution_error",
                latency_ms=20,
            )
        )


@pytest.fixture
def selector(experience_store, catalog):
    """Selector that always exploits."""
    return ToolSelector(experience_store, catalog, exploration_rate=0.0, seed=1)


class TestConfiguration:
    """Tests for selector configuration."""

    def test_defaults(self, experience_store, catalog):
        selector = ToolSelector(experience_store, catalog)

        assert selector.exploration_rate == 0.1
        assert selector.min_confidence == 0.6
        assert selector.min_sample_size == 3

    def test_rates_are_clamped(self, selector):
        selector.set_exploration_rate(1.7)
        assert selector.exploration_rate == 1.0

        selector.set_exploration_rate(-0.2)
        assert selector.exploration_rate == 0.0

        selector.set_min_confidence(5)
        assert selector.min_confidence == 1.0

    def test_min_sample_size_at_least_one(self, experience_store, catalog):
        selector = ToolSelector(experience_store, catalog, min_sample_size=0)
        assert selector.min_sample_size == 1


class TestLearnedPath:
    """Tests for recommendations learned from the experience log."""

    @pytest.mark.asyncio
    async def test_learned_recommendation(self, selector, experience_store, make_experience):
        await _seed_calculation_log(experience_store, make_experience)

        rec = await selector.recommend_tool("compute 2+2", "calculation")

        assert rec.tool_name == "math_calculate"
        assert rec.decision_strategy == DecisionStrategy.LEARNED
        assert rec.is_exploration is False
        assert rec.sample_size == 5
        assert rec.success_rate == pytest.approx(0.8)
        assert rec.avg_latency_ms == 50
        assert rec.alternative_tools == ["guess_calc"]
        assert rec.confidence == pytest.approx(0.8 * 0.7 + (1 - 50 / 5000) * 0.3)
        assert "4/5" in rec.reasoning
        assert "80%" in rec.reasoning
        assert "50ms" in rec.reasoning

    @pytest.mark.asyncio
    async def test_exploitation_is_deterministic(
        self, experience_store, catalog, make_experience
    ):
        await _seed_calculation_log(experience_store, make_experience)
        selector = ToolSelector(experience_store, catalog, exploration_rate=0.0)

        first = await selector.recommend_tool("compute 2+2", "calculation")
        second = await selector.recommend_tool("compute 2+2", "calculation")

        assert first.model_dump() == second.model_dump()

    @pytest.mark.asyncio
    async def test_only_matching_intent_counts(self, selector, experience_store, make_experience):
        for _ in range(3):
            await experience_store.record(make_experience(intent="chat", tool_called="echo"))

        rec = await selector.recommend_tool("compute 2+2", "calculation")

        assert rec.decision_strategy == DecisionStrategy.FALLBACK

    @pytest.mark.asyncio
    async def test_tool_below_min_sample_size_is_never_learned(
        self, selector, experience_store, make_experience
    ):
        for _ in range(2):
            await experience_store.record(make_experience(tool_called="echo", latency_ms=1))

        rec = await selector.recommend_tool("compute 2+2", "calculation")

        assert rec.decision_strategy == DecisionStrategy.FALLBACK
        assert "no_valid_tools" in rec.reasoning

    @pytest.mark.asyncio
    async def test_undersampled_tool_not_an_alternative(
        self, selector, experience_store, make_experience
    ):
        await _seed_calculation_log(experience_store, make_experience)
        await experience_store.record(make_experience(tool_called="echo"))

        rec = await selector.recommend_tool("compute 2+2", "calculation")

        assert rec.tool_name == "math_calculate"
        assert "echo" not in rec.alternative_tools

    @pytest.mark.asyncio
    async def test_at_most_three_alternatives(self, selector, experience_store, make_experience):
        for tool in ("a_tool", "b_tool", "c_tool", "d_tool", "e_tool"):
            for _ in range(3):
                await experience_store.record(make_experience(tool_called=tool))

        rec = await selector.recommend_tool("compute 2+2", "calculation")

        # Equal scores rank by name
        assert rec.tool_name == "a_tool"
        assert rec.alternative_tools == ["b_tool", "c_tool", "d_tool"]

    @pytest.mark.asyncio
    async def test_low_confidence_falls_back(self, selector, experience_store, make_experience):
        for _ in range(3):
            await experience_store.record(
                make_experience(tool_called="echo", success=False, latency_ms=6000)
            )

        rec = await selector.recommend_tool("compute 2+2", "calculation")

        assert rec.decision_strategy == DecisionStrategy.FALLBACK
        assert "low_confidence" in rec.reasoning


class TestExplorationPath:
    """Tests for random exploration."""

    @pytest.mark.asyncio
    async def test_full_exploration(self, experience_store, catalog, make_experience):
        await _seed_calculation_log(experience_store, make_experience)
        selector = ToolSelector(experience_store, catalog, exploration_rate=1.0, seed=3)
        names = set(catalog.get_tool_names())

        for _ in range(20):
            rec = await selector.recommend_tool("compute 2+2", "calculation")
            assert rec.decision_strategy == DecisionStrategy.EXPLORATION
            assert rec.is_exploration is True
            assert rec.confidence == EXPLORATION_CONFIDENCE
            assert rec.tool_name in names

    @pytest.mark.asyncio
    async def test_seeded_exploration_is_reproducible(self, experience_store, catalog):
        first = ToolSelector(experience_store, catalog, exploration_rate=0.5, seed=7)
        second = ToolSelector(experience_store, catalog, exploration_rate=0.5, rng=random.Random(7))

        picks_a = [(await first.recommend_tool("q", "x")).tool_name for _ in range(10)]
        picks_b = [(await second.recommend_tool("q", "x")).tool_name for _ in range(10)]

        assert picks_a == picks_b

    @pytest.mark.asyncio
    async def test_exploration_with_empty_catalog(self, experience_store):
        selector = ToolSelector(experience_store, ToolRegistry(), exploration_rate=1.0)

        with pytest.raises(NoToolAvailableError):
            await selector.recommend_tool("compute 2+2", "calculation")


class TestFallbackPath:
    """Tests for the intent heuristic fallback."""

    @pytest.mark.asyncio
    async def test_empty_log_uses_intent_heuristic(self, selector):
        rec = await selector.recommend_tool("compute 2+2", "calculation")

        assert rec.tool_name == "math_calculate"
        assert rec.decision_strategy == DecisionStrategy.FALLBACK
        assert rec.confidence == FALLBACK_CONFIDENCE
        assert "no_data" in rec.reasoning

    @pytest.mark.asyncio
    async def test_unknown_intent_uses_first_catalog_tool(self, selector, catalog):
        rec = await selector.recommend_tool("hello", "greeting")

        assert rec.tool_name == catalog.list_all()[0].name

    @pytest.mark.asyncio
    async def test_heuristic_without_matching_tool(self, experience_store):
        registry = ToolRegistry()
        registry.register(EchoTool())
        selector = ToolSelector(experience_store, registry, exploration_rate=0.0)

        rec = await selector.recommend_tool("search the web", "information_retrieval")

        assert rec.tool_name == "echo"
        assert rec.decision_strategy == DecisionStrategy.FALLBACK

    @pytest.mark.asyncio
    async def test_custom_fallback_table(self, experience_store, catalog):
        selector = ToolSelector(
            experience_store,
            catalog,
            exploration_rate=0.0,
            fallback_tools={"chat": "ECHO"},
        )

        rec = await selector.recommend_tool("hi", "chat")

        assert rec.tool_name == "echo"

    @pytest.mark.asyncio
    async def test_store_failure_falls_back(self, selector, fake_store):
        fake_store.fail = True

        rec = await selector.recommend_tool("compute 2+2", "calculation")

        assert rec.decision_strategy == DecisionStrategy.FALLBACK
        assert rec.tool_name == "math_calculate"
        assert "query_failed" in rec.reasoning

    @pytest.mark.asyncio
    async def test_empty_catalog_is_the_only_error(self, experience_store):
        selector = ToolSelector(experience_store, ToolRegistry(), exploration_rate=0.0)

        with pytest.raises(NoToolAvailableError, match="calculation"):
            await selector.recommend_tool("compute 2+2", "calculation")


class TestScoring:
    """Tests for statistics aggregation and the composite score."""

    def test_calculate_tool_stats(self, make_experience):
        stats = ToolSelector.calculate_tool_stats(
            [
                make_experience(tool_called="echo", latency_ms=10),
                make_experience(tool_called="echo", success=False, latency_ms=30),
                make_experience(tool_called="echo", latency_ms=0),
                make_experience(tool_called=None),
            ]
        )

        assert list(stats) == ["echo"]
        echo = stats["echo"]
        assert (echo.total_calls, echo.successes, echo.failures) == (3, 2, 1)
        assert echo.avg_latency_ms == 20

    def test_latency_score_bounds(self):
        assert ToolSelector.latency_score(0) == 1.0
        assert ToolSelector.latency_score(2500) == pytest.approx(0.5)
        assert ToolSelector.latency_score(5000) == 0.0
        assert ToolSelector.latency_score(60000) == 0.0

    def test_composite_score_non_increasing_in_latency(self):
        scores = [
            ToolSelector.composite_score(
                ToolStats(tool_name="t", total_calls=4, successes=3, failures=1, latencies=[ms])
            )
            for ms in (1, 100, 1000, 4999, 5000, 9000)
        ]

        assert scores == sorted(scores, reverse=True)
        assert all(0.0 <= s <= 1.0 for s in scores)

    def test_empty_stats(self):
        stats = ToolStats(tool_name="t")

        assert stats.success_rate == 0.0
        assert stats.avg_latency_ms == 0

    def test_recommendation_confidence_is_bounded(self):
        with pytest.raises(ValidationError):
            ToolRecommendation(
                tool_name="t",
                confidence=1.2,
                reasoning="",
                decision_strategy=DecisionStrategy.LEARNED,
            )


class TestGetToolStats:
    """Tests for the statistics introspection path."""

    @pytest.mark.asyncio
    async def test_get_tool_stats(self, selector, experience_store, fake_store, make_experience):
        await _seed_calculation_log(experience_store, make_experience)

        stats = await selector.get_tool_stats("math_calculate", "calculation")

        assert stats.total_calls == 5
        assert stats.successes == 4
        assert stats.success_rate == pytest.approx(0.8)
        assert stats.avg_latency_ms == 50
        assert fake_store.search_calls[-1]["query"] == "calculation math_calculate"

    @pytest.mark.asyncio
    async def test_get_tool_stats_store_failure(self, selector, fake_store):
        fake_store.fail = True

        stats = await selector.get_tool_stats("math_calculate", "calculation")

        assert stats.total_calls == 0
