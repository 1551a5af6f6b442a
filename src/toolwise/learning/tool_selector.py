"""Adaptive tool selection with an epsilon-greedy strategy.

The selector learns which tools work best for a kind of request from the
experience log. Most of the time it exploits: it ranks tools by a composite
of success rate and latency over semantically similar past requests. With
probability ``exploration_rate`` it explores instead and tries a random tool
from the catalog, so untried tools get a chance to build a track record.
When there is not enough evidence it falls back to a fixed intent heuristic.
"""

import random
from collections.abc import Iterable

from toolwise.learning.exceptions import NoToolAvailableError
from toolwise.learning.experience import ExperienceStore
from toolwise.learning.models import (
    DecisionStrategy,
    Experience,
    ExperienceFilters,
    ToolRecommendation,
    ToolStats,
)
from toolwise.learning.protocols import ToolCatalog
from toolwise.logging import get_logger

logger = get_logger("toolwise.learning.tool_selector")

SUCCESS_WEIGHT = 0.7
LATENCY_WEIGHT = 0.3
# 0 ms scores best, anything at or above the ceiling scores zero
LATENCY_CEILING_MS = 5000.0

SIMILARITY_THRESHOLD = 0.7
HISTORY_LIMIT = 100
STATS_LIMIT = 1000
MAX_ALTERNATIVES = 3

EXPLORATION_CONFIDENCE = 0.5
FALLBACK_CONFIDENCE = 0.3

# Intent -> substring of the tool name to prefer when there is no evidence
DEFAULT_FALLBACK_TOOLS: dict[str, str] = {
    "calculation": "math_calculate",
    "information_retrieval": "web_search",
    "file_operation": "file_read",
}


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class ToolSelector:
    """Recommends tools by balancing proven performance against discovery.

    Store failures never escape: they are logged and routed to the fallback
    path. The only error a caller sees is NoToolAvailableError, raised when
    the catalog is empty.

    Example:
        >>> selector = ToolSelector(experiences, registry, seed=42)
        >>> rec = await selector.recommend_tool("compute 2+2", "calculation")
        >>> rec.tool_name, rec.decision_strategy
        ('math_calculate', <DecisionStrategy.LEARNED: 'learned'>)
    """

    def __init__(
        self,
        experiences: ExperienceStore,
        catalog: ToolCatalog,
        exploration_rate: float = 0.1,
        min_confidence: float = 0.6,
        min_sample_size: int = 3,
        rng: random.Random | None = None,
        seed: int | None = None,
        fallback_tools: dict[str, str] | None = None,
    ):
        """Initialize the tool selector.

        Args:
            experiences: Experience log to learn from
            catalog: Tool catalog used for exploration and fallback
            exploration_rate: Probability of exploring (clamped to [0, 1])
            min_confidence: Minimum composite score to trust a learned pick
            min_sample_size: Minimum experiences before a tool can be picked
            rng: Random source; built from ``seed`` when not given
            seed: Seed for a private random source
            fallback_tools: Intent -> tool-name substring heuristics
        """
        self._experiences = experiences
        self._catalog = catalog
        self._rng = rng if rng is not None else random.Random(seed)
        self._fallback_tools = dict(
            DEFAULT_FALLBACK_TOOLS if fallback_tools is None else fallback_tools
        )

        self.exploration_rate = exploration_rate
        self.min_confidence = min_confidence
        self.min_sample_size = min_sample_size

    @property
    def exploration_rate(self) -> float:
        return self._exploration_rate

    @exploration_rate.setter
    def exploration_rate(self, rate: float) -> None:
        self._exploration_rate = _clamp(rate)

    @property
    def min_confidence(self) -> float:
        return self._min_confidence

    @min_confidence.setter
    def min_confidence(self, threshold: float) -> None:
        self._min_confidence = _clamp(threshold)

    @property
    def min_sample_size(self) -> int:
        return self._min_sample_size

    @min_sample_size.setter
    def min_sample_size(self, size: int) -> None:
        self._min_sample_size = max(1, int(size))

    def set_exploration_rate(self, rate: float) -> None:
        """Set the exploration rate, clamped to [0, 1]."""
        self.exploration_rate = rate

    def set_min_confidence(self, threshold: float) -> None:
        """Set the minimum confidence threshold, clamped to [0, 1]."""
        self.min_confidence = threshold

    async def recommend_tool(self, query: str, intent: str) -> ToolRecommendation:
        """Recommend the best tool for a query based on past experiences.

        Args:
            query: The user request about to be handled
            intent: Detected intent label, e.g. "calculation"

        Returns:
            ToolRecommendation: The chosen tool with supporting evidence

        Raises:
            NoToolAvailableError: If the tool catalog is empty
        """
        if self._rng.random() < self._exploration_rate:
            logger.debug("Exploration mode: trying random tool selection", intent=intent)
            return self._exploratory_selection(intent)

        try:
            similar = await self._experiences.query(
                ExperienceFilters(
                    query=query,
                    intent=intent,
                    min_similarity=SIMILARITY_THRESHOLD,
                    limit=HISTORY_LIMIT,
                )
            )
        except Exception as e:
            logger.warning("Failed to query experiences", error=str(e), intent=intent)
            return self._fallback_selection(intent, "query_failed")

        if not similar:
            logger.debug("No similar experiences found, using fallback", intent=intent)
            return self._fallback_selection(intent, "no_data")

        best = self._select_best_tool(self.calculate_tool_stats(similar))
        if best is None:
            return self._fallback_selection(intent, "no_valid_tools")

        if best.confidence < self._min_confidence:
            logger.debug(
                "Low confidence, using fallback",
                tool=best.tool_name,
                confidence=round(best.confidence, 3),
                min_confidence=self._min_confidence,
            )
            return self._fallback_selection(intent, "low_confidence")

        logger.info(
            "Learned tool recommendation",
            tool=best.tool_name,
            confidence=round(best.confidence, 3),
            sample_size=best.sample_size,
        )
        return best

    @staticmethod
    def calculate_tool_stats(experiences: Iterable[Experience]) -> dict[str, ToolStats]:
        """Aggregate per-tool statistics, skipping experiences without a tool."""
        stats: dict[str, ToolStats] = {}

        for exp in experiences:
            if not exp.tool_called:
                continue
            if exp.tool_called not in stats:
                stats[exp.tool_called] = ToolStats(tool_name=exp.tool_called)
            stats[exp.tool_called].add(exp)

        return stats

    @staticmethod
    def latency_score(avg_latency_ms: float) -> float:
        """Normalized latency: 1.0 at 0 ms, 0.0 at or beyond the ceiling."""
        return max(0.0, 1.0 - avg_latency_ms / LATENCY_CEILING_MS)

    @classmethod
    def composite_score(cls, stats: ToolStats) -> float:
        """Weighted combination of success rate and latency, in [0, 1]."""
        score = (
            stats.success_rate * SUCCESS_WEIGHT
            + cls.latency_score(stats.avg_latency_ms) * LATENCY_WEIGHT
        )
        return _clamp(score)

    def _select_best_tool(self, tool_stats: dict[str, ToolStats]) -> ToolRecommendation | None:
        """Rank tools with enough samples and build a learned recommendation."""
        candidates = [
            (self.composite_score(stats), name, stats)
            for name, stats in tool_stats.items()
            if stats.total_calls >= self._min_sample_size
        ]
        if not candidates:
            return None

        # Highest score first; name breaks ties so exploitation is deterministic
        candidates.sort(key=lambda c: (-c[0], c[1]))

        score, name, stats = candidates[0]
        alternatives = [c[1] for c in candidates[1 : 1 + MAX_ALTERNATIVES]]

        return ToolRecommendation(
            tool_name=name,
            confidence=score,
            reasoning=(
                f"Used successfully {stats.successes}/{stats.total_calls} times "
                f"({stats.success_rate * 100:.0f}%) with avg latency {stats.avg_latency_ms}ms"
            ),
            success_rate=stats.success_rate,
            sample_size=stats.total_calls,
            avg_latency_ms=stats.avg_latency_ms,
            alternative_tools=alternatives,
            is_exploration=False,
            decision_strategy=DecisionStrategy.LEARNED,
        )

    def _exploratory_selection(self, intent: str) -> ToolRecommendation:
        """Pick a random catalog tool to explore new possibilities."""
        tools = self._catalog.list_all()
        if not tools:
            raise NoToolAvailableError(intent)

        tool = self._rng.choice(tools)

        return ToolRecommendation(
            tool_name=tool.name,
            confidence=EXPLORATION_CONFIDENCE,
            reasoning="Exploratory selection to discover new tool usage patterns",
            is_exploration=True,
            decision_strategy=DecisionStrategy.EXPLORATION,
        )

    def _fallback_selection(self, intent: str, reason: str) -> ToolRecommendation:
        """Resolve a tool from the intent heuristics when evidence is lacking."""
        tool_name = None

        pattern = self._fallback_tools.get(intent)
        if pattern:
            tool_name = self._find_tool_by_name(pattern)

        if tool_name is None:
            tools = self._catalog.list_all()
            if not tools:
                raise NoToolAvailableError(intent)
            tool_name = tools[0].name

        return ToolRecommendation(
            tool_name=tool_name,
            confidence=FALLBACK_CONFIDENCE,
            reasoning=f"Fallback selection (reason: {reason}, intent: {intent})",
            is_exploration=False,
            decision_strategy=DecisionStrategy.FALLBACK,
        )

    def _find_tool_by_name(self, name_pattern: str) -> str | None:
        """First catalog tool whose name contains the pattern (case-insensitive)."""
        needle = name_pattern.lower()
        for tool in self._catalog.list_all():
            if needle in tool.name.lower():
                return tool.name
        return None

    async def get_tool_stats(self, tool_name: str, intent: str) -> ToolStats:
        """Raw statistics for one tool and intent, without a recommendation.

        Store failures are logged and reported as empty statistics.
        """
        try:
            experiences = await self._experiences.query(
                ExperienceFilters(
                    query=f"{intent} {tool_name}",
                    tool_used=tool_name,
                    intent=intent,
                    limit=STATS_LIMIT,
                )
            )
        except Exception as e:
            logger.warning("Failed to query tool stats", tool=tool_name, error=str(e))
            experiences = []

        stats = ToolStats(tool_name=tool_name)
        for exp in experiences:
            stats.add(exp)
        return stats
