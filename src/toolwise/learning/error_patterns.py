"""Recurring error pattern detection.

The analyzer clusters failed experiences into named patterns so a repeated
problem can be recognized instantly instead of being diagnosed from scratch.

Patterns are held in an immutable tuple. Writers (minting a pattern,
folding a failure into one, eviction) are serialized by a single
``asyncio.Lock`` and publish a new tuple when done; readers such as
``find_best_matching_pattern`` grab the current tuple and never block.
"""

import asyncio
import re
import uuid
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime, timedelta
from itertools import islice
from typing import Any

from toolwise.learning.experience import ExperienceStore, as_utc
from toolwise.learning.models import Experience, ExperienceFilters, ErrorPattern
from toolwise.logging import get_logger

logger = get_logger("toolwise.learning.error_patterns")

FAILURE_SCAN_LIMIT = 500
CLUSTER_SEARCH_LIMIT = 50
CORRECTION_SEARCH_LIMIT = 20
CORRECTION_SIMILARITY = 0.7
MAX_PENDING_FAILURES = 500
# Failures kept per pattern to recompute its summary on refinement
MAX_PATTERN_EVIDENCE = 50
MAX_CLUSTERED_IDS = 5000
# Query overlap at which two unclustered failures are considered related
RELATED_QUERY_OVERLAP = 0.5
ADHOC_CONFIDENCE = 0.3

NO_CORRECTION = "No correction available - no similar successful queries found"

PREVENTION_ADVICE = {
    "tool_not_found": "Verify tool availability before use",
    "invalid_arguments": "Validate arguments before calling tool",
    "timeout": "Use tools with better performance characteristics",
    "api_error": "Add retry logic and error handling",
}

_TOKEN_RE = re.compile(r"[a-z0-9_]+")


def _tokens(text: str) -> set[str]:
    return set(_TOKEN_RE.findall(text.lower()))


def text_overlap(left: str, right: str) -> float:
    """Symmetric word overlap in [0, 1].

    Mean of the share of each side's words found in the other: identical
    texts score 1.0, texts without a common word score 0.0.
    """
    a, b = _tokens(left), _tokens(right)
    if not a or not b:
        return 0.0
    common = len(a & b)
    return (common / len(a) + common / len(b)) / 2


def message_overlap(message: str, known_messages: Iterable[str]) -> float:
    """Best match of an error message against known messages, in [0, 1].

    Containment either way counts as a full match.
    """
    needle = message.strip().lower()
    best = 0.0
    for known in known_messages:
        candidate = known.strip().lower()
        if not needle or not candidate:
            continue
        if needle in candidate or candidate in needle:
            return 1.0
        best = max(best, text_overlap(needle, candidate))
    return best


class ErrorAnalyzer:
    """Detects recurring error patterns and suggests corrections.

    Pattern lifecycle: failures that match no known pattern wait in an
    unclustered buffer. Once ``min_cluster_size`` related failures agree
    closely enough (cluster similarity above ``similarity_threshold``) a
    pattern is minted. Later matching failures are folded into it: its
    message set grows and its confidence is recomputed over its most recent
    evidence, while its id, label and error type stay as minted. When more
    than ``max_patterns`` are held the lowest-confidence pattern is evicted,
    oldest ``last_seen`` first on ties.
    """

    def __init__(
        self,
        experiences: ExperienceStore,
        min_cluster_size: int = 3,
        similarity_threshold: float = 0.75,
        min_confidence: float = 0.6,
        max_patterns: int = 100,
        query_weight: float = 0.6,
        rescan_interval: float = 300.0,
    ):
        """Initialize the error analyzer.

        Args:
            experiences: Experience log to mine
            min_cluster_size: Minimum failures needed to mint a pattern
            similarity_threshold: Minimum match score to attach a failure to
                a pattern, and the cluster similarity a new pattern must exceed
            min_confidence: Patterns below this confidence are not surfaced
            max_patterns: Maximum retained patterns
            query_weight: Share of the match score taken by query text; the
                rest is error message overlap
            rescan_interval: Seconds before suggest_correction rescans the store
        """
        self._experiences = experiences
        self.min_cluster_size = max(1, min_cluster_size)
        self.similarity_threshold = similarity_threshold
        self.min_confidence = min_confidence
        self.max_patterns = max(1, max_patterns)
        self.query_weight = min(1.0, max(0.0, query_weight))
        self.rescan_interval = rescan_interval

        self._patterns: tuple[ErrorPattern, ...] = ()
        self._evidence: dict[str, list[Experience]] = {}
        # experience id -> pattern id, oldest first
        self._clustered_ids: dict[str, str] = {}
        self._pending: list[Experience] = []
        self._last_scan: datetime | None = None
        self._lock = asyncio.Lock()

    # -- helpers -----------------------------------------------------------

    @staticmethod
    def most_common(counts: Mapping[str, int]) -> str:
        """Key with the highest count, or "" for empty input."""
        if not counts:
            return ""
        return max(counts.items(), key=lambda item: item[1])[0]

    @staticmethod
    def top_n(counts: Mapping[str, int], n: int) -> list[str]:
        """Up to ``n`` keys ordered by descending count."""
        ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
        return [key for key, _ in ranked[: max(0, n)]]

    @staticmethod
    def calculate_cluster_similarity(experiences: Sequence[Experience]) -> float:
        """Agreement of a cluster's members on error type and tool.

        Mean of the dominant error type's share and the dominant tool's share.
        A missing error type or tool is its own category. Returns 1.0 for a
        single member and never less than ``1/n``.
        """
        size = len(experiences)
        if size <= 1:
            return 1.0

        error_types = Counter(exp.error_type or "" for exp in experiences)
        tools = Counter(exp.tool_called or "" for exp in experiences)

        error_share = max(error_types.values()) / size
        tool_share = max(tools.values()) / size
        return (error_share + tool_share) / 2

    def score_pattern_match(
        self,
        pattern: ErrorPattern,
        query: str,
        error_message: str = "",
    ) -> float:
        """How well a query and error message match a pattern, in [0, 1].

        Without an error message (or without known messages on the pattern)
        only the query text counts.
        """
        query_score = text_overlap(query, pattern.common_query)
        if not error_message or not pattern.error_messages:
            return query_score

        error_score = message_overlap(error_message, pattern.error_messages)
        score = self.query_weight * query_score + (1 - self.query_weight) * error_score
        return min(1.0, max(0.0, score))

    def find_best_matching_pattern(
        self,
        query: str,
        error_message: str = "",
    ) -> ErrorPattern | None:
        """Best matching known pattern, if it scores at least the threshold."""
        patterns = self._patterns

        best: ErrorPattern | None = None
        best_score = -1.0
        for pattern in patterns:
            score = self.score_pattern_match(pattern, query, error_message)
            if score > best_score:
                best, best_score = pattern, score

        if best is None or best_score < self.similarity_threshold:
            return None

        logger.debug("Matched error pattern", pattern_id=best.id, score=round(best_score, 3))
        return best

    # -- lifecycle ---------------------------------------------------------

    async def observe_failure(self, experience: Experience) -> ErrorPattern | None:
        """Feed one failed experience into the pattern lifecycle.

        Returns:
            ErrorPattern | None: The pattern minted or refined, if any
        """
        if experience.success:
            return None

        async with self._lock:
            if experience.id in self._clustered_ids:
                return None

            match = self.find_best_matching_pattern(experience.query, experience.error or "")
            if match is not None:
                return self._fold_in(match, [experience])

            if all(p.id != experience.id for p in self._pending):
                self._pending.append(experience)

            cluster = [p for p in self._pending if self._related(p, experience)]
            if (
                len(cluster) >= self.min_cluster_size
                and self.calculate_cluster_similarity(cluster) > self.similarity_threshold
            ):
                pattern = await self._mint(cluster)
                minted_ids = {exp.id for exp in cluster}
                self._pending = [p for p in self._pending if p.id not in minted_ids]
                return pattern

            if len(self._pending) > MAX_PENDING_FAILURES:
                self._pending = self._pending[-MAX_PENDING_FAILURES:]
            return None

    async def detect_patterns(self) -> list[ErrorPattern]:
        """Scan recent failures in the store and mint or refine patterns.

        Store failures are logged and leave the known patterns unchanged.

        Returns:
            list[ErrorPattern]: All known patterns, most frequent first
        """
        logger.info("Starting error pattern detection")

        try:
            failures = await self._experiences.get_all_failures(FAILURE_SCAN_LIMIT)
        except Exception as e:
            logger.warning("Failed to fetch failures for pattern detection", error=str(e))
            return self.get_patterns(include_low_confidence=True)

        unclustered = [exp for exp in failures if exp.id not in self._clustered_ids]
        logger.debug("Found failed experiences to analyze", count=len(unclustered))

        if len(unclustered) >= self.min_cluster_size:
            clusters = await self._cluster_errors(unclustered)
            async with self._lock:
                for cluster in clusters:
                    await self._absorb_cluster(cluster)

        self._last_scan = datetime.now(UTC)
        patterns = self.get_patterns(include_low_confidence=True)
        logger.info("Error pattern detection complete", patterns=len(patterns))
        return patterns

    async def _absorb_cluster(self, cluster: list[Experience]) -> None:
        """Mint or fold a scanned cluster. Caller holds the lock."""
        cluster = [exp for exp in cluster if exp.id not in self._clustered_ids]
        if len(cluster) < self.min_cluster_size:
            return
        if self.calculate_cluster_similarity(cluster) <= self.similarity_threshold:
            return

        head = cluster[0]
        match = self.find_best_matching_pattern(head.query, head.error or "")
        if match is not None:
            self._fold_in(match, cluster)
        else:
            await self._mint(cluster)

        clustered = {exp.id for exp in cluster}
        self._pending = [p for p in self._pending if p.id not in clustered]

    async def _cluster_errors(self, failures: list[Experience]) -> list[list[Experience]]:
        """Group failures with the failures their query semantically retrieves."""
        by_id = {exp.id: exp for exp in failures}
        used: set[str] = set()
        clusters: list[list[Experience]] = []

        for exp in failures:
            if exp.id in used:
                continue
            used.add(exp.id)
            cluster = [exp]

            try:
                similar = await self._experiences.query(
                    ExperienceFilters(
                        query=exp.query,
                        min_similarity=self.similarity_threshold,
                        success=False,
                        limit=CLUSTER_SEARCH_LIMIT,
                    )
                )
            except Exception as e:
                logger.debug("Failed to find similar failures", exp_id=exp.id, error=str(e))
                continue

            for sim in similar:
                if sim.id in by_id and sim.id not in used:
                    used.add(sim.id)
                    cluster.append(by_id[sim.id])

            if len(cluster) > 1:
                clusters.append(cluster)

        return clusters

    def _related(self, left: Experience, right: Experience) -> bool:
        same_signature = (
            left.error_type == right.error_type and left.tool_called == right.tool_called
        )
        return same_signature or text_overlap(left.query, right.query) >= RELATED_QUERY_OVERLAP

    async def _mint(self, cluster: list[Experience]) -> ErrorPattern:
        """Create a new pattern from a cluster. Caller holds the lock."""
        correction, best_tool = await self._find_correction(cluster[0].query)

        pattern = self._summarize(
            cluster,
            pattern_id=f"pattern_{uuid.uuid4().hex[:12]}",
            common_query=cluster[0].query,
            known_messages=[],
            frequency=len(cluster),
            correction=correction,
            best_tool=best_tool,
        )

        self._evidence[pattern.id] = cluster[-MAX_PATTERN_EVIDENCE:]
        self._mark_clustered(pattern.id, cluster)
        self._publish((*self._patterns, pattern))

        logger.info(
            "Minted error pattern",
            pattern_id=pattern.id,
            label=pattern.label,
            size=len(cluster),
            confidence=round(pattern.confidence, 3),
        )
        return pattern

    def _fold_in(self, pattern: ErrorPattern, new: list[Experience]) -> ErrorPattern:
        """Refine a pattern with new failures. Caller holds the lock.

        The id, label and error type are fixed at minting; only the message
        set, counts, confidence and timestamps move.
        """
        evidence = (self._evidence.get(pattern.id, []) + new)[-MAX_PATTERN_EVIDENCE:]

        refined = self._summarize(
            evidence,
            pattern_id=pattern.id,
            label=pattern.label,
            error_type=pattern.error_type,
            common_query=pattern.common_query,
            known_messages=pattern.error_messages,
            frequency=pattern.frequency + len(new),
            correction=pattern.correction,
            best_tool=pattern.best_tool,
            fallback_confidence=pattern.confidence,
            first_seen=pattern.first_seen,
        )

        self._evidence[pattern.id] = evidence
        self._mark_clustered(pattern.id, new)
        self._publish(tuple(refined if p.id == pattern.id else p for p in self._patterns))

        logger.debug(
            "Folded failures into pattern",
            pattern_id=pattern.id,
            added=len(new),
            confidence=round(refined.confidence, 3),
        )
        return refined

    def _summarize(
        self,
        evidence: list[Experience],
        pattern_id: str,
        common_query: str,
        known_messages: list[str],
        frequency: int,
        correction: str,
        best_tool: str,
        fallback_confidence: float | None = None,
        first_seen: datetime | None = None,
        label: str | None = None,
        error_type: str | None = None,
    ) -> ErrorPattern:
        """Build the pattern describing an evidence set.

        ``label`` and ``error_type`` default to the dominant error type of
        the evidence.
        """
        error_types = Counter(exp.error_type for exp in evidence if exp.error_type)
        tools = Counter(exp.tool_called for exp in evidence if exp.tool_called)
        intents = Counter(exp.intent for exp in evidence if exp.intent)

        messages = list(known_messages)
        for exp in evidence:
            if exp.error and exp.error not in messages:
                messages.append(exp.error)

        if error_type is None:
            error_type = self.most_common(error_types)
        if label is None:
            label = error_type or "unknown_error"
        failed_tools = self.top_n(tools, 3)
        common_intents = self.top_n(intents, 3)

        # Imported patterns keep their confidence until there is enough evidence
        if fallback_confidence is not None and len(evidence) < self.min_cluster_size:
            confidence = fallback_confidence
        else:
            confidence = self.calculate_cluster_similarity(evidence)

        timestamps = [as_utc(exp.timestamp) for exp in evidence]
        if first_seen is not None:
            timestamps.append(as_utc(first_seen))

        return ErrorPattern(
            id=pattern_id,
            label=label,
            description=self._describe(error_type, failed_tools, common_intents, frequency),
            error_type=error_type,
            frequency=frequency,
            first_seen=min(timestamps),
            last_seen=max(timestamps),
            common_query=common_query,
            failed_tools=failed_tools,
            common_intents=common_intents,
            error_messages=messages,
            avg_confidence=sum(exp.confidence for exp in evidence) / len(evidence),
            correction=correction,
            prevention=self._prevention(error_type, failed_tools),
            best_tool=best_tool,
            confidence=confidence,
            experience_ids=[exp.id for exp in evidence],
        )

    def _publish(self, patterns: tuple[ErrorPattern, ...]) -> None:
        """Swap in a new pattern tuple, evicting beyond ``max_patterns``."""
        if len(patterns) > self.max_patterns:
            ranked = sorted(patterns, key=lambda p: (p.confidence, p.last_seen))
            evicted = {p.id for p in ranked[: len(patterns) - self.max_patterns]}
            for pattern_id in evicted:
                self._evidence.pop(pattern_id, None)
            # Failures of an evicted pattern may cluster again
            self._clustered_ids = {
                exp_id: owner
                for exp_id, owner in self._clustered_ids.items()
                if owner not in evicted
            }
            logger.debug("Evicted low-confidence patterns", count=len(evicted))
            patterns = tuple(p for p in patterns if p.id not in evicted)

        self._patterns = patterns

    def _mark_clustered(self, pattern_id: str, experiences: list[Experience]) -> None:
        for exp in experiences:
            self._clustered_ids[exp.id] = pattern_id

        overflow = len(self._clustered_ids) - MAX_CLUSTERED_IDS
        if overflow > 0:
            for exp_id in list(islice(self._clustered_ids, overflow)):
                del self._clustered_ids[exp_id]

    @staticmethod
    def _describe(error_type: str, tools: list[str], intents: list[str], frequency: int) -> str:
        parts = [f"'{error_type}' errors" if error_type else "Errors"]
        if tools:
            parts.append(f"when using {', '.join(tools)}")
        if intents:
            parts.append(f"for {', '.join(intents)} tasks")
        parts.append(f"(occurred {frequency} times)")
        return " ".join(parts)

    @staticmethod
    def _prevention(error_type: str, failed_tools: list[str]) -> str:
        advice: list[str] = []
        if error_type:
            advice.append(
                PREVENTION_ADVICE.get(
                    error_type.lower(), "Add error handling for this error type"
                )
            )
        if failed_tools:
            advice.append(f"Avoid using {', '.join(failed_tools)} for this type of query")

        if not advice:
            return "Review error logs and adjust tool selection strategy"
        return "; ".join(advice)

    async def _find_correction(self, query: str) -> tuple[str, str]:
        """Suggest a tool from similar successful experiences.

        Returns:
            tuple[str, str]: (correction text, best tool or "")
        """
        try:
            similar = await self._experiences.query(
                ExperienceFilters(
                    query=query,
                    min_similarity=CORRECTION_SIMILARITY,
                    limit=CORRECTION_SEARCH_LIMIT,
                )
            )
        except Exception as e:
            logger.debug("Correction lookup failed", error=str(e))
            return NO_CORRECTION, ""

        tool_successes = Counter(exp.tool_called for exp in similar if exp.success and exp.tool_called)
        if not tool_successes:
            return NO_CORRECTION, ""

        best_tool = self.most_common(tool_successes)
        correction = (
            f"Try using '{best_tool}' tool instead "
            f"(succeeded {tool_successes[best_tool]}/{len(similar)} times for similar queries)"
        )
        return correction, best_tool

    # -- queries -----------------------------------------------------------

    async def suggest_correction(self, query: str, error_message: str = "") -> ErrorPattern:
        """Find the best known pattern for a failure, or build an ad-hoc suggestion.

        A store that cannot be searched looks the same as one with no match.

        Returns:
            ErrorPattern: A surfaced pattern, or an ad-hoc one (``is_adhoc``)
        """
        if not self._patterns or self._scan_is_stale():
            await self.detect_patterns()

        match = self.find_best_matching_pattern(query, error_message)
        if match is not None and match.confidence >= self.min_confidence:
            logger.info(
                "Found matching error pattern",
                pattern_id=match.id,
                confidence=round(match.confidence, 3),
            )
            return match

        correction, best_tool = await self._find_correction(query)
        logger.debug("No matching pattern found, suggesting ad-hoc correction")

        return ErrorPattern(
            id=f"adhoc_{uuid.uuid4().hex[:12]}",
            label="unknown_pattern",
            description="No known pattern, using ad-hoc correction",
            common_query=query,
            error_messages=[error_message] if error_message else [],
            correction=correction,
            best_tool=best_tool,
            confidence=ADHOC_CONFIDENCE,
        )

    def _scan_is_stale(self) -> bool:
        if self._last_scan is None:
            return True
        return datetime.now(UTC) - self._last_scan > timedelta(seconds=self.rescan_interval)

    async def import_patterns(self, patterns: Iterable[ErrorPattern]) -> None:
        """Seed the analyzer with known patterns (e.g. restored from elsewhere).

        Patterns whose id is already known are replaced.
        """
        async with self._lock:
            incoming = {p.id: p for p in patterns}
            kept = tuple(p for p in self._patterns if p.id not in incoming)
            self._publish((*kept, *incoming.values()))

    def get_patterns(self, include_low_confidence: bool = False) -> list[ErrorPattern]:
        """Known patterns, most frequent first.

        Args:
            include_low_confidence: Also return patterns below ``min_confidence``
        """
        patterns = [
            p
            for p in self._patterns
            if include_low_confidence or p.confidence >= self.min_confidence
        ]
        return sorted(patterns, key=lambda p: (p.frequency, p.confidence), reverse=True)

    def get_pattern_stats(self) -> dict[str, Any]:
        """Summary statistics about known patterns."""
        patterns = self._patterns
        stats: dict[str, Any] = {
            "total_patterns": len(patterns),
            "surfaced_patterns": sum(1 for p in patterns if p.confidence >= self.min_confidence),
            "pending_failures": len(self._pending),
            "last_scan": self._last_scan,
            "min_cluster_size": self.min_cluster_size,
        }

        if patterns:
            total_frequency = sum(p.frequency for p in patterns)
            stats["total_occurrences"] = total_frequency
            stats["high_confidence_patterns"] = sum(1 for p in patterns if p.confidence >= 0.7)
            stats["avg_frequency"] = total_frequency / len(patterns)

        return stats
