"""Experience log backed by a semantic store.

Every finished agent interaction is serialized to JSON and stored with a
handful of flat tags (category, id, intent, success, ...). Queries are
anchored on semantic similarity: the store ranks records by meaning, then
the remaining filters are applied in memory.
"""

from collections import Counter
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from toolwise.learning.exceptions import (
    ExperienceStoreError,
    ExperienceValidationError,
    UnsupportedQueryError,
)
from toolwise.learning.models import (
    EXPERIENCE_CATEGORY,
    Experience,
    ExperienceFilters,
    ExperienceStats,
)
from toolwise.learning.protocols import SemanticStore
from toolwise.logging import get_logger

logger = get_logger("toolwise.learning.experience")

DEFAULT_QUERY_LIMIT = 10


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with stored timestamps."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class ExperienceStore:
    """Storage and retrieval of experiences for learning.

    The store never edits a recorded experience. ``record_correction``
    writes a new experience pointing back at the one it corrects.
    """

    def __init__(self, store: SemanticStore):
        """Initialize the experience store.

        Args:
            store: Semantic store used for persistence and similarity search
        """
        self._store = store

    async def record(self, experience: Experience) -> None:
        """Store a new experience.

        Args:
            experience: The finished interaction to record

        Raises:
            ExperienceValidationError: If the id is empty or the experience
                cannot be serialized
            ExperienceStoreError: If the backing store rejects the write
        """
        if not experience.id or not experience.id.strip():
            raise ExperienceValidationError("experience ID is required")

        try:
            payload = experience.model_dump_json()
        except PydanticSerializationError as e:
            raise ExperienceValidationError(f"failed to serialize experience: {e}") from e

        try:
            await self._store.add_document(
                content=payload,
                metadata=experience.index_metadata(),
                doc_id=experience.id,
            )
        except Exception as e:
            logger.error("Failed to store experience", exp_id=experience.id, error=str(e))
            raise ExperienceStoreError(f"failed to store experience: {e}") from e

        logger.debug(
            "Recorded experience",
            exp_id=experience.id,
            intent=experience.intent,
            tool=experience.tool_called,
            success=experience.success,
        )

    async def record_correction(
        self,
        original: Experience,
        correction: str,
        **updates: Any,
    ) -> Experience:
        """Record a corrected version of an experience as a new experience.

        Args:
            original: The experience being corrected (left untouched)
            correction: What should have been done
            **updates: Field overrides for the new experience (e.g. tool_called,
                success, response)

        Returns:
            Experience: The newly recorded correction
        """
        fields = original.model_dump(exclude={"id", "timestamp"})
        fields.update(updates)
        fields["metadata"] = {**fields.get("metadata", {}), "corrects": original.id}
        fields["was_corrected"] = True
        fields["correction"] = correction

        try:
            corrected = Experience.new(**fields)
        except ValidationError as e:
            raise ExperienceValidationError(f"invalid correction: {e}") from e

        await self.record(corrected)
        logger.info("Recorded correction", original_id=original.id, correction_id=corrected.id)
        return corrected

    async def query(self, filters: ExperienceFilters) -> list[Experience]:
        """Retrieve experiences matching the given filters.

        Args:
            filters: Query descriptor; ``filters.query`` must be non-empty

        Returns:
            list[Experience]: Matching experiences in relevance order

        Raises:
            UnsupportedQueryError: If no semantic query text is given
            ExperienceStoreError: If the semantic search fails
        """
        if not filters.query:
            raise UnsupportedQueryError(
                "structured queries without search text need an indexed store"
            )

        limit = filters.limit or DEFAULT_QUERY_LIMIT

        try:
            hits = await self._store.search(
                filters.query,
                limit=limit + filters.offset,
                filter={"category": EXPERIENCE_CATEGORY},
            )
        except Exception as e:
            raise ExperienceStoreError(f"semantic search failed: {e}") from e

        results: list[Experience] = []
        for hit in hits:
            if hit.score < filters.min_similarity:
                continue

            experience = self._deserialize(hit.content)
            if experience is None:
                continue

            if self.matches_filters(experience, filters):
                results.append(experience)

        return results[filters.offset : filters.offset + limit]

    @staticmethod
    def _deserialize(content: str) -> Experience | None:
        try:
            return Experience.model_validate_json(content)
        except ValidationError as e:
            logger.debug("Skipping malformed experience record", error=str(e))
            return None

    @staticmethod
    def matches_filters(experience: Experience, filters: ExperienceFilters) -> bool:
        """Check an experience against every exact filter (a conjunction)."""
        timestamp = as_utc(experience.timestamp)
        if filters.start_time and timestamp < as_utc(filters.start_time):
            return False
        if filters.end_time and timestamp > as_utc(filters.end_time):
            return False

        if filters.intent and experience.intent != filters.intent:
            return False
        if filters.reasoning_mode and experience.reasoning_mode != filters.reasoning_mode:
            return False
        if filters.conversation_id and experience.conversation_id != filters.conversation_id:
            return False

        if filters.success is not None and experience.success != filters.success:
            return False
        if filters.tool_used and experience.tool_called != filters.tool_used:
            return False
        if filters.error_type and experience.error_type != filters.error_type:
            return False

        if experience.confidence < filters.min_confidence:
            return False
        if filters.with_feedback and experience.user_feedback is None:
            return False

        return True

    async def get_tool_success_rate(
        self,
        tool_name: str,
        intent_pattern: str,
    ) -> tuple[float, int]:
        """Success rate of a tool over experiences similar to an intent pattern.

        Args:
            tool_name: Tool to evaluate
            intent_pattern: Search text describing the kind of request

        Returns:
            tuple[float, int]: (success rate, sample size), (0.0, 0) without data
        """
        experiences = await self.query(
            ExperienceFilters(
                query=intent_pattern,
                tool_used=tool_name,
                min_similarity=0.7,
                limit=100,
            )
        )

        if not experiences:
            return 0.0, 0

        successes = sum(1 for exp in experiences if exp.success)
        return successes / len(experiences), len(experiences)

    async def get_all_failures(self, limit: int = 500) -> list[Experience]:
        """The ``limit`` most recent failed experiences, newest first.

        Fetched through the metadata index ranked by the timestamp tag.

        Raises:
            ExperienceStoreError: If the lookup fails
        """
        return await self._fetch_by_tags(
            {"$and": [{"category": EXPERIENCE_CATEGORY}, {"success": False}]},
            limit,
        )

    async def get_stats(self, limit: int = 1000) -> ExperienceStats:
        """Overview statistics over the ``limit`` most recent experiences.

        Raises:
            ExperienceStoreError: If the lookup fails
        """
        experiences = await self._fetch_by_tags({"category": EXPERIENCE_CATEGORY}, limit)
        if not experiences:
            return ExperienceStats()

        total = len(experiences)
        latencies = [exp.latency_ms for exp in experiences if exp.latency_ms > 0]

        return ExperienceStats(
            total_experiences=total,
            success_rate=sum(1 for exp in experiences if exp.success) / total,
            tool_usage_count=dict(
                Counter(exp.tool_called for exp in experiences if exp.tool_called)
            ),
            intent_distribution=dict(Counter(exp.intent for exp in experiences if exp.intent)),
            avg_latency_ms=sum(latencies) // len(latencies) if latencies else 0,
            avg_confidence=sum(exp.confidence for exp in experiences) / total,
        )

    async def _fetch_by_tags(self, where: dict[str, Any], limit: int) -> list[Experience]:
        try:
            documents = await self._store.get_by_metadata(where, limit=limit, order_by="timestamp")
        except Exception as e:
            raise ExperienceStoreError(f"metadata lookup failed: {e}") from e

        experiences = [
            exp for exp in (self._deserialize(doc.content) for doc in documents) if exp is not None
        ]
        experiences.sort(key=lambda exp: as_utc(exp.timestamp), reverse=True)
        return experiences
