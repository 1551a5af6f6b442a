"""Data models for experience learning.

This module defines the Pydantic models that flow through the learning
engine: recorded experiences and their feedback, query filters over the
experience log, per-tool statistics, tool recommendations, and the error
patterns mined from recurring failures.
"""

import uuid
from datetime import UTC, datetime
from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

EXPERIENCE_CATEGORY = "experience"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class FeedbackRating(IntEnum):
    """User rating of an interaction."""

    NEGATIVE = -1
    NEUTRAL = 0
    POSITIVE = 1


class DecisionStrategy(str, Enum):
    """How a tool recommendation was reached."""

    LEARNED = "learned"
    EXPLORATION = "exploration"
    FALLBACK = "fallback"

    def __str__(self) -> str:
        return self.value


class Feedback(BaseModel):
    """User feedback attached to an experience."""

    model_config = ConfigDict(frozen=True)

    rating: FeedbackRating = Field(..., description="Negative, neutral or positive")
    comment: str | None = Field(default=None, description="Optional explanation")
    helpful: bool = Field(default=False, description="Was the answer helpful?")
    accurate: bool = Field(default=False, description="Was the answer accurate?")
    complete: bool = Field(default=False, description="Was the answer complete?")
    timestamp: datetime = Field(default_factory=_utcnow)


class Experience(BaseModel):
    """One finished agent interaction: context, action taken and outcome.

    Experiences are immutable once built. A correction is a new Experience
    whose ``metadata["corrects"]`` holds the id of the one it corrects.
    """

    model_config = ConfigDict(frozen=True)

    # Identity
    id: str = Field(..., description="Unique experience identifier")
    timestamp: datetime = Field(default_factory=_utcnow)

    # Context
    query: str = Field(default="", description="Original user query")
    intent: str = Field(default="", description="Detected intent, e.g. 'calculation'")
    reasoning_mode: str = Field(default="", description="react, cot, simple, ...")
    conversation_id: str = Field(default="", description="Session identifier")
    metadata: dict[str, Any] = Field(default_factory=dict)

    # Action
    tool_called: str | None = Field(default=None, description="Tool name, if any")
    arguments: dict[str, Any] = Field(default_factory=dict)
    response: str = Field(default="", description="Agent's textual response")

    # Outcome
    success: bool = Field(default=False)
    error: str | None = Field(default=None, description="Error message if failed")
    error_type: str | None = Field(default=None, description="Error category if failed")
    result: Any = Field(default=None, description="Raw tool result")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    was_reflected: bool = Field(default=False)
    was_corrected: bool = Field(default=False)

    # Feedback
    user_feedback: Feedback | None = Field(default=None)
    correction: str | None = Field(default=None, description="What should have been done")

    # Metrics
    latency_ms: int = Field(default=0, ge=0)
    tokens_used: int = Field(default=0, ge=0)

    @classmethod
    def new(cls, **fields: Any) -> "Experience":
        """Build an experience with a freshly generated id."""
        return cls(id=str(uuid.uuid4()), **fields)

    def index_metadata(self) -> dict[str, str | int | float | bool]:
        """Flat tags stored next to the serialized record for exact filtering."""
        timestamp = self.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=UTC)
        return {
            "category": EXPERIENCE_CATEGORY,
            "exp_id": self.id,
            "intent": self.intent,
            "success": self.success,
            "tool_called": self.tool_called or "",
            "error_type": self.error_type or "",
            "timestamp": timestamp.timestamp(),
        }

    def __repr__(self) -> str:
        status = "ok" if self.success else f"failed:{self.error_type or '?'}"
        return f"Experience(id={self.id[:8]}..., tool={self.tool_called}, {status})"


class ExperienceFilters(BaseModel):
    """Query descriptor over the experience log.

    ``query`` drives the semantic search; every other field is an exact
    filter applied to the hits. ``success=None`` means either outcome.
    """

    model_config = ConfigDict(frozen=True)

    start_time: datetime | None = None
    end_time: datetime | None = None

    query: str = ""
    intent: str = ""
    reasoning_mode: str = ""
    conversation_id: str = ""
    min_similarity: float = Field(default=0.0, ge=0.0, le=1.0)

    success: bool | None = None
    tool_used: str = ""
    error_type: str = ""

    min_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    with_feedback: bool = False

    limit: int = Field(default=0, ge=0, description="0 means the default of 10")
    offset: int = Field(default=0, ge=0)


class ToolStats(BaseModel):
    """Per-tool performance aggregated from experiences. Never persisted."""

    tool_name: str
    total_calls: int = 0
    successes: int = 0
    failures: int = 0
    latencies: list[int] = Field(default_factory=list)

    @property
    def success_rate(self) -> float:
        if self.total_calls == 0:
            return 0.0
        return self.successes / self.total_calls

    @property
    def avg_latency_ms(self) -> int:
        """Mean of the positive latency samples, 0 without samples."""
        if not self.latencies:
            return 0
        return sum(self.latencies) // len(self.latencies)

    def add(self, experience: Experience) -> None:
        """Fold one experience into the counters."""
        self.total_calls += 1
        if experience.success:
            self.successes += 1
        else:
            self.failures += 1
        if experience.latency_ms > 0:
            self.latencies.append(experience.latency_ms)


class ToolRecommendation(BaseModel):
    """A recommended tool with supporting evidence."""

    tool_name: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str

    # Supporting evidence
    success_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    sample_size: int = Field(default=0, ge=0)
    avg_latency_ms: int = Field(default=0, ge=0)
    alternative_tools: list[str] = Field(default_factory=list, max_length=3)

    # Decision metadata
    is_exploration: bool = False
    decision_strategy: DecisionStrategy

    def __repr__(self) -> str:
        return (
            f"ToolRecommendation(tool={self.tool_name}, "
            f"strategy={self.decision_strategy}, confidence={self.confidence:.2f})"
        )


class ErrorPattern(BaseModel):
    """A named cluster of similar past failures.

    Created and refined only by the ErrorAnalyzer. Refinement builds a new
    instance with the same ``id``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    label: str = Field(..., description="Short label, usually the dominant error type")
    description: str = ""
    error_type: str = ""
    frequency: int = Field(default=0, ge=0)
    first_seen: datetime = Field(default_factory=_utcnow)
    last_seen: datetime = Field(default_factory=_utcnow)

    # Pattern characteristics
    common_query: str = Field(default="", description="Representative query")
    failed_tools: list[str] = Field(default_factory=list)
    common_intents: list[str] = Field(default_factory=list)
    error_messages: list[str] = Field(
        default_factory=list,
        description="Distinct error messages observed, in first-seen order",
    )
    avg_confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    # Solutions
    correction: str = ""
    prevention: str = ""
    best_tool: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    # Evidence
    experience_ids: list[str] = Field(default_factory=list)

    @property
    def is_adhoc(self) -> bool:
        """True for suggestions built without a known pattern."""
        return self.id.startswith("adhoc_")

    def __repr__(self) -> str:
        return (
            f"ErrorPattern(id={self.id}, label='{self.label}', "
            f"frequency={self.frequency}, confidence={self.confidence:.2f})"
        )


class ExperienceStats(BaseModel):
    """Overview statistics over stored experiences."""

    total_experiences: int = 0
    success_rate: float = 0.0
    tool_usage_count: dict[str, int] = Field(default_factory=dict)
    intent_distribution: dict[str, int] = Field(default_factory=dict)
    avg_latency_ms: int = 0
    avg_confidence: float = 0.0
