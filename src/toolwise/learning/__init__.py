"""Adaptive tool selection and experience learning.

The experience log records every tool invocation, the tool selector
recommends tools from that history with an epsilon-greedy strategy, and the
error analyzer clusters recurring failures into reusable patterns.
"""

from toolwise.learning.error_patterns import ErrorAnalyzer
from toolwise.learning.exceptions import (
    ExperienceStoreError,
    ExperienceValidationError,
    LearningError,
    NoToolAvailableError,
    UnsupportedQueryError,
)
from toolwise.learning.experience import ExperienceStore
from toolwise.learning.models import (
    DecisionStrategy,
    ErrorPattern,
    Experience,
    ExperienceFilters,
    ExperienceStats,
    Feedback,
    FeedbackRating,
    ToolRecommendation,
    ToolStats,
)
from toolwise.learning.protocols import SemanticStore, ToolCatalog
from toolwise.learning.recorder import ExperienceRecorder
from toolwise.learning.tool_selector import ToolSelector

__all__ = [
    # Engine
    "ExperienceStore",
    "ExperienceRecorder",
    "ToolSelector",
    "ErrorAnalyzer",
    # Collaborators
    "SemanticStore",
    "ToolCatalog",
    # Models
    "DecisionStrategy",
    "ErrorPattern",
    "Experience",
    "ExperienceFilters",
    "ExperienceStats",
    "Feedback",
    "FeedbackRating",
    "ToolRecommendation",
    "ToolStats",
    # Exceptions
    "LearningError",
    "ExperienceValidationError",
    "UnsupportedQueryError",
    "ExperienceStoreError",
    "NoToolAvailableError",
]
