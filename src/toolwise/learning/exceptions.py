"""Custom exceptions for experience learning."""


class LearningError(Exception):
    """Base exception for learning-related errors."""

    pass


class ExperienceValidationError(LearningError, ValueError):
    """Exception raised when an experience cannot be recorded as given."""

    pass


class UnsupportedQueryError(LearningError):
    """Exception raised for filter combinations the experience log cannot answer.

    Only semantic-anchored queries (a non-empty ``query``) are supported.
    """

    def __init__(self, reason: str = "unsupported filter combination"):
        self.reason = reason
        super().__init__(f"Unsupported filter combination: {reason}")


class ExperienceStoreError(LearningError):
    """Exception raised when the backing semantic store fails."""

    pass


class NoToolAvailableError(LearningError):
    """Exception raised when no tool name can be produced at all.

    This is a configuration problem: the tool catalog is empty.
    """

    def __init__(self, intent: str = ""):
        self.intent = intent
        message = "No tools available in the catalog"
        if intent:
            message += f" (intent: {intent})"
        super().__init__(message)
