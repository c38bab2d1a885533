"""Typed failures surfaced by the quiz core to the calling UI layer."""
from typing import Optional


class QuizError(Exception):
    """Base class for every failure raised by the quiz core."""


class SourceUnavailable(QuizError):
    """Question Source could not be reached or answered with an error. Safe to retry."""

    def __init__(self, endpoint: str, status_code: Optional[int] = None, reason: str = ""):
        self.endpoint = endpoint
        self.status_code = status_code
        self.reason = reason
        detail = f"HTTP {status_code}" if status_code is not None else (reason or "unreachable")
        super().__init__(f"Question source unavailable ({endpoint}): {detail}")


class NoQuestionsAvailable(QuizError):
    """Source answered, but with zero questions. No session is opened."""

    def __init__(self, subject: str, topics=None):
        self.subject = subject
        self.topics = list(topics or [])
        where = f"{subject} / {', '.join(self.topics)}" if self.topics else subject
        super().__init__(f"No questions available for {where}")


class PersistenceFailure(QuizError):
    """A Persistence Gateway call failed after retries."""

    def __init__(self, operation: str, reason: str = ""):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Persistence failure in {operation}: {reason}" if reason else f"Persistence failure in {operation}")


class InvalidTransition(QuizError):
    """Event not accepted in the session's current state."""


class InvalidAnswer(QuizError):
    """Chosen option is not offered by the current question."""
