"""Records exchanged between the quiz core, the Question Source and the Persistence Gateway."""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Any

from engine import OPTION_LETTERS, SESSION_KIND_QUIZ


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accept datetimes or ISO strings (Supabase returns '...Z' / '+00:00')."""
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def accuracy_rate(correct_attempts: int, total_attempts: int) -> float:
    """100 * correct / total, or 0 when nothing was attempted."""
    if total_attempts <= 0:
        return 0.0
    return 100.0 * correct_attempts / total_attempts


@dataclass(frozen=True)
class Question:
    id: int
    subject: str
    topic: Optional[str]
    prompt: str
    option_a: str
    option_b: str
    option_c: Optional[str]
    option_d: Optional[str]
    correct_option: str
    explanation: str = ""

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "Question":
        """Build from a Question Source JSON record. Raises KeyError/ValueError/TypeError on bad data."""
        correct = str(payload["correct_option"]).strip().upper()
        if correct not in OPTION_LETTERS:
            raise ValueError(f"correct_option {correct!r} is not one of {OPTION_LETTERS}")
        question = cls(
            id=int(payload["id"]),
            subject=payload["subject"],
            topic=payload.get("topic") or None,
            prompt=payload["prompt"],
            option_a=payload["option_a"],
            option_b=payload["option_b"],
            option_c=payload.get("option_c") or None,
            option_d=payload.get("option_d") or None,
            correct_option=correct,
            explanation=payload.get("explanation") or "",
        )
        if correct not in question.options:
            raise ValueError(f"correct_option {correct} points at a missing option")
        return question

    @property
    def options(self) -> Dict[str, str]:
        """Offered options by letter; C and D are omitted when absent."""
        texts = (self.option_a, self.option_b, self.option_c, self.option_d)
        return {letter: text for letter, text in zip(OPTION_LETTERS, texts) if text}


@dataclass
class StudySession:
    user_id: str
    kind: str = SESSION_KIND_QUIZ
    total_question_count: int = 0
    correct_count: int = 0
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    id: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "StudySession":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            kind=row.get("session_type") or SESSION_KIND_QUIZ,
            total_question_count=row.get("total_questions") or 0,
            correct_count=row.get("correct_answers") or 0,
            started_at=parse_timestamp(row.get("started_at")) or utcnow(),
            completed_at=parse_timestamp(row.get("completed_at")),
        )


@dataclass(frozen=True)
class Attempt:
    session_id: str
    user_id: str
    question_id: int
    subject: str
    topic: Optional[str]
    chosen_option: str
    correct_option: str
    is_correct: bool
    answered_at: datetime = field(default_factory=utcnow)
    id: Optional[str] = field(default_factory=lambda: str(uuid.uuid4()))

    def to_row(self) -> Dict[str, Any]:
        """Row for question_attempts. The id is client-generated, so a retried write hits the same row."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "user_id": self.user_id,
            "question_id": self.question_id,
            "subject": self.subject,
            "topic": self.topic,
            "chosen_option": self.chosen_option,
            "correct_option": self.correct_option,
            "is_correct": self.is_correct,
            "answered_at": self.answered_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Attempt":
        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            session_id=str(row["session_id"]),
            user_id=str(row["user_id"]),
            question_id=int(row["question_id"]),
            subject=row["subject"],
            topic=row.get("topic"),
            chosen_option=row["chosen_option"],
            correct_option=row["correct_option"],
            is_correct=bool(row["is_correct"]),
            answered_at=parse_timestamp(row.get("answered_at")) or utcnow(),
        )


@dataclass
class TopicStat:
    """Rolling accuracy counter for (user, subject, topic). topic=None is the whole-subject key."""

    user_id: str
    subject: str
    topic: Optional[str] = None
    total_attempts: int = 0
    correct_attempts: int = 0
    accuracy_rate: float = 0.0
    last_attempt_at: Optional[datetime] = None
    id: Optional[str] = None

    @property
    def key(self):
        return (self.user_id, self.subject, self.topic)

    def record(self, is_correct: bool, answered_at: datetime) -> None:
        self.total_attempts += 1
        if is_correct:
            self.correct_attempts += 1
        self.accuracy_rate = accuracy_rate(self.correct_attempts, self.total_attempts)
        self.last_attempt_at = answered_at

    def to_row(self) -> Dict[str, Any]:
        row = {
            "user_id": self.user_id,
            "subject": self.subject,
            "topic": self.topic,
            "total_attempts": self.total_attempts,
            "correct_attempts": self.correct_attempts,
            "accuracy_rate": self.accuracy_rate,
            "last_attempt_at": self.last_attempt_at.isoformat() if self.last_attempt_at else None,
            "updated_at": utcnow().isoformat(),
        }
        if self.id is not None:
            row["id"] = self.id
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TopicStat":
        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            user_id=str(row["user_id"]),
            subject=row["subject"],
            topic=row.get("topic"),
            total_attempts=int(row.get("total_attempts") or 0),
            correct_attempts=int(row.get("correct_attempts") or 0),
            accuracy_rate=float(row.get("accuracy_rate") or 0.0),
            last_attempt_at=parse_timestamp(row.get("last_attempt_at")),
        )
