"""
Quiz session state machine.

    AwaitingAnswer(i) --submit--> ShowingResult(i) --advance--> AwaitingAnswer(i+1) | Completed

Each answer is persisted as an Attempt as soon as it is submitted. Entering
Completed finalizes the session row once and folds the attempts into the
per-topic statistics once.
"""
import logging
from enum import Enum
from typing import Dict, List, Optional

from barprep.database import DatabaseClient
from barprep.errors import InvalidAnswer, InvalidTransition, NoQuestionsAvailable, PersistenceFailure
from barprep.models import Attempt, Question, StudySession, utcnow
from barprep.performance import result_summary
from barprep.stats import StatisticsAggregator

logger = logging.getLogger(__name__)


class State(Enum):
    AWAITING_ANSWER = "awaiting_answer"
    SHOWING_RESULT = "showing_result"
    COMPLETED = "completed"


class QuizSession:
    """One quiz over a fixed, ordered list of questions."""

    def __init__(
        self,
        record: StudySession,
        questions: List[Question],
        db: DatabaseClient,
        aggregator: StatisticsAggregator,
    ):
        if not questions:
            raise NoQuestionsAvailable(subject=f"session {record.id}")
        if record.id is None:
            raise ValueError("session record must be persisted before play starts")
        self.record = record
        self.questions = list(questions)
        self.db = db
        self.aggregator = aggregator

        self.state = State.AWAITING_ANSWER
        self.index = 0
        self.answers: Dict[int, Attempt] = {}  # question index -> attempt
        self.pending: List[int] = []  # indexes whose attempt is not yet persisted
        self.stats_folded = False

    @property
    def session_id(self) -> str:
        return self.record.id

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def is_completed(self) -> bool:
        return self.state is State.COMPLETED

    @property
    def current_question(self) -> Optional[Question]:
        if self.is_completed:
            return None
        return self.questions[self.index]

    @property
    def attempts(self) -> List[Attempt]:
        """Recorded attempts in question order."""
        return [self.answers[i] for i in sorted(self.answers)]

    @property
    def correct_count(self) -> int:
        return sum(1 for a in self.answers.values() if a.is_correct)

    # ============= Events =============

    def submit(self, answer: str) -> Attempt:
        """
        Record the answer for the current question.

        While the result is showing, a second submit is ignored and the attempt
        already recorded is returned. If the attempt cannot be persisted it is
        kept in memory, queued, and PersistenceFailure is raised.
        """
        if self.state is State.COMPLETED:
            raise InvalidTransition("session is completed; build a new quiz to continue")
        if self.state is State.SHOWING_RESULT:
            logger.debug(f"Ignored duplicate answer for question {self.index} in session {self.session_id}")
            return self.answers[self.index]

        question = self.questions[self.index]
        chosen = (answer or "").strip().upper()
        if chosen not in question.options:
            raise InvalidAnswer(f"{answer!r} is not an option of question {question.id} ({', '.join(question.options)})")

        attempt = Attempt(
            session_id=self.session_id,
            user_id=self.record.user_id,
            question_id=question.id,
            subject=question.subject,
            topic=question.topic,
            chosen_option=chosen,
            correct_option=question.correct_option,
            is_correct=chosen == question.correct_option,
            answered_at=utcnow(),
        )
        self.answers[self.index] = attempt
        self.state = State.SHOWING_RESULT
        self.pending.append(self.index)
        logger.debug(f"Answer recorded: Q={question.id}, Correct={attempt.is_correct}")

        self.flush_pending()
        return attempt

    def advance(self) -> State:
        """Move past the shown result; the last advance completes the session."""
        if self.state is not State.SHOWING_RESULT:
            raise InvalidTransition(f"cannot advance from {self.state.value}")
        if self.index + 1 < self.total:
            self.index += 1
            self.state = State.AWAITING_ANSWER
            return self.state
        self._finalize()
        return self.state

    # ============= Persistence =============

    def flush_pending(self) -> None:
        """Persist queued attempts in answer order. Stops and raises at the first failure."""
        while self.pending:
            idx = self.pending[0]
            attempt = self.answers[idx]
            try:
                self.db.append_attempt(attempt)
            except PersistenceFailure:
                logger.error(f"Attempt for question {attempt.question_id} kept in memory ({len(self.pending)} pending)")
                raise
            self.pending.pop(0)
            logger.info(f"Attempt {attempt.id} persisted for session {self.session_id}")

    def _finalize(self) -> None:
        self.flush_pending()

        completed_at = utcnow()
        correct = self.correct_count
        self.db.complete_session(self.session_id, correct, completed_at)
        self.record.correct_count = correct
        self.record.completed_at = completed_at
        self.state = State.COMPLETED
        logger.info(f"Session {self.session_id} completed: {correct}/{self.total} correct")

        self.fold_statistics()

    def fold_statistics(self) -> None:
        """Fold this session's attempts into TopicStat. Runs at most once successfully."""
        if not self.is_completed:
            raise InvalidTransition("statistics are folded only for completed sessions")
        if self.stats_folded:
            logger.warning(f"Statistics for session {self.session_id} already folded; skipping")
            return
        self.aggregator.aggregate(self.attempts)
        self.stats_folded = True

    # ============= Views =============

    def get_session_summary(self) -> Dict:
        """Real-time progress for display during the quiz."""
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "current_question": min(self.index + 1, self.total),
            "total_questions": self.total,
            "questions_answered": len(self.answers),
            "correct_count": self.correct_count,
            "pending_writes": len(self.pending),
        }

    def result(self) -> Dict:
        """Final score for the results screen."""
        if not self.is_completed:
            raise InvalidTransition("session is not completed yet")
        summary = result_summary(self.total, self.record.correct_count)
        summary["session_id"] = self.session_id
        summary["started_at"] = self.record.started_at.isoformat()
        summary["completed_at"] = self.record.completed_at.isoformat()
        return summary
