"""
Quiz session builder: fetches a bounded question list for a subject or a set
of topics and opens a session for it.

Topics split the requested count evenly: ceil(N / topics) per topic, in
selection order, then the concatenation is truncated to N. A source that
returns fewer questions than asked is tolerated.
"""
import logging
import math
import re
from typing import Iterable, List, Optional

from engine import DEFAULT_QUESTION_COUNT, MAX_QUESTION_COUNT, SESSION_KIND_QUIZ, SESSION_KINDS
from barprep.database import DatabaseClient
from barprep.errors import NoQuestionsAvailable
from barprep.models import Question, StudySession
from barprep.question_source import QuestionSource
from barprep.session import QuizSession
from barprep.stats import StatisticsAggregator

logger = logging.getLogger(__name__)

LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def parse_question_count(raw) -> int:
    """
    Requested count from user input. The leading integer wins ("5.5" -> 5,
    "12 questions" -> 12). Absent, non-numeric or non-positive input gives
    the default.
    """
    match = LEADING_INT.match(str(raw)) if raw is not None else None
    if match is None:
        return DEFAULT_QUESTION_COUNT
    count = int(match.group(1))
    if count <= 0:
        return DEFAULT_QUESTION_COUNT
    if count > MAX_QUESTION_COUNT:
        logger.warning(f"Requested {count} questions, capping at {MAX_QUESTION_COUNT}")
        return MAX_QUESTION_COUNT
    return count


def normalize_topics(topics: Optional[Iterable[str]]) -> List[str]:
    """Strip blanks and repeats, keep selection order."""
    cleaned = (t.strip() for t in (topics or []) if t and t.strip())
    return list(dict.fromkeys(cleaned))


class QuizBuilder:
    def __init__(
        self,
        source: QuestionSource,
        db: DatabaseClient,
        aggregator: Optional[StatisticsAggregator] = None,
        dedupe: bool = False,
    ):
        self.source = source
        self.db = db
        self.aggregator = aggregator or StatisticsAggregator(db)
        self.dedupe = dedupe

    def select_questions(self, subject: str, topics: Optional[Iterable[str]] = None, count=None) -> List[Question]:
        """Ordered list of at most `count` questions. Raises SourceUnavailable."""
        n = parse_question_count(count)
        wanted = normalize_topics(topics)

        if not wanted:
            questions = self.source.get_questions_by_subject(subject, n)
        else:
            per_topic = math.ceil(n / len(wanted))
            questions = []
            for topic in wanted:
                fetched = self.source.get_questions_by_topic(topic, per_topic)
                off_topic = [q for q in fetched if q.topic != topic]
                if off_topic:
                    logger.warning(f"Dropped {len(off_topic)} question(s) not tagged '{topic}'")
                questions.extend(q for q in fetched if q.topic == topic)

        if self.dedupe:
            by_id = {}
            for q in questions:
                by_id.setdefault(q.id, q)
            if len(by_id) < len(questions):
                logger.info(f"Deduped questions by id: {len(questions)} -> {len(by_id)}")
            questions = list(by_id.values())

        questions = questions[:n]
        if len(questions) < n:
            logger.warning(f"Requested {n} questions for {subject}, source returned {len(questions)}")
        return questions

    def build(
        self,
        user_id: str,
        subject: str,
        topics: Optional[Iterable[str]] = None,
        count=None,
        kind: str = SESSION_KIND_QUIZ,
    ) -> QuizSession:
        """
        Fetch questions and open a session over them.

        Raises SourceUnavailable (retryable, nothing created), NoQuestionsAvailable
        (nothing created) or PersistenceFailure (session row could not be written).
        """
        if kind not in SESSION_KINDS:
            raise ValueError(f"Unknown session kind {kind!r}; expected one of {SESSION_KINDS}")

        questions = self.select_questions(subject, topics, count)
        if not questions:
            logger.error(f"No questions for {subject} (topics={normalize_topics(topics)})")
            raise NoQuestionsAvailable(subject, normalize_topics(topics))

        record = StudySession(user_id=str(user_id), kind=kind, total_question_count=len(questions))
        record.id = self.db.create_session(record)
        logger.info(f"Test session {record.id}: Generated {len(questions)} questions")
        return QuizSession(record, questions, self.db, self.aggregator)
