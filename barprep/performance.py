"""Read-only helpers for the statistics and results screens."""
import logging
from typing import Dict, List

from engine import HISTORY_LIMIT, PERFORMANCE_BANDS
from barprep.database import DatabaseClient
from barprep.models import StudySession, TopicStat, accuracy_rate

logger = logging.getLogger(__name__)


def performance_band(percentage: float) -> str:
    for floor, label in PERFORMANCE_BANDS:
        if percentage >= floor:
            return label
    return PERFORMANCE_BANDS[-1][1]


def result_summary(total: int, correct: int) -> Dict:
    percentage = accuracy_rate(correct, total)
    return {
        "total_questions": total,
        "correct_count": correct,
        "incorrect_count": total - correct,
        "percentage": percentage,
        "message": performance_band(percentage),
    }


def overall_stats(stats: List[TopicStat], sessions: List[StudySession]) -> Dict:
    total_attempts = sum(s.total_attempts for s in stats)
    total_correct = sum(s.correct_attempts for s in stats)
    return {
        "total_attempts": total_attempts,
        "total_correct": total_correct,
        "overall_accuracy": accuracy_rate(total_correct, total_attempts),
        "completed_sessions": sum(1 for s in sessions if s.is_completed),
    }


def subject_stats(stats: List[TopicStat]) -> List[TopicStat]:
    """Whole-subject rows (no topic), best accuracy first."""
    return sorted((s for s in stats if s.topic is None), key=lambda s: s.accuracy_rate, reverse=True)


def topic_stats(stats: List[TopicStat]) -> List[TopicStat]:
    return sorted((s for s in stats if s.topic is not None), key=lambda s: s.accuracy_rate, reverse=True)


class PerformanceService:
    def __init__(self, db: DatabaseClient):
        self.db = db

    def get_report(self, user_id: str, history_limit: int = HISTORY_LIMIT) -> Dict:
        stats = self.db.get_topic_stats(user_id)
        sessions = self.db.get_sessions(user_id, limit=history_limit, completed_only=True)
        logger.info(f"Loaded {len(stats)} stat rows and {len(sessions)} sessions for user {user_id}")
        return {
            "overall": overall_stats(stats, sessions),
            "subjects": subject_stats(stats),
            "topics": topic_stats(stats),
            "recent_sessions": sessions,
        }
