"""
Persistence Gateway: Supabase CRUD for study sessions, attempts and per-topic statistics.
Every call is retried; a call that keeps failing is raised as PersistenceFailure.
Writes that can be re-sent after the server already committed them are
idempotent: attempts carry a client-side id and every stat increment an apply key.
"""
import logging
import time
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

from supabase import Client

from db import PERSISTENCE_RETRIES, get_supabase
from barprep.errors import PersistenceFailure
from barprep.models import Attempt, StudySession, TopicStat, utcnow

logger = logging.getLogger(__name__)

SESSIONS_TABLE = "study_sessions"
ATTEMPTS_TABLE = "question_attempts"
STATS_TABLE = "user_stats"
AGGREGATED_TABLE = "aggregated_attempts"
INCREMENT_FUNCTION = "increment_topic_stat"


class DatabaseClient:
    """Wrapper around the Supabase client with quiz-specific operations."""

    def __init__(self, client: Optional[Client] = None, max_retries: int = PERSISTENCE_RETRIES, backoff: float = 0.5):
        self.client: Client = client if client is not None else get_supabase()
        self.max_retries = max(1, max_retries)
        self.backoff = backoff

    def _execute(self, operation: str, build: Callable[[], Any]):
        """Run a query built by `build`, retrying; returns the response."""
        for attempt in range(self.max_retries):
            try:
                return build().execute()
            except Exception as e:
                if attempt < self.max_retries - 1:
                    logger.warning(f"{operation} failed (attempt {attempt + 1}/{self.max_retries}): {e}")
                    time.sleep(self.backoff * (1 + attempt))
                    continue
                logger.error(f"Error in {operation}: {e}")
                raise PersistenceFailure(operation, str(e)) from e

    @staticmethod
    def _first(response) -> Optional[Dict]:
        data = response.data if response is not None else None
        if isinstance(data, list):
            return data[0] if data else None
        return data or None

    def _stat_query(self, user_id: str, subject: str, topic: Optional[str]):
        query = self.client.table(STATS_TABLE).select("*").eq("user_id", str(user_id)).eq("subject", subject)
        return query.is_("topic", "null") if topic is None else query.eq("topic", topic)

    # ============= Sessions =============

    def create_session(self, session: StudySession) -> str:
        """Insert a study session row; returns the generated id."""
        row = {
            "user_id": str(session.user_id),
            "session_type": session.kind,
            "total_questions": session.total_question_count,
            "correct_answers": session.correct_count,
            "started_at": session.started_at.isoformat(),
        }
        response = self._execute("create_session", lambda: self.client.table(SESSIONS_TABLE).insert(row))
        created = self._first(response)
        if not created or "id" not in created:
            raise PersistenceFailure("create_session", "no id returned")
        logger.info(f"Session {created['id']} created ({session.total_question_count} questions)")
        return str(created["id"])

    def complete_session(self, session_id: str, correct_count: int, completed_at: datetime) -> None:
        update_data = {
            "correct_answers": correct_count,
            "completed_at": completed_at.isoformat(),
        }
        self._execute(
            "complete_session",
            lambda: self.client.table(SESSIONS_TABLE).update(update_data).eq("id", str(session_id)),
        )

    def get_sessions(self, user_id: str, limit: int = 10, completed_only: bool = True) -> List[StudySession]:
        """User's sessions, newest first."""

        def build():
            query = self.client.table(SESSIONS_TABLE).select("*").eq("user_id", str(user_id))
            if completed_only:
                query = query.not_.is_("completed_at", "null")
            return query.order("started_at", desc=True).limit(limit)

        response = self._execute("get_sessions", build)
        return [StudySession.from_row(row) for row in response.data or []]

    # ============= Attempts =============

    def append_attempt(self, attempt: Attempt) -> str:
        """Persist one answered question, upserted on its id; returns the attempt id."""
        row = attempt.to_row()
        self._execute(
            "append_attempt",
            lambda: self.client.table(ATTEMPTS_TABLE).upsert(row, on_conflict="id"),
        )
        return str(attempt.id)

    def get_session_attempts(self, session_id: str) -> List[Attempt]:
        response = self._execute(
            "get_session_attempts",
            lambda: self.client.table(ATTEMPTS_TABLE).select("*").eq("session_id", str(session_id)).order("answered_at"),
        )
        return [Attempt.from_row(row) for row in response.data or []]

    # ============= Topic stats =============

    def get_topic_stat(self, user_id: str, subject: str, topic: Optional[str]) -> Optional[TopicStat]:
        response = self._execute("get_topic_stat", lambda: self._stat_query(user_id, subject, topic).limit(1))
        row = self._first(response)
        return TopicStat.from_row(row) if row else None

    def upsert_topic_stat(self, stat: TopicStat) -> TopicStat:
        """Write the full row: update by id when known, insert otherwise."""
        row = stat.to_row()
        if stat.id is not None:
            self._execute(
                "upsert_topic_stat",
                lambda: self.client.table(STATS_TABLE).update(row).eq("id", stat.id),
            )
            return stat
        response = self._execute("upsert_topic_stat", lambda: self.client.table(STATS_TABLE).insert(row))
        created = self._first(response)
        if created and created.get("id") is not None:
            stat.id = str(created["id"])
        return stat

    def increment_topic_stat(self, attempt: Attempt, apply_key: Optional[str] = None) -> TopicStat:
        """
        Atomic server-side increment for the attempt's (user, subject, topic) key
        (see init_db.py for the function body).

        The function records `apply_key` in aggregated_attempts in the same
        transaction and skips the increment when the key is already there. A
        fresh key is drawn when none is given, so only the retries of this one
        call are collapsed. Passing the attempt id makes any later replay of
        the attempt a no-op as well.
        """
        params = {
            "p_apply_key": apply_key or str(uuid.uuid4()),
            "p_attempt_id": attempt.id,
            "p_session_id": str(attempt.session_id),
            "p_user_id": str(attempt.user_id),
            "p_subject": attempt.subject,
            "p_topic": attempt.topic,
            "p_correct": 1 if attempt.is_correct else 0,
            "p_answered_at": attempt.answered_at.isoformat(),
        }
        response = self._execute("increment_topic_stat", lambda: self.client.rpc(INCREMENT_FUNCTION, params))
        row = self._first(response)
        if not row:
            raise PersistenceFailure("increment_topic_stat", "no row returned")
        return TopicStat.from_row(row)

    def get_topic_stats(self, user_id: str) -> List[TopicStat]:
        """All stats rows for a user, best accuracy first."""
        response = self._execute(
            "get_topic_stats",
            lambda: self.client.table(STATS_TABLE).select("*").eq("user_id", str(user_id)).order("accuracy_rate", desc=True),
        )
        return [TopicStat.from_row(row) for row in response.data or []]

    # ============= Aggregation ledger =============

    def get_aggregated_attempt_ids(self, session_id: str) -> Set[str]:
        response = self._execute(
            "get_aggregated_attempt_ids",
            lambda: self.client.table(AGGREGATED_TABLE).select("attempt_id").eq("session_id", str(session_id)),
        )
        return {str(row["attempt_id"]) for row in response.data or [] if row.get("attempt_id") is not None}

    def mark_attempt_aggregated(self, session_id: str, attempt_id: str) -> None:
        """Ledger row keyed by the attempt id, as the guarded increment writes it."""
        row = {
            "apply_key": str(attempt_id),
            "attempt_id": str(attempt_id),
            "session_id": str(session_id),
            "aggregated_at": utcnow().isoformat(),
        }
        self._execute(
            "mark_attempt_aggregated",
            lambda: self.client.table(AGGREGATED_TABLE).upsert(row, on_conflict="apply_key"),
        )


# Singleton instance
_db_client: Optional[DatabaseClient] = None


def get_database() -> DatabaseClient:
    """Get or create database client singleton."""
    global _db_client
    if _db_client is None:
        _db_client = DatabaseClient()
    return _db_client
