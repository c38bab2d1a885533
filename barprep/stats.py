"""
Statistics aggregation: folds the attempts of a completed session into
per-(user, subject, topic) accuracy counters.

Attempts are applied one at a time, in order, one increment each. Nothing is
rolled back: if the gateway fails mid-loop, earlier increments stay applied.
Replaying the same attempts double-counts them unless `skip_applied` is on,
in which case folded attempt ids are recorded and skipped on replay.

With the atomic strategy the ledger row and the increment are written by one
database call. With read_modify_write they are two calls: the ledger row is
written right after the stat row, and a failure between the two leaves an
increment that a replay applies again.
"""
import logging
from typing import Dict, List, Set

from barprep.database import DatabaseClient
from barprep.models import Attempt, TopicStat

logger = logging.getLogger(__name__)

ATOMIC = "atomic"
READ_MODIFY_WRITE = "read_modify_write"
STRATEGIES = (ATOMIC, READ_MODIFY_WRITE)


class StatisticsAggregator:
    def __init__(self, db: DatabaseClient, strategy: str = ATOMIC, skip_applied: bool = False):
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown aggregation strategy {strategy!r}; expected one of {STRATEGIES}")
        self.db = db
        self.strategy = strategy
        self.skip_applied = skip_applied

    def aggregate(self, attempts: List[Attempt]) -> List[TopicStat]:
        """Apply every attempt; returns the stat row after each applied increment."""
        applied: Dict[str, Set[str]] = {}
        if self.skip_applied:
            for session_id in dict.fromkeys(a.session_id for a in attempts):
                applied[session_id] = self.db.get_aggregated_attempt_ids(session_id)

        updated = []
        skipped = 0
        for attempt in attempts:
            if self.skip_applied and attempt.id is not None and attempt.id in applied.get(attempt.session_id, set()):
                skipped += 1
                continue
            if self.skip_applied and attempt.id is None:
                logger.warning(f"Attempt on question {attempt.question_id} has no id; replay cannot skip it")
            updated.append(self.apply(attempt))

        if skipped:
            logger.info(f"Skipped {skipped} attempt(s) already folded into statistics")
        logger.info(f"Folded {len(updated)} attempt(s) into topic statistics")
        return updated

    def apply(self, attempt: Attempt) -> TopicStat:
        """One increment for the attempt's (user, subject, topic) key."""
        guarded = self.skip_applied and attempt.id is not None
        if self.strategy == ATOMIC:
            return self.db.increment_topic_stat(attempt, apply_key=attempt.id if guarded else None)

        stat = self.db.get_topic_stat(attempt.user_id, attempt.subject, attempt.topic)
        if stat is None:
            stat = TopicStat(user_id=attempt.user_id, subject=attempt.subject, topic=attempt.topic)
        stat.record(attempt.is_correct, attempt.answered_at)
        stat = self.db.upsert_topic_stat(stat)
        if guarded:
            self.db.mark_attempt_aggregated(attempt.session_id, attempt.id)
        return stat
