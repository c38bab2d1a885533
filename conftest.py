"""Shared fixtures: in-memory stand-ins for the Supabase client and the question bank."""
import copy
import uuid
from typing import Dict, List, Optional

import pytest

from barprep.builder import QuizBuilder
from barprep.database import DatabaseClient
from barprep.models import Question
from barprep.stats import StatisticsAggregator


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    """Subset of the postgrest query builder used by DatabaseClient."""

    def __init__(self, store: "FakeSupabase", table: str):
        self.store = store
        self.table = table
        self.action = "select"
        self.payload = None
        self.on_conflict = None
        self.filters = []
        self.order_by = None
        self.limit_to = None
        self._negate = False

    def select(self, *columns, **kwargs):
        self.action = "select"
        return self

    def insert(self, payload):
        self.action, self.payload = "insert", payload
        return self

    def update(self, payload):
        self.action, self.payload = "update", payload
        return self

    def upsert(self, payload, on_conflict=None):
        self.action, self.payload, self.on_conflict = "upsert", payload, on_conflict
        return self

    def _filter(self, predicate):
        if self._negate:
            self._negate = False
            self.filters.append(lambda row: not predicate(row))
        else:
            self.filters.append(predicate)
        return self

    def eq(self, column, value):
        return self._filter(lambda row: row.get(column) == value)

    def is_(self, column, value):
        assert value == "null"
        return self._filter(lambda row: row.get(column) is None)

    @property
    def not_(self):
        self._negate = True
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, n):
        self.limit_to = n
        return self

    def _matching(self):
        return [row for row in self.store.tables.setdefault(self.table, []) if all(f(row) for f in self.filters)]

    def _insert_row(self, row):
        row = dict(row)
        row.setdefault("id", str(uuid.uuid4()))
        self.store.tables.setdefault(self.table, []).append(row)
        return row

    def execute(self):
        self.store.record(self.table, self.action)
        return self.store.reply(self.table, self.action, self._run())

    def _run(self):
        if self.action == "insert":
            rows = self.payload if isinstance(self.payload, list) else [self.payload]
            return FakeResponse([copy.deepcopy(self._insert_row(r)) for r in rows])
        if self.action == "update":
            matched = self._matching()
            for row in matched:
                row.update(self.payload)
            return FakeResponse(copy.deepcopy(matched))
        if self.action == "upsert":
            rows = self.payload if isinstance(self.payload, list) else [self.payload]
            out = []
            for r in rows:
                key = self.on_conflict or "id"
                existing = next((x for x in self.store.tables.setdefault(self.table, []) if x.get(key) == r.get(key)), None)
                if existing is not None:
                    existing.update(r)
                    out.append(copy.deepcopy(existing))
                else:
                    out.append(copy.deepcopy(self._insert_row(r)))
            return FakeResponse(out)

        rows = self._matching()
        if self.order_by:
            column, desc = self.order_by
            rows = sorted(rows, key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        if self.limit_to is not None:
            rows = rows[: self.limit_to]
        return FakeResponse(copy.deepcopy(rows))


class FakeRpc:
    def __init__(self, store: "FakeSupabase", name: str, params: Dict):
        self.store = store
        self.name = name
        self.params = params

    def execute(self):
        self.store.record(self.name, "rpc")
        return self.store.reply(self.name, "rpc", self._increment())

    def _increment(self):
        """Ledger insert and increment in one step, as the SQL function does."""
        assert self.name == "increment_topic_stat"
        p = self.params
        stats = self.store.tables.setdefault("user_stats", [])
        row = next(
            (r for r in stats if r["user_id"] == p["p_user_id"] and r["subject"] == p["p_subject"] and r.get("topic") == p["p_topic"]),
            None,
        )
        ledger = self.store.tables.setdefault("aggregated_attempts", [])
        if any(entry["apply_key"] == p["p_apply_key"] for entry in ledger):
            return FakeResponse(copy.deepcopy(row))
        ledger.append({"apply_key": p["p_apply_key"], "attempt_id": p["p_attempt_id"], "session_id": p["p_session_id"]})
        if row is None:
            row = {"id": str(uuid.uuid4()), "user_id": p["p_user_id"], "subject": p["p_subject"], "topic": p["p_topic"],
                   "total_attempts": 0, "correct_attempts": 0}
            stats.append(row)
        row["total_attempts"] += 1
        row["correct_attempts"] += p["p_correct"]
        row["accuracy_rate"] = 100.0 * row["correct_attempts"] / row["total_attempts"]
        row["last_attempt_at"] = p["p_answered_at"]
        return FakeResponse(copy.deepcopy(row))


class FakeSupabase:
    """
    In-memory Supabase client. `fail(table, action, times)` makes the next
    `times` matching calls raise before touching any data. `lose_reply` makes
    them raise after the write is applied, like a reply lost on the wire.
    """

    def __init__(self):
        self.tables: Dict[str, List[Dict]] = {}
        self.calls: List[tuple] = []
        self._failures: Dict[tuple, int] = {}
        self._lost_replies: Dict[tuple, int] = {}

    def fail(self, table: str, action: str, times: int = 1):
        self._failures[(table, action)] = times

    def lose_reply(self, table: str, action: str, times: int = 1):
        self._lost_replies[(table, action)] = times

    def reply(self, table: str, action: str, response: FakeResponse) -> FakeResponse:
        remaining = self._lost_replies.get((table, action), 0)
        if remaining:
            self._lost_replies[(table, action)] = remaining - 1
            raise RuntimeError(f"connection reset after {table}.{action} was applied")
        return response

    def record(self, table: str, action: str):
        self.calls.append((table, action))
        remaining = self._failures.get((table, action), 0)
        if remaining:
            self._failures[(table, action)] = remaining - 1
            raise RuntimeError(f"simulated outage on {table}.{action}")

    def count(self, table: str, action: str) -> int:
        return sum(1 for call in self.calls if call == (table, action))

    def rows(self, table: str) -> List[Dict]:
        return self.tables.get(table, [])

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Dict) -> FakeRpc:
        return FakeRpc(self, name, params)


class StubQuestionSource:
    """Question bank stand-in: serves canned questions and records requests."""

    def __init__(self, by_subject: Optional[Dict[str, List[Question]]] = None, by_topic: Optional[Dict[str, List[Question]]] = None):
        self.by_subject = by_subject or {}
        self.by_topic = by_topic or {}
        self.requests: List[tuple] = []
        self.error: Optional[Exception] = None

    def get_questions_by_subject(self, subject, count):
        self.requests.append(("subject", subject, count))
        if self.error:
            raise self.error
        return list(self.by_subject.get(subject, []))[:count]

    def get_questions_by_topic(self, topic, count):
        self.requests.append(("topic", topic, count))
        if self.error:
            raise self.error
        return list(self.by_topic.get(topic, []))[:count]


def make_question(qid: int, subject: str = "Constitutional Law", topic: Optional[str] = "Due Process",
                  correct: str = "A", four_options: bool = True) -> Question:
    return Question(
        id=qid,
        subject=subject,
        topic=topic,
        prompt=f"Question {qid}?",
        option_a="Alpha",
        option_b="Bravo",
        option_c="Charlie" if four_options else None,
        option_d="Delta" if four_options else None,
        correct_option=correct,
        explanation=f"Because of rule {qid}.",
    )


def make_questions(n: int, start: int = 1, **kwargs) -> List[Question]:
    return [make_question(start + i, **kwargs) for i in range(n)]


USER_ID = "7d1f3c52-2f4e-4a53-9b7f-5b1f9c2e0a11"


@pytest.fixture
def supabase():
    return FakeSupabase()


@pytest.fixture
def db(supabase):
    return DatabaseClient(client=supabase, max_retries=2, backoff=0)


@pytest.fixture
def aggregator(db):
    return StatisticsAggregator(db)


@pytest.fixture
def source():
    return StubQuestionSource()


@pytest.fixture
def builder(source, db, aggregator):
    return QuizBuilder(source, db, aggregator)
