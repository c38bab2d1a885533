"""Record parsing and the accuracy invariant."""
from datetime import datetime, timezone

import pytest

from barprep.models import Question, StudySession, accuracy_rate, parse_timestamp


@pytest.mark.parametrize("correct, total, expected", [(0, 0, 0.0), (1, 4, 25.0), (3, 3, 100.0), (2, 3, 200 / 3)])
def test_accuracy_rate(correct, total, expected):
    assert accuracy_rate(correct, total) == pytest.approx(expected)


def test_question_options_skip_missing_letters():
    q = Question.from_api({
        "id": "9", "subject": "Torts", "topic": "", "prompt": "Duty?",
        "option_a": "Yes", "option_b": "No", "option_c": None, "correct_option": " a ",
    })

    assert q.id == 9
    assert q.topic is None
    assert q.options == {"A": "Yes", "B": "No"}
    assert q.correct_option == "A"
    assert q.explanation == ""


def test_timestamps_from_supabase():
    assert parse_timestamp("2026-02-03T04:05:06Z") == datetime(2026, 2, 3, 4, 5, 6, tzinfo=timezone.utc)
    assert parse_timestamp(None) is None


def test_session_from_row():
    session = StudySession.from_row({
        "id": "abc", "user_id": "u", "session_type": "simulado", "total_questions": 40,
        "correct_answers": 31, "started_at": "2026-02-03T04:05:06+00:00", "completed_at": None,
    })

    assert session.kind == "simulado"
    assert (session.total_question_count, session.correct_count) == (40, 31)
    assert not session.is_completed
