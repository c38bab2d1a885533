#!/usr/bin/env python3
"""
Integration test: Builder + Session + Statistics workflow.
Demonstrates:
1. Multi-topic question selection
2. Answer recording with immediate persistence
3. Session completion and per-topic statistics
"""
import logging

from barprep.builder import QuizBuilder
from barprep.performance import PerformanceService
from barprep.session import State
from barprep.stats import StatisticsAggregator
from conftest import USER_ID, make_question

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


def test_quiz_workflow(source, db, supabase):
    """Full end-to-end run: build, answer, complete, fold statistics, report."""
    source.by_topic["Due Process"] = [
        make_question(1, topic="Due Process", correct="A"),
        make_question(2, topic="Due Process", correct="B"),
    ]
    source.by_topic["Federalism"] = [
        make_question(11, topic="Federalism", correct="C"),
        make_question(12, topic="Federalism", correct="D"),
    ]
    builder = QuizBuilder(source, db, StatisticsAggregator(db, skip_applied=True))

    quiz = builder.build(USER_ID, "Constitutional Law", ["Due Process", "Federalism"], count="3")
    logger.info(f"✓ Created session {quiz.session_id} with {quiz.total} questions")
    assert [q.id for q in quiz.questions] == [1, 2, 11]

    answers_seq = ["A", "C", "C"]  # correct, incorrect, correct
    for answer in answers_seq:
        attempt = quiz.submit(answer)
        logger.info(f"{'✓ CORRECT' if attempt.is_correct else '✗ INCORRECT'} | Q{attempt.question_id} | chose {answer}")
        quiz.advance()

    assert quiz.state is State.COMPLETED
    result = quiz.result()
    logger.info(f"  Score: {result['correct_count']}/{result['total_questions']} ({result['percentage']:.0f}%) {result['message']}")
    assert (result["correct_count"], result["total_questions"]) == (2, 3)

    stats = {row["topic"]: row for row in supabase.rows("user_stats")}
    assert (stats["Due Process"]["total_attempts"], stats["Due Process"]["correct_attempts"]) == (2, 1)
    assert (stats["Federalism"]["total_attempts"], stats["Federalism"]["correct_attempts"]) == (1, 1)
    assert len(supabase.rows("aggregated_attempts")) == 3

    # Replaying the fold with the guard on changes nothing
    builder.aggregator.aggregate(quiz.attempts)
    stats = {row["topic"]: row for row in supabase.rows("user_stats")}
    assert stats["Due Process"]["total_attempts"] == 2

    report = PerformanceService(db).get_report(USER_ID)
    logger.info(f"  Overall accuracy: {report['overall']['overall_accuracy']:.1f}%")
    assert report["overall"]["total_attempts"] == 3
    assert report["overall"]["completed_sessions"] == 1
