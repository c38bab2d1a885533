"""
Terminal quiz: builds a session from the question bank, plays it on stdin/stdout
and folds the answers into the user's statistics.

Run: python quiz_cli.py --user <uuid> --subject "Constitutional Law" [--topic "Due Process" ...] [--count 10]
     python quiz_cli.py --list
     python quiz_cli.py --user <uuid> --stats
"""
import argparse
import logging
import sys

from engine import DEFAULT_QUESTION_COUNT, SESSION_KIND_QUIZ, SESSION_KINDS
from barprep.builder import QuizBuilder
from barprep.database import DatabaseClient
from barprep.errors import InvalidAnswer, NoQuestionsAvailable, PersistenceFailure, SourceUnavailable
from barprep.performance import PerformanceService
from barprep.question_source import QuestionSource
from barprep.session import QuizSession
from barprep.stats import STRATEGIES, ATOMIC, StatisticsAggregator

logger = logging.getLogger(__name__)


def play(quiz: QuizSession, read=input, write=print) -> dict:
    """Drive a session to completion. Returns the result summary."""
    while not quiz.is_completed:
        q = quiz.current_question
        write("")
        write(f"Question {quiz.index + 1} of {quiz.total}  [{q.subject}{' / ' + q.topic if q.topic else ''}]")
        write(q.prompt)
        for letter, text in q.options.items():
            write(f"  {letter}. {text}")

        while True:
            choice = read("Your answer: ")
            try:
                attempt = quiz.submit(choice)
                break
            except InvalidAnswer:
                write(f"Choose one of: {', '.join(q.options)}")
            except PersistenceFailure as e:
                # Answer is kept in memory and flushed with the next write
                write(f"Warning: answer not saved yet ({e})")
                attempt = quiz.answers[quiz.index]
                break

        write("✓ CORRECT" if attempt.is_correct else f"✗ INCORRECT (correct: {attempt.correct_option})")
        if q.explanation:
            write(q.explanation)
        quiz.advance()

    result = quiz.result()
    write("")
    write("=" * 60)
    write(f"  {result['message']}  {result['correct_count']} / {result['total_questions']} ({result['percentage']:.0f}%)")
    write("=" * 60)
    return result


def print_report(report: dict, write=print) -> None:
    overall = report["overall"]
    write(f"Questions: {overall['total_attempts']}  Correct: {overall['total_correct']}  "
          f"Accuracy: {overall['overall_accuracy']:.0f}%  Sessions: {overall['completed_sessions']}")
    for stat in report["subjects"]:
        write(f"  {stat.subject:<30} {stat.correct_attempts}/{stat.total_attempts} ({stat.accuracy_rate:.0f}%)")
    for stat in report["topics"]:
        write(f"  {stat.subject + ' / ' + stat.topic:<30} {stat.correct_attempts}/{stat.total_attempts} ({stat.accuracy_rate:.0f}%)")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Practice bar-exam questions in the terminal.")
    parser.add_argument("--user", help="User id (uuid)")
    parser.add_argument("--subject", help="Subject to practice")
    parser.add_argument("--topic", action="append", default=[], help="Topic to include (repeatable)")
    parser.add_argument("--count", default=None, help=f"Number of questions (default {DEFAULT_QUESTION_COUNT})")
    parser.add_argument("--kind", choices=SESSION_KINDS, default=SESSION_KIND_QUIZ)
    parser.add_argument("--strategy", choices=STRATEGIES, default=ATOMIC, help="Statistics update strategy")
    parser.add_argument("--dedupe", action="store_true", help="Drop repeated questions across topics")
    parser.add_argument("--list", action="store_true", help="List subjects and topics, then exit")
    parser.add_argument("--stats", action="store_true", help="Show the user's performance, then exit")
    args = parser.parse_args(argv)

    source = QuestionSource()

    if args.list:
        try:
            print("Subjects:", ", ".join(source.get_subjects()))
            print("Topics:  ", ", ".join(source.get_topics()))
        except SourceUnavailable as e:
            print(f"Could not load the catalogue: {e}. Try again.")
            return 1
        return 0

    if not args.user:
        parser.error("--user is required")

    db = DatabaseClient()

    if args.stats:
        print_report(PerformanceService(db).get_report(args.user))
        return 0

    if not args.subject:
        parser.error("--subject is required to start a quiz")

    aggregator = StatisticsAggregator(db, strategy=args.strategy, skip_applied=True)
    builder = QuizBuilder(source, db, aggregator, dedupe=args.dedupe)
    try:
        quiz = builder.build(args.user, args.subject, args.topic, args.count, kind=args.kind)
    except SourceUnavailable as e:
        print(f"Could not load questions: {e}. Try again.")
        return 1
    except NoQuestionsAvailable as e:
        print(str(e))
        return 1

    try:
        play(quiz)
    except PersistenceFailure as e:
        print(f"Could not save your results: {e}")
        return 1
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    sys.exit(main())
