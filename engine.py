"""Pure quiz logic constants: defaults, option letters, session kinds, result bands. No I/O."""
# Question count: falls back to DEFAULT_QUESTION_COUNT when absent or non-numeric
# Accuracy = 100 * correct / total (0 when total == 0)

DEFAULT_QUESTION_COUNT = 10
MAX_QUESTION_COUNT = 200

OPTION_LETTERS = ("A", "B", "C", "D")

SESSION_KIND_QUIZ = "quiz"          # single-question practice
SESSION_KIND_EXAM = "simulado"      # timed full exam
SESSION_KINDS = (SESSION_KIND_QUIZ, SESSION_KIND_EXAM)

# Result bands (percentage floor -> label), checked top-down
PERFORMANCE_BANDS = (
    (80, "Excellent!"),
    (60, "Very good!"),
    (40, "Good job!"),
    (0, "Keep studying!"),
)

HISTORY_LIMIT = 10
