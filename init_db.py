"""Print the Supabase (Postgres) schema for the quiz core. Paste it into the Supabase SQL Editor."""
import argparse

SCHEMA_SQL = """
-- Study sessions (one per quiz)
CREATE TABLE IF NOT EXISTS study_sessions (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL,
    session_type VARCHAR(20) NOT NULL DEFAULT 'quiz' CHECK (session_type IN ('quiz', 'simulado')),
    total_questions INT NOT NULL DEFAULT 0,
    correct_answers INT NOT NULL DEFAULT 0,
    started_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    completed_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- One row per answered question
CREATE TABLE IF NOT EXISTS question_attempts (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    session_id UUID NOT NULL REFERENCES study_sessions(id) ON DELETE CASCADE,
    user_id UUID NOT NULL,
    question_id BIGINT NOT NULL,
    subject TEXT NOT NULL,
    topic TEXT,
    chosen_option CHAR(1) NOT NULL CHECK (chosen_option IN ('A', 'B', 'C', 'D')),
    correct_option CHAR(1) NOT NULL CHECK (correct_option IN ('A', 'B', 'C', 'D')),
    is_correct BOOLEAN NOT NULL,
    answered_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- Rolling accuracy per (user, subject, topic), topic NULL = whole subject
CREATE TABLE IF NOT EXISTS user_stats (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL,
    subject TEXT NOT NULL,
    topic TEXT,
    total_attempts INT NOT NULL DEFAULT 0 CHECK (total_attempts >= 0),
    correct_attempts INT NOT NULL DEFAULT 0 CHECK (correct_attempts >= 0 AND correct_attempts <= total_attempts),
    accuracy_rate DOUBLE PRECISION NOT NULL DEFAULT 0,
    last_attempt_at TIMESTAMPTZ,
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- Applied stat increments, keyed by apply key (the attempt id when the replay guard is on)
CREATE TABLE IF NOT EXISTS aggregated_attempts (
    apply_key TEXT PRIMARY KEY,
    attempt_id UUID REFERENCES question_attempts(id) ON DELETE CASCADE,
    session_id UUID NOT NULL REFERENCES study_sessions(id) ON DELETE CASCADE,
    aggregated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- Indexes
CREATE UNIQUE INDEX IF NOT EXISTS uq_user_stats_key ON user_stats(user_id, subject, (COALESCE(topic, '')));
CREATE INDEX IF NOT EXISTS idx_study_sessions_user_id ON study_sessions(user_id, started_at DESC);
CREATE INDEX IF NOT EXISTS idx_question_attempts_session_id ON question_attempts(session_id);
CREATE INDEX IF NOT EXISTS idx_aggregated_attempts_session_id ON aggregated_attempts(session_id);

-- Atomic per-key increment (one call per attempt, at most once per apply key)
CREATE OR REPLACE FUNCTION increment_topic_stat(
    p_apply_key TEXT,
    p_attempt_id UUID,
    p_session_id UUID,
    p_user_id UUID,
    p_subject TEXT,
    p_topic TEXT,
    p_correct INT,
    p_answered_at TIMESTAMPTZ
) RETURNS user_stats AS $$
DECLARE
    result user_stats;
BEGIN
    INSERT INTO aggregated_attempts (apply_key, attempt_id, session_id)
    VALUES (p_apply_key, p_attempt_id, p_session_id)
    ON CONFLICT (apply_key) DO NOTHING;

    IF NOT FOUND THEN
        SELECT * INTO result FROM user_stats
        WHERE user_id = p_user_id AND subject = p_subject AND COALESCE(topic, '') = COALESCE(p_topic, '');
        RETURN result;
    END IF;

    INSERT INTO user_stats (user_id, subject, topic, total_attempts, correct_attempts, accuracy_rate, last_attempt_at, updated_at)
    VALUES (p_user_id, p_subject, p_topic, 1, p_correct, 100.0 * p_correct, p_answered_at, NOW())
    ON CONFLICT (user_id, subject, (COALESCE(topic, ''))) DO UPDATE SET
        total_attempts = user_stats.total_attempts + 1,
        correct_attempts = user_stats.correct_attempts + EXCLUDED.correct_attempts,
        accuracy_rate = 100.0 * (user_stats.correct_attempts + EXCLUDED.correct_attempts) / (user_stats.total_attempts + 1),
        last_attempt_at = EXCLUDED.last_attempt_at,
        updated_at = NOW()
    RETURNING * INTO result;
    RETURN result;
END;
$$ LANGUAGE plpgsql;
"""


def schema_statements() -> list[str]:
    """Split SCHEMA_SQL into statements; the function body is kept whole."""
    head, sep, function = SCHEMA_SQL.partition("-- Atomic per-key increment")
    statements = [s.strip() for s in head.split(";") if s.strip()]
    if sep:
        statements.append((sep + function).strip().rstrip(";").strip())
    return statements


def main():
    parser = argparse.ArgumentParser(description="Print the quiz schema for the Supabase SQL Editor.")
    parser.add_argument("--list", action="store_true", help="List statements one by one instead of the full script")
    args = parser.parse_args()

    if args.list:
        statements = schema_statements()
        for i, stmt in enumerate(statements, 1):
            first = next(line for line in stmt.splitlines() if not line.startswith("--"))
            print(f"Statement {i}/{len(statements)}: {first[:60]}...")
        return

    print("Supabase client cannot run DDL; paste this into the Supabase SQL Editor:")
    print(SCHEMA_SQL)


if __name__ == "__main__":
    main()
