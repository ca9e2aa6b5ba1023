"""Initial schema: catalog, links, sessions, leaderboards, rewards.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Partner catalog ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS external_games (
            external_id VARCHAR(64) PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            description TEXT,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS external_users (
            external_user_id VARCHAR(64) PRIMARY KEY,
            username VARCHAR(128) NOT NULL,
            email VARCHAR(320),
            avatar_url TEXT,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ
        )
    """)

    # --- Internal games ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS internal_games (
            id BIGSERIAL PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            game_type VARCHAR(16) NOT NULL DEFAULT 'books'
                CHECK (game_type IN ('books', 'authors', 'years')),
            difficulty INTEGER NOT NULL DEFAULT 1 CHECK (difficulty BETWEEN 1 AND 3),
            timer_duration INTEGER NOT NULL DEFAULT 30,
            question_count INTEGER NOT NULL DEFAULT 10,
            base_points INTEGER NOT NULL DEFAULT 10,
            weekly_leaderboard BOOLEAN NOT NULL DEFAULT TRUE,
            monthly_leaderboard BOOLEAN NOT NULL DEFAULT TRUE,
            credit_policy VARCHAR(16) NOT NULL DEFAULT 'on_completion'
                CHECK (credit_policy IN ('on_completion', 'per_answer')),
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ
        )
    """)

    # --- Links ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS game_links (
            external_id VARCHAR(64) PRIMARY KEY
                REFERENCES external_games(external_id) ON DELETE CASCADE,
            internal_id BIGINT UNIQUE REFERENCES internal_games(id) ON DELETE SET NULL,
            linked_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_links (
            external_user_id VARCHAR(64) PRIMARY KEY
                REFERENCES external_users(external_user_id) ON DELETE CASCADE,
            internal_user_id BIGINT UNIQUE,
            linked_at TIMESTAMPTZ
        )
    """)

    # --- Question bank ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS quiz_questions (
            question_id VARCHAR(64) PRIMARY KEY,
            game_type VARCHAR(16) NOT NULL,
            difficulty INTEGER NOT NULL DEFAULT 1,
            prompt TEXT NOT NULL,
            snippet TEXT,
            options JSONB NOT NULL,
            correct_option_id VARCHAR(64) NOT NULL,
            is_active BOOLEAN NOT NULL DEFAULT TRUE
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_quiz_questions_type_difficulty
        ON quiz_questions(game_type, difficulty)
    """)

    # --- Sessions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS game_sessions (
            session_id VARCHAR(36) PRIMARY KEY,
            external_user_id VARCHAR(64) NOT NULL REFERENCES external_users(external_user_id),
            external_game_id VARCHAR(64) NOT NULL REFERENCES external_games(external_id),
            internal_game_id BIGINT,
            internal_user_id BIGINT,
            status VARCHAR(16) NOT NULL DEFAULT 'created'
                CHECK (status IN ('created', 'in_progress', 'completed', 'expired')),
            score INTEGER NOT NULL DEFAULT 0 CHECK (score >= 0),
            credited_points INTEGER NOT NULL DEFAULT 0,
            answered_count INTEGER NOT NULL DEFAULT 0,
            question_count INTEGER NOT NULL,
            issued_question_ids JSONB NOT NULL DEFAULT '[]'::jsonb,
            pending_question_id VARCHAR(64),
            pending_issued_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL,
            completed_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_game_sessions_status_updated
        ON game_sessions(status, updated_at)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_game_sessions_user
        ON game_sessions(external_user_id)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS session_answers (
            id BIGSERIAL PRIMARY KEY,
            session_id VARCHAR(36) NOT NULL REFERENCES game_sessions(session_id) ON DELETE CASCADE,
            question_id VARCHAR(64) NOT NULL,
            option_id VARCHAR(64) NOT NULL,
            correct_option_id VARCHAR(64) NOT NULL,
            is_correct BOOLEAN NOT NULL,
            points INTEGER NOT NULL CHECK (points >= 0),
            elapsed_seconds DOUBLE PRECISION NOT NULL,
            answered_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT uq_session_answers_session_question UNIQUE (session_id, question_id)
        )
    """)

    # --- Leaderboards ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS leaderboard_entries (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            game_id BIGINT NOT NULL,
            period VARCHAR(16) NOT NULL CHECK (period IN ('all_time', 'monthly', 'weekly')),
            period_key VARCHAR(16) NOT NULL,
            points INTEGER NOT NULL DEFAULT 0 CHECK (points >= 0),
            created_at TIMESTAMPTZ NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT uq_leaderboard_user_game_window UNIQUE (user_id, game_id, period, period_key)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_leaderboard_ranking
        ON leaderboard_entries(game_id, period, period_key, points DESC)
    """)

    # --- Rewards ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS rewards (
            id BIGSERIAL PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            type VARCHAR(32) NOT NULL,
            value VARCHAR(255) NOT NULL,
            required_rank INTEGER NOT NULL CHECK (required_rank >= 1),
            available INTEGER NOT NULL CHECK (available >= 0),
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS reward_games (
            id BIGSERIAL PRIMARY KEY,
            reward_id BIGINT NOT NULL REFERENCES rewards(id) ON DELETE CASCADE,
            game_id BIGINT NOT NULL REFERENCES internal_games(id) ON DELETE CASCADE,
            period VARCHAR(16) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_reward_games_reward_game_period UNIQUE (reward_id, game_id, period)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS reward_claims (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            reward_id BIGINT NOT NULL REFERENCES rewards(id),
            game_id BIGINT NOT NULL,
            period VARCHAR(16) NOT NULL,
            period_key VARCHAR(16) NOT NULL,
            rank INTEGER NOT NULL,
            claimed_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT uq_reward_claims_user_reward_window UNIQUE (user_id, reward_id, period, period_key)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_reward_claims_user_game
        ON reward_claims(user_id, game_id, period, period_key)
    """)


def downgrade() -> None:
    for table in (
        "reward_claims",
        "reward_games",
        "rewards",
        "leaderboard_entries",
        "session_answers",
        "game_sessions",
        "quiz_questions",
        "user_links",
        "game_links",
        "internal_games",
        "external_users",
        "external_games",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
