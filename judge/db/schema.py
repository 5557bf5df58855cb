"""Idempotent schema for the tables this service reads and updates."""

import logging

from judge.db.core import _get_connection

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS problems (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL DEFAULT '',
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE TABLE IF NOT EXISTS test_cases (
    id BIGSERIAL PRIMARY KEY,
    problem_id TEXT NOT NULL REFERENCES problems(id) ON DELETE CASCADE,
    position INTEGER NOT NULL DEFAULT 0,
    input TEXT NOT NULL DEFAULT '',
    expected_output TEXT NOT NULL DEFAULT '',
    is_hidden BOOLEAN NOT NULL DEFAULT FALSE
);
CREATE INDEX IF NOT EXISTS idx_test_cases_problem_pos ON test_cases (problem_id, position);
CREATE TABLE IF NOT EXISTS submissions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    problem_id TEXT NOT NULL,
    contest_id TEXT NULL,
    language TEXT NOT NULL,
    code TEXT NOT NULL,
    status TEXT NOT NULL,
    output TEXT NULL,
    error TEXT NULL,
    runtime_ms INTEGER NULL,
    memory_kb INTEGER NULL,
    tests_passed INTEGER NULL,
    total_tests INTEGER NULL,
    test_results JSONB NULL,
    created_at TIMESTAMPTZ NOT NULL,
    completed_at TIMESTAMPTZ NULL
);
CREATE INDEX IF NOT EXISTS idx_submissions_user_created ON submissions (user_id, created_at DESC);
"""


async def ensure_schema() -> None:
    async with _get_connection() as conn:
        await conn.execute(SCHEMA_SQL)
    logger.info("Database schema ensured")
