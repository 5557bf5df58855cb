"""Submission records: created on acceptance, updated as jobs finish."""

import json
import logging
import uuid
from datetime import UTC, datetime
from typing import Any

from psycopg import sql

from judge.db.core import _get_connection

logger = logging.getLogger(__name__)

STATUS_QUEUED = "Queued"

# keyword argument -> column
_UPDATABLE = {
    "status": "status",
    "output": "output",
    "error": "error",
    "runtime_ms": "runtime_ms",
    "memory_kb": "memory_kb",
    "tests_passed": "tests_passed",
    "total_tests": "total_tests",
    "test_results": "test_results",
    "completed_at": "completed_at",
}


async def create_submission(
    user_id: str,
    problem_id: str,
    language: str,
    code: str,
    contest_id: str | None = None,
    total_tests: int | None = None,
) -> str:
    submission_id = uuid.uuid4().hex
    now = datetime.now(UTC)
    async with _get_connection() as conn:
        row = await (await conn.execute(
            """
            INSERT INTO submissions (id, user_id, problem_id, contest_id, language, code, status, total_tests, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (submission_id, user_id, problem_id, contest_id, language, code, STATUS_QUEUED, total_tests, now),
        )).fetchone()
    return row[0] if row else submission_id


async def update_submission(submission_id: str, **fields: Any) -> None:
    unknown = set(fields) - set(_UPDATABLE)
    if unknown:
        raise ValueError(f"Unknown submission fields: {sorted(unknown)}")
    if not fields:
        return
    values = []
    for key, value in fields.items():
        if key == "test_results" and value is not None:
            value = json.dumps(value)
        values.append(value)
    query = sql.SQL("UPDATE submissions SET {} WHERE id = %s").format(
        sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(_UPDATABLE[k])) for k in fields
        )
    )
    async with _get_connection() as conn:
        await conn.execute(query, (*values, submission_id))
    logger.debug("submission %s updated: %s", submission_id, sorted(fields))


async def get_submission_user(submission_id: str) -> str | None:
    async with _get_connection() as conn:
        row = await (await conn.execute(
            "SELECT user_id FROM submissions WHERE id = %s", (submission_id,)
        )).fetchone()
        return row[0] if row else None
