"""Read-only access to the problem catalog."""

from judge.db.core import _get_connection
from judge.models.batch import TestCase


async def problem_exists(problem_id: str) -> bool:
    async with _get_connection() as conn:
        row = await (await conn.execute(
            "SELECT 1 FROM problems WHERE id = %s", (problem_id,)
        )).fetchone()
        return row is not None


async def fetch_test_cases(problem_id: str) -> list[TestCase]:
    """Test cases of a problem in their catalog order."""
    async with _get_connection() as conn:
        rows = await conn.execute(
            """
            SELECT input, expected_output, is_hidden
            FROM test_cases
            WHERE problem_id = %s
            ORDER BY position, id
            """,
            (problem_id,),
        )
        return [
            TestCase(input=row[0] or "", expected_output=row[1] or "", is_hidden=bool(row[2]))
            async for row in rows
        ]
