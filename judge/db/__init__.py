"""PostgreSQL persistence for problems, test cases and submissions."""

from judge.db.core import _get_connection, close_pool, get_pool, init_pool
from judge.db.problems import fetch_test_cases, problem_exists
from judge.db.submissions import (
    STATUS_QUEUED,
    create_submission,
    get_submission_user,
    update_submission,
)

__all__ = [
    "STATUS_QUEUED",
    "_get_connection",
    "close_pool",
    "create_submission",
    "fetch_test_cases",
    "get_pool",
    "get_submission_user",
    "init_pool",
    "problem_exists",
    "update_submission",
]
