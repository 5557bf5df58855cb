"""Dependency injection for FastAPI endpoints.

Controllers receive shared resources through these dependencies instead of
reading ``judge.state`` directly.

Usage in controllers:
    from judge.dependencies import Jobs

    @router.get("/result/{session_id}")
    async def result(session_id: str, jobs: Jobs):
        return await jobs.get_result(session_id)
"""

from typing import Annotated

import redis.asyncio as redis
from fastapi import Depends, Header

from judge import state
from judge.errors import ServiceUnavailableError, UnauthorizedError
from judge.services.jobs import JobService


def get_optional_redis() -> redis.Redis | None:
    """Get the Redis client, or None while it is not connected."""
    return state.redis_client


def get_job_service() -> JobService:
    """Get the job service.

    Raises:
        ServiceUnavailableError: If the execution engine is not initialized.
    """
    if state.job_service is None:
        raise ServiceUnavailableError(detail="Execution engine not initialized")
    return state.job_service


def get_user_id(x_user_id: Annotated[str | None, Header()] = None) -> str:
    """Caller identity, resolved upstream and forwarded as ``X-User-Id``."""
    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedError(detail="X-User-Id header required")
    return x_user_id.strip()


OptionalRedis = Annotated[redis.Redis | None, Depends(get_optional_redis)]
Jobs = Annotated[JobService, Depends(get_job_service)]
UserId = Annotated[str, Depends(get_user_id)]
