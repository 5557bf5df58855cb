"""Redis-backed session store.

Each session is a Redis hash at ``<key_prefix><session_id>`` whose values are
JSON-encoded. Writes are field-level ``HSET`` merge-patches, so the last write
of a field wins and untouched fields are preserved.

Guards applied by ``patch``:
  - a session already in a terminal state (completed / error) is frozen;
  - a progress update whose ``current`` goes backwards or exceeds ``total``
    is discarded.
"""

import logging
from typing import Any

import redis.asyncio as redis

from judge.config import SessionSettings, get_settings
from judge.models.session import Progress, Session, SessionStatus, encode_fields, utcnow_iso

logger = logging.getLogger(__name__)

NOT_FOUND = {"status": "not_found", "error": "Session not found"}


class SessionStore:
    def __init__(self, redis_client: redis.Redis, settings: SessionSettings | None = None):
        self.redis = redis_client
        self.settings = settings or get_settings().session

    def key(self, session_id: str) -> str:
        return f"{self.settings.key_prefix}{session_id}"

    async def _write(self, session_id: str, mapping: dict[str, str]) -> None:
        key = self.key(session_id)
        await self.redis.hset(key, mapping=mapping)
        if self.settings.ttl_sec > 0:
            await self.redis.expire(key, self.settings.ttl_sec)

    async def create(
        self,
        session_id: str,
        language: str | None = None,
        submission_id: str | None = None,
        status: SessionStatus = SessionStatus.QUEUED,
        progress: Progress | None = None,
    ) -> Session:
        session = Session(
            session_id=session_id,
            status=status,
            language=language,
            submission_id=submission_id,
            progress=progress,
        )
        await self._write(session_id, session.to_mapping())
        return session

    async def get(self, session_id: str) -> Session | None:
        raw = await self.redis.hgetall(self.key(session_id))
        if not raw:
            return None
        return Session.from_mapping(raw)

    async def patch(
        self,
        session_id: str,
        *,
        status: SessionStatus | None = None,
        language: str | None = None,
        submission_id: str | None = None,
        progress: Progress | None = None,
        result: dict[str, Any] | None = None,
    ) -> bool:
        """Merge the given fields into the session. Returns False if the write was dropped."""
        current = await self.get(session_id)
        if current is not None and current.status.terminal:
            logger.debug("session %s is %s; dropping write", session_id, current.status.value)
            return False

        if progress is not None:
            stale = (
                current is not None
                and current.progress is not None
                and progress.current < current.progress.current
            )
            if stale or progress.current > progress.total or progress.current < 0:
                logger.debug("session %s: discarding progress %s", session_id, progress)
                progress = None

        fields: dict[str, Any] = {
            "status": status,
            "language": language,
            "submissionId": submission_id,
            "progress": progress,
            "result": result,
            "updatedAt": utcnow_iso(),
        }
        if current is None:
            fields["sessionId"] = session_id
            fields["createdAt"] = fields["updatedAt"]
            if status is None:
                fields["status"] = SessionStatus.QUEUED
        await self._write(session_id, encode_fields(fields))
        return True

    async def projection(self, session_id: str) -> dict[str, Any]:
        """The pollable view: status while running, the stored result once terminal."""
        session = await self.get(session_id)
        return project(session)


def project(session: Session | None) -> dict[str, Any]:
    if session is None:
        return dict(NOT_FOUND)
    if session.status.terminal:
        if session.result:
            return {**session.result, "status": session.status.value}
        return {"status": session.status.value}
    view: dict[str, Any] = {"status": session.status.value}
    if session.progress is not None:
        view["progress"] = session.progress.to_dict()
    return view
