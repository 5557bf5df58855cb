"""Tests for the Redis-backed session store."""

import json

import pytest

from judge.models.session import Progress, SessionStatus


class TestSessionStore:
    @pytest.mark.asyncio
    async def test_create_and_get(self, fake_redis):
        from judge.sessions import SessionStore

        store = SessionStore(fake_redis)
        await store.create("s1", language="python")
        session = await store.get("s1")

        assert session.session_id == "s1"
        assert session.status is SessionStatus.QUEUED
        assert session.language == "python"
        assert session.progress is None

    @pytest.mark.asyncio
    async def test_hash_layout_and_ttl(self, fake_redis):
        from judge.sessions import SessionStore

        store = SessionStore(fake_redis)
        await store.create("s1", language="cpp", submission_id="sub-9")

        raw = await fake_redis.hgetall("compiler:session:s1")
        assert json.loads(raw["status"]) == "queued"
        assert json.loads(raw["submissionId"]) == "sub-9"
        assert "result" not in raw
        ttl = await fake_redis.ttl("compiler:session:s1")
        assert 0 < ttl <= 86400

    @pytest.mark.asyncio
    async def test_missing_session(self, fake_redis):
        from judge.sessions import NOT_FOUND, SessionStore

        store = SessionStore(fake_redis)
        assert await store.get("nope") is None
        assert await store.projection("nope") == NOT_FOUND

    @pytest.mark.asyncio
    async def test_patch_merges_fields(self, fake_redis):
        from judge.sessions import SessionStore

        store = SessionStore(fake_redis)
        await store.create("s1", language="java", submission_id="sub-1")
        assert await store.patch("s1", status=SessionStatus.RUNNING) is True

        session = await store.get("s1")
        assert session.status is SessionStatus.RUNNING
        assert session.language == "java"
        assert session.submission_id == "sub-1"

    @pytest.mark.asyncio
    async def test_patch_creates_missing_record(self, fake_redis):
        from judge.sessions import SessionStore

        store = SessionStore(fake_redis)
        await store.patch("s2", language="python")
        session = await store.get("s2")
        assert session.session_id == "s2"
        assert session.status is SessionStatus.QUEUED

    @pytest.mark.asyncio
    async def test_terminal_session_is_frozen(self, fake_redis):
        from judge.sessions import SessionStore

        store = SessionStore(fake_redis)
        await store.create("s1", language="python")
        await store.patch("s1", status=SessionStatus.COMPLETED, result={"status": "completed", "output": "1"})

        assert await store.patch("s1", status=SessionStatus.RUNNING) is False
        assert await store.patch("s1", status=SessionStatus.ERROR, result={"status": "error"}) is False

        session = await store.get("s1")
        assert session.status is SessionStatus.COMPLETED
        assert session.result == {"status": "completed", "output": "1"}

    @pytest.mark.asyncio
    async def test_progress_never_goes_backwards(self, fake_redis):
        from judge.sessions import SessionStore

        store = SessionStore(fake_redis)
        await store.create("s1", progress=Progress(0, 3))
        await store.patch("s1", status=SessionStatus.RUNNING, progress=Progress(2, 3))
        await store.patch("s1", progress=Progress(1, 3))

        session = await store.get("s1")
        assert session.progress == Progress(2, 3)
        assert session.status is SessionStatus.RUNNING

    @pytest.mark.asyncio
    async def test_progress_beyond_total_discarded(self, fake_redis):
        from judge.sessions import SessionStore

        store = SessionStore(fake_redis)
        await store.create("s1", progress=Progress(1, 3))
        await store.patch("s1", status=SessionStatus.RUNNING, progress=Progress(4, 3))

        session = await store.get("s1")
        assert session.progress == Progress(1, 3)
        assert session.status is SessionStatus.RUNNING


class TestProjection:
    @pytest.mark.asyncio
    async def test_running_projection_reports_progress(self, fake_redis):
        from judge.sessions import SessionStore

        store = SessionStore(fake_redis)
        await store.create("s1", status=SessionStatus.RUNNING, progress=Progress(1, 4))
        assert await store.projection("s1") == {"status": "running", "progress": {"current": 1, "total": 4}}

    @pytest.mark.asyncio
    async def test_terminal_projection_is_the_result(self, fake_redis):
        from judge.sessions import SessionStore

        store = SessionStore(fake_redis)
        await store.create("s1")
        result = {"status": "completed", "verdict": "Accepted", "output": "ok"}
        await store.patch("s1", status=SessionStatus.COMPLETED, result=result)
        assert await store.projection("s1") == result

    def test_terminal_without_result(self):
        from judge.models.session import Session
        from judge.sessions import project

        assert project(Session("s1", SessionStatus.ERROR)) == {"status": "error"}

    def test_terminal_projection_reports_session_status(self):
        from judge.models.session import Session
        from judge.sessions import project

        session = Session("s1", SessionStatus.ERROR, result={"status": "completed", "verdict": "Server Error"})
        assert project(session) == {"status": "error", "verdict": "Server Error"}
