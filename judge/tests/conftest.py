import os
import sys
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

import pytest
import fakeredis.aioredis as fakeredis
from fakeredis import FakeServer
from fastapi.testclient import TestClient

from judge.config import clear_settings_cache
from judge.executors.base import Executor
from judge.models.execution import ExecutionResult


class _AwaitableRedis:
    def __init__(self, client):
        self._client = client

    def __await__(self):
        async def _coro():
            return self._client

        return _coro().__await__()


class FakeExecutor(Executor):
    """Executor double: echoes stdin unless a handler is installed."""

    name = "fake"

    def __init__(self):
        self.requests = []
        self.handler = None

    async def execute(self, request):
        self.requests.append(request)
        if self.handler is not None:
            return await self.handler(request)
        return ExecutionResult(stdout=request.stdin, stderr="", exit_code=0, runtime_ms=5, backend=self.name)


@pytest.fixture(autouse=True)
def _fresh_settings():
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(server=FakeServer(), decode_responses=True)


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def app_factory(monkeypatch, fake_executor):
    """Build a TestClient over fake Redis and the fake executor.

    ``database`` replaces the ``judge.db`` module and marks the database enabled.
    """
    import judge.lifespan as lifespan
    from judge.executors.chain import BestEffortExecutor

    def fake_redis_constructor(*_args, **_kwargs):
        fake = fakeredis.FakeRedis(server=FakeServer(), decode_responses=True)
        return _AwaitableRedis(fake)

    def _make(database=None):
        import judge.main as main

        monkeypatch.setattr(lifespan.redis, "Redis", fake_redis_constructor)
        monkeypatch.setattr(lifespan, "build_executor", lambda *_a, **_k: BestEffortExecutor([fake_executor]))
        if database is not None:
            async def _db_enabled():
                return True

            monkeypatch.setattr(lifespan, "db", database)
            monkeypatch.setattr(lifespan, "init_database", _db_enabled)

        return TestClient(main.app)

    return _make


@pytest.fixture
def client(app_factory):
    with app_factory() as c:
        yield c
