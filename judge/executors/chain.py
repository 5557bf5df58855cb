"""Ordered fallback across execution backends."""

import asyncio
import logging
import time
from collections.abc import Mapping, Sequence

from judge.config import Settings, get_settings
from judge.errors import UnsupportedLanguageError
from judge.executors.base import Executor
from judge.executors.jdoodle import JDoodleExecutor
from judge.executors.local import LocalSandboxExecutor
from judge.executors.normalize import normalize_result
from judge.executors.piston import PistonExecutor
from judge.metrics import BACKEND_FAILURES
from judge.models.execution import (
    ExecutionRequest,
    ExecutionResult,
    server_error_result,
    time_limit_result,
)
from judge.sandbox.pipeline import ExecutionPipeline

logger = logging.getLogger(__name__)


def _validate(result: object, backend: str) -> ExecutionResult:
    if isinstance(result, ExecutionResult):
        if not isinstance(result.stdout, str) or not isinstance(result.stderr, str):
            raise ValueError("result output fields are not text")
        return result
    if isinstance(result, Mapping):
        return normalize_result(result, backend=backend)
    raise ValueError(f"unexpected result type {type(result).__name__}")


class BestEffortExecutor(Executor):
    """Try each backend in order; the first structurally valid result wins.

    Never raises for backend failures. When every backend fails the result is
    a server error listing what went wrong. An unsupported language is a
    caller error and is re-raised as-is.
    """

    name = "best-effort"

    def __init__(self, backends: Sequence[Executor]):
        self.backends = list(backends)

    async def prepare(self, request: ExecutionRequest) -> None:
        for backend in self.backends:
            try:
                await backend.prepare(request)
            except Exception as e:
                logger.warning("backend %s prepare failed: %s", backend.name, e)

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        started = time.monotonic()
        failures: list[str] = []
        for backend in self.backends:
            try:
                return _validate(await backend.execute(request), backend.name)
            except UnsupportedLanguageError:
                raise
            except Exception as e:
                BACKEND_FAILURES.labels(backend=backend.name).inc()
                logger.warning("backend %s failed, advancing: %s", backend.name, e)
                failures.append(f"{backend.name}: {e}")
        reason = "; ".join(failures) if failures else "no execution backends configured"
        logger.error("all execution backends failed: %s", reason)
        return server_error_result(
            f"All execution backends failed ({reason})",
            runtime_ms=int((time.monotonic() - started) * 1000),
        )


def build_executor(settings: Settings | None = None, pipeline: ExecutionPipeline | None = None) -> BestEffortExecutor:
    """Assemble the chain named by ``EXECUTOR_BACKENDS`` (e.g. ``local,piston``)."""
    settings = settings or get_settings()
    backends: list[Executor] = []
    for name in settings.executor.backends:
        if name == "local":
            backends.append(LocalSandboxExecutor(pipeline or ExecutionPipeline(settings)))
        elif name == "piston":
            backends.append(PistonExecutor(settings))
        elif name == "jdoodle":
            jdoodle = JDoodleExecutor(settings)
            if not jdoodle.enabled:
                logger.warning("jdoodle backend requested but no API key configured; skipping")
                continue
            backends.append(jdoodle)
        else:
            logger.warning("unknown execution backend %r; skipping", name)
    logger.info("execution backends: %s", [b.name for b in backends] or "none")
    return BestEffortExecutor(backends)


async def execute_within(executor: Executor, request: ExecutionRequest, deadline_ms: int | None) -> ExecutionResult:
    """Run ``request`` with an outer wall-clock bound covering every backend attempt.

    Backend preparation (toolchain warm-up) runs first and is not counted.
    Expiry cancels the in-flight backend (which tears down its processes) and
    yields a time-limit result.
    """
    await executor.prepare(request)
    if not deadline_ms:
        return await executor.execute(request)
    try:
        return await asyncio.wait_for(executor.execute(request), timeout=deadline_ms / 1000)
    except asyncio.TimeoutError:
        logger.warning("job deadline of %dms exceeded", deadline_ms)
        return time_limit_result(deadline_ms)
