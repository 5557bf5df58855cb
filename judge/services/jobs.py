"""Detached job orchestration.

Accepting a job creates a ``queued`` session and returns immediately; the
work runs as a background task that moves the session through ``running``
to exactly one terminal state. Jobs are admitted through a semaphore, so at
most ``max_concurrent_jobs`` run at once and the rest stay ``queued``.

Terminal write order for submissions: the submission row is updated first,
then the session, then events are published.
"""

import asyncio
import hashlib
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import psycopg

from judge.bus import EventPublisher
from judge.config import Settings, get_settings
from judge.errors import DatabaseError, NoTestCasesError, ProblemNotFoundError, ServiceUnavailableError
from judge.events import SessionUpdateEvent
from judge.executors.base import Executor
from judge.executors.chain import execute_within
from judge.judging.batch import BatchTestRunner
from judge.judging.compare import CompareMode, parse_compare_mode
from judge.languages import build_registry, get_profile
from judge.metrics import EXECUTION_SECONDS, EXECUTIONS, JOBS_IN_FLIGHT
from judge.models.batch import TestCase
from judge.models.execution import ExecutionRequest, Verdict, classify
from judge.models.session import Progress, SessionStatus
from judge.sessions import SessionStore

logger = logging.getLogger(__name__)

SERVER_ERROR_STATUS = Verdict.SERVER_ERROR.value
CANCELLED_MESSAGE = "Cancelled"


def code_ref(code: str) -> str:
    """Short stable reference to a source blob for log lines."""
    return hashlib.sha256((code or "").encode("utf-8")).hexdigest()[:12]


def new_session_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class _Job:
    session_id: str
    language: str
    kind: str
    submission_id: str | None = None


class JobService:
    def __init__(
        self,
        store: SessionStore,
        executor: Executor,
        publisher: EventPublisher,
        submissions: Any = None,
        problems: Any = None,
        settings: Settings | None = None,
    ):
        """``submissions`` and ``problems`` are the persistence collaborators
        (normally the ``judge.db`` module). Without them only ``start_run`` works.
        """
        self._store = store
        self._executor = executor
        self._publisher = publisher
        self._submissions = submissions
        self._problems = problems
        self._settings = settings or get_settings()
        self._registry = build_registry(self._settings)
        self._semaphore = asyncio.Semaphore(self._settings.executor.max_concurrent_jobs)
        self._tasks: dict[str, asyncio.Task] = {}

    # -- public entry points -------------------------------------------------

    async def start_run(self, code: str, language: str, stdin: str = "") -> dict[str, str]:
        lang = get_profile(language, self._registry).id
        job = _Job(session_id=new_session_id(), language=lang, kind="single")
        await self._store.create(job.session_id, language=lang)
        self._publish(job, SessionStatus.QUEUED, stage="queued")
        request = ExecutionRequest(code=code, language=lang, stdin=stdin or "")
        logger.info("run accepted session=%s lang=%s code=%s", job.session_id, lang, code_ref(code))
        self._spawn(job, lambda: self._run_single(job, request))
        return {"sessionId": job.session_id}

    async def submit(
        self,
        user_id: str,
        problem_id: str,
        code: str,
        language: str,
        contest_id: str | None = None,
        stdin: str = "",
    ) -> dict[str, str]:
        lang = get_profile(language, self._registry).id
        submissions, problems = self._require_storage()
        try:
            if not await problems.problem_exists(problem_id):
                raise ProblemNotFoundError(problem_id=problem_id)
            submission_id = await submissions.create_submission(
                user_id, problem_id, lang, code, contest_id=contest_id
            )
        except psycopg.Error as e:
            raise DatabaseError(detail=f"Failed to create submission: {e}") from e

        job = _Job(session_id=new_session_id(), language=lang, kind="single", submission_id=submission_id)
        await self._store.create(job.session_id, language=lang, submission_id=submission_id)
        self._publish(job, SessionStatus.QUEUED, stage="queued")
        request = ExecutionRequest(code=code, language=lang, stdin=stdin or "")
        logger.info(
            "submission accepted id=%s session=%s problem=%s lang=%s code=%s",
            submission_id, job.session_id, problem_id, lang, code_ref(code),
        )
        self._spawn(job, lambda: self._run_single(job, request))
        return {"submissionId": submission_id, "sessionId": job.session_id}

    async def submit_batch(
        self,
        user_id: str,
        problem_id: str,
        code: str,
        language: str,
        contest_id: str | None = None,
        compare_mode: str | CompareMode | None = None,
    ) -> dict[str, str]:
        lang = get_profile(language, self._registry).id
        mode = parse_compare_mode(compare_mode)
        submissions, problems = self._require_storage()
        try:
            cases = await problems.fetch_test_cases(problem_id)
            if not cases:
                if not await problems.problem_exists(problem_id):
                    raise ProblemNotFoundError(problem_id=problem_id)
                raise NoTestCasesError(problem_id=problem_id)
            submission_id = await submissions.create_submission(
                user_id, problem_id, lang, code, contest_id=contest_id, total_tests=len(cases)
            )
        except psycopg.Error as e:
            raise DatabaseError(detail=f"Failed to create submission: {e}") from e

        job = _Job(session_id=new_session_id(), language=lang, kind="batch", submission_id=submission_id)
        await self._store.create(job.session_id, language=lang, submission_id=submission_id)
        self._publish(job, SessionStatus.QUEUED, stage="queued")
        logger.info(
            "batch accepted id=%s session=%s problem=%s cases=%d mode=%s code=%s",
            submission_id, job.session_id, problem_id, len(cases), mode.value, code_ref(code),
        )
        self._spawn(job, lambda: self._run_batch(job, code, cases, mode))
        return {"submissionId": submission_id, "sessionId": job.session_id}

    async def get_result(self, session_id: str) -> dict[str, Any]:
        return await self._store.projection(session_id)

    def cancel(self, session_id: str) -> bool:
        """Cancel a job owned by this process. The session ends in ``error``."""
        task = self._tasks.get(session_id)
        if task is None or task.done():
            return False
        logger.info("cancelling session=%s", session_id)
        return task.cancel()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def join(self) -> None:
        """Wait for every detached job currently known to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        for task in list(self._tasks.values()):
            task.cancel()
        await self.join()

    # -- job bodies ----------------------------------------------------------

    def _require_storage(self) -> tuple[Any, Any]:
        if self._submissions is None or self._problems is None:
            raise ServiceUnavailableError(detail="Submission storage not configured")
        return self._submissions, self._problems

    def _deadline_ms(self, language: str, floor_ms: int) -> int:
        """Outer bound for one execution: never less than the stage timeouts it contains."""
        profile = get_profile(language, self._registry)
        return max(floor_ms, profile.stage_budget_ms() + self._settings.timeouts.job_overhead_ms)

    def _spawn(self, job: _Job, body: Callable[[], Awaitable[None]]) -> None:
        task = asyncio.create_task(self._guarded(job, body), name=f"judge-job-{job.session_id}")
        self._tasks[job.session_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(job.session_id, None))

    async def _guarded(self, job: _Job, body: Callable[[], Awaitable[None]]) -> None:
        try:
            async with self._semaphore:
                JOBS_IN_FLIGHT.inc()
                try:
                    with EXECUTION_SECONDS.labels(kind=job.kind).time():
                        await body()
                finally:
                    JOBS_IN_FLIGHT.dec()
        except asyncio.CancelledError:
            await self._fail(job, CANCELLED_MESSAGE)
            raise
        except Exception as e:
            logger.exception("job failed session=%s", job.session_id)
            await self._fail(job, str(e) or "Execution failed")

    async def _run_single(self, job: _Job, request: ExecutionRequest) -> None:
        await self._store.patch(job.session_id, status=SessionStatus.RUNNING, language=job.language)
        self._publish(job, SessionStatus.RUNNING, stage="running")

        deadline_ms = self._deadline_ms(job.language, self._settings.timeouts.single_run_timeout_ms)
        result = await execute_within(self._executor, request, deadline_ms)
        verdict = classify(result)
        EXECUTIONS.labels(language=job.language, verdict=verdict.value).inc()
        terminal = SessionStatus.ERROR if verdict is Verdict.SERVER_ERROR else SessionStatus.COMPLETED
        payload = result.to_payload(terminal.value)

        if job.submission_id:
            await self._submissions.update_submission(
                job.submission_id,
                status=verdict.value,
                output=result.stdout,
                error=payload["error"],
                runtime_ms=result.runtime_ms,
                memory_kb=result.peak_memory_kb,
                completed_at=datetime.now(UTC),
            )
        await self._store.patch(job.session_id, status=terminal, result=payload)
        self._publish(
            job,
            terminal,
            verdict=verdict.value,
            output=payload["output"],
            error=payload["error"],
            runtime=payload["runtime"],
            memory=payload["memory"],
        )
        await self._notify_user(job, verdict.value)
        logger.info("job done session=%s verdict=%s runtime=%dms", job.session_id, verdict.value, result.runtime_ms)

    async def _run_batch(self, job: _Job, code: str, cases: list[TestCase], mode: CompareMode) -> None:
        total = len(cases)
        start = Progress(current=0, total=total)
        await self._store.patch(
            job.session_id, status=SessionStatus.RUNNING, language=job.language, progress=start
        )
        self._publish(job, SessionStatus.RUNNING, stage="running", progress=start.to_dict())

        async def on_progress(progress: Progress) -> None:
            await self._store.patch(job.session_id, progress=progress)
            self._publish(job, SessionStatus.RUNNING, stage="running", progress=progress.to_dict())

        runner = BatchTestRunner(
            self._executor,
            on_progress=on_progress,
            compare_mode=mode,
            deadline_ms=self._deadline_ms(job.language, self._settings.timeouts.batch_case_timeout_ms),
        )
        result = await runner.run(code, job.language, cases)
        EXECUTIONS.labels(language=job.language, verdict=result.status.value).inc()
        terminal = SessionStatus.ERROR if result.status is Verdict.SERVER_ERROR else SessionStatus.COMPLETED
        payload = result.to_payload(terminal.value)

        await self._submissions.update_submission(
            job.submission_id,
            status=result.status.value,
            tests_passed=result.tests_passed,
            total_tests=result.total_tests,
            runtime_ms=result.aggregate_runtime_ms,
            test_results=payload["testResults"],
            completed_at=datetime.now(UTC),
        )
        await self._store.patch(job.session_id, status=terminal, result=payload)
        self._publish(
            job,
            terminal,
            verdict=result.status.value,
            testsPassed=result.tests_passed,
            totalTests=result.total_tests,
            runtime=payload["runtime"],
        )
        await self._notify_user(job, result.status.value)
        logger.info(
            "batch done session=%s verdict=%s passed=%d/%d",
            job.session_id, result.status.value, result.tests_passed, result.total_tests,
        )

    async def _fail(self, job: _Job, message: str) -> None:
        """Drive a job that raised into the terminal ``error`` state."""
        EXECUTIONS.labels(language=job.language, verdict=SERVER_ERROR_STATUS).inc()
        if job.submission_id and self._submissions is not None:
            try:
                await self._submissions.update_submission(
                    job.submission_id,
                    status=SERVER_ERROR_STATUS,
                    error=message,
                    completed_at=datetime.now(UTC),
                )
            except Exception:
                logger.exception("failed to record submission error id=%s", job.submission_id)
        try:
            await self._store.patch(
                job.session_id,
                status=SessionStatus.ERROR,
                result={"status": "error", "error": message},
            )
        except Exception:
            logger.exception("failed to record session error session=%s", job.session_id)
        self._publish(job, SessionStatus.ERROR, error=message)
        await self._notify_user(job, SERVER_ERROR_STATUS)

    # -- events ----------------------------------------------------------------

    def _publish(self, job: _Job, status: SessionStatus, **fields: Any) -> None:
        event: SessionUpdateEvent = {"sessionId": job.session_id, "status": status.value, "language": job.language}
        event.update({k: v for k, v in fields.items() if v is not None})
        self._publisher.publish_session(event)

    async def _notify_user(self, job: _Job, status: str) -> None:
        if not job.submission_id or self._submissions is None:
            return
        try:
            user_id = await self._submissions.get_submission_user(job.submission_id)
        except Exception as e:
            logger.warning("could not resolve submission owner id=%s: %s", job.submission_id, e)
            return
        if user_id:
            self._publisher.publish_submission(str(user_id), job.submission_id, status)
