"""Run one submission against an ordered list of test cases."""

import logging
from collections.abc import Awaitable, Callable, Sequence

from judge.errors import UnsupportedLanguageError
from judge.executors.base import Executor
from judge.executors.chain import execute_within
from judge.judging.compare import CompareMode, outputs_match
from judge.models.batch import BatchResult, CaseResult, TestCase
from judge.models.execution import (
    ExecutionRequest,
    ExecutionResult,
    Verdict,
    classify,
    server_error_result,
)
from judge.models.session import Progress

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Progress], Awaitable[None]]


def case_error(result: ExecutionResult) -> str | None:
    """Error text for a case that did not run cleanly, else None."""
    if result.exit_code == 0 and not result.stderr.strip():
        return None
    return result.stderr.strip() or f"Process exited with code {result.exit_code}"


def judge_case(case: TestCase, result: ExecutionResult, mode: CompareMode) -> CaseResult:
    error = case_error(result)
    if error:
        passed = False
    elif case.expected_output:
        passed = outputs_match(result.stdout, case.expected_output, mode)
    else:
        passed = True
    return CaseResult(
        input=case.input,
        expected_output=case.expected_output,
        actual_output=result.stdout,
        passed=passed,
        runtime_ms=result.runtime_ms,
        error=error,
        hidden=case.is_hidden,
    )


class BatchTestRunner:
    """Executes cases strictly one after another and aggregates a verdict.

    ``on_progress`` is awaited after every case with ``current`` equal to the
    number of finished cases.
    """

    def __init__(
        self,
        executor: Executor,
        on_progress: ProgressCallback | None = None,
        compare_mode: CompareMode = CompareMode.RELAXED,
        deadline_ms: int | None = None,
    ):
        self._executor = executor
        self._on_progress = on_progress
        self._compare_mode = compare_mode
        self._deadline_ms = deadline_ms

    async def run(self, code: str, language: str, cases: Sequence[TestCase]) -> BatchResult:
        total = len(cases)
        per_case: list[CaseResult] = []
        server_error = False

        for index, case in enumerate(cases, start=1):
            request = ExecutionRequest(code=code, language=language, stdin=case.input)
            try:
                result = await execute_within(self._executor, request, self._deadline_ms)
            except UnsupportedLanguageError:
                raise
            except Exception as e:
                logger.exception("case %d/%d raised", index, total)
                result = server_error_result(str(e) or type(e).__name__)

            if classify(result) is Verdict.SERVER_ERROR:
                server_error = True
            per_case.append(judge_case(case, result, self._compare_mode))
            logger.debug("case %d/%d passed=%s", index, total, per_case[-1].passed)

            if self._on_progress is not None:
                await self._on_progress(Progress(current=index, total=total))

        passed = sum(1 for c in per_case if c.passed)
        errored = any(c.error for c in per_case)
        if server_error:
            status = Verdict.SERVER_ERROR
        elif errored:
            status = Verdict.RUNTIME_ERROR
        elif passed == total:
            status = Verdict.ACCEPTED
        else:
            status = Verdict.WRONG_ANSWER

        return BatchResult(
            status=status,
            tests_passed=passed,
            total_tests=total,
            aggregate_runtime_ms=sum(c.runtime_ms for c in per_case),
            per_case=per_case,
        )
