"""Engine-level execution types: requests, raw process outcomes, results, verdicts."""

from dataclasses import dataclass
from enum import Enum
from typing import Any

TIME_LIMIT_EXIT_CODE = 124
TIME_LIMIT_MESSAGE = "Time limit exceeded"
SERVER_ERROR_EXIT_CODE = -1


class Verdict(str, Enum):
    ACCEPTED = "Accepted"
    WRONG_ANSWER = "Wrong Answer"
    COMPILATION_ERROR = "Compilation Error"
    TIME_LIMIT_EXCEEDED = "Time Limit Exceeded"
    RUNTIME_ERROR = "Runtime Error"
    SERVER_ERROR = "Server Error"
    COMPLETED = "Completed"


@dataclass(frozen=True)
class ExecutionRequest:
    code: str
    language: str
    stdin: str = ""
    timeout_ms: int | None = None


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of one spawned command."""

    stdout: str
    stderr: str
    exit_code: int
    runtime_ms: int
    timed_out: bool = False
    spawn_failed: bool = False


@dataclass(frozen=True)
class ExecutionResult:
    stdout: str
    stderr: str
    exit_code: int
    runtime_ms: int
    peak_memory_kb: int | None = None
    compile_failed: bool = False
    server_error: bool = False
    backend: str | None = None

    @property
    def timed_out(self) -> bool:
        return self.exit_code == TIME_LIMIT_EXIT_CODE and TIME_LIMIT_MESSAGE.lower() in self.stderr.lower()

    @property
    def errored(self) -> bool:
        """True when the run did not finish cleanly (any non-accepted verdict)."""
        return classify(self) is not Verdict.COMPLETED

    def to_payload(self, status: str = "completed") -> dict[str, Any]:
        """Session ``result`` payload; legacy string fields kept for pollers.

        ``status`` is the terminal session status the payload is stored under.
        """
        memory = f"{self.peak_memory_kb}KB" if self.peak_memory_kb is not None else None
        error = self.stderr if self.errored else ""
        return {
            "status": status,
            "verdict": classify(self).value,
            "output": self.stdout,
            "error": error,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exitCode": self.exit_code,
            "runtime": f"{self.runtime_ms}ms",
            "runtimeMs": self.runtime_ms,
            "memory": memory,
            "memoryKb": self.peak_memory_kb,
            "compileFailed": self.compile_failed,
        }


def classify(result: ExecutionResult) -> Verdict:
    """Map a result onto the error taxonomy; ``COMPLETED`` means a clean run."""
    if result.server_error:
        return Verdict.SERVER_ERROR
    if result.compile_failed:
        return Verdict.COMPILATION_ERROR
    if result.timed_out:
        return Verdict.TIME_LIMIT_EXCEEDED
    if result.exit_code != 0 or result.stderr.strip():
        return Verdict.RUNTIME_ERROR
    return Verdict.COMPLETED


def server_error_result(reason: str, runtime_ms: int = 0) -> ExecutionResult:
    return ExecutionResult(
        stdout="",
        stderr=reason,
        exit_code=SERVER_ERROR_EXIT_CODE,
        runtime_ms=runtime_ms,
        server_error=True,
    )


def time_limit_result(runtime_ms: int) -> ExecutionResult:
    return ExecutionResult(
        stdout="",
        stderr=TIME_LIMIT_MESSAGE,
        exit_code=TIME_LIMIT_EXIT_CODE,
        runtime_ms=runtime_ms,
    )


def strip_trailing_newlines(text: str | None) -> str:
    """Drop the line terminators a program's final print leaves behind."""
    return (text or "").rstrip("\r\n")
