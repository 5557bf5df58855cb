"""Batch run types: catalog test cases and aggregated verdicts."""

from dataclasses import dataclass, field
from typing import Any

from judge.models.execution import Verdict


@dataclass(frozen=True)
class TestCase:
    __test__ = False

    input: str
    expected_output: str
    is_hidden: bool = False


@dataclass(frozen=True)
class CaseResult:
    input: str
    expected_output: str
    actual_output: str
    passed: bool
    runtime_ms: int
    error: str | None = None
    hidden: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Client-facing case record; hidden cases never expose their data or output."""
        if self.hidden:
            data: dict[str, Any] = {"hidden": True, "passed": self.passed, "runtimeMs": self.runtime_ms}
        else:
            data = {
                "input": self.input,
                "expectedOutput": self.expected_output,
                "actualOutput": self.actual_output,
                "passed": self.passed,
                "runtimeMs": self.runtime_ms,
            }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class BatchResult:
    status: Verdict
    tests_passed: int
    total_tests: int
    aggregate_runtime_ms: int
    per_case: list[CaseResult] = field(default_factory=list)

    def to_payload(self, status: str = "completed") -> dict[str, Any]:
        return {
            "status": status,
            "verdict": self.status.value,
            "testsPassed": self.tests_passed,
            "totalTests": self.total_tests,
            "runtime": f"{self.aggregate_runtime_ms}ms",
            "runtimeMs": self.aggregate_runtime_ms,
            "testResults": [c.to_dict() for c in self.per_case],
        }
