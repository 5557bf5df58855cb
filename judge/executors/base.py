from abc import ABC, abstractmethod

from judge.models.execution import ExecutionRequest, ExecutionResult


class Executor(ABC):
    """A backend able to run one job and report a canonical result.

    Implementations raise ``BackendUnavailableError`` (or anything else) when
    they cannot produce a result; the executor chain treats any exception as
    "try the next backend".
    """

    name: str = "executor"

    async def prepare(self, request: ExecutionRequest) -> None:
        """One-time setup for ``request``'s language, run outside any job deadline."""

    @abstractmethod
    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        ...
