from judge.executors.base import Executor
from judge.models.execution import ExecutionRequest, ExecutionResult
from judge.sandbox.pipeline import ExecutionPipeline


class LocalSandboxExecutor(Executor):
    """Runs jobs in local docker containers through the execution pipeline."""

    name = "local"

    def __init__(self, pipeline: ExecutionPipeline):
        self._pipeline = pipeline

    async def prepare(self, request: ExecutionRequest) -> None:
        await self._pipeline.prepare(request.language)

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        return await self._pipeline.execute(request)
