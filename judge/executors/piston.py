"""Hosted Piston execution API backend."""

import asyncio
import logging
import time
from typing import Any

import requests

from judge.config import Settings, get_settings
from judge.errors import BackendUnavailableError
from judge.executors.base import Executor
from judge.languages import LanguageProfile, build_registry, get_profile, resolve_entry_point
from judge.models.execution import ExecutionRequest, ExecutionResult, strip_trailing_newlines
from judge.sandbox.pipeline import unescape_source

_logger = logging.getLogger(__name__)

PISTON_RUNTIMES = {
    "python": ("python", "3.11.0"),
    "cpp": ("cpp", "10.2.0"),
    "java": ("java", "15.0.2"),
}


def _post_sync(url: str, body: dict[str, Any], timeout: float) -> dict[str, Any]:
    resp = requests.post(url, json=body, headers={"Content-Type": "application/json"}, timeout=timeout)
    if not resp.ok:
        try:
            message = resp.json().get("message", "")
        except ValueError:
            message = resp.text[:200]
        raise BackendUnavailableError("piston", f"HTTP {resp.status_code}: {message or 'Unknown error'}")
    return resp.json()


class PistonExecutor(Executor):
    name = "piston"

    def __init__(self, settings: Settings | None = None, registry: dict[str, LanguageProfile] | None = None):
        self._settings = settings or get_settings()
        self._registry = registry if registry is not None else build_registry(self._settings)

    def build_body(self, request: ExecutionRequest) -> dict[str, Any]:
        profile = get_profile(request.language, self._registry)
        language, version = PISTON_RUNTIMES[profile.id]
        source = unescape_source(request.code)
        filename, _ = resolve_entry_point(profile, source)
        return {
            "language": language,
            "version": version,
            "files": [{"name": filename, "content": source}],
            "stdin": request.stdin or "",
            "args": [],
            "compile_timeout": profile.compile_timeout_ms,
            "run_timeout": request.timeout_ms or profile.run_timeout_ms,
        }

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        body = self.build_body(request)
        url = f"{self._settings.executor.piston_url.rstrip('/')}/execute"
        started = time.monotonic()
        try:
            data = await asyncio.to_thread(_post_sync, url, body, self._settings.executor.request_timeout_sec)
        except requests.RequestException as e:
            raise BackendUnavailableError(self.name, f"request failed: {e}") from e
        elapsed_ms = int((time.monotonic() - started) * 1000)
        return self.parse_response(data, elapsed_ms)

    def parse_response(self, data: Any, elapsed_ms: int = 0) -> ExecutionResult:
        if not isinstance(data, dict) or not isinstance(data.get("run"), dict):
            message = data.get("message") if isinstance(data, dict) else None
            raise BackendUnavailableError(self.name, message or "malformed response")

        compile_stage = data.get("compile")
        if isinstance(compile_stage, dict) and compile_stage.get("code") not in (0, None):
            _logger.debug("piston compile failed code=%s", compile_stage.get("code"))
            return ExecutionResult(
                stdout="",
                stderr=compile_stage.get("stderr") or compile_stage.get("output") or "Compilation failed",
                exit_code=int(compile_stage["code"]),
                runtime_ms=elapsed_ms,
                compile_failed=True,
                backend=self.name,
            )

        run = data["run"]
        code = run.get("code")
        if code is None:
            code = 1 if run.get("signal") else 0
        runtime_ms = run.get("cpu_time") or run.get("wall_time") or elapsed_ms
        memory = run.get("memory")
        return ExecutionResult(
            stdout=strip_trailing_newlines(run.get("stdout")),
            stderr=run.get("stderr") or "",
            exit_code=int(code),
            runtime_ms=int(runtime_ms),
            peak_memory_kb=int(memory) // 1024 if memory else None,
            backend=self.name,
        )
