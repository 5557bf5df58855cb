"""Single-job execution pipeline.

workspace-created -> source-written -> (compiling -> compiled | compile-failed)
-> running -> resource-sampled -> cleaned-up

The workspace is removed on every exit path. Compile failure short-circuits
the run stage. The run stage is wrapped in GNU ``time -v`` for telemetry and
transparently retried without it when the image lacks the tool.
"""

import asyncio
import logging
import os
import re
import shlex
import shutil
import tempfile
import uuid
from collections.abc import Awaitable, Callable
from functools import partial
from pathlib import Path

from judge.config import Settings, get_settings
from judge.errors import BackendUnavailableError
from judge.languages import (
    COMPILE_SENTINEL,
    LanguageProfile,
    build_registry,
    get_profile,
    normalize_language,
    resolve_entry_point,
)
from judge.models.execution import ExecutionRequest, ExecutionResult, ProcessResult, strip_trailing_newlines
from judge.sandbox.command import ResourceLimits, build_docker_command
from judge.sandbox.process import run_with_timeout
from judge.sandbox.telemetry import TELEMETRY_FILENAME, sample_workspace
from judge.sandbox.warmup import WarmPool

logger = logging.getLogger(__name__)

Runner = Callable[[list[str], str, int], Awaitable[ProcessResult]]

STDIN_FILENAME = "stdin.txt"
TIME_TOOL = "/usr/bin/time"
COMMAND_NOT_FOUND_EXIT_CODE = 127
DOCKER_FAILURE_EXIT_CODE = 125

_TOOL_MISSING_RE = re.compile(r"time:\s+not found|No such file or directory", re.IGNORECASE)
_DOCKER_FAILURE_RE = re.compile(r"^docker:|Cannot connect to the Docker daemon|Unable to find image", re.IGNORECASE | re.MULTILINE)


def unescape_source(code: str | None) -> str:
    """Undo the markup escaping some upstream editors apply to code."""
    return str(code or "").replace("&lt;", "<").replace("&gt;", ">").replace("&amp;", "&")


def _shell_join(args: list[str]) -> str:
    return " ".join(shlex.quote(a) for a in args)


class ExecutionPipeline:
    name = "local"

    def __init__(
        self,
        settings: Settings | None = None,
        warm_pool: WarmPool | None = None,
        runner: Runner | None = None,
        registry: dict[str, LanguageProfile] | None = None,
    ):
        self._settings = settings or get_settings()
        self._warm_pool = warm_pool
        self._runner = runner or partial(
            run_with_timeout, max_output_bytes=self._settings.sandbox.max_output_bytes
        )
        self._registry = registry if registry is not None else build_registry(self._settings)
        self._limits = ResourceLimits.from_settings(self._settings.sandbox)

    async def prepare(self, language: str) -> None:
        """Warm ``language``'s toolchain; unknown languages are left to ``execute``."""
        if self._warm_pool is None or not self._settings.sandbox.warmup_enabled:
            return
        profile = self._registry.get(normalize_language(language) or "")
        if profile is not None:
            await self._warm_pool.ensure_warm(profile)

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        profile = get_profile(request.language, self._registry)
        workspace = Path(tempfile.mkdtemp(prefix="code-exec-", dir=self._settings.sandbox.workspace_root))
        try:
            os.chmod(workspace, 0o777)
            return await self._execute_in(workspace, profile, request)
        finally:
            shutil.rmtree(workspace, ignore_errors=True)
            logger.debug("workspace removed %s", workspace)

    async def _execute_in(
        self, workspace: Path, profile: LanguageProfile, request: ExecutionRequest
    ) -> ExecutionResult:
        source = unescape_source(request.code)
        filename, target = resolve_entry_point(profile, source)
        (workspace / filename).write_text(source, encoding="utf-8")
        (workspace / STDIN_FILENAME).write_text(request.stdin or "", encoding="utf-8")

        if profile.compile_command is not None:
            compiled = await self._stage(
                profile, workspace, profile.compile_command(filename), profile.compile_timeout_ms
            )
            if compiled.exit_code != 0 or COMPILE_SENTINEL not in compiled.stdout:
                logger.debug("compile failed lang=%s exit=%s", profile.id, compiled.exit_code)
                return ExecutionResult(
                    stdout="",
                    stderr=compiled.stderr or compiled.stdout or "Compilation failed",
                    exit_code=compiled.exit_code,
                    runtime_ms=compiled.runtime_ms,
                    compile_failed=True,
                    backend=self.name,
                )

        if self._warm_pool is not None and self._settings.sandbox.warmup_enabled:
            await self._warm_pool.ensure_warm(profile)

        base_run = _shell_join(profile.run_command(target))
        timeout_ms = request.timeout_ms or profile.run_timeout_ms
        wrapped = ["bash", "-c", f"{TIME_TOOL} -v -o {TELEMETRY_FILENAME} {base_run} < {STDIN_FILENAME}"]
        res = await self._stage(profile, workspace, wrapped, timeout_ms)

        if res.exit_code == COMMAND_NOT_FOUND_EXIT_CODE and _TOOL_MISSING_RE.search(res.stderr or ""):
            logger.debug("%s missing in %s, running without telemetry", TIME_TOOL, profile.image)
            plain = ["bash", "-c", f"{base_run} < {STDIN_FILENAME}"]
            res = await self._stage(profile, workspace, plain, timeout_ms)

        runtime_ms = res.runtime_ms
        peak_kb = None
        if not res.timed_out:
            sample = sample_workspace(workspace)
            peak_kb = sample.peak_memory_kb
            if sample.cpu_ms is not None:
                runtime_ms = sample.cpu_ms

        return ExecutionResult(
            stdout=strip_trailing_newlines(res.stdout),
            stderr=res.stderr,
            exit_code=res.exit_code,
            runtime_ms=runtime_ms,
            peak_memory_kb=peak_kb,
            backend=self.name,
        )

    async def _stage(
        self, profile: LanguageProfile, workspace: Path, args: list[str], timeout_ms: int
    ) -> ProcessResult:
        sandbox = self._settings.sandbox
        container = f"judge-{uuid.uuid4().hex[:12]}"
        cmd = build_docker_command(
            profile.image,
            str(workspace),
            args,
            limits=self._limits,
            mount_path=sandbox.mount_path,
            name=container,
            docker_bin=sandbox.docker_bin,
        )
        try:
            res = await self._runner(cmd, "", timeout_ms)
        except asyncio.CancelledError:
            await asyncio.shield(self._remove_container(container))
            raise
        if res.spawn_failed:
            raise BackendUnavailableError(self.name, res.stderr)
        if res.exit_code == DOCKER_FAILURE_EXIT_CODE and _DOCKER_FAILURE_RE.search(res.stderr or ""):
            raise BackendUnavailableError(self.name, res.stderr.strip())
        if res.timed_out:
            await self._remove_container(container)
        return res

    async def _remove_container(self, container: str) -> None:
        docker_bin = self._settings.sandbox.docker_bin
        res = await self._runner([docker_bin, "rm", "-f", container], "", 10000)
        if res.exit_code != 0:
            logger.debug("docker rm -f %s exit=%s", container, res.exit_code)
