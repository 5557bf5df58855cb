"""One-time toolchain warm-up, owned by the application lifecycle.

The pool is created once at startup and handed to the pipeline. Each language
is warmed at most once per pool; skipping warm-up only costs latency.
"""

import asyncio
import logging
import shutil
import tempfile
import uuid
from collections.abc import Awaitable, Callable, Iterable

from judge.config import Settings, get_settings
from judge.languages import LanguageProfile
from judge.models.execution import ProcessResult
from judge.sandbox.command import ResourceLimits, build_docker_command
from judge.sandbox.process import run_with_timeout

logger = logging.getLogger(__name__)

Runner = Callable[..., Awaitable[ProcessResult]]


class WarmPool:
    def __init__(self, settings: Settings | None = None, runner: Runner = run_with_timeout):
        self._settings = settings or get_settings()
        self._runner = runner
        self._warm: set[str] = set()
        self._lock = asyncio.Lock()

    def is_warm(self, language: str) -> bool:
        return language in self._warm

    async def ensure_warm(self, profile: LanguageProfile) -> None:
        if profile.warmup_command is None or profile.id in self._warm:
            return
        async with self._lock:
            if profile.id in self._warm:
                return
            try:
                await self._run_warmup(profile)
            except Exception as e:
                logger.warning("warm-up failed for %s: %s", profile.id, e)
            finally:
                # marked warm even when the warm-up failed or was cancelled
                self._warm.add(profile.id)

    async def prime(self, profiles: Iterable[LanguageProfile]) -> None:
        for profile in profiles:
            await self.ensure_warm(profile)

    async def _run_warmup(self, profile: LanguageProfile) -> None:
        sandbox = self._settings.sandbox
        workdir = tempfile.mkdtemp(prefix="judge-warm-", dir=sandbox.workspace_root)
        container = f"judge-warm-{profile.id}-{uuid.uuid4().hex[:8]}"
        try:
            cmd = build_docker_command(
                profile.image,
                workdir,
                profile.warmup_command,
                limits=ResourceLimits.from_settings(sandbox),
                mount_path=sandbox.mount_path,
                name=container,
                docker_bin=sandbox.docker_bin,
            )
            try:
                res = await self._runner(cmd, "", self._settings.timeouts.warmup_timeout_ms)
            except asyncio.CancelledError:
                await asyncio.shield(self._remove_container(container))
                raise
            if res.timed_out:
                await self._remove_container(container)
            logger.info("warmed %s exit=%s in %dms", profile.id, res.exit_code, res.runtime_ms)
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

    async def _remove_container(self, container: str) -> None:
        docker_bin = self._settings.sandbox.docker_bin
        res = await self._runner([docker_bin, "rm", "-f", container], "", 10000)
        if res.exit_code != 0:
            logger.debug("docker rm -f %s exit=%s", container, res.exit_code)
