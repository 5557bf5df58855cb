import asyncio
import logging
import os
import signal
import time

from judge.models.execution import TIME_LIMIT_EXIT_CODE, TIME_LIMIT_MESSAGE, ProcessResult

_logger = logging.getLogger("judge.sandbox.process")

_CHUNK = 64 * 1024


class _Capture:
    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes
        self.chunks: list[bytes] = []
        self.size = 0
        self.dropped = 0

    def feed(self, data: bytes) -> None:
        room = self.max_bytes - self.size
        if room > 0:
            kept = data[:room]
            self.chunks.append(kept)
            self.size += len(kept)
        self.dropped += max(0, len(data) - max(room, 0))

    def text(self) -> str:
        out = b"".join(self.chunks).decode("utf-8", errors="replace")
        if self.dropped:
            out += f"\n... [output truncated, {self.dropped} bytes omitted]"
        return out


async def _drain(stream: asyncio.StreamReader | None, sink: _Capture) -> None:
    if stream is None:
        return
    while True:
        data = await stream.read(_CHUNK)
        if not data:
            return
        sink.feed(data)


async def _feed_stdin(proc: asyncio.subprocess.Process, stdin: str | None) -> None:
    if proc.stdin is None:
        return
    try:
        if stdin:
            proc.stdin.write(stdin.encode("utf-8"))
            await proc.stdin.drain()
    except (BrokenPipeError, ConnectionResetError):
        # child exited without reading its input
        pass
    finally:
        try:
            proc.stdin.close()
        except (BrokenPipeError, ConnectionResetError):
            pass


def _kill_tree(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        try:
            proc.kill()
        except ProcessLookupError:
            pass


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


async def run_with_timeout(
    command: list[str],
    stdin: str | None = None,
    timeout_ms: int = 5000,
    max_output_bytes: int = 1_000_000,
) -> ProcessResult:
    """Spawn ``command`` and collect its output under a wall-clock deadline.

    Always resolves to a ProcessResult. On expiry the whole process group is
    killed and a synthetic time-limit result (exit code 124) is returned. A
    command that cannot be spawned yields exit code 1 with the OS error text.
    If the caller is cancelled, the process group is killed before the
    cancellation propagates.
    """
    started = time.monotonic()
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as e:
        _logger.warning("spawn failed cmd=%s err=%s", command[0] if command else "-", e)
        return ProcessResult(
            stdout="",
            stderr=f"Execution error: {e}",
            exit_code=1,
            runtime_ms=_elapsed_ms(started),
            spawn_failed=True,
        )

    out = _Capture(max_output_bytes)
    err = _Capture(max_output_bytes)
    work = asyncio.gather(
        _feed_stdin(proc, stdin),
        _drain(proc.stdout, out),
        _drain(proc.stderr, err),
        proc.wait(),
    )
    try:
        await asyncio.wait_for(work, timeout=timeout_ms / 1000)
    except asyncio.TimeoutError:
        runtime_ms = _elapsed_ms(started)
        _kill_tree(proc)
        await proc.wait()
        _logger.debug("deadline hit pid=%s after %dms", proc.pid, runtime_ms)
        return ProcessResult(
            stdout="",
            stderr=TIME_LIMIT_MESSAGE,
            exit_code=TIME_LIMIT_EXIT_CODE,
            runtime_ms=runtime_ms,
            timed_out=True,
        )
    except asyncio.CancelledError:
        _kill_tree(proc)
        raise

    return ProcessResult(
        stdout=out.text(),
        stderr=err.text(),
        exit_code=proc.returncode if proc.returncode is not None else 0,
        runtime_ms=_elapsed_ms(started),
    )
