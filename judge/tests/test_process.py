"""Tests for the process runner, using real short-lived subprocesses."""

import sys
import time

import pytest


class TestRunWithTimeout:
    @pytest.mark.asyncio
    async def test_collects_output_and_exit_code(self):
        from judge.sandbox.process import run_with_timeout

        res = await run_with_timeout(["sh", "-c", "echo out; echo err >&2; exit 3"], timeout_ms=5000)
        assert res.stdout == "out\n"
        assert res.stderr == "err\n"
        assert res.exit_code == 3
        assert res.timed_out is False

    @pytest.mark.asyncio
    async def test_stdin_is_written_then_closed(self):
        from judge.sandbox.process import run_with_timeout

        res = await run_with_timeout(["cat"], stdin="hello", timeout_ms=5000)
        assert res.stdout == "hello"
        assert res.exit_code == 0

    @pytest.mark.asyncio
    async def test_deadline_kills_and_reports_time_limit(self):
        from judge.models.execution import TIME_LIMIT_EXIT_CODE, TIME_LIMIT_MESSAGE
        from judge.sandbox.process import run_with_timeout

        started = time.monotonic()
        res = await run_with_timeout(["sleep", "30"], timeout_ms=300)
        elapsed = time.monotonic() - started

        assert res.timed_out is True
        assert res.exit_code == TIME_LIMIT_EXIT_CODE
        assert res.stderr == TIME_LIMIT_MESSAGE
        assert res.stdout == ""
        assert 250 <= res.runtime_ms < 3000
        assert elapsed < 3

    @pytest.mark.asyncio
    async def test_children_are_killed_with_the_group(self):
        from judge.sandbox.process import run_with_timeout

        started = time.monotonic()
        res = await run_with_timeout(["sh", "-c", "sleep 30 & sleep 30; wait"], timeout_ms=300)
        assert res.timed_out
        assert time.monotonic() - started < 3

    @pytest.mark.asyncio
    async def test_missing_binary_becomes_result(self):
        from judge.sandbox.process import run_with_timeout

        res = await run_with_timeout(["/nonexistent/definitely-not-here"], timeout_ms=1000)
        assert res.spawn_failed is True
        assert res.exit_code == 1
        assert res.stderr.startswith("Execution error:")

    @pytest.mark.asyncio
    async def test_output_is_capped(self):
        from judge.sandbox.process import run_with_timeout

        script = "import sys; sys.stdout.write('x' * 5000)"
        res = await run_with_timeout([sys.executable, "-c", script], timeout_ms=5000, max_output_bytes=100)
        assert res.stdout.startswith("x" * 100)
        assert "output truncated, 4900 bytes omitted" in res.stdout

    @pytest.mark.asyncio
    async def test_cancellation_kills_process(self):
        import asyncio

        from judge.sandbox.process import run_with_timeout

        task = asyncio.create_task(run_with_timeout(["sleep", "30"], timeout_ms=60000))
        await asyncio.sleep(0.2)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
