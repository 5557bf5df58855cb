"""Tests for the single-job execution pipeline, driven by a scripted runner."""

import asyncio

import pytest

from judge.models.execution import ExecutionRequest, ProcessResult


def _ok(stdout="", stderr="", exit_code=0, runtime_ms=10):
    return ProcessResult(stdout=stdout, stderr=stderr, exit_code=exit_code, runtime_ms=runtime_ms)


class ScriptedRunner:
    """Stands in for run_with_timeout; answers by stage and records every call."""

    def __init__(self, compile=None, run=None, plain_run=None):
        self.compile = compile or _ok(stdout="__COMPILED__\n")
        self.run = run or _ok()
        self.plain_run = plain_run
        self.calls = []

    @staticmethod
    def stage_of(cmd):
        if cmd[1] == "rm":
            return "rm"
        script = cmd[-1]
        if "g++" in script or "javac" in script:
            return "compile"
        if "/usr/bin/time" in script:
            return "run"
        return "plain_run"

    async def __call__(self, cmd, stdin, timeout_ms):
        stage = self.stage_of(cmd)
        self.calls.append((stage, cmd, timeout_ms))
        if stage == "compile":
            return self.compile
        if stage == "run":
            return self.run
        if stage == "plain_run":
            return self.plain_run or _ok()
        return _ok()

    def stages(self):
        return [c[0] for c in self.calls]


@pytest.fixture
def settings(monkeypatch, tmp_path):
    from judge.config import get_settings

    monkeypatch.setenv("SANDBOX_WORKSPACE_ROOT", str(tmp_path))
    return get_settings()


def _pipeline(settings, runner, warm_pool=None):
    from judge.sandbox.pipeline import ExecutionPipeline

    return ExecutionPipeline(settings, warm_pool=warm_pool, runner=runner)


class TestUnescape:
    def test_markup_entities(self):
        from judge.sandbox.pipeline import unescape_source

        assert unescape_source("#include &lt;iostream&gt;\nif (a &amp;&amp; b)") == "#include <iostream>\nif (a && b)"

    def test_none(self):
        from judge.sandbox.pipeline import unescape_source

        assert unescape_source(None) == ""


class TestPipeline:
    @pytest.mark.asyncio
    async def test_unsupported_language_allocates_nothing(self, settings, tmp_path):
        from judge.errors import UnsupportedLanguageError

        runner = ScriptedRunner()
        with pytest.raises(UnsupportedLanguageError):
            await _pipeline(settings, runner).execute(ExecutionRequest(code="x", language="cobol"))
        assert runner.calls == []
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_python_run(self, settings, tmp_path):
        runner = ScriptedRunner(run=_ok(stdout="hello\n", runtime_ms=42))
        result = await _pipeline(settings, runner).execute(
            ExecutionRequest(code="print(input())", language="python", stdin="hello")
        )
        assert result.stdout == "hello"
        assert result.exit_code == 0
        assert result.runtime_ms == 42
        assert result.compile_failed is False
        assert result.backend == "local"
        assert runner.stages() == ["run"]
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_run_stage_is_sandboxed_and_reads_stdin_file(self, settings):
        runner = ScriptedRunner()
        await _pipeline(settings, runner).execute(ExecutionRequest(code="pass", language="py"))
        _, cmd, timeout_ms = runner.calls[0]
        assert cmd[:3] == ["docker", "run", "--rm"]
        assert "python:3.11-slim" in cmd
        assert cmd[-1].endswith("python main.py < stdin.txt")
        assert "/usr/bin/time -v -o time.txt" in cmd[-1]
        assert timeout_ms == 8000

    @pytest.mark.asyncio
    async def test_request_timeout_overrides_profile(self, settings):
        runner = ScriptedRunner()
        await _pipeline(settings, runner).execute(ExecutionRequest(code="pass", language="python", timeout_ms=2000))
        assert runner.calls[0][2] == 2000

    @pytest.mark.asyncio
    async def test_source_and_stdin_written_unescaped(self, settings, tmp_path):
        seen = {}

        class Peek(ScriptedRunner):
            async def __call__(self, cmd, stdin, timeout_ms):
                mount = next(a for a in cmd if a.endswith(":/code:rw"))
                workdir = mount.split(":")[0]
                from pathlib import Path

                seen["src"] = (Path(workdir) / "main.cpp").read_text()
                seen["stdin"] = (Path(workdir) / "stdin.txt").read_text()
                return await super().__call__(cmd, stdin, timeout_ms)

        await _pipeline(settings, Peek()).execute(
            ExecutionRequest(code="#include &lt;cstdio&gt;", language="cpp", stdin="1 2")
        )
        assert seen == {"src": "#include <cstdio>", "stdin": "1 2"}

    @pytest.mark.asyncio
    async def test_compile_failure_short_circuits(self, settings, tmp_path):
        runner = ScriptedRunner(compile=_ok(stderr="main.cpp:1: error: expected ';'", exit_code=1, runtime_ms=700))
        result = await _pipeline(settings, runner).execute(ExecutionRequest(code="int main(", language="cpp"))

        assert result.compile_failed is True
        assert "expected ';'" in result.stderr
        assert result.runtime_ms == 700
        assert runner.stages() == ["compile"]
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_compile_without_sentinel_is_failure(self, settings):
        runner = ScriptedRunner(compile=_ok(stdout="", exit_code=0))
        result = await _pipeline(settings, runner).execute(ExecutionRequest(code="x", language="cpp"))
        assert result.compile_failed is True
        assert result.stderr == "Compilation failed"
        assert runner.stages() == ["compile"]

    @pytest.mark.asyncio
    async def test_compile_warnings_do_not_fail(self, settings):
        runner = ScriptedRunner(
            compile=_ok(stdout="__COMPILED__\n", stderr="warning: unused variable"),
            run=_ok(stdout="ok\n"),
        )
        result = await _pipeline(settings, runner).execute(ExecutionRequest(code="x", language="cpp"))
        assert result.compile_failed is False
        assert result.stdout == "ok"
        assert runner.stages() == ["compile", "run"]

    @pytest.mark.asyncio
    async def test_java_uses_declared_class(self, settings):
        runner = ScriptedRunner()
        src = "public class Solver { public static void main(String[] a) {} }"
        await _pipeline(settings, runner).execute(ExecutionRequest(code=src, language="java"))
        compile_cmd = runner.calls[0][1][-1]
        run_cmd = runner.calls[1][1][-1]
        assert "Solver.java" in compile_cmd
        assert "Solver < stdin.txt" in run_cmd
        assert runner.calls[1][2] == 15000

    @pytest.mark.asyncio
    async def test_missing_time_tool_falls_back(self, settings):
        runner = ScriptedRunner(
            run=_ok(stderr="bash: /usr/bin/time: No such file or directory", exit_code=127),
            plain_run=_ok(stdout="42\n", runtime_ms=33),
        )
        result = await _pipeline(settings, runner).execute(ExecutionRequest(code="print(42)", language="python"))
        assert runner.stages() == ["run", "plain_run"]
        assert result.stdout == "42"
        assert result.stderr == ""
        assert result.exit_code == 0
        assert result.runtime_ms == 33
        assert result.peak_memory_kb is None

    @pytest.mark.asyncio
    async def test_program_exit_127_without_tool_message_is_kept(self, settings):
        runner = ScriptedRunner(run=_ok(stderr="custom failure", exit_code=127))
        result = await _pipeline(settings, runner).execute(ExecutionRequest(code="x", language="python"))
        assert runner.stages() == ["run"]
        assert result.exit_code == 127

    @pytest.mark.asyncio
    async def test_telemetry_used_when_present(self, settings):
        class WithTelemetry(ScriptedRunner):
            async def __call__(self, cmd, stdin, timeout_ms):
                from pathlib import Path

                workdir = next(a for a in cmd if a.endswith(":/code:rw")).split(":")[0]
                (Path(workdir) / "time.txt").write_text(
                    "User time (seconds): 0.20\nSystem time (seconds): 0.05\n"
                    "Maximum resident set size (kbytes): 12345\n"
                )
                return await super().__call__(cmd, stdin, timeout_ms)

        result = await _pipeline(settings, WithTelemetry(run=_ok(runtime_ms=900))).execute(
            ExecutionRequest(code="x", language="python")
        )
        assert result.peak_memory_kb == 12345
        assert result.runtime_ms == 250

    @pytest.mark.asyncio
    async def test_timeout_removes_container_and_workspace(self, settings, tmp_path):
        timed_out = ProcessResult(
            stdout="", stderr="Time limit exceeded", exit_code=124, runtime_ms=2000, timed_out=True
        )
        runner = ScriptedRunner(run=timed_out)
        result = await _pipeline(settings, runner).execute(
            ExecutionRequest(code="while True: pass", language="python", timeout_ms=2000)
        )

        from judge.models.execution import Verdict, classify

        assert classify(result) is Verdict.TIME_LIMIT_EXCEEDED
        assert runner.stages() == ["run", "rm"]
        run_cmd = runner.calls[0][1]
        container = run_cmd[run_cmd.index("--name") + 1]
        assert runner.calls[1][1] == ["docker", "rm", "-f", container]
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_docker_unavailable_raises_backend_error(self, settings, tmp_path):
        from judge.errors import BackendUnavailableError

        runner = ScriptedRunner(run=ProcessResult("", "Execution error: [Errno 2] docker", 1, 0, spawn_failed=True))
        with pytest.raises(BackendUnavailableError):
            await _pipeline(settings, runner).execute(ExecutionRequest(code="x", language="python"))
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_docker_daemon_failure_raises_backend_error(self, settings):
        from judge.errors import BackendUnavailableError

        runner = ScriptedRunner(
            run=_ok(stderr="docker: Cannot connect to the Docker daemon at unix:///var/run/docker.sock.", exit_code=125)
        )
        with pytest.raises(BackendUnavailableError):
            await _pipeline(settings, runner).execute(ExecutionRequest(code="x", language="python"))

    @pytest.mark.asyncio
    async def test_cancellation_removes_container(self, settings, tmp_path):
        started = asyncio.Event()

        class Hanging(ScriptedRunner):
            async def __call__(self, cmd, stdin, timeout_ms):
                if self.stage_of(cmd) == "rm":
                    return await super().__call__(cmd, stdin, timeout_ms)
                self.calls.append(("run", cmd, timeout_ms))
                started.set()
                await asyncio.sleep(60)

        runner = Hanging()
        task = asyncio.create_task(
            _pipeline(settings, runner).execute(ExecutionRequest(code="x", language="python"))
        )
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert runner.stages() == ["run", "rm"]
        assert list(tmp_path.iterdir()) == []


class TestWarmPool:
    @pytest.mark.asyncio
    async def test_warm_up_runs_once_per_language(self, settings):
        from judge.languages import get_profile
        from judge.sandbox.warmup import WarmPool

        calls = []

        async def runner(cmd, stdin, timeout_ms):
            calls.append(cmd)
            return _ok()

        pool = WarmPool(settings, runner=runner)
        java = get_profile("java")
        await asyncio.gather(pool.ensure_warm(java), pool.ensure_warm(java), pool.ensure_warm(java))
        await pool.ensure_warm(get_profile("python"))

        assert len(calls) == 1
        assert pool.is_warm("java")
        assert not pool.is_warm("python")

    @pytest.mark.asyncio
    async def test_failed_warm_up_is_not_retried(self, settings):
        from judge.languages import get_profile
        from judge.sandbox.warmup import WarmPool

        calls = []

        async def runner(cmd, stdin, timeout_ms):
            calls.append(cmd)
            raise OSError("docker missing")

        pool = WarmPool(settings, runner=runner)
        await pool.ensure_warm(get_profile("java"))
        await pool.ensure_warm(get_profile("java"))
        assert len(calls) == 1
        assert pool.is_warm("java")

    @pytest.mark.asyncio
    async def test_pipeline_warms_before_run(self, settings):
        from judge.sandbox.warmup import WarmPool

        warm_calls = []

        async def warm_runner(cmd, stdin, timeout_ms):
            warm_calls.append(cmd)
            return _ok()

        runner = ScriptedRunner()
        pool = WarmPool(settings, runner=warm_runner)
        pipeline = _pipeline(settings, runner, warm_pool=pool)
        await pipeline.execute(ExecutionRequest(code="class Main {}", language="java"))
        await pipeline.execute(ExecutionRequest(code="class Main {}", language="java"))
        assert len(warm_calls) == 1
        assert runner.stages() == ["compile", "run", "compile", "run"]

    @pytest.mark.asyncio
    async def test_prepare_warms_known_languages_only(self, settings):
        from judge.sandbox.warmup import WarmPool

        warm_calls = []

        async def warm_runner(cmd, stdin, timeout_ms):
            warm_calls.append(cmd)
            return _ok()

        runner = ScriptedRunner()
        pool = WarmPool(settings, runner=warm_runner)
        pipeline = _pipeline(settings, runner, warm_pool=pool)
        await pipeline.prepare("cobol")
        await pipeline.prepare("Java")

        assert len(warm_calls) == 1
        assert pool.is_warm("java")
        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_cancelled_warm_up_removes_its_container(self, settings, tmp_path):
        from judge.languages import get_profile
        from judge.sandbox.warmup import WarmPool

        calls = []
        started = asyncio.Event()

        async def runner(cmd, stdin, timeout_ms):
            calls.append(cmd)
            if cmd[1] == "run":
                started.set()
                await asyncio.sleep(30)
            return _ok()

        pool = WarmPool(settings, runner=runner)
        task = asyncio.create_task(pool.ensure_warm(get_profile("java")))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        run_cmd, rm_cmd = calls
        container = run_cmd[run_cmd.index("--name") + 1]
        assert container.startswith("judge-warm-java-")
        assert rm_cmd == ["docker", "rm", "-f", container]
        assert pool.is_warm("java")
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_timed_out_warm_up_removes_its_container(self, settings):
        from judge.languages import get_profile
        from judge.sandbox.warmup import WarmPool

        calls = []

        async def runner(cmd, stdin, timeout_ms):
            calls.append(cmd)
            if cmd[1] == "run":
                return ProcessResult(stdout="", stderr="Time limit exceeded", exit_code=124,
                                     runtime_ms=timeout_ms, timed_out=True)
            return _ok()

        pool = WarmPool(settings, runner=runner)
        await pool.ensure_warm(get_profile("java"))

        assert [c[1] for c in calls] == ["run", "rm"]
        assert pool.is_warm("java")
