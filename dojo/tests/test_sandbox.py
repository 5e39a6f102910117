"""End-to-end sandbox tests that spawn real interpreter children."""

import asyncio
import os
import signal
import sys
import time

import pytest

from dojo.sandbox import Dispatcher, ExecutionLimits, ExecutionStatus, PoolSettings

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX process groups and rlimits")


class TestOutcomes:
    """Each way a child can end maps to one outcome."""

    @pytest.mark.asyncio
    async def test_print_literal(self, limits):
        outcome = await Dispatcher(limits).run('print("hello, dojo")')

        assert outcome.status is ExecutionStatus.SUCCESS
        assert outcome.success is True
        assert outcome.stdout == "hello, dojo\n"
        assert outcome.stderr == ""
        assert outcome.error is None
        assert outcome.exit_code == 0

    @pytest.mark.asyncio
    async def test_empty_code_succeeds_silently(self, limits):
        outcome = await Dispatcher(limits).run("")

        assert outcome.success is True
        assert outcome.stdout == ""
        assert outcome.stderr == ""
        assert outcome.error is None

    @pytest.mark.asyncio
    async def test_uncaught_error_lands_in_stderr(self, limits):
        outcome = await Dispatcher(limits).run("raise RuntimeError('boom')")

        assert outcome.status is ExecutionStatus.FAILURE
        assert outcome.success is False
        assert "RuntimeError: boom" in outcome.stderr
        assert outcome.error is None
        assert outcome.exit_code == 1
        assert outcome.elapsed_ms > 0

    @pytest.mark.asyncio
    async def test_syntax_error(self, limits):
        outcome = await Dispatcher(limits).run("def broken(:\n    pass\n")

        assert outcome.success is False
        assert "SyntaxError" in outcome.stderr
        assert outcome.error is None
        assert 0 < outcome.elapsed_ms < limits.timeout_ms

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, limits):
        outcome = await Dispatcher(limits).run("import sys\nprint('partial')\nsys.exit(3)")

        assert outcome.status is ExecutionStatus.FAILURE
        assert outcome.exit_code == 3
        assert outcome.stdout == "partial\n"

    @pytest.mark.asyncio
    async def test_killed_by_foreign_signal_is_failure(self, limits):
        code = "import os, signal\nos.kill(os.getpid(), signal.SIGKILL)"
        outcome = await Dispatcher(limits).run(code)

        assert outcome.status is ExecutionStatus.FAILURE
        assert outcome.signal == signal.SIGKILL
        assert outcome.exit_code is None
        assert outcome.error is None

    @pytest.mark.asyncio
    async def test_infinite_loop_times_out(self):
        limits = ExecutionLimits(timeout_ms=500, memory_mb=256)
        started = time.monotonic()
        outcome = await Dispatcher(limits).run("while True:\n    pass\n")
        wall_ms = (time.monotonic() - started) * 1000

        assert outcome.status is ExecutionStatus.TIMEOUT
        assert outcome.success is False
        assert outcome.error == "Execution timed out (500ms limit)"
        assert outcome.elapsed_ms >= 500
        assert wall_ms < 500 + 300

    @pytest.mark.asyncio
    async def test_timeout_keeps_output_written_before_kill(self):
        limits = ExecutionLimits(timeout_ms=500, memory_mb=256)
        code = "import sys, time\nprint('started', flush=True)\ntime.sleep(30)"
        outcome = await Dispatcher(limits).run(code)

        assert outcome.status is ExecutionStatus.TIMEOUT
        assert outcome.stdout == "started\n"

    @pytest.mark.asyncio
    async def test_memory_ceiling(self):
        limits = ExecutionLimits(timeout_ms=5_000, memory_mb=128)
        outcome = await Dispatcher(limits).run("data = bytearray(1024 * 1024 * 1024)\nprint(len(data))")

        assert outcome.success is False
        assert outcome.status is ExecutionStatus.FAILURE
        assert "MemoryError" in outcome.stderr or outcome.signal is not None
        assert outcome.stdout == ""

    @pytest.mark.asyncio
    async def test_spawn_failure(self, tmp_path):
        limits = ExecutionLimits(interpreter=str(tmp_path / "no-such-python"))
        outcome = await Dispatcher(limits).run("print('never')")

        assert outcome.status is ExecutionStatus.SPAWN_ERROR
        assert outcome.success is False
        assert outcome.error is not None
        assert outcome.error.startswith("Process error:")
        assert outcome.stdout == ""
        assert outcome.stderr == ""
        assert outcome.elapsed_ms < 1000


class TestOutputLimit:
    @pytest.mark.asyncio
    async def test_flood_is_killed_and_classified(self):
        limits = ExecutionLimits(timeout_ms=5_000, memory_mb=256, max_output_bytes=1024)
        outcome = await Dispatcher(limits).run("while True:\n    print('x' * 4096)\n")

        assert outcome.status is ExecutionStatus.OUTPUT_LIMIT
        assert outcome.success is False
        assert outcome.truncated is True
        assert len(outcome.stdout) == 1024
        assert outcome.error == "Output exceeded limit (1024 bytes)"
        assert outcome.elapsed_ms < 5_000

    @pytest.mark.asyncio
    async def test_truncate_only_when_kill_disabled(self):
        limits = ExecutionLimits(
            timeout_ms=5_000,
            memory_mb=256,
            max_output_bytes=100,
            kill_on_output_limit=False,
        )
        outcome = await Dispatcher(limits).run("print('y' * 5000)\nprint('done')")

        assert outcome.status is ExecutionStatus.SUCCESS
        assert outcome.truncated is True
        assert outcome.stdout == "y" * 100

    @pytest.mark.asyncio
    async def test_under_cap_not_truncated(self, limits):
        outcome = await Dispatcher(limits).run("print('z' * 10)")

        assert outcome.truncated is False


class TestIsolation:
    @pytest.mark.asyncio
    async def test_host_environment_not_inherited(self, limits, monkeypatch):
        monkeypatch.setenv("DOJO_HOST_SECRET", "hunter2")
        code = "import os\nprint(os.environ.get('DOJO_HOST_SECRET'))\nprint(os.environ['PATH'])"
        outcome = await Dispatcher(limits).run(code)

        assert outcome.success is True
        secret, path = outcome.stdout.splitlines()
        assert secret == "None"
        assert path == "/usr/local/bin:/usr/bin:/bin"

    @pytest.mark.asyncio
    async def test_private_workdir_is_home_and_removed(self, limits):
        code = "import os\nprint(os.path.realpath(os.getcwd()))\nprint(os.path.realpath(os.environ['HOME']))"
        outcome = await Dispatcher(limits).run(code)

        cwd, home = outcome.stdout.splitlines()
        assert cwd == home
        assert "dojo-sbx-" in cwd
        assert not os.path.exists(cwd)

    @pytest.mark.asyncio
    async def test_code_is_not_interpreted_by_a_shell(self, limits):
        outcome = await Dispatcher(limits).run("print('$(echo injected); `id`')")

        assert outcome.stdout == "$(echo injected); `id`\n"

    @pytest.mark.asyncio
    async def test_large_source_is_delivered_over_stdin(self, limits):
        lines = "\n".join(f"v{i} = {i}" for i in range(20_000))
        outcome = await Dispatcher(limits).run(lines + "\nprint(v19999)")

        assert outcome.stdout == "19999\n"

    @pytest.mark.asyncio
    async def test_lone_surrogate_reaches_the_interpreter(self, limits):
        outcome = await Dispatcher(limits).run("print('hi')  # \ud800")

        assert outcome.status is ExecutionStatus.FAILURE
        assert outcome.error is None
        assert outcome.stdout == ""
        assert "SyntaxError" in outcome.stderr


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_outputs_do_not_mix(self, limits):
        dispatcher = Dispatcher(limits, PoolSettings(max_concurrent=8, max_queued=64))
        code = "import sys\nprint('out-{i}')\nsys.stderr.write('err-{i}')"

        outcomes = await asyncio.gather(
            *(dispatcher.run(code.format(i=i)) for i in range(50))
        )

        for i, outcome in enumerate(outcomes):
            assert outcome.success is True
            assert outcome.stdout == f"out-{i}\n"
            assert outcome.stderr == f"err-{i}"
        assert dispatcher.stats()["active"] == 0
        assert dispatcher.stats()["queued"] == 0

    @pytest.mark.asyncio
    async def test_pool_never_exceeds_max_concurrent(self, limits):
        dispatcher = Dispatcher(limits, PoolSettings(max_concurrent=2, max_queued=10))
        peak = 0

        async def watch():
            nonlocal peak
            while True:
                peak = max(peak, dispatcher.stats()["active"])
                await asyncio.sleep(0.005)

        watcher = asyncio.create_task(watch())
        try:
            await asyncio.gather(*(dispatcher.run("import time; time.sleep(0.1)") for _ in range(6)))
        finally:
            watcher.cancel()

        assert peak == 2


class TestEscapedDescendants:
    """A grandchild that starts its own session and keeps the pipes open."""

    ESCAPE = (
        "import os, time\n"
        "pid = os.fork()\n"
        "if pid == 0:\n"
        "    os.setsid()\n"
        "    time.sleep(30)\n"
        "    os._exit(0)\n"
        "print(pid, flush=True)\n"
    )

    @staticmethod
    def _reap(stdout):
        pid = int(stdout.splitlines()[0])
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            pass

    @pytest.mark.asyncio
    async def test_parent_exit_is_not_held_by_grandchild(self):
        limits = ExecutionLimits(timeout_ms=2_000, memory_mb=256)
        started = time.monotonic()
        outcome = await asyncio.wait_for(
            Dispatcher(limits).run(self.ESCAPE + "print('parent done')"), 5
        )
        wall_ms = (time.monotonic() - started) * 1000
        try:
            assert outcome.status is ExecutionStatus.SUCCESS
            assert outcome.stdout.splitlines()[1] == "parent done"
            assert wall_ms < 1_000
        finally:
            self._reap(outcome.stdout)

    @pytest.mark.asyncio
    async def test_timeout_is_not_held_by_grandchild(self):
        limits = ExecutionLimits(timeout_ms=500, memory_mb=256)
        started = time.monotonic()
        outcome = await asyncio.wait_for(
            Dispatcher(limits).run(self.ESCAPE + "while True:\n    pass\n"), 5
        )
        wall_ms = (time.monotonic() - started) * 1000
        try:
            assert outcome.status is ExecutionStatus.TIMEOUT
            assert wall_ms < 500 + 300
        finally:
            self._reap(outcome.stdout)

    @pytest.mark.asyncio
    async def test_slot_is_freed_for_the_next_run(self, limits):
        dispatcher = Dispatcher(limits, PoolSettings(max_concurrent=1, max_queued=4))
        first = await asyncio.wait_for(dispatcher.run(self.ESCAPE), 5)
        try:
            second = await asyncio.wait_for(dispatcher.run("print('next')"), 5)
            assert second.stdout == "next\n"
            assert dispatcher.stats()["active"] == 0
        finally:
            self._reap(first.stdout)
