"""Tests for the process lifecycle manager.

Only harmless commands (echo, sleep, printf, true) are executed.
"""

import asyncio
import sys
import time

import pytest

from shellgate.tools.shell.errors import ProcessSpawnError
from shellgate.tools.shell.models import ProcessState
from shellgate.tools.shell.process import OutputBuffer, ProcessHandle, ProcessSupervisor

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX process groups")


class TestOutputBuffer:
    """Tests for the capped output buffer."""

    def test_counts_past_limit(self):
        buffer = OutputBuffer(limit=5)
        buffer.append("abc")
        buffer.append("defgh")

        assert buffer.getvalue() == "abcde"
        assert buffer.total_length == 8
        assert buffer.truncated

    def test_within_limit(self):
        buffer = OutputBuffer(limit=10)
        buffer.append("abc")

        assert not buffer.truncated


class TestProcessSupervisor:
    """Tests for spawning, timeout, cancellation and kill escalation."""

    @pytest.mark.asyncio
    async def test_natural_exit(self, project_root):
        supervisor = ProcessSupervisor(cwd=project_root)

        outcome = await supervisor.run("echo hello; exit 3", timeout_ms=5_000)

        assert outcome.state is ProcessState.EXITED
        assert outcome.exit_code == 3
        assert outcome.output == "hello\n"
        assert outcome.terminated_by is None
        assert outcome.pid is not None

    @pytest.mark.asyncio
    async def test_runs_in_project_root(self, project_root):
        outcome = await ProcessSupervisor(cwd=project_root).run("pwd", timeout_ms=5_000)

        assert outcome.output.strip() == str(project_root.resolve())

    @pytest.mark.asyncio
    async def test_stderr_merged(self, project_root):
        outcome = await ProcessSupervisor(cwd=project_root).run(
            "echo out; echo err 1>&2", timeout_ms=5_000
        )

        assert "out" in outcome.output
        assert "err" in outcome.output

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, project_root):
        """Test that a timeout terminates a long-running command."""
        started = time.monotonic()
        outcome = await ProcessSupervisor(cwd=project_root).run("sleep 5", timeout_ms=50)

        assert outcome.timed_out
        assert outcome.terminated_by is not None
        assert outcome.exit_code is None
        assert time.monotonic() - started < 4

    @pytest.mark.asyncio
    async def test_sigterm_ignored_escalates_to_sigkill(self, project_root):
        """Test that a process ignoring SIGTERM is killed after the grace window."""
        supervisor = ProcessSupervisor(cwd=project_root, kill_grace_ms=100)

        outcome = await supervisor.run("trap '' TERM; sleep 5", timeout_ms=100)

        assert outcome.timed_out
        assert outcome.terminated_by == "SIGKILL"

    @pytest.mark.asyncio
    async def test_zero_timeout(self, project_root):
        outcome = await ProcessSupervisor(cwd=project_root).run("sleep 5", timeout_ms=0)

        assert outcome.timed_out

    @pytest.mark.asyncio
    async def test_cancel_aborts(self, project_root):
        cancel = asyncio.Event()
        supervisor = ProcessSupervisor(cwd=project_root)

        task = asyncio.ensure_future(supervisor.run("sleep 5", timeout_ms=10_000, cancel=cancel))
        await asyncio.sleep(0.1)
        cancel.set()
        outcome = await task

        assert outcome.aborted
        assert outcome.terminated_by is not None

    @pytest.mark.asyncio
    async def test_cancel_before_spawn(self, project_root):
        cancel = asyncio.Event()
        cancel.set()

        outcome = await ProcessSupervisor(cwd=project_root).run(
            "echo never", timeout_ms=1_000, cancel=cancel
        )

        assert outcome.aborted
        assert outcome.pid is None
        assert outcome.output == ""

    @pytest.mark.asyncio
    async def test_terminate_after_exit_is_noop(self, project_root):
        """Test that killing an already-exited process sends no signals."""
        supervisor = ProcessSupervisor(cwd=project_root)
        process, exited = await supervisor._spawn("true")

        handle = ProcessHandle(process, grace_seconds=0.1)
        await exited.wait()
        handle.mark_exited()

        assert await handle.terminate(ProcessState.TIMED_OUT) is False
        assert await handle.terminate(ProcessState.ABORTED) is False
        assert handle.signals_sent == []
        assert handle.state is ProcessState.EXITED

    @pytest.mark.asyncio
    async def test_terminate_is_idempotent(self, project_root):
        supervisor = ProcessSupervisor(cwd=project_root)
        process, _ = await supervisor._spawn("sleep 5")

        handle = ProcessHandle(process, grace_seconds=0.5)
        first = asyncio.ensure_future(handle.terminate(ProcessState.TIMED_OUT))
        second = asyncio.ensure_future(handle.terminate(ProcessState.ABORTED))
        waiter = asyncio.ensure_future(process.wait())
        await waiter
        handle.mark_exited()

        assert sorted([await first, await second]) == [False, True]
        assert handle.state is ProcessState.TIMED_OUT
        assert handle.signals_sent == ["SIGTERM"]

    @pytest.mark.asyncio
    async def test_progress_callback(self, project_root):
        updates: list[str] = []

        await ProcessSupervisor(cwd=project_root).run(
            "printf one; sleep 0.1; printf two", timeout_ms=5_000, on_progress=updates.append
        )

        assert updates
        assert updates[-1] == "onetwo"

    @pytest.mark.asyncio
    async def test_output_capped_but_counted(self, project_root):
        supervisor = ProcessSupervisor(cwd=project_root, max_output_length=10)

        outcome = await supervisor.run("printf '%050d' 0", timeout_ms=5_000)

        assert len(outcome.output) == 10
        assert outcome.output_length == 50

    @pytest.mark.asyncio
    async def test_background_child_does_not_hang(self, project_root):
        """Test that a backgrounded child holding the pipe is reclaimed."""
        started = time.monotonic()

        outcome = await ProcessSupervisor(cwd=project_root).run(
            "sleep 30 & echo started", timeout_ms=10_000
        )

        assert outcome.state is ProcessState.EXITED
        assert not outcome.timed_out
        assert outcome.exit_code == 0
        assert "started" in outcome.output
        assert time.monotonic() - started < 5

    @pytest.mark.asyncio
    async def test_shell_exit_wins_over_timeout_with_background_child(self, project_root):
        """Test that the shell exiting first is reported as an exit, not a timeout."""
        outcome = await ProcessSupervisor(cwd=project_root).run(
            "sleep 30 & echo started", timeout_ms=3_000
        )

        assert outcome.state is ProcessState.EXITED
        assert outcome.terminated_by is None
        assert outcome.duration_ms < 3_000

    @pytest.mark.asyncio
    async def test_signal_recorded(self, project_root):
        outcome = await ProcessSupervisor(cwd=project_root).run("kill -KILL $$", timeout_ms=5_000)

        assert outcome.exit_code is None
        assert outcome.signal == "SIGKILL"
        assert outcome.terminated_by is None
        assert outcome.state is ProcessState.EXITED

    @pytest.mark.asyncio
    async def test_spawn_failure(self, tmp_path):
        supervisor = ProcessSupervisor(cwd=tmp_path / "does-not-exist")

        with pytest.raises(ProcessSpawnError):
            await supervisor.run("echo hi", timeout_ms=1_000)
