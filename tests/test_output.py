"""Tests for result assembly and sandbox wrappers."""

import sys

import pytest

from conftest import FakeSandbox
from shellgate.tools.shell.models import ProcessOutcome, ProcessState
from shellgate.tools.shell.output import (
    ABORT_NOTE,
    TRUNCATION_NOTE,
    ResultAssembler,
    timeout_note,
    truncate_output,
)
from shellgate.tools.shell.process import ProcessSupervisor
from shellgate.tools.shell.sandbox import (
    ExecutionLimits,
    PassthroughSandbox,
    ResourceLimitSandbox,
)


def outcome(output: str = "ok\n", state: ProcessState = ProcessState.EXITED, **kwargs) -> ProcessOutcome:
    kwargs.setdefault("exit_code", 0 if state is ProcessState.EXITED else None)
    kwargs.setdefault("output_length", len(output))
    return ProcessOutcome(output=output, state=state, **kwargs)


class TestTruncateOutput:
    """Tests for output capping."""

    def test_short_output_unchanged(self):
        assert truncate_output("abc", 3, 10) == ("abc", False)

    def test_long_output_capped_with_note(self):
        text, truncated = truncate_output("x" * 20, 20, 10)

        assert truncated
        assert text == "x" * 10 + TRUNCATION_NOTE

    def test_dropped_bytes_count_as_truncated(self):
        """Test that output already capped by the buffer is still flagged."""
        text, truncated = truncate_output("x" * 10, 50, 10)

        assert truncated
        assert text.endswith(TRUNCATION_NOTE)


class TestResultAssembler:
    """Tests for notes and result fields."""

    def test_plain_result(self):
        result = ResultAssembler().assemble("echo ok", outcome(), 1_000)

        assert result.title == "echo ok"
        assert result.output == "ok\n"
        assert result.exit_code == 0
        assert not (result.truncated or result.timed_out or result.aborted)

    def test_timeout_note(self):
        result = ResultAssembler().assemble(
            "sleep 5",
            outcome("", ProcessState.TIMED_OUT, terminated_by="SIGTERM"),
            50,
        )

        assert result.timed_out
        assert result.output == timeout_note(50)
        assert "50 ms" in result.output
        assert result.terminated_by == "SIGTERM"

    def test_abort_note(self):
        result = ResultAssembler().assemble("sleep 5", outcome("partial", ProcessState.ABORTED), 1_000)

        assert result.aborted
        assert result.output == "partial" + ABORT_NOTE

    def test_truncation_before_timeout_note(self):
        result = ResultAssembler(max_output_length=5).assemble(
            "yes",
            outcome("y" * 5, ProcessState.TIMED_OUT, output_length=100),
            10,
        )

        assert result.truncated
        assert result.output_length == 100
        assert result.output == "y" * 5 + TRUNCATION_NOTE + timeout_note(10)

    def test_sandbox_annotation_last(self):
        sandbox = FakeSandbox()
        ResultAssembler(sandbox=sandbox).assemble("ls", outcome(exit_code=2), 1_000)

        assert sandbox.calls == [("annotate_output", 2)]

    def test_tool_output_shape(self):
        result = ResultAssembler().assemble("echo ok", outcome(), 1_000)

        assert result.to_tool_output("Say ok") == {
            "title": "echo ok",
            "output": "ok\n",
            "metadata": {"output": "ok\n", "exit": 0, "description": "Say ok"},
        }


class TestSandboxes:
    """Tests for the passthrough and resource-limit sandboxes."""

    def test_passthrough(self):
        sandbox = PassthroughSandbox()

        assert sandbox.wrap_command("ls") == "ls"
        assert sandbox.annotate_output("ls", "out", 137) == "out"

    @pytest.mark.skipif(sys.platform == "win32", reason="ulimit is POSIX only")
    def test_resource_limits_wrap(self):
        sandbox = ResourceLimitSandbox(ExecutionLimits(max_cpu_seconds=5, max_open_files=64))

        wrapped = sandbox.wrap_command("make test")

        assert wrapped.startswith("(\n")
        assert "ulimit -t 5" in wrapped
        assert "ulimit -n 64" in wrapped
        assert wrapped.endswith("\nmake test\n)")

    def test_limit_annotation(self):
        sandbox = ResourceLimitSandbox()

        assert "memory limit" in sandbox.annotate_output("x", "out", 137)
        assert "cpu_time limit" in sandbox.annotate_output("x", "out", 152)
        assert sandbox.annotate_output("x", "out", 0) == "out"
        assert sandbox.annotate_output("x", "out", None) == "out"

    def test_limit_signal_annotation(self):
        sandbox = ResourceLimitSandbox()

        note = sandbox.annotate_output("x", "out", None, "SIGXCPU")

        assert "exceeded the cpu_time limit" in note
        assert "likely" not in note
        assert sandbox.annotate_output("x", "out", None, "SIGTERM") == "out"

    def test_kill_sequence_signal_not_a_limit(self):
        """Test that a SIGKILL sent by the timeout is not reported as a limit."""
        result = ResultAssembler(sandbox=ResourceLimitSandbox()).assemble(
            "sleep 5",
            outcome("", ProcessState.TIMED_OUT, terminated_by="SIGKILL", signal="SIGKILL"),
            50,
        )

        assert "Sandbox" not in result.output

    @pytest.mark.skipif(sys.platform == "win32", reason="ulimit is POSIX only")
    @pytest.mark.asyncio
    async def test_cpu_limit_kill_annotated(self, tmp_path):
        """Test a real ulimit-wrapped busy loop through the supervisor."""
        sandbox = ResourceLimitSandbox(
            ExecutionLimits(max_cpu_seconds=1, max_processes=100_000, max_open_files=256)
        )
        command = "while :; do :; done"

        run_outcome = await ProcessSupervisor(cwd=tmp_path).run(
            sandbox.wrap_command(command), timeout_ms=20_000
        )
        result = ResultAssembler(sandbox=sandbox).assemble(command, run_outcome, 20_000)

        assert not result.timed_out
        assert run_outcome.exit_code == 152 or run_outcome.signal == "SIGXCPU"
        assert "cpu_time limit" in result.output
