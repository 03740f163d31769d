"""Sandbox wrappers applied to cleared commands.

A sandbox rewrites an authorized command for confined execution and
annotates the output afterwards with any confinement violations. Calls
for one execution are bracketed by ``set_context`` / ``clear_context``.

- PassthroughSandbox: runs commands unchanged
- ResourceLimitSandbox: applies ulimit restrictions in a subshell
"""

import sys
from dataclasses import dataclass
from typing import Protocol

from shellgate.logging import Loggers
from shellgate.tools.shell.models import ExecutionContext

logger = Loggers.sandbox()


class Sandbox(Protocol):
    """Confinement layer used by the gate."""

    def set_context(self, context: ExecutionContext) -> None: ...

    def wrap_command(self, command: str) -> str: ...

    def annotate_output(
        self,
        command: str,
        output: str,
        exit_code: int | None = None,
        signal: str | None = None,
    ) -> str: ...

    def clear_context(self) -> None: ...


class PassthroughSandbox:
    """No confinement: commands run as given."""

    def set_context(self, context: ExecutionContext) -> None:
        pass

    def wrap_command(self, command: str) -> str:
        return command

    def annotate_output(
        self,
        command: str,
        output: str,
        exit_code: int | None = None,
        signal: str | None = None,
    ) -> str:
        return output

    def clear_context(self) -> None:
        pass


@dataclass
class ExecutionLimits:
    """Resource limits for command execution.

    Attributes:
        max_cpu_seconds: CPU time limit (ulimit -t).
        max_memory_mb: Memory limit (ulimit -v, or -m on macOS).
        max_processes: Process count limit (ulimit -u).
        max_open_files: Open file limit (ulimit -n).
    """

    max_cpu_seconds: int = 600
    max_memory_mb: int = 1024
    max_processes: int = 256
    max_open_files: int = 1024

    def describe(self) -> str:
        """Human-readable description of the limits."""
        return (
            f"CPU: {self.max_cpu_seconds}s, "
            f"Memory: {self.max_memory_mb}MB, "
            f"Processes: {self.max_processes}, "
            f"Open files: {self.max_open_files}"
        )


# Signals the kernel sends when a limit is exceeded
_LIMIT_SIGNALS = {
    "SIGKILL": "memory",
    "SIGXCPU": "cpu_time",
}

# The same signals as reported by the wrapping subshell (128 + signal number)
_LIMIT_EXIT_CODES = {
    137: "memory",
    152: "cpu_time",
}


class ResourceLimitSandbox:
    """Runs commands in a subshell with ulimit restrictions.

    Limits the shell cannot set (for lack of privilege) are skipped
    rather than failing the command.
    """

    def __init__(self, limits: ExecutionLimits | None = None):
        self.limits = limits or ExecutionLimits()
        self._context: ExecutionContext | None = None

    def set_context(self, context: ExecutionContext) -> None:
        self._context = context

    def clear_context(self) -> None:
        self._context = None

    def wrap_command(self, command: str) -> str:
        memory_kb = self.limits.max_memory_mb * 1024
        # macOS has no -v; -m (resident set) is the closest
        memory_flag = "-m" if sys.platform == "darwin" else "-v"
        ulimits = [
            f"ulimit -t {self.limits.max_cpu_seconds} 2>/dev/null || true",
            f"ulimit {memory_flag} {memory_kb} 2>/dev/null || true",
            f"ulimit -u {self.limits.max_processes} 2>/dev/null || true",
            f"ulimit -n {self.limits.max_open_files} 2>/dev/null || true",
        ]
        return "(\n" + "\n".join(ulimits) + f"\n{command}\n)"

    def annotate_output(
        self,
        command: str,
        output: str,
        exit_code: int | None = None,
        signal: str | None = None,
    ) -> str:
        """Note a likely limit violation.

        ``signal`` is the signal that ended the process when the gate did
        not send it itself. A command that exits 137 or 152 on its own is
        indistinguishable from a limit kill inside the subshell, so those
        statuses are reported as likely rather than certain.
        """
        if signal is not None:
            limit = _LIMIT_SIGNALS.get(signal)
            # Only SIGXCPU is sent by nothing but the limit itself
            certainty = "exceeded" if signal == "SIGXCPU" else "likely exceeded"
        else:
            limit = _LIMIT_EXIT_CODES.get(exit_code) if exit_code is not None else None
            certainty = "likely exceeded"
        if limit is None:
            return output
        logger.warning(
            "sandbox_limit_hit",
            limit=limit,
            exit_code=exit_code,
            signal=signal,
            call_id=self._context.call_id if self._context else None,
        )
        return (
            output
            + f"\n\n(Sandbox: command {certainty} the {limit} limit; "
            + f"limits are {self.limits.describe()})"
        )
