"""Process lifecycle manager.

Spawns a command as the leader of a new process group, streams its
combined output, and races a timeout timer against the caller's cancel
event. Whichever fires first wins the handle's single terminal-state
transition and runs the kill sequence:

    SIGTERM to the group -> grace window -> SIGKILL to the group

On Windows the whole tree is killed with ``taskkill /f /t``.
"""

import asyncio
import codecs
import os
import signal
import subprocess
import sys
import threading
import time
from pathlib import Path
from typing import Callable

from shellgate.constants import KILL_GRACE_MS, MAX_OUTPUT_LENGTH, format_size, truncate
from shellgate.logging import Loggers
from shellgate.tools.shell.errors import ProcessSpawnError
from shellgate.tools.shell.models import ProcessOutcome, ProcessState

logger = Loggers.process()

IS_WINDOWS = sys.platform == "win32"
READ_CHUNK_SIZE = 4096
# How long to wait for the output pipe to close once the leader exits
PIPE_DRAIN_SECONDS = 1.0
STREAM_LIMIT = 2**16


def _signal_name(returncode: int) -> str | None:
    """Name of the signal that ended a process, from a negative return code."""
    if returncode >= 0:
        return None
    try:
        return signal.Signals(-returncode).name
    except ValueError:
        return f"SIG{-returncode}"


class _ExitAwareProtocol(asyncio.subprocess.SubprocessStreamProtocol):
    """Stream protocol that reports the leader's exit on its own.

    ``Process.wait()`` only returns once every pipe has closed, which a
    backgrounded descendant can postpone indefinitely. ``exited`` is set
    as soon as the leader itself is reaped.
    """

    def __init__(self, limit: int, loop: asyncio.AbstractEventLoop):
        super().__init__(limit=limit, loop=loop)
        self.exited = asyncio.Event()

    def process_exited(self) -> None:
        super().process_exited()
        self.exited.set()


class OutputBuffer:
    """Growing text buffer that stores at most ``limit`` characters.

    Characters past the limit are dropped but still counted in
    ``total_length``.
    """

    def __init__(self, limit: int = MAX_OUTPUT_LENGTH):
        self.limit = limit
        self.total_length = 0
        self._chunks: list[str] = []
        self._size = 0

    def append(self, text: str) -> None:
        self.total_length += len(text)
        room = self.limit - self._size
        if room <= 0:
            return
        piece = text[:room]
        self._chunks.append(piece)
        self._size += len(piece)

    @property
    def truncated(self) -> bool:
        return self.total_length > self.limit

    def getvalue(self) -> str:
        return "".join(self._chunks)


class ProcessHandle:
    """A running process and its single terminal-state transition.

    The state cell is guarded by a lock so that only the first of
    exit / timeout / cancel wins; later termination requests are no-ops.
    """

    def __init__(self, process: asyncio.subprocess.Process, grace_seconds: float):
        self.process = process
        self.pid = process.pid
        # start_new_session makes the child its own group leader
        self.pgid = process.pid
        self.grace_seconds = grace_seconds
        self.signals_sent: list[str] = []
        self._state = ProcessState.RUNNING
        self._lock = threading.Lock()
        self._exited = asyncio.Event()

    @property
    def state(self) -> ProcessState:
        with self._lock:
            return self._state

    @property
    def has_exited(self) -> bool:
        return self._exited.is_set()

    def _transition(self, new_state: ProcessState) -> bool:
        with self._lock:
            if self._state is not ProcessState.RUNNING:
                return False
            self._state = new_state
            return True

    def mark_exited(self) -> bool:
        """Record natural exit. Returns False if a kill already claimed the state."""
        self._exited.set()
        return self._transition(ProcessState.EXITED)

    async def terminate(self, reason: ProcessState) -> bool:
        """Kill the process tree on behalf of a timeout or cancellation.

        Returns:
            True if this call ran the kill sequence, False if the process
            had already reached a terminal state.
        """
        if reason not in (ProcessState.TIMED_OUT, ProcessState.ABORTED):
            raise ValueError(f"Cannot terminate with state {reason.value}")
        if not self._transition(reason):
            logger.debug("terminate_ignored", pid=self.pid, state=self.state.value)
            return False

        logger.info("process_terminating", pid=self.pid, reason=reason.value)
        if IS_WINDOWS:
            await self._taskkill()
            return True

        self.send_signal(signal.SIGTERM)
        try:
            await asyncio.wait_for(self._exited.wait(), self.grace_seconds)
        except asyncio.TimeoutError:
            logger.info("process_kill_escalated", pid=self.pid)
            self.send_signal(signal.SIGKILL)
        return True

    def send_signal(self, sig: signal.Signals) -> None:
        """Signal the whole process group and record it."""
        self.signals_sent.append(sig.name)
        self._signal_group(sig)

    def _signal_group(self, sig: signal.Signals) -> None:
        """Signal the process group, falling back to the leader."""
        try:
            os.killpg(self.pgid, sig)
            return
        except ProcessLookupError:
            logger.debug("process_group_gone", pid=self.pid, signal=sig.name)
            return
        except PermissionError:
            logger.debug("process_group_signal_denied", pid=self.pid, signal=sig.name)
        try:
            self.process.send_signal(sig)
        except ProcessLookupError:
            logger.debug("process_gone", pid=self.pid, signal=sig.name)

    def kill_group(self) -> None:
        """Force-kill whatever is left of the tree without touching the state."""
        if IS_WINDOWS:
            subprocess.run(
                ["taskkill", "/pid", str(self.pid), "/f", "/t"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
            return
        self._signal_group(signal.SIGKILL)

    async def _taskkill(self) -> None:
        self.signals_sent.append("taskkill")
        killer = await asyncio.create_subprocess_exec(
            "taskkill", "/pid", str(self.pid), "/f", "/t",
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        await killer.wait()


class ProcessSupervisor:
    """Runs commands with streaming output, timeout and cancellation.

    Example:
        supervisor = ProcessSupervisor(cwd=project_root)
        outcome = await supervisor.run("make test", timeout_ms=60_000)
        if outcome.timed_out:
            ...
    """

    def __init__(
        self,
        cwd: Path,
        max_output_length: int = MAX_OUTPUT_LENGTH,
        kill_grace_ms: int = KILL_GRACE_MS,
        env: dict[str, str] | None = None,
    ):
        self.cwd = Path(cwd)
        self.max_output_length = max_output_length
        self.grace_seconds = kill_grace_ms / 1000
        self.env = env

    async def run(
        self,
        command: str,
        timeout_ms: int,
        cancel: asyncio.Event | None = None,
        on_progress: Callable[[str], None] | None = None,
    ) -> ProcessOutcome:
        """Run a command to completion, timeout or cancellation.

        Args:
            command: Shell command line (already wrapped by the sandbox).
            timeout_ms: Time before the kill sequence starts.
            cancel: Event that aborts the run when set.
            on_progress: Called with the output so far after every chunk.

        Returns:
            ProcessOutcome describing how the process ended.

        Raises:
            ProcessSpawnError: If the process could not be created.
        """
        cancel = cancel or asyncio.Event()
        if cancel.is_set():
            logger.info("process_skipped_cancelled")
            return ProcessOutcome(
                output="",
                output_length=0,
                exit_code=None,
                state=ProcessState.ABORTED,
            )

        started = time.monotonic()
        process, exited = await self._spawn(command)
        handle = ProcessHandle(process, self.grace_seconds)
        logger.info("process_spawned", pid=handle.pid, command=truncate(command))

        buffer = OutputBuffer(self.max_output_length)
        reader = asyncio.ensure_future(self._pump(process.stdout, buffer, on_progress))
        watchers = [
            asyncio.ensure_future(self._expire(handle, timeout_ms)),
            asyncio.ensure_future(self._watch_cancel(handle, cancel)),
        ]

        try:
            await exited.wait()
            returncode = process.returncode
            handle.mark_exited()
            await self._drain(reader, handle)
        finally:
            for task in watchers:
                task.cancel()
            if process.returncode is None:
                # The run itself was cancelled; never leave the tree behind
                handle.kill_group()
                await asyncio.wait({asyncio.ensure_future(process.wait())}, timeout=self.grace_seconds)
            if not reader.done():
                reader.cancel()
            await asyncio.gather(reader, *watchers, return_exceptions=True)

        duration_ms = int((time.monotonic() - started) * 1000)
        outcome = ProcessOutcome(
            output=buffer.getvalue(),
            output_length=buffer.total_length,
            # Negative return codes mean the process died from a signal
            exit_code=returncode if returncode >= 0 else None,
            signal=_signal_name(returncode),
            state=handle.state,
            terminated_by=handle.signals_sent[-1] if handle.signals_sent else None,
            duration_ms=duration_ms,
            pid=handle.pid,
        )
        logger.info(
            "process_exited",
            pid=handle.pid,
            exit_code=outcome.exit_code,
            state=outcome.state.value,
            duration_ms=duration_ms,
            output_size=format_size(buffer.total_length),
        )
        return outcome

    async def _spawn(self, command: str) -> tuple[asyncio.subprocess.Process, asyncio.Event]:
        """Start the command; returns the process and its leader-exit event."""
        kwargs: dict = {
            "stdin": asyncio.subprocess.DEVNULL,
            "stdout": asyncio.subprocess.PIPE,
            "stderr": asyncio.subprocess.STDOUT,
            "cwd": str(self.cwd),
            "env": self.env,
        }
        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            kwargs["start_new_session"] = True

        try:
            loop = asyncio.get_running_loop()
            transport, protocol = await loop.subprocess_shell(
                lambda: _ExitAwareProtocol(limit=STREAM_LIMIT, loop=loop), command, **kwargs
            )
        except OSError as e:
            logger.error("process_spawn_failed", error=str(e))
            raise ProcessSpawnError(command, str(e)) from e
        return asyncio.subprocess.Process(transport, protocol, loop), protocol.exited

    @staticmethod
    async def _pump(
        stream: asyncio.StreamReader,
        buffer: OutputBuffer,
        on_progress: Callable[[str], None] | None,
    ) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            text = decoder.decode(chunk)
            if not text:
                continue
            buffer.append(text)
            if on_progress is not None:
                on_progress(buffer.getvalue())
        tail = decoder.decode(b"", final=True)
        if tail:
            buffer.append(tail)

    @staticmethod
    async def _expire(handle: ProcessHandle, timeout_ms: int) -> None:
        await asyncio.sleep(timeout_ms / 1000)
        await handle.terminate(ProcessState.TIMED_OUT)

    @staticmethod
    async def _watch_cancel(handle: ProcessHandle, cancel: asyncio.Event) -> None:
        await cancel.wait()
        await handle.terminate(ProcessState.ABORTED)

    async def _drain(self, reader: asyncio.Future, handle: ProcessHandle) -> None:
        """Wait for the output pipe to close after the leader exits.

        Background descendants can keep the pipe open indefinitely; if it
        is still open after PIPE_DRAIN_SECONDS they are killed.
        """
        _, pending = await asyncio.wait({reader}, timeout=PIPE_DRAIN_SECONDS)
        if not pending:
            return
        logger.info("process_orphans_killed", pid=handle.pid)
        handle.kill_group()
        await asyncio.wait(pending, timeout=self.grace_seconds)
