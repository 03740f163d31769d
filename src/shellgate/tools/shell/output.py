"""Result assembly: cap output, annotate and build the final result."""

from shellgate.constants import MAX_OUTPUT_LENGTH
from shellgate.tools.shell.models import ExecutionResult, ProcessOutcome
from shellgate.tools.shell.sandbox import PassthroughSandbox, Sandbox

TRUNCATION_NOTE = "\n\n(Output was truncated due to length limit)"
ABORT_NOTE = "\n\n(Command was aborted)"


def timeout_note(timeout_ms: int) -> str:
    return f"\n\n(Command timed out after {timeout_ms} ms)"


def truncate_output(output: str, total_length: int, max_length: int = MAX_OUTPUT_LENGTH) -> tuple[str, bool]:
    """Cap output at ``max_length`` characters.

    Args:
        output: Output text (possibly already capped by the buffer).
        total_length: Characters the process actually produced.
        max_length: Maximum characters to keep.

    Returns:
        Tuple of (output, was_truncated); truncated output ends with a note.
    """
    if total_length <= max_length and len(output) <= max_length:
        return output, False
    return output[:max_length] + TRUNCATION_NOTE, True


class ResultAssembler:
    """Builds the ExecutionResult for a finished process."""

    def __init__(
        self,
        max_output_length: int = MAX_OUTPUT_LENGTH,
        sandbox: Sandbox | None = None,
    ):
        self.max_output_length = max_output_length
        self.sandbox = sandbox or PassthroughSandbox()

    def assemble(self, command: str, outcome: ProcessOutcome, timeout_ms: int) -> ExecutionResult:
        """Finalize output for one run.

        Notes are appended in order: truncation, then timeout or abort,
        then any sandbox annotations.
        """
        output, truncated = truncate_output(
            outcome.output, outcome.output_length, self.max_output_length
        )
        if outcome.timed_out:
            output += timeout_note(timeout_ms)
        elif outcome.aborted:
            output += ABORT_NOTE

        # Signals the kill sequence sent are not limit violations
        signal = outcome.signal if outcome.terminated_by is None else None
        output = self.sandbox.annotate_output(command, output, outcome.exit_code, signal)

        return ExecutionResult(
            title=command,
            output=output,
            exit_code=outcome.exit_code,
            truncated=truncated,
            timed_out=outcome.timed_out,
            aborted=outcome.aborted,
            output_length=outcome.output_length,
            terminated_by=outcome.terminated_by,
            duration_ms=outcome.duration_ms,
        )
