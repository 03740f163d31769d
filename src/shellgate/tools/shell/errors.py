"""Errors raised by the command-execution gate.

Every error aborts the request before any output is produced. Timeouts,
cancellation during execution and truncation are not errors; they are
reported as flags on ExecutionResult.
"""

from typing import Any

from shellgate.tools.registry import ErrorCode, ToolError

REJECTED_DEFAULT_MESSAGE = (
    "The user rejected this tool call. DO NOT CALL MORE TOOLS! "
    "Wait for further instructions."
)


class ShellGateError(ToolError):
    """Base class for gate failures."""

    def __init__(
        self,
        message: str,
        error_code: str,
        details: dict[str, Any] | None = None,
        recoverable: bool = False,
    ):
        super().__init__(
            message,
            error_code=error_code,
            recoverable=recoverable,
            details=details,
            tool_name="bash",
        )


class InvalidInputError(ShellGateError):
    """Tool input failed validation."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.INVALID_INPUT, recoverable=True)


class ObfuscationRejected(ShellGateError):
    """Command contains bidirectional override characters."""

    def __init__(self, original: str, normalized: str, warnings: list[str]):
        message = (
            "SECURITY: Command contains BiDi override characters that make the "
            "displayed text differ from what would be executed. "
            "The command was not run.\n\n"
            f"Original: {original.encode('unicode_escape').decode('ascii')}\n"
            f"Normalized: {normalized}\n\n"
            "Warnings:\n" + "\n".join(f"- {w}" for w in warnings)
        )
        super().__init__(
            message,
            ErrorCode.OBFUSCATION_REJECTED,
            details={"warnings": warnings},
        )


class CommandParseError(ShellGateError):
    """Command text could not be parsed."""

    def __init__(self, command: str, reason: str):
        super().__init__(
            f"Failed to parse command: {reason}",
            ErrorCode.PARSE_ERROR,
            details={"command": command},
            recoverable=True,
        )


class PolicyDeniedError(ShellGateError):
    """A deny-tier invocation is present in the command."""

    def __init__(self, command: str, denied: list[str]):
        message = (
            "BLOCKED: This command is restricted by security configuration "
            "and cannot be executed.\n\n"
            f"Command: {command}\n"
            "Denied: " + ", ".join(denied) + "\n\n"
            "What to do: Use the 'manual_command' tool to ask the user to run "
            "this command themselves, explaining what it does and why it is "
            "needed. Do NOT try alternative commands to bypass this restriction."
        )
        super().__init__(
            message,
            ErrorCode.POLICY_DENIED,
            details={"command": command, "denied": denied},
        )


class PermissionRejectedError(ShellGateError):
    """The user rejected an approval request."""

    def __init__(self, message: str | None = None, request_type: str | None = None):
        super().__init__(
            message or REJECTED_DEFAULT_MESSAGE,
            ErrorCode.PERMISSION_REJECTED,
            details={"request_type": request_type, "custom_message": bool(message)},
        )


class PinNotConfiguredError(ShellGateError):
    """A pin-tier pattern matched but no PIN has been set."""

    def __init__(self, patterns: list[str]):
        super().__init__(
            "This command requires PIN protection but no PIN is configured. "
            "Run: shellgate pin set\n\n"
            "Patterns: " + ", ".join(patterns),
            ErrorCode.PIN_NOT_CONFIGURED,
            details={"patterns": patterns},
        )


class ExecutionCancelledError(ShellGateError):
    """The caller cancelled while an approval was pending."""

    def __init__(self, stage: str = "permission"):
        super().__init__(
            f"Command was cancelled during {stage}; nothing was executed.",
            ErrorCode.CANCELLED,
            details={"stage": stage},
        )


class ProcessSpawnError(ShellGateError):
    """The operating system failed to create the process."""

    def __init__(self, command: str, reason: str):
        super().__init__(
            f"Failed to start command: {reason}",
            ErrorCode.SPAWN_FAILED,
            details={"command": command},
        )
