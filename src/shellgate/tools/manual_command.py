"""Manual execution hand-off.

Commands the gate refuses to run (privileged or system-level operations)
can still be handed to the user, who runs them in their own terminal.
"""

from typing import Any

from shellgate.logging import Loggers
from shellgate.tools.registry import (
    ErrorCode,
    ToolCategory,
    ToolError,
    register_tool,
    with_result_wrapper,
)

logger = Loggers.tools()


@register_tool(
    category=ToolCategory.OTHER,
    description=(
        "Display a command that the user must run manually (sudo commands, "
        "system operations, anything the shell policy blocks). The command is "
        "shown in a copy-able block."
    ),
)
@with_result_wrapper
def manual_command(command: str, reason: str) -> dict[str, Any]:
    """Hand a command to the user instead of executing it.

    Args:
        command: The command that needs to be run manually.
        reason: Why it needs manual execution (e.g. "requires sudo").

    Returns:
        Record with title, output and the command/reason metadata.
    """
    if not command.strip():
        raise ToolError(
            "manual_command requires a non-empty command",
            error_code=ErrorCode.INVALID_INPUT,
            recoverable=True,
        )

    logger.info("manual_command_requested", command=command, reason=reason)
    return {
        "title": "Manual command",
        "output": f"Command: {command}\nReason: {reason}",
        "metadata": {"command": command, "reason": reason},
    }
