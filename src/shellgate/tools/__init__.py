"""Agent-facing tools.

Registry:
    - ToolRegistry / register_tool: name-indexed tool definitions
    - ToolError / ErrorCode: failures the calling agent can act on
    - with_result_wrapper: uniform success/error dictionaries

Tools:
    - bash: policy-gated shell execution (shellgate.tools.shell)
    - analyze_shell_command: classification report for a command
    - manual_command: hand a command to the user to run themselves
"""

from shellgate.tools.registry import (
    ErrorCode,
    ToolCategory,
    ToolDefinition,
    ToolError,
    ToolRegistry,
    ToolResult,
    get_registry,
    register_tool,
    with_result_wrapper,
)
from shellgate.tools.manual_command import manual_command
from shellgate.tools.shell import analyze_shell_command, bash

__all__ = [
    # Registry
    "ErrorCode",
    "ToolCategory",
    "ToolDefinition",
    "ToolError",
    "ToolRegistry",
    "ToolResult",
    "get_registry",
    "register_tool",
    "with_result_wrapper",
    # Tools
    "bash",
    "analyze_shell_command",
    "manual_command",
]
