"""Shellgate - policy-gated shell command execution for coding agents.

Every command an agent wants to run is sanitized, parsed into its
invocations, classified against an operator policy and, when the policy
asks for it, approved by the user before a process is spawned. Cleared
commands run in their own process group under a timeout, can be
cancelled cooperatively, and are always reclaimed.

- ShellGate: the full pipeline and the bash tool entry point
- analyze_command: classification report without execution
- ApprovalManager / ConsoleApprover: approval collaborators
- GateSettings: layered configuration
"""

__version__ = "0.1.0"

from shellgate.config import (
    GateSettings,
    SettingsContext,
    SettingsValidationError,
    get_context_settings,
    get_settings,
    reload_settings,
    set_context_settings,
    set_settings,
    validate_settings,
)
from shellgate.context import (
    get_context_execution,
    get_context_gate,
    set_context_execution,
    set_context_gate,
)
from shellgate.hitl import ApprovalManager, ApprovalResponse, ConsoleApprover, PinStore
from shellgate.logging import configure_logging
from shellgate.tools.shell import ShellGate, ShellPolicy, analyze_command

__all__ = [
    "__version__",
    # Gate
    "ShellGate",
    "ShellPolicy",
    "analyze_command",
    # Approval
    "ApprovalManager",
    "ApprovalResponse",
    "ConsoleApprover",
    "PinStore",
    # Settings
    "GateSettings",
    "SettingsContext",
    "SettingsValidationError",
    "get_settings",
    "set_settings",
    "set_context_settings",
    "get_context_settings",
    "reload_settings",
    "validate_settings",
    # Context
    "set_context_gate",
    "get_context_gate",
    "set_context_execution",
    "get_context_execution",
    # Logging
    "configure_logging",
]
