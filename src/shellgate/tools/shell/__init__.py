"""Policy-gated shell execution.

Commands pass through these stages before and during execution:
- Sanitize: reject bidi overrides, normalize homoglyphs and invisible characters
- Parse: split the command line into invocations (bashlex)
- Classify: resolve allow/ask/pin/deny per invocation, find external directories
- Authorize: deny short-circuits, everything else is batched into approvals
- Sandbox: optionally wrap the command in resource limits
- Supervise: process group, streamed output, timeout and cancel, kill escalation
- Assemble: truncation, timeout and abort notes
- Audit: one JSON line per request

Usage:
    from shellgate.hitl import ApprovalManager
    from shellgate.tools.shell import ShellGate

    gate = ShellGate(approver=ApprovalManager())
    output = await gate.execute({"command": "ls -la", "description": "List files"})

    # Classification only
    report = analyze_command("rm -rf build && make")
    report["tier"]  # "ask"
"""

from shellgate.tools.shell.executor import (
    BashParams,
    ShellGate,
    analyze_command,
    analyze_shell_command,
    bash,
)
from shellgate.tools.shell.config import (
    ShellPolicy,
    get_permissive_policy,
    get_strict_policy,
)
from shellgate.tools.shell.errors import (
    CommandParseError,
    ExecutionCancelledError,
    InvalidInputError,
    ObfuscationRejected,
    PermissionRejectedError,
    PinNotConfiguredError,
    PolicyDeniedError,
    ProcessSpawnError,
    ShellGateError,
)
from shellgate.tools.shell.models import (
    ClassificationResult,
    ExecutionContext,
    ExecutionRequest,
    ExecutionResult,
    Invocation,
    PermissionBatch,
    PolicyDecision,
    PolicyTier,
    ProcessOutcome,
    ProcessState,
    SanitizationResult,
    SyntaxTree,
)
from shellgate.tools.shell.preprocessor import ObfuscationSanitizer
from shellgate.tools.shell.parser import CommandParser
from shellgate.tools.shell.classifier import CommandClassifier
from shellgate.tools.shell.path_analyzer import PathAnalyzer
from shellgate.tools.shell.permission import PermissionGate
from shellgate.tools.shell.sandbox import (
    ExecutionLimits,
    PassthroughSandbox,
    ResourceLimitSandbox,
    Sandbox,
)
from shellgate.tools.shell.process import ProcessHandle, ProcessSupervisor
from shellgate.tools.shell.output import ResultAssembler
from shellgate.tools.shell.audit import AuditConfig, AuditEntry, AuditLogger

__all__ = [
    # Gate
    "ShellGate",
    "BashParams",
    "analyze_command",
    "analyze_shell_command",
    "bash",
    # Policy
    "ShellPolicy",
    "get_strict_policy",
    "get_permissive_policy",
    # Errors
    "ShellGateError",
    "InvalidInputError",
    "ObfuscationRejected",
    "CommandParseError",
    "PolicyDeniedError",
    "PermissionRejectedError",
    "PinNotConfiguredError",
    "ExecutionCancelledError",
    "ProcessSpawnError",
    # Pipeline stages
    "ObfuscationSanitizer",
    "CommandParser",
    "CommandClassifier",
    "PathAnalyzer",
    "PermissionGate",
    "ProcessSupervisor",
    "ProcessHandle",
    "ResultAssembler",
    # Sandbox
    "Sandbox",
    "PassthroughSandbox",
    "ResourceLimitSandbox",
    "ExecutionLimits",
    # Audit
    "AuditLogger",
    "AuditEntry",
    "AuditConfig",
    # Data models
    "ClassificationResult",
    "ExecutionContext",
    "ExecutionRequest",
    "ExecutionResult",
    "Invocation",
    "PermissionBatch",
    "PolicyDecision",
    "PolicyTier",
    "ProcessOutcome",
    "ProcessState",
    "SanitizationResult",
    "SyntaxTree",
]
