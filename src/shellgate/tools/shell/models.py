"""Data models for the command-execution gate.

Provides enums and dataclasses for sanitization, parsing, policy decisions,
permission batching and process results.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable


class PolicyTier(Enum):
    """Risk tier assigned to an invocation by policy matching."""

    ALLOW = "allow"
    ASK = "ask"
    PIN = "pin"
    DENY = "deny"

    @property
    def precedence(self) -> int:
        """Higher wins when several rules match the same invocation."""
        return _TIER_PRECEDENCE[self]

    @classmethod
    def strongest(cls, tiers: Iterable[PolicyTier]) -> PolicyTier | None:
        """Return the highest-precedence tier, or None if there are none."""
        return max(tiers, key=lambda t: t.precedence, default=None)


_TIER_PRECEDENCE = {
    PolicyTier.ALLOW: 0,
    PolicyTier.ASK: 1,
    PolicyTier.PIN: 2,
    PolicyTier.DENY: 3,
}


class ProcessState(Enum):
    """Lifecycle state of a spawned process."""

    PENDING = "pending"
    RUNNING = "running"
    EXITED = "exited"
    TIMED_OUT = "timed_out"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessState.EXITED, ProcessState.TIMED_OUT, ProcessState.ABORTED)


class FindingKind(Enum):
    """Category of an obfuscation finding."""

    BIDI = "bidi"  # Always fatal
    ZERO_WIDTH = "zero_width"
    HOMOGLYPH = "homoglyph"
    CONTROL = "control"


@dataclass(frozen=True)
class ObfuscationFinding:
    """One category of suspicious characters found in a command."""

    kind: FindingKind
    message: str
    code_points: tuple[str, ...] = ()


@dataclass(frozen=True)
class SanitizationResult:
    """Result of scanning a command for display/execution divergence.

    Attributes:
        original: The command exactly as received.
        normalized: Command with invisible characters removed and
            homoglyphs replaced by their ASCII look-alikes.
        findings: One entry per category of suspicious characters.
    """

    original: str
    normalized: str
    findings: tuple[ObfuscationFinding, ...] = ()

    @property
    def suspicious(self) -> bool:
        return bool(self.findings)

    @property
    def warnings(self) -> list[str]:
        return [f.message for f in self.findings]

    @property
    def has_bidi(self) -> bool:
        """Bidi overrides make displayed and executed text diverge."""
        return any(f.kind is FindingKind.BIDI for f in self.findings)


@dataclass(frozen=True)
class Invocation:
    """One parsed command: program name plus its word arguments.

    Redirections, assignments and other non-word parts are not included
    in ``args``.
    """

    head: str
    args: tuple[str, ...] = ()
    text: str = ""  # Source slice for messages

    @property
    def tokens(self) -> list[str]:
        return [self.head, *self.args]

    def __str__(self) -> str:
        return self.text or " ".join(self.tokens)


@dataclass(frozen=True)
class SyntaxTree:
    """Parsed command line flattened to its invocations in source order."""

    source: str
    invocations: tuple[Invocation, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.invocations


@dataclass(frozen=True)
class PolicyDecision:
    """Tier resolved for one invocation.

    Attributes:
        invocation: The invocation that was matched.
        tier: Resolved tier after precedence.
        pattern: Approval pattern derived from the head and first
            non-flag argument (``head arg *`` or ``head *``).
        matched_rule: Policy pattern that produced the tier, None when
            the default or an implicit rule applied.
    """

    invocation: Invocation
    tier: PolicyTier
    pattern: str
    matched_rule: str | None = None


@dataclass
class ClassificationResult:
    """Decisions for every invocation plus external-directory findings."""

    decisions: list[PolicyDecision] = field(default_factory=list)
    external_paths: list[str] = field(default_factory=list)

    def add_external(self, directory: str) -> None:
        if directory not in self.external_paths:
            self.external_paths.append(directory)

    def by_tier(self, tier: PolicyTier) -> list[PolicyDecision]:
        return [d for d in self.decisions if d.tier is tier]

    @property
    def denied(self) -> list[PolicyDecision]:
        return self.by_tier(PolicyTier.DENY)

    @property
    def requires_approval(self) -> bool:
        return bool(
            self.external_paths
            or self.by_tier(PolicyTier.ASK)
            or self.by_tier(PolicyTier.PIN)
        )


@dataclass
class PermissionBatch:
    """Deduplicated approval work for one command."""

    ask_patterns: list[str] = field(default_factory=list)
    pin_patterns: list[str] = field(default_factory=list)
    external_dirs: list[str] = field(default_factory=list)

    @classmethod
    def from_classification(cls, result: ClassificationResult) -> PermissionBatch:
        batch = cls(external_dirs=list(dict.fromkeys(result.external_paths)))
        for decision in result.decisions:
            if decision.tier is PolicyTier.ASK and decision.pattern not in batch.ask_patterns:
                batch.ask_patterns.append(decision.pattern)
            elif decision.tier is PolicyTier.PIN and decision.pattern not in batch.pin_patterns:
                batch.pin_patterns.append(decision.pattern)
        return batch

    @property
    def is_empty(self) -> bool:
        return not (self.ask_patterns or self.pin_patterns or self.external_dirs)


@dataclass
class ExecutionContext:
    """Caller identity and cancellation for one tool call.

    Attributes:
        session_id: Session the call belongs to (scopes "always" approvals).
        message_id: Message that issued the call.
        call_id: Tool call identifier.
        agent: Agent name used to pick per-agent policy overrides.
        cancel: Set by the caller to abort the call at any suspension point.
        on_metadata: Receives ``{"output", "description"}`` as output streams.
    """

    session_id: str = "default"
    message_id: str = ""
    call_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    agent: str | None = None
    cancel: asyncio.Event = field(default_factory=asyncio.Event)
    on_metadata: Callable[[dict[str, Any]], None] | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()


@dataclass(frozen=True)
class ExecutionRequest:
    """Immutable input for one shell tool invocation."""

    command: str
    description: str = ""
    timeout_ms: int | None = None
    context: ExecutionContext = field(default_factory=ExecutionContext)


@dataclass(frozen=True)
class ProcessOutcome:
    """What the process supervisor observed, before output assembly.

    Attributes:
        output: Combined stdout/stderr, capped at the buffer limit.
        output_length: Total characters produced, including dropped ones.
        exit_code: Exit status, None when ended by a signal or never spawned.
        state: Terminal state of the handle.
        terminated_by: Last signal sent by the kill sequence, if any.
        signal: Signal that ended the process, whoever sent it.
        duration_ms: Wall time from spawn to exit.
    """

    output: str
    output_length: int
    exit_code: int | None
    state: ProcessState
    terminated_by: str | None = None
    signal: str | None = None
    duration_ms: int = 0
    pid: int | None = None  # None when the process was never spawned

    @property
    def timed_out(self) -> bool:
        return self.state is ProcessState.TIMED_OUT

    @property
    def aborted(self) -> bool:
        return self.state is ProcessState.ABORTED


@dataclass(frozen=True)
class ExecutionResult:
    """Final result returned to the caller, produced once per request."""

    title: str
    output: str
    exit_code: int | None
    truncated: bool = False
    timed_out: bool = False
    aborted: bool = False
    output_length: int = 0
    terminated_by: str | None = None
    duration_ms: int = 0

    def to_tool_output(self, description: str) -> dict[str, Any]:
        """Shape the result as the tool's structured response."""
        return {
            "title": self.title,
            "output": self.output,
            "metadata": {
                "output": self.output,
                "exit": self.exit_code,
                "description": description,
            },
        }


@dataclass(frozen=True)
class PathCheck:
    """Result of resolving one path argument."""

    original: str
    resolved: Path | None = None  # None if the path could not be resolved
    in_project: bool = False
    in_workspace: bool = False

    @property
    def is_external(self) -> bool:
        return self.resolved is not None and not (self.in_project or self.in_workspace)
