"""Command-execution gate: the full classify-then-execute pipeline.

Stages, in order:
1. Sanitize (bidi overrides abort, other findings warn)
2. Parse into invocations
3. Classify against the policy, collect external directories
4. Authorize (deny short-circuits, then batched approvals)
5. Wrap in the sandbox unless the command is trusted
6. Run under the process supervisor
7. Assemble the result

Every request is audited, whether it ran or was blocked.
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from shellgate import wildcard
from shellgate.config import GateSettings, get_settings
from shellgate.context import get_context_execution, get_context_gate
from shellgate.hitl.approval import Approver
from shellgate.hitl.pin import PinStore
from shellgate.logging import Loggers, bind_context, unbind_context
from shellgate.tools.registry import (
    ErrorCode,
    ToolCategory,
    ToolError,
    register_tool,
    with_result_wrapper,
)
from shellgate.tools.shell.audit import AuditConfig, AuditLogger
from shellgate.tools.shell.classifier import CommandClassifier
from shellgate.tools.shell.config import ShellPolicy
from shellgate.tools.shell.errors import (
    InvalidInputError,
    ObfuscationRejected,
    ShellGateError,
)
from shellgate.tools.shell.models import (
    ClassificationResult,
    ExecutionContext,
    ExecutionRequest,
    ExecutionResult,
    PolicyTier,
    SanitizationResult,
)
from shellgate.tools.shell.output import ResultAssembler
from shellgate.tools.shell.parser import CommandParser
from shellgate.tools.shell.path_analyzer import PathAnalyzer
from shellgate.tools.shell.permission import PermissionGate
from shellgate.tools.shell.preprocessor import ObfuscationSanitizer
from shellgate.tools.shell.process import ProcessSupervisor
from shellgate.tools.shell.sandbox import (
    ExecutionLimits,
    PassthroughSandbox,
    ResourceLimitSandbox,
    Sandbox,
)

logger = Loggers.gate()

BASH_DESCRIPTION = (
    "Run a shell command in the project directory. Commands are checked "
    "against the shell policy and may require user approval."
)


class BashParams(BaseModel):
    """Input accepted by the bash tool."""

    command: str = Field(min_length=1, description="The command to execute")
    timeout: int | None = Field(
        default=None,
        ge=0,
        description="Optional timeout in milliseconds",
    )
    description: str = Field(
        description="Clear, concise description of what this command does in 5-10 words",
    )


def _validate_params(params: BashParams | dict[str, Any]) -> BashParams:
    if isinstance(params, BashParams):
        return params
    try:
        return BashParams.model_validate(params)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise InvalidInputError(f"Invalid bash tool input: {problems}") from e


def _sandbox_from_settings(settings: GateSettings) -> Sandbox:
    if not settings.sandbox_enabled:
        return PassthroughSandbox()
    return ResourceLimitSandbox(
        ExecutionLimits(
            max_cpu_seconds=settings.sandbox_max_cpu_seconds,
            max_memory_mb=settings.sandbox_max_memory_mb,
            max_processes=settings.sandbox_max_processes,
            max_open_files=settings.sandbox_max_open_files,
        )
    )


def _audit_from_settings(settings: GateSettings) -> AuditLogger:
    return AuditLogger(
        AuditConfig(
            enabled=settings.audit_enabled,
            log_dir=str(settings.audit_dir),
            retention_days=settings.audit_retention_days,
        )
    )


class ShellGate:
    """Runs shell commands through sanitization, policy and approval.

    Example:
        gate = ShellGate(approver=ApprovalManager())
        output = await gate.execute({"command": "ls -la", "description": "List files"})
        print(output["metadata"]["exit"])
    """

    def __init__(
        self,
        approver: Approver,
        settings: GateSettings | None = None,
        policy: ShellPolicy | None = None,
        sandbox: Sandbox | None = None,
        pin_store: PinStore | None = None,
        audit: AuditLogger | None = None,
    ):
        """Initialize the gate.

        Args:
            approver: Collaborator asked for ask/pin/external approvals.
            settings: Gate settings (default: current settings).
            policy: Fixed policy. When None, the policy file named in
                settings (or the default location) is read per request.
            sandbox: Confinement wrapper (default from settings).
            pin_store: PIN storage (default: settings.pin_file).
            audit: Audit logger (default from settings).
        """
        self.settings = settings or get_settings()
        self._policy = policy
        self.pin_store = pin_store or PinStore(self.settings.pin_file)
        self.sandbox = sandbox or _sandbox_from_settings(self.settings)
        self.audit = audit or _audit_from_settings(self.settings)

        self.sanitizer = ObfuscationSanitizer()
        self.parser = CommandParser()
        self.permission = PermissionGate(approver, self.pin_store)
        self.supervisor = ProcessSupervisor(
            cwd=self.settings.project_root,
            max_output_length=self.settings.max_output_length,
            kill_grace_ms=self.settings.kill_grace_ms,
        )
        self.assembler = ResultAssembler(self.settings.max_output_length, self.sandbox)

    def load_policy(self, agent: str | None = None) -> ShellPolicy:
        """Effective policy for an agent, read from its source."""
        if self._policy is not None:
            policy = self._policy
        elif self.settings.policy_file is not None:
            policy = ShellPolicy.from_yaml(self.settings.policy_file)
        else:
            policy = ShellPolicy.load_default()
        return policy.for_agent(agent)

    def classifier_for(self, policy: ShellPolicy) -> CommandClassifier:
        analyzer = PathAnalyzer(
            self.settings.project_root,
            [*self.settings.workspace_dirs, *policy.workspace_dirs],
        )
        return CommandClassifier(policy, analyzer)

    def resolve_timeout(self, timeout_ms: int | None) -> int:
        """Apply the default and clamp to the maximum."""
        if timeout_ms is None:
            timeout_ms = self.settings.default_timeout_ms
        return min(timeout_ms, self.settings.max_timeout_ms)

    def is_trusted(self, command: str, policy: ShellPolicy) -> bool:
        return wildcard.match_any(
            command, [*self.settings.trusted_commands, *policy.trusted_commands]
        )

    async def execute(
        self,
        params: BashParams | dict[str, Any],
        context: ExecutionContext | None = None,
    ) -> dict[str, Any]:
        """Tool entry point: validate input, run, and shape the response.

        Returns:
            ``{"title", "output", "metadata": {"output", "exit", "description"}}``

        Raises:
            InvalidInputError: If the input is invalid (checked first).
            ShellGateError: Any other gate failure.
        """
        params = _validate_params(params)
        request = ExecutionRequest(
            command=params.command,
            description=params.description,
            timeout_ms=params.timeout,
            context=context or ExecutionContext(),
        )
        result = await self.run(request)
        return result.to_tool_output(request.description)

    async def run(self, request: ExecutionRequest) -> ExecutionResult:
        """Run one request through the whole pipeline."""
        bind_context(session_id=request.context.session_id, call_id=request.context.call_id)
        try:
            return await self._run(request)
        finally:
            unbind_context("session_id", "call_id")

    async def _run(self, request: ExecutionRequest) -> ExecutionResult:
        context = request.context
        policy = self.load_policy(context.agent)

        sanitized = self.sanitizer.sanitize(request.command)
        if sanitized.has_bidi:
            logger.warning("obfuscation_rejected", warnings=sanitized.warnings)
            error = ObfuscationRejected(request.command, sanitized.normalized, sanitized.warnings)
            self._audit_blocked(request, sanitized, None, error)
            raise error
        if sanitized.suspicious:
            logger.warning(
                "obfuscation_detected",
                warnings=sanitized.warnings,
                normalized=sanitized.normalized,
            )
        command = sanitized.normalized

        classification = None
        try:
            tree = self.parser.parse(command)
            classification = self.classifier_for(policy).classify(tree)
            await self.permission.authorize(request, classification, policy.external_directory)
        except ShellGateError as e:
            self._audit_blocked(request, sanitized, classification, e)
            raise

        timeout_ms = self.resolve_timeout(request.timeout_ms)
        trusted = self.is_trusted(command, policy)

        def on_progress(output: str) -> None:
            if context.on_metadata is not None:
                context.on_metadata({"output": output, "description": request.description})

        self.sandbox.set_context(context)
        try:
            to_run = command if trusted else self.sandbox.wrap_command(command)
            try:
                outcome = await self.supervisor.run(
                    to_run,
                    timeout_ms=timeout_ms,
                    cancel=context.cancel,
                    on_progress=on_progress,
                )
            except ShellGateError as e:
                self._audit_blocked(request, sanitized, classification, e)
                raise
            result = self.assembler.assemble(request.command, outcome, timeout_ms)
        finally:
            self.sandbox.clear_context()

        self.audit.log_command(
            command=request.command,
            tier=self._highest_tier(classification),
            executed=outcome.pid is not None,
            session_id=context.session_id,
            call_id=context.call_id,
            normalized_command=command,
            patterns=[d.pattern for d in classification.decisions],
            external_paths=classification.external_paths,
            warnings=sanitized.warnings,
            exit_code=result.exit_code,
            duration_ms=result.duration_ms,
            timed_out=result.timed_out,
            aborted=result.aborted,
            truncated=result.truncated,
            output=outcome.output,
            working_dir=self.settings.project_root,
        )
        return result

    @staticmethod
    def _highest_tier(classification: ClassificationResult | None) -> PolicyTier:
        if classification is None:
            return PolicyTier.ASK
        return PolicyTier.strongest(d.tier for d in classification.decisions) or PolicyTier.ALLOW

    def _audit_blocked(
        self,
        request: ExecutionRequest,
        sanitized: SanitizationResult,
        classification: ClassificationResult | None,
        error: ShellGateError,
    ) -> None:
        self.audit.log_command(
            command=request.command,
            tier=self._highest_tier(classification),
            executed=False,
            session_id=request.context.session_id,
            call_id=request.context.call_id,
            normalized_command=sanitized.normalized,
            patterns=[d.pattern for d in classification.decisions] if classification else [],
            external_paths=classification.external_paths if classification else [],
            warnings=sanitized.warnings,
            blocked_reason=error.error_code,
            working_dir=self.settings.project_root,
        )


def analyze_command(
    command: str,
    policy: ShellPolicy | None = None,
    project_root: str | Path | None = None,
    workspace_dirs: list[str] | None = None,
) -> dict[str, Any]:
    """Sanitize, parse and classify a command without running or asking.

    Args:
        command: The shell command to analyze.
        policy: Policy to classify against (default: the default policy file).
        project_root: Project root (default: settings.project_root).
        workspace_dirs: Extra trusted directories.

    Returns:
        Report with warnings, per-invocation decisions, external
        directories and the strongest tier.

    Raises:
        ObfuscationRejected: If the command contains bidi overrides.
        CommandParseError: If the command cannot be parsed.
    """
    settings = get_settings()
    policy = policy if policy is not None else ShellPolicy.load_default()
    root = Path(project_root) if project_root is not None else settings.project_root

    sanitized = ObfuscationSanitizer().sanitize(command)
    if sanitized.has_bidi:
        raise ObfuscationRejected(command, sanitized.normalized, sanitized.warnings)

    tree = CommandParser().parse(sanitized.normalized)
    analyzer = PathAnalyzer(
        root,
        [*settings.workspace_dirs, *policy.workspace_dirs, *(workspace_dirs or [])],
    )
    classifier = CommandClassifier(policy, analyzer)
    result = classifier.classify(tree)

    return {
        "command": command,
        "normalized": sanitized.normalized,
        "warnings": sanitized.warnings,
        "decisions": [
            {
                "invocation": str(d.invocation),
                "tier": d.tier.value,
                "pattern": d.pattern,
                "rule": d.matched_rule,
            }
            for d in result.decisions
        ],
        "external_paths": result.external_paths,
        "tier": classifier.highest_tier(result).value,
        "external_directory": policy.external_directory.value,
    }


@register_tool(
    name="bash",
    description=BASH_DESCRIPTION,
    category=ToolCategory.EXECUTION,
    timeout_seconds=600,
)
async def bash(
    command: str,
    description: str,
    timeout: int | None = None,
) -> dict[str, Any]:
    """Run a shell command through the gate bound to the current context."""
    gate: ShellGate | None = get_context_gate()
    if gate is None:
        raise ToolError(
            "No shell gate is configured for this context",
            error_code=ErrorCode.CONFIGURATION_ERROR,
            tool_name="bash",
        )
    return await gate.execute(
        {"command": command, "description": description, "timeout": timeout},
        get_context_execution(),
    )


analyze_shell_command = register_tool(
    with_result_wrapper(analyze_command),
    name="analyze_shell_command",
    description="Report how the shell policy would treat a command, without running it.",
    category=ToolCategory.ANALYSIS,
)
