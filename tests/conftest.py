"""Shared test fixtures for shellgate tests.

Provides:
- Temporary project root and data directory
- Isolated settings via SettingsContext
- FakeApprover recording approval requests
- FakeSandbox recording sandbox calls
- make_gate factory wiring a ShellGate from the above
"""

import asyncio
from pathlib import Path
from typing import Callable, Generator

import pytest

from shellgate.config import GateSettings, SettingsContext, reload_settings
from shellgate.hitl.approval import ApprovalRequest, ApprovalResponse
from shellgate.hitl.pin import PinStore
from shellgate.tools.shell.config import ShellPolicy
from shellgate.tools.shell.executor import ShellGate
from shellgate.tools.shell.models import ExecutionContext


class FakeApprover:
    """Approver that records requests and answers from a script.

    Responses are taken from ``responses`` in order; once exhausted,
    ``default`` is returned. With ``block=True`` every request waits
    forever (until cancelled), which is how a user who never answers
    looks to the gate.
    """

    def __init__(
        self,
        responses: list[ApprovalResponse] | None = None,
        default: ApprovalResponse | None = None,
        block: bool = False,
    ):
        self.responses = list(responses or [])
        self.default = default or ApprovalResponse.once()
        self.block = block
        self.requests: list[ApprovalRequest] = []
        self.cancelled: list[ApprovalRequest] = []
        self.asked = asyncio.Event()

    async def ask(self, request: ApprovalRequest) -> ApprovalResponse:
        self.requests.append(request)
        self.asked.set()
        if self.block:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled.append(request)
                raise
        if self.responses:
            return self.responses.pop(0)
        return self.default


class FakeSandbox:
    """Sandbox that records every call and tags wrapped commands."""

    def __init__(self, prefix: str = ""):
        self.prefix = prefix
        self.calls: list[tuple[str, object]] = []

    def set_context(self, context: ExecutionContext) -> None:
        self.calls.append(("set_context", context.call_id))

    def wrap_command(self, command: str) -> str:
        self.calls.append(("wrap_command", command))
        return f"{self.prefix}{command}"

    def annotate_output(
        self,
        command: str,
        output: str,
        exit_code: int | None = None,
        signal: str | None = None,
    ) -> str:
        self.calls.append(("annotate_output", exit_code))
        return output

    def clear_context(self) -> None:
        self.calls.append(("clear_context", None))

    @property
    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Temporary project directory commands run in."""
    root = tmp_path / "project"
    root.mkdir(parents=True)
    return root


@pytest.fixture
def gate_settings(tmp_path: Path, project_root: Path) -> Generator[GateSettings, None, None]:
    """Settings isolated to temporary directories."""
    settings = GateSettings(
        project_root=project_root,
        data_dir=tmp_path / "data",
        default_timeout_ms=10_000,
        sandbox_enabled=False,
        audit_enabled=True,
        trusted_commands=[],
        workspace_dirs=[],
    )
    with SettingsContext(settings):
        yield settings
    reload_settings()


@pytest.fixture
def pin_store(gate_settings: GateSettings) -> PinStore:
    """PIN store in the temporary data directory (no PIN set)."""
    return PinStore(gate_settings.pin_file)


@pytest.fixture
def approver() -> FakeApprover:
    return FakeApprover()


@pytest.fixture
def sandbox() -> FakeSandbox:
    return FakeSandbox()


@pytest.fixture
def make_gate(
    gate_settings: GateSettings,
    pin_store: PinStore,
    sandbox: FakeSandbox,
) -> Callable[..., ShellGate]:
    """Factory for a ShellGate using the isolated settings."""

    def factory(
        policy: ShellPolicy | None = None,
        approver: FakeApprover | None = None,
    ) -> ShellGate:
        return ShellGate(
            approver=approver or FakeApprover(),
            settings=gate_settings,
            policy=policy if policy is not None else ShellPolicy(),
            sandbox=sandbox,
            pin_store=pin_store,
        )

    return factory
