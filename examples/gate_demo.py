#!/usr/bin/env python
"""Standalone demo for the shell gate.

This demo walks a few commands through the gate:
1. Classification without execution
2. Execution of allowed commands with streamed output
3. Approval of an "ask" command by a scripted approver
4. Timeout handling
5. Denied commands

Usage:
    python examples/gate_demo.py
"""

import asyncio
import tempfile
from pathlib import Path

from shellgate import GateSettings, ShellGate, analyze_command
from shellgate.hitl import ApprovalRequest, ApprovalResponse
from shellgate.tools.registry import ToolError
from shellgate.tools.shell import ExecutionContext, get_strict_policy


class AutoApprover:
    """Approves every request once and prints what was asked."""

    async def ask(self, request: ApprovalRequest) -> ApprovalResponse:
        print(f"    Approval requested ({request.type.value}): {', '.join(request.patterns)}")
        return ApprovalResponse.once()


# =============================================================================
# Demo Functions
# =============================================================================


def demo_analysis():
    """Demo classification (NO commands are executed)."""
    print("\n" + "=" * 60)
    print("Classification Demo")
    print("=" * 60)

    policy = get_strict_policy()
    commands = [
        "ls -la",
        "git status && git push origin main",
        "sudo rm -rf /",
        "cat README.md | grep shellgate",
        "cp notes.txt /etc/notes.txt",
    ]

    for cmd in commands:
        report = analyze_command(cmd, policy=policy)
        print(f"    [{report['tier']:5}] {cmd}")
        for decision in report["decisions"]:
            print(f"        {decision['invocation']:<30} {decision['tier']:<5} {decision['pattern']}")
        if report["external_paths"]:
            print(f"        external: {', '.join(report['external_paths'])}")
    print()


async def demo_execution(gate: ShellGate):
    """Demo execution of allowed and approved commands."""
    print("\n" + "=" * 60)
    print("Execution Demo")
    print("=" * 60)

    chunks = []
    context = ExecutionContext(
        session_id="demo",
        on_metadata=lambda metadata: chunks.append(metadata["output"]),
    )

    print("\n  Command: echo 'Hello, World!' (allowed)")
    result = await gate.execute({"command": "echo 'Hello, World!'", "description": "Greet"}, context)
    print(f"    Exit: {result['metadata']['exit']}")
    print(f"    Output: {result['output'].strip()}")
    print(f"    Progress updates: {len(chunks)}")

    print("\n  Command: touch demo.txt (asks)")
    result = await gate.execute(
        {"command": "touch demo.txt", "description": "Create a file"}, context
    )
    print(f"    Exit: {result['metadata']['exit']}")
    print()


async def demo_timeout(gate: ShellGate):
    """Demo timeout handling."""
    print("\n" + "=" * 60)
    print("Timeout Handling Demo")
    print("=" * 60)

    print("\n  Command: sleep 10 (timeout: 500ms)")
    result = await gate.execute(
        {"command": "sleep 10", "timeout": 500, "description": "Sleep"}, ExecutionContext()
    )
    print(f"    Exit: {result['metadata']['exit']}")
    print(f"    Output: {result['output'].strip()}")
    print()


async def demo_denied(gate: ShellGate):
    """Demo denied commands."""
    print("\n" + "=" * 60)
    print("Denied Command Demo")
    print("=" * 60)

    for cmd in ["sudo reboot", "echo ok; shutdown -h now"]:
        print(f"\n  Command: {cmd}")
        try:
            await gate.execute({"command": cmd, "description": "Denied example"}, ExecutionContext())
        except ToolError as e:
            print(f"    Error code: {e.error_code}")
            print(f"    Message: {e.message.splitlines()[0]}")
    print()


# =============================================================================
# Main
# =============================================================================


async def run_demos():
    with tempfile.TemporaryDirectory() as temp_dir:
        settings = GateSettings(
            project_root=Path(temp_dir),
            data_dir=Path(temp_dir) / ".shellgate",
            sandbox_enabled=False,
        )
        gate = ShellGate(
            approver=AutoApprover(),
            settings=settings,
            policy=get_strict_policy(),
        )
        await demo_execution(gate)
        await demo_timeout(gate)
        await demo_denied(gate)


def main():
    print("\n" + "=" * 60)
    print("Shell Gate Demo")
    print("=" * 60)

    demo_analysis()
    asyncio.run(run_demos())

    print("\n" + "=" * 60)
    print("Demo complete!")
    print("=" * 60 + "\n")


if __name__ == "__main__":
    main()
