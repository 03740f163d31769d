"""Command-line interface.

Usage:
    shellgate check "rm -rf build && make"
    shellgate run "pytest -x" --timeout 120000 --description "Run tests"
    shellgate pin set
    shellgate audit --limit 20
"""

import argparse
import asyncio
import sys
from typing import Any

from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from shellgate import __version__
from shellgate.config import get_settings
from shellgate.constants import truncate
from shellgate.hitl.console import ConsoleApprover
from shellgate.hitl.pin import PinStore
from shellgate.logging import configure_logging
from shellgate.tools.registry import ToolError
from shellgate.tools.shell.audit import AuditConfig, AuditLogger
from shellgate.tools.shell.config import (
    ShellPolicy,
    get_permissive_policy,
    get_strict_policy,
)
from shellgate.tools.shell.executor import ShellGate, analyze_command
from shellgate.tools.shell.models import ExecutionContext

console = Console()
err_console = Console(stderr=True)

_TIER_STYLES = {"allow": "green", "ask": "yellow", "pin": "red", "deny": "bold red"}


def _load_policy(value: str | None) -> ShellPolicy | None:
    if value is None:
        return None
    if value == "strict":
        return get_strict_policy()
    if value == "permissive":
        return get_permissive_policy()
    return ShellPolicy.from_yaml(value)


def cmd_check(args: argparse.Namespace) -> int:
    policy = _load_policy(args.policy)
    report = analyze_command(args.command, policy=policy)

    for warning in report["warnings"]:
        err_console.print(f"[yellow]warning:[/yellow] {warning}")

    table = Table(title=truncate(args.command, 80))
    table.add_column("Invocation")
    table.add_column("Tier")
    table.add_column("Pattern")
    table.add_column("Rule", style="dim")
    for decision in report["decisions"]:
        style = _TIER_STYLES[decision["tier"]]
        table.add_row(
            decision["invocation"],
            f"[{style}]{decision['tier']}[/{style}]",
            decision["pattern"],
            decision["rule"] or "(default)",
        )
    console.print(table)

    if report["external_paths"]:
        console.print(
            f"External directories ({report['external_directory']}): "
            + ", ".join(report["external_paths"])
        )
    console.print(f"Overall tier: [bold]{report['tier']}[/bold]")
    return 2 if report["tier"] == "deny" else 0


def cmd_run(args: argparse.Namespace) -> int:
    settings = get_settings()
    pin_store = PinStore(settings.pin_file)
    gate = ShellGate(
        approver=ConsoleApprover(console=err_console, pin_store=pin_store),
        settings=settings,
        policy=_load_policy(args.policy),
        pin_store=pin_store,
    )

    printed = 0

    def on_metadata(metadata: dict[str, Any]) -> None:
        nonlocal printed
        output = metadata["output"]
        console.out(output[printed:], end="", highlight=False)
        printed = len(output)

    context = ExecutionContext(session_id="cli", agent=args.agent, on_metadata=on_metadata)
    params = {
        "command": args.command,
        "description": args.description,
        "timeout": args.timeout,
    }

    result = asyncio.run(gate.execute(params, context))

    # Notes appended after the streamed output
    console.out(result["output"][printed:], highlight=False)
    exit_code = result["metadata"]["exit"]
    return 1 if exit_code is None else exit_code


def cmd_pin(args: argparse.Namespace) -> int:
    store = PinStore(get_settings().pin_file)

    if args.action == "status":
        console.print("PIN is configured" if store.exists() else "No PIN configured")
        return 0

    if args.action == "remove":
        if store.remove():
            console.print("PIN removed")
            return 0
        err_console.print("No PIN configured")
        return 1

    pin = Prompt.ask("New PIN", password=True, console=err_console)
    confirm = Prompt.ask("Confirm PIN", password=True, console=err_console)
    if pin != confirm:
        err_console.print("[red]PINs do not match[/red]")
        return 1
    try:
        store.set(pin)
    except ValueError as e:
        err_console.print(f"[red]{e}[/red]")
        return 1
    console.print(f"PIN saved to {store.path}")
    return 0


def cmd_audit(args: argparse.Namespace) -> int:
    settings = get_settings()
    audit = AuditLogger(
        AuditConfig(
            log_dir=str(settings.audit_dir),
            retention_days=settings.audit_retention_days,
        )
    )

    if args.cleanup:
        removed = audit.cleanup_old_logs()
        console.print(f"Removed {removed} old audit file(s)")
        return 0

    entries = audit.query(
        session_id=args.session,
        blocked_only=args.blocked,
        limit=args.limit,
    )
    table = Table(title="Shell audit log")
    table.add_column("Time", style="dim")
    table.add_column("Command")
    table.add_column("Tier")
    table.add_column("Result")
    for entry in entries:
        if entry.executed:
            outcome = f"exit {entry.exit_code}"
            if entry.timed_out:
                outcome = "timed out"
            elif entry.aborted:
                outcome = "aborted"
        else:
            outcome = f"[red]{entry.blocked_reason or 'blocked'}[/red]"
        table.add_row(entry.timestamp[:19], truncate(entry.command_original, 60), entry.tier, outcome)
    console.print(table)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shellgate",
        description="Policy-gated shell command execution",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="subcommand", required=True)

    policy_help = "Policy: 'strict', 'permissive' or a YAML file (default: configured policy)"

    check = sub.add_parser("check", help="Classify a command without running it")
    check.add_argument("command")
    check.add_argument("--policy", help=policy_help)
    check.set_defaults(handler=cmd_check)

    run = sub.add_parser("run", help="Run a command through the gate")
    run.add_argument("command")
    run.add_argument("--timeout", type=int, help="Timeout in milliseconds")
    run.add_argument("--description", default="", help="What the command does")
    run.add_argument("--policy", help=policy_help)
    run.add_argument("--agent", help="Agent name for per-agent policy overrides")
    run.set_defaults(handler=cmd_run)

    pin = sub.add_parser("pin", help="Manage the approval PIN")
    pin.add_argument("action", choices=["set", "remove", "status"])
    pin.set_defaults(handler=cmd_pin)

    audit = sub.add_parser("audit", help="Show the audit log")
    audit.add_argument("--limit", type=int, default=20)
    audit.add_argument("--session", help="Only entries from this session")
    audit.add_argument("--blocked", action="store_true", help="Only blocked commands")
    audit.add_argument("--cleanup", action="store_true", help="Delete logs past retention")
    audit.set_defaults(handler=cmd_audit)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(get_settings())
    try:
        return args.handler(args)
    except ToolError as e:
        err_console.print(f"[red]{e.message}[/red]")
        return 1
    except ValueError as e:
        # Malformed policy files
        err_console.print(f"[red]{e}[/red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
