"""Interactive terminal approver built on rich."""

import asyncio
import threading

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from shellgate.constants import truncate
from shellgate.hitl.approval import (
    ApprovalRequest,
    ApprovalResponse,
    RequestType,
    ResponseKind,
    check_pin,
)
from shellgate.hitl.pin import PinStore

PROMPT_THREAD_NAME = "shellgate-approval-prompt"

_BORDER_STYLES = {
    RequestType.BASH: "yellow",
    RequestType.EXTERNAL_DIRECTORY: "magenta",
    RequestType.PIN: "red",
}


class ConsoleApprover:
    """Asks the user in the terminal.

    Prompts run in a daemon thread so the event loop keeps serving
    other tasks while the user decides. A withdrawn request cancels the
    awaiting task at once; the thread stays parked on stdin until the
    next line is entered, but it never delays event loop or interpreter
    shutdown. Its answer is discarded.
    """

    def __init__(self, console: Console | None = None, pin_store: PinStore | None = None):
        self.console = console or Console(stderr=True)
        self.pin_store = pin_store

    async def ask(self, request: ApprovalRequest) -> ApprovalResponse:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[ApprovalResponse] = loop.create_future()

        def deliver(result: ApprovalResponse | None, error: Exception | None) -> None:
            if future.done():
                return  # withdrawn
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)

        def worker() -> None:
            result: ApprovalResponse | None = None
            error: Exception | None = None
            try:
                result = self.prompt(request)
            except Exception as e:
                error = e
            if not loop.is_closed():
                loop.call_soon_threadsafe(deliver, result, error)

        threading.Thread(target=worker, name=PROMPT_THREAD_NAME, daemon=True).start()
        return await future

    def render(self, request: ApprovalRequest) -> Panel:
        table = Table(show_header=False, box=None, padding=(0, 2, 0, 0))
        table.add_column("Key", style="bold cyan", no_wrap=True)
        table.add_column("Value")

        label = "Directories" if request.type is RequestType.EXTERNAL_DIRECTORY else "Patterns"
        table.add_row(label, "\n".join(request.patterns))
        command = request.metadata.get("command")
        if command:
            table.add_row("Command", truncate(command))
        description = request.metadata.get("description")
        if description:
            table.add_row("Description", description)

        return Panel(
            table,
            title=f"[bold]{request.title}[/bold]",
            border_style=_BORDER_STYLES[request.type],
        )

    def prompt(self, request: ApprovalRequest) -> ApprovalResponse:
        """Show the request and read a decision (blocking)."""
        self.console.print(self.render(request))

        choice = Prompt.ask(
            "Allow?",
            choices=[k.value for k in ResponseKind],
            default=ResponseKind.REJECT.value,
            console=self.console,
        )
        kind = ResponseKind(choice)

        if kind is ResponseKind.REJECT:
            message = Prompt.ask("Reason (optional)", default="", console=self.console)
            return ApprovalResponse.reject(message or None)

        pin = None
        if request.type is RequestType.PIN:
            pin = Prompt.ask("PIN", password=True, console=self.console)

        response = check_pin(request, ApprovalResponse(kind, pin=pin), self.pin_store)
        if not response.approved:
            self.console.print(f"[red]{response.message}[/red]")
        return response
