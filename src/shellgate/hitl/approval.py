"""Approval requests and the asyncio-backed approval manager.

The gate calls ``ask(request)`` on an Approver and suspends until a
response arrives. ApprovalManager is the in-process approver: a UI (or a
test) reads ``pending()`` or subscribes to new requests, then calls
``respond``.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Protocol

from shellgate.hitl.pin import PinStore
from shellgate.logging import Loggers
from shellgate import wildcard

logger = Loggers.permission()


class RequestType(Enum):
    """What an approval request is for."""

    BASH = "bash"
    PIN = "pin"
    EXTERNAL_DIRECTORY = "external_directory"


class ResponseKind(Enum):
    """User decision on an approval request."""

    ONCE = "once"
    ALWAYS = "always"
    REJECT = "reject"


@dataclass
class ApprovalRequest:
    """Request for user approval of one batch of patterns or paths."""

    type: RequestType
    patterns: list[str]
    title: str
    session_id: str = "default"
    message_id: str = ""
    call_id: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    created_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ApprovalResponse:
    """Decision returned by an approver.

    Attributes:
        kind: once, always or reject.
        message: Optional rejection message surfaced to the agent.
        pin: PIN entered by the user for pin requests.
    """

    kind: ResponseKind
    message: str | None = None
    pin: str | None = None

    @property
    def approved(self) -> bool:
        return self.kind is not ResponseKind.REJECT

    @classmethod
    def once(cls, pin: str | None = None) -> "ApprovalResponse":
        return cls(ResponseKind.ONCE, pin=pin)

    @classmethod
    def always(cls, pin: str | None = None) -> "ApprovalResponse":
        return cls(ResponseKind.ALWAYS, pin=pin)

    @classmethod
    def reject(cls, message: str | None = None) -> "ApprovalResponse":
        return cls(ResponseKind.REJECT, message=message)


class Approver(Protocol):
    """Anything the gate can ask for approval."""

    async def ask(self, request: ApprovalRequest) -> ApprovalResponse: ...


def check_pin(
    request: ApprovalRequest,
    response: ApprovalResponse,
    pin_store: PinStore | None,
) -> ApprovalResponse:
    """Turn an approving response to a pin request into a rejection
    unless it carries the configured PIN."""
    if request.type is not RequestType.PIN or not response.approved:
        return response
    if pin_store is None or not response.pin or not pin_store.verify(response.pin):
        logger.warning("pin_verification_failed", request_id=request.id)
        return ApprovalResponse.reject("Invalid PIN")
    return response


class ApprovalManager:
    """Holds pending approval requests until someone responds.

    "always" responses are remembered per session and request type: a
    later request whose every pattern is covered by an approved pattern
    is answered without asking, and other pending requests that become
    covered are resolved at once. Pin requests are never remembered.

    Example:
        manager = ApprovalManager(pin_store=PinStore(settings.pin_file))
        manager.subscribe(lambda req: print(req.title))
        ...
        manager.respond(request_id, ApprovalResponse.once())
    """

    def __init__(self, pin_store: PinStore | None = None):
        self._pin_store = pin_store
        self._pending: dict[str, tuple[ApprovalRequest, asyncio.Future]] = {}
        self._approved: dict[tuple[str, RequestType], list[str]] = {}
        self._listeners: list[Callable[[ApprovalRequest], None]] = []

    def subscribe(self, listener: Callable[[ApprovalRequest], None]) -> Callable[[], None]:
        """Register a callback for new requests. Returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def is_covered(self, request: ApprovalRequest) -> bool:
        """Check whether earlier "always" answers cover every pattern."""
        if request.type is RequestType.PIN:
            return False
        approved = self._approved.get((request.session_id, request.type), [])
        if not approved:
            return False
        return all(wildcard.match_any(p, approved) for p in request.patterns)

    async def ask(self, request: ApprovalRequest) -> ApprovalResponse:
        """Wait for a response to a request.

        Cancelling the awaiting task withdraws the request.
        """
        if self.is_covered(request):
            logger.debug("approval_auto_granted", request_id=request.id)
            return ApprovalResponse.always()

        future = asyncio.get_running_loop().create_future()
        self._pending[request.id] = (request, future)
        logger.info(
            "approval_requested",
            request_id=request.id,
            type=request.type.value,
            patterns=request.patterns,
        )
        for listener in list(self._listeners):
            listener(request)

        try:
            return await future
        finally:
            self._pending.pop(request.id, None)

    def respond(self, request_id: str, response: ApprovalResponse) -> bool:
        """Answer a pending request.

        Returns:
            False if no such request is pending.
        """
        entry = self._pending.get(request_id)
        if entry is None:
            return False
        request, future = entry
        if future.done():
            return False

        response = check_pin(request, response, self._pin_store)
        future.set_result(response)
        logger.info("approval_resolved", request_id=request_id, response=response.kind.value)

        if response.kind is ResponseKind.ALWAYS and request.type is not RequestType.PIN:
            key = (request.session_id, request.type)
            self._approved.setdefault(key, []).extend(request.patterns)
            self._resolve_covered(request.session_id)
        return True

    def _resolve_covered(self, session_id: str) -> None:
        for request, future in list(self._pending.values()):
            if request.session_id == session_id and not future.done() and self.is_covered(request):
                future.set_result(ApprovalResponse.always())

    def pending(self, session_id: str | None = None) -> list[ApprovalRequest]:
        """Requests still waiting for a response."""
        return [
            request
            for request, future in self._pending.values()
            if not future.done() and (session_id is None or request.session_id == session_id)
        ]

    def clear_session(self, session_id: str) -> None:
        """Forget "always" answers for a session."""
        for key in [k for k in self._approved if k[0] == session_id]:
            del self._approved[key]

    def reject_all(self, message: str | None = None) -> int:
        """Reject every pending request (used on shutdown).

        Returns:
            Number of requests rejected.
        """
        count = 0
        for _, future in list(self._pending.values()):
            if not future.done():
                future.set_result(ApprovalResponse.reject(message))
                count += 1
        return count
