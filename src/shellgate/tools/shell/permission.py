"""Permission gate: turns classification findings into approvals.

Deny decisions short-circuit before anything is shown to the user.
Everything else is batched into at most three approval requests
(external directories, ask patterns, pin patterns), each awaited in turn.
The caller's cancel event is raced against every pending request.
"""

import asyncio

from shellgate.hitl.approval import (
    ApprovalRequest,
    Approver,
    RequestType,
)
from shellgate.hitl.pin import PinStore
from shellgate.logging import Loggers
from shellgate.tools.shell.errors import (
    ExecutionCancelledError,
    PermissionRejectedError,
    PinNotConfiguredError,
    PolicyDeniedError,
)
from shellgate.tools.shell.models import (
    ClassificationResult,
    ExecutionRequest,
    PermissionBatch,
    PolicyTier,
)

logger = Loggers.permission()

_TITLES = {
    RequestType.EXTERNAL_DIRECTORY: "Access outside the project directory",
    RequestType.BASH: "Run command",
    RequestType.PIN: "PIN required to run command",
}


class PermissionGate:
    """Resolves deny/ask/pin/external findings for one command."""

    def __init__(self, approver: Approver, pin_store: PinStore | None = None):
        self.approver = approver
        self.pin_store = pin_store

    async def authorize(
        self,
        request: ExecutionRequest,
        classification: ClassificationResult,
        external_tier: PolicyTier = PolicyTier.ASK,
    ) -> PermissionBatch:
        """Block until every finding is approved.

        Args:
            request: The request being authorized.
            classification: Decisions and external paths for the command.
            external_tier: How writes outside the project are treated.

        Returns:
            The batch that was approved (empty when nothing needed asking).

        Raises:
            PolicyDeniedError: A deny-tier invocation is present, or an
                external write is present and external access is denied.
            PinNotConfiguredError: Pin-tier patterns matched but no PIN is set.
            PermissionRejectedError: The user rejected a request.
            ExecutionCancelledError: The cancel event fired while waiting.
        """
        denied = [str(d.invocation) for d in classification.denied]
        if external_tier is PolicyTier.DENY and classification.external_paths:
            denied.extend(f"write outside project: {p}" for p in classification.external_paths)
        if denied:
            logger.warning("shell_command_denied", command=request.command, denied=denied)
            raise PolicyDeniedError(request.command, denied)

        batch = PermissionBatch.from_classification(classification)
        if external_tier is PolicyTier.ALLOW:
            batch.external_dirs = []

        if batch.pin_patterns and (self.pin_store is None or not self.pin_store.exists()):
            raise PinNotConfiguredError(batch.pin_patterns)

        for request_type, patterns in (
            (RequestType.EXTERNAL_DIRECTORY, batch.external_dirs),
            (RequestType.BASH, batch.ask_patterns),
            (RequestType.PIN, batch.pin_patterns),
        ):
            if patterns:
                await self._ask(request, request_type, patterns)

        return batch

    async def _ask(
        self,
        request: ExecutionRequest,
        request_type: RequestType,
        patterns: list[str],
    ) -> None:
        context = request.context
        approval = ApprovalRequest(
            type=request_type,
            patterns=list(patterns),
            title=_TITLES[request_type],
            session_id=context.session_id,
            message_id=context.message_id,
            call_id=context.call_id,
            metadata={"command": request.command, "description": request.description},
        )
        logger.info(
            "permission_requested",
            type=request_type.value,
            patterns=approval.patterns,
        )

        ask_task = asyncio.ensure_future(self.approver.ask(approval))
        cancel_task = asyncio.ensure_future(context.cancel.wait())
        try:
            done, _ = await asyncio.wait(
                {ask_task, cancel_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            cancel_task.cancel()
            if not ask_task.done():
                # Withdraw the pending request from the approver
                ask_task.cancel()
            await asyncio.gather(ask_task, cancel_task, return_exceptions=True)

        if ask_task not in done:
            logger.info("permission_cancelled", type=request_type.value)
            raise ExecutionCancelledError("permission")

        response = ask_task.result()
        if not response.approved:
            logger.info("permission_rejected", type=request_type.value)
            raise PermissionRejectedError(response.message, request_type.value)
        logger.debug("permission_granted", type=request_type.value, response=response.kind.value)
