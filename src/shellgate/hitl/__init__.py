"""Human-in-the-loop approval for gated shell commands.

Provides the approval request/response vocabulary, the in-process
ApprovalManager, a rich-based console approver, and PIN storage for
pin-tier approvals.
"""

from shellgate.hitl.approval import (
    ApprovalManager,
    ApprovalRequest,
    ApprovalResponse,
    Approver,
    RequestType,
    ResponseKind,
    check_pin,
)
from shellgate.hitl.console import ConsoleApprover
from shellgate.hitl.pin import PinStore

__all__ = [
    # Approval
    "ApprovalManager",
    "ApprovalRequest",
    "ApprovalResponse",
    "Approver",
    "RequestType",
    "ResponseKind",
    "check_pin",
    # Console
    "ConsoleApprover",
    # PIN
    "PinStore",
]
