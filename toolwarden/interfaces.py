"""
Collaborator interfaces consumed by the interceptor and arbitrator.
Uses Protocol classes for structural subtyping (no inheritance required).
"""

from typing import Protocol
from typing import runtime_checkable

from .models import DecisionKind
from .models import DecisionRecord
from .models import ExecutionContext


@runtime_checkable
class AuditSink(Protocol):
    """Append-only destination for decision records."""

    async def append(self, record: DecisionRecord) -> None:
        """
        Append one decision record.

        Args:
            record: Outcome of a single evaluation

        Raises:
            Exception: Any I/O failure. The interceptor logs and swallows it.
        """
        ...


@runtime_checkable
class StatsSink(Protocol):
    """Counter store for decision statistics."""

    async def increment(self, decision: DecisionKind, decision_time_ms: int) -> None:
        """
        Count one decision.

        Args:
            decision: Outcome kind
            decision_time_ms: Milliseconds the decision took
        """
        ...


@runtime_checkable
class ApprovalPrompt(Protocol):
    """Human prompt for interactive (terminal) arbitration."""

    async def confirm(self, context: ExecutionContext) -> bool:
        """
        Show the operation to the human and wait for approve/reject.

        Args:
            context: The intercepted operation

        Returns:
            True if the human approved
        """
        ...
