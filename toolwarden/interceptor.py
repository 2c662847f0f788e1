"""
Interceptor: runtime policy evaluation for intercepted operations.

Resolves the rule, executes the decision, delegates ASK to the arbitrator
and reports every outcome to the audit and statistics sinks.
"""

import logging
import time
from collections.abc import Callable
from typing import Any

from .approval_queue import ApprovalQueue
from .arbitrator import ArbitrationMode
from .arbitrator import Arbitrator
from .errors import ApprovalPending
from .errors import NoApprovalChannel
from .errors import PolicyDenied
from .interfaces import AuditSink
from .interfaces import StatsSink
from .models import DecisionKind
from .models import DecisionRecord
from .models import ExecutionContext
from .models import SecurityPolicy
from .models import SecurityRule
from .policy import RuleResolver

logger = logging.getLogger(__name__)

RESPOND_TOOL_NAME = "toolwarden_respond"
"""Name of the reply tool hosts can register for explicit yes/no/allow answers."""

APPROVAL_REQUIRED_TAG = "[toolwarden:APPROVAL_REQUIRED]"


def channel_instructions(
    module_name: str, method_name: str, respond_tool_available: bool, blanket_minutes: int = 15
) -> str:
    """Reply protocol the agent relays to the human on the channel."""
    if respond_tool_available:
        return (
            f"Ask the user: YES, NO, or ALLOW (auto-approve for {blanket_minutes} min).\n"
            f'- YES -> {RESPOND_TOOL_NAME}({{"decision": "yes"}}), then retry.\n'
            f'- NO -> {RESPOND_TOOL_NAME}({{"decision": "no"}}). Do NOT retry.\n'
            f'- ALLOW -> {RESPOND_TOOL_NAME}({{"decision": "allow"}}), then retry. '
            f"Auto-approves this action for {blanket_minutes} minutes."
        )
    return (
        "Ask the user YES or NO.\n"
        f"- If YES: call {module_name}.{method_name}() again exactly as before.\n"
        "- If NO: do NOT call the tool again. Tell the user the action was cancelled."
    )


class Interceptor:
    """
    Policy gate for one process.

    ``evaluate`` returns normally when the operation may proceed and raises a
    ``PolicyDenied`` (or subclass) when it must not.
    """

    def __init__(
        self,
        policy: SecurityPolicy,
        arbitrator: Arbitrator,
        *,
        audit: AuditSink | None = None,
        stats: StatsSink | None = None,
        respond_tool_available: bool = False,
        blanket_minutes: int = 15,
        log_enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize interceptor.

        Args:
            policy: Read-only policy for the process lifetime
            arbitrator: Judge for ASK rules
            audit: Destination for decision records
            stats: Destination for decision counters
            respond_tool_available: Whether the host registered the reply tool;
                controls the channel-mode instructions
            blanket_minutes: Duration advertised for the ALLOW reply
            log_enabled: Log each interception at INFO
            clock: Time source for decision durations
        """
        self.resolver = RuleResolver(policy)
        self.arbitrator = arbitrator
        self.audit = audit
        self.stats = stats
        self.respond_tool_available = respond_tool_available
        self.blanket_minutes = blanket_minutes
        self.log_enabled = log_enabled
        self._clock = clock

    @property
    def queue(self) -> ApprovalQueue:
        return self.arbitrator.queue

    async def evaluate(
        self,
        module_name: str,
        method_name: str,
        args: list[Any] | None = None,
        session_key: str | None = None,
    ) -> None:
        """
        Evaluate the policy for one operation.

        Args:
            module_name: Module (e.g. "FileSystem", "Shell")
            method_name: Method within the module (e.g. "read", "bash")
            args: Arguments of the call, recorded in the audit trail
            session_key: Host session identifier (channel mode)

        Raises:
            PolicyDenied: DENY rule, or ASK rejected in interactive mode
            ApprovalPending: ASK in channel mode without an approval yet
            NoApprovalChannel: ASK with no terminal and no session
        """
        args = list(args or [])
        rule = self.resolver.lookup(module_name, method_name)

        if self.log_enabled:
            logger.info(f"toolwarden: {module_name}.{method_name}() -> {rule.action}")

        start = self._clock()

        if rule.action == "ALLOW":
            await self._report(module_name, method_name, args, "ALLOWED", start)
            return

        if rule.action == "DENY":
            await self._report(
                module_name, method_name, args, "BLOCKED", start, reason="Policy: DENY"
            )
            raise PolicyDenied(
                self._denied_message(module_name, method_name, rule),
                module=module_name,
                method=method_name,
                reason=rule.description,
            )

        if rule.action == "ASK":
            await self._arbitrate(rule, module_name, method_name, args, session_key, start)
            return

        raise ValueError(f"Unknown decision type: {rule.action}")

    async def _arbitrate(
        self,
        rule: SecurityRule,
        module_name: str,
        method_name: str,
        args: list[Any],
        session_key: str | None,
        start: float,
    ) -> None:
        context = ExecutionContext(
            module_name=module_name,
            method_name=method_name,
            args=args,
            rule=rule,
            session_key=session_key,
        )
        mode = self.arbitrator.resolve_mode(context)
        try:
            approved = await self.arbitrator.judge(context, mode=mode)
        except Exception as e:
            # A prompt that cannot complete is a rejection
            logger.error(f"Arbitration failed for {module_name}.{method_name}(): {e!r}")
            approved = False

        await self._report(
            module_name,
            method_name,
            args,
            "APPROVED" if approved else "REJECTED",
            start,
            user_id="human",
        )
        if approved:
            return

        detail = rule.description or "No description provided."

        if mode is ArbitrationMode.CHANNEL:
            message = (
                f"{APPROVAL_REQUIRED_TAG} {module_name}.{method_name}() is blocked pending "
                f"human approval. Risk: {detail}\n"
                + channel_instructions(
                    module_name, method_name, self.respond_tool_available, self.blanket_minutes
                )
            )
            raise ApprovalPending(
                message,
                module=module_name,
                method=method_name,
                reason=rule.description,
                respond_tool_available=self.respond_tool_available,
            )

        if mode is ArbitrationMode.HEADLESS:
            logger.warning(
                f"No approval channel for {module_name}.{method_name}() "
                "(no terminal, no session); rejecting"
            )
            raise NoApprovalChannel(
                self._denied_message(module_name, method_name, rule),
                module=module_name,
                method=method_name,
                reason=rule.description,
            )

        raise PolicyDenied(
            self._denied_message(module_name, method_name, rule),
            module=module_name,
            method=method_name,
            reason=rule.description,
        )

    @staticmethod
    def _denied_message(module_name: str, method_name: str, rule: SecurityRule) -> str:
        detail = rule.description or "No description provided."
        return f"Security Violation: {module_name}.{method_name}() was DENIED. {detail}"

    async def _report(
        self,
        module_name: str,
        method_name: str,
        args: list[Any],
        decision: DecisionKind,
        start: float,
        *,
        user_id: str | None = None,
        reason: str | None = None,
    ) -> None:
        """Send the outcome to audit and stats. Never raises."""
        decision_time_ms = max(0, round((self._clock() - start) * 1000))

        # The decision stands regardless of reporting failures
        if self.audit is not None:
            try:
                record = DecisionRecord(
                    module=module_name,
                    method=method_name,
                    args=args,
                    decision=decision,
                    decision_time_ms=decision_time_ms,
                    user_id=user_id,
                    reason=reason,
                )
                await self.audit.append(record)
            except Exception as e:
                logger.error(f"Failed to log decision for {module_name}.{method_name}(): {e}")

        if self.stats is not None:
            try:
                await self.stats.increment(decision, decision_time_ms)
            except Exception as e:
                logger.error(f"Failed to update stats for {module_name}.{method_name}(): {e}")
