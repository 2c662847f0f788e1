"""
Host integration: gate agent tool calls through the interceptor.

Hosts call a ``ToolCallHook`` before running each tool. The hook maps the
host's flat tool name to a (module, method) pair, evaluates it, and turns any
denial into a blocking ``HookResult``. It also implements the reply tool
(``toolwarden_respond``) that carries the human's yes/no/allow answer back to
the approval queue.
"""

import logging
from typing import Any

from pydantic import BaseModel
from pydantic import Field

from .approval_queue import ApprovalQueue
from .arbitrator import Arbitrator
from .config import WardenConfig
from .errors import PolicyDenied
from .interceptor import RESPOND_TOOL_NAME
from .interceptor import Interceptor
from .models import SecurityPolicy
from .paths import get_decisions_path
from .paths import get_policy_path
from .paths import get_stats_path
from .storage import DecisionLog
from .storage import PolicyStore
from .storage import StatsTracker

logger = logging.getLogger(__name__)

UNKNOWN_MODULE = "Unknown"

TOOL_TO_MODULE: dict[str, tuple[str, str]] = {
    # FileSystem
    "read": ("FileSystem", "read"),
    "write": ("FileSystem", "write"),
    "edit": ("FileSystem", "edit"),
    "glob": ("FileSystem", "list"),
    # Shell
    "bash": ("Shell", "bash"),
    "exec": ("Shell", "exec"),
    # Browser
    "navigate": ("Browser", "navigate"),
    "screenshot": ("Browser", "screenshot"),
    "click": ("Browser", "click"),
    "type": ("Browser", "type"),
    "evaluate": ("Browser", "evaluate"),
    # Network
    "fetch": ("Network", "fetch"),
    "request": ("Network", "request"),
    "webhook": ("Network", "webhook"),
    "download": ("Network", "download"),
    # Gateway
    "list_sessions": ("Gateway", "listSessions"),
    "list_nodes": ("Gateway", "listNodes"),
    "send_message": ("Gateway", "sendMessage"),
}

RESPOND_TOOL_SPEC: dict[str, Any] = {
    "name": RESPOND_TOOL_NAME,
    "description": (
        "Respond to a toolwarden security prompt. Call after the user says YES, NO, or ALLOW."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "decision": {
                "type": "string",
                "enum": ["yes", "no", "allow"],
                "description": (
                    'The user decision: "yes" to approve once, "no" to deny, '
                    '"allow" to auto-approve for 15 minutes.'
                ),
            },
        },
        "required": ["decision"],
    },
}


class HookResult(BaseModel):
    """Verdict returned to the host for one tool call."""

    block: bool = Field(default=False, description="Whether the host must not run the tool")
    block_reason: str | None = Field(
        default=None, description="Message for the agent explaining the block"
    )


def map_tool(tool_name: str) -> tuple[str, str]:
    """Map a host tool name to (module, method). Unmapped tools go to ``Unknown``."""
    return TOOL_TO_MODULE.get(tool_name.lower(), (UNKNOWN_MODULE, tool_name))


def get_tool_mapping() -> dict[str, tuple[str, str]]:
    return dict(TOOL_TO_MODULE)


def get_protected_modules() -> list[str]:
    """Unique module names the mapping can route to."""
    return sorted({module for module, _ in TOOL_TO_MODULE.values()})


class ToolCallHook:
    """Before-tool-call handler for a host runtime."""

    def __init__(
        self,
        interceptor: Interceptor,
        queue: ApprovalQueue,
        *,
        blanket_duration: float = 15 * 60.0,
        enabled: bool = True,
    ):
        self.interceptor = interceptor
        self.queue = queue
        self.blanket_duration = blanket_duration
        self.enabled = enabled

    async def __call__(
        self, tool_name: str, params: dict[str, Any] | None = None, session_key: str | None = None
    ) -> HookResult:
        """
        Gate one tool call.

        Args:
            tool_name: Host tool name (e.g. "bash", "read")
            params: Tool parameters
            session_key: Host session identifier, if any

        Returns:
            ``HookResult()`` to let the call run, or a blocking result
        """
        params = params or {}

        # Our own control tool is never subject to policy
        if tool_name == RESPOND_TOOL_NAME:
            return self.handle_respond(params, session_key)

        if not self.enabled:
            return HookResult()

        module_name, method_name = map_tool(tool_name)
        try:
            await self.interceptor.evaluate(module_name, method_name, [params], session_key)
        except PolicyDenied as e:
            logger.warning(f"Blocking {tool_name}: {e}")
            return HookResult(block=True, block_reason=str(e))
        except Exception as e:
            logger.error(f"Blocking {tool_name} after evaluation error: {e!r}")
            return HookResult(
                block=True,
                block_reason=f"{module_name}.{method_name}() blocked by toolwarden policy",
            )
        return HookResult()

    def handle_respond(self, params: dict[str, Any], session_key: str | None) -> HookResult:
        """
        Apply the human's answer to the session's pending approvals.

        Always blocks: the reply tool is a control signal, not a real tool.
        """
        raw = params.get("decision")
        decision = raw.strip().lower() if isinstance(raw, str) else ""

        if not session_key:
            logger.warning(f"[{RESPOND_TOOL_NAME}] No session key in context")
            return HookResult(block=True, block_reason="Error: no session context available.")

        if decision == "yes":
            if not self.queue.has_pending(session_key):
                logger.info(f"[{RESPOND_TOOL_NAME}] No pending approvals for session {session_key}")
                return HookResult(block=True, block_reason="No pending approvals to approve.")
            count = self.queue.approve(session_key)
            logger.info(f"[{RESPOND_TOOL_NAME}] APPROVED {count} action(s) for session {session_key}")
            return HookResult(block=True, block_reason="Approved. Retry the blocked tool.")

        if decision == "no":
            count = self.queue.deny(session_key)
            logger.info(f"[{RESPOND_TOOL_NAME}] DENIED {count} action(s) for session {session_key}")
            return HookResult(block=True, block_reason="Denied. Do NOT retry the blocked tool.")

        if decision == "allow":
            pending = self.queue.get_pending_actions(session_key)
            if not pending:
                logger.info(f"[{RESPOND_TOOL_NAME}] No pending approvals for ALLOW ({session_key})")
                return HookResult(block=True, block_reason="No pending approvals to allow.")
            for module_name, method_name in pending:
                self.queue.allow_for(session_key, module_name, method_name, self.blanket_duration)
            count = self.queue.approve(session_key)
            minutes = round(self.blanket_duration / 60)
            actions = ", ".join(f"{m}.{n}" for m, n in pending)
            logger.info(
                f"[{RESPOND_TOOL_NAME}] ALLOW for {minutes} min: {actions} "
                f"(session={session_key}, approved={count})"
            )
            return HookResult(
                block=True,
                block_reason=f"Approved for {minutes} minutes: {actions}. Retry the blocked tool.",
            )

        logger.warning(f"[{RESPOND_TOOL_NAME}] Invalid decision {raw!r} (session={session_key})")
        return HookResult(block=True, block_reason='Invalid decision. Use "yes", "no", or "allow".')


def build_tool_hook(
    config: WardenConfig | None = None,
    *,
    respond_tool_available: bool = False,
    policy: SecurityPolicy | None = None,
    arbitrator: Arbitrator | None = None,
) -> ToolCallHook:
    """
    Wire a ready-to-use hook from configuration.

    Creates the single approval queue for the process and injects it into the
    arbitrator and the hook. ``respond_tool_available`` is the host's answer,
    resolved once at startup, to "did registering the reply tool succeed?".

    Args:
        config: Runtime configuration (defaults to environment-derived)
        respond_tool_available: Whether the reply tool is registered
        policy: Policy to use instead of loading the policy file
        arbitrator: Pre-built arbitrator (tests, custom prompts)
    """
    config = config or WardenConfig.from_env()
    data_dir = config.data_dir

    if policy is None:
        store = PolicyStore(get_policy_path(data_dir), default_action=config.default_action)
        policy = store.load()

    if arbitrator is None:
        queue = ApprovalQueue(
            ttl=config.approval_ttl,
            retry_window=config.retry_window,
            cleanup_interval=config.cleanup_interval,
        )
        arbitrator = Arbitrator(queue)

    interceptor = Interceptor(
        policy,
        arbitrator,
        audit=DecisionLog(get_decisions_path(data_dir)),
        stats=StatsTracker(get_stats_path(data_dir)),
        respond_tool_available=respond_tool_available,
        blanket_minutes=round(config.blanket_duration / 60),
        log_enabled=config.log_enabled,
    )
    logger.info(
        f"toolwarden ready (default={policy.default_action}, rules={policy.rule_count()}, "
        f"respond_tool_available={respond_tool_available})"
    )
    return ToolCallHook(
        interceptor,
        arbitrator.queue,
        blanket_duration=config.blanket_duration,
        enabled=config.enabled,
    )
