"""
Human-in-the-loop arbitration for ASK rules.

Three modes, resolved per call from injected environment probes:
  - INTERACTIVE: a terminal is attached; ask the human right now
  - CHANNEL: no terminal but a session key; bridge through the approval queue
  - HEADLESS: neither; nobody can answer, so reject (fail-secure)
"""

import asyncio
import json
import logging
import sys
from collections.abc import Callable
from enum import Enum

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm

from .approval_queue import ApprovalQueue
from .interfaces import ApprovalPrompt
from .models import ExecutionContext

logger = logging.getLogger(__name__)


class ArbitrationMode(Enum):
    INTERACTIVE = "interactive"
    CHANNEL = "channel"
    HEADLESS = "headless"


def stdin_is_tty() -> bool:
    """Default interactive probe."""
    return sys.stdin is not None and sys.stdin.isatty()


class ConsoleApprovalPrompt:
    """
    Terminal approval dialog using Rich.

    Shows module, method, risk and arguments, then blocks on a yes/no
    question that defaults to reject.
    """

    def __init__(self, console: Console | None = None):
        self.console = console or Console(stderr=True)

    async def confirm(self, context: ExecutionContext) -> bool:
        # Cap width at 80 columns
        max_width = min(80, self.console.width) if self.console.width else 80
        self.console.print()
        self.console.print(
            Panel(
                self._format_context(context),
                title="⚠  Human Authorization Required",
                border_style="bold red",
                padding=(1, 2),
                width=max_width,
            )
        )

        approved = await asyncio.to_thread(
            Confirm.ask, "Approve this action?", default=False, console=self.console
        )

        if approved:
            self.console.print("[green]✓ Action APPROVED by user[/green]\n")
        else:
            self.console.print("[red]✗ Action REJECTED by user[/red]\n")
        return approved

    def _format_context(self, context: ExecutionContext) -> str:
        lines = [
            f"[bold cyan]Module:[/bold cyan] {escape(context.module_name)}",
            f"[bold cyan]Method:[/bold cyan] {escape(context.method_name)}",
        ]
        if context.rule.description:
            lines.append(
                f"[bold cyan]Risk:[/bold cyan] [yellow]{escape(context.rule.description)}[/yellow]"
            )

        lines.append("[bold cyan]Arguments:[/bold cyan]")
        lines.append(f"[dim]{escape(format_args(context.args))}[/dim]")
        return "\n".join(lines)


def format_args(args: list) -> str:
    """Indented JSON rendering of call arguments, with a repr fallback."""
    try:
        rendered = json.dumps(args, indent=2)
    except (TypeError, ValueError):
        return f"  [Arguments contain non-serializable data]\n  {args!r}"
    return "\n".join(f"  {line}" for line in rendered.splitlines())


class Arbitrator:
    """Decides ASK rules by asking a human, through whichever channel exists."""

    def __init__(
        self,
        queue: ApprovalQueue,
        *,
        is_interactive: Callable[[], bool] = stdin_is_tty,
        prompt: ApprovalPrompt | None = None,
    ):
        """
        Initialize arbitrator.

        Args:
            queue: Approval queue shared with the reply-tool handler
            is_interactive: Probe for an attached terminal
            prompt: Interactive dialog (defaults to ConsoleApprovalPrompt)
        """
        self.queue = queue
        self.is_interactive = is_interactive
        self.prompt = prompt or ConsoleApprovalPrompt()

    def resolve_mode(self, context: ExecutionContext) -> ArbitrationMode:
        if self.is_interactive():
            return ArbitrationMode.INTERACTIVE
        if context.session_key:
            return ArbitrationMode.CHANNEL
        return ArbitrationMode.HEADLESS

    async def judge(
        self, context: ExecutionContext, mode: ArbitrationMode | None = None
    ) -> bool:
        """
        Request human judgment on an intercepted action.

        Args:
            context: The intercepted operation
            mode: Pre-resolved mode; resolved from the probes when omitted

        Returns:
            True if approved, False if rejected or not (yet) approved
        """
        if mode is None:
            mode = self.resolve_mode(context)

        if mode is ArbitrationMode.INTERACTIVE:
            return await self.prompt.confirm(context)

        if mode is ArbitrationMode.CHANNEL:
            return self._judge_channel(context)

        logger.info(
            f"ASK policy -> auto-denied (no TTY, no session): {context.action_name}() "
            f"args={context.args!r}"
        )
        return False

    def _judge_channel(self, context: ExecutionContext) -> bool:
        session_key = context.session_key
        if not session_key:
            raise ValueError(
                f"Channel arbitration for {context.action_name}() needs a session key"
            )
        module_name, method_name = context.module_name, context.method_name

        # Time-boxed grant from an earlier "allow" reply
        if self.queue.has_blanket_allow(session_key, module_name, method_name):
            logger.info(
                f"ASK policy -> approved via blanket allow: {context.action_name}() "
                f"(session={session_key})"
            )
            return True

        # Path A: explicit reply already arrived
        if self.queue.consume(session_key, module_name, method_name):
            logger.info(
                f"ASK policy -> approved via channel: {context.action_name}() (session={session_key})"
            )
            return True

        # Path B: the retry itself is the approval
        if self.queue.consume_pending(session_key, module_name, method_name):
            logger.info(
                f"ASK policy -> approved via channel (retry-as-approval): {context.action_name}() "
                f"(session={session_key})"
            )
            return True

        # First encounter or stale retry: arm a wait and block
        self.queue.request(session_key, module_name, method_name)
        logger.info(
            f"ASK policy -> awaiting channel approval: {context.action_name}() (session={session_key})"
        )
        return False
