"""toolwarden command line.

Inspect and edit the stored policy, view statistics and the audit trail.

Examples:
    toolwarden policy show
    toolwarden policy set Shell bash DENY -d "No shell in production"
    toolwarden stats
    toolwarden audit -n 20
"""

import asyncio
import sys
from datetime import datetime
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .errors import PolicyStoreError
from .logging_setup import configure_logging
from .models import Decision
from .models import Stats
from .paths import get_decisions_path
from .paths import get_log_path
from .paths import get_policy_path
from .paths import get_stats_path
from .storage import DecisionLog
from .storage import PolicyStore
from .storage import StatsTracker
from .tool_hook import get_tool_mapping

console = Console()

ACTION_CHOICES = click.Choice(["ALLOW", "DENY", "ASK"], case_sensitive=False)

ACTION_STYLES = {"ALLOW": "green", "DENY": "red", "ASK": "yellow"}
DECISION_STYLES = {
    "ALLOWED": "green",
    "APPROVED": "green",
    "REJECTED": "red",
    "BLOCKED": "red",
}


def _data_dir(ctx: click.Context) -> Path | None:
    return ctx.obj.get("data_dir") if ctx.obj else None


def _policy_store(ctx: click.Context) -> PolicyStore:
    return PolicyStore(get_policy_path(_data_dir(ctx)))


def _stats_tracker(ctx: click.Context) -> StatsTracker:
    return StatsTracker(get_stats_path(_data_dir(ctx)))


def _styled_action(action: str) -> str:
    style = ACTION_STYLES.get(action, "white")
    return f"[{style}]{action}[/{style}]"


@click.group()
@click.version_option(version=__version__, prog_name="toolwarden")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="TOOLWARDEN_HOME",
    default=None,
    help="Directory holding policy, audit log and stats (default: ~/.toolwarden)",
)
@click.option("--log-level", default=None, help="Log level (default: WARNING)")
@click.pass_context
def cli(ctx: click.Context, data_dir: Path | None, log_level: str | None):
    """toolwarden - policy gate and human approval for agent tool calls."""
    ctx.ensure_object(dict)
    ctx.obj["data_dir"] = data_dir
    configure_logging(log_level or "WARNING", get_log_path(data_dir))


# ===== policy =====


@cli.group()
def policy():
    """Manage the security policy."""
    pass


@policy.command("show")
@click.pass_context
def policy_show(ctx: click.Context):
    """Show the current policy."""
    store = _policy_store(ctx)
    try:
        current = store.load()
    except PolicyStoreError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    console.print(f"[bold]Default action:[/bold] {_styled_action(current.default_action)}")
    console.print(f"[dim]Last updated: {current.updated_at}[/dim]")
    console.print(f"[dim]Policy file: {store.path}[/dim]\n")

    if not current.modules:
        console.print("[yellow]No module rules configured[/yellow]")
        return

    table = Table(title="Security Rules", show_header=True, header_style="bold cyan")
    table.add_column("Module", style="cyan")
    table.add_column("Method")
    table.add_column("Action")
    table.add_column("Description", style="dim")

    for module_name, rules in current.modules.items():
        for method_name, rule in rules.items():
            table.add_row(
                module_name, method_name, _styled_action(rule.action), rule.description or ""
            )

    console.print(table)


@policy.command("set")
@click.argument("module_name")
@click.argument("method_name")
@click.argument("action", type=ACTION_CHOICES)
@click.option("--description", "-d", default=None, help="Risk description shown to humans")
@click.pass_context
def policy_set(
    ctx: click.Context, module_name: str, method_name: str, action: str, description: str | None
):
    """Set the rule for MODULE_NAME.METHOD_NAME."""
    decision: Decision = action.upper()  # type: ignore[assignment]
    try:
        _policy_store(ctx).set_rule(module_name, method_name, decision, description)
    except PolicyStoreError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    console.print(
        f"[green]✓[/green] {module_name}.{method_name} -> {_styled_action(decision)}"
    )


@policy.command("default")
@click.argument("action", type=ACTION_CHOICES)
@click.pass_context
def policy_default(ctx: click.Context, action: str):
    """Set the fallback ACTION for operations without a rule."""
    decision: Decision = action.upper()  # type: ignore[assignment]
    try:
        _policy_store(ctx).set_default_action(decision)
    except PolicyStoreError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    console.print(f"[green]✓[/green] Default action -> {_styled_action(decision)}")


@policy.command("reset")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def policy_reset(ctx: click.Context, yes: bool):
    """Restore the built-in default policy."""
    if not yes and not click.confirm("Reset the policy to defaults?", default=False):
        console.print("[dim]Cancelled[/dim]")
        return
    _policy_store(ctx).reset()
    console.print("[green]✓ Policy reset to defaults[/green]")


# ===== stats =====


def _print_stats(stats: Stats) -> None:
    if stats.total_calls == 0:
        console.print("[yellow]No activity recorded yet.[/yellow]")
        return

    console.print(f"[bold]Total calls:[/bold] {stats.total_calls}\n")

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Decision")
    table.add_column("Count", justify="right")
    table.add_column("Share", justify="right")
    table.add_column("", style="dim")
    for label, count, style, note in (
        ("Allowed", stats.allowed, "green", "by policy"),
        ("Approved", stats.approved, "green", "by user"),
        ("Rejected", stats.rejected, "red", "by user"),
        ("Blocked", stats.blocked, "red", "by policy"),
    ):
        table.add_row(
            f"[{style}]{label}[/{style}]", str(count), f"{stats.percentage(count):.1f}%", note
        )
    console.print(table)

    console.print(
        f"\n[bold]Average decision time:[/bold] {stats.avg_decision_time_ms / 1000:.1f}s"
    )
    console.print(f"[dim]Last reset: {stats.last_reset}[/dim]")


@cli.group(invoke_without_command=True)
@click.pass_context
def stats(ctx: click.Context):
    """Show decision statistics."""
    if ctx.invoked_subcommand is None:
        _print_stats(asyncio.run(_stats_tracker(ctx).load()))


@stats.command("reset")
@click.pass_context
def stats_reset(ctx: click.Context):
    """Reset all counters to zero."""
    asyncio.run(_stats_tracker(ctx).reset())
    console.print("[green]✓ Statistics reset[/green]")


@cli.command("reset")
@click.pass_context
def reset(ctx: click.Context):
    """Reset statistics (alias for 'stats reset')."""
    ctx.invoke(stats_reset)


# ===== audit =====


@cli.command("audit")
@click.option(
    "--lines", "-n", type=click.IntRange(min=1), default=50, show_default=True,
    help="Number of recent decisions to show",
)
@click.pass_context
def audit(ctx: click.Context, lines: int):
    """Show the most recent decisions."""
    log = DecisionLog(get_decisions_path(_data_dir(ctx)))
    records = asyncio.run(log.read_last(lines))

    if not records:
        console.print("[yellow]No decisions recorded yet.[/yellow]")
        return

    table = Table(
        title=f"Last {len(records)} decision(s)", show_header=True, header_style="bold cyan"
    )
    table.add_column("Time", style="dim")
    table.add_column("Action", style="cyan")
    table.add_column("Decision")
    table.add_column("Took", justify="right", style="dim")
    table.add_column("Detail", style="dim")

    for record in records:
        try:
            when = datetime.fromisoformat(record.timestamp).astimezone().strftime("%H:%M:%S")
        except ValueError:
            when = record.timestamp
        style = DECISION_STYLES.get(record.decision, "white")
        detail = " - ".join(part for part in (record.user_id, record.reason) if part)
        table.add_row(
            when,
            f"{record.module}.{record.method}",
            f"[{style}]{record.decision}[/{style}]",
            f"{record.decision_time_ms / 1000:.1f}s",
            detail,
        )

    console.print(table)
    console.print(f"[dim]Audit log: {log.path}[/dim]")


# ===== tools =====


@cli.command("tools")
def tools():
    """Show how host tool names map to policy modules."""
    table = Table(title="Tool Mapping", show_header=True, header_style="bold cyan")
    table.add_column("Tool", style="green")
    table.add_column("Module", style="cyan")
    table.add_column("Method")
    for tool_name, (module_name, method_name) in get_tool_mapping().items():
        table.add_row(tool_name, module_name, method_name)
    console.print(table)
    console.print("[dim]Unmapped tools are evaluated as Unknown.<tool>[/dim]")


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
