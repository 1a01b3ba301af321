#!/usr/bin/env python3
"""
JML Control CLI - Command Line Interface for JML Lite.

Operator entry point for scheduled sweeps (expiring approvals, task
reminders), Teams webhook configuration and testing, statistics and the
audit log, run against a JSON snapshot of the lists.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import WorkflowConfig, load_user_directory, load_workflow_config
from ..constants import (
    WEBHOOK_ENABLED_KEY,
    WEBHOOK_HR_KEY,
    WEBHOOK_IT_KEY,
    WEBHOOK_MANAGER_KEY,
    WEBHOOK_PRIMARY_KEY,
)
from ..store.directory import UserDirectory
from ..store.inmemory import InMemoryListStore
from ..utils import format_date, format_timestamp, validate_webhook_url
from ..workflows.orchestrator import WorkflowOrchestrator

logger = logging.getLogger(__name__)

# Rich console for pretty output
console = Console()

DEFAULT_STORE = "jml_store.json"

WEBHOOK_KEYS = [WEBHOOK_PRIMARY_KEY, WEBHOOK_HR_KEY, WEBHOOK_IT_KEY, WEBHOOK_MANAGER_KEY, WEBHOOK_ENABLED_KEY]


class JMLController:
    """Main controller for JML Lite operations."""

    def __init__(self, store_path: str = DEFAULT_STORE, config_path: Optional[str] = None):
        """Initialize the controller from a store snapshot and an optional YAML config."""
        self.store_path = Path(store_path)
        self.config_path = Path(config_path) if config_path else None

        self.config: WorkflowConfig = load_workflow_config(self.config_path)
        self.directory: UserDirectory = load_user_directory(self.config_path)
        self.store = InMemoryListStore(self.store_path)

    def run(self, work: Callable[[WorkflowOrchestrator], Awaitable[Any]]) -> Any:
        """Run an async operation against a fresh orchestrator and wait for its notifications."""

        async def runner():
            orchestrator = WorkflowOrchestrator(self.store, self.directory, self.config)
            try:
                return await work(orchestrator)
            finally:
                await orchestrator.aclose()

        return asyncio.run(runner())


@click.group()
@click.option('--store', '-s', 'store_path', default=DEFAULT_STORE, show_default=True,
              help='Path to the JSON list snapshot')
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help='Path to a YAML workflow configuration file')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, store_path, config_path, verbose):
    """JML Lite Control CLI - Joiner/Mover/Leaver workflow administration"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    ctx.ensure_object(dict)
    try:
        ctx.obj['controller'] = JMLController(store_path, config_path)
    except ValueError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        ctx.exit(1)


@cli.command('expire-approvals')
@click.pass_context
def expire_approvals(ctx):
    """Expire pending approvals that are past their due date."""
    controller = ctx.obj['controller']

    count = controller.run(lambda o: o.approvals.expire_overdue_approvals())
    if count:
        console.print(f"[green]✓ Expired {count} overdue approvals[/green]")
    else:
        console.print("[yellow]No overdue approvals to expire[/yellow]")


@cli.command('approval-stats')
@click.option('--approver-id', type=int, help='Only count approvals assigned to this approver')
@click.pass_context
def approval_stats(ctx, approver_id):
    """Show approval queue statistics."""
    controller = ctx.obj['controller']

    stats = controller.run(lambda o: o.approvals.get_approval_stats(approver_id))

    table = Table(title="Approval Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="magenta", justify="right")

    table.add_row("Pending", str(stats.pending))
    table.add_row("Approved", str(stats.approved))
    table.add_row("Rejected", str(stats.rejected))
    table.add_row("Overdue", str(stats.overdue))
    table.add_row("Due Today", str(stats.due_today))
    table.add_row("Due Soon", str(stats.due_soon))

    console.print(table)


@cli.command('task-stats')
@click.pass_context
def task_stats(ctx):
    """Show open task reminder statistics."""
    controller = ctx.obj['controller']

    stats = controller.run(lambda o: o.reminders.get_task_stats())

    table = Table(title="Task Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="magenta", justify="right")

    table.add_row("Overdue", str(stats.overdue))
    table.add_row("Due Today", str(stats.due_today))
    table.add_row("Due Soon", str(stats.due_soon))
    table.add_row("Total", str(stats.total))

    console.print(table)


@cli.command('send-reminders')
@click.option('--due-today', is_flag=True, help='Remind about tasks due today instead of overdue tasks')
@click.pass_context
def send_reminders(ctx, due_today):
    """Send Teams reminders for overdue (or due today) tasks."""
    controller = ctx.obj['controller']

    if due_today:
        results = controller.run(lambda o: o.reminders.send_due_today_reminders())
    else:
        results = controller.run(lambda o: o.reminders.send_overdue_reminders())

    if not results:
        console.print("[yellow]No tasks need reminders[/yellow]")
        return

    table = Table(title=f"Reminders ({len(results)})")
    table.add_column("Task ID", style="cyan")
    table.add_column("Task", style="green")
    table.add_column("Sent", style="magenta")
    table.add_column("Error", style="red")

    for result in results:
        table.add_row(
            str(result.task_id),
            result.task_title,
            "✓" if result.sent else "✗",
            result.error or "",
        )

    console.print(table)

    sent = sum(1 for result in results if result.sent)
    console.print(f"Sent {sent} of {len(results)} reminders")


@cli.command('orchestrator-sweep')
@click.pass_context
def orchestrator_sweep(ctx):
    """Run the scheduled overdue-reminder sweep across all active processes."""
    controller = ctx.obj['controller']

    count = controller.run(lambda o: o.send_overdue_reminders())
    console.print(f"[green]✓ Sweep complete: {count} reminders fired[/green]")


@cli.command('set-webhook')
@click.argument('key', type=click.Choice(WEBHOOK_KEYS))
@click.argument('value')
@click.pass_context
def set_webhook(ctx, key, value):
    """Save a Teams webhook setting (a URL, or true/false for TeamsWebhookEnabled)."""
    controller = ctx.obj['controller']

    if key == WEBHOOK_ENABLED_KEY:
        value = value.lower()
        if value not in ("true", "false"):
            console.print(f"[red]{WEBHOOK_ENABLED_KEY} must be 'true' or 'false'[/red]")
            ctx.exit(1)
    else:
        errors = validate_webhook_url(value)
        if errors:
            console.print("[red]Webhook URL validation failed:[/red]")
            for error in errors:
                console.print(f"  - {error}")
            ctx.exit(1)

    saved = controller.run(lambda o: o.teams.save_webhook_config(key, value))
    if saved:
        console.print(f"[green]✓ Saved {key}[/green]")
    else:
        console.print(f"[red]✗ Failed to save {key}[/red]")
        ctx.exit(1)


@cli.command('test-webhook')
@click.argument('url')
@click.pass_context
def test_webhook(ctx, url):
    """Post a test card to a Teams webhook URL."""
    controller = ctx.obj['controller']

    result = controller.run(lambda o: o.teams.test_webhook(url))
    if result.success:
        console.print(Panel.fit("[bold green]Webhook test succeeded[/bold green]\nCheck the channel for the test card."))
    else:
        console.print(f"[red]✗ Webhook test failed: {result.error}[/red]")
        ctx.exit(1)


@cli.command('audit-log')
@click.option('--entity-type', help='Filter by entity type')
@click.option('--entity-id', type=int, help='Filter by entity id')
@click.option('--action', help='Filter by action')
@click.option('--limit', default=50, show_default=True, help='Maximum number of entries to show')
@click.pass_context
def audit_log(ctx, entity_type, entity_id, action, limit):
    """Show recent audit trail entries."""
    controller = ctx.obj['controller']

    entries = controller.run(
        lambda o: o.audit.get_audit_log(entity_type=entity_type, entity_id=entity_id, action=action, top=limit)
    )

    if not entries:
        console.print("[yellow]No audit entries found[/yellow]")
        return

    table = Table(title=f"Audit Log ({len(entries)})")
    table.add_column("Timestamp", style="cyan")
    table.add_column("Action", style="green")
    table.add_column("Entity", style="yellow")
    table.add_column("Title", style="blue")
    table.add_column("By", style="magenta")

    for entry in entries:
        table.add_row(
            format_timestamp(entry.timestamp) if entry.timestamp else format_date(None),
            entry.action,
            f"{entry.entity_type} {entry.entity_id}" if entry.entity_id is not None else entry.entity_type,
            entry.entity_title or "",
            entry.performed_by_name or "",
        )

    console.print(table)


def main():
    """Console script entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
