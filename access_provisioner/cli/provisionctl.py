#!/usr/bin/env python3
"""
Provision Control CLI - Command Line Interface for the Access Provisioner.

Provides commands for running the provisioning workflow, checking
prerequisites, inspecting the live access group and reading the audit trail.
"""

import logging
from typing import Any, Dict, Optional

import click
from rich.panel import Panel
from rich.table import Table

from ..audit import AuditLogger
from ..config import ACCESS_GROUP_NAME, ProvisioningConfig, load_config
from ..connectors import BaseConnector, create_connector
from ..exceptions import ProvisioningError
from ..logging_config import configure_logging, make_console
from ..models import AccessGroupInfo, GroupOutcome, RunReport
from ..workflows import ProvisioningRun

logger = logging.getLogger(__name__)

# Rich console for pretty output
console = make_console()

AFFIRMATIVE_ANSWERS = ("y", "yes")


class ProvisionController:
    """Holds configuration and the connector for one CLI invocation."""

    def __init__(self, config: ProvisioningConfig, connector: Optional[BaseConnector] = None):
        self.config = config
        self.connector = connector or create_connector(config)

    def new_run(self, confirm=None) -> ProvisioningRun:
        return ProvisioningRun(self.connector, self.config, confirm=confirm)


def _build_controller(ctx: click.Context, **overrides: Any) -> ProvisionController:
    """Load configuration with command-line overrides applied."""
    obj = ctx.obj
    merged: Dict[str, Any] = {"mock_mode": obj.get("mock")}
    merged.update(overrides)
    config = load_config(obj.get("config_path"), merged)

    connector = obj.get("connector")
    return ProvisionController(config, connector)


@click.group()
@click.option('--config', '-c', 'config_path', type=click.Path(dir_okay=False),
              help='Path to a YAML configuration file')
@click.option('--mock/--real', default=None,
              help='Use the in-memory provider instead of the ibmcloud CLI (overrides mock_mode)')
@click.option('--verbose', '-v', is_flag=True, default=False, help='Enable debug logging')
@click.pass_context
def cli(ctx, config_path, mock, verbose):
    """Access Provisioner - bulk onboarding into an IBM Cloud access group"""
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path
    ctx.obj['mock'] = mock
    configure_logging(verbose=verbose, console=console)


@cli.command()
@click.option('--email-file', '-f', type=click.Path(dir_okay=False),
              help='File with one email address per line')
@click.option('--settle-delay', type=float, help='Seconds to wait between invitations and group adds')
@click.option('--audit-dir', type=click.Path(file_okay=False), help='Directory for the audit trail')
@click.option('--yes', '-y', is_flag=True, default=False, help='Skip the confirmation prompt')
@click.pass_context
def run(ctx, email_file, settle_delay, audit_dir, yes):
    """Invite users and add them to the administrator access group."""
    try:
        controller = _build_controller(
            ctx,
            email_file=email_file,
            settle_delay_seconds=settle_delay,
            audit_dir=audit_dir,
        )
    except ProvisioningError as e:
        console.print(f"[red]{e}[/red]")
        ctx.exit(e.exit_code)

    display_banner(controller.connector.is_mock_mode())

    def confirm() -> bool:
        if yes:
            return True
        return prompt_confirmation(controller.config)

    report = controller.new_run(confirm=confirm).execute()

    if report.declined:
        ctx.exit(0)

    display_run_report(report)
    if report.group is not None:
        display_group_summary(report.group)

    if report.success:
        console.print("\n[green]All users were invited and assigned to the administrator access group.[/green]")
    else:
        console.print("Check the log output and run the command again.")
    ctx.exit(report.exit_code)


@cli.command()
@click.option('--email-file', '-f', type=click.Path(dir_okay=False),
              help='File with one email address per line')
@click.pass_context
def check(ctx, email_file):
    """Check the CLI, the login and the email file without changing anything."""
    try:
        controller = _build_controller(ctx, email_file=email_file)
        emails = controller.new_run().check_prerequisites()
    except ProvisioningError as e:
        console.print(f"[red]✗ {e}[/red]")
        ctx.exit(e.exit_code)

    console.print(f"[green]✓ Ready to provision {len(emails)} users[/green]")


@cli.command('show-group')
@click.pass_context
def show_group(ctx):
    """Show the live access group, its members and its policies."""
    try:
        controller = _build_controller(ctx)
    except ProvisioningError as e:
        console.print(f"[red]{e}[/red]")
        ctx.exit(e.exit_code)

    display_group_summary(controller.new_run().collect_summary())


@cli.command('audit-trail')
@click.option('--audit-dir', type=click.Path(file_okay=False), help='Directory for the audit trail')
@click.option('--limit', default=50, help='Maximum number of records to show')
@click.option('--run-id', help='Only show records from this run')
@click.pass_context
def audit_trail(ctx, audit_dir, limit, run_id):
    """Show recorded provisioning actions."""
    try:
        controller = _build_controller(ctx, audit_dir=audit_dir)
    except ProvisioningError as e:
        console.print(f"[red]{e}[/red]")
        ctx.exit(e.exit_code)

    if controller.config.audit_dir is None:
        console.print("[yellow]No audit directory configured (use --audit-dir or audit_dir)[/yellow]")
        ctx.exit(1)

    records = AuditLogger(controller.config.audit_dir).get_events(run_id=run_id, limit=limit)
    if not records:
        console.print("[yellow]No audit records found[/yellow]")
        return

    table = Table(title=f"Audit Trail ({len(records)})")
    table.add_column("Timestamp", style="cyan")
    table.add_column("Action", style="magenta")
    table.add_column("Resource", style="blue")
    table.add_column("Target", style="green")
    table.add_column("Status", style="yellow")

    for record in records:
        table.add_row(
            record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            record.action,
            record.resource,
            record.target or "",
            record.status.value,
        )

    console.print(table)


def display_banner(mock_mode: bool = False):
    """Print the tool banner."""
    console.print(Panel.fit(
        "[bold blue]IBM Cloud User Management[/bold blue]\n"
        "Automated user invitation and access group assignment",
        border_style="blue",
    ))
    if mock_mode:
        console.print("[yellow]Mock mode: using the in-memory provider[/yellow]")


def prompt_confirmation(config: ProvisioningConfig) -> bool:
    """Ask the operator to confirm; anything but yes declines."""
    console.print(
        f"\n[yellow]Warning: this will create the access group '{ACCESS_GROUP_NAME}' with FULL[/yellow]\n"
        f"[yellow]administrator rights and add the users from '{config.email_file}' to it.[/yellow]"
    )
    try:
        answer = click.prompt("Do you want to continue? (y/N)", default="", show_default=False)
    except click.exceptions.Abort as e:
        # click raises Abort for both Ctrl-C and end of input
        if isinstance(e.__context__, KeyboardInterrupt):
            raise KeyboardInterrupt from e
        return False
    return answer.strip().lower() in AFFIRMATIVE_ANSWERS


def display_run_report(report: RunReport):
    """Display per-stage counters."""
    table = Table(title="Provisioning Results")
    table.add_column("Stage", style="cyan")
    table.add_column("Attempted", style="magenta")
    table.add_column("Succeeded", style="green")
    table.add_column("Already Present", style="yellow")
    table.add_column("Failed", style="red")

    if report.group_outcome is not None:
        created = report.group_outcome == GroupOutcome.CREATED
        table.add_row("group", "1", "1" if created else "0", "0" if created else "1", "0")

    for stage in report.stages:
        table.add_row(
            stage.stage,
            str(stage.attempted),
            str(stage.succeeded),
            str(stage.already_present),
            str(stage.failed),
        )

    console.print(table)

    for stage in report.stages:
        if stage.failed_items:
            console.print(f"[red]Failed {stage.stage}:[/red]")
            for item in stage.failed_items:
                console.print(f"  - {item}")


def display_group_summary(group: AccessGroupInfo):
    """Display the live group, its members and its policies."""
    console.print("\n[bold blue]=== ACCESS GROUP SUMMARY ===[/bold blue]")
    console.print(f"Name: {group.name}")
    console.print(f"ID: {group.group_id or 'N/A'}")
    console.print(f"Description: {group.description or 'N/A'}")

    console.print("\n[bold blue]=== GROUP MEMBERS ===[/bold blue]")
    if group.members:
        members = Table()
        members.add_column("Email", style="green")
        for email in group.members:
            members.add_row(email)
        console.print(members)
    else:
        console.print("[yellow]No members found[/yellow]")

    console.print("\n[bold blue]=== GROUP POLICIES ===[/bold blue]")
    if group.policies:
        policies = Table()
        policies.add_column("Roles", style="magenta")
        policies.add_column("Scope", style="cyan")
        for policy in group.policies:
            policies.add_row(", ".join(policy.role_names()), policy.scope.describe())
        console.print(policies)
    else:
        console.print("[yellow]No policies found[/yellow]")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
