"""Typer application and main entry point for the CLI.

Every command loads configuration, opens one client for the duration of the
command, and maps typed errors to exit codes.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Annotated, TypeVar

import typer
from rich.table import Table

from trackerkit.config.client_config import ConfigValidationError
from trackerkit.config.manager import ConfigManager
from trackerkit.integrations.client import TicketPlatformClient
from trackerkit.integrations.document import to_markdown
from trackerkit.integrations.errors import (
    CredentialValidationError,
    NotConfiguredError,
    TrackerError,
)
from trackerkit.integrations.models import Issue
from trackerkit.integrations.query import SearchOptions
from trackerkit.utils.console import (
    console,
    print_error,
    print_header,
    print_info,
    print_success,
    show_version,
)
from trackerkit.utils.env_utils import EnvVarExpansionError
from trackerkit.utils.errors import ExitCode, exit_code_for
from trackerkit.utils.logging import setup_logging

T = TypeVar("T")

CONFIG_ERRORS = (
    NotConfiguredError,
    ConfigValidationError,
    CredentialValidationError,
    EnvVarExpansionError,
)

app = typer.Typer(
    name="trackerkit",
    help="trackerkit - Query and update issues on a Jira-class tracker",
    add_completion=False,
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Display version and exit."""
    if value:
        show_version()
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Tracker command line client."""
    setup_logging()


def _load_config() -> ConfigManager:
    manager = ConfigManager()
    manager.load()
    return manager


def _build_client(manager: ConfigManager) -> TicketPlatformClient:
    return TicketPlatformClient(manager.client_config(), manager.credentials())


def _config_failure(error: Exception) -> typer.Exit:
    print_error(f"Configuration error: {error}")
    return typer.Exit(ExitCode.NOT_CONFIGURED)


def _run(operation: Callable[[TicketPlatformClient], Awaitable[T]]) -> T:
    """Run one async operation against a freshly built client."""
    try:
        client = _build_client(_load_config())

        async def runner() -> T:
            async with client:
                return await operation(client)

        return asyncio.run(runner())
    except CONFIG_ERRORS as e:
        raise _config_failure(e) from e
    except TrackerError as e:
        print_error(str(e))
        raise typer.Exit(exit_code_for(e)) from e
    except KeyboardInterrupt as e:
        print_info("Cancelled")
        raise typer.Exit(ExitCode.USER_CANCELLED) from e


def _issue_table(issues: list[Issue] | tuple[Issue, ...]) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Key", style="key", no_wrap=True)
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Assignee")
    table.add_column("Summary")
    for issue in issues:
        table.add_row(
            issue.key,
            issue.type.name if issue.type else "",
            issue.status.name,
            issue.assignee.display_name if issue.assignee else "-",
            issue.summary,
        )
    return table


def _print_issue(issue: Issue) -> None:
    print_header(f"{issue.key}: {issue.summary}")
    console.print(f"[bold]Status:[/bold]   {issue.status.name} ({issue.status.category.value})")
    if issue.type:
        console.print(f"[bold]Type:[/bold]     {issue.type.name}")
    if issue.priority:
        console.print(f"[bold]Priority:[/bold] {issue.priority.name}")
    assignee = issue.assignee.display_name if issue.assignee else "Unassigned"
    console.print(f"[bold]Assignee:[/bold] {assignee}")
    if issue.labels:
        console.print(f"[bold]Labels:[/bold]   {', '.join(sorted(issue.labels))}")
    if issue.url:
        console.print(f"[bold]URL:[/bold]      {issue.url}")
    description = to_markdown(issue.description)
    if description:
        console.print()
        console.print(description, markup=False)
    for link in issue.links:
        console.print(f"[muted]{link.label} {link.linked_issue.key}[/muted]")


@app.command()
def issue(
    key: Annotated[str, typer.Argument(help="Issue key, e.g. PROJ-123")],
    as_json: Annotated[bool, typer.Option("--json", help="Print the issue as JSON")] = False,
) -> None:
    """Show one issue."""
    result = _run(lambda client: client.get_issue(key))
    if result is None:
        print_error(f"Issue {key} not found")
        raise typer.Exit(ExitCode.NOT_FOUND)
    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        _print_issue(result)


@app.command()
def search(
    project: Annotated[
        list[str] | None, typer.Option("--project", "-p", help="Project key (repeatable)")
    ] = None,
    status: Annotated[
        list[str] | None, typer.Option("--status", "-s", help="Status name (repeatable)")
    ] = None,
    issue_type: Annotated[
        list[str] | None, typer.Option("--type", "-t", help="Issue type name (repeatable)")
    ] = None,
    assignee: Annotated[
        list[str] | None,
        typer.Option("--assignee", "-a", help="Account id/username or currentUser()"),
    ] = None,
    label: Annotated[list[str] | None, typer.Option("--label", "-l", help="Label")] = None,
    text: Annotated[str | None, typer.Option("--text", help="Free-text search")] = None,
    jql: Annotated[str | None, typer.Option("--jql", help="Raw query; overrides filters")] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum issues", min=1)] = 50,
) -> None:
    """Search issues by filters or a raw query."""
    options = SearchOptions(
        jql=jql,
        projects=tuple(project or ()),
        issue_types=tuple(issue_type or ()),
        statuses=tuple(status or ()),
        assignees=tuple(assignee or ()),
        labels=tuple(label or ()),
        text=text,
        max_results=limit,
    )
    result = _run(lambda client: client.search_issues(options))
    if not result.issues:
        print_info("No issues found")
        return
    console.print(_issue_table(result.issues))
    if not result.is_last:
        print_info(f"Showing first {len(result.issues)} issues; raise --limit for more")


@app.command()
def projects() -> None:
    """List visible projects."""
    result = _run(lambda client: client.get_projects())
    table = Table(show_header=True, header_style="bold")
    table.add_column("Key", style="key")
    table.add_column("Name")
    table.add_column("Lead")
    for project in result:
        table.add_row(project.key, project.name, project.lead.display_name if project.lead else "")
    console.print(table)


@app.command()
def transitions(key: Annotated[str, typer.Argument(help="Issue key")]) -> None:
    """List workflow transitions available on an issue."""
    result = _run(lambda client: client.get_transitions(key))
    if not result:
        print_info(f"No transitions available for {key}")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("To status")
    for transition in result:
        table.add_row(
            transition.id,
            transition.name,
            f"{transition.target_status.name} ({transition.target_status.category.value})",
        )
    console.print(table)


@app.command()
def move(
    key: Annotated[str, typer.Argument(help="Issue key")],
    transition_id: Annotated[str, typer.Argument(help="Transition id (see 'transitions')")],
) -> None:
    """Apply a workflow transition to an issue."""
    _run(lambda client: client.transition_issue(key, transition_id))
    print_success(f"Transitioned {key}")


@app.command()
def comment(
    key: Annotated[str, typer.Argument(help="Issue key")],
    text: Annotated[str, typer.Argument(help="Comment text")],
) -> None:
    """Add a plain-text comment to an issue."""
    added = _run(lambda client: client.add_comment(key, text))
    print_success(f"Added comment {added.id} to {key}")


@app.command()
def check() -> None:
    """Verify the configured URL and credentials."""
    ok = _run(lambda client: client.test_connection())
    if not ok:
        print_error("Connection failed; check TRACKER_BASE_URL and credentials")
        raise typer.Exit(ExitCode.AUTH_ERROR)
    print_success("Connection OK")


@app.command()
def config() -> None:
    """Show effective configuration (secrets masked)."""
    try:
        manager = _load_config()
    except CONFIG_ERRORS as e:
        raise _config_failure(e) from e
    table = Table(show_header=True, header_style="bold")
    table.add_column("Key")
    table.add_column("Value")
    table.add_column("Source", style="muted")
    for key, value, source in manager.describe():
        table.add_row(key, value, source)
    console.print(table)


def run() -> None:
    """Console-script entry point."""
    app()


__all__ = ["app", "run"]
