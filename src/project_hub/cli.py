"""Operator CLI for project-hub."""

import asyncio
from collections.abc import Awaitable, Callable
import json
from typing import TypeVar

from rich.console import Console
from rich.markup import escape
from rich.table import Table
import typer

from project_hub.config import get_settings
from project_hub.errors import ProjectHubError
from project_hub.hub import ProjectHub
from project_hub.logging_config import setup_logging
from project_hub.models import OperationOutcome, Project, ThemeMode

T = TypeVar("T")

app = typer.Typer(no_args_is_help=True)
console = Console()

STATUS_STYLES = {
    "LOADING": "blue",
    "RUNNING": "green",
    "ERROR": "red",
    "STOPPED": "dim",
}


@app.callback()
def callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
    """
    Project Hub CLI
    """
    setup_logging(get_settings(), log_level="DEBUG" if verbose else "WARNING")


def _run(action: Callable[[ProjectHub], Awaitable[T]]) -> T:
    """Open a hub, run ``action`` against it and close it again."""

    async def _main() -> T:
        hub = await ProjectHub.create(get_settings())
        try:
            return await action(hub)
        finally:
            await hub.aclose()

    try:
        return asyncio.run(_main())
    except ProjectHubError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from None


def _project_table(projects: list[Project]) -> Table:
    table = Table(title="Projects")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Install")
    table.add_column("Status")
    table.add_column("Error", style="red")
    for p in projects:
        style = STATUS_STYLES.get(p.status_label, "")
        table.add_row(
            p.id,
            f"{p.icon} {p.name}".strip(),
            p.install_status.value.replace("_", " "),
            f"[{style}]{p.status_label}[/{style}]" if style else p.status_label,
            escape(p.run_state.error or ""),
        )
    return table


def _print_outcomes(outcomes: list[OperationOutcome]) -> None:
    if not outcomes:
        console.print("[yellow]No eligible projects.[/yellow]")
        return
    for outcome in outcomes:
        if outcome.ok:
            console.print(f"[green]✓[/green] {outcome.project_id}")
        else:
            console.print(f"[red]✗[/red] {outcome.project_id}: {escape(outcome.error or '')}")


@app.command()
def status(json_output: bool = typer.Option(False, "--json", help="Output as JSON")):
    """Show every project and the summary counts."""

    async def _status(hub: ProjectHub) -> None:
        projects = hub.projects()
        summary = hub.summary()
        if json_output:
            typer.echo(
                json.dumps(
                    {
                        "theme": hub.theme.value,
                        "summary": summary.model_dump(),
                        "projects": [p.model_dump(mode="json") for p in projects],
                    },
                    indent=2,
                )
            )
            return
        console.print(_project_table(projects))
        console.print(
            f"Total: {summary.total}  Installed: {summary.installed}  "
            f"Running: {summary.running}  Errors: {summary.errored}"
        )

    _run(_status)


@app.command()
def health():
    """Check whether the execution backend is reachable."""
    backend = _run(lambda hub: hub.backend_status())
    if backend.online:
        uptime = f" (uptime {backend.uptime_sec:.0f}s)" if backend.uptime_sec is not None else ""
        console.print(f"[bold green]Backend: Online[/bold green]{uptime}")
    else:
        console.print(f"[bold red]Backend: Offline[/bold red] {escape(backend.detail)}")
        raise typer.Exit(code=1)


@app.command()
def logs(tail: int = typer.Option(0, "--tail", "-n", help="Only the last N lines")):
    """Print the combined log of all projects."""

    async def _logs(hub: ProjectHub) -> list[str]:
        return hub.logs.recent(tail) if tail > 0 else hub.combined_logs()

    lines = _run(_logs)
    if not lines:
        console.print("[dim]No logs available.[/dim]")
    for line in lines:
        typer.echo(line)


@app.command()
def install(project_id: str = typer.Argument(..., help="Project ID")):
    """Install a project."""
    project = _run(lambda hub: hub.install(project_id))
    if project.is_installed:
        console.print(f"[bold green]✓ {project.name} installed[/bold green]")
    else:
        console.print(f"[bold red]Install failed:[/bold red] {project.run_state.error}")
        raise typer.Exit(code=1)


@app.command()
def uninstall(project_id: str = typer.Argument(..., help="Project ID")):
    """Uninstall a project."""
    project = _run(lambda hub: hub.uninstall(project_id))
    console.print(f"[bold green]✓ {project.name} uninstalled[/bold green]")


@app.command()
def up(
    include_uninstalled: bool = typer.Option(
        False, "--include-uninstalled", help="Install and run projects that are not installed"
    ),
    duration: float | None = typer.Option(
        None, "--duration", help="Stop everything after N seconds instead of waiting for Ctrl+C"
    ),
):
    """Run all projects, follow their logs, and stop them on exit."""

    async def _up(hub: ProjectHub) -> None:
        outcomes = await hub.run_all(include_uninstalled or None)
        _print_outcomes(outcomes)
        for line in hub.combined_logs():
            typer.echo(line)
        try:
            if duration is not None:
                await asyncio.sleep(duration)
            else:
                console.print("[dim]Press Ctrl+C to stop all projects.[/dim]")
                await asyncio.Event().wait()
        finally:
            _print_outcomes(await hub.stop_all())

    _run(_up)


@app.command()
def theme(
    mode: str | None = typer.Argument(None, help="light, dark or toggle"),
):
    """Show or change the theme preference."""

    async def _theme(hub: ProjectHub) -> ThemeMode:
        if mode is None:
            return hub.theme
        if mode == "toggle":
            return await hub.toggle_theme()
        try:
            selected = ThemeMode(mode)
        except ValueError:
            raise typer.BadParameter("mode must be light, dark or toggle") from None
        return await hub.set_theme(selected)

    typer.echo(_run(_theme).value)


@app.command()
def reset(yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation")):
    """Clear persisted project and theme state."""
    if not yes:
        typer.confirm(
            "This resets saved settings and project states. Continue?",
            abort=True,
        )
    if _run(lambda hub: hub.clear_cache()):
        console.print("[bold green]✓ Cache cleared[/bold green]")
    else:
        console.print("[bold red]Error:[/bold red] could not clear persisted state")
        raise typer.Exit(code=1)
