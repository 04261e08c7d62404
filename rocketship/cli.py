"""
Rocketship CLI - provision a droplet behind a load balancer and start its service.
"""

import asyncio
import logging

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .core import RocketshipCore
from .engine import NodeStatus
from .settings import get_settings

# Setup
app = typer.Typer(
    name="rocketship",
    help="Provision a droplet, its load balancer, certificate and DNS, then start its service",
    add_completion=False,
)
console = Console()


def configure_logging():
    """Configure logging based on settings."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# Configure logging on module import
configure_logging()


def _create_command_panel(title: str, color: str) -> Panel:
    """Create a Rich Panel for command display.

    Args:
        title: Command title (e.g., "Rocketship Up")
        color: Border color (e.g., "blue", "cyan", "red")

    Returns:
        Formatted Rich Panel
    """
    settings = get_settings()
    return Panel.fit(
        f"[bold {color}]{title}[/bold {color}]\n"
        f"Stack: {settings.project_name}/{settings.stack_name}\n"
        f"URL: {settings.url}",
        border_style=color,
    )


def _handle_command_error(e: Exception) -> None:
    """Print the originating error message and exit.

    Raises:
        SystemExit: Always exits with code 1
    """
    console.print(f"\n[bold red]✗ Error:[/bold red] {e}")
    raise typer.Exit(code=1)


def _print_outputs(outputs: dict) -> None:
    if outputs:
        console.print("\n[dim]Outputs:[/dim]")
        for key, value in outputs.items():
            console.print(f"  {key}: {value}")


@app.command()
def up():
    """Provision everything and activate the service with Pulumi."""
    console.print(_create_command_panel("Rocketship Up", "blue"))

    try:
        result = asyncio.run(RocketshipCore().apply())
    except Exception as e:
        _handle_command_error(e)

    if not result.get("success"):
        console.print(f"\n[bold red]✗ Error:[/bold red] {result.get('error', 'Unknown error')}")
        raise typer.Exit(code=1)

    console.print("\n[bold green]✓ Deployment successful![/bold green]")
    summary = result.get("summary") or {}
    changes = summary.get("resource_changes", {})
    if changes:
        console.print(
            f"[dim]Resources: +{changes.get('create', 0)} ~{changes.get('update', 0)} -{changes.get('delete', 0)}[/dim]"
        )
    _print_outputs(result.get("outputs", {}))


@app.command()
def preview():
    """Show what `up` would change, without changing it."""
    console.print(_create_command_panel("Rocketship Preview", "cyan"))

    try:
        result = asyncio.run(RocketshipCore().preview())
    except Exception as e:
        _handle_command_error(e)

    preview_result = result.get("preview", {})
    if not preview_result.get("success"):
        console.print(f"\n[bold red]✗ Error:[/bold red] {preview_result.get('error', 'Unknown error')}")
        raise typer.Exit(code=1)

    console.print("\n[bold green]✓ Preview complete[/bold green]")
    for op, count in preview_result.get("changes", {}).items():
        console.print(f"  {op}: {count}")


@app.command()
def destroy():
    """Tear down everything `up` created."""
    console.print(_create_command_panel("Rocketship Destroy", "red"))

    try:
        result = asyncio.run(RocketshipCore().destroy())
    except Exception as e:
        _handle_command_error(e)

    if not result.get("success"):
        console.print(f"\n[bold red]✗ Error:[/bold red] {result.get('error', 'Unknown error')}")
        raise typer.Exit(code=1)

    console.print("\n[bold green]✓ Destroy complete[/bold green]")


@app.command()
def plan():
    """List declared resources in execution order with what each waits on."""
    console.print(_create_command_panel("Rocketship Plan", "magenta"))

    try:
        graph = RocketshipCore().plan()
    except Exception as e:
        _handle_command_error(e)

    table = Table(title=f"{graph.name}: {len(graph)} resources")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Kind")
    table.add_column("Waits on")
    for node in graph:
        table.add_row(
            str(node.index + 1),
            node.name,
            node.kind,
            ", ".join(d.name for d in node.dependencies) or "-",
        )
    console.print(table)
    console.print(f"[dim]Exports: {', '.join(graph.exports)}[/dim]")
    graph.release_credentials()


@app.command()
def rehearse():
    """Run the deployment in-process against fake collaborators, printing the order."""
    console.print(_create_command_panel("Rocketship Rehearsal", "yellow"))

    try:
        result = asyncio.run(RocketshipCore().rehearse())
    except Exception as e:
        _handle_command_error(e)

    colors = {
        NodeStatus.SUCCEEDED: "green",
        NodeStatus.FAILED: "red",
        NodeStatus.SKIPPED: "yellow",
        NodeStatus.PENDING: "dim",
    }
    table = Table(title="Rehearsal trace")
    table.add_column("Name", style="bold")
    table.add_column("Status")
    table.add_column("Start", justify="right")
    table.add_column("Finish", justify="right")
    for event in result.events.values():
        color = colors[event.status]
        table.add_row(
            event.name,
            f"[{color}]{event.status.value}[/{color}]",
            "-" if event.started is None else str(event.started),
            "-" if event.finished is None else str(event.finished),
        )
    console.print(table)

    if not result.success:
        console.print(f"\n[bold red]✗ Error:[/bold red] {result.error}")
        raise typer.Exit(code=1)

    console.print("\n[bold green]✓ Rehearsal complete[/bold green]")
    _print_outputs(result.outputs)


@app.command()
def version():
    """Show Rocketship version."""
    from . import __version__

    console.print(f"Rocketship version: {__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
