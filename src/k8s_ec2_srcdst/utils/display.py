"""
Display utilities for the controller's startup summary.
"""

from rich.console import Console
from rich.table import Table

from ..models import ControllerConfig

console = Console(stderr=True)


def display_configuration_info(settings: ControllerConfig, version: str) -> None:
    """Display the effective controller configuration."""
    console.print(f"[bold green]k8s-ec2-srcdst {version}[/bold green]")

    table = Table(title="Controller Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="magenta")

    cluster = settings.kubeconfig or "in-cluster"
    table.add_row("Cluster credentials", cluster)
    table.add_row("AWS region", settings.region or "default chain")
    table.add_row("AWS profile", settings.profile_name or "default")
    table.add_row("Workers", str(settings.workers))
    table.add_row("Resync period", f"{settings.resync_period:g}s")
    table.add_row("Write strategy", settings.write_strategy.value)
    table.add_row("Disable mode", settings.disable_mode.value)
    table.add_row("Annotation", settings.annotation_key)

    console.print(table)


def display_error(message: str) -> None:
    """Display error message."""
    console.print(f"[red]{message}[/red]")
