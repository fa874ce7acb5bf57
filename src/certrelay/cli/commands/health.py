"""
Health command: query a running relay's liveness endpoint.
"""

import sys

import click
import httpx
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ...config import config

console = Console()


def default_url() -> str:
    return f"http://localhost:{config.server_port}/healthcheck"


@click.command("health")
@click.option("--url", "-u", default=None, help="Healthcheck URL (default: local relay on PORT)")
@click.option("--format", "-f", type=click.Choice(["table", "json"]), default="table")
def health_command(url: str, format: str):
    """
    Show whether a relay is reading and sending.

    Exits 0 when healthy and 1 when unhealthy or unreachable.
    """
    url = url or default_url()
    try:
        with httpx.Client() as client:
            response = client.get(url, timeout=10.0)
        data = response.json()
    except httpx.HTTPError as e:
        console.print(f"[red]Error: Could not reach relay at {url}: {escape(str(e))}[/red]")
        sys.exit(1)
    except ValueError:
        console.print(f"[red]Error: {escape(url)} did not return JSON (HTTP {response.status_code})[/red]")
        sys.exit(1)

    healthy = response.status_code == 200

    if format == "json":
        console.print_json(data=data)
    else:
        errors = data.get("errors") or {}
        table = Table(title="Relay Health", show_header=True, header_style="bold magenta")
        table.add_column("Check", style="cyan")
        table.add_column("Status")
        table.add_column("Detail", style="yellow")
        for check in ("read", "sent"):
            if check in errors:
                table.add_row(check, "[red]failing[/red]", escape(errors[check]))
            else:
                table.add_row(check, "[green]ok[/green]", "")
        for check, message in errors.items():
            if check not in ("read", "sent"):
                table.add_row(check, "[red]failing[/red]", escape(message))
        console.print(table)

    sys.exit(0 if healthy else 1)
