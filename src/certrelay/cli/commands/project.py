"""
Project command: run the projection over recorded certstream events.
"""

import json

import click
from rich.console import Console
from rich.markup import escape

from ...errors import ProjectionError
from ...fast_path.projection import project

err_console = Console(stderr=True)


@click.command("project")
@click.argument("source", type=click.File("r"), default="-")
def project_command(source):
    """
    Print the record each event would be published as.

    SOURCE holds one upstream JSON event per line (default: stdin). Records
    go to stdout, failures to stderr.
    """
    projected = 0
    failed = 0
    for lineno, line in enumerate(source, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            record = project(json.loads(line))
        except json.JSONDecodeError as e:
            failed += 1
            err_console.print(f"[red]line {lineno}: invalid JSON: {escape(str(e))}[/red]")
            continue
        except ProjectionError as e:
            failed += 1
            err_console.print(f"[yellow]line {lineno}: {escape(str(e))}[/yellow]")
            continue
        projected += 1
        click.echo(record.to_json())

    err_console.print(f"{projected} projected, {failed} rejected")
