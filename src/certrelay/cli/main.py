"""
CLI entry point.
"""

import click

from .. import __version__
from .commands.health import health_command
from .commands.project import project_command
from .commands.run import run_command


@click.group()
@click.version_option(version=__version__)
def cli():
    """
    Certstream relay CLI

    Relays certificate-transparency events from certstream to a message bus.
    """
    pass


# Register commands
cli.add_command(run_command)
cli.add_command(health_command)
cli.add_command(project_command)


def main():
    """CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
