"""
Run command: start the relay service.
"""

import asyncio
import logging
import sys

import click

from ...config import BACKENDS, Config
from ...errors import StartupError
from ...service import serve

logger = logging.getLogger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@click.command("run")
@click.option("--backend", "-b", type=click.Choice(BACKENDS), help="Bus backend (overrides CERTRELAY_BACKEND)")
@click.option("--port", "-p", type=int, help="Health server port (overrides PORT)")
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    help="Log level (overrides CERTRELAY_LOG_LEVEL)",
)
def run_command(backend: str, port: int, log_level: str):
    """
    Relay certstream events to the configured bus.

    Runs until terminated. Exits with status 1 when the configuration is
    incomplete or the publisher can't be created.
    """
    try:
        cfg = Config.from_env()
    except StartupError as e:
        configure_logging(log_level or "INFO")
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    if backend:
        cfg.backend = backend
    if port:
        cfg.server_port = port
    if log_level:
        cfg.log_level = log_level.upper()
    configure_logging(cfg.log_level)

    try:
        asyncio.run(serve(cfg))
    except StartupError as e:
        logger.error(f"Couldn't start relay: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted")
