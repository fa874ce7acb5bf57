"""
Process composition: relay loop, liveness server and delivery-report drainer.
"""

import asyncio
import logging
from typing import List, Optional

import uvicorn

from .capture.certstream import CertstreamSource
from .config import Config, config as default_config
from .fast_path.liveness import LivenessState
from .fast_path.relay import RelayLoop
from .publishers import create_publisher
from .publishers.base import Publisher
from .server.api import create_app

logger = logging.getLogger(__name__)


def build_server(cfg: Config, liveness: LivenessState) -> uvicorn.Server:
    app = create_app(
        liveness,
        backend=cfg.backend,
        staleness_seconds=cfg.staleness_seconds,
        timeout_seconds=cfg.health_timeout_seconds,
    )
    return uvicorn.Server(
        uvicorn.Config(
            app,
            host=cfg.server_host,
            port=cfg.server_port,
            log_level=cfg.log_level.lower(),
            access_log=False,
        )
    )


async def serve(cfg: Optional[Config] = None, publisher: Optional[Publisher] = None) -> None:
    """
    Run the relay until one of its tasks exits.

    The relay loop never returns on its own, so in practice this ends when
    uvicorn shuts down on SIGINT/SIGTERM.

    Raises:
        StartupError: invalid configuration or publisher construction failure.
    """
    cfg = cfg or default_config
    cfg.validate()
    logger.debug(f"Starting up with {cfg.masked()}")

    publisher = publisher or create_publisher(cfg)
    liveness = LivenessState()
    relay = RelayLoop(
        publisher,
        source=CertstreamSource(cfg.certstream_url),
        liveness=liveness,
        lifetime_seconds=cfg.lifetime_seconds,
        reconnect_delay_seconds=cfg.reconnect_delay_seconds,
    )
    server = build_server(cfg, liveness)

    logger.info(
        f"Relaying {cfg.certstream_url} to {publisher.name}, "
        f"health on {cfg.server_host}:{cfg.server_port}"
    )

    tasks: List[asyncio.Task] = [
        asyncio.create_task(relay.run(), name="relay"),
        asyncio.create_task(server.serve(), name="http"),
    ]
    if publisher.has_delivery_reports:
        tasks.append(asyncio.create_task(publisher.drain(), name="delivery-reports"))

    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.error(f"Task {task.get_name()} failed", exc_info=task.exception())
            else:
                logger.info(f"Task {task.get_name()} exited, shutting down")
    finally:
        relay.stop()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await publisher.close()
        logger.info(
            f"Shutdown complete: {relay.relayed} relayed, {relay.rejected} rejected, "
            f"{relay.subscriptions} subscriptions"
        )
