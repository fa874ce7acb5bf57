"""
Bus backends for relayed certificate records.
"""

import logging
from typing import Optional

from ..config import Config, config as default_config
from ..errors import StartupError
from .base import Publisher
from .null import NullPublisher

logger = logging.getLogger(__name__)


def create_publisher(cfg: Optional[Config] = None) -> Publisher:
    """
    Build the publisher selected by cfg.backend.

    Backend modules are imported lazily so a deployment only needs the
    client library of the bus it actually talks to.

    Raises:
        StartupError: unknown backend or the client could not be constructed.
    """
    cfg = cfg or default_config
    try:
        if cfg.backend == "kafka":
            from .kafka import KafkaPublisher

            return KafkaPublisher(cfg)
        if cfg.backend == "pubnub":
            from .pubnub_channel import PubNubPublisher

            return PubNubPublisher(cfg)
        if cfg.backend == "redis":
            from .redis_stream import RedisStreamPublisher

            return RedisStreamPublisher(cfg)
        if cfg.backend == "null":
            return NullPublisher()
    except StartupError:
        raise
    except Exception as e:
        raise StartupError(f"Couldn't create {cfg.backend} publisher: {e}") from e
    raise StartupError(f"Unknown backend {cfg.backend!r}")


__all__ = [
    "Publisher",
    "NullPublisher",
    "create_publisher",
]
