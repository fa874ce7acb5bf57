"""
Publishes records to a Redis Stream.
"""

import asyncio
import logging
from typing import Optional

import redis

from ..config import Config, config as default_config
from ..errors import PublishError
from ..fast_path.projection import CertRecord
from .base import Publisher

logger = logging.getLogger(__name__)


class RedisStreamPublisher(Publisher):
    """
    Appends each record to a capped Redis Stream with XADD.

    The stream is trimmed approximately to max_stream_length so consumers
    that fall behind lose the oldest entries rather than exhausting memory.
    """

    name = "redis"

    def __init__(self, cfg: Optional[Config] = None, redis_client: Optional[redis.Redis] = None):
        cfg = cfg or default_config
        if redis_client:
            self.redis = redis_client
        else:
            self.redis = redis.Redis(
                host=cfg.redis_host,
                port=cfg.redis_port,
                db=cfg.redis_db,
                decode_responses=True,
            )

        self.stream_key = cfg.redis_stream
        self.max_stream_length = 100000

    def _xadd(self, payload: str) -> str:
        return self.redis.xadd(
            name=self.stream_key,
            fields={"record": payload},
            maxlen=self.max_stream_length,
            approximate=True,
        )

    async def publish(self, record: CertRecord) -> None:
        payload = record.to_json()
        try:
            message_id = await asyncio.to_thread(self._xadd, payload)
        except redis.RedisError as e:
            raise PublishError(f"Redis XADD to {self.stream_key} failed: {e}") from e
        logger.debug(f"Appended {message_id} to {self.stream_key}")

    async def close(self) -> None:
        """Close Redis connection."""
        self.redis.close()
