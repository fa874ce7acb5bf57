"""
PubNub publisher.

Each publish is a request/response round-trip, so the relay loop is
backpressured directly by broker latency.
"""

import asyncio
import json
import logging
from typing import Any, Optional

from pubnub.exceptions import PubNubException
from pubnub.pnconfiguration import PNConfiguration
from pubnub.pubnub import PubNub

from ..config import Config, config as default_config
from ..errors import PublishError
from ..fast_path.projection import CertRecord
from .base import Publisher

logger = logging.getLogger(__name__)


def build_client(cfg: Config) -> PubNub:
    pnconfig = PNConfiguration()
    pnconfig.subscribe_key = cfg.pn_subscribe_key
    pnconfig.publish_key = cfg.pn_publish_key
    pnconfig.user_id = cfg.pn_uuid
    return PubNub(pnconfig)


class PubNubPublisher(Publisher):
    """Synchronous-request backend: publish returns the broker's verdict."""

    name = "pubnub"

    def __init__(self, cfg: Optional[Config] = None, client: Optional[Any] = None):
        cfg = cfg or default_config
        self.channel = cfg.pn_channel
        self.client = client if client is not None else build_client(cfg)

    def _send(self, message: dict) -> Any:
        return self.client.publish().channel(self.channel).message(message).sync()

    async def publish(self, record: CertRecord) -> None:
        # Same JSON object the other backends write.
        message = json.loads(record.to_json())
        try:
            envelope = await asyncio.to_thread(self._send, message)
        except PubNubException as e:
            raise PublishError(f"PubNub publish failed: {e}") from e
        logger.debug(f"Published to {self.channel}, timetoken {envelope.result.timetoken}")
