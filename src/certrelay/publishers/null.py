"""
Publisher that only logs, for running the relay without a bus.
"""

import logging

from ..fast_path.projection import CertRecord
from .base import Publisher

logger = logging.getLogger(__name__)


class NullPublisher(Publisher):
    name = "null"

    def __init__(self):
        self.discarded = 0

    async def publish(self, record: CertRecord) -> None:
        payload = record.to_json()
        self.discarded += 1
        logger.debug(f"Discarding record {payload}")
