"""
Kafka publisher built on confluent-kafka.

produce() only enqueues into librdkafka's local queue; broker
acknowledgements come back later through poll() as delivery callbacks,
which this module drains on a worker thread and logs.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from confluent_kafka import KafkaError, KafkaException, Producer

from ..config import Config, config as default_config
from ..errors import PublishError
from ..fast_path.projection import CertRecord
from .base import Publisher

logger = logging.getLogger(__name__)

DRAIN_POLL_SECONDS = 0.5
QUEUE_FULL_POLL_SECONDS = 1.0


def producer_config(cfg: Config) -> Dict[str, Any]:
    """librdkafka settings for a SASL/SCRAM cluster that must ack on every in-sync replica."""
    return {
        "bootstrap.servers": cfg.kafka_broker,
        "client.id": cfg.kafka_client_id,
        "acks": "all",
        "security.protocol": "sasl_ssl",
        "sasl.mechanism": "SCRAM-SHA-256",
        "sasl.username": cfg.kafka_user,
        "sasl.password": cfg.kafka_password,
    }


class KafkaPublisher(Publisher):
    """Asynchronous-queuing backend: success means accepted by the producer queue."""

    name = "kafka"
    has_delivery_reports = True

    def __init__(self, cfg: Optional[Config] = None, producer: Optional[Producer] = None):
        cfg = cfg or default_config
        self.topic = cfg.kafka_topic
        self.flush_timeout = cfg.kafka_flush_timeout
        self.producer = producer if producer is not None else Producer(producer_config(cfg))
        self.delivered = 0
        self.failed = 0

    def _on_delivery(self, err: Optional[KafkaError], msg: Any) -> None:
        """Delivery report callback, runs inside poll()/flush()."""
        if err is not None:
            self.failed += 1
            logger.warning(
                f"Failed to deliver message to {msg.topic()} [{msg.partition()}]: {err}"
            )
        else:
            self.delivered += 1

    async def publish(self, record: CertRecord) -> None:
        payload = record.to_bytes()
        while True:
            try:
                self.producer.produce(self.topic, value=payload, on_delivery=self._on_delivery)
                return
            except BufferError:
                # Local queue is full: serve delivery reports until there is room.
                logger.debug("Producer queue full, waiting for deliveries")
                await asyncio.to_thread(self.producer.poll, QUEUE_FULL_POLL_SECONDS)
            except KafkaException as e:
                raise PublishError(f"Kafka rejected message: {e}") from e

    async def drain(self) -> None:
        while True:
            await asyncio.to_thread(self.producer.poll, DRAIN_POLL_SECONDS)

    async def close(self) -> None:
        remaining = await asyncio.to_thread(self.producer.flush, self.flush_timeout)
        if remaining:
            logger.warning(f"{remaining} messages were still undelivered at shutdown")
