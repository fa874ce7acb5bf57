"""
Publisher capability shared by every bus backend.
"""

from abc import ABC, abstractmethod

from ..fast_path.projection import CertRecord


class Publisher(ABC):
    """
    Pushes records onto a message bus.

    publish() returns once the backend has accepted the record (enqueued for
    an async producer, acknowledged for a request/response client) and raises
    PublishError when it refuses it synchronously.
    """

    name = "abstract"
    has_delivery_reports = False

    async def drain(self) -> None:
        """Consume delivery reports until cancelled. Only called when has_delivery_reports is set."""

    @abstractmethod
    async def publish(self, record: CertRecord) -> None:
        """Hand one record to the bus."""

    async def close(self) -> None:
        """Flush and release the backend client."""
