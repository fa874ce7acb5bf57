"""
Relay loop: certstream subscription -> projection -> publisher.

Each subscription runs until the upstream faults, the publisher refuses a
record, or its lifetime runs out; then it is released and a new one is
opened. The upstream feed is known to go quiet without closing, so the
lifetime bounds how stale the relay can get regardless of what the
connection reports.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Optional

from ..capture.certstream import CertstreamSource, Subscription
from ..config import config
from ..errors import ProjectionError, PublishError, SerializationError
from .liveness import LivenessState
from .projection import project

if TYPE_CHECKING:
    from ..publishers.base import Publisher

logger = logging.getLogger(__name__)

# Why a subscription was torn down.
LIFETIME_EXPIRED = "lifetime_expired"
TRANSPORT_FAILED = "transport_failed"
PUBLISH_FAILED = "publish_failed"
STOPPED = "stopped"


class RelayLoop:
    """
    Single consumer of the certstream subscription.

    Records are projected and handed to the publisher in arrival order.
    last_read is updated before publish() is called and last_sent only after
    it returns successfully.
    """

    def __init__(
        self,
        publisher: "Publisher",
        source: Optional[CertstreamSource] = None,
        liveness: Optional[LivenessState] = None,
        lifetime_seconds: Optional[float] = None,
        reconnect_delay_seconds: Optional[float] = None,
    ):
        """Initialize relay loop."""
        self.publisher = publisher
        self.source = source or CertstreamSource()
        self.liveness = liveness or LivenessState()
        self.lifetime = lifetime_seconds if lifetime_seconds is not None else config.lifetime_seconds
        self.reconnect_delay = (
            reconnect_delay_seconds
            if reconnect_delay_seconds is not None
            else config.reconnect_delay_seconds
        )

        self.running = False
        self.subscriptions = 0
        self.relayed = 0
        self.rejected = 0

    async def run(self) -> None:
        """
        Reconnect forever.

        CONNECTING -> RUNNING -> TEARDOWN -> CONNECTING. Faulted
        subscriptions are followed by reconnect_delay; an expired lifetime
        reconnects immediately.
        """
        self.running = True
        while self.running:
            try:
                subscription = self.source.subscribe()
            except Exception:
                logger.exception("Couldn't subscribe to certstream")
                await asyncio.sleep(self.reconnect_delay)
                continue

            self.subscriptions += 1
            try:
                reason = await self.run_subscription(subscription)
            finally:
                await subscription.close()
            logger.debug(f"Subscription {self.subscriptions} torn down: {reason}")

            if self.running and reason in (TRANSPORT_FAILED, PUBLISH_FAILED):
                await asyncio.sleep(self.reconnect_delay)

    async def run_subscription(self, subscription: Subscription) -> str:
        """
        Drive one subscription until it has to be torn down.

        Waits on the next event, the error queue and the lifetime deadline
        together. The caller releases the subscription.

        Returns:
            The teardown reason.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.lifetime
        error_waiter = asyncio.ensure_future(subscription.next_error())
        event_waiter: Optional[asyncio.Future] = None

        try:
            while self.running:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    logger.info(f"Restarting read after {self.lifetime}s have elapsed")
                    return LIFETIME_EXPIRED

                if event_waiter is None:
                    event_waiter = asyncio.ensure_future(subscription.next_event())

                done, _ = await asyncio.wait(
                    {event_waiter, error_waiter},
                    timeout=remaining,
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if event_waiter in done:
                    event = event_waiter.result()
                    event_waiter = None
                    if not await self.handle_event(event):
                        return PUBLISH_FAILED
                elif error_waiter in done:
                    logger.error(f"certstream receiver received error: {error_waiter.result()}")
                    return TRANSPORT_FAILED
            return STOPPED
        finally:
            for waiter in (event_waiter, error_waiter):
                if waiter is not None and not waiter.done():
                    waiter.cancel()

    async def handle_event(self, event: Any) -> bool:
        """
        Project and publish one upstream event.

        Returns:
            False when the subscription must be torn down.
        """
        try:
            record = project(event)
        except ProjectionError as e:
            # A malformed event still proves the transport is alive.
            self.liveness.mark_read()
            self.rejected += 1
            logger.warning(f"Error decoding certstream event: {e}")
            return True

        self.liveness.mark_read()
        logger.debug(f"Received {record}")

        try:
            await self.publisher.publish(record)
        except SerializationError as e:
            logger.error(f"Couldn't serialize: {e}")
            return False
        except PublishError as e:
            logger.error(f"Couldn't publish {record.serial_number} to {self.publisher.name}: {e}")
            return False
        except Exception:
            logger.exception(f"Unexpected failure publishing to {self.publisher.name}")
            return False

        self.liveness.mark_sent()
        self.relayed += 1
        return True

    def stop(self) -> None:
        """Stop after the current wait completes."""
        self.running = False
