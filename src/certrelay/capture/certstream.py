"""
Certstream event source.

Attaches to the aggregated certificate-transparency WebSocket feed and
exposes each attachment as a Subscription: a queue of decoded JSON events
and a queue of transport faults, both drained by the relay loop.
"""

import asyncio
import json
import logging
from typing import Any, Callable, Optional

import websockets

from ..config import config
from ..errors import TransportError

logger = logging.getLogger(__name__)

# Upstream frames carry the full leaf certificate and can exceed the
# websockets default of 1 MiB.
MAX_FRAME_SIZE = 16 * 2**20


class Subscription:
    """
    One attachment to the upstream stream.

    Owned exclusively by the relay loop. The reader task stops after the
    first fault; a subscription that has reported an error is never reused.
    """

    def __init__(
        self,
        url: str,
        connect: Callable[..., Any] = websockets.connect,
        max_pending: int = 1000,
        open_timeout: float = 30.0,
    ):
        self.url = url
        self._connect = connect
        self._open_timeout = open_timeout
        # Bounded so a slow publisher stops the reader instead of growing memory.
        self.events: "asyncio.Queue[Any]" = asyncio.Queue(maxsize=max_pending)
        self.errors: "asyncio.Queue[TransportError]" = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self.closed = False

    def start(self) -> "Subscription":
        self._task = asyncio.create_task(self._read(), name=f"certstream-reader:{self.url}")
        return self

    async def next_event(self) -> Any:
        """Wait for the next decoded event."""
        return await self.events.get()

    async def next_error(self) -> TransportError:
        """Wait for the fault that ends this subscription."""
        return await self.errors.get()

    async def _read(self) -> None:
        try:
            async with self._connect(
                self.url,
                open_timeout=self._open_timeout,
                max_size=MAX_FRAME_SIZE,
            ) as websocket:
                logger.info(f"Connected to certstream at {self.url}")
                async for frame in websocket:
                    try:
                        event = json.loads(frame)
                    except (ValueError, RecursionError) as e:
                        raise TransportError(f"Malformed certstream frame: {e}") from e
                    await self.events.put(event)
            raise TransportError("Certstream connection closed by server")
        except asyncio.CancelledError:
            raise
        except TransportError as e:
            self.errors.put_nowait(e)
        except (websockets.WebSocketException, OSError, asyncio.TimeoutError) as e:
            self.errors.put_nowait(
                TransportError(f"Certstream transport failed: {type(e).__name__}: {e}")
            )
        except Exception as e:
            logger.exception("Certstream reader failed unexpectedly")
            self.errors.put_nowait(
                TransportError(f"Certstream reader failed: {type(e).__name__}: {e}")
            )

    async def close(self) -> None:
        """Release both sequences and stop the reader."""
        if self.closed:
            return
        self.closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        elif self._task is not None and not self._task.cancelled():
            self._task.exception()
        # Drop whatever was buffered; nothing outlives the subscription.
        while not self.events.empty():
            self.events.get_nowait()


class CertstreamSource:
    """Factory for subscriptions to one certstream endpoint."""

    def __init__(
        self,
        url: Optional[str] = None,
        connect: Callable[..., Any] = websockets.connect,
        max_pending: int = 1000,
    ):
        self.url = url or config.certstream_url
        self._connect = connect
        self.max_pending = max_pending

    def subscribe(self) -> Subscription:
        """Open a new subscription. Connection faults arrive on its error queue."""
        logger.debug(f"Subscribing to {self.url}")
        return Subscription(self.url, connect=self._connect, max_pending=self.max_pending).start()
