"""
Liveness timestamps shared between the relay loop and the health endpoint.
"""

import time
from datetime import datetime, timezone
from typing import Callable, Optional

EPOCH = 0.0


class LivenessState:
    """
    Two wall-clock timestamps: when an event was last read from upstream and
    when a record was last handed to the publisher.

    Written only by the relay task, read by the HTTP task. Each attribute is
    a single float, so readers never see a torn value. Both start at the
    epoch, which makes every staleness check fail until the first read/send.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self.last_read: float = EPOCH
        self.last_sent: float = EPOCH

    def mark_read(self) -> float:
        self.last_read = max(self.last_read, self.clock())
        return self.last_read

    def mark_sent(self) -> float:
        self.last_sent = max(self.last_sent, self.clock())
        return self.last_sent

    def read_age(self) -> float:
        return self.clock() - self.last_read

    def sent_age(self) -> float:
        return self.clock() - self.last_sent

    def snapshot(self) -> dict:
        return {
            "last_read": format_timestamp(self.last_read),
            "last_sent": format_timestamp(self.last_sent),
        }


def format_timestamp(value: float) -> Optional[str]:
    """ISO-8601 rendering of a liveness timestamp, None while still at the epoch."""
    if value <= EPOCH:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()
