"""
Error taxonomy for the relay.

Only StartupError is allowed to end the process. Everything raised while a
subscription is running is turned into a log line and, where it is fatal
for the subscription, a reconnect.
"""

from typing import Optional


class RelayError(Exception):
    """Base class for relay errors."""


class StartupError(RelayError):
    """Configuration or publisher construction failed."""


class ProjectionError(RelayError):
    """An upstream event could not be projected onto a CertRecord."""

    UNKNOWN_TYPE = "UnknownType"
    FIELD_MISSING = "FieldMissing"

    def __init__(self, reason: str, detail: str, path: Optional[str] = None):
        super().__init__(f"{reason}: {detail}")
        self.reason = reason
        self.detail = detail
        self.path = path


class TransportError(RelayError):
    """The upstream stream failed: handshake, drop, close, or a malformed frame."""


class PublishError(RelayError):
    """The backend rejected a record synchronously."""


class SerializationError(PublishError):
    """A record could not be encoded for the bus."""
