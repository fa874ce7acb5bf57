"""
Configuration management for the certificate-transparency relay.
"""

import os
from dataclasses import dataclass, field, fields
from typing import Dict, List

from .errors import StartupError

BACKENDS = ("kafka", "pubnub", "redis", "null")

# Variables each backend cannot start without.
REQUIRED_ENV: Dict[str, Dict[str, str]] = {
    "kafka": {
        "kafka_broker": "KAFKA_BROKER",
        "kafka_client_id": "KAFKA_CLIENTID",
        "kafka_user": "KAFKA_USER",
        "kafka_password": "KAFKA_PASSWORD",
        "kafka_topic": "KAFKA_TOPIC",
    },
    "pubnub": {
        "pn_subscribe_key": "PN_SUBSCRIBE_KEY",
        "pn_publish_key": "PN_PUBLISH_KEY",
        "pn_uuid": "PN_UUID",
    },
    "redis": {},
    "null": {},
}

SECRET_FIELDS = ("kafka_password", "pn_subscribe_key", "pn_publish_key")


def _env_int(name: str, default: int, strict: bool = True) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        if not strict:
            return default
        raise StartupError(f"{name} must be an integer, got {raw!r}")


@dataclass
class Config:
    """Main configuration class."""

    backend: str = "kafka"

    # Upstream certificate stream
    certstream_url: str = "wss://certstream.calidog.io/"

    # Kafka configuration
    kafka_broker: str = ""
    kafka_client_id: str = ""
    kafka_user: str = ""
    kafka_password: str = field(default="", repr=False)
    kafka_topic: str = ""
    kafka_flush_timeout: float = 10.0

    # PubNub configuration
    pn_subscribe_key: str = field(default="", repr=False)
    pn_publish_key: str = field(default="", repr=False)
    pn_uuid: str = ""
    pn_channel: str = "certstream"

    # Redis configuration
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_stream: str = "certstream"

    # Server configuration
    server_host: str = "0.0.0.0"
    server_port: int = 8080
    health_timeout_seconds: int = 5

    # Relay loop
    lifetime_seconds: int = 600
    staleness_seconds: int = 600
    reconnect_delay_seconds: int = 5

    log_level: str = "INFO"

    @classmethod
    def from_env(cls, strict: bool = True) -> "Config":
        """Create config from environment variables.

        With strict=False a malformed integer falls back to its default
        instead of raising StartupError.
        """

        def env_int(name: str, default: int) -> int:
            return _env_int(name, default, strict)

        return cls(
            backend=os.getenv("CERTRELAY_BACKEND", "kafka").strip().lower(),
            certstream_url=os.getenv("CERTSTREAM_URL", "wss://certstream.calidog.io/"),
            kafka_broker=os.getenv("KAFKA_BROKER", ""),
            kafka_client_id=os.getenv("KAFKA_CLIENTID", ""),
            kafka_user=os.getenv("KAFKA_USER", ""),
            kafka_password=os.getenv("KAFKA_PASSWORD", ""),
            kafka_topic=os.getenv("KAFKA_TOPIC", ""),
            pn_subscribe_key=os.getenv("PN_SUBSCRIBE_KEY", ""),
            pn_publish_key=os.getenv("PN_PUBLISH_KEY", ""),
            pn_uuid=os.getenv("PN_UUID", ""),
            redis_host=os.getenv("CERTRELAY_REDIS_HOST", "localhost"),
            redis_port=env_int("CERTRELAY_REDIS_PORT", 6379),
            redis_db=env_int("CERTRELAY_REDIS_DB", 0),
            redis_stream=os.getenv("CERTRELAY_REDIS_STREAM", "certstream"),
            server_host=os.getenv("CERTRELAY_HOST", "0.0.0.0"),
            server_port=env_int("PORT", 8080),
            health_timeout_seconds=env_int("CERTRELAY_HEALTH_TIMEOUT_SECONDS", 5),
            lifetime_seconds=env_int("CERTRELAY_LIFETIME_SECONDS", 600),
            staleness_seconds=env_int("CERTRELAY_STALENESS_SECONDS", 600),
            reconnect_delay_seconds=env_int("CERTRELAY_RECONNECT_DELAY_SECONDS", 5),
            log_level=os.getenv("CERTRELAY_LOG_LEVEL", "INFO").upper(),
        )

    def missing_variables(self) -> List[str]:
        """Environment variables the selected backend needs but did not get."""
        required = REQUIRED_ENV.get(self.backend, {})
        return [env for attr, env in required.items() if not getattr(self, attr)]

    def validate(self) -> None:
        """
        Check the configuration before anything is constructed.

        Raises:
            StartupError: unknown backend, missing credentials, or
                non-positive timing values.
        """
        if self.backend not in BACKENDS:
            raise StartupError(
                f"Unknown backend {self.backend!r}, expected one of {', '.join(BACKENDS)}"
            )
        missing = self.missing_variables()
        if missing:
            raise StartupError(
                f"Missing required environment for {self.backend} backend: {', '.join(missing)}"
            )
        for name in ("lifetime_seconds", "staleness_seconds", "health_timeout_seconds"):
            if getattr(self, name) <= 0:
                raise StartupError(f"{name} must be positive")
        if self.reconnect_delay_seconds < 0:
            raise StartupError("reconnect_delay_seconds must not be negative")

    def masked(self) -> Dict[str, object]:
        """Configuration as a dict with secrets hidden, for debug logging."""
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in SECRET_FIELDS and value:
                value = "***"
            result[f.name] = value
        return result


# Global config instance. Lenient so importing never fails; the run command
# re-reads the environment strictly.
config = Config.from_env(strict=False)
