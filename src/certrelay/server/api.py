"""
Liveness surface for the relay.

An orchestrator polls GET /healthcheck and restarts the process when it
fails, which is how a stalled pipeline gets recovered.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import __version__
from ..config import config
from ..fast_path.liveness import LivenessState, format_timestamp

logger = logging.getLogger(__name__)

Checker = Callable[[], Awaitable[Optional[str]]]


class HealthResponse(BaseModel):
    status: str
    errors: Dict[str, str] = {}


class StatusResponse(BaseModel):
    name: str
    version: str
    backend: str
    last_read: Optional[str]
    last_sent: Optional[str]


def staleness_checkers(liveness: LivenessState, threshold_seconds: float) -> Dict[str, Checker]:
    """
    Build the read and sent checks.

    Each returns None when healthy, or a message naming its own timestamp.
    """

    async def read() -> Optional[str]:
        if liveness.read_age() >= threshold_seconds:
            return (
                f"Last read was at {format_timestamp(liveness.last_read) or 'never'}, "
                f"more than {threshold_seconds:g}s ago"
            )
        return None

    async def sent() -> Optional[str]:
        if liveness.sent_age() >= threshold_seconds:
            return (
                f"Last send was at {format_timestamp(liveness.last_sent) or 'never'}, "
                f"more than {threshold_seconds:g}s ago"
            )
        return None

    return {"read": read, "sent": sent}


async def run_checks(checkers: Dict[str, Checker], timeout_seconds: float) -> Dict[str, str]:
    """Run every checker concurrently within one overall timeout; return failures by name."""
    names = list(checkers)
    try:
        results = await asyncio.wait_for(
            asyncio.gather(*(checkers[name]() for name in names)),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError:
        return {"timeout": f"health checks did not finish within {timeout_seconds:g}s"}
    return {name: message for name, message in zip(names, results) if message}


def create_app(
    liveness: LivenessState,
    backend: Optional[str] = None,
    staleness_seconds: Optional[float] = None,
    timeout_seconds: Optional[float] = None,
    checkers: Optional[Dict[str, Checker]] = None,
) -> FastAPI:
    """Create and configure the FastAPI app around a shared LivenessState."""
    backend = backend or config.backend
    staleness_seconds = staleness_seconds or config.staleness_seconds
    timeout_seconds = timeout_seconds or config.health_timeout_seconds
    checkers = checkers or staleness_checkers(liveness, staleness_seconds)

    app = FastAPI(
        title="Certstream Relay",
        description="Relays certificate-transparency events to a message bus",
        version=__version__,
    )
    app.state.liveness = liveness

    @app.get("/", response_model=StatusResponse)
    async def root() -> StatusResponse:
        """Root endpoint."""
        return StatusResponse(
            name="certrelay",
            version=__version__,
            backend=backend,
            **liveness.snapshot(),
        )

    @app.get("/healthcheck", response_model=HealthResponse)
    async def healthcheck() -> JSONResponse:
        """Liveness probe: 200 while both reads and sends are recent, 503 otherwise."""
        errors = await run_checks(checkers, timeout_seconds)
        if errors:
            logger.debug(f"Health check failing: {errors}")
            body = HealthResponse(status="unavailable", errors=errors)
            return JSONResponse(status_code=503, content=body.model_dump())
        return JSONResponse(status_code=200, content=HealthResponse(status="ok").model_dump())

    return app
