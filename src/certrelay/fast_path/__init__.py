"""
Fast path: projection of certstream events and the relay loop.
"""

from .liveness import LivenessState
from .projection import CertRecord, project
from .relay import RelayLoop

__all__ = [
    "CertRecord",
    "LivenessState",
    "RelayLoop",
    "project",
]
