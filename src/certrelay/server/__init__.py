"""
HTTP liveness surface.
"""

from .api import create_app, run_checks, staleness_checkers

__all__ = [
    "create_app",
    "run_checks",
    "staleness_checkers",
]
