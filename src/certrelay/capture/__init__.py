"""
Upstream capture: certificate-transparency event sources.
"""

from .certstream import CertstreamSource, Subscription

__all__ = [
    "CertstreamSource",
    "Subscription",
]
