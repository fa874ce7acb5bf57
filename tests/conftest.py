"""
Shared fixtures for relay tests.
"""

import copy

import pytest

from fakes import CERTIFICATE_UPDATE


@pytest.fixture
def cert_event():
    """A certificate_update event with every required field present."""
    return copy.deepcopy(CERTIFICATE_UPDATE)
