"""
pytest configuration and fixtures for payload decoder tests.

Provides reusable fixtures for:
- Decode contexts with a fixed receive time
- ICSS payload construction
- Hypothesis property-based testing configuration
"""

import os
import struct
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from hypothesis import settings, Verbosity, Phase

# Add project paths
sys.path.insert(0, str(Path(__file__).parent.parent / "tools"))

from payload_decoder import DecodeContext

# Default profile: balanced speed and coverage
settings.register_profile(
    "default",
    max_examples=100,
    deadline=None,
)

# CI profile: more thorough testing
settings.register_profile(
    "ci",
    max_examples=500,
    deadline=None,
    suppress_health_check=[],
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)

# Dev profile: fast iteration
settings.register_profile(
    "dev",
    max_examples=10,
    deadline=None,
)

# Debug profile: verbose output
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)

settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "default"))


RECEIVE_TIME = datetime(2024, 5, 1, 12, 34, 56, tzinfo=timezone.utc)


@pytest.fixture
def receive_time():
    return RECEIVE_TIME


@pytest.fixture
def context():
    """Decode context for device BALLOON1, counter 42."""
    return DecodeContext('BALLOON1', 42, RECEIVE_TIME)


def build_icss(b0=0, b1=0, b2=0, b3=0, temp=0, lat=0, lon=0, alt=0, records=()):
    """
    Build an ICSS payload.

    records is a sequence of (lat, lon, alt, minutes_ago) raw values.
    """
    raw = bytes([b0, b1, b2, b3]) + struct.pack('<bhhH', temp, lat, lon, alt)
    for rec in records:
        raw += struct.pack('<hhHH', *rec)
    return raw


@pytest.fixture
def icss_builder():
    return build_icss


# Markers for test categorization
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
