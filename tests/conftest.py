"""Shared fixtures."""

import pytest

from netcompress.config import CompressionConfig, ProbeConfig
from tests.fakes import FakeTransport, ManualClock


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def transport(clock):
    return FakeTransport(clock)


@pytest.fixture
def fast_probe_config():
    """Probe settings with no inter-probe sleeps and a single fetch."""
    return ProbeConfig(latency_probe_gap_ms=0, concurrent_fetches=1)


@pytest.fixture
def config():
    return CompressionConfig()


@pytest.fixture
def repetitive_data():
    return {
        "items": [
            {"id": i, "name": "widget", "status": "active", "tags": ["alpha", "beta"]}
            for i in range(100)
        ]
    }
