"""Shared fixtures for ipfs_access tests."""

from __future__ import annotations

import pytest
from pytest_metadata.plugin import metadata_key

from ipfs_access.ipfs.direct import DirectSource
from ipfs_access.ipfs.gateway import GatewaySource
from ipfs_access.models.config import AccessConfig, ReplicationConfig
from ipfs_access.models.records import SourceKind
from ipfs_access.replication.bus import LocalEventBus
from ipfs_access.service import IpfsAccessService
from ipfs_access.storage.sqlite import SQLitePinLedger

from tests.mocks import MockGateways, MockKuboClient

TEST_NODE_URL = "http://127.0.0.1:5001"
TEST_GATEWAYS = ["https://gw-a.test/ipfs/", "https://gw-b.test/ipfs/"]
TEST_IMAGE_GATEWAY = "https://img.test/ipfs/"


# ── Report metadata ──────────────────────────────────────────────


def pytest_configure(config):
    """Add the test topology to the HTML report Environment table."""
    meta = config.stash.setdefault(metadata_key, {})
    meta["Kubo RPC"] = TEST_NODE_URL
    meta["Mock Gateways"] = ", ".join(TEST_GATEWAYS)


def pytest_html_results_summary(prefix, summary, postfix):
    """List the gateways the unit tests pretend to talk to."""
    items = "".join(f"<li>{g}</li>" for g in TEST_GATEWAYS)
    prefix.append(
        '<div style="margin:8px 0;padding:10px;background:#f8f9fa;border:1px solid #dee2e6;'
        'border-radius:4px;font-family:monospace;font-size:13px;">'
        f"<strong>Kubo node:</strong> {TEST_NODE_URL}<br/>"
        f"<strong>Gateways:</strong><ul>{items}</ul>"
        "</div>"
    )


def make_test_config(**overrides) -> AccessConfig:
    """Build an AccessConfig suitable for testing."""
    defaults = dict(
        node_url=TEST_NODE_URL,
        fetch_timeout=1.0,
        progress=False,
        gateways_urls=list(TEST_GATEWAYS),
        gateway_timeout=2.0,
        image_gateway_url=TEST_IMAGE_GATEWAY,
        image_width=300,
        db_path=":memory:",
        log_level="debug",
        replication=ReplicationConfig(enabled=True, broadcast=True, queue_size=16),
    )
    defaults.update(overrides)
    return AccessConfig(**defaults)


@pytest.fixture
def test_config():
    """Default AccessConfig for tests."""
    return make_test_config()


@pytest.fixture
async def ledger():
    """Initialized in-memory SQLitePinLedger."""
    s = SQLitePinLedger(":memory:")
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def mock_kubo():
    return MockKuboClient()


@pytest.fixture
def mock_gateways():
    return MockGateways()


@pytest.fixture
async def bus():
    b = LocalEventBus(queue_size=16)
    yield b
    await b.stop()


@pytest.fixture
def direct(mock_kubo, ledger, bus):
    return DirectSource(mock_kubo, ledger, bus, fetch_timeout=1.0)


@pytest.fixture
def gateway(mock_gateways):
    return GatewaySource(
        TEST_GATEWAYS,
        timeout=2.0,
        image_gateway_url=TEST_IMAGE_GATEWAY,
        transport=mock_gateways.transport,
    )


@pytest.fixture
async def service(direct, gateway, ledger, bus):
    """Started IpfsAccessService over the mock node and mock gateways."""
    s = IpfsAccessService(
        {SourceKind.DIRECT: direct, SourceKind.REMOTE: gateway}, ledger, bus,
    )
    await s.start()
    yield s
    await s.close()
