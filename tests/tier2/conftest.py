"""Tier 2 fixtures: real Kubo daemon at localhost:5001."""

from __future__ import annotations

import httpx
import pytest

from ipfs_access.ipfs.direct import DirectSource
from ipfs_access.ipfs.kubo import KuboClient
from ipfs_access.storage.sqlite import SQLitePinLedger

from tests.conftest import TEST_NODE_URL


@pytest.fixture(scope="session")
def kubo_available():
    """Check if local Kubo daemon is running. Skip tier2 tests if not."""
    try:
        r = httpx.post(f"{TEST_NODE_URL}/api/v0/id", timeout=3)
        if r.status_code == 200:
            return True
        pytest.skip(f"Kubo daemon not available at {TEST_NODE_URL}")
    except (httpx.ConnectError, httpx.TimeoutException):
        pytest.skip(f"Kubo daemon not available at {TEST_NODE_URL}")


@pytest.fixture
def real_kubo(kubo_available):
    return KuboClient(TEST_NODE_URL, progress=True)


@pytest.fixture
async def real_direct(real_kubo):
    """DirectSource over the live node and an in-memory ledger."""
    ledger = SQLitePinLedger(":memory:")
    await ledger.initialize()
    yield DirectSource(real_kubo, ledger, fetch_timeout=10.0)
    await ledger.close()
