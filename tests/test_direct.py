"""Direct source: node reads and the owner-gated pin lifecycle."""

from __future__ import annotations

import asyncio
import logging

import pytest

from ipfs_access.errors import (
    AlreadyPinned,
    ContentUnavailable,
    InvalidInput,
    NotFound,
    PinFailed,
    Unauthorized,
    Unavailable,
)
from ipfs_access.ipfs.direct import DirectSource
from ipfs_access.models.events import WRITE_TOPIC, ReplicationMessage
from ipfs_access.models.records import FileMetadata

from tests.factories import make_png_bytes
from tests.mocks import MockKuboClient, fake_cid


async def _stream(*parts: bytes):
    for part in parts:
        yield part


class FailingLedger:
    """Wraps a real ledger and fails the chosen operations."""

    def __init__(self, inner, fail_on: set[str]) -> None:
        self._inner = inner
        self._fail_on = fail_on

    def __getattr__(self, name):
        attr = getattr(self._inner, name)
        if name not in self._fail_on:
            return attr

        async def _fail(*args, **kwargs):
            raise RuntimeError(f"ledger {name} exploded")

        return _fail


# ── Connect & status ─────────────────────────────────────────────


async def test_connect_live_node(direct):
    assert await direct.connect() is True


async def test_connect_dead_node_warns(ledger, caplog):
    source = DirectSource(MockKuboClient(online=False), ledger)
    with caplog.at_level(logging.WARNING):
        assert await source.connect() is False
    assert "Running as resolver service only" in caplog.text


async def test_status(direct):
    status = await direct.status()
    assert status.id == "12D3KooWMockNode"
    assert len(status.addresses) == 1
    assert len(status.peers) == 1


async def test_status_dead_node(ledger):
    source = DirectSource(MockKuboClient(online=False), ledger)
    with pytest.raises(Unavailable):
        await source.status()


# ── Reads ────────────────────────────────────────────────────────


async def test_fetch_pinned_content(direct, mock_kubo):
    cid = mock_kubo.store(b"hello from the node")
    assert await direct.fetch(cid) == b"hello from the node"


async def test_get_parses_json(direct, mock_kubo):
    cid = mock_kubo.store(b'{"k": [1, 2]}')
    assert await direct.get(cid) == {"k": [1, 2]}


async def test_fetch_typed(direct, mock_kubo):
    cid = mock_kubo.store(make_png_bytes())
    result = await direct.fetch_typed(f"ipfs://{cid}")
    assert result.type.mime == "image/png"


async def test_fetch_missing_is_content_unavailable(direct):
    with pytest.raises(ContentUnavailable) as exc_info:
        await direct.fetch("QmMissing")
    assert exc_info.value.cid == "QmMissing"


async def test_fetch_timeout(ledger):
    client = MockKuboClient(cat_delay=5.0)
    cid = client.store(b"slow")
    source = DirectSource(client, ledger, fetch_timeout=0.05)
    with pytest.raises(ContentUnavailable, match="timed out"):
        await source.fetch(cid)


async def test_fetch_empty_cid(direct):
    with pytest.raises(InvalidInput):
        await direct.fetch("")


# ── Pin ──────────────────────────────────────────────────────────


async def test_pin_records_owner(direct, mock_kubo, ledger):
    cid = await direct.pin("hello", "alice")

    assert cid == fake_cid(b"hello")
    assert cid in mock_kubo.pinned
    record = await ledger.find_by_cid(cid)
    assert record.owner == "alice"
    assert record.timestamp


async def test_pin_requires_owner(direct):
    with pytest.raises(InvalidInput):
        await direct.pin("hello", "")


async def test_pin_add_failure(ledger):
    source = DirectSource(MockKuboClient(fail_add=True), ledger)
    with pytest.raises(PinFailed):
        await source.pin("hello", "alice")
    assert await ledger.list_pins() == []


async def test_pin_node_down(ledger):
    source = DirectSource(MockKuboClient(online=False), ledger)
    with pytest.raises(PinFailed):
        await source.pin("hello", "alice")


async def test_repin_same_owner_keeps_record(direct, ledger):
    cid = await direct.pin("hello", "alice")
    first = await ledger.find_by_cid(cid)

    assert await direct.pin("hello", "alice") == cid
    assert await ledger.find_by_cid(cid) == first


async def test_repin_other_owner_rejected(direct, ledger):
    cid = await direct.pin("hello", "alice")
    with pytest.raises(AlreadyPinned) as exc_info:
        await direct.pin("hello", "bob")
    assert exc_info.value.owner == "alice"
    assert (await ledger.find_by_cid(cid)).owner == "alice"


async def test_ledger_failure_leaves_content_in_node(mock_kubo, ledger):
    """Ledger write fails → PinFailed, node keeps the content (no rollback)."""
    source = DirectSource(mock_kubo, FailingLedger(ledger, {"create"}))
    with pytest.raises(PinFailed):
        await source.pin("hello", "alice")
    assert fake_cid(b"hello") in mock_kubo.pinned
    assert await ledger.list_pins() == []


async def test_concurrent_pins_one_owner_wins(direct, ledger):
    results = await asyncio.gather(
        direct.pin("race", "alice"),
        direct.pin("race", "bob"),
        return_exceptions=True,
    )
    errors = [r for r in results if isinstance(r, Exception)]
    assert len(errors) == 1
    assert isinstance(errors[0], AlreadyPinned)
    assert len(await ledger.list_pins()) == 1


# ── Broadcast ────────────────────────────────────────────────────


async def test_pin_broadcasts_write(direct, bus):
    received: list[ReplicationMessage] = []

    async def collect(msg):
        received.append(msg)

    bus.subscribe(WRITE_TOPIC, collect)
    await bus.start()

    await direct.pin("hello", "alice")
    await bus.drain()

    assert received == [ReplicationMessage(content=b"hello", owner="alice")]


async def test_repin_does_not_broadcast_again(direct, bus):
    received = []

    async def collect(msg):
        received.append(msg)

    bus.subscribe(WRITE_TOPIC, collect)
    await bus.start()

    await direct.pin("hello", "alice")
    await direct.pin("hello", "alice")
    await bus.drain()
    assert len(received) == 1


# ── Streamed upload ──────────────────────────────────────────────


async def test_pin_stream_records_file_metadata(direct, ledger, bus):
    received = []

    async def collect(msg):
        received.append(msg)

    bus.subscribe(WRITE_TOPIC, collect)
    await bus.start()

    meta = FileMetadata(filename="pic.png", mimetype="image/png", size=8)
    cid = await direct.pin_stream(_stream(b"abcd", b"efgh"), "alice", meta)
    await bus.drain()

    assert cid == fake_cid(b"abcdefgh")
    record = await ledger.find_by_cid(cid)
    assert record.metadata == {"filename": "pic.png", "mimetype": "image/png", "size": 8}
    assert received == []


async def test_pin_stream_add_failure(ledger):
    source = DirectSource(MockKuboClient(fail_add=True), ledger)
    with pytest.raises(PinFailed):
        await source.pin_stream(_stream(b"x"), "alice")


# ── Unpin ────────────────────────────────────────────────────────


async def test_unpin_by_owner(direct, mock_kubo, ledger):
    cid = await direct.pin("hello", "alice")

    assert await direct.unpin(cid, "alice") is True
    assert cid not in mock_kubo.pinned
    assert await ledger.find_by_cid(cid) is None


async def test_unpin_unknown_cid(direct):
    with pytest.raises(NotFound):
        await direct.unpin("QmNeverPinned", "alice")


async def test_unpin_by_non_owner(direct, mock_kubo, ledger):
    cid = await direct.pin("hello", "alice")

    with pytest.raises(Unauthorized):
        await direct.unpin(cid, "bob")
    assert mock_kubo.pin_remove_calls == []
    assert await ledger.find_by_cid(cid) is not None


async def test_unpin_node_failure_keeps_record(ledger):
    client = MockKuboClient(fail_pin_remove=True)
    source = DirectSource(client, ledger)
    cid = await source.pin("hello", "alice")

    with pytest.raises(Unavailable):
        await source.unpin(cid, "alice")
    assert await ledger.find_by_cid(cid) is not None


async def test_unpin_ledger_down(mock_kubo, ledger):
    source = DirectSource(mock_kubo, FailingLedger(ledger, {"find_by_cid"}))
    with pytest.raises(Unavailable):
        await source.unpin("QmAny", "alice")


async def test_unpin_twice(direct):
    cid = await direct.pin("hello", "alice")
    await direct.unpin(cid, "alice")
    with pytest.raises(NotFound):
        await direct.unpin(cid, "alice")


async def test_concurrent_unpins_one_succeeds(direct, ledger):
    cid = await direct.pin("hello", "alice")

    results = await asyncio.gather(
        direct.unpin(cid, "alice"),
        direct.unpin(cid, "alice"),
        return_exceptions=True,
    )
    assert results.count(True) == 1
    assert sum(isinstance(r, NotFound) for r in results) == 1
    assert await ledger.find_by_cid(cid) is None


async def test_concurrent_unpins_across_instances(mock_kubo, ledger):
    """Two sources sharing a ledger but not a lock → compare-and-delete decides."""
    first = DirectSource(mock_kubo, ledger)
    second = DirectSource(mock_kubo, ledger)
    cid = await first.pin("hello", "alice")

    results = await asyncio.gather(
        first.unpin(cid, "alice"),
        second.unpin(cid, "alice"),
        return_exceptions=True,
    )
    assert results.count(True) == 1
    assert sum(isinstance(r, NotFound) for r in results) == 1
    assert await ledger.find_by_cid(cid) is None


@pytest.mark.parametrize("unpin_first", [True, False])
async def test_repin_racing_unpin_keeps_ledger_and_node_in_step(
    direct, mock_kubo, ledger, unpin_first,
):
    """Whatever the interleaving, a ledger record exists iff the node pins the CID."""
    cid = await direct.pin("hello", "alice")

    ops = [direct.unpin(cid, "alice"), direct.pin("hello", "alice")]
    if not unpin_first:
        ops.reverse()
    await asyncio.gather(*ops, return_exceptions=True)

    record = await ledger.find_by_cid(cid)
    assert (record is not None) == (cid in mock_kubo.pinned)


async def test_pin_fails_when_node_refuses_pin(ledger):
    source = DirectSource(MockKuboClient(fail_pin_add=True), ledger)
    with pytest.raises(PinFailed):
        await source.pin("hello", "alice")
    assert await ledger.list_pins() == []


async def test_locks_released_after_use(direct):
    cid = await direct.pin("hello", "alice")
    await direct.unpin(cid, "alice")
    assert direct._locks == {}


# ── Replication ──────────────────────────────────────────────────


async def test_handle_replication_pins_without_rebroadcast(direct, ledger, bus):
    received = []

    async def collect(msg):
        received.append(msg)

    bus.subscribe(WRITE_TOPIC, collect)
    await bus.start()

    ok = await direct.handle_replication(ReplicationMessage(content=b"mirrored", owner="alice"))
    await bus.drain()

    assert ok is True
    assert (await ledger.find_by_cid(fake_cid(b"mirrored"))).owner == "alice"
    assert received == []


async def test_handle_replication_failure_is_swallowed(ledger):
    source = DirectSource(MockKuboClient(online=False), ledger)
    ok = await source.handle_replication(ReplicationMessage(content=b"x", owner="alice"))
    assert ok is False
