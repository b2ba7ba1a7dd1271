"""Kubo HTTP RPC client - the content store behind the Direct source."""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import AsyncIterable, AsyncIterator

import httpx

log = logging.getLogger(__name__)


class KuboError(Exception):
    """Kubo answered an RPC call with an error status."""

    def __init__(self, endpoint: str, status_code: int, message: str) -> None:
        super().__init__(f"kubo {endpoint}: HTTP {status_code}: {message}")
        self.endpoint = endpoint
        self.status_code = status_code
        self.message = message


class KuboClient:
    """Talks to a Kubo node through its HTTP RPC API at /api/v0/.

    Every RPC is a POST. Used endpoints:
    - version, id, swarm/peers: liveness and status
    - cat: stream content out
    - add: inject content (single buffer or streamed multipart)
    - pin/add, pin/rm: assert or drop a pin
    """

    def __init__(
        self,
        node_url: str = "http://127.0.0.1:5001",
        rpc_timeout: float = 30.0,
        progress: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = node_url.rstrip("/")
        self._rpc_timeout = rpc_timeout
        self._progress = progress
        self._transport = transport

    @property
    def node_url(self) -> str:
        return self._base_url

    def _url(self, endpoint: str) -> str:
        return f"{self._base_url}/api/v0/{endpoint}"

    def _client(self, timeout: float | httpx.Timeout | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout if timeout is not None else self._rpc_timeout,
            transport=self._transport,
        )

    async def _post_json(self, endpoint: str, params: dict | None = None) -> dict:
        async with self._client() as client:
            resp = await client.post(self._url(endpoint), params=params)
            await _raise_for_kubo(endpoint, resp)
            return resp.json()

    # ── Status ─────────────────────────────────────────────

    async def version(self) -> dict:
        return await self._post_json("version")

    async def id(self) -> dict:
        return await self._post_json("id")

    async def swarm_peers(self) -> dict:
        return await self._post_json("swarm/peers")

    # ── Content ────────────────────────────────────────────

    async def cat(self, cid: str, timeout: float = 10.0) -> AsyncIterator[bytes]:
        """Stream the bytes behind ``cid``."""
        async with self._client(httpx.Timeout(timeout, connect=min(timeout, 10.0))) as client:
            async with client.stream("POST", self._url("cat"), params={"arg": cid}) as resp:
                await _raise_for_kubo("cat", resp)
                async for chunk in resp.aiter_bytes():
                    yield chunk

    async def add(self, data: bytes, pin: bool = True) -> str:
        """Add one buffer and return its CID."""
        async with self._client() as client:
            resp = await client.post(
                self._url("add"),
                params={"pin": _flag(pin)},
                files={"file": ("data", data)},
            )
            await _raise_for_kubo("add", resp)
            return resp.json()["Hash"]

    async def add_stream(
        self,
        chunks: AsyncIterable[bytes],
        filename: str = "data",
        pin: bool = True,
    ) -> AsyncIterator[dict]:
        """Stream ``chunks`` into Kubo without buffering them.

        Yields every NDJSON line Kubo answers with: progress entries
        (``Bytes``) while uploading, then the final entry carrying ``Hash``.
        """
        boundary = uuid.uuid4().hex
        headers = {"Content-Type": f"multipart/form-data; boundary={boundary}"}
        params = {"pin": _flag(pin), "progress": _flag(self._progress)}

        # Uploads may be large; only the connect phase is bounded.
        timeout = httpx.Timeout(None, connect=10.0)
        async with self._client(timeout) as client:
            async with client.stream(
                "POST",
                self._url("add"),
                params=params,
                headers=headers,
                content=_multipart_body(chunks, boundary, filename),
            ) as resp:
                await _raise_for_kubo("add", resp)
                async for line in resp.aiter_lines():
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        yield json.loads(line)
                    except json.JSONDecodeError:
                        log.warning("Unparseable add output: %s", line[:200])

    # ── Pins ───────────────────────────────────────────────

    async def pin_add(self, cid: str) -> None:
        """Pin a CID the node already has. Pinning twice is a no-op in Kubo."""
        await self._post_json("pin/add", {"arg": cid})

    async def pin_remove(self, cid: str) -> None:
        """Remove a pin. A CID that is not pinned counts as removed."""
        try:
            await self._post_json("pin/rm", {"arg": cid})
        except KuboError as exc:
            if "not pinned" in exc.message.lower():
                log.debug("CID %s was not pinned", cid)
                return
            raise
        log.info("Unpinned %s", cid)


async def _raise_for_kubo(endpoint: str, resp: httpx.Response) -> None:
    if resp.status_code < 400:
        return
    await resp.aread()
    try:
        message = resp.json().get("Message", "")
    except ValueError:
        message = resp.text[:200]
    raise KuboError(endpoint, resp.status_code, message or resp.reason_phrase)


async def _multipart_body(
    chunks: AsyncIterable[bytes], boundary: str, filename: str,
) -> AsyncIterator[bytes]:
    filename = filename.replace('"', "").replace("\r", "").replace("\n", "")
    yield (
        f"--{boundary}\r\n"
        f'Content-Disposition: form-data; name="file"; filename="{filename}"\r\n'
        "Content-Type: application/octet-stream\r\n\r\n"
    ).encode("utf-8")
    async for chunk in chunks:
        if chunk:
            yield chunk
    yield f"\r\n--{boundary}--\r\n".encode("utf-8")


def _flag(value: bool) -> str:
    return "true" if value else "false"
