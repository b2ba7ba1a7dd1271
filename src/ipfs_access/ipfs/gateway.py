"""Gateway source - read-only resolution across public HTTP gateways."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from ipfs_access.errors import InvalidInput
from ipfs_access.ipfs.cid import decode_url, extract_cid
from ipfs_access.ipfs.content import detect_type, parse_content
from ipfs_access.ipfs.resolver import first_success
from ipfs_access.models.records import SourceKind, TypedContent

log = logging.getLogger(__name__)


class GatewaySource:
    """Races every configured gateway for each read.

    Gateways are URL prefixes such as ``https://ipfs.io/ipfs/``; the CID is
    appended. Any non-2xx answer counts as a failed attempt.
    """

    kind = SourceKind.REMOTE

    def __init__(
        self,
        gateways_urls: list[str],
        timeout: float = 10.0,
        image_gateway_url: str = "https://gateway.pinata.cloud/ipfs/",
        image_width: int = 300,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._gateways = [_with_slash(g) for g in gateways_urls if g]
        self._timeout = timeout
        self._image_gateway_url = _with_slash(image_gateway_url)
        self._image_width = image_width
        self._transport = transport

    @property
    def gateways(self) -> list[str]:
        return list(self._gateways)

    async def _get_one(self, client: httpx.AsyncClient, url: str) -> bytes:
        resp = await client.get(url)
        resp.raise_for_status()
        return resp.content

    async def fetch(self, cid: str) -> bytes:
        if not cid:
            raise InvalidInput("invalid CID")
        async with httpx.AsyncClient(
            timeout=self._timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            return await first_success(
                (self._get_one(client, f"{g}{cid}") for g in self._gateways),
                cid=cid,
                what="gateways",
            )

    async def fetch_typed(self, url: str) -> TypedContent:
        cid = extract_cid(url)
        if not cid:
            raise InvalidInput("invalid CID")
        data = await self.fetch(cid)
        return TypedContent(data=data, type=detect_type(data))

    async def get(self, cid: str) -> Any:
        return parse_content(await self.fetch(cid))

    async def resolve_metadata(self, encoded_url: str) -> dict:
        """Fetch token-style metadata and point its image at an optimized URL.

        1. Decode the base64 URL and extract its CID
        2. Fetch the metadata document (must be a JSON object)
        3. Take the image reference from ``image``, falling back to ``CID``
        4. Rewrite ``image`` to a sized gateway URL for that image's CID
        """
        url = decode_url(encoded_url)
        cid = extract_cid(url)
        if not cid:
            raise InvalidInput(f"no CID in metadata URL: {url[:80]}")

        metadata = await self.get(cid)
        if not isinstance(metadata, dict):
            raise InvalidInput(f"metadata at {cid} is not a JSON object")

        ref = metadata.get("image") or metadata.get("CID")
        image_cid = extract_cid(ref) if isinstance(ref, str) else None
        if image_cid:
            metadata["image"] = self.build_image_url(image_cid)
        else:
            log.debug("Metadata %s has no image reference", cid)
        return metadata

    def build_image_url(self, cid: str) -> str:
        return (
            f"{self._image_gateway_url}{quote(cid, safe='')}"
            f"?optimizer=image&width={self._image_width}"
        )


def _with_slash(url: str) -> str:
    return url if url.endswith("/") else f"{url}/"
