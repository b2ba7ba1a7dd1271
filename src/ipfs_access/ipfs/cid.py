"""CID extraction from the URL shapes IPFS content is usually referenced by.

Supported inputs:
- ``ipfs://<cid>``
- ``https://<host>/ipfs/<cid>[?query]``
- ``https://<cid>.ipfs.dweb.link/``
- a bare ``<cid>``
"""

from __future__ import annotations

import base64
import binascii
import re

from ipfs_access.errors import InvalidInput

SCHEME = "ipfs://"
DWEB_SUFFIX = ".ipfs.dweb.link"

_PATH_GATEWAY = re.compile(r"(https?://[^?]+/ipfs/)?([^?]+)")
_SUBDOMAIN_GATEWAY = re.compile(r"https?://([^?]+)\.ipfs\.dweb\.link/?")


def extract_cid(url: str | None) -> str | None:
    """Return the CID referenced by ``url``, or None for empty input.

    Never raises: input matching no known shape comes back as-is (minus the
    ``ipfs://`` scheme).
    """
    if not url:
        return None

    cleaned = url.replace(SCHEME, "", 1)
    if not cleaned:
        return None

    match = _PATH_GATEWAY.search(cleaned)
    if match is None:
        return cleaned
    cid = match.group(2)

    if cid.rstrip("/").endswith(DWEB_SUFFIX):
        sub = _SUBDOMAIN_GATEWAY.search(cid)
        if sub is not None:
            cid = sub.group(1)

    return cid


def decode_url(encoded: str) -> str:
    """Decode a base64 transport-encoded URL (standard or URL-safe alphabet)."""
    if not encoded:
        raise InvalidInput("empty encoded URL")
    normalized = encoded.strip().replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    try:
        return base64.b64decode(normalized, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise InvalidInput(f"not a base64 encoded URL: {encoded[:40]}") from exc
