"""Error taxonomy surfaced to callers of the access layer.

Raw transport errors never leave the core unwrapped: every failure is one of
the kinds below, with the original exception kept on ``__cause__``.
"""

from __future__ import annotations


class IpfsAccessError(Exception):
    """Base exception for all access-layer errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidInput(IpfsAccessError):
    """Empty or malformed CID, URL or encoded URL."""


class ContentUnavailable(IpfsAccessError):
    """Every resolution source failed for a read.

    Attributes:
        cid: The CID (or URL) that could not be resolved.
        errors: Underlying per-source errors, in the order they completed.
    """

    def __init__(
        self,
        message: str,
        cid: str | None = None,
        errors: list[BaseException] | None = None,
    ) -> None:
        super().__init__(message, details={"cid": cid} if cid else None)
        self.cid = cid
        self.errors = list(errors or [])


class NotFound(IpfsAccessError):
    """No pin record exists for the CID."""


class Unauthorized(IpfsAccessError):
    """Caller does not own the pin record it tried to remove."""


class PinFailed(IpfsAccessError):
    """Content injection or the ledger write failed during a pin."""


class AlreadyPinned(PinFailed):
    """The CID already has a pin record.

    ``owner`` is the recorded owner; it is kept out of the message and details.
    """

    def __init__(self, cid: str, owner: str) -> None:
        super().__init__(
            f"CID {cid} is already pinned by another owner",
            details={"cid": cid},
        )
        self.cid = cid
        self.owner = owner


class Unavailable(IpfsAccessError):
    """A required source is not configured or cannot be reached."""
