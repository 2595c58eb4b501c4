"""Error taxonomy shared by the remote clients and the sync pipeline."""

from __future__ import annotations


class SyncError(Exception):
    """Base class for all sync service errors."""


class AuthenticationFailure(SyncError):
    """Inbound signature did not verify."""


class ValidationFailure(SyncError):
    """A required payload field is missing or malformed."""


class UpstreamUnavailable(SyncError):
    """A remote dependency could not be reached."""


class UpstreamStatusError(UpstreamUnavailable):
    """A remote dependency answered with a non-2xx status."""

    def __init__(
        self,
        service: str,
        status: int,
        raw: str = "",
        retry_after: str | None = None,
    ) -> None:
        self.service = service
        self.status = status
        self.raw = raw
        self.retry_after = retry_after
        super().__init__(f"{service} responded {status}: {raw[:200]}")


class ConfigurationError(SyncError):
    """A credential or endpoint required for a call is not configured."""
