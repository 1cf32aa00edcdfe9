"""Custom exception hierarchy for pyconfwatch."""

from __future__ import annotations

from collections.abc import Sequence


class ConfWatchError(Exception):
    """Base exception for all pyconfwatch errors."""


class ConfWatchConfigError(ConfWatchError):
    """Invalid or missing configuration."""


class SourceConnectivityError(ConfWatchError):
    """A configuration source could not be reached or stopped responding.

    Drivers retry these internally. One only reaches watcher subscribers
    once the driver has given up (retries exhausted or a non-retryable
    response).
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class SourceAuthenticationError(SourceConnectivityError):
    """The source rejected our credentials (HTTP 401/403). Never retried."""


class ConfigValidationError(ConfWatchError):
    """A config file failed to parse or one of its items failed schema checks.

    The whole file is rejected; ``errors`` holds the individual messages
    for diagnostics only.
    """

    def __init__(
        self,
        message: str,
        *,
        filename: str,
        errors: Sequence[str] = (),
    ) -> None:
        self.filename = filename
        self.errors = list(errors)
        super().__init__(message)


class IdentityError(ConfigValidationError):
    """The identity function failed for a schema-valid item."""
