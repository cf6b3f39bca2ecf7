"""Application-level exception types.

Convention:
- Errors raised at a network boundary carry enough context (status code,
  upstream body, channel id) to be logged where they are caught. They are
  caught at the smallest enclosing scope: per channel, per user, per
  authorization attempt.
- ``ConfigurationError`` is the only error allowed to stop the process, and
  only at startup.
"""

from __future__ import annotations

_BODY_LIMIT = 500


class ReposterError(Exception):
    """Base class for all reposter errors."""


class ConfigurationError(ReposterError):
    """Raised at startup when required process settings are missing or insecure."""


class UpstreamError(ReposterError):
    """Raised when the source platform answers with a non-success response."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str = "") -> None:
        self.status_code = status_code
        self.body = body[:_BODY_LIMIT]
        detail = message
        if status_code is not None:
            detail = f"{detail}: {status_code}"
        if self.body:
            detail = f"{detail} - {self.body}"
        super().__init__(detail)


class UpstreamAuthError(UpstreamError):
    """Token endpoint failure. Aborts the authorization attempt."""


class UpstreamFetchError(UpstreamError):
    """Content listing failure. Skips the user for the current cycle."""


class DeliveryError(ReposterError):
    """A send to one channel failed. Never blocks other channels or posts."""

    def __init__(self, channel_id: str, reason: str) -> None:
        self.channel_id = channel_id
        self.reason = reason
        super().__init__(f"Delivery to channel {channel_id} failed: {reason}")


class DuplicateError(ReposterError):
    """A processed-post record for this (post, user) pair already exists."""


class IneligibleUserError(ReposterError):
    """A user lacks the state required for synchronization.

    Ineligible users are filtered out by the store query; this is raised only
    when a caller asks for a pipeline run on such a user explicitly.
    """
