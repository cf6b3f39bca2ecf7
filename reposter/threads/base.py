"""Data classes and protocols shared by the Threads clients and the pipeline."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import datetime

    from reposter.schemas.threads import ThreadsPost


class MediaKind(enum.Enum):
    """Closed set of media kinds a Telegram media group can carry."""

    PHOTO = "photo"
    VIDEO = "video"


@dataclass(frozen=True)
class MediaItem:
    """A single typed media reference."""

    kind: MediaKind
    url: str


@dataclass
class NormalizedPost:
    """A Threads post ready for delivery. Built fresh every cycle."""

    post_id: str
    timestamp: datetime
    text: str
    media: list[MediaItem] = field(default_factory=list)
    permalink: str | None = None


@dataclass(frozen=True)
class TokenGrant:
    """Result of a token endpoint call."""

    access_token: str
    expires_in: int


@dataclass(frozen=True)
class AccountIdentity:
    """Threads account the token belongs to."""

    id: str
    username: str


@runtime_checkable
class PostSource(Protocol):
    """Anything that can list a user's posts since a watermark."""

    async def fetch_posts_since(self, access_token: str, since: datetime) -> list[ThreadsPost]:
        """Return posts ordered by ascending timestamp."""
        ...


@runtime_checkable
class TokenProvider(Protocol):
    """The three upstream calls of the authorization chain."""

    async def exchange_code_for_token(self, code: str) -> TokenGrant: ...

    async def upgrade_to_long_lived_token(self, short_lived_token: str) -> TokenGrant: ...

    async def fetch_account_identity(self, access_token: str) -> AccountIdentity: ...
