"""Threads Graph API response schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from reposter.services.datetime_service import parse_datetime

# Short-lived Threads tokens are valid for one hour.
DEFAULT_SHORT_LIVED_EXPIRES_IN = 3600


class TokenResponse(BaseModel):
    """Body of ``POST /oauth/access_token``."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(min_length=1)
    token_type: str | None = None
    expires_in: int = Field(default=DEFAULT_SHORT_LIVED_EXPIRES_IN, ge=0)
    user_id: str | int | None = None


class AccountResponse(BaseModel):
    """Body of ``GET /v1.0/me?fields=id,username``."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    username: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> object:
        return str(value) if isinstance(value, int) else value


class ThreadsChildMedia(BaseModel):
    """One carousel member inside ``children.data``."""

    model_config = ConfigDict(extra="ignore")

    id: str
    media_type: str | None = None
    media_url: str | None = None
    thumbnail_url: str | None = None


class ThreadsChildren(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: list[ThreadsChildMedia] = Field(default_factory=list)


class ThreadsPost(BaseModel):
    """A post from ``GET /v1.0/me/threads``.

    ``media_type`` is one of TEXT_POST, IMAGE, VIDEO, CAROUSEL_ALBUM, AUDIO or
    REPOST_FACADE; the text lives in ``text``, not in a caption field.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    text: str | None = None
    media_type: str | None = None
    media_url: str | None = None
    thumbnail_url: str | None = None
    timestamp: datetime
    permalink: str | None = None
    children: ThreadsChildren | None = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: object) -> object:
        if isinstance(value, str):
            return parse_datetime(value)
        return value

    @property
    def child_media(self) -> list[ThreadsChildMedia]:
        return self.children.data if self.children is not None else []


class ThreadsPaging(BaseModel):
    model_config = ConfigDict(extra="ignore")

    next: str | None = None


class ThreadsPostPage(BaseModel):
    """Envelope of a content listing page. Items are validated one by one."""

    model_config = ConfigDict(extra="ignore")

    data: list[dict[str, object]] = Field(default_factory=list)
    paging: ThreadsPaging | None = None
