"""Map Threads post shapes to an ordered list of typed media references."""

from __future__ import annotations

from typing import TYPE_CHECKING

from reposter.threads.base import MediaItem, MediaKind, NormalizedPost

if TYPE_CHECKING:
    from reposter.schemas.threads import ThreadsChildMedia, ThreadsPost

VIDEO_MEDIA_TYPE = "VIDEO"


def classify_media_kind(media_type: str | None) -> MediaKind:
    """Classify an upstream media-type tag. Everything but VIDEO is a photo."""
    if media_type == VIDEO_MEDIA_TYPE:
        return MediaKind.VIDEO
    return MediaKind.PHOTO


def _media_item(
    media_type: str | None, media_url: str | None, thumbnail_url: str | None
) -> MediaItem | None:
    if media_url:
        return MediaItem(kind=classify_media_kind(media_type), url=media_url)
    if thumbnail_url:
        return MediaItem(kind=MediaKind.PHOTO, url=thumbnail_url)
    return None


def normalize_media(post: ThreadsPost) -> list[MediaItem]:
    """Top-level item first, then carousel children in upstream order.

    A text-only post yields an empty list.
    """
    items: list[MediaItem] = []
    top = _media_item(post.media_type, post.media_url, post.thumbnail_url)
    if top is not None:
        items.append(top)
    child: ThreadsChildMedia
    for child in post.child_media:
        item = _media_item(child.media_type, child.media_url, child.thumbnail_url)
        if item is not None:
            items.append(item)
    return items


def normalize_post(post: ThreadsPost) -> NormalizedPost:
    return NormalizedPost(
        post_id=post.id,
        timestamp=post.timestamp,
        text=post.text or "",
        media=normalize_media(post),
        permalink=post.permalink,
    )
