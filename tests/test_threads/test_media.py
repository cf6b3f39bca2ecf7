"""Tests for media normalization."""

from __future__ import annotations

from reposter.schemas.threads import ThreadsPost
from reposter.threads.base import MediaItem, MediaKind
from reposter.threads.media import classify_media_kind, normalize_media, normalize_post


def _post(**fields: object) -> ThreadsPost:
    payload = {"id": "p1", "timestamp": "2024-01-02T10:00:00+0000", **fields}
    return ThreadsPost.model_validate(payload)


class TestClassifyMediaKind:
    def test_video(self) -> None:
        assert classify_media_kind("VIDEO") is MediaKind.VIDEO

    def test_everything_else_is_photo(self) -> None:
        for tag in ("IMAGE", "CAROUSEL_ALBUM", "TEXT_POST", None, "video"):
            assert classify_media_kind(tag) is MediaKind.PHOTO


class TestNormalizeMedia:
    def test_text_only_post_has_no_media(self) -> None:
        assert normalize_media(_post(media_type="TEXT_POST", text="hi")) == []

    def test_single_image(self) -> None:
        post = _post(media_type="IMAGE", media_url="https://cdn/a.jpg")
        assert normalize_media(post) == [MediaItem(MediaKind.PHOTO, "https://cdn/a.jpg")]

    def test_single_video(self) -> None:
        post = _post(media_type="VIDEO", media_url="https://cdn/a.mp4")
        assert normalize_media(post) == [MediaItem(MediaKind.VIDEO, "https://cdn/a.mp4")]

    def test_thumbnail_used_as_photo_when_url_missing(self) -> None:
        post = _post(media_type="VIDEO", thumbnail_url="https://cdn/thumb.jpg")
        assert normalize_media(post) == [MediaItem(MediaKind.PHOTO, "https://cdn/thumb.jpg")]

    def test_top_level_first_then_children_in_order(self) -> None:
        post = _post(
            media_type="IMAGE",
            media_url="https://cdn/top.jpg",
            children={
                "data": [
                    {"id": "c1", "media_type": "VIDEO", "media_url": "https://cdn/c1.mp4"},
                    {"id": "c2", "media_type": "IMAGE"},
                    {"id": "c3", "media_type": "IMAGE", "media_url": "https://cdn/c3.jpg"},
                ]
            },
        )

        assert normalize_media(post) == [
            MediaItem(MediaKind.PHOTO, "https://cdn/top.jpg"),
            MediaItem(MediaKind.VIDEO, "https://cdn/c1.mp4"),
            MediaItem(MediaKind.PHOTO, "https://cdn/c3.jpg"),
        ]


class TestNormalizePost:
    def test_missing_text_becomes_empty(self) -> None:
        normalized = normalize_post(_post(media_type="IMAGE", media_url="https://cdn/a.jpg"))
        assert normalized.post_id == "p1"
        assert normalized.text == ""
        assert len(normalized.media) == 1

    def test_keeps_permalink(self) -> None:
        normalized = normalize_post(_post(text="hi", permalink="https://threads.net/@a/post/1"))
        assert normalized.permalink == "https://threads.net/@a/post/1"
