"""Telegram user and Threads credential model."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reposter.models.base import Base

if TYPE_CHECKING:
    from reposter.models.channel import Channel
    from reposter.models.processed_post import ProcessedPost


class User(Base):
    """Telegram account that mirrors its Threads posts.

    Both tokens are stored encrypted. ``token_expires_at`` and
    ``sync_start_date`` use the strict UTC string format from
    ``datetime_service`` so they compare correctly in SQL.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    telegram_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True, index=True)
    threads_access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    threads_long_lived_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[str | None] = mapped_column(Text, nullable=True)
    threads_user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    threads_username: Mapped[str | None] = mapped_column(String, nullable=True)
    sync_start_date: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)

    channels: Mapped[list[Channel]] = relationship(
        back_populates="owner", cascade="all, delete-orphan"
    )
    processed_posts: Mapped[list[ProcessedPost]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
