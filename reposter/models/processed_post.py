"""Idempotency record for delivered Threads posts."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reposter.models.base import Base

if TYPE_CHECKING:
    from reposter.models.user import User


class ProcessedPost(Base):
    """Append-only marker that a Threads post was handled for a user."""

    __tablename__ = "processed_posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    threads_post_id: Mapped[str] = mapped_column(String, nullable=False)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[str] = mapped_column(Text, nullable=False)

    user: Mapped[User] = relationship(back_populates="processed_posts")

    __table_args__ = (UniqueConstraint("threads_post_id", "user_id"),)
