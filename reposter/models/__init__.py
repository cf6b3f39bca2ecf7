"""SQLAlchemy ORM models for the reposter."""

from reposter.models.base import Base
from reposter.models.channel import Channel
from reposter.models.processed_post import ProcessedPost
from reposter.models.user import User

__all__ = [
    "Base",
    "Channel",
    "ProcessedPost",
    "User",
]
