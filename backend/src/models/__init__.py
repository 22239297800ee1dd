"""SQLAlchemy models."""
from models.base import Base, TimestampMixin, UUIDMixin
from models.bookmark import Bookmark

__all__ = [
    "Base",
    "Bookmark",
    "TimestampMixin",
    "UUIDMixin",
]
