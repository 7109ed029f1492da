"""Database model mixins for common field patterns."""

from datetime import UTC, datetime

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, mapped_column


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def utc_now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(utc_now().timestamp() * 1000)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class TimestampMixin:
    """Mixin for row bookkeeping timestamps.

    Provides:
    - created_at: set once on insert
    - updated_at: refreshed on every update

    Example:
        ```python
        from stayer_keeper.helpers.db import Base
        from stayer_keeper.helpers.db_mixins import TimestampMixin

        class MyRecord(Base, TimestampMixin):
            __tablename__ = "my_records"
            id: Mapped[int] = mapped_column(Integer, primary_key=True)
        ```
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )


__all__ = ["TimestampMixin", "as_utc", "utc_now", "utc_now_ms"]
