"""Pending operation database models."""

from sqlalchemy import JSON, BigInteger, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stayer_keeper.helpers.db import Base
from stayer_keeper.helpers.db_mixins import TimestampMixin


class PendingOperationDB(Base, TimestampMixin):
    """Delegate/undelegate intent queued for the lifecycle manager."""

    __tablename__ = "pending_operations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    validator_public_key: Mapped[str] = mapped_column(String(68), nullable=False)
    amount: Mapped[str] = mapped_column(String(160), nullable=False)
    era: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="pending", index=True
    )
    completed_phases: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list
    )
    withdraw_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    native_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    confirm_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    confirmed_era: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    # Deploy sent for the next phase but not yet seen executed
    submitted_phase: Mapped[str | None] = mapped_column(String(16), nullable=True)
    submitted_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    submitted_at_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    # Epoch ms until which one keeper process owns the operation
    lease_expires_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)


__all__ = ["PendingOperationDB"]
