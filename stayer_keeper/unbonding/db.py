"""Unbonding ledger database models."""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from stayer_keeper.helpers.db import Base
from stayer_keeper.helpers.db_mixins import TimestampMixin


class UnbondingRecordDB(Base, TimestampMixin):
    """Native undelegation waiting out the unbonding period."""

    __tablename__ = "unbonding_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    validator: Mapped[str] = mapped_column(String(68), nullable=False, index=True)
    # U512 motes as a decimal string
    amount: Mapped[str] = mapped_column(String(160), nullable=False)
    start_era: Mapped[int] = mapped_column(BigInteger, nullable=False)
    complete_era: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    deposited: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True
    )
    confirm_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    deposited_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    # Deposit sent but not yet seen executed
    deposit_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    deposit_submitted_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    # Epoch ms until which one keeper process owns the record
    lease_expires_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)


__all__ = ["UnbondingRecordDB"]
