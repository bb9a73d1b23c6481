"""Declarative base shared by the settlement tables."""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Surrogate integer key plus created_at / updated_at on every table.

    Rows are addressed by their natural keys (``payment_id``); ``id`` only
    gives a stable insertion order, which the audit trail and the
    purchase / sales listings sort by.
    """

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), default=utcnow,
    )
    # Set client-side only, so rows returned from a closed session keep a value
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), default=utcnow, onupdate=utcnow,
    )
