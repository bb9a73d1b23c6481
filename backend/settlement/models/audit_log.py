from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from settlement.db.base import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    payment_id: Mapped[str] = mapped_column(String(128), nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    actor: Mapped[str | None] = mapped_column(String(128), nullable=True)
    from_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_audit_logs_payment", "payment_id", "id"),
    )
