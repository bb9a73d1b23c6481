from sqlalchemy import BigInteger, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from settlement.db.base import Base
from settlement.services.assets import AssetKind, AssetRef


class EscrowPayment(Base):
    __tablename__ = "escrow_payments"

    payment_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)
    buyer: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    seller: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fee_rate_bps: Mapped[int] = mapped_column(Integer, nullable=False)
    fee_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    asset_kind: Mapped[str] = mapped_column(
        String(16), default="native", server_default="native", nullable=False
    )
    asset_contract: Mapped[str | None] = mapped_column(String(256), nullable=True)
    asset_token_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default="PENDING", server_default="PENDING", nullable=False
    )  # PENDING / COMPLETED / DISPUTED / RESOLVED / REFUNDED
    created_height: Mapped[int] = mapped_column(BigInteger, nullable=False)
    completed_height: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    listing_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # Dispute bookkeeping
    disputed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    disputed_height: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    dispute_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Settlement outcome, written once by the terminal transition
    seller_payout: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    buyer_refund: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    fee_collected: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    seller_share_bps: Mapped[int | None] = mapped_column(Integer, nullable=True)
    resolution: Mapped[str | None] = mapped_column(String(32), nullable=True)

    __table_args__ = (
        Index("ix_escrow_payments_status_created", "status", "created_height"),
    )

    @property
    def asset(self) -> AssetRef:
        return AssetRef(AssetKind(self.asset_kind), self.asset_contract, self.asset_token_id)

    @property
    def net_amount(self) -> int:
        return self.amount - self.fee_amount

    def __repr__(self) -> str:
        return (
            f"EscrowPayment(payment_id={self.payment_id!r}, status={self.status}, "
            f"amount={self.amount}, asset={self.asset})"
        )
