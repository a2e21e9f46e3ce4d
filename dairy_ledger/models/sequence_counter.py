"""
Sequence counter model.

One row per (scope, period). Document numbers are allocated
by incrementing ``value`` in place, so two transactions can
never be handed the same number.
"""

from sqlalchemy import String, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from dairy_ledger.models.base import Base


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"
    __table_args__ = (
        UniqueConstraint("scope", "period", name="uq_sequence_scope_period"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    # Voucher type for voucher numbers, "BT:<company>" for transfers
    scope: Mapped[str] = mapped_column(String(50), nullable=False)
    # YYMM
    period: Mapped[str] = mapped_column(String(4), nullable=False)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.scope}/{self.period}={self.value}>"
