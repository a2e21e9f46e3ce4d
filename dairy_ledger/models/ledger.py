"""
Ledger model (chart of accounts).

Every account the cooperative posts to (cash, sales, a
producer's payable, the bank-transfer clearing account) is
a ledger. Unlike an entry-sum ledger, each row carries its
running balance, which only the posting engine may change.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, DateTime, Numeric, Integer, Index, Enum as SAEnum, text,
)
from sqlalchemy.orm import Mapped, mapped_column

from dairy_ledger.models.base import Base
from dairy_ledger.models.enums import (
    LedgerClassification,
    BalanceSide,
    LedgerStatus,
)


# Shared by both side columns so the database type is declared once
BALANCE_SIDE_TYPE = SAEnum(BalanceSide, name="balance_side_enum")


class Ledger(Base):
    """
    A single account in the chart of accounts.

    current_balance is signed in the classification's own
    convention (positive means the natural side), and
    current_side is derived from that sign on every posting.
    Ledgers are never deleted, only made INACTIVE.
    """

    __tablename__ = "ledgers"
    __table_args__ = (
        # Names are unique among ACTIVE ledgers only; an inactive
        # ledger frees its name
        Index(
            "uq_ledgers_active_name",
            "name",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    classification: Mapped[LedgerClassification] = mapped_column(
        SAEnum(
            LedgerClassification,
            name="ledger_classification_enum",
            create_constraint=True,
        ),
        nullable=False,
    )
    opening_balance: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False, default=Decimal("0")
    )
    opening_side: Mapped[BalanceSide] = mapped_column(
        BALANCE_SIDE_TYPE,
        nullable=False,
        default=BalanceSide.DR,
    )
    current_balance: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False, default=Decimal("0")
    )
    current_side: Mapped[BalanceSide] = mapped_column(
        BALANCE_SIDE_TYPE,
        nullable=False,
        default=BalanceSide.DR,
    )
    status: Mapped[LedgerStatus] = mapped_column(
        SAEnum(LedgerStatus, name="ledger_status_enum", create_constraint=True),
        nullable=False,
        default=LedgerStatus.ACTIVE,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # A concurrent writer that read an older version fails with
    # StaleDataError instead of silently overwriting the balance.
    __mapper_args__ = {"version_id_col": version}

    @property
    def is_active(self) -> bool:
        return self.status == LedgerStatus.ACTIVE

    def __repr__(self) -> str:
        return (
            f"<Ledger {self.name} ({self.classification.value}) "
            f"{self.current_balance} {self.current_side.value}>"
        )
