"""
Voucher and voucher entry models.

A voucher is one accounting event: an ordered, balanced set
of entries. Vouchers are immutable once posted. A mistake is
corrected by posting a reversal voucher, never by editing
or deleting the original.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String, Date, DateTime, Numeric, Integer, ForeignKey,
    Enum as SAEnum, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dairy_ledger.models.base import Base
from dairy_ledger.models.enums import EntryType, VoucherType, ReferenceType


class Voucher(Base):
    __tablename__ = "vouchers"

    id: Mapped[int] = mapped_column(primary_key=True)
    voucher_type: Mapped[VoucherType] = mapped_column(
        SAEnum(VoucherType, name="voucher_type_enum", create_constraint=True),
        nullable=False,
        index=True,
    )
    # PREFIX + YYMM + sequence; the prefix and period make it
    # unique per (type, month), the unique index makes it unique overall
    number: Mapped[str] = mapped_column(
        String(20), unique=True, nullable=False
    )
    voucher_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    total_debit: Mapped[Decimal] = mapped_column(Numeric(19, 4), nullable=False)
    total_credit: Mapped[Decimal] = mapped_column(Numeric(19, 4), nullable=False)
    narration: Mapped[str | None] = mapped_column(String(500), nullable=True)
    reference_type: Mapped[ReferenceType | None] = mapped_column(
        SAEnum(
            ReferenceType,
            name="reference_type_enum",
            create_constraint=True,
        ),
        nullable=True,
    )
    reference_id: Mapped[int | None] = mapped_column(
        Integer, nullable=True, index=True
    )
    reversal_of_id: Mapped[int | None] = mapped_column(
        ForeignKey("vouchers.id"), nullable=True
    )
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    entries: Mapped[list["VoucherEntry"]] = relationship(
        back_populates="voucher",
        order_by="VoucherEntry.line_number",
        cascade="all, delete-orphan",
    )
    reversal_of: Mapped["Voucher | None"] = relationship(remote_side=[id])

    @property
    def reversal_of_number(self) -> str | None:
        return self.reversal_of.number if self.reversal_of else None

    def __repr__(self) -> str:
        return f"<Voucher {self.number} {self.total_debit}/{self.total_credit}>"


class VoucherEntry(Base):
    """
    One line of a voucher: one ledger, one side, one amount.

    The entry_type/amount pair makes "exactly one of debit and
    credit is non-zero" a property of the shape itself. The
    ledger name is a snapshot taken at posting time.
    """

    __tablename__ = "voucher_entries"
    __table_args__ = (
        UniqueConstraint("voucher_id", "line_number"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    voucher_id: Mapped[int] = mapped_column(
        ForeignKey("vouchers.id"), nullable=False, index=True
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    ledger_id: Mapped[int] = mapped_column(
        ForeignKey("ledgers.id"), nullable=False, index=True
    )
    ledger_name: Mapped[str] = mapped_column(String(100), nullable=False)
    entry_type: Mapped[EntryType] = mapped_column(
        SAEnum(EntryType, name="entry_type_enum", create_constraint=True),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(19, 4), nullable=False)
    narration: Mapped[str | None] = mapped_column(String(255), nullable=True)

    voucher: Mapped["Voucher"] = relationship(back_populates="entries")

    @property
    def debit(self) -> Decimal:
        return self.amount if self.entry_type == EntryType.DEBIT else Decimal("0")

    @property
    def credit(self) -> Decimal:
        return self.amount if self.entry_type == EntryType.CREDIT else Decimal("0")

    def __repr__(self) -> str:
        return (
            f"<VoucherEntry {self.entry_type.value} "
            f"{self.ledger_name} {self.amount}>"
        )
