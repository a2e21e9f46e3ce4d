"""
Bank transfer batch model.

A batch records the intent to pay a cohort of producers by
bank transfer. Applying a batch posts one journal voucher
moving the total from Producer Payable to Bank Transfer
Payable; cancelling it posts the reversal.

The batch has a state machine governing its lifecycle.
Invalid state transitions are rejected.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String, Boolean, Date, DateTime, Numeric, Integer, ForeignKey,
    Enum as SAEnum, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dairy_ledger.models.base import Base
from dairy_ledger.models.enums import (
    BankTransferStatus,
    TransferBasis,
    TransferDetailStatus,
)


# Valid state transitions, the source of truth for the state machine
VALID_TRANSITIONS: dict[BankTransferStatus, set[BankTransferStatus]] = {
    BankTransferStatus.DRAFT: {BankTransferStatus.APPLIED},
    BankTransferStatus.APPLIED: {
        BankTransferStatus.COMPLETED,
        BankTransferStatus.CANCELLED,
    },
    BankTransferStatus.COMPLETED: set(),  # Terminal
    BankTransferStatus.CANCELLED: set(),  # Terminal
}


class BankTransfer(Base):
    __tablename__ = "bank_transfers"
    __table_args__ = (
        UniqueConstraint(
            "company_code", "transfer_number", name="uq_bank_transfer_number"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    company_code: Mapped[str] = mapped_column(String(20), nullable=False)
    transfer_number: Mapped[str] = mapped_column(String(20), nullable=False)
    transfer_basis: Mapped[TransferBasis] = mapped_column(
        SAEnum(TransferBasis, name="transfer_basis_enum", create_constraint=True),
        nullable=False,
        default=TransferBasis.AS_ON_DATE_BALANCE,
    )
    as_on_date: Mapped[date] = mapped_column(Date, nullable=False)
    apply_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # Filter criteria the balances were retrieved with
    collection_center_id: Mapped[str | None] = mapped_column(
        String(50), nullable=True, index=True
    )
    collection_center_name: Mapped[str] = mapped_column(
        String(100), nullable=False, default="All"
    )
    bank_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bank_name: Mapped[str] = mapped_column(
        String(100), nullable=False, default="All"
    )
    round_down_unit: Mapped[int] = mapped_column(
        Integer, nullable=False, default=10
    )
    due_by_list: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    total_net_payable: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False, default=Decimal("0")
    )
    total_transfer_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False, default=Decimal("0")
    )
    total_approved: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_producers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[BankTransferStatus] = mapped_column(
        SAEnum(
            BankTransferStatus,
            name="bank_transfer_status_enum",
            create_constraint=True,
        ),
        nullable=False,
        default=BankTransferStatus.DRAFT,
        index=True,
    )
    voucher_id: Mapped[int | None] = mapped_column(
        ForeignKey("vouchers.id"), nullable=True
    )
    reversal_voucher_id: Mapped[int | None] = mapped_column(
        ForeignKey("vouchers.id"), nullable=True
    )
    remarks: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Audit fields
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    applied_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    applied_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    details: Mapped[list["BankTransferDetail"]] = relationship(
        back_populates="bank_transfer",
        order_by="BankTransferDetail.producer_number",
        cascade="all, delete-orphan",
    )

    # Two concurrent status changes cannot both commit
    __mapper_args__ = {"version_id_col": version}

    def can_transition_to(self, new_status: BankTransferStatus) -> bool:
        """Check if a state transition is valid."""
        return new_status in VALID_TRANSITIONS.get(self.status, set())

    def recalculate_totals(self) -> None:
        approved = [d for d in self.details if d.approved]
        self.total_net_payable = sum(
            (d.net_payable for d in self.details), Decimal("0")
        )
        self.total_transfer_amount = sum(
            (d.transfer_amount for d in approved), Decimal("0")
        )
        self.total_approved = len(approved)
        self.total_producers = len(self.details)

    def __repr__(self) -> str:
        return (
            f"<BankTransfer {self.transfer_number} "
            f"{self.total_transfer_amount} ({self.status.value})>"
        )


class BankTransferDetail(Base):
    """One producer's line in a batch, with a bank details snapshot."""

    __tablename__ = "bank_transfer_details"

    id: Mapped[int] = mapped_column(primary_key=True)
    bank_transfer_id: Mapped[int] = mapped_column(
        ForeignKey("bank_transfers.id"), nullable=False, index=True
    )
    producer_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    producer_number: Mapped[str] = mapped_column(String(50), nullable=False)
    producer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    net_payable: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False, default=Decimal("0")
    )
    transfer_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False, default=Decimal("0")
    )
    approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    account_number: Mapped[str] = mapped_column(String(50), nullable=False, default="-")
    bank_name: Mapped[str] = mapped_column(String(100), nullable=False, default="-")
    ifsc_code: Mapped[str] = mapped_column(String(20), nullable=False, default="-")
    bank_code: Mapped[str] = mapped_column(String(20), nullable=False, default="-")

    transfer_status: Mapped[TransferDetailStatus] = mapped_column(
        SAEnum(
            TransferDetailStatus,
            name="transfer_detail_status_enum",
            create_constraint=True,
        ),
        nullable=False,
        default=TransferDetailStatus.PENDING,
    )
    transferred_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True
    )

    bank_transfer: Mapped["BankTransfer"] = relationship(back_populates="details")

    def __repr__(self) -> str:
        return (
            f"<BankTransferDetail {self.producer_number} "
            f"{self.transfer_amount} ({self.transfer_status.value})>"
        )
