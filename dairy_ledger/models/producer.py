"""
Producer and producer payment models.

Collection centers, producers (farmers) and their milk payment
records are owned by the membership and milk-collection modules.
This service only reads them: centers for transfer filters, the
producer directory for bank details and the payment records for
amounts still owed.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String, Date, DateTime, Numeric, ForeignKey, Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dairy_ledger.models.base import Base
from dairy_ledger.models.enums import (
    CollectionCenterStatus,
    ProducerStatus,
    PaymentStatus,
)


class CollectionCenter(Base):
    """A milk collection point; producers are grouped by its code."""

    __tablename__ = "collection_centers"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[CollectionCenterStatus] = mapped_column(
        SAEnum(
            CollectionCenterStatus,
            name="collection_center_status_enum",
            create_constraint=True,
        ),
        nullable=False,
        default=CollectionCenterStatus.ACTIVE,
    )

    def __repr__(self) -> str:
        return f"<CollectionCenter {self.code} {self.name}>"


class Producer(Base):
    __tablename__ = "producers"

    id: Mapped[int] = mapped_column(primary_key=True)
    producer_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    collection_center_id: Mapped[str | None] = mapped_column(
        String(50), nullable=True, index=True
    )
    bank_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bank_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    account_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    ifsc_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    branch_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    status: Mapped[ProducerStatus] = mapped_column(
        SAEnum(ProducerStatus, name="producer_status_enum", create_constraint=True),
        nullable=False,
        default=ProducerStatus.ACTIVE,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    payments: Mapped[list["ProducerPayment"]] = relationship(
        back_populates="producer"
    )

    def __repr__(self) -> str:
        return f"<Producer {self.producer_number} {self.name}>"


class ProducerPayment(Base):
    """A milk payment period for one producer."""

    __tablename__ = "producer_payments"

    id: Mapped[int] = mapped_column(primary_key=True)
    producer_id: Mapped[int] = mapped_column(
        ForeignKey("producers.id"), nullable=False, index=True
    )
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    milk_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False, default=Decimal("0")
    )
    total_deductions: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False, default=Decimal("0")
    )
    paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False, default=Decimal("0")
    )
    net_payable: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False, default=Decimal("0")
    )
    status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(PaymentStatus, name="payment_status_enum", create_constraint=True),
        nullable=False,
        default=PaymentStatus.PENDING,
    )

    producer: Mapped["Producer"] = relationship(back_populates="payments")

    def __repr__(self) -> str:
        return (
            f"<ProducerPayment {self.producer_id} {self.payment_date} "
            f"{self.net_payable} ({self.status.value})>"
        )
