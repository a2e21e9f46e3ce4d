"""
Read-only collaborators for the bank transfer engine.

The producer directory and the payment aggregates belong to
the membership and milk-payment modules. The bank transfer
service only depends on the small interfaces below; the SQL
implementations read the shared tables directly.
"""

from datetime import date
from decimal import Decimal
from typing import NamedTuple, Protocol

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from dairy_ledger.models.enums import (
    CollectionCenterStatus,
    PaymentStatus,
    ProducerStatus,
)
from dairy_ledger.models.producer import (
    CollectionCenter,
    Producer,
    ProducerPayment,
)


def _money(value) -> Decimal:
    # SQLite hands back floats for SUM over NUMERIC columns
    return Decimal(str(value)).quantize(Decimal("0.0001"))


class PaymentTotals(NamedTuple):
    milk_amount: Decimal
    deductions: Decimal
    paid_amount: Decimal


class LastPayment(NamedTuple):
    net_payable: Decimal
    paid_amount: Decimal


class ProducerDirectory(Protocol):

    def active_producers(
        self,
        collection_center_id: str | None = None,
        bank_id: str | None = None,
    ) -> list[Producer]: ...

    def banks(self) -> list[tuple[str, int]]: ...

    def collection_centers(self) -> list[CollectionCenter]: ...


class PaymentAggregateProvider(Protocol):

    def totals(
        self,
        producer_id: int,
        up_to: date,
        statuses: tuple[PaymentStatus, ...],
    ) -> PaymentTotals: ...

    def last_approved(self, producer_id: int) -> LastPayment | None: ...


class SqlProducerDirectory:

    def __init__(self, db: Session):
        self.db = db

    def active_producers(
        self,
        collection_center_id: str | None = None,
        bank_id: str | None = None,
    ) -> list[Producer]:
        query = select(Producer).where(Producer.status == ProducerStatus.ACTIVE)
        if collection_center_id:
            query = query.where(
                Producer.collection_center_id == collection_center_id
            )
        if bank_id:
            query = query.where(Producer.bank_id == bank_id)
        producers = self.db.execute(
            query.order_by(Producer.producer_number)
        ).scalars().all()
        return list(producers)

    def banks(self) -> list[tuple[str, int]]:
        """Distinct bank names across producers, with producer counts."""
        rows = self.db.execute(
            select(Producer.bank_name, func.count(Producer.id))
            .where(Producer.bank_name.is_not(None), Producer.bank_name != "")
            .group_by(Producer.bank_name)
            .order_by(Producer.bank_name)
        ).all()
        return [(name, count) for name, count in rows]

    def collection_centers(self) -> list[CollectionCenter]:
        centers = self.db.execute(
            select(CollectionCenter)
            .where(CollectionCenter.status == CollectionCenterStatus.ACTIVE)
            .order_by(CollectionCenter.name)
        ).scalars().all()
        return list(centers)


class SqlPaymentAggregateProvider:

    def __init__(self, db: Session):
        self.db = db

    def totals(
        self,
        producer_id: int,
        up_to: date,
        statuses: tuple[PaymentStatus, ...],
    ) -> PaymentTotals:
        row = self.db.execute(
            select(
                func.coalesce(func.sum(ProducerPayment.milk_amount), 0),
                func.coalesce(func.sum(ProducerPayment.total_deductions), 0),
                func.coalesce(func.sum(ProducerPayment.paid_amount), 0),
            ).where(
                ProducerPayment.producer_id == producer_id,
                ProducerPayment.payment_date <= up_to,
                ProducerPayment.status.in_(statuses),
            )
        ).one()
        return PaymentTotals(*(_money(value) for value in row))

    def last_approved(self, producer_id: int) -> LastPayment | None:
        payment = self.db.execute(
            select(ProducerPayment)
            .where(
                ProducerPayment.producer_id == producer_id,
                ProducerPayment.status == PaymentStatus.APPROVED,
            )
            .order_by(
                ProducerPayment.payment_date.desc(),
                ProducerPayment.id.desc(),
            )
            .limit(1)
        ).scalar_one_or_none()
        if payment is None:
            return None
        return LastPayment(
            net_payable=Decimal(payment.net_payable),
            paid_amount=Decimal(payment.paid_amount or 0),
        )
