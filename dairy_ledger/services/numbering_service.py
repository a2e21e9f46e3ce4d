"""
Document numbering.

Voucher numbers look like JV25010007: a type prefix, the
two-digit year and month of the voucher date, and a sequence
that restarts every month. Bank transfer numbers follow the
same pattern with a BT prefix and a five-digit sequence
counted per company.

Sequences are never derived from "the last number issued".
Each allocation increments a counter row in place, inside
the caller's transaction, so concurrent callers are handed
distinct numbers and a rolled-back caller gives its number back.
"""

from datetime import date

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from dairy_ledger.exceptions import ConcurrencyError
from dairy_ledger.models.base import UnitOfWork
from dairy_ledger.models.enums import VoucherType
from dairy_ledger.models.sequence_counter import SequenceCounter


VOUCHER_PREFIXES = {
    VoucherType.RECEIPT: "RV",
    VoucherType.PAYMENT: "PV",
    VoucherType.JOURNAL: "JV",
}

TRANSFER_PREFIX = "BT"


def period_of(on_date: date) -> str:
    """YYMM for a document date."""
    return on_date.strftime("%y%m")


class NumberingService:

    def __init__(self, uow: UnitOfWork):
        self.uow = uow
        self.db = uow.session

    def next_number(self, voucher_type: VoucherType, on_date: date) -> str:
        period = period_of(on_date)
        sequence = self.allocate(voucher_type.value, period)
        return f"{VOUCHER_PREFIXES[voucher_type]}{period}{sequence:04d}"

    def next_transfer_number(self, company_code: str, on_date: date) -> str:
        period = period_of(on_date)
        sequence = self.allocate(f"{TRANSFER_PREFIX}:{company_code}", period)
        return f"{TRANSFER_PREFIX}{period}{sequence:05d}"

    def allocate(self, scope: str, period: str) -> int:
        """
        Increment and return the counter for (scope, period).

        The UPDATE takes the row lock, so a second transaction
        allocating from the same counter waits until the first
        commits or rolls back. The first allocation of a period
        inserts the row; losing that insert race raises
        ConcurrencyError and the whole operation is retried.
        """
        key = (
            SequenceCounter.scope == scope,
            SequenceCounter.period == period,
        )

        with self.uow.atomic():
            result = self.db.execute(
                update(SequenceCounter)
                .where(*key)
                .values(value=SequenceCounter.value + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount:
                return self.db.execute(
                    select(SequenceCounter.value).where(*key)
                ).scalar_one()

            try:
                self.db.execute(
                    insert(SequenceCounter).values(
                        scope=scope, period=period, value=1
                    )
                )
            except IntegrityError as e:
                raise ConcurrencyError(
                    f"Sequence {scope}/{period} was created concurrently"
                ) from e
            return 1
