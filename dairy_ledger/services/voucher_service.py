"""
Voucher service: validates, numbers, persists and posts vouchers.

Each voucher:
1. Must balance (debits = credits within tolerance)
2. Gets the next number for its type and month
3. Is stored together with its entries
4. Is posted to the ledgers through LedgerService

Steps 2-4 happen in one transaction: either the voucher
exists with its effect on the ledgers, or neither does.
"""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from dairy_ledger.config import get_settings
from dairy_ledger.exceptions import (
    InvalidStateError,
    NotFoundError,
    UnbalancedEntriesError,
)
from dairy_ledger.models.base import UnitOfWork
from dairy_ledger.models.enums import (
    EntryType,
    PaymentMode,
    ReferenceType,
    VoucherType,
)
from dairy_ledger.models.voucher import Voucher, VoucherEntry
from dairy_ledger.schemas.voucher import (
    ProducerPaymentVoucherCreate,
    SalesVoucherCreate,
    VoucherCreate,
    VoucherEntryCreate,
)
from dairy_ledger.services.audit import AuditAction, log_event
from dairy_ledger.services.ledger_service import LedgerService
from dairy_ledger.services.numbering_service import NumberingService

logger = logging.getLogger(__name__)

settings = get_settings()

# Ledgers the business vouchers post to; they must be set up
# in the chart of accounts before the first payment or sale
SETTLEMENT_LEDGERS = {PaymentMode.CASH: "Cash", PaymentMode.BANK: "Bank"}
SALES_LEDGER = "Sales"


def entry_totals(entries) -> tuple[Decimal, Decimal]:
    total_debit = sum((e.debit for e in entries), Decimal("0"))
    total_credit = sum((e.credit for e in entries), Decimal("0"))
    return total_debit, total_credit


class VoucherService:

    def __init__(self, uow: UnitOfWork):
        self.uow = uow
        self.db = uow.session
        self.ledger_service = LedgerService(uow)
        self.numbering = NumberingService(uow)

    def create_voucher(
        self,
        request: VoucherCreate,
        created_by: str | None = None,
        reversal_of_id: int | None = None,
    ) -> Voucher:
        """
        Create and post a voucher.

        Raises UnbalancedEntriesError before touching the
        database if debits and credits differ by more than
        the configured tolerance, and LedgerNotFoundError if
        any entry points at a ledger that does not exist.
        """
        total_debit, total_credit = entry_totals(request.entries)
        if abs(total_debit - total_credit) > settings.BALANCE_TOLERANCE:
            raise UnbalancedEntriesError(total_debit, total_credit)

        with self.uow.atomic():
            number = self.numbering.next_number(
                request.voucher_type, request.voucher_date
            )
            ledgers = self.ledger_service.post_entries(request.entries)

            voucher = Voucher(
                voucher_type=request.voucher_type,
                number=number,
                voucher_date=request.voucher_date,
                total_debit=total_debit,
                total_credit=total_credit,
                narration=request.narration,
                reference_type=request.reference_type,
                reference_id=request.reference_id,
                reversal_of_id=reversal_of_id,
                created_by=created_by,
            )
            voucher.entries = [
                VoucherEntry(
                    line_number=line_number,
                    ledger_id=entry.ledger_id,
                    ledger_name=ledgers[entry.ledger_id].name,
                    entry_type=entry.entry_type,
                    amount=entry.amount,
                    narration=entry.narration,
                )
                for line_number, entry in enumerate(request.entries, start=1)
            ]
            self.db.add(voucher)
            self.db.flush()

            log_event(
                self.db,
                AuditAction.VOUCHER_POSTED,
                "Voucher",
                voucher.id,
                actor=created_by,
                details={
                    "number": number,
                    "total_debit": total_debit,
                    "total_credit": total_credit,
                },
            )

        logger.info(
            "Voucher posted",
            extra={
                "voucher_id": voucher.id,
                "voucher_number": number,
                "total_debit": str(total_debit),
            },
        )
        return voucher

    def reverse_voucher(
        self,
        voucher_id: int,
        narration: str | None = None,
        voucher_date: date | None = None,
        created_by: str | None = None,
    ) -> Voucher:
        """
        Post a compensating voucher with every entry's side swapped.

        The original voucher is not modified. The reversal points
        back at it and carries the same business reference. A
        voucher can be reversed only once.
        """
        with self.uow.atomic():
            original = self.get_voucher(voucher_id)
            # Serializes two reversals of the same voucher
            self.db.execute(
                select(Voucher.id)
                .where(Voucher.id == voucher_id)
                .with_for_update()
            )
            existing = self.db.execute(
                select(Voucher.number).where(Voucher.reversal_of_id == voucher_id)
            ).scalar_one_or_none()
            if existing:
                raise InvalidStateError(
                    f"Voucher {original.number} was already reversed "
                    f"by {existing}",
                    details={"voucher_id": voucher_id, "reversal": existing},
                )

            reversal_entries = []
            for entry in original.entries:
                reversed_type = (
                    EntryType.CREDIT
                    if entry.entry_type == EntryType.DEBIT
                    else EntryType.DEBIT
                )
                reversal_entries.append(VoucherEntryCreate(
                    ledger_id=entry.ledger_id,
                    entry_type=reversed_type,
                    amount=entry.amount,
                    narration=entry.narration,
                ))

            reversal = self.create_voucher(
                VoucherCreate(
                    voucher_type=original.voucher_type,
                    voucher_date=voucher_date or date.today(),
                    entries=reversal_entries,
                    narration=narration or f"Reversal of {original.number}",
                    reference_type=original.reference_type,
                    reference_id=original.reference_id,
                ),
                created_by=created_by,
                reversal_of_id=original.id,
            )
            log_event(
                self.db,
                AuditAction.VOUCHER_REVERSED,
                "Voucher",
                original.id,
                actor=created_by,
                details={"reversal_number": reversal.number},
            )
        return reversal

    def create_payment_voucher(
        self,
        request: ProducerPaymentVoucherCreate,
        created_by: str | None = None,
    ) -> Voucher:
        """Pay a producer: Dr the producer's ledger, Cr Cash or Bank."""
        settlement = self.ledger_service.get_ledger_by_name(
            SETTLEMENT_LEDGERS[request.payment_mode]
        )
        amount = request.amount
        return self.create_voucher(
            VoucherCreate(
                voucher_type=VoucherType.PAYMENT,
                voucher_date=request.voucher_date,
                entries=[
                    VoucherEntryCreate(
                        ledger_id=request.producer_ledger_id,
                        entry_type=EntryType.DEBIT,
                        amount=amount,
                    ),
                    VoucherEntryCreate(
                        ledger_id=settlement.id,
                        entry_type=EntryType.CREDIT,
                        amount=amount,
                    ),
                ],
                narration=request.narration or "Producer payment",
                reference_type=ReferenceType.PAYMENT,
                reference_id=request.reference_id,
            ),
            created_by=created_by,
        )

    def create_sales_voucher(
        self,
        request: SalesVoucherCreate,
        created_by: str | None = None,
    ) -> Voucher:
        """
        Post a sales bill as one journal voucher.

        A customer sale charges the customer with the grand total
        and credits Sales; any amount paid at the counter moves
        from the customer to Cash or Bank. A cash sale debits
        Cash or Bank directly.
        """
        sales = self.ledger_service.get_ledger_by_name(SALES_LEDGER)
        entries = []
        settlement_id = None
        if request.customer_ledger_id is None or request.paid_amount > 0:
            settlement_id = self.ledger_service.get_ledger_by_name(
                SETTLEMENT_LEDGERS[request.payment_mode]
            ).id

        charged_id = request.customer_ledger_id or settlement_id
        entries.append(VoucherEntryCreate(
            ledger_id=charged_id,
            entry_type=EntryType.DEBIT,
            amount=request.grand_total,
        ))
        entries.append(VoucherEntryCreate(
            ledger_id=sales.id,
            entry_type=EntryType.CREDIT,
            amount=request.grand_total,
        ))

        if request.customer_ledger_id is not None and request.paid_amount > 0:
            entries += [
                VoucherEntryCreate(
                    ledger_id=settlement_id,
                    entry_type=EntryType.DEBIT,
                    amount=request.paid_amount,
                ),
                VoucherEntryCreate(
                    ledger_id=request.customer_ledger_id,
                    entry_type=EntryType.CREDIT,
                    amount=request.paid_amount,
                ),
            ]

        return self.create_voucher(
            VoucherCreate(
                voucher_type=VoucherType.JOURNAL,
                voucher_date=request.voucher_date,
                entries=entries,
                narration=f"Sales - Bill No: {request.bill_number}",
                reference_type=ReferenceType.SALES,
                reference_id=request.reference_id,
            ),
            created_by=created_by,
        )

    def get_voucher(self, voucher_id: int) -> Voucher:
        voucher = self.db.execute(
            select(Voucher)
            .where(Voucher.id == voucher_id)
            .options(selectinload(Voucher.entries))
        ).scalar_one_or_none()
        if not voucher:
            raise NotFoundError("Voucher", voucher_id)
        return voucher

    def list_vouchers(
        self,
        voucher_type: VoucherType | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        reference_type: ReferenceType | None = None,
        reference_id: int | None = None,
    ) -> list[Voucher]:
        """Return vouchers newest first."""
        query = select(Voucher).options(selectinload(Voucher.entries))
        if voucher_type:
            query = query.where(Voucher.voucher_type == voucher_type)
        if start_date:
            query = query.where(Voucher.voucher_date >= start_date)
        if end_date:
            query = query.where(Voucher.voucher_date <= end_date)
        if reference_type:
            query = query.where(Voucher.reference_type == reference_type)
        if reference_id is not None:
            query = query.where(Voucher.reference_id == reference_id)

        vouchers = self.db.execute(
            query.order_by(Voucher.voucher_date.desc(), Voucher.id.desc())
        ).scalars().all()
        return list(vouchers)
