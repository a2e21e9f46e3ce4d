"""
Bank transfer service: paying a cohort of producers by bank.

Workflow:
1. retrieve_balances computes what every matching producer
   is owed and proposes a rounded-down transfer amount. Nothing
   is saved; the result is a DRAFT batch for the user to review.
2. apply_transfer saves the approved lines as an APPLIED batch
   and posts one journal voucher for the batch total:
       DEBIT  Producer Payable       (the cooperative owes producers less)
       CREDIT Bank Transfer Payable  (and owes the bank run instead)
3. complete_transfer records that the bank run went out.
   The accounting effect was already posted at apply time.
4. cancel_transfer posts the reversal of the apply voucher.

Each state change checks and sets the batch status on a
locked row inside the same transaction as its postings.
"""

import logging
from datetime import date, datetime
from decimal import Decimal, ROUND_FLOOR

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from dairy_ledger.config import get_settings
from dairy_ledger.exceptions import (
    InvalidStateError,
    NoApprovedTransfersError,
    NotFoundError,
    ValidationError,
)
from dairy_ledger.models.base import UnitOfWork
from dairy_ledger.models.bank_transfer import BankTransfer, BankTransferDetail
from dairy_ledger.models.enums import (
    BankTransferStatus,
    EntryType,
    LedgerClassification,
    PaymentStatus,
    ReferenceType,
    TransferBasis,
    TransferDetailStatus,
    VoucherType,
)
from dairy_ledger.schemas.bank_transfer import (
    ApplyTransferRequest,
    BankDetails,
    ProducerBalance,
    RetrieveBalancesResponse,
    RetrieveSummary,
    TransferCriteria,
)
from dairy_ledger.schemas.voucher import VoucherCreate, VoucherEntryCreate
from dairy_ledger.services.audit import AuditAction, log_event
from dairy_ledger.services.producer_directory import (
    PaymentAggregateProvider,
    ProducerDirectory,
    SqlPaymentAggregateProvider,
    SqlProducerDirectory,
)
from dairy_ledger.services.voucher_service import VoucherService

logger = logging.getLogger(__name__)

settings = get_settings()


PRODUCER_PAYABLE_LEDGER = "Producer Payable"
BANK_TRANSFER_PAYABLE_LEDGER = "Bank Transfer Payable"

# Payment periods that still count towards what a producer is owed
OUTSTANDING_STATUSES = (PaymentStatus.PENDING, PaymentStatus.APPROVED)


def round_down(amount: Decimal, unit: int) -> Decimal:
    """Floor a positive amount to a multiple of unit; zero otherwise."""
    if amount <= 0:
        return Decimal("0")
    step = Decimal(unit)
    return (amount / step).to_integral_value(rounding=ROUND_FLOOR) * step


def summarize(balances: list[ProducerBalance]) -> RetrieveSummary:
    approved = [b for b in balances if b.approved]
    return RetrieveSummary(
        count=len(balances),
        total_net_payable=sum((b.net_payable for b in balances), Decimal("0")),
        total_transfer_amount=sum(
            (b.transfer_amount for b in approved), Decimal("0")
        ),
        approved_count=len(approved),
        negative_balance_count=sum(1 for b in balances if b.net_payable < 0),
    )


class BankTransferService:

    def __init__(
        self,
        uow: UnitOfWork,
        directory: ProducerDirectory | None = None,
        payments: PaymentAggregateProvider | None = None,
        company_code: str | None = None,
    ):
        self.uow = uow
        self.db = uow.session
        self.directory = directory or SqlProducerDirectory(self.db)
        self.payments = payments or SqlPaymentAggregateProvider(self.db)
        self.company_code = company_code or settings.COMPANY_CODE
        self.voucher_service = VoucherService(uow)
        self.ledger_service = self.voucher_service.ledger_service
        self.numbering = self.voucher_service.numbering

    # --- Retrieve ---

    def net_payable(self, producer_id: int, criteria: TransferCriteria) -> Decimal:
        """
        What the cooperative owes one producer.

        AS_ON_DATE_BALANCE: milk amount less deductions less
        payments already made, over every open period up to
        the as-on date.
        LAST_PROCESSED_PERIOD: what is left unpaid on the most
        recent approved period.
        """
        if criteria.transfer_basis == TransferBasis.AS_ON_DATE_BALANCE:
            totals = self.payments.totals(
                producer_id, criteria.as_on_date, OUTSTANDING_STATUSES
            )
            return totals.milk_amount - totals.deductions - totals.paid_amount

        last = self.payments.last_approved(producer_id)
        if last is None:
            return Decimal("0")
        return last.net_payable - last.paid_amount

    def retrieve_balances(
        self, criteria: TransferCriteria
    ) -> RetrieveBalancesResponse:
        """Compute a DRAFT batch. Nothing is written."""
        producers = self.directory.active_producers(
            collection_center_id=criteria.collection_center_id,
            bank_id=criteria.bank_id,
        )

        balances = []
        for producer in producers:
            net_payable = self.net_payable(producer.id, criteria)
            if criteria.due_by_list and net_payable <= 0:
                continue

            transfer_amount = round_down(net_payable, criteria.round_down_unit)
            balances.append(ProducerBalance(
                producer_id=producer.id,
                producer_number=producer.producer_number,
                producer_name=producer.name or "Unknown",
                net_payable=net_payable,
                transfer_amount=transfer_amount,
                approved=transfer_amount > 0,
                bank_details=BankDetails(
                    account_number=producer.account_number or "-",
                    bank_name=producer.bank_name or "-",
                    ifsc_code=producer.ifsc_code or "-",
                    bank_code=producer.branch_code or "-",
                ),
            ))

        balances.sort(key=lambda b: b.producer_number)
        summary = summarize(balances)

        logger.info(
            "Producer balances retrieved",
            extra={
                "producers": summary.count,
                "approved": summary.approved_count,
                "total_transfer_amount": str(summary.total_transfer_amount),
            },
        )
        return RetrieveBalancesResponse(
            criteria=criteria,
            balances=balances,
            summary=summary,
        )

    # --- State changes ---

    def _transition(self, batch: BankTransfer, new_status: BankTransferStatus):
        if not batch.can_transition_to(new_status):
            raise InvalidStateError(
                f"Cannot transition bank transfer from "
                f"{batch.status.value} to {new_status.value}",
                details={
                    "id": batch.id,
                    "from": batch.status.value,
                    "to": new_status.value,
                },
            )
        batch.status = new_status

    def _get_for_update(self, batch_id: int) -> BankTransfer:
        batch = self.db.execute(
            select(BankTransfer)
            .where(
                BankTransfer.id == batch_id,
                BankTransfer.company_code == self.company_code,
            )
            .options(selectinload(BankTransfer.details))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if not batch:
            raise NotFoundError("Bank transfer", batch_id)
        return batch

    def apply_transfer(
        self,
        request: ApplyTransferRequest,
        applied_by: str | None = None,
    ) -> BankTransfer:
        """
        Save the approved lines as an APPLIED batch and post its voucher.

        Numbering, the batch, the two payable ledgers (created on
        first use), the voucher and the ledger postings all commit
        together or not at all.
        """
        approved = [
            d for d in request.transfer_details
            if d.approved and d.transfer_amount > 0
        ]
        if not approved:
            raise NoApprovedTransfersError()

        producer_ids = [d.producer_id for d in approved]
        if len(set(producer_ids)) != len(producer_ids):
            raise ValidationError(
                "A producer can appear only once in a bank transfer"
            )

        with self.uow.atomic():
            transfer_number = self.numbering.next_transfer_number(
                self.company_code, request.apply_date
            )
            now = datetime.utcnow()

            batch = BankTransfer(
                company_code=self.company_code,
                transfer_number=transfer_number,
                transfer_basis=request.transfer_basis,
                as_on_date=request.as_on_date,
                apply_date=request.apply_date,
                collection_center_id=request.collection_center_id,
                collection_center_name=request.collection_center_name,
                bank_id=request.bank_id,
                bank_name=request.bank_name,
                round_down_unit=request.round_down_unit,
                due_by_list=request.due_by_list,
                remarks=request.remarks,
                status=BankTransferStatus.DRAFT,
                created_by=applied_by,
            )
            batch.details = [
                BankTransferDetail(
                    producer_id=d.producer_id,
                    producer_number=d.producer_number,
                    producer_name=d.producer_name,
                    net_payable=d.net_payable,
                    transfer_amount=d.transfer_amount,
                    approved=True,
                    account_number=d.bank_details.account_number,
                    bank_name=d.bank_details.bank_name,
                    ifsc_code=d.bank_details.ifsc_code,
                    bank_code=d.bank_details.bank_code,
                    transfer_status=TransferDetailStatus.PENDING,
                )
                for d in approved
            ]
            batch.recalculate_totals()
            self._transition(batch, BankTransferStatus.APPLIED)
            batch.applied_by = applied_by
            batch.applied_at = now
            self.db.add(batch)
            self.db.flush()

            producer_payable = self.ledger_service.get_or_create_ledger(
                PRODUCER_PAYABLE_LEDGER, LedgerClassification.LIABILITY_LIKE
            )
            bank_payable = self.ledger_service.get_or_create_ledger(
                BANK_TRANSFER_PAYABLE_LEDGER, LedgerClassification.LIABILITY_LIKE
            )

            total = batch.total_transfer_amount
            voucher = self.voucher_service.create_voucher(
                VoucherCreate(
                    voucher_type=VoucherType.JOURNAL,
                    voucher_date=request.apply_date,
                    entries=[
                        VoucherEntryCreate(
                            ledger_id=producer_payable.id,
                            entry_type=EntryType.DEBIT,
                            amount=total,
                        ),
                        VoucherEntryCreate(
                            ledger_id=bank_payable.id,
                            entry_type=EntryType.CREDIT,
                            amount=total,
                        ),
                    ],
                    narration=(
                        f"Bank Transfer - {transfer_number} - "
                        f"{batch.total_approved} producers"
                    ),
                    reference_type=ReferenceType.BANK_TRANSFER,
                    reference_id=batch.id,
                ),
                created_by=applied_by,
            )
            batch.voucher_id = voucher.id
            self.db.flush()

            log_event(
                self.db,
                AuditAction.BANK_TRANSFER_APPLIED,
                "BankTransfer",
                batch.id,
                actor=applied_by,
                details={
                    "transfer_number": transfer_number,
                    "voucher_number": voucher.number,
                    "total_transfer_amount": total,
                    "producers": batch.total_approved,
                },
            )

        logger.info(
            "Bank transfer applied",
            extra={
                "bank_transfer_id": batch.id,
                "transfer_number": transfer_number,
                "total_transfer_amount": str(total),
                "producers": batch.total_approved,
            },
        )
        return batch

    def cancel_transfer(
        self, batch_id: int, cancelled_by: str | None = None
    ) -> BankTransfer:
        """
        Cancel an APPLIED batch and post the reversal of its voucher.

        Completed and cancelled batches are rejected. If the
        reversal fails the batch stays APPLIED.
        """
        with self.uow.atomic():
            batch = self._get_for_update(batch_id)

            if batch.status == BankTransferStatus.COMPLETED:
                raise InvalidStateError(
                    "Cannot cancel a completed transfer",
                    details={"id": batch.id, "status": batch.status.value},
                )
            if batch.status == BankTransferStatus.CANCELLED:
                raise InvalidStateError(
                    "Transfer is already cancelled",
                    details={"id": batch.id, "status": batch.status.value},
                )
            self._transition(batch, BankTransferStatus.CANCELLED)

            if batch.voucher_id is not None:
                reversal = self.voucher_service.reverse_voucher(
                    batch.voucher_id,
                    narration=f"Reversal of {batch.transfer_number}",
                    created_by=cancelled_by,
                )
                batch.reversal_voucher_id = reversal.id

            for detail in batch.details:
                detail.transfer_status = TransferDetailStatus.CANCELLED
            batch.cancelled_by = cancelled_by
            batch.cancelled_at = datetime.utcnow()
            self.db.flush()

            log_event(
                self.db,
                AuditAction.BANK_TRANSFER_CANCELLED,
                "BankTransfer",
                batch.id,
                actor=cancelled_by,
                details={"reversal_voucher_id": batch.reversal_voucher_id},
            )

        logger.info(
            "Bank transfer cancelled",
            extra={
                "bank_transfer_id": batch.id,
                "transfer_number": batch.transfer_number,
            },
        )
        return batch

    def complete_transfer(
        self, batch_id: int, completed_by: str | None = None
    ) -> BankTransfer:
        """Mark an APPLIED batch as sent to the bank. No posting."""
        with self.uow.atomic():
            batch = self._get_for_update(batch_id)

            if batch.status != BankTransferStatus.APPLIED:
                raise InvalidStateError(
                    "Only applied transfers can be marked as completed",
                    details={"id": batch.id, "status": batch.status.value},
                )
            self._transition(batch, BankTransferStatus.COMPLETED)

            now = datetime.utcnow()
            for detail in batch.details:
                if detail.approved:
                    detail.transfer_status = TransferDetailStatus.TRANSFERRED
                    detail.transferred_at = now
            batch.completed_by = completed_by
            batch.completed_at = now
            self.db.flush()

            log_event(
                self.db,
                AuditAction.BANK_TRANSFER_COMPLETED,
                "BankTransfer",
                batch.id,
                actor=completed_by,
            )

        logger.info(
            "Bank transfer completed",
            extra={
                "bank_transfer_id": batch.id,
                "transfer_number": batch.transfer_number,
            },
        )
        return batch

    # --- Queries ---

    def get_transfer(self, batch_id: int) -> BankTransfer:
        batch = self.db.execute(
            select(BankTransfer)
            .where(
                BankTransfer.id == batch_id,
                BankTransfer.company_code == self.company_code,
            )
            .options(selectinload(BankTransfer.details))
        ).scalar_one_or_none()
        if not batch:
            raise NotFoundError("Bank transfer", batch_id)
        return batch

    def list_transfers(
        self,
        status: BankTransferStatus | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> dict:
        """Batches newest apply date first, with a summary of the selection."""
        query = (
            select(BankTransfer)
            .where(BankTransfer.company_code == self.company_code)
            .options(selectinload(BankTransfer.details))
        )
        if status:
            query = query.where(BankTransfer.status == status)
        if from_date:
            query = query.where(BankTransfer.apply_date >= from_date)
        if to_date:
            query = query.where(BankTransfer.apply_date <= to_date)

        batches = list(self.db.execute(
            query.order_by(BankTransfer.apply_date.desc(), BankTransfer.id.desc())
        ).scalars().all())

        return {
            "data": batches,
            "summary": {
                "count": len(batches),
                "total_amount": sum(
                    (b.total_transfer_amount for b in batches), Decimal("0")
                ),
                "total_producers": sum(b.total_approved for b in batches),
            },
        }

    def list_banks(self) -> list[dict]:
        return [
            {"name": name, "count": count}
            for name, count in self.directory.banks()
        ]

    def list_collection_centers(self) -> list[dict]:
        return [
            {"code": center.code, "name": center.name}
            for center in self.directory.collection_centers()
        ]
