"""
Ledger service: the ledger store and the posting engine.

This service enforces the fundamental rules:
1. Every referenced ledger must exist and be active, or
   nothing is posted at all
2. A ledger's balance only moves through post_entries
3. The balance side is always derived from the sign of the
   balance and the ledger's classification
4. Concurrent postings to one ledger serialize on a row lock

No other service writes ledger balances directly.
"""

import logging
from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from dairy_ledger.exceptions import (
    ConcurrencyError,
    DuplicateError,
    LedgerNotFoundError,
    NotFoundError,
    ValidationError,
)
from dairy_ledger.models.base import UnitOfWork
from dairy_ledger.models.enums import (
    BalanceSide,
    LedgerClassification,
    LedgerStatus,
)
from dairy_ledger.models.ledger import Ledger
from dairy_ledger.models.voucher import Voucher, VoucherEntry
from dairy_ledger.schemas.ledger import LedgerCreate, LedgerUpdate
from dairy_ledger.schemas.voucher import VoucherEntryCreate
from dairy_ledger.services.audit import AuditAction, log_event

logger = logging.getLogger(__name__)


# The side on which each classification's balance is positive
NATURAL_SIDE = {
    LedgerClassification.ASSET_LIKE: BalanceSide.DR,
    LedgerClassification.PARTY: BalanceSide.DR,
    LedgerClassification.LIABILITY_LIKE: BalanceSide.CR,
}

OPPOSITE_SIDE = {BalanceSide.DR: BalanceSide.CR, BalanceSide.CR: BalanceSide.DR}


def apply_change(
    classification: LedgerClassification,
    balance: Decimal,
    net_change: Decimal,
) -> tuple[Decimal, BalanceSide]:
    """
    Apply net_change (debit minus credit) to a signed balance.

    ASSET_LIKE and PARTY: balance += net_change, CR when negative.
    LIABILITY_LIKE: balance -= net_change, DR when negative.
    """
    if classification == LedgerClassification.LIABILITY_LIKE:
        balance = balance - net_change
    else:
        balance = balance + net_change

    natural = NATURAL_SIDE[classification]
    side = natural if balance >= 0 else OPPOSITE_SIDE[natural]
    return balance, side


def signed_opening(
    classification: LedgerClassification,
    amount: Decimal,
    side: BalanceSide,
) -> Decimal:
    """An opening balance on the unnatural side counts as negative."""
    return amount if side == NATURAL_SIDE[classification] else -amount


class LedgerService:
    """
    All ledger reads and writes pass through this service.

    The service is built on a UnitOfWork. Writes run inside
    ``uow.atomic()``, so when the caller already holds a
    transaction (a voucher being created, a batch being
    applied) they join it instead of committing on their own.
    """

    def __init__(self, uow: UnitOfWork):
        self.uow = uow
        self.db = uow.session

    def _find_active_by_name(self, name: str) -> Ledger | None:
        return self.db.execute(
            select(Ledger).where(
                Ledger.name == name,
                Ledger.status == LedgerStatus.ACTIVE,
            )
        ).scalars().first()

    def create_ledger(self, request: LedgerCreate) -> Ledger:
        """
        Create a new ledger.

        Raises DuplicateError if an active ledger already
        uses the name.
        """
        with self.uow.atomic():
            if self._find_active_by_name(request.name):
                raise DuplicateError(
                    f"Ledger with name '{request.name}' already exists",
                    details={"name": request.name},
                )

            ledger = Ledger(
                name=request.name,
                classification=request.classification,
                opening_balance=request.opening_balance,
                opening_side=request.opening_side,
                current_balance=signed_opening(
                    request.classification,
                    request.opening_balance,
                    request.opening_side,
                ),
                current_side=request.opening_side,
                status=LedgerStatus.ACTIVE,
            )
            self.db.add(ledger)
            try:
                self.db.flush()
            except IntegrityError as e:
                # Another transaction took the name after our check
                raise ConcurrencyError(
                    f"Ledger name '{request.name}' was taken concurrently"
                ) from e
            log_event(
                self.db,
                AuditAction.LEDGER_CREATED,
                "Ledger",
                ledger.id,
                details={"name": ledger.name},
            )

        logger.info(
            "Ledger created",
            extra={"ledger_id": ledger.id, "ledger_name": ledger.name},
        )
        return ledger

    def get_or_create_ledger(
        self, name: str, classification: LedgerClassification
    ) -> Ledger:
        """
        Return the active ledger with this name, creating it at zero.

        A same-name ledger of another classification is an error,
        not a match.
        """
        with self.uow.atomic():
            ledger = self._find_active_by_name(name)
            if ledger:
                if ledger.classification != classification:
                    raise ValidationError(
                        f"Ledger '{name}' exists as "
                        f"{ledger.classification.value}, "
                        f"expected {classification.value}",
                        details={
                            "ledger_id": ledger.id,
                            "classification": ledger.classification.value,
                        },
                    )
                return ledger
            return self.create_ledger(LedgerCreate(
                name=name,
                classification=classification,
                opening_side=NATURAL_SIDE[classification],
            ))

    def get_ledger(self, ledger_id: int) -> Ledger:
        ledger = self.db.get(Ledger, ledger_id)
        if not ledger:
            raise NotFoundError("Ledger", ledger_id)
        return ledger

    def get_ledger_by_name(self, name: str) -> Ledger:
        ledger = self._find_active_by_name(name)
        if not ledger:
            raise NotFoundError(
                "Ledger", name, error_code="ERR_LEDGER_NOT_FOUND"
            )
        return ledger

    def list_ledgers(
        self,
        classification: LedgerClassification | None = None,
        status: LedgerStatus | None = LedgerStatus.ACTIVE,
        search: str | None = None,
    ) -> list[Ledger]:
        """Return ledgers sorted by name."""
        query = select(Ledger)
        if classification:
            query = query.where(Ledger.classification == classification)
        if status:
            query = query.where(Ledger.status == status)
        if search:
            query = query.where(Ledger.name.ilike(f"%{search}%"))
        ledgers = self.db.execute(query.order_by(Ledger.name)).scalars().all()
        return list(ledgers)

    def update_ledger(self, ledger_id: int, request: LedgerUpdate) -> Ledger:
        """
        Rename or (de)activate a ledger.

        Balances are not editable; they only move through postings.
        """
        with self.uow.atomic():
            ledger = self.get_ledger(ledger_id)
            new_name = request.name or ledger.name
            new_status = request.status or ledger.status

            if new_status == LedgerStatus.ACTIVE:
                clash = self._find_active_by_name(new_name)
                if clash and clash.id != ledger.id:
                    raise DuplicateError(
                        f"Ledger with name '{new_name}' already exists",
                        details={"name": new_name},
                    )
            elif ledger.is_active and ledger.current_balance != 0:
                # Cancelling a batch must still be able to post here
                raise ValidationError(
                    f"Ledger '{ledger.name}' cannot be deactivated "
                    "while its balance is non-zero",
                    details={
                        "ledger_id": ledger.id,
                        "current_balance": str(ledger.current_balance),
                    },
                )

            ledger.name = new_name
            ledger.status = new_status
            self.db.flush()
            log_event(
                self.db,
                AuditAction.LEDGER_UPDATED,
                "Ledger",
                ledger.id,
                details={"name": new_name, "status": new_status.value},
            )
        return ledger

    def post_entries(
        self, entries: Sequence[VoucherEntryCreate]
    ) -> dict[int, Ledger]:
        """
        Apply a set of entries to ledger balances.

        This is the most critical method in the entire system.
        Every referenced ledger is loaded with a row lock inside
        the caller's transaction. If any ledger is missing or
        inactive nothing is changed. Balance checking is the
        voucher's job, not this method's.

        Returns the locked ledgers by id so the caller can
        snapshot their names.
        """
        ledger_ids = {entry.ledger_id for entry in entries}

        with self.uow.atomic():
            # Lock in id order so two postings never wait on each other
            # in opposite orders; populate_existing discards any stale
            # copy already in the session.
            ledgers = self.db.execute(
                select(Ledger)
                .where(Ledger.id.in_(ledger_ids))
                .order_by(Ledger.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars().all()
            ledgers_by_id = {ledger.id: ledger for ledger in ledgers}

            missing = ledger_ids - set(ledgers_by_id)
            if missing:
                raise LedgerNotFoundError(missing)

            for ledger in ledgers:
                if not ledger.is_active:
                    raise ValidationError(
                        f"Ledger '{ledger.name}' is not active",
                        details={"ledger_id": ledger.id},
                    )

            for entry in entries:
                ledger = ledgers_by_id[entry.ledger_id]
                net_change = entry.debit - entry.credit
                ledger.current_balance, ledger.current_side = apply_change(
                    ledger.classification,
                    Decimal(ledger.current_balance),
                    net_change,
                )

            self.db.flush()

        logger.info(
            "Entries posted",
            extra={"entries": len(entries), "ledger_ids": sorted(ledger_ids)},
        )
        return ledgers_by_id

    def _entries_for(self, ledger_id: int, by_date: bool):
        query = (
            select(VoucherEntry, Voucher)
            .join(Voucher, VoucherEntry.voucher_id == Voucher.id)
            .where(VoucherEntry.ledger_id == ledger_id)
        )
        if by_date:
            query = query.order_by(
                Voucher.voucher_date, Voucher.id, VoucherEntry.line_number
            )
        else:
            query = query.order_by(Voucher.id, VoucherEntry.line_number)
        return self.db.execute(query).all()

    def replay_balance(self, ledger_id: int) -> tuple[Decimal, BalanceSide]:
        """
        Recompute a ledger's balance from its opening balance and
        every entry ever posted to it, in posting order.

        The result always equals the stored current balance and
        side; a difference means a posting bypassed the engine.
        """
        ledger = self.get_ledger(ledger_id)
        balance = signed_opening(
            ledger.classification,
            Decimal(ledger.opening_balance),
            ledger.opening_side,
        )
        side = ledger.opening_side

        for entry, _voucher in self._entries_for(ledger_id, by_date=False):
            balance, side = apply_change(
                ledger.classification, balance, entry.debit - entry.credit
            )
        return balance, side

    def get_statement(
        self,
        ledger_id: int,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> dict:
        """
        A ledger's postings in date order with the running balance.

        Postings before start_date are folded into the opening
        balance of the statement; postings after end_date are left out.
        """
        ledger = self.get_ledger(ledger_id)
        balance = signed_opening(
            ledger.classification,
            Decimal(ledger.opening_balance),
            ledger.opening_side,
        )
        side = ledger.opening_side
        opening_balance, opening_side = balance, side
        lines = []

        for entry, voucher in self._entries_for(ledger_id, by_date=True):
            if end_date and voucher.voucher_date > end_date:
                break
            balance, side = apply_change(
                ledger.classification, balance, entry.debit - entry.credit
            )
            if start_date and voucher.voucher_date < start_date:
                opening_balance, opening_side = balance, side
                continue
            lines.append({
                "voucher_id": voucher.id,
                "voucher_number": voucher.number,
                "voucher_type": voucher.voucher_type,
                "voucher_date": voucher.voucher_date,
                "debit": entry.debit,
                "credit": entry.credit,
                "balance": balance,
                "side": side,
                "narration": entry.narration or voucher.narration,
            })

        return {
            "ledger": ledger,
            "opening_balance": opening_balance,
            "opening_side": opening_side,
            "lines": lines,
            "closing_balance": balance,
            "closing_side": side,
        }
