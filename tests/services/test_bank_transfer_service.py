"""
Tests for the BankTransferService.

Tests cover:
- Net payable under both transfer bases
- Rounding down, approval and the due-by-list filter
- Apply: batch, numbering, payable ledgers and the journal voucher
- Apply and cancel are all-or-nothing when posting fails
- Cancel: reversal and detail status, repeated and parallel cancel
- Complete: no posting, repeated complete
- Listing, the bank summary and collection centers
"""

import threading
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from dairy_ledger.exceptions import (
    InvalidStateError,
    NoApprovedTransfersError,
    NotFoundError,
    ValidationError,
)
from dairy_ledger.models.base import UnitOfWork
from dairy_ledger.models.bank_transfer import BankTransfer, BankTransferDetail
from dairy_ledger.models.enums import (
    BalanceSide,
    BankTransferStatus,
    CollectionCenterStatus,
    EntryType,
    PaymentStatus,
    ProducerStatus,
    ReferenceType,
    TransferBasis,
    TransferDetailStatus,
    VoucherType,
)
from dairy_ledger.models.ledger import Ledger
from dairy_ledger.models.producer import (
    CollectionCenter,
    Producer,
    ProducerPayment,
)
from dairy_ledger.models.sequence_counter import SequenceCounter
from dairy_ledger.models.voucher import Voucher
from dairy_ledger.schemas.bank_transfer import (
    ApplyTransferRequest,
    TransferCriteria,
)
from dairy_ledger.services.audit import AuditAction, get_events
from dairy_ledger.services.bank_transfer_service import (
    BANK_TRANSFER_PAYABLE_LEDGER,
    PRODUCER_PAYABLE_LEDGER,
    BankTransferService,
    round_down,
)
from dairy_ledger.services.ledger_service import LedgerService
from dairy_ledger.services.producer_directory import LastPayment, PaymentTotals
from dairy_ledger.services.voucher_service import VoucherService


AS_ON = date(2025, 1, 31)
APPLY_ON = date(2025, 2, 3)


# --- Helpers ---

def add_producer(db_session, number, name, bank_name="State Bank", **fields):
    producer = Producer(
        producer_number=number,
        name=name,
        bank_name=bank_name,
        account_number=f"ACC-{number}",
        ifsc_code="SBIN0000001",
        branch_code="BR01",
        **fields,
    )
    db_session.add(producer)
    db_session.flush()
    return producer


def add_payment(
    db_session, producer, milk, deductions="0", paid="0",
    on=date(2025, 1, 15), status=PaymentStatus.APPROVED,
):
    milk, deductions, paid = Decimal(milk), Decimal(deductions), Decimal(paid)
    db_session.add(ProducerPayment(
        producer_id=producer.id,
        payment_date=on,
        milk_amount=milk,
        total_deductions=deductions,
        paid_amount=paid,
        net_payable=milk - deductions,
        status=status,
    ))
    db_session.flush()


def setup_two_producers(db_session):
    """Helper: one producer owed 1234.50, one owing 50."""
    first = add_producer(db_session, "P001", "Asha")
    second = add_producer(db_session, "P002", "Bhola")
    add_payment(db_session, first, "1500", deductions="200", paid="65.50")
    add_payment(db_session, second, "100", deductions="150")
    db_session.commit()
    return first, second


def criteria(**overrides):
    fields = {"as_on_date": AS_ON, "apply_date": APPLY_ON, "round_down_unit": 10}
    fields.update(overrides)
    return TransferCriteria(**fields)


def retrieve_and_apply(uow, applied_by="cashier"):
    service = BankTransferService(uow)
    draft = service.retrieve_balances(criteria())
    request = ApplyTransferRequest(
        **criteria().model_dump(),
        transfer_details=draft.balances,
    )
    return service, service.apply_transfer(request, applied_by=applied_by)


def ledger_named(db_session, name):
    return db_session.execute(
        select(Ledger).where(Ledger.name == name)
    ).scalar_one()


# --- Pure helpers ---

class TestRoundDown:

    def test_floors_to_unit(self):
        assert round_down(Decimal("1234.50"), 10) == Decimal("1230")
        assert round_down(Decimal("1234.50"), 100) == Decimal("1200")
        assert round_down(Decimal("1234.50"), 1) == Decimal("1234")

    def test_exact_multiple_is_kept(self):
        assert round_down(Decimal("500"), 50) == Decimal("500")

    def test_zero_and_negative_become_zero(self):
        assert round_down(Decimal("0"), 10) == 0
        assert round_down(Decimal("-50"), 10) == 0


# --- Retrieve ---

class TestRetrieveBalances:

    def test_scenario_rounding_and_approval(self, uow, db_session):
        setup_two_producers(db_session)

        draft = BankTransferService(uow).retrieve_balances(criteria())
        first, second = draft.balances

        assert draft.status == BankTransferStatus.DRAFT
        assert first.net_payable == Decimal("1234.50")
        assert first.transfer_amount == Decimal("1230")
        assert first.approved is True
        assert first.bank_details.account_number == "ACC-P001"
        assert second.net_payable == Decimal("-50")
        assert second.transfer_amount == 0
        assert second.approved is False

    def test_summary(self, uow, db_session):
        setup_two_producers(db_session)

        summary = BankTransferService(uow).retrieve_balances(criteria()).summary

        assert summary.count == 2
        assert summary.total_net_payable == Decimal("1184.50")
        assert summary.total_transfer_amount == Decimal("1230")
        assert summary.approved_count == 1
        assert summary.negative_balance_count == 1

    def test_due_by_list_drops_non_positive(self, uow, db_session):
        setup_two_producers(db_session)

        draft = BankTransferService(uow).retrieve_balances(
            criteria(due_by_list=True)
        )
        assert [b.producer_number for b in draft.balances] == ["P001"]

    def test_sorted_by_producer_number(self, uow, db_session):
        third = add_producer(db_session, "P003", "Chandra")
        first = add_producer(db_session, "P001", "Asha")
        add_payment(db_session, third, "300")
        add_payment(db_session, first, "100")
        db_session.commit()

        draft = BankTransferService(uow).retrieve_balances(criteria())
        assert [b.producer_number for b in draft.balances] == ["P001", "P003"]

    def test_as_on_date_ignores_later_and_closed_payments(self, uow, db_session):
        producer = add_producer(db_session, "P001", "Asha")
        add_payment(db_session, producer, "1000")
        add_payment(db_session, producer, "400", status=PaymentStatus.PENDING)
        add_payment(db_session, producer, "700", on=date(2025, 2, 10))
        add_payment(db_session, producer, "900", status=PaymentStatus.PAID)
        add_payment(db_session, producer, "800", status=PaymentStatus.CANCELLED)
        db_session.commit()

        draft = BankTransferService(uow).retrieve_balances(criteria())
        assert draft.balances[0].net_payable == Decimal("1400")

    def test_last_processed_period_uses_latest_approved(self, uow, db_session):
        producer = add_producer(db_session, "P001", "Asha")
        add_payment(db_session, producer, "1000", on=date(2025, 1, 1))
        add_payment(
            db_session, producer, "600", deductions="100", paid="20",
            on=date(2025, 1, 16),
        )
        add_payment(
            db_session, producer, "999", on=date(2025, 1, 20),
            status=PaymentStatus.PENDING,
        )
        idle = add_producer(db_session, "P002", "Bhola")
        db_session.commit()

        draft = BankTransferService(uow).retrieve_balances(
            criteria(transfer_basis=TransferBasis.LAST_PROCESSED_PERIOD)
        )
        owed = {b.producer_id: b.net_payable for b in draft.balances}

        assert owed[producer.id] == Decimal("480")
        assert owed[idle.id] == 0

    def test_filters_by_center_and_bank_and_skips_inactive(self, uow, db_session):
        add_producer(db_session, "P001", "Asha", collection_center_id="CC1", bank_id="B1")
        add_producer(db_session, "P002", "Bhola", collection_center_id="CC2", bank_id="B1")
        add_producer(db_session, "P003", "Chandra", collection_center_id="CC1", bank_id="B2")
        add_producer(
            db_session, "P004", "Devi", collection_center_id="CC1", bank_id="B1",
            status=ProducerStatus.INACTIVE,
        )
        db_session.commit()
        service = BankTransferService(uow)

        center = service.retrieve_balances(criteria(collection_center_id="CC1"))
        bank = service.retrieve_balances(
            criteria(collection_center_id="CC1", bank_id="B1")
        )
        everyone = service.retrieve_balances(
            criteria(collection_center_id="all", bank_id="All")
        )

        assert [b.producer_number for b in center.balances] == ["P001", "P003"]
        assert [b.producer_number for b in bank.balances] == ["P001"]
        assert len(everyone.balances) == 3

    def test_retrieve_writes_nothing(self, uow, db_session):
        setup_two_producers(db_session)
        BankTransferService(uow).retrieve_balances(criteria())

        assert db_session.scalar(select(func.count(Voucher.id))) == 0
        assert db_session.scalar(select(func.count(Ledger.id))) == 0

    def test_injected_collaborators(self, uow):
        class Directory:
            def active_producers(self, collection_center_id=None, bank_id=None):
                return [Producer(
                    id=7, producer_number="X7", name="Test",
                    account_number=None, bank_name=None,
                    ifsc_code=None, branch_code=None,
                )]

            def banks(self):
                return [("Co-op Bank", 3)]

        class Payments:
            def totals(self, producer_id, up_to, statuses):
                return PaymentTotals(
                    Decimal("99.99"), Decimal("0"), Decimal("0")
                )

            def last_approved(self, producer_id):
                return LastPayment(Decimal("0"), Decimal("0"))

        service = BankTransferService(uow, directory=Directory(), payments=Payments())
        draft = service.retrieve_balances(criteria())

        assert draft.balances[0].transfer_amount == Decimal("90")
        assert draft.balances[0].bank_details.bank_name == "-"
        assert service.list_banks() == [{"name": "Co-op Bank", "count": 3}]


# --- Apply ---

class TestApplyTransfer:

    def test_scenario_apply_posts_journal(self, uow, db_session):
        setup_two_producers(db_session)

        _, batch = retrieve_and_apply(uow)

        assert batch.status == BankTransferStatus.APPLIED
        assert batch.transfer_number == "BT250200001"
        assert batch.total_transfer_amount == Decimal("1230")
        assert batch.total_approved == 1
        assert batch.total_producers == 1
        assert batch.applied_by == "cashier"
        assert batch.applied_at is not None
        assert [d.producer_number for d in batch.details] == ["P001"]
        assert batch.details[0].transfer_status == TransferDetailStatus.PENDING

        voucher = VoucherService(uow).get_voucher(batch.voucher_id)
        assert voucher.voucher_type == VoucherType.JOURNAL
        assert voucher.number == "JV25020001"
        assert voucher.voucher_date == APPLY_ON
        assert voucher.reference_type == ReferenceType.BANK_TRANSFER
        assert voucher.reference_id == batch.id
        assert voucher.narration == "Bank Transfer - BT250200001 - 1 producers"
        assert [
            (e.ledger_name, e.entry_type, e.amount) for e in voucher.entries
        ] == [
            (PRODUCER_PAYABLE_LEDGER, EntryType.DEBIT, Decimal("1230")),
            (BANK_TRANSFER_PAYABLE_LEDGER, EntryType.CREDIT, Decimal("1230")),
        ]

    def test_apply_moves_payable_balances(self, uow, db_session):
        setup_two_producers(db_session)
        retrieve_and_apply(uow)

        producer_payable = ledger_named(db_session, PRODUCER_PAYABLE_LEDGER)
        bank_payable = ledger_named(db_session, BANK_TRANSFER_PAYABLE_LEDGER)

        assert producer_payable.current_balance == Decimal("-1230")
        assert producer_payable.current_side == BalanceSide.DR
        assert bank_payable.current_balance == Decimal("1230")
        assert bank_payable.current_side == BalanceSide.CR

    def test_second_batch_reuses_payable_ledgers(self, uow, db_session):
        setup_two_producers(db_session)
        retrieve_and_apply(uow)
        _, second = retrieve_and_apply(uow)

        assert second.transfer_number == "BT250200002"
        assert db_session.scalar(select(func.count(Ledger.id))) == 2
        bank_payable = ledger_named(db_session, BANK_TRANSFER_PAYABLE_LEDGER)
        assert bank_payable.current_balance == Decimal("2460")

    def test_client_edited_amount_is_used(self, uow, db_session):
        setup_two_producers(db_session)
        service = BankTransferService(uow)
        draft = service.retrieve_balances(criteria())
        draft.balances[0].transfer_amount = Decimal("1000")

        batch = service.apply_transfer(ApplyTransferRequest(
            **criteria().model_dump(), transfer_details=draft.balances,
        ))
        assert batch.total_transfer_amount == Decimal("1000")

    def test_nothing_approved_rejected(self, uow, db_session):
        setup_two_producers(db_session)
        service = BankTransferService(uow)
        draft = service.retrieve_balances(criteria())
        for line in draft.balances:
            line.approved = False

        with pytest.raises(NoApprovedTransfersError):
            service.apply_transfer(ApplyTransferRequest(
                **criteria().model_dump(), transfer_details=draft.balances,
            ))
        assert db_session.scalar(select(func.count(Voucher.id))) == 0

    def test_duplicate_producer_rejected(self, uow, db_session):
        setup_two_producers(db_session)
        service = BankTransferService(uow)
        line = service.retrieve_balances(criteria()).balances[0]

        with pytest.raises(ValidationError, match="only once"):
            service.apply_transfer(ApplyTransferRequest(
                **criteria().model_dump(), transfer_details=[line, line],
            ))

    def test_failed_voucher_leaves_nothing_behind(
        self, uow, db_session, monkeypatch
    ):
        setup_two_producers(db_session)
        service = BankTransferService(uow)
        draft = service.retrieve_balances(criteria())
        request = ApplyTransferRequest(
            **criteria().model_dump(), transfer_details=draft.balances,
        )
        post_voucher = service.voucher_service.create_voucher

        def post_then_fail(*args, **kwargs):
            post_voucher(*args, **kwargs)
            raise RuntimeError("posting interrupted")

        monkeypatch.setattr(
            service.voucher_service, "create_voucher", post_then_fail
        )
        with pytest.raises(RuntimeError):
            service.apply_transfer(request)

        for model in (
            BankTransfer, BankTransferDetail, Voucher, SequenceCounter, Ledger,
        ):
            assert db_session.scalar(select(func.count()).select_from(model)) == 0

        # Numbers were not consumed by the failed attempt
        monkeypatch.undo()
        batch = service.apply_transfer(request)
        assert batch.transfer_number == "BT250200001"
        assert VoucherService(uow).get_voucher(batch.voucher_id).number == "JV25020001"

    def test_apply_is_audited(self, uow, db_session):
        setup_two_producers(db_session)
        _, batch = retrieve_and_apply(uow)

        events = get_events(db_session, "BankTransfer", batch.id)
        assert [e.event_type for e in events] == [AuditAction.BANK_TRANSFER_APPLIED]
        assert events[0].actor == "cashier"


# --- Cancel ---

class TestCancelTransfer:

    def test_scenario_cancel_restores_payables(self, uow, db_session):
        setup_two_producers(db_session)
        service, batch = retrieve_and_apply(uow)

        cancelled = service.cancel_transfer(batch.id, cancelled_by="manager")

        assert cancelled.status == BankTransferStatus.CANCELLED
        assert cancelled.cancelled_by == "manager"
        assert all(
            d.transfer_status == TransferDetailStatus.CANCELLED
            for d in cancelled.details
        )
        for name in (PRODUCER_PAYABLE_LEDGER, BANK_TRANSFER_PAYABLE_LEDGER):
            assert ledger_named(db_session, name).current_balance == 0

        reversal = VoucherService(uow).get_voucher(cancelled.reversal_voucher_id)
        assert reversal.reversal_of_id == batch.voucher_id
        assert reversal.reference_type == ReferenceType.BANK_TRANSFER
        assert reversal.reference_id == batch.id

    def test_second_cancel_rejected(self, uow, db_session):
        setup_two_producers(db_session)
        service, batch = retrieve_and_apply(uow)
        service.cancel_transfer(batch.id)

        with pytest.raises(InvalidStateError, match="already cancelled"):
            service.cancel_transfer(batch.id)
        assert db_session.scalar(select(func.count(Voucher.id))) == 2

    def test_completed_batch_cannot_be_cancelled(self, uow, db_session):
        setup_two_producers(db_session)
        service, batch = retrieve_and_apply(uow)
        service.complete_transfer(batch.id)

        with pytest.raises(InvalidStateError, match="completed"):
            service.cancel_transfer(batch.id)

    def test_apply_then_cancel_replays_cleanly(self, uow, db_session):
        setup_two_producers(db_session)
        service, batch = retrieve_and_apply(uow)
        service.cancel_transfer(batch.id)

        ledgers = LedgerService(uow)
        for name in (PRODUCER_PAYABLE_LEDGER, BANK_TRANSFER_PAYABLE_LEDGER):
            ledger = ledger_named(db_session, name)
            assert ledgers.replay_balance(ledger.id) == (
                ledger.current_balance, ledger.current_side
            )

    def test_failed_reversal_keeps_batch_applied(
        self, uow, db_session, monkeypatch
    ):
        setup_two_producers(db_session)
        service, batch = retrieve_and_apply(uow)
        reverse = service.voucher_service.reverse_voucher

        def reverse_then_fail(*args, **kwargs):
            reverse(*args, **kwargs)
            raise RuntimeError("posting interrupted")

        monkeypatch.setattr(
            service.voucher_service, "reverse_voucher", reverse_then_fail
        )
        with pytest.raises(RuntimeError):
            service.cancel_transfer(batch.id)

        batch = service.get_transfer(batch.id)
        assert batch.status == BankTransferStatus.APPLIED
        assert batch.reversal_voucher_id is None
        assert all(
            d.transfer_status == TransferDetailStatus.PENDING
            for d in batch.details
        )
        assert db_session.scalar(select(func.count(Voucher.id))) == 1
        assert ledger_named(
            db_session, PRODUCER_PAYABLE_LEDGER
        ).current_balance == Decimal("-1230")
        assert ledger_named(
            db_session, BANK_TRANSFER_PAYABLE_LEDGER
        ).current_balance == Decimal("1230")

    def test_parallel_cancels_reverse_once(self, session_factory):
        setup_session = session_factory()
        setup_two_producers(setup_session)
        _, batch = retrieve_and_apply(UnitOfWork(setup_session))
        batch_id = batch.id
        setup_session.close()

        workers = 4
        outcomes = []
        barrier = threading.Barrier(workers)

        def cancel():
            session = session_factory()
            try:
                uow = UnitOfWork(session, max_attempts=5)
                service = BankTransferService(uow)
                barrier.wait()
                uow.run(service.cancel_transfer, batch_id)
                outcomes.append("ok")
            except Exception as e:  # collected for the assertion below
                outcomes.append(type(e).__name__)
            finally:
                session.close()

        threads = [threading.Thread(target=cancel) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["InvalidStateError"] * 3 + ["ok"]

        check = session_factory()
        try:
            assert check.scalar(select(func.count(Voucher.id))) == 2
            for name in (PRODUCER_PAYABLE_LEDGER, BANK_TRANSFER_PAYABLE_LEDGER):
                assert ledger_named(check, name).current_balance == 0
        finally:
            check.close()

    def test_cancel_missing_batch(self, uow):
        with pytest.raises(NotFoundError):
            BankTransferService(uow).cancel_transfer(404)


# --- Complete ---

class TestCompleteTransfer:

    def test_complete_marks_details_transferred(self, uow, db_session):
        setup_two_producers(db_session)
        service, batch = retrieve_and_apply(uow)

        completed = service.complete_transfer(batch.id, completed_by="manager")

        assert completed.status == BankTransferStatus.COMPLETED
        assert completed.completed_by == "manager"
        for detail in completed.details:
            assert detail.transfer_status == TransferDetailStatus.TRANSFERRED
            assert detail.transferred_at is not None
        assert db_session.scalar(select(func.count(Voucher.id))) == 1

    def test_second_complete_rejected_without_changes(self, uow, db_session):
        setup_two_producers(db_session)
        service, batch = retrieve_and_apply(uow)
        service.complete_transfer(batch.id)
        before = ledger_named(db_session, BANK_TRANSFER_PAYABLE_LEDGER).current_balance

        with pytest.raises(InvalidStateError):
            service.complete_transfer(batch.id)

        after = ledger_named(db_session, BANK_TRANSFER_PAYABLE_LEDGER).current_balance
        assert before == after
        assert service.get_transfer(batch.id).status == BankTransferStatus.COMPLETED

    def test_cancelled_batch_cannot_be_completed(self, uow, db_session):
        setup_two_producers(db_session)
        service, batch = retrieve_and_apply(uow)
        service.cancel_transfer(batch.id)

        with pytest.raises(InvalidStateError):
            service.complete_transfer(batch.id)


# --- Queries ---

class TestQueries:

    def test_list_with_summary_and_filters(self, uow, db_session):
        setup_two_producers(db_session)
        service, first = retrieve_and_apply(uow)
        _, second = retrieve_and_apply(uow)
        service.cancel_transfer(first.id)

        everything = service.list_transfers()
        applied = service.list_transfers(status=BankTransferStatus.APPLIED)
        none_yet = service.list_transfers(to_date=date(2025, 1, 1))

        assert [b.id for b in everything["data"]] == [second.id, first.id]
        assert everything["summary"] == {
            "count": 2,
            "total_amount": Decimal("2460"),
            "total_producers": 2,
        }
        assert [b.id for b in applied["data"]] == [second.id]
        assert none_yet["summary"]["count"] == 0

    def test_other_company_cannot_see_batch(self, uow, db_session):
        setup_two_producers(db_session)
        _, batch = retrieve_and_apply(uow)

        with pytest.raises(NotFoundError):
            BankTransferService(uow, company_code="OTHER").get_transfer(batch.id)

    def test_list_collection_centers_active_by_name(self, uow, db_session):
        db_session.add_all([
            CollectionCenter(code="CC02", name="Uplands"),
            CollectionCenter(code="CC01", name="River Road"),
            CollectionCenter(
                code="CC09", name="Closed Depot",
                status=CollectionCenterStatus.INACTIVE,
            ),
        ])
        db_session.commit()

        assert BankTransferService(uow).list_collection_centers() == [
            {"code": "CC01", "name": "River Road"},
            {"code": "CC02", "name": "Uplands"},
        ]

    def test_list_banks_counts_producers(self, uow, db_session):
        add_producer(db_session, "P001", "Asha", bank_name="State Bank")
        add_producer(db_session, "P002", "Bhola", bank_name="State Bank")
        add_producer(db_session, "P003", "Chandra", bank_name="Co-op Bank")
        add_producer(db_session, "P004", "Devi", bank_name=None)
        db_session.commit()

        assert BankTransferService(uow).list_banks() == [
            {"name": "Co-op Bank", "count": 1},
            {"name": "State Bank", "count": 2},
        ]
