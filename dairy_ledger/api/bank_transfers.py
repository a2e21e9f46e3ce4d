"""
Bank transfer API endpoints.

retrieve computes a DRAFT batch without saving it; the client
reviews and edits the lines, then sends them back to apply.
"""

from datetime import date

from fastapi import APIRouter, Depends

from dairy_ledger.api.dependencies import get_actor
from dairy_ledger.models.base import UnitOfWork, get_uow
from dairy_ledger.models.enums import BankTransferStatus
from dairy_ledger.schemas.bank_transfer import (
    ApplyTransferRequest,
    BankSummary,
    BankTransferListResponse,
    BankTransferResponse,
    CollectionCenterSummary,
    RetrieveBalancesResponse,
    TransferCriteria,
)
from dairy_ledger.services.bank_transfer_service import BankTransferService

router = APIRouter(prefix="/bank-transfers", tags=["Bank Transfers"])


@router.post("/retrieve", response_model=RetrieveBalancesResponse)
def retrieve_balances(
    criteria: TransferCriteria,
    uow: UnitOfWork = Depends(get_uow),
):
    """Compute what each matching producer is owed. Nothing is saved."""
    return BankTransferService(uow).retrieve_balances(criteria)


@router.post("/apply", response_model=BankTransferResponse, status_code=201)
def apply_transfer(
    request: ApplyTransferRequest,
    uow: UnitOfWork = Depends(get_uow),
    actor: str | None = Depends(get_actor),
):
    """
    Save the approved lines as an APPLIED batch and post its
    journal voucher, in one transaction.
    """
    service = BankTransferService(uow)
    return uow.run(service.apply_transfer, request, applied_by=actor)


@router.get("", response_model=BankTransferListResponse)
def list_transfers(
    status: BankTransferStatus | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
    uow: UnitOfWork = Depends(get_uow),
):
    return BankTransferService(uow).list_transfers(status, from_date, to_date)


@router.get("/banks", response_model=list[BankSummary])
def list_banks(uow: UnitOfWork = Depends(get_uow)):
    """Banks producers are paid into, with producer counts."""
    return BankTransferService(uow).list_banks()


@router.get("/collection-centers", response_model=list[CollectionCenterSummary])
def list_collection_centers(uow: UnitOfWork = Depends(get_uow)):
    """Active collection centers, for the retrieve filter."""
    return BankTransferService(uow).list_collection_centers()


@router.get("/{batch_id}", response_model=BankTransferResponse)
def get_transfer(batch_id: int, uow: UnitOfWork = Depends(get_uow)):
    return BankTransferService(uow).get_transfer(batch_id)


@router.post("/{batch_id}/cancel", response_model=BankTransferResponse)
def cancel_transfer(
    batch_id: int,
    uow: UnitOfWork = Depends(get_uow),
    actor: str | None = Depends(get_actor),
):
    """Cancel an applied batch and post the reversal of its voucher."""
    service = BankTransferService(uow)
    return uow.run(service.cancel_transfer, batch_id, cancelled_by=actor)


@router.post("/{batch_id}/complete", response_model=BankTransferResponse)
def complete_transfer(
    batch_id: int,
    uow: UnitOfWork = Depends(get_uow),
    actor: str | None = Depends(get_actor),
):
    """Record that the bank run went out. Nothing is posted."""
    service = BankTransferService(uow)
    return uow.run(service.complete_transfer, batch_id, completed_by=actor)
