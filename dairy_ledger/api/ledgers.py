"""
Ledger API endpoints.

The API layer is thin: it handles HTTP concerns (status codes,
response shapes) and delegates all business logic to the
LedgerService. Application errors are rendered by the
handlers registered in main.
"""

from datetime import date

from fastapi import APIRouter, Depends

from dairy_ledger.models.base import UnitOfWork, get_uow
from dairy_ledger.models.enums import LedgerClassification, LedgerStatus
from dairy_ledger.schemas.ledger import (
    LedgerCreate,
    LedgerResponse,
    LedgerStatementResponse,
    LedgerUpdate,
)
from dairy_ledger.services.ledger_service import LedgerService

router = APIRouter(prefix="/ledgers", tags=["Ledgers"])


@router.post("", response_model=LedgerResponse, status_code=201)
def create_ledger(
    request: LedgerCreate,
    uow: UnitOfWork = Depends(get_uow),
):
    """
    Create a new ledger.

    Every ledger a voucher names must exist before the
    voucher can be posted.
    """
    service = LedgerService(uow)
    return uow.run(service.create_ledger, request)


@router.get("", response_model=list[LedgerResponse])
def list_ledgers(
    classification: LedgerClassification | None = None,
    status: LedgerStatus | None = LedgerStatus.ACTIVE,
    search: str | None = None,
    uow: UnitOfWork = Depends(get_uow),
):
    return LedgerService(uow).list_ledgers(classification, status, search)


@router.get("/{ledger_id}", response_model=LedgerResponse)
def get_ledger(ledger_id: int, uow: UnitOfWork = Depends(get_uow)):
    return LedgerService(uow).get_ledger(ledger_id)


@router.patch("/{ledger_id}", response_model=LedgerResponse)
def update_ledger(
    ledger_id: int,
    request: LedgerUpdate,
    uow: UnitOfWork = Depends(get_uow),
):
    """Rename or (de)activate a ledger. Balances cannot be edited."""
    service = LedgerService(uow)
    return uow.run(service.update_ledger, ledger_id, request)


@router.get("/{ledger_id}/statement", response_model=LedgerStatementResponse)
def get_ledger_statement(
    ledger_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    uow: UnitOfWork = Depends(get_uow),
):
    """
    Postings to a ledger in date order with the running balance.

    Balances are signed: negative means the ledger sits on the
    side opposite its classification's natural side.
    """
    statement = LedgerService(uow).get_statement(ledger_id, start_date, end_date)
    return LedgerStatementResponse(
        **{
            **statement,
            "ledger": LedgerResponse.model_validate(statement["ledger"]),
        }
    )
