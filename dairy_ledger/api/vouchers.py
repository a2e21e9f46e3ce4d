"""
Voucher API endpoints.
"""

from datetime import date

from fastapi import APIRouter, Depends

from dairy_ledger.api.dependencies import get_actor
from dairy_ledger.models.base import UnitOfWork, get_uow
from dairy_ledger.models.enums import ReferenceType, VoucherType
from dairy_ledger.schemas.voucher import (
    ProducerPaymentVoucherCreate,
    SalesVoucherCreate,
    VoucherCreate,
    VoucherResponse,
    VoucherReverseRequest,
)
from dairy_ledger.services.voucher_service import VoucherService

router = APIRouter(prefix="/vouchers", tags=["Vouchers"])


@router.post("", response_model=VoucherResponse, status_code=201)
def create_voucher(
    request: VoucherCreate,
    uow: UnitOfWork = Depends(get_uow),
    actor: str | None = Depends(get_actor),
):
    """
    Create and post a voucher.

    Unbalanced entries are rejected with 400 before anything
    is written. The voucher number, the voucher and its ledger
    postings commit together.
    """
    service = VoucherService(uow)
    return uow.run(service.create_voucher, request, created_by=actor)


@router.post("/payments", response_model=VoucherResponse, status_code=201)
def create_payment_voucher(
    request: ProducerPaymentVoucherCreate,
    uow: UnitOfWork = Depends(get_uow),
    actor: str | None = Depends(get_actor),
):
    """Pay a producer from the Cash or Bank ledger."""
    service = VoucherService(uow)
    return uow.run(service.create_payment_voucher, request, created_by=actor)


@router.post("/sales", response_model=VoucherResponse, status_code=201)
def create_sales_voucher(
    request: SalesVoucherCreate,
    uow: UnitOfWork = Depends(get_uow),
    actor: str | None = Depends(get_actor),
):
    service = VoucherService(uow)
    return uow.run(service.create_sales_voucher, request, created_by=actor)


@router.get("", response_model=list[VoucherResponse])
def list_vouchers(
    voucher_type: VoucherType | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    reference_type: ReferenceType | None = None,
    reference_id: int | None = None,
    uow: UnitOfWork = Depends(get_uow),
):
    """Vouchers newest first."""
    return VoucherService(uow).list_vouchers(
        voucher_type=voucher_type,
        start_date=start_date,
        end_date=end_date,
        reference_type=reference_type,
        reference_id=reference_id,
    )


@router.get("/{voucher_id}", response_model=VoucherResponse)
def get_voucher(voucher_id: int, uow: UnitOfWork = Depends(get_uow)):
    return VoucherService(uow).get_voucher(voucher_id)


@router.post(
    "/{voucher_id}/reverse", response_model=VoucherResponse, status_code=201
)
def reverse_voucher(
    voucher_id: int,
    request: VoucherReverseRequest | None = None,
    uow: UnitOfWork = Depends(get_uow),
    actor: str | None = Depends(get_actor),
):
    """
    Post the mirror image of a voucher. The original stays as it
    is; the reversal links back to it.
    """
    request = request or VoucherReverseRequest()
    service = VoucherService(uow)
    return uow.run(
        service.reverse_voucher,
        voucher_id,
        narration=request.narration,
        voucher_date=request.voucher_date,
        created_by=actor,
    )
