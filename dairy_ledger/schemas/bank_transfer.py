"""
Pydantic schemas for bank transfer batches.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from dairy_ledger.config import get_settings
from dairy_ledger.models.enums import (
    BankTransferStatus,
    TransferBasis,
    TransferDetailStatus,
)


# --- Request Schemas ---

class TransferCriteria(BaseModel):
    """Which producers to pay and how to compute what they are owed."""
    transfer_basis: TransferBasis = TransferBasis.AS_ON_DATE_BALANCE
    as_on_date: date
    apply_date: date = Field(default_factory=date.today)
    collection_center_id: str | None = None
    collection_center_name: str = Field(default="All", max_length=100)
    bank_id: str | None = None
    bank_name: str = Field(default="All", max_length=100)
    round_down_unit: int = Field(
        default_factory=lambda: get_settings().DEFAULT_ROUND_DOWN_UNIT,
        ge=1,
        le=1000,
    )
    due_by_list: bool = False

    @field_validator("collection_center_id", "bank_id")
    @classmethod
    def all_means_no_filter(cls, v: str | None) -> str | None:
        if v is None or v.strip() == "" or v.lower() == "all":
            return None
        return v


class BankDetails(BaseModel):
    account_number: str = "-"
    bank_name: str = "-"
    ifsc_code: str = "-"
    bank_code: str = "-"


class ProducerBalance(BaseModel):
    """One producer's line as computed by retrieve, edited by the caller."""
    producer_id: int
    producer_number: str
    producer_name: str
    net_payable: Decimal = Field(decimal_places=4)
    transfer_amount: Decimal = Field(ge=0, decimal_places=4)
    approved: bool
    bank_details: BankDetails = Field(default_factory=BankDetails)


class ApplyTransferRequest(TransferCriteria):
    transfer_details: list[ProducerBalance]
    remarks: str | None = Field(default=None, max_length=500)


# --- Response Schemas ---

class RetrieveSummary(BaseModel):
    count: int
    total_net_payable: Decimal
    total_transfer_amount: Decimal
    approved_count: int
    negative_balance_count: int


class RetrieveBalancesResponse(BaseModel):
    """An unsaved DRAFT batch: the balances plus the criteria used."""
    status: BankTransferStatus = BankTransferStatus.DRAFT
    criteria: TransferCriteria
    balances: list[ProducerBalance]
    summary: RetrieveSummary


class BankTransferDetailResponse(BaseModel):
    id: int
    producer_id: int
    producer_number: str
    producer_name: str
    net_payable: Decimal
    transfer_amount: Decimal
    approved: bool
    account_number: str
    bank_name: str
    ifsc_code: str
    bank_code: str
    transfer_status: TransferDetailStatus
    transferred_at: datetime | None

    model_config = {"from_attributes": True}


class BankTransferResponse(BaseModel):
    id: int
    company_code: str
    transfer_number: str
    transfer_basis: TransferBasis
    as_on_date: date
    apply_date: date
    collection_center_id: str | None
    collection_center_name: str
    bank_id: str | None
    bank_name: str
    round_down_unit: int
    due_by_list: bool
    total_net_payable: Decimal
    total_transfer_amount: Decimal
    total_approved: int
    total_producers: int
    status: BankTransferStatus
    voucher_id: int | None
    reversal_voucher_id: int | None
    remarks: str | None
    created_by: str | None
    applied_by: str | None
    applied_at: datetime | None
    completed_by: str | None
    completed_at: datetime | None
    cancelled_by: str | None
    cancelled_at: datetime | None
    created_at: datetime
    details: list[BankTransferDetailResponse]

    model_config = {"from_attributes": True}


class BankTransferListSummary(BaseModel):
    count: int
    total_amount: Decimal
    total_producers: int


class BankTransferListResponse(BaseModel):
    data: list[BankTransferResponse]
    summary: BankTransferListSummary


class BankSummary(BaseModel):
    name: str
    count: int


class CollectionCenterSummary(BaseModel):
    code: str
    name: str
