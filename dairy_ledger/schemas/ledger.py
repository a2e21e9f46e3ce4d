"""
Pydantic schemas for ledger operations.

These define the API contract: what data comes in,
what data goes out. They are separate from the database
models because the API shape and the storage shape
are often different.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from dairy_ledger.models.enums import (
    BalanceSide,
    LedgerClassification,
    LedgerStatus,
    VoucherType,
)


# --- Request Schemas ---

class LedgerCreate(BaseModel):
    """Request to create a new ledger."""
    name: str = Field(min_length=1, max_length=100)
    classification: LedgerClassification
    opening_balance: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=4)
    opening_side: BalanceSide = BalanceSide.DR


class LedgerUpdate(BaseModel):
    """Only the name and status of a ledger can change after creation."""
    name: str | None = Field(default=None, min_length=1, max_length=100)
    status: LedgerStatus | None = None


# --- Response Schemas ---

class LedgerResponse(BaseModel):
    """Ledger in API responses."""
    id: int
    name: str
    classification: LedgerClassification
    opening_balance: Decimal
    opening_side: BalanceSide
    current_balance: Decimal
    current_side: BalanceSide
    status: LedgerStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class StatementLine(BaseModel):
    """One posting to a ledger with the balance after it."""
    voucher_id: int
    voucher_number: str
    voucher_type: VoucherType
    voucher_date: date
    debit: Decimal
    credit: Decimal
    balance: Decimal
    side: BalanceSide
    narration: str | None


class LedgerStatementResponse(BaseModel):
    ledger: LedgerResponse
    opening_balance: Decimal
    opening_side: BalanceSide
    lines: list[StatementLine]
    closing_balance: Decimal
    closing_side: BalanceSide
