"""
Pydantic schemas for vouchers.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from pydantic import BaseModel, Field, field_validator, model_validator

from dairy_ledger.models.enums import (
    EntryType,
    PaymentMode,
    ReferenceType,
    VoucherType,
)


# --- Request Schemas ---

class VoucherEntryCreate(BaseModel):
    """
    A single debit or credit line.

    Clients may send either the tagged shape
    ``{ledger_id, entry_type, amount}`` or the two-column shape
    ``{ledger_id, debit, credit}``; the latter is converted here
    and rejected unless exactly one column is non-zero.
    """
    ledger_id: int
    entry_type: EntryType
    amount: Decimal = Field(gt=0, decimal_places=4)
    narration: str | None = Field(default=None, max_length=255)

    @model_validator(mode="before")
    @classmethod
    def from_debit_credit_columns(cls, data):
        if not isinstance(data, dict) or "entry_type" in data:
            return data
        if "debit" not in data and "credit" not in data:
            return data

        data = dict(data)
        try:
            debit = Decimal(str(data.pop("debit", None) or 0))
            credit = Decimal(str(data.pop("credit", None) or 0))
        except (InvalidOperation, TypeError, ValueError):
            raise ValueError("debit and credit must be numbers")

        if debit < 0 or credit < 0:
            raise ValueError("debit and credit must not be negative")
        if (debit > 0) == (credit > 0):
            raise ValueError("exactly one of debit and credit must be non-zero")

        if debit > 0:
            data["entry_type"] = EntryType.DEBIT
            data["amount"] = debit
        else:
            data["entry_type"] = EntryType.CREDIT
            data["amount"] = credit
        return data

    @property
    def debit(self) -> Decimal:
        return self.amount if self.entry_type == EntryType.DEBIT else Decimal("0")

    @property
    def credit(self) -> Decimal:
        return self.amount if self.entry_type == EntryType.CREDIT else Decimal("0")


class VoucherCreate(BaseModel):
    """A voucher to validate, number and post."""
    voucher_type: VoucherType
    voucher_date: date = Field(default_factory=date.today)
    entries: list[VoucherEntryCreate] = Field(min_length=2)
    narration: str | None = Field(default=None, max_length=500)
    reference_type: ReferenceType | None = None
    reference_id: int | None = None

    @field_validator("narration")
    @classmethod
    def strip_narration(cls, v: str | None) -> str | None:
        return v.strip() if v else v


class VoucherReverseRequest(BaseModel):
    narration: str | None = Field(default=None, max_length=500)
    voucher_date: date | None = None


class ProducerPaymentVoucherCreate(BaseModel):
    """A payment to a producer, settled in cash or through the bank."""
    producer_ledger_id: int
    amount: Decimal = Field(gt=0, decimal_places=4)
    payment_mode: PaymentMode = PaymentMode.CASH
    voucher_date: date = Field(default_factory=date.today)
    narration: str | None = Field(default=None, max_length=500)
    reference_id: int | None = None


class SalesVoucherCreate(BaseModel):
    """
    A sales bill.

    With a customer ledger the bill is charged to the customer
    and paid_amount settles part of it at once. Without one it
    is a cash sale settled in full.
    """
    bill_number: str = Field(min_length=1, max_length=50)
    grand_total: Decimal = Field(gt=0, decimal_places=4)
    customer_ledger_id: int | None = None
    paid_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=4)
    payment_mode: PaymentMode = PaymentMode.CASH
    voucher_date: date = Field(default_factory=date.today)
    reference_id: int | None = None

    @model_validator(mode="after")
    def paid_within_total(self):
        if self.paid_amount > self.grand_total:
            raise ValueError("paid_amount cannot exceed grand_total")
        return self


# --- Response Schemas ---

class VoucherEntryResponse(BaseModel):
    line_number: int
    ledger_id: int
    ledger_name: str
    entry_type: EntryType
    amount: Decimal
    debit: Decimal
    credit: Decimal
    narration: str | None

    model_config = {"from_attributes": True}


class VoucherResponse(BaseModel):
    id: int
    voucher_type: VoucherType
    number: str
    voucher_date: date
    entries: list[VoucherEntryResponse]
    total_debit: Decimal
    total_credit: Decimal
    narration: str | None
    reference_type: ReferenceType | None
    reference_id: int | None
    reversal_of_id: int | None
    reversal_of_number: str | None = None
    created_by: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
