"""
Shared enumerations for database models.

Using Python enums mapped to database enums ensures that
only valid values can be stored. An invalid classification
or entry_type is caught at the database level, not just
in Python validation.
"""

import enum


class LedgerClassification(str, enum.Enum):
    """
    How postings move a ledger's balance.

    ASSET_LIKE and PARTY ledgers grow with debits,
    LIABILITY_LIKE ledgers grow with credits.
    """
    ASSET_LIKE = "ASSET_LIKE"
    LIABILITY_LIKE = "LIABILITY_LIKE"
    PARTY = "PARTY"


class BalanceSide(str, enum.Enum):
    DR = "DR"
    CR = "CR"


class LedgerStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class EntryType(str, enum.Enum):
    """Direction of a voucher entry."""
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class VoucherType(str, enum.Enum):
    RECEIPT = "RECEIPT"
    PAYMENT = "PAYMENT"
    JOURNAL = "JOURNAL"


class ReferenceType(str, enum.Enum):
    """The business event a voucher was posted for."""
    MANUAL = "MANUAL"
    SALES = "SALES"
    PURCHASE = "PURCHASE"
    PAYMENT = "PAYMENT"
    BANK_TRANSFER = "BANK_TRANSFER"


class PaymentMode(str, enum.Enum):
    """How a producer payment or a sale was settled."""
    CASH = "CASH"
    BANK = "BANK"


class TransferBasis(str, enum.Enum):
    AS_ON_DATE_BALANCE = "AS_ON_DATE_BALANCE"
    LAST_PROCESSED_PERIOD = "LAST_PROCESSED_PERIOD"


class BankTransferStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    APPLIED = "APPLIED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TransferDetailStatus(str, enum.Enum):
    PENDING = "PENDING"
    TRANSFERRED = "TRANSFERRED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class CollectionCenterStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class ProducerStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
