"""
Database models package.

All models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from dairy_ledger.models.base import Base
from dairy_ledger.models.enums import (
    LedgerClassification,
    BalanceSide,
    LedgerStatus,
    EntryType,
    VoucherType,
    ReferenceType,
    PaymentMode,
    TransferBasis,
    BankTransferStatus,
    TransferDetailStatus,
    CollectionCenterStatus,
    ProducerStatus,
    PaymentStatus,
)
from dairy_ledger.models.audit_log import AuditLog
from dairy_ledger.models.ledger import Ledger
from dairy_ledger.models.voucher import Voucher, VoucherEntry
from dairy_ledger.models.sequence_counter import SequenceCounter
from dairy_ledger.models.producer import (
    CollectionCenter,
    Producer,
    ProducerPayment,
)
from dairy_ledger.models.bank_transfer import BankTransfer, BankTransferDetail

__all__ = [
    "Base",
    "LedgerClassification",
    "BalanceSide",
    "LedgerStatus",
    "EntryType",
    "VoucherType",
    "ReferenceType",
    "PaymentMode",
    "TransferBasis",
    "BankTransferStatus",
    "TransferDetailStatus",
    "CollectionCenterStatus",
    "ProducerStatus",
    "PaymentStatus",
    "AuditLog",
    "Ledger",
    "Voucher",
    "VoucherEntry",
    "SequenceCounter",
    "CollectionCenter",
    "Producer",
    "ProducerPayment",
    "BankTransfer",
    "BankTransferDetail",
]
