"""Business logic services."""

from dairy_ledger.services.ledger_service import LedgerService
from dairy_ledger.services.numbering_service import NumberingService
from dairy_ledger.services.voucher_service import VoucherService
from dairy_ledger.services.bank_transfer_service import BankTransferService

__all__ = [
    "LedgerService",
    "NumberingService",
    "VoucherService",
    "BankTransferService",
]
