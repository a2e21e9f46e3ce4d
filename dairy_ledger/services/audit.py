"""
Audit trail for postings and batch transitions.

Events are added to the caller's session, so they commit or
roll back together with the change they describe.
"""

import json
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from dairy_ledger.models.audit_log import AuditLog


class AuditAction:
    """Standardized audit action constants."""
    LEDGER_CREATED = "LEDGER_CREATED"
    LEDGER_UPDATED = "LEDGER_UPDATED"
    VOUCHER_POSTED = "VOUCHER_POSTED"
    VOUCHER_REVERSED = "VOUCHER_REVERSED"
    BANK_TRANSFER_APPLIED = "BANK_TRANSFER_APPLIED"
    BANK_TRANSFER_CANCELLED = "BANK_TRANSFER_CANCELLED"
    BANK_TRANSFER_COMPLETED = "BANK_TRANSFER_COMPLETED"


def log_event(
    db: Session,
    action: str,
    entity_type: str,
    entity_id: int,
    actor: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    entry = AuditLog(
        event_type=action,
        entity_type=entity_type,
        entity_id=entity_id,
        actor=actor,
        details=json.dumps(details or {}, default=str, sort_keys=True),
    )
    db.add(entry)
    return entry


def get_events(
    db: Session, entity_type: str, entity_id: int
) -> list[AuditLog]:
    """Return the events for one entity, oldest first."""
    events = db.execute(
        select(AuditLog)
        .where(
            AuditLog.entity_type == entity_type,
            AuditLog.entity_id == entity_id,
        )
        .order_by(AuditLog.id)
    ).scalars().all()
    return list(events)
