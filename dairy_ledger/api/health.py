"""
Liveness and readiness endpoint.

Reports the running build and whether the ledger database
answers. A load balancer should take the instance out of
rotation on a 503.
"""

import logging
import time

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dairy_ledger.config import get_settings
from dairy_ledger.models.base import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


def check_database(db: Session) -> dict:
    started = time.perf_counter()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning(
            "Database health check failed",
            extra={"error_type": type(e).__name__},
        )
        return {"ok": False, "error": type(e).__name__}
    latency_ms = (time.perf_counter() - started) * 1000
    return {"ok": True, "latency_ms": round(latency_ms, 2)}


@router.get("/health")
def health_check(response: Response, db: Session = Depends(get_db)):
    settings = get_settings()
    database = check_database(db)
    if not database["ok"]:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return {
        "status": "ok" if database["ok"] else "unavailable",
        "service": "dairy-ledger",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "company_code": settings.COMPANY_CODE,
        "checks": {"database": database},
    }
