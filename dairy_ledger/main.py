"""
Dairy Ledger: FastAPI Application.

This is the entry point for the application.
Logging, error handlers, middleware and all routers are
registered here.
"""

from fastapi import FastAPI

import dairy_ledger.models  # noqa: F401  registers every table on Base
from dairy_ledger.config import get_settings
from dairy_ledger.exceptions import register_exception_handlers
from dairy_ledger.logging_config import configure_logging
from dairy_ledger.api.middleware import RequestLoggingMiddleware
from dairy_ledger.api.health import router as health_router
from dairy_ledger.api.ledgers import router as ledgers_router
from dairy_ledger.api.vouchers import router as vouchers_router
from dairy_ledger.api.bank_transfers import router as bank_transfers_router

settings = get_settings()

configure_logging(settings.LOG_LEVEL)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    description="Double-entry ledger, vouchers and producer bank transfers",
)

register_exception_handlers(app)
app.add_middleware(RequestLoggingMiddleware)

# Register routers
app.include_router(health_router)
app.include_router(ledgers_router)
app.include_router(vouchers_router)
app.include_router(bank_transfers_router)
