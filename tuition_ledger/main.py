"""
Tuition Ledger — FastAPI Application.

This is the entry point for the application.
All routers are registered here.
"""

from fastapi import FastAPI

from tuition_ledger.config import get_settings
from tuition_ledger.logging_config import configure_logging
from tuition_ledger.api.health import router as health_router
from tuition_ledger.api.students import router as students_router
from tuition_ledger.api.invoices import router as invoices_router
from tuition_ledger.api.payments import router as payments_router
from tuition_ledger.api.statements import router as statements_router

settings = get_settings()
configure_logging(settings.LOG_LEVEL)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Tuition invoicing and bank statement reconciliation",
)

# Register routers
app.include_router(health_router)
app.include_router(students_router)
app.include_router(invoices_router)
app.include_router(payments_router)
app.include_router(statements_router)
