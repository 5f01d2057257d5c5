"""FastAPI application factory"""

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from float_ledger.api.dependencies import get_fee_config
from float_ledger.api.errors import ledger_error_handler, request_validation_handler
from float_ledger.api.middleware import RequestIDMiddleware, MetricsMiddleware
from float_ledger.api.v1 import fees, float_accounts, settlements
from float_ledger.config import settings
from float_ledger.domain.exceptions import LedgerError
from float_ledger.infrastructure.observability.logging import setup_logging

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    # Refuse to start with unusable pricing
    get_fee_config()

    app = FastAPI(
        title="Float Ledger",
        description="Supplier float accounts, settlements and PayShap fees",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(float_accounts.router, prefix="/v1", tags=["float-accounts"])
    app.include_router(settlements.router, prefix="/v1", tags=["settlements"])
    app.include_router(fees.router, prefix="/v1", tags=["fees"])

    return app


app = create_app()
