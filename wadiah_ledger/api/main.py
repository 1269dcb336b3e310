"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from wadiah_ledger.api.middleware import RequestIDMiddleware, MetricsMiddleware
from wadiah_ledger.api.v1 import balances, transactions, settlement, checkout
from wadiah_ledger.infrastructure.observability.logging import setup_logging
from wadiah_ledger.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Wadiah Ledger",
        description="Student wadiah balance ledger and laundry checkout service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(balances.router, prefix="/v1", tags=["balances"])
    app.include_router(transactions.router, prefix="/v1", tags=["transactions"])
    app.include_router(settlement.router, prefix="/v1", tags=["settlement"])
    app.include_router(checkout.router, prefix="/v1", tags=["checkout"])

    return app


app = create_app()
