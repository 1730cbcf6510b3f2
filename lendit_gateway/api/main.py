"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from lendit_gateway.api.errors import register_exception_handlers
from lendit_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from lendit_gateway.api.v1 import agreements, quotes, repayments
from lendit_gateway.infrastructure.observability.logging import setup_logging
from lendit_gateway.config import get_settings

settings = get_settings()

# Setup structured logging
setup_logging(settings.log_level, settings.service_name)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="LendIt Gateway",
        description="Peer-to-peer loan agreement lifecycle and repayment service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(agreements.router, prefix="/v1", tags=["agreements"])
    app.include_router(repayments.router, prefix="/v1", tags=["repayments"])
    app.include_router(quotes.router, prefix="/v1", tags=["quotes"])

    return app


app = create_app()
