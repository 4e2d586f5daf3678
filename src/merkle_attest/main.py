"""
Merkle Attest - Main Entry Point

HTTP service for building keyed Merkle commitments, serving lookups, trails
and inclusion proofs, and running attested cross-dataset comparisons.
"""

import signal
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI
from prometheus_client import make_asgi_app
from starlette.responses import Response

from merkle_attest.api.v1 import router as api_v1_router
from merkle_attest.core.auth import APIKeyAuthMiddleware
from merkle_attest.core.config import settings
from merkle_attest.core.logging import setup_logging
from merkle_attest.metrics import get_commitment_metrics
from merkle_attest.services.attestation import create_backend, expected_program_id
from merkle_attest.services.sampler import SampleComparator

setup_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    program_id = expected_program_id()

    logger.info(
        "Starting Merkle Attest service",
        version=settings.VERSION,
        environment=settings.ENV,
        attestation_backend=settings.ATTESTATION_BACKEND,
        program_id=program_id[:16] + "...",
    )

    backend = create_backend(settings.ATTESTATION_BACKEND)

    app.state.commitments = {}
    app.state.comparator = SampleComparator()
    app.state.attestation_backend = backend

    if settings.METRICS_ENABLED:
        get_commitment_metrics().set_service_info(
            version=settings.VERSION,
            environment=settings.ENV,
            backend=backend.name,
            program_id=program_id,
        )

    yield

    logger.info("Shutting down Merkle Attest service")
    await backend.close()
    logger.info("Merkle Attest service shutdown complete")


def create_application() -> FastAPI:
    """Create FastAPI application."""
    app = FastAPI(
        title=f"{settings.APP_NAME} API",
        description="Keyed Merkle commitments with attested sampled comparison",
        version=settings.VERSION,
        debug=settings.DEBUG,
        docs_url="/docs" if settings.ENV != "production" else None,
        redoc_url="/redoc" if settings.ENV != "production" else None,
        lifespan=lifespan,
    )

    app.add_middleware(APIKeyAuthMiddleware)
    app.include_router(api_v1_router, prefix="/api/v1")

    if settings.METRICS_ENABLED:
        app.mount("/metrics", make_asgi_app())

    @app.get("/health")
    async def health() -> dict:
        """Overall service health check."""
        backend = getattr(app.state, "attestation_backend", None)
        commitments = getattr(app.state, "commitments", {})

        return {
            "status": "healthy",
            "service": "merkle-attest",
            "version": settings.VERSION,
            "attestation_backend": backend.name if backend else None,
            "program_id": expected_program_id(),
            "commitments": len(commitments),
        }

    @app.get("/live")
    async def live() -> Response:
        """Liveness probe."""
        return Response(status_code=200, content="alive")

    return app


app = create_application()


def handle_signal(signum: int, frame: object) -> None:
    """Handle shutdown signals."""
    logger.info(f"Received signal {signum}, initiating shutdown")
    sys.exit(0)


def main() -> None:
    """Run the service."""
    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    logger.info(
        "Starting Merkle Attest service",
        host=settings.HOST,
        port=settings.PORT,
    )

    uvicorn.run(
        "merkle_attest.main:app",
        host=settings.HOST,
        port=settings.PORT,
        workers=settings.WORKERS,
        log_level=settings.LOG_LEVEL.lower(),
        access_log=False,
    )


if __name__ == "__main__":
    main()
