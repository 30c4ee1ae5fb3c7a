from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from copallet.config import settings
from copallet.core.database import close_db, init_db
from copallet.core.errors import ERROR_KINDS, CoPalletError
from copallet.core.errors.middleware import copallet_error_handler
from copallet.core.errors.registry import error_registry
from copallet.core.log_middleware import CorrelationMiddleware
from copallet.core.structured_logging import APP_VERSION, setup_logging
from copallet.routers import bids, health, notifications, shipments

setup_logging(log_dir=settings.log_directory, log_level=settings.get_log_level())
logger = logging.getLogger(__name__)

API_TITLE = "CoPallet Shipment Lifecycle API"
API_DESCRIPTION = """
Shipment lifecycle and bidding for the CoPallet freight marketplace.

Shippers create and publish shipments, carriers bid, the shipper accepts one
bid (assigning the carrier), and the carrier moves the shipment through
transit to delivery. Callers are identified by the `X-User-Id` and
`X-User-Role` headers set by the authentication gateway.
"""

TAGS_METADATA = [
    {"name": "health", "description": "Liveness and database checks"},
    {"name": "shipments", "description": "Shipment lifecycle and bids on a shipment"},
    {"name": "bids", "description": "Bid inbox: own bids, bids on own shipments, or all for admins"},
    {"name": "notifications", "description": "In-app notification inbox"},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info("Starting CoPallet API v%s...", APP_VERSION)

    error_registry.load()
    error_registry.check_error_kinds(ERROR_KINDS)
    logger.info("Error registry loaded (%d codes)", len(error_registry))

    init_db()
    logger.info("Database initialized")

    yield

    logger.info("Shutting down CoPallet API...")
    close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=APP_VERSION,
        openapi_tags=TAGS_METADATA,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # request_id + correlation_id in every log line
    app.add_middleware(CorrelationMiddleware)

    app.add_exception_handler(CoPalletError, copallet_error_handler)

    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(shipments.router, prefix="/api", tags=["shipments"])
    app.include_router(bids.router, prefix="/api", tags=["bids"])
    app.include_router(notifications.router, prefix="/api", tags=["notifications"])

    return app


app = create_app()
