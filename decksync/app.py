"""
DeckSync - FastAPI Application

Offline-first flashcard decks with review scheduling and background sync.
"""

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Must happen before importing modules that use environment variables
load_dotenv()

from fastapi import FastAPI  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402

from decksync import __version__  # noqa: E402
from decksync.api.dependencies import cleanup_dependencies, init_dependencies  # noqa: E402
from decksync.api.routes import decks_router, review_router, sync_router  # noqa: E402
from decksync.config import CORS_ALLOWED_METHODS, get_cors_origins, get_log_level  # noqa: E402

logging.basicConfig(
    level=get_log_level(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan manager for startup/shutdown events.

    Startup:
    - Initialize singleton dependencies
    - Start the review scan and network probe, drain leftovers

    Shutdown:
    - End active sessions (queues their decks for sync)
    - Cancel in-flight syncs, close HTTP connections
    """
    logger.info("Starting DeckSync...")
    await init_dependencies()
    logger.info("Dependencies initialized")

    yield

    logger.info("Shutting down DeckSync...")
    await cleanup_dependencies()
    logger.info("Shutdown complete")


app = FastAPI(
    title="DeckSync API",
    description="Offline-first flashcard decks with background sync",
    version=__version__,
    lifespan=lifespan,
)

cors_origins = get_cors_origins()
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_methods=CORS_ALLOWED_METHODS,
        allow_headers=["Content-Type", "Authorization"],
    )

# Register API routers
app.include_router(decks_router)
app.include_router(review_router)
app.include_router(sync_router)


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "decksync",
        "version": __version__,
    }
