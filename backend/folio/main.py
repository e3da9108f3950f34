"""
Folio API - FastAPI backend for proposal delivery and PDF page editing
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.middleware.gzip import GZipMiddleware

from folio import __version__
from folio.config import Settings
from folio.database import build_session_factory
from folio.locks import DocumentLocks
from folio.routers import health, pricing, proposals, templates
from folio.security import setup_security
from folio.storage import ObjectStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown"""
    logger.info(
        "Folio API started (environment=%s, bucket=%s)",
        app.state.settings.environment,
        app.state.settings.storage_bucket,
    )
    yield
    session_factory = app.state.session_factory
    if session_factory is not None:
        await session_factory.kw["bind"].dispose()
    logger.info("Folio API shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    object_store: Optional[ObjectStore] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> FastAPI:
    """Build the API with explicitly constructed clients.

    Anything not passed in is built from ``settings`` (or the environment);
    missing credentials leave the client unset and the dependent endpoints
    fail at call time.
    """
    settings = settings or Settings.from_env()

    app = FastAPI(
        title="Folio API",
        description="Proposal delivery and PDF page editing",
        version=__version__,
        lifespan=lifespan,
    )
    if object_store is None:
        object_store = ObjectStore.from_settings(settings)
    if session_factory is None:
        session_factory = build_session_factory(settings.database_url)

    app.state.settings = settings
    app.state.object_store = object_store
    app.state.session_factory = session_factory
    app.state.document_locks = DocumentLocks()

    logger.info("CORS environment=%s allowed_origins=%s", settings.environment, settings.allowed_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Requested-With"],
    )

    # Compresses responses larger than 500 bytes
    app.add_middleware(GZipMiddleware, minimum_size=500)

    # Security middleware and error handlers
    setup_security(app, settings)

    app.include_router(health.router)
    app.include_router(proposals.router)
    app.include_router(templates.router)
    app.include_router(pricing.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
