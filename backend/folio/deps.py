"""Shared dependencies for the Folio API routers.

Clients are built once by ``folio.main.create_app`` and stored on
``app.state``; the dependencies here hand them to route handlers so tests
can swap in doubles by passing them to the factory.
"""

import logging
from collections.abc import AsyncGenerator

from fastapi import Depends, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from folio.config import Settings
from folio.errors import FileTooLargeError, ValidationError
from folio.locks import DocumentLocks
from folio.services.proposal_page_service import ProposalPageService
from folio.services.template_page_service import TemplatePageService
from folio.services.template_service import TemplateService

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


# ---------------------------------------------------------------------------
# App-scoped clients
# ---------------------------------------------------------------------------


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a single request.

    Commits on success, rolls back on exception, and always closes the session.
    """
    session_factory = request.app.state.session_factory
    if session_factory is None:
        raise RuntimeError(
            "Database not configured. Set DATABASE_URL environment variable."
        )
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_object_store(request: Request):
    store = request.app.state.object_store
    if store is None:
        raise RuntimeError(
            "Object store not configured. Set SUPABASE_URL and SUPABASE_SERVICE_KEY."
        )
    return store


def get_document_locks(request: Request) -> DocumentLocks:
    return request.app.state.document_locks


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


def get_proposal_page_service(
    store=Depends(get_object_store),
    settings: Settings = Depends(get_settings),
    locks: DocumentLocks = Depends(get_document_locks),
) -> ProposalPageService:
    return ProposalPageService(store, settings.storage_bucket, locks)


def get_template_page_service(
    store=Depends(get_object_store),
    settings: Settings = Depends(get_settings),
    locks: DocumentLocks = Depends(get_document_locks),
) -> TemplatePageService:
    return TemplatePageService(store, settings.storage_bucket, locks)


def get_template_service(
    store=Depends(get_object_store),
    settings: Settings = Depends(get_settings),
    locks: DocumentLocks = Depends(get_document_locks),
) -> TemplateService:
    return TemplateService(store, settings.storage_bucket, locks)


# ---------------------------------------------------------------------------
# Small utility helpers
# ---------------------------------------------------------------------------


def _safe_error(operation: str, e: Exception) -> str:
    """Log the full exception but return a safe message without internal details.

    This prevents leaking stack traces, file paths, or database internals
    to API consumers while preserving full diagnostics in server logs.
    """
    logger.exception("Error during %s", operation)
    return f"{operation} failed. Please try again or contact support."


async def read_pdf_upload(file: UploadFile, settings: Settings) -> bytes:
    """Read a multipart PDF upload, enforcing type, emptiness and size limits."""
    filename = (file.filename or "").lower()
    if not filename.endswith(".pdf") and file.content_type != PDF_CONTENT_TYPE:
        raise ValidationError("Only PDF files are allowed")

    data = await file.read()
    if not data:
        raise ValidationError("Uploaded file is empty")
    if len(data) > settings.max_upload_bytes:
        raise FileTooLargeError(
            f"File too large. Maximum size is {settings.max_upload_mb}MB."
        )
    return data
