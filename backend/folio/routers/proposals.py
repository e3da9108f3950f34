"""Proposals router: upload a proposal PDF and edit its pages.

Every page edit downloads the stored PDF, validates against its physical
page count, rewrites the blob in place and then updates ``page_names`` and
``file_size_bytes`` on the row.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from folio import page_names
from folio.config import Settings
from folio.deps import (
    _safe_error,
    get_db,
    get_proposal_page_service,
    get_settings,
    read_pdf_upload,
)
from folio.errors import FolioError
from folio.models.db.proposal import Proposal
from folio.models.proposal_models import (
    DeletePageRequest,
    DeletePageResponse,
    InsertPageResponse,
    ProposalResponse,
    ReconcileRequest,
    ReconcileResponse,
    ReorderPagesRequest,
    ReorderPagesResponse,
    ReplacePageResponse,
)
from folio.services.proposal_page_service import ProposalPageService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["proposals"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _proposal_to_response(proposal: Proposal) -> ProposalResponse:
    return ProposalResponse(
        id=str(proposal.id),
        title=proposal.title,
        client_name=proposal.client_name,
        client_email=proposal.client_email,
        description=proposal.description,
        file_path=proposal.file_path,
        file_size_bytes=proposal.file_size_bytes,
        page_names=page_names.normalize(proposal.page_names),
        share_token=proposal.share_token,
        status=proposal.status,
        created_at=proposal.created_at,
        updated_at=proposal.updated_at,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/proposals",
    response_model=ProposalResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_proposal(
    title: str = Form(...),
    client_name: str = Form(...),
    client_email: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    service: ProposalPageService = Depends(get_proposal_page_service),
    settings: Settings = Depends(get_settings),
):
    """Upload a PDF and create a draft proposal with an empty page-name list."""
    try:
        data = await read_pdf_upload(file, settings)
        proposal = await service.create_proposal(
            db,
            title=title,
            client_name=client_name,
            upload=data,
            client_email=client_email,
            description=description,
        )
        return _proposal_to_response(proposal)
    except (FolioError, HTTPException):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("uploading proposal", e),
        ) from e


@router.post("/proposals/delete-page", response_model=DeletePageResponse)
async def delete_page(
    body: DeletePageRequest,
    db: AsyncSession = Depends(get_db),
    service: ProposalPageService = Depends(get_proposal_page_service),
):
    """Delete one page (1-based); a document always keeps at least one page."""
    try:
        return await service.delete_page(db, body.proposal_id, body.page_number)
    except (FolioError, HTTPException):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("deleting page", e),
        ) from e


@router.post("/proposals/insert-page", response_model=InsertPageResponse)
async def insert_page(
    proposal_id: uuid.UUID = Form(...),
    after_page: int = Form(...),
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    service: ProposalPageService = Depends(get_proposal_page_service),
    settings: Settings = Depends(get_settings),
):
    """Insert every page of the uploaded PDF after ``after_page`` (0 = before page 1)."""
    try:
        data = await read_pdf_upload(file, settings)
        return await service.insert_pages(db, proposal_id, after_page, data)
    except (FolioError, HTTPException):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("inserting pages", e),
        ) from e


@router.post("/proposals/replace-page", response_model=ReplacePageResponse)
async def replace_page(
    proposal_id: uuid.UUID = Form(...),
    page_number: int = Form(...),
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    service: ProposalPageService = Depends(get_proposal_page_service),
    settings: Settings = Depends(get_settings),
):
    """Replace one page with the first page of the uploaded PDF."""
    try:
        data = await read_pdf_upload(file, settings)
        return await service.replace_page(db, proposal_id, page_number, data)
    except (FolioError, HTTPException):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("replacing page", e),
        ) from e


@router.post(
    "/proposals/reorder-pages",
    response_model=ReorderPagesResponse,
    response_model_exclude_none=True,
)
async def reorder_pages(
    body: ReorderPagesRequest,
    db: AsyncSession = Depends(get_db),
    service: ProposalPageService = Depends(get_proposal_page_service),
):
    """Apply a 0-based permutation to the pages and their names.

    ``page_order[i]`` is the original index of the page that becomes page
    ``i + 1``.  The identity order returns ``reordered: false`` and writes
    nothing.
    """
    try:
        return await service.reorder_pages(db, body.proposal_id, body.page_order)
    except (FolioError, HTTPException):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("reordering pages", e),
        ) from e


@router.post("/proposals/reconcile", response_model=ReconcileResponse)
async def reconcile_proposal(
    body: ReconcileRequest,
    db: AsyncSession = Depends(get_db),
    service: ProposalPageService = Depends(get_proposal_page_service),
):
    """Recompute page names and file size from the stored PDF."""
    try:
        return await service.reconcile(db, body.proposal_id)
    except (FolioError, HTTPException):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("reconciling proposal", e),
        ) from e
