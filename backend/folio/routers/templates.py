"""Templates router: split PDFs into templates, manage template pages, merge.

Template pages are single-page PDFs stored at
``templates/{template_id}/page-{page_number}.pdf`` with dense page numbers.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from folio.config import Settings
from folio.deps import (
    _safe_error,
    get_db,
    get_settings,
    get_template_page_service,
    get_template_service,
    read_pdf_upload,
)
from folio.errors import FolioError
from folio.models.proposal_models import ProposalResponse
from folio.models.template_models import (
    AddTemplatePageResponse,
    CreateFromTemplateRequest,
    DeleteTemplatePageRequest,
    DeleteTemplatePageResponse,
    MergePagesRequest,
    MergePagesResponse,
    ReorderTemplatePagesRequest,
    ReorderTemplatePagesResponse,
    SplitTemplateRequest,
    SplitTemplateResponse,
    TemplatePageListResponse,
)
from folio.routers.proposals import _proposal_to_response
from folio.services.template_page_service import TemplatePageService
from folio.services.template_service import TemplateService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["templates"])


# ---------------------------------------------------------------------------
# Split / merge
# ---------------------------------------------------------------------------


@router.post("/templates/split", response_model=SplitTemplateResponse)
async def split_template(
    body: SplitTemplateRequest,
    db: AsyncSession = Depends(get_db),
    service: TemplateService = Depends(get_template_service),
):
    """Split an uploaded PDF into a template with one blob per page.

    Pages whose upload fails are skipped, so ``page_count`` may be lower
    than ``source_page_count``.
    """
    try:
        return await service.split_to_template(
            db,
            template_name=body.template_name,
            file_path=body.file_path,
            description=body.template_description,
        )
    except (FolioError, HTTPException):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("splitting template", e),
        ) from e


@router.post("/templates/merge", response_model=MergePagesResponse)
async def merge_pages(
    body: MergePagesRequest,
    service: TemplateService = Depends(get_template_service),
):
    """Concatenate page blobs, in the given order, into one proposal PDF."""
    try:
        return await service.merge_pages(
            [page.file_path for page in body.pages], body.proposal_file_path
        )
    except (FolioError, HTTPException):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("merging pages", e),
        ) from e


@router.post(
    "/templates/create-proposal",
    response_model=ProposalResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_proposal_from_template(
    body: CreateFromTemplateRequest,
    db: AsyncSession = Depends(get_db),
    service: TemplateService = Depends(get_template_service),
):
    """Create a draft proposal from a template's pages, with optional page swaps."""
    try:
        proposal = await service.create_proposal_from_template(
            db,
            template_id=body.template_id,
            title=body.title,
            client_name=body.client_name,
            client_email=body.client_email,
            description=body.description,
            replacements=body.replacements,
        )
        return _proposal_to_response(proposal)
    except (FolioError, HTTPException):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("creating proposal from template", e),
        ) from e


# ---------------------------------------------------------------------------
# Template pages
# ---------------------------------------------------------------------------


@router.get("/templates/pages", response_model=TemplatePageListResponse)
async def list_template_pages(
    template_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: TemplatePageService = Depends(get_template_page_service),
    settings: Settings = Depends(get_settings),
):
    """List a template's pages in order, each with a signed download URL."""
    try:
        pages = await service.list_pages(
            db, template_id, settings.signed_url_ttl_seconds
        )
        return TemplatePageListResponse(
            template_id=str(template_id), pages=pages, total=len(pages)
        )
    except (FolioError, HTTPException):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("listing template pages", e),
        ) from e


@router.post("/templates/pages", response_model=AddTemplatePageResponse)
async def add_template_page(
    template_id: uuid.UUID = Form(...),
    page_number: int = Form(...),
    label: Optional[str] = Form(None),
    mode: str = Form("auto"),
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    service: TemplatePageService = Depends(get_template_page_service),
    settings: Settings = Depends(get_settings),
):
    """Add or replace the page at ``page_number``.

    ``mode`` is ``auto`` (replace if occupied, else insert), ``insert`` or
    ``replace``.  Only the first page of the upload is used.
    """
    try:
        data = await read_pdf_upload(file, settings)
        return await service.add_page(
            db,
            template_id,
            page_number,
            data,
            label=label or "New Page",
            mode=mode,
        )
    except (FolioError, HTTPException):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("adding template page", e),
        ) from e


@router.delete("/templates/pages", response_model=DeleteTemplatePageResponse)
async def delete_template_page(
    body: DeleteTemplatePageRequest,
    db: AsyncSession = Depends(get_db),
    service: TemplatePageService = Depends(get_template_page_service),
):
    """Delete one template page and close the gap it leaves."""
    try:
        return await service.delete_page(db, body.template_id, body.page_number)
    except (FolioError, HTTPException):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("deleting template page", e),
        ) from e


@router.post(
    "/templates/reorder-pages", response_model=ReorderTemplatePagesResponse
)
async def reorder_template_pages(
    body: ReorderTemplatePagesRequest,
    db: AsyncSession = Depends(get_db),
    service: TemplatePageService = Depends(get_template_page_service),
):
    try:
        return await service.reorder_pages(db, body.template_id, body.page_order)
    except (FolioError, HTTPException):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("reordering template pages", e),
        ) from e
