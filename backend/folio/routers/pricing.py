"""Pricing router: one pricing block per proposal and per template.

GET returns ``null`` when no pricing row exists yet; POST creates or
patches the row.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from folio.deps import _safe_error, get_db
from folio.errors import FolioError, ValidationError
from folio.models.pricing_models import (
    PricingResponse,
    ProposalPricingUpsert,
    TemplatePricingUpsert,
)
from folio.services.pricing_service import PricingService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["pricing"])


def _to_response(row) -> Optional[PricingResponse]:
    if row is None:
        return None
    return PricingResponse.model_validate(row)


# ---------------------------------------------------------------------------
# Proposal pricing
# ---------------------------------------------------------------------------


@router.get("/proposals/pricing", response_model=Optional[PricingResponse])
async def get_proposal_pricing(
    proposal_id: Optional[uuid.UUID] = None,
    share_token: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """Fetch pricing by ``proposal_id``, or by ``share_token`` for the client viewer."""
    try:
        resolved = await PricingService.resolve_proposal_id(
            db, proposal_id=proposal_id, share_token=share_token
        )
        row = await PricingService.get_proposal_pricing(db, resolved)
        return _to_response(row)
    except (FolioError, HTTPException):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("fetching proposal pricing", e),
        ) from e


@router.post("/proposals/pricing", response_model=PricingResponse)
async def upsert_proposal_pricing(
    body: ProposalPricingUpsert,
    db: AsyncSession = Depends(get_db),
):
    try:
        row = await PricingService.upsert_proposal_pricing(
            db, body.proposal_id, body.model_dump(exclude={"proposal_id"})
        )
        return _to_response(row)
    except (FolioError, HTTPException):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("saving proposal pricing", e),
        ) from e


# ---------------------------------------------------------------------------
# Template pricing
# ---------------------------------------------------------------------------


@router.get("/templates/pricing", response_model=Optional[PricingResponse])
async def get_template_pricing(
    template_id: Optional[uuid.UUID] = None,
    db: AsyncSession = Depends(get_db),
):
    try:
        if template_id is None:
            raise ValidationError("template_id required")
        row = await PricingService.get_template_pricing(db, template_id)
        return _to_response(row)
    except (FolioError, HTTPException):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("fetching template pricing", e),
        ) from e


@router.post("/templates/pricing", response_model=PricingResponse)
async def upsert_template_pricing(
    body: TemplatePricingUpsert,
    db: AsyncSession = Depends(get_db),
):
    try:
        row = await PricingService.upsert_template_pricing(
            db, body.template_id, body.model_dump(exclude={"template_id"})
        )
        return _to_response(row)
    except (FolioError, HTTPException):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("saving template pricing", e),
        ) from e
