"""Business logic for proposal and template pricing blocks."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from folio.errors import NotFoundError, ValidationError
from folio.models.db.pricing import PRICING_FIELDS, ProposalPricing, TemplatePricing
from folio.models.db.proposal import Proposal
from folio.models.db.template import ProposalTemplate

logger = logging.getLogger(__name__)


def _apply_fields(row, fields: dict[str, Any]) -> None:
    """Copy known pricing fields onto ``row``; ``None`` leaves a field unchanged."""
    for name in PRICING_FIELDS:
        value = fields.get(name)
        if value is None:
            continue
        if name == "tax_rate":
            value = Decimal(str(value))
        setattr(row, name, value)


class PricingService:
    """Service layer for pricing rows (one per proposal, one per template)."""

    @staticmethod
    async def resolve_proposal_id(
        db: AsyncSession,
        proposal_id: Optional[UUID] = None,
        share_token: Optional[str] = None,
    ) -> UUID:
        """Return ``proposal_id``, or look it up from a share token."""
        if proposal_id is not None:
            return proposal_id
        if not share_token:
            raise ValidationError("proposal_id or share_token required")

        result = await db.execute(
            select(Proposal.id).where(Proposal.share_token == share_token)
        )
        resolved = result.scalar_one_or_none()
        if resolved is None:
            raise NotFoundError("Proposal not found")
        return resolved

    @staticmethod
    async def get_proposal_pricing(
        db: AsyncSession, proposal_id: UUID
    ) -> Optional[ProposalPricing]:
        result = await db.execute(
            select(ProposalPricing).where(ProposalPricing.proposal_id == proposal_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def upsert_proposal_pricing(
        db: AsyncSession, proposal_id: UUID, fields: dict[str, Any]
    ) -> ProposalPricing:
        """Create the proposal's pricing row or patch the existing one.

        Args:
            db: Async database session.
            proposal_id: Owning proposal.
            fields: Pricing fields to set; absent or ``None`` values are left as-is.

        Returns:
            The stored ProposalPricing row.
        """
        proposal = await db.get(Proposal, proposal_id)
        if proposal is None:
            raise NotFoundError("Proposal not found")

        row = await PricingService.get_proposal_pricing(db, proposal_id)
        if row is None:
            row = ProposalPricing(proposal_id=proposal_id, company_id=proposal.company_id)
            db.add(row)
            logger.info("Creating pricing for proposal %s", proposal_id)
        else:
            row.updated_at = datetime.now(timezone.utc)

        _apply_fields(row, fields)
        await db.flush()
        await db.refresh(row)
        return row

    @staticmethod
    async def get_template_pricing(
        db: AsyncSession, template_id: UUID
    ) -> Optional[TemplatePricing]:
        result = await db.execute(
            select(TemplatePricing).where(TemplatePricing.template_id == template_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def upsert_template_pricing(
        db: AsyncSession, template_id: UUID, fields: dict[str, Any]
    ) -> TemplatePricing:
        template = await db.get(ProposalTemplate, template_id)
        if template is None:
            raise NotFoundError("Template not found")

        row = await PricingService.get_template_pricing(db, template_id)
        if row is None:
            row = TemplatePricing(template_id=template_id, company_id=template.company_id)
            db.add(row)
            logger.info("Creating pricing for template %s", template_id)
        else:
            row.updated_at = datetime.now(timezone.utc)

        _apply_fields(row, fields)
        await db.flush()
        await db.refresh(row)
        return row
