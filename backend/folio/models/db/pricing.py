"""Pricing ORM models: one optional pricing block per proposal or template."""

import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import Boolean, Date, ForeignKey, Integer, Numeric, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from folio.models.db.base import Base, JSONType, TimestampMixin

__all__ = ["ProposalPricing", "TemplatePricing", "PRICING_FIELDS"]

PRICING_FIELDS = (
    "enabled",
    "position",
    "title",
    "intro_text",
    "items",
    "optional_items",
    "payment_schedule",
    "tax_enabled",
    "tax_rate",
    "tax_label",
    "validity_days",
    "proposal_date",
)


class PricingColumnsMixin:
    """Columns shared by proposal and template pricing."""

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # Index of the pricing page among the document pages, -1 = end
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=-1)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="Pricing")
    intro_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    items: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    optional_items: Mapped[list[Any]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    payment_schedule: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONType, nullable=True
    )
    tax_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tax_rate: Mapped[Decimal] = mapped_column(
        Numeric(6, 3), nullable=False, default=Decimal("0")
    )
    tax_label: Mapped[str] = mapped_column(Text, nullable=False, default="GST")
    validity_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    proposal_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)


class ProposalPricing(PricingColumnsMixin, TimestampMixin, Base):
    __tablename__ = "proposal_pricing"

    proposal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("proposals.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )


class TemplatePricing(PricingColumnsMixin, TimestampMixin, Base):
    __tablename__ = "template_pricing"

    template_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("proposal_templates.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
