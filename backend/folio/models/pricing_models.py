"""Pydantic request/response schemas for proposal and template pricing."""

import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class PricingFields(BaseModel):
    """Editable pricing fields; every field is optional so POST can patch."""

    enabled: Optional[bool] = None
    position: Optional[int] = Field(None, ge=-1)
    title: Optional[str] = None
    intro_text: Optional[str] = None
    items: Optional[List[Dict[str, Any]]] = None
    optional_items: Optional[List[Dict[str, Any]]] = None
    payment_schedule: Optional[Dict[str, Any]] = None
    tax_enabled: Optional[bool] = None
    tax_rate: Optional[float] = Field(None, ge=0)
    tax_label: Optional[str] = None
    validity_days: Optional[int] = Field(None, ge=0)
    proposal_date: Optional[date] = None


class ProposalPricingUpsert(PricingFields):
    proposal_id: uuid.UUID


class TemplatePricingUpsert(PricingFields):
    template_id: uuid.UUID


class PricingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    proposal_id: Optional[uuid.UUID] = None
    template_id: Optional[uuid.UUID] = None
    enabled: bool
    position: int
    title: str
    intro_text: Optional[str] = None
    items: List[Dict[str, Any]] = []
    optional_items: List[Dict[str, Any]] = []
    payment_schedule: Optional[Dict[str, Any]] = None
    tax_enabled: bool
    tax_rate: float
    tax_label: str
    validity_days: int
    proposal_date: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
