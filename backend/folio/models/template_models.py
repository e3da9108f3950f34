"""Pydantic request/response models for templates and template pages."""

import uuid
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class SplitTemplateRequest(BaseModel):
    template_name: str = Field(..., min_length=1)
    template_description: Optional[str] = None
    file_path: str = Field(..., min_length=1, description="Uploaded PDF in the bucket")


class SplitTemplateResponse(BaseModel):
    template_id: str
    page_count: int
    source_page_count: int


class MergePage(BaseModel):
    file_path: str = Field(..., min_length=1)


class MergePagesRequest(BaseModel):
    pages: List[MergePage] = Field(..., min_length=1)
    proposal_file_path: str = Field(..., min_length=1)


class MergePagesResponse(BaseModel):
    file_path: str
    file_size_bytes: int
    page_count: int


class AddTemplatePageResponse(BaseModel):
    success: bool = True
    page_number: int
    replaced: bool = False


class DeleteTemplatePageRequest(BaseModel):
    template_id: uuid.UUID
    page_number: int


class DeleteTemplatePageResponse(BaseModel):
    success: bool = True


class ReorderTemplatePagesRequest(BaseModel):
    template_id: uuid.UUID
    page_order: List[int]


class ReorderTemplatePagesResponse(BaseModel):
    success: bool = True
    reordered: bool
    total_pages: int


class TemplatePageResponse(BaseModel):
    id: str
    template_id: str
    page_number: int
    file_path: str
    label: str
    indent: int = 0
    signed_url: Optional[str] = None


class TemplatePageListResponse(BaseModel):
    template_id: str
    pages: List[TemplatePageResponse]
    total: int


class CreateFromTemplateRequest(BaseModel):
    """Build a proposal from a template, optionally swapping some pages.

    ``replacements`` maps a 1-based template page number to a temporary
    single-page upload that stands in for that page; those uploads are
    removed once the proposal exists.
    """

    template_id: uuid.UUID
    title: str = Field(..., min_length=1)
    client_name: str = Field(..., min_length=1)
    client_email: Optional[str] = None
    description: Optional[str] = None
    replacements: Dict[int, str] = Field(default_factory=dict)
