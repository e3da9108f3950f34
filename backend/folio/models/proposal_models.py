"""Pydantic request/response models for proposal page editing."""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from folio.page_names import PageNameEntry


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class DeletePageRequest(BaseModel):
    proposal_id: uuid.UUID
    page_number: int = Field(..., description="1-based page to delete")


class ReorderPagesRequest(BaseModel):
    proposal_id: uuid.UUID
    page_order: List[int] = Field(
        ...,
        description="0-based permutation; page_order[i] is the original page that becomes page i",
    )


class ReconcileRequest(BaseModel):
    proposal_id: uuid.UUID


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class DeletePageResponse(BaseModel):
    success: bool = True
    deleted_page: int
    total_pages: int
    file_size_bytes: int


class InsertPageResponse(BaseModel):
    success: bool = True
    inserted_after: int
    pages_inserted: int
    total_pages: int
    file_size_bytes: int


class ReplacePageResponse(BaseModel):
    success: bool = True
    page_number: int
    total_pages: int
    file_size_bytes: int


class ReorderPagesResponse(BaseModel):
    """``page_names`` and ``file_size_bytes`` are omitted for a no-op reorder."""

    success: bool = True
    reordered: bool
    total_pages: int
    page_names: Optional[List[PageNameEntry]] = None
    file_size_bytes: Optional[int] = None


class ReconcileResponse(BaseModel):
    success: bool = True
    reconciled: bool
    total_pages: int
    page_names: List[PageNameEntry]


class ProposalResponse(BaseModel):
    """Summary of a proposal row."""

    id: str
    title: str
    client_name: str
    client_email: Optional[str] = None
    description: Optional[str] = None
    file_path: str
    file_size_bytes: Optional[int] = None
    page_names: List[PageNameEntry] = []
    share_token: str
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
