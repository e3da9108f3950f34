"""Proposal ORM model.

Maps to the ``proposals`` table from revision ``0001_proposal_documents``.
One row per delivered PDF; ``page_names`` is a positional ledger aligned
with the physical pages of the blob at ``file_path``.
"""

import uuid
from typing import Any, Optional

from sqlalchemy import BigInteger, CheckConstraint, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from folio.models.db.base import Base, JSONType, TimestampMixin

__all__ = ["Proposal", "PROPOSAL_STATUSES"]

PROPOSAL_STATUSES = ("draft", "sent", "viewed", "accepted", "declined")


class Proposal(TimestampMixin, Base):
    __tablename__ = "proposals"
    __table_args__ = (
        CheckConstraint(
            "status IN ('draft','sent','viewed','accepted','declined')",
            name="proposals_status_check",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    title: Mapped[str] = mapped_column(Text, nullable=False)
    client_name: Mapped[str] = mapped_column(Text, nullable=False)
    client_email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Document
    file_path: Mapped[str] = mapped_column(Text, nullable=False)
    file_size_bytes: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    # Legacy rows hold plain strings; see folio.page_names.normalize
    page_names: Mapped[list[Any]] = mapped_column(
        JSONType, nullable=False, default=list
    )

    share_token: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="draft")

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
