"""ProposalTemplate and TemplatePage ORM models.

A template owns one single-page PDF blob per ``TemplatePage``.  For a
template with N pages the ``page_number`` values are exactly 1..N, enforced
at the database level by ``uq_template_pages_number``.
"""

import uuid
from typing import Optional

from sqlalchemy import ForeignKey, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from folio.models.db.base import Base, TimestampMixin

__all__ = ["ProposalTemplate", "TemplatePage"]


class ProposalTemplate(TimestampMixin, Base):
    __tablename__ = "proposal_templates"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Denormalised count(template_pages), refreshed after every page add/delete
    page_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class TemplatePage(TimestampMixin, Base):
    __tablename__ = "template_pages"
    __table_args__ = (
        UniqueConstraint(
            "template_id", "page_number", name="uq_template_pages_number"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    template_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("proposal_templates.id", ondelete="CASCADE"),
        nullable=False,
    )
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    page_number: Mapped[int] = mapped_column(Integer, nullable=False)
    file_path: Mapped[str] = mapped_column(Text, nullable=False)
    label: Mapped[str] = mapped_column(Text, nullable=False, default="")
    indent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
