"""Template page lifecycle: add, replace, delete and reorder single-page blobs.

Invariants kept by every operation:

- a template with N pages has ``page_number`` values exactly 1..N;
- a page's blob lives at ``templates/{template_id}/page-{page_number}.pdf``;
- ``proposal_templates.page_count`` equals the number of page rows.

``(template_id, page_number)`` is unique in the database, so renumbering
always walks in the direction that keeps the next target slot free:
highest-first when shifting up, lowest-first when shifting down, and via
temporary negative numbers for arbitrary permutations.  Blob moves are
journaled and undone if a later step fails.  Each operation commits before
releasing the template lock.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from folio import page_names, pdf_codec
from folio.errors import (
    BlobNotFoundError,
    ConflictError,
    FolioError,
    NotFoundError,
    ValidationError,
)
from folio.locks import DocumentLocks
from folio.models.db.template import ProposalTemplate, TemplatePage
from folio.services.blob_journal import BlobJournal

logger = logging.getLogger(__name__)

DEFAULT_BUCKET = "proposals"
ADD_MODES = ("auto", "insert", "replace")


def template_page_path(template_id: uuid.UUID, page_number: int) -> str:
    return f"templates/{template_id}/page-{page_number}.pdf"


def staging_path(template_id: uuid.UUID, tag: str) -> str:
    return f"templates/{template_id}/staging-{uuid.uuid4().hex[:12]}-{tag}.pdf"


class TemplatePageService:
    """Keeps template pages dense, unique and in step with their blobs."""

    def __init__(
        self,
        store,
        bucket: str = DEFAULT_BUCKET,
        locks: Optional[DocumentLocks] = None,
    ) -> None:
        self._store = store
        self._bucket = bucket
        self._locks = locks or DocumentLocks()

    # -- helpers ------------------------------------------------------------

    async def get_template(
        self, db: AsyncSession, template_id: uuid.UUID
    ) -> ProposalTemplate:
        template = await db.get(ProposalTemplate, template_id)
        if template is None:
            raise NotFoundError("Template not found")
        return template

    async def get_pages(
        self, db: AsyncSession, template_id: uuid.UUID
    ) -> list[TemplatePage]:
        result = await db.execute(
            select(TemplatePage)
            .where(TemplatePage.template_id == template_id)
            .order_by(TemplatePage.page_number)
        )
        return list(result.scalars().all())

    async def _check_version(self, db: AsyncSession, template: ProposalTemplate) -> None:
        current_version = await db.scalar(
            select(ProposalTemplate.version).where(ProposalTemplate.id == template.id)
        )
        if current_version != template.version:
            raise ConflictError(
                "Template was modified by another request. Reload and try again."
            )

    async def _renumber(
        self,
        db: AsyncSession,
        journal: BlobJournal,
        page: TemplatePage,
        new_number: int,
    ) -> None:
        target = template_page_path(page.template_id, new_number)
        await journal.move(page.file_path, target)
        page.page_number = new_number
        page.file_path = target
        await db.flush()

    async def _refresh_page_count(
        self, db: AsyncSession, template: ProposalTemplate
    ) -> int:
        count = await db.scalar(
            select(func.count())
            .select_from(TemplatePage)
            .where(TemplatePage.template_id == template.id)
        )
        template.page_count = count or 0
        template.updated_at = datetime.now(timezone.utc)
        try:
            await db.flush()
        except StaleDataError as e:
            raise ConflictError(
                "Template was modified by another request. Reload and try again."
            ) from e
        return template.page_count

    # -- operations ---------------------------------------------------------

    async def add_page(
        self,
        db: AsyncSession,
        template_id: uuid.UUID,
        page_number: int,
        upload: bytes,
        label: str = "New Page",
        mode: str = "auto",
    ) -> dict[str, Any]:
        """Insert or replace the page at ``page_number`` with the upload's first page.

        ``auto`` replaces when a page already occupies the slot and inserts
        otherwise; ``insert`` always shifts later pages up; ``replace``
        requires an existing page.
        """
        if mode not in ADD_MODES:
            raise ValidationError(f"mode must be one of: {', '.join(ADD_MODES)}")

        async with self._locks.hold("template", template_id):
            template = await self.get_template(db, template_id)
            single = await asyncio.to_thread(pdf_codec.first_page, upload)
            pages = await self.get_pages(db, template_id)
            existing = next((p for p in pages if p.page_number == page_number), None)

            if mode == "replace" or (mode == "auto" and existing is not None):
                if existing is None:
                    raise NotFoundError("Page not found")
                await self._check_version(db, template)
                await self._store.upload(self._bucket, existing.file_path, single)
                existing.label = label
                await db.flush()
                await self._refresh_page_count(db, template)
                await db.commit()
                logger.info("Replaced page %d of template %s", page_number, template_id)
                return {"success": True, "page_number": page_number, "replaced": True}

            if page_number < 1 or page_number > len(pages) + 1:
                raise ValidationError(
                    f"Invalid page number. Template has {len(pages)} pages."
                )
            await self._check_version(db, template)

            async with BlobJournal(self._store, self._bucket) as journal:
                staged = staging_path(template_id, "new")
                await journal.upload(staged, single)

                # Highest first: page N+1 is always free before page N moves into it
                later = [p for p in pages if p.page_number >= page_number]
                for page in sorted(later, key=lambda p: p.page_number, reverse=True):
                    await self._renumber(db, journal, page, page.page_number + 1)

                target = template_page_path(template_id, page_number)
                await journal.move(staged, target)
                db.add(
                    TemplatePage(
                        template_id=template_id,
                        company_id=template.company_id,
                        page_number=page_number,
                        file_path=target,
                        label=label,
                        indent=0,
                    )
                )
                await db.flush()
                total = await self._refresh_page_count(db, template)
                await db.commit()

        logger.info(
            "Inserted page %d into template %s (%d pages, %d shifted)",
            page_number,
            template_id,
            total,
            len(later),
        )
        return {"success": True, "page_number": page_number, "replaced": False}

    async def delete_page(
        self, db: AsyncSession, template_id: uuid.UUID, page_number: int
    ) -> dict[str, Any]:
        async with self._locks.hold("template", template_id):
            template = await self.get_template(db, template_id)
            pages = await self.get_pages(db, template_id)
            doomed = next((p for p in pages if p.page_number == page_number), None)
            if doomed is None:
                raise NotFoundError("Page not found")
            await self._check_version(db, template)

            async with BlobJournal(self._store, self._bucket) as journal:
                # Set the blob aside instead of removing it so a failure below
                # can still put it back.
                trash: Optional[str] = staging_path(template_id, "deleted")
                try:
                    await journal.move(doomed.file_path, trash)
                except BlobNotFoundError:
                    logger.warning(
                        "Template page blob %s already missing", doomed.file_path
                    )
                    trash = None

                await db.delete(doomed)
                await db.flush()

                # Lowest first: page P is free once the deleted row is gone
                later = [p for p in pages if p.page_number > page_number]
                for page in sorted(later, key=lambda p: p.page_number):
                    await self._renumber(db, journal, page, page.page_number - 1)

                total = await self._refresh_page_count(db, template)
                await db.commit()

        if trash:
            try:
                await self._store.remove(self._bucket, [trash])
            except FolioError as e:
                logger.warning("Could not remove deleted page blob %s: %s", trash, e)

        logger.info(
            "Deleted page %d of template %s (%d pages left)",
            page_number,
            template_id,
            total,
        )
        return {"success": True}

    async def reorder_pages(
        self,
        db: AsyncSession,
        template_id: uuid.UUID,
        page_order: list[int],
    ) -> dict[str, Any]:
        """Permute pages so new page ``i + 1`` is the page previously at index ``page_order[i]``."""
        async with self._locks.hold("template", template_id):
            template = await self.get_template(db, template_id)
            pages = await self.get_pages(db, template_id)
            total = len(pages)

            if page_names.check_page_order(page_order, total):
                return {"success": True, "reordered": False, "total_pages": total}
            await self._check_version(db, template)

            moving = [
                (new_index, pages[old_index])
                for new_index, old_index in enumerate(page_order)
                if new_index != old_index
            ]

            async with BlobJournal(self._store, self._bucket) as journal:
                # Phase 1: park moving rows on negative numbers (never unique-clash
                # with the positive numbers still held by other rows).
                for new_index, page in moving:
                    parked = staging_path(template_id, f"reorder-{new_index + 1}")
                    await journal.move(page.file_path, parked)
                    page.file_path = parked
                    page.page_number = -(new_index + 1)
                await db.flush()

                # Phase 2: every target slot has been vacated by phase 1.
                for new_index, page in moving:
                    target = template_page_path(template_id, new_index + 1)
                    await journal.move(page.file_path, target)
                    page.file_path = target
                    page.page_number = new_index + 1
                await db.flush()

                await self._refresh_page_count(db, template)
                await db.commit()

        logger.info(
            "Reordered template %s (%d of %d pages moved)",
            template_id,
            len(moving),
            total,
        )
        return {"success": True, "reordered": True, "total_pages": total}

    async def list_pages(
        self, db: AsyncSession, template_id: uuid.UUID, ttl_seconds: int
    ) -> list[dict[str, Any]]:
        """Template pages in order, each with a signed download URL."""
        await self.get_template(db, template_id)
        pages = await self.get_pages(db, template_id)

        results = []
        for page in pages:
            try:
                signed_url = await self._store.create_signed_url(
                    self._bucket, page.file_path, ttl_seconds
                )
            except FolioError as e:
                logger.warning("Could not sign URL for %s: %s", page.file_path, e)
                signed_url = None
            results.append(
                {
                    "id": str(page.id),
                    "template_id": str(page.template_id),
                    "page_number": page.page_number,
                    "file_path": page.file_path,
                    "label": page.label,
                    "indent": page.indent,
                    "signed_url": signed_url,
                }
            )
        return results
