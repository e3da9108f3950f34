"""Split a PDF into a reusable template, and merge template pages back.

``split_to_template`` and ``merge_pages`` are inverses: splitting an N-page
PDF and merging its N template pages in page_number order yields the same
pages in the same order.
"""

import asyncio
import logging
import uuid
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from folio import page_names, pdf_codec
from folio.errors import FolioError, StoreError, ValidationError
from folio.locks import DocumentLocks
from folio.models.db.proposal import Proposal
from folio.models.db.template import ProposalTemplate, TemplatePage
from folio.services.blob_journal import BlobJournal
from folio.services.proposal_page_service import new_share_token, proposal_file_path
from folio.services.template_page_service import (
    DEFAULT_BUCKET,
    TemplatePageService,
    template_page_path,
)

logger = logging.getLogger(__name__)


class TemplateService:
    def __init__(
        self,
        store,
        bucket: str = DEFAULT_BUCKET,
        locks: Optional[DocumentLocks] = None,
    ) -> None:
        self._store = store
        self._bucket = bucket
        self._pages = TemplatePageService(store, bucket, locks)

    async def split_to_template(
        self,
        db: AsyncSession,
        template_name: str,
        file_path: str,
        description: Optional[str] = None,
        company_id: Optional[uuid.UUID] = None,
    ) -> dict[str, Any]:
        """Create a template with one single-page blob per page of ``file_path``.

        A page whose upload fails is logged and left out; surviving pages are
        numbered 1..k without gaps.  The returned ``page_count`` is then lower
        than ``source_page_count``, the page count of the uploaded PDF.  The
        source blob is removed afterwards.
        """
        if not template_name.strip() or not file_path.strip():
            raise ValidationError("Missing template_name or file_path")

        data = await self._store.download(self._bucket, file_path)
        singles = await asyncio.to_thread(pdf_codec.split, data)

        template = ProposalTemplate(
            name=template_name.strip(),
            description=(description or "").strip() or None,
            page_count=len(singles),
            company_id=company_id,
        )
        db.add(template)
        await db.flush()

        async with BlobJournal(self._store, self._bucket) as journal:
            rows: list[TemplatePage] = []
            for index, single in enumerate(singles):
                page_number = len(rows) + 1
                path = template_page_path(template.id, page_number)
                try:
                    await journal.upload(path, single)
                except StoreError as e:
                    logger.warning(
                        "Skipping page %d of %s: upload failed: %s",
                        index + 1,
                        file_path,
                        e,
                    )
                    continue
                rows.append(
                    TemplatePage(
                        template_id=template.id,
                        company_id=company_id,
                        page_number=page_number,
                        file_path=path,
                        label=page_names.default_name(index),
                        indent=0,
                    )
                )

            db.add_all(rows)
            template.page_count = len(rows)
            await db.flush()

        try:
            await self._store.remove(self._bucket, [file_path])
        except FolioError as e:
            logger.warning("Could not remove split source %s: %s", file_path, e)

        if len(rows) < len(singles):
            logger.warning(
                "Template %s created with %d of %d pages",
                template.id,
                len(rows),
                len(singles),
            )
        else:
            logger.info("Split %s into template %s (%d pages)", file_path, template.id, len(rows))

        return {
            "template_id": str(template.id),
            "page_count": len(rows),
            "source_page_count": len(singles),
        }

    async def merge_pages(
        self, file_paths: list[str], proposal_file_path: str
    ) -> dict[str, Any]:
        """Concatenate the blobs at ``file_paths`` in order and upload the result.

        Every blob is downloaded before anything is written, so a missing page
        aborts the merge with nothing uploaded.
        """
        if not file_paths or not proposal_file_path:
            raise ValidationError("Missing pages or proposal_file_path")

        parts = []
        for path in file_paths:
            parts.append(await self._store.download(self._bucket, path))

        merged, total = await asyncio.to_thread(pdf_codec.concatenate, parts)
        await self._store.upload(self._bucket, proposal_file_path, merged)

        logger.info(
            "Merged %d blob(s) into %s (%d pages, %d bytes)",
            len(file_paths),
            proposal_file_path,
            total,
            len(merged),
        )
        return {
            "file_path": proposal_file_path,
            "file_size_bytes": len(merged),
            "page_count": total,
        }

    async def create_proposal_from_template(
        self,
        db: AsyncSession,
        template_id: uuid.UUID,
        title: str,
        client_name: str,
        client_email: Optional[str] = None,
        description: Optional[str] = None,
        replacements: Optional[dict[int, str]] = None,
    ) -> Proposal:
        """Merge a template's pages into a new draft proposal.

        ``replacements`` maps template page numbers to temporary uploads used
        in place of those pages; the temporary blobs are removed once the
        proposal row exists.
        """
        if not title.strip() or not client_name.strip():
            raise ValidationError("Missing title or client_name")
        replacements = replacements or {}

        template = await self._pages.get_template(db, template_id)
        pages = await self._pages.get_pages(db, template_id)
        if not pages:
            raise ValidationError("Template has no pages")

        unknown = sorted(set(replacements) - {p.page_number for p in pages})
        if unknown:
            raise ValidationError(
                f"Replacement page numbers not in template: {', '.join(map(str, unknown))}"
            )

        target = proposal_file_path(title)
        merged = await self.merge_pages(
            [replacements.get(p.page_number, p.file_path) for p in pages], target
        )

        # A multi-page replacement adds pages; pad so names still match the PDF.
        entries = page_names.normalize(
            [{"name": p.label, "indent": p.indent} for p in pages],
            merged["page_count"],
        )
        proposal = Proposal(
            title=title.strip(),
            client_name=client_name.strip(),
            client_email=(client_email or "").strip() or None,
            description=(description or "").strip() or None,
            file_path=target,
            file_size_bytes=merged["file_size_bytes"],
            page_names=page_names.dump(entries),
            share_token=new_share_token(),
            status="draft",
            company_id=template.company_id,
        )
        db.add(proposal)
        try:
            await db.flush()
        except SQLAlchemyError:
            await self._store.remove(self._bucket, [target])
            raise
        await db.refresh(proposal)

        temp_paths = sorted(set(replacements.values()))
        if temp_paths:
            try:
                await self._store.remove(self._bucket, temp_paths)
            except FolioError as e:
                logger.warning("Could not remove replacement uploads %s: %s", temp_paths, e)

        logger.info(
            "Created proposal %s from template %s (%d pages, %d replaced)",
            proposal.id,
            template_id,
            merged["page_count"],
            len(replacements),
        )
        return proposal
