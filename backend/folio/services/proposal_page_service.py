"""Page-level edits on proposal PDFs.

Each operation:

1. loads the proposal row and downloads its current PDF,
2. validates the request against the *physical* page count of that PDF,
3. applies the codec edit (in a worker thread),
4. applies the matching page-name ledger transform,
5. re-uploads the blob to the same path, then updates ``page_names``,
   ``file_size_bytes`` and ``updated_at`` on the row and commits, all
   before the document lock is released.

Blob first, metadata second: after a crash between the two writes the blob
is ahead of the row, which ``reconcile`` can repair from the blob alone.
Any failure before step 5 leaves both untouched.
"""

import asyncio
import logging
import re
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from folio import page_names, pdf_codec
from folio.errors import ConflictError, FolioError, NotFoundError, ValidationError
from folio.locks import DocumentLocks
from folio.models.db.proposal import Proposal

logger = logging.getLogger(__name__)

DEFAULT_BUCKET = "proposals"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def proposal_file_path(title: str) -> str:
    """Storage path for a new proposal: ``proposals/{epoch_ms}-{slug}.pdf``."""
    slug = re.sub(r"\s+", "-", title.strip().lower())
    slug = re.sub(r"[^a-z0-9-]", "", slug) or "proposal"
    return f"proposals/{int(time.time() * 1000)}-{slug}.pdf"


def new_share_token() -> str:
    return uuid.uuid4().hex[:16]


def _delete_page_sync(data: bytes, page_number: int) -> tuple[bytes, int, int]:
    with pdf_codec.load(data) as doc:
        total = doc.page_count
        if page_number < 1 or page_number > total:
            raise ValidationError(f"Invalid page number. PDF has {total} pages.")
        if total <= 1:
            raise ValidationError("Cannot delete the only remaining page.")
        doc.remove_page(page_number - 1)
        return doc.save(), total, doc.page_count


def _insert_pages_sync(
    data: bytes, after_page: int, upload: bytes
) -> tuple[bytes, int, int, int]:
    with pdf_codec.load(data) as doc:
        total = doc.page_count
        if after_page < 0 or after_page > total:
            raise ValidationError(f"Invalid position. PDF has {total} pages.")
        with pdf_codec.load(upload) as source:
            inserted = source.page_count
            copied = doc.copy_pages(source, range(inserted))
        for offset, page in enumerate(copied):
            doc.insert_page(after_page + offset, page)
        return doc.save(), total, inserted, doc.page_count


def _replace_page_sync(
    data: bytes, page_number: int, upload: bytes
) -> tuple[bytes, int]:
    with pdf_codec.load(data) as doc:
        total = doc.page_count
        if page_number < 1 or page_number > total:
            raise ValidationError(f"Invalid page number. PDF has {total} pages.")
        with pdf_codec.load(upload) as source:
            (new_page,) = doc.copy_pages(source, [0])
        index = page_number - 1
        doc.remove_page(index)
        doc.insert_page(index, new_page)
        return doc.save(), total


def _reorder_pages_sync(
    data: bytes, page_order: list[int]
) -> tuple[Optional[bytes], int]:
    """Returns (None, total) when the order is the identity."""
    with pdf_codec.load(data) as doc:
        total = doc.page_count
        if page_names.check_page_order(page_order, total):
            return None, total
        with pdf_codec.create() as reordered:
            for page in reordered.copy_pages(doc, page_order):
                reordered.add_page(page)
            return reordered.save(), total


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ProposalPageService:
    """Insert, delete, replace and reorder pages of a stored proposal PDF."""

    def __init__(
        self,
        store,
        bucket: str = DEFAULT_BUCKET,
        locks: Optional[DocumentLocks] = None,
    ) -> None:
        self._store = store
        self._bucket = bucket
        self._locks = locks or DocumentLocks()

    async def _get_proposal(self, db: AsyncSession, proposal_id: uuid.UUID) -> Proposal:
        proposal = await db.get(Proposal, proposal_id)
        if proposal is None:
            raise NotFoundError("Proposal not found")
        return proposal

    async def _write_back(
        self,
        db: AsyncSession,
        proposal: Proposal,
        original: bytes,
        modified: bytes,
        entries: Optional[list[page_names.PageNameEntry]] = None,
    ) -> None:
        """Upload the edited blob, then commit the row (store before metadata).

        The commit happens here, while the caller still holds the document
        lock, so the next editor of this proposal reads the new row.
        """
        # A failed flush leaves the session needing a rollback; nothing on
        # ``proposal`` may be read after that point.
        proposal_id = proposal.id
        file_path = proposal.file_path

        current_version = await db.scalar(
            select(Proposal.version).where(Proposal.id == proposal_id)
        )
        if current_version != proposal.version:
            raise ConflictError(
                "Proposal was modified by another request. Reload and try again."
            )

        await self._store.upload(self._bucket, file_path, modified)

        proposal.file_size_bytes = len(modified)
        if entries is not None:
            proposal.page_names = page_names.dump(entries)
        proposal.updated_at = datetime.now(timezone.utc)
        try:
            await db.flush()
            await db.commit()
        except StaleDataError as e:
            # Another writer committed between our check and flush; our blob
            # is now ahead of their metadata.
            logger.error(
                "Proposal %s blob rewritten but row changed concurrently; "
                "reconcile required",
                proposal_id,
            )
            raise ConflictError(
                "Proposal was modified by another request. Reload and try again."
            ) from e
        except SQLAlchemyError:
            await self._restore_blob(file_path, original)
            raise

    async def _restore_blob(self, path: str, original: bytes) -> None:
        try:
            await self._store.upload(self._bucket, path, original)
            logger.warning("Restored previous PDF at %s after failed row update", path)
        except FolioError as e:
            logger.error("Could not restore previous PDF at %s: %s", path, e)

    # -- operations ---------------------------------------------------------

    async def delete_page(
        self, db: AsyncSession, proposal_id: uuid.UUID, page_number: int
    ) -> dict[str, Any]:
        async with self._locks.hold("proposal", proposal_id):
            proposal = await self._get_proposal(db, proposal_id)
            original = await self._store.download(self._bucket, proposal.file_path)

            modified, total, new_total = await asyncio.to_thread(
                _delete_page_sync, original, page_number
            )
            entries = page_names.normalize(proposal.page_names, total)
            entries = page_names.after_delete(entries, page_number - 1)

            await self._write_back(db, proposal, original, modified, entries)

        logger.info(
            "Deleted page %d of proposal %s (%d -> %d pages)",
            page_number,
            proposal_id,
            total,
            new_total,
        )
        return {
            "success": True,
            "deleted_page": page_number,
            "total_pages": new_total,
            "file_size_bytes": len(modified),
        }

    async def insert_pages(
        self,
        db: AsyncSession,
        proposal_id: uuid.UUID,
        after_page: int,
        upload: bytes,
    ) -> dict[str, Any]:
        """Insert every page of ``upload`` after page ``after_page`` (0 = prepend)."""
        async with self._locks.hold("proposal", proposal_id):
            proposal = await self._get_proposal(db, proposal_id)
            original = await self._store.download(self._bucket, proposal.file_path)

            modified, total, inserted, new_total = await asyncio.to_thread(
                _insert_pages_sync, original, after_page, upload
            )
            entries = page_names.normalize(proposal.page_names, total)
            entries = page_names.after_insert(entries, after_page, inserted)

            await self._write_back(db, proposal, original, modified, entries)

        logger.info(
            "Inserted %d page(s) after page %d of proposal %s",
            inserted,
            after_page,
            proposal_id,
        )
        return {
            "success": True,
            "inserted_after": after_page,
            "pages_inserted": inserted,
            "total_pages": new_total,
            "file_size_bytes": len(modified),
        }

    async def replace_page(
        self,
        db: AsyncSession,
        proposal_id: uuid.UUID,
        page_number: int,
        upload: bytes,
    ) -> dict[str, Any]:
        """Swap page ``page_number`` for the first page of ``upload``; names are kept."""
        async with self._locks.hold("proposal", proposal_id):
            proposal = await self._get_proposal(db, proposal_id)
            original = await self._store.download(self._bucket, proposal.file_path)

            modified, total = await asyncio.to_thread(
                _replace_page_sync, original, page_number, upload
            )
            await self._write_back(db, proposal, original, modified)

        logger.info("Replaced page %d of proposal %s", page_number, proposal_id)
        return {
            "success": True,
            "page_number": page_number,
            "total_pages": total,
            "file_size_bytes": len(modified),
        }

    async def reorder_pages(
        self,
        db: AsyncSession,
        proposal_id: uuid.UUID,
        page_order: list[int],
    ) -> dict[str, Any]:
        """Rebuild the PDF so new page ``i`` is original page ``page_order[i]``.

        An identity order is a no-op: nothing is written and ``reordered``
        is False.
        """
        async with self._locks.hold("proposal", proposal_id):
            proposal = await self._get_proposal(db, proposal_id)
            original = await self._store.download(self._bucket, proposal.file_path)

            modified, total = await asyncio.to_thread(
                _reorder_pages_sync, original, page_order
            )
            if modified is None:
                return {"success": True, "reordered": False, "total_pages": total}

            entries = page_names.normalize(proposal.page_names, total)
            entries = page_names.after_reorder(entries, page_order)

            await self._write_back(db, proposal, original, modified, entries)

        logger.info("Reordered %d pages of proposal %s", total, proposal_id)
        return {
            "success": True,
            "reordered": True,
            "total_pages": total,
            "page_names": entries,
            "file_size_bytes": len(modified),
        }

    async def reconcile(
        self, db: AsyncSession, proposal_id: uuid.UUID
    ) -> dict[str, Any]:
        """Realign ``page_names`` and ``file_size_bytes`` with the stored PDF."""
        async with self._locks.hold("proposal", proposal_id):
            proposal = await self._get_proposal(db, proposal_id)
            data = await self._store.download(self._bucket, proposal.file_path)
            total = await asyncio.to_thread(pdf_codec.page_count, data)

            entries = page_names.normalize(proposal.page_names, total)
            dumped = page_names.dump(entries)
            changed = (
                dumped != proposal.page_names or proposal.file_size_bytes != len(data)
            )
            if changed:
                proposal.page_names = dumped
                proposal.file_size_bytes = len(data)
                proposal.updated_at = datetime.now(timezone.utc)
                try:
                    await db.flush()
                    await db.commit()
                except StaleDataError as e:
                    raise ConflictError(
                        "Proposal was modified by another request. Reload and try again."
                    ) from e
                logger.info(
                    "Reconciled proposal %s page names to %d pages", proposal_id, total
                )

        return {
            "success": True,
            "reconciled": changed,
            "total_pages": total,
            "page_names": entries,
        }

    async def create_proposal(
        self,
        db: AsyncSession,
        title: str,
        client_name: str,
        upload: bytes,
        client_email: Optional[str] = None,
        description: Optional[str] = None,
        company_id: Optional[uuid.UUID] = None,
    ) -> Proposal:
        """Store an uploaded PDF and create a draft proposal for it."""
        if not title.strip() or not client_name.strip():
            raise ValidationError("Missing title or client_name")
        await asyncio.to_thread(pdf_codec.page_count, upload)

        file_path = proposal_file_path(title)
        await self._store.upload(self._bucket, file_path, upload, upsert=False)

        proposal = Proposal(
            title=title.strip(),
            client_name=client_name.strip(),
            client_email=(client_email or "").strip() or None,
            description=(description or "").strip() or None,
            file_path=file_path,
            file_size_bytes=len(upload),
            page_names=[],
            share_token=new_share_token(),
            status="draft",
            company_id=company_id,
        )
        db.add(proposal)
        try:
            await db.flush()
        except SQLAlchemyError:
            await self._store.remove(self._bucket, [file_path])
            raise
        await db.refresh(proposal)

        logger.info(
            "Created proposal %s (%d bytes) at %s", proposal.id, len(upload), file_path
        )
        return proposal
