"""
Tests for proposal page editing (folio.services.proposal_page_service).

Every successful edit must leave len(page_names) equal to the physical page
count of the stored PDF; every rejected edit must leave blob and row as
they were.

Usage:
    cd backend && pytest tests/test_proposal_pages.py -v
"""

import asyncio
import os
import sys
import uuid

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from folio.errors import (  # noqa: E402
    BlobNotFoundError,
    ConflictError,
    CorruptDocumentError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from folio.locks import DocumentLocks  # noqa: E402
from folio.models.db import Base, Proposal  # noqa: E402
from folio.services.proposal_page_service import ProposalPageService  # noqa: E402

BUCKET = "proposals"


@pytest.fixture
def service(store):
    return ProposalPageService(store, BUCKET)


@pytest.fixture
async def file_session_factory(tmp_path):
    """SQLite on disk, so each session gets its own connection and transaction."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'folio.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


async def seed_proposal(factory, store, data, names):
    path = f"proposals/{uuid.uuid4().hex}.pdf"
    store.put(path, data)
    async with factory() as session:
        proposal = Proposal(
            title="Concurrent Proposal",
            client_name="Acme Pty Ltd",
            file_path=path,
            file_size_bytes=len(data),
            page_names=names,
            share_token=uuid.uuid4().hex[:16],
            status="draft",
        )
        session.add(proposal)
        await session.commit()
        return proposal


async def assert_aligned(reload, store, page_texts, proposal_id):
    """The stored names and the stored PDF describe the same pages."""
    row = await reload(Proposal, proposal_id)
    texts = page_texts(store.get(row.file_path))
    assert len(row.page_names) == len(texts)
    assert row.file_size_bytes == len(store.get(row.file_path))
    return row, texts


class TestDeletePage:
    async def test_cover_terms_pricing_scenario(
        self, db, service, proposal_factory, reload, store, page_texts, names_of
    ):
        proposal = await proposal_factory(
            ["Cover", "Terms", "Pricing"], names=["Cover", "Terms", "Pricing"]
        )

        result = await service.delete_page(db, proposal.id, 2)
        await db.commit()

        assert result["success"] is True
        assert result["deleted_page"] == 2
        assert result["total_pages"] == 2
        row, texts = await assert_aligned(reload, store, page_texts, proposal.id)
        assert names_of(row.page_names) == ["Cover", "Pricing"]
        assert texts == ["Cover", "Pricing"]

    async def test_pads_short_ledger_before_deleting(
        self, db, service, proposal_factory, reload, store, page_texts, names_of
    ):
        proposal = await proposal_factory(["A", "B", "C"], names=[])

        await service.delete_page(db, proposal.id, 1)
        await db.commit()

        row, _ = await assert_aligned(reload, store, page_texts, proposal.id)
        assert names_of(row.page_names) == ["Page 2", "Page 3"]

    async def test_only_page_cannot_be_deleted(
        self, db, service, proposal_factory, store
    ):
        proposal = await proposal_factory(["Only"])
        before = store.get(proposal.file_path)

        with pytest.raises(ValidationError, match="only remaining page"):
            await service.delete_page(db, proposal.id, 1)
        assert store.get(proposal.file_path) == before

    @pytest.mark.parametrize("page_number", [0, 4])
    async def test_out_of_range(self, db, service, proposal_factory, page_number):
        proposal = await proposal_factory(["A", "B", "C"])
        with pytest.raises(ValidationError, match="PDF has 3 pages"):
            await service.delete_page(db, proposal.id, page_number)

    async def test_unknown_proposal(self, db, service):
        with pytest.raises(NotFoundError, match="Proposal not found"):
            await service.delete_page(db, uuid.uuid4(), 1)

    async def test_missing_blob(self, db, service, proposal_factory, store):
        proposal = await proposal_factory(["A", "B"])
        store.blobs.clear()
        with pytest.raises(BlobNotFoundError):
            await service.delete_page(db, proposal.id, 1)

    async def test_upload_failure_leaves_row_untouched(
        self, db, service, proposal_factory, store, reload
    ):
        proposal = await proposal_factory(["A", "B"], names=["A", "B"])
        store.fail_uploads.add(proposal.file_path)

        with pytest.raises(StoreError):
            await service.delete_page(db, proposal.id, 1)
        await db.rollback()

        row = await reload(Proposal, proposal.id)
        assert row.page_names == ["A", "B"]
        assert row.version == proposal.version


class TestInsertPages:
    async def test_insert_at_start(
        self, db, service, proposal_factory, make_pdf, reload, store, page_texts, names_of
    ):
        proposal = await proposal_factory(["Cover", "Terms"], names=["Cover", "Terms"])

        result = await service.insert_pages(db, proposal.id, 0, make_pdf(["X", "Y"]))
        await db.commit()

        assert result["inserted_after"] == 0
        assert result["pages_inserted"] == 2
        assert result["total_pages"] == 4
        row, texts = await assert_aligned(reload, store, page_texts, proposal.id)
        assert texts == ["X", "Y", "Cover", "Terms"]
        assert names_of(row.page_names) == ["Page 1", "Page 2", "Cover", "Terms"]

    async def test_insert_at_end(
        self, db, service, proposal_factory, make_pdf, reload, store, page_texts, names_of
    ):
        proposal = await proposal_factory(["Cover", "Terms"], names=["Cover", "Terms"])

        await service.insert_pages(db, proposal.id, 2, make_pdf(["Appendix"]))
        await db.commit()

        row, texts = await assert_aligned(reload, store, page_texts, proposal.id)
        assert texts == ["Cover", "Terms", "Appendix"]
        assert names_of(row.page_names) == ["Cover", "Terms", "Page 3"]

    async def test_insert_keeps_indents(
        self, db, service, proposal_factory, make_pdf, reload
    ):
        proposal = await proposal_factory(
            ["Cover", "Detail"],
            names=[{"name": "Cover", "indent": 0}, {"name": "Detail", "indent": 1}],
        )

        await service.insert_pages(db, proposal.id, 1, make_pdf(["New"]))
        await db.commit()

        row = await reload(Proposal, proposal.id)
        assert row.page_names == [
            {"name": "Cover", "indent": 0},
            {"name": "Page 2", "indent": 0},
            {"name": "Detail", "indent": 1},
        ]

    @pytest.mark.parametrize("after_page", [-1, 3])
    async def test_position_out_of_range(
        self, db, service, proposal_factory, make_pdf, after_page
    ):
        proposal = await proposal_factory(["A", "B"])
        with pytest.raises(ValidationError, match="Invalid position"):
            await service.insert_pages(db, proposal.id, after_page, make_pdf(["X"]))

    async def test_corrupt_upload(self, db, service, proposal_factory, store):
        proposal = await proposal_factory(["A"])
        before = store.get(proposal.file_path)
        with pytest.raises(CorruptDocumentError):
            await service.insert_pages(db, proposal.id, 1, b"definitely not a pdf")
        assert store.get(proposal.file_path) == before


class TestReplacePage:
    async def test_replace_uses_first_page_and_keeps_names(
        self, db, service, proposal_factory, make_pdf, reload, store, page_texts, names_of
    ):
        proposal = await proposal_factory(
            ["Cover", "Terms", "Pricing"], names=["Cover", "Terms", "Pricing"]
        )

        result = await service.replace_page(
            db, proposal.id, 2, make_pdf(["New Terms", "Ignored"])
        )
        await db.commit()

        assert result["page_number"] == 2
        assert result["total_pages"] == 3
        row, texts = await assert_aligned(reload, store, page_texts, proposal.id)
        assert texts == ["Cover", "New Terms", "Pricing"]
        assert names_of(row.page_names) == ["Cover", "Terms", "Pricing"]

    async def test_replace_out_of_range(self, db, service, proposal_factory, make_pdf):
        proposal = await proposal_factory(["A"])
        with pytest.raises(ValidationError):
            await service.replace_page(db, proposal.id, 2, make_pdf(["X"]))


class TestReorderPages:
    async def test_reorder_applies_permutation_to_pages_and_names(
        self, db, service, proposal_factory, reload, store, page_texts, names_of
    ):
        proposal = await proposal_factory(
            ["Cover", "Terms", "Pricing"], names=["Cover", "Terms", "Pricing"]
        )

        result = await service.reorder_pages(db, proposal.id, [2, 0, 1])
        await db.commit()

        assert result["reordered"] is True
        assert result["total_pages"] == 3
        assert [e.name for e in result["page_names"]] == ["Pricing", "Cover", "Terms"]
        row, texts = await assert_aligned(reload, store, page_texts, proposal.id)
        assert texts == ["Pricing", "Cover", "Terms"]
        assert names_of(row.page_names) == ["Pricing", "Cover", "Terms"]

    async def test_identity_is_a_no_op(
        self, db, service, proposal_factory, store, reload
    ):
        proposal = await proposal_factory(["A", "B", "C"], names=["A", "B", "C"])
        before = store.get(proposal.file_path)

        result = await service.reorder_pages(db, proposal.id, [0, 1, 2])
        await db.commit()

        assert result == {"success": True, "reordered": False, "total_pages": 3}
        assert store.get(proposal.file_path) == before
        assert ("upload", proposal.file_path) not in store.calls
        row = await reload(Proposal, proposal.id)
        assert row.version == proposal.version

    @pytest.mark.parametrize(
        "order",
        [[0, 0, 1], [0, 1], [0, 1, 2, 3], [0, 1, 3], [1, 2, 3]],
    )
    async def test_invalid_orders_rejected_without_mutation(
        self, db, service, proposal_factory, store, order
    ):
        proposal = await proposal_factory(["A", "B", "C"])
        before = store.get(proposal.file_path)

        with pytest.raises(ValidationError):
            await service.reorder_pages(db, proposal.id, order)
        assert store.get(proposal.file_path) == before


class TestConcurrencyAndReconcile:
    async def test_stale_version_rejected_before_upload(
        self, db, service, proposal_factory, session_factory, store
    ):
        proposal = await proposal_factory(["A", "B", "C"])
        before = store.get(proposal.file_path)

        # Keep the row loaded in this session, then let another writer bump it.
        held = await db.get(Proposal, proposal.id)
        async with session_factory() as other:
            row = await other.get(Proposal, proposal.id)
            row.status = "sent"
            await other.commit()

        with pytest.raises(ConflictError):
            await service.delete_page(db, proposal.id, 1)
        assert store.get(proposal.file_path) == before
        assert held.version == 1

    async def test_failed_row_update_restores_blob(
        self, db, service, proposal_factory, store, monkeypatch
    ):
        proposal = await proposal_factory(["A", "B"])
        before = store.get(proposal.file_path)

        async def broken_flush(*args, **kwargs):
            raise OperationalError("UPDATE proposals", {}, Exception("database is locked"))

        monkeypatch.setattr(db, "flush", broken_flush)
        with pytest.raises(OperationalError):
            await service.delete_page(db, proposal.id, 1)
        assert store.get(proposal.file_path) == before

    async def test_row_changed_during_upload_is_a_conflict(
        self, file_session_factory, store, make_pdf, monkeypatch
    ):
        proposal = await seed_proposal(
            file_session_factory, store, make_pdf(["A", "B", "C"]), ["A", "B", "C"]
        )
        real_upload = store.upload

        async def upload_after_other_writer(bucket, path, data, content_type="application/pdf", upsert=True):
            # Another process commits after the version check, before our flush
            async with file_session_factory() as other:
                row = await other.get(Proposal, proposal.id)
                row.status = "sent"
                await other.commit()
            await real_upload(bucket, path, data, content_type=content_type, upsert=upsert)

        monkeypatch.setattr(store, "upload", upload_after_other_writer)
        service = ProposalPageService(store, BUCKET)

        async with file_session_factory() as session:
            with pytest.raises(ConflictError) as exc_info:
                await service.delete_page(session, proposal.id, 2)
            await session.rollback()

        assert exc_info.value.status_code == 409
        async with file_session_factory() as session:
            row = await session.get(Proposal, proposal.id)
            assert row.status == "sent"
            assert row.page_names == ["A", "B", "C"]

    async def test_queued_edits_see_each_others_commits(
        self, file_session_factory, store, make_pdf, page_texts, names_of
    ):
        proposal = await seed_proposal(
            file_session_factory,
            store,
            make_pdf(["Cover", "Terms", "Pricing"]),
            ["Cover", "Terms", "Pricing"],
        )
        service = ProposalPageService(store, BUCKET, DocumentLocks())

        async def request(page_number):
            # Same shape as folio.deps.get_db: commit after the handler returns
            async with file_session_factory() as session:
                result = await service.delete_page(session, proposal.id, page_number)
                await session.commit()
                return result

        first, second = await asyncio.gather(request(2), request(1))

        assert first["total_pages"] == 2
        assert second["total_pages"] == 1
        async with file_session_factory() as session:
            row = await session.get(Proposal, proposal.id)
        assert names_of(row.page_names) == ["Pricing"]
        assert page_texts(store.get(proposal.file_path)) == ["Pricing"]

    async def test_reconcile_realigns_names_with_blob(
        self, db, service, proposal_factory, reload, names_of
    ):
        proposal = await proposal_factory(["A", "B", "C"], names=["Cover"])

        result = await service.reconcile(db, proposal.id)
        await db.commit()

        assert result["reconciled"] is True
        assert result["total_pages"] == 3
        row = await reload(Proposal, proposal.id)
        assert names_of(row.page_names) == ["Cover", "Page 2", "Page 3"]

    async def test_reconcile_truncates_long_ledger(
        self, db, service, proposal_factory, reload, names_of
    ):
        proposal = await proposal_factory(["A"], names=["A", "B", "C"])

        await service.reconcile(db, proposal.id)
        await db.commit()

        row = await reload(Proposal, proposal.id)
        assert names_of(row.page_names) == ["A"]

    async def test_reconcile_noop_when_aligned(self, db, service, proposal_factory):
        proposal = await proposal_factory(
            ["A", "B"],
            names=[{"name": "A", "indent": 0}, {"name": "B", "indent": 0}],
        )
        result = await service.reconcile(db, proposal.id)
        assert result["reconciled"] is False


class TestCreateProposal:
    async def test_upload_creates_draft(self, db, service, make_pdf, store, reload):
        data = make_pdf(["Cover", "Terms"])

        proposal = await service.create_proposal(
            db, title="Website Redesign", client_name="Acme", upload=data
        )
        await db.commit()

        row = await reload(Proposal, proposal.id)
        assert row.status == "draft"
        assert row.page_names == []
        assert len(row.share_token) == 16
        assert row.file_size_bytes == len(data)
        assert row.file_path.startswith("proposals/")
        assert row.file_path.endswith("-website-redesign.pdf")
        assert store.get(row.file_path) == data

    async def test_rejects_non_pdf(self, db, service, store):
        with pytest.raises(CorruptDocumentError):
            await service.create_proposal(
                db, title="X", client_name="Acme", upload=b"hello"
            )
        assert store.paths() == []

    async def test_requires_title(self, db, service, make_pdf):
        with pytest.raises(ValidationError):
            await service.create_proposal(
                db, title="  ", client_name="Acme", upload=make_pdf(["A"])
            )
