"""
Shared fixtures for the Folio test suite.

- ``store``: in-memory object store with failure injection
- ``session_factory`` / ``db``: in-memory SQLite via aiosqlite with the real
  ORM schema (unique constraints included)
- ``make_pdf`` / ``page_texts``: build and inspect PDFs with PyMuPDF
- ``proposal_factory`` / ``template_factory``: seed rows plus blobs
- ``client``: httpx AsyncClient against ``create_app(...)``

Usage:
    cd backend && pytest tests/ -v
"""

import os
import sys
import uuid
from typing import Dict, List, Optional, Tuple

import fitz  # PyMuPDF
import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from folio import page_names  # noqa: E402
from folio.config import Settings  # noqa: E402
from folio.errors import BlobNotFoundError, StoreError  # noqa: E402
from folio.main import create_app  # noqa: E402
from folio.models.db import Base, Proposal, ProposalTemplate, TemplatePage  # noqa: E402
from folio.services.template_page_service import template_page_path  # noqa: E402

BUCKET = "proposals"


# ============================================================================
# PDF HELPERS
# ============================================================================

def build_pdf(labels: List[str]) -> bytes:
    """One page per label, each page carrying its label as text."""
    doc = fitz.open()
    for label in labels:
        page = doc.new_page()
        page.insert_text((72, 72), label)
    data = doc.tobytes()
    doc.close()
    return data


def read_page_texts(data: bytes) -> List[str]:
    """The stripped text of every page, in order."""
    doc = fitz.open(stream=data, filetype="pdf")
    try:
        return [page.get_text().strip() for page in doc]
    finally:
        doc.close()


@pytest.fixture
def make_pdf():
    return build_pdf


@pytest.fixture
def page_texts():
    return read_page_texts


# ============================================================================
# IN-MEMORY OBJECT STORE
# ============================================================================

class MemoryObjectStore:
    """Stand-in for ``folio.storage.ObjectStore`` keeping blobs in a dict.

    Failures are injected per operation by path: add a path to
    ``fail_uploads``, ``fail_downloads``, ``fail_moves`` or ``fail_removes``
    and the next matching call raises StoreError.
    """

    def __init__(self):
        self.blobs: Dict[Tuple[str, str], bytes] = {}
        self.fail_uploads: set = set()
        self.fail_downloads: set = set()
        self.fail_moves: set = set()
        self.fail_removes: set = set()
        self.calls: List[Tuple[str, str]] = []

    def put(self, path: str, data: bytes, bucket: str = BUCKET) -> None:
        self.blobs[(bucket, path)] = data

    def get(self, path: str, bucket: str = BUCKET) -> Optional[bytes]:
        return self.blobs.get((bucket, path))

    def paths(self, bucket: str = BUCKET) -> List[str]:
        return sorted(path for b, path in self.blobs if b == bucket)

    async def download(self, bucket: str, path: str) -> bytes:
        self.calls.append(("download", path))
        if path in self.fail_downloads:
            raise StoreError(f"Failed to download {path}")
        data = self.blobs.get((bucket, path))
        if not data:
            raise BlobNotFoundError(f"File not found: {path}")
        return data

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str = "application/pdf",
        upsert: bool = True,
    ) -> None:
        self.calls.append(("upload", path))
        if path in self.fail_uploads:
            raise StoreError(f"Failed to upload {path}")
        if not upsert and (bucket, path) in self.blobs:
            raise StoreError(f"Failed to upload {path}")
        self.blobs[(bucket, path)] = data

    async def remove(self, bucket: str, paths: List[str]) -> None:
        self.calls.append(("remove", ",".join(paths)))
        if any(path in self.fail_removes for path in paths):
            raise StoreError(f"Failed to remove {', '.join(paths)}")
        for path in paths:
            self.blobs.pop((bucket, path), None)

    async def move(self, bucket: str, from_path: str, to_path: str) -> None:
        self.calls.append(("move", f"{from_path}->{to_path}"))
        if from_path in self.fail_moves or to_path in self.fail_moves:
            raise StoreError(f"Failed to move {from_path} to {to_path}")
        if (bucket, from_path) not in self.blobs:
            raise BlobNotFoundError(f"File not found: {from_path}")
        if (bucket, to_path) in self.blobs:
            raise StoreError(f"Failed to move {from_path} to {to_path}")
        self.blobs[(bucket, to_path)] = self.blobs.pop((bucket, from_path))

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"https://storage.test/{bucket}/{path}"

    async def create_signed_url(self, bucket: str, path: str, ttl_seconds: int) -> str:
        if (bucket, path) not in self.blobs:
            raise BlobNotFoundError(f"File not found: {path}")
        return f"https://storage.test/sign/{bucket}/{path}?ttl={ttl_seconds}"


@pytest.fixture
def store():
    return MemoryObjectStore()


# ============================================================================
# DATABASE
# ============================================================================

@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ============================================================================
# DATA FACTORIES
# ============================================================================

@pytest.fixture
def proposal_factory(session_factory, store):
    """Seed a proposal whose blob has one page per label."""

    async def create(
        labels: List[str],
        names: Optional[list] = None,
        title: str = "Test Proposal",
    ) -> Proposal:
        data = build_pdf(labels)
        path = f"proposals/{uuid.uuid4().hex}.pdf"
        store.put(path, data)
        async with session_factory() as session:
            proposal = Proposal(
                title=title,
                client_name="Acme Pty Ltd",
                file_path=path,
                file_size_bytes=len(data),
                page_names=names if names is not None else [],
                share_token=uuid.uuid4().hex[:16],
                status="draft",
            )
            session.add(proposal)
            await session.commit()
            return proposal

    return create


@pytest.fixture
def template_factory(session_factory, store):
    """Seed a template with one single-page blob per label."""

    async def create(labels: List[str], name: str = "Test Template") -> ProposalTemplate:
        async with session_factory() as session:
            template = ProposalTemplate(name=name, page_count=len(labels))
            session.add(template)
            await session.flush()
            for index, label in enumerate(labels):
                path = template_page_path(template.id, index + 1)
                store.put(path, build_pdf([label]))
                session.add(
                    TemplatePage(
                        template_id=template.id,
                        page_number=index + 1,
                        file_path=path,
                        label=label,
                    )
                )
            await session.commit()
            return template

    return create


@pytest.fixture
def template_pages(session_factory):
    """Load a template's page rows, ordered by page_number, in a fresh session."""

    async def load(template_id) -> List[TemplatePage]:
        async with session_factory() as session:
            result = await session.execute(
                select(TemplatePage)
                .where(TemplatePage.template_id == template_id)
                .order_by(TemplatePage.page_number)
            )
            return list(result.scalars().all())

    return load


@pytest.fixture
def reload(session_factory):
    """Re-read any ORM row by primary key in a fresh session."""

    async def fetch(model, pk):
        async with session_factory() as session:
            return await session.get(model, pk)

    return fetch


@pytest.fixture
def names_of():
    """Just the ``name`` of each stored page-name entry."""

    def extract(raw) -> List[str]:
        return [entry.name for entry in page_names.normalize(raw)]

    return extract


# ============================================================================
# HTTP
# ============================================================================

@pytest.fixture
def settings():
    return Settings(
        storage_bucket=BUCKET,
        max_upload_mb=1,
        rate_limit_per_minute=1000,
    )


@pytest.fixture
def app(settings, store, session_factory):
    return create_app(settings=settings, object_store=store, session_factory=session_factory)


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
