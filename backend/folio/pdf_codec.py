"""Page-addressable PDF documents built on PyMuPDF (fitz).

Pages are copyable, position-addressable units: ``copy_pages`` snapshots
pages of one document so they can be inserted into another (or into the
same one after it has been mutated).  Every higher-level edit (insert,
delete, replace, reorder, split, merge) is expressed with this small set.

Usage::

    with load(existing_bytes) as doc, load(upload_bytes) as upload:
        pages = doc.copy_pages(upload, range(upload.page_count))
        for offset, page in enumerate(pages):
            doc.insert_page(after_page + offset, page)
        data = doc.save()

All functions are synchronous and CPU-bound; async callers run them with
``asyncio.to_thread``.
"""

from collections.abc import Iterable

import fitz  # PyMuPDF

from folio.errors import CorruptDocumentError, PageIndexError


class CopiedPage:
    """A page snapshot that can be inserted into any Document."""

    __slots__ = ("_holder", "_index")

    def __init__(self, holder: fitz.Document, index: int):
        self._holder = holder
        self._index = index


class Document:
    """Mutable in-memory PDF with zero-based page addressing."""

    def __init__(self, doc: fitz.Document):
        self._doc = doc

    def __enter__(self) -> "Document":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if not self._doc.is_closed:
            self._doc.close()

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    def _check_index(self, index: int, upper: int) -> None:
        if not isinstance(index, int) or isinstance(index, bool):
            raise PageIndexError(f"Page index must be an integer, got {index!r}")
        if index < 0 or index >= upper:
            raise PageIndexError(
                f"Page index {index} out of range for {self.page_count} pages"
            )

    def remove_page(self, index: int) -> None:
        self._check_index(index, self.page_count)
        self._doc.delete_page(index)

    def insert_page(self, index: int, page: CopiedPage) -> None:
        """Insert ``page`` before position ``index``; ``page_count`` appends."""
        self._check_index(index, self.page_count + 1)
        start_at = -1 if index == self.page_count else index
        self._doc.insert_pdf(
            page._holder,
            from_page=page._index,
            to_page=page._index,
            start_at=start_at,
        )

    def add_page(self, page: CopiedPage) -> None:
        self.insert_page(self.page_count, page)

    def copy_pages(self, source: "Document", indices: Iterable[int]) -> list[CopiedPage]:
        """Snapshot ``source`` pages in the given order.

        Indices may repeat or appear in any order.  The snapshot is detached
        from ``source``, so later edits to either document do not affect it.
        """
        wanted = list(indices)
        for index in wanted:
            source._check_index(index, source.page_count)

        holder = fitz.open()
        for index in wanted:
            holder.insert_pdf(source._doc, from_page=index, to_page=index)
        return [CopiedPage(holder, i) for i in range(len(wanted))]

    def save(self) -> bytes:
        """Serialize the current state.

        Unused objects are dropped and streams deflated, so saving an
        unmodified document twice yields the same page count and content.
        """
        if self.page_count == 0:
            raise PageIndexError("Cannot save a document with zero pages")
        return self._doc.tobytes(garbage=3, deflate=True)


def load(data: bytes) -> Document:
    """Parse PDF bytes, raising CorruptDocumentError on anything else."""
    if not data:
        raise CorruptDocumentError("PDF data is empty")
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except (RuntimeError, ValueError) as exc:
        # fitz.FileDataError / EmptyFileError derive from RuntimeError
        raise CorruptDocumentError(f"Could not parse PDF: {exc}") from exc

    if not doc.is_pdf or doc.needs_pass or doc.page_count == 0:
        doc.close()
        raise CorruptDocumentError("Data is not a readable PDF document")
    return Document(doc)


def create() -> Document:
    """Return an empty document with zero pages."""
    return Document(fitz.open())


def page_count(data: bytes) -> int:
    with load(data) as doc:
        return doc.page_count


def concatenate(parts: Iterable[bytes]) -> tuple[bytes, int]:
    """Join every page of every part, in order.  Returns (bytes, page_count)."""
    with create() as merged:
        for data in parts:
            with load(data) as part:
                for page in merged.copy_pages(part, range(part.page_count)):
                    merged.add_page(page)
        return merged.save(), merged.page_count


def split(data: bytes) -> list[bytes]:
    """Return one single-page PDF per page of ``data``."""
    with load(data) as source:
        singles = []
        for index in range(source.page_count):
            with create() as single:
                (page,) = single.copy_pages(source, [index])
                single.add_page(page)
                singles.append(single.save())
        return singles


def first_page(data: bytes) -> bytes:
    """Return a single-page PDF holding only the first page of ``data``."""
    with load(data) as source, create() as single:
        if source.page_count == 0:
            raise CorruptDocumentError("Uploaded PDF has no pages")
        (page,) = single.copy_pages(source, [0])
        single.add_page(page)
        return single.save()
