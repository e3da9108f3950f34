"""Page-name ledger: labels kept index-aligned with a PDF's physical pages.

Entry ``i`` describes physical page ``i + 1``.  Stored ledgers come in two
shapes (legacy plain strings and ``{"name", "indent"}`` objects) and may be
shorter than the document, so every caller goes through ``normalize`` once
and works on ``PageNameEntry`` values from then on.

The transforms here are pure.  Callers apply the matching codec mutation in
the same request and persist both together.
"""

from collections.abc import Mapping, Sequence
from typing import Any, Optional

from pydantic import BaseModel, Field

from folio.errors import ValidationError


class PageNameEntry(BaseModel):
    """Label for one page; ``indent=1`` nests it under the previous top-level entry."""

    name: str = ""
    indent: int = Field(default=0, ge=0, le=1)


def default_name(index: int) -> str:
    """Display name for the page at zero-based ``index``."""
    return f"Page {index + 1}"


def _coerce_indent(value: Any) -> int:
    try:
        return 1 if int(value) > 0 else 0
    except (TypeError, ValueError):
        return 0


def _coerce_entry(item: Any, index: int) -> PageNameEntry:
    if isinstance(item, PageNameEntry):
        return item
    if isinstance(item, str):
        return PageNameEntry(name=item, indent=0)
    if isinstance(item, Mapping):
        name = item.get("name")
        return PageNameEntry(
            name=name if isinstance(name, str) else "",
            indent=_coerce_indent(item.get("indent", 0)),
        )
    return PageNameEntry(name=default_name(index), indent=0)


def normalize(raw: Any, target_len: Optional[int] = None) -> list[PageNameEntry]:
    """Coerce a stored ledger into entries.

    Without ``target_len`` the result has the same length as ``raw``.  With
    it, the result is padded with ``Page N`` defaults or truncated to exactly
    ``target_len`` entries.  Anything that is not a list counts as empty.
    """
    items = raw if isinstance(raw, Sequence) and not isinstance(raw, str) else []
    entries = [_coerce_entry(item, i) for i, item in enumerate(items)]

    if target_len is None:
        return entries
    if target_len < 0:
        raise ValueError("target_len must be >= 0")

    while len(entries) < target_len:
        entries.append(PageNameEntry(name=default_name(len(entries)), indent=0))
    return entries[:target_len]


def after_delete(entries: list[PageNameEntry], index: int) -> list[PageNameEntry]:
    if index < 0 or index >= len(entries):
        raise IndexError(f"No page name at index {index}")
    return entries[:index] + entries[index + 1 :]


def after_insert(
    entries: list[PageNameEntry], index: int, count: int
) -> list[PageNameEntry]:
    """Splice ``count`` default entries in before ``index``."""
    if index < 0 or index > len(entries):
        raise IndexError(f"Cannot insert page names at index {index}")
    inserted = [
        PageNameEntry(name=default_name(index + i), indent=0) for i in range(count)
    ]
    return entries[:index] + inserted + entries[index:]


def after_reorder(
    entries: list[PageNameEntry], order: Sequence[int]
) -> list[PageNameEntry]:
    """New entry ``i`` is ``entries[order[i]]``, the same permutation as the pages."""
    if sorted(order) != list(range(len(entries))):
        raise ValueError("order must be a permutation of the entry indices")
    return [entries[old] for old in order]


def dump(entries: list[PageNameEntry]) -> list[dict[str, Any]]:
    """JSON-ready form for the ``page_names`` column."""
    return [entry.model_dump() for entry in entries]


def check_page_order(order: Sequence[int], total_pages: int) -> bool:
    """Validate a 0-based permutation against the current page count.

    Returns True when ``order`` is the identity (nothing to do).  Raises
    ValidationError on a wrong length or any missing, repeated or
    out-of-range index.
    """
    if len(order) != total_pages:
        raise ValidationError(
            f"page_order length ({len(order)}) must match page count ({total_pages})"
        )
    if sorted(order) != list(range(total_pages)):
        raise ValidationError(
            "page_order must contain each page index exactly once (0-based)"
        )
    return all(old == new for new, old in enumerate(order))
