"""
Folio Backend Application Package

This package contains the FastAPI backend for Folio proposal delivery,
including:

- main.py: FastAPI application factory and router wiring
- pdf_codec.py: page-addressable PDF documents on PyMuPDF
- page_names.py: page label ledger kept aligned with physical pages
- services/: proposal page edits, template split/merge and page lifecycle
"""

__version__ = "1.0.0"
