"""API routes for Browser Export."""

from .pdf import router as pdf_router, ROUTE_DOCS as PDF_ROUTE_DOCS
from .system import router as system_router, ROUTE_DOCS as SYSTEM_ROUTE_DOCS

ROUTE_DOCS = {**SYSTEM_ROUTE_DOCS, **PDF_ROUTE_DOCS}

__all__ = [
    "pdf_router",
    "system_router",
    "ROUTE_DOCS",
]
