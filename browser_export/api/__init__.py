"""HTTP server for Browser Export.

Exposes the PDF export engine over FastAPI:

- ``GET /``: route introspection
- ``GET /health``: health check
- ``POST /v1/pdf``: export a page to PDF
"""

from .main import create_app

__all__ = ["create_app"]
