"""Export data models package."""

from .export import (
    PaperFormat,
    PaperSpec,
    CookieSpec,
    WebStorageItemSpec,
    AuthSpec,
    WaitUntilSpec,
    ExportPayload,
    Dimensions,
    EXAMPLE_PAYLOAD,
)

__all__ = [
    'PaperFormat',
    'PaperSpec',
    'CookieSpec',
    'WebStorageItemSpec',
    'AuthSpec',
    'WaitUntilSpec',
    'ExportPayload',
    'Dimensions',
    'EXAMPLE_PAYLOAD',
]
