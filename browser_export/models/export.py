"""Pydantic models for PDF export payloads and derived values.

The JSON payload uses camelCase keys (``waitUntil``, ``webStorageItems``,
``httpOnly``, ``networkIdle``); the models expose snake_case attributes and
accept both spellings.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class PaperFormat(str, Enum):
    """Predefined paper formats."""
    LETTER = "letter"
    LEGAL = "legal"
    TABLOID = "tabloid"
    LEDGER = "ledger"
    A0 = "a0"
    A1 = "a1"
    A2 = "a2"
    A3 = "a3"
    A4 = "a4"
    A5 = "a5"
    A6 = "a6"


class _PayloadModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class PaperSpec(_PayloadModel):
    """Paper description: a named format or explicit dimensions."""

    format: Optional[PaperFormat] = Field(
        default=None,
        description="One of the predefined paper formats"
    )
    landscape: bool = Field(
        default=False,
        description="Paper orientation"
    )
    width: Optional[str] = Field(
        default=None,
        description="Paper width labeled with a unit, e.g. 40cm, 400mm, 16in or 200px"
    )
    height: Optional[str] = Field(
        default=None,
        description="Paper height labeled with a unit, e.g. 20cm, 200mm, 8in or 100px"
    )


class CookieSpec(_PayloadModel):
    """Cookie to inject into the browser session."""

    name: str = Field(description="Cookie name")
    value: str = Field(description="Cookie value")
    domain: Optional[str] = Field(
        default=None,
        description="Hosts allowed to receive the cookie (defaults to the page host)"
    )
    path: Optional[str] = Field(default=None, description="URL path scope")
    expires: Optional[int] = Field(
        default=None,
        ge=0,
        description="Unix time in seconds"
    )
    http_only: bool = Field(default=False, alias="httpOnly")
    secure: bool = Field(default=False)


class WebStorageItemSpec(_PayloadModel):
    """Web Storage item to inject into the page."""

    key: str = Field(description="Item key")
    type: Literal["local", "session"] = Field(description="The type of Web Storage to use")
    value: str = Field(description="Item value")


class AuthSpec(_PayloadModel):
    """Credentials forwarded to the browser before the export."""

    cookies: List[CookieSpec] = Field(default_factory=list)
    web_storage_items: List[WebStorageItemSpec] = Field(
        default_factory=list,
        alias="webStorageItems"
    )

    @property
    def is_empty(self) -> bool:
        return not self.cookies and not self.web_storage_items


class WaitUntilSpec(_PayloadModel):
    """Extra conditions to wait for before exporting."""

    network_idle: bool = Field(
        default=False,
        alias="networkIdle",
        description="Wait until there are no pending network requests"
    )


class ExportPayload(_PayloadModel):
    """Validated PDF export request."""

    url: str = Field(description="The URL to open")
    paper: Optional[PaperSpec] = Field(default=None)
    authentication: Optional[AuthSpec] = Field(default=None)
    wait_until: Optional[WaitUntilSpec] = Field(default=None, alias="waitUntil")

    @property
    def auth(self) -> AuthSpec:
        return self.authentication or AuthSpec()

    @property
    def waits(self) -> WaitUntilSpec:
        return self.wait_until or WaitUntilSpec()


class Dimensions(_PayloadModel):
    """Paper dimensions in CSS pixels."""

    width: int = Field(gt=0)
    height: int = Field(gt=0)

    def to_viewport(self) -> Dict[str, int]:
        return {'width': self.width, 'height': self.height}

    def to_pdf_options(self) -> Dict[str, str]:
        return {'width': f"{self.width}px", 'height': f"{self.height}px"}


EXAMPLE_PAYLOAD: Dict[str, Any] = {
    'authentication': {
        'cookies': [
            {
                'name': 'JSESSIONID',
                'secure': True,
                'value': '8835D6F1C74CB23E498F9C6928EFF858',
            },
        ],
        'webStorageItems': [
            {
                'key': 'jwt-token',
                'type': 'local',
                'value': (
                    'eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9.'
                    'eyJzdWIiOiIxMjM0NTY3ODkwIiwibmFtZSI6IkpvaG4gRG9lIiwiYWRtaW4iOnRydWV9.'
                    'TJVA95OrM7E2cBab30RMHrHDcEfxjoYZgeFONFh7HgQ'
                ),
            },
        ],
    },
    'paper': {
        'height': '1080px',
        'width': '1920px',
    },
    'url': 'https://example.com',
    'waitUntil': {
        'networkIdle': True,
    },
}
