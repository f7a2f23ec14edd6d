"""JSON Schema for PDF export payloads and payload validation.

The schema is the declarative contract of ``POST /v1/pdf`` and of the function
handler. Validation failures are reported with the validator's own
diagnostics, serialized as JSON.
"""

import json
from typing import Any, Dict, List

from jsonschema import Draft7Validator, FormatChecker, ValidationError

from ..models.export import ExportPayload
from .errors import PayloadValidationError
from .paper import AVAILABLE_PAPER_FORMATS, PAPER_DIMENSION_PATTERN


def get_payload_schema() -> Dict[str, Any]:
    """Get JSON Schema for PDF export payloads."""
    return {
        "$schema": "http://json-schema.org/draft-07/schema#",
        "title": "PDF export payload",
        "type": "object",
        "required": ["url"],
        "properties": {
            "url": {
                "type": "string",
                "format": "uri",
                "description": "The URL to open.",
                "examples": ["https://example.com"]
            },
            "authentication": {
                "type": "object",
                "description": (
                    "The application from which the PDF should be exported might require authentication. "
                    "Credentials, tokens or cookies are forwarded to the browser before the export."
                ),
                "properties": {
                    "cookies": {
                        "type": "array",
                        "description": "Cookies to inject into the browser page.",
                        "items": {
                            "type": "object",
                            "required": ["name", "value"],
                            "properties": {
                                "name": {"type": "string", "examples": ["JSESSIONID"]},
                                "value": {"type": "string", "examples": ["8835D6F1C74CB23E498F9C6928EFF858"]},
                                "domain": {
                                    "type": "string",
                                    "description": (
                                        "Hosts allowed to receive the cookie. "
                                        "Defaults to the host of the current document, excluding subdomains."
                                    )
                                },
                                "path": {
                                    "type": "string",
                                    "description": "URL path that must exist in the requested URL to send the cookie."
                                },
                                "expires": {
                                    "type": "integer",
                                    "minimum": 0,
                                    "description": "Unix time in seconds."
                                },
                                "httpOnly": {
                                    "type": "boolean",
                                    "default": False,
                                    "description": "HttpOnly cookies are inaccessible to document.cookie."
                                },
                                "secure": {
                                    "type": "boolean",
                                    "default": False,
                                    "description": "Only sent over HTTPS."
                                }
                            }
                        }
                    },
                    "webStorageItems": {
                        "type": "array",
                        "description": "Web Storage items to inject into the browser page.",
                        "items": {
                            "type": "object",
                            "required": ["key", "type", "value"],
                            "properties": {
                                "key": {"type": "string", "description": "Item key."},
                                "type": {
                                    "type": "string",
                                    "enum": ["local", "session"],
                                    "description": "The type of Web Storage to use."
                                },
                                "value": {"type": "string", "description": "Item value."}
                            }
                        }
                    }
                }
            },
            "paper": {
                "type": "object",
                "description": "Describes the PDF paper dimensions.",
                "oneOf": [
                    {
                        "required": ["height", "width"],
                        "properties": {
                            "height": {
                                "type": "string",
                                "pattern": PAPER_DIMENSION_PATTERN,
                                "description": "Paper height accepting values labeled with units.",
                                "examples": ["20cm", "200mm", "8in", "100px"]
                            },
                            "width": {
                                "type": "string",
                                "pattern": PAPER_DIMENSION_PATTERN,
                                "description": "Paper width accepting values labeled with units.",
                                "examples": ["40cm", "400mm", "16in", "200px"]
                            }
                        }
                    },
                    {
                        "required": ["format"],
                        "properties": {
                            "format": {
                                "type": "string",
                                "enum": AVAILABLE_PAPER_FORMATS,
                                "description": "One of the predefined paper formats."
                            },
                            "landscape": {
                                "type": "boolean",
                                "default": False,
                                "description": "Paper orientation."
                            }
                        }
                    }
                ]
            },
            "waitUntil": {
                "type": "object",
                "description": "Used to have the browser wait before exporting the page to PDF.",
                "properties": {
                    "networkIdle": {
                        "type": "boolean",
                        "description": "If true, wait until there are no pending network requests."
                    }
                }
            }
        }
    }


PAYLOAD_SCHEMA = get_payload_schema()

_validator = Draft7Validator(PAYLOAD_SCHEMA, format_checker=FormatChecker())


def _describe_error(error: ValidationError) -> Dict[str, Any]:
    description = {
        "instancePath": "/" + "/".join(str(part) for part in error.absolute_path),
        "schemaPath": "/".join(str(part) for part in error.absolute_schema_path),
        "keyword": error.validator,
        "message": error.message,
    }
    if error.context:
        description["context"] = [
            {
                "instancePath": "/" + "/".join(str(part) for part in sub_error.absolute_path),
                "message": sub_error.message,
            }
            for sub_error in sorted(error.context, key=lambda e: [str(part) for part in e.schema_path])
        ]
    return description


def get_validation_errors(payload: Any) -> List[Dict[str, Any]]:
    """Validate payload against the schema.

    Returns:
        Structured validator diagnostics (empty when the payload is valid)
    """
    errors = sorted(_validator.iter_errors(payload), key=lambda e: [str(part) for part in e.absolute_path])
    return [_describe_error(error) for error in errors]


def validate_payload(payload: Any) -> ExportPayload:
    """Validate a raw payload and build the immutable model.

    Args:
        payload: Decoded JSON payload or an already built ExportPayload

    Returns:
        Validated ExportPayload

    Raises:
        PayloadValidationError: With the validator's diagnostics as message
    """
    if isinstance(payload, ExportPayload):
        payload = payload.model_dump(by_alias=True, exclude_none=True, mode='json')

    errors = get_validation_errors(payload)
    if errors:
        raise PayloadValidationError(json.dumps(errors, indent=2), errors=errors)

    return ExportPayload.model_validate(payload)
