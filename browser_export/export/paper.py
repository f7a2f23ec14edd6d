"""Paper dimension resolution.

Converts a paper description (named format + orientation, or explicit
width/height labeled with units) into integer CSS pixel dimensions.
"""

import math
import re
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from ..models.export import Dimensions, PaperSpec
from .errors import InvalidDimensionError

# CSS pixels per unit, at 96 DPI.
UNIT_TO_PIXELS: Dict[str, float] = {
    'cm': 37.8,
    'mm': 3.78,
    'in': 96,
    'px': 1,
}

PAPER_DIMENSION_PATTERN = r'^(\d+(\.\d+)?)(' + '|'.join(UNIT_TO_PIXELS) + r')$'
_PAPER_DIMENSION_REGEX = re.compile(PAPER_DIMENSION_PATTERN)

# (width, height) in inches
PAPER_FORMATS: Dict[str, Tuple[float, float]] = {
    'letter': (8.5, 11),
    'legal': (8.5, 14),
    'tabloid': (11, 17),
    'ledger': (17, 11),
    'a0': (33.1, 46.8),
    'a1': (23.4, 33.1),
    'a2': (16.54, 23.4),
    'a3': (11.7, 16.54),
    'a4': (8.27, 11.7),
    'a5': (5.83, 8.27),
    'a6': (4.13, 5.83),
}

AVAILABLE_PAPER_FORMATS = list(PAPER_FORMATS)

DEFAULT_PAPER_FORMAT = 'letter'


def to_pixels(dimension: str) -> float:
    """Convert a dimension string such as ``"2cm"`` to pixels.

    Raises:
        InvalidDimensionError: If the string does not match the unit pattern
    """
    match = _PAPER_DIMENSION_REGEX.match(dimension) if isinstance(dimension, str) else None
    if match is None:
        raise InvalidDimensionError(dimension)
    value, _, unit = match.groups()
    return float(value) * UNIT_TO_PIXELS[unit]


def _format_to_pixels(paper_format: str, landscape: bool) -> Tuple[float, float]:
    key = paper_format.lower()
    if key not in PAPER_FORMATS:
        raise InvalidDimensionError(paper_format)
    width, height = PAPER_FORMATS[key]
    dpi = UNIT_TO_PIXELS['in']
    if landscape:
        width, height = height, width
    return width * dpi, height * dpi


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _as_fields(paper: Union[PaperSpec, Mapping[str, Any], None]) -> Dict[str, Any]:
    if paper is None:
        return {}
    if isinstance(paper, PaperSpec):
        fields = paper.model_dump(exclude_none=True)
        if paper.format is not None:
            fields['format'] = paper.format.value
        return fields
    return dict(paper)


def resolve_dimensions(paper: Union[PaperSpec, Mapping[str, Any], None] = None) -> Dimensions:
    """Resolve a paper description to rounded pixel dimensions.

    Priority: ``format`` wins over ``width``/``height``; without either, the
    letter format is used.

    Args:
        paper: Paper specification, a mapping with the same keys, or None

    Returns:
        Strictly positive integer dimensions

    Raises:
        InvalidDimensionError: If a dimension string is malformed
    """
    fields = _as_fields(paper)
    landscape = bool(fields.get('landscape', False))
    # Mappings may carry the PaperFormat member itself.
    paper_format: Optional[str] = getattr(fields.get('format'), 'value', fields.get('format'))
    width = fields.get('width')
    height = fields.get('height')

    if paper_format:
        width_px, height_px = _format_to_pixels(paper_format, landscape)
    elif width and height:
        width_px, height_px = to_pixels(width), to_pixels(height)
    else:
        width_px, height_px = _format_to_pixels(DEFAULT_PAPER_FORMAT, landscape)

    rounded_width = _round_half_up(width_px)
    rounded_height = _round_half_up(height_px)
    if rounded_width <= 0 or rounded_height <= 0:
        raise InvalidDimensionError(f"{width or width_px}x{height or height_px}")

    return Dimensions(width=rounded_width, height=rounded_height)
