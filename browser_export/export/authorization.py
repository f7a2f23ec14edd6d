"""Authorized-URL pre-check run by the outer surfaces before any engine work."""

import re
from typing import Any, Pattern, Union

from .errors import AuthorizationError


def compile_url_pattern(pattern: Union[str, Pattern[str]]) -> Pattern[str]:
    if isinstance(pattern, str):
        return re.compile(pattern)
    return pattern


def check_authorized_url(url: Any, pattern: Union[str, Pattern[str]]) -> None:
    """Raise unless the URL matches the authorized pattern.

    The pattern is searched anywhere in the URL, so ``"."`` authorizes
    everything and anchors must be written explicitly.

    Raises:
        AuthorizationError: If the URL does not match
    """
    regex = compile_url_pattern(pattern)
    if not isinstance(url, str) or regex.search(url) is None:
        raise AuthorizationError(str(url), pattern=regex.pattern)
