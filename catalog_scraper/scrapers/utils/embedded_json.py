"""Helpers for pulling JSON objects out of raw page markup.

Storefront pages assign their state to a global inside an inline script,
e.g. ``window.__PRELOADED_STATE__ = {...}`` or ``"__PRELOADED_STATE__": {...}``.
The object is located with a balanced-brace scan that skips braces inside
quoted strings, then parsed with the json module.
"""

import html
import json
from typing import Any, Optional

PRELOADED_STATE_TOKENS = ('"__PRELOADED_STATE__"', "__PRELOADED_STATE__")


def extract_json_object(text: str, start_index: int) -> Optional[str]:
    """Return the balanced ``{...}`` substring starting at ``start_index``.

    Braces inside double-quoted strings (including escaped quotes) do not
    count towards the depth.

    Args:
        text: Source text
        start_index: Index of the opening brace

    Returns:
        The raw object text, or None when the braces never balance
    """
    depth = 0
    in_string = False
    escaped = False
    for i in range(start_index, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start_index : i + 1]
    return None


def extract_json_after_token(text: str, token: str) -> Optional[Any]:
    """Parse the first JSON object assigned to ``token`` in ``text``.

    The assignment operator is whichever of ``:`` or ``=`` comes first after
    the token.
    """
    token_index = text.find(token)
    if token_index == -1:
        return None
    search_from = token_index + len(token)
    pivots = [i for i in (text.find(":", search_from), text.find("=", search_from)) if i != -1]
    if not pivots:
        return None
    start_index = text.find("{", min(pivots))
    if start_index == -1:
        return None
    raw = extract_json_object(text, start_index)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (ValueError, RecursionError):
        return None


def extract_preloaded_state(text: str) -> Optional[dict]:
    """Locate and parse the storefront's ``__PRELOADED_STATE__`` object."""
    for token in PRELOADED_STATE_TOKENS:
        state = extract_json_after_token(text, token)
        if isinstance(state, dict):
            return state
    return None


def parse_json_attribute(value: Optional[str]) -> Optional[Any]:
    """Parse a JSON payload stored in an HTML attribute.

    Attribute values are sometimes entity-encoded twice, so entities left
    over after the HTML parser are decoded once more.
    """
    if not value:
        return None
    try:
        return json.loads(html.unescape(value))
    except (TypeError, ValueError, RecursionError):
        return None
