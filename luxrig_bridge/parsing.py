"""
Lenient JSON extraction from LLM-generated text.

Models asked for JSON often wrap it in prose or code fences. These helpers
pull out the first object or array and never raise.
"""
import json
import logging
import re
from typing import Any, Optional

from .errors import ParseError

logger = logging.getLogger(__name__)

# Spans the first opening bracket to the last closing one
_JSON_BLOCK = re.compile(r"\{[\s\S]*\}|\[[\s\S]*\]")


def parse_json_strict(text: str) -> Any:
    """
    Parse JSON embedded in text.

    Raises:
        ParseError when no JSON value can be decoded
    """
    if not text or not text.strip():
        raise ParseError("Empty response")

    match = _JSON_BLOCK.search(text)
    candidate = match.group(0) if match else text
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ParseError(f"Could not parse JSON from response: {e}") from e


def extract_json(text: str) -> Optional[Any]:
    """Like parse_json_strict, but logs a warning and returns None on failure."""
    try:
        return parse_json_strict(text)
    except ParseError as e:
        logger.warning("%s (first 200 chars: %r)", e, (text or "")[:200])
        return None
