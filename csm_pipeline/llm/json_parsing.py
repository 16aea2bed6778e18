"""Tolerant JSON handling for step outputs."""

import json
import re
from typing import Any

import structlog

from csm_pipeline.errors import ParseError

logger = structlog.get_logger(__name__)

CODE_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def _extract_balanced(text: str, open_char: str = "{", close_char: str = "}") -> str | None:
    """Extract the first balanced JSON object or array from text.

    Handles preamble text before the JSON and ignores brackets inside
    string literals.

    Args:
        text: Text that may contain JSON.
        open_char: Opening bracket to match.
        close_char: Closing bracket to match.

    Returns:
        Extracted JSON string or None.
    """
    depth = 0
    start_idx = None
    in_string = False
    escape_next = False

    for i, char in enumerate(text):
        if escape_next:
            escape_next = False
            continue
        if char == "\\" and in_string:
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue

        if char == open_char:
            if depth == 0:
                start_idx = i
            depth += 1
        elif char == close_char and depth > 0:
            depth -= 1
            if depth == 0 and start_idx is not None:
                return text[start_idx:i + 1]

    return None


def _clean_json_string(text: str) -> str:
    """Clean common issues in JSON strings from LLM output.

    Args:
        text: Raw JSON string.

    Returns:
        Cleaned JSON string.
    """
    # Remove any BOM or zero-width characters
    text = text.strip("\ufeff\u200b\u200c\u200d")

    # Remove trailing commas before } or ] (invalid JSON but common LLM mistake)
    text = re.sub(r",(\s*[}\]])", r"\1", text)

    return text


def parse_json_response(response: str) -> dict | list:
    """Parse JSON from an LLM response, handling common formatting issues.

    Tries, in order: the fenced code block, the whole text, the first
    balanced object and the first balanced array.

    Args:
        response: Raw LLM response string.

    Returns:
        Parsed JSON object or array.

    Raises:
        ParseError: If no strategy yields valid JSON.
    """
    if not response or not response.strip():
        raise ParseError("Empty response")

    text = response.strip()

    match = CODE_BLOCK_PATTERN.search(text)
    if match and match.group(1).strip()[:1] in ("{", "["):
        text = match.group(1).strip()

    try:
        return json.loads(_clean_json_string(text))
    except json.JSONDecodeError as e:
        logger.debug("direct_parse_failed", error=str(e))

    for open_char, close_char in (("{", "}"), ("[", "]")):
        extracted = _extract_balanced(text, open_char, close_char)
        if extracted:
            try:
                return json.loads(_clean_json_string(extracted))
            except json.JSONDecodeError as e:
                logger.debug("extracted_parse_failed", bracket=open_char, error=str(e))

    logger.error(
        "json_parse_error",
        error="Could not extract valid JSON",
        response_preview=text[:300],
    )
    raise ParseError(f"Failed to parse JSON response. Response preview: {text[:150]}")


def normalize_json(response: str) -> str:
    """Return a canonical JSON string for a step response."""
    return json.dumps(parse_json_response(response), ensure_ascii=False)


def loads_or_none(value: str | None) -> Any:
    """Strictly parse a JSON string, returning None when it is not valid JSON."""
    if value is None:
        return None
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return None


def ensure_json(value: str | None) -> Any:
    """Return a value that can be embedded in a JSON document.

    Valid JSON is decoded; blank values become an empty object and any
    other text is kept as a JSON string.
    """
    if value is None or not str(value).strip():
        return {}
    parsed = loads_or_none(value)
    if parsed is None and value.strip() != "null":
        return value
    return parsed
