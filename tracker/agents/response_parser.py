"""Parsing of vision model responses into transaction rows.

The model is asked for a bare JSON array but may wrap it in prose or markdown fences, and long
answers are cut off at the completion token limit. The parser salvages every fully formed
element of a truncated array instead of discarding the batch.
"""

import json
import re
from typing import Any

from tracker.core.utils import get_logger

logger = get_logger("card-tracker.parser")

_LEADING_FENCE = re.compile(r"^\s*```(?:json)?\s*", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"```\s*$")
NO_TRANSACTION_MARKERS = ("no transaction", "no posted transaction")
PREVIEW_LEN = 200


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    return _TRAILING_FENCE.sub("", _LEADING_FENCE.sub("", text)).strip()


def repair_truncated_array(text: str) -> list[Any] | None:
    """Close a truncated JSON array after its last complete top-level element.

    `text` must start at the opening `[`. The scan tracks string and escape context so brackets
    inside merchant names do not count toward nesting.

    Returns:
        The recovered elements, or None if no element was complete.
    """
    depth = 0
    in_string = False
    escaped = False
    last_complete = -1
    for index, char in enumerate(text):
        if escaped:
            escaped = False
            continue
        if in_string:
            if char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "[{":
            depth += 1
        elif char in "]}":
            depth -= 1
            if depth == 1:
                last_complete = index
            elif depth <= 0:
                break
    if last_complete < 0:
        return None
    try:
        recovered = json.loads(text[: last_complete + 1] + "]")
    except json.JSONDecodeError:
        return None
    return recovered if isinstance(recovered, list) else None


def parse_transaction_array(raw_output: str | None) -> list[dict[str, Any]]:
    """Extract the list of transaction objects from a model response.

    Never raises: unusable output yields an empty list.
    """
    if not raw_output:
        return []
    text = strip_code_fences(raw_output)
    start = text.find("[")
    if start < 0:
        if any(marker in text.lower() for marker in NO_TRANSACTION_MARKERS):
            logger.info("Model reported no transactions in batch")
        else:
            logger.warning(f"No JSON array in model output: {text[:PREVIEW_LEN]}")
        return []
    end = text.rfind("]")
    candidate = text[start : end + 1] if end > start else text[start:]
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as exc:
        logger.warning(f"Model output is not valid JSON ({exc}); attempting truncation repair")
        parsed = repair_truncated_array(text[start:])
        if parsed is None:
            logger.warning(f"Could not repair model output: {candidate[:PREVIEW_LEN]}")
            return []
        logger.info(f"Recovered {len(parsed)} complete elements from truncated output")
    if not isinstance(parsed, list):
        logger.warning(f"Expected a JSON array, got {type(parsed).__name__}")
        return []
    rows = [item for item in parsed if isinstance(item, dict)]
    if len(rows) != len(parsed):
        logger.warning(f"Dropped {len(parsed) - len(rows)} non-object elements from model output")
    return rows
