import json
import logging
import math
from typing import Any, List

logger = logging.getLogger(__name__)

# =========================
# Choice data decoding
# =========================
#
# Choice labels and scores reach us as native lists, JSON array strings,
# or Postgres array literals such as {"Yes","No","Kind of"}.

SELECTION_SEPARATOR = ", "


def to_text(item: Any) -> str:
    if item is None:
        return ""
    try:
        if isinstance(item, float) and item.is_integer():
            return str(int(item))
        return str(item)
    except ValueError:
        # ints past the interpreter digit limit
        return ""


def _split_brace_literal(text: str) -> List[str]:
    """
    Split the inside of a {...} literal on commas that are not quoted.

    Quoted elements may contain commas and backslash-escaped quotes.
    """
    inner = text[1:-1]
    if not inner.strip():
        return []

    parts = []
    current = []
    in_quotes = False
    escaped = False
    for ch in inner:
        if escaped:
            current.append(ch)
            escaped = False
        elif ch == "\\" and in_quotes:
            current.append(ch)
            escaped = True
        elif ch == '"':
            in_quotes = not in_quotes
            current.append(ch)
        elif ch == "," and not in_quotes:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))

    cleaned = []
    for part in parts:
        part = part.strip()
        if len(part) >= 2 and part[0] == '"' and part[-1] == '"':
            part = part[1:-1].replace('\\"', '"').replace("\\\\", "\\")
        cleaned.append(part.strip())
    return cleaned


def _parse_raw(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    if not isinstance(value, str):
        logger.debug("Ignoring choice data of type %s", type(value).__name__)
        return []

    text = value.strip()
    if not text:
        return []

    try:
        decoded = json.loads(text)
    except (ValueError, RecursionError):
        decoded = None
    else:
        if isinstance(decoded, list):
            return decoded

    if text.startswith("{") and text.endswith("}"):
        return _split_brace_literal(text)

    logger.debug("Unparseable choice data: %r", value)
    return []


def parse_labels(value: Any) -> List[str]:
    """
    Decode a choice-labels field into an ordered list of strings.

    Never raises; anything that cannot be decoded yields [].
    """
    return [to_text(item) for item in _parse_raw(value)]


def _to_number(item: Any):
    if item is None:
        return None
    try:
        number = float(item)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def parse_scores(value: Any) -> List[float]:
    """
    Decode a choice-scores field into an ordered list of finite floats.

    Elements that are not finite numbers are dropped.
    """
    scores = []
    for item in _parse_raw(value):
        if isinstance(item, str):
            item = item.strip()
        number = _to_number(item)
        if number is not None:
            scores.append(number)
    return scores


def split_selection(value: Any) -> List[str]:
    """Split a multi-choice answer into its selected labels."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [to_text(item) for item in value if item is not None and to_text(item) != ""]
    return [part for part in to_text(value).split(SELECTION_SEPARATOR) if part.strip()]


def find_choice_index(labels: List[str], picked: str) -> int:
    """
    Position of ``picked`` in ``labels``; first match wins for duplicates.

    Exact comparison first, then whitespace-trimmed. Returns -1 if absent.
    """
    try:
        return labels.index(picked)
    except ValueError:
        pass
    target = picked.strip()
    for index, label in enumerate(labels):
        if label.strip() == target:
            return index
    return -1
