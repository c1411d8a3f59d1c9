"""Tolerant parsing of classification payloads returned by the LLM.

Models wrap JSON in Markdown fences, prepend chatter, or emit a run of
objects without an enclosing array. Each recovery strategy is tried in
turn until one yields a list of items.
"""

import json
import re
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from errors import PayloadParseError
from logger import get_logger

logger = get_logger()

_WRAPPER_KEYS = ("results", "classifications", "categorizations", "items")


class ClassificationItem(BaseModel):
    """One classification as the model reported it."""

    index: Optional[int] = None
    category_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("categoryId", "category_id", "category")
    )
    subcategory_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("subcategoryId", "subcategory_id", "subcategory"),
    )
    confidence: float = 0.5
    reasoning: Optional[str] = None

    @field_validator("category_id", "subcategory_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("index", mode="before")
    @classmethod
    def _coerce_index(cls, value: Any) -> Optional[int]:
        if value is None or isinstance(value, bool):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            confidence = float(value)
        except (TypeError, ValueError):
            return 0.5
        if confidence != confidence:  # NaN
            return 0.5
        return min(1.0, max(0.0, confidence))


def strip_code_fences(content: str) -> str:
    """Remove a surrounding ```json ... ``` block if present."""
    content = content.strip()
    fenced = re.search(r"```(?:json)?\s*([\s\S]*?)```", content)
    if fenced:
        return fenced.group(1).strip()
    return content


def _unwrap(data: Any) -> Optional[List[Any]]:
    """Turn a decoded payload into a list of raw items."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in _WRAPPER_KEYS:
            if isinstance(data.get(key), list):
                return data[key]
        # A single classification object
        return [data]
    return None


def _first_balanced_array(content: str) -> Optional[str]:
    """Text of the first [...] block whose brackets balance, honoring strings."""
    start = content.find("[")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for pos in range(start, len(content)):
            char = content[pos]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "[":
                depth += 1
            elif char == "]":
                depth -= 1
                if depth == 0:
                    return content[start : pos + 1]
        start = content.find("[", start + 1)
    return None


def _concatenated_objects(content: str) -> List[Any]:
    """Decode every top-level {...} object appearing in the text."""
    decoder = json.JSONDecoder()
    objects = []
    pos = content.find("{")
    while pos != -1:
        try:
            obj, end = decoder.raw_decode(content, pos)
        except json.JSONDecodeError:
            pos = content.find("{", pos + 1)
            continue
        if isinstance(obj, dict):
            objects.append(obj)
        pos = content.find("{", end)
    return objects


def extract_items(content: str) -> List[Any]:
    """Recover the raw list of items from an LLM reply.

    Raises:
        PayloadParseError: If no strategy produced anything.
    """
    if not content or not content.strip():
        raise PayloadParseError("Empty response")

    content = strip_code_fences(content)

    # Strict parse
    try:
        items = _unwrap(json.loads(content))
        if items is not None:
            return items
    except json.JSONDecodeError:
        pass

    # First balanced array somewhere in the text
    array_text = _first_balanced_array(content)
    if array_text:
        try:
            items = json.loads(array_text)
            if isinstance(items, list):
                logger.debug("Recovered classification array from surrounding text")
                return items
        except json.JSONDecodeError:
            pass

    # Objects with no array wrapper
    objects = _concatenated_objects(content)
    if objects:
        logger.debug(f"Assembled {len(objects)} classification(s) from bare objects")
        if len(objects) == 1:
            unwrapped = _unwrap(objects[0])
            if unwrapped is not None:
                return unwrapped
        return objects

    raise PayloadParseError("No JSON array or object found in response")


def parse_classifications(content: str) -> List[ClassificationItem]:
    """Parse and validate every item in an LLM reply.

    Items that fail validation are dropped; count reconciliation is left to
    the caller.

    Raises:
        PayloadParseError: If the reply contains nothing usable.
    """
    parsed = []
    for raw in extract_items(content):
        if not isinstance(raw, dict):
            continue
        try:
            parsed.append(ClassificationItem.model_validate(raw))
        except ValidationError as e:
            logger.debug(f"Dropping invalid classification item {raw!r}: {e}")

    if not parsed:
        raise PayloadParseError("Response contained no valid classification items")
    return parsed
