"""Extraction of JSON payloads from model output."""

import json
import re
from typing import Any, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

_CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


class MalformedResponseError(Exception):
    """Model output could not be read as the expected JSON shape."""

    def __init__(self, message: str, raw: str | None = None):
        super().__init__(message)
        self.raw = raw


def _try_parse(candidate: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return False, None


def extract_json(text: str | None) -> Any:
    """Parse JSON from model output.

    Tries, in order: the whole text, the body of a code fence, then the span
    from the first ``{`` or ``[`` to the last matching closer.

    Raises:
        MalformedResponseError: If no candidate parses.
    """
    if not text or not text.strip():
        raise MalformedResponseError("Empty response text", raw=text)

    ok, value = _try_parse(text)
    if ok:
        return value

    match = _CODE_FENCE.search(text)
    if match and match.group(1):
        ok, value = _try_parse(match.group(1))
        if ok:
            return value

    first_brace = text.find("{")
    first_bracket = text.find("[")
    if first_brace != -1 and (first_bracket == -1 or first_brace < first_bracket):
        start, end = first_brace, text.rfind("}")
    elif first_bracket != -1:
        start, end = first_bracket, text.rfind("]")
    else:
        start = end = -1

    if start != -1 and end > start:
        ok, value = _try_parse(text[start : end + 1])
        if ok:
            return value

    raise MalformedResponseError("No parseable JSON in response", raw=text[:500])


def parse_model(text: str | None, model: type[M]) -> M:
    """Extract JSON and validate it against a pydantic model."""
    payload = extract_json(text)
    if not isinstance(payload, dict):
        raise MalformedResponseError(
            f"Expected an object for {model.__name__}, got {type(payload).__name__}"
        )
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise MalformedResponseError(f"Invalid {model.__name__}: {e}") from e


def parse_list(text: str | None, item_type: type[T]) -> list[T]:
    """Extract a JSON array and validate each entry.

    A top-level object holding exactly one list is unwrapped first, since
    models often wrap arrays in a single-key object.
    """
    payload = extract_json(text)
    if isinstance(payload, dict):
        lists = [value for value in payload.values() if isinstance(value, list)]
        if len(lists) == 1:
            payload = lists[0]
    if not isinstance(payload, list):
        raise MalformedResponseError(f"Expected a list, got {type(payload).__name__}")
    try:
        return TypeAdapter(list[item_type]).validate_python(payload)  # type: ignore[valid-type]
    except ValidationError as e:
        raise MalformedResponseError(f"Invalid list entries: {e}") from e
