"""Helpers for turning raw model output into code or validated JSON."""

import re
from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import ResponseParseError
from ..models.execution import ExecutionResponse

T = TypeVar("T", bound=BaseModel)

_OPENING_FENCE = re.compile(r"^```\w*\n?")
_CLOSING_FENCE = re.compile(r"\n?```$")

TRUNCATION_MARKER = "\n// ... truncated"


def strip_code_fences(text: str) -> str:
    """Remove a markdown fence wrapping the whole response, if present."""
    content = text.strip()
    if content.startswith("```"):
        content = _CLOSING_FENCE.sub("", _OPENING_FENCE.sub("", content, count=1), count=1)
    return content


def truncate(content: str, limit: int) -> str:
    """Cut content to ``limit`` characters, marking that it was cut."""
    if len(content) <= limit:
        return content
    return content[:limit] + TRUNCATION_MARKER


def _first_json_object(text: str) -> Optional[str]:
    """Find the first balanced {...} block in free text."""
    brace_start = text.find("{")
    if brace_start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i, char in enumerate(text[brace_start:], start=brace_start):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[brace_start:i + 1]
    return None


def parse_model_json(raw: str, model: Type[T], what: str) -> T:
    """
    Validate a model response against a pydantic schema.

    Tries the fence-stripped response first, then the first JSON object
    embedded in it (models sometimes wrap JSON in prose despite json mode).

    Raises:
        ResponseParseError: if neither candidate matches the schema
    """
    content = strip_code_fences(raw)

    try:
        return model.model_validate_json(content)
    except ValidationError as e:
        error = e

    embedded = _first_json_object(content)
    if embedded is not None and embedded != content:
        try:
            return model.model_validate_json(embedded)
        except ValidationError as e:
            error = e

    detail = error.errors()[0]["msg"] if error.errors() else str(error)
    raise ResponseParseError(what, detail, raw=raw)


def parse_response(response: ExecutionResponse, model: Type[T], what: str) -> T:
    """
    ``parse_model_json`` for an engine response.

    A parse failure carries the response's token usage and cost so callers
    can still account for the call.
    """
    try:
        return parse_model_json(response.content, model, what)
    except ResponseParseError as e:
        e.tokens_used = response.total_tokens
        e.cost = response.cost
        raise
