import json
import re
from typing import List, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import AIUnavailable


M = TypeVar("M", bound=BaseModel)

_LEADING_FENCE = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"\n?```\s*$")
_CLOSERS = {"{": "}", "[": "]"}


def clean_json_response(text: str) -> str:
    """
    Turn a model answer into something json.loads can take.

    Strips markdown code fences, drops trailing garbage after the last closing
    brace/bracket, then closes whatever objects and arrays the model left open
    when its output was cut short.
    """
    if not text:
        return "{}"

    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _LEADING_FENCE.sub("", cleaned)
        cleaned = _TRAILING_FENCE.sub("", cleaned)
    cleaned = cleaned.strip()

    if not cleaned.endswith(("}", "]")):
        last = max(cleaned.rfind("}"), cleaned.rfind("]"))
        if last != -1:
            cleaned = cleaned[: last + 1]

    return _close_open_brackets(cleaned.strip())


def _close_open_brackets(text: str) -> str:
    stack: List[str] = []
    in_string = False
    escaped = False
    for ch in text:
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
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in ("}", "]") and stack and stack[-1] == ch:
            stack.pop()
    return text + "".join(reversed(stack))


def parse_model(text: str, model: Type[M]) -> M:
    """Sanitize, decode and validate a model answer. Raises AIUnavailable on any failure."""
    cleaned = clean_json_response(text)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise AIUnavailable(f"Unparsable response: {exc}") from exc
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise AIUnavailable(f"Response does not match {model.__name__}: {exc}") from exc
