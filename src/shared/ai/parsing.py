"""
Extract JSON payloads from free-form model output.
"""

import json
import re
from typing import Any

from shared.exceptions import LLMResponseError

CODE_FENCE = re.compile(r"```(?:[a-zA-Z]+)?\s*(.*?)```", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or the text unchanged."""
    match = CODE_FENCE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip().strip("`").strip()


def parse_json_response(content: str) -> Any:
    """
    Parse a JSON value out of model output.

    Tries the whole (fence-stripped) text first, then the widest span between
    the first opening bracket and the last matching closing bracket.

    Raises:
        LLMResponseError: if no JSON value can be recovered
    """
    if not content or not content.strip():
        raise LLMResponseError("Empty response from LLM")

    text = strip_code_fences(content)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    for opener, closer in (("[", "]"), ("{", "}")):
        start = text.find(opener)
        end = text.rfind(closer)
        if start != -1 and end > start:
            try:
                return json.loads(text[start : end + 1])
            except json.JSONDecodeError:
                continue

    raise LLMResponseError(f"Invalid AI response format: {text[:200]!r}")
