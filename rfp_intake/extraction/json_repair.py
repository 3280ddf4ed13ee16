"""
JSON recovery for LLM responses.

Models wrap JSON in prose, <think> blocks and code fences, use smart
quotes, leave trailing commas, and get cut off mid-object. extract_json()
finds the widest span that parses; repair_json() fixes the common damage
and closes whatever brackets are still open.
"""

import json
import logging
import re
from typing import Any, Optional

logger = logging.getLogger(__name__)

_THINK = re.compile(r"<think>.*?(?:</think>|$)", re.DOTALL | re.IGNORECASE)
_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_TRAILING_COMMA = re.compile(r",\s*([}\]])")

SMART_QUOTES = {
    "“": '"', "”": '"', "„": '"', "‟": '"',
    "‘": "'", "’": "'", "‚": "'", "‛": "'",
}

_CLOSERS = {"{": "}", "[": "]"}


def normalize_quotes(text: str) -> str:
    for smart, plain in SMART_QUOTES.items():
        text = text.replace(smart, plain)
    return text


def _candidate(text: str) -> str:
    text = _THINK.sub("", text or "")
    fence = _FENCE.search(text)
    if fence:
        return fence.group(1).strip()
    return text.strip()


def _first_open(text: str) -> int:
    positions = [p for p in (text.find("{"), text.find("[")) if p != -1]
    return min(positions) if positions else -1


def extract_json(text: str) -> Optional[Any]:
    """
    Parse the first JSON object/array in an LLM response.

    Shrinks the candidate from the end until it parses, so trailing prose
    after the JSON is ignored. Returns None when nothing parses.
    """
    candidate = _candidate(text)
    start = _first_open(candidate)
    if start == -1:
        return None

    closer = _CLOSERS[candidate[start]]
    end = candidate.rfind(closer)
    while end > start:
        try:
            return json.loads(candidate[start:end + 1])
        except json.JSONDecodeError:
            end = candidate.rfind(closer, start, end)
    return None


def close_brackets(text: str) -> str:
    """Append the closers for any brackets (and string) left open."""
    stack = []
    in_string = False
    escaped = False
    for char in text:
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
        elif char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif char in "}]" and stack and stack[-1] == char:
            stack.pop()

    if in_string:
        text += '"'
    text = text.rstrip()
    if text.endswith(","):
        text = text[:-1]
    elif text.endswith(":"):
        text += " null"
    return text + "".join(reversed(stack))


def repair_json(text: str) -> Optional[Any]:
    """
    Best-effort repair of malformed JSON: smart quotes, trailing commas,
    unclosed brackets. Returns the parsed value or None.
    """
    candidate = normalize_quotes(_candidate(text))
    start = _first_open(candidate)
    if start == -1:
        return None

    # Smart quotes used as delimiters may be the only damage
    parsed = extract_json(candidate)
    if parsed is not None:
        return parsed
    candidate = candidate[start:]

    attempts = [
        _TRAILING_COMMA.sub(r"\1", candidate),
        _TRAILING_COMMA.sub(r"\1", close_brackets(candidate)),
        candidate + "}",
    ]
    for attempt in attempts:
        try:
            return json.loads(attempt)
        except json.JSONDecodeError:
            continue

    logger.warning(f"JSON repair failed for response of {len(text or '')} chars")
    return None


def parse_llm_json(text: str) -> Optional[Any]:
    """
    extract_json on the response as given, then repair_json.

    Quotes are only normalised on the repair path: curly quotes inside a
    valid string value are content, not delimiters.
    """
    if not text:
        return None
    parsed = extract_json(text)
    if parsed is not None:
        return parsed
    return repair_json(text)
