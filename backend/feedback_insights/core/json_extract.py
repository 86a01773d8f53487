"""
Permissive extraction of a JSON value from free-form model output.

Models often wrap the JSON they were asked for in prose or markdown fences,
or stop mid-object when they hit a token limit. Everything that reads a
completion as JSON goes through `extract_json`, which never raises.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from feedback_insights.core.llm import ParseError

logger = logging.getLogger(__name__)

_OPENERS = {"object": "{", "array": "["}
_CLOSERS = {"{": "}", "[": "]"}


@dataclass
class ParseResult:
    """Outcome of an extraction: either `value` or `error` is set."""
    value: Any = None
    error: Optional[ParseError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _strip_fences(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        first_newline = stripped.find("\n")
        stripped = stripped[first_newline + 1:] if first_newline != -1 else stripped.lstrip("`")
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped


def _span_closes(body: str, start: int) -> bool:
    """True when the bracket opened at `start` is matched before the text ends."""
    depth = 0
    in_string = False
    escaped = False
    for ch in body[start:]:
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
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return True
    return False


def extract_json(text: Optional[str], expect: Optional[str] = None) -> ParseResult:
    """
    Locate and decode the first bracketed JSON span in `text`.

    Args:
        text: Raw completion text.
        expect: "object", "array", or None to accept whichever opener comes first.

    Returns:
        ParseResult with the decoded value, or with a ParseError when nothing parses.
    """
    if expect is not None and expect not in _OPENERS:
        raise ValueError(f"expect must be one of {list(_OPENERS)} or None, got {expect!r}")
    if not text or not text.strip():
        return ParseResult(error=ParseError("Empty completion"))

    body = _strip_fences(text)
    openers = [_OPENERS[expect]] if expect else ["{", "["]
    decoder = json.JSONDecoder()

    positions = sorted(i for i, ch in enumerate(body) if ch in openers)
    for pos in positions:
        try:
            value, _ = decoder.raw_decode(body, pos)
            return ParseResult(value=value)
        except json.JSONDecodeError:
            # An unclosed span means truncated output; every later opener
            # is nested inside it.
            if not _span_closes(body, pos):
                break

    # Greedy fallback: first opener to the last matching closer.
    if positions:
        start = positions[0]
        end = body.rfind(_CLOSERS[body[start]])
        if end > start:
            try:
                return ParseResult(value=json.loads(body[start:end + 1]))
            except json.JSONDecodeError:
                pass

    logger.debug(f"extract_json: No parsable JSON span found. Head of text: {body[:120]!r}")
    return ParseResult(error=ParseError("No valid JSON span found in completion"))


def parse_json_or_raise(text: Optional[str], expect: Optional[str] = None) -> Any:
    """Like `extract_json`, but raises ParseError instead of returning it."""
    result = extract_json(text, expect=expect)
    if not result.ok:
        raise result.error
    return result.value
