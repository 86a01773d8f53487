"""
Best-effort attribution of a feedback chunk to a named person.

The patterns are heuristics; a miss returns None and callers show no
attribution rather than a placeholder.
"""

import re
from typing import Optional

_NAME = r"[A-Z][a-z]+(?:\s+[A-Z][a-z]+)+"
_TWO_WORD_NAME = r"[A-Z][a-z]+\s+[A-Z][a-z]+"

# Ordered: the first pattern that matches wins.
_PATTERNS = [
    # "Name: Jane Doe", "From: Jane Doe", "Interviewee: Jane Doe"
    re.compile(r"(?i:name|from|by|customer|user|participant|interviewee):\s*(" + _NAME + r")"),
    # "Jane Doe said ...", "Jane Doe mentioned ..."
    re.compile(r"^(" + _TWO_WORD_NAME + r")\s+(?i:said|mentioned|noted|commented|reported|stated|explained)\b"),
    # Sign-offs: "Best regards, Jane Doe"
    re.compile(r"(?i:regards|thanks|sincerely|best),?\s*(" + _TWO_WORD_NAME + r")"),
    # Quote attribution: "..." - Jane Doe
    re.compile(r"[\"“”].*?[\"“”][\s\-–—]*(" + _TWO_WORD_NAME + r")"),
]

_FIRST_LINE = re.compile(r"^(" + _TWO_WORD_NAME + r")(?:\s|$|:|-)")


def extract_source_name(content: Optional[str]) -> Optional[str]:
    """Return a personal name found in `content`, or None."""
    if not content:
        return None

    for pattern in _PATTERNS:
        match = pattern.search(content)
        if match:
            return match.group(1).strip()

    first_line = content.split("\n", 1)[0]
    match = _FIRST_LINE.match(first_line)
    if match:
        return match.group(1).strip()
    return None
