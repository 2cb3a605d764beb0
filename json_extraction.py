"""Robust JSON extraction from raw model text.

Model output arrives wrapped in markdown fences, prefixed with prose or
`plan = {...}` assignments, sprinkled with comments and trailing commas, or
cut off mid-structure. Extraction runs as explicit stages:

    unwrap_code_fence -> strip_assignment_prefixes
        -> locate_balanced_structure -> repair_json_text -> json.loads

Each stage is a plain function so it can be tested on its own. Failure is
always a ResponseParseError; nothing here returns an empty result silently.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional, Tuple

import json_repair

from generation_errors import ResponseParseError

# Truncated output is auto-closed only when at most this many brackets are open
MAX_AUTO_CLOSE = 2

_CODE_FENCE = re.compile(r"```(?:json|JSON)?[ \t]*\n?([\s\S]*?)\n?```")
_OPEN_FENCE = re.compile(r"^\s*```(?:json|JSON)?[ \t]*\n?")
_ASSIGNMENT_PREFIX = re.compile(r"^\s*(?:(?:const|let|var)\s+)?[A-Za-z_]\w*\s*=\s*(?=[\[{])")
_ASSIGNMENT_LINE = re.compile(r"^\s*(?:(?:const|let|var)\s+)?[A-Za-z_]\w*\s*=(?!=)")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_CLOSER_FOR = {"{": "}", "[": "]"}


def unwrap_code_fence(text: str) -> str:
    """Return the body of the first ``` fenced block, or the text unchanged.

    An opening fence with no closing fence (truncated output) is stripped.
    """
    match = _CODE_FENCE.search(text)
    if match:
        return match.group(1)
    return _OPEN_FENCE.sub("", text, count=1)


def strip_assignment_prefixes(text: str) -> str:
    """Drop `name = ` prefixes, bare assignment lines and comment lines."""
    kept: List[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith("#") or stripped.startswith("//"):
            continue
        if _ASSIGNMENT_PREFIX.match(line):
            kept.append(_ASSIGNMENT_PREFIX.sub("", line, count=1))
            continue
        if _ASSIGNMENT_LINE.match(line):
            continue
        kept.append(line)
    return "\n".join(kept)


def _scan(text: str, start: int = 0) -> Tuple[Optional[int], List[str], bool]:
    """Walk text from start, string- and escape-aware.

    Returns:
        (index where the structure opened at `start` closes or None,
         brackets still open at the end, whether the text ends inside a string)
    """
    stack: List[str] = []
    in_string = False
    escape_next = False

    for i in range(start, len(text)):
        char = text[i]
        if in_string:
            if escape_next:
                escape_next = False
            elif char == "\\":
                escape_next = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            stack.append(char)
        elif char in "}]":
            if not stack:
                continue
            stack.pop()
            if not stack:
                return i, [], False

    return None, stack, in_string


def locate_balanced_structure(text: str) -> Optional[str]:
    """Find the outermost JSON structure that starts first in the text.

    A balanced object wins unless a balanced array opens earlier and encloses
    it. An object that never closes (truncated output) is returned as the tail
    from its opening brace even when inner arrays close, so repair_json_text
    can patch the outer structure instead of an inner fragment being parsed.
    """
    obj_start = text.find("{")
    arr_start = text.find("[")

    if obj_start != -1:
        obj_end, _, _ = _scan(text, obj_start)
        if obj_end is not None:
            if arr_start != -1 and arr_start < obj_start:
                arr_end, _, _ = _scan(text, arr_start)
                if arr_end is not None and arr_end > obj_end:
                    return text[arr_start : arr_end + 1]
            return text[obj_start : obj_end + 1]
        if arr_start == -1 or obj_start < arr_start:
            return text[obj_start:].rstrip()

    if arr_start != -1:
        arr_end, _, _ = _scan(text, arr_start)
        if arr_end is not None:
            return text[arr_start : arr_end + 1]

    starts = [index for index in (obj_start, arr_start) if index != -1]
    if not starts:
        return None
    return text[min(starts) :].rstrip()


def strip_comments(text: str) -> str:
    """Remove // line comments and /* block */ comments outside of strings."""
    out: List[str] = []
    i = 0
    in_string = False
    escape_next = False
    length = len(text)

    while i < length:
        char = text[i]
        if in_string:
            out.append(char)
            if escape_next:
                escape_next = False
            elif char == "\\":
                escape_next = True
            elif char == '"':
                in_string = False
            i += 1
            continue

        if char == '"':
            in_string = True
            out.append(char)
            i += 1
        elif text.startswith("//", i):
            newline = text.find("\n", i)
            i = length if newline == -1 else newline
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = length if end == -1 else end + 2
        else:
            out.append(char)
            i += 1

    return "".join(out)


def open_brackets(text: str) -> Tuple[List[str], bool]:
    """Brackets left open at the end of text, and whether a string is open."""
    stack: List[str] = []
    in_string = False
    escape_next = False
    for char in text:
        if in_string:
            if escape_next:
                escape_next = False
            elif char == "\\":
                escape_next = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            stack.append(char)
        elif char in "}]" and stack:
            stack.pop()
    return stack, in_string


def repair_json_text(text: str) -> str:
    """Apply conservative textual repairs to a located JSON candidate.

    Strips comments and control characters, removes trailing commas and
    auto-closes at most MAX_AUTO_CLOSE missing brackets.
    """
    repaired = strip_comments(text)
    repaired = _CONTROL_CHARS.sub("", repaired)
    repaired = _TRAILING_COMMA.sub(r"\1", repaired)

    stack, in_string = open_brackets(repaired)
    if stack and len(stack) <= MAX_AUTO_CLOSE:
        if in_string:
            repaired += '"'
        repaired = repaired.rstrip().rstrip(",")
        repaired += "".join(_CLOSER_FOR[opener] for opener in reversed(stack))
        repaired = _TRAILING_COMMA.sub(r"\1", repaired)

    return repaired


def extract_json(text: Optional[str]) -> Any:
    """Extract and parse the JSON value embedded in raw model output.

    Args:
        text: Raw model response

    Returns:
        The parsed object or array (never empty)

    Raises:
        ResponseParseError: when no usable JSON structure can be recovered
    """
    if not text or not text.strip():
        raise ResponseParseError("empty model response")

    cleaned = strip_assignment_prefixes(unwrap_code_fence(text))
    candidate = locate_balanced_structure(cleaned)
    if candidate is None:
        raise ResponseParseError("no JSON object or array found in model response")

    repaired = repair_json_text(candidate)
    try:
        value = json.loads(repaired, strict=False)
    except json.JSONDecodeError as e:
        stack, in_string = open_brackets(repaired)
        if stack or in_string:
            raise ResponseParseError(
                f"model JSON is truncated ({len(stack)} unclosed brackets): {e}"
            ) from e
        # Balanced but still invalid (unquoted keys, single quotes...)
        try:
            value = json_repair.repair_json(repaired, return_objects=True)
        except Exception as repair_error:  # pylint: disable=broad-except
            raise ResponseParseError(f"could not parse model JSON: {e}") from repair_error
        if not isinstance(value, (dict, list)) or not value:
            raise ResponseParseError(f"could not parse model JSON: {e}") from e

    if isinstance(value, (dict, list)) and not value:
        raise ResponseParseError("model returned an empty JSON structure")
    return value


def extract_json_object(text: Optional[str]) -> Dict[str, Any]:
    """Like extract_json, but always returns an object.

    A top-level array yields its first object element.
    """
    value = extract_json(text)
    if isinstance(value, dict):
        return value
    if isinstance(value, list):
        for item in value:
            if isinstance(item, dict):
                return item
    raise ResponseParseError(f"expected a JSON object, got {type(value).__name__}")
