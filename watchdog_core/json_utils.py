"""
JSON utilities for handling malformed model responses.
"""
import re
import json
import logging
from typing import Any, List, Optional

logger = logging.getLogger(__name__)

_RE_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]')
_RE_TEXTUAL_HEX_ESCAPE = re.compile(r'\\x[0-9A-Fa-f]{2}')
_RE_TRAILING_COMMA = re.compile(r',\s*([}\]])')
_RE_FENCED_BLOCK = re.compile(r'```([A-Za-z0-9_-]*)[ \t]*\n?(.*?)```', re.DOTALL)

_CLOSERS = {'{': '}', '[': ']'}


def _missing_closers(json_str: str) -> str:
    """Closers (innermost first) needed to finish a truncated structure."""
    stack: List[str] = []
    in_string = False
    escaped = False
    for ch in json_str:
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in '}]' and stack and stack[-1] == ch:
            stack.pop()
    return ('"' if in_string else '') + ''.join(reversed(stack))


def sanitize_json_string(json_str: str) -> str:
    """
    Repair common model-output damage in a JSON candidate.

    Args:
        json_str: Raw JSON candidate

    Returns:
        Sanitized JSON string
    """
    if not json_str:
        return ""

    json_str = json_str.encode('utf-8', errors='ignore').decode('utf-8')

    # Control characters break the decoder even in lenient mode
    json_str = _RE_CONTROL_CHARS.sub('', json_str)
    json_str = _RE_TEXTUAL_HEX_ESCAPE.sub('', json_str)

    json_str += _missing_closers(json_str)
    json_str = _RE_TRAILING_COMMA.sub(r'\1', json_str)

    # Missing commas between adjacent objects/arrays
    json_str = re.sub(r'}\s*{', '},{', json_str)
    json_str = re.sub(r']\s*\[', '],[', json_str)

    # Unquoted numeric ranges (e.g. 800 - 1300)
    json_str = re.sub(r':\s*([0-9]+\s*[-+*/]\s*[0-9]+)\s*,', r': "\1",', json_str)

    return json_str


def safe_json_parse(json_str: str) -> Optional[Any]:
    """
    Parse a JSON candidate: strict, then lenient, then sanitized.

    Args:
        json_str: JSON string to parse

    Returns:
        Parsed value, or None when every attempt fails
    """
    if not json_str or not json_str.strip():
        return None

    decoder = json.JSONDecoder(strict=False)
    for candidate in (json_str, sanitize_json_string(json_str)):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            pass
        try:
            return decoder.decode(candidate)
        except json.JSONDecodeError as e:
            logger.debug(f"JSON parse attempt failed at pos {e.pos}: {e.msg}")
    return None


def extract_fenced_blocks(response: str, label: Optional[str] = None) -> List[str]:
    """
    Return the bodies of ``` fenced blocks in order.

    Args:
        response: Raw model response
        label: Only keep blocks with this language label (case-insensitive)

    Returns:
        List of block bodies
    """
    blocks = []
    for match in _RE_FENCED_BLOCK.finditer(response or ""):
        block_label, body = match.group(1), match.group(2)
        if label is not None and block_label.lower() != label.lower():
            continue
        blocks.append(body.strip())
    return blocks


def extract_balanced_json(response: str) -> Optional[str]:
    """
    Slice from the first '{' or '[' to its matching closer.

    Brackets inside string literals are ignored.  When the text is truncated
    before the structure closes, everything from the opener onwards is
    returned so the sanitizer can try to close it.
    """
    if not response:
        return None

    starts = [i for i in (response.find('{'), response.find('[')) if i >= 0]
    if not starts:
        return None
    start = min(starts)

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(response)):
        ch = response[pos]
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in '{[':
            depth += 1
        elif ch in '}]':
            depth -= 1
            if depth == 0:
                return response[start:pos + 1]
    return response[start:]


def parse_llm_json(raw_response: str, fallback: Optional[Any] = None) -> Any:
    """Extract and parse the first JSON structure found in a model response.

    Args:
        raw_response: The raw text returned by the model.
        fallback: Value returned when nothing parses.

    Returns:
        Parsed dict or list (or fallback).
    """
    text = raw_response or ""
    candidates = extract_fenced_blocks(text, label="json") + extract_fenced_blocks(text)
    balanced = extract_balanced_json(text)
    if balanced:
        candidates.append(balanced)

    for candidate in candidates:
        data = safe_json_parse(candidate)
        if isinstance(data, (dict, list)):
            return data
    return fallback
