"""
Response Sanitizer

Recovers a JSON object from raw model text. Each stage is a pure function:

  1. fence-strip   — prefer a ```json block, else any ``` block
  2. brace-trim    — keep the span from the first '{' to the last '}'
  3. strict parse
  4. control-char  — replace raw newline / CR / tab with a space, parse once more

Stages 2-4 run on the fence interior first, then on the whole reply. A
reply that is itself a JSON object may carry fenced code inside a string.
If nothing parses, MalformedModelOutput carries the original text.
Partial structures are never guessed.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

from generation.errors import MalformedModelOutput

log = logging.getLogger("generation.pipeline")


_JSON_FENCE = re.compile(r"```(?:json|JSON)[ \t]*\r?\n?(.*?)```", re.DOTALL)
_ANY_FENCE = re.compile(r"```[A-Za-z0-9_+-]*[ \t]*\r?\n?(.*?)```", re.DOTALL)
_CONTROL_CHARS = re.compile(r"[\n\r\t]")


# ─── Stages ────────────────────────────────────────────────────────────────────

def strip_fences(text: str) -> str:
    """Return the interior of the first labelled JSON fence, else of any fence, else the text."""
    match = _JSON_FENCE.search(text)
    if match:
        return match.group(1)
    match = _ANY_FENCE.search(text)
    if match:
        return match.group(1)
    return text


def trim_to_braces(text: str) -> Optional[str]:
    """Narrow to the substring between the first '{' and the last '}'."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def replace_control_chars(text: str) -> str:
    return _CONTROL_CHARS.sub(" ", text)


def _parse_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def _recover_object(text: str) -> Optional[Dict[str, Any]]:
    candidate = trim_to_braces(text)
    if candidate is None:
        return None
    data = _parse_object(candidate)
    if data is None:
        data = _parse_object(replace_control_chars(candidate))
    return data


# ─── Entry point ───────────────────────────────────────────────────────────────

def sanitize(raw_text: str) -> Dict[str, Any]:
    """
    Extract a JSON object from model output.

    Raises:
        MalformedModelOutput: when no stage yields a JSON object
    """
    if not raw_text or not raw_text.strip():
        raise MalformedModelOutput(raw_text or "", "Model returned an empty response")

    fenced = strip_fences(raw_text)
    sources = [fenced, raw_text] if fenced != raw_text else [raw_text]
    for source in sources:
        data = _recover_object(source)
        if data is not None:
            return data

    log.warning(f"[SANITIZE] No parseable JSON object: {raw_text[:200]!r}")
    raise MalformedModelOutput(raw_text)
