"""Best-effort extraction of a JSON object from LLM output."""

import json
import logging
import re

from core.errors import ExtractionError, ParseError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```json[ \t]*\n?(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"[\s\x00-\x1f\x7f]+")
_ESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)
_VALID_ESCAPES = set('"\\/bfnrtu')


def brace_span(text):
    """Return text from the first '{' to the last '}' inclusive."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1:
        raise ExtractionError("Cannot find a JSON object in the response")
    if end < start:
        raise ExtractionError("Closing brace precedes opening brace in the response")
    return text[start:end + 1]


def repair_json(text):
    """Collapse whitespace/control runs and drop backslashes before non-escape characters.

    Never reorders or removes keys; only whitespace and escaping change.
    """
    collapsed = _WHITESPACE_RE.sub(" ", text)

    def _fix(match):
        ch = match.group(1)
        return match.group(0) if ch in _VALID_ESCAPES else ch

    return _ESCAPE_RE.sub(_fix, collapsed)


def _candidates(raw_text):
    fence = _FENCE_RE.search(raw_text)
    if fence:
        try:
            yield brace_span(fence.group(1))
        except ExtractionError:
            # fence closed early, e.g. by ``` inside a code string
            logger.debug("Fenced json block holds no complete object; using whole text")
    yield brace_span(raw_text)


def _parse(candidate):
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass
    repaired = repair_json(candidate)
    try:
        return json.loads(repaired)
    except json.JSONDecodeError as e:
        raise ParseError(
            f"Malformed JSON after repair: {e.msg} (line {e.lineno}, column {e.colno})",
            original=candidate,
            repaired=repaired,
        ) from e


def extract_json(raw_text):
    """Isolate, repair and parse the single JSON object embedded in raw_text.

    A ```json fenced block wins over the surrounding text. Strict parsing is
    tried before the repair pass so well-formed output keeps its whitespace.

    Raises:
        ExtractionError: no {...} region could be located.
        ParseError: the located region is not valid JSON even after repair.
    """
    if not isinstance(raw_text, str):
        raise ExtractionError(f"Expected text, got {type(raw_text).__name__}")

    first_error = None
    seen = set()
    for candidate in _candidates(raw_text):
        if candidate in seen:
            continue
        seen.add(candidate)
        try:
            return _parse(candidate)
        except ParseError as e:
            logger.debug("JSON candidate rejected: %s", e)
            first_error = first_error or e
    raise first_error
