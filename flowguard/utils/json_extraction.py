"""
JSON Extraction Utilities

Recovers a structured value (object or array) from generated text:
- Markdown fences (```json preferred over a bare ```)
- Leading/trailing prose around the payload
- Truncated output (unterminated objects, arrays and strings)
- Common syntax damage (trailing commas, missing commas, trailing junk)
"""

import json
import logging
import re
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_JSON_FENCE = re.compile(r"```[ \t]*json[ \t]*\n?([\s\S]*?)```", re.IGNORECASE)
_ANY_FENCE = re.compile(r"```[A-Za-z0-9_+-]*[ \t]*\n?([\s\S]*?)```")
_OPEN_FENCE = re.compile(r"```[A-Za-z0-9_+-]*[ \t]*\n?")
_STRING_LITERAL = re.compile(r'"(?:\\.|[^"\\])*"')
_PLACEHOLDER = re.compile(r'"\x00(\d+)\x00"')

_CLOSER_FOR = {"{": "}", "[": "]"}

# Applied in order to the candidate with string literals masked out
_TRAILING_SEPARATOR = [(re.compile(r",(\s*[\]}])"), r"\1")]
_MISSING_SEPARATOR = [
    (re.compile(r"}(\s*){"), r"},\1{"),
    (re.compile(r"\](\s*)\["), r"],\1["),
    (re.compile(r'([}\]])(\s*)("[^"]*"\s*:)'), r"\1,\2\3"),
]


class ExtractionError(Exception):
    """Raised when no structured value can be recovered from the text."""

    def __init__(self, message: str, input_length: int, candidate: Optional[str] = None):
        super().__init__(message)
        self.input_length = input_length
        self.candidate = candidate

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": str(self),
            "inputLength": self.input_length,
            "candidate": self.candidate,
        }


class ExtractionResult(BaseModel):
    value: Union[Dict[str, Any], List[Any]]
    candidate: str
    recovered_by_truncation_repair: bool = False
    repairs_applied: List[str] = Field(default_factory=list)


class _Span(BaseModel):
    """A balanced (or truncated) region starting at an opening marker."""
    start: int
    end: int
    text: str
    pending_closers: List[str] = Field(default_factory=list)
    ends_inside_string: bool = False
    ends_mid_escape: bool = False

    @property
    def truncated(self) -> bool:
        return bool(self.pending_closers) or self.ends_inside_string


def extract(text: Any) -> ExtractionResult:
    """
    Extract a JSON object or array from generated text.

    Args:
        text: Raw generated text

    Returns:
        ExtractionResult with the parsed value and how it was recovered

    Raises:
        ExtractionError: If every recovery heuristic fails
    """
    if not isinstance(text, str):
        raise ExtractionError(
            f"Extraction input must be a string, got {type(text).__name__}", input_length=0
        )

    cleaned = text.strip()
    if not cleaned:
        raise ExtractionError("Extraction input is empty", input_length=len(text))

    first_candidate: Optional[str] = None

    for source in _sources(cleaned):
        parsed, value = _try_parse(source)
        if parsed:
            return ExtractionResult(value=value, candidate=source)

        for span in _spans(source):
            candidate = _close_truncated(span) if span.truncated else span.text
            if first_candidate is None:
                first_candidate = candidate

            repaired, repairs = repair_json_text(candidate)
            parsed, value = _try_parse(repaired)
            if not parsed:
                logger.debug(f"Candidate at offset {span.start} did not parse after repairs")
                continue

            if span.truncated:
                logger.warning(
                    f"Recovered truncated JSON by closing {len(span.pending_closers)} open structure(s)"
                )
            if repairs:
                logger.info(f"Applied JSON repairs: {', '.join(repairs)}")

            return ExtractionResult(
                value=value,
                candidate=repaired,
                recovered_by_truncation_repair=span.truncated,
                repairs_applied=repairs,
            )

    logger.error(f"JSON extraction failed (response length: {len(text)} chars)")
    raise ExtractionError(
        "No valid JSON object or array found in text",
        input_length=len(text),
        candidate=first_candidate,
    )


def try_extract(text: Any) -> Union[ExtractionResult, ExtractionError]:
    """Like :func:`extract`, but returns the error instead of raising it."""
    try:
        return extract(text)
    except ExtractionError as e:
        return e


def strip_fences(text: str) -> str:
    """Return the body of the first fenced block, preferring one labelled json."""
    match = _JSON_FENCE.search(text) or _ANY_FENCE.search(text)
    if match:
        return match.group(1).strip()

    # Opening fence whose closing fence was cut off
    opening = _OPEN_FENCE.search(text)
    if opening:
        return text[opening.end():].strip()

    return text


def scan_balanced(text: str, start: int) -> _Span:
    """
    Scan from an opening marker until nesting returns to zero.

    Markers inside string literals are ignored; a backslash inside a string
    escapes the next character, so an escaped quote does not end the string.
    """
    stack: List[str] = []
    in_string = False
    escaped = False

    for i in range(start, len(text)):
        ch = text[i]

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
        elif ch in _CLOSER_FOR:
            stack.append(_CLOSER_FOR[ch])
        elif ch in "]}":
            if stack:
                stack.pop()
            if not stack:
                return _Span(start=start, end=i + 1, text=text[start:i + 1])

    return _Span(
        start=start,
        end=len(text),
        text=text[start:],
        pending_closers=list(reversed(stack)),
        ends_inside_string=in_string,
        ends_mid_escape=in_string and escaped,
    )


def repair_json_text(candidate: str) -> Tuple[str, List[str]]:
    """
    Apply the fixed sequence of textual repairs outside string literals.

    Returns:
        (repaired text, names of the repairs that changed something)
    """
    literals: List[str] = []

    def _mask(match: "re.Match[str]") -> str:
        literals.append(match.group(0))
        return f'"\x00{len(literals) - 1}\x00"'

    masked = _STRING_LITERAL.sub(_mask, candidate)
    applied: List[str] = []

    for name, rules in (("trailing_separator", _TRAILING_SEPARATOR), ("missing_separator", _MISSING_SEPARATOR)):
        before = masked
        for pattern, replacement in rules:
            masked = pattern.sub(replacement, masked)
        if masked != before:
            applied.append(name)

    last_closer = max(masked.rfind("}"), masked.rfind("]"))
    if 0 <= last_closer < len(masked.rstrip()) - 1:
        masked = masked[:last_closer + 1]
        applied.append("trailing_content")

    repaired = _PLACEHOLDER.sub(lambda m: literals[int(m.group(1))], masked)
    return repaired, applied


def _sources(cleaned: str) -> List[str]:
    unfenced = strip_fences(cleaned)
    if unfenced == cleaned:
        return [cleaned]
    # A fenced block might hold an example rather than the payload
    return [unfenced, cleaned]


def _spans(source: str) -> Iterator[_Span]:
    """Candidates in text order; scanning resumes after each failed candidate."""
    position = _first_opening(source, 0)
    while position != -1:
        span = scan_balanced(source, position)
        yield span
        if span.truncated:
            return
        position = _first_opening(source, span.end)


def _first_opening(text: str, start: int) -> int:
    positions = [p for p in (text.find("[", start), text.find("{", start)) if p != -1]
    return min(positions) if positions else -1


def _close_truncated(span: _Span) -> str:
    closed = span.text
    if span.ends_inside_string:
        if span.ends_mid_escape:
            closed = closed[:-1]
        closed += '"'
    return closed + "".join(span.pending_closers)


def _try_parse(text: str) -> Tuple[bool, Any]:
    try:
        value = json.loads(text)
    except (ValueError, RecursionError):
        # Nesting beyond the decoder's recursion limit counts as unparseable
        return False, None
    return isinstance(value, (dict, list)), value
