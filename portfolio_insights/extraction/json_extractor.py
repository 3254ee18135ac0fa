"""Recover structured JSON data from free-form model output.

Model responses rarely arrive as clean JSON. They may be wrapped in markdown
fences, preceded by reasoning, followed by sign-offs, or contain raw newlines
pasted into string values. The extractor tries a fixed cascade of strategies
and returns the first candidate that parses:

1. direct      - the whole trimmed text
2. fenced      - first ``` code block (with or without a language tag)
3. object      - first '{' to last '}'
4. array       - first '[' to last ']'
5. multiline   - line scan with bracket depth counting
6. whole_text  - the trimmed text after sanitizing

Every candidate after the direct attempt is sanitized before parsing.
"""

import json
import re
from typing import Any, Callable

import structlog
from pydantic import BaseModel, model_validator

logger = structlog.get_logger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_LEADING_NOISE = re.compile(r"^[\s\ufeff]+")
_FENCE_PATTERNS = (
    re.compile(r"```json\s*\n?([\s\S]*?)\n?```", re.IGNORECASE),
    re.compile(r"```[\w-]*\s*\n?([\s\S]*?)\n?```"),
)

# Lines skipped by the multiline scan before and inside a JSON block.
SKIPPED_LINE_PREFIXES = ("//", "#", "解析：", "解析:")


class ExtractionResult(BaseModel):
    """Outcome of a single extraction attempt."""

    success: bool
    data: Any = None
    raw_match: str | None = None
    method: str | None = None
    error: str | None = None

    @model_validator(mode="after")
    def _no_data_on_failure(self) -> "ExtractionResult":
        if not self.success and self.data is not None:
            raise ValueError("failed extraction cannot carry data")
        return self


# =============================================================================
# Sanitizer
# =============================================================================

def sanitize_json_string(text: str) -> str:
    """Clean common formatting problems in model-produced JSON.

    Removes stray control characters and any run of BOMs or whitespace at
    the start, then walks the text once, escaping literal newlines, carriage
    returns and tabs that appear inside string values. Escaped quotes do not
    end a string.

    Args:
        text: Candidate JSON text.

    Returns:
        Sanitized text. Applying the function twice gives the same result.
    """
    cleaned = _LEADING_NOISE.sub("", _CONTROL_CHARS.sub("", text)).rstrip()

    out: list[str] = []
    in_string = False
    previous_was_escape = False

    for char in cleaned:
        if previous_was_escape:
            out.append(char)
            previous_was_escape = False
            continue
        if char == "\\":
            out.append(char)
            previous_was_escape = True
            continue
        if char == '"':
            in_string = not in_string
            out.append(char)
            continue
        if in_string:
            if char == "\n":
                out.append("\\n")
                continue
            if char == "\r":
                out.append("\\r")
                continue
            if char == "\t":
                out.append("\\t")
                continue
        out.append(char)

    return "".join(out)


# =============================================================================
# Strategies
# =============================================================================

def looks_like_json(text: str) -> bool:
    """Check whether text is wrapped in matching object or array brackets."""
    trimmed = text.strip()
    return (trimmed.startswith("{") and trimmed.endswith("}")) or (
        trimmed.startswith("[") and trimmed.endswith("]")
    )


def parse_direct(text: str) -> str | None:
    """Return the trimmed input as the direct-parse candidate."""
    trimmed = text.strip()
    return trimmed or None


def extract_fenced_block(text: str) -> str | None:
    """Return the content of the first markdown code block holding JSON."""
    for pattern in _FENCE_PATTERNS:
        match = pattern.search(text)
        if match and match.group(1):
            content = match.group(1).strip()
            if looks_like_json(content):
                return content
    return None


def extract_object_span(text: str) -> str | None:
    """Return the span from the first '{' to the last '}'."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start:end + 1].strip()


def extract_array_span(text: str) -> str | None:
    """Return the span from the first '[' to the last ']'."""
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end <= start:
        return None
    return text[start:end + 1].strip()


def _first_bracket(line: str) -> int:
    positions = [idx for idx in (line.find("{"), line.find("[")) if idx != -1]
    return min(positions) if positions else -1


def extract_multiline_span(text: str) -> str | None:
    """Locate a JSON block by counting bracket depth line by line.

    Blank lines and comment or narrative lines are skipped. Counting starts
    at the first line containing an opening bracket (cut at that bracket)
    and stops at the line where the combined brace/bracket depth returns
    to zero. Brackets inside string values are not counted.

    Args:
        text: Raw model output.

    Returns:
        The joined lines of the block, or None if no balanced block exists.
    """
    collected: list[str] = []
    depth = 0
    in_string = False
    escaped = False

    for raw_line in text.split("\n"):
        line = raw_line.strip()

        if not collected:
            if not line or line.startswith(SKIPPED_LINE_PREFIXES):
                continue
            start = _first_bracket(line)
            if start == -1:
                continue
            line = line[start:]
        elif not in_string and (not line or line.startswith(SKIPPED_LINE_PREFIXES)):
            continue

        collected.append(line)

        for char in line:
            if escaped:
                escaped = False
                continue
            if char == "\\" and in_string:
                escaped = True
                continue
            if char == '"':
                in_string = not in_string
                continue
            if in_string:
                continue
            if char in "{[":
                depth += 1
            elif char in "}]":
                depth -= 1

        if depth == 0 and not in_string:
            return "\n".join(collected).strip()

    return None


def extract_whole_text(text: str) -> str | None:
    """Return the trimmed input as a last resort."""
    trimmed = text.strip()
    return trimmed or None


# =============================================================================
# Extractor
# =============================================================================

class JsonExtractor:
    """Ordered cascade of extraction strategies."""

    STRATEGIES: tuple[tuple[str, Callable[[str], str | None]], ...] = (
        ("fenced", extract_fenced_block),
        ("object", extract_object_span),
        ("array", extract_array_span),
        ("multiline", extract_multiline_span),
        ("whole_text", extract_whole_text),
    )

    @classmethod
    def extract(cls, text: str | None) -> ExtractionResult:
        """Extract and parse JSON from text. Never raises.

        Args:
            text: Raw model output.

        Returns:
            ExtractionResult with parsed data on success, or an error message.
        """
        if not isinstance(text, str) or not text.strip():
            return ExtractionResult(success=False, error="Empty response text")

        direct = parse_direct(text)
        try:
            return ExtractionResult(
                success=True,
                data=json.loads(direct),
                raw_match=direct,
                method="direct",
            )
        except (TypeError, ValueError):
            pass

        last_error = "No JSON content found in text"
        for name, strategy in cls.STRATEGIES:
            try:
                candidate = strategy(text)
            except Exception as e:
                logger.debug("extraction_strategy_crashed", method=name, error=str(e))
                continue
            if not candidate:
                continue

            sanitized = sanitize_json_string(candidate)
            try:
                data = json.loads(sanitized)
            except ValueError as e:
                last_error = f"{name}: {e}"
                continue

            if not isinstance(data, (dict, list)):
                last_error = f"{name}: parsed value is not an object or array"
                continue

            return ExtractionResult(
                success=True,
                data=data,
                raw_match=sanitized,
                method=name,
            )

        logger.debug(
            "json_extraction_failed",
            error=last_error,
            preview=text[:200],
        )
        return ExtractionResult(success=False, error=last_error)


def extract_json(text: str | None) -> ExtractionResult:
    """Convenience wrapper around JsonExtractor.extract."""
    return JsonExtractor.extract(text)


def try_parse_json(text: str | None, fallback: Any = None) -> Any:
    """Return parsed JSON from text, or ``fallback`` when nothing parses."""
    result = JsonExtractor.extract(text)
    return result.data if result.success else fallback
