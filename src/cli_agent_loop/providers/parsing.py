"""Fail-soft parsing helpers shared by the provider adapters.

Agent CLIs print near-JSON lines with no shared schema. Everything here is pure
and total: malformed input yields an empty result, never an exception.
"""

import json
import math
import re
from typing import Any, Callable, Optional, Sequence

from cli_agent_loop.constants import MAX_VALUE_DEPTH, PREVIEW_DETAIL_MAX_LENGTH, STOP_MARKERS
from cli_agent_loop.models.preview import Number, PreviewEntry, PreviewKind, UsageSummary
from cli_agent_loop.utils.text import format_short

LINE_SPLIT_PATTERN = re.compile(r"\r?\n")
LEADING_NUMBER_PATTERN = re.compile(r"^\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")

# Preferred keys for pulling readable text out of arbitrary event payloads
DEFAULT_FIRST_STRING_KEYS = (
    "text",
    "content",
    "message",
    "output",
    "result",
    "summary",
    "data",
    "name",
    "input",
)

# Usage field spellings, checked in order; first positive value wins
INPUT_TOKEN_KEYS = ("input_tokens", "inputTokens")
CACHED_INPUT_TOKEN_KEYS = ("cached_input_tokens", "cachedInputTokens")
OUTPUT_TOKEN_KEYS = ("output_tokens", "outputTokens")


def is_record(value: Any) -> bool:
    return isinstance(value, dict)


def safe_json_parse(text: str) -> Optional[Any]:
    """Parse JSON text, returning None when it is not valid JSON."""
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


def to_json_candidates(line: str) -> list[Any]:
    """Return the structured value carried by a line, if any.

    The trimmed line is parsed directly first. When that fails, the span from the
    first '{' to the last '}' is tried, which recovers JSON behind log prefixes
    such as timestamps or level tags. At most one value is returned.
    """
    trimmed = line.strip()
    if not trimmed:
        return []

    direct = safe_json_parse(trimmed)
    if direct is not None:
        return [direct]

    start = trimmed.find("{")
    end = trimmed.rfind("}")
    if start >= 0 and end > start:
        embedded = safe_json_parse(trimmed[start : end + 1])
        if embedded is not None:
            return [embedded]

    return []


def first_string_value(
    value: Any,
    preferred_keys: Sequence[str] = DEFAULT_FIRST_STRING_KEYS,
    _depth: int = 0,
) -> str:
    """Extract the most relevant human-readable text from a parsed value.

    Strings are trimmed. Lists join their non-empty parts with newlines. Dicts
    return the first preferred key that yields text, falling back to every other
    value in insertion order joined by single spaces. Anything else is empty.

    Each value is visited at most once, so run time stays linear in the size of
    a parsed JSON tree.
    """
    if _depth > MAX_VALUE_DEPTH:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple)):
        parts = (first_string_value(entry, preferred_keys, _depth + 1) for entry in value)
        return "\n".join(part for part in parts if part).strip()
    if not isinstance(value, dict):
        return ""

    for key in preferred_keys:
        nested = first_string_value(value.get(key), preferred_keys, _depth + 1)
        if nested:
            return nested

    # Preferred keys already came back empty
    parts = (
        first_string_value(entry, preferred_keys, _depth + 1)
        for key, entry in value.items()
        if key not in preferred_keys
    )
    return " ".join(part for part in parts if part).strip()


def first_present(record: dict, *keys: str) -> Any:
    """Return the first value among keys that is present and not null."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def to_positive_number(value: Any) -> Optional[Number]:
    """Coerce value to a finite number > 0, else None.

    Numeric strings are read by their leading number ("12s" -> 12.0).
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        numeric = value
    elif isinstance(value, str):
        match = LEADING_NUMBER_PATTERN.match(value)
        if not match:
            return None
        numeric = float(match.group(0))
    else:
        return None

    if isinstance(numeric, float) and not math.isfinite(numeric):
        return None
    if numeric <= 0:
        return None
    return numeric


def first_positive(record: dict, keys: Sequence[str]) -> Optional[Number]:
    for key in keys:
        found = to_positive_number(record.get(key))
        if found is not None:
            return found
    return None


def usage_summary_from_record(
    usage: dict,
    input_keys: Sequence[str] = INPUT_TOKEN_KEYS,
    cached_keys: Sequence[str] = CACHED_INPUT_TOKEN_KEYS,
    output_keys: Sequence[str] = OUTPUT_TOKEN_KEYS,
) -> UsageSummary:
    """Read token counters from a usage record; absent counters become 0."""
    return UsageSummary(
        input_tokens=first_positive(usage, input_keys) or 0,
        cached_input_tokens=first_positive(usage, cached_keys) or 0,
        output_tokens=first_positive(usage, output_keys) or 0,
    )


def entry_from_type_tag(
    type_tag: str, payload: str, detail_max_length: int = PREVIEW_DETAIL_MAX_LENGTH
) -> PreviewEntry:
    """Classify payload by keywords in an event's type tag."""
    tag = type_tag.lower()
    if "tool" in tag:
        return PreviewEntry(
            kind=PreviewKind.TOOL, label="tool", text=format_short(payload, detail_max_length)
        )
    if "think" in tag or "reason" in tag:
        return PreviewEntry(
            kind=PreviewKind.REASONING,
            label="reasoning",
            text=format_short(payload, detail_max_length),
        )
    if "error" in tag:
        return PreviewEntry(
            kind=PreviewKind.ERROR, label="error", text=format_short(payload, detail_max_length)
        )
    if "assistant" in tag or "message" in tag or "result" in tag:
        return PreviewEntry(
            kind=PreviewKind.ASSISTANT, label="assistant", text=format_short(payload)
        )
    return PreviewEntry(
        kind=PreviewKind.MESSAGE, label=tag or "message", text=format_short(payload)
    )


def split_output_lines(output: str) -> list[str]:
    return LINE_SPLIT_PATTERN.split(output)


def nonblank_lines(output: str) -> list[str]:
    return [line.strip() for line in split_output_lines(output) if line.strip()]


def collect_preview_entries(
    output: str, entries_from_line: Callable[[str], list[PreviewEntry]]
) -> list[PreviewEntry]:
    """Run a per-line classifier over output, keeping line order."""
    messages: list[PreviewEntry] = []
    for line in split_output_lines(output):
        messages.extend(entries_from_line(line))
    return messages


def collect_raw_json_lines(output: str, preview_count: int) -> list[str]:
    """Return the last preview_count non-empty lines that contain a brace."""
    if preview_count <= 0:
        return []
    lines = [line for line in nonblank_lines(output) if "{" in line or "}" in line]
    return lines[-preview_count:]


def contains_stop_marker(output: str) -> bool:
    """Case-insensitive containment check for any no-more-work phrase."""
    normalized = output.lower()
    return any(marker in normalized for marker in STOP_MARKERS)
