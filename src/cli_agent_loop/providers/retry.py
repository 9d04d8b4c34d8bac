"""Provider-independent detection of rate-limit / backoff hints."""

import logging
import re
from typing import Any, Optional, Sequence

from cli_agent_loop.constants import MAX_VALUE_DEPTH, RETRY_DELAY_KEYS
from cli_agent_loop.models.preview import Number
from cli_agent_loop.providers.parsing import nonblank_lines, to_json_candidates, to_positive_number

logger = logging.getLogger(__name__)

# "try again in 30 seconds", "retry after 5s", ...
SECOND_RETRY_PATTERN = re.compile(
    r"(?:try again|retry).{0,30}?(\d+)\s*(?:seconds?|secs?|s)\b", re.IGNORECASE
)
MINUTE_RETRY_PATTERN = re.compile(
    r"(?:try again|retry).{0,30}?(\d+)\s*(?:minutes?|mins?|m)\b", re.IGNORECASE
)


def _find_retry_delay(value: Any, keys: Sequence[str], depth: int = 0) -> Optional[Number]:
    """Depth-first search for the first positive retry key in a parsed value."""
    if depth > MAX_VALUE_DEPTH:
        return None
    if isinstance(value, list):
        for entry in value:
            found = _find_retry_delay(entry, keys, depth + 1)
            if found is not None:
                return found
        return None
    if not isinstance(value, dict):
        return None

    for key in keys:
        found = to_positive_number(value.get(key))
        if found is not None:
            return found

    for nested in value.values():
        found = _find_retry_delay(nested, keys, depth + 1)
        if found is not None:
            return found
    return None


def extract_retry_delay_from_output(
    output: str, keys: Sequence[str] = RETRY_DELAY_KEYS
) -> Optional[Number]:
    """Return the suggested wait in seconds, or None when output has no hint.

    Structured payloads win over prose: every JSON line is searched for a retry
    key before the text is scanned for "retry ... N seconds/minutes" phrasing.
    """
    for line in nonblank_lines(output):
        for value in to_json_candidates(line):
            found = _find_retry_delay(value, keys)
            if found is not None:
                logger.debug("Retry delay %ss found in structured output", found)
                return found

    second_match = SECOND_RETRY_PATTERN.search(output)
    if second_match:
        return int(second_match.group(1)) or None
    minute_match = MINUTE_RETRY_PATTERN.search(output)
    if minute_match:
        return int(minute_match.group(1)) * 60 or None
    return None
