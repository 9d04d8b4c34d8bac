"""Text formatting helpers for preview output."""

import re

from cli_agent_loop.constants import PREVIEW_TEXT_MAX_LENGTH

WHITESPACE_PATTERN = re.compile(r"\s+")


def format_short(text: str, max_length: int = PREVIEW_TEXT_MAX_LENGTH) -> str:
    """Collapse whitespace and clip to max_length, marking clipped text with '...'."""
    compact = WHITESPACE_PATTERN.sub(" ", text).strip()
    if len(compact) <= max_length:
        return compact
    return f"{compact[:max_length]}..."


def wrap_text(text: str, max_width: int) -> list[str]:
    """Greedy word wrap; blank input lines are kept as empty strings."""
    width = max(24, max_width)
    lines: list[str] = []
    for raw_line in text.split("\n"):
        words = raw_line.split()
        if not words:
            lines.append("")
            continue
        line = ""
        for word in words:
            if not line:
                line = word
            elif len(f"{line} {word}") <= width:
                line = f"{line} {word}"
            else:
                lines.append(line)
                line = word
        if line:
            lines.append(line)
    return lines
