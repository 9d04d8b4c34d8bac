"""Claude Code provider implementation."""

import logging
import sys
from typing import Any, Optional

from cli_agent_loop.constants import LOG_BASE_DIR, PREVIEW_DETAIL_MAX_LENGTH
from cli_agent_loop.models.preview import Number, PreviewEntry, PreviewKind, UsageSummary
from cli_agent_loop.models.provider import CliOptions, ProviderDefaults
from cli_agent_loop.providers.parsing import (
    CACHED_INPUT_TOKEN_KEYS,
    collect_preview_entries,
    collect_raw_json_lines,
    contains_stop_marker,
    entry_from_type_tag,
    first_present,
    first_string_value,
    is_record,
    nonblank_lines,
    safe_json_parse,
    to_json_candidates,
    usage_summary_from_record,
)
from cli_agent_loop.providers.retry import extract_retry_delay_from_output
from cli_agent_loop.utils.text import format_short

logger = logging.getLogger(__name__)

CLAUDE_FIRST_STRING_KEYS = (
    "text",
    "content",
    "message",
    "result",
    "thinking",
    "output",
    "summary",
    "data",
    "name",
    "input",
)
# Arguments worth showing next to a tool name, most specific first
TOOL_INPUT_KEYS = ("command", "file_path", "pattern", "path", "url", "query", "description")
# Claude reports prompt-cache reads under its own key
CLAUDE_CACHED_INPUT_TOKEN_KEYS = (
    CACHED_INPUT_TOKEN_KEYS[0],
    "cache_read_input_tokens",
    *CACHED_INPUT_TOKEN_KEYS[1:],
)


def _claude_text(value: Any) -> str:
    return first_string_value(value, CLAUDE_FIRST_STRING_KEYS)


class ClaudeCodeProvider:
    """Provider for Claude Code CLI tool integration (`--output-format stream-json`)."""

    name = "claude"
    display_name = "Claude Code"
    defaults = ProviderDefaults(
        command="claude",
        log_dir=f"{LOG_BASE_DIR}/claude-loop",
        model="",
        reasoning_effort="high",
        yolo=True,
    )

    @staticmethod
    def _tool_use_text(block: dict) -> str:
        name = block.get("name") if isinstance(block.get("name"), str) else "tool"
        tool_input = block.get("input")
        detail = ""
        if is_record(tool_input):
            detail = first_string_value(tool_input, TOOL_INPUT_KEYS)
        return f"{name}: {detail}" if detail else name

    def _entry_from_block(self, event_type: str, block: dict) -> Optional[PreviewEntry]:
        """Classify one content block of an assistant/user message."""
        block_type = block.get("type") if isinstance(block.get("type"), str) else ""

        if block_type == "tool_use":
            return PreviewEntry(
                kind=PreviewKind.TOOL,
                label="tool",
                text=format_short(self._tool_use_text(block), PREVIEW_DETAIL_MAX_LENGTH),
            )
        if block_type == "tool_result":
            payload = _claude_text(block.get("content"))
            if not payload:
                return None
            return PreviewEntry(
                kind=PreviewKind.TOOL,
                label="tool",
                text=format_short(payload, PREVIEW_DETAIL_MAX_LENGTH),
            )
        if block_type in ("thinking", "redacted_thinking"):
            payload = _claude_text(first_present(block, "thinking", "text"))
            if not payload:
                return None
            return PreviewEntry(
                kind=PreviewKind.REASONING,
                label="reasoning",
                text=format_short(payload, PREVIEW_DETAIL_MAX_LENGTH),
            )

        payload = _claude_text(block)
        if not payload:
            return None
        # Text blocks take their kind from the enclosing event (assistant vs user)
        type_tag = event_type if block_type == "text" else block_type or event_type
        return entry_from_type_tag(type_tag, payload)

    def _entries_from_event(self, event: dict) -> list[PreviewEntry]:
        event_type = event.get("type").lower() if isinstance(event.get("type"), str) else ""

        message = event.get("message")
        content = message.get("content") if is_record(message) else None
        if isinstance(content, list) and any(
            is_record(block) and isinstance(block.get("type"), str) for block in content
        ):
            entries = []
            for block in content:
                if not is_record(block):
                    continue
                entry = self._entry_from_block(event_type, block)
                if entry:
                    entries.append(entry)
            if entries:
                return entries

        payload = _claude_text(
            first_present(event, "message", "content", "text", "delta", "result") or event
        )
        if not payload:
            return []
        return [entry_from_type_tag(event_type, payload)]

    def preview_entries_from_line(self, line: str) -> list[PreviewEntry]:
        """Classify one stream-json line; non-JSON lines produce nothing."""
        entries: list[PreviewEntry] = []
        for value in to_json_candidates(line):
            events = value if isinstance(value, list) else [value]
            for event in events:
                if is_record(event):
                    entries.extend(self._entries_from_event(event))
        return entries

    def collect_messages(self, output: str) -> list[PreviewEntry]:
        return collect_preview_entries(output, self.preview_entries_from_line)

    def collect_raw_json_lines(self, output: str, preview_count: int) -> list[str]:
        return collect_raw_json_lines(output, preview_count)

    def extract_usage_summary(self, output: str) -> Optional[UsageSummary]:
        """Read usage from the first line exposing it at top level, or under result/message."""
        for line in nonblank_lines(output):
            parsed = safe_json_parse(line)
            if not is_record(parsed):
                continue

            usage = None
            if is_record(parsed.get("usage")):
                usage = parsed["usage"]
            elif is_record(parsed.get("result")) and is_record(parsed["result"].get("usage")):
                usage = parsed["result"]["usage"]
            elif is_record(parsed.get("message")) and is_record(parsed["message"].get("usage")):
                usage = parsed["message"]["usage"]
            if usage is None:
                continue

            summary = usage_summary_from_record(usage, cached_keys=CLAUDE_CACHED_INPUT_TOKEN_KEYS)
            logger.debug("Claude Code usage found: %s", summary)
            return summary
        return None

    def extract_retry_delay_seconds(self, output: str) -> Optional[Number]:
        return extract_retry_delay_from_output(output)

    def has_stop_marker(self, output: str) -> bool:
        return contains_stop_marker(output)

    def format_command_hint(self, command: str) -> str:
        if sys.platform != "win32":
            return f'make sure "{command}" is installed and available in PATH'
        return (
            "on Windows, pass --command with a full path like "
            '"C:/Users/<user>/AppData/Roaming/npm/claude.CMD"'
        )

    def build_exec_args(
        self, prompt: str, last_message_path: str, options: CliOptions
    ) -> list[str]:
        """Build `claude -p` arguments.

        stream-json output requires --verbose in print mode. Claude Code has no
        last-message file, so last_message_path is unused.
        """
        args = ["-p", prompt, "--output-format", "stream-json", "--verbose"]
        model = options.model.strip()
        if model:
            args.extend(["--model", model])
        if options.yolo:
            args.extend(["--permission-mode", "bypassPermissions"])
        return args


claude_code_provider = ClaudeCodeProvider()
