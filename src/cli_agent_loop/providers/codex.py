"""Codex CLI provider implementation."""

import logging
import re
import sys
from typing import Any, Optional

from cli_agent_loop.constants import (
    COMMAND_SUMMARY_MAX_LENGTH,
    LOG_BASE_DIR,
    PREVIEW_DETAIL_MAX_LENGTH,
)
from cli_agent_loop.models.preview import Number, PreviewEntry, PreviewKind, UsageSummary
from cli_agent_loop.models.provider import CliOptions, ProviderDefaults
from cli_agent_loop.providers.parsing import (
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

# `codex exec --json` wraps every agent action in an item lifecycle event
ITEM_EVENT_TYPES = {"item.started", "item.completed", "item.delta"}
TURN_COMPLETED_TYPE = "turn.completed"
# Codex on Windows runs shell steps as `powershell.exe -Command "..."`
POWERSHELL_COMMAND_PATTERN = re.compile(r"-Command\s+(.+)$", re.IGNORECASE)
SURROUNDING_QUOTES_PATTERN = re.compile(r"^['\"]|['\"]$")

CODEX_FIRST_STRING_KEYS = ("text", "content", "output", "message", "data", "summary")


def _codex_text(value: Any) -> str:
    return first_string_value(value, CODEX_FIRST_STRING_KEYS)


class CodexProvider:
    """Provider for Codex CLI tool integration."""

    name = "codex"
    display_name = "Codex"
    defaults = ProviderDefaults(
        command="codex",
        log_dir=f"{LOG_BASE_DIR}/codex-loop",
        model="gpt-5.3-codex-spark",
        reasoning_effort="high",
        yolo=True,
    )

    @staticmethod
    def _summarize_command(command: str) -> str:
        """Compact a shell command, unwrapping PowerShell -Command payloads."""
        compact = " ".join(command.split())
        match = POWERSHELL_COMMAND_PATTERN.search(compact)
        if match:
            extracted = SURROUNDING_QUOTES_PATTERN.sub("", match.group(1).strip())
            return format_short(extracted, COMMAND_SUMMARY_MAX_LENGTH)
        return format_short(compact, COMMAND_SUMMARY_MAX_LENGTH)

    def _entry_from_item(self, event_type: str, item: dict) -> Optional[PreviewEntry]:
        item_type = item.get("type") if isinstance(item.get("type"), str) else "item"

        if item_type == "agent_message":
            payload = _codex_text(first_present(item, "text", "content", "message"))
            if not payload:
                return None
            return PreviewEntry(
                kind=PreviewKind.ASSISTANT, label="assistant", text=format_short(payload)
            )

        if item_type == "reasoning":
            payload = _codex_text(first_present(item, "text", "summary", "content", "message"))
            if not payload:
                return None
            return PreviewEntry(
                kind=PreviewKind.REASONING,
                label="reasoning",
                text=format_short(payload, PREVIEW_DETAIL_MAX_LENGTH),
            )

        if item_type == "command_execution" or "tool" in item_type or "call" in item_type:
            command_text = _codex_text(first_present(item, "command", "input", "name"))
            if not command_text:
                return None
            status = item.get("status") if isinstance(item.get("status"), str) else ""
            exit_code = item.get("exit_code")
            if isinstance(exit_code, bool) or not isinstance(exit_code, (int, float)):
                exit_code = None

            if status:
                status_prefix = f"{status}: "
            elif event_type == "item.started":
                status_prefix = "in_progress: "
            else:
                status_prefix = ""
            suffix = "" if exit_code is None else f" (exit {exit_code})"
            return PreviewEntry(
                kind=PreviewKind.TOOL,
                label="tool",
                text=f"{status_prefix}{self._summarize_command(command_text)}{suffix}",
            )

        fallback_text = _codex_text(item)
        if not fallback_text:
            return None
        if "reason" in item_type:
            kind = PreviewKind.REASONING
        elif "error" in item_type:
            kind = PreviewKind.ERROR
        else:
            kind = PreviewKind.MESSAGE
        return PreviewEntry(kind=kind, label=item_type, text=format_short(fallback_text))

    def _entry_from_event(self, event: dict) -> Optional[PreviewEntry]:
        """Classify one Codex JSON event."""
        event_type = event.get("type") if isinstance(event.get("type"), str) else ""

        if event_type in ITEM_EVENT_TYPES:
            item = event.get("item")
            if not is_record(item):
                return None
            return self._entry_from_item(event_type, item)

        if event_type == "error":
            payload = _codex_text(first_present(event, "error", "message") or event)
            if not payload:
                return None
            return PreviewEntry(kind=PreviewKind.ERROR, label="error", text=format_short(payload))

        payload = _codex_text(first_present(event, "message", "content", "text"))
        if not payload:
            return None
        return entry_from_type_tag(event_type, payload)

    def preview_entries_from_line(self, line: str) -> list[PreviewEntry]:
        """Classify one line of `codex exec --json` output.

        Non-JSON lines produce nothing: Codex prints progress chatter on stdout
        that is not worth previewing.
        """
        entries: list[PreviewEntry] = []
        for value in to_json_candidates(line):
            events = value if isinstance(value, list) else [value]
            for event in events:
                if not is_record(event):
                    continue
                entry = self._entry_from_event(event)
                if entry:
                    entries.append(entry)
        return entries

    def collect_messages(self, output: str) -> list[PreviewEntry]:
        return collect_preview_entries(output, self.preview_entries_from_line)

    def collect_raw_json_lines(self, output: str, preview_count: int) -> list[str]:
        return collect_raw_json_lines(output, preview_count)

    def extract_usage_summary(self, output: str) -> Optional[UsageSummary]:
        """Read usage from the first `turn.completed` event that carries it."""
        for line in nonblank_lines(output):
            parsed = safe_json_parse(line)
            if not is_record(parsed) or parsed.get("type") != TURN_COMPLETED_TYPE:
                continue
            usage = parsed.get("usage")
            if not is_record(usage):
                continue
            summary = usage_summary_from_record(usage)
            logger.debug("Codex usage found: %s", summary)
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
            '"C:/Users/<user>/AppData/Local/pnpm/codex.CMD"'
        )

    def build_exec_args(
        self, prompt: str, last_message_path: str, options: CliOptions
    ) -> list[str]:
        """Build `codex exec` arguments; the prompt itself is written to stdin."""
        args = ["exec", "--json"]
        model = options.model.strip()
        if model:
            args.extend(["-m", model])
        args.extend(["-c", f'reasoning_effort="{options.reasoning_effort}"'])
        if options.yolo:
            args.append("--yolo")
        args.extend(["--output-last-message", last_message_path, "-"])
        return args


codex_provider = CodexProvider()
