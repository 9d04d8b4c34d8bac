"""GitHub Copilot CLI provider implementation."""

import logging
import sys
from typing import Any, Optional

from cli_agent_loop.constants import LOG_BASE_DIR
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

COPILOT_FIRST_STRING_KEYS = ("text", "content", "message", "output", "result", "summary", "data")


def _copilot_text(value: Any) -> str:
    return first_string_value(value, COPILOT_FIRST_STRING_KEYS)


class CopilotProvider:
    """Provider for GitHub Copilot CLI tool integration.

    `copilot -p ... -s` prints mostly plain text, so unlike the other adapters a
    non-JSON line is kept as an assistant entry instead of being dropped.
    """

    name = "copilot"
    display_name = "GitHub Copilot"
    defaults = ProviderDefaults(
        command="copilot",
        log_dir=f"{LOG_BASE_DIR}/copilot-loop",
        model="",
        reasoning_effort="high",
        yolo=True,
    )

    @staticmethod
    def _entry_from_record(record: dict) -> Optional[PreviewEntry]:
        event_type = record.get("type") if isinstance(record.get("type"), str) else ""
        payload = _copilot_text(
            first_present(record, "message", "content", "text", "delta", "result") or record
        )
        if not payload:
            return None
        return entry_from_type_tag(event_type, payload)

    def preview_entries_from_line(self, line: str) -> list[PreviewEntry]:
        trimmed = line.strip()
        if not trimmed:
            return []

        entries: list[PreviewEntry] = []
        for value in to_json_candidates(trimmed):
            records = value if isinstance(value, list) else [value]
            for record in records:
                if not is_record(record):
                    continue
                entry = self._entry_from_record(record)
                if entry:
                    entries.append(entry)

        if not entries:
            entries.append(
                PreviewEntry(
                    kind=PreviewKind.ASSISTANT, label="assistant", text=format_short(trimmed)
                )
            )
        return entries

    def collect_messages(self, output: str) -> list[PreviewEntry]:
        return collect_preview_entries(output, self.preview_entries_from_line)

    def collect_raw_json_lines(self, output: str, preview_count: int) -> list[str]:
        return collect_raw_json_lines(output, preview_count)

    def extract_usage_summary(self, output: str) -> Optional[UsageSummary]:
        """Read usage from the first line with a top-level usage record."""
        for line in nonblank_lines(output):
            parsed = safe_json_parse(line)
            if not is_record(parsed) or not is_record(parsed.get("usage")):
                continue
            summary = usage_summary_from_record(parsed["usage"])
            logger.debug("Copilot usage found: %s", summary)
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
            '"C:/Users/<user>/AppData/Local/Programs/GitHub Copilot/copilot.exe"'
        )

    def build_exec_args(
        self, prompt: str, last_message_path: str, options: CliOptions
    ) -> list[str]:
        args = ["-p", prompt, "-s"]
        model = options.model.strip()
        if model:
            args.extend(["--model", model])
        if options.yolo:
            args.append("--allow-all")
        return args


copilot_provider = CopilotProvider()
