"""Provider adapter protocol.

Each agent CLI gets one adapter that satisfies this capability set. Adapters are
independent classes; callers never branch on which tool is active.
"""

from typing import Optional, Protocol, runtime_checkable

from cli_agent_loop.models.preview import Number, PreviewEntry, UsageSummary
from cli_agent_loop.models.provider import CliOptions, ProviderDefaults


@runtime_checkable
class ProviderAdapter(Protocol):
    name: str
    display_name: str
    defaults: ProviderDefaults

    def build_exec_args(
        self, prompt: str, last_message_path: str, options: CliOptions
    ) -> list[str]: ...

    def preview_entries_from_line(self, line: str) -> list[PreviewEntry]: ...

    def collect_messages(self, output: str) -> list[PreviewEntry]: ...

    def collect_raw_json_lines(self, output: str, preview_count: int) -> list[str]: ...

    def extract_usage_summary(self, output: str) -> Optional[UsageSummary]: ...

    def extract_retry_delay_seconds(self, output: str) -> Optional[Number]: ...

    def has_stop_marker(self, output: str) -> bool: ...

    def format_command_hint(self, command: str) -> str: ...
