"""Loop decisions derived from normalized provider output."""

import logging
from typing import Iterable, Optional, Sequence

from cli_agent_loop.models.preview import Number, PreviewEntry, PreviewKind, UsageSummary
from cli_agent_loop.providers.adapter import ProviderAdapter

logger = logging.getLogger(__name__)


def should_stop_from_provider_output(
    provider: ProviderAdapter,
    preview_entries: Sequence[PreviewEntry],
    last_message_text: str,
) -> bool:
    """Decide whether the run loop should halt.

    Only assistant entries and the captured last message count. Tool entries
    are ignored because agents routinely echo the stop phrase in shell commands
    and grep output.
    """
    assistant_text = "\n".join(
        entry.text for entry in preview_entries if entry.kind == PreviewKind.ASSISTANT
    )
    if provider.has_stop_marker(assistant_text):
        logger.info(f"{provider.display_name} stop marker found in assistant output")
        return True
    if provider.has_stop_marker(last_message_text):
        logger.info(f"{provider.display_name} stop marker found in last message")
        return True
    return False


def resolve_retry_delay(
    provider: ProviderAdapter, failed_outputs: Sequence[str]
) -> Optional[Number]:
    """Return how long to wait before retrying an iteration, or None to fail it.

    A retry only happens when every failed agent reported a backoff hint; the
    loop then waits for the longest of them.
    """
    if not failed_outputs:
        return None
    delays = [provider.extract_retry_delay_seconds(output) for output in failed_outputs]
    if any(delay is None for delay in delays):
        return None
    return max(delays)


def aggregate_usage(summaries: Iterable[Optional[UsageSummary]]) -> Optional[UsageSummary]:
    """Sum per-agent usage; None when no agent reported any."""
    total: Optional[UsageSummary] = None
    for summary in summaries:
        if summary is None:
            continue
        total = summary if total is None else total + summary
    return total
