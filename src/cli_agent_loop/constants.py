"""Constants for CLI Agent Loop (CAL).

This module defines the configuration constants shared by the provider adapters,
the stop policy and the live run state store.

CAL drives coding-agent CLIs (Codex, Claude Code, GitHub Copilot) through repeated
iterations and normalizes their output streams into one preview/usage model.
"""

from cli_agent_loop.models.provider import ProviderType
from cli_agent_loop.utils.env import _get_int_env

# =============================================================================
# Provider Configuration
# =============================================================================
# Available providers - derived from the ProviderType enum for consistency
PROVIDERS = [p.value for p in ProviderType]

# Default provider used when no provider is named
DEFAULT_PROVIDER = ProviderType.CODEX.value

# Per-provider log directories live under this base, relative to the project root
LOG_BASE_DIR = ".ai_agents/logs"

# =============================================================================
# Stop Markers
# =============================================================================
# Phrases an agent prints when there is no more work; matched case-insensitively.
# The "beads" spellings are legacy and kept for older prompts.
STOP_MARKERS = (
    "no tasks available",
    "no_tasks_available",
    "no beads available",
    "no_beads_available",
)

# =============================================================================
# Preview Formatting
# =============================================================================
# Maximum characters kept for assistant/message preview text
PREVIEW_TEXT_MAX_LENGTH = _get_int_env("CAL_PREVIEW_TEXT_MAX", 300)

# Tool, reasoning and error entries are noisier and get a tighter bound
PREVIEW_DETAIL_MAX_LENGTH = 200

# Shell commands are summarized even tighter inside tool entries
COMMAND_SUMMARY_MAX_LENGTH = 140

# Bound applied when a preview entry is stored in the live view
LIVE_LINE_MAX_LENGTH = 220

# Number of preview lines kept per agent when not configured
DEFAULT_PREVIEW_LINES = _get_int_env("CAL_DEFAULT_PREVIEW_LINES", 5)

# Recursion cap for heuristics walking untrusted JSON
MAX_VALUE_DEPTH = 32

# =============================================================================
# Retry Detection
# =============================================================================
# JSON keys that carry a suggested wait (seconds) in rate-limit payloads
RETRY_DELAY_KEYS = (
    "resets_in_seconds",
    "reset_seconds",
    "retry_after_seconds",
)

# =============================================================================
# Live Run State
# =============================================================================
# Iteration markers kept in the timeline; older markers are dropped
MAX_TIMELINE_MARKERS = _get_int_env("CAL_TIMELINE_MAX_MARKERS", 200)

# Spinner frames cycled by tick_frame()
LIVE_SPINNER_FRAMES = ("-", "\\", "|", "/")
