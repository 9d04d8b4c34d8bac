"""Provider models."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ReasoningEffort = Literal["low", "medium", "high"]


class ProviderType(str, Enum):
    """Supported coding-agent CLIs."""

    CODEX = "codex"
    CLAUDE = "claude"
    COPILOT = "copilot"


class ProviderDefaults(BaseModel):
    """Baseline configuration for one agent CLI."""

    model_config = ConfigDict(frozen=True)

    command: str
    log_dir: str
    model: str = ""
    reasoning_effort: ReasoningEffort = "high"
    yolo: bool = True


class CliOptions(BaseModel):
    """Run options passed to argument builders and the loop."""

    project_root: str = "."
    provider: str = ProviderType.CODEX.value
    command: str = ""
    model: str = ""
    reasoning_effort: ReasoningEffort = "high"
    yolo: bool = True
    log_dir: str = ""
    iteration_limit: int = Field(default=50, ge=1)
    preview_lines: int = Field(default=5, ge=1)
    parallel_agents: int = Field(default=1, ge=1)
    pause_ms: int = Field(default=0, ge=0)
    show_raw: bool = False
    review_enabled: bool = False
    review_max_fix_attempts: int = Field(default=1, ge=0)
    reviewer_provider: str = ""
    reviewer_model: str = ""

    @classmethod
    def from_defaults(cls, provider: str, defaults: ProviderDefaults, **overrides) -> "CliOptions":
        """Build options seeded from a provider's defaults, then apply overrides."""
        values = {
            "provider": provider,
            "command": defaults.command,
            "model": defaults.model,
            "reasoning_effort": defaults.reasoning_effort,
            "yolo": defaults.yolo,
            "log_dir": defaults.log_dir,
            "reviewer_provider": provider,
        }
        values.update(overrides)
        return cls(**values)
