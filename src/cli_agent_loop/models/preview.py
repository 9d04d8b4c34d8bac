"""Preview and usage models produced by provider adapters."""

from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict

Number = Union[int, float]


class PreviewKind(str, Enum):
    """Normalized category of one unit of agent output."""

    ASSISTANT = "assistant"
    TOOL = "tool"
    REASONING = "reasoning"
    ERROR = "error"
    MESSAGE = "message"


class PreviewEntry(BaseModel):
    """A displayable unit of agent output."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    kind: PreviewKind
    label: str
    text: str


class UsageSummary(BaseModel):
    """Token counters for one agent iteration."""

    model_config = ConfigDict(frozen=True)

    input_tokens: Number = 0
    cached_input_tokens: Number = 0
    output_tokens: Number = 0

    @property
    def total_tokens(self) -> Number:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: "UsageSummary") -> "UsageSummary":
        if not isinstance(other, UsageSummary):
            return NotImplemented
        return UsageSummary(
            input_tokens=self.input_tokens + other.input_tokens,
            cached_input_tokens=self.cached_input_tokens + other.cached_input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )
