"""Live run state models.

Every model here is a frozen value. The live run state store is the only writer;
it replaces whole models instead of editing them in place.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from cli_agent_loop.models.preview import UsageSummary

Tone = Literal["neutral", "info", "success", "warn", "error", "muted"]
AgentTab = Literal["dev", "review"]
ReviewPhaseName = Literal["reviewing", "fixing"]
IterationOutcome = Literal["success", "failed"]
SpawnPhase = Literal["queued", "launching"]
RenderPhase = Literal["queued", "launching", "waiting"]
LoopPhase = Literal[
    "starting",
    "running",
    "collecting",
    "retry_wait",
    "paused",
    "completed",
    "stopped",
    "failed",
]

AGENT_TABS = ("dev", "review")
ITERATION_OUTCOMES = ("success", "failed")


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class TaskIssue(_Frozen):
    """Task/issue record an agent worked on."""

    id: str
    title: str
    status: str
    priority: Optional[int] = None
    assignee: Optional[str] = None


class TasksSnapshot(_Frozen):
    """Counts from the task tracker, refreshed between iterations."""

    available: bool
    source: str
    project_root: str
    total: int = 0
    remaining: int = 0
    open: int = 0
    in_progress: int = 0
    blocked: int = 0
    closed: int = 0
    deferred: int = 0
    remaining_issues: tuple[TaskIssue, ...] = ()
    error: Optional[str] = None

    def issue_by_id(self, issue_id: str) -> Optional[TaskIssue]:
        return next((issue for issue in self.remaining_issues if issue.id == issue_id), None)


class RunContext(_Frozen):
    """Per-iteration description of what is running where."""

    started_at: float
    command: str
    batch: str
    provider: str
    project: str
    project_key: str
    agent_log_paths: dict[int, str] = Field(default_factory=dict)


class IterationSummary(_Frozen):
    """Result of one completed iteration, always replaced as a whole."""

    usage: Optional[UsageSummary] = None
    picked_tasks_by_agent: dict[int, TaskIssue] = Field(default_factory=dict)
    notice: Optional[str] = None
    notice_tone: Tone = "muted"


class AgentReviewPhase(_Frozen):
    phase: ReviewPhaseName
    fix_attempt: int = 0
    task_id: str


class AgentSelectorState(_Frozen):
    """Which tab the viewer shows for an agent, plus its review sub-state."""

    active_tab: AgentTab = "dev"
    restore_tab: Optional[AgentTab] = None
    review_phase: Optional[AgentReviewPhase] = None


class IterationMarker(_Frozen):
    iteration: int
    retry_count: int = 0
    succeeded: bool = False
    failed: bool = False
    is_current: bool = False


class IterationTimeline(_Frozen):
    current_iteration: int
    total_retries: int
    total_failed: int
    markers: tuple[IterationMarker, ...] = ()


class LivePreviewLine(_Frozen):
    label: str
    tone: Tone
    text: str


class LiveAgentSnapshot(_Frozen):
    total_events: int = 0
    last_updated_at: float
    lines: tuple[LivePreviewLine, ...] = ()


class AgentSpawnState(_Frozen):
    phase: SpawnPhase
    message: str


class LiveRunState(_Frozen):
    """Point-in-time view of a whole run, handed to the renderer."""

    started_at: float
    frame_index: int = 0
    running: bool = True
    status_message: str = "starting"
    status_tone: Tone = "info"
    iteration: int
    max_iterations: int
    preview_lines: int
    agent_ids: tuple[int, ...] = ()
    agent_state: dict[int, LiveAgentSnapshot] = Field(default_factory=dict)
    agent_spawn_state: dict[int, AgentSpawnState] = Field(default_factory=dict)
    tasks_snapshot: Optional[TasksSnapshot] = None
    agent_picked_tasks: dict[int, TaskIssue] = Field(default_factory=dict)
    agent_selectors: dict[int, AgentSelectorState] = Field(default_factory=dict)
    agent_log_paths: dict[int, str] = Field(default_factory=dict)
    run_context: Optional[RunContext] = None
    last_iteration_summary: Optional[IterationSummary] = None
    loop_notice: Optional[str] = None
    loop_notice_tone: Tone = "muted"
    loop_phase: LoopPhase = "starting"
    pause_ms: Optional[int] = None
    retry_seconds: Optional[float] = None
    iteration_markers: tuple[IterationMarker, ...] = ()
    cancelled_iterations: frozenset[int] = frozenset()


class LiveRunHeaderState(_Frozen):
    running: bool
    elapsed_seconds: float
    spinner: str
    tone: Tone
    status_message: str
    iteration: int
    max_iterations: int
    ratio: float
    percent: int


class LiveRunAgentSelector(_Frozen):
    """Everything the renderer needs to draw one agent's panel header."""

    agent_id: int
    active_tab: AgentTab
    restore_tab: Optional[AgentTab]
    review_phase: Optional[AgentReviewPhase]
    picked_task: Optional[TaskIssue]
    status_label: str
    status_tone: Tone
    status_text: str
    detail_text: str
    last_updated_at: float
    age_seconds: int
    total_events: int
    phase: RenderPhase
