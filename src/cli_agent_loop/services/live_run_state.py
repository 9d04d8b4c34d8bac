"""Live run state shared by the loop, its agent workers and the renderer.

The store owns every piece of mutable run state. Each mutator takes the lock,
builds the next state copy-on-write and swaps one reference, so a mutator call
is the unit of atomicity. Readers get deep copies and never see internal
mappings by reference.

Worker-facing mutators accept an optional ``iteration``. A write tagged with an
iteration that was cancelled, or that is no longer current, is dropped inside
the same lock acquisition, so a cancelled worker cannot touch the view.
"""

import logging
import threading
import time
from typing import Callable, Iterable, Optional

from cli_agent_loop.constants import (
    LIVE_LINE_MAX_LENGTH,
    LIVE_SPINNER_FRAMES,
    MAX_TIMELINE_MARKERS,
)
from cli_agent_loop.models.preview import PreviewEntry
from cli_agent_loop.models.run_state import (
    AGENT_TABS,
    ITERATION_OUTCOMES,
    AgentReviewPhase,
    AgentSelectorState,
    AgentSpawnState,
    AgentTab,
    IterationMarker,
    IterationOutcome,
    IterationSummary,
    IterationTimeline,
    LiveAgentSnapshot,
    LivePreviewLine,
    LiveRunAgentSelector,
    LiveRunHeaderState,
    LiveRunState,
    LoopPhase,
    RunContext,
    TaskIssue,
    TasksSnapshot,
    Tone,
)
from cli_agent_loop.utils.text import format_short

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


def label_tone(label: str) -> Tone:
    """Map a preview label to the tone used to color it."""
    normalized = label.lower()
    if "error" in normalized:
        return "error"
    if "tool" in normalized or "command" in normalized:
        return "info"
    if "reasoning" in normalized:
        return "muted"
    if "assistant" in normalized:
        return "success"
    if "warn" in normalized:
        return "warn"
    return "neutral"


def _with_current_flags(
    markers: Iterable[IterationMarker], current_iteration: int
) -> tuple[IterationMarker, ...]:
    flagged = []
    for marker in markers:
        is_current = marker.iteration == current_iteration
        if marker.is_current != is_current:
            marker = marker.model_copy(update={"is_current": is_current})
        flagged.append(marker)
    return tuple(flagged)


class LiveRunStateStore:
    """Thread-safe aggregate of one run's live state."""

    def __init__(
        self,
        iteration: int,
        max_iterations: int,
        agent_ids: Iterable[int],
        preview_lines: int,
        clock: Callable[[], float] = time.time,
    ):
        self._lock = threading.RLock()
        self._listeners: list[Listener] = []
        self._clock = clock
        self._state = LiveRunState(
            started_at=clock(),
            iteration=iteration,
            max_iterations=max_iterations,
            preview_lines=max(1, preview_lines),
            agent_ids=tuple(sorted(agent_ids)),
        )

    # -- listeners ------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _emit(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener()

    def _commit(self, **changes) -> None:
        """Swap in the next state. Caller must hold the lock."""
        self._state = self._state.model_copy(update=changes)

    def _accepts_worker_write(self, iteration: Optional[int]) -> bool:
        """Caller must hold the lock."""
        state = self._state
        if not state.running:
            return False
        if iteration is None:
            return True
        return iteration == state.iteration and iteration not in state.cancelled_iterations

    # -- readers --------------------------------------------------------------

    def get_snapshot(self) -> LiveRunState:
        with self._lock:
            return self._state.model_copy(deep=True)

    def is_running(self) -> bool:
        with self._lock:
            return self._state.running

    def is_iteration_active(self, iteration: int) -> bool:
        with self._lock:
            return self._accepts_worker_write(iteration)

    def get_header_state(self, now: Optional[float] = None) -> LiveRunHeaderState:
        now = self._clock() if now is None else now
        with self._lock:
            state = self._state
        safe_total = max(1, state.max_iterations)
        ratio = max(0.0, min(1.0, state.iteration / safe_total))
        return LiveRunHeaderState(
            running=state.running,
            elapsed_seconds=max(0.0, now - state.started_at),
            spinner=(
                LIVE_SPINNER_FRAMES[state.frame_index % len(LIVE_SPINNER_FRAMES)]
                if state.running
                else ""
            ),
            tone="info" if state.running else state.status_tone,
            status_message=state.status_message,
            iteration=state.iteration,
            max_iterations=state.max_iterations,
            ratio=ratio,
            percent=round(ratio * 100),
        )

    def get_agent_selector(
        self, agent_id: int, now: Optional[float] = None
    ) -> LiveRunAgentSelector:
        now = self._clock() if now is None else now
        with self._lock:
            state = self._state
        selector = state.agent_selectors.get(agent_id) or AgentSelectorState()
        snapshot = state.agent_state.get(agent_id)
        spawn = state.agent_spawn_state.get(agent_id)
        common = {
            "agent_id": agent_id,
            "active_tab": selector.active_tab,
            "restore_tab": selector.restore_tab,
            "review_phase": selector.review_phase,
            "picked_task": state.agent_picked_tasks.get(agent_id),
        }

        if snapshot is None:
            if spawn is not None and spawn.phase == "launching":
                status = ("SPAWN", "info", "launch in progress", spawn.message, "launching")
            elif spawn is not None and spawn.phase == "queued":
                status = ("QUEUED", "warn", "awaiting launch", spawn.message, "queued")
            else:
                status = ("WAIT", "muted", "waiting for events", "waiting for events", "waiting")
            label, tone, text, detail, phase = status
            return LiveRunAgentSelector(
                **common,
                status_label=label,
                status_tone=tone,
                status_text=text,
                detail_text=detail,
                last_updated_at=now,
                age_seconds=0,
                total_events=0,
                phase=phase,
            )

        age_seconds = max(0, int(now - snapshot.last_updated_at))
        return LiveRunAgentSelector(
            **common,
            status_label="EVENTS",
            status_tone="muted",
            status_text=f"events {snapshot.total_events}",
            detail_text=f"updated {age_seconds}s ago",
            last_updated_at=snapshot.last_updated_at,
            age_seconds=age_seconds,
            total_events=snapshot.total_events,
            phase="waiting",
        )

    def get_iteration_timeline(self) -> IterationTimeline:
        """Per-iteration retry/outcome markers; totals are summed fresh on every call."""
        with self._lock:
            state = self._state
        current = state.iteration
        markers = list(state.iteration_markers)
        if not any(marker.iteration == current for marker in markers):
            markers.append(IterationMarker(iteration=current))
            markers.sort(key=lambda marker: marker.iteration)
        markers = _with_current_flags(markers, current)
        return IterationTimeline(
            current_iteration=current,
            total_retries=sum(marker.retry_count for marker in markers),
            total_failed=sum(1 for marker in markers if marker.failed),
            markers=markers,
        )

    # -- run-level mutators ---------------------------------------------------

    def set_status(self, message: str, tone: Tone = "info") -> None:
        with self._lock:
            self._commit(status_message=message, status_tone=tone)
        self._emit()

    def set_iteration(self, iteration: int) -> None:
        with self._lock:
            self._commit(
                iteration=iteration,
                iteration_markers=_with_current_flags(self._state.iteration_markers, iteration),
            )
        self._emit()

    def set_run_context(self, context: RunContext) -> None:
        with self._lock:
            self._commit(run_context=context.model_copy(deep=True))
        self._emit()

    def set_tasks_snapshot(self, snapshot: Optional[TasksSnapshot]) -> None:
        """Replace the task-tracker counts shown in the live view; None clears them."""
        owned = snapshot.model_copy(deep=True) if snapshot is not None else None
        with self._lock:
            self._commit(tasks_snapshot=owned)
        self._emit()

    def set_iteration_summary(
        self, summary: IterationSummary, iteration: Optional[int] = None
    ) -> bool:
        """Replace the last iteration summary as a unit.

        The store keeps its own deep copy, so later changes to the caller's
        objects are not visible through the store.
        """
        owned = summary.model_copy(deep=True)
        with self._lock:
            if iteration is not None and not self._accepts_worker_write(iteration):
                return False
            self._commit(last_iteration_summary=owned)
        self._emit()
        return True

    def set_loop_notice(self, message: Optional[str], tone: Tone = "muted") -> None:
        with self._lock:
            self._commit(loop_notice=message, loop_notice_tone=tone)
        self._emit()

    def set_loop_phase(self, phase: LoopPhase) -> None:
        with self._lock:
            self._commit(loop_phase=phase)
        self._emit()

    def set_pause_state(self, ms_remaining: Optional[int]) -> None:
        with self._lock:
            self._commit(pause_ms=ms_remaining)
        self._emit()

    def set_retry_state(self, seconds_remaining: Optional[float]) -> None:
        with self._lock:
            self._commit(retry_seconds=seconds_remaining)
        self._emit()

    def tick_frame(self) -> None:
        with self._lock:
            if not self._state.running:
                return
            self._commit(frame_index=self._state.frame_index + 1)
        self._emit()

    def stop(self, message: str, tone: Tone = "success") -> None:
        """Mark the run finished; later worker writes are ignored."""
        with self._lock:
            self._commit(running=False, status_message=message, status_tone=tone)
        logger.info(f"Live run stopped: {message}")
        self._emit()

    def cancel_iteration(self, iteration: int) -> None:
        """Reject any further worker writes tagged with this iteration."""
        with self._lock:
            self._commit(cancelled_iterations=self._state.cancelled_iterations | {iteration})
        logger.info(f"Iteration {iteration} cancelled; dropping its worker updates")
        self._emit()

    # -- iteration timeline ---------------------------------------------------

    def _upsert_marker(self, iteration: int, **changes) -> None:
        """Create or update one iteration marker. Caller must hold the lock."""
        markers = {marker.iteration: marker for marker in self._state.iteration_markers}
        marker = markers.get(iteration) or IterationMarker(iteration=iteration)
        markers[iteration] = marker.model_copy(update=changes)
        ordered = sorted(markers.values(), key=lambda item: item.iteration)
        if len(ordered) > MAX_TIMELINE_MARKERS:
            ordered = ordered[-MAX_TIMELINE_MARKERS:]
        self._commit(iteration_markers=_with_current_flags(ordered, self._state.iteration))

    def mark_iteration_retry(self, iteration: int) -> None:
        with self._lock:
            existing = next(
                (m for m in self._state.iteration_markers if m.iteration == iteration), None
            )
            retry_count = existing.retry_count if existing is not None else 0
            self._upsert_marker(iteration, retry_count=retry_count + 1)
        self._emit()

    def set_iteration_outcome(self, iteration: int, outcome: IterationOutcome) -> None:
        if outcome not in ITERATION_OUTCOMES:
            raise ValueError(f"Unknown iteration outcome '{outcome}'")
        with self._lock:
            self._upsert_marker(
                iteration, succeeded=outcome == "success", failed=outcome == "failed"
            )
        self._emit()

    # -- agent selector / review phase ----------------------------------------

    def _selector(self, agent_id: int) -> AgentSelectorState:
        """Caller must hold the lock."""
        return self._state.agent_selectors.get(agent_id) or AgentSelectorState()

    def _commit_selector(self, agent_id: int, selector: AgentSelectorState) -> None:
        selectors = dict(self._state.agent_selectors)
        selectors[agent_id] = selector
        self._commit(agent_selectors=selectors)

    def set_agent_active_tab(self, agent_id: int, tab: AgentTab) -> None:
        """Manual navigation by the operator; restore_tab is left alone."""
        if tab not in AGENT_TABS:
            raise ValueError(f"Unknown agent tab '{tab}'")
        with self._lock:
            selector = self._selector(agent_id)
            self._commit_selector(agent_id, selector.model_copy(update={"active_tab": tab}))
        self._emit()

    def set_agent_review_phase(
        self, agent_id: int, phase: AgentReviewPhase, iteration: Optional[int] = None
    ) -> bool:
        """Enter (or advance) an agent's review phase.

        The first entry remembers the current tab in restore_tab and switches the
        agent to the review tab. Re-entry only replaces the phase payload.
        """
        with self._lock:
            if not self._accepts_worker_write(iteration):
                return False
            selector = self._selector(agent_id)
            if selector.review_phase is None:
                selector = selector.model_copy(
                    update={
                        "restore_tab": selector.active_tab,
                        "active_tab": "review",
                        "review_phase": phase,
                    }
                )
            else:
                selector = selector.model_copy(update={"review_phase": phase})
            self._commit_selector(agent_id, selector)
        self._emit()
        return True

    def clear_agent_review_phase(self, agent_id: int, iteration: Optional[int] = None) -> bool:
        """Leave the review phase.

        The active tab is intentionally not restored: the agent stays on the
        review tab until the operator navigates with set_agent_active_tab.
        """
        with self._lock:
            if not self._accepts_worker_write(iteration):
                return False
            selector = self._selector(agent_id)
            self._commit_selector(
                agent_id, selector.model_copy(update={"review_phase": None, "restore_tab": None})
            )
        self._emit()
        return True

    # -- per-agent worker updates ---------------------------------------------

    def update(self, agent_id: int, entry: PreviewEntry, iteration: Optional[int] = None) -> bool:
        """Append a preview entry to an agent's bounded tail."""
        now = self._clock()
        next_line = LivePreviewLine(
            label=entry.label,
            tone=label_tone(entry.label),
            text=format_short(entry.text, LIVE_LINE_MAX_LENGTH),
        )
        with self._lock:
            if not self._accepts_worker_write(iteration):
                return False
            state = self._state
            previous = state.agent_state.get(agent_id) or LiveAgentSnapshot(last_updated_at=now)
            lines = previous.lines
            if not lines or lines[-1] != next_line:
                lines = (lines + (next_line,))[-state.preview_lines :]

            agent_state = dict(state.agent_state)
            agent_state[agent_id] = LiveAgentSnapshot(
                total_events=previous.total_events + 1,
                last_updated_at=now,
                lines=lines,
            )
            spawn_state = dict(state.agent_spawn_state)
            spawn_state.pop(agent_id, None)
            self._commit(
                agent_state=agent_state,
                agent_spawn_state=spawn_state,
                status_message="streaming events",
                status_tone="info",
            )
        self._emit()
        return True

    def _set_agent_value(
        self, field: str, agent_id: int, value, iteration: Optional[int]
    ) -> bool:
        with self._lock:
            if not self._accepts_worker_write(iteration):
                return False
            values = dict(getattr(self._state, field))
            values[agent_id] = value
            self._commit(**{field: values})
        self._emit()
        return True

    def set_agent_picked_task(
        self, agent_id: int, issue: TaskIssue, iteration: Optional[int] = None
    ) -> bool:
        return self._set_agent_value("agent_picked_tasks", agent_id, issue, iteration)

    def set_agent_queued(
        self, agent_id: int, message: str, iteration: Optional[int] = None
    ) -> bool:
        spawn = AgentSpawnState(phase="queued", message=message)
        return self._set_agent_value("agent_spawn_state", agent_id, spawn, iteration)

    def set_agent_launching(
        self, agent_id: int, message: str, iteration: Optional[int] = None
    ) -> bool:
        spawn = AgentSpawnState(phase="launching", message=message)
        return self._set_agent_value("agent_spawn_state", agent_id, spawn, iteration)

    def set_agent_log_path(self, agent_id: int, path: str, iteration: Optional[int] = None) -> bool:
        return self._set_agent_value("agent_log_paths", agent_id, path, iteration)

    def writer_for(self, agent_id: int, iteration: int) -> "AgentStateWriter":
        return AgentStateWriter(self, agent_id, iteration)


class AgentStateWriter:
    """One worker's handle on the store, bound to its agent slot and iteration.

    Every write is dropped once the iteration is cancelled, superseded or the
    run is stopped. Methods return whether the write was applied.
    """

    def __init__(self, store: LiveRunStateStore, agent_id: int, iteration: int):
        self._store = store
        self.agent_id = agent_id
        self.iteration = iteration

    @property
    def active(self) -> bool:
        return self._store.is_iteration_active(self.iteration)

    def update(self, entry: PreviewEntry) -> bool:
        return self._store.update(self.agent_id, entry, iteration=self.iteration)

    def set_picked_task(self, issue: TaskIssue) -> bool:
        return self._store.set_agent_picked_task(self.agent_id, issue, iteration=self.iteration)

    def set_queued(self, message: str) -> bool:
        return self._store.set_agent_queued(self.agent_id, message, iteration=self.iteration)

    def set_launching(self, message: str) -> bool:
        return self._store.set_agent_launching(self.agent_id, message, iteration=self.iteration)

    def set_log_path(self, path: str) -> bool:
        return self._store.set_agent_log_path(self.agent_id, path, iteration=self.iteration)

    def set_review_phase(self, phase: AgentReviewPhase) -> bool:
        return self._store.set_agent_review_phase(self.agent_id, phase, iteration=self.iteration)

    def clear_review_phase(self) -> bool:
        return self._store.clear_agent_review_phase(self.agent_id, iteration=self.iteration)

    def set_iteration_summary(self, summary: IterationSummary) -> bool:
        return self._store.set_iteration_summary(summary, iteration=self.iteration)
