"""Unit tests for the live run state store."""

import threading
from unittest.mock import MagicMock, patch

import pytest

from cli_agent_loop.models.preview import PreviewEntry, PreviewKind, UsageSummary
from cli_agent_loop.models.run_state import (
    AgentReviewPhase,
    IterationSummary,
    RunContext,
    TaskIssue,
    TasksSnapshot,
)
from cli_agent_loop.services.live_run_state import LiveRunStateStore, label_tone


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_store(clock=None, **overrides) -> LiveRunStateStore:
    values = {"iteration": 1, "max_iterations": 4, "agent_ids": [2, 1], "preview_lines": 3}
    values.update(overrides)
    return LiveRunStateStore(clock=clock or FakeClock(), **values)


def assistant(text: str) -> PreviewEntry:
    return PreviewEntry(kind=PreviewKind.ASSISTANT, label="assistant", text=text)


def issue(issue_id: str = "T-1") -> TaskIssue:
    return TaskIssue(id=issue_id, title="Parse config", status="in_progress", priority=1)


class TestInitialState:
    def test_snapshot_defaults(self):
        snapshot = make_store().get_snapshot()

        assert snapshot.running is True
        assert snapshot.status_message == "starting"
        assert snapshot.loop_phase == "starting"
        assert snapshot.agent_ids == (1, 2)
        assert snapshot.started_at == 1000.0
        assert snapshot.agent_state == {}
        assert snapshot.iteration_markers == ()

    def test_preview_lines_is_at_least_one(self):
        assert make_store(preview_lines=0).get_snapshot().preview_lines == 1


class TestSnapshotIsolation:
    def test_mutating_snapshot_does_not_touch_store(self):
        store = make_store()
        store.update(1, assistant("hello"))

        snapshot = store.get_snapshot()
        snapshot.agent_state.clear()
        snapshot.agent_picked_tasks[1] = issue()

        fresh = store.get_snapshot()
        assert 1 in fresh.agent_state
        assert fresh.agent_picked_tasks == {}

    def test_snapshots_are_distinct_objects(self):
        store = make_store()

        assert store.get_snapshot() is not store.get_snapshot()
        assert store.get_snapshot().agent_state is not store.get_snapshot().agent_state


class TestLabelTone:
    @pytest.mark.parametrize(
        "label,tone",
        [
            ("error", "error"),
            ("tool_error", "error"),
            ("tool", "info"),
            ("command", "info"),
            ("reasoning", "muted"),
            ("Assistant", "success"),
            ("warning", "warn"),
            ("file_change", "neutral"),
        ],
    )
    def test_label_tone(self, label, tone):
        assert label_tone(label) == tone


class TestAgentUpdates:
    def test_update_appends_line_and_counts_events(self):
        store = make_store()

        assert store.update(1, assistant("first")) is True

        snapshot = store.get_snapshot()
        agent = snapshot.agent_state[1]
        assert agent.total_events == 1
        assert agent.last_updated_at == 1000.0
        assert [(line.label, line.tone, line.text) for line in agent.lines] == [
            ("assistant", "success", "first")
        ]
        assert snapshot.status_message == "streaming events"
        assert snapshot.status_tone == "info"

    def test_consecutive_duplicate_is_not_repeated(self):
        store = make_store()
        store.update(1, assistant("same"))
        store.update(1, assistant("same"))

        agent = store.get_snapshot().agent_state[1]
        assert len(agent.lines) == 1
        assert agent.total_events == 2

    def test_lines_are_bounded_to_preview_lines(self):
        store = make_store(preview_lines=3)
        for index in range(5):
            store.update(1, assistant(f"line {index}"))

        lines = store.get_snapshot().agent_state[1].lines
        assert [line.text for line in lines] == ["line 2", "line 3", "line 4"]

    def test_line_text_is_bounded(self):
        store = make_store()
        store.update(1, assistant("x" * 500))

        text = store.get_snapshot().agent_state[1].lines[0].text
        assert text == "x" * 220 + "..."

    def test_update_clears_spawn_state(self):
        store = make_store()
        store.set_agent_launching(1, "starting codex")
        store.update(1, assistant("hi"))

        assert 1 not in store.get_snapshot().agent_spawn_state

    def test_agents_are_independent(self):
        store = make_store()
        store.update(1, assistant("one"))
        store.update(2, assistant("two"))

        snapshot = store.get_snapshot()
        assert snapshot.agent_state[1].lines[0].text == "one"
        assert snapshot.agent_state[2].lines[0].text == "two"


class TestStopAndCancellation:
    def test_stop_sets_status_and_ignores_worker_writes(self):
        store = make_store()
        store.stop("done", tone="warn")

        assert store.is_running() is False
        assert store.update(1, assistant("late")) is False
        assert store.set_agent_picked_task(1, issue()) is False

        snapshot = store.get_snapshot()
        assert snapshot.status_message == "done"
        assert snapshot.status_tone == "warn"
        assert snapshot.agent_state == {}

    def test_tick_frame_stops_after_stop(self):
        store = make_store()
        store.tick_frame()
        store.stop("done")
        store.tick_frame()

        assert store.get_snapshot().frame_index == 1

    def test_cancelled_iteration_writes_are_dropped(self):
        store = make_store()
        writer = store.writer_for(1, iteration=1)
        assert writer.update(assistant("before")) is True

        store.cancel_iteration(1)

        assert writer.active is False
        assert writer.update(assistant("after")) is False
        assert writer.set_picked_task(issue()) is False
        assert writer.set_review_phase(AgentReviewPhase(phase="reviewing", task_id="T-1")) is False
        lines = store.get_snapshot().agent_state[1].lines
        assert [line.text for line in lines] == ["before"]
        assert store.get_snapshot().cancelled_iterations == frozenset({1})

    def test_writes_for_superseded_iteration_are_dropped(self):
        store = make_store()
        stale = store.writer_for(1, iteration=1)
        store.set_iteration(2)
        current = store.writer_for(1, iteration=2)

        assert stale.update(assistant("stale")) is False
        assert current.update(assistant("fresh")) is True
        assert [line.text for line in store.get_snapshot().agent_state[1].lines] == ["fresh"]

    def test_untagged_writes_ignore_cancellation(self):
        store = make_store()
        store.cancel_iteration(1)

        assert store.update(1, assistant("orchestrator")) is True


class TestAgentWriter:
    def test_writer_sets_agent_fields(self):
        store = make_store()
        writer = store.writer_for(2, iteration=1)

        writer.set_queued("waiting for slot")
        assert store.get_snapshot().agent_spawn_state[2].phase == "queued"
        writer.set_launching("spawning copilot")
        writer.set_picked_task(issue("T-9"))
        writer.set_log_path("/tmp/agent-2.log")

        snapshot = store.get_snapshot()
        assert snapshot.agent_spawn_state[2].phase == "launching"
        assert snapshot.agent_spawn_state[2].message == "spawning copilot"
        assert snapshot.agent_picked_tasks[2].id == "T-9"
        assert snapshot.agent_log_paths[2] == "/tmp/agent-2.log"
        assert writer.agent_id == 2
        assert writer.iteration == 1

    def test_writer_sets_iteration_summary(self):
        store = make_store()
        writer = store.writer_for(1, iteration=1)

        assert writer.set_iteration_summary(IterationSummary(notice="ok")) is True
        store.cancel_iteration(1)
        assert writer.set_iteration_summary(IterationSummary(notice="late")) is False
        assert store.get_snapshot().last_iteration_summary.notice == "ok"


class TestReviewPhase:
    def test_enter_review_remembers_tab(self):
        store = make_store()

        store.set_agent_review_phase(1, AgentReviewPhase(phase="reviewing", task_id="T-1"))

        selector = store.get_snapshot().agent_selectors[1]
        assert selector.active_tab == "review"
        assert selector.restore_tab == "dev"
        assert selector.review_phase.phase == "reviewing"

    def test_reentry_only_replaces_phase(self):
        store = make_store()
        store.set_agent_review_phase(1, AgentReviewPhase(phase="reviewing", task_id="T-1"))

        store.set_agent_review_phase(
            1, AgentReviewPhase(phase="fixing", fix_attempt=1, task_id="T-1")
        )

        selector = store.get_snapshot().agent_selectors[1]
        assert selector.restore_tab == "dev"
        assert selector.active_tab == "review"
        assert selector.review_phase.phase == "fixing"
        assert selector.review_phase.fix_attempt == 1

    def test_clear_keeps_review_tab_active(self):
        store = make_store()
        store.set_agent_review_phase(1, AgentReviewPhase(phase="reviewing", task_id="T-1"))

        store.clear_agent_review_phase(1)

        selector = store.get_snapshot().agent_selectors[1]
        assert selector.review_phase is None
        assert selector.restore_tab is None
        assert selector.active_tab == "review"

    def test_manual_tab_change(self):
        store = make_store()
        store.set_agent_review_phase(1, AgentReviewPhase(phase="reviewing", task_id="T-1"))

        store.set_agent_active_tab(1, "dev")

        selector = store.get_snapshot().agent_selectors[1]
        assert selector.active_tab == "dev"
        assert selector.restore_tab == "dev"

    def test_unknown_tab_is_rejected(self):
        with pytest.raises(ValueError, match="Unknown agent tab"):
            make_store().set_agent_active_tab(1, "logs")


class TestIterationTimeline:
    def test_totals_and_current_marker(self):
        store = make_store()
        store.mark_iteration_retry(1)
        store.mark_iteration_retry(1)
        store.set_iteration_outcome(1, "failed")
        store.set_iteration_outcome(2, "success")
        store.set_iteration(3)

        timeline = store.get_iteration_timeline()

        assert timeline.current_iteration == 3
        assert timeline.total_retries == 2
        assert timeline.total_failed == 1
        assert [marker.iteration for marker in timeline.markers] == [1, 2, 3]
        assert [marker.is_current for marker in timeline.markers] == [False, False, True]
        assert timeline.markers[0].retry_count == 2
        assert timeline.markers[1].succeeded is True

    def test_outcomes_are_exclusive(self):
        store = make_store()
        store.set_iteration_outcome(1, "failed")
        store.set_iteration_outcome(1, "success")

        marker = store.get_iteration_timeline().markers[0]
        assert marker.succeeded is True
        assert marker.failed is False

    def test_current_marker_flag_in_snapshot(self):
        store = make_store()
        store.mark_iteration_retry(1)

        assert store.get_snapshot().iteration_markers[0].is_current is True
        store.set_iteration(2)
        assert store.get_snapshot().iteration_markers[0].is_current is False

    def test_unknown_outcome_is_rejected(self):
        with pytest.raises(ValueError, match="Unknown iteration outcome"):
            make_store().set_iteration_outcome(1, "skipped")

    @patch("cli_agent_loop.services.live_run_state.MAX_TIMELINE_MARKERS", 3)
    def test_markers_are_bounded(self):
        store = make_store()
        for iteration in range(1, 6):
            store.set_iteration_outcome(iteration, "failed")
        store.set_iteration(5)

        timeline = store.get_iteration_timeline()

        assert [marker.iteration for marker in timeline.markers] == [3, 4, 5]
        assert timeline.total_failed == 3

    def test_retries_and_outcomes_across_two_iterations(self):
        store = make_store()
        store.mark_iteration_retry(1)
        store.mark_iteration_retry(1)
        store.set_iteration_outcome(1, "success")
        store.set_iteration(2)
        store.mark_iteration_retry(2)
        store.set_iteration_outcome(2, "failed")

        timeline = store.get_iteration_timeline()

        assert timeline.current_iteration == 2
        assert timeline.total_retries == 3
        assert timeline.total_failed == 1
        assert [(m.iteration, m.retry_count, m.succeeded, m.failed) for m in timeline.markers] == [
            (1, 2, True, False),
            (2, 1, False, True),
        ]
        assert [marker.iteration for marker in timeline.markers if marker.is_current] == [2]


class TestHeaderState:
    def test_progress_and_elapsed(self):
        clock = FakeClock(1000.0)
        store = make_store(clock=clock, iteration=2, max_iterations=4)
        clock.now = 1012.5

        header = store.get_header_state()

        assert header.running is True
        assert header.elapsed_seconds == 12.5
        assert header.ratio == 0.5
        assert header.percent == 50
        assert header.tone == "info"
        assert header.spinner == "-"

    def test_spinner_cycles_with_frames(self):
        store = make_store()
        store.tick_frame()

        assert store.get_header_state().spinner == "\\"

    def test_stopped_header(self):
        store = make_store(iteration=9, max_iterations=4)
        store.stop("failed hard", tone="error")

        header = store.get_header_state(now=1001.0)

        assert header.spinner == ""
        assert header.tone == "error"
        assert header.status_message == "failed hard"
        assert header.ratio == 1.0

    def test_zero_max_iterations(self):
        header = make_store(iteration=0, max_iterations=0).get_header_state()

        assert header.percent == 0


class TestAgentSelector:
    def test_waiting_agent(self):
        selector = make_store().get_agent_selector(1)

        assert selector.status_label == "WAIT"
        assert selector.phase == "waiting"
        assert selector.total_events == 0

    def test_queued_and_launching_agent(self):
        store = make_store()
        store.set_agent_queued(1, "slot 1 of 2")
        assert store.get_agent_selector(1).status_label == "QUEUED"

        store.set_agent_launching(1, "spawning")
        selector = store.get_agent_selector(1)
        assert selector.status_label == "SPAWN"
        assert selector.phase == "launching"
        assert selector.detail_text == "spawning"

    def test_streaming_agent(self):
        clock = FakeClock(1000.0)
        store = make_store(clock=clock)
        store.update(1, assistant("hi"))
        store.set_agent_picked_task(1, issue())
        clock.now = 1012.7

        selector = store.get_agent_selector(1)

        assert selector.status_label == "EVENTS"
        assert selector.status_text == "events 1"
        assert selector.detail_text == "updated 12s ago"
        assert selector.age_seconds == 12
        assert selector.picked_task.id == "T-1"
        assert selector.active_tab == "dev"


class TestRunLevelState:
    def test_loop_fields(self):
        store = make_store()
        store.set_loop_phase("retry_wait")
        store.set_retry_state(30)
        store.set_pause_state(1500)
        store.set_loop_notice("rate limited", tone="warn")
        store.set_status("waiting", tone="warn")

        snapshot = store.get_snapshot()
        assert snapshot.loop_phase == "retry_wait"
        assert snapshot.retry_seconds == 30
        assert snapshot.pause_ms == 1500
        assert snapshot.loop_notice == "rate limited"
        assert snapshot.loop_notice_tone == "warn"
        assert snapshot.status_message == "waiting"

        store.set_retry_state(None)
        store.set_pause_state(None)
        assert store.get_snapshot().retry_seconds is None
        assert store.get_snapshot().pause_ms is None

    def test_run_context_is_copied(self):
        store = make_store()
        paths = {1: "/tmp/a.log"}
        context = RunContext(
            started_at=1.0,
            command="codex",
            batch="b1",
            provider="codex",
            project="demo",
            project_key="demo-1",
            agent_log_paths=paths,
        )

        store.set_run_context(context)
        context.agent_log_paths[2] = "/tmp/b.log"

        assert store.get_snapshot().run_context.agent_log_paths == {1: "/tmp/a.log"}

    def test_iteration_summary_is_owned_by_store(self):
        store = make_store()
        summary = IterationSummary(
            usage=UsageSummary(input_tokens=5), picked_tasks_by_agent={1: issue()}
        )

        store.set_iteration_summary(summary)
        summary.picked_tasks_by_agent[2] = issue("T-2")

        stored = store.get_snapshot().last_iteration_summary
        assert list(stored.picked_tasks_by_agent) == [1]
        assert stored.usage.input_tokens == 5

    def test_second_summary_replaces_first_whole(self):
        store = make_store()
        first = IterationSummary(picked_tasks_by_agent={1: issue("T-1")}, notice="first")
        second = IterationSummary(picked_tasks_by_agent={2: issue("T-2")}, notice="second")

        store.set_iteration_summary(first)
        store.set_iteration_summary(second)
        first.picked_tasks_by_agent[3] = issue("T-3")

        stored = store.get_snapshot().last_iteration_summary
        assert stored == second
        assert list(stored.picked_tasks_by_agent) == [2]

    def test_tasks_snapshot_is_owned_by_store(self):
        store = make_store()
        remaining = [issue("T-1"), issue("T-2")]
        snapshot = TasksSnapshot(
            available=True,
            source="bd",
            project_root="/repo",
            total=5,
            remaining=2,
            open=1,
            in_progress=1,
            closed=3,
            remaining_issues=tuple(remaining),
        )
        listener = MagicMock()
        store.subscribe(listener)

        store.set_tasks_snapshot(snapshot)

        stored = store.get_snapshot().tasks_snapshot
        assert stored == snapshot
        assert stored is not snapshot
        assert stored.issue_by_id("T-2").id == "T-2"
        assert stored.issue_by_id("T-9") is None
        listener.assert_called_once()

        store.set_tasks_snapshot(None)
        assert store.get_snapshot().tasks_snapshot is None


class TestListeners:
    def test_listener_called_on_change(self):
        store = make_store()
        listener = MagicMock()
        store.subscribe(listener)

        store.set_status("running")
        store.update(1, assistant("hi"))

        assert listener.call_count == 2

    def test_unsubscribe(self):
        store = make_store()
        listener = MagicMock()
        unsubscribe = store.subscribe(listener)
        unsubscribe()
        unsubscribe()

        store.set_status("running")

        listener.assert_not_called()

    def test_dropped_write_does_not_notify(self):
        store = make_store()
        store.stop("done")
        listener = MagicMock()
        store.subscribe(listener)

        store.update(1, assistant("late"))
        store.tick_frame()

        listener.assert_not_called()

    def test_listener_errors_propagate(self):
        store = make_store()
        store.subscribe(MagicMock(side_effect=RuntimeError("render failed")))

        with pytest.raises(RuntimeError, match="render failed"):
            store.set_status("running")

    def test_listener_can_read_snapshot(self):
        store = make_store()
        seen = []
        store.subscribe(lambda: seen.append(store.get_snapshot().status_message))

        store.set_status("collecting")

        assert seen == ["collecting"]


class TestConcurrency:
    def test_parallel_agent_updates_are_not_lost(self):
        agent_ids = [1, 2, 3, 4]
        store = make_store(agent_ids=agent_ids)
        per_agent = 200
        barrier = threading.Barrier(len(agent_ids))

        def worker(agent_id):
            writer = store.writer_for(agent_id, iteration=1)
            barrier.wait()
            for index in range(per_agent):
                writer.update(assistant(f"agent {agent_id} event {index}"))

        threads = [threading.Thread(target=worker, args=(agent_id,)) for agent_id in agent_ids]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        snapshot = store.get_snapshot()
        for agent_id in agent_ids:
            assert snapshot.agent_state[agent_id].total_events == per_agent
            assert snapshot.agent_state[agent_id].lines[-1].text == (
                f"agent {agent_id} event {per_agent - 1}"
            )

    def test_parallel_summaries_are_replaced_whole(self):
        store = make_store()
        summaries = [
            IterationSummary(
                usage=UsageSummary(input_tokens=agent_id),
                picked_tasks_by_agent={agent_id: issue(f"T-{agent_id}")},
                notice=f"agent {agent_id}",
            )
            for agent_id in range(1, 9)
        ]

        threads = [
            threading.Thread(target=store.set_iteration_summary, args=(summary,))
            for summary in summaries
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        stored = store.get_snapshot().last_iteration_summary
        assert stored in summaries
        agent_id = stored.usage.input_tokens
        assert stored.notice == f"agent {agent_id}"
        assert list(stored.picked_tasks_by_agent) == [agent_id]
