from __future__ import annotations

import asyncio
import logging
import threading

import pytest

from chronicle_mcp.claude import TaskResult
from chronicle_mcp.events import EventBridge, EventKind, Notification, TaskReporter


def _collect(bridge: EventBridge) -> list[Notification]:
    received: list[Notification] = []
    bridge.subscribe(received.append)
    return received


def test_emit_reaches_every_subscriber_and_history() -> None:
    bridge = EventBridge()
    first = _collect(bridge)
    second = _collect(bridge)

    notification = bridge.emit(EventKind.TAGS_UPDATED, path="/ws/.chronicle/tags.json")

    assert first == [notification]
    assert second == [notification]
    assert bridge.recent() == [notification]
    assert notification.to_message()["event"] == "chronicle:tags-updated"
    assert notification.to_message()["payload"] == {"path": "/ws/.chronicle/tags.json"}


def test_publish_without_subscribers_is_dropped_silently() -> None:
    bridge = EventBridge(history_size=2)
    for _ in range(3):
        bridge.emit(EventKind.AGENTS_STARTED)

    assert len(bridge.recent()) == 2
    assert bridge.recent(0) == []


def test_closed_subscription_stops_receiving() -> None:
    bridge = EventBridge()
    received: list[Notification] = []
    with bridge.subscribe(received.append):
        bridge.emit(EventKind.AGENTS_STARTED)
    bridge.emit(EventKind.AGENTS_COMPLETED)

    assert [n.kind for n in received] == [EventKind.AGENTS_STARTED]
    assert bridge.subscriber_count == 0


def test_failing_subscriber_does_not_block_others(caplog: pytest.LogCaptureFixture) -> None:
    bridge = EventBridge()

    def boom(_notification: Notification) -> None:
        raise ValueError("listener broke")

    bridge.subscribe(boom)
    received = _collect(bridge)

    with caplog.at_level(logging.ERROR):
        bridge.emit(EventKind.LINKS_UPDATED)

    assert len(received) == 1
    assert "Notification subscriber failed" in caplog.text


def test_queue_subscription_receives_from_other_threads() -> None:
    async def scenario() -> list[EventKind]:
        bridge = EventBridge()
        subscription = bridge.queue()
        worker = threading.Thread(
            target=lambda: [bridge.emit(EventKind.ACTIONS_UPDATED) for _ in range(3)]
        )
        worker.start()
        worker.join()
        kinds = [(await asyncio.wait_for(subscription.get(), 1.0)).kind for _ in range(3)]
        subscription.close()
        return kinds

    assert asyncio.run(scenario()) == [EventKind.ACTIONS_UPDATED] * 3


def test_full_queue_drops_and_counts() -> None:
    async def scenario() -> int:
        bridge = EventBridge()
        subscription = bridge.queue(maxsize=1)
        bridge.emit(EventKind.TAGS_UPDATED)
        bridge.emit(EventKind.TAGS_UPDATED)
        return subscription.dropped

    assert asyncio.run(scenario()) == 1


def test_reporter_orders_events_and_auto_starts() -> None:
    bridge = EventBridge()
    received = _collect(bridge)
    reporter = TaskReporter(bridge, "tagger")

    reporter.line("hello", False)
    reporter.line("warn", True)
    reporter.completed(TaskResult(success=True, output="hello", error="warn", duration_ms=5, returncode=0))

    assert [n.kind for n in received] == [
        EventKind.TASK_STARTED,
        EventKind.OUTPUT_LINE,
        EventKind.OUTPUT_LINE,
        EventKind.TASK_COMPLETED,
    ]
    assert received[2].payload == {"line": "warn", "is_stderr": True}
    assert received[3].payload["result"]["success"] is True
    assert all(n.task == "tagger" for n in received)


def test_reporter_allows_only_one_terminal_event() -> None:
    bridge = EventBridge()
    reporter = TaskReporter(bridge, "actions", note="/ws/a.md")
    reporter.started()
    reporter.started()
    reporter.error("boom")

    with pytest.raises(RuntimeError):
        reporter.error("again")
    with pytest.raises(RuntimeError):
        reporter.line("late", False)

    kinds = [n.kind for n in bridge.recent()]
    assert kinds == [EventKind.TASK_STARTED, EventKind.TASK_ERROR]
    assert bridge.recent()[-1].note == "/ws/a.md"


def test_report_uses_failure_message_without_stderr() -> None:
    bridge = EventBridge()
    reporter = TaskReporter(bridge, "digest")

    reporter.report(
        TaskResult(success=False, output="", error=None, duration_ms=1, returncode=2),
        failure_message="digest failed",
    )

    assert bridge.recent()[-1].payload == {"error": "digest failed"}
    assert EventKind.TASK_ERROR.is_terminal
    assert not EventKind.OUTPUT_LINE.is_terminal
