from __future__ import annotations

from datetime import timedelta
import threading
from typing import List

import pytest

from core import ProgressEvent, ProgressEventType, RunState, RunSummary
from orchestrator.progress import ProgressReporter
from orchestrator.store import InMemoryRunStore, new_run_id


def _event(message: str) -> ProgressEvent:
    return ProgressEvent(message=message)


def test_new_run_id_format() -> None:
    run_id = new_run_id()
    assert run_id.startswith("run_")
    assert len(run_id.split("_")[-1]) == 8


def test_start_twice_raises() -> None:
    store = InMemoryRunStore()
    store.start("run_a")
    with pytest.raises(ValueError):
        store.start("run_a")


def test_append_assigns_monotonic_seq() -> None:
    store = InMemoryRunStore()
    store.start("run_a", target_entity="Gordon Ryan")

    first = store.append("run_a", _event("one"))
    second = store.append("run_a", _event("two"))

    assert first is not None and second is not None
    assert (first.seq, second.seq) == (1, 2)
    snapshot = store.get_snapshot("run_a")
    assert [item.message for item in snapshot.events] == ["one", "two"]
    assert snapshot.target_entity == "Gordon Ryan"
    assert snapshot.status == RunState.RUNNING


def test_append_unknown_run_returns_none() -> None:
    store = InMemoryRunStore()
    assert store.append("missing", _event("x")) is None
    assert store.get_snapshot("missing") is None


def test_late_subscriber_gets_backlog_then_live() -> None:
    store = InMemoryRunStore()
    store.start("run_a")
    store.append("run_a", _event("one"))
    store.append("run_a", _event("two"))

    received: List[ProgressEvent] = []
    assert store.subscribe("run_a", received.append) is True
    store.append("run_a", _event("three"))

    assert [item.seq for item in received] == [1, 2, 3]


def test_subscribe_during_concurrent_appends_sees_every_event_once() -> None:
    store = InMemoryRunStore()
    store.start("run_a")
    total = 500
    ready = threading.Event()

    def _producer() -> None:
        ready.wait()
        for idx in range(total):
            store.append("run_a", _event(f"e{idx}"))

    received: List[int] = []
    producer = threading.Thread(target=_producer)
    producer.start()
    ready.set()
    store.subscribe("run_a", lambda event: received.append(event.seq))
    producer.join()

    assert received == list(range(1, total + 1))


def test_failing_sink_is_detached_and_append_continues() -> None:
    store = InMemoryRunStore()
    store.start("run_a")
    calls = {"bad": 0}

    def _bad(event: ProgressEvent) -> None:
        calls["bad"] += 1
        raise RuntimeError("client went away")

    good: List[ProgressEvent] = []
    store.subscribe("run_a", _bad)
    store.subscribe("run_a", good.append)

    assert store.append("run_a", _event("one")) is not None
    assert store.append("run_a", _event("two")) is not None

    assert calls["bad"] == 1
    assert [item.message for item in good] == ["one", "two"]
    assert store.subscriber_count("run_a") == 1


def test_unsubscribe_stops_delivery() -> None:
    store = InMemoryRunStore()
    store.start("run_a")
    received: List[ProgressEvent] = []
    store.subscribe("run_a", received.append)
    assert store.unsubscribe("run_a", received.append) is True
    store.append("run_a", _event("one"))
    assert received == []
    assert store.unsubscribe("run_a", received.append) is False


def test_complete_appends_done_event_with_summary_and_rejects_appends() -> None:
    store = InMemoryRunStore()
    store.start("run_a")
    received: List[ProgressEvent] = []
    store.subscribe("run_a", received.append)

    summary = RunSummary(analyzed=3, approved=1, rejected=2, quota_used=203)
    snapshot = store.complete("run_a", summary)

    assert snapshot.status == RunState.COMPLETE
    assert snapshot.finished_at is not None
    done = received[-1]
    assert done.type == ProgressEventType.SUCCESS
    assert done.icon == "🎉"
    assert done.message == "Curation complete: 3 analyzed, 1 added, 2 skipped"
    assert done.payload["quota_used"] == 203
    assert store.subscriber_count("run_a") == 0

    assert store.append("run_a", _event("late")) is None
    assert store.fail("run_a", "boom").status == RunState.COMPLETE
    assert len(store.get_snapshot("run_a").events) == 1


def test_fail_keeps_partial_summary() -> None:
    store = InMemoryRunStore()
    store.start("run_a")
    snapshot = store.fail("run_a", "QUOTA_EXCEEDED", summary=RunSummary(analyzed=2, approved=1))

    assert snapshot.status == RunState.FAILED
    assert snapshot.error == "QUOTA_EXCEEDED"
    assert snapshot.summary.approved == 1
    assert snapshot.events[-1].type == ProgressEventType.ERROR
    assert snapshot.events[-1].message == "Error: QUOTA_EXCEEDED"


def test_subscribe_after_terminal_replays_backlog_without_attaching() -> None:
    store = InMemoryRunStore()
    store.start("run_a")
    store.append("run_a", _event("one"))
    store.complete("run_a", RunSummary())

    received: List[ProgressEvent] = []
    assert store.subscribe("run_a", received.append) is True
    assert len(received) == 2
    assert store.subscriber_count("run_a") == 0


def test_sweep_removes_only_expired_terminal_runs() -> None:
    store = InMemoryRunStore(retention=timedelta(hours=24))
    store.start("run_done")
    store.start("run_live")
    finished = store.complete("run_done", RunSummary()).finished_at

    assert store.sweep(now=finished + timedelta(hours=23)) == 0
    assert store.sweep(now=finished + timedelta(hours=25)) == 1
    assert store.get_snapshot("run_done") is None
    assert store.get_snapshot("run_live") is not None


def test_reporter_helpers_set_icons_and_clip_titles() -> None:
    store = InMemoryRunStore()
    store.start("run_a")
    progress = ProgressReporter(store, "run_a")
    long_title = "Armbar from closed guard with every detail explained step by step"

    progress.search("gordon ryan back take")
    progress.analyze(long_title)
    progress.added(long_title, "Gordon Ryan", 82.4)
    progress.skipped(long_title, "duplicate")
    progress.error("Search failed", data="timeout")

    events = store.get_snapshot("run_a").events
    assert [item.icon for item in events] == ["🔍", "🎬", "✅", "⏭️", "❌"]
    assert [item.type for item in events] == [
        ProgressEventType.SEARCH,
        ProgressEventType.ANALYZE,
        ProgressEventType.ADDED,
        ProgressEventType.SKIPPED,
        ProgressEventType.ERROR,
    ]
    assert events[1].message.endswith("...")
    assert events[1].item_title == long_title
    assert events[2].data == "by Gordon Ryan (Q:82)"
    assert events[3].reason == "duplicate"
