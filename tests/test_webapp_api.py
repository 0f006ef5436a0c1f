from __future__ import annotations

import importlib
import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

from fastapi.testclient import TestClient

from config.settings import CurationSettings, LifecycleSettings, YouTubeSettings
from core import CandidateItem, CurationRecord
from curation import IngestionPipeline, LifecycleManager, QualityAssessor
from orchestrator.service import RunOrchestrator
from orchestrator.store import InMemoryRunStore
from storage import InMemoryFeedbackLedger, InMemoryRecordStore


class StubCatalog:
    async def search(self, query: str, max_results: Optional[int] = None) -> List[CandidateItem]:
        return [
            CandidateItem(external_id="vid_ok", title="Kimura from side control", channel_title="Chan"),
            CandidateItem(external_id="vid_short", title="Kimura clip", channel_title="Chan"),
        ]

    async def get_duration(self, external_id: str) -> int:
        return 45 if external_id == "vid_short" else 540


class StubClassifier:
    async def classify(self, prompt: str, *, system: Optional[str] = None) -> Dict[str, Any]:
        return {
            "isInstructional": True,
            "isTargetInstructor": True,
            "technique": "Kimura",
            "techniqueType": "submission",
            "positionCategory": "side control",
            "giOrNogi": "gi",
            "qualityScore": 78,
            "reasoning": "good detail",
        }


def _client(monkeypatch) -> tuple:
    module = importlib.import_module("webapp.app")
    store = InMemoryRunStore()
    records = InMemoryRecordStore()
    feedback = InMemoryFeedbackLedger()
    pipeline = IngestionPipeline(
        StubCatalog(),
        QualityAssessor(StubClassifier(), settings=CurationSettings()),
        records,
        store,
        settings=CurationSettings(),
        youtube_settings=YouTubeSettings(),
    )
    orchestrator = RunOrchestrator(
        pipeline=pipeline,
        store=store,
        lifecycle=LifecycleManager(records, feedback, settings=LifecycleSettings()),
        review_at="03:00",
        review_tz="UTC",
    )
    runtime = SimpleNamespace(orchestrator=orchestrator, store=store, records=records, feedback=feedback)
    monkeypatch.setattr(module, "get_orchestrator", lambda: orchestrator)
    monkeypatch.setattr(module, "get_runtime", lambda: runtime)
    return TestClient(module.app), runtime


def _sse_events(body: str) -> List[Dict[str, Any]]:
    events = []
    for block in body.split("\n\n"):
        lines = [line for line in block.splitlines() if line]
        name = next((line[len("event: "):] for line in lines if line.startswith("event: ")), None)
        data = next((line[len("data: "):] for line in lines if line.startswith("data: ")), None)
        if name and data:
            events.append({"event": name, "data": json.loads(data)})
    return events


def test_health(monkeypatch) -> None:
    client, _ = _client(monkeypatch)
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_create_run_validates_payload(monkeypatch) -> None:
    client, _ = _client(monkeypatch)
    assert client.post("/api/runs", json={"target_entity": "Gordon Ryan", "queries": ["  "]}).status_code == 422
    assert client.post("/api/runs", json={"target_entity": " ", "queries": ["kimura"]}).status_code == 422
    assert client.post("/api/runs", json={"target_entity": "x", "queries": ["k"], "min_quality": 120}).status_code == 422


def test_run_lifecycle_snapshot_and_event_stream(monkeypatch) -> None:
    client, runtime = _client(monkeypatch)

    create = client.post("/api/runs", json={"target_entity": "Gordon Ryan", "queries": ["kimura", "KIMURA "]})
    assert create.status_code == 200
    run_id = create.json()["run_id"]

    final = runtime.orchestrator.wait(run_id, timeout=10)
    assert final is not None and final.status.value == "complete"

    snapshot = client.get(f"/api/runs/{run_id}").json()
    assert snapshot["status"] == "complete"
    assert snapshot["summary"]["approved"] == 1
    assert snapshot["summary"]["rejected"] == 1
    assert snapshot["summary"]["quota_used"] == 102
    assert [item["seq"] for item in snapshot["events"]] == list(range(1, len(snapshot["events"]) + 1))

    stream = client.get(f"/api/runs/{run_id}/events")
    assert stream.status_code == 200
    assert stream.headers["content-type"].startswith("text/event-stream")
    events = _sse_events(stream.text)
    assert events[-1]["event"] == "stream_end"
    assert events[-1]["data"]["status"] == "complete"
    assert [item["data"]["seq"] for item in events[:-1]] == [item["seq"] for item in snapshot["events"]]
    assert events[-2]["event"] == "success"
    assert events[-2]["data"]["payload"]["approved"] == 1

    listed = client.get("/api/records").json()
    assert listed["count"] == 1
    assert listed["records"][0]["external_id"] == "vid_ok"
    assert listed["records"][0]["technique"] == "Kimura"


def test_unknown_run_returns_404(monkeypatch) -> None:
    client, _ = _client(monkeypatch)
    assert client.get("/api/runs/run_missing").status_code == 404
    assert client.get("/api/runs/run_missing/events").status_code == 404
    assert client.post("/api/runs/run_missing/cancel").status_code == 404


def test_cancel_finished_run_reports_not_canceled(monkeypatch) -> None:
    client, runtime = _client(monkeypatch)
    run_id = client.post("/api/runs", json={"target_entity": "Gordon Ryan", "queries": ["kimura"]}).json()["run_id"]
    runtime.orchestrator.wait(run_id, timeout=10)

    resp = client.post(f"/api/runs/{run_id}/cancel")
    assert resp.status_code == 200
    assert resp.json()["canceled"] is False
    assert resp.json()["status"] == "complete"


def test_feedback_votes_and_lifecycle_review(monkeypatch) -> None:
    client, runtime = _client(monkeypatch)
    runtime.records.insert(CurationRecord(external_id="vid_a", title="Armbar", target_entity="Gordon Ryan"))

    assert client.post("/api/records/missing/feedback", json={"helpful": True}).status_code == 404
    assert client.post("/api/records/vid_a/feedback", json={"helpful": False, "category": "bogus"}).status_code == 422

    for idx in range(60):
        payload = {"helpful": False, "category": "video_quality_poor"} if idx < 20 else {"helpful": True}
        resp = client.post("/api/records/vid_a/feedback", json=payload)
        assert resp.status_code == 200
    assert resp.json()["feedback"]["total_votes"] == 60

    review = client.post("/api/lifecycle/review")
    assert review.status_code == 200
    assert review.json()["removed"] == 1

    assert client.get("/api/records").json()["count"] == 0
    assert client.get("/api/records", params={"include_removed": True}).json()["records"][0]["status"] == "removed"


def test_scheduler_tick_runs_review_once_per_day(monkeypatch) -> None:
    client, _ = _client(monkeypatch)

    early = client.post("/api/scheduler/tick", params={"now_utc_iso": "2026-02-18T02:59:00+00:00"})
    assert early.status_code == 200
    assert early.json()["review_triggered"] is False

    due = client.post("/api/scheduler/tick", params={"now_utc_iso": "2026-02-18T03:05:00Z"})
    assert due.json()["review_triggered"] is True
    assert due.json()["review"]["reviewed"] == 0

    again = client.post("/api/scheduler/tick", params={"now_utc_iso": "2026-02-18T23:00:00+00:00"})
    assert again.json()["review_triggered"] is False

    next_day = client.post("/api/scheduler/tick", params={"now_utc_iso": "2026-02-19T03:00:00+00:00"})
    assert next_day.json()["review_triggered"] is True

    bad = client.post("/api/scheduler/tick", params={"now_utc_iso": "not-a-date"})
    assert bad.status_code == 400
