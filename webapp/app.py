"""FastAPI app: ingestion runs with SSE progress, lifecycle review and feedback votes."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from core import FeedbackCategory, IngestionRequest, ProgressEvent
from orchestrator.progress import AsyncQueueSink
from webapp.runtime import get_orchestrator, get_runtime


logger = logging.getLogger(__name__)

app = FastAPI(title="Technique Curator API")

HEARTBEAT_SECONDS = 3.0


class FeedbackPayload(BaseModel):
    helpful: bool
    category: Optional[FeedbackCategory] = None


def _sse(event: str, data: Dict[str, Any]) -> str:
    payload = json.dumps(data, ensure_ascii=False, default=str)
    return f"event: {event}\ndata: {payload}\n\n"


def _parse_now(now_utc_iso: Optional[str]) -> Optional[datetime]:
    text = str(now_utc_iso or "").strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).astimezone(timezone.utc)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"invalid timestamp: {text}") from exc


@app.get("/api/health")
def health() -> Dict[str, Any]:
    return {"ok": True, "ts": datetime.now(timezone.utc).isoformat(timespec="seconds")}


@app.post("/api/runs")
def create_run(payload: IngestionRequest) -> Dict[str, Any]:
    orchestrator = get_orchestrator()
    run_id = orchestrator.start_run(payload)
    snapshot = orchestrator.get_snapshot(run_id)
    return {"run_id": run_id, "status": snapshot.status.value if snapshot else None}


@app.get("/api/runs")
def list_runs() -> Dict[str, Any]:
    runs = get_orchestrator().list_runs()
    return {
        "runs": [
            {
                "run_id": item.run_id,
                "status": item.status.value,
                "target_entity": item.target_entity,
                "events": len(item.events),
                "started_at": item.started_at.isoformat(timespec="seconds"),
            }
            for item in runs
        ]
    }


@app.get("/api/runs/{run_id}")
def get_run(run_id: str) -> Dict[str, Any]:
    snapshot = get_orchestrator().get_snapshot(run_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="run not found")
    return snapshot.model_dump(mode="json")


@app.post("/api/runs/{run_id}/cancel")
def cancel_run(run_id: str) -> Dict[str, Any]:
    orchestrator = get_orchestrator()
    ok = orchestrator.cancel_run(run_id)
    snapshot = orchestrator.get_snapshot(run_id)
    if not ok and snapshot is None:
        raise HTTPException(status_code=404, detail="run not found")
    return {"run_id": run_id, "canceled": bool(ok), "status": snapshot.status.value if snapshot else None}


@app.get("/api/runs/{run_id}/events")
async def stream_run_events(run_id: str) -> StreamingResponse:
    orchestrator = get_orchestrator()
    if orchestrator.get_snapshot(run_id) is None:
        raise HTTPException(status_code=404, detail="run not found")

    async def _event_stream():
        queue: "asyncio.Queue[ProgressEvent]" = asyncio.Queue()
        sink = AsyncQueueSink(queue, asyncio.get_running_loop())
        if not orchestrator.subscribe(run_id, sink):
            yield _sse("stream_end", {"run_id": run_id, "status": None, "error": "run not found"})
            return

        yield "retry: 3000\n\n"
        try:
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_SECONDS)
                except asyncio.TimeoutError:
                    snapshot = orchestrator.get_snapshot(run_id)
                    if snapshot is None or (snapshot.status.is_terminal and queue.empty()):
                        break
                    yield _sse("heartbeat", {"run_id": run_id, "status": snapshot.status.value, "events": len(snapshot.events)})
                    continue

                yield _sse(event.type.value, event.model_dump(mode="json"))
                snapshot = orchestrator.get_snapshot(run_id)
                if snapshot is None or (snapshot.status.is_terminal and event.seq >= len(snapshot.events)):
                    break
        finally:
            orchestrator.unsubscribe(run_id, sink)

        snapshot = orchestrator.get_snapshot(run_id)
        yield _sse(
            "stream_end",
            {
                "run_id": run_id,
                "status": snapshot.status.value if snapshot else None,
                "error": snapshot.error if snapshot else None,
            },
        )

    headers = {
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",
    }
    return StreamingResponse(_event_stream(), media_type="text/event-stream", headers=headers)


@app.post("/api/lifecycle/review")
def run_lifecycle_review() -> Dict[str, Any]:
    report = get_orchestrator().trigger_lifecycle_review()
    if report is None:
        raise HTTPException(status_code=503, detail="lifecycle review not configured")
    return report.model_dump(mode="json")


@app.post("/api/scheduler/tick")
def tick_scheduler(now_utc_iso: Optional[str] = None) -> Dict[str, Any]:
    report, swept = get_orchestrator().tick(now_utc=_parse_now(now_utc_iso))
    return {
        "review_triggered": report is not None,
        "review": report.model_dump(mode="json") if report else None,
        "swept_runs": swept,
    }


@app.get("/api/records")
def list_records(include_removed: bool = False) -> Dict[str, Any]:
    records = get_runtime().records.list_records(include_removed=include_removed)
    items: List[Dict[str, Any]] = [record.model_dump(mode="json") for record in records]
    return {"records": items, "count": len(items)}


@app.post("/api/records/{external_id}/feedback")
def submit_feedback(external_id: str, payload: FeedbackPayload) -> Dict[str, Any]:
    runtime = get_runtime()
    if runtime.records.get(external_id) is None:
        raise HTTPException(status_code=404, detail="record not found")
    aggregate = runtime.feedback.record_vote(external_id, helpful=payload.helpful, category=payload.category)
    return {"external_id": external_id, "feedback": aggregate.model_dump(mode="json")}
