"""CLI entrypoint: ingestion runs, lifecycle review, scheduler tick and the API server."""

from __future__ import annotations

import argparse
import asyncio
from datetime import datetime, timezone
import json

from rich.markup import escape

from config import get_settings
from core import IngestionRequest, ProgressEvent
from utils.logger import configure_logging, console
from webapp.runtime import get_runtime


def _print_event(event: ProgressEvent) -> None:
    line = f"{event.icon} {escape(event.message)}"
    if event.data:
        line += f" [dim]({escape(event.data)})[/dim]"
    console.print(line, highlight=False)


async def _ingest(args: argparse.Namespace) -> int:
    runtime = get_runtime()
    request = IngestionRequest(
        target_entity=args.target,
        queries=list(args.query or []) or [f"{args.target} technique", f"{args.target} instructional"],
        min_quality=args.min_quality,
        min_duration_seconds=args.min_duration,
    )
    try:
        run_id, summary = await runtime.orchestrator.run_to_completion(request, sink=_print_event)
    finally:
        await runtime.classifier.aclose()
    snapshot = runtime.store.get_snapshot(run_id)
    print(
        json.dumps(
            {
                "run_id": run_id,
                "status": snapshot.status.value if snapshot else None,
                "error": snapshot.error if snapshot else None,
                "summary": summary.model_dump(mode="json"),
            },
            ensure_ascii=False,
        )
    )
    return 0 if snapshot and snapshot.error is None else 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Technique Curator CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Run one ingestion pass for a target instructor")
    ingest.add_argument("--target", required=True)
    ingest.add_argument("--query", action="append", help="Search query (repeatable)")
    ingest.add_argument("--min-quality", type=float, default=None)
    ingest.add_argument("--min-duration", type=int, default=None)

    sub.add_parser("review", help="Run the lifecycle review now")

    tick = sub.add_parser("tick", help="Run the scheduled review if due and sweep expired runs")
    tick.add_argument("--now-utc", default="")

    serve = sub.add_parser("serve", help="Start the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    args = parser.parse_args()
    settings = get_settings()
    configure_logging(settings.general.log_level, settings.general.log_file)

    if args.command == "ingest":
        raise SystemExit(asyncio.run(_ingest(args)))

    if args.command == "review":
        report = get_runtime().orchestrator.trigger_lifecycle_review()
        print(json.dumps(report.model_dump(mode="json") if report else None, ensure_ascii=False))
        return

    if args.command == "tick":
        now_utc = None
        if str(args.now_utc).strip():
            now_utc = datetime.fromisoformat(str(args.now_utc).replace("Z", "+00:00")).astimezone(timezone.utc)
        report, swept = get_runtime().orchestrator.tick(now_utc=now_utc)
        print(
            json.dumps(
                {"review": report.model_dump(mode="json") if report else None, "swept_runs": swept},
                ensure_ascii=False,
            )
        )
        return

    if args.command == "serve":
        import uvicorn

        uvicorn.run("webapp.app:app", host=args.host, port=args.port)
        return


if __name__ == "__main__":
    main()
