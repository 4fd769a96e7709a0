"""
Command line interface.

    python -m clip_pipeline run some_streamer --limit 5 --days-back 7
    python -m clip_pipeline run-many streamer_a streamer_b
    python -m clip_pipeline retry
    python -m clip_pipeline cleanup --days 30
    python -m clip_pipeline sweep
    python -m clip_pipeline status [--run-id RUN_ID] [--runs 10]

Every command prints one JSON document to stdout.
"""
import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from loguru import logger

from config import Settings, get_settings
from clip_pipeline.app import ClipPipeline, build_pipeline
from clip_pipeline.exceptions import ClipPipelineError
from clip_pipeline.models import RunState
from clip_pipeline.utils import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clip_pipeline",
        description="Discover, download, analyze and gate Twitch clips",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the pipeline for one channel")
    run.add_argument("channel")
    run.add_argument("--limit", type=int, default=None, help="Max clips to download")
    run.add_argument("--days-back", type=int, default=None, help="Discovery window in days")

    many = sub.add_parser("run-many", help="Run the pipeline for several channels concurrently")
    many.add_argument("channels", nargs="+")
    many.add_argument("--limit", type=int, default=None)
    many.add_argument("--days-back", type=int, default=None)

    sub.add_parser("retry", help="Re-analyze every FAILED clip")

    cleanup = sub.add_parser("cleanup", help="Delete clips older than the retention window")
    cleanup.add_argument("--days", type=int, default=None, help="Days to keep")

    sub.add_parser("sweep", help="Analyze unprocessed clips downloaded outside a run")

    status = sub.add_parser("status", help="Show system status or one run")
    status.add_argument("--run-id", default=None)
    status.add_argument("--runs", type=int, default=10, help="Number of recent runs to list")

    return parser


async def execute(pipeline: ClipPipeline, args: argparse.Namespace) -> Dict[str, Any]:
    orchestrator = pipeline.orchestrator

    if args.command == "run":
        run = await orchestrator.run_channel(args.channel, args.limit, args.days_back)
        return run.to_dict()

    if args.command == "run-many":
        runs = await orchestrator.run_channels(args.channels, args.limit, args.days_back)
        return {"runs": [r.to_dict() for r in runs]}

    if args.command == "retry":
        return {"retried": await orchestrator.retry_failed_clips()}

    if args.command == "cleanup":
        return {"deleted": await orchestrator.cleanup_old_clips(args.days)}

    if args.command == "sweep":
        return {"processed": await orchestrator.process_pending_clips()}

    if args.command == "status":
        if args.run_id:
            run = orchestrator.get_run(args.run_id)
            return run.to_dict() if run else {"run_id": args.run_id, "found": False}
        return {
            "status": orchestrator.get_status().to_dict(),
            "recent_runs": [r.to_dict() for r in orchestrator.list_runs(args.runs)],
        }

    raise ValueError(f"Unknown command: {args.command}")


def exit_code(args: argparse.Namespace, result: Dict[str, Any]) -> int:
    if args.command == "run":
        return 1 if result.get("state") == RunState.FAILED.value else 0
    if args.command == "run-many":
        return 1 if any(r["state"] == RunState.FAILED.value for r in result["runs"]) else 0
    return 0


async def run_cli(args: argparse.Namespace, settings: Settings) -> int:
    pipeline = build_pipeline(settings)
    await pipeline.start()
    try:
        result = await execute(pipeline, args)
    finally:
        await pipeline.close()

    print(json.dumps(result, ensure_ascii=False, indent=2, default=str))
    return exit_code(args, result)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log.level, settings.log.file)

    try:
        return asyncio.run(run_cli(args, settings))
    except ClipPipelineError as e:
        logger.error(f"❌ {e.message}")
        print(json.dumps({"error": e.message, "details": e.details}, ensure_ascii=False, default=str))
        return 2
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
