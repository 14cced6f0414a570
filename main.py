"""CLI entry point for the job search service."""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from jobsearch.client.api_client import JobSearchClient
from jobsearch.core.config import Settings
from jobsearch.core.errors import AdapterError, InvalidSearchParams, RequestNotFound


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def _add_client(parser: argparse.ArgumentParser) -> None:
    _add_common(parser)
    parser.add_argument(
        "--user",
        required=True,
        help="User id sent in the configured user header",
    )
    parser.add_argument(
        "--base-url",
        help="Service URL (default: poller.base_url from settings)",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Job search service - asynchronous LinkedIn job searches with contact discovery",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- serve ---
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    _add_common(serve_parser)
    serve_parser.add_argument("--host", help="Bind address (default: server.host)")
    serve_parser.add_argument("--port", type=int, help="Port (default: server.port)")

    # --- search ---
    search_parser = subparsers.add_parser("search", help="Start a search and wait for it")
    _add_client(search_parser)
    search_parser.add_argument("--url", help="LinkedIn jobs search URL")
    search_parser.add_argument("--keyword", help="Job title or keyword")
    search_parser.add_argument("--location", help="Location, e.g. 'Remote' or 'Berlin'")
    search_parser.add_argument(
        "--work-type",
        choices=["remote", "hybrid", "onsite"],
        help="Workplace type (default: remote)",
    )
    search_parser.add_argument("--count", type=int, help="Number of jobs to scrape")
    search_parser.add_argument("--resume", help="Path to a plain text resume")
    search_parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        help="Drop jobs whose title contains this keyword (repeatable)",
    )
    search_parser.add_argument(
        "--no-wait",
        action="store_true",
        help="Print the request id and exit without polling",
    )

    # --- status ---
    status_parser = subparsers.add_parser("status", help="Show a request's status")
    _add_client(status_parser)
    status_parser.add_argument("request_id")
    status_parser.add_argument("--json", action="store_true", help="Print the raw JSON snapshot")

    # --- abort ---
    abort_parser = subparsers.add_parser("abort", help="Cancel a running request")
    _add_client(abort_parser)
    abort_parser.add_argument("request_id")

    # --- list ---
    list_parser = subparsers.add_parser("list", help="List recent requests")
    _add_client(list_parser)

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def build_search_payload(args: argparse.Namespace) -> dict[str, Any]:
    """Translate ``search`` arguments into the API's start body."""
    payload: dict[str, Any] = {}
    if args.url:
        payload["linkedinUrl"] = args.url
    if args.keyword:
        payload["keyword"] = args.keyword
    if args.location:
        payload["location"] = args.location
    if args.work_type:
        payload["workType"] = args.work_type
    if args.count is not None:
        payload["jobCount"] = args.count
    if args.exclude:
        payload["excludeKeywords"] = args.exclude
    if args.resume:
        with open(args.resume, encoding="utf-8") as f:
            payload["resumeText"] = f.read()
    return payload


def format_summary(snapshot: dict[str, Any]) -> str:
    """Human-readable summary of a terminal status snapshot."""
    status = snapshot["status"]
    lines = [f"Request {snapshot['id']}: {status}"]
    if status == "failed":
        lines.append(f"  Error: {snapshot.get('errorMessage', 'unknown error')}")
    enriched = snapshot.get("enrichedResults")
    if enriched:
        total = enriched["totalJobsFound"]
        label = "~" if enriched.get("totalJobsFoundIsEstimate") else ""
        lines.append(f"  Jobs found: {label}{total} (scraped {enriched['scrapedCount']})")
        lines.append(
            f"  Leads: {len(enriched['jobs'])}, "
            f"with contact: {enriched['canApplyCount']}, locked: {enriched['lockedJobs']}",
        )
        for job in enriched["jobs"]:
            contact = job.get("contactEmail") or "-"
            score = job.get("relevanceScore")
            score_text = f" [{score:.0f}]" if score is not None else ""
            lines.append(f"    {job['title']} @ {job['companyName']}{score_text} <{contact}>")
    return "\n".join(lines)


def _print_progress(snapshot: dict[str, Any]) -> None:
    print(f"  ... {snapshot['status']}", flush=True)


async def run_search(settings: Settings, args: argparse.Namespace) -> int:
    payload = build_search_payload(args)
    async with _client(settings, args) as client:
        request_id = await client.start_search(payload)
        print(f"Request {request_id} started")
        if args.no_wait:
            return 0
        try:
            snapshot = await client.wait(
                request_id, settings.poller.interval_seconds, on_status=_print_progress,
            )
        except asyncio.CancelledError:
            await client.abort(request_id)
            raise
    if snapshot is None:
        return 1
    print(format_summary(snapshot))
    return 0 if snapshot["status"] == "completed" else 1


async def run_status(settings: Settings, args: argparse.Namespace) -> int:
    async with _client(settings, args) as client:
        snapshot = await client.get_status(args.request_id)
    if args.json:
        print(json.dumps(snapshot, indent=2))
    elif snapshot["status"] in ("completed", "failed", "cancelled"):
        print(format_summary(snapshot))
    else:
        print(f"Request {snapshot['id']}: {snapshot['status']}")
    return 0


async def run_abort(settings: Settings, args: argparse.Namespace) -> int:
    async with _client(settings, args) as client:
        await client.abort(args.request_id)
    print(f"Abort requested for {args.request_id}")
    return 0


async def run_list(settings: Settings, args: argparse.Namespace) -> int:
    async with _client(settings, args) as client:
        requests = await client.list_requests()
    if not requests:
        print("No requests yet")
    for r in requests:
        total = r.get("totalJobsFound", "-")
        print(f"{r['id']}  {r['status']:<10}  {r['keyword']} / {r['location']}  ({total})")
    return 0


def _client(settings: Settings, args: argparse.Namespace) -> JobSearchClient:
    return JobSearchClient(
        args.base_url or settings.poller.base_url,
        args.user,
        user_header=settings.server.user_header,
    )


def serve(settings: Settings, args: argparse.Namespace) -> int:
    import uvicorn

    from jobsearch.api.app import create_app

    uvicorn.run(
        create_app(settings),
        host=args.host or settings.server.host,
        port=args.port or settings.server.port,
        log_config=None,
    )
    return 0


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        settings = Settings.load(args.config)
    except Exception as e:
        logger.error("Failed to load config: %s", e)
        sys.exit(1)

    commands = {
        "search": run_search,
        "status": run_status,
        "abort": run_abort,
        "list": run_list,
    }
    try:
        if args.command == "serve":
            code = serve(settings, args)
        else:
            code = asyncio.run(commands[args.command](settings, args))
    except (InvalidSearchParams, RequestNotFound, AdapterError) as e:
        logger.error("%s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)
    sys.exit(code)


if __name__ == "__main__":
    main()
