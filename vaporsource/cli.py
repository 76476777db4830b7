"""
Command line entry point.

    vapor-source run [--query Q] [--max-pages N] [--dry-run] [--mock]
    vapor-source serve [--host H] [--port P]
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from typing import List, Optional

from dotenv import load_dotenv

from vaporsource.app.config import ConfigurationError, Settings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vapor-source", description="Scrape, classify and store job postings")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run one ingestion pass and print the summary as JSON")
    run.add_argument("--query", help="Search query (default: QUERY or 'software engineer')")
    run.add_argument("--max-pages", type=int, help="Listing pages to scrape (default: SCRAPER_MAX_PAGES)")
    run.add_argument("--dry-run", action="store_true", help="Skip the classifier and the store")
    run.add_argument("--mock", action="store_true", help="Use static mock jobs instead of scraping")

    serve = sub.add_parser("serve", help="Run the jobs API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8080)
    return parser


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _run(args: argparse.Namespace) -> int:
    from vaporsource.orchestrator import run_ingestion

    try:
        settings = Settings.from_env(_pre_validation_env(args))
        settings = settings.with_overrides(query=args.query, scraper_max_pages=args.max_pages)
    except ConfigurationError as e:
        _configure_logging(False)
        logger.error(f"[cli] Configuration error: {e}")
        return 2

    _configure_logging(settings.debug_output)
    summary = asyncio.run(run_ingestion(settings))
    print(json.dumps(summary.to_dict(), indent=2))
    return 0


def _pre_validation_env(args: argparse.Namespace):
    """Environment with the CLI flags that affect validation folded in."""
    env = dict(os.environ)
    if args.dry_run:
        env["API_DRY_RUN"] = "true"
    if args.mock:
        env["USE_MOCK_JOBS"] = "true"
    return env


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    _configure_logging(False)
    uvicorn.run("vaporsource.main:app", host=args.host, port=args.port)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    if args.command == "run":
        return _run(args)
    return _serve(args)


if __name__ == "__main__":
    sys.exit(main())
