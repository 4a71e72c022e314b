#!/usr/bin/env python3
"""Run a site audit from the command line and print the report summary."""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

sys.path.insert(0, str(Path(__file__).parent.parent))

from aeo_audit.config.settings import settings
from aeo_audit.crawler.firecrawl_client import FirecrawlProvider
from aeo_audit.database.crud_jobs import TERMINAL_STATUSES
from aeo_audit.database.db_session import dispose_engine, init_models
from aeo_audit.database.result_store import ResultStore
from aeo_audit.services.audit_orchestrator import AuditOrchestrator
from aeo_audit.utils.exceptions import AuditServiceException
from aeo_audit.utils.logging import setup_logging


async def run_audit(
    url: str,
    owner_id: str,
    max_pages: int,
    poll_interval: float,
    output: Optional[str] = None,
) -> int:
    """
    Start an audit, poll until it finishes and print the summary.

    Returns:
        Process exit code
    """
    await init_models()
    # Processing runs inside the poll call so the loop sees it finish
    config = settings.model_copy(update={"process_in_background": False})
    orchestrator = AuditOrchestrator(
        provider=FirecrawlProvider(config),
        store=ResultStore(),
        config=config,
    )

    try:
        started = await orchestrator.start_audit(url, owner_id, max_pages)
        job_id = started["job_id"]
        print(f"Audit started: job_id={job_id} site_id={started['site_id']}")

        while True:
            state = await orchestrator.poll_status(job_id)
            print(f"  {state['status']:<11} {state['progress_percent']:>3}%")
            if state["status"] in TERMINAL_STATUSES:
                break
            await asyncio.sleep(poll_interval)

        report = await orchestrator.get_results(job_id)
        if report["status"] != "completed":
            job = await orchestrator.store.get_job(job_id)
            print(f"Audit failed: {job.error_message if job else 'unknown error'}")
            return 1

        summary = report["summary"]
        print(f"\nSite: {report['site']['root_domain']}")
        print(f"Pages audited: {summary['total_pages']}")
        print(f"Overall score: {summary['overall_score']}/100")
        print(f"Issues: {summary['issue_counts']}")
        for recommendation in report["global_recommendations"]:
            print(f"  - {recommendation}")

        if output:
            Path(output).write_text(json.dumps(report, indent=2, default=str), encoding="utf-8")
            print(f"\nFull report written to {output}")
        return 0
    finally:
        await orchestrator.close()
        await dispose_engine()


def main() -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Audit a website for answer-engine readiness")
    parser.add_argument("url", help="Root URL of the site to audit")
    parser.add_argument("--owner-id", default="cli", help="Owner identifier (default: cli)")
    parser.add_argument(
        "--max-pages",
        type=int,
        default=settings.default_max_pages,
        help=f"Maximum pages to crawl (default: {settings.default_max_pages})",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=5.0,
        help="Seconds between status polls (default: 5)",
    )
    parser.add_argument("--output", help="Write the full JSON report to this file")
    args = parser.parse_args()

    setup_logging()
    try:
        return asyncio.run(
            run_audit(args.url, args.owner_id, args.max_pages, args.poll_interval, args.output)
        )
    except AuditServiceException as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
