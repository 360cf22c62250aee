"""
Scheduled work, runnable without the web server.

Each run:
1. Polls every active meeting bot and saves finished transcripts
2. Sends bots to meetings whose join time has arrived

Usage:
    python -m postmeeting.cron_job [poll-bots|join-meetings|all]
"""
import argparse
import asyncio
from typing import Any, Dict, List, Optional

from postmeeting.config import get_settings
from postmeeting.container import build_services
from postmeeting.database import Database
from postmeeting.logging_config import get_logger, setup_logging

logger = get_logger(__name__)

TASKS = ("poll-bots", "join-meetings", "all")


async def run(task: str = "all") -> Dict[str, Any]:
    """
    Run the scheduled tasks once.

    Args:
        task: poll-bots, join-meetings or all

    Returns:
        Per-task result dicts
    """
    settings = get_settings()
    database = Database(settings.database_url)
    stats: Dict[str, Any] = {}
    try:
        await database.create_tables()
        services = build_services(settings, database)

        if task in ("poll-bots", "all"):
            batch = await services.poller.poll_all_active()
            stats["poll_bots"] = batch.to_dict()

        if task in ("join-meetings", "all"):
            joined = await services.scheduler.join_upcoming_meetings()
            stats["join_meetings"] = joined.to_dict()
    finally:
        await database.close()

    return stats


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the cron job."""
    parser = argparse.ArgumentParser(description="Run post-meeting scheduled tasks once")
    parser.add_argument("task", nargs="?", default="all", choices=TASKS)
    args = parser.parse_args(argv)

    setup_logging(debug=get_settings().debug, service="postmeeting-cron")
    logger.info("cron_job_started", task=args.task)
    try:
        stats = asyncio.run(run(args.task))
    except Exception as e:
        logger.error("cron_job_failed", error=str(e), exc_info=True)
        raise

    logger.info("cron_job_completed", stats=stats)


if __name__ == "__main__":
    main()
