"""Re-run summarization for failed (and optionally stuck pending) commits."""

import argparse
import asyncio
import logging
import sys

from core.database import async_session
from core.settings import settings
from models.commit import SummaryStatus
from services.commit_store import CommitStore
from services.ingestion import IngestionPipeline
from services.jobs import TaskScheduler
from services.llm import Summarizer


async def retry(include_pending: bool) -> None:
    summarizer = Summarizer(settings)
    scheduler = TaskScheduler(async_session, summarizer)
    statuses = [SummaryStatus.failed]
    if include_pending:
        statuses.append(SummaryStatus.pending)
    async with async_session() as session:
        pipeline = IngestionPipeline(CommitStore(session), summarizer, scheduler, config=settings)
        scheduled = await pipeline.retry_summaries(statuses, settings.github_repository)
    outcomes = await scheduler.drain()
    completed = sum(1 for r in outcomes.values() if isinstance(r, dict) and r.get("status") == "completed")
    print(f"Scheduled: {scheduled}  Completed: {completed}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Retry failed commit summaries.")
    parser.add_argument("--include-pending", action="store_true", help="also retry commits still pending")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    asyncio.run(retry(args.include_pending))
    return 0


if __name__ == "__main__":
    sys.exit(main())
