"""Wipe and rebuild every commit of the configured repository with batch summaries.

Usage: python -m scripts.regenerate_commits [--branch main]
"""

import argparse
import asyncio
import logging
import sys

from core.database import async_session
from core.errors import ConfigurationError
from core.settings import settings
from services.commit_store import CommitStore
from services.github_source import GitHubSource
from services.ingestion import IngestionPipeline
from services.llm import Summarizer


async def regenerate(branch: str | None) -> None:
    async with async_session() as session:
        pipeline = IngestionPipeline(
            CommitStore(session), summarizer=Summarizer(settings), source=GitHubSource(settings), config=settings
        )
        result = await pipeline.regenerate_all(branch=branch)
    print(f"Deleted: {result.deleted}  Fetched: {result.fetched}  Saved: {result.saved}")
    for err in result.errors:
        print(f"  {err['sha'][:7]}: {err['error']}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Regenerate all commits and their summaries.")
    parser.add_argument("--branch", default=None, help=f"branch to fetch (default: {settings.history_branch})")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    try:
        asyncio.run(regenerate(args.branch))
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
