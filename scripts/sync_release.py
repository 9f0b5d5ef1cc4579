"""Link commits to a release after pushing a tag.

Usage: python -m scripts.sync_release v1.0.0
"""

import argparse
import asyncio
import logging
import subprocess
import sys
from datetime import datetime, timezone

from core.database import async_session
from core.errors import ConfigurationError
from core.settings import settings
from services.commit_store import CommitStore
from services.github_source import GitHubSource
from services.release_store import ReleaseStore
from services.releases import ReleaseReconciler


def resolve_tag(version: str) -> tuple[str, datetime]:
    """Tag sha and its commit time from the local git checkout."""
    sha = subprocess.run(
        ["git", "rev-list", "-n", "1", version], check=True, capture_output=True, text=True
    ).stdout.strip()
    ts = subprocess.run(
        ["git", "log", "-1", "--format=%ct", sha], check=True, capture_output=True, text=True
    ).stdout.strip()
    return sha, datetime.fromtimestamp(int(ts), tz=timezone.utc)


async def sync(version: str, strategy: str | None) -> None:
    sha, date = resolve_tag(version)
    async with async_session() as session:
        reconciler = ReleaseReconciler(
            CommitStore(session), ReleaseStore(session), GitHubSource(settings), settings, strategy=strategy
        )
        result = await reconciler.sync_release(version, sha, date)
    print(f"Release {version}: id={result.release_id} commits={result.commit_count} created={result.created}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Sync a git tag into the releases table.")
    parser.add_argument("version", help="tag name, e.g. v1.0.0")
    parser.add_argument("--strategy", choices=["range", "timestamp"], default=None)
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    try:
        asyncio.run(sync(args.version, args.strategy))
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
