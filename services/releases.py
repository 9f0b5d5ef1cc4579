"""Releases router + reconciler — assign unclaimed commits to a newly pushed tag.

Two strategies pick the commits of a release:

- range (default): ask GitHub for the exact shas between the previous release's
  tag and this tag (compare API), falling back to everything reachable from the
  tag when there is no previous release. Exact under non-linear history.
- timestamp: every stored commit authored in (previous release date, tag date].
  Cheaper, but cherry-picks and rebases can put commits in the wrong release
  because it assumes commit time follows tag order.

Either way only commits with no version are claimed, so a commit belongs to the
first release that claims it and reprocessing a tag never moves commits.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db as get_session
from core.errors import ConfigurationError
from core.settings import Settings, settings as default_settings
from models.base import as_utc
from models.commit import Commit
from models.release import Release
from services.auth import require_api_key
from services.commit_store import CommitStore
from services.github_source import GitHubSource
from services.release_store import ReleaseStore
from services.schemas import ReleaseCommitOut, ReleaseOut, SyncReleaseRequest, SyncReleaseResult

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1)


class ReleaseReconciler:
    def __init__(
        self,
        commits: CommitStore,
        releases: ReleaseStore,
        source=None,
        config: Settings | None = None,
        strategy: str | None = None,
    ):
        self.commits = commits
        self.releases = releases
        self.source = source
        self.config = config or default_settings
        self.strategy = strategy or self.config.reconcile_strategy
        if self.strategy not in ("range", "timestamp"):
            raise ConfigurationError(f"Unknown reconcile strategy: {self.strategy}")

    def _repository(self) -> str:
        if not self.config.github_repository:
            raise ConfigurationError("GITHUB_REPOSITORY not set")
        return self.config.github_repository

    async def previous_release(self, repository: str, sha: str, tag_date: datetime) -> Release | None:
        """Most recent release that is not this tag and not dated after it."""
        for release in await self.releases.list_by_repository(repository):  # newest first
            if release.tag_sha == sha or release.date > tag_date:
                continue
            return release
        return None

    async def commits_for_tag(self, repository: str, sha: str, tag_date: datetime) -> list[Commit]:
        previous = await self.previous_release(repository, sha, tag_date)
        if self.strategy == "timestamp":
            lower = previous.date if previous else EPOCH
            return await self.commits.list_unassigned_in_window(repository, lower, tag_date)

        if self.source is None:
            raise ConfigurationError("Range reconciliation needs a GitHub source")
        shas = await self.source.compare_range(repository, previous.tag_sha if previous else None, sha)
        return await self.commits.list_unassigned_by_shas(repository, shas)

    async def sync_release(self, version: str, sha: str, date: datetime | None = None) -> SyncReleaseResult:
        repository = self._repository()
        if date is None:
            if self.source is None:
                raise ConfigurationError("A tag date or a GitHub source is required")
            date = (await self.source.get_commit(repository, sha)).timestamp
        tag_date = as_utc(date)

        logger.info(f"Syncing release {version} ({sha[:7]}) for {repository} using {self.strategy} strategy")
        selected = await self.commits_for_tag(repository, sha, tag_date)

        release, created = await self.releases.create_release(version, sha, tag_date, repository)
        count = await self.commits.assign_version(repository, [c.sha for c in selected], release.version)

        logger.info(f"Release {release.version}: {count} commits linked (created={created})")
        return SyncReleaseResult(release_id=release.id, commit_count=count, created=created)

    async def get_releases(self) -> list[ReleaseOut]:
        repository = self.config.github_repository
        if not repository:
            return []
        out = []
        for release in await self.releases.list_by_repository(repository):
            commits = await self.commits.list_by_version(release.version, repository)
            out.append(
                ReleaseOut(
                    id=release.id,
                    version=release.version,
                    tag_sha=release.tag_sha,
                    date=release.date,
                    repository=release.repository,
                    commits=[
                        ReleaseCommitOut(
                            sha=c.sha,
                            title=c.display_title,
                            summary=c.summary,
                            author=c.author,
                            url=c.url,
                            timestamp=c.timestamp,
                        )
                        for c in commits
                    ],
                )
            )
        return out


router = APIRouter(prefix="/releases", tags=["releases"])


def get_reconciler(db: AsyncSession = Depends(get_session)) -> ReleaseReconciler:
    return ReleaseReconciler(CommitStore(db), ReleaseStore(db), GitHubSource(default_settings), default_settings)


@router.get("", response_model=list[ReleaseOut])
async def list_releases(reconciler: ReleaseReconciler = Depends(get_reconciler)):
    return await reconciler.get_releases()


@router.post("/sync", response_model=SyncReleaseResult, dependencies=[Depends(require_api_key)])
async def sync_release(req: SyncReleaseRequest, reconciler: ReleaseReconciler = Depends(get_reconciler)):
    try:
        return await reconciler.sync_release(req.version, req.sha, req.date)
    except ConfigurationError as e:
        raise HTTPException(500, str(e))
