"""Commit ingestion: dedup, pending insert, deferred summarization, bulk regeneration.

Pipeline operations never let one commit's failure abort the batch; they return
per-item outcomes instead. Store and summarizer errors are converted here.
"""

import logging
from collections.abc import Iterable, Sequence

from sqlalchemy.exc import SQLAlchemyError

from core.errors import CommitNotFoundError, ConfigurationError, DuplicateCommitError, SummarizationError
from core.settings import Settings, settings as default_settings
from models.base import as_utc, utcnow
from models.commit import Commit, SummaryStatus
from services.commit_store import CommitStore
from services.jobs import JobScheduler
from services.llm import Summarizer, lookup_batch_summary
from services.schemas import CommitEvent, RegenerateResult, SaveResult

logger = logging.getLogger(__name__)


def _new_commit(event: CommitEvent, **extra) -> Commit:
    return Commit(
        sha=event.sha,
        repository=event.repository,
        message=event.message,
        author=event.author,
        author_email=event.author_email,
        url=event.url,
        timestamp=as_utc(event.timestamp),
        created_at=utcnow(),
        **extra,
    )


class IngestionPipeline:
    def __init__(
        self,
        commits: CommitStore,
        summarizer: Summarizer | None = None,
        scheduler: JobScheduler | None = None,
        source=None,
        config: Settings | None = None,
    ):
        self.commits = commits
        self.summarizer = summarizer
        self.scheduler = scheduler
        self.source = source
        self.config = config or default_settings

    async def save_commits(self, events: Sequence[CommitEvent]) -> list[SaveResult]:
        """Store new commits as pending and schedule their summaries, in input order."""
        if not events:
            return []

        results: list[SaveResult] = []
        for event in events:
            existing = await self.commits.find_by_sha_and_repo(event.sha, event.repository)
            if existing:
                logger.info(f"Commit {event.sha[:7]} already exists in {event.repository}, skipping")
                results.append(SaveResult(sha=event.sha, status="skipped", reason="already_exists"))
                continue

            try:
                commit = await self.commits.insert(_new_commit(event, summary_status=SummaryStatus.pending))
            except DuplicateCommitError:
                # A concurrent ingestion won the insert.
                logger.info(f"Commit {event.sha[:7]} inserted concurrently, skipping")
                results.append(SaveResult(sha=event.sha, status="skipped", reason="already_exists"))
                continue
            except SQLAlchemyError as e:
                logger.error(f"Failed to save commit {event.sha[:7]}: {e}")
                results.append(SaveResult(sha=event.sha, status="failed", reason=str(e)))
                continue

            logger.info(f"Saved commit {event.sha[:7]} as {commit.id}")
            if self.scheduler is not None:
                self.scheduler.schedule_summarization(commit.id)
            results.append(SaveResult(sha=event.sha, status="saved", commit_id=commit.id))

        saved = sum(1 for r in results if r.status == "saved")
        skipped = sum(1 for r in results if r.status == "skipped")
        logger.info(f"save_commits: total={len(events)} saved={saved} skipped={skipped}")
        return results

    async def summarize_commit(self, commit_id: str) -> dict:
        """Job handler: summarize one stored commit. Safe to run more than once."""
        commit = await self.commits.get_by_id(commit_id)
        if commit is None:
            raise CommitNotFoundError(f"Commit {commit_id} not found")
        if commit.summary_status == SummaryStatus.completed:
            logger.info(f"Commit {commit_id} already summarized, skipping")
            return {"status": "already_completed"}
        if self.summarizer is None:
            raise ConfigurationError("No summarizer configured")

        try:
            summary = await self.summarizer.summarize_commit(commit.message)
        except SummarizationError as e:
            logger.error(f"Failed to summarize commit {commit.sha[:7]}: {e}")
            await self.commits.update_summary(commit_id, None, SummaryStatus.failed)
            return {"status": "failed", "error": str(e)}

        await self.commits.update_summary(commit_id, summary, SummaryStatus.completed)
        logger.info(f"Commit {commit.sha[:7]} summarized")
        return {"status": "completed", "summary": summary}

    async def retry_summaries(
        self,
        statuses: Iterable[SummaryStatus] = (SummaryStatus.failed,),
        repository: str | None = None,
    ) -> int:
        """Re-schedule summarization for commits in the given states."""
        if self.scheduler is None:
            raise ConfigurationError("No job scheduler configured")
        scheduled = 0
        for status in statuses:
            for commit in await self.commits.list_by_status(SummaryStatus(status), repository):
                self.scheduler.schedule_summarization(commit.id)
                scheduled += 1
        logger.info(f"Re-scheduled {scheduled} summarization jobs")
        return scheduled

    async def regenerate_all(self, repository: str | None = None, branch: str | None = None) -> RegenerateResult:
        """Wipe the repository's commits, re-fetch the branch and summarize it in one batch.

        Not atomic: a crash after the delete leaves the store partially empty and the
        operation should simply be re-run.
        """
        repository = repository or self.config.github_repository
        branch = branch or self.config.history_branch
        if not repository:
            raise ConfigurationError("GITHUB_REPOSITORY not set")
        if self.source is None or self.summarizer is None:
            raise ConfigurationError("Regeneration needs a GitHub source and a summarizer")
        self.summarizer.ensure_configured()

        deleted = await self.commits.delete_all_for_repository(repository)
        events = await self.source.fetch_branch_history(repository, branch)

        try:
            summaries = await self.summarizer.summarize_batch([(e.sha, e.message) for e in events])
        except SummarizationError as e:
            logger.error(f"Batch summarization failed, storing {len(events)} commits as failed: {e}")
            summaries = {}

        saved = 0
        errors: list[dict] = []
        for event in events:
            entry = lookup_batch_summary(summaries, event.sha)
            if entry is None:
                extra = {"summary_status": SummaryStatus.failed}
            else:
                extra = {
                    "title": entry.title,
                    "summary": entry.description or None,
                    "summary_status": SummaryStatus.completed,
                }
            try:
                await self.commits.insert(_new_commit(event, **extra))
            except (DuplicateCommitError, SQLAlchemyError) as e:
                logger.error(f"Failed to save commit {event.sha[:7]}: {e}")
                errors.append({"sha": event.sha, "error": str(e)})
                continue
            saved += 1

        logger.info(
            f"Regenerated {repository}@{branch}: deleted={deleted} fetched={len(events)} "
            f"saved={saved} errors={len(errors)}"
        )
        return RegenerateResult(deleted=deleted, fetched=len(events), saved=saved, errors=errors)
