"""Deferred summarization jobs.

Ingestion only hands a commit id to a scheduler; the job itself opens its own
session, so it never depends on the request (or script step) that created it.
Jobs are idempotent: a commit that is already completed is left untouched, which
makes re-delivery safe.
"""

import asyncio
import logging
from typing import Protocol

from fastapi import BackgroundTasks

logger = logging.getLogger(__name__)


class JobScheduler(Protocol):
    def schedule_summarization(self, commit_id: str) -> None: ...


async def run_summarization_job(commit_id: str, session_factory=None, summarizer=None) -> dict:
    from services.commit_store import CommitStore
    from services.ingestion import IngestionPipeline
    from services.llm import Summarizer

    if session_factory is None:
        from core.database import async_session as session_factory

    async with session_factory() as session:
        pipeline = IngestionPipeline(CommitStore(session), summarizer=summarizer or Summarizer())
        return await pipeline.summarize_commit(commit_id)


class BackgroundTaskScheduler:
    """Runs jobs after the HTTP response has been sent."""

    def __init__(self, background_tasks: BackgroundTasks, summarizer=None):
        self.background_tasks = background_tasks
        self.summarizer = summarizer

    def schedule_summarization(self, commit_id: str) -> None:
        self.background_tasks.add_task(run_summarization_job, commit_id, summarizer=self.summarizer)
        logger.info(f"Scheduled summarization for commit {commit_id}")


class TaskScheduler:
    """asyncio-task scheduler for scripts; call drain() before the loop exits."""

    def __init__(self, session_factory=None, summarizer=None, concurrency: int = 4):
        self.session_factory = session_factory
        self.summarizer = summarizer
        self._semaphore = asyncio.Semaphore(concurrency)
        self._tasks: dict[asyncio.Task, str] = {}

    async def _run(self, commit_id: str) -> dict:
        async with self._semaphore:
            return await run_summarization_job(commit_id, self.session_factory, self.summarizer)

    def schedule_summarization(self, commit_id: str) -> None:
        task = asyncio.create_task(self._run(commit_id))
        self._tasks[task] = commit_id
        logger.info(f"Scheduled summarization for commit {commit_id}")

    async def drain(self) -> dict[str, dict | BaseException]:
        """Wait for every scheduled job. Returns {commit_id: result or exception}."""
        tasks = list(self._tasks)
        results = await asyncio.gather(*tasks, return_exceptions=True)
        outcomes = {}
        for task, result in zip(tasks, results):
            commit_id = self._tasks.pop(task)
            if isinstance(result, BaseException):
                logger.error(f"Summarization job for commit {commit_id} failed: {result!r}")
            outcomes[commit_id] = result
        return outcomes
