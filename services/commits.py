"""Commits router — paginated listing, batch ingest, bulk regeneration, retry sweep."""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db as get_session
from core.errors import ConfigurationError, InvalidCursorError
from core.settings import settings
from models.commit import SummaryStatus
from services.auth import require_api_key
from services.commit_store import CommitStore
from services.github_source import GitHubSource
from services.ingestion import IngestionPipeline
from services.jobs import BackgroundTaskScheduler
from services.llm import Summarizer
from services.schemas import (
    CommitOut,
    CommitPage,
    RegenerateResult,
    RetrySummariesRequest,
    SaveCommitsRequest,
    SaveResult,
)

router = APIRouter(prefix="/commits", tags=["commits"])


def get_pipeline(background_tasks: BackgroundTasks, db: AsyncSession = Depends(get_session)) -> IngestionPipeline:
    summarizer = Summarizer(settings)
    return IngestionPipeline(
        CommitStore(db),
        summarizer=summarizer,
        scheduler=BackgroundTaskScheduler(background_tasks, summarizer),
        config=settings,
    )


@router.get("", response_model=CommitPage)
async def list_commits(cursor: str | None = None, limit: int = 20, db: AsyncSession = Depends(get_session)):
    """Newest-first commit listing; pass continue_cursor back as cursor for the next page."""
    limit = max(1, min(limit, 100))
    try:
        page, continue_cursor, is_done = await CommitStore(db).list_ordered_by_timestamp(cursor, limit)
    except InvalidCursorError as e:
        raise HTTPException(400, str(e))
    return CommitPage(
        page=[CommitOut.model_validate(c) for c in page],
        continue_cursor=continue_cursor,
        is_done=is_done,
    )


@router.post("", response_model=list[SaveResult], dependencies=[Depends(require_api_key)])
async def save_commits(req: SaveCommitsRequest, pipeline: IngestionPipeline = Depends(get_pipeline)):
    return await pipeline.save_commits(req.commits)


@router.post("/regenerate", response_model=RegenerateResult, dependencies=[Depends(require_api_key)])
async def regenerate_commits(db: AsyncSession = Depends(get_session)):
    pipeline = IngestionPipeline(
        CommitStore(db), summarizer=Summarizer(settings), source=GitHubSource(settings), config=settings
    )
    try:
        return await pipeline.regenerate_all()
    except ConfigurationError as e:
        raise HTTPException(500, str(e))


@router.post("/retry", dependencies=[Depends(require_api_key)])
async def retry_summaries(req: RetrySummariesRequest, pipeline: IngestionPipeline = Depends(get_pipeline)):
    try:
        statuses = [SummaryStatus(s) for s in req.statuses]
    except ValueError as e:
        raise HTTPException(400, str(e))
    scheduled = await pipeline.retry_summaries(statuses, settings.github_repository)
    return {"scheduled": scheduled}
