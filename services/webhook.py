"""GitHub webhook router — turns push events on the tracked branch into ingested commits."""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError

from core.settings import settings
from services.auth import verify_github_signature
from services.commits import get_pipeline
from services.ingestion import IngestionPipeline
from services.schemas import CommitEvent

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhook"])


def extract_commits(payload: dict, repository: str) -> list[CommitEvent]:
    """Distinct commits of a push payload as CommitEvents."""
    events = []
    for c in payload.get("commits") or []:
        if not c.get("distinct"):
            continue
        author = c.get("author") or {}
        events.append(
            CommitEvent(
                sha=c.get("id"),
                message=c.get("message", ""),
                author=author.get("name") or author.get("username") or "unknown",
                author_email=author.get("email") or "",
                repository=repository,
                url=c.get("url", ""),
                timestamp=c.get("timestamp"),
            )
        )
    return events


@router.post("/github")
async def github_webhook(request: Request, pipeline: IngestionPipeline = Depends(get_pipeline)):
    body = await request.body()
    if not verify_github_signature(body, request.headers.get("x-hub-signature-256"), settings.github_webhook_secret):
        raise HTTPException(401, "Invalid signature")

    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(400, "Invalid JSON payload")

    # Pings and non-push events carry `zen` or `action`.
    if "action" in payload or "zen" in payload:
        return {"message": "Event ignored"}
    if not payload.get("ref") or "commits" not in payload:
        return {"message": "Not a push event"}

    if not settings.github_repository:
        raise HTTPException(500, "GITHUB_REPOSITORY not set")

    ref = payload["ref"]
    repository = (payload.get("repository") or {}).get("full_name", "")
    if ref not in settings.tracked_refs or repository != settings.github_repository:
        logger.info(f"Ignored push to {repository} {ref}")
        return {"message": f"Ignored: {repository} {ref}"}

    try:
        commits = extract_commits(payload, repository)
    except ValidationError as e:
        logger.warning(f"Malformed push payload from {repository}: {e}")
        raise HTTPException(400, "Malformed commit in push payload")
    if not commits:
        return {"message": "No new commits"}

    results = await pipeline.save_commits(commits)
    return {
        "message": "Commits processed",
        "processed": len(results),
        "results": [r.model_dump() for r in results],
    }
