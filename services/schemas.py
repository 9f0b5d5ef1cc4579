from datetime import datetime

from pydantic import BaseModel, Field


# --- Commits ---

class CommitEvent(BaseModel):
    """One raw commit as delivered by the event source or the GitHub API."""
    sha: str
    message: str
    author: str
    author_email: str
    repository: str
    url: str
    timestamp: datetime


class SaveResult(BaseModel):
    sha: str
    status: str = Field(..., pattern="^(saved|skipped|failed)$")
    reason: str | None = None
    commit_id: str | None = None


class SaveCommitsRequest(BaseModel):
    commits: list[CommitEvent]


class CommitOut(BaseModel):
    id: str
    sha: str
    repository: str
    message: str
    title: str | None
    summary: str | None
    author: str
    author_email: str
    url: str
    timestamp: datetime
    created_at: datetime
    summary_status: str
    version: str | None

    class Config:
        from_attributes = True


class CommitPage(BaseModel):
    page: list[CommitOut]
    continue_cursor: str | None = None
    is_done: bool


class RegenerateResult(BaseModel):
    deleted: int
    fetched: int
    saved: int
    errors: list[dict] = Field(default_factory=list)  # {"sha": ..., "error": ...}


class RetrySummariesRequest(BaseModel):
    statuses: list[str] = Field(default_factory=lambda: ["failed"])


# --- Summaries ---

class BatchSummary(BaseModel):
    title: str
    description: str = ""


# --- Releases ---

class SyncReleaseRequest(BaseModel):
    version: str
    sha: str
    date: datetime | None = None  # resolved from GitHub when omitted


class SyncReleaseResult(BaseModel):
    release_id: str
    commit_count: int
    created: bool


class ReleaseCommitOut(BaseModel):
    sha: str
    title: str
    summary: str | None
    author: str
    url: str
    timestamp: datetime


class ReleaseOut(BaseModel):
    id: str
    version: str
    tag_sha: str
    date: datetime
    repository: str
    commits: list[ReleaseCommitOut]
