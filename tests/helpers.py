"""Shared fakes and builders for the test suite."""

import asyncio
from datetime import datetime, timedelta
from types import SimpleNamespace

import httpx
import openai
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import models.commit  # noqa: F401
import models.release  # noqa: F401
from core.settings import Settings
from models.base import Base
from services.schemas import CommitEvent

REPO = "acme/widgets"


def make_settings(**overrides) -> Settings:
    values = {
        "openai_api_key": "sk-test",
        "github_repository": REPO,
        "summary_retry_base_delay": 2.0,
        "summary_max_retries": 3,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def at(minutes: int) -> datetime:
    return datetime(2024, 1, 1) + timedelta(minutes=minutes)


def make_event(sha: str, minutes: int = 0, repository: str = REPO, message: str | None = None) -> CommitEvent:
    return CommitEvent(
        sha=sha,
        message=message or f"fix: change {sha[:7]}\n\nLonger body.",
        author="Dana",
        author_email="dana@example.com",
        repository=repository,
        url=f"https://github.com/{repository}/commit/{sha}",
        timestamp=at(minutes),
    )


def run_with_db(scenario, path=None):
    """Run `await scenario(session_factory)` against a fresh database.

    In-memory by default; pass a file path when several sessions must hold
    their own connections at once.
    """

    async def runner():
        if path is None:
            engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
        else:
            engine = create_async_engine(f"sqlite+aiosqlite:///{path}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        factory = async_sessionmaker(engine, expire_on_commit=False)
        try:
            return await scenario(factory)
        finally:
            await engine.dispose()

    return asyncio.run(runner())


def rate_limit_error() -> openai.RateLimitError:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return openai.RateLimitError("Rate limit reached", response=httpx.Response(429, request=request), body=None)


def server_error() -> openai.InternalServerError:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return openai.InternalServerError("Server error", response=httpx.Response(500, request=request), body=None)


class FakeCompletions:
    """Stands in for client.chat.completions; replays queued contents or raises queued errors."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=item))])


def fake_openai(responses):
    completions = FakeCompletions(responses)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class RecordingScheduler:
    def __init__(self):
        self.scheduled = []

    def schedule_summarization(self, commit_id: str) -> None:
        self.scheduled.append(commit_id)


class FakeSummarizer:
    def __init__(self, summary="Fixes a thing.", batch=None, error=None):
        self.summary = summary
        self.batch = batch or {}
        self.error = error
        self.commit_calls = []
        self.batch_calls = []

    def ensure_configured(self):
        pass

    async def summarize_commit(self, message):
        self.commit_calls.append(message)
        if self.error:
            raise self.error
        return self.summary

    async def summarize_batch(self, commits):
        self.batch_calls.append(list(commits))
        if self.error:
            raise self.error
        return self.batch


class FakeSource:
    def __init__(self, history=None, ranges=None, commits=None):
        self.history = history or []
        self.ranges = ranges or {}
        self.commits = commits or {}
        self.compare_calls = []

    async def fetch_branch_history(self, repository, branch):
        return list(self.history)

    async def get_commit(self, repository, sha):
        return self.commits[sha]

    async def compare_range(self, repository, base, head):
        self.compare_calls.append((base, head))
        return list(self.ranges[(base, head)])
