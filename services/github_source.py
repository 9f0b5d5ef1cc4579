"""Source-repository queries against the GitHub REST API.

PyGithub is synchronous; every call runs in a worker thread so the event loop is
never blocked. API errors (GithubException) propagate to the caller.
"""

import asyncio
import logging

from github import Auth, Github

from core.settings import Settings, settings as default_settings
from models.base import as_utc
from services.schemas import CommitEvent

logger = logging.getLogger(__name__)


def _to_event(gh_commit, repository: str) -> CommitEvent:
    author = gh_commit.commit.author
    return CommitEvent(
        sha=gh_commit.sha,
        message=gh_commit.commit.message,
        author=(author.name if author else None) or "unknown",
        author_email=(author.email if author else None) or "",
        repository=repository,
        url=gh_commit.html_url,
        timestamp=as_utc(author.date),
    )


class GitHubSource:
    def __init__(self, config: Settings | None = None, client: Github | None = None):
        self.config = config or default_settings
        if client is None:
            if self.config.github_token:
                client = Github(auth=Auth.Token(self.config.github_token), per_page=100)
            else:
                logger.warning("GITHUB_TOKEN not set; using unauthenticated GitHub access (60 requests/hour)")
                client = Github(per_page=100)
        self.client = client

    def _fetch_branch_history(self, repository: str, branch: str) -> list[CommitEvent]:
        repo = self.client.get_repo(repository)
        # PaginatedList keeps requesting pages until a short page ends the listing.
        events = [_to_event(c, repository) for c in repo.get_commits(sha=branch)]
        events.reverse()  # API order is newest first
        return events

    def _get_commit(self, repository: str, sha: str) -> CommitEvent:
        return _to_event(self.client.get_repo(repository).get_commit(sha), repository)

    def _compare_range(self, repository: str, base: str | None, head: str) -> list[str]:
        repo = self.client.get_repo(repository)
        if not base:
            shas = [c.sha for c in repo.get_commits(sha=head)]
            shas.reverse()
            return shas
        return [c.sha for c in repo.compare(base, head).commits]

    async def fetch_branch_history(self, repository: str, branch: str) -> list[CommitEvent]:
        """Every commit reachable from the branch, oldest first."""
        events = await asyncio.to_thread(self._fetch_branch_history, repository, branch)
        logger.info(f"Fetched {len(events)} commits from {repository}@{branch}")
        return events

    async def get_commit(self, repository: str, sha: str) -> CommitEvent:
        return await asyncio.to_thread(self._get_commit, repository, sha)

    async def compare_range(self, repository: str, base: str | None, head: str) -> list[str]:
        """Ordered shas in base..head; everything reachable from head when base is None."""
        shas = await asyncio.to_thread(self._compare_range, repository, base, head)
        logger.info(f"Resolved {len(shas)} commits in {base[:7] if base else '(root)'}..{head[:7]}")
        return shas
