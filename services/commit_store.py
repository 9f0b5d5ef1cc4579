"""Commit store — persistence for commit records keyed by (repository, sha).

The store is a thin layer over one AsyncSession. Every mutation is a single
statement followed by a commit; dedup and per-item error handling belong to the
ingestion pipeline.
"""

import base64
import logging
from collections.abc import Iterable, Sequence
from datetime import datetime

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import DuplicateCommitError, InvalidCursorError
from models.commit import Commit, SummaryStatus

logger = logging.getLogger(__name__)

# Keeps IN (...) lists well under driver parameter limits.
_IN_CHUNK = 500


def encode_cursor(commit: Commit) -> str:
    raw = f"{commit.timestamp.isoformat()}|{commit.id}"
    return base64.urlsafe_b64encode(raw.encode()).decode()


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    try:
        raw = base64.urlsafe_b64decode(cursor.encode()).decode()
        ts, commit_id = raw.split("|", 1)
        return datetime.fromisoformat(ts), commit_id
    except ValueError as e:
        raise InvalidCursorError(f"Invalid cursor: {cursor!r}") from e


def _chunks(items: Sequence[str], size: int = _IN_CHUNK) -> Iterable[Sequence[str]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class CommitStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _commit(self) -> None:
        # A failed flush leaves the session unusable until it is rolled back.
        try:
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

    async def _write(self, stmt):
        try:
            return await self.session.execute(stmt)
        except SQLAlchemyError:
            await self.session.rollback()
            raise

    def _select(self):
        # Rows may have been changed by bulk UPDATEs; always refresh loaded instances.
        return select(Commit).execution_options(populate_existing=True)

    async def find_by_sha_and_repo(self, sha: str, repository: str) -> Commit | None:
        stmt = self._select().where(Commit.repository == repository, Commit.sha == sha)
        return (await self.session.execute(stmt)).scalars().first()

    async def get_by_id(self, commit_id: str) -> Commit | None:
        stmt = self._select().where(Commit.id == commit_id)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def insert(self, record: Commit) -> Commit:
        repository, sha = record.repository, record.sha
        self.session.add(record)
        try:
            await self._commit()
        except IntegrityError as e:
            raise DuplicateCommitError(repository, sha) from e
        return record

    async def update_summary(
        self,
        commit_id: str,
        summary: str | None,
        status: SummaryStatus,
        title: str | None = None,
    ) -> bool:
        """Set the summary outcome. Returns False when the commit is already completed."""
        values: dict = {"summary_status": status}
        if summary is not None:
            values["summary"] = summary
        if title is not None:
            values["title"] = title
        stmt = (
            update(Commit)
            .where(Commit.id == commit_id, Commit.summary_status != SummaryStatus.completed)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._write(stmt)
        await self._commit()
        return result.rowcount > 0

    async def delete_all_for_repository(self, repository: str) -> int:
        result = await self._write(delete(Commit).where(Commit.repository == repository))
        await self._commit()
        logger.info(f"Deleted {result.rowcount} commits for {repository}")
        return result.rowcount

    async def list_by_repository(self, repository: str) -> list[Commit]:
        stmt = self._select().where(Commit.repository == repository).order_by(Commit.timestamp.desc())
        return list((await self.session.execute(stmt)).scalars().all())

    async def list_by_version(self, version: str, repository: str | None = None) -> list[Commit]:
        stmt = self._select().where(Commit.version == version).order_by(Commit.timestamp.desc())
        if repository is not None:
            stmt = stmt.where(Commit.repository == repository)
        return list((await self.session.execute(stmt)).scalars().all())

    async def list_by_status(self, status: SummaryStatus, repository: str | None = None) -> list[Commit]:
        stmt = self._select().where(Commit.summary_status == status).order_by(Commit.created_at.asc())
        if repository is not None:
            stmt = stmt.where(Commit.repository == repository)
        return list((await self.session.execute(stmt)).scalars().all())

    async def list_ordered_by_timestamp(
        self,
        cursor: str | None = None,
        limit: int = 20,
        repository: str | None = None,
    ) -> tuple[list[Commit], str | None, bool]:
        """Newest-first page. Returns (page, continue_cursor, is_done)."""
        stmt = self._select().order_by(Commit.timestamp.desc(), Commit.id.desc()).limit(limit + 1)
        if repository is not None:
            stmt = stmt.where(Commit.repository == repository)
        if cursor:
            ts, commit_id = decode_cursor(cursor)
            stmt = stmt.where(
                or_(
                    Commit.timestamp < ts,
                    and_(Commit.timestamp == ts, Commit.id < commit_id),
                )
            )
        rows = list((await self.session.execute(stmt)).scalars().all())
        is_done = len(rows) <= limit
        page = rows[:limit]
        continue_cursor = encode_cursor(page[-1]) if page and not is_done else None
        return page, continue_cursor, is_done

    async def list_unassigned_by_shas(self, repository: str, shas: Sequence[str]) -> list[Commit]:
        found: list[Commit] = []
        for chunk in _chunks(list(dict.fromkeys(shas))):
            stmt = self._select().where(
                Commit.repository == repository,
                Commit.sha.in_(chunk),
                Commit.version.is_(None),
            )
            found.extend((await self.session.execute(stmt)).scalars().all())
        found.sort(key=lambda c: c.timestamp)
        return found

    async def list_unassigned_in_window(self, repository: str, after: datetime, until: datetime) -> list[Commit]:
        """Unassigned commits with after < timestamp <= until, oldest first."""
        stmt = (
            self._select()
            .where(
                Commit.repository == repository,
                Commit.timestamp > after,
                Commit.timestamp <= until,
                Commit.version.is_(None),
            )
            .order_by(Commit.timestamp.asc())
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def assign_version(self, repository: str, shas: Sequence[str], version: str) -> int:
        """Claim commits for a release. Commits that already carry a version are left alone."""
        updated = 0
        for chunk in _chunks(list(dict.fromkeys(shas))):
            stmt = (
                update(Commit)
                .where(
                    Commit.repository == repository,
                    Commit.sha.in_(chunk),
                    Commit.version.is_(None),
                )
                .values(version=version)
                .execution_options(synchronize_session=False)
            )
            result = await self._write(stmt)
            updated += result.rowcount
        await self._commit()
        return updated
