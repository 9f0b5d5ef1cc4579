"""Release store — tagged versions, idempotent on version name."""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.base import as_utc
from models.release import Release

logger = logging.getLogger(__name__)


class ReleaseStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_version(self, version: str) -> Release | None:
        stmt = select(Release).where(Release.version == version)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def list_by_repository(self, repository: str) -> list[Release]:
        stmt = select(Release).where(Release.repository == repository).order_by(Release.date.desc())
        return list((await self.session.execute(stmt)).scalars().all())

    async def create_release(
        self, version: str, tag_sha: str, date: datetime, repository: str
    ) -> tuple[Release, bool]:
        """Create-or-return. The bool is True only when a new row was inserted."""
        existing = await self.get_by_version(version)
        if existing:
            return existing, False

        release = Release(version=version, tag_sha=tag_sha, date=as_utc(date), repository=repository)
        self.session.add(release)
        try:
            await self.session.commit()
        except IntegrityError:
            # Lost a race with a concurrent sync of the same tag.
            await self.session.rollback()
            existing = await self.get_by_version(version)
            if existing is None:
                raise
            return existing, False
        except SQLAlchemyError:
            await self.session.rollback()
            raise
        logger.info(f"Created release {version} ({tag_sha[:7]}) for {repository}")
        return release, True
