"""Commit model — one commit observed on the tracked branch, plus its AI summary."""

from enum import Enum as PyEnum

from sqlalchemy import Column, DateTime, Enum, String, Text, UniqueConstraint

from models.base import Base, generate_ulid, utcnow


class SummaryStatus(str, PyEnum):
    pending = "pending"
    completed = "completed"
    failed = "failed"


class Commit(Base):
    __tablename__ = "commits"

    id = Column(String, primary_key=True, default=generate_ulid)
    sha = Column(String(40), nullable=False)
    repository = Column(String, nullable=False, index=True)  # e.g. "owner/repo"
    message = Column(Text, nullable=False)                    # full, multi-line
    title = Column(String, nullable=True)                     # short form from batch summaries
    summary = Column(Text, nullable=True)
    author = Column(String, nullable=False)
    author_email = Column(String, nullable=False)
    url = Column(String, nullable=False)
    timestamp = Column(DateTime, nullable=False, index=True)  # authored time
    created_at = Column(DateTime, nullable=False, default=utcnow)
    summary_status = Column(
        Enum(SummaryStatus, name="summary_status", create_constraint=False),
        nullable=False,
        default=SummaryStatus.pending,
        index=True,
    )
    version = Column(String, nullable=True, index=True)       # release that claimed it, set once

    __table_args__ = (UniqueConstraint("repository", "sha", name="uq_commits_repository_sha"),)

    @property
    def display_title(self) -> str:
        return self.title or self.message.split("\n")[0]
