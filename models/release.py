"""Release model — one tagged version."""

from sqlalchemy import Column, DateTime, String

from models.base import Base, generate_ulid


class Release(Base):
    __tablename__ = "releases"

    id = Column(String, primary_key=True, default=generate_ulid)
    version = Column(String, nullable=False, unique=True)  # tag name, e.g. "v1.2.0"
    tag_sha = Column(String(40), nullable=False)
    date = Column(DateTime, nullable=False, index=True)    # tagged commit's authored time
    repository = Column(String, nullable=False, index=True)
