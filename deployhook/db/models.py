"""SQLAlchemy ORM models for the repository mapping schema."""

from datetime import datetime

from sqlalchemy import DateTime, String, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class RepoMapping(Base):
    """Maps a GitHub repository branch to the app that deploys it."""

    __tablename__ = "repos"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    branch: Mapped[str] = mapped_column(String(255), default="master", server_default="master")
    app: Mapped[str] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (UniqueConstraint("name", "branch", name="uq_repos_name_branch"),)

    def __repr__(self) -> str:
        return f"RepoMapping(name={self.name!r}, branch={self.branch!r}, app={self.app!r})"
