"""Repository mapping store with protocol-based swappable backends.

Production code uses ``SqlMappingStore`` which opens one short-lived session
per call, so each lookup is a single atomic read against the ``repos`` table.
``InMemoryMappingStore`` serves both as the test double and as the static
backend configured through ``STATIC_REPO_MAP``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deployhook.db.models import RepoMapping


class DuplicateMappingError(Exception):
    """Raised when a mapping for the same (name, branch) already exists."""

    def __init__(self, name: str, branch: str) -> None:
        super().__init__(f"mapping for {name} ({branch} branch) already exists")
        self.name = name
        self.branch = branch


class MappingStore(Protocol):
    """Protocol for looking up and managing repository mappings."""

    async def get(self, name: str, branch: str) -> RepoMapping | None:
        """Return the mapping for an exact (name, branch) pair, or None."""
        ...

    async def list_all(self) -> list[RepoMapping]:
        """Return all mappings."""
        ...

    async def create(self, name: str, branch: str, app: str) -> RepoMapping:
        """Insert a mapping and return it.

        Raises DuplicateMappingError if (name, branch) is already mapped.
        """
        ...

    async def ping(self) -> None:
        """Raise if the backing store is unreachable."""
        ...


class SqlMappingStore:
    """Mapping store backed by the ``repos`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, name: str, branch: str) -> RepoMapping | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(RepoMapping).where(RepoMapping.name == name, RepoMapping.branch == branch)
            )
            return result.scalar_one_or_none()

    async def list_all(self) -> list[RepoMapping]:
        async with self._session_factory() as session:
            result = await session.execute(select(RepoMapping).order_by(RepoMapping.id))
            return list(result.scalars().all())

    async def create(self, name: str, branch: str, app: str) -> RepoMapping:
        async with self._session_factory() as session:
            mapping = RepoMapping(name=name, branch=branch, app=app)
            session.add(mapping)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise DuplicateMappingError(name, branch) from None
            # created_at is a server default
            await session.refresh(mapping)
            return mapping

    async def ping(self) -> None:
        async with self._session_factory() as session:
            await session.execute(text("SELECT 1"))


class InMemoryMappingStore:
    """Dict-backed store used for tests and static configuration."""

    def __init__(
        self,
        mappings: list[RepoMapping] | None = None,
        *,
        record_lookups: bool = False,
    ) -> None:
        self.mappings: dict[tuple[str, str], RepoMapping] = {}
        # Only filled when record_lookups is set.
        self.lookups: list[tuple[str, str]] = []
        self._record_lookups = record_lookups
        for mapping in mappings or []:
            self.mappings[(mapping.name, mapping.branch)] = mapping

    @classmethod
    def from_config(cls, repo_map: dict[str, str], default_branch: str) -> InMemoryMappingStore:
        """Build a store from ``{"owner/name[:branch]": app}`` entries.

        Entries without an explicit branch map *default_branch*.
        """
        store = cls()
        for key, app in repo_map.items():
            name, _, branch = key.partition(":")
            store._add(name, branch or default_branch, app)
        return store

    def _add(self, name: str, branch: str, app: str) -> RepoMapping:
        mapping = RepoMapping(
            id=len(self.mappings) + 1,
            name=name,
            branch=branch,
            app=app,
            created_at=datetime.now(timezone.utc),
        )
        self.mappings[(name, branch)] = mapping
        return mapping

    async def get(self, name: str, branch: str) -> RepoMapping | None:
        if self._record_lookups:
            self.lookups.append((name, branch))
        return self.mappings.get((name, branch))

    async def list_all(self) -> list[RepoMapping]:
        return list(self.mappings.values())

    async def create(self, name: str, branch: str, app: str) -> RepoMapping:
        if (name, branch) in self.mappings:
            raise DuplicateMappingError(name, branch)
        return self._add(name, branch, app)

    async def ping(self) -> None:
        return None
