"""Tests for the mapping store backends."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from deployhook.db.models import RepoMapping
from deployhook.services.mapping_store import (
    DuplicateMappingError,
    InMemoryMappingStore,
    SqlMappingStore,
)


def _session_factory(session: AsyncMock) -> MagicMock:
    """Build a session factory whose context manager yields *session*."""
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = session
    factory.return_value.__aexit__.return_value = False
    return factory


# ---------------------------------------------------------------------------
# InMemoryMappingStore
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_in_memory_get_is_exact_match() -> None:
    """Lookups match on both name and branch."""
    store = InMemoryMappingStore()
    await store.create("acme/widget", "main", "app-42")

    mapping = await store.get("acme/widget", "main")
    assert mapping is not None
    assert mapping.app == "app-42"
    assert await store.get("acme/widget", "master") is None
    assert await store.get("acme/Widget", "main") is None


@pytest.mark.asyncio
async def test_in_memory_create_rejects_duplicates() -> None:
    """A second mapping for the same (name, branch) raises DuplicateMappingError."""
    store = InMemoryMappingStore()
    await store.create("acme/widget", "main", "app-42")

    with pytest.raises(DuplicateMappingError) as exc_info:
        await store.create("acme/widget", "main", "app-43")

    assert exc_info.value.name == "acme/widget"
    assert exc_info.value.branch == "main"
    assert (await store.get("acme/widget", "main")).app == "app-42"


@pytest.mark.asyncio
async def test_in_memory_same_repo_different_branches() -> None:
    """One repository can map different branches to different apps."""
    store = InMemoryMappingStore()
    await store.create("acme/widget", "main", "widget-prod")
    await store.create("acme/widget", "staging", "widget-staging")

    assert (await store.get("acme/widget", "staging")).app == "widget-staging"
    assert len(await store.list_all()) == 2


@pytest.mark.asyncio
async def test_in_memory_sets_created_at() -> None:
    """Created mappings carry a creation timestamp."""
    store = InMemoryMappingStore()
    mapping = await store.create("acme/widget", "main", "app-42")

    assert mapping.created_at is not None
    assert mapping.id == 1


@pytest.mark.asyncio
async def test_from_config_applies_default_branch() -> None:
    """Keys without a branch use the default; owner/name:branch keys keep theirs."""
    store = InMemoryMappingStore.from_config(
        {"acme/widget": "widget", "acme/gadget:develop": "gadget-dev"},
        default_branch="master",
    )

    assert (await store.get("acme/widget", "master")).app == "widget"
    assert (await store.get("acme/gadget", "develop")).app == "gadget-dev"
    assert await store.get("acme/gadget", "master") is None


@pytest.mark.asyncio
async def test_from_config_store_does_not_record_lookups() -> None:
    """A store built from static config keeps no per-lookup history."""
    store = InMemoryMappingStore.from_config({"acme/widget:main": "app-42"}, "master")

    for _ in range(1000):
        await store.get("acme/widget", "main")

    assert store.lookups == []


@pytest.mark.asyncio
async def test_recording_store_tracks_lookups() -> None:
    """With record_lookups set, each get is remembered in order."""
    store = InMemoryMappingStore(record_lookups=True)

    await store.get("acme/widget", "main")
    await store.get("acme/gadget", "develop")

    assert store.lookups == [("acme/widget", "main"), ("acme/gadget", "develop")]


@pytest.mark.asyncio
async def test_in_memory_ping() -> None:
    """The in-memory store is always reachable."""
    assert await InMemoryMappingStore().ping() is None


# ---------------------------------------------------------------------------
# SqlMappingStore
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_sql_get_returns_row() -> None:
    """get() runs one query and returns the matching row."""
    row = RepoMapping(id=7, name="acme/widget", branch="main", app="app-42")
    result_mock = MagicMock()
    result_mock.scalar_one_or_none.return_value = row
    session = AsyncMock()
    session.execute.return_value = result_mock

    store = SqlMappingStore(_session_factory(session))
    mapping = await store.get("acme/widget", "main")

    assert mapping is row
    session.execute.assert_awaited_once()
    statement = str(session.execute.await_args.args[0])
    assert "repos.name" in statement
    assert "repos.branch" in statement


@pytest.mark.asyncio
async def test_sql_get_returns_none_when_missing() -> None:
    """get() returns None when no row matches."""
    result_mock = MagicMock()
    result_mock.scalar_one_or_none.return_value = None
    session = AsyncMock()
    session.execute.return_value = result_mock

    store = SqlMappingStore(_session_factory(session))

    assert await store.get("acme/widget", "nope") is None


@pytest.mark.asyncio
async def test_sql_list_all() -> None:
    """list_all() returns every row from the query."""
    rows = [
        RepoMapping(id=1, name="acme/widget", branch="main", app="a"),
        RepoMapping(id=2, name="acme/gadget", branch="main", app="b"),
    ]
    result_mock = MagicMock()
    result_mock.scalars.return_value.all.return_value = rows
    session = AsyncMock()
    session.execute.return_value = result_mock

    store = SqlMappingStore(_session_factory(session))

    assert await store.list_all() == rows


@pytest.mark.asyncio
async def test_sql_create_commits_and_refreshes() -> None:
    """create() adds the row, commits, and refreshes server defaults."""
    session = AsyncMock()
    session.add = MagicMock()

    store = SqlMappingStore(_session_factory(session))
    mapping = await store.create("acme/widget", "main", "app-42")

    assert mapping.name == "acme/widget"
    assert mapping.branch == "main"
    assert mapping.app == "app-42"
    session.add.assert_called_once_with(mapping)
    session.commit.assert_awaited_once()
    session.refresh.assert_awaited_once_with(mapping)


@pytest.mark.asyncio
async def test_sql_create_duplicate_raises() -> None:
    """A unique constraint violation becomes DuplicateMappingError."""
    session = AsyncMock()
    session.add = MagicMock()
    session.commit.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))

    store = SqlMappingStore(_session_factory(session))

    with pytest.raises(DuplicateMappingError):
        await store.create("acme/widget", "main", "app-42")
    session.rollback.assert_awaited_once()
    session.refresh.assert_not_awaited()


@pytest.mark.asyncio
async def test_sql_ping_propagates_errors() -> None:
    """ping() lets connection errors propagate."""
    session = AsyncMock()
    session.execute.side_effect = ConnectionRefusedError("no database")

    store = SqlMappingStore(_session_factory(session))

    with pytest.raises(ConnectionRefusedError):
        await store.ping()
