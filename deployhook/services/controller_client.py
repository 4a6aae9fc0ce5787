"""Cluster controller client with protocol-based swappable implementations.

Production code uses ``HTTPControllerClient``, a thin wrapper over a shared
``httpx.AsyncClient`` that speaks the controller's REST API. Tests use
``InMemoryControllerClient`` which records job requests and replays canned
attach frames without network access.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol

import httpx
from pydantic import ValidationError

from deployhook.schemas.deploy import App, NewJob, Release
from deployhook.services.attach import exit_frame

_ATTACH_HEADERS = {"Accept": "application/vnd.flynn.attach"}


class ControllerError(Exception):
    """Raised when a controller request fails."""


class ControllerClient(Protocol):
    """Protocol for the controller calls used to run deploy jobs."""

    async def get_app_release(self, app: str) -> Release:
        """Return the current release of *app*."""
        ...

    def run_job_attached(
        self, app: str, job: NewJob
    ) -> AbstractAsyncContextManager[AsyncIterator[bytes]]:
        """Start *job* on *app* and yield its attach stream."""
        ...

    async def list_apps(self) -> list[App]:
        """Return all apps known to the controller."""
        ...


class HTTPControllerClient:
    """Production client for the controller HTTP API.

    Authenticates with HTTP basic auth using an empty user name and the
    controller's auth key as the password.
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str, auth_key: str) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._auth = httpx.BasicAuth("", auth_key)

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    async def _get_json(self, path: str) -> object:
        try:
            resp = await self._client.get(self._url(path), auth=self._auth)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise ControllerError(f"GET {path} failed: {exc}") from exc
        try:
            return resp.json()
        except ValueError as exc:
            raise ControllerError(f"GET {path} returned invalid JSON") from exc

    async def get_app_release(self, app: str) -> Release:
        data = await self._get_json(f"/apps/{app}/release")
        try:
            return Release.model_validate(data)
        except ValidationError as exc:
            raise ControllerError(f"unexpected release for {app}: {exc}") from exc

    async def list_apps(self) -> list[App]:
        data = await self._get_json("/apps")
        try:
            return [App.model_validate(item) for item in data or []]
        except ValidationError as exc:
            raise ControllerError(f"unexpected app list: {exc}") from exc

    @asynccontextmanager
    async def run_job_attached(self, app: str, job: NewJob) -> AsyncIterator[AsyncIterator[bytes]]:
        """Create a job and stream its attach frames.

        The job's output has no fixed duration, so the read timeout is
        disabled for this request.
        """
        path = f"/apps/{app}/jobs"
        try:
            async with self._client.stream(
                "POST",
                self._url(path),
                json=job.model_dump(by_alias=True),
                headers=_ATTACH_HEADERS,
                auth=self._auth,
                timeout=httpx.Timeout(self._client.timeout.connect, read=None),
            ) as resp:
                if resp.is_error:
                    await resp.aread()
                    raise ControllerError(
                        f"POST {path} failed: {resp.status_code} {resp.text.strip()}"
                    )
                yield resp.aiter_bytes()
        except httpx.HTTPError as exc:
            raise ControllerError(f"POST {path} failed: {exc}") from exc


class InMemoryControllerClient:
    """Test double that records jobs and replays a canned attach stream."""

    def __init__(
        self,
        *,
        releases: dict[str, str] | None = None,
        apps: list[App] | None = None,
        frames: list[bytes] | None = None,
    ) -> None:
        self.releases: dict[str, str] = dict(releases or {})
        self.apps: list[App] = list(apps or [])
        self.frames: list[bytes] = list(frames) if frames is not None else [exit_frame(0)]
        self.jobs: list[tuple[str, NewJob]] = []
        self.run_error: Exception | None = None

    async def get_app_release(self, app: str) -> Release:
        try:
            return Release(id=self.releases[app])
        except KeyError:
            raise ControllerError(f"app not found: {app}") from None

    @asynccontextmanager
    async def run_job_attached(self, app: str, job: NewJob) -> AsyncIterator[AsyncIterator[bytes]]:
        self.jobs.append((app, job))
        if self.run_error is not None:
            raise self.run_error
        yield self._replay()

    async def _replay(self) -> AsyncIterator[bytes]:
        for frame in self.frames:
            yield frame

    async def list_apps(self) -> list[App]:
        return list(self.apps)
