"""Deploy dispatch: run the deploy job for an accepted push in the background.

``Deployer`` performs one deploy end to end: it looks up the deploy runner's
release, starts the deploy job attached, copies the job output to this
process's stdout/stderr and logs the outcome.

``BackgroundDispatcher`` launches each deploy as its own asyncio task so the
webhook response never waits for a deploy. Concurrent pushes to the same app
race unless ``serialize_per_app`` is enabled; ``max_concurrent`` caps the
number of deploys running at once.

``InMemoryDispatcher`` records launched requests for tests.
"""

from __future__ import annotations

import asyncio
import sys
from collections import defaultdict
from contextlib import AsyncExitStack
from enum import Enum
from typing import BinaryIO, Protocol

import structlog

from deployhook.schemas.deploy import DeployRequest, NewJob
from deployhook.services import attach
from deployhook.services.controller_client import ControllerClient, ControllerError

logger = structlog.get_logger()


class DeployOutcome(str, Enum):
    """Terminal state of a single deploy."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ERRORED = "errored"


class Dispatcher(Protocol):
    """Protocol for launching deploys without waiting for them."""

    def launch(self, request: DeployRequest) -> None:
        """Start deploying *request* and return immediately."""
        ...


class Deployer:
    """Runs deploy jobs through the controller."""

    def __init__(
        self,
        controller: ControllerClient,
        *,
        deploy_app: str = "taffy",
        deploy_command: str = "/bin/taffy",
        attach_timeout: float | None = None,
        stdout: BinaryIO | None = None,
        stderr: BinaryIO | None = None,
    ) -> None:
        self._controller = controller
        self._deploy_app = deploy_app
        self._deploy_command = deploy_command
        self._attach_timeout = attach_timeout
        self._stdout = stdout if stdout is not None else sys.stdout.buffer
        self._stderr = stderr if stderr is not None else sys.stderr.buffer

    async def deploy(self, request: DeployRequest) -> DeployOutcome:
        """Run one deploy and log how it ended.

        Errors are logged here and never raised; there is no retry.
        """
        log = logger.bind(
            app=request.application_id,
            url=request.source_url,
            branch=request.branch,
            commit=request.commit_id,
        )
        log.info("deploy_started")

        try:
            release = await self._controller.get_app_release(self._deploy_app)
        except ControllerError as exc:
            log.error("release_lookup_failed", deploy_app=self._deploy_app, error=str(exc))
            return DeployOutcome.ERRORED

        job = NewJob(
            release_id=release.id,
            release_env=True,
            args=[self._deploy_command, *request.args()],
        )
        try:
            exit_code = await asyncio.wait_for(self._run_attached(job), self._attach_timeout)
        except (ControllerError, attach.AttachError) as exc:
            log.error("deploy_dispatch_failed", error=str(exc))
            return DeployOutcome.ERRORED
        except asyncio.TimeoutError:
            log.error("deploy_dispatch_failed", error="attach timed out", timeout=self._attach_timeout)
            return DeployOutcome.ERRORED

        if exit_code != 0:
            log.error("deploy_failed", exit_code=exit_code)
            return DeployOutcome.FAILED

        log.info("deploy_complete")
        return DeployOutcome.SUCCEEDED

    async def _run_attached(self, job: NewJob) -> int:
        async with self._controller.run_job_attached(self._deploy_app, job) as stream:
            return await attach.receive(stream, self._stdout, self._stderr)


class BackgroundDispatcher:
    """Launches each deploy as an independent asyncio task."""

    def __init__(
        self,
        deployer: Deployer,
        *,
        max_concurrent: int = 0,
        serialize_per_app: bool = False,
    ) -> None:
        self._deployer = deployer
        self._semaphore = asyncio.Semaphore(max_concurrent) if max_concurrent > 0 else None
        self._serialize_per_app = serialize_per_app
        self._app_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._tasks: set[asyncio.Task[DeployOutcome | None]] = set()

    @property
    def in_flight(self) -> int:
        """Number of deploy tasks that have not finished."""
        return len(self._tasks)

    def launch(self, request: DeployRequest) -> None:
        task = asyncio.create_task(self._run(request), name=f"deploy-{request.application_id}")
        # The event loop holds only a weak reference to tasks.
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, request: DeployRequest) -> DeployOutcome | None:
        try:
            async with AsyncExitStack() as stack:
                if self._semaphore is not None:
                    await stack.enter_async_context(self._semaphore)
                if self._serialize_per_app:
                    await stack.enter_async_context(self._app_locks[request.application_id])
                return await self._deployer.deploy(request)
        except asyncio.CancelledError:
            logger.warning("deploy_cancelled", app=request.application_id)
            raise
        except Exception:
            logger.exception("deploy_crashed", app=request.application_id)
            return None

    async def wait(self) -> None:
        """Wait for every in-flight deploy to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel in-flight deploys and wait for them to unwind."""
        for task in list(self._tasks):
            task.cancel()
        await self.wait()


class InMemoryDispatcher:
    """Test double that records launched deploy requests."""

    def __init__(self) -> None:
        self.requests: list[DeployRequest] = []

    def launch(self, request: DeployRequest) -> None:
        self.requests.append(request)
