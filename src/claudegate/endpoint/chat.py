"""Request handling for ``POST /chat/stream``.

Each request becomes one limiter job. The job launches the CLI and then
holds its slot until the response stream has finished and the process
has been stopped. Everything up to a successful launch happens before
the response starts, so admission timeouts and launch failures are still
reported with a normal HTTP status. Later failures can only be reported
in-band as an ``error`` event.

::

    open_stream(body)
      +-> limiter.run(run.execute)            (may queue / time out)
      |     +-> resolve dir, permissions, env, spawn CLI
      |     +-> wait until the stream is closed (or execution timeout)
      +-> StreamingResponse(run.frames())
            +-> transcoded SSE frames until EOF or client disconnect
            +-> finally: run.close()  -> stop CLI, release slot
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from typing import Any

from fastapi import Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from claudegate.claude.permissions import (
    apply_vision_restriction,
    build_permission_args,
    build_permission_config,
)
from claudegate.claude.process import ClaudeProcess, find_mcp_config, spawn_claude_process
from claudegate.claude.stream import NEW_SESSION, SSE_HEADERS, stream_claude_output, to_sse
from claudegate.concurrency.limiter import ConcurrencyLimiter
from claudegate.config.settings import Settings
from claudegate.domain.models import ChatRequest, EndEvent, ErrorEvent
from claudegate.utils.environment import build_environment
from claudegate.utils.git import resolve_target_directory

logger = logging.getLogger(__name__)

Launcher = Callable[..., Awaitable[ClaudeProcess]]


class ChatRun:
    """One chat request from launch to cleanup.

    ``close`` is idempotent; the first call stops the CLI and lets the
    limiter job return, which frees the slot.
    """

    def __init__(self, handler: ChatHandler, body: ChatRequest) -> None:
        self._handler = handler
        self.body = body
        self.process: ClaudeProcess | None = None
        self.ready: asyncio.Future[ClaudeProcess] = asyncio.get_running_loop().create_future()
        self._released = asyncio.Event()
        self._closing: asyncio.Future[None] | None = None
        self.job: asyncio.Task[Any] | None = None

    @property
    def session_label(self) -> str:
        return self.body.session_id or NEW_SESSION

    async def execute(self) -> None:
        """Limiter job body."""
        try:
            process = await self._handler.launch(self.body)
        except Exception as e:
            self.ready.set_exception(e)
            return

        self.process = process
        self.ready.set_result(process)

        timeout = self._handler.execution_timeout
        try:
            await asyncio.wait_for(self._released.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "claude run exceeded %gs (session=%s, pid=%d), stopping it",
                timeout, self.session_label, process.pid,
            )
        finally:
            await self.close()

    async def close(self) -> None:
        if self._closing is None:
            self._closing = asyncio.ensure_future(self._shutdown())
        await asyncio.shield(self._closing)

    async def _shutdown(self) -> None:
        try:
            if self.process is not None:
                await self.process.stop()
        finally:
            self._released.set()

    async def frames(self, request: Request | None = None) -> AsyncIterator[str]:
        """SSE frames for the client. Always ends by stopping the CLI."""
        assert self.process is not None
        try:
            async with aclosing(stream_claude_output(self.process, self.body.session_id)) as stream:
                async for frame in stream:
                    if request is not None and await request.is_disconnected():
                        logger.info("Client disconnected (session=%s)", self.session_label)
                        break
                    yield frame
        except Exception as e:
            logger.exception("Streaming failed (session=%s)", self.session_label)
            yield to_sse(ErrorEvent(error=str(e) or type(e).__name__))
            yield to_sse(EndEvent(session_id=self.session_label))
        finally:
            await self.close()


class ChatHandler:
    """Admits chat requests and turns them into SSE responses."""

    def __init__(
        self,
        limiter: ConcurrencyLimiter,
        settings: Settings,
        launcher: Launcher = spawn_claude_process,
    ) -> None:
        self._limiter = limiter
        self._settings = settings
        self._launcher = launcher

    @property
    def execution_timeout(self) -> float | None:
        return self._settings.concurrency.execution_timeout

    async def launch(self, body: ChatRequest) -> ClaudeProcess:
        """Resolve directory, permissions and environment, then spawn the CLI."""
        claude = self._settings.claude
        prompt = apply_vision_restriction(body.prompt, body.vision)
        working_dir = body.workspace or claude.resolve_working_dir()
        target_dir = await resolve_target_directory(body.session_id, body.repo, working_dir)

        permissions = build_permission_config(body.allowedmode, body.workspace, body.externaldirs)
        env = build_environment(self._settings)

        return await self._launcher(
            target_dir,
            env,
            prompt,
            body.session_id,
            build_permission_args(permissions),
            command=claude.command,
            mcp_config_path=find_mcp_config(claude.mcp_config_path),
            stop_grace_period=claude.stop_grace_period,
        )

    async def start(self, body: ChatRequest) -> ChatRun:
        """Wait for admission and launch.

        Raises:
            QueueTimeoutError / LimiterShutdownError: Not admitted.
            ProcessLaunchError / GitError: Admitted but the CLI did not start.
        """
        run = ChatRun(self, body)
        job = run.job = asyncio.create_task(self._limiter.run(run.execute))
        try:
            await asyncio.wait({job, run.ready}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            job.cancel()
            raise

        if not run.ready.done():
            # The job ended without launching: admission was refused
            job.result()
            raise RuntimeError("chat job finished without launching the CLI")
        run.ready.result()
        logger.info(
            "Streaming claude output (session=%s, pid=%d)", run.session_label, run.process.pid
        )
        return run

    async def open_stream(self, body: ChatRequest, request: Request | None = None) -> StreamingResponse:
        run = await self.start(body)
        return StreamingResponse(
            run.frames(request),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
            background=BackgroundTask(run.close),
        )
