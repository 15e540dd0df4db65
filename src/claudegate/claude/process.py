"""Launching and supervising the claude CLI subprocess.

One chat turn is one process: the prompt is written to stdin, stdin is
closed to start processing, and the stream-json output is read from
stdout by the caller. :class:`ClaudeProcess` owns the process and
guarantees it is terminated (SIGTERM, then SIGKILL after a grace
period) when the owner is done with it.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
import shutil
from collections import deque
from collections.abc import Mapping, Sequence
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_COMMAND = "claude"
DEFAULT_STOP_GRACE_PERIOD = 2.0
MCP_CONFIG_FILENAME = ".mcp.json"

# Read prompt from stdin, never ask interactively, emit stream-json
BASE_ARGS = (
    "-p",
    "--dangerously-skip-permissions",
    "--permission-mode", "bypassPermissions",
    "--output-format", "stream-json",
    "--verbose",
)


def find_mcp_config(
    explicit_path: str | Path | None = None,
    search_dir: str | Path | None = None,
) -> Path | None:
    """Locate the MCP server config to pass via ``--mcp-config``.

    An explicitly configured path wins; otherwise ``.mcp.json`` in
    ``search_dir`` (default: the current directory) is used if present.
    """
    if explicit_path:
        path = Path(explicit_path).expanduser()
        if path.is_file():
            return path.resolve()
        logger.warning("Configured MCP config %s does not exist, ignoring", path)
        return None
    candidate = Path(search_dir or Path.cwd()) / MCP_CONFIG_FILENAME
    return candidate.resolve() if candidate.is_file() else None


def build_claude_args(
    session_id: str | None = None,
    stream: bool = True,
    mcp_config_path: str | Path | None = None,
    permission_args: Sequence[str] | None = None,
) -> list[str]:
    """Build the CLI argument list (without the command itself)."""
    args = list(BASE_ARGS)
    if stream:
        args.append("--include-partial-messages")
    if mcp_config_path:
        args.extend(["--mcp-config", str(mcp_config_path)])
    if permission_args:
        args.extend(permission_args)
    if session_id:
        args.extend(["--resume", session_id])
    return args


class ClaudeProcess:
    """A running CLI process owned by a single chat request.

    Use as an async context manager, or call :meth:`stop` explicitly.
    ``stop`` is idempotent and safe to call after the process exited.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        argv: Sequence[str],
        stop_grace_period: float = DEFAULT_STOP_GRACE_PERIOD,
    ) -> None:
        self._process = process
        self._argv = list(argv)
        self._stop_grace_period = stop_grace_period
        self._stderr_tail: deque[str] = deque(maxlen=20)
        self._stderr_task: asyncio.Task[None] | None = None
        if process.stderr is not None:
            self._stderr_task = asyncio.create_task(self._drain_stderr())

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def argv(self) -> list[str]:
        return list(self._argv)

    @property
    def stdin(self) -> asyncio.StreamWriter | None:
        return self._process.stdin

    @property
    def stdout(self) -> asyncio.StreamReader:
        assert self._process.stdout is not None
        return self._process.stdout

    @property
    def stderr(self) -> asyncio.StreamReader | None:
        return self._process.stderr

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    @property
    def is_alive(self) -> bool:
        return self._process.returncode is None

    @property
    def stderr_tail(self) -> list[str]:
        """Last lines the CLI wrote to stderr."""
        return list(self._stderr_tail)

    async def wait(self) -> int:
        return await self._process.wait()

    async def stop(self) -> None:
        """Terminate the process gracefully, then forcibly."""
        if self._process.returncode is None:
            logger.info("Terminating claude process (pid=%d)", self.pid)
            try:
                self._process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(self._process.wait(), timeout=self._stop_grace_period)
            except asyncio.TimeoutError:
                logger.warning(
                    "claude process (pid=%d) ignored SIGTERM for %gs, killing",
                    self.pid, self._stop_grace_period,
                )
                try:
                    self._process.kill()
                except ProcessLookupError:
                    pass
                await self._process.wait()

        if self._stderr_task is not None:
            try:
                await asyncio.wait_for(self._stderr_task, timeout=1.0)
            except asyncio.TimeoutError:
                self._stderr_task.cancel()
            self._stderr_task = None

        code = self._process.returncode
        if code is not None and code > 0:
            logger.error(
                "claude process (pid=%d) exited with code %d: %s",
                self.pid, code, " | ".join(self._stderr_tail) or "no stderr",
            )

    async def _drain_stderr(self) -> None:
        """Log stderr so the child never blocks on a full pipe."""
        assert self._process.stderr is not None
        while True:
            try:
                line = await self._process.stderr.readline()
            except (OSError, ValueError) as e:
                logger.debug("stderr read error (pid=%d): %s", self.pid, e)
                break
            if not line:
                break
            text = line.decode("utf-8", errors="replace").rstrip()
            if text:
                self._stderr_tail.append(text)
                logger.debug("claude stderr (pid=%d): %s", self.pid, text)

    async def __aenter__(self) -> ClaudeProcess:
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        await self.stop()


async def spawn_claude_process(
    cwd: str | Path,
    env: Mapping[str, str],
    prompt: str,
    session_id: str | None = None,
    permission_args: Sequence[str] | None = None,
    *,
    command: str = DEFAULT_COMMAND,
    mcp_config_path: str | Path | None = None,
    stop_grace_period: float = DEFAULT_STOP_GRACE_PERIOD,
) -> ClaudeProcess:
    """Start the CLI for one chat turn and hand the prompt to it.

    Args:
        cwd: Existing directory the CLI runs in.
        env: Full environment for the child.
        prompt: Prompt text; a trailing newline is added.
        session_id: Session to resume, if any.
        permission_args: Arguments from :func:`build_permission_args`.
        command: CLI executable name or path.
        mcp_config_path: Path passed via ``--mcp-config``, if any.
        stop_grace_period: Seconds between SIGTERM and SIGKILL on stop.

    Raises:
        ProcessLaunchError: The directory is missing, the executable
            cannot be started, or the prompt cannot be written.
    """
    workdir = Path(cwd)
    if not workdir.is_dir():
        raise ProcessLaunchError(f"Working directory does not exist: {workdir}")

    executable = shutil.which(command, path=env.get("PATH")) or command
    argv = [executable, *build_claude_args(session_id, True, mcp_config_path, permission_args)]

    logger.info("Starting claude CLI: %s", shlex.join(argv))
    logger.info("Working directory: %s", workdir)

    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(workdir),
            env=dict(env),
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise ProcessLaunchError(f"Failed to start {command}: {e}", command=command) from e

    handle = ClaudeProcess(process, argv, stop_grace_period=stop_grace_period)

    stdin = process.stdin
    try:
        stdin.write(f"{prompt}\n".encode("utf-8"))
        await stdin.drain()
        stdin.close()
        await stdin.wait_closed()
    except OSError as e:
        logger.error("Failed to write prompt to claude stdin: %s", e)
        await handle.stop()
        raise ProcessLaunchError(f"Cannot write to {command} stdin: {e}", command=command) from e
    except asyncio.CancelledError:
        await asyncio.shield(handle.stop())
        raise

    logger.debug("Prompt sent to claude (pid=%d, %d chars)", handle.pid, len(prompt))
    return handle


class ProcessLaunchError(Exception):
    """Raised when the CLI cannot be started or fed its prompt."""

    def __init__(self, message: str, command: str = "") -> None:
        super().__init__(message)
        self.command = command
