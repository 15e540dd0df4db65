"""Shared test fixtures for the claudegate test suite.

Provides settings pointed at temporary directories and a fake process
launcher so request handling can be tested without the claude CLI.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from claudegate.claude.process import ProcessLaunchError
from claudegate.config.settings import ClaudeConfig, Settings


# ---------------------------------------------------------------------------
# CLI Output Fixtures
# ---------------------------------------------------------------------------


def stream_json(*messages: Any) -> bytes:
    """Render messages the way the CLI prints them: one JSON per line."""
    return "".join(json.dumps(m) + "\n" for m in messages).encode("utf-8")


def text_delta(text: str) -> dict[str, Any]:
    return {
        "type": "stream_event",
        "event": {
            "type": "content_block_delta",
            "index": 0,
            "delta": {"type": "text_delta", "text": text},
        },
    }


def parse_sse(body: str) -> list[dict[str, Any]]:
    """Decode a text/event-stream body into its JSON payloads."""
    events = []
    for frame in body.split("\n\n"):
        if frame.startswith("data: "):
            events.append(json.loads(frame[len("data: "):]))
    return events


@pytest.fixture
def sample_output() -> bytes:
    """A short CLI run: init, two deltas, the full reply, and the result."""
    return stream_json(
        {"type": "system", "subtype": "init", "session_id": "abc"},
        text_delta("Hel"),
        text_delta("lo"),
        {"type": "assistant", "message": {"content": [{"type": "text", "text": "Hello"}]}},
        {"type": "result", "subtype": "success", "result": "Hello", "duration_ms": 12},
    )


# ---------------------------------------------------------------------------
# Process / Launcher Fakes
# ---------------------------------------------------------------------------


class FakeClaudeProcess:
    """Stands in for ClaudeProcess: fixed stdout, recorded stop()."""

    def __init__(self, output: bytes, pid: int = 4242) -> None:
        self.pid = pid
        self.stdout = asyncio.StreamReader()
        if output:
            self.stdout.feed_data(output)
        self.stdout.feed_eof()
        self.stop = AsyncMock()


class FakeLauncher:
    """Records launch calls and returns FakeClaudeProcess instances."""

    def __init__(self, output: bytes = b"", error: Exception | None = None) -> None:
        self.output = output
        self.error = error
        self.calls: list[tuple[tuple[Any, ...], dict[str, Any]]] = []
        self.processes: list[FakeClaudeProcess] = []

    async def __call__(self, *args: Any, **kwargs: Any) -> FakeClaudeProcess:
        self.calls.append((args, kwargs))
        if self.error is not None:
            raise self.error
        process = FakeClaudeProcess(self.output)
        self.processes.append(process)
        return process


@pytest.fixture
def fake_launcher(sample_output: bytes) -> FakeLauncher:
    return FakeLauncher(sample_output)


@pytest.fixture
def failing_launcher() -> FakeLauncher:
    return FakeLauncher(error=ProcessLaunchError("Failed to start claude: not found", command="claude"))


# ---------------------------------------------------------------------------
# Settings Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    path = tmp_path / "project"
    path.mkdir()
    return path.resolve()


@pytest.fixture
def claude_home(tmp_path: Path) -> Path:
    path = tmp_path / "claude-home"
    path.mkdir()
    return path


@pytest.fixture
def settings(project_dir: Path, claude_home: Path) -> Settings:
    """Settings isolated from the host: temp working dir and CLI home."""
    return Settings(
        claude=ClaudeConfig(
            working_dir=str(project_dir),
            claude_home=str(claude_home),
            stop_grace_period=0.5,
        ),
    )
