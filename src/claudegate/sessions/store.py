"""Read and prune the session index the CLI keeps per project.

Layout under the CLI home directory::

    <claude_home>/projects/<normalized project path>/
        sessions-index.json    # {"version": 1, "entries": [...]}
        <sessionId>.jsonl      # transcript of one session
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path

from claudegate.sessions.models import (
    SessionCheckResponse,
    SessionDeleteResponse,
    SessionIndex,
    SessionInfo,
    SessionListResponse,
)

logger = logging.getLogger(__name__)

INDEX_FILENAME = "sessions-index.json"


def normalize_project_path(project_path: str | Path) -> str:
    """Mangle a project path the way the CLI names its project folders."""
    absolute = str(Path(project_path).resolve())
    normalized = absolute.replace("\\", "/")
    normalized = re.sub(r"[/:]", "-", normalized)
    return re.sub(r"[^\w-]", "-", normalized)


def _modified_key(info: SessionInfo) -> float:
    try:
        value = datetime.fromisoformat(info.modified.replace("Z", "+00:00"))
    except ValueError:
        return float("-inf")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


class SessionStore:
    """Session bookkeeping for projects under one CLI home directory."""

    def __init__(self, claude_home: str | Path = "~/.claude") -> None:
        self._claude_home = Path(claude_home).expanduser()

    @property
    def claude_home(self) -> Path:
        return self._claude_home

    def session_dir(self, project_path: str | Path) -> Path:
        return self._claude_home / "projects" / normalize_project_path(project_path)

    def index_path(self, project_path: str | Path) -> Path:
        return self.session_dir(project_path) / INDEX_FILENAME

    def session_file(self, project_path: str | Path, session_id: str) -> Path:
        return self.session_dir(project_path) / f"{session_id}.jsonl"

    def _read_index(self, project_path: str | Path) -> SessionIndex:
        path = self.index_path(project_path)
        if not path.exists():
            return SessionIndex()
        with open(path, encoding="utf-8") as f:
            return SessionIndex.model_validate(json.load(f))

    def _write_index(self, project_path: str | Path, index: SessionIndex) -> None:
        path = self.index_path(project_path)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(index.model_dump(by_alias=True), f, indent=2, ensure_ascii=False)

    def list_sessions(self, project_path: str | Path) -> SessionListResponse:
        """List the project's sessions, most recently modified first."""
        try:
            index = self._read_index(project_path)
        except (OSError, ValueError) as e:
            raise SessionStoreError(f"Cannot read session list: {e}") from e

        sessions = sorted(
            (SessionInfo.from_entry(entry) for entry in index.entries),
            key=_modified_key,
            reverse=True,
        )
        return SessionListResponse(
            project_path=str(project_path),
            total_sessions=len(sessions),
            sessions=sessions,
        )

    def check_session(self, project_path: str | Path, session_id: str) -> SessionCheckResponse:
        """A session exists when it is indexed and its transcript is on disk."""
        try:
            index = self._read_index(project_path)
        except (OSError, ValueError) as e:
            raise SessionStoreError(f"Cannot check session: {e}") from e

        entry = next((e for e in index.entries if e.session_id == session_id), None)
        if entry is None or not self.session_file(project_path, session_id).exists():
            return SessionCheckResponse(exists=False)
        return SessionCheckResponse(exists=True, session=SessionInfo.from_entry(entry))

    def delete_session(self, project_path: str | Path, session_id: str) -> SessionDeleteResponse:
        """Remove the transcript and drop the session from the index."""
        try:
            index = self._read_index(project_path)
            position = next(
                (i for i, e in enumerate(index.entries) if e.session_id == session_id), None
            )
            if position is None:
                return SessionDeleteResponse(
                    success=False, message=f"Session {session_id} does not exist"
                )

            transcript = self.session_file(project_path, session_id)
            if transcript.exists():
                transcript.unlink()
            del index.entries[position]
            self._write_index(project_path, index)
        except (OSError, ValueError) as e:
            raise SessionStoreError(f"Cannot delete session: {e}") from e

        logger.info("Deleted session %s of %s", session_id, project_path)
        return SessionDeleteResponse(
            success=True, message=f"Session {session_id} deleted", session_id=session_id
        )


class SessionStoreError(Exception):
    """Raised when the session index cannot be read or written."""
