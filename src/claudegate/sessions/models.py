"""Models for the CLI's session index and the session endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class SessionEntry(BaseModel):
    """One entry of ``sessions-index.json`` as written by the CLI.

    Only the fields the API exposes are declared; everything else in
    the entry is preserved when the index is rewritten.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    session_id: str = Field(alias="sessionId")
    summary: str = Field(default="")
    first_prompt: str = Field(default="", alias="firstPrompt")
    message_count: int = Field(default=0, alias="messageCount")
    created: str = Field(default="")
    modified: str = Field(default="")
    git_branch: str = Field(default="", alias="gitBranch")


class SessionIndex(BaseModel):
    model_config = ConfigDict(extra="allow")

    version: int = Field(default=1)
    entries: list[SessionEntry] = Field(default_factory=list)


class SessionInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    summary: str = ""
    first_prompt: str = Field(default="", alias="firstPrompt")
    message_count: int = Field(default=0, alias="messageCount")
    created: str = ""
    modified: str = ""
    git_branch: str = Field(default="", alias="gitBranch")

    @classmethod
    def from_entry(cls, entry: SessionEntry) -> SessionInfo:
        return cls(
            session_id=entry.session_id,
            summary=entry.summary,
            first_prompt=entry.first_prompt,
            message_count=entry.message_count,
            created=entry.created,
            modified=entry.modified,
            git_branch=entry.git_branch,
        )


class SessionListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_path: str = Field(alias="projectPath")
    total_sessions: int = Field(alias="totalSessions")
    sessions: list[SessionInfo] = Field(default_factory=list)


class SessionCheckResponse(BaseModel):
    exists: bool
    session: SessionInfo | None = None


class SessionDeleteResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    session_id: str | None = Field(default=None, alias="sessionId")
