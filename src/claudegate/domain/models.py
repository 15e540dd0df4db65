"""Core domain models for the claudegate system.

These models represent the data flowing through one chat request: the
validated request body, the permission scope handed to the CLI, the
outbound events streamed back to the client, and the limiter snapshots
exposed on the status endpoints.

Wire names follow the HTTP API (camelCase); Python attributes are
snake_case with aliases.
"""

from __future__ import annotations

import enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class PermissionMode(str, enum.Enum):
    """Coarse-grained tool policy for one CLI invocation."""

    PURE = "pure"  # No tools at all
    SIMPLE = "simple"  # Web search/fetch only
    READONLY = "readonly"  # Read/list/search local files
    PROJECTWRITE = "projectwrite"  # Edit inside the workspace


# ---------------------------------------------------------------------------
# Request Models
# ---------------------------------------------------------------------------


class ChatRequest(BaseModel):
    """Body of ``POST /chat/stream``.

    Optional string fields are trimmed; blank values count as absent.
    """

    model_config = ConfigDict(populate_by_name=True)

    prompt: str = Field(min_length=1, description="Prompt text sent to the CLI")
    session_id: str | None = Field(
        default=None, alias="sessionId", description="Session to resume; omit for a new one"
    )
    workspace: str | None = Field(default=None, description="Working directory for the CLI")
    externaldirs: str | None = Field(
        default=None, description="Comma-separated extra directories the CLI may access"
    )
    allowedmode: PermissionMode | None = Field(default=None, description="Permission mode")
    vision: str | None = Field(default=None, description="Non-empty enables the no-guessing guard")
    repo: str | None = Field(default=None, description="Git repository to clone for a new session")

    @field_validator("session_id", "workspace", "externaldirs", "allowedmode", "vision", "repo", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value


class PermissionConfig(BaseModel):
    """Tool allow-list and directory scope derived from a permission mode."""

    model_config = ConfigDict(frozen=True)

    allowed_tools: str | None = Field(
        default=None, description="Value for --allowedTools; None omits the flag"
    )
    no_indexing: bool = Field(default=False, description="Whether to pass --no-indexing")
    add_dirs: tuple[str, ...] = Field(
        default=(), description="Directories passed via --add-dir, in caller order"
    )


# ---------------------------------------------------------------------------
# Limiter Snapshots
# ---------------------------------------------------------------------------


class ConcurrencyStatus(BaseModel):
    """Point-in-time view of limiter occupancy."""

    model_config = ConfigDict(frozen=True)

    active: int = Field(ge=0)
    max: int = Field(ge=0)
    available: int = Field(ge=0)
    queued: int = Field(ge=0)


class QueueEntry(BaseModel):
    """A queued job as reported by ``GET /status/queue``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    timestamp: int = Field(description="Enqueue time, milliseconds since the epoch")
    waiting_ms: int = Field(ge=0, alias="waitingMs", description="Milliseconds spent waiting")


class QueueInfo(BaseModel):
    count: int = Field(ge=0)
    tasks: list[QueueEntry] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Outbound Events (discriminated union)
# ---------------------------------------------------------------------------


class StartEvent(BaseModel):
    """First event of every stream."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["start"] = "start"
    session_id: str = Field(alias="sessionId")


class DataEvent(BaseModel):
    """Delta text, plain-text output, or a structured CLI message."""

    model_config = ConfigDict(frozen=True)

    type: Literal["data"] = "data"
    content: Any = Field(description="Text or the parsed JSON object")


class ErrorEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["error"] = "error"
    error: str = Field(description="Error message")


class EndEvent(BaseModel):
    """Last event of every stream."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["end"] = "end"
    session_id: str = Field(alias="sessionId")


OutboundEvent = Annotated[
    Union[StartEvent, DataEvent, ErrorEvent, EndEvent],
    Field(discriminator="type"),
]
