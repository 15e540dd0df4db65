"""Integration with the claude CLI.

Public API:
    build_permission_config / build_permission_args -- Permission scoping
    spawn_claude_process / ClaudeProcess -- Subprocess launch and cleanup
    stream_claude_output -- stdout to SSE transcoding
"""

from claudegate.claude.permissions import (
    apply_vision_restriction,
    build_permission_args,
    build_permission_config,
)
from claudegate.claude.process import ClaudeProcess, ProcessLaunchError, spawn_claude_process
from claudegate.claude.stream import stream_claude_output, to_sse, transcode

__all__ = [
    "ClaudeProcess",
    "ProcessLaunchError",
    "apply_vision_restriction",
    "build_permission_args",
    "build_permission_config",
    "spawn_claude_process",
    "stream_claude_output",
    "to_sse",
    "transcode",
]
