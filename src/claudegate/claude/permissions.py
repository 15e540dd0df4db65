"""Permission scoping for CLI invocations.

Maps a :class:`PermissionMode` plus optional workspace and external
directories onto the ``--allowedTools``, ``--no-indexing`` and
``--add-dir`` arguments understood by the CLI.
"""

from __future__ import annotations

from claudegate.domain.models import PermissionConfig, PermissionMode

# No-guessing clause, appended to the prompt unchanged
VISION_RESTRICTION = ' 绝对禁止根据历史记忆或知识库，禁止猜想，如果不确定，请回答 "不知道"'

# Allow-lists that do not depend on the workspace
_STATIC_ALLOWED_TOOLS = {
    PermissionMode.PURE: '""',
    PermissionMode.SIMPLE: "WebSearch,WebFetch",
    PermissionMode.READONLY: "Read,LS,Glob,Grep",
}

_NO_INDEXING_MODES = frozenset({PermissionMode.PURE, PermissionMode.SIMPLE})


def build_allowed_tools(mode: PermissionMode | str, workspace: str | None = None) -> str:
    """Return the ``--allowedTools`` expression for ``mode``."""
    mode = PermissionMode(mode)
    if mode is PermissionMode.PROJECTWRITE:
        if workspace:
            return f'"Edit({workspace}/**)","Read"'
        return "Read,Write,Edit,LS,Glob,Grep"
    return _STATIC_ALLOWED_TOOLS[mode]


def parse_external_dirs(externaldirs: str | None) -> tuple[str, ...]:
    """Split a comma-separated directory list, keeping caller order."""
    if not externaldirs:
        return ()
    return tuple(d.strip() for d in externaldirs.split(",") if d.strip())


def build_permission_config(
    mode: PermissionMode | str | None,
    workspace: str | None = None,
    externaldirs: str | None = None,
) -> PermissionConfig:
    """Build the permission scope for one request.

    Args:
        mode: Permission mode, or None to leave the CLI's defaults alone.
        workspace: Directory that ``projectwrite`` may edit.
        externaldirs: Comma-separated extra directories.
    """
    allowed_tools = None
    no_indexing = False
    if mode:
        mode = PermissionMode(mode)
        allowed_tools = build_allowed_tools(mode, workspace)
        no_indexing = mode in _NO_INDEXING_MODES

    return PermissionConfig(
        allowed_tools=allowed_tools,
        no_indexing=no_indexing,
        add_dirs=parse_external_dirs(externaldirs),
    )


def build_permission_args(config: PermissionConfig) -> list[str]:
    """Render a :class:`PermissionConfig` as CLI arguments."""
    args: list[str] = []
    if config.allowed_tools is not None:
        args.extend(["--allowedTools", config.allowed_tools])
    if config.no_indexing:
        args.append("--no-indexing")
    for directory in config.add_dirs:
        args.extend(["--add-dir", directory])
    return args


def apply_vision_restriction(prompt: str, vision: str | None) -> str:
    """Append the no-guessing clause when ``vision`` is non-blank."""
    if vision and vision.strip():
        return prompt + VISION_RESTRICTION
    return prompt
