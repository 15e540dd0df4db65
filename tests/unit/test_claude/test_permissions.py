"""Tests for permission mode to CLI argument mapping."""

from __future__ import annotations

import pytest

from claudegate.claude.permissions import (
    VISION_RESTRICTION,
    apply_vision_restriction,
    build_allowed_tools,
    build_permission_args,
    build_permission_config,
    parse_external_dirs,
)
from claudegate.domain.models import PermissionMode


class TestAllowedTools:
    @pytest.mark.parametrize(
        ("mode", "expected"),
        [
            (PermissionMode.PURE, '""'),
            (PermissionMode.SIMPLE, "WebSearch,WebFetch"),
            (PermissionMode.READONLY, "Read,LS,Glob,Grep"),
            (PermissionMode.PROJECTWRITE, "Read,Write,Edit,LS,Glob,Grep"),
        ],
    )
    def test_without_workspace(self, mode: PermissionMode, expected: str) -> None:
        assert build_allowed_tools(mode) == expected

    def test_projectwrite_scoped_to_workspace(self) -> None:
        assert build_allowed_tools("projectwrite", "/srv/ws") == '"Edit(/srv/ws/**)","Read"'

    def test_workspace_ignored_by_other_modes(self) -> None:
        assert build_allowed_tools("readonly", "/srv/ws") == "Read,LS,Glob,Grep"

    def test_unknown_mode_rejected(self) -> None:
        with pytest.raises(ValueError):
            build_allowed_tools("admin")


class TestExternalDirs:
    def test_split_and_trim_in_order(self) -> None:
        assert parse_external_dirs(" /a , /b,,/c ") == ("/a", "/b", "/c")

    @pytest.mark.parametrize("value", [None, "", " , "])
    def test_empty(self, value: str | None) -> None:
        assert parse_external_dirs(value) == ()


class TestPermissionConfig:
    def test_no_mode_leaves_defaults(self) -> None:
        config = build_permission_config(None)
        assert config.allowed_tools is None
        assert config.no_indexing is False
        assert build_permission_args(config) == []

    @pytest.mark.parametrize(
        ("mode", "no_indexing"),
        [("pure", True), ("simple", True), ("readonly", False), ("projectwrite", False)],
    )
    def test_no_indexing_modes(self, mode: str, no_indexing: bool) -> None:
        assert build_permission_config(mode).no_indexing is no_indexing

    def test_pure_args(self) -> None:
        args = build_permission_args(build_permission_config(PermissionMode.PURE))
        assert args == ["--allowedTools", '""', "--no-indexing"]

    def test_full_args(self) -> None:
        config = build_permission_config("projectwrite", "/ws", "/x,/y")
        assert build_permission_args(config) == [
            "--allowedTools", '"Edit(/ws/**)","Read"',
            "--add-dir", "/x",
            "--add-dir", "/y",
        ]

    def test_external_dirs_without_mode(self) -> None:
        config = build_permission_config(None, externaldirs="/data")
        assert build_permission_args(config) == ["--add-dir", "/data"]


class TestVisionRestriction:
    def test_appended_when_vision_set(self) -> None:
        assert apply_vision_restriction("Describe", "yes") == "Describe" + VISION_RESTRICTION

    def test_clause_text(self) -> None:
        result = apply_vision_restriction("D盘有哪些目录？", "enabled")
        assert result == 'D盘有哪些目录？ 绝对禁止根据历史记忆或知识库，禁止猜想，如果不确定，请回答 "不知道"'

    @pytest.mark.parametrize("vision", [None, "", "   "])
    def test_unchanged_otherwise(self, vision: str | None) -> None:
        assert apply_vision_restriction("Describe", vision) == "Describe"
