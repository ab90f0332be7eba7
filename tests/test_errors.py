"""Tests for structured errors and suggestion helpers."""

import pytest

from earsflow.core.errors import (
    ArchiveError,
    ConfigError,
    EarsflowError,
    GitCommandError,
    ResetError,
    SkillNotFoundError,
    WorktreeError,
    filesystem_suggestions,
    format_error,
    git_suggestions,
)


class TestEarsflowError:
    def test_defaults(self):
        err = EarsflowError("boom")
        assert err.message == "boom"
        assert err.code == "EARSFLOW_ERROR"
        assert err.suggestions == []
        assert err.context == {}
        assert str(err) == "boom"

    @pytest.mark.parametrize(
        "cls,code",
        [
            (ConfigError, "INVALID_CONFIG"),
            (GitCommandError, "GIT_COMMAND_FAILED"),
            (WorktreeError, "WORKTREE_OPERATION_FAILED"),
            (ArchiveError, "ARCHIVE_ERROR"),
            (ResetError, "RESET_OPERATION_FAILED"),
            (SkillNotFoundError, "SKILL_NOT_FOUND"),
        ],
    )
    def test_subclass_default_codes(self, cls, code):
        err = cls("failed")
        assert isinstance(err, EarsflowError)
        assert err.code == code

    def test_explicit_code_overrides_default(self):
        err = WorktreeError("x", code="WORKTREE_NOT_FOUND")
        assert err.code == "WORKTREE_NOT_FOUND"

    def test_to_dict(self):
        err = ResetError("no", suggestions=["a"], context={"operation": "reset"})
        assert err.to_dict() == {
            "code": "RESET_OPERATION_FAILED",
            "message": "no",
            "suggestions": ["a"],
            "context": {"operation": "reset"},
        }

    def test_git_command_error_carries_command(self):
        err = GitCommandError(
            "git failed",
            command=["git", "status"],
            exit_code=128,
            stderr="fatal",
            suggestions=["x"],
        )
        assert err.command == ["git", "status"]
        assert err.exit_code == 128
        assert err.stderr == "fatal"
        assert err.suggestions == ["x"]


class TestSuggestions:
    @pytest.mark.parametrize(
        "stderr,expected",
        [
            ("fatal: not a git repository", 'Run "git init" to initialize a new repository'),
            ("fatal: a branch named 'x' already exists", "Use a different branch name"),
            ("error: Permission denied", "Check file permissions"),
            ("something else", "Check git command syntax"),
        ],
    )
    def test_git_suggestions(self, stderr, expected):
        assert expected in git_suggestions(stderr)

    @pytest.mark.parametrize(
        "error,expected",
        [
            (FileNotFoundError(), "Verify the file or directory exists"),
            (PermissionError(), "Check file permissions"),
            (FileExistsError(), "File or directory already exists"),
            (OSError(), "Verify disk space availability"),
        ],
    )
    def test_filesystem_suggestions(self, error, expected):
        assert expected in filesystem_suggestions(error)


def test_format_error_includes_code_and_suggestions():
    text = format_error(ConfigError("bad config", suggestions=["Fix it"]))
    assert text.startswith("bad config [INVALID_CONFIG]")
    assert "Suggestions:" in text
    assert "  - Fix it" in text


def test_format_error_without_suggestions():
    assert format_error(EarsflowError("plain")) == "plain [EARSFLOW_ERROR]"
