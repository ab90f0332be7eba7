"""Tests for worktree management.

Parsing is tested on canned porcelain output; lifecycle tests run real git
commands against a temporary repository.
"""

import shutil
from pathlib import Path

import pytest

from earsflow.core.config import SkillsConfig
from earsflow.core.errors import WorktreeError
from earsflow.core.models import WorktreeStatus
from earsflow.core.worktree import WorktreeManager, parse_porcelain

PORCELAIN = """worktree /repo
HEAD 0123456789abcdef0123456789abcdef01234567
branch refs/heads/main

worktree /worktrees/feature/login
HEAD fedcba9876543210fedcba9876543210fedcba98
branch refs/heads/feature/login

worktree /worktrees/detached
HEAD 1111111111111111111111111111111111111111
detached
"""


def make_config(base: Path, **worktree) -> SkillsConfig:
    return SkillsConfig.model_validate({"worktree": {"baseDirectory": str(base), **worktree}})


@pytest.fixture
def wt_base(repo_with_git) -> Path:
    # Sibling of the repository, unique per test
    return repo_with_git.parent / f"{repo_with_git.name}-worktrees"


@pytest.fixture
def manager(repo_with_git, wt_base) -> WorktreeManager:
    return WorktreeManager(repo_with_git, make_config(wt_base))


class TestParsePorcelain:
    def test_parses_records(self):
        worktrees = parse_porcelain(PORCELAIN)
        assert [wt.path for wt in worktrees] == ["/repo", "/worktrees/feature/login", "/worktrees/detached"]
        assert worktrees[0].branch == "main"
        assert worktrees[0].commit == "01234567"
        assert worktrees[0].is_main
        assert worktrees[1].branch == "feature/login"
        assert worktrees[2].branch is None
        assert worktrees[2].status is WorktreeStatus.DETACHED

    def test_empty_output(self):
        assert parse_porcelain("") == []


class TestValidation:
    @pytest.mark.parametrize("branch", ["", "bad branch", "feature/x;rm", "feat~1"])
    def test_invalid_branch_names(self, branch, tmp_path):
        manager = WorktreeManager(tmp_path, make_config(tmp_path / "wt"))
        with pytest.raises(WorktreeError) as exc:
            manager.create(branch)
        assert exc.value.code == "INVALID_INPUT"

    def test_remove_requires_branch(self, tmp_path):
        with pytest.raises(WorktreeError) as exc:
            WorktreeManager(tmp_path).remove("")
        assert exc.value.code == "INVALID_INPUT"

    def test_list_outside_repository(self, mocker, tmp_path):
        mocker.patch(
            "earsflow.core.git.subprocess.run",
            return_value=mocker.Mock(returncode=128, stdout="", stderr="fatal: not a git repository"),
        )
        with pytest.raises(WorktreeError) as exc:
            WorktreeManager(tmp_path).list()
        assert exc.value.code == "WORKTREE_LIST_FAILED"
        assert 'Run "git init" to initialize a new repository' in exc.value.suggestions


class TestLifecycle:
    def test_create_new_branch(self, manager, wt_base):
        wt = manager.create("feature/login")
        assert Path(wt.path) == wt_base / "feature" / "login"
        assert wt.branch == "feature/login"
        assert len(wt.commit) == 8
        assert wt.status is WorktreeStatus.CLEAN
        assert (Path(wt.path) / ".ai").is_dir()

    def test_create_existing_branch(self, manager, repo_with_git):
        manager.git.run("branch", "feature/existing")
        wt = manager.create("feature/existing")
        assert wt.branch == "feature/existing"

    def test_create_custom_path(self, manager, wt_base):
        target = wt_base / "elsewhere"
        wt = manager.create("feature/custom", path=target)
        assert Path(wt.path) == target

    def test_create_unknown_base_fails(self, manager):
        with pytest.raises(WorktreeError) as exc:
            manager.create("feature/x", base="does-not-exist")
        assert exc.value.code == "WORKTREE_CREATE_FAILED"

    def test_create_without_prefix_warns(self, manager, caplog):
        with caplog.at_level("WARNING", logger="earsflow.core.worktree"):
            manager.create("scratch")
        assert "does not use a configured prefix" in caplog.text

    def test_limit_excludes_main(self, repo_with_git, wt_base):
        manager = WorktreeManager(repo_with_git, make_config(wt_base, maxWorktrees=1))
        manager.create("feature/one")
        with pytest.raises(WorktreeError) as exc:
            manager.create("feature/two")
        assert exc.value.code == "WORKTREE_LIMIT_REACHED"

    def test_list_and_dirty_status(self, manager, repo_with_git):
        manager.create("feature/login")
        (repo_with_git / "untracked.txt").write_text("x")
        worktrees = manager.list()
        assert [wt.branch for wt in worktrees] == ["main", "feature/login"]
        assert worktrees[0].status is WorktreeStatus.DIRTY
        assert worktrees[1].status is WorktreeStatus.CLEAN
        assert worktrees[1].created is not None

    def test_find(self, manager):
        manager.create("feature/login")
        assert manager.find("feature/login").branch == "feature/login"
        assert manager.find("feature/other") is None

    def test_remove(self, manager):
        wt = manager.create("feature/login")
        result = manager.remove("feature/login", delete_branch=True)
        assert Path(result.path).resolve() == Path(wt.path).resolve()
        assert result.branch_deleted
        assert not Path(wt.path).exists()
        assert "feature/login" not in manager.git.branches().local

    def test_remove_keeps_branch_by_default(self, manager):
        manager.create("feature/login")
        result = manager.remove("feature/login")
        assert not result.branch_deleted
        assert "feature/login" in manager.git.branches().local

    def test_remove_unknown(self, manager):
        with pytest.raises(WorktreeError) as exc:
            manager.remove("feature/ghost")
        assert exc.value.code == "WORKTREE_NOT_FOUND"

    def test_auto_cleanup_prunes_after_remove(self, repo_with_git, wt_base, mocker):
        manager = WorktreeManager(repo_with_git, make_config(wt_base, autoCleanup=True))
        manager.create("feature/login")
        spy = mocker.spy(manager.git, "run")
        manager.remove("feature/login")
        assert any(call.args == ("worktree", "prune") for call in spy.call_args_list)

    def test_cleanup_prunes_missing_directories(self, manager):
        wt = manager.create("feature/login")
        shutil.rmtree(wt.path)
        result = manager.cleanup()
        assert any("Removing worktrees/" in line for line in result.cleaned)
        assert manager.find("feature/login") is None

    def test_status(self, manager, repo_with_git):
        wt = manager.create("feature/login")
        report = manager.status(repo_with_git)
        assert report.current_branch == "main"
        assert not report.in_worktree
        assert len(report.worktrees) == 2
        assert manager.status(wt.path).in_worktree
