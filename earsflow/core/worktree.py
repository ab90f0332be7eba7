"""Git worktree lifecycle: create, list, remove, prune, status.

Worktrees live under `worktree.baseDirectory` (default `../worktrees`,
relative to the repository root), one directory per branch.
"""

import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path

from earsflow.core.config import SkillsConfig
from earsflow.core.errors import GitCommandError, WorktreeError
from earsflow.core.git import GitRunner
from earsflow.core.models import (
    CleanupResult,
    RemoveResult,
    Worktree,
    WorktreeStatus,
    WorktreeStatusReport,
)

logger = logging.getLogger(__name__)

BRANCH_NAME = re.compile(r"^[a-zA-Z0-9/_-]+$")


def parse_porcelain(output: str) -> list[Worktree]:
    """Parse `git worktree list --porcelain` into Worktree records.

    Records are separated by blank lines; branch refs lose `refs/heads/`
    and commits are shortened to 8 characters.
    """
    worktrees: list[Worktree] = []
    current: dict[str, object] = {}

    def flush() -> None:
        if current.get("path"):
            worktrees.append(Worktree(**current))
        current.clear()

    for line in output.split("\n"):
        if line.startswith("worktree "):
            flush()
            current["path"] = line[len("worktree "):]
        elif line.startswith("branch "):
            ref = line[len("branch "):]
            current["branch"] = ref[len("refs/heads/"):] if ref.startswith("refs/heads/") else ref
        elif line.startswith("HEAD "):
            current["commit"] = line[5:13]
        elif line.startswith("detached"):
            current["status"] = WorktreeStatus.DETACHED
        elif line == "":
            flush()
    flush()
    return worktrees


class WorktreeManager:
    """Manage git worktrees for parallel feature development."""

    def __init__(self, repo_path: Path | str | None = None, config: SkillsConfig | None = None):
        self.config = config or SkillsConfig()
        self.git = GitRunner(repo_path)
        self.repo_path = self.git.cwd
        base = Path(self.config.worktree.base_directory)
        self.base_directory = base if base.is_absolute() else (self.repo_path / base).resolve()

    def _fail(
        self,
        code: str,
        message: str,
        operation: str,
        suggestions: list[str],
        cause: Exception | None = None,
        **parameters: object,
    ) -> WorktreeError:
        if isinstance(cause, GitCommandError):
            suggestions = suggestions + [s for s in cause.suggestions if s not in suggestions]
        return WorktreeError(
            message,
            code=code,
            suggestions=suggestions,
            context={"operation": operation, "parameters": parameters},
        )

    def create(self, branch: str, base: str = "main", path: Path | str | None = None) -> Worktree:
        """Create a worktree for `branch`, creating the branch from `base` if needed."""
        if not branch:
            raise self._fail(
                "INVALID_INPUT",
                "Branch name is required for create action",
                "create_worktree",
                ["Provide a valid branch name", "Use format: feature/branch-name"],
                branch=branch,
                base=base,
            )
        if not BRANCH_NAME.match(branch):
            raise self._fail(
                "INVALID_INPUT",
                "Invalid branch name. Use only letters, numbers, hyphens, underscores, "
                "and forward slashes.",
                "create_worktree",
                [
                    "Use only letters, numbers, hyphens, underscores, and forward slashes",
                    "Example: feature/user-auth",
                ],
                branch=branch,
            )

        prefixes = self.config.worktree.branch_prefix
        if prefixes and not any(branch.startswith(p) for p in prefixes):
            logger.warning(
                f"Branch '{branch}' does not use a configured prefix ({', '.join(prefixes)})"
            )

        # git lists the main worktree first
        linked = [wt for wt in self.list()[1:] if not wt.is_main]
        limit = self.config.worktree.max_worktrees
        if len(linked) >= limit:
            raise self._fail(
                "WORKTREE_LIMIT_REACHED",
                f"Maximum number of worktrees reached ({limit})",
                "create_worktree",
                [
                    "Remove worktrees that are no longer needed",
                    "Increase worktree.maxWorktrees in .ai/config/skills.json",
                ],
                branch=branch,
                limit=limit,
            )

        target = Path(path) if path else self.base_directory / branch
        if not target.is_absolute():
            target = (self.repo_path / target).resolve()

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            if branch in self.git.branches().local:
                self.git.run("worktree", "add", str(target), branch)
            else:
                self.git.run("worktree", "add", "-b", branch, str(target), base)
            commit = self.git.head_sha(cwd=target)[:8]
        except (GitCommandError, OSError) as e:
            raise self._fail(
                "WORKTREE_CREATE_FAILED",
                f"Failed to create worktree for branch '{branch}': {e}",
                "create_worktree",
                [
                    "Check that the base branch exists",
                    "Ensure the worktree path is accessible",
                    "Verify git repository state",
                ],
                cause=e,
                branch=branch,
                base=base,
                path=str(target),
            ) from e

        now = datetime.now(timezone.utc)
        logger.info(f"Created worktree {target} for branch {branch}")
        return Worktree(
            path=str(target),
            branch=branch,
            commit=commit,
            status=WorktreeStatus.CLEAN,
            created=now,
            last_accessed=now,
        )

    def list(self) -> list[Worktree]:
        """All worktrees with timestamps and dirty status."""
        try:
            output = self.git.run("worktree", "list", "--porcelain").stdout
        except GitCommandError as e:
            raise self._fail(
                "WORKTREE_LIST_FAILED",
                f"Failed to list worktrees: {e}",
                "list_worktrees",
                ["Check git repository state", "Verify worktrees exist"],
                cause=e,
            ) from e
        return [self._enrich(wt) for wt in parse_porcelain(output)]

    def _enrich(self, worktree: Worktree) -> Worktree:
        try:
            stat = os.stat(worktree.path)
            created = datetime.fromtimestamp(stat.st_ctime, timezone.utc)
            accessed = datetime.fromtimestamp(stat.st_atime, timezone.utc)
        except OSError:
            created = accessed = datetime.now(timezone.utc)
        worktree.created = created
        worktree.last_accessed = accessed

        if worktree.status != WorktreeStatus.DETACHED:
            try:
                if not self.git.is_clean(cwd=worktree.path):
                    worktree.status = WorktreeStatus.DIRTY
            except GitCommandError as e:
                logger.debug(f"Could not read status of {worktree.path}: {e}")
        return worktree

    def find(self, branch: str) -> Worktree | None:
        return next((wt for wt in self.list() if wt.branch == branch), None)

    def remove(self, branch: str, delete_branch: bool = False) -> RemoveResult:
        """Remove the worktree holding `branch`, optionally deleting the branch."""
        if not branch:
            raise self._fail(
                "INVALID_INPUT",
                "Branch name is required for remove action",
                "remove_worktree",
                ["Provide a valid branch name", "Use: remove <branch-name>"],
                branch=branch,
            )
        target = self.find(branch)
        if target is None:
            raise self._fail(
                "WORKTREE_NOT_FOUND",
                f"No worktree found for branch '{branch}'",
                "remove_worktree",
                ["Check the branch name spelling", "Use list command to see available worktrees"],
                branch=branch,
            )

        try:
            self.git.run("worktree", "remove", target.path, "--force")
        except GitCommandError as e:
            raise self._fail(
                "WORKTREE_REMOVE_FAILED",
                f"Failed to remove worktree for branch '{branch}': {e}",
                "remove_worktree",
                [
                    "Check that the worktree exists",
                    "Ensure no processes are using the worktree directory",
                ],
                cause=e,
                branch=branch,
                delete_branch=delete_branch,
            ) from e

        deleted = False
        if delete_branch:
            try:
                self.git.run("branch", "-D", branch)
                deleted = True
            except GitCommandError as e:
                logger.warning(f"Worktree removed but branch '{branch}' was not deleted: {e}")

        if self.config.worktree.auto_cleanup:
            try:
                self.git.run("worktree", "prune")
            except GitCommandError as e:
                logger.warning(f"Automatic worktree prune failed: {e}")

        logger.info(f"Removed worktree {target.path}")
        return RemoveResult(branch=branch, path=target.path, branch_deleted=deleted)

    def cleanup(self) -> CleanupResult:
        """Prune stale worktree administrative entries."""
        try:
            result = self.git.run("worktree", "prune", "-v")
        except GitCommandError as e:
            raise self._fail(
                "WORKTREE_CLEANUP_FAILED",
                f"Failed to cleanup stale worktrees: {e}",
                "cleanup_stale_worktrees",
                ["Check git repository state", "Verify worktree permissions"],
                cause=e,
            ) from e

        cleanup = CleanupResult()
        # prune -v reports on stderr in current git versions
        for line in (result.stdout + "\n" + result.stderr).splitlines():
            line = line.strip()
            if not line:
                continue
            if "Removing worktrees/" in line:
                cleanup.cleaned.append(line)
            elif "error" in line or "failed" in line:
                cleanup.errors.append(line)
        return cleanup

    def status(self, cwd: Path | str | None = None) -> WorktreeStatusReport:
        """Describe where `cwd` sits relative to the repository's worktrees."""
        current = Path(cwd or Path.cwd()).absolute()
        try:
            info = self.git.repository_info()
            worktrees = self.list()
        except GitCommandError as e:
            raise self._fail(
                "WORKTREE_STATUS_FAILED",
                f"Failed to get worktree status: {e}",
                "get_worktree_status",
                ["Check git repository state", "Verify you are in a git repository"],
                cause=e,
            ) from e

        root = Path(info.root).resolve()
        in_worktree = False
        for wt in worktrees:
            wt_path = Path(wt.path).resolve()
            if wt_path == root:
                continue
            if current.resolve() == wt_path or wt_path in current.resolve().parents:
                in_worktree = True
                break

        return WorktreeStatusReport(
            current_directory=str(current),
            repository_root=info.root,
            current_branch=info.current_branch,
            in_worktree=in_worktree,
            worktrees=worktrees,
            remotes=info.remotes,
        )
