"""Thin wrapper around the git command line."""

import logging
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path

from earsflow.core.errors import GitCommandError, git_suggestions

logger = logging.getLogger(__name__)


@dataclass
class GitResult:
    stdout: str
    stderr: str
    returncode: int


@dataclass
class Branches:
    local: list[str] = field(default_factory=list)
    remote: list[str] = field(default_factory=list)
    current: str | None = None


@dataclass
class RepositoryInfo:
    root: str
    current_branch: str | None
    remotes: dict[str, str] = field(default_factory=dict)


class GitRunner:
    """Run git commands in a working directory.

    Failures (non-zero exit, timeout, missing git binary) raise
    GitCommandError carrying the command, exit code and stderr.
    """

    # Local git operations should complete quickly, but can hang on
    # corrupted repos or busy filesystems
    GIT_TIMEOUT = 30

    def __init__(self, cwd: Path | str | None = None, timeout: int | None = None):
        self.cwd = Path(cwd or Path.cwd()).absolute()
        self.timeout = timeout or self.GIT_TIMEOUT

    def run(self, *args: str, cwd: Path | str | None = None, check: bool = True) -> GitResult:
        """Run `git <args>` and return its trimmed output."""
        command = ["git", *args]
        workdir = Path(cwd) if cwd else self.cwd
        started = time.monotonic()
        try:
            proc = subprocess.run(
                command,
                cwd=workdir,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise GitCommandError(
                f"Command timed out after {self.timeout}s: {' '.join(command)}",
                command=command,
                suggestions=["Check for a locked or corrupted repository", "Verify repository state"],
                context={"operation": "git_command", "cwd": str(workdir)},
            )
        except OSError as e:
            raise GitCommandError(
                f"Could not run git: {e}",
                command=command,
                suggestions=["Install git and ensure it is on PATH"],
                context={"operation": "git_command", "cwd": str(workdir)},
            ) from e

        elapsed_ms = (time.monotonic() - started) * 1000
        logger.debug(f"{' '.join(command)} exited {proc.returncode} in {elapsed_ms:.0f}ms")

        result = GitResult(proc.stdout.strip(), proc.stderr.strip(), proc.returncode)
        if check and proc.returncode != 0:
            raise GitCommandError(
                f"Git command failed: {' '.join(command)}: {result.stderr or result.stdout}",
                command=command,
                exit_code=proc.returncode,
                stderr=result.stderr,
                suggestions=git_suggestions(result.stderr),
                context={"operation": "git_command", "cwd": str(workdir)},
            )
        return result

    def validate_repository(self, directory: Path | str | None = None) -> Path:
        """Return the repository root, raising when `directory` is not in one."""
        workdir = Path(directory) if directory else self.cwd
        try:
            result = self.run("rev-parse", "--show-toplevel", cwd=workdir)
        except GitCommandError as e:
            raise GitCommandError(
                f"Directory is not a valid git repository: {workdir}",
                code="INVALID_REPOSITORY",
                command=e.command,
                exit_code=e.exit_code,
                stderr=e.stderr,
                suggestions=[
                    "Ensure you are in a git repository directory",
                    'Run "git init" to initialize a new repository',
                    "Check that the .git directory exists and is not corrupted",
                ],
                context={"operation": "repository_validation", "directory": str(workdir)},
            ) from e
        return Path(result.stdout)

    def branches(self) -> Branches:
        """Parse `git branch -a`."""
        branches = Branches()
        for line in self.run("branch", "-a").stdout.splitlines():
            name = line.strip()
            # Skip symbolic refs such as "remotes/origin/HEAD -> origin/main"
            if not name or "->" in name:
                continue
            if name.startswith("* "):
                branches.current = name[2:]
                branches.local.append(branches.current)
            elif name.startswith("remotes/"):
                branches.remote.append(name[len("remotes/"):])
            else:
                # "+ name" marks a branch checked out in another worktree
                branches.local.append(name.lstrip("+ "))
        return branches

    def current_branch(self, cwd: Path | str | None = None) -> str:
        return self.run("rev-parse", "--abbrev-ref", "HEAD", cwd=cwd).stdout

    def head_sha(self, cwd: Path | str | None = None) -> str:
        return self.run("rev-parse", "HEAD", cwd=cwd).stdout

    def is_clean(self, cwd: Path | str | None = None) -> bool:
        return not self.run("status", "--porcelain", cwd=cwd).stdout

    def remotes(self) -> dict[str, str]:
        """Map remote name to fetch URL from `git remote -v`."""
        remotes: dict[str, str] = {}
        for line in self.run("remote", "-v").stdout.splitlines():
            parts = line.split()
            if len(parts) >= 2 and parts[0] not in remotes:
                remotes[parts[0]] = parts[1]
        return remotes

    def repository_info(self) -> RepositoryInfo:
        root = self.validate_repository()
        try:
            branch = self.current_branch()
        except GitCommandError:
            # No commits yet
            branch = None
        return RepositoryInfo(root=str(root), current_branch=branch, remotes=self.remotes())
