"""Structured errors shared by the earsflow tools.

Every failure surfaces as an EarsflowError carrying:
- code: stable identifier for programmatic handling (e.g. WORKTREE_NOT_FOUND)
- message: human-readable description
- suggestions: fixed remediation hints shown to the user
- context: operation name and parameters for verbose output
"""

from typing import Any


class EarsflowError(Exception):
    """Base error for all earsflow operations."""

    default_code = "EARSFLOW_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        suggestions: list[str] | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.suggestions = list(suggestions or [])
        self.context = dict(context or {})

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "suggestions": self.suggestions,
            "context": self.context,
        }


class ConfigError(EarsflowError):
    """Configuration could not be loaded or failed validation."""

    default_code = "INVALID_CONFIG"


class GitCommandError(EarsflowError):
    """A git subprocess exited non-zero, timed out, or could not start."""

    default_code = "GIT_COMMAND_FAILED"

    def __init__(
        self,
        message: str,
        command: list[str] | None = None,
        exit_code: int | None = None,
        stderr: str = "",
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.command = list(command or [])
        self.exit_code = exit_code
        self.stderr = stderr


class WorktreeError(EarsflowError):
    """Error during worktree operations."""

    default_code = "WORKTREE_OPERATION_FAILED"


class ArchiveError(EarsflowError):
    """Archive is missing, unreadable, or could not be written."""

    default_code = "ARCHIVE_ERROR"


class ResetError(EarsflowError):
    """Project reset could not be performed."""

    default_code = "RESET_OPERATION_FAILED"


class SkillNotFoundError(EarsflowError):
    """Requested skill is not in the catalog."""

    default_code = "SKILL_NOT_FOUND"


class PhaseError(EarsflowError):
    """Workflow phase change is out of sequence or invalid."""

    default_code = "PHASE_SEQUENCE_VIOLATION"


def git_suggestions(stderr: str) -> list[str]:
    """Map common git failure output to remediation hints."""
    text = stderr.lower()
    if "not a git repository" in text:
        return [
            "Ensure you are in a git repository directory",
            'Run "git init" to initialize a new repository',
        ]
    if "already exists" in text:
        return [
            "Use a different branch name",
            "Delete the existing branch if no longer needed",
        ]
    if "permission denied" in text:
        return [
            "Check file permissions",
            "Ensure you have write access to the repository",
        ]
    return ["Check git command syntax", "Verify repository state"]


def filesystem_suggestions(error: OSError) -> list[str]:
    """Map an OSError to remediation hints."""
    if isinstance(error, FileNotFoundError):
        return ["Verify the file or directory exists", "Check the path spelling"]
    if isinstance(error, PermissionError):
        return ["Check file permissions", "Run with appropriate privileges if needed"]
    if isinstance(error, FileExistsError):
        return [
            "File or directory already exists",
            "Use a different name or remove existing file",
        ]
    return ["Check file system permissions", "Verify disk space availability"]


def format_error(error: EarsflowError) -> str:
    """Render an error and its suggestions for terminal output."""
    lines = [f"{error.message} [{error.code}]"]
    if error.suggestions:
        lines.append("")
        lines.append("Suggestions:")
        lines.extend(f"  - {s}" for s in error.suggestions)
    return "\n".join(lines)
