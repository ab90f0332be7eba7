"""Shared utility functions for earsflow core modules."""

from datetime import datetime, timezone
from pathlib import Path


def normalize_project_path(
    file_path: str | Path,
    project_root: Path,
    fail_closed: bool = False,
) -> str:
    """Normalize a file path to canonical project-relative form.

    ./a.md, a.md, and /full/path/to/project/a.md all normalize to "a.md".

    Args:
        file_path: File path (relative or absolute)
        project_root: Project root path
        fail_closed: If True, raise on out-of-project paths (default False)

    Returns:
        Normalized project-relative path string

    Raises:
        ValueError: If path resolves outside project root and fail_closed=True
    """
    path = Path(file_path)
    resolved_root = project_root.resolve()

    resolved = path.resolve() if path.is_absolute() else (resolved_root / path).resolve()

    try:
        return str(resolved.relative_to(resolved_root))
    except ValueError:
        if fail_closed:
            raise ValueError(
                f"Path '{file_path}' resolves outside project root '{resolved_root}'"
            )
        return str(resolved)


def resolve_inside(file_path: str | Path, project_root: Path) -> Path:
    """Absolute path for `file_path`, refusing anything outside the root.

    Raises:
        ValueError: If the path escapes `project_root` (.., symlinks, absolute)
    """
    relative = normalize_project_path(file_path, project_root, fail_closed=True)
    return project_root.resolve() / relative


def archive_timestamp(now: datetime | None = None) -> str:
    """UTC ISO timestamp usable in directory names (':' and '.' become '-')."""
    moment = now or datetime.now(timezone.utc)
    iso = moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
    return iso.replace(":", "-").replace(".", "-")


def human_size(num_bytes: int) -> str:
    """Format a byte count for display."""
    size = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"
