"""Project reset with automatic archiving.

Reset levels:
    light   clear documentation only, keep memory
    medium  reset memory files to templates, keep documentation
    full    reset memory and clear documentation
    custom  delete user-supplied paths inside the project

Every reset archives the current memory and docs first unless told not to.
Resets and restores hold a file lock in the archive directory.
"""

import logging
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from filelock import FileLock, Timeout
from jinja2 import TemplateError

from earsflow.core.archive import DOC_DIRECTORIES, ArchiveManager, ProgressCallback, is_preserved_doc
from earsflow.core.config import SkillsConfig
from earsflow.core.errors import ArchiveError, GitCommandError, ResetError
from earsflow.core.git import GitRunner
from earsflow.core.models import ArchiveMetadata, ArchiveSource, ArchiveSummary, ResetLevel, ResetResult
from earsflow.core.templates import TemplateRenderer
from earsflow.core.utils import archive_timestamp, resolve_inside

logger = logging.getLogger(__name__)

MEMORY_NAMES = ("lessons", "decisions")
LOCK_TIMEOUT = 30  # seconds


def parse_level(level: str | ResetLevel) -> ResetLevel:
    try:
        return ResetLevel(level)
    except ValueError:
        valid = ", ".join(lvl.value for lvl in ResetLevel)
        raise ResetError(
            f"Invalid reset level: {level}",
            code="INVALID_RESET_LEVEL",
            suggestions=[f"Valid levels: {valid}"],
            context={"operation": "perform_reset", "level": str(level)},
        ) from None


class ResetManager:
    """Reset project memory and docs, and manage the archives it creates."""

    def __init__(
        self,
        project_root: Path | str | None = None,
        config: SkillsConfig | None = None,
        progress: ProgressCallback | None = None,
    ):
        self.project_root = Path(project_root or Path.cwd()).absolute()
        self.config = config or SkillsConfig()
        self.ai_dir = self.project_root / ".ai"
        archive_dir = Path(self.config.reset.archive_directory)
        self.archive_dir = archive_dir if archive_dir.is_absolute() else self.project_root / archive_dir
        self.archiver = ArchiveManager(self.config.reset.compression_level, progress=progress)
        self.renderer = TemplateRenderer()
        self._lock: FileLock | None = None

    @property
    def lock(self) -> FileLock:
        """Lock file inside the archive directory, created on first use."""
        if self._lock is None:
            self.archive_dir.mkdir(parents=True, exist_ok=True)
            self._lock = FileLock(self.archive_dir / ".reset.lock", timeout=LOCK_TIMEOUT)
        return self._lock

    def _acquire(self, operation: str) -> FileLock:
        try:
            self.lock.acquire()
        except Timeout as e:
            raise ResetError(
                f"Another reset or restore is in progress ({self.lock.lock_file})",
                code="RESET_LOCKED",
                suggestions=["Wait for the other operation to finish", "Remove a stale lock file"],
                context={"operation": operation},
            ) from e
        return self.lock

    def _validate_repository(self) -> None:
        if not self.ai_dir.is_dir():
            raise ResetError(
                "Reset must be run from the repository root (where .ai directory exists)",
                code="INVALID_REPOSITORY",
                suggestions=["Navigate to repository root directory", "Ensure .ai directory exists"],
                context={"operation": "validate_repository", "path": str(self.project_root)},
            )

    def perform_reset(
        self,
        level: str | ResetLevel,
        no_archive: bool = False,
        clear_archive: bool = False,
        archive_limit: int | None = None,
        custom_paths: tuple[str, ...] | list[str] = (),
    ) -> ResetResult:
        """Archive, then reset the project at the given level."""
        level = parse_level(level)
        self._validate_repository()

        # Resolve custom paths before touching anything
        targets: list[Path] = []
        if level is ResetLevel.CUSTOM:
            for raw in custom_paths:
                try:
                    targets.append(resolve_inside(raw, self.project_root))
                except ValueError as e:
                    raise ResetError(
                        str(e),
                        code="INVALID_INPUT",
                        suggestions=["Custom paths must be inside the project root"],
                        context={"operation": "perform_reset", "path": str(raw)},
                    ) from e

        lock = self._acquire("perform_reset")
        try:
            result = ResetResult(level=level)
            # Old archives go before the safety archive of this reset is made
            if clear_archive:
                result.archives_removed = self._cleanup_archives(0)

            if not no_archive:
                extra: dict[str, Any] = {"reset_level": level.value}
                if targets:
                    extra["custom_paths"] = [str(p) for p in custom_paths]
                summary = self.create_archive(f"{level.value}-reset", operation=level.value, **extra)
                result.archive = summary.name

            if level in (ResetLevel.MEDIUM, ResetLevel.FULL):
                self.reset_memory()
                result.memory_reset = True

            if level in (ResetLevel.LIGHT, ResetLevel.FULL):
                for doc_dir in DOC_DIRECTORIES:
                    errors = self.clear_docs(self.ai_dir / "docs" / doc_dir)
                    result.errors.extend(errors)
                result.docs_cleared = True

            for target in targets:
                try:
                    if self._remove_path(target):
                        result.files_processed += 1
                except OSError as e:
                    result.errors.append(f"Failed to process {target}: {e}")

            if archive_limit is not None and not clear_archive:
                result.archives_removed = self._cleanup_archives(archive_limit, keep_name=result.archive)
        finally:
            lock.release()

        logger.info(
            f"Reset '{level.value}' complete: memory_reset={result.memory_reset}, "
            f"docs_cleared={result.docs_cleared}, errors={len(result.errors)}"
        )
        return result

    def reset_memory(self) -> None:
        """Rewrite lessons.md and decisions.md from their templates."""
        memory_dir = self.ai_dir / "memory"
        try:
            memory_dir.mkdir(parents=True, exist_ok=True)
            for name in MEMORY_NAMES:
                template = self.ai_dir / "templates" / f"{name}.template.md"
                content = self.renderer.render_memory(name, template)
                (memory_dir / f"{name}.md").write_text(content, encoding="utf-8")
        except (OSError, TemplateError) as e:
            raise ResetError(
                f"Reset execution failed: {e}",
                code="RESET_EXECUTION_FAILED",
                suggestions=["Check file permissions", "Verify template files exist"],
                context={"operation": "reset_memory"},
            ) from e

    @staticmethod
    def clear_docs(directory: Path) -> list[str]:
        """Delete files under `directory`, keeping README.md and templates.

        Returns a message per path that could not be removed.
        """
        errors: list[str] = []
        if not directory.is_dir():
            return errors
        for entry in sorted(directory.iterdir()):
            if is_preserved_doc(entry.name):
                continue
            try:
                if entry.is_dir() and not entry.is_symlink():
                    errors.extend(ResetManager.clear_docs(entry))
                else:
                    entry.unlink()
            except OSError as e:
                errors.append(f"Failed to clear {entry}: {e}")
        return errors

    @staticmethod
    def _remove_path(path: Path) -> bool:
        """Delete a file or directory; False when it did not exist."""
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
            return True
        if path.exists() or path.is_symlink():
            path.unlink()
            return True
        return False

    def _source(self) -> ArchiveSource:
        git = GitRunner(self.project_root)
        commit = branch = None
        try:
            commit = git.head_sha()
            branch = git.current_branch()
        except GitCommandError as e:
            logger.debug(f"No git information for archive: {e}")
        return ArchiveSource(path=str(self.project_root), git_commit=commit, git_branch=branch)

    def create_archive(self, name: str, operation: str = "archive", **extra: Any) -> ArchiveSummary:
        """Archive current memory and docs as `<timestamp>-<name>`."""
        full_name = f"{archive_timestamp()}-{name}"
        if not name or "/" in name or "\\" in name or ".." in name:
            raise ArchiveError(
                f"Invalid archive name: {name}",
                code="INVALID_INPUT",
                suggestions=["Use a plain name without path separators or '..'"],
                context={"operation": "create_archive", "name": name},
            )
        path = self.archive_dir / full_name
        metadata = ArchiveMetadata(
            operation=operation,
            source=self._source(),
            extra={"archive_name": full_name, "original_name": name, **extra},
        )
        lock = self._acquire("create_archive")
        try:
            final = self.archiver.create(self.project_root, path, metadata)
        finally:
            lock.release()
        return ArchiveSummary(
            name=full_name,
            path=str(path),
            valid=True,
            created=final.created,
            operation=final.operation,
            total_files=final.contents.files.total,
            total_size=final.contents.total_size,
        )

    def _archive_path(self, name: str) -> Path:
        try:
            path = resolve_inside(name, self.archive_dir)
        except ValueError as e:
            raise ArchiveError(
                f"Invalid archive name: {name}",
                code="INVALID_INPUT",
                suggestions=["Use a name from 'earsflow archive list'"],
                context={"operation": "restore_archive", "name": name},
            ) from e
        if path == self.archive_dir.resolve():
            raise ArchiveError(
                f"Invalid archive name: {name}",
                code="INVALID_INPUT",
                suggestions=["Use a name from 'earsflow archive list'"],
                context={"operation": "restore_archive", "name": name},
            )
        return path

    def restore(self, name: str) -> ArchiveSummary:
        """Restore an archive after backing up the current state.

        Returns the summary of the `pre-restore` backup.
        """
        path = self._archive_path(name)
        if not self.archiver.validate(path):
            raise ArchiveError(
                f"Archive validation failed: {name}",
                code="INVALID_ARCHIVE",
                suggestions=["Check archive integrity", "Verify archive was not corrupted"],
                context={"operation": "restore_archive", "name": name},
            )
        lock = self._acquire("restore_archive")
        try:
            backup = self.create_archive("pre-restore", operation="restore", restoration_source=name)
            self.archiver.extract(path, self.project_root)
        finally:
            lock.release()
        logger.info(f"Restored {name} (backup: {backup.name})")
        return backup

    def list_archives(self) -> list[ArchiveSummary]:
        """All archives, newest first; broken ones are listed as invalid."""
        if not self.archive_dir.is_dir():
            return []
        archives: list[ArchiveSummary] = []
        for entry in self.archive_dir.iterdir():
            if not entry.is_dir():
                continue
            try:
                meta = self.archiver.read_metadata(entry)
            except ArchiveError as e:
                archives.append(
                    ArchiveSummary(name=entry.name, path=str(entry), valid=False, error=e.message)
                )
                continue
            archives.append(
                ArchiveSummary(
                    name=entry.name,
                    path=str(entry),
                    valid=self.archiver.validate(entry),
                    created=meta.created,
                    operation=meta.operation,
                    total_files=meta.contents.files.total,
                    total_size=meta.contents.total_size,
                )
            )
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        archives.sort(key=lambda a: _aware(a.created) or epoch, reverse=True)
        return archives

    def _cleanup_archives(self, keep: int, keep_name: str | None = None) -> int:
        """Remove all but the newest `keep` archives; failures are logged.

        The archive named `keep_name` is never removed and counts toward `keep`.
        """
        archives = self.list_archives()
        if keep_name is not None:
            archives = [a for a in archives if a.name != keep_name]
            keep = max(0, keep - 1)
        removed = 0
        for archive in archives[keep:]:
            try:
                shutil.rmtree(archive.path)
                removed += 1
            except OSError as e:
                logger.warning(f"Failed to cleanup archive {archive.name}: {e}")
        return removed

    def prune_expired(self, now: datetime | None = None) -> list[str]:
        """Remove archives older than reset.retentionDays (0 keeps everything)."""
        days = self.config.reset.retention_days
        if days == 0:
            return []
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        removed: list[str] = []
        for archive in self.list_archives():
            created = _aware(archive.created)
            if created is None or created >= cutoff:
                continue
            try:
                shutil.rmtree(archive.path)
                removed.append(archive.name)
            except OSError as e:
                logger.warning(f"Failed to remove expired archive {archive.name}: {e}")
        return removed


def _aware(moment: datetime | None) -> datetime | None:
    if moment is None or moment.tzinfo is not None:
        return moment
    return moment.replace(tzinfo=timezone.utc)
