"""Directory archives of project memory and documentation.

Layout of an archive directory:

    <archive>/
      archive-info.json           manifest (ArchiveMetadata)
      memory/lessons.md[.gz]
      memory/decisions.md[.gz]
      docs/<plans|tasks|reviews|requirements|design>/**.md[.gz]

Files are gzipped one by one when the compression level is above 0.
"""

import gzip
import json
import logging
import shutil
from collections.abc import Callable
from pathlib import Path

from pydantic import ValidationError

from earsflow.core.errors import ArchiveError, filesystem_suggestions
from earsflow.core.models import ArchiveCompression, ArchiveFileCounts, ArchiveMetadata

logger = logging.getLogger(__name__)

MANIFEST = "archive-info.json"
MEMORY_FILES = ("lessons.md", "decisions.md")
DOC_DIRECTORIES = ("plans", "tasks", "reviews", "requirements", "design")

# Called with (phase, processed, total)
ProgressCallback = Callable[[str, int, int], None]


def is_preserved_doc(name: str) -> bool:
    """README.md and *.template.md are never archived or cleared."""
    return name == "README.md" or name.endswith(".template.md")


def find_markdown_files(directory: Path) -> list[Path]:
    """Markdown files under `directory`, relative to it, sorted."""
    if not directory.is_dir():
        return []
    return sorted(
        path.relative_to(directory)
        for path in directory.rglob("*.md")
        if path.is_file() and not is_preserved_doc(path.name)
    )


def _is_markdown(name: str) -> bool:
    return name.endswith(".md") or name.endswith(".md.gz")


class ArchiveManager:
    """Create, extract and inspect archives."""

    def __init__(self, compression_level: int = 6, progress: ProgressCallback | None = None):
        if not 0 <= compression_level <= 9:
            raise ValueError(f"compression_level must be 0-9, got {compression_level}")
        self.compression_level = compression_level
        self.progress = progress

    @property
    def compressed(self) -> bool:
        return self.compression_level > 0

    def _report(self, phase: str, processed: int, total: int) -> None:
        if self.progress:
            self.progress(phase, processed, total)

    def _collect(self, source_root: Path) -> list[tuple[Path, Path]]:
        """(source file, archive-relative target) pairs to archive."""
        ai_dir = source_root / ".ai"
        pairs: list[tuple[Path, Path]] = []
        for name in MEMORY_FILES:
            src = ai_dir / "memory" / name
            if src.is_file():
                pairs.append((src, Path("memory") / name))
        for doc_dir in DOC_DIRECTORIES:
            base = ai_dir / "docs" / doc_dir
            for rel in find_markdown_files(base):
                pairs.append((base / rel, Path("docs") / doc_dir / rel))
        return pairs

    def _copy(self, src: Path, dst: Path) -> None:
        dst.parent.mkdir(parents=True, exist_ok=True)
        if self.compressed:
            with src.open("rb") as f_in, gzip.open(
                dst.with_name(dst.name + ".gz"), "wb", compresslevel=self.compression_level
            ) as f_out:
                shutil.copyfileobj(f_in, f_out)
        else:
            shutil.copy2(src, dst)

    def create(
        self, source_root: Path | str, archive_path: Path | str, metadata: ArchiveMetadata
    ) -> ArchiveMetadata:
        """Archive memory and docs of `source_root` into `archive_path`.

        Returns the manifest with actual file counts, size and compression.
        """
        source_root = Path(source_root)
        archive_path = Path(archive_path)
        try:
            pairs = self._collect(source_root)
            total = len(pairs)
            self._report("counting", 0, total)
            archive_path.mkdir(parents=True, exist_ok=True)

            for processed, (src, rel) in enumerate(pairs, start=1):
                self._copy(src, archive_path / rel)
                self._report("memory" if rel.parts[0] == "memory" else "documentation", processed, total)

            self._report("metadata", total, total)
            counts = self.count_files(archive_path)
            directories = [d for d in ("memory", "docs") if (archive_path / d).is_dir()]
            final = metadata.model_copy(deep=True)
            final.contents.directories = directories
            final.contents.files = counts
            final.compression = ArchiveCompression(
                enabled=self.compressed, level=self.compression_level
            )
            self._write_manifest(archive_path, final)
            # Size includes the manifest itself, so rewrite until it stops changing
            for _ in range(5):
                size = self.directory_size(archive_path)
                if size == final.contents.total_size:
                    break
                final.contents.total_size = size
                self._write_manifest(archive_path, final)
        except OSError as e:
            raise ArchiveError(
                f"Failed to create archive {archive_path}: {e}",
                code="ARCHIVE_CREATION_FAILED",
                suggestions=filesystem_suggestions(e),
                context={"operation": "create_archive", "path": str(archive_path)},
            ) from e

        self._report("complete", total, total)
        logger.info(f"Archived {counts.total} files to {archive_path}")
        return final

    @staticmethod
    def _write_manifest(archive_path: Path, metadata: ArchiveMetadata) -> None:
        (archive_path / MANIFEST).write_text(metadata.model_dump_json(indent=2) + "\n", encoding="utf-8")

    def extract(self, archive_path: Path | str, target_root: Path | str) -> int:
        """Restore memory and docs from an archive into `target_root/.ai`.

        Returns the number of files restored.
        """
        archive_path = Path(archive_path)
        target_ai = Path(target_root) / ".ai"
        self.read_metadata(archive_path)

        files = [
            p
            for sub in ("memory", "docs")
            if (archive_path / sub).is_dir()
            for p in sorted((archive_path / sub).rglob("*"))
            if p.is_file()
        ]
        total = len(files)
        self._report("extracting", 0, total)
        try:
            for processed, src in enumerate(files, start=1):
                rel = src.relative_to(archive_path)
                if src.suffix == ".gz":
                    dst = target_ai / rel.with_suffix("")
                    dst.parent.mkdir(parents=True, exist_ok=True)
                    with gzip.open(src, "rb") as f_in, dst.open("wb") as f_out:
                        shutil.copyfileobj(f_in, f_out)
                else:
                    dst = target_ai / rel
                    dst.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(src, dst)
                self._report("memory" if rel.parts[0] == "memory" else "documentation", processed, total)
        except (OSError, EOFError, gzip.BadGzipFile) as e:
            raise ArchiveError(
                f"Failed to extract archive {archive_path}: {e}",
                code="ARCHIVE_EXTRACT_FAILED",
                suggestions=["Check archive integrity", "Verify write permissions"],
                context={"operation": "extract_archive", "path": str(archive_path)},
            ) from e

        self._report("complete", total, total)
        logger.info(f"Restored {total} files from {archive_path}")
        return total

    def read_metadata(self, archive_path: Path | str) -> ArchiveMetadata:
        """Load and validate the manifest of an archive."""
        manifest = Path(archive_path) / MANIFEST
        try:
            data = json.loads(manifest.read_text(encoding="utf-8"))
            return ArchiveMetadata.model_validate(data)
        except OSError as e:
            raise ArchiveError(
                f"Cannot read archive manifest {manifest}: {e}",
                code="ARCHIVE_NOT_FOUND" if isinstance(e, FileNotFoundError) else "ARCHIVE_ERROR",
                suggestions=["Verify archive exists", "Run 'earsflow archive list'"],
                context={"operation": "get_archive_metadata", "path": str(manifest)},
            ) from e
        except (json.JSONDecodeError, ValidationError) as e:
            raise ArchiveError(
                f"Invalid archive manifest {manifest}: {e}",
                code="INVALID_ARCHIVE",
                suggestions=["Check archive integrity", "Verify archive was not corrupted"],
                context={"operation": "get_archive_metadata", "path": str(manifest)},
            ) from e

    def validate(self, archive_path: Path | str) -> bool:
        """True when the archive exists, has a usable manifest and holds the files it claims."""
        archive_path = Path(archive_path)
        if not archive_path.is_dir():
            return False
        try:
            raw = json.loads((archive_path / MANIFEST).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return False
        if not isinstance(raw, dict) or not all(raw.get(k) for k in ("version", "created", "operation")):
            return False
        contents = raw.get("contents") or {}
        claimed = contents.get("files") if isinstance(contents, dict) else None
        if contents and not isinstance(contents, dict):
            return False
        if claimed is not None and not isinstance(claimed, dict):
            return False
        claimed_total = (claimed or {}).get("total") or 0
        if not isinstance(claimed_total, int):
            return False
        actual = self.count_files(archive_path)
        if actual.total == 0 and claimed_total > 0:
            return False
        return True

    @staticmethod
    def count_files(archive_path: Path) -> ArchiveFileCounts:
        memory_dir = archive_path / "memory"
        docs_dir = archive_path / "docs"
        memory = (
            sum(1 for p in memory_dir.iterdir() if p.is_file() and _is_markdown(p.name))
            if memory_dir.is_dir()
            else 0
        )
        docs = (
            sum(1 for p in docs_dir.rglob("*") if p.is_file() and _is_markdown(p.name))
            if docs_dir.is_dir()
            else 0
        )
        return ArchiveFileCounts(memory=memory, docs=docs, total=memory + docs)

    @staticmethod
    def directory_size(path: Path) -> int:
        return sum(p.stat().st_size for p in path.rglob("*") if p.is_file())
