"""Data models shared by the earsflow tools.

Uses Pydantic for router results, session state, worktree records and
archive manifests.
"""

import getpass
import platform
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TriggerType(str, Enum):
    """Tier of the trigger phrase that produced a match."""

    EXACT = "exact"
    PRIMARY = "primary"
    SEMANTIC = "semantic"
    CONTEXTUAL = "contextual"


class ResetLevel(str, Enum):
    """How much project state a reset discards."""

    LIGHT = "light"  # docs only
    MEDIUM = "medium"  # memory only
    FULL = "full"  # docs and memory
    CUSTOM = "custom"  # user-supplied paths


class WorktreeStatus(str, Enum):
    CLEAN = "clean"
    DIRTY = "dirty"
    DETACHED = "detached"


# --- Routing ---


class WorkflowProgress(BaseModel):
    """Per-phase progress markers kept in the session."""

    spec_forge: str = "pending"
    planning: str = "pending"
    work: str = "pending"
    review: str = "pending"


class PhaseTransition(BaseModel):
    from_phase: str | None = None
    to_phase: str
    timestamp: datetime = Field(default_factory=utcnow)


class PhaseState(BaseModel):
    """Persisted workflow position: progress markers plus transition history."""

    current_phase: str | None = None
    progress: WorkflowProgress = Field(default_factory=WorkflowProgress)
    history: list[PhaseTransition] = Field(default_factory=list)


class PhaseCheck(BaseModel):
    """Outcome of checking whether a phase may be entered now.

    type is one of: utility, sequence-start, sequence-continuation,
    sequence-violation.
    """

    phase: str | None = None
    valid: bool
    type: str
    message: str
    missing_phases: list[str] = Field(default_factory=list)
    suggested_next: str | None = None


class Correction(BaseModel):
    """User override of a routing recommendation."""

    timestamp: datetime = Field(default_factory=utcnow)
    original_skill: str
    user_choice: str
    input: str
    context: dict[str, Any] = Field(default_factory=dict)


class SessionContext(BaseModel):
    """Conversation state used to adjust routing and context loading."""

    current_phase: str | None = None
    recent_activities: list[str] = Field(default_factory=list)
    recent_files: list[str] = Field(default_factory=list)
    active_files: list[str] = Field(default_factory=list)
    error_context: str | None = None
    workflow_progress: WorkflowProgress = Field(default_factory=WorkflowProgress)
    corrections: list[Correction] = Field(default_factory=list)


class Recommendation(BaseModel):
    """One candidate skill for a piece of user input."""

    skill: str
    confidence: int = Field(ge=0, le=100)
    original_confidence: int = Field(ge=0, le=100)
    trigger: str
    type: TriggerType
    reasoning: str
    context: str | None = None  # contextual tier label, e.g. "debugging"
    persona: str | None = None
    priority: str | None = None
    adjustment_reasons: list[str] = Field(default_factory=list)


class RoutingAnalysis(BaseModel):
    input: str
    processed_input: str
    total_matches: int
    context_factors: dict[str, Any] = Field(default_factory=dict)
    confidence: int = 0


class RoutingResult(BaseModel):
    """Top recommendations plus the analysis that produced them."""

    recommendations: list[Recommendation] = Field(default_factory=list)
    analysis: RoutingAnalysis
    phase_check: PhaseCheck | None = None

    @property
    def best(self) -> Recommendation | None:
        return self.recommendations[0] if self.recommendations else None


# --- Worktrees ---


class Worktree(BaseModel):
    """A git worktree as reported by `git worktree list --porcelain`."""

    path: str
    branch: str | None = None
    commit: str | None = None
    status: WorktreeStatus = WorktreeStatus.CLEAN
    created: datetime | None = None
    last_accessed: datetime | None = None

    @property
    def is_main(self) -> bool:
        return self.branch in ("main", "master")


class RemoveResult(BaseModel):
    branch: str
    path: str
    branch_deleted: bool = False


class CleanupResult(BaseModel):
    cleaned: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class WorktreeStatusReport(BaseModel):
    current_directory: str
    repository_root: str
    current_branch: str | None = None
    in_worktree: bool = False
    worktrees: list[Worktree] = Field(default_factory=list)
    remotes: dict[str, str] = Field(default_factory=dict)


# --- Archives ---


class ArchiveSource(BaseModel):
    path: str
    git_commit: str | None = None
    git_branch: str | None = None
    user: str = Field(default_factory=lambda: _current_user())
    platform: str = Field(default_factory=platform.system)
    python_version: str = Field(default_factory=lambda: platform.python_version())


class ArchiveFileCounts(BaseModel):
    memory: int = 0
    docs: int = 0
    total: int = 0


class ArchiveContents(BaseModel):
    directories: list[str] = Field(default_factory=list)
    files: ArchiveFileCounts = Field(default_factory=ArchiveFileCounts)
    total_size: int = 0


class ArchiveRestoration(BaseModel):
    compatible: bool = True
    requirements: list[str] = Field(default_factory=list)


class ArchiveCompression(BaseModel):
    enabled: bool = False
    level: int = Field(0, ge=0, le=9)
    algorithm: str = "gzip"


class ArchiveMetadata(BaseModel):
    """Manifest written to `archive-info.json` in every archive."""

    version: str = "1.0.0"
    created: datetime = Field(default_factory=utcnow)
    operation: str = "archive"
    source: ArchiveSource
    contents: ArchiveContents = Field(default_factory=ArchiveContents)
    restoration: ArchiveRestoration = Field(default_factory=ArchiveRestoration)
    compression: ArchiveCompression = Field(default_factory=ArchiveCompression)
    extra: dict[str, Any] = Field(default_factory=dict)


class ArchiveSummary(BaseModel):
    """Listing entry for an archive directory."""

    name: str
    path: str
    valid: bool
    created: datetime | None = None
    operation: str | None = None
    total_files: int = 0
    total_size: int = 0
    error: str | None = None


class ResetResult(BaseModel):
    level: ResetLevel
    memory_reset: bool = False
    docs_cleared: bool = False
    files_processed: int = 0
    errors: list[str] = Field(default_factory=list)
    archive: str | None = None
    archives_removed: int = 0


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"
