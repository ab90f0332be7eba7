"""Core modules for earsflow."""

from earsflow.core.errors import (
    ArchiveError,
    ConfigError,
    EarsflowError,
    GitCommandError,
    PhaseError,
    ResetError,
    SkillNotFoundError,
    WorktreeError,
)
from earsflow.core.models import (
    Recommendation,
    ResetLevel,
    RoutingResult,
    SessionContext,
    TriggerType,
)

__all__ = [
    "ArchiveError",
    "ConfigError",
    "EarsflowError",
    "GitCommandError",
    "PhaseError",
    "ResetError",
    "SkillNotFoundError",
    "WorktreeError",
    "Recommendation",
    "ResetLevel",
    "RoutingResult",
    "SessionContext",
    "TriggerType",
]
