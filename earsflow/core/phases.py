"""Workflow phase sequencing.

The engineering workflow runs four phases in order:

    spec-forge -> planning -> work -> review

A phase may start once every phase before it is completed. Going back to
an earlier phase is always allowed. Progress markers are the same
WorkflowProgress the router keeps in its session, so routing can warn
when a request jumps ahead of the sequence.
"""

import json
import logging
import re
from pathlib import Path

from pydantic import ValidationError

from earsflow.core.errors import PhaseError
from earsflow.core.models import (
    PhaseCheck,
    PhaseState,
    PhaseTransition,
    SessionContext,
)

logger = logging.getLogger(__name__)

PHASE_SEQUENCE = ("spec-forge", "planning", "work", "review")

PHASE_NAMES = {
    "spec-forge": "SPEC-FORGE",
    "planning": "PLANNING",
    "work": "WORK",
    "review": "REVIEW",
}

PHASE_DESCRIPTIONS = {
    "spec-forge": "Create EARS-compliant requirements, design with correctness properties, and task planning",
    "planning": "Implementation planning, research, and architectural decisions",
    "work": "TDD implementation in isolated git worktree environments",
    "review": "Multi-perspective code audit and quality assurance",
}

PHASE_ALIASES = {"plan": "planning", "spec": "spec-forge", "specforge": "spec-forge"}

# Skills that belong to one phase of the workflow
SKILL_PHASES = {
    "ears-specification": "spec-forge",
    "git-workflow": "work",
    "testing-framework": "review",
}

# Checked in order, first hit wins
PHASE_HINTS = [
    ("spec-forge", re.compile(r"\b(requirement|spec|ears)")),
    ("planning", re.compile(r"\b(plan|research|architecture)")),
    ("work", re.compile(r"\b(implement|code|tdd)")),
    ("review", re.compile(r"\b(review|audit|check)")),
]

STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"

MAX_HISTORY = 20


def normalize_phase(name: str | None) -> str | None:
    """Canonical phase name, or None when `name` is not a workflow phase."""
    if not name:
        return None
    key = name.strip().lower().replace("_", "-").replace(" ", "-")
    key = PHASE_ALIASES.get(key, key)
    return key if key in PHASE_SEQUENCE else None


def determine_phase(text: str) -> str | None:
    """Phase suggested by the wording of a request."""
    lowered = text.lower()
    for phase, pattern in PHASE_HINTS:
        if pattern.search(lowered):
            return phase
    return None


def _field(phase: str) -> str:
    return phase.replace("-", "_")


class PhaseTracker:
    """Validate and record movement through the workflow phases."""

    def __init__(self, state: PhaseState | None = None):
        self.state = state or PhaseState()

    @classmethod
    def from_session(cls, session: SessionContext) -> "PhaseTracker":
        return cls(
            PhaseState(
                current_phase=normalize_phase(session.current_phase),
                progress=session.workflow_progress.model_copy(),
            )
        )

    @property
    def current_phase(self) -> str | None:
        return self.state.current_phase

    @property
    def history(self) -> list[PhaseTransition]:
        return self.state.history

    def status(self, phase: str) -> str:
        return getattr(self.state.progress, _field(phase))

    def _set_status(self, phase: str, value: str) -> None:
        setattr(self.state.progress, _field(phase), value)

    def _require(self, phase: str) -> str:
        normalized = normalize_phase(phase)
        if normalized is None:
            raise PhaseError(
                f"Unknown workflow phase: {phase}",
                code="INVALID_PHASE",
                suggestions=[f"Valid phases: {', '.join(PHASE_SEQUENCE)}"],
                context={"phase": phase},
            )
        return normalized

    def missing_prerequisites(self, phase: str) -> list[str]:
        """Earlier phases that are not completed yet."""
        index = PHASE_SEQUENCE.index(self._require(phase))
        return [p for p in PHASE_SEQUENCE[:index] if self.status(p) != STATUS_COMPLETED]

    def can_activate(self, phase: str) -> bool:
        return normalize_phase(phase) is not None and not self.missing_prerequisites(phase)

    def next_phase(self) -> str | None:
        """First phase that is not completed, or None when the workflow is done."""
        for phase in PHASE_SEQUENCE:
            if self.status(phase) != STATUS_COMPLETED:
                return phase
        return None

    @property
    def is_complete(self) -> bool:
        return self.next_phase() is None

    def validate(self, phase: str | None) -> PhaseCheck:
        """Check whether `phase` may be entered given the current progress.

        Names outside the phase sequence are utilities and always allowed.
        """
        normalized = normalize_phase(phase)
        if normalized is None:
            return PhaseCheck(
                phase=phase,
                valid=True,
                type="utility",
                message=f"{phase} is not a workflow phase; no sequence applies",
            )

        name = PHASE_NAMES[normalized]
        missing = self.missing_prerequisites(normalized)
        if missing:
            suggested = self.next_phase()
            return PhaseCheck(
                phase=normalized,
                valid=False,
                type="sequence-violation",
                message=(
                    f"{name} requires completed "
                    f"{', '.join(PHASE_NAMES[p] for p in missing)} first. "
                    f"Next phase: {PHASE_NAMES[suggested]}"
                ),
                missing_phases=missing,
                suggested_next=suggested,
            )
        if normalized == PHASE_SEQUENCE[0] and self.current_phase is None:
            return PhaseCheck(
                phase=normalized,
                valid=True,
                type="sequence-start",
                message=f"Starting workflow with {name}: {PHASE_DESCRIPTIONS[normalized]}",
            )
        return PhaseCheck(
            phase=normalized,
            valid=True,
            type="sequence-continuation",
            message=f"Continuing workflow with {name}: {PHASE_DESCRIPTIONS[normalized]}",
        )

    def transition(self, phase: str) -> PhaseTransition:
        """Enter `phase`, raising PhaseError when prerequisites are missing."""
        target = self._require(phase)
        check = self.validate(target)
        if not check.valid:
            raise PhaseError(
                check.message,
                suggestions=[
                    f"Complete {PHASE_NAMES[check.suggested_next]} first",
                    "Run 'earsflow phase status' to see workflow progress",
                ],
                context={"phase": target, "missing": check.missing_phases},
            )

        record = PhaseTransition(from_phase=self.current_phase, to_phase=target)
        self.state.history.append(record)
        self.state.history = self.state.history[-MAX_HISTORY:]
        self.state.current_phase = target
        if self.status(target) != STATUS_COMPLETED:
            self._set_status(target, STATUS_IN_PROGRESS)
        logger.info(f"Phase transition: {record.from_phase or 'none'} -> {target}")
        return record

    def complete(self, phase: str | None = None) -> str | None:
        """Mark `phase` (default: the current phase) completed.

        Returns the next phase to work on, or None when all are done.
        """
        if phase is None and self.current_phase is None:
            raise PhaseError(
                "No active phase to complete",
                code="INVALID_PHASE",
                suggestions=["Start a phase with 'earsflow phase start spec-forge'"],
            )
        target = self._require(phase or self.current_phase)
        missing = self.missing_prerequisites(target)
        if missing:
            raise PhaseError(
                f"Cannot complete {PHASE_NAMES[target]} before "
                f"{', '.join(PHASE_NAMES[p] for p in missing)}",
                suggestions=[f"Complete {PHASE_NAMES[missing[0]]} first"],
                context={"phase": target, "missing": missing},
            )
        self._set_status(target, STATUS_COMPLETED)
        logger.info(f"Phase completed: {target}")
        return self.next_phase()

    def progress_indicator(self) -> str:
        """One-line view such as `[x] SPEC-FORGE -> [>] PLANNING -> [ ] WORK -> [ ] REVIEW`."""
        parts = []
        for phase in PHASE_SEQUENCE:
            status = self.status(phase)
            if status == STATUS_COMPLETED:
                mark = "[x]"
            elif status == STATUS_IN_PROGRESS or phase == self.current_phase:
                mark = "[>]"
            else:
                mark = "[ ]"
            parts.append(f"{mark} {PHASE_NAMES[phase]}")
        return " -> ".join(parts)

    def reset(self) -> None:
        self.state = PhaseState()


class PhaseStateStore:
    """Phase state persisted in .ai/state/phases.json."""

    def __init__(self, project_root: Path | str):
        self.path = Path(project_root) / ".ai" / "state" / "phases.json"

    def load(self) -> PhaseState:
        if not self.path.exists():
            return PhaseState()
        try:
            return PhaseState.model_validate(json.loads(self.path.read_text(encoding="utf-8")))
        except (json.JSONDecodeError, ValidationError) as e:
            raise PhaseError(
                f"Invalid phase state file {self.path}: {e}",
                code="INVALID_PHASE_STATE",
                suggestions=["Run 'earsflow phase reset' to start over"],
                context={"path": str(self.path)},
            ) from e

    def save(self, state: PhaseState) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(state.model_dump_json(indent=2) + "\n", encoding="utf-8")
        logger.debug(f"Saved phase state to {self.path}")
        return self.path

    def tracker(self) -> PhaseTracker:
        return PhaseTracker(self.load())

    def session(self) -> SessionContext:
        """Session seeded with the stored phase and progress."""
        state = self.load()
        return SessionContext(current_phase=state.current_phase, workflow_progress=state.progress)
