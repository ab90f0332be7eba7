"""Skill routing based on the wording of user requests.

Free text is matched against four tiers of trigger phrases, then adjusted
by session context:

1. exact      (95-100): skill names and their aliases
2. primary    (85-94):  explicit intent ("create requirements")
3. semantic   (70-84):  implied intent ("user story")
4. contextual (50-75):  situations ("tests are failing")

Adjustments (each capped at 100):
- sequential:   last recent activity leads to this skill (+10)
- error-driven: input names a known failure mode for this skill (+15)
- urgency:      critical/urgent/... in the input (+8, priority high)
- multi-intent: more than one trigger matched the skill (+5)
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from earsflow.core.models import (
    Correction,
    PhaseCheck,
    Recommendation,
    RoutingAnalysis,
    RoutingResult,
    SessionContext,
    TriggerType,
    WorkflowProgress,
)
from earsflow.core.phases import SKILL_PHASES, PhaseTracker, determine_phase

if TYPE_CHECKING:
    from earsflow.core.skills import SkillCatalog

logger = logging.getLogger(__name__)

MAX_RECOMMENDATIONS = 3
MAX_RECENT_ACTIVITIES = 5

SEQUENTIAL_BOOST = 10
ERROR_DRIVEN_BOOST = 15
URGENCY_BOOST = 8
MULTI_INTENT_BOOST = 5


@dataclass(frozen=True)
class Trigger:
    """Phrase that points at a skill with a base confidence."""

    skill: str
    confidence: int
    context: str | None = None
    persona: str | None = None


TRIGGER_TIERS: dict[TriggerType, dict[str, Trigger]] = {
    TriggerType.EXACT: {
        "engineering-workflow": Trigger("engineering-workflow", 100),
        "spec-forge": Trigger("ears-specification", 98),
        "ears-specification": Trigger("ears-specification", 100),
        "git-workflow": Trigger("git-workflow", 100),
        "testing-framework": Trigger("testing-framework", 100),
    },
    TriggerType.PRIMARY: {
        "structured development": Trigger("engineering-workflow", 92),
        "formal methodology": Trigger("engineering-workflow", 90),
        "create requirements": Trigger("ears-specification", 92),
        "implement feature": Trigger("git-workflow", 90),
        "review code": Trigger("testing-framework", 92),
        "security audit": Trigger("testing-framework", 94),
        "git worktree": Trigger("git-workflow", 88),
        "isolated environment": Trigger("git-workflow", 85),
    },
    TriggerType.SEMANTIC: {
        "user story": Trigger("ears-specification", 82),
        "acceptance criteria": Trigger("ears-specification", 80),
        "test coverage": Trigger("testing-framework", 78),
        "need to document": Trigger("ears-specification", 75),
        "should validate": Trigger("testing-framework", 77),
        "time to implement": Trigger("git-workflow", 74),
        "build feature": Trigger("git-workflow", 82),
        "fix bug": Trigger("git-workflow", 80),
    },
    TriggerType.CONTEXTUAL: {
        "authentication not working": Trigger("git-workflow", 65, context="error"),
        "requirements unclear": Trigger("ears-specification", 68, context="clarification"),
        "is this secure": Trigger("testing-framework", 70, context="security"),
        "ready for production": Trigger("testing-framework", 72, context="deployment"),
        "tests are failing": Trigger("testing-framework", 75, context="debugging"),
    },
}

# Last recent activity -> skill that usually follows it
SEQUENTIAL_PATTERNS: dict[str, Trigger] = {
    "created requirements": Trigger("git-workflow", 92),
    "finished implementation": Trigger("testing-framework", 94),
    "review completed": Trigger("ears-specification", 88),
    "approved design": Trigger("git-workflow", 90),
}

ERROR_PATTERNS: dict[str, Trigger] = {
    "tests failing": Trigger("testing-framework", 85),
    "git conflicts": Trigger("git-workflow", 90),
    "security vulnerability": Trigger("testing-framework", 98, persona="security"),
    "performance issue": Trigger("testing-framework", 88, persona="performance"),
}

URGENCY_KEYWORDS = ("critical", "urgent", "emergency", "production", "blocker")

TYPE_PRECEDENCE: dict[TriggerType, int] = {
    TriggerType.EXACT: 4,
    TriggerType.PRIMARY: 3,
    TriggerType.SEMANTIC: 2,
    TriggerType.CONTEXTUAL: 1,
}

_REASON_LABELS: dict[TriggerType, str] = {
    TriggerType.EXACT: "Exact match",
    TriggerType.PRIMARY: "Primary intent match",
    TriggerType.SEMANTIC: "Semantic match",
    TriggerType.CONTEXTUAL: "Contextual match",
}


def _boost(value: int, amount: int) -> int:
    return min(100, value + amount)


class SkillRouter:
    """Route free-text requests to workflow skills.

    The router keeps a session (phase, recent activities, active files,
    workflow progress, corrections) that persists across analyze() calls.
    """

    def __init__(self, session: SessionContext | None = None):
        self.session = session or SessionContext()

    @property
    def corrections(self) -> list[Correction]:
        return self.session.corrections

    def analyze(self, text: str, session: SessionContext | None = None) -> RoutingResult:
        """Return the top recommendations for `text`.

        Args:
            text: User request
            session: Optional context merged into the router's session first

        Returns:
            RoutingResult with at most three recommendations, one per skill
        """
        if session is not None:
            self.update_session(
                current_phase=session.current_phase,
                recent_activities=session.recent_activities,
                active_files=session.active_files or None,
                workflow_progress=session.workflow_progress.model_dump(exclude_defaults=True),
            )

        processed = text.lower().strip()
        matches = self._match_triggers(processed)
        adjusted = self._apply_adjustments(matches, processed)
        ranked = self._apply_precedence(adjusted)
        top = ranked[:MAX_RECOMMENDATIONS]

        logger.debug(
            f"Routing '{processed}': {len(matches)} matches, "
            f"top={[r.skill for r in top]}"
        )

        return RoutingResult(
            recommendations=top,
            analysis=RoutingAnalysis(
                input=text,
                processed_input=processed,
                total_matches=len(matches),
                context_factors=self.context_factors(),
                confidence=ranked[0].confidence if ranked else 0,
            ),
            phase_check=self.check_phase(processed, top[0] if top else None),
        )

    def check_phase(self, processed: str, best: Recommendation | None = None) -> PhaseCheck | None:
        """Validate the phase a request points at against workflow progress.

        The phase comes from the top skill when it belongs to one phase,
        otherwise from the wording. None when neither names a phase.
        """
        phase = SKILL_PHASES.get(best.skill) if best else None
        phase = phase or determine_phase(processed)
        if phase is None:
            return None
        check = PhaseTracker.from_session(self.session).validate(phase)
        if not check.valid:
            logger.debug(f"Phase sequence warning for '{processed}': {check.message}")
        return check

    def _match_triggers(self, processed: str) -> list[Recommendation]:
        matches: list[Recommendation] = []
        for tier, triggers in TRIGGER_TIERS.items():
            for phrase, trigger in triggers.items():
                if phrase not in processed:
                    continue
                reasoning = f'{_REASON_LABELS[tier]} for "{phrase}"'
                if trigger.context:
                    reasoning += f" ({trigger.context})"
                matches.append(
                    Recommendation(
                        skill=trigger.skill,
                        confidence=trigger.confidence,
                        original_confidence=trigger.confidence,
                        trigger=phrase,
                        type=tier,
                        reasoning=reasoning,
                        context=trigger.context,
                    )
                )
        return matches

    def _apply_adjustments(
        self, matches: list[Recommendation], processed: str
    ) -> list[Recommendation]:
        last_activity = (
            self.session.recent_activities[-1] if self.session.recent_activities else None
        )
        sequential = SEQUENTIAL_PATTERNS.get(last_activity) if last_activity else None
        urgent = any(keyword in processed for keyword in URGENCY_KEYWORDS)
        per_skill: dict[str, int] = {}
        for match in matches:
            per_skill[match.skill] = per_skill.get(match.skill, 0) + 1

        adjusted: list[Recommendation] = []
        for match in matches:
            confidence = match.confidence
            reasons: list[str] = []
            persona = match.persona
            priority = match.priority

            if sequential and sequential.skill == match.skill:
                confidence = _boost(confidence, SEQUENTIAL_BOOST)
                reasons.append("Sequential workflow progression")

            for phrase, trigger in ERROR_PATTERNS.items():
                if phrase in processed and trigger.skill == match.skill:
                    confidence = _boost(confidence, ERROR_DRIVEN_BOOST)
                    reasons.append(f"Error-driven activation ({phrase})")
                    if trigger.persona:
                        persona = trigger.persona

            if urgent:
                confidence = _boost(confidence, URGENCY_BOOST)
                reasons.append("Urgency detected")
                priority = "high"

            if per_skill[match.skill] > 1:
                confidence = _boost(confidence, MULTI_INTENT_BOOST)
                reasons.append("Multiple intent indicators")

            adjusted.append(
                match.model_copy(
                    update={
                        "confidence": confidence,
                        "persona": persona,
                        "priority": priority,
                        "adjustment_reasons": reasons,
                    }
                )
            )
        return adjusted

    @staticmethod
    def _apply_precedence(matches: list[Recommendation]) -> list[Recommendation]:
        """Keep the strongest match per skill and rank them.

        Ties within a skill keep the first match seen. Ranking is high
        priority first, then confidence, then trigger tier.
        """
        best: dict[str, Recommendation] = {}
        for match in matches:
            existing = best.get(match.skill)
            if existing is None or match.confidence > existing.confidence:
                best[match.skill] = match

        return sorted(
            best.values(),
            key=lambda r: (
                r.priority != "high",
                -r.confidence,
                -TYPE_PRECEDENCE[r.type],
            ),
        )

    def update_session(
        self,
        current_phase: str | None = None,
        recent_activities: list[str] | None = None,
        active_files: list[str] | None = None,
        workflow_progress: dict[str, str] | None = None,
    ) -> SessionContext:
        """Merge new information into the routing session."""
        if current_phase:
            self.session.current_phase = current_phase
        if recent_activities:
            combined = self.session.recent_activities + list(recent_activities)
            self.session.recent_activities = combined[-MAX_RECENT_ACTIVITIES:]
        if active_files is not None:
            self.session.active_files = list(active_files)
        if workflow_progress:
            merged = {**self.session.workflow_progress.model_dump(), **workflow_progress}
            self.session.workflow_progress = WorkflowProgress(**merged)
        return self.session

    def context_factors(self) -> dict[str, Any]:
        return {
            "current_phase": self.session.current_phase,
            "recent_activities_count": len(self.session.recent_activities),
            "active_files_count": len(self.session.active_files),
            "workflow_progress": self.session.workflow_progress.model_dump(),
            "has_recent_corrections": bool(self.session.corrections),
        }

    def learn_from_correction(
        self,
        recommendation: Recommendation,
        user_choice: str,
        text: str,
        context: dict[str, Any] | None = None,
    ) -> Correction:
        """Record that the user picked a different skill.

        Corrections are kept for the session and logged; trigger tables are
        not modified.
        """
        correction = Correction(
            original_skill=recommendation.skill,
            user_choice=user_choice,
            input=text,
            context=dict(context or {}),
        )
        self.session.corrections.append(correction)
        logger.info(
            f"Routing correction: user chose {user_choice} instead of "
            f"{recommendation.skill} for input: \"{text.lower()}\""
        )
        return correction

    def explain(self, recommendation: Recommendation, result: RoutingResult) -> str:
        """Human-readable explanation of a recommendation."""
        lines = [
            f"Recommended {recommendation.skill} with {recommendation.confidence}% confidence.",
            "",
            f"Reasoning: {recommendation.reasoning}",
        ]
        if recommendation.adjustment_reasons:
            lines.append(f"Context adjustments: {', '.join(recommendation.adjustment_reasons)}")
        if recommendation.persona:
            lines.append(f"Suggested persona: {recommendation.persona}")
        if recommendation.priority:
            lines.append(f"Priority level: {recommendation.priority}")

        factors = result.analysis.context_factors
        lines.extend(
            [
                "",
                "Context factors:",
                f"- Current phase: {factors.get('current_phase') or 'none'}",
                f"- Recent activities: {factors.get('recent_activities_count', 0)}",
                f"- Active files: {factors.get('active_files_count', 0)}",
            ]
        )
        return "\n".join(lines) + "\n"

    def best_match(self, text: str) -> str | None:
        """Name of the top-ranked skill, or None when nothing matched."""
        best = self.analyze(text).best
        return best.skill if best else None


def routed_skills() -> set[str]:
    """All skill names referenced by the trigger tables."""
    names = {t.skill for triggers in TRIGGER_TIERS.values() for t in triggers.values()}
    names.update(t.skill for t in SEQUENTIAL_PATTERNS.values())
    names.update(t.skill for t in ERROR_PATTERNS.values())
    return names


def known_skills(catalog: "SkillCatalog") -> set[str]:
    """Routed skill names that exist in the catalog."""
    return routed_skills() & set(catalog.names())


def create_router(session: SessionContext | None = None) -> SkillRouter:
    """Factory function to create a router with an optional starting session."""
    return SkillRouter(session=session)
