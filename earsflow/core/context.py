"""Token-budgeted context loading for activated skills.

Progressive disclosure keeps the context window small: only skill metadata
is loaded during discovery, and larger tiers (activation, execution,
review) load ranked project files until the tier limit or the overall
budget runs out. Content above a tier limit is pruned, not dropped.

Token counts are estimates (~4 characters per token).
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any

from earsflow.core.models import SessionContext
from earsflow.core.utils import normalize_project_path

logger = logging.getLogger(__name__)

CODE_EXTENSIONS = frozenset([".js", ".ts", ".py", ".java", ".cpp", ".c", ".go", ".rs"])
MARKDOWN_EXTENSIONS = frozenset([".md", ".markdown"])

TOTAL_BUDGET = 8000

TIER_LIMITS: dict[str, int] = {
    "discovery": 500,  # metadata only
    "activation": 2000,
    "execution": 4000,
    "review": 3000,
}

PRIORITY_BOOST = {"high": 20, "medium": 10, "low": 0}

MAX_RECENT_FILES = 10
MAX_RECENT_ACTIVITIES = 5

MEMORY_FILES = (".ai/memory/lessons.md", ".ai/memory/decisions.md")


def content_type_for(path: str | Path) -> str:
    """Classify a file as code, markdown or text by extension."""
    ext = Path(path).suffix.lower()
    if ext in CODE_EXTENSIONS:
        return "code"
    if ext in MARKDOWN_EXTENSIONS:
        return "markdown"
    return "text"


class TokenEstimator:
    """Character-based token estimates."""

    CHARS_PER_TOKEN = 4
    CODE_MULTIPLIER = 1.2  # code is denser
    MARKDOWN_MULTIPLIER = 1.1  # formatting overhead

    def estimate(self, content: Any, content_type: str = "text") -> int:
        if not content or not isinstance(content, str):
            return 0
        base = math.ceil(len(content) / self.CHARS_PER_TOKEN)
        if content_type == "code":
            return math.ceil(base * self.CODE_MULTIPLIER)
        if content_type == "markdown":
            return math.ceil(base * self.MARKDOWN_MULTIPLIER)
        return base

    def estimate_file(self, path: str | Path) -> int:
        """Estimate a file's tokens; unreadable files count as 0."""
        try:
            content = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return 0
        return self.estimate(content, content_type_for(path))


class RelevanceScorer:
    """Score a piece of content (0-100) against a user intent.

    Components:
        intent match       0-50
        recent use         0-30
        phase relevance    0-40
        freshness          0-20
        cross references   0-10
    """

    INTENT_KEYWORDS: dict[str, list[str]] = {
        "planning": ["plan", "design", "architecture", "spec", "requirements", "analyze"],
        "implementation": ["implement", "code", "build", "develop", "create", "fix"],
        "testing": ["test", "validate", "verify", "check", "audit", "review"],
        "documentation": ["document", "readme", "guide", "docs", "explain"],
        "debugging": ["error", "bug", "issue", "problem", "fail", "broken"],
        "security": ["security", "vulnerability", "auth", "permission", "secure"],
        "performance": ["performance", "optimize", "speed", "memory", "efficiency"],
    }

    PHASE_KEYWORDS: dict[str, list[str]] = {
        "PLAN": ["planning", "documentation", "architecture"],
        "SPEC-FORGE": ["planning", "documentation"],
        "WORK": ["implementation", "testing", "debugging"],
        "REVIEW": ["testing", "security", "performance", "documentation"],
    }

    _LINK = re.compile(r"\[.*?\]\(.*?\)")
    _FILE_REF = re.compile(r"`[^`]*\.(?:md|js|ts|py|json|yaml|yml)`")
    _PATH_HINT = re.compile(r"(?:File|Path|Location):\s*(\S+)", re.IGNORECASE)

    def __init__(self, today: date | None = None):
        # Fixed date for freshness scoring; defaults to the real date per call
        self.today = today

    def score(self, content: str, intent: str, session: SessionContext | None = None) -> int:
        session = session or SessionContext()
        lowered = content.lower()
        total = (
            self.score_intent(lowered, intent.lower())
            + self.score_recent_use(content, session)
            + self.score_phase(lowered, session.current_phase)
            + self.score_freshness(content)
            + self.score_cross_references(content)
        )
        return min(total, 100)

    def score_intent(self, content: str, intent: str) -> int:
        score = 0
        for keywords in self.INTENT_KEYWORDS.values():
            intent_hits = sum(1 for k in keywords if k in intent)
            content_hits = sum(1 for k in keywords if k in content)
            if intent_hits and content_hits:
                score += min(intent_hits * content_hits * 10, 50)
        return min(score, 50)

    def score_recent_use(self, content: str, session: SessionContext) -> int:
        match = self._PATH_HINT.search(content)
        if not match or match.group(1) not in session.recent_files:
            return 0
        position = session.recent_files.index(match.group(1))
        return max(30 - position * 5, 0)

    def score_phase(self, content: str, phase: str | None) -> int:
        if not phase or phase not in self.PHASE_KEYWORDS:
            return 0
        score = 0
        for category in self.PHASE_KEYWORDS[phase]:
            score += 8 * sum(1 for k in self.INTENT_KEYWORDS[category] if k in content)
        return min(score, 40)

    def score_freshness(self, content: str) -> int:
        today = self.today or date.today()
        year = str(today.year)
        if year in content:
            if f"{today.year}-{today.month:02d}" in content:
                return 20
            return 15
        if str(today.year - 1) in content:
            return 10
        return 0

    def score_cross_references(self, content: str) -> int:
        refs = len(self._LINK.findall(content)) + len(self._FILE_REF.findall(content))
        return min(refs * 2, 10)


@dataclass
class MemoryPruneResult:
    lessons: list[str]
    decisions: list[str]
    pruned_lessons: int
    pruned_decisions: int


class ContextPruner:
    """Shrink content to a token target."""

    IMPORTANT_MARKERS = ("TODO", "FIXME", "NOTE", "WARNING")
    LESSON_THRESHOLD = 30
    MAX_LESSONS = 15
    MAX_DECISIONS = 10

    _DATE = re.compile(r"(\d{4}-\d{2}-\d{2})")

    def __init__(self, estimator: TokenEstimator, scorer: RelevanceScorer):
        self.estimator = estimator
        self.scorer = scorer

    def prune(self, content: str, target_tokens: int, preserve_structure: bool = True) -> str:
        """Reduce content to roughly `target_tokens` (text estimate)."""
        if not content or not isinstance(content, str):
            return content
        current = self.estimator.estimate(content)
        if current <= target_tokens:
            return content
        ratio = target_tokens / current
        if preserve_structure:
            return self._prune_structured(content, ratio)
        return content[: math.ceil(len(content) * ratio)] + "..."

    def _is_important(self, line: str) -> bool:
        return (
            line.startswith("#")
            or line.strip() == ""
            or any(marker in line for marker in self.IMPORTANT_MARKERS)
        )

    def _prune_structured(self, content: str, ratio: float) -> str:
        lines = content.split("\n")
        target_lines = math.ceil(len(lines) * ratio)

        important: list[int] = []
        regular: list[int] = []
        for index, line in enumerate(lines):
            (important if self._is_important(line) else regular).append(index)

        keep = max(0, target_lines - len(important))
        kept = sorted(important + self._sample(regular, keep))
        return "\n".join(lines[i] for i in kept)

    @staticmethod
    def _sample(indices: list[int], count: int) -> list[int]:
        """Evenly spaced sample of `count` items, order preserved."""
        if count <= 0:
            return []
        if len(indices) <= count:
            return indices
        step = len(indices) / count
        return [indices[math.floor(i * step)] for i in range(count)]

    def prune_memory(
        self,
        lessons: list[str],
        decisions: list[str],
        task: str,
        session: SessionContext | None = None,
    ) -> MemoryPruneResult:
        """Keep the lessons and decisions most relevant to `task`.

        Lessons must score above the threshold; decisions are ranked by
        score plus a recency bonus from their YYYY-MM-DD date.
        """
        scored_lessons = [(self.scorer.score(lesson, task, session), lesson) for lesson in lessons]
        kept_lessons = [
            text
            for score, text in sorted(
                (item for item in scored_lessons if item[0] > self.LESSON_THRESHOLD),
                key=lambda item: item[0],
                reverse=True,
            )[: self.MAX_LESSONS]
        ]

        ranked_decisions = sorted(
            decisions,
            key=lambda d: self.scorer.score(d, task, session) + self.recency_bonus(d),
            reverse=True,
        )
        kept_decisions = ranked_decisions[: self.MAX_DECISIONS]

        return MemoryPruneResult(
            lessons=kept_lessons,
            decisions=kept_decisions,
            pruned_lessons=len(lessons) - len(kept_lessons),
            pruned_decisions=len(decisions) - len(kept_decisions),
        )

    def recency_bonus(self, content: str) -> int:
        match = self._DATE.search(content)
        if not match:
            return 0
        try:
            when = datetime.strptime(match.group(1), "%Y-%m-%d").date()
        except ValueError:
            return 0
        today = self.scorer.today or date.today()
        age = (today - when).days
        if age < 7:
            return 20
        if age < 30:
            return 15
        if age < 90:
            return 10
        if age < 365:
            return 5
        return 0


@dataclass
class LoadResult:
    content: str
    tokens: int
    pruned: bool
    tier: str
    original_tokens: int | None = None

    @property
    def reduction_ratio(self) -> float | None:
        if not self.pruned or not self.original_tokens:
            return None
        return self.tokens / self.original_tokens


@dataclass
class UsageStats:
    used: int
    budget: int
    remaining: int
    utilization: float  # percent of budget


class ContextBudget:
    """Track token usage against the tier limits and the total budget."""

    def __init__(
        self,
        total: int = TOTAL_BUDGET,
        tier_limits: dict[str, int] | None = None,
        estimator: TokenEstimator | None = None,
        scorer: RelevanceScorer | None = None,
    ):
        self.total = total
        self.tier_limits = dict(tier_limits or TIER_LIMITS)
        self.estimator = estimator or TokenEstimator()
        self.scorer = scorer or RelevanceScorer()
        self.pruner = ContextPruner(self.estimator, self.scorer)
        self.used = 0
        self.session = SessionContext()

    def limit_for(self, tier: str) -> int:
        return self.tier_limits.get(tier, self.tier_limits["execution"])

    def load_with_budget(self, content: str, tier: str, content_type: str = "text") -> LoadResult:
        """Account for `content` in `tier`, pruning it above the tier limit."""
        tokens = self.estimator.estimate(content, content_type)
        limit = self.limit_for(tier)
        if tokens <= limit:
            self.used += tokens
            return LoadResult(content=content, tokens=tokens, pruned=False, tier=tier)

        pruned = self.pruner.prune(content, limit, preserve_structure=True)
        pruned_tokens = self.estimator.estimate(pruned, content_type)
        self.used += pruned_tokens
        logger.debug(f"Pruned content for tier {tier}: {tokens} -> {pruned_tokens} tokens")
        return LoadResult(
            content=pruned,
            tokens=pruned_tokens,
            pruned=True,
            tier=tier,
            original_tokens=tokens,
        )

    def remaining(self) -> int:
        return max(0, self.total - self.used)

    def reset(self) -> None:
        self.used = 0

    def stats(self) -> UsageStats:
        return UsageStats(
            used=self.used,
            budget=self.total,
            remaining=self.remaining(),
            utilization=self.used / self.total * 100 if self.total else 0.0,
        )

    def update_session(self, session: SessionContext) -> SessionContext:
        """Adopt a new session, keeping 10 recent files and 5 activities."""
        merged = self.session.model_copy(
            update={
                k: v
                for k, v in session.model_dump(exclude_unset=True).items()
                if k not in ("workflow_progress", "corrections")
            }
        )
        merged.recent_files = list(session.recent_files)[:MAX_RECENT_FILES]
        merged.recent_activities = list(session.recent_activities)[:MAX_RECENT_ACTIVITIES]
        self.session = merged
        return merged

    @staticmethod
    def load_memory_file(path: str | Path) -> list[str]:
        """Split a memory file into entries on bullet or numbered list markers."""
        try:
            content = Path(path).read_text(encoding="utf-8")
        except OSError:
            return []
        parts = re.split(r"\n[-*]\s+|\n\d+\.\s+", content)
        return [part.strip() for part in parts if part.strip()]


@dataclass
class ContextSource:
    """A file considered for loading."""

    type: str  # skill, memory, workflow, recent
    path: str
    priority: str
    content: str = ""
    score: int = 0
    tokens: int = 0
    load_result: LoadResult | None = None


@dataclass
class ContextLoad:
    loaded: list[ContextSource]
    tier: str
    budget: int
    stats: UsageStats
    session: SessionContext


class AdaptiveLoader:
    """Pick a tier from the intent and load the best sources into it."""

    ERROR_WORDS = ("error", "bug", "fail", "broken", "issue")
    REVIEW_WORDS = ("review", "audit", "check", "validate", "test")
    EXECUTION_WORDS = ("implement", "build", "create", "develop", "code")
    ACTIVATION_WORDS = ("activate", "use", "run", "execute")

    def __init__(self, budget: ContextBudget, project_root: Path | None = None):
        self.budget = budget
        self.project_root = Path(project_root or Path.cwd()).absolute()

    def determine_tier(self, intent: str, session: SessionContext | None = None) -> str:
        lowered = intent.lower()
        if (session and session.error_context) or any(w in lowered for w in self.ERROR_WORDS):
            return "execution"
        # Review words are checked before implementation words
        if any(w in lowered for w in self.REVIEW_WORDS):
            return "review"
        if any(w in lowered for w in self.EXECUTION_WORDS):
            return "execution"
        if any(w in lowered for w in self.ACTIVATION_WORDS):
            return "activation"
        return "discovery"

    def identify_sources(self, skill: str | None, session: SessionContext) -> list[ContextSource]:
        sources: list[ContextSource] = []
        if skill:
            sources.append(ContextSource("skill", f".ai/skills/{skill}/SKILL.md", "high"))
        sources.extend(ContextSource("memory", path, "high") for path in MEMORY_FILES)
        if session.current_phase:
            sources.append(
                ContextSource(
                    "workflow", f".ai/workflows/{session.current_phase.lower()}.md", "medium"
                )
            )
        sources.extend(ContextSource("recent", path, "medium") for path in session.recent_files)
        return sources

    def rank_sources(
        self, sources: list[ContextSource], intent: str, session: SessionContext
    ) -> list[ContextSource]:
        """Read, score and sort sources; unreadable ones are skipped."""
        ranked: list[ContextSource] = []
        for source in sources:
            try:
                relative = normalize_project_path(source.path, self.project_root, fail_closed=True)
                content = (self.project_root / relative).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError, ValueError) as e:
                logger.debug(f"Skipping context source {source.path}: {e}")
                continue
            source.content = content
            source.score = self.budget.scorer.score(content, intent, session) + PRIORITY_BOOST.get(
                source.priority, 0
            )
            source.tokens = self.budget.estimator.estimate(content)
            ranked.append(source)
        ranked.sort(key=lambda s: s.score, reverse=True)
        return ranked

    def load_within_budget(
        self, ranked: list[ContextSource], tier: str, budget: int
    ) -> list[ContextSource]:
        loaded: list[ContextSource] = []
        used = 0
        limit = self.budget.limit_for(tier)
        for source in ranked:
            if min(budget - used, limit - used) <= 0:
                break
            source.load_result = self.budget.load_with_budget(
                source.content, tier, content_type_for(source.path)
            )
            loaded.append(source)
            used += source.load_result.tokens
            if used >= limit:
                break
        return loaded

    def load_context(
        self, skill: str | None, intent: str, session: SessionContext | None = None
    ) -> ContextLoad:
        session = self.budget.update_session(session or SessionContext())
        remaining = self.budget.remaining()
        tier = self.determine_tier(intent, session)
        ranked = self.rank_sources(self.identify_sources(skill, session), intent, session)
        loaded = self.load_within_budget(ranked, tier, remaining)
        logger.debug(
            f"Loaded {len(loaded)} context sources for tier {tier} "
            f"({self.budget.used}/{self.budget.total} tokens)"
        )
        return ContextLoad(
            loaded=loaded,
            tier=tier,
            budget=remaining,
            stats=self.budget.stats(),
            session=session,
        )


@dataclass
class Advice:
    """Recommendation attached to an optimization result."""

    type: str  # warning or info
    message: str
    action: str


@dataclass
class MemoryOptimization:
    lessons: list[str] = field(default_factory=list)
    decisions: list[str] = field(default_factory=list)
    stats: dict[str, int] = field(default_factory=dict)


@dataclass
class OptimizationResult:
    context: ContextLoad
    memory: MemoryOptimization
    recommendations: list[Advice]


class ContextOptimizer:
    """Entry point: load context for a skill and report on the budget."""

    def __init__(self, project_root: Path | None = None, budget: ContextBudget | None = None):
        self.project_root = Path(project_root or Path.cwd()).absolute()
        self.budget = budget or ContextBudget()
        self.loader = AdaptiveLoader(self.budget, self.project_root)

    def optimize(
        self, skill: str | None, intent: str, session: SessionContext | None = None
    ) -> OptimizationResult:
        self.budget.reset()
        context = self.loader.load_context(skill, intent, session)
        memory = self.optimize_memory(intent)
        return OptimizationResult(
            context=context,
            memory=memory,
            recommendations=self.recommendations(context, memory),
        )

    def optimize_memory(self, intent: str) -> MemoryOptimization:
        lessons_path, decisions_path = (self.project_root / p for p in MEMORY_FILES)
        lessons = self.budget.load_memory_file(lessons_path)
        decisions = self.budget.load_memory_file(decisions_path)
        result = self.budget.pruner.prune_memory(lessons, decisions, intent, self.budget.session)
        return MemoryOptimization(
            lessons=result.lessons,
            decisions=result.decisions,
            stats={
                "original_lessons": len(lessons),
                "optimized_lessons": len(result.lessons),
                "pruned_lessons": result.pruned_lessons,
                "original_decisions": len(decisions),
                "optimized_decisions": len(result.decisions),
                "pruned_decisions": result.pruned_decisions,
            },
        )

    @staticmethod
    def recommendations(context: ContextLoad, memory: MemoryOptimization) -> list[Advice]:
        advice: list[Advice] = []
        utilization = context.stats.utilization
        if utilization > 90:
            advice.append(
                Advice(
                    "warning",
                    "High token usage detected. Consider using more specific queries.",
                    "Use more targeted keywords to reduce context loading.",
                )
            )
        elif utilization < 30:
            advice.append(
                Advice(
                    "info",
                    "Low token usage. More context could be loaded if needed.",
                    "Consider loading additional relevant documentation.",
                )
            )

        pruned_lessons = memory.stats.get("pruned_lessons", 0)
        if pruned_lessons > 10:
            advice.append(
                Advice(
                    "info",
                    f"Pruned {pruned_lessons} less relevant lessons.",
                    "Consider consolidating similar lessons to reduce memory file size.",
                )
            )

        pruned_files = [s for s in context.loaded if s.load_result and s.load_result.pruned]
        if pruned_files:
            advice.append(
                Advice(
                    "warning",
                    f"{len(pruned_files)} files were pruned due to size constraints.",
                    "Use more specific queries or increase tier limits if full content is needed.",
                )
            )
        return advice
