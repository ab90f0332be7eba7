"""Skill catalog with progressive disclosure.

Skills are Markdown documents at `.ai/skills/<name>/SKILL.md` that start with
YAML frontmatter:

    ---
    name: git-workflow
    description: Use this skill when ...
    version: 1.0.0
    ---
    # Git Workflow
    ...

Discovery reads only the frontmatter (cheap metadata tier). The Markdown
body is loaded when a skill is activated.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from earsflow.core.errors import SkillNotFoundError

logger = logging.getLogger(__name__)

SKILL_FILENAME = "SKILL.md"

# Directories under .ai/skills that hold shared code or templates, not skills
_SKIPPED_DIRS = frozenset(["shared"])

_FRONTMATTER = re.compile(r"\A---[ \t]*\n(.*?)\n---[ \t]*(?:\n|\Z)", re.DOTALL)


class FrontmatterError(ValueError):
    """Frontmatter block exists but is not a YAML mapping."""


def parse_frontmatter(text: str, strict: bool = False) -> tuple[dict[str, Any] | None, str]:
    """Split a document into (frontmatter, body).

    Returns (None, text) when there is no frontmatter block. Malformed YAML
    also yields (None, text) unless strict=True, which raises
    FrontmatterError instead.
    """
    normalized = text.replace("\r\n", "\n")
    match = _FRONTMATTER.match(normalized)
    if not match:
        return None, normalized

    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        if strict:
            raise FrontmatterError(f"Invalid YAML frontmatter: {e}") from e
        return None, normalized

    if data is None:
        data = {}
    if not isinstance(data, dict):
        if strict:
            raise FrontmatterError("Frontmatter must be a YAML mapping")
        return None, normalized

    return data, normalized[match.end():]


@dataclass
class SkillMetadata:
    """Frontmatter summary of one skill."""

    name: str
    description: str
    path: Path
    version: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def directory(self) -> str:
        return self.path.parent.name

    def summary_line(self) -> str:
        return f"{self.name}: {self.description}"


def is_skill_directory(path: Path) -> bool:
    """True for skill directories (not hidden, not templates, not shared)."""
    name = path.name
    return (
        path.is_dir()
        and not name.startswith(".")
        and not name.startswith("_")
        and name not in _SKIPPED_DIRS
    )


class SkillCatalog:
    """Discover skills and load their instructions on demand."""

    def __init__(self, skills_dir: Path | str = Path(".ai/skills")):
        self.skills_dir = Path(skills_dir)
        self._skills: dict[str, SkillMetadata] | None = None

    def discover(self) -> dict[str, SkillMetadata]:
        """Scan the skills directory, keyed by directory name.

        Unreadable or missing directories produce an empty catalog.
        """
        skills: dict[str, SkillMetadata] = {}
        try:
            entries = sorted(self.skills_dir.iterdir())
        except OSError as e:
            logger.warning(f"Could not load skill definitions from {self.skills_dir}: {e}")
            self._skills = skills
            return skills

        for entry in entries:
            if not is_skill_directory(entry):
                continue
            skill_file = entry / SKILL_FILENAME
            if not skill_file.is_file():
                continue
            try:
                text = skill_file.read_text(encoding="utf-8")
            except OSError as e:
                logger.warning(f"Skipping unreadable skill {skill_file}: {e}")
                continue
            frontmatter, _ = parse_frontmatter(text)
            if frontmatter is None:
                logger.debug(f"Skipping {skill_file}: no frontmatter")
                continue
            skills[entry.name] = self._to_metadata(entry.name, frontmatter, skill_file)

        self._skills = skills
        return skills

    @staticmethod
    def _to_metadata(dirname: str, frontmatter: dict[str, Any], path: Path) -> SkillMetadata:
        extra = {
            k: v for k, v in frontmatter.items() if k not in ("name", "description", "version")
        }
        version = frontmatter.get("version")
        return SkillMetadata(
            name=str(frontmatter.get("name") or dirname).strip(),
            description=str(frontmatter.get("description") or "").strip(),
            path=path,
            version=str(version) if version is not None else None,
            extra=extra,
        )

    @property
    def skills(self) -> dict[str, SkillMetadata]:
        if self._skills is None:
            return self.discover()
        return self._skills

    def names(self) -> list[str]:
        return list(self.skills.keys())

    def summaries(self) -> list[SkillMetadata]:
        """Metadata-only view used before any skill is activated."""
        return list(self.skills.values())

    def get(self, name: str) -> SkillMetadata:
        """Find a skill by directory name or frontmatter name."""
        if name in self.skills:
            return self.skills[name]
        for meta in self.skills.values():
            if meta.name == name:
                return meta
        raise SkillNotFoundError(
            f"Skill '{name}' not found in {self.skills_dir}",
            suggestions=[
                "Check the skill name spelling",
                "Run 'earsflow skills list' to see available skills",
            ],
            context={"operation": "load_skill", "name": name},
        )

    def load_instructions(self, name: str) -> str:
        """Load the full Markdown body of an activated skill."""
        meta = self.get(name)
        text = meta.path.read_text(encoding="utf-8")
        _, body = parse_frontmatter(text)
        return body.lstrip("\n")

    def estimate_metadata_tokens(self) -> int:
        """Token estimate of the metadata tier for all skills."""
        from earsflow.core.context import TokenEstimator

        estimator = TokenEstimator()
        return sum(
            estimator.estimate(meta.summary_line(), "markdown") for meta in self.summaries()
        )
