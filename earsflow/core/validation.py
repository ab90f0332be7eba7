"""Validators for skill documents, documentation cross-references and config.

Each validator produces findings at three severities: errors fail the
check, warnings are shown, info items are shown in strict mode only.
"""

import json
import logging
import os
import re
import stat
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import jsonschema
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from earsflow.core.config import validate_config_dict
from earsflow.core.errors import ConfigError
from earsflow.core.skills import SKILL_FILENAME, FrontmatterError, is_skill_directory, parse_frontmatter

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent.parent / "config" / "skill_schema.json"

KEBAB_CASE = re.compile(r"^[a-z0-9-]+$")
SEMVER = re.compile(r"^\d+\.\d+\.\d+$")
RECOMMENDED_SECTIONS = ("Overview", "Usage", "Examples", "Integration", "Error Handling")
RECOMMENDED_DIRS = ("scripts", "templates", "references")
SCRIPT_SUFFIXES = (".sh", ".py")

ROOT_DOCS = ("README.md", "USAGE.md", "INSTALL.md", "AGENTS.md")


def load_skill_schema() -> dict[str, Any]:
    """Load the packaged frontmatter schema.

    Raises ConfigError with an actionable message on failure.
    """
    try:
        with open(SCHEMA_PATH, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        raise ConfigError(
            f"Skill schema not found at {SCHEMA_PATH}",
            code="CONFIG_LOAD_ERROR",
            suggestions=["Ensure the earsflow package is properly installed"],
        )
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in skill schema at {SCHEMA_PATH}: {e}", code="CONFIG_LOAD_ERROR")


@dataclass
class SkillResult:
    """Findings for one skill directory."""

    skill: str
    path: str
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    info: list[str] = field(default_factory=list)
    frontmatter: dict[str, Any] | None = None

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["valid"] = self.valid
        return data


@dataclass
class ValidationReport:
    """Aggregated skill findings, renderable as console, JSON or Markdown."""

    results: list[SkillResult] = field(default_factory=list)
    strict: bool = False
    generated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def valid(self) -> bool:
        return all(r.valid for r in self.results)

    @property
    def invalid_count(self) -> int:
        return sum(1 for r in self.results if not r.valid)

    def to_json(self) -> str:
        report = {
            "timestamp": self.generated.isoformat(),
            "summary": {
                "total": len(self.results),
                "valid": len(self.results) - self.invalid_count,
                "invalid": self.invalid_count,
            },
            "results": [r.to_dict() for r in self.results],
        }
        return json.dumps(report, indent=2, default=str)

    def to_markdown(self) -> str:
        lines = [
            "# Skills Validation Report",
            "",
            f"**Generated**: {self.generated.isoformat()}",
            f"**Total Skills**: {len(self.results)}",
            f"**Valid Skills**: {len(self.results) - self.invalid_count}",
            f"**Invalid Skills**: {self.invalid_count}",
            "",
            "## Summary",
            "",
            "| Skill | Status | Errors | Warnings |",
            "|:------|:-------|:-------|:---------|",
        ]
        for r in self.results:
            status = "Valid" if r.valid else "Invalid"
            lines.append(f"| {r.skill} | {status} | {len(r.errors)} | {len(r.warnings)} |")
        lines += ["", "## Detailed Results", ""]
        for r in self.results:
            lines += [f"### {r.skill}", "", f"**Status**: {'Valid' if r.valid else 'Invalid'}", ""]
            if r.frontmatter:
                lines += [
                    f"**Name**: {r.frontmatter.get('name') or 'N/A'}",
                    f"**Version**: {r.frontmatter.get('version') or 'N/A'}",
                    f"**Description**: {r.frontmatter.get('description') or 'N/A'}",
                    "",
                ]
            for title, items in (("Errors", r.errors), ("Warnings", r.warnings), ("Recommendations", r.info)):
                if items:
                    lines.append(f"**{title}**:")
                    lines.extend(f"- {item}" for item in items)
                    lines.append("")
            lines += ["---", ""]
        return "\n".join(lines)

    def render(self, console: Console) -> None:
        table = Table(title="Skills Validation Report")
        table.add_column("Skill", style="cyan")
        table.add_column("Status")
        table.add_column("Errors", justify="right")
        table.add_column("Warnings", justify="right")
        for r in self.results:
            status = "[green]VALID[/green]" if r.valid else "[red]INVALID[/red]"
            table.add_row(escape(r.skill), status, str(len(r.errors)), str(len(r.warnings)))
        console.print(table)

        for r in self.results:
            body: list[str] = []
            body.extend(f"[red]✗[/red] {escape(e)}" for e in r.errors)
            body.extend(f"[yellow]⚠[/yellow] {escape(w)}" for w in r.warnings)
            if self.strict:
                body.extend(f"[blue]ℹ[/blue] {escape(i)}" for i in r.info)
            if body:
                console.print(Panel("\n".join(body), title=escape(r.skill), expand=False))

        if self.valid:
            console.print("[green]All skills are valid![/green]")
        else:
            console.print(f"[red]{self.invalid_count} skill(s) have validation errors[/red]")


class SkillValidator:
    """Check SKILL.md documents and skill directory structure."""

    def __init__(self, skills_dir: Path | str = Path(".ai/skills"), strict: bool = False):
        self.skills_dir = Path(skills_dir)
        self.strict = strict
        self._schema = load_skill_schema()

    def skill_names(self, only: str | None = None) -> list[str]:
        if only:
            return [only]
        try:
            return sorted(p.name for p in self.skills_dir.iterdir() if is_skill_directory(p))
        except OSError as e:
            logger.error(f"Failed to read skills directory {self.skills_dir}: {e}")
            return []

    def validate(self, only: str | None = None) -> ValidationReport:
        report = ValidationReport(strict=self.strict)
        report.results = [self.validate_skill(name) for name in self.skill_names(only)]
        return report

    def validate_skill(self, name: str) -> SkillResult:
        skill_path = self.skills_dir / name
        result = SkillResult(skill=name, path=str(skill_path))
        if not skill_path.is_dir():
            result.errors.append(f"Skill not found: {name}")
            return result

        skill_file = skill_path / SKILL_FILENAME
        if not skill_file.is_file():
            result.errors.append("SKILL.md file not found")
            return result

        try:
            content = skill_file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            result.errors.append(f"Failed to read SKILL.md: {e}")
            return result

        self._check_content(content, result)
        self._check_structure(skill_path, result)
        return result

    def _check_content(self, content: str, result: SkillResult) -> None:
        try:
            frontmatter, body = parse_frontmatter(content, strict=True)
        except FrontmatterError as e:
            result.errors.append(str(e))
            return
        if frontmatter is None:
            result.errors.append("No YAML frontmatter found")
            return
        result.frontmatter = frontmatter

        validator = jsonschema.Draft7Validator(self._schema)
        for error in sorted(validator.iter_errors(frontmatter), key=lambda e: list(e.path)):
            result.errors.append(self._schema_message(error))

        name = frontmatter.get("name")
        if isinstance(name, str) and name:
            if not KEBAB_CASE.match(name):
                result.errors.append("Name must be kebab-case (lowercase letters, numbers, hyphens only)")
            if name != result.skill:
                result.warnings.append(
                    f"Name '{name}' does not match directory name '{result.skill}'"
                )

        version = frontmatter.get("version")
        if version is not None and not SEMVER.match(str(version)):
            result.warnings.append("Version should follow semantic versioning (e.g., 1.0.0)")

        description = frontmatter.get("description")
        if isinstance(description, str) and description:
            if len(description) < 20:
                result.warnings.append(
                    "Description is quite short - consider adding more detail for better semantic routing"
                )
            if len(description) > 500:
                result.warnings.append(
                    "Description is very long - consider shortening for better token efficiency"
                )
            if "use this skill when" not in description.lower():
                result.warnings.append(
                    'Consider adding "Use this skill when..." pattern to description for better activation routing'
                )

        if "# " not in body:
            result.warnings.append("No main heading found in content")
        if "## Overview" not in body:
            result.warnings.append("No Overview section found - consider adding for better documentation")
        for section in RECOMMENDED_SECTIONS:
            if f"## {section}" not in body and f"### {section}" not in body:
                result.info.append(f"Consider adding {section} section for better documentation")

    @staticmethod
    def _schema_message(error: jsonschema.ValidationError) -> str:
        if error.validator == "required":
            missing = error.message.split("'")[1] if "'" in error.message else error.message
            return f"Missing required field: {missing}"
        field_name = ".".join(str(p) for p in error.path) or "frontmatter"
        if field_name in ("name", "description"):
            return f"Field '{field_name}' must be a non-empty string"
        return f"Field '{field_name}': {error.message}"

    @staticmethod
    def _check_structure(skill_path: Path, result: SkillResult) -> None:
        for dirname in RECOMMENDED_DIRS:
            directory = skill_path / dirname
            if directory.is_dir():
                result.info.append(f"Found {dirname} directory")
                if not any(directory.iterdir()):
                    result.warnings.append(f"{dirname} directory is empty")

        scripts = skill_path / "scripts"
        if scripts.is_dir() and os.name == "posix":
            for script in sorted(scripts.iterdir()):
                if script.is_file() and script.suffix in SCRIPT_SUFFIXES:
                    if not script.stat().st_mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH):
                        result.warnings.append(f"Script {script.name} is not executable")

        if not any(p.name.lower().startswith("readme") for p in skill_path.iterdir()):
            result.info.append("Consider adding a README.md file for detailed documentation")


@dataclass
class CrossReferenceReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    files_checked: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


class CrossReferenceValidator:
    """Check that links and file references in documentation resolve."""

    MARKDOWN_LINK = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
    FILE_REF = re.compile(r"`([^`]+\.[a-zA-Z0-9]+)`")
    DIRECTORY_REF = re.compile(r"`(\.ai/[^`]+/)`")
    NPM_SCRIPT = re.compile(r"npm run ([a-zA-Z0-9:-]+)")
    RELATIVE_REF = re.compile(r"`(\.\.?/[^`]+)`")
    HEADING = re.compile(r"^#+\s+(.+)$", re.MULTILINE)
    NODE_SCRIPT = re.compile(r"node\s+(\S+\.js)")

    def __init__(self, root: Path | str | None = None):
        self.root = Path(root or Path.cwd()).absolute()
        self._scripts: dict[str, str] | None = None
        self._package_error: str | None = None

    def documentation_files(self) -> list[Path]:
        files = [self.root / name for name in ROOT_DOCS if (self.root / name).is_file()]
        ai_dir = self.root / ".ai"
        if ai_dir.is_dir():
            files.extend(sorted(p for p in ai_dir.rglob("*.md") if p.is_file()))
        return files

    def _load_scripts(self) -> dict[str, str] | None:
        """package.json scripts, or None when there is no package.json."""
        if self._scripts is not None or self._package_error is not None:
            return self._scripts
        package = self.root / "package.json"
        if not package.is_file():
            return None
        try:
            data = json.loads(package.read_text(encoding="utf-8"))
            self._scripts = dict(data.get("scripts") or {})
        except (OSError, json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
            self._package_error = str(e)
        return self._scripts

    def validate(self) -> CrossReferenceReport:
        report = CrossReferenceReport()
        for path in self.documentation_files():
            rel = self._display(path)
            report.files_checked.append(rel)
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                report.errors.append(f"Could not read file {rel}: {e}")
                continue
            self._check_file(content, rel, path.parent, report)
        self._check_package_scripts(report)
        return report

    def _display(self, path: Path) -> str:
        try:
            return str(path.relative_to(self.root))
        except ValueError:
            return str(path)

    def _check_file(self, content: str, rel: str, base: Path, report: CrossReferenceReport) -> None:
        for text, target in self.MARKDOWN_LINK.findall(content):
            if target.startswith(("http://", "https://", "#")):
                continue
            path_part, _, anchor = target.partition("#")
            resolved = (base / path_part).resolve()
            if not resolved.is_file():
                report.errors.append(f'{rel}: Broken link "{text}" -> {target}')
            elif anchor:
                self._check_anchor(resolved, anchor, rel, text, report)

        for ref in self.FILE_REF.findall(content):
            if " " in ref or "$" in ref or "npm" in ref:
                continue
            if not (base / ref).resolve().is_file():
                report.errors.append(f'{rel}: Missing file reference "{ref}"')

        for ref in self.DIRECTORY_REF.findall(content):
            if not (base / ref).resolve().is_dir():
                report.errors.append(f'{rel}: Missing directory reference "{ref}"')

        scripts = self._load_scripts()
        if scripts is not None:
            for name in self.NPM_SCRIPT.findall(content):
                if name not in scripts:
                    report.errors.append(f'{rel}: Missing npm script "{name}"')

        for ref in self.RELATIVE_REF.findall(content):
            if " " in ref or "$" in ref:
                continue
            resolved = (base / ref).resolve()
            if not resolved.exists():
                report.errors.append(f'{rel}: Missing path reference "{ref}"')

    def _check_anchor(
        self, target: Path, anchor: str, rel: str, text: str, report: CrossReferenceReport
    ) -> None:
        expected = re.sub(r"[^a-z0-9\s]", "", anchor.lower().replace("-", " "))
        try:
            content = target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            report.warnings.append(f'Could not validate anchor "{anchor}" in {target}: {e}')
            return
        for heading in self.HEADING.findall(content):
            normalized = re.sub(r"[^a-z0-9\s]", "", heading.lower()).strip()
            if expected in normalized or normalized in expected:
                return
        report.warnings.append(f'{rel}: Anchor "{anchor}" not found in "{text}" -> {self._display(target)}')

    def _check_package_scripts(self, report: CrossReferenceReport) -> None:
        scripts = self._load_scripts()
        if self._package_error:
            report.errors.append(f"Error validating package.json scripts: {self._package_error}")
            return
        if scripts is None:
            return
        for name, command in scripts.items():
            for script in self.NODE_SCRIPT.findall(str(command)):
                if not (self.root / script).is_file():
                    report.errors.append(f'package.json script "{name}": Missing file "{script}"')


def validate_config_file(path: Path) -> list[str]:
    """Violations in a configuration file; a missing file is valid (defaults)."""
    if not path.is_file():
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        return [f"Cannot parse {path}: {e}"]
    return validate_config_dict(data)
