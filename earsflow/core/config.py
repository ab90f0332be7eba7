"""Skill tooling configuration.

Configuration lives in `.ai/config/skills.json` and has three fixed sections:

    {
      "worktree": {"baseDirectory": ..., "branchPrefix": [...],
                   "autoCleanup": ..., "maxWorktrees": ...},
      "reset":    {"archiveDirectory": ..., "compressionLevel": ...,
                   "retentionDays": ..., "confirmDestructive": ...},
      "display":  {"colorOutput": ..., "progressIndicators": ...,
                   "verboseLogging": ...}
    }

A missing file means defaults. A present file is merged section by section
over the defaults, then validated with strict types (true is not a number,
"5" is not a number).
"""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    ValidationError,
)

from earsflow.core.errors import ConfigError, filesystem_suggestions

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(".ai/config/skills.json")


class WorktreeSettings(BaseModel):
    """Worktree section."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    base_directory: StrictStr = Field("../worktrees", alias="baseDirectory")
    branch_prefix: list[StrictStr] = Field(
        default_factory=lambda: ["feature/", "bugfix/", "hotfix/", "refactor/"],
        alias="branchPrefix",
    )
    auto_cleanup: StrictBool = Field(False, alias="autoCleanup")
    max_worktrees: StrictInt = Field(10, ge=1, alias="maxWorktrees")


class ResetSettings(BaseModel):
    """Reset/archive section."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    archive_directory: StrictStr = Field(".ai/archive", alias="archiveDirectory")
    compression_level: StrictInt = Field(6, ge=0, le=9, alias="compressionLevel")
    retention_days: StrictInt = Field(30, ge=0, alias="retentionDays")
    confirm_destructive: StrictBool = Field(True, alias="confirmDestructive")


class DisplaySettings(BaseModel):
    """Console output section."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    color_output: StrictBool = Field(True, alias="colorOutput")
    progress_indicators: StrictBool = Field(True, alias="progressIndicators")
    verbose_logging: StrictBool = Field(False, alias="verboseLogging")


class SkillsConfig(BaseModel):
    """Complete tooling configuration."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    worktree: WorktreeSettings = Field(default_factory=WorktreeSettings)
    reset: ResetSettings = Field(default_factory=ResetSettings)
    display: DisplaySettings = Field(default_factory=DisplaySettings)

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with the on-disk camelCase keys."""
        return self.model_dump(by_alias=True)


SECTIONS: dict[str, type[BaseModel]] = {
    "worktree": WorktreeSettings,
    "reset": ResetSettings,
    "display": DisplaySettings,
}

# Human-readable rule per field, keyed by "section.camelKey"
FIELD_RULES: dict[str, str] = {
    "worktree.baseDirectory": "must be a string",
    "worktree.branchPrefix": "must be an array of strings",
    "worktree.autoCleanup": "must be a boolean",
    "worktree.maxWorktrees": "must be a positive number",
    "reset.archiveDirectory": "must be a string",
    "reset.compressionLevel": "must be a number between 0 and 9",
    "reset.retentionDays": "must be a non-negative number",
    "reset.confirmDestructive": "must be a boolean",
    "display.colorOutput": "must be a boolean",
    "display.progressIndicators": "must be a boolean",
    "display.verboseLogging": "must be a boolean",
}


def _alias_for(section: str, key: str) -> str:
    """Return the camelCase alias for a field name or alias."""
    model = SECTIONS.get(section)
    if model is None:
        return key
    for name, info in model.model_fields.items():
        if key in (name, info.alias):
            return info.alias or name
    return key


def default_config_dict() -> dict[str, Any]:
    """Default configuration in on-disk form."""
    return SkillsConfig().to_json_dict()


def merge_config_dicts(defaults: dict[str, Any], user: dict[str, Any]) -> dict[str, Any]:
    """Merge each known section of `user` over the matching default section.

    Sections merge one level deep; unknown top-level keys are dropped.
    Non-object sections are passed through so validation can report them.
    """
    merged = {name: dict(values) for name, values in defaults.items()}
    for section in SECTIONS:
        if section not in user:
            continue
        value = user[section]
        if isinstance(value, dict):
            merged[section] = {**merged.get(section, {}), **value}
        else:
            merged[section] = value
    return merged


def validate_config_dict(data: Any) -> list[str]:
    """Check a configuration object and return every violation found.

    Returns an empty list when the configuration is valid.
    """
    if not isinstance(data, dict):
        return ["configuration must be a JSON object"]

    errors: list[str] = []
    for section, model in SECTIONS.items():
        if section not in data:
            continue
        value = data[section]
        if not isinstance(value, dict):
            errors.append(f"{section} must be an object")
            continue
        try:
            model.model_validate(value)
        except ValidationError as e:
            seen: set[str] = set()
            for err in e.errors():
                key = _alias_for(section, str(err["loc"][0]))
                dotted = f"{section}.{key}"
                if dotted in seen:
                    continue
                seen.add(dotted)
                rule = FIELD_RULES.get(dotted, err["msg"])
                errors.append(f"{dotted} {rule}")
    return errors


class ConfigManager:
    """Load, validate, cache and save the tooling configuration.

    Relative config paths resolve against `project_root`.
    """

    def __init__(self, project_root: Path | None = None):
        self.project_root = Path(project_root or Path.cwd()).absolute()
        self._cache: dict[Path, SkillsConfig] = {}

    def _resolve(self, config_path: Path | str | None) -> Path:
        path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        if not path.is_absolute():
            path = self.project_root / path
        return path

    def load(self, config_path: Path | str | None = None) -> SkillsConfig:
        """Load configuration with fallback to defaults.

        Raises:
            ConfigError: If the file is unreadable, not JSON, or invalid
        """
        path = self._resolve(config_path)
        if path in self._cache:
            return self._cache[path]

        data = default_config_dict()
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug(f"No configuration at {path}, using defaults")
        except OSError as e:
            raise ConfigError(
                f"Failed to read configuration from {path}: {e}",
                code="CONFIG_LOAD_ERROR",
                suggestions=filesystem_suggestions(e),
                context={"operation": "load_config", "path": str(path)},
            ) from e
        else:
            try:
                user = json.loads(raw)
            except json.JSONDecodeError as e:
                raise ConfigError(
                    f"Invalid JSON in configuration {path}: {e}",
                    code="CONFIG_LOAD_ERROR",
                    suggestions=["Check configuration file syntax"],
                    context={"operation": "load_config", "path": str(path)},
                ) from e
            if not isinstance(user, dict):
                raise ConfigError(
                    f"Configuration {path} must contain a JSON object",
                    code="CONFIG_LOAD_ERROR",
                    suggestions=["Check configuration file syntax"],
                    context={"operation": "load_config", "path": str(path)},
                )
            data = merge_config_dicts(data, user)

        config = self._build(data, path)
        self._cache[path] = config
        return config

    def save(self, config: SkillsConfig, config_path: Path | str | None = None) -> Path:
        """Validate and write configuration, updating the cache."""
        path = self._resolve(config_path)
        data = config.to_json_dict()
        self._build(data, path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        except OSError as e:
            raise ConfigError(
                f"Failed to save configuration to {path}: {e}",
                code="CONFIG_SAVE_ERROR",
                suggestions=filesystem_suggestions(e),
                context={"operation": "save_config", "path": str(path)},
            ) from e
        self._cache[path] = config
        return path

    def clear_cache(self) -> None:
        self._cache.clear()

    @staticmethod
    def _build(data: dict[str, Any], path: Path) -> SkillsConfig:
        errors = validate_config_dict(data)
        if errors:
            raise ConfigError(
                "Configuration validation failed",
                code="INVALID_CONFIG",
                suggestions=[f"Fix: {error}" for error in errors],
                context={"operation": "validate_config", "path": str(path), "errors": errors},
            )
        return SkillsConfig.model_validate(data)


def load_config(project_root: Path | None = None, config_path: Path | str | None = None) -> SkillsConfig:
    """Load configuration without keeping a manager around."""
    return ConfigManager(project_root).load(config_path)


def save_config(
    config: SkillsConfig, project_root: Path | None = None, config_path: Path | str | None = None
) -> Path:
    return ConfigManager(project_root).save(config, config_path)


def _camel(segment: str) -> str:
    head, *rest = segment.split("_")
    return head + "".join(part.title() for part in rest)


def get_config_value(config: SkillsConfig | dict[str, Any], dotted: str, default: Any = None) -> Any:
    """Look up a dotted path such as 'worktree.baseDirectory'.

    Segments may be camelCase or snake_case.
    """
    current: Any = config.to_json_dict() if isinstance(config, SkillsConfig) else config
    for segment in dotted.split("."):
        if not isinstance(current, dict):
            return default
        if segment in current:
            current = current[segment]
        elif _camel(segment) in current:
            current = current[_camel(segment)]
        else:
            return default
    return current

