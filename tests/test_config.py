"""Tests for configuration loading, merging and validation."""

import json
from pathlib import Path

import pytest
from hypothesis import given
from hypothesis import strategies as st

from earsflow.core.config import (
    DEFAULT_CONFIG_PATH,
    FIELD_RULES,
    ConfigManager,
    SkillsConfig,
    default_config_dict,
    get_config_value,
    load_config,
    merge_config_dicts,
    save_config,
    validate_config_dict,
)
from earsflow.core.errors import ConfigError


def write_config(root: Path, data) -> Path:
    path = root / DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))
    return path


class TestDefaults:
    def test_default_values(self):
        config = SkillsConfig()
        assert config.worktree.base_directory == "../worktrees"
        assert config.worktree.branch_prefix == ["feature/", "bugfix/", "hotfix/", "refactor/"]
        assert config.worktree.auto_cleanup is False
        assert config.worktree.max_worktrees == 10
        assert config.reset.archive_directory == ".ai/archive"
        assert config.reset.compression_level == 6
        assert config.reset.retention_days == 30
        assert config.reset.confirm_destructive is True
        assert config.display.color_output is True
        assert config.display.verbose_logging is False

    def test_default_dict_uses_camel_case(self):
        data = default_config_dict()
        assert data["worktree"]["baseDirectory"] == "../worktrees"
        assert data["reset"]["compressionLevel"] == 6
        assert data["display"]["progressIndicators"] is True


class TestMerge:
    def test_merges_section_one_level_deep(self):
        merged = merge_config_dicts(default_config_dict(), {"worktree": {"maxWorktrees": 3}})
        assert merged["worktree"]["maxWorktrees"] == 3
        assert merged["worktree"]["baseDirectory"] == "../worktrees"

    def test_drops_unknown_sections(self):
        merged = merge_config_dicts(default_config_dict(), {"extra": {"a": 1}})
        assert "extra" not in merged

    def test_non_object_section_passes_through(self):
        merged = merge_config_dicts(default_config_dict(), {"reset": "nope"})
        assert merged["reset"] == "nope"


class TestValidate:
    def test_defaults_are_valid(self):
        assert validate_config_dict(default_config_dict()) == []

    def test_not_an_object(self):
        assert validate_config_dict([1, 2]) == ["configuration must be a JSON object"]

    def test_section_not_an_object(self):
        assert validate_config_dict({"display": 5}) == ["display must be an object"]

    @pytest.mark.parametrize(
        "section,key,value,message",
        [
            ("worktree", "baseDirectory", 5, "worktree.baseDirectory must be a string"),
            ("worktree", "branchPrefix", "feature/", "worktree.branchPrefix must be an array of strings"),
            ("worktree", "autoCleanup", "yes", "worktree.autoCleanup must be a boolean"),
            ("worktree", "maxWorktrees", 0, "worktree.maxWorktrees must be a positive number"),
            ("worktree", "maxWorktrees", "5", "worktree.maxWorktrees must be a positive number"),
            ("worktree", "maxWorktrees", True, "worktree.maxWorktrees must be a positive number"),
            ("reset", "compressionLevel", 10, "reset.compressionLevel must be a number between 0 and 9"),
            ("reset", "compressionLevel", -1, "reset.compressionLevel must be a number between 0 and 9"),
            ("reset", "retentionDays", -1, "reset.retentionDays must be a non-negative number"),
            ("reset", "confirmDestructive", 1, "reset.confirmDestructive must be a boolean"),
            ("display", "colorOutput", "true", "display.colorOutput must be a boolean"),
        ],
    )
    def test_invalid_values(self, section, key, value, message):
        data = default_config_dict()
        data[section][key] = value
        assert validate_config_dict(data) == [message]

    def test_reports_every_violation(self):
        data = {"worktree": {"maxWorktrees": 0}, "reset": {"compressionLevel": 42}}
        errors = validate_config_dict(data)
        assert len(errors) == 2


# Expected shape per key: "str", "bool", "str_list" or an inclusive (low, high) int range
FIELD_KINDS = {
    "worktree.baseDirectory": "str",
    "worktree.branchPrefix": "str_list",
    "worktree.autoCleanup": "bool",
    "worktree.maxWorktrees": (1, None),
    "reset.archiveDirectory": "str",
    "reset.compressionLevel": (0, 9),
    "reset.retentionDays": (0, None),
    "reset.confirmDestructive": "bool",
    "display.colorOutput": "bool",
    "display.progressIndicators": "bool",
    "display.verboseLogging": "bool",
}

any_json_value = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-20, max_value=20),
    st.floats(allow_nan=False, allow_infinity=False),
    st.text(max_size=5),
    st.lists(st.text(max_size=3), max_size=3),
    st.lists(st.integers(), min_size=1, max_size=3),
)


def conforms(kind, value) -> bool:
    if kind == "str":
        return isinstance(value, str)
    if kind == "bool":
        return isinstance(value, bool)
    if kind == "str_list":
        return isinstance(value, list) and all(isinstance(v, str) for v in value)
    low, high = kind
    return type(value) is int and value >= low and (high is None or value <= high)


def nest(flat: dict) -> dict:
    data: dict = {}
    for dotted, value in flat.items():
        section, key = dotted.split(".")
        data.setdefault(section, {})[key] = value
    return data


def valid_value(kind):
    if kind == "str":
        return st.text(max_size=10)
    if kind == "bool":
        return st.booleans()
    if kind == "str_list":
        return st.lists(st.text(max_size=5), max_size=4)
    low, high = kind
    return st.integers(min_value=low, max_value=high if high is not None else 1000)


class TestValidateProperties:
    @given(st.fixed_dictionaries({dotted: any_json_value for dotted in FIELD_KINDS}))
    def test_flags_exactly_the_nonconforming_keys(self, flat):
        errors = validate_config_dict(nest(flat))
        flagged = {error.split(" ")[0] for error in errors}
        expected = {dotted for dotted, value in flat.items() if not conforms(FIELD_KINDS[dotted], value)}
        assert flagged == expected
        assert len(errors) == len(expected)

    @given(st.fixed_dictionaries({dotted: valid_value(kind) for dotted, kind in FIELD_KINDS.items()}))
    def test_conforming_values_pass(self, flat):
        assert validate_config_dict(nest(flat)) == []

    def test_every_rule_has_a_kind(self):
        assert set(FIELD_KINDS) == set(FIELD_RULES)


class TestConfigManager:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = ConfigManager(tmp_path).load()
        assert config == SkillsConfig()

    def test_loads_and_merges_file(self, tmp_path):
        write_config(tmp_path, {"reset": {"retentionDays": 7}})
        config = ConfigManager(tmp_path).load()
        assert config.reset.retention_days == 7
        assert config.reset.compression_level == 6

    def test_invalid_json(self, tmp_path):
        path = tmp_path / DEFAULT_CONFIG_PATH
        path.parent.mkdir(parents=True)
        path.write_text("{not json")
        with pytest.raises(ConfigError) as exc:
            ConfigManager(tmp_path).load()
        assert exc.value.code == "CONFIG_LOAD_ERROR"

    def test_non_object_json(self, tmp_path):
        write_config(tmp_path, [1, 2, 3])
        with pytest.raises(ConfigError) as exc:
            ConfigManager(tmp_path).load()
        assert exc.value.code == "CONFIG_LOAD_ERROR"

    def test_invalid_values_raise_with_suggestions(self, tmp_path):
        write_config(tmp_path, {"worktree": {"maxWorktrees": -2}})
        with pytest.raises(ConfigError) as exc:
            ConfigManager(tmp_path).load()
        assert exc.value.code == "INVALID_CONFIG"
        assert exc.value.suggestions == ["Fix: worktree.maxWorktrees must be a positive number"]

    def test_load_is_cached(self, tmp_path):
        manager = ConfigManager(tmp_path)
        path = write_config(tmp_path, {"display": {"verboseLogging": True}})
        first = manager.load()
        path.write_text(json.dumps({"display": {"verboseLogging": False}}))
        assert manager.load() is first
        manager.clear_cache()
        assert manager.load().display.verbose_logging is False

    def test_save_round_trip(self, tmp_path):
        manager = ConfigManager(tmp_path)
        config = SkillsConfig()
        config.worktree.max_worktrees = 4
        path = manager.save(config)
        assert json.loads(path.read_text())["worktree"]["maxWorktrees"] == 4
        manager.clear_cache()
        assert manager.load().worktree.max_worktrees == 4

    def test_save_config_helper(self, tmp_path):
        path = save_config(SkillsConfig(), tmp_path)
        assert path == tmp_path / DEFAULT_CONFIG_PATH
        assert load_config(tmp_path).reset.compression_level == 6

    def test_explicit_path(self, tmp_path):
        custom = tmp_path / "custom.json"
        custom.write_text(json.dumps({"display": {"colorOutput": False}}))
        assert load_config(tmp_path, custom).display.color_output is False


class TestGetConfigValue:
    def test_camel_and_snake_segments(self):
        config = SkillsConfig()
        assert get_config_value(config, "worktree.baseDirectory") == "../worktrees"
        assert get_config_value(config, "worktree.base_directory") == "../worktrees"

    def test_missing_key_returns_default(self):
        assert get_config_value(SkillsConfig(), "worktree.nope", default="x") == "x"
        assert get_config_value(SkillsConfig(), "reset.retentionDays.deeper") is None

    def test_plain_dict(self):
        assert get_config_value({"a": {"b": 1}}, "a.b") == 1
