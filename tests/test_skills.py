"""Tests for frontmatter parsing and the skill catalog."""

import pytest

from earsflow.core.errors import SkillNotFoundError
from earsflow.core.skills import FrontmatterError, SkillCatalog, is_skill_directory, parse_frontmatter
from tests.conftest import write_skill


class TestParseFrontmatter:
    def test_splits_frontmatter_and_body(self):
        data, body = parse_frontmatter("---\nname: a\nversion: 1.0.0\n---\n# Title\n")
        assert data == {"name": "a", "version": "1.0.0"}
        assert body == "# Title\n"

    def test_crlf_line_endings(self):
        data, body = parse_frontmatter("---\r\nname: a\r\n---\r\nbody\r\n")
        assert data == {"name": "a"}
        assert body == "body\n"

    def test_no_frontmatter(self):
        data, body = parse_frontmatter("# Just markdown\n")
        assert data is None
        assert body == "# Just markdown\n"

    def test_empty_block_is_empty_mapping(self):
        data, body = parse_frontmatter("---\n\n---\nbody")
        assert data == {}
        assert body == "body"

    def test_malformed_yaml_lenient(self):
        data, _ = parse_frontmatter("---\nname: [unclosed\n---\nbody")
        assert data is None

    def test_malformed_yaml_strict(self):
        with pytest.raises(FrontmatterError, match="Invalid YAML frontmatter"):
            parse_frontmatter("---\nname: [unclosed\n---\nbody", strict=True)

    def test_non_mapping_strict(self):
        with pytest.raises(FrontmatterError, match="mapping"):
            parse_frontmatter("---\n- a\n- b\n---\nbody", strict=True)


@pytest.mark.parametrize(
    "name,expected",
    [("git-workflow", True), (".hidden", False), ("_templates", False), ("shared", False)],
)
def test_is_skill_directory(tmp_path, name, expected):
    (tmp_path / name).mkdir()
    assert is_skill_directory(tmp_path / name) is expected


def test_is_skill_directory_rejects_files(tmp_path):
    (tmp_path / "file.md").write_text("x")
    assert is_skill_directory(tmp_path / "file.md") is False


class TestSkillCatalog:
    def test_discovers_skills(self, skills_dir):
        catalog = SkillCatalog(skills_dir)
        assert catalog.names() == ["bug-fix", "spec-forge"]
        meta = catalog.get("spec-forge")
        assert meta.version == "1.0.0"
        assert meta.directory == "spec-forge"
        assert meta.description.startswith("Guides requirement capture")

    def test_skips_invalid_entries(self, skills_dir):
        write_skill(skills_dir, "no-frontmatter", "# Nothing here\n")
        write_skill(skills_dir, "shared")
        (skills_dir / "empty-dir").mkdir()
        assert SkillCatalog(skills_dir).names() == ["bug-fix", "spec-forge"]

    def test_missing_directory_is_empty(self, tmp_path):
        assert SkillCatalog(tmp_path / "missing").names() == []

    def test_name_falls_back_to_directory(self, skills_dir):
        write_skill(skills_dir, "nameless", "---\ndescription: d\n---\nbody")
        assert SkillCatalog(skills_dir).get("nameless").name == "nameless"

    def test_extra_frontmatter_kept(self, skills_dir):
        write_skill(skills_dir, "extra", "---\nname: extra\ndescription: d\nphase: planning\n---\n")
        assert SkillCatalog(skills_dir).get("extra").extra == {"phase": "planning"}

    def test_get_by_frontmatter_name(self, skills_dir):
        write_skill(skills_dir, "dir-name", "---\nname: other-name\ndescription: d\n---\n")
        assert SkillCatalog(skills_dir).get("other-name").directory == "dir-name"

    def test_get_unknown_raises(self, skills_dir):
        with pytest.raises(SkillNotFoundError) as exc:
            SkillCatalog(skills_dir).get("nope")
        assert exc.value.code == "SKILL_NOT_FOUND"
        assert exc.value.context["name"] == "nope"

    def test_load_instructions_returns_body(self, skills_dir):
        body = SkillCatalog(skills_dir).load_instructions("bug-fix")
        assert body.startswith("# Bug Fix")
        assert "description:" not in body

    def test_summaries_and_token_estimate(self, skills_dir):
        catalog = SkillCatalog(skills_dir)
        lines = [m.summary_line() for m in catalog.summaries()]
        assert lines[0].startswith("bug-fix: ")
        assert catalog.estimate_metadata_tokens() > 0
