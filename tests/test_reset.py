"""Tests for project reset, archiving and restore."""

import json
from datetime import date, datetime, timedelta, timezone

import pytest
from filelock import FileLock, Timeout

from earsflow.core.archive import MANIFEST
from earsflow.core.config import SkillsConfig
from earsflow.core.errors import ArchiveError, ResetError
from earsflow.core.models import ResetLevel
from earsflow.core.reset import ResetManager, parse_level


@pytest.fixture
def manager(project) -> ResetManager:
    return ResetManager(project)


def ai(project):
    return project / ".ai"


def archive_dirs(manager: ResetManager) -> list[str]:
    return sorted(p.name for p in manager.archive_dir.iterdir() if p.is_dir())


class TestParseLevel:
    @pytest.mark.parametrize("level", ["light", "medium", "full", "custom"])
    def test_valid(self, level):
        assert parse_level(level) is ResetLevel(level)

    def test_invalid(self):
        with pytest.raises(ResetError) as exc:
            parse_level("nuclear")
        assert exc.value.code == "INVALID_RESET_LEVEL"
        assert "Valid levels: light, medium, full, custom" in exc.value.suggestions


class TestPerformReset:
    def test_requires_ai_directory(self, tmp_path):
        with pytest.raises(ResetError) as exc:
            ResetManager(tmp_path / "elsewhere").perform_reset("light")
        assert exc.value.code == "INVALID_REPOSITORY"

    def test_light_clears_docs_only(self, manager, project):
        lessons_before = (ai(project) / "memory" / "lessons.md").read_text()
        result = manager.perform_reset("light")

        assert result.level is ResetLevel.LIGHT
        assert result.docs_cleared
        assert not result.memory_reset
        assert result.errors == []
        assert result.archive.endswith("-light-reset")
        assert not (ai(project) / "docs" / "plans" / "feature.md").exists()
        assert not (ai(project) / "docs" / "tasks" / "nested" / "task-1.md").exists()
        assert (ai(project) / "docs" / "plans" / "README.md").exists()
        assert (ai(project) / "memory" / "lessons.md").read_text() == lessons_before

    def test_medium_resets_memory_only(self, manager, project):
        result = manager.perform_reset("medium")
        assert result.memory_reset
        assert not result.docs_cleared
        today = date.today().isoformat()
        assert (ai(project) / "memory" / "lessons.md").read_text() == f"# Lessons Learned\n\nLast reset: {today}\n"
        decisions = (ai(project) / "memory" / "decisions.md").read_text()
        assert decisions.startswith("# Architecture Decisions")
        assert f"Last reset: {today}" in decisions
        assert (ai(project) / "docs" / "plans" / "feature.md").exists()

    def test_full_resets_both(self, manager, project):
        result = manager.perform_reset(ResetLevel.FULL)
        assert result.memory_reset
        assert result.docs_cleared
        assert not (ai(project) / "docs" / "plans" / "feature.md").exists()

    def test_archive_holds_previous_state(self, manager, project):
        original = (ai(project) / "memory" / "lessons.md").read_text()
        result = manager.perform_reset("full")
        archive = manager.archive_dir / result.archive
        meta = manager.archiver.read_metadata(archive)
        assert meta.operation == "full"
        assert meta.extra["reset_level"] == "full"
        assert meta.contents.files.total == 4

        target = project / "restored"
        manager.archiver.extract(archive, target)
        assert (target / ".ai" / "memory" / "lessons.md").read_text() == original

    def test_no_archive(self, manager):
        result = manager.perform_reset("light", no_archive=True)
        assert result.archive is None
        assert archive_dirs(manager) == []

    def test_custom_paths(self, manager, project):
        (project / "scratch.txt").write_text("x")
        (project / "build" / "out").mkdir(parents=True)
        result = manager.perform_reset("custom", custom_paths=["scratch.txt", "build", "missing.txt"])
        assert result.files_processed == 2
        assert not (project / "scratch.txt").exists()
        assert not (project / "build").exists()
        assert not result.memory_reset
        assert not result.docs_cleared

    def test_custom_path_outside_project_rejected(self, manager):
        with pytest.raises(ResetError) as exc:
            manager.perform_reset("custom", custom_paths=["../outside.txt"])
        assert exc.value.code == "INVALID_INPUT"
        assert not manager.archive_dir.exists() or archive_dirs(manager) == []

    def test_clear_archive_keeps_new_archive(self, manager):
        manager.perform_reset("light")
        manager.perform_reset("light")
        result = manager.perform_reset("full", clear_archive=True)
        assert result.archives_removed == 2
        assert (manager.archive_dir / result.archive).is_dir()
        assert archive_dirs(manager) == [result.archive]

    def test_archive_limit_zero_keeps_new_archive(self, manager):
        manager.perform_reset("light")
        result = manager.perform_reset("light", archive_limit=0)
        assert result.archives_removed == 1
        assert archive_dirs(manager) == [result.archive]

    def test_archive_limit(self, manager):
        manager.perform_reset("light")
        manager.perform_reset("light")
        result = manager.perform_reset("light", archive_limit=1)
        assert result.archives_removed == 2
        assert archive_dirs(manager) == [result.archive]

    def test_locked(self, manager, mocker):
        mocker.patch.object(FileLock, "acquire", side_effect=Timeout("lock"))
        with pytest.raises(ResetError) as exc:
            manager.perform_reset("light")
        assert exc.value.code == "RESET_LOCKED"

    def test_progress_callback(self, project):
        phases = []
        ResetManager(project, progress=lambda p, done, total: phases.append(p)).perform_reset("light")
        assert "counting" in phases
        assert phases[-1] == "complete"

    def test_compression_from_config(self, project):
        config = SkillsConfig.model_validate({"reset": {"compressionLevel": 0}})
        manager = ResetManager(project, config)
        result = manager.perform_reset("light")
        assert (manager.archive_dir / result.archive / "memory" / "lessons.md").is_file()

    def test_clear_docs_collects_errors(self, manager, project, mocker):
        mocker.patch("pathlib.Path.unlink", side_effect=PermissionError("denied"))
        errors = ResetManager.clear_docs(ai(project) / "docs" / "plans")
        assert len(errors) == 1
        assert errors[0].startswith("Failed to clear")


class TestArchives:
    def test_create_archive(self, manager):
        summary = manager.create_archive("before-refactor", ticket="ABC-1")
        assert summary.name.endswith("-before-refactor")
        assert summary.valid
        assert summary.total_files == 4
        assert summary.operation == "archive"
        manifest = json.loads((manager.archive_dir / summary.name / MANIFEST).read_text())
        assert manifest["extra"]["ticket"] == "ABC-1"
        assert manifest["extra"]["original_name"] == "before-refactor"
        assert manifest["source"]["git_commit"] is None

    @pytest.mark.parametrize("name", ["x/../../../../escaped", "../escaped", "a/b", "a\\b", ""])
    def test_create_archive_rejects_path_names(self, manager, project, name):
        with pytest.raises(ArchiveError) as exc:
            manager.create_archive(name)
        assert exc.value.code == "INVALID_INPUT"
        assert not (project.parent / "escaped").exists()
        assert not manager.archive_dir.exists() or archive_dirs(manager) == []

    def test_archive_records_git_source(self, repo_with_git):
        summary = ResetManager(repo_with_git).create_archive("snapshot")
        meta = ResetManager(repo_with_git).archiver.read_metadata(summary.path)
        assert meta.source.git_branch == "main"
        assert len(meta.source.git_commit) == 40

    def test_list_archives_newest_first(self, manager):
        first = manager.create_archive("one")
        second = manager.create_archive("two")
        (manager.archive_dir / "junk").mkdir()
        archives = manager.list_archives()
        assert [a.name for a in archives[:2]] == [second.name, first.name]
        junk = archives[-1]
        assert junk.name == "junk"
        assert not junk.valid
        assert junk.error

    def test_list_archives_without_directory(self, tmp_path):
        (tmp_path / ".ai").mkdir()
        assert ResetManager(tmp_path).list_archives() == []

    def test_restore(self, manager, project):
        lessons = ai(project) / "memory" / "lessons.md"
        original = lessons.read_text()
        summary = manager.create_archive("checkpoint")
        lessons.write_text("changed")

        backup = manager.restore(summary.name)
        assert lessons.read_text() == original
        assert backup.name.endswith("-pre-restore")
        assert backup.operation == "restore"
        meta = manager.archiver.read_metadata(backup.path)
        assert meta.extra["restoration_source"] == summary.name
        assert len(manager.list_archives()) == 2

    @pytest.mark.parametrize("name", ["../escape", "/etc", "."])
    def test_restore_rejects_bad_names(self, manager, name):
        with pytest.raises(ArchiveError) as exc:
            manager.restore(name)
        assert exc.value.code == "INVALID_INPUT"

    def test_restore_invalid_archive(self, manager):
        with pytest.raises(ArchiveError) as exc:
            manager.restore("does-not-exist")
        assert exc.value.code == "INVALID_ARCHIVE"

    def test_restore_malformed_manifest(self, manager):
        broken = manager.archive_dir / "broken"
        broken.mkdir(parents=True)
        (broken / MANIFEST).write_text(
            json.dumps({"version": "1.0.0", "created": "2026-01-01T00:00:00Z", "operation": "full", "contents": "x"})
        )
        with pytest.raises(ArchiveError) as exc:
            manager.restore("broken")
        assert exc.value.code == "INVALID_ARCHIVE"

    def test_prune_expired(self, manager):
        summary = manager.create_archive("old")
        later = datetime.now(timezone.utc) + timedelta(days=31)
        assert manager.prune_expired(now=later) == [summary.name]
        assert manager.list_archives() == []

    def test_prune_keeps_recent(self, manager):
        manager.create_archive("recent")
        assert manager.prune_expired() == []
        assert len(manager.list_archives()) == 1

    def test_zero_retention_keeps_everything(self, project):
        config = SkillsConfig.model_validate({"reset": {"retentionDays": 0}})
        manager = ResetManager(project, config)
        manager.create_archive("forever")
        far_future = datetime.now(timezone.utc) + timedelta(days=3650)
        assert manager.prune_expired(now=far_future) == []
