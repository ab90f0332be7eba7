# conftest.py - Shared pytest fixtures for all tests
"""Shared pytest fixtures for the earsflow test suite.

Provides:
- A temporary project with a populated .ai directory
- Skill document helpers
- A real git repository for worktree and archive source tests
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

VALID_SKILL = """---
name: {name}
description: Guides requirement capture in EARS format. Use this skill when starting a feature.
version: 1.0.0
---

# {title}

## Overview

Capture requirements.

## Usage

Run it.
"""

LESSONS = """# Lessons Learned

## Testing

- Always run the test suite before merging
- Mock subprocess calls in unit tests

## Git

- Rebase feature branches on main before review
"""

DECISIONS = """# Architecture Decisions

## Storage

- Archives are plain directories with a JSON manifest
"""


def write_skill(skills_dir: Path, name: str, content: str | None = None) -> Path:
    """Create skills_dir/name/SKILL.md and return the skill directory."""
    skill_dir = skills_dir / name
    skill_dir.mkdir(parents=True, exist_ok=True)
    if content is None:
        content = VALID_SKILL.format(name=name, title=name.replace("-", " ").title())
    (skill_dir / "SKILL.md").write_text(content)
    return skill_dir


# =============================================================================
# Project Fixtures
# =============================================================================


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Create a project with a populated .ai directory.

    Creates:
        - .ai/memory/lessons.md and decisions.md
        - .ai/docs/plans/feature.md, .ai/docs/plans/README.md
        - .ai/docs/tasks/nested/task-1.md
        - .ai/skills/spec-forge and bug-fix skills
        - .ai/templates/lessons.template.md

    Returns:
        Path to the project root.
    """
    ai = tmp_path / ".ai"
    (ai / "memory").mkdir(parents=True)
    (ai / "memory" / "lessons.md").write_text(LESSONS)
    (ai / "memory" / "decisions.md").write_text(DECISIONS)

    plans = ai / "docs" / "plans"
    plans.mkdir(parents=True)
    (plans / "feature.md").write_text("# Feature plan\n")
    (plans / "README.md").write_text("# Plans\n")
    tasks = ai / "docs" / "tasks" / "nested"
    tasks.mkdir(parents=True)
    (tasks / "task-1.md").write_text("# Task 1\n")

    write_skill(ai / "skills", "spec-forge")
    write_skill(ai / "skills", "bug-fix")

    (ai / "templates").mkdir()
    (ai / "templates" / "lessons.template.md").write_text(
        "# Lessons Learned\n\nLast reset: [DATE]\n"
    )
    return tmp_path


@pytest.fixture
def skills_dir(project: Path) -> Path:
    return project / ".ai" / "skills"


def _git(cwd: Path, *args: str) -> None:
    subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True)


@pytest.fixture
def repo_with_git(project: Path) -> Path:
    """Initialize the project as a git repository with one commit on main.

    WARNING: Runs actual git commands. Only use when you need real git
    operations (worktrees, branches, commits).
    """
    if shutil.which("git") is None:
        pytest.skip("Git not available")
    try:
        _git(project, "init")
        _git(project, "config", "user.email", "test@example.com")
        _git(project, "config", "user.name", "Test User")
        _git(project, "symbolic-ref", "HEAD", "refs/heads/main")
        _git(project, "add", ".")
        _git(project, "commit", "-m", "Initial commit")
    except subprocess.CalledProcessError:
        pytest.skip("Git not available")
    return project
