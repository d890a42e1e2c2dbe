from __future__ import annotations

import os
import shutil
from pathlib import Path

import pytest

from rk.test._repo import CARGO_LOCK, CARGO_TOML, CHART_YAML, GitFixture, git


@pytest.fixture
def git_identity(monkeypatch: pytest.MonkeyPatch) -> None:
    if shutil.which("git") is None:
        pytest.skip("git not installed")
    for key, value in {
        "GIT_AUTHOR_NAME": "Release Bot",
        "GIT_AUTHOR_EMAIL": "release@example.invalid",
        "GIT_COMMITTER_NAME": "Release Bot",
        "GIT_COMMITTER_EMAIL": "release@example.invalid",
        "GIT_CONFIG_NOSYSTEM": "1",
        "GIT_CONFIG_GLOBAL": os.devnull,
    }.items():
        monkeypatch.setenv(key, value)


@pytest.fixture
def project_files(tmp_path: Path) -> Path:
    """A crate with a chart, not under version control."""
    root = tmp_path / "project"
    (root / "chart").mkdir(parents=True)
    (root / "Cargo.toml").write_text(CARGO_TOML, encoding="utf-8")
    (root / "Cargo.lock").write_text(CARGO_LOCK, encoding="utf-8")
    (root / "chart" / "Chart.yaml").write_text(CHART_YAML, encoding="utf-8")
    return root


@pytest.fixture
def git_project(tmp_path: Path, project_files: Path, git_identity: None) -> GitFixture:
    """``project_files`` committed on main and pushed to a bare ``origin``."""
    origin = tmp_path / "origin.git"
    git(tmp_path, "init", "--bare", "--initial-branch=main", str(origin))

    work = project_files
    git(work, "init", "--initial-branch=main")
    git(work, "remote", "add", "origin", str(origin))
    (work / ".gitignore").write_text(".releasekit/\n", encoding="utf-8")
    git(work, "add", "-A")
    git(work, "commit", "-m", "initial")
    git(work, "push", "origin", "main")
    git(work, "branch", "--set-upstream-to=origin/main", "main")
    return GitFixture(work=work, origin=origin)


