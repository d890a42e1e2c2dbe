from __future__ import annotations

import json
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

import rk.cli.commands.release_cmd as release_cmd
from rk import __version__
from rk.cli.app import app
from rk.cli.context import CLIContext
from rk.core.errors import ErrorCode
from rk.core.workspace import ROOT_ENV_VAR, Project
from rk.output.console import MockConsole
from rk.services.release.config import load_release_config
from rk.test._repo import GitFixture

runner = CliRunner()


def _ctx(root: Path, console: MockConsole) -> CLIContext:
    (root / "releasekit.toml").write_text(
        '[project]\nrepo = "Acme/magicentry"\nproduct = "MagicEntry"\n', encoding="utf-8"
    )
    cfg = load_release_config(repo_root=root).unwrap()
    return CLIContext(project=Project(root=root), config=cfg, console=console)


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.output.strip() == __version__


def test_tags_on_mainline() -> None:
    result = runner.invoke(app, ["release", "tags", "--sha", "abc1234ffff", "--version", "2.1.0"])
    assert result.exit_code == 0
    assert result.output.splitlines() == ["latest", "sha-abc1234", "v2.1.0"]


def test_tags_off_mainline_with_image() -> None:
    result = runner.invoke(
        app,
        [
            "release",
            "tags",
            "--sha",
            "ABC1234",
            "--version",
            "v2.1.0",
            "--no-mainline",
            "--image",
            "ghcr.io/acme/magicentry",
        ],
    )
    assert result.exit_code == 0
    assert result.output.splitlines() == ["ghcr.io/acme/magicentry:sha-abc1234"]


def test_tags_rejects_bad_input() -> None:
    bad_sha = runner.invoke(app, ["release", "tags", "--sha", "xyz", "--version", "2.1.0"])
    assert bad_sha.exit_code == int(ErrorCode.USER_ERROR)

    bad_version = runner.invoke(app, ["release", "tags", "--sha", "abc1234", "--version", "2.1"])
    assert bad_version.exit_code == int(ErrorCode.USER_ERROR)


def test_repo_option_must_be_a_project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(ROOT_ENV_VAR, str(tmp_path))
    result = runner.invoke(
        app, ["--repo", str(tmp_path), "release", "tags", "--sha", "abc1234", "--version", "1.0.0"]
    )
    assert result.exit_code == int(ErrorCode.ENV_ERROR)


def test_invalid_bump_level() -> None:
    with pytest.raises(typer.Exit) as exc:
        release_cmd.plan_cmd(bump="huge")
    assert exc.value.exit_code == int(ErrorCode.USER_ERROR)


def test_plan_prints_versions_and_references(
    project_files: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    console = MockConsole()
    monkeypatch.setattr(release_cmd, "build_context", lambda: _ctx(project_files, console))

    release_cmd.plan_cmd(bump="minor")

    assert "app: 1.4.9 -> 1.5.0" in console.messages
    assert "chart: 0.3.2 -> 1.4.10" in console.messages
    assert "release: v1.5.0" in console.messages
    assert "image: ghcr.io/acme/magicentry:v1.5.0" in console.messages
    assert "chart: oci://ghcr.io/acme/charts/magicentry:1.4.10" in console.messages


def test_dry_run_changes_nothing_and_writes_report(
    project_files: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    console = MockConsole()
    monkeypatch.setattr(release_cmd, "build_context", lambda: _ctx(project_files, console))
    before = (project_files / "Cargo.toml").read_text(encoding="utf-8")

    release_cmd.run_cmd(bump="patch", dry_run=True, yes=False)

    assert (project_files / "Cargo.toml").read_text(encoding="utf-8") == before
    reports = list((project_files / ".releasekit" / "runs").glob("*.json"))
    assert len(reports) == 1
    data = json.loads(reports[0].read_text(encoding="utf-8"))
    assert data["state"] == "completed"
    assert data["dry_run"] is True
    assert data["versions"] == {"app_version": "1.4.10", "chart_version": "1.4.10", "tag": "v1.4.10"}
    assert {name: b["state"] for name, b in data["branches"].items()} == {
        "release": "succeeded",
        "image": "succeeded",
        "chart": "succeeded",
    }
    assert console.find("gh release create v1.4.10")
    assert console.find("helm push")
    assert not console.has_error()


def test_run_requires_repo_slug(project_files: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    console = MockConsole()
    cfg = load_release_config(repo_root=project_files).unwrap()
    ctx = CLIContext(project=Project(root=project_files), config=cfg, console=console)
    monkeypatch.setattr(release_cmd, "build_context", lambda: ctx)

    with pytest.raises(typer.Exit) as exc:
        release_cmd.run_cmd(bump="patch", dry_run=True, yes=True)

    assert exc.value.exit_code == int(ErrorCode.ENV_ERROR)
    assert console.find("missing [project] repo")


def test_run_aborts_without_confirmation(
    git_project: GitFixture, monkeypatch: pytest.MonkeyPatch
) -> None:
    console = MockConsole()
    monkeypatch.setattr(release_cmd, "build_context", lambda: _ctx(git_project.work, console))
    prompts: list[str] = []

    def decline(text: str, **kwargs: object) -> bool:
        del kwargs
        prompts.append(text)
        return False

    monkeypatch.setattr(release_cmd.typer, "confirm", decline)

    with pytest.raises(typer.Exit) as exc:
        release_cmd.run_cmd(bump="patch", dry_run=False, yes=False)

    assert exc.value.exit_code == int(ErrorCode.USER_ERROR)
    assert prompts == ["Release v1.4.10 from main?"]
    assert not (git_project.work / ".releasekit").exists()
    assert git_project.head() == git_project.origin_head()
