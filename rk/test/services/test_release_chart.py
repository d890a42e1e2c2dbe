from __future__ import annotations

from pathlib import Path

import pytest

from rk.core.result import Err, Ok
from rk.output.console import MockConsole
from rk.platform.process import ProcessError
from rk.services.release import chart as chart_mod
from rk.services.release.chart import ChartPublisher, chart_repository, read_chart_name
from rk.services.release.model import PinnedCommit, PinnedSource, VersionPair

REPOSITORY = "oci://ghcr.io/acme/charts"
SHA = "3f2a9c1e" + "0" * 32
VERSIONS = VersionPair(app_version="1.5.0", chart_version="0.3.3")


class FakeHelm:
    def __init__(self, *, published: set[str] | None = None, push_fails: bool = False) -> None:
        self.published = published or set()
        self.push_fails = push_fails
        self.calls: list[list[str]] = []

    def __call__(self, cmd: list[str], *, cwd: Path, timeout: float | None = None):
        del cwd, timeout
        self.calls.append(cmd)
        match cmd[1]:
            case "show":
                ref = f"{cmd[3]}:{cmd[cmd.index('--version') + 1]}"
                if ref in self.published:
                    return Ok("name: magicentry\n")
                return Err(ProcessError(tuple(cmd), 1, "", f"Error: {ref}: not found"))
            case "package":
                dest = Path(cmd[cmd.index("--destination") + 1])
                version = cmd[cmd.index("--version") + 1]
                (dest / f"magicentry-{version}.tgz").write_bytes(b"tgz")
                return Ok("Successfully packaged chart\n")
            case "push":
                if self.push_fails:
                    return Err(ProcessError(tuple(cmd), 1, "", "denied: permission_denied"))
                return Ok("Pushed\n")
        raise AssertionError(f"unexpected helm call: {cmd}")

    def actions(self) -> list[str]:
        return [c[1] for c in self.calls]


@pytest.fixture
def source(project_files: Path) -> PinnedSource:
    return PinnedSource(
        commit=PinnedCommit(sha=SHA, branch="main", on_mainline=True), root=project_files
    )


@pytest.fixture
def helm_installed(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(chart_mod.shutil, "which", lambda name: f"/usr/bin/{name}")


def _publisher() -> ChartPublisher:
    return ChartPublisher(
        repository=REPOSITORY, chart_dir="chart", console=MockConsole(), dry_run=False
    )


def test_chart_repository_is_lowercase() -> None:
    assert chart_repository(registry="ghcr.io", owner="Acme", namespace="charts") == REPOSITORY


def test_read_chart_name(project_files: Path) -> None:
    assert read_chart_name(project_files / "chart" / "Chart.yaml") == Ok("magicentry")


def test_read_chart_name_ignores_nested_keys(tmp_path: Path) -> None:
    path = tmp_path / "Chart.yaml"
    path.write_text(
        "apiVersion: v2\nmaintainers:\n  - name: ops\nname: 'magicentry' # chart\n",
        encoding="utf-8",
    )
    assert read_chart_name(path) == Ok("magicentry")


def test_force_publish_packages_and_pushes(
    monkeypatch: pytest.MonkeyPatch, source: PinnedSource, helm_installed: None
) -> None:
    fake = FakeHelm(published={f"{REPOSITORY}/magicentry:0.3.3"})
    monkeypatch.setattr(chart_mod, "run_process", fake)

    result = _publisher().publish(source, VERSIONS, force=True)

    assert isinstance(result, Ok)
    assert result.value.reference == f"{REPOSITORY}/magicentry:0.3.3"
    assert result.value.app_version == "1.5.0"
    assert result.value.commit_sha == SHA
    assert fake.actions() == ["package", "push"]
    package = fake.calls[0]
    assert package[package.index("--app-version") + 1] == "1.5.0"
    assert fake.calls[1][-1] == REPOSITORY


def test_existing_version_without_force(
    monkeypatch: pytest.MonkeyPatch, source: PinnedSource, helm_installed: None
) -> None:
    fake = FakeHelm(published={f"{REPOSITORY}/magicentry:0.3.3"})
    monkeypatch.setattr(chart_mod, "run_process", fake)

    result = _publisher().publish(source, VERSIONS, force=False)

    assert isinstance(result, Err)
    assert result.error.kind == "chart_exists"
    assert fake.actions() == ["show"]


def test_new_version_without_force(
    monkeypatch: pytest.MonkeyPatch, source: PinnedSource, helm_installed: None
) -> None:
    fake = FakeHelm()
    monkeypatch.setattr(chart_mod, "run_process", fake)

    result = _publisher().publish(source, VERSIONS, force=False)

    assert isinstance(result, Ok)
    assert fake.actions() == ["show", "package", "push"]


def test_push_failure(
    monkeypatch: pytest.MonkeyPatch, source: PinnedSource, helm_installed: None
) -> None:
    monkeypatch.setattr(chart_mod, "run_process", FakeHelm(push_fails=True))

    result = _publisher().publish(source, VERSIONS, force=True)

    assert isinstance(result, Err)
    assert result.error.kind == "push_failed"


def test_helm_missing(monkeypatch: pytest.MonkeyPatch, source: PinnedSource) -> None:
    monkeypatch.setattr(chart_mod.shutil, "which", lambda name: None)

    result = _publisher().publish(source, VERSIONS, force=True)

    assert isinstance(result, Err)
    assert result.error.kind == "tool_missing"
