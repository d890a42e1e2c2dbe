from __future__ import annotations

from pathlib import Path

from rk.core.result import Err, Ok
from rk.services.release.model import VersionPair
from rk.services.release.version_store import (
    VersionStore,
    cargo_package_field,
    plan_next,
    version_files,
)


def _store(root: Path) -> VersionStore:
    return VersionStore(version_files(repo_root=root, cargo_toml="Cargo.toml", chart_dir="chart"))


def test_read_current(project_files: Path) -> None:
    assert _store(project_files).read_current() == Ok(
        VersionPair(app_version="1.4.9", chart_version="0.3.2")
    )


def test_tracked_files_include_lock_when_present(project_files: Path) -> None:
    store = _store(project_files)
    assert [p.name for p in store.tracked_files()] == ["Cargo.toml", "Cargo.lock", "Chart.yaml"]

    (project_files / "Cargo.lock").unlink()
    assert [p.name for p in store.tracked_files()] == ["Cargo.toml", "Chart.yaml"]


def test_write_next_rewrites_every_location(project_files: Path) -> None:
    store = _store(project_files)
    pair = VersionPair(app_version="1.5.0", chart_version="0.3.3")

    changed = store.write_next(pair)

    assert isinstance(changed, Ok)
    assert [p.name for p in changed.value] == ["Cargo.toml", "Cargo.lock", "Chart.yaml"]
    cargo = (project_files / "Cargo.toml").read_text(encoding="utf-8")
    assert 'version = "1.5.0"' in cargo
    # dependency versions are left alone
    assert 'serde = { version = "1.0.200" }' in cargo
    lock = (project_files / "Cargo.lock").read_text(encoding="utf-8")
    assert 'name = "magicentry"\nversion = "1.5.0"' in lock
    assert 'name = "serde"\nversion = "1.0.200"' in lock
    chart = (project_files / "chart" / "Chart.yaml").read_text(encoding="utf-8")
    assert "version: 0.3.3\n" in chart
    assert 'appVersion: "1.5.0"\n' in chart
    assert store.read_current() == Ok(pair)


def test_write_next_is_idempotent(project_files: Path) -> None:
    store = _store(project_files)
    pair = VersionPair(app_version="1.5.0", chart_version="0.3.3")
    assert isinstance(store.write_next(pair), Ok)
    snapshot = {p: p.read_bytes() for p in store.tracked_files()}

    again = store.write_next(pair)

    assert again == Ok([])
    assert {p: p.read_bytes() for p in store.tracked_files()} == snapshot


def test_missing_chart_file(project_files: Path) -> None:
    (project_files / "chart" / "Chart.yaml").unlink()
    result = _store(project_files).read_current()
    assert isinstance(result, Err)
    assert result.error.kind == "version_not_found"


def test_missing_package_version(project_files: Path) -> None:
    (project_files / "Cargo.toml").write_text(
        '[workspace]\nmembers = ["a"]\n\n[dependencies]\nversion = "9.9.9"\n', encoding="utf-8"
    )
    result = _store(project_files).read_current()
    assert isinstance(result, Err)
    assert result.error.kind == "version_not_found"


def test_malformed_chart_version(project_files: Path) -> None:
    path = project_files / "chart" / "Chart.yaml"
    path.write_text("apiVersion: v2\nname: magicentry\nversion: 0.3\n", encoding="utf-8")
    result = _store(project_files).read_current()
    assert isinstance(result, Err)
    assert result.error.kind == "version_not_found"
    assert "0.3" in result.error.message


def test_quoted_chart_version_keeps_quotes(project_files: Path) -> None:
    path = project_files / "chart" / "Chart.yaml"
    path.write_text("name: magicentry\nversion: '0.3.2' # chart\n", encoding="utf-8")
    store = _store(project_files)
    assert store.read_current() == Ok(VersionPair(app_version="1.4.9", chart_version="0.3.2"))

    assert isinstance(store.write_next(VersionPair("1.4.10", "0.3.3")), Ok)
    assert path.read_text(encoding="utf-8") == "name: magicentry\nversion: '0.3.3' # chart\n"


def test_plan_next_chart_always_moves_at_patch() -> None:
    current = VersionPair(app_version="1.4.9", chart_version="0.3.2")
    assert plan_next(current=current, level="major", chart_bump_from="chart") == Ok(
        VersionPair(app_version="2.0.0", chart_version="0.3.3")
    )
    assert plan_next(current=current, level="minor", chart_bump_from="app") == Ok(
        VersionPair(app_version="1.5.0", chart_version="1.4.10")
    )


def test_cargo_package_field_ignores_other_tables() -> None:
    text = '[dependencies]\nname = "dep"\n\n[package]\nname = "magicentry"\n'
    assert cargo_package_field(text, "name") == "magicentry"
    assert cargo_package_field(text, "version") is None
