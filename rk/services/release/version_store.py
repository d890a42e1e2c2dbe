from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from rk.core.result import Err, Ok, Result
from rk.platform.files import atomic_write_text
from rk.services.release.errors import ReleaseError
from rk.services.release.model import BumpLevel, ChartBumpBase, VersionPair
from rk.services.release.semver import bump_version, parse_version

_TOML_HEADER_RE = re.compile(r"(?m)^\s*\[")
_CHART_VERSION_RE = re.compile(r"(?m)^version:[ \t]*([^\s#]+)")
_CHART_APP_VERSION_RE = re.compile(r"(?m)^appVersion:[ \t]*([^\s#]+)")


@dataclass(frozen=True, slots=True)
class VersionFiles:
    cargo_toml: Path
    cargo_lock: Path
    chart_yaml: Path


def version_files(*, repo_root: Path, cargo_toml: str, chart_dir: str) -> VersionFiles:
    manifest = repo_root / cargo_toml
    return VersionFiles(
        cargo_toml=manifest,
        cargo_lock=manifest.with_name("Cargo.lock"),
        chart_yaml=repo_root / chart_dir / "Chart.yaml",
    )


def plan_next(
    *,
    current: VersionPair,
    level: BumpLevel,
    chart_bump_from: ChartBumpBase,
) -> Result[VersionPair, ReleaseError]:
    """Compute the next version pair.

    The app version moves at the requested level. The chart version always
    moves at patch level, from the current app version or, with
    ``chart_bump_from="chart"``, from its own current value.
    """
    app = bump_version(current.app_version, level)
    if isinstance(app, Err):
        return app

    base = current.chart_version if chart_bump_from == "chart" else current.app_version
    chart = bump_version(base, "patch")
    if isinstance(chart, Err):
        return chart

    return Ok(VersionPair(app_version=app.value, chart_version=chart.value))


class VersionStore:
    """Reads and rewrites the two authoritative version fields.

    The app version lives in the ``[package]`` table of Cargo.toml, the chart
    version in Chart.yaml. Chart.yaml ``appVersion`` and the root package
    entry of Cargo.lock are followers: they are rewritten alongside but never
    read as a source of truth.
    """

    def __init__(self, files: VersionFiles) -> None:
        self.files = files

    def tracked_files(self) -> list[Path]:
        paths = [self.files.cargo_toml]
        if self.files.cargo_lock.is_file():
            paths.append(self.files.cargo_lock)
        paths.append(self.files.chart_yaml)
        return paths

    def read_current(self) -> Result[VersionPair, ReleaseError]:
        cargo = _read_text(self.files.cargo_toml)
        if isinstance(cargo, Err):
            return cargo
        app = cargo_package_field(cargo.value, "version")
        if app is None:
            return Err(
                ReleaseError(
                    kind="version_not_found",
                    message=f"missing [package] version in {self.files.cargo_toml.name}",
                    hint=str(self.files.cargo_toml),
                )
            )

        chart_text = _read_text(self.files.chart_yaml)
        if isinstance(chart_text, Err):
            return chart_text
        m = _CHART_VERSION_RE.search(chart_text.value)
        if m is None:
            return Err(
                ReleaseError(
                    kind="version_not_found",
                    message=f"missing top-level version in {self.files.chart_yaml.name}",
                    hint=str(self.files.chart_yaml),
                )
            )
        chart = _unquote(m.group(1))

        for label, value, path in (
            ("app", app, self.files.cargo_toml),
            ("chart", chart, self.files.chart_yaml),
        ):
            if isinstance(parse_version(value), Err):
                return Err(
                    ReleaseError(
                        kind="version_not_found",
                        message=f"malformed {label} version {value!r} in {path.name}",
                        hint=str(path),
                    )
                )

        return Ok(VersionPair(app_version=app, chart_version=chart))

    def write_next(self, pair: VersionPair) -> Result[list[Path], ReleaseError]:
        """Rewrite every version location in place.

        Returns the files whose content actually changed, so a repeated call
        with the same pair returns an empty list and touches nothing.
        """
        changed: list[Path] = []

        cargo = _read_text(self.files.cargo_toml)
        if isinstance(cargo, Err):
            return cargo
        crate = cargo_package_field(cargo.value, "name")
        new_cargo = _replace_cargo_package_version(cargo.value, pair.app_version)
        if new_cargo is None:
            return Err(
                ReleaseError(
                    kind="version_not_found",
                    message=f"missing [package] version in {self.files.cargo_toml.name}",
                    hint=str(self.files.cargo_toml),
                )
            )
        wrote = _write_if_changed(self.files.cargo_toml, cargo.value, new_cargo)
        if isinstance(wrote, Err):
            return wrote
        if wrote.value:
            changed.append(self.files.cargo_toml)

        if crate is not None and self.files.cargo_lock.is_file():
            lock = _read_text(self.files.cargo_lock)
            if isinstance(lock, Err):
                return lock
            new_lock = _replace_lock_version(lock.value, crate=crate, version=pair.app_version)
            wrote = _write_if_changed(self.files.cargo_lock, lock.value, new_lock)
            if isinstance(wrote, Err):
                return wrote
            if wrote.value:
                changed.append(self.files.cargo_lock)

        chart = _read_text(self.files.chart_yaml)
        if isinstance(chart, Err):
            return chart
        if _CHART_VERSION_RE.search(chart.value) is None:
            return Err(
                ReleaseError(
                    kind="version_not_found",
                    message=f"missing top-level version in {self.files.chart_yaml.name}",
                    hint=str(self.files.chart_yaml),
                )
            )
        new_chart = _replace_yaml_scalar(_CHART_VERSION_RE, chart.value, pair.chart_version)
        new_chart = _replace_yaml_scalar(_CHART_APP_VERSION_RE, new_chart, pair.app_version)
        wrote = _write_if_changed(self.files.chart_yaml, chart.value, new_chart)
        if isinstance(wrote, Err):
            return wrote
        if wrote.value:
            changed.append(self.files.chart_yaml)

        return Ok(changed)


def cargo_package_field(text: str, field: str) -> str | None:
    """Return a string field of the ``[package]`` table, or None."""
    section = _cargo_package_section(text)
    if section is None:
        return None
    _, body = section
    m = re.search(rf'(?m)^{re.escape(field)}\s*=\s*"([^"]+)"\s*$', body)
    if m is None:
        return None
    return m.group(1)


def _cargo_package_section(text: str) -> tuple[int, str] | None:
    m = re.search(r"(?m)^\s*\[package\]\s*$", text)
    if m is None:
        return None
    start = m.end()
    nxt = _TOML_HEADER_RE.search(text, start)
    end = nxt.start() if nxt is not None else len(text)
    return start, text[start:end]


def _replace_cargo_package_version(text: str, version: str) -> str | None:
    section = _cargo_package_section(text)
    if section is None:
        return None
    offset, body = section
    m = re.search(r'(?m)^version\s*=\s*"([^"]+)"\s*$', body)
    if m is None:
        return None
    start = offset + m.start()
    end = offset + m.end()
    return text[:start] + f'version = "{version}"' + text[end:]


def _replace_lock_version(text: str, *, crate: str, version: str) -> str:
    pattern = re.compile(
        rf'(?m)(^\[\[package\]\]\s*\nname = "{re.escape(crate)}"\s*\nversion = ")([^"]+)(")'
    )
    return pattern.sub(lambda m: f"{m.group(1)}{version}{m.group(3)}", text, count=1)


def _replace_yaml_scalar(pattern: re.Pattern[str], text: str, value: str) -> str:
    m = pattern.search(text)
    if m is None:
        return text
    raw = m.group(1)
    quote = raw[0] if raw[:1] in {'"', "'"} else ""
    start, end = m.span(1)
    return text[:start] + f"{quote}{value}{quote}" + text[end:]


def _unquote(raw: str) -> str:
    value = raw.split(" #", 1)[0].strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    return value


def _read_text(path: Path) -> Result[str, ReleaseError]:
    try:
        return Ok(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return Err(
            ReleaseError(
                kind="version_not_found",
                message=f"version file not found: {path.name}",
                hint=str(path),
            )
        )
    except OSError as e:
        return Err(
            ReleaseError(
                kind="io_failed",
                message=f"failed to read {path.name}: {e}",
                hint=str(path),
            )
        )


def _write_if_changed(path: Path, before: str, after: str) -> Result[bool, ReleaseError]:
    if before == after:
        return Ok(False)
    try:
        atomic_write_text(path, after, encoding="utf-8")
    except OSError as e:
        return Err(
            ReleaseError(
                kind="io_failed",
                message=f"failed to write {path.name}: {e}",
                hint=str(path),
            )
        )
    return Ok(True)
