"""Typed release configuration (``releasekit.toml``).

Example::

    [project]
    repo = "owner/magicentry"
    product = "MagicEntry"
    binary = "magicentry"
    mainline = "main"

    [versions]
    cargo_toml = "Cargo.toml"
    chart_dir = "chart"
    chart_bump_from = "app"   # or "chart"

    [build]
    command = ["cargo", "build", "--release", "--target", "{triplet}"]
    output = "target/{triplet}/release/{binary}"

    [[build.targets]]
    name = "amd64"
    triplet = "x86_64-unknown-linux-gnu"

    [image]
    registry = "ghcr.io"
    platforms = ["linux/amd64", "linux/arm64"]

    [chart]
    force = true
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from string import Formatter

from rk.core.config import load_toml
from rk.core.result import Err, Ok, Result
from rk.core.structured import (
    StrDict,
    as_str_dict,
    get_bool,
    get_list,
    get_str,
    get_str_list,
    get_table,
)
from rk.services.release.errors import ReleaseError
from rk.services.release.model import ChartBumpBase, PlatformTarget
from rk.services.release.version_store import cargo_package_field

CONFIG_FILE = "releasekit.toml"

DEFAULT_MAINLINE = "main"
DEFAULT_REMOTE = "origin"
DEFAULT_REGISTRY = "ghcr.io"

DEFAULT_TARGETS: tuple[PlatformTarget, ...] = (
    PlatformTarget(name="amd64", triplet="x86_64-unknown-linux-gnu"),
    PlatformTarget(name="aarch64", triplet="aarch64-unknown-linux-gnu"),
)
DEFAULT_BUILD_COMMAND: tuple[str, ...] = ("cargo", "build", "--release", "--target", "{triplet}")
DEFAULT_BUILD_OUTPUT = "target/{triplet}/release/{binary}"
DEFAULT_IMAGE_PLATFORMS: tuple[str, ...] = ("linux/amd64", "linux/arm64")

_TEMPLATE_FIELDS = frozenset({"triplet", "platform", "binary"})


@dataclass(frozen=True, slots=True)
class ImageConfig:
    enabled: bool = True
    registry: str = DEFAULT_REGISTRY
    name: str | None = None  # defaults to the binary name
    platforms: tuple[str, ...] = DEFAULT_IMAGE_PLATFORMS
    context: str = "."
    dockerfile: str | None = None


@dataclass(frozen=True, slots=True)
class ChartConfig:
    enabled: bool = True
    registry: str = DEFAULT_REGISTRY
    # Charts live under oci://<registry>/<owner>/<namespace>
    namespace: str = "charts"
    force: bool = True


@dataclass(frozen=True, slots=True)
class ReleaseConfig:
    binary: str
    repo: str | None = None  # owner/name
    product: str | None = None
    mainline: str = DEFAULT_MAINLINE
    remote: str = DEFAULT_REMOTE
    cargo_toml: str = "Cargo.toml"
    chart_dir: str = "chart"
    chart_bump_from: ChartBumpBase = "app"
    targets: tuple[PlatformTarget, ...] = DEFAULT_TARGETS
    build_command: tuple[str, ...] = DEFAULT_BUILD_COMMAND
    build_output: str = DEFAULT_BUILD_OUTPUT
    make_latest: bool = True
    image: ImageConfig = field(default_factory=ImageConfig)
    chart: ChartConfig = field(default_factory=ChartConfig)

    @property
    def owner(self) -> str | None:
        if self.repo is None:
            return None
        return self.repo.split("/", 1)[0]

    @property
    def release_title_prefix(self) -> str:
        return self.product or self.binary

    @property
    def image_name(self) -> str:
        return self.image.name or self.binary


def require_repo(cfg: ReleaseConfig) -> Result[str, ReleaseError]:
    """The GitHub slug is only needed once something is published."""
    if cfg.repo is None:
        return Err(
            ReleaseError(
                kind="config_invalid",
                message="missing [project] repo",
                hint=f'Add repo = "owner/name" to {CONFIG_FILE}',
            )
        )
    return Ok(cfg.repo)


def load_release_config(*, repo_root: Path) -> Result[ReleaseConfig, ReleaseError]:
    """Load ``releasekit.toml`` from ``repo_root``; a missing file means defaults."""
    path = repo_root / CONFIG_FILE
    data: StrDict = {}
    if path.exists():
        parsed = load_toml(path)
        if isinstance(parsed, Err):
            return Err(
                ReleaseError(kind="config_invalid", message=parsed.error.message, hint=str(path))
            )
        data = parsed.value

    return _from_dict(data, repo_root=repo_root)


def _from_dict(data: StrDict, *, repo_root: Path) -> Result[ReleaseConfig, ReleaseError]:
    project = get_table(data, "project") or {}
    versions = get_table(data, "versions") or {}
    build = get_table(data, "build") or {}
    image = get_table(data, "image") or {}
    chart = get_table(data, "chart") or {}
    release = get_table(data, "release") or {}

    cargo_toml = get_str(versions, "cargo_toml") or "Cargo.toml"

    binary = get_str(project, "binary")
    if binary is None:
        binary = _cargo_package_name(repo_root / cargo_toml)
    if binary is None:
        return _invalid("missing [project] binary and no [package] name in " + cargo_toml)

    repo = get_str(project, "repo")
    if repo is not None and (repo.count("/") != 1 or repo.startswith("/") or repo.endswith("/")):
        return _invalid(f"invalid [project] repo (expected owner/name): {repo}")

    chart_bump_from = get_str(versions, "chart_bump_from") or "app"
    if chart_bump_from not in ("chart", "app"):
        return _invalid(f"invalid [versions] chart_bump_from: {chart_bump_from}")

    targets = _parse_targets(build)
    if isinstance(targets, Err):
        return targets

    command = DEFAULT_BUILD_COMMAND
    if "command" in build:
        items = get_str_list(build, "command")
        if not items:
            return _invalid("[build] command must be a non-empty list of strings")
        command = tuple(items)

    output = get_str(build, "output") or DEFAULT_BUILD_OUTPUT
    for label, template in (*(("[build] command", c) for c in command), ("[build] output", output)):
        bad = _check_template(template, label=label)
        if bad is not None:
            return bad

    platforms = DEFAULT_IMAGE_PLATFORMS
    if "platforms" in image:
        items = get_str_list(image, "platforms")
        if not items:
            return _invalid("[image] platforms must be a non-empty list of strings")
        platforms = tuple(items)

    return Ok(
        ReleaseConfig(
            binary=binary,
            repo=repo,
            product=get_str(project, "product"),
            mainline=get_str(project, "mainline") or DEFAULT_MAINLINE,
            remote=get_str(project, "remote") or DEFAULT_REMOTE,
            cargo_toml=cargo_toml,
            chart_dir=get_str(versions, "chart_dir") or "chart",
            chart_bump_from="chart" if chart_bump_from == "chart" else "app",
            targets=targets.value,
            build_command=command,
            build_output=output,
            make_latest=_bool_or(release, "latest", True),
            image=ImageConfig(
                enabled=_bool_or(image, "enabled", True),
                registry=get_str(image, "registry") or DEFAULT_REGISTRY,
                name=get_str(image, "name"),
                platforms=platforms,
                context=get_str(image, "context") or ".",
                dockerfile=get_str(image, "dockerfile"),
            ),
            chart=ChartConfig(
                enabled=_bool_or(chart, "enabled", True),
                registry=get_str(chart, "registry") or DEFAULT_REGISTRY,
                namespace=get_str(chart, "namespace") or "charts",
                force=_bool_or(chart, "force", True),
            ),
        )
    )


def _parse_targets(build: StrDict) -> Result[tuple[PlatformTarget, ...], ReleaseError]:
    raw = get_list(build, "targets")
    if raw is None:
        return Ok(DEFAULT_TARGETS)

    out: list[PlatformTarget] = []
    seen: set[str] = set()
    for item in raw:
        d = as_str_dict(item)
        if d is None:
            return _invalid("[[build.targets]] entries must be tables")
        name = get_str(d, "name")
        triplet = get_str(d, "triplet")
        if name is None or triplet is None:
            return _invalid("[[build.targets]] entries need name and triplet")
        if name in seen:
            return _invalid(f"duplicate build target: {name}")
        seen.add(name)
        out.append(PlatformTarget(name=name, triplet=triplet))

    if not out:
        return _invalid("[[build.targets]] must declare at least one target")
    return Ok(tuple(out))


def _check_template(template: str, *, label: str) -> Err[ReleaseError] | None:
    try:
        fields = {name for _, name, _, _ in Formatter().parse(template) if name is not None}
    except ValueError as e:
        return _invalid(f"{label}: {e}")
    unknown = sorted(f for f in fields if f not in _TEMPLATE_FIELDS)
    if unknown:
        return _invalid(f"{label}: unknown placeholder(s) {', '.join(unknown)}")
    return None


def _bool_or(table: StrDict, key: str, default: bool) -> bool:
    value = get_bool(table, key)
    return default if value is None else value


def _cargo_package_name(path: Path) -> str | None:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        return None
    return cargo_package_field(text, "name")


def _invalid(message: str) -> Err[ReleaseError]:
    return Err(ReleaseError(kind="config_invalid", message=message, hint=CONFIG_FILE))
