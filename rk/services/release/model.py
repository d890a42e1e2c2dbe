from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

BumpLevel = Literal["major", "minor", "patch"]
BUMP_LEVELS: tuple[BumpLevel, ...] = ("major", "minor", "patch")

ChartBumpBase = Literal["chart", "app"]


@dataclass(frozen=True, slots=True)
class ReleaseRequest:
    """Operator trigger. The bump level is the only input."""

    bump: BumpLevel


@dataclass(frozen=True, slots=True)
class VersionPair:
    app_version: str
    chart_version: str

    @property
    def tag(self) -> str:
        return f"v{self.app_version}"


@dataclass(frozen=True, slots=True)
class PinnedCommit:
    """The one commit every downstream stage of a run builds from."""

    sha: str
    branch: str
    on_mainline: bool

    @property
    def short_sha(self) -> str:
        return self.sha[:7]


@dataclass(frozen=True, slots=True)
class PinnedSource:
    """A checkout of exactly ``commit.sha`` (detached, never a branch head)."""

    commit: PinnedCommit
    root: Path


@dataclass(frozen=True, slots=True)
class PlatformTarget:
    name: str  # amd64
    triplet: str  # x86_64-unknown-linux-gnu


@dataclass(frozen=True, slots=True)
class Artifact:
    run_id: str
    platform: str
    name: str  # <binary>-<platform>
    path: Path
    sha256: str


@dataclass(frozen=True, slots=True)
class ReleaseRecord:
    tag: str
    version: str
    commit_sha: str
    artifacts: tuple[Artifact, ...]
    notes: str
    latest: bool
    url: str | None = None


@dataclass(frozen=True, slots=True)
class ImageTagSet:
    image: str  # <registry>/<owner>/<name>
    tags: frozenset[str]

    def references(self) -> list[str]:
        return [f"{self.image}:{t}" for t in sorted(self.tags)]


@dataclass(frozen=True, slots=True)
class ChartPackage:
    name: str
    version: str
    app_version: str
    commit_sha: str
    reference: str  # oci://<registry>/<owner>/charts/<name>:<version>
