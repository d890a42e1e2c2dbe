from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path

from rk.core.result import Err, Ok, Result
from rk.output.console import ConsoleProtocol, Style
from rk.services.release import gh
from rk.services.release.artifacts import expected_artifact_names
from rk.services.release.errors import ReleaseError
from rk.services.release.model import (
    Artifact,
    PinnedCommit,
    PlatformTarget,
    ReleaseRecord,
    VersionPair,
)
from rk.services.release.notes import render_release_notes


def check_artifact_set(
    *,
    binary: str,
    artifacts: Sequence[Artifact],
    matrix: Sequence[PlatformTarget],
) -> Result[None, ReleaseError]:
    """The artifact set must match the declared matrix exactly, by count and name."""
    expected = expected_artifact_names(binary, matrix)
    counts = Counter(a.name for a in artifacts)
    got = frozenset(counts)

    problems: list[str] = []
    missing = sorted(expected - got)
    if missing:
        problems.append(f"missing {', '.join(missing)}")
    unexpected = sorted(got - expected)
    if unexpected:
        problems.append(f"unexpected {', '.join(unexpected)}")
    duplicated = sorted(n for n, c in counts.items() if c > 1)
    if duplicated:
        problems.append(f"duplicated {', '.join(duplicated)}")

    if problems or len(artifacts) != len(matrix):
        return Err(
            ReleaseError(
                kind="incomplete_artifact_set",
                message=f"expected {len(matrix)} artifact(s), got {len(artifacts)}",
                hint="; ".join(problems) or None,
            )
        )
    return Ok(None)


class ReleasePublisher:
    """Creates the one GitHub release of a run from the collected binaries."""

    def __init__(
        self,
        *,
        workspace_root: Path,
        repo: str,
        binary: str,
        title_prefix: str,
        console: ConsoleProtocol,
        dry_run: bool,
    ) -> None:
        self._root = workspace_root
        self._repo = repo
        self._binary = binary
        self._title_prefix = title_prefix
        self._console = console
        self._dry_run = dry_run

    def publish(
        self,
        versions: VersionPair,
        pinned: PinnedCommit,
        artifacts: Sequence[Artifact],
        matrix: Sequence[PlatformTarget],
        *,
        latest: bool,
    ) -> Result[ReleaseRecord, ReleaseError]:
        complete = check_artifact_set(binary=self._binary, artifacts=artifacts, matrix=matrix)
        if isinstance(complete, Err):
            return complete

        tag = versions.tag
        ordered = tuple(sorted(artifacts, key=lambda a: a.platform))
        notes = render_release_notes(
            repo=self._repo, versions=versions, pinned=pinned, artifacts=ordered
        )
        record = ReleaseRecord(
            tag=tag,
            version=versions.app_version,
            commit_sha=pinned.sha,
            artifacts=ordered,
            notes=notes,
            latest=latest,
        )

        latest_flag = "--latest" if latest else "--latest=false"
        self._console.print(
            f"gh release create {tag} --repo {self._repo} --target {pinned.short_sha} "
            f"{latest_flag} {' '.join(a.name for a in ordered)}",
            Style.DIM,
        )
        if self._dry_run:
            return Ok(record)

        exists = gh.release_exists(workspace_root=self._root, repo=self._repo, tag=tag)
        if isinstance(exists, Err):
            return exists
        if exists.value:
            return Err(
                ReleaseError(
                    kind="duplicate_release",
                    message=f"release already exists: {tag}",
                    hint="Published releases are never overwritten; bump again instead.",
                )
            )

        # gh release create reuses an existing tag and ignores --target
        tagged = gh.tag_exists(workspace_root=self._root, repo=self._repo, tag=tag)
        if isinstance(tagged, Err):
            return tagged
        if tagged.value:
            return Err(
                ReleaseError(
                    kind="duplicate_release",
                    message=f"tag already exists: {tag}",
                    hint=f"{tag} exists without a release; bump again instead.",
                )
            )

        created = gh.create_release(
            workspace_root=self._root,
            repo=self._repo,
            tag=tag,
            target_sha=pinned.sha,
            title=f"{self._title_prefix} {tag}",
            notes=notes,
            latest=latest,
            files=[a.path for a in ordered],
        )
        if isinstance(created, Err):
            return created

        return Ok(replace(record, url=created.value or None))
