"""Release run scheduling.

One run is a small DAG::

    read + plan -> write -> commit/push -> pinned commit
                                            |-> build matrix -> collect -> GitHub release
                                            |-> image platforms -> manifest list
                                            '-> chart package -> chart push

Everything before the pinned commit is serial and fails fast. The three
branches after it run concurrently; each receives the same ``PinnedSource``
and ``VersionPair`` as arguments and never reads shared state. The run ends
``completed`` iff the release branch succeeds, whatever happens to the image
and chart branches.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from rk.core.result import Err, Ok, Result
from rk.output.console import ConsoleProtocol, PrefixedConsole
from rk.services.release.artifacts import BuildFanOut, PlatformFailure
from rk.services.release.commit import bump_commit_message
from rk.services.release.errors import ReleaseError
from rk.services.release.image import ImagePublishResult
from rk.services.release.model import (
    Artifact,
    ChartBumpBase,
    ChartPackage,
    PinnedCommit,
    PinnedSource,
    PlatformTarget,
    ReleaseRecord,
    ReleaseRequest,
    VersionPair,
)
from rk.services.release.preflight import Check, run_checks
from rk.services.release.run_state import (
    BRANCHES,
    BranchName,
    BranchState,
    RunProgress,
    RunState,
)
from rk.services.release.version_store import plan_next


class VersionStage(Protocol):
    def tracked_files(self) -> list[Path]: ...

    def read_current(self) -> Result[VersionPair, ReleaseError]: ...

    def write_next(self, pair: VersionPair) -> Result[list[Path], ReleaseError]: ...


class CommitStage(Protocol):
    def ensure_fresh_mainline(self) -> Result[str, ReleaseError]: ...

    def ensure_clean(self, files: list[Path]) -> Result[None, ReleaseError]: ...

    def publish(
        self, changed_files: list[Path], message: str
    ) -> Result[PinnedCommit, ReleaseError]: ...


class CheckoutStage(Protocol):
    def checkout(
        self, commit: PinnedCommit, *, run_id: str, name: str
    ) -> Result[PinnedSource, ReleaseError]: ...

    def release(self, source: PinnedSource) -> None: ...

    def cleanup(self, run_id: str) -> None: ...


class BuildStage(Protocol):
    def build_all(
        self, source: PinnedSource, targets: Sequence[PlatformTarget], *, run_id: str
    ) -> BuildFanOut: ...


class ArtifactFanIn(Protocol):
    def collect(self, run_id: str) -> tuple[Artifact, ...]: ...

    def discard(self, run_id: str) -> None: ...


class ReleaseStage(Protocol):
    def publish(
        self,
        versions: VersionPair,
        pinned: PinnedCommit,
        artifacts: Sequence[Artifact],
        matrix: Sequence[PlatformTarget],
        *,
        latest: bool,
    ) -> Result[ReleaseRecord, ReleaseError]: ...


class ImageStage(Protocol):
    def publish(
        self,
        source: PinnedSource,
        versions: VersionPair,
        platforms: Sequence[str],
        *,
        pr_number: int | None = None,
    ) -> Result[ImagePublishResult, ReleaseError]: ...


class ChartStage(Protocol):
    def publish(
        self, source: PinnedSource, versions: VersionPair, *, force: bool
    ) -> Result[ChartPackage, ReleaseError]: ...


@dataclass(frozen=True, slots=True)
class ReleaseStages:
    """Collaborators of one run. ``image``/``chart`` set to None skip the branch."""

    versions: VersionStage
    commit: CommitStage
    checkouts: CheckoutStage
    builder: BuildStage
    store: ArtifactFanIn
    publisher: ReleaseStage
    image: ImageStage | None
    chart: ChartStage | None


@dataclass(frozen=True, slots=True)
class RunSettings:
    targets: tuple[PlatformTarget, ...]
    image_platforms: tuple[str, ...]
    chart_bump_from: ChartBumpBase = "app"
    chart_force: bool = True
    make_latest: bool = True
    dry_run: bool = False


@dataclass(frozen=True, slots=True)
class BranchOutcome:
    name: BranchName
    state: BranchState
    error: ReleaseError | None = None
    failures: tuple[PlatformFailure, ...] = ()
    summary: str | None = None


@dataclass(frozen=True, slots=True)
class ReleaseRunReport:
    run_id: str
    request: ReleaseRequest
    state: RunState
    dry_run: bool
    started_at: str
    finished_at: str
    current: VersionPair | None = None
    versions: VersionPair | None = None
    pinned: PinnedCommit | None = None
    error: ReleaseError | None = None
    branches: tuple[BranchOutcome, ...] = ()
    release: ReleaseRecord | None = None
    image: ImagePublishResult | None = None
    chart: ChartPackage | None = None

    @property
    def completed(self) -> bool:
        return self.state == "completed"

    def branch(self, name: BranchName) -> BranchOutcome | None:
        for b in self.branches:
            if b.name == name:
                return b
        return None


def new_run_id() -> str:
    return f"{datetime.now(UTC):%Y%m%dT%H%M%SZ}-{uuid.uuid4().hex[:8]}"


def _now() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds")


@dataclass
class _Published:
    release: ReleaseRecord | None = None
    image: ImagePublishResult | None = None
    chart: ChartPackage | None = None
    outcomes: dict[BranchName, BranchOutcome] = field(default_factory=dict)


class ReleaseOrchestrator:
    def __init__(
        self,
        *,
        stages: ReleaseStages,
        settings: RunSettings,
        console: ConsoleProtocol,
        preflight: Sequence[Check] = (),
        run_id_factory: Callable[[], str] = new_run_id,
    ) -> None:
        self._stages = stages
        self._settings = settings
        self._console = console
        self._preflight = tuple(preflight)
        self._run_id_factory = run_id_factory

    def plan(
        self, request: ReleaseRequest
    ) -> Result[tuple[VersionPair, VersionPair], ReleaseError]:
        """Current and next version pair, without side effects."""
        current = self._stages.versions.read_current()
        if isinstance(current, Err):
            return current
        planned = plan_next(
            current=current.value,
            level=request.bump,
            chart_bump_from=self._settings.chart_bump_from,
        )
        if isinstance(planned, Err):
            return planned
        return Ok((current.value, planned.value))

    def run(self, request: ReleaseRequest) -> ReleaseRunReport:
        run_id = self._run_id_factory()
        started_at = _now()
        progress = RunProgress()
        self._console.header(f"Release run {run_id} (bump {request.bump})")

        def finish(
            *,
            current: VersionPair | None = None,
            versions: VersionPair | None = None,
            pinned: PinnedCommit | None = None,
            published: _Published | None = None,
        ) -> ReleaseRunReport:
            published = published or _Published()
            return ReleaseRunReport(
                run_id=run_id,
                request=request,
                state=progress.state,
                dry_run=self._settings.dry_run,
                started_at=started_at,
                finished_at=_now(),
                current=current,
                versions=versions,
                pinned=pinned,
                error=progress.error,
                branches=tuple(
                    published.outcomes.get(b, BranchOutcome(name=b, state=state))
                    for b, state in progress.branches().items()
                ),
                release=published.release,
                image=published.image,
                chart=published.chart,
            )

        def fail(
            error: ReleaseError,
            *,
            current: VersionPair | None = None,
            versions: VersionPair | None = None,
        ) -> ReleaseRunReport:
            self._console.error(error.pretty())
            progress.fail(error)
            return finish(current=current, versions=versions)

        checked = run_checks(self._preflight)
        if isinstance(checked, Err):
            return fail(checked.error)

        fresh = self._stages.commit.ensure_fresh_mainline()
        if isinstance(fresh, Err):
            return fail(fresh.error)
        clean = self._stages.commit.ensure_clean(self._stages.versions.tracked_files())
        if isinstance(clean, Err):
            return fail(clean.error)

        planned = self.plan(request)
        if isinstance(planned, Err):
            return fail(planned.error)
        current, versions = planned.value
        self._console.print(
            f"app {current.app_version} -> {versions.app_version}, "
            f"chart {current.chart_version} -> {versions.chart_version}"
        )

        if self._settings.dry_run:
            changed = self._stages.versions.tracked_files()
        else:
            written = self._stages.versions.write_next(versions)
            if isinstance(written, Err):
                return fail(written.error, current=current, versions=versions)
            changed = written.value
        progress.advance("version_bumped")

        committed = self._stages.commit.publish(changed, bump_commit_message(versions.app_version))
        if isinstance(committed, Err):
            return fail(committed.error, current=current, versions=versions)
        pinned = committed.value
        progress.advance("committed")
        self._console.success(f"pinned {pinned.sha} on {pinned.branch}")

        progress.advance("running")
        published = _Published()
        try:
            self._run_branches(run_id, pinned, versions, progress, published)
        finally:
            self._stages.checkouts.cleanup(run_id)

        release = published.outcomes["release"]
        if release.state == "succeeded":
            progress.advance("completed")
            self._console.success(f"release {versions.tag} completed")
        else:
            error = release.error or ReleaseError(kind="invalid_input", message="release failed")
            progress.fail(error)
            self._console.error(f"release {versions.tag} failed: {error.pretty()}")

        errors = progress.branch_errors()
        for b in BRANCHES:
            if b in errors:
                self._console.warning(f"{b}: {errors[b].pretty()}")

        return finish(current=current, versions=versions, pinned=pinned, published=published)

    def _run_branches(
        self,
        run_id: str,
        pinned: PinnedCommit,
        versions: VersionPair,
        progress: RunProgress,
        published: _Published,
    ) -> None:
        work: dict[BranchName, Callable[[PinnedSource], BranchOutcome] | None] = {
            "release": lambda src: self._release_branch(run_id, src, versions, published),
            "image": None,
            "chart": None,
        }
        image, chart = self._stages.image, self._stages.chart
        if image is not None:
            work["image"] = lambda src: self._image_branch(image, src, versions, published)
        if chart is not None:
            work["chart"] = lambda src: self._chart_branch(chart, src, versions, published)

        for name, fn in work.items():
            if fn is None:
                progress.move_branch(name, "skipped")
                published.outcomes[name] = BranchOutcome(name=name, state="skipped")

        active = [(name, fn) for name, fn in work.items() if fn is not None]
        with ThreadPoolExecutor(max_workers=len(active), thread_name_prefix="rk-branch") as pool:
            futures = [
                (name, pool.submit(self._run_branch, run_id, name, fn, pinned, progress))
                for name, fn in active
            ]
            for name, future in futures:
                published.outcomes[name] = future.result()

    def _run_branch(
        self,
        run_id: str,
        name: BranchName,
        fn: Callable[[PinnedSource], BranchOutcome],
        pinned: PinnedCommit,
        progress: RunProgress,
    ) -> BranchOutcome:
        console = PrefixedConsole(self._console, name)
        progress.move_branch(name, "running")

        try:
            source = self._stages.checkouts.checkout(pinned, run_id=run_id, name=name)
            if isinstance(source, Err):
                outcome = BranchOutcome(name=name, state="failed", error=source.error)
            else:
                try:
                    outcome = fn(source.value)
                finally:
                    self._stages.checkouts.release(source.value)
        except Exception as e:  # noqa: BLE001
            # A raising stage fails its own branch only; siblings keep running.
            outcome = BranchOutcome(
                name=name,
                state="failed",
                error=ReleaseError(
                    kind="branch_crashed",
                    message=f"{name} branch crashed: {type(e).__name__}: {e}",
                ),
            )

        progress.move_branch(name, outcome.state, outcome.error)
        if outcome.state == "succeeded":
            console.success(outcome.summary or "done")
        elif outcome.error is not None:
            console.error(outcome.error.pretty())
        return outcome

    def _release_branch(
        self,
        run_id: str,
        source: PinnedSource,
        versions: VersionPair,
        published: _Published,
    ) -> BranchOutcome:
        targets = self._settings.targets
        try:
            fan = self._stages.builder.build_all(source, targets, run_id=run_id)
            if not fan.ok:
                failed = ", ".join(f.platform for f in fan.failures)
                return BranchOutcome(
                    name="release",
                    state="failed",
                    error=ReleaseError(
                        kind="incomplete_artifact_set",
                        message=f"{len(fan.failures)} of {len(targets)} build(s) failed: {failed}",
                        hint=fan.failures[0].error.pretty(),
                    ),
                    failures=fan.failures,
                )

            artifacts = (
                fan.artifacts if self._settings.dry_run else self._stages.store.collect(run_id)
            )
            latest = self._settings.make_latest and source.commit.on_mainline
            record = self._stages.publisher.publish(
                versions, source.commit, artifacts, targets, latest=latest
            )
        finally:
            self._stages.store.discard(run_id)

        if isinstance(record, Err):
            return BranchOutcome(name="release", state="failed", error=record.error)
        published.release = record.value
        return BranchOutcome(
            name="release",
            state="succeeded",
            summary=record.value.url or f"{record.value.tag} @ {source.commit.short_sha}",
        )

    def _image_branch(
        self,
        stage: ImageStage,
        source: PinnedSource,
        versions: VersionPair,
        published: _Published,
    ) -> BranchOutcome:
        result = stage.publish(source, versions, self._settings.image_platforms)
        if isinstance(result, Err):
            return BranchOutcome(name="image", state="failed", error=result.error)

        published.image = result.value
        if not result.value.ok:
            return BranchOutcome(
                name="image",
                state="failed",
                error=result.value.error(),
                failures=result.value.failures,
            )
        return BranchOutcome(
            name="image",
            state="succeeded",
            summary=", ".join(result.value.tags.references()),
        )

    def _chart_branch(
        self,
        stage: ChartStage,
        source: PinnedSource,
        versions: VersionPair,
        published: _Published,
    ) -> BranchOutcome:
        result = stage.publish(source, versions, force=self._settings.chart_force)
        if isinstance(result, Err):
            return BranchOutcome(name="chart", state="failed", error=result.error)
        published.chart = result.value
        return BranchOutcome(name="chart", state="succeeded", summary=result.value.reference)
