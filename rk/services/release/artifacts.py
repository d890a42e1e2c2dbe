from __future__ import annotations

import shutil
import threading
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from rk.core.result import Err, Ok, Result, partition
from rk.output.console import ConsoleProtocol, Style
from rk.platform.files import atomic_copy, sha256_file
from rk.platform.process import run as run_process
from rk.services.release.errors import ReleaseError
from rk.services.release.model import Artifact, PinnedSource, PlatformTarget
from rk.services.release.timeouts import BUILD_TIMEOUT_SECONDS


def artifact_name(binary: str, platform: str) -> str:
    return f"{binary}-{platform}"


def expected_artifact_names(binary: str, targets: Sequence[PlatformTarget]) -> frozenset[str]:
    return frozenset(artifact_name(binary, t.name) for t in targets)


class ArtifactStore:
    """Transient (run id, platform) -> binary store.

    Layout: ``<root>/<run_id>/<binary>-<platform>``. A key is written at most
    once per run; the whole run directory is discarded once the release
    stage has consumed it.
    """

    def __init__(self, root: Path) -> None:
        self._root = root
        self._lock = threading.Lock()
        self._entries: dict[str, dict[str, Artifact]] = {}

    def run_dir(self, run_id: str) -> Path:
        return self._root / run_id

    def put(
        self,
        *,
        run_id: str,
        platform: str,
        binary: str,
        source: Path,
    ) -> Result[Artifact, ReleaseError]:
        name = artifact_name(binary, platform)
        with self._lock:
            run_entries = self._entries.setdefault(run_id, {})
            if platform in run_entries:
                return Err(
                    ReleaseError(
                        kind="artifact_exists",
                        message=f"artifact already stored for {run_id}/{platform}",
                        hint=name,
                    )
                )
            # Reserve the key before copying so a racing put fails fast.
            run_entries[platform] = Artifact(
                run_id=run_id, platform=platform, name=name, path=Path(), sha256=""
            )

        dest = self.run_dir(run_id) / name
        try:
            atomic_copy(source, dest)
            digest = sha256_file(dest)
        except OSError as e:
            with self._lock:
                self._entries[run_id].pop(platform, None)
            return Err(
                ReleaseError(
                    kind="io_failed",
                    message=f"failed to store artifact {name}: {e}",
                    hint=str(source),
                )
            )

        artifact = Artifact(run_id=run_id, platform=platform, name=name, path=dest, sha256=digest)
        with self._lock:
            self._entries[run_id][platform] = artifact
        return Ok(artifact)

    def collect(self, run_id: str) -> tuple[Artifact, ...]:
        """Fan-in: every complete artifact of the run, sorted by platform."""
        with self._lock:
            entries = dict(self._entries.get(run_id, {}))
        return tuple(a for _, a in sorted(entries.items()) if a.sha256)

    def discard(self, run_id: str) -> None:
        with self._lock:
            self._entries.pop(run_id, None)
        shutil.rmtree(self.run_dir(run_id), ignore_errors=True)


@dataclass(frozen=True, slots=True)
class PlatformFailure:
    platform: str
    error: ReleaseError


@dataclass(frozen=True, slots=True)
class BuildFanOut:
    artifacts: tuple[Artifact, ...]
    failures: tuple[PlatformFailure, ...]

    @property
    def ok(self) -> bool:
        return not self.failures


class ArtifactBuilder:
    """Compiles one binary per platform target from a pinned checkout."""

    def __init__(
        self,
        *,
        store: ArtifactStore,
        binary: str,
        command: Sequence[str],
        output: str,
        console: ConsoleProtocol,
        dry_run: bool,
    ) -> None:
        self._store = store
        self._binary = binary
        self._command = tuple(command)
        self._output = output
        self._console = console
        self._dry_run = dry_run

    def _render(self, template: str, target: PlatformTarget) -> str:
        return template.format(triplet=target.triplet, platform=target.name, binary=self._binary)

    def build(
        self, source: PinnedSource, target: PlatformTarget, *, run_id: str
    ) -> Result[Artifact, ReleaseError]:
        cmd = [self._render(part, target) for part in self._command]
        self._console.print(f"{target.name}: {' '.join(cmd)} @ {source.commit.short_sha}", Style.DIM)
        if self._dry_run:
            name = artifact_name(self._binary, target.name)
            return Ok(
                Artifact(run_id=run_id, platform=target.name, name=name, path=Path(name), sha256="")
            )

        built = run_process(cmd, cwd=source.root, timeout=BUILD_TIMEOUT_SECONDS)
        if isinstance(built, Err):
            return Err(
                ReleaseError(
                    kind="build_failed",
                    message=f"build failed for {target.name} ({target.triplet})",
                    hint=_tail(built.error.detail()),
                )
            )

        output = source.root / self._render(self._output, target)
        if not output.is_file():
            return Err(
                ReleaseError(
                    kind="build_failed",
                    message=f"build output not found for {target.name}",
                    hint=str(output),
                )
            )

        return self._store.put(run_id=run_id, platform=target.name, binary=self._binary, source=output)

    def build_all(
        self, source: PinnedSource, targets: Sequence[PlatformTarget], *, run_id: str
    ) -> BuildFanOut:
        """Build every target concurrently.

        A failing platform never cancels its siblings: every scheduled build
        runs to completion and all outcomes are reported together.
        """
        if not targets:
            return BuildFanOut(artifacts=(), failures=())

        with ThreadPoolExecutor(max_workers=len(targets), thread_name_prefix="rk-build") as pool:
            futures = [(t, pool.submit(self.build, source, t, run_id=run_id)) for t in targets]
            outcomes = [(t, f.result()) for t, f in futures]

        labelled: list[Result[Artifact, PlatformFailure]] = []
        for target, outcome in outcomes:
            if isinstance(outcome, Ok):
                self._console.success(f"{target.name}: {outcome.value.name}")
                labelled.append(outcome)
            else:
                self._console.error(f"{target.name}: {outcome.error.message}")
                labelled.append(Err(PlatformFailure(platform=target.name, error=outcome.error)))

        artifacts, failures = partition(labelled)
        return BuildFanOut(artifacts=tuple(artifacts), failures=tuple(failures))


def _tail(text: str | None, *, lines: int = 20) -> str | None:
    if text is None:
        return None
    return "\n".join(text.splitlines()[-lines:])
