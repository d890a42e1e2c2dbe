"""Multi-architecture container image publishing.

Each platform is built and pushed on its own, by digest only, so that no
tag ever points at a single-platform image. The digests that made it are
then assembled into one manifest list carrying the whole tag set.

A platform that fails leaves the others pushed: the image branch reports
a partial result instead of undoing what is already in the registry.
"""

from __future__ import annotations

import json
import shutil
import tempfile
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from rk.core.result import Err, Ok, Result
from rk.core.structured import as_str_dict, get_str
from rk.output.console import ConsoleProtocol, Style
from rk.platform.process import run as run_process
from rk.services.release.artifacts import PlatformFailure
from rk.services.release.errors import ReleaseError
from rk.services.release.model import ImageTagSet, PinnedSource, VersionPair
from rk.services.release.timeouts import (
    IMAGE_BUILD_TIMEOUT_SECONDS,
    IMAGE_MANIFEST_TIMEOUT_SECONDS,
)

DRY_RUN_DIGEST = "sha256:" + "0" * 64


def image_reference(*, registry: str, owner: str, name: str) -> str:
    """``<registry>/<owner>/<name>``; registries reject upper-case repository names."""
    return f"{registry}/{owner}/{name}".lower()


def derive_image_tags(
    image: str,
    sha: str,
    version: str,
    *,
    on_mainline: bool,
    pr_number: int | None = None,
) -> ImageTagSet:
    tags = {f"sha-{sha[:7]}"}
    if pr_number is not None:
        tags.add(f"pr-{pr_number}")
    if on_mainline:
        tags.add("latest")
        tags.add(f"v{version.removeprefix('v')}")
    return ImageTagSet(image=image, tags=frozenset(tags))


@dataclass(frozen=True, slots=True)
class PlatformDigest:
    platform: str
    digest: str


@dataclass(frozen=True, slots=True)
class ImagePublishResult:
    tags: ImageTagSet
    digests: tuple[PlatformDigest, ...]
    failures: tuple[PlatformFailure, ...]
    manifest_error: ReleaseError | None = None

    @property
    def published(self) -> bool:
        """A manifest list exists for at least one platform."""
        return bool(self.digests) and self.manifest_error is None

    @property
    def ok(self) -> bool:
        return self.published and not self.failures

    def error(self) -> ReleaseError | None:
        if self.ok:
            return None
        if self.manifest_error is not None:
            return self.manifest_error
        failed = ", ".join(f.platform for f in self.failures)
        pushed = ", ".join(d.platform for d in self.digests) or "none"
        return ReleaseError(
            kind="push_failed",
            message=f"image push failed for {failed}",
            hint=f"published platforms: {pushed}",
        )


class ImagePublisher:
    def __init__(
        self,
        *,
        image: str,
        context: str,
        dockerfile: str | None,
        console: ConsoleProtocol,
        dry_run: bool,
    ) -> None:
        self._image = image
        self._context = context
        self._dockerfile = dockerfile
        self._console = console
        self._dry_run = dry_run

    def _build_cmd(
        self, source: PinnedSource, versions: VersionPair, platform: str, metadata: Path
    ) -> list[str]:
        cmd = ["docker", "buildx", "build", "--platform", platform]
        if self._dockerfile is not None:
            cmd += ["--file", self._dockerfile]
        cmd += [
            "--label",
            f"org.opencontainers.image.revision={source.commit.sha}",
            "--label",
            f"org.opencontainers.image.version={versions.app_version}",
            "--output",
            f"type=image,name={self._image},push-by-digest=true,name-canonical=true,push=true",
            "--metadata-file",
            str(metadata),
            self._context,
        ]
        return cmd

    def push_platform(
        self,
        source: PinnedSource,
        versions: VersionPair,
        platform: str,
        *,
        workdir: Path,
    ) -> Result[PlatformDigest, ReleaseError]:
        metadata = workdir / f"{platform.replace('/', '-')}.json"
        cmd = self._build_cmd(source, versions, platform, metadata)
        self._console.print(" ".join(cmd), Style.DIM)
        if self._dry_run:
            return Ok(PlatformDigest(platform=platform, digest=DRY_RUN_DIGEST))

        built = run_process(cmd, cwd=source.root, timeout=IMAGE_BUILD_TIMEOUT_SECONDS)
        if isinstance(built, Err):
            return Err(
                ReleaseError(
                    kind="push_failed",
                    message=f"docker buildx failed for {platform}",
                    hint=built.error.detail(),
                )
            )

        try:
            obj: object = json.loads(metadata.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            return Err(
                ReleaseError(
                    kind="push_failed",
                    message=f"no build metadata for {platform}: {e}",
                    hint=str(metadata),
                )
            )

        data = as_str_dict(obj)
        digest = get_str(data, "containerimage.digest") if data is not None else None
        if digest is None or not digest.startswith("sha256:"):
            return Err(
                ReleaseError(
                    kind="push_failed",
                    message=f"missing image digest for {platform}",
                    hint=str(metadata),
                )
            )
        return Ok(PlatformDigest(platform=platform, digest=digest))

    def create_manifest(
        self, source: PinnedSource, tags: ImageTagSet, digests: Sequence[PlatformDigest]
    ) -> Result[None, ReleaseError]:
        cmd = ["docker", "buildx", "imagetools", "create"]
        for ref in tags.references():
            cmd += ["--tag", ref]
        cmd += [f"{self._image}@{d.digest}" for d in digests]
        self._console.print(" ".join(cmd), Style.DIM)
        if self._dry_run:
            return Ok(None)

        result = run_process(cmd, cwd=source.root, timeout=IMAGE_MANIFEST_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return Err(
                ReleaseError(
                    kind="push_failed",
                    message="docker buildx imagetools create failed",
                    hint=result.error.detail(),
                )
            )
        return Ok(None)

    def publish(
        self,
        source: PinnedSource,
        versions: VersionPair,
        platforms: Sequence[str],
        *,
        pr_number: int | None = None,
    ) -> Result[ImagePublishResult, ReleaseError]:
        if not self._dry_run and shutil.which("docker") is None:
            return Err(
                ReleaseError(
                    kind="tool_missing",
                    message="docker: missing",
                    hint="Install Docker with the buildx plugin",
                )
            )
        if not platforms:
            return Err(ReleaseError(kind="invalid_input", message="no image platforms declared"))

        tags = derive_image_tags(
            self._image,
            source.commit.sha,
            versions.app_version,
            on_mainline=source.commit.on_mainline,
            pr_number=pr_number,
        )

        with tempfile.TemporaryDirectory(prefix="rk-image-") as tmp:
            workdir = Path(tmp)
            with ThreadPoolExecutor(
                max_workers=len(platforms), thread_name_prefix="rk-image"
            ) as pool:
                futures = [
                    (p, pool.submit(self.push_platform, source, versions, p, workdir=workdir))
                    for p in platforms
                ]
                outcomes = [(p, f.result()) for p, f in futures]

        digests: list[PlatformDigest] = []
        failures: list[PlatformFailure] = []
        for platform, outcome in outcomes:
            if isinstance(outcome, Ok):
                digests.append(outcome.value)
                self._console.success(f"{platform}: {outcome.value.digest[:19]}")
            else:
                failures.append(PlatformFailure(platform=platform, error=outcome.error))
                self._console.error(f"{platform}: {outcome.error.message}")

        manifest_error: ReleaseError | None = None
        if digests:
            manifest = self.create_manifest(source, tags, digests)
            if isinstance(manifest, Err):
                manifest_error = manifest.error

        return Ok(
            ImagePublishResult(
                tags=tags,
                digests=tuple(digests),
                failures=tuple(failures),
                manifest_error=manifest_error,
            )
        )
