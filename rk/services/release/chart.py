from __future__ import annotations

import re
import shutil
import tempfile
from pathlib import Path

from rk.core.result import Err, Ok, Result
from rk.output.console import ConsoleProtocol, Style
from rk.platform.process import run as run_process
from rk.services.release.errors import ReleaseError
from rk.services.release.model import ChartPackage, PinnedSource, VersionPair
from rk.services.release.timeouts import HELM_TIMEOUT_SECONDS

_CHART_NAME_RE = re.compile(r"(?m)^name:[ \t]*['\"]?([A-Za-z0-9._-]+)['\"]?[ \t]*(?:#.*)?$")
_NOT_FOUND_MARKERS = ("not found", "manifest unknown", "404")


def chart_repository(*, registry: str, owner: str, namespace: str) -> str:
    return f"oci://{registry}/{owner}/{namespace}".lower()


def read_chart_name(chart_yaml: Path) -> Result[str, ReleaseError]:
    try:
        text = chart_yaml.read_text(encoding="utf-8")
    except OSError as e:
        return Err(
            ReleaseError(
                kind="io_failed",
                message=f"failed to read {chart_yaml.name}: {e}",
                hint=str(chart_yaml),
            )
        )
    m = _CHART_NAME_RE.search(text)
    if m is None:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f"missing chart name in {chart_yaml.name}",
                hint=str(chart_yaml),
            )
        )
    return Ok(m.group(1))


class ChartPublisher:
    """Packages the chart of a pinned checkout and pushes it to an OCI registry.

    The chart version moves independently of the app version (always a patch
    bump) and, unlike releases, may be republished over an existing version
    when ``force`` is set.
    """

    def __init__(
        self,
        *,
        repository: str,
        chart_dir: str,
        console: ConsoleProtocol,
        dry_run: bool,
    ) -> None:
        self._repository = repository
        self._chart_dir = chart_dir
        self._console = console
        self._dry_run = dry_run

    def _chart_exists(
        self, source: PinnedSource, name: str, version: str
    ) -> Result[bool, ReleaseError]:
        cmd = ["helm", "show", "chart", f"{self._repository}/{name}", "--version", version]
        self._console.print(" ".join(cmd), Style.DIM)
        result = run_process(cmd, cwd=source.root, timeout=HELM_TIMEOUT_SECONDS)
        if isinstance(result, Ok):
            return Ok(True)
        text = f"{result.error.stderr}\n{result.error.stdout}".lower()
        if any(marker in text for marker in _NOT_FOUND_MARKERS):
            return Ok(False)
        return Err(
            ReleaseError(
                kind="push_failed",
                message=f"failed to query chart {name}:{version}",
                hint=result.error.detail(),
            )
        )

    def publish(
        self,
        source: PinnedSource,
        versions: VersionPair,
        *,
        force: bool,
    ) -> Result[ChartPackage, ReleaseError]:
        if not self._dry_run and shutil.which("helm") is None:
            return Err(
                ReleaseError(
                    kind="tool_missing",
                    message="helm: missing",
                    hint="Install Helm: https://helm.sh/docs/intro/install/",
                )
            )

        chart_path = source.root / self._chart_dir
        name = read_chart_name(chart_path / "Chart.yaml")
        if isinstance(name, Err):
            return name

        package = ChartPackage(
            name=name.value,
            version=versions.chart_version,
            app_version=versions.app_version,
            commit_sha=source.commit.sha,
            reference=f"{self._repository}/{name.value}:{versions.chart_version}",
        )

        if not force and not self._dry_run:
            exists = self._chart_exists(source, package.name, package.version)
            if isinstance(exists, Err):
                return exists
            if exists.value:
                return Err(
                    ReleaseError(
                        kind="chart_exists",
                        message=f"chart already published: {package.reference}",
                        hint="Set [chart] force = true to overwrite",
                    )
                )

        with tempfile.TemporaryDirectory(prefix="rk-chart-") as tmp:
            dest = Path(tmp)
            pkg_cmd = [
                "helm",
                "package",
                str(chart_path),
                "--version",
                package.version,
                "--app-version",
                package.app_version,
                "--destination",
                str(dest),
            ]
            tgz = dest / f"{package.name}-{package.version}.tgz"
            push_cmd = ["helm", "push", str(tgz), self._repository]
            self._console.print(" ".join(pkg_cmd), Style.DIM)
            self._console.print(" ".join(push_cmd), Style.DIM)
            if self._dry_run:
                return Ok(package)

            packaged = run_process(pkg_cmd, cwd=source.root, timeout=HELM_TIMEOUT_SECONDS)
            if isinstance(packaged, Err):
                return Err(
                    ReleaseError(
                        kind="build_failed",
                        message=f"helm package failed: {package.name}",
                        hint=packaged.error.detail(),
                    )
                )
            if not tgz.is_file():
                return Err(
                    ReleaseError(
                        kind="build_failed",
                        message=f"helm package produced no {tgz.name}",
                        hint=packaged.value.strip() or None,
                    )
                )

            pushed = run_process(push_cmd, cwd=source.root, timeout=HELM_TIMEOUT_SECONDS)
            if isinstance(pushed, Err):
                return Err(
                    ReleaseError(
                        kind="push_failed",
                        message=f"helm push failed: {package.reference}",
                        hint=pushed.error.detail(),
                    )
                )

        return Ok(package)
