from __future__ import annotations

from dataclasses import dataclass

from rk.core.result import Err, Ok, Result
from rk.core.workspace import Project
from rk.git.repository import Repository
from rk.output.console import ConsoleProtocol, PrefixedConsole
from rk.services.release.artifacts import ArtifactBuilder, ArtifactStore
from rk.services.release.chart import ChartPublisher, chart_repository, read_chart_name
from rk.services.release.checkout import WorktreeCheckouts
from rk.services.release.commit import CommitPublisher
from rk.services.release.config import ReleaseConfig, require_repo
from rk.services.release.errors import ReleaseError
from rk.services.release.image import ImagePublisher, derive_image_tags, image_reference
from rk.services.release.model import ImageTagSet, ReleaseRequest, VersionPair
from rk.services.release.orchestrator import ReleaseOrchestrator, ReleaseStages, RunSettings
from rk.services.release.preflight import release_checks
from rk.services.release.publisher import ReleasePublisher
from rk.services.release.version_store import VersionStore, plan_next, version_files


def _version_store(cfg: ReleaseConfig, project: Project) -> VersionStore:
    return VersionStore(
        version_files(repo_root=project.root, cargo_toml=cfg.cargo_toml, chart_dir=cfg.chart_dir)
    )


def run_settings(cfg: ReleaseConfig, *, dry_run: bool) -> RunSettings:
    return RunSettings(
        targets=cfg.targets,
        image_platforms=cfg.image.platforms,
        chart_bump_from=cfg.chart_bump_from,
        chart_force=cfg.chart.force,
        make_latest=cfg.make_latest,
        dry_run=dry_run,
    )


def build_orchestrator(
    *,
    cfg: ReleaseConfig,
    project: Project,
    console: ConsoleProtocol,
    dry_run: bool,
) -> Result[ReleaseOrchestrator, ReleaseError]:
    """Wire the production collaborators of a release run."""
    repo_slug = require_repo(cfg)
    if isinstance(repo_slug, Err):
        return repo_slug
    owner = cfg.owner or ""

    repo = Repository(project.root)
    if not dry_run and not repo.exists():
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f"not a git repository: {project.root}",
                hint="Run rk from the project checkout or pass --repo",
            )
        )

    store = ArtifactStore(project.work_dir / "artifacts")
    image = None
    if cfg.image.enabled:
        image = ImagePublisher(
            image=image_reference(registry=cfg.image.registry, owner=owner, name=cfg.image_name),
            context=cfg.image.context,
            dockerfile=cfg.image.dockerfile,
            console=PrefixedConsole(console, "image"),
            dry_run=dry_run,
        )
    chart = None
    if cfg.chart.enabled:
        chart = ChartPublisher(
            repository=chart_repository(
                registry=cfg.chart.registry, owner=owner, namespace=cfg.chart.namespace
            ),
            chart_dir=cfg.chart_dir,
            console=PrefixedConsole(console, "chart"),
            dry_run=dry_run,
        )

    stages = ReleaseStages(
        versions=_version_store(cfg, project),
        commit=CommitPublisher(
            repo,
            mainline=cfg.mainline,
            remote=cfg.remote,
            console=console,
            dry_run=dry_run,
        ),
        checkouts=WorktreeCheckouts(
            repo, work_root=project.work_dir / "checkouts", console=console, dry_run=dry_run
        ),
        builder=ArtifactBuilder(
            store=store,
            binary=cfg.binary,
            command=cfg.build_command,
            output=cfg.build_output,
            console=PrefixedConsole(console, "release"),
            dry_run=dry_run,
        ),
        store=store,
        publisher=ReleasePublisher(
            workspace_root=project.root,
            repo=repo_slug.value,
            binary=cfg.binary,
            title_prefix=cfg.release_title_prefix,
            console=PrefixedConsole(console, "release"),
            dry_run=dry_run,
        ),
        image=image,
        chart=chart,
    )

    return Ok(
        ReleaseOrchestrator(
            stages=stages,
            settings=run_settings(cfg, dry_run=dry_run),
            console=console,
            preflight=() if dry_run else release_checks(cfg, repo_root=project.root),
        )
    )


@dataclass(frozen=True, slots=True)
class ReleasePlan:
    current: VersionPair
    next: VersionPair
    tag: str
    image_tags: ImageTagSet | None
    chart_reference: str | None


def plan_release(
    *,
    cfg: ReleaseConfig,
    project: Project,
    request: ReleaseRequest,
) -> Result[ReleasePlan, ReleaseError]:
    """What a run would produce, read from the working tree without side effects.

    Image tags are shown for a mainline build; the commit sha is not known
    until the bump commit exists, so its tag is rendered from ``HEAD``.
    """
    current = _version_store(cfg, project).read_current()
    if isinstance(current, Err):
        return current
    nxt = plan_next(current=current.value, level=request.bump, chart_bump_from=cfg.chart_bump_from)
    if isinstance(nxt, Err):
        return nxt

    image_tags: ImageTagSet | None = None
    chart_ref: str | None = None
    if cfg.owner is not None:
        head = Repository(project.root).rev_parse("HEAD")
        sha = head.value if not isinstance(head, Err) else "0" * 40
        if cfg.image.enabled:
            image_tags = derive_image_tags(
                image_reference(registry=cfg.image.registry, owner=cfg.owner, name=cfg.image_name),
                sha,
                nxt.value.app_version,
                on_mainline=True,
            )
        if cfg.chart.enabled:
            repo_ref = chart_repository(
                registry=cfg.chart.registry, owner=cfg.owner, namespace=cfg.chart.namespace
            )
            name = read_chart_name(project.root / cfg.chart_dir / "Chart.yaml")
            if isinstance(name, Err):
                return name
            chart_ref = f"{repo_ref}/{name.value}:{nxt.value.chart_version}"

    return Ok(
        ReleasePlan(
            current=current.value,
            next=nxt.value,
            tag=nxt.value.tag,
            image_tags=image_tags,
            chart_reference=chart_ref,
        )
    )
