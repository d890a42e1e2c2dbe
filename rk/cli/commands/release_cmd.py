from __future__ import annotations

from typing import NoReturn

import typer

from rk.cli.context import build_context
from rk.core.errors import ErrorCode
from rk.core.result import Err
from rk.output.console import ConsoleProtocol, Style
from rk.output.errors import print_release_error, release_error_exit_code
from rk.services.release.image import derive_image_tags
from rk.services.release.model import BUMP_LEVELS, BumpLevel, ReleaseRequest
from rk.services.release.orchestrator import ReleaseRunReport
from rk.services.release.report import write_run_report
from rk.services.release.semver import parse_version
from rk.services.release.service import build_orchestrator, plan_release

release_app = typer.Typer(add_completion=False, no_args_is_help=True)


def _exit(err: str, *, code: ErrorCode) -> NoReturn:
    typer.echo(f"error: {err}", err=True)
    raise typer.Exit(code=int(code))


def _bump_level(value: str) -> BumpLevel:
    level = value.strip().lower()
    for candidate in BUMP_LEVELS:
        if candidate == level:
            return candidate
    _exit(f"invalid --bump: {value} (expected major, minor or patch)", code=ErrorCode.USER_ERROR)


def _print_report(report: ReleaseRunReport, console: ConsoleProtocol) -> None:
    console.header("Summary")
    if report.versions is not None:
        console.print(
            f"version: {report.versions.app_version} (chart {report.versions.chart_version})"
        )
    if report.pinned is not None:
        console.print(f"commit: {report.pinned.sha}")

    for b in report.branches:
        line = f"{b.name}: {b.state}"
        match b.state:
            case "succeeded":
                console.print(f"{line} {b.summary or ''}".rstrip(), Style.SUCCESS)
            case "failed":
                console.print(line, Style.ERROR)
                if b.error is not None:
                    console.print(f"  {b.error.pretty()}", Style.DIM)
                for f in b.failures:
                    console.print(f"  {f.platform}: {f.error.message}", Style.DIM)
            case _:
                console.print(line, Style.DIM)

    if report.completed:
        failed = [b.name for b in report.branches if b.state == "failed"]
        if failed:
            console.warning(f"run completed; best-effort branch(es) failed: {', '.join(failed)}")
        else:
            console.success(f"run {report.run_id} completed")
    else:
        console.error(f"run {report.run_id} failed")


@release_app.command("run")
def run_cmd(
    bump: str = typer.Option(..., "--bump", help="major/minor/patch"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print actions without mutating"),
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt"),
) -> None:
    """Bump, commit to mainline, then publish release, image and chart from that commit."""
    level = _bump_level(bump)
    ctx = build_context()
    console = ctx.console

    orchestrator = build_orchestrator(
        cfg=ctx.config, project=ctx.project, console=console, dry_run=dry_run
    )
    if isinstance(orchestrator, Err):
        print_release_error(orchestrator.error, console)
        raise typer.Exit(code=release_error_exit_code(orchestrator.error))

    request = ReleaseRequest(bump=level)
    if not dry_run and not yes:
        planned = orchestrator.value.plan(request)
        if isinstance(planned, Err):
            print_release_error(planned.error, console)
            raise typer.Exit(code=release_error_exit_code(planned.error))
        _, nxt = planned.value
        if not typer.confirm(f"Release {nxt.tag} from {ctx.config.mainline}?", default=False):
            _exit("aborted", code=ErrorCode.USER_ERROR)

    report = orchestrator.value.run(request)
    _print_report(report, console)

    written = write_run_report(ctx.project.run_report_path(report.run_id), report)
    if isinstance(written, Err):
        print_release_error(written.error, console)
    else:
        console.print(f"report: {written.value}", Style.DIM)

    if not report.completed:
        error = report.error
        code = release_error_exit_code(error) if error is not None else int(ErrorCode.USER_ERROR)
        raise typer.Exit(code=code)


@release_app.command("plan")
def plan_cmd(
    bump: str = typer.Option(..., "--bump", help="major/minor/patch"),
) -> None:
    """Show the next versions and what a run would publish (no side effects)."""
    level = _bump_level(bump)
    ctx = build_context()
    console = ctx.console

    planned = plan_release(cfg=ctx.config, project=ctx.project, request=ReleaseRequest(bump=level))
    if isinstance(planned, Err):
        print_release_error(planned.error, console)
        raise typer.Exit(code=release_error_exit_code(planned.error))

    p = planned.value
    console.print(f"app: {p.current.app_version} -> {p.next.app_version}")
    console.print(f"chart: {p.current.chart_version} -> {p.next.chart_version}")
    console.print(f"release: {p.tag}")
    if p.image_tags is not None:
        for ref in p.image_tags.references():
            console.print(f"image: {ref}")
        console.print("(sha tag shown for HEAD; the bump commit replaces it)", Style.DIM)
    if p.chart_reference is not None:
        console.print(f"chart: {p.chart_reference}")


@release_app.command("tags")
def tags_cmd(
    sha: str = typer.Option(..., "--sha", help="Commit sha (at least 7 hex chars)"),
    version: str = typer.Option(..., "--version", help="App version (x.y.z)"),
    mainline: bool = typer.Option(
        True, "--mainline/--no-mainline", help="Whether the commit is on mainline"
    ),
    pr: int | None = typer.Option(None, "--pr", help="Pull request number"),
    image: str | None = typer.Option(None, "--image", help="Print full image references"),
) -> None:
    """Print the image tag set derived for a commit."""
    sha = sha.strip().lower()
    if len(sha) < 7 or any(c not in "0123456789abcdef" for c in sha):
        _exit(f"invalid --sha: {sha}", code=ErrorCode.USER_ERROR)
    parsed = parse_version(version)
    if isinstance(parsed, Err):
        _exit(parsed.error.message, code=ErrorCode.USER_ERROR)

    tags = derive_image_tags(
        image or "", sha, str(parsed.value), on_mainline=mainline, pr_number=pr
    )
    lines = tags.references() if image else sorted(tags.tags)
    for line in lines:
        typer.echo(line)
