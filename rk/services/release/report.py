from __future__ import annotations

import json
from pathlib import Path

from rk.core.result import Err, Ok, Result
from rk.platform.files import atomic_write_text
from rk.services.release.errors import ReleaseError
from rk.services.release.orchestrator import BranchOutcome, ReleaseRunReport

REPORT_SCHEMA = 1


def _error_dict(error: ReleaseError | None) -> dict[str, object] | None:
    if error is None:
        return None
    return {"kind": error.kind, "message": error.message, "hint": error.hint}


def _branch_dict(b: BranchOutcome) -> dict[str, object]:
    return {
        "state": b.state,
        "summary": b.summary,
        "error": _error_dict(b.error),
        "platform_failures": [
            {"platform": f.platform, "error": _error_dict(f.error)} for f in b.failures
        ],
    }


def report_to_dict(report: ReleaseRunReport) -> dict[str, object]:
    out: dict[str, object] = {
        "schema": REPORT_SCHEMA,
        "run_id": report.run_id,
        "bump": report.request.bump,
        "state": report.state,
        "dry_run": report.dry_run,
        "started_at": report.started_at,
        "finished_at": report.finished_at,
        "error": _error_dict(report.error),
    }

    if report.current is not None:
        out["previous"] = {
            "app_version": report.current.app_version,
            "chart_version": report.current.chart_version,
        }
    if report.versions is not None:
        out["versions"] = {
            "app_version": report.versions.app_version,
            "chart_version": report.versions.chart_version,
            "tag": report.versions.tag,
        }
    if report.pinned is not None:
        out["commit"] = {
            "sha": report.pinned.sha,
            "branch": report.pinned.branch,
            "on_mainline": report.pinned.on_mainline,
        }

    out["branches"] = {b.name: _branch_dict(b) for b in report.branches}

    if report.release is not None:
        out["release"] = {
            "tag": report.release.tag,
            "commit_sha": report.release.commit_sha,
            "latest": report.release.latest,
            "url": report.release.url,
            "artifacts": [
                {"name": a.name, "platform": a.platform, "sha256": a.sha256}
                for a in report.release.artifacts
            ],
        }
    if report.image is not None:
        out["image"] = {
            "references": report.image.tags.references(),
            "digests": {d.platform: d.digest for d in report.image.digests},
            "failed_platforms": [f.platform for f in report.image.failures],
        }
    if report.chart is not None:
        out["chart"] = {
            "name": report.chart.name,
            "version": report.chart.version,
            "app_version": report.chart.app_version,
            "commit_sha": report.chart.commit_sha,
            "reference": report.chart.reference,
        }
    return out


def write_run_report(path: Path, report: ReleaseRunReport) -> Result[Path, ReleaseError]:
    """Persist the terminal state of a run as JSON (``.releasekit/runs/<run_id>.json``)."""
    text = json.dumps(report_to_dict(report), indent=2, sort_keys=True) + "\n"
    try:
        atomic_write_text(path, text, encoding="utf-8")
    except OSError as e:
        return Err(
            ReleaseError(
                kind="io_failed",
                message=f"failed to write run report: {e}",
                hint=str(path),
            )
        )
    return Ok(path)
