from __future__ import annotations

import json
from pathlib import Path

from rk.core.result import Err, Ok
from rk.services.release.artifacts import PlatformFailure
from rk.services.release.errors import ReleaseError
from rk.services.release.image import ImagePublishResult, PlatformDigest, derive_image_tags
from rk.services.release.model import PinnedCommit, ReleaseRequest, VersionPair
from rk.services.release.orchestrator import BranchOutcome, ReleaseRunReport
from rk.services.release.report import REPORT_SCHEMA, report_to_dict, write_run_report

SHA = "3f2a9c1e" + "0" * 32


def _report() -> ReleaseRunReport:
    pinned = PinnedCommit(sha=SHA, branch="main", on_mainline=True)
    failure = PlatformFailure(
        platform="linux/arm64", error=ReleaseError(kind="push_failed", message="denied")
    )
    image = ImagePublishResult(
        tags=derive_image_tags("ghcr.io/acme/magicentry", SHA, "1.5.0", on_mainline=True),
        digests=(PlatformDigest(platform="linux/amd64", digest="sha256:" + "1" * 64),),
        failures=(failure,),
    )
    return ReleaseRunReport(
        run_id="20261019T120000Z-deadbeef",
        request=ReleaseRequest(bump="minor"),
        state="completed",
        dry_run=False,
        started_at="2026-10-19T12:00:00+00:00",
        finished_at="2026-10-19T12:20:00+00:00",
        current=VersionPair(app_version="1.4.9", chart_version="0.3.2"),
        versions=VersionPair(app_version="1.5.0", chart_version="0.3.3"),
        pinned=pinned,
        branches=(
            BranchOutcome(name="release", state="succeeded", summary="v1.5.0"),
            BranchOutcome(
                name="image", state="failed", error=image.error(), failures=(failure,)
            ),
            BranchOutcome(name="chart", state="skipped"),
        ),
        image=image,
    )


def test_report_to_dict() -> None:
    data = report_to_dict(_report())

    assert data["schema"] == REPORT_SCHEMA
    assert data["bump"] == "minor"
    assert data["previous"] == {"app_version": "1.4.9", "chart_version": "0.3.2"}
    assert data["commit"] == {"sha": SHA, "branch": "main", "on_mainline": True}
    branches = data["branches"]
    assert isinstance(branches, dict)
    assert branches["image"]["platform_failures"] == [
        {"platform": "linux/arm64", "error": {"kind": "push_failed", "message": "denied", "hint": None}}
    ]
    assert branches["chart"] == {
        "state": "skipped",
        "summary": None,
        "error": None,
        "platform_failures": [],
    }
    assert data["image"] == {
        "references": [
            "ghcr.io/acme/magicentry:latest",
            "ghcr.io/acme/magicentry:sha-3f2a9c1",
            "ghcr.io/acme/magicentry:v1.5.0",
        ],
        "digests": {"linux/amd64": "sha256:" + "1" * 64},
        "failed_platforms": ["linux/arm64"],
    }
    assert "release" not in data
    assert "chart" not in data


def test_write_run_report(tmp_path: Path) -> None:
    path = tmp_path / ".releasekit" / "runs" / "r.json"

    result = write_run_report(path, _report())

    assert result == Ok(path)
    assert json.loads(path.read_text(encoding="utf-8"))["state"] == "completed"


def test_write_run_report_io_error(tmp_path: Path) -> None:
    blocker = tmp_path / "runs"
    blocker.write_text("not a directory", encoding="utf-8")

    result = write_run_report(blocker / "r.json", _report())

    assert isinstance(result, Err)
    assert result.error.kind == "io_failed"
