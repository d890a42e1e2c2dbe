from __future__ import annotations

from pathlib import Path

import pytest

from rk.core.result import Err, Ok
from rk.platform.process import ProcessError
from rk.services.release import gh as gh_mod


def _err(*, stderr: str, returncode: int = 1) -> Err[ProcessError]:
    return Err(
        ProcessError(
            command=("gh", "release", "view", "v1.5.0"),
            returncode=returncode,
            stdout="",
            stderr=stderr,
        )
    )


def _no_sleep(seconds: float) -> None:
    del seconds


def test_release_exists_retries_transient_error(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    calls: list[list[str]] = []
    responses = [
        _err(stderr="HTTP 503 Service Unavailable"),
        Ok('{"tagName": "v1.5.0"}'),
    ]

    def fake_run(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        del cwd
        del timeout
        calls.append(cmd)
        return responses.pop(0)

    monkeypatch.setattr(gh_mod, "run_process", fake_run)
    monkeypatch.setattr(gh_mod, "sleep", _no_sleep)

    result = gh_mod.release_exists(workspace_root=tmp_path, repo="acme/magicentry", tag="v1.5.0")
    assert result == Ok(True)
    assert len(calls) == 2
    assert calls[0][:4] == ["gh", "release", "view", "v1.5.0"]


def test_release_exists_not_found_is_false(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    calls: list[list[str]] = []

    def fake_run(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        del cwd
        del timeout
        calls.append(cmd)
        return _err(stderr="release not found")

    monkeypatch.setattr(gh_mod, "run_process", fake_run)
    monkeypatch.setattr(gh_mod, "sleep", _no_sleep)

    result = gh_mod.release_exists(workspace_root=tmp_path, repo="acme/magicentry", tag="v1.5.0")
    assert result == Ok(False)
    assert len(calls) == 1


def test_tag_exists_queries_exact_ref(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    calls: list[list[str]] = []
    responses = [Ok("refs/tags/v1.5.0\n"), _err(stderr="gh: Not Found (HTTP 404)")]

    def fake_run(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        del cwd
        del timeout
        calls.append(cmd)
        return responses.pop(0)

    monkeypatch.setattr(gh_mod, "run_process", fake_run)
    monkeypatch.setattr(gh_mod, "sleep", _no_sleep)

    def lookup(tag: str):
        return gh_mod.tag_exists(workspace_root=tmp_path, repo="acme/magicentry", tag=tag)

    assert lookup("v1.5.0") == Ok(True)
    assert lookup("v1.6.0") == Ok(False)
    assert calls[0] == ["gh", "api", "repos/acme/magicentry/git/ref/tags/v1.5.0", "--jq", ".ref"]
    assert len(calls) == 2


def test_release_exists_exhausted_retries(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    calls: list[list[str]] = []

    def fake_run(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        del cwd
        del timeout
        calls.append(cmd)
        return _err(stderr="connection reset by peer")

    monkeypatch.setattr(gh_mod, "run_process", fake_run)
    monkeypatch.setattr(gh_mod, "sleep", _no_sleep)

    result = gh_mod.release_exists(workspace_root=tmp_path, repo="acme/magicentry", tag="v1.5.0")
    assert isinstance(result, Err)
    assert result.error.kind == "push_failed"
    assert len(calls) == gh_mod.GH_READ_RETRY_ATTEMPTS


def test_create_release_builds_command(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    seen: list[list[str]] = []

    def fake_run(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        del cwd
        assert timeout == gh_mod.GH_UPLOAD_TIMEOUT_SECONDS
        seen.append(cmd)
        return Ok("https://github.com/acme/magicentry/releases/tag/v1.5.0\n")

    monkeypatch.setattr(gh_mod, "run_process", fake_run)

    result = gh_mod.create_release(
        workspace_root=tmp_path,
        repo="acme/magicentry",
        tag="v1.5.0",
        target_sha="a" * 40,
        title="MagicEntry v1.5.0",
        notes="notes",
        latest=False,
        files=[tmp_path / "magicentry-amd64"],
    )

    assert result == Ok("https://github.com/acme/magicentry/releases/tag/v1.5.0")
    cmd = seen[0]
    assert cmd[cmd.index("--target") + 1] == "a" * 40
    assert "--latest=false" in cmd
    assert cmd[-1] == str(tmp_path / "magicentry-amd64")


def test_create_release_already_exists(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def fake_run(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        del cmd, cwd, timeout
        return _err(stderr="HTTP 422: Validation Failed (tag_name already_exists)")

    monkeypatch.setattr(gh_mod, "run_process", fake_run)

    result = gh_mod.create_release(
        workspace_root=tmp_path,
        repo="acme/magicentry",
        tag="v1.5.0",
        target_sha="a" * 40,
        title="t",
        notes="n",
        latest=True,
        files=[],
    )
    assert isinstance(result, Err)
    assert result.error.kind == "duplicate_release"


def test_ensure_gh_auth(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def fake_run(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        del cmd, cwd, timeout
        return _err(stderr="You are not logged into any GitHub hosts")

    monkeypatch.setattr(gh_mod, "run_process", fake_run)

    result = gh_mod.ensure_gh_auth(workspace_root=tmp_path)
    assert isinstance(result, Err)
    assert result.error.kind == "gh_auth_required"
