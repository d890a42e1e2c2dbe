from __future__ import annotations

import shutil
from collections.abc import Sequence
from pathlib import Path
from time import sleep

from rk.core.result import Err, Ok, Result
from rk.platform.process import ProcessError
from rk.platform.process import run as run_process
from rk.services.release.errors import ReleaseError, ReleaseErrorKind
from rk.services.release.timeouts import (
    GH_READ_RETRY_ATTEMPTS,
    GH_READ_RETRY_DELAY_SECONDS,
    GH_TIMEOUT_SECONDS,
    GH_UPLOAD_TIMEOUT_SECONDS,
)

_NOT_FOUND_MARKERS = ("release not found", "not found", "http 404")
_ALREADY_EXISTS_MARKERS = ("already exists", "already_exists")


def _is_transient_gh_error(error: ProcessError) -> bool:
    text = f"{error.stderr}\n{error.stdout}".lower()
    markers = (
        "timed out",
        "timeout",
        "connection reset",
        "connection refused",
        "temporarily unavailable",
        "service unavailable",
        "bad gateway",
        "gateway timeout",
        "tls handshake timeout",
        "network is unreachable",
        "http 429",
        "http 500",
        "http 502",
        "http 503",
        "http 504",
    )
    if error.returncode == -1 and "timed out" in text:
        return True
    return any(marker in text for marker in markers)


def _is_not_found(error: ProcessError) -> bool:
    text = f"{error.stderr}\n{error.stdout}".lower()
    return any(marker in text for marker in _NOT_FOUND_MARKERS)


def run_gh_read(
    *,
    workspace_root: Path,
    cmd: list[str],
    kind: ReleaseErrorKind,
    message: str,
    hint: str | None = None,
    timeout: float = GH_TIMEOUT_SECONDS,
    retry_attempts: int = GH_READ_RETRY_ATTEMPTS,
) -> Result[str, ProcessError | ReleaseError]:
    """Run an idempotent gh query, retrying transient network failures.

    A non-transient failure is returned as the raw ``ProcessError`` so callers
    can tell "not found" from a real error; exhausted retries become a
    ``ReleaseError`` of ``kind``.
    """
    attempts = max(1, retry_attempts)
    last: ProcessError | None = None
    for attempt in range(attempts):
        result = run_process(cmd, cwd=workspace_root, timeout=timeout)
        if isinstance(result, Ok):
            return result

        last = result.error
        if not _is_transient_gh_error(last):
            return Err(last)
        if attempt < attempts - 1:
            sleep(GH_READ_RETRY_DELAY_SECONDS * (attempt + 1))

    detail = last.detail() if last is not None else None
    return Err(ReleaseError(kind=kind, message=message, hint=detail or hint))


def ensure_gh_available() -> Result[None, ReleaseError]:
    if shutil.which("gh") is None:
        return Err(
            ReleaseError(
                kind="gh_missing",
                message="gh: missing",
                hint="Install GitHub CLI: https://cli.github.com/",
            )
        )
    return Ok(None)


def ensure_gh_auth(*, workspace_root: Path) -> Result[None, ReleaseError]:
    result = run_process(["gh", "auth", "status"], cwd=workspace_root, timeout=GH_TIMEOUT_SECONDS)
    if isinstance(result, Err):
        return Err(
            ReleaseError(
                kind="gh_auth_required",
                message="gh auth required",
                hint="Run: gh auth login",
            )
        )
    return Ok(None)


def _gh_entity_exists(
    *, workspace_root: Path, cmd: list[str], what: str, repo: str
) -> Result[bool, ReleaseError]:
    result = run_gh_read(
        workspace_root=workspace_root,
        cmd=cmd,
        kind="push_failed",
        message=f"failed to query {what}",
        hint=repo,
    )
    match result:
        case Ok(_):
            return Ok(True)
        case Err(ProcessError() as e) if _is_not_found(e):
            return Ok(False)
        case Err(ProcessError() as e):
            return Err(
                ReleaseError(
                    kind="push_failed",
                    message=f"failed to query {what}",
                    hint=e.detail() or repo,
                )
            )
        case Err(ReleaseError() as e):
            return Err(e)
    return Err(ReleaseError(kind="push_failed", message=f"failed to query {what}"))


def release_exists(*, workspace_root: Path, repo: str, tag: str) -> Result[bool, ReleaseError]:
    """True if a release (draft or published) already carries ``tag``."""
    return _gh_entity_exists(
        workspace_root=workspace_root,
        cmd=["gh", "release", "view", tag, "--repo", repo, "--json", "tagName"],
        what=f"release {tag}",
        repo=repo,
    )


def tag_exists(*, workspace_root: Path, repo: str, tag: str) -> Result[bool, ReleaseError]:
    """True if ``refs/tags/<tag>`` exists on GitHub, with or without a release.

    ``git/ref`` (singular) only answers exact matches, so ``v1.5`` never
    matches ``v1.5.0``.
    """
    return _gh_entity_exists(
        workspace_root=workspace_root,
        cmd=["gh", "api", f"repos/{repo}/git/ref/tags/{tag}", "--jq", ".ref"],
        what=f"tag {tag}",
        repo=repo,
    )


def create_release(
    *,
    workspace_root: Path,
    repo: str,
    tag: str,
    target_sha: str,
    title: str,
    notes: str,
    latest: bool,
    files: Sequence[Path],
) -> Result[str, ReleaseError]:
    """Create a release for ``tag`` at ``target_sha`` and upload ``files``.

    Not retried. An "already exists" answer from gh maps to
    ``duplicate_release``.
    """
    cmd = [
        "gh",
        "release",
        "create",
        tag,
        "--repo",
        repo,
        "--target",
        target_sha,
        "--title",
        title,
        "--generate-notes",
        "--notes",
        notes,
        "--latest" if latest else "--latest=false",
        *(str(f) for f in files),
    ]
    result = run_process(cmd, cwd=workspace_root, timeout=GH_UPLOAD_TIMEOUT_SECONDS)
    if isinstance(result, Ok):
        return Ok(result.value.strip())

    error = result.error
    text = f"{error.stderr}\n{error.stdout}".lower()
    if any(marker in text for marker in _ALREADY_EXISTS_MARKERS):
        return Err(
            ReleaseError(
                kind="duplicate_release",
                message=f"release already exists: {tag}",
                hint="Published releases are never overwritten; bump again instead.",
            )
        )
    return Err(
        ReleaseError(
            kind="push_failed",
            message=f"gh release create failed: {tag}",
            hint=error.detail(),
        )
    )
