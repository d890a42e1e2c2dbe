from __future__ import annotations

import shutil
from collections.abc import Callable, Sequence
from pathlib import Path

from rk.core.result import Err, Ok, Result
from rk.services.release import gh
from rk.services.release.config import ReleaseConfig, require_repo
from rk.services.release.errors import ReleaseError

Check = Callable[[], Result[None, ReleaseError]]

_INSTALL_HINTS = {
    "git": "Install git: https://git-scm.com/downloads",
    "cargo": "Install Rust: https://rustup.rs/",
}


def ensure_tool(name: str) -> Result[None, ReleaseError]:
    if shutil.which(name) is None:
        return Err(
            ReleaseError(
                kind="tool_missing",
                message=f"{name}: missing",
                hint=_INSTALL_HINTS.get(name, f"Install {name} and make sure it is on PATH"),
            )
        )
    return Ok(None)


def release_checks(cfg: ReleaseConfig, *, repo_root: Path) -> list[Check]:
    """Checks that must pass before the version bump touches mainline.

    Only the release branch is strict, so only what it needs is required
    here: git, the build tool, the GitHub CLI and its auth. A missing docker
    or helm fails the image or chart branch on its own.
    """

    def repo_configured() -> Result[None, ReleaseError]:
        repo = require_repo(cfg)
        if isinstance(repo, Err):
            return repo
        return Ok(None)

    return [
        repo_configured,
        lambda: ensure_tool("git"),
        lambda: ensure_tool(cfg.build_command[0]),
        gh.ensure_gh_available,
        lambda: gh.ensure_gh_auth(workspace_root=repo_root),
    ]


def run_checks(checks: Sequence[Check]) -> Result[None, ReleaseError]:
    for check in checks:
        result = check()
        if isinstance(result, Err):
            return result
    return Ok(None)
