from __future__ import annotations

import shutil
from pathlib import Path

from rk.core.result import Err, Ok, Result
from rk.git.repository import Repository
from rk.output.console import ConsoleProtocol, Style
from rk.services.release.errors import ReleaseError
from rk.services.release.model import PinnedCommit, PinnedSource


class WorktreeCheckouts:
    """Detached worktrees of the pinned commit, one per branch of a run.

    Branches never build from the main checkout or from a branch head: each
    gets ``<work_root>/<run_id>/<name>`` at exactly ``commit.sha``.
    """

    def __init__(
        self,
        repo: Repository,
        *,
        work_root: Path,
        console: ConsoleProtocol,
        dry_run: bool,
    ) -> None:
        self._repo = repo
        self._work_root = work_root
        self._console = console
        self._dry_run = dry_run

    def checkout(
        self, commit: PinnedCommit, *, run_id: str, name: str
    ) -> Result[PinnedSource, ReleaseError]:
        dest = self._work_root / run_id / name
        self._console.print(f"git worktree add --detach {dest} {commit.short_sha}", Style.DIM)
        if self._dry_run:
            return Ok(PinnedSource(commit=commit, root=self._repo.path))

        dest.parent.mkdir(parents=True, exist_ok=True)
        added = self._repo.add_worktree(dest, commit.sha)
        if isinstance(added, Err):
            return Err(
                ReleaseError(
                    kind="git_failed",
                    message=f"failed to check out {commit.short_sha} for {name}",
                    hint=added.error.message,
                )
            )

        head = Repository(dest).rev_parse("HEAD")
        if isinstance(head, Err) or head.value != commit.sha:
            self.release(PinnedSource(commit=commit, root=dest))
            return Err(
                ReleaseError(
                    kind="git_failed",
                    message=f"checkout for {name} is not at {commit.short_sha}",
                    hint=str(dest),
                )
            )
        return Ok(PinnedSource(commit=commit, root=dest))

    def release(self, source: PinnedSource) -> None:
        if self._dry_run or source.root == self._repo.path:
            return
        removed = self._repo.remove_worktree(source.root)
        if isinstance(removed, Err):
            self._console.warning(f"failed to remove worktree {source.root}: {removed.error.message}")
            shutil.rmtree(source.root, ignore_errors=True)

    def cleanup(self, run_id: str) -> None:
        if self._dry_run:
            return
        shutil.rmtree(self._work_root / run_id, ignore_errors=True)
