from __future__ import annotations

import re
from dataclasses import replace
from pathlib import Path

from rk.core.result import Err, Ok, Result
from rk.git.repository import GitError, Repository
from rk.output.console import ConsoleProtocol, Style
from rk.services.release.errors import ReleaseError
from rk.services.release.model import PinnedCommit

DRY_RUN_SHA = "0" * 40

_SHA_RE = re.compile(r"^[0-9a-f]{40}$")
_REJECTED_MARKERS = (
    "non-fast-forward",
    "fetch first",
    "[rejected]",
    "stale info",
    "updates were rejected",
)


def bump_commit_message(app_version: str) -> str:
    return f"Bump version to {app_version}"


class CommitPublisher:
    """Lands the version bump on mainline as one commit and returns its sha.

    The commit is the single write of the run. Nothing downstream starts
    unless this returns Ok, and a moved mainline is never merged or retried:
    it fails the run with ``concurrent_modification``.
    """

    def __init__(
        self,
        repo: Repository,
        *,
        mainline: str,
        remote: str,
        console: ConsoleProtocol,
        dry_run: bool,
    ) -> None:
        self._repo = repo
        self._mainline = mainline
        self._remote = remote
        self._console = console
        self._dry_run = dry_run

    @property
    def upstream(self) -> str:
        return f"{self._remote}/{self._mainline}"

    def ensure_fresh_mainline(self) -> Result[str, ReleaseError]:
        """Check the checkout sits exactly on the remote mainline head.

        Called before the version files are read, and again before
        committing: files read from a stale or diverged checkout would
        produce a bump that skips or repeats a version.
        """
        self._console.print(f"git fetch {self._remote} {self._mainline}", Style.DIM)
        if self._dry_run:
            return Ok(DRY_RUN_SHA)

        branch = self._repo.current_branch()
        if branch != self._mainline:
            return Err(
                ReleaseError(
                    kind="invalid_input",
                    message=f"release must run from {self._mainline} (on: {branch or 'detached HEAD'})",
                    hint=f"git checkout {self._mainline}",
                )
            )

        fetched = self._repo.fetch_branch(self._remote, self._mainline)
        if isinstance(fetched, Err):
            return Err(_git_failed("git fetch failed", fetched.error))

        head = self._repo.rev_parse("HEAD")
        if isinstance(head, Err):
            return Err(_git_failed("failed to resolve HEAD", head.error))
        remote_head = self._repo.rev_parse(self.upstream)
        if isinstance(remote_head, Err):
            return Err(_git_failed(f"failed to resolve {self.upstream}", remote_head.error))

        if head.value != remote_head.value:
            behind = self._repo.is_ancestor(head.value, self.upstream)
            if isinstance(behind, Ok) and behind.value:
                sync = f"git pull --ff-only {self._remote} {self._mainline}"
            else:
                sync = f"local commits are not on {self.upstream}; push or drop them"
            return Err(
                ReleaseError(
                    kind="concurrent_modification",
                    message=f"local {self._mainline} is not at {self.upstream}",
                    hint=(
                        f"HEAD={head.value[:12]} {self.upstream}={remote_head.value[:12]}; "
                        f"{sync}, then re-trigger the release"
                    ),
                )
            )
        return Ok(head.value)

    def ensure_clean(self, files: list[Path]) -> Result[None, ReleaseError]:
        """The declared version files must carry no local edits before the bump."""
        if self._dry_run:
            return Ok(None)
        rels = [str(p.relative_to(self._repo.path)) for p in files]
        dirty = self._repo.dirty_paths(rels)
        if isinstance(dirty, Err):
            return Err(_git_failed("git status failed", dirty.error))
        if dirty.value:
            return Err(
                ReleaseError(
                    kind="invalid_input",
                    message=f"version files have local changes: {', '.join(dirty.value)}",
                    hint="Commit or discard them, then re-trigger the release",
                )
            )
        return Ok(None)

    def publish(self, changed_files: list[Path], message: str) -> Result[PinnedCommit, ReleaseError]:
        rels = [str(p.relative_to(self._repo.path)) for p in changed_files]
        if not rels:
            return Err(
                ReleaseError(
                    kind="invalid_input",
                    message="no version files changed; nothing to commit",
                    hint="The bumped version equals the current one",
                )
            )

        self._console.print(f"git add -- {' '.join(rels)}", Style.DIM)
        self._console.print(f"git commit --only -m {message!r}", Style.DIM)
        self._console.print(f"git push {self._remote} HEAD:{self._mainline}", Style.DIM)
        if self._dry_run:
            return Ok(PinnedCommit(sha=DRY_RUN_SHA, branch=self._mainline, on_mainline=True))

        fresh = self.ensure_fresh_mainline()
        if isinstance(fresh, Err):
            return Err(self._rollback(rels, None, fresh.error))
        base = fresh.value

        added = self._repo.add(rels)
        if isinstance(added, Err):
            return Err(self._rollback(rels, None, _git_failed("git add failed", added.error)))

        committed = self._repo.commit_only(rels, message)
        if isinstance(committed, Err):
            hint = committed.error.message or "Configure git user.name/user.email, then retry."
            error = ReleaseError(kind="git_failed", message="git commit failed", hint=hint)
            return Err(self._rollback(rels, None, error))

        head = self._repo.rev_parse("HEAD")
        if isinstance(head, Err):
            error = _git_failed("failed to read bump commit sha", head.error)
            return Err(self._rollback(rels, base, error))
        sha = head.value
        if _SHA_RE.match(sha) is None:
            error = ReleaseError(kind="git_failed", message="invalid bump commit sha", hint=sha)
            return Err(self._rollback(rels, base, error))

        pushed = self._repo.push(self._remote, f"HEAD:refs/heads/{self._mainline}")
        if isinstance(pushed, Err):
            if _is_rejected_push(pushed.error):
                error = ReleaseError(
                    kind="concurrent_modification",
                    message=f"{self.upstream} advanced while releasing; push rejected",
                    hint=f"Local commit {sha[:12]} was not published. Re-trigger the release.",
                )
            else:
                error = _git_failed("git push failed", pushed.error)
            return Err(self._rollback(rels, base, error))

        return Ok(PinnedCommit(sha=sha, branch=self._mainline, on_mainline=True))

    def _rollback(self, rels: list[str], base: str | None, error: ReleaseError) -> ReleaseError:
        """Undo the bump so the next run starts from a clean mainline checkout.

        Before the commit exists only the version files are restored. Once
        it exists, the branch is moved back to ``base`` with ``reset --keep``
        so unrelated local edits survive.
        """
        if base is None:
            undone = self._repo.restore_paths(rels)
            manual = f"git checkout HEAD -- {' '.join(rels)}"
        else:
            undone = self._repo.reset_keep(base)
            manual = f"git reset --keep {base}"
        if isinstance(undone, Err):
            detail = f"rollback failed ({undone.error.message}); run: {manual}"
            return replace(error, hint=f"{error.hint}; {detail}" if error.hint else detail)
        self._console.warning("version bump rolled back")
        return error


def _is_rejected_push(error: GitError) -> bool:
    text = error.message.lower()
    return any(marker in text for marker in _REJECTED_MARKERS)


def _git_failed(message: str, error: GitError) -> ReleaseError:
    return ReleaseError(kind="git_failed", message=message, hint=error.message or None)
