"""Git repository abstraction.

All operations return Result types. The release pipeline only ever needs a
handful of plumbing commands: resolve a ref, fetch mainline, commit a fixed
file set, push, test ancestry, and check out an exact commit in a detached
worktree.

Usage:
    repo = Repository(Path("/path/to/repo"))

    match repo.rev_parse("HEAD"):
        case Ok(sha):
            print(sha)
        case Err(e):
            print(f"Error: {e.message}")
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from rk.core.result import Err, Ok, Result
from rk.platform.process import ProcessError
from rk.platform.process import run as run_process

_GIT_TIMEOUT_SECONDS = 30.0
_GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0
_NETWORK_COMMANDS = frozenset({"fetch", "pull", "push", "clone"})

__all__ = [
    "GitError",
    "Repository",
]


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git subcommand that failed
        message: Error message (stderr, else stdout)
        returncode: Process return code
    """

    command: str
    message: str
    returncode: int = 1


class Repository:
    """Single git repository (or worktree) at ``path``."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        """Check if this is a git repository or worktree (.git dir or file)."""
        return (self.path / ".git").exists()

    def current_branch(self) -> str | None:
        """Get current branch name; None if detached HEAD or error."""
        result = self._run(["rev-parse", "--abbrev-ref", "HEAD"])
        match result:
            case Ok(stdout):
                branch = stdout.strip()
                return None if branch == "HEAD" else branch
            case Err(_):
                return None

    def dirty_paths(self, paths: list[str]) -> Result[list[str], GitError]:
        """Paths among ``paths`` with uncommitted changes (staged or not)."""
        result = self._run(["status", "--porcelain=v1", "--", *paths])
        match result:
            case Err(e):
                return Err(self._error("status", e))
            case Ok(stdout):
                return Ok([line[3:] for line in stdout.splitlines() if len(line) > 3])

    def rev_parse(self, ref: str) -> Result[str, GitError]:
        """Resolve ``ref`` to a full commit sha."""
        result = self._run(["rev-parse", "--verify", f"{ref}^{{commit}}"])
        match result:
            case Err(e):
                return Err(self._error("rev-parse", e))
            case Ok(stdout):
                return Ok(stdout.strip())

    def fetch_branch(self, remote: str, branch: str) -> Result[None, GitError]:
        """Fetch one branch, updating ``<remote>/<branch>``."""
        refspec = f"+refs/heads/{branch}:refs/remotes/{remote}/{branch}"
        result = self._run(["fetch", remote, refspec])
        if isinstance(result, Err):
            return Err(self._error("fetch", result.error))
        return Ok(None)

    def is_ancestor(self, commit: str, ref: str) -> Result[bool, GitError]:
        """True if ``commit`` is reachable from ``ref``."""
        result = self._run(["merge-base", "--is-ancestor", commit, ref])
        match result:
            case Ok(_):
                return Ok(True)
            case Err(e) if e.returncode == 1:
                return Ok(False)
            case Err(e):
                return Err(self._error("merge-base", e))

    def add(self, paths: list[str]) -> Result[None, GitError]:
        result = self._run(["add", "--", *paths])
        if isinstance(result, Err):
            return Err(self._error("add", result.error))
        return Ok(None)

    def commit_only(self, paths: list[str], message: str) -> Result[None, GitError]:
        """Commit exactly ``paths``, ignoring anything else staged in the index."""
        result = self._run(["commit", "--only", "-m", message, "--", *paths])
        if isinstance(result, Err):
            return Err(self._error("commit", result.error))
        return Ok(None)

    def push(self, remote: str, refspec: str) -> Result[None, GitError]:
        result = self._run(["push", remote, refspec])
        if isinstance(result, Err):
            return Err(self._error("push", result.error))
        return Ok(None)

    def restore_paths(self, paths: list[str]) -> Result[None, GitError]:
        """Reset ``paths`` in the index and working tree to their HEAD content."""
        result = self._run(["checkout", "HEAD", "--", *paths])
        if isinstance(result, Err):
            return Err(self._error("checkout", result.error))
        return Ok(None)

    def reset_keep(self, commit: str) -> Result[None, GitError]:
        """Move the current branch back to ``commit``, keeping unrelated local edits."""
        result = self._run(["reset", "--keep", commit])
        if isinstance(result, Err):
            return Err(self._error("reset", result.error))
        return Ok(None)

    def add_worktree(self, dest: Path, commit: str) -> Result[Path, GitError]:
        """Check out ``commit`` (detached) into a new worktree at ``dest``."""
        result = self._run(["worktree", "add", "--detach", str(dest), commit])
        if isinstance(result, Err):
            return Err(self._error("worktree add", result.error))
        return Ok(dest)

    def remove_worktree(self, dest: Path) -> Result[None, GitError]:
        result = self._run(["worktree", "remove", "--force", str(dest)])
        if isinstance(result, Err):
            return Err(self._error("worktree remove", result.error))
        return Ok(None)

    def _error(self, command: str, e: ProcessError) -> GitError:
        return GitError(
            command=command,
            message=e.stderr.strip() or e.stdout.strip() or f"git {command} failed",
            returncode=e.returncode,
        )

    def _run(self, args: list[str]) -> Result[str, ProcessError]:
        """Run a git command in this repository."""
        command = args[0] if args else ""
        timeout = (
            _GIT_NETWORK_TIMEOUT_SECONDS if command in _NETWORK_COMMANDS else _GIT_TIMEOUT_SECONDS
        )
        return run_process(["git", "-C", str(self.path), *args], cwd=self.path, timeout=timeout)
