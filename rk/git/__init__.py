"""Git operations.

Usage:
    from rk.git import Repository

    repo = Repository(Path("/path/to/repo"))
    sha = repo.rev_parse("origin/main")
"""

from rk.git.repository import GitError, Repository

__all__ = [
    "GitError",
    "Repository",
]
