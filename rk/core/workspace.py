"""Project root detection.

The project root is the nearest directory holding ``releasekit.toml`` or,
failing that, the nearest holding ``Cargo.toml``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .result import Err, Ok, Result

__all__ = [
    "ROOT_ENV_VAR",
    "ProjectError",
    "Project",
    "detect_project",
    "find_project_upward",
    "is_project_root",
]

ROOT_ENV_VAR = "RK_REPO_ROOT"
_MARKERS = ("releasekit.toml", "Cargo.toml")


@dataclass(frozen=True)
class ProjectError:
    """Error when the project root cannot be detected."""

    message: str
    searched_from: Path | None = None


@dataclass(frozen=True, slots=True)
class Project:
    root: Path

    @property
    def state_dir(self) -> Path:
        """Local state (.releasekit/), kept out of version control."""
        return self.root / ".releasekit"

    @property
    def runs_dir(self) -> Path:
        return self.state_dir / "runs"

    @property
    def work_dir(self) -> Path:
        """Pinned worktrees and collected artifacts of in-flight runs."""
        return self.state_dir / "work"

    def run_report_path(self, run_id: str) -> Path:
        return self.runs_dir / f"{run_id}.json"

    def __str__(self) -> str:
        return str(self.root)


def is_project_root(path: Path) -> bool:
    return any((path / marker).is_file() for marker in _MARKERS)


def find_project_upward(start: Path) -> Path | None:
    """Search upward from start for the nearest project root."""
    for parent in (start, *start.parents):
        if (parent / _MARKERS[0]).is_file():
            return parent
    for parent in (start, *start.parents):
        if is_project_root(parent):
            return parent
    return None


def detect_project(
    *,
    start_dir: Path | None = None,
    env_var: str = ROOT_ENV_VAR,
) -> Result[Project, ProjectError]:
    """Detect the project root.

    Detection order:
    1. ``RK_REPO_ROOT`` environment variable (if set, it must be valid)
    2. Search upward from start_dir (or cwd)
    """
    env_value = os.environ.get(env_var)
    if env_value:
        env_path = Path(env_value).expanduser().resolve()
        if env_path.is_dir() and is_project_root(env_path):
            return Ok(Project(root=env_path))
        return Err(
            ProjectError(
                message=f"${env_var} is set to '{env_value}' but it is not a project root",
                searched_from=env_path if env_path.is_dir() else None,
            )
        )

    search_start = (start_dir or Path.cwd()).resolve()
    found = find_project_upward(search_start)
    if found is None:
        return Err(
            ProjectError(
                message="Could not find project root (no releasekit.toml or Cargo.toml)",
                searched_from=search_start,
            )
        )
    return Ok(Project(root=found))
