"""Run and branch lifecycles.

A run moves ``pending -> version_bumped -> committed -> running`` and ends in
``completed`` or ``failed``. Both terminal states are final: a failed run is
never resumed, a new run re-derives everything from scratch.

Branches (``release``, ``image``, ``chart``) start only once the run is
``running`` and each ends ``succeeded``, ``failed`` or ``skipped``.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import Literal

from rk.services.release.errors import ReleaseError

RunState = Literal["pending", "version_bumped", "committed", "running", "completed", "failed"]
BranchName = Literal["release", "image", "chart"]
BranchState = Literal["pending", "running", "succeeded", "failed", "skipped"]

BRANCHES: tuple[BranchName, ...] = ("release", "image", "chart")

RUN_TRANSITIONS: Mapping[RunState, frozenset[RunState]] = {
    "pending": frozenset({"version_bumped", "failed"}),
    "version_bumped": frozenset({"committed", "failed"}),
    "committed": frozenset({"running", "failed"}),
    "running": frozenset({"completed", "failed"}),
    "completed": frozenset(),
    "failed": frozenset(),
}

BRANCH_TRANSITIONS: Mapping[BranchState, frozenset[BranchState]] = {
    "pending": frozenset({"running", "skipped"}),
    "running": frozenset({"succeeded", "failed"}),
    "succeeded": frozenset(),
    "failed": frozenset(),
    "skipped": frozenset(),
}


class RunProgress:
    """Thread-safe record of where one run is.

    Branch workers update their own entry concurrently; an illegal
    transition is a programming error and raises ``ValueError``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state: RunState = "pending"
        self._branches: dict[BranchName, BranchState] = {b: "pending" for b in BRANCHES}
        self._errors: dict[BranchName, ReleaseError] = {}
        self._run_error: ReleaseError | None = None

    @property
    def state(self) -> RunState:
        with self._lock:
            return self._state

    @property
    def error(self) -> ReleaseError | None:
        with self._lock:
            return self._run_error

    def branches(self) -> dict[BranchName, BranchState]:
        with self._lock:
            return dict(self._branches)

    def branch_errors(self) -> dict[BranchName, ReleaseError]:
        with self._lock:
            return dict(self._errors)

    def advance(self, target: RunState) -> None:
        with self._lock:
            if target not in RUN_TRANSITIONS[self._state]:
                raise ValueError(f"illegal run transition: {self._state} -> {target}")
            if target == "running" and any(s != "pending" for s in self._branches.values()):
                raise ValueError("branches moved before the run started")
            self._state = target

    def fail(self, error: ReleaseError) -> None:
        with self._lock:
            if "failed" not in RUN_TRANSITIONS[self._state]:
                raise ValueError(f"illegal run transition: {self._state} -> failed")
            self._state = "failed"
            self._run_error = error

    def move_branch(
        self, branch: BranchName, target: BranchState, error: ReleaseError | None = None
    ) -> None:
        with self._lock:
            if self._state != "running":
                raise ValueError(f"branch {branch} moved while run is {self._state}")
            current = self._branches[branch]
            if target not in BRANCH_TRANSITIONS[current]:
                raise ValueError(f"illegal {branch} transition: {current} -> {target}")
            self._branches[branch] = target
            if error is not None:
                self._errors[branch] = error
