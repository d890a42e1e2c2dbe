from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ReleaseErrorKind = Literal[
    "invalid_version_format",
    "version_not_found",
    "concurrent_modification",
    "incomplete_artifact_set",
    "duplicate_release",
    "artifact_exists",
    "chart_exists",
    "build_failed",
    "push_failed",
    "git_failed",
    "gh_missing",
    "gh_auth_required",
    "tool_missing",
    "config_invalid",
    "io_failed",
    "invalid_input",
    "branch_crashed",
]


@dataclass(frozen=True, slots=True)
class ReleaseError:
    """Canonical release error payload.

    Stable across stages so that the orchestrator and the CLI can record and
    render it without knowing which adapter produced it.
    """

    kind: ReleaseErrorKind
    message: str
    hint: str | None = None

    def pretty(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message
