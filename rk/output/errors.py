"""Error presentation utilities.

Centralized error formatting and exit code mapping for consistent UX.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rk.core.errors import ErrorCode
from rk.output.console import Style
from rk.services.release.errors import ReleaseError

if TYPE_CHECKING:
    from rk.output.console import ConsoleProtocol

__all__ = ["print_release_error", "release_error_exit_code"]


def print_release_error(error: ReleaseError, console: ConsoleProtocol) -> None:
    """Print a release error to console with appropriate formatting."""
    console.error(error.message)
    if error.hint:
        for line in error.hint.splitlines():
            console.print(f"  {line}", Style.DIM)


def release_error_exit_code(error: ReleaseError) -> int:
    """Get exit code for a release error."""
    match error.kind:
        case "invalid_version_format" | "version_not_found" | "invalid_input":
            return int(ErrorCode.USER_ERROR)
        case "gh_missing" | "gh_auth_required" | "tool_missing" | "config_invalid":
            return int(ErrorCode.ENV_ERROR)
        case "build_failed" | "incomplete_artifact_set":
            return int(ErrorCode.BUILD_ERROR)
        case "push_failed" | "git_failed" | "branch_crashed":
            return int(ErrorCode.PUBLISH_ERROR)
        case "io_failed" | "artifact_exists":
            return int(ErrorCode.IO_ERROR)
        case "concurrent_modification" | "duplicate_release" | "chart_exists":
            return int(ErrorCode.CONFLICT)
