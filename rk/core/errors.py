"""Exit codes for the rk CLI.

These values are used as process exit codes and must remain stable:
scripts that trigger releases branch on them.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands.

    - 0: Success
    - 1: User error (bad input, invalid version files)
    - 2: Environment error (missing gh/git/docker/helm, auth, config)
    - 3: Build error (a platform binary failed to build)
    - 4: Publish error (release, registry or network failure)
    - 5: I/O error (file not found, permission denied)
    - 6: Conflict (mainline moved, release already exists)
    """

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    BUILD_ERROR = 3
    PUBLISH_ERROR = 4
    IO_ERROR = 5
    CONFLICT = 6

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK
