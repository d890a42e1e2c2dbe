from __future__ import annotations

import re
from dataclasses import dataclass

from rk.core.result import Err, Ok, Result
from rk.services.release.errors import ReleaseError
from rk.services.release.model import BumpLevel

_VERSION_RE = re.compile(r"^v?(0|[1-9][0-9]*)\.(0|[1-9][0-9]*)\.(0|[1-9][0-9]*)$")


@dataclass(frozen=True, slots=True, order=True)
class SemVer:
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def bump(self, level: BumpLevel) -> SemVer:
        match level:
            case "major":
                return SemVer(self.major + 1, 0, 0)
            case "minor":
                return SemVer(self.major, self.minor + 1, 0)
            case "patch":
                return SemVer(self.major, self.minor, self.patch + 1)
            case _:
                raise AssertionError(f"unexpected bump level: {level}")


def parse_version(text: str) -> Result[SemVer, ReleaseError]:
    m = _VERSION_RE.match(text.strip())
    if m is None:
        return Err(
            ReleaseError(
                kind="invalid_version_format",
                message=f"not a MAJOR.MINOR.PATCH version: {text!r}",
                hint="Expected e.g. 1.4.9 (no pre-release or build suffix)",
            )
        )
    return Ok(SemVer(int(m.group(1)), int(m.group(2)), int(m.group(3))))


def bump_version(current: str, level: BumpLevel) -> Result[str, ReleaseError]:
    parsed = parse_version(current)
    if isinstance(parsed, Err):
        return parsed
    return Ok(str(parsed.value.bump(level)))
