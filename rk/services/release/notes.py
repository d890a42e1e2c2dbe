from __future__ import annotations

from collections.abc import Sequence

from rk.services.release.model import Artifact, PinnedCommit, VersionPair


def _commit_url(repo: str, sha: str) -> str:
    return f"https://github.com/{repo}/commit/{sha}"


def render_release_notes(
    *,
    repo: str,
    versions: VersionPair,
    pinned: PinnedCommit,
    artifacts: Sequence[Artifact],
) -> str:
    """Preamble placed above the notes GitHub generates for the release."""
    lines: list[str] = []
    lines.append(f"Built from {pinned.sha} ({_commit_url(repo, pinned.sha)})")
    lines.append("")
    lines.append(f"Chart version: {versions.chart_version}")
    lines.append("")
    lines.append("## Binaries")
    for a in sorted(artifacts, key=lambda a: a.name):
        suffix = f" (sha256 {a.sha256})" if a.sha256 else ""
        lines.append(f"- {a.name}{suffix}")
    return "\n".join(lines) + "\n"
