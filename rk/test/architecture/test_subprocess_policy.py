from __future__ import annotations

from ._gate import require_arch_checks_enabled
from ._utils import iter_python_files, matches_prefix, parse_imports, rk_root


def test_subprocess_is_only_imported_by_the_process_runner() -> None:
    require_arch_checks_enabled()

    root = rk_root()
    allowlist = {"platform/process.py"}

    offenders: list[str] = []
    for file_path in iter_python_files(root):
        rel = file_path.relative_to(root)
        if rel.as_posix() in allowlist:
            continue
        for item in parse_imports(file_path):
            if matches_prefix(item.module, "subprocess"):
                offenders.append(f"{rel}:{item.line}: direct subprocess import")

    assert not offenders, "Subprocess policy violations:\n" + "\n".join(offenders)
