"""Process and filesystem primitives."""

from rk.platform.files import atomic_copy, atomic_write_text, sha256_file
from rk.platform.process import ProcessError, run

__all__ = [
    "ProcessError",
    "atomic_copy",
    "atomic_write_text",
    "run",
    "sha256_file",
]
