"""Core types shared by every layer."""

from .config import ConfigError, load_toml
from .errors import ErrorCode
from .result import Err, Ok, Result, is_err, is_ok, partition
from .workspace import Project, ProjectError, detect_project

__all__ = [
    # config
    "ConfigError",
    "load_toml",
    # errors
    "ErrorCode",
    # result
    "Err",
    "Ok",
    "Result",
    "is_err",
    "is_ok",
    "partition",
    # workspace
    "Project",
    "ProjectError",
    "detect_project",
]
