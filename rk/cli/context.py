from __future__ import annotations

from dataclasses import dataclass

import typer

from rk.core.errors import ErrorCode
from rk.core.result import Err
from rk.core.workspace import Project, detect_project
from rk.output.console import ConsoleProtocol, RichConsole
from rk.services.release.config import ReleaseConfig, load_release_config


@dataclass(frozen=True, slots=True)
class CLIContext:
    project: Project
    config: ReleaseConfig
    console: ConsoleProtocol


def build_context() -> CLIContext:
    project_result = detect_project()
    if isinstance(project_result, Err):
        typer.echo(f"error: {project_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

    project = project_result.value
    config_result = load_release_config(repo_root=project.root)
    if isinstance(config_result, Err):
        typer.echo(f"error: {config_result.error.pretty()}", err=True)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

    return CLIContext(
        project=project,
        config=config_result.value,
        console=RichConsole(),
    )
