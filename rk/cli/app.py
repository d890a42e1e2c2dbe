from __future__ import annotations

import os
from pathlib import Path

import typer

from rk import __version__
from rk.cli.commands.release_cmd import release_app
from rk.core.errors import ErrorCode
from rk.core.workspace import ROOT_ENV_VAR, is_project_root


app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Sub-apps
app.add_typer(release_app, name="release")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    repo: Path | None = typer.Option(
        None,
        "--repo",
        help="Project root (overrides auto detection)",
    ),
) -> None:
    del version
    if repo is not None:
        try:
            root = repo.expanduser().resolve()
        except OSError as e:
            typer.echo(f"error: invalid --repo: {e}", err=True)
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))

        if not root.is_dir() or not is_project_root(root):
            typer.echo(
                f"error: --repo '{root}' is not a project root "
                "(missing releasekit.toml and Cargo.toml)",
                err=True,
            )
            raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

        os.environ[ROOT_ENV_VAR] = str(root)


def main() -> None:
    app()
