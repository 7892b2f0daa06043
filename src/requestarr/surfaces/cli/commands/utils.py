from __future__ import annotations

import importlib.metadata
from typing import NoReturn, Optional

import typer


def get_requestarr_version() -> str:
    try:
        return importlib.metadata.version("requestarr")
    except importlib.metadata.PackageNotFoundError:
        from .... import __version__

        return __version__


def raise_exit(message: str, *, cause: Optional[BaseException] = None) -> NoReturn:
    typer.echo(message, err=True)
    if cause is not None:
        raise typer.Exit(code=1) from cause
    raise typer.Exit(code=1)
