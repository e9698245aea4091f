"""GitHub workflow command helpers.

Everything the tool prints goes through ``typer.echo`` so the runner can
pick up ``::group::`` and ``::warning::`` markers from stdout.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import typer


def _escape_data(text: str) -> str:
    return text.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def info(message: str) -> None:
    typer.echo(message)


def warning(message: str) -> None:
    typer.echo(f"::warning::{_escape_data(message)}")


def error(message: str) -> None:
    typer.echo(f"::error::{_escape_data(message)}")


@contextmanager
def group(title: str) -> Iterator[None]:
    typer.echo(f"::group::{_escape_data(title)}")
    try:
        yield
    finally:
        typer.echo("::endgroup::")
