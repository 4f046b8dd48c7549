"""Shared typer helpers for the kroki-embed CLI."""

from __future__ import annotations

from collections.abc import Callable

import typer


def create_cli(name: str, help_text: str, **kwargs: object) -> typer.Typer:
    """Create a typer app with the project's defaults."""
    return typer.Typer(
        name=name,
        help=help_text,
        add_completion=False,
        pretty_exceptions_show_locals=False,
        **kwargs,  # type: ignore[arg-type]
    )


def version_callback(name: str, version: str) -> Callable[[bool | None], None]:
    """Build an eager ``--version`` callback printing ``<name> <version>``."""

    def _callback(value: bool | None) -> None:
        if value:
            typer.echo(f"{name} {version}")
            raise typer.Exit()

    return _callback
