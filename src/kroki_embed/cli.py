"""CLI entry point for kroki-embed."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import typer
from rich.console import Console

import kroki_embed
from kroki_embed._cli import create_cli, version_callback
from kroki_embed.codec import decode, encode
from kroki_embed.config import KrokiConfig, load_config
from kroki_embed.errors import KrokiError
from kroki_embed.logging import configure_logging
from kroki_embed.models import DiagramSource, DiagramType

app = create_cli(
    "kroki-embed",
    "Resolve diagram sources into Kroki URLs, cached files or inline content.",
    no_args_is_help=True,
)

# Diagnostics go to stderr; stdout carries results only
_console = Console(stderr=True)


def _fail(message: str) -> None:
    _console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(1)


def _read_source(file: str) -> bytes:
    if file == "-":
        return sys.stdin.buffer.read()
    path = Path(file)
    if not path.exists():
        _fail(f"Diagram file not found: {file}")
    return path.read_bytes()


@app.callback()
def main(
    ctx: typer.Context,
    _version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback("kroki-embed", kroki_embed.__version__),
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", help="Log every fetch and cache decision."
    ),
) -> None:
    """Resolve diagram sources into Kroki URLs, cached files or inline content.

    Commands:
        types     - List supported diagram types
        encode    - Encode diagram text into a Kroki payload
        decode    - Decode a Kroki payload back into diagram text
        url       - Print the Kroki GET URL for a diagram file
        render    - Resolve a diagram into an embedding (JSON)
        validate  - Validate a configuration file
    """
    ctx.obj = {"verbose": verbose}
    # Quiet until a command has loaded its config
    configure_logging("DEBUG" if verbose else "WARNING")


def _apply_log_level(ctx: typer.Context, settings: KrokiConfig) -> None:
    """Switch to the configured log level; --verbose always wins."""
    verbose = bool(ctx.obj and ctx.obj.get("verbose"))
    configure_logging("DEBUG" if verbose else settings.log_level)


@app.command("types")
def list_types() -> None:
    """List supported diagram types."""
    for diagram_type in DiagramType:
        typer.echo(diagram_type.value)


@app.command("encode")
def encode_command(
    file: str = typer.Argument(..., help="Diagram file, or - for stdin."),
) -> None:
    """Encode diagram text into a Kroki payload."""
    typer.echo(encode(_read_source(file)))


@app.command("decode")
def decode_command(
    payload: str = typer.Argument(..., help="Encoded Kroki payload."),
) -> None:
    """Decode a Kroki payload back into diagram text."""
    try:
        text = decode(payload)
    except KrokiError as e:
        _fail(str(e))
    typer.echo(text.decode("utf-8", "replace"), nl=False)


@app.command("url")
def url_command(
    diagram_type: str = typer.Argument(..., help="Diagram type, e.g. plantuml."),
    file: str = typer.Argument(..., help="Diagram file, or - for stdin."),
    output_format: str = typer.Option("svg", "--format", "-f", help="Output format."),
    server_url: str = typer.Option(
        "https://kroki.io", "--server-url", help="Kroki server base URL."
    ),
) -> None:
    """Print the Kroki GET URL for a diagram file."""
    from kroki_embed.request import build_request

    try:
        source = DiagramSource(
            DiagramType.parse(diagram_type), _read_source(file), output_format
        )
    except KrokiError as e:
        _fail(str(e))
    typer.echo(build_request(server_url, source).url)


@app.command("render")
def render_command(
    ctx: typer.Context,
    diagram_type: str = typer.Argument(..., help="Diagram type, e.g. plantuml."),
    file: str = typer.Argument(..., help="Diagram file, or - for stdin."),
    output_format: str | None = typer.Option(
        None, "--format", "-f", help="Output format (default from config)."
    ),
    name: str | None = typer.Option(
        None, "--name", "-n", help="Explicit diagram name for the cached file."
    ),
    fetch: bool = typer.Option(
        False, "--fetch", help="Fetch and cache the diagram (kroki-fetch-diagram)."
    ),
    inline: bool = typer.Option(False, "--inline", help="Inline SVG markup."),
    interactive: bool = typer.Option(
        False, "--interactive", help="Embed as an interactive object."
    ),
    use_data_uri: bool = typer.Option(
        False, "--data-uri", help="Embed as a data URI (implies allow-uri-read)."
    ),
    imagesdir: str | None = typer.Option(
        None, "--imagesdir", help="Directory for cached diagrams."
    ),
    server_url: str | None = typer.Option(
        None, "--server-url", help="Kroki server base URL."
    ),
    role: list[str] = typer.Option(
        [], "--role", help="Block role (repeatable)."
    ),
    base_dir: Path | None = typer.Option(
        None, "--base-dir", help="Base directory for imagesdir."
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to kroki-embed.yaml configuration file.",
        exists=True,
        readable=True,
    ),
) -> None:
    """Resolve a diagram into an embedding and print it as JSON.

    Examples:
        kroki-embed render plantuml alice.puml
        kroki-embed render plantuml alice.puml --fetch --imagesdir images
        kroki-embed render plantuml alice.puml --format txt
    """
    from kroki_embed.session import ConversionSession

    attributes: dict[str, object] = {}
    if fetch:
        attributes["kroki-fetch-diagram"] = ""
    if use_data_uri:
        attributes["data-uri"] = ""
        attributes["allow-uri-read"] = ""
    if imagesdir is not None:
        attributes["imagesdir"] = imagesdir
    if server_url is not None:
        attributes["kroki-server-url"] = server_url

    opts = [flag for flag, on in (("inline", inline), ("interactive", interactive)) if on]

    try:
        settings = load_config(config)
        _apply_log_level(ctx, settings)
        with ConversionSession(settings, base_dir=base_dir) as session:
            embedding = session.resolve(
                diagram_type,
                _read_source(file),
                output_format,
                target_name=name,
                opts=opts,
                roles=role,
                attributes=attributes,
            )
    except (KrokiError, ValueError, FileNotFoundError) as e:
        _fail(str(e))

    typer.echo(json.dumps(embedding.to_dict(), ensure_ascii=False))


@app.command("validate")
def validate_command(
    ctx: typer.Context,
    config: Path | None = typer.Argument(
        None, help="Config file (default: resolved like other commands)."
    ),
) -> None:
    """Validate a kroki-embed configuration file."""
    try:
        settings = load_config(config)
    except (FileNotFoundError, ValueError) as e:
        _fail(str(e))

    _apply_log_level(ctx, settings)
    _console.print("[green]Configuration is valid[/green]")
    typer.echo(settings.model_dump_json(indent=2))


def cli() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    cli()
