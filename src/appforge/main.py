"""Main CLI entry point for Appforge.

This module provides the Typer application. The new-app command turns images,
image streams, search terms and source code locations into the build and
deployment objects needed to run them, written to stdout.

Usage:
    appforge new-app mysql
    appforge new-app https://github.com/openshift/ruby-hello-world.git
    appforge new-app redhat/ruby:2~./src --env RACK_ENV=production -o json
    appforge --config appforge.toml new-app php+mysql
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape

from appforge.config import AppforgeConfig, load_config
from appforge.errors import AppforgeError
from appforge.logging import setup_logging
from appforge.newapp import AppConfig, format_error

app = typer.Typer(
    name="appforge",
    help="Appforge: build and deployment configuration from images and source code",
    no_args_is_help=True,
)

console = Console(stderr=True)


class AppContext:
    """Application context shared across CLI commands.

    Attributes:
        config: Loaded Appforge configuration
    """

    def __init__(self, config: AppforgeConfig):
        self.config = config


# Global context holder
_app_context: AppContext | None = None


def get_app_context() -> AppContext:
    """Get the shared application context.

    Raises:
        RuntimeError: If context has not been initialized
    """
    if _app_context is None:
        raise RuntimeError("Application context not initialized. Call initialize_context first.")
    return _app_context


def initialize_context(config: AppforgeConfig) -> AppContext:
    """Initialize the global application context."""
    global _app_context
    _app_context = AppContext(config)
    return _app_context


def _print_errors(error: Exception) -> None:
    lines = format_error(error)
    if len(lines) == 1:
        console.print(f"[red]error:[/red] {escape(lines[0])}", soft_wrap=True)
        return
    console.print(f"[red]{len(lines)} errors occurred:[/red]", soft_wrap=True)
    for line in lines:
        console.print(f"  * {escape(line)}", soft_wrap=True)


@app.command("new-app")
def new_app(
    ctx: typer.Context,
    args: Annotated[
        Optional[list[str]],
        typer.Argument(help="Images, image streams, search terms, source locations or KEY=VALUE pairs"),
    ] = None,
    code: Annotated[
        Optional[list[str]],
        typer.Option("--code", help="Source code location to build (directory or git URL)"),
    ] = None,
    image: Annotated[
        Optional[list[str]],
        typer.Option("--image", "-i", help="Platform image stream to use"),
    ] = None,
    docker_image: Annotated[
        Optional[list[str]],
        typer.Option("--docker-image", help="Docker image to use, looked up in its registry"),
    ] = None,
    group: Annotated[
        Optional[list[str]],
        typer.Option("--group", help="Components to deploy together, joined with '+' or ','"),
    ] = None,
    env: Annotated[
        Optional[list[str]],
        typer.Option("--env", "-e", help="Environment variable for the deployments (KEY=VALUE)"),
    ] = None,
    build: Annotated[
        str,
        typer.Option("--build", help="Build strategy for all components: 'source' or 'docker'"),
    ] = "",
    output: Annotated[
        Optional[str],
        typer.Option("--output", "-o", help="Output format: yaml or json"),
    ] = None,
) -> None:
    """Create build and deployment configuration for an application.

    Positional arguments are classified by what they look like: KEY=VALUE
    pairs become environment variables, existing directories and git URLs
    become source code, and everything else is treated as an image.
    Components written as ``image~source`` build that source with that image;
    components joined with ``+`` are deployed together.
    """
    app_context = get_app_context()
    config = AppConfig.from_config(app_context.config)

    unknown = config.add_arguments(args or [])
    if unknown:
        listed = ", ".join(repr(u) for u in unknown)
        console.print(
            f"[red]error:[/red] did not recognize the following arguments: {escape(listed)}",
            soft_wrap=True,
        )
        raise typer.Exit(code=1)

    config.source_repositories.extend(code or [])
    config.image_streams.extend(image or [])
    config.docker_images.extend(docker_image or [])
    config.groups.extend(group or [])
    config.environment.extend(env or [])
    config.type_of_build = build

    if output is not None:
        if output not in ("yaml", "json"):
            console.print(f"[red]error:[/red] output format must be 'yaml' or 'json', not {escape(repr(output))}")
            raise typer.Exit(code=1)
        config.output_format = output

    def show_help() -> None:
        typer.echo(ctx.get_help())

    try:
        config.run(sys.stdout, help_fn=show_help)
    except AppforgeError as e:
        _print_errors(e)
        raise typer.Exit(code=1)


@app.callback()
def main_callback(
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (TOML format)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure global options and initialize application context.

    Args:
        config_path: Optional path to TOML configuration file
        verbose: Enable debug-level logging
    """
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading configuration:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    if verbose:
        config.logging = config.logging.model_copy(update={"level": "DEBUG"})

    setup_logging(config.logging)
    initialize_context(config)


if __name__ == "__main__":
    app()
