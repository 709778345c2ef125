# src/flatwire/cli.py
"""flatwire Command Line Interface.

Entry point for the flatwire CLI tool.

Usage:
    flatwire serve --settings settings.yaml             # Start the ingest server
    flatwire check --settings settings.yaml             # Validate definitions
    flatwire flatten -s settings.yaml -r interfaces msg.json
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import typer
from pydantic import ValidationError

from flatwire import __version__
from flatwire.contracts import ConfigLoadError, Definitions
from flatwire.core.config import FlatwireSettings, load_settings

if TYPE_CHECKING:
    from flatwire.plugins.manager import PluginManager

__all__ = [
    "app",
]

# Module-level singleton for plugin manager
_plugin_manager_cache: PluginManager | None = None


def _get_plugin_manager() -> PluginManager:
    """Get initialized plugin manager (singleton).

    Returns:
        PluginManager with all built-in sinks registered
    """
    global _plugin_manager_cache

    from flatwire.plugins.manager import PluginManager

    if _plugin_manager_cache is None:
        manager = PluginManager()
        manager.register_builtin_plugins()
        _plugin_manager_cache = manager
    return _plugin_manager_cache


app = typer.Typer(
    name="flatwire",
    help="flatwire: Schema-driven flattening of streaming telemetry.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"flatwire version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from .env file.

    Args:
        env_file: Explicit path to .env file. If None, searches for .env
                 in current directory and parent directories.

    Returns:
        True if .env was found and loaded, False otherwise.

    Raises:
        typer.Exit: If explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(
                f"Error: .env file not found: {env_file}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    # Existing environment variables take precedence over .env
    return load_dotenv(override=False)


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(
        False,
        "--no-dotenv",
        help="Skip loading .env file.",
    ),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """flatwire: Schema-driven flattening of streaming telemetry."""
    from flatwire.core.logging import configure_logging

    log_level = "DEBUG" if verbose else "INFO"
    configure_logging(json_output=json_logs, level=log_level)
    ctx.obj = {"json_logs": json_logs, "log_level": log_level}

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho(
            "Warning: --env-file ignored because --no-dotenv is set.",
            fg=typer.colors.YELLOW,
            err=True,
        )


def _load_config(settings: Path) -> tuple[FlatwireSettings, Definitions]:
    """Load settings and definitions, exiting with code 1 on any error."""
    from flatwire.core.definitions import load_definitions

    try:
        config = load_settings(settings)
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None

    try:
        definitions = load_definitions(config.definitions, default_index=config.default_index)
    except ConfigLoadError as e:
        typer.echo(f"Definition error: {e}", err=True)
        raise typer.Exit(1) from None

    return config, definitions


@app.command()
def serve(
    settings: Path = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    host: str | None = typer.Option(
        None,
        "--host",
        "-h",
        help="Host address to bind to (overrides settings).",
    ),
    port: int | None = typer.Option(
        None,
        "--port",
        "-p",
        min=1,
        max=65535,
        help="Port to listen on (overrides settings).",
    ),
) -> None:
    """Start the ingest server.

    Serves POST /<route key> for every route of the route table and
    indexes the flattened records through the configured sink.
    """
    import uvicorn

    from flatwire.engine.dispatch import DispatchCoordinator
    from flatwire.server import create_app

    config, definitions = _load_config(settings)

    try:
        sink = _get_plugin_manager().create_sink(config.sink.plugin, config.sink.options)
    except ValueError as e:
        typer.echo(f"Error creating sink: {e}", err=True)
        raise typer.Exit(1) from None

    coordinator = DispatchCoordinator.from_settings(config, definitions, sink)
    bind_host = host or config.server.host
    bind_port = port or config.server.port

    typer.secho(f"Starting flatwire on {bind_host}:{bind_port}", fg=typer.colors.GREEN)
    typer.echo(f"  Routes: {', '.join(definitions.route_keys) or '(none)'}")
    typer.echo(f"  Sink: {config.sink.plugin}")
    typer.echo(f"  Workers: {config.concurrency.max_workers or 'unbounded'}")

    try:
        uvicorn.run(create_app(coordinator), host=bind_host, port=bind_port, log_config=None)
    finally:
        coordinator.shutdown(wait=True)
        sink.close()


@app.command()
def check(
    settings: Path = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
) -> None:
    """Validate settings and every definition file."""
    config, definitions = _load_config(settings)

    try:
        _get_plugin_manager().get_sink_by_name(config.sink.plugin)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    typer.secho("Configuration valid", fg=typer.colors.GREEN)
    typer.echo(f"  Sink: {config.sink.plugin}")
    typer.echo(f"  Filtered fields: {len(definitions.filter_spec)}")
    typer.echo(f"  Enriched fields: {len(definitions.enrich_spec)}")
    for route_key in definitions.route_keys:
        registrations = definitions.registrations_for(route_key)
        typer.echo(f"  Route '{route_key}': {len(registrations)} path spec(s)")
        for registration in registrations:
            typer.echo(
                f"    - {registration.name} (levels={len(registration.path_spec)}, "
                f"mode={registration.mode}, index={registration.index})"
            )


@app.command()
def flatten(
    ctx: typer.Context,
    message: Path = typer.Argument(
        ...,
        help="JSON file holding one telemetry message.",
        exists=True,
        dir_okay=False,
    ),
    settings: Path = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    route: str = typer.Option(
        ...,
        "--route",
        "-r",
        help="Route key the message arrived on.",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the result to a file instead of stdout.",
    ),
) -> None:
    """Flatten one message offline and print the records per path spec.

    Runs the same flattening and post-processing as the server without
    writing to the sink.
    """
    from flatwire.engine.flattener import TreeFlattener
    from flatwire.engine.postprocess import RecordPostProcessor

    if output is None:
        # stdout carries the records; move logs out of the way
        from flatwire.core.logging import configure_logging

        log_options = ctx.obj or {}
        configure_logging(
            json_output=log_options.get("json_logs", False),
            level=log_options.get("log_level", "INFO"),
            stream=sys.stderr,
        )

    config, definitions = _load_config(settings)

    registrations = definitions.registrations_for(route)
    if not registrations:
        typer.echo(f"Error: Unknown route '{route}'. Available: {definitions.route_keys}", err=True)
        raise typer.Exit(1)

    try:
        tree = json.loads(message.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        typer.echo(f"Error reading message: {e}", err=True)
        raise typer.Exit(1) from None
    if not isinstance(tree, dict):
        typer.echo(f"Error: message must be a JSON object, got {type(tree).__name__}", err=True)
        raise typer.Exit(1)

    post_processor = RecordPostProcessor(definitions.filter_spec, definitions.enrich_spec)
    results: list[dict[str, Any]] = []
    for registration in registrations:
        flattener = TreeFlattener(
            registration.path_spec,
            registration.mode,
            post_processor,
            gate_on_unmatched=config.flatten.gate_on_unmatched,
        )
        results.append(
            {
                "registration": registration.name,
                "index": registration.index,
                "records": flattener.flatten(dict(tree)),
            }
        )

    rendered = json.dumps(results, indent=2)
    if output is not None:
        output.write_text(rendered + "\n", encoding="utf-8")
    else:
        typer.echo(rendered)


if __name__ == "__main__":
    app()
