"""CLI for running the dashboard web server.

This module provides a command-line interface for starting the FastAPI-based
web adapter with uvicorn.
"""

from pathlib import Path

import click
import uvicorn

from bigboat.adapters.web.server import create_web_adapter
from bigboat.config import ConfigError, load_config, validate_config
from bigboat.config.environment import get_config_file_path
from bigboat.utils.telemetry import (
    get_logger,
    setup_logging,
    setup_tracing,
    start_metrics_server,
)


@click.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
@click.option("--host", default=None, help="Host to bind to")
@click.option("--port", type=int, default=None, help="Port to bind to")
@click.option("--database-url", default=None, help="Record store URL")
@click.option("--agent-url", default=None, help="Agent command endpoint")
@click.option("--log-level", default=None, help="Log level")
def run_server(
    config_path: Path | None,
    host: str | None,
    port: int | None,
    database_url: str | None,
    agent_url: str | None,
    log_level: str | None,
) -> None:
    """Run the dashboard web server."""
    try:
        config = load_config(config_path or get_config_file_path())
        if host:
            config.web.host = host
        if port:
            config.web.port = port
        if database_url:
            config.database.url = database_url
        if agent_url:
            config.agent.url = agent_url
        if log_level:
            config.logging.level = log_level.upper()  # type: ignore[assignment]
        validate_config(config)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    setup_logging(config.logging.level, config.logging.enable_redaction)
    logger = get_logger("bigboat.web_cli")

    if config.metrics.enabled:
        start_metrics_server(config.metrics.port)

    web_adapter = create_web_adapter(config)
    if config.metrics.enable_tracing:
        setup_tracing(otlp_endpoint=config.metrics.otlp_endpoint, app=web_adapter.app)

    logger.info(
        "Starting web server",
        host=config.web.host,
        port=config.web.port,
        database=config.database.url,
        agent=config.agent.url or "in-memory",
        environment=config.environment,
    )

    uvicorn.run(
        web_adapter.app,
        host=config.web.host,
        port=config.web.port,
        log_level=config.logging.level.lower(),
    )


@click.group()
def cli() -> None:
    """Web adapter CLI."""
    pass


cli.add_command(run_server, name="server")


if __name__ == "__main__":
    cli()
