"""
Command-line interface for the health monitor.

Provides commands to run the monitor, test single services and send
notifications by hand.
"""

import asyncio
import logging
import sys
from pathlib import Path

import click

from healthcheck import __version__
from healthcheck.core.config import (
    DEFAULT_WEB_PORT,
    Config,
    ConfigError,
    check_type_name,
    load_config,
    resolve_config_path,
)
from healthcheck.health.alerts import NotificationDispatcher, build_dispatcher
from healthcheck.health.checks import HealthChecker
from healthcheck.health.daemon import MonitorDaemon
from healthcheck.health.monitor import run_check

# Exit codes of test-service
EXIT_PASS = 0
EXIT_FAIL = 1
EXIT_UNKNOWN = 2
EXIT_NOT_FOUND = 3

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def _configure_logging(level: str, verbose: bool) -> None:
    """Set up root logging from the configured level."""
    log_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=log_level, format=LOG_FORMAT)
    # Per-request lines from the HTTP client are noise at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _get_config(ctx: click.Context) -> Config:
    """Load configuration once per invocation; exit on errors."""
    if "config" not in ctx.obj:
        try:
            config = load_config(ctx.obj["config_path"])
        except ConfigError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        _configure_logging(config.log_level, ctx.obj["verbose"])
        ctx.obj["config"] = config
    return ctx.obj["config"]


@click.group()
@click.version_option(version=__version__, prog_name="healthcheck")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option(
    "-c", "--config", "config_path", type=click.Path(path_type=Path),
    envvar="HEALTHCHECK_CONFIG", help="Path to config file (default: healthcheck.yaml)"
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_path: Path | None) -> None:
    """Service health monitor - check services and alert on failures."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = resolve_config_path(config_path)


@main.command("serve")
@click.option("--host", default="0.0.0.0", show_default=True, help="Web server bind address")
@click.option("--port", "-p", type=int, help="Web server port (default: web_port or 8080)")
@click.option("--no-web", is_flag=True, help="Run monitoring without the web interface")
@click.pass_context
def serve_cmd(ctx: click.Context, host: str, port: int | None, no_web: bool) -> None:
    """Monitor all enabled services and serve the web interface."""
    config = _get_config(ctx)
    config_path: Path = ctx.obj["config_path"]

    click.echo(f"Loaded configuration from {config_path}")
    click.echo(f"Monitoring {len(config.enabled_services())} of {len(config.services)} services")

    daemon = MonitorDaemon(config, config_path)

    if no_web:
        daemon.run_forever()
        return

    from healthcheck.web.app import create_app

    web_port = port or config.web_port or DEFAULT_WEB_PORT
    app = create_app(daemon)

    daemon.start()
    try:
        app.run(host=host, port=web_port, threaded=True, use_reloader=False)
    finally:
        daemon.stop()


@main.command("test-service")
@click.argument("service_id")
@click.pass_context
def test_service_cmd(ctx: click.Context, service_id: str) -> None:
    """Run the check of one service once.

    Exits with 0 on PASS, 1 on FAIL, 2 on UNKNOWN and 3 if SERVICE_ID is not
    configured.
    """
    config = _get_config(ctx)

    service = config.services.get(service_id)
    if service is None:
        click.echo(f"Error: Service with ID '{service_id}' not found", err=True)
        sys.exit(EXIT_NOT_FOUND)

    click.echo(f"Testing service: {service.name}")
    click.echo(f"Description: {service.description or '-'}")
    if not service.enabled:
        click.echo("Warning: Service is disabled in configuration")

    outcome = asyncio.run(run_check(HealthChecker(), service))

    if outcome.is_success:
        click.echo("✓ Service check PASSED")
        sys.exit(EXIT_PASS)
    if outcome.is_failure:
        click.echo(f"✗ Service check FAILED: {outcome.reason}")
        sys.exit(EXIT_FAIL)
    click.echo("? Service check returned UNKNOWN state")
    sys.exit(EXIT_UNKNOWN)


async def _send_cli_notification(
    dispatcher: NotificationDispatcher, message_type: str, message: str
) -> bool:
    try:
        if message_type == "success":
            return await dispatcher.recovery("CLI", message)
        return await dispatcher.alert("CLI", message)
    finally:
        await dispatcher.close()


@main.command("notify")
@click.argument("message_type", type=click.Choice(["success", "error"]))
@click.argument("message")
@click.pass_context
def notify_cmd(ctx: click.Context, message_type: str, message: str) -> None:
    """Send a recovery (success) or alert (error) message."""
    config = _get_config(ctx)
    dispatcher = build_dispatcher(config)

    if not dispatcher.handlers:
        click.echo("Error: No notification channel configured", err=True)
        sys.exit(1)

    if not asyncio.run(_send_cli_notification(dispatcher, message_type, message)):
        click.echo("Error: Failed to send notification", err=True)
        sys.exit(1)

    label = "Success" if message_type == "success" else "Error"
    click.echo(f"{label} message sent")


@main.command("services")
@click.option("--enabled", "-e", "enabled_only", is_flag=True, help="Only show enabled services")
@click.pass_context
def services_cmd(ctx: click.Context, enabled_only: bool) -> None:
    """List configured services."""
    config = _get_config(ctx)
    services = config.enabled_services() if enabled_only else config.services

    if not services:
        click.echo(f"No services configured in {ctx.obj['config_path']}")
        return

    click.echo(f"{'ID':<20} {'NAME':<25} {'ENABLED':<8} {'CHECK':<12} {'TARGET'}")
    click.echo("-" * 90)

    for service_id, service in sorted(services.items(), key=lambda i: (i[1].name.lower(), i[0])):
        enabled = "yes" if service.enabled else "no"
        kind = check_type_name(service.check)
        click.echo(
            f"{service_id:<20} {service.name:<25} {enabled:<8} {kind:<12} {service.check.target}"
        )


@main.command("validate")
@click.pass_context
def validate_cmd(ctx: click.Context) -> None:
    """Check the configuration file for errors."""
    config = _get_config(ctx)
    enabled = len(config.enabled_services())
    click.echo(
        f"Configuration OK: {len(config.services)} services ({enabled} enabled)"
    )
    if not config.telegram_enabled:
        click.echo("Warning: Telegram is not configured; alerts will only be logged")


if __name__ == "__main__":
    main()
