"""CLI commands for Dispatchinator."""

import sys

import click

from ..adapters import SignalAdapter, SignalClient
from ..config import CacheConfig, MetricsConfig, PipelineConfig, RateLimitConfig, ValidationConfig
from ..core.pipeline import CommandPipeline
from ..database import BotRepository, create_sqlite_engine
from ..logging import get_logger, setup_logging

logger = get_logger(__name__)


def build_config(
    rate_limit: int,
    rate_window: float,
    cache_ttl: float,
    max_length: int,
    slow_threshold: float,
    request_timeout: float,
) -> PipelineConfig:
    """Map CLI options onto a PipelineConfig."""
    return PipelineConfig(
        cache=CacheConfig(default_ttl_seconds=cache_ttl),
        ratelimit=RateLimitConfig(max_requests=rate_limit, window_seconds=rate_window),
        validation=ValidationConfig(max_length=max_length),
        metrics=MetricsConfig(slow_threshold_seconds=slow_threshold),
        request_timeout_seconds=request_timeout,
    )


@click.group()
@click.pass_context
def cli(ctx):
    """Dispatchinator - command dispatch pipeline for chat bots."""
    ctx.ensure_object(dict)
    setup_logging()


@cli.command()
@click.option('--phone', envvar='SIGNAL_PHONE_NUMBER', required=True, help='Phone number')
@click.option('--db-path', envvar='DB_PATH', default='/data/dispatchinator.db', help='Database path')
@click.option('--daemon-host', envvar='SIGNAL_DAEMON_HOST', default='localhost', help='signal-cli daemon host')
@click.option('--daemon-port', envvar='SIGNAL_DAEMON_PORT', default=8080, type=int, help='signal-cli daemon port')
@click.option('--rate-limit', envvar='RATE_LIMIT_MAX', default=10, type=int, help='Requests allowed per user per window')
@click.option('--rate-window', envvar='RATE_LIMIT_WINDOW_SECONDS', default=60.0, type=float, help='Rate limit window (seconds)')
@click.option('--cache-ttl', envvar='CACHE_TTL_SECONDS', default=600.0, type=float, help='Default response cache TTL (seconds)')
@click.option('--max-length', envvar='MAX_COMMAND_LENGTH', default=500, type=int, help='Maximum command length (bytes)')
@click.option('--slow-threshold', envvar='SLOW_COMMAND_SECONDS', default=2.0, type=float, help='Slow command warning threshold (seconds)')
@click.option('--request-timeout', envvar='REQUEST_TIMEOUT_SECONDS', default=30.0, type=float, help='Per-command deadline (seconds)')
@click.option('--welcome', envvar='WELCOME_MESSAGE', default=None, help='Text sent in reply to /start')
def daemon(phone, db_path, daemon_host, daemon_port, rate_limit, rate_window, cache_ttl,
           max_length, slow_threshold, request_timeout, welcome):
    """Run the Signal bot with the standard command pipeline."""
    click.echo("Starting Dispatchinator daemon...")
    click.echo(f"  Database: {db_path}")
    click.echo(f"  Signal Daemon: {daemon_host}:{daemon_port}")
    click.echo(f"  Rate limit: {rate_limit} per {rate_window:g}s")
    click.echo(f"  Cache TTL: {cache_ttl:g}s")

    try:
        config = build_config(rate_limit, rate_window, cache_ttl, max_length, slow_threshold, request_timeout)
        repo = BotRepository(create_sqlite_engine(db_path))
    except ValueError as e:
        raise click.BadParameter(str(e))

    pipeline = CommandPipeline(config, users=repo, activity=repo)
    try:
        pipeline.register_builtin_handlers(welcome=welcome)
        adapter = SignalAdapter(pipeline, SignalClient(phone, daemon_host, daemon_port))

        click.echo("\n✓ Dispatchinator initialized")
        click.echo("✓ Commands: /start, /help, /ping, /metrics, /stats")
        click.echo("✓ Press Ctrl+C to stop.\n")

        adapter.run()

    except KeyboardInterrupt:
        click.echo("\n✓ Dispatchinator stopped.")
    except Exception as e:
        click.echo(f"\n✗ Error: {e}")
        logger.exception("Daemon error")
        sys.exit(1)
    finally:
        pipeline.close()


@cli.command()
@click.option('--db-path', envvar='DB_PATH', default='/data/dispatchinator.db', help='Database path')
@click.option('--limit', default=5, type=int, help='Number of popular commands to show')
def stats(db_path, limit):
    """Print user and activity statistics from the database."""
    repo = BotRepository(create_sqlite_engine(db_path))

    users = repo.stats()
    daily = repo.daily()

    click.echo("Users:")
    click.echo(f"  Total: {users['total']}")
    click.echo(f"  Active: {users['active']}")
    click.echo(f"  New today: {users['new_today']}")
    click.echo(f"  Active today: {users['active_today']}")
    click.echo("Activity:")
    click.echo(f"  Commands today: {daily['activities_today']}")

    popular = repo.popular(limit)
    if popular:
        click.echo("Popular commands:")
        for command, count in popular.items():
            click.echo(f"  {command}: {count}")


if __name__ == "__main__":
    cli()
