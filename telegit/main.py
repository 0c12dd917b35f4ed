"""CLI entry point for the TeleGit bot."""

import asyncio
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path

import click
import structlog

from telegit.app import TeleGitApp
from telegit.config.settings import TeleGitSettings
from telegit.enums import OperationStatus
from telegit.exceptions import ConfigurationError, TeleGitError
from telegit.utils.encryption import TokenCipher
from telegit.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)

STATUS_EMOJI = {
    OperationStatus.COMPLETED: "✅",
    OperationStatus.UNDONE: "↩️",
    OperationStatus.FAILED: "❌",
}


@click.group()
@click.option("--config", default="telegit.yaml", help="Path to configuration file")
@click.option("--log-level", default="INFO", help="Logging level")
@click.option("--json-logs/--console-logs", default=True, help="Log format")
@click.pass_context
def cli(ctx: click.Context, config: str, log_level: str, json_logs: bool) -> None:
    """TeleGit: manage GitHub issues from Telegram."""
    configure_logging(log_level, json_output=json_logs)

    # Key utilities work without a configuration file
    commands_without_config = ["generate-key", "encrypt-token"]
    if ctx.invoked_subcommand in commands_without_config:
        ctx.obj = {"settings": None}
        return

    config_path = Path(config)
    if not config_path.exists():
        click.echo(f"Error: Configuration file not found: {config}", err=True)
        sys.exit(1)

    try:
        settings = TeleGitSettings.from_yaml(str(config_path))
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)

    ctx.obj = {"settings": settings}


def _run_command(name: str, coro_factory: Callable[[], Awaitable[None]]) -> None:
    try:
        asyncio.run(coro_factory())
    except TeleGitError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug(f"{name}_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        log.error(f"{name}_unexpected", exc_info=True)
        sys.exit(1)


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Run the bot, long-polling Telegram for updates."""
    settings = ctx.obj["settings"]
    _run_command("run", lambda: _run_bot(settings))


@cli.command()
@click.pass_context
def sweep(ctx: click.Context) -> None:
    """Delete every expired feedback message once and exit."""
    settings = ctx.obj["settings"]
    _run_command("sweep", lambda: _sweep_once(settings))


@cli.command()
@click.option("--operation-id", required=True, help="Operation to undo")
@click.pass_context
def undo(ctx: click.Context, operation_id: str) -> None:
    """Undo a completed operation."""
    settings = ctx.obj["settings"]
    _run_command("undo", lambda: _undo_operation(settings, operation_id))


@cli.command("list-operations")
@click.option("--group", "group_id", type=int, required=True, help="Telegram chat ID of the group")
@click.option("--limit", type=int, default=20, help="Maximum number of operations to show")
@click.pass_context
def list_operations(ctx: click.Context, group_id: int, limit: int) -> None:
    """List the most recent operations of a group."""
    settings = ctx.obj["settings"]
    _run_command("list_operations", lambda: _list_operations(settings, group_id, limit))


@cli.command("generate-key")
def generate_key() -> None:
    """Print a new AES-256 encryption key (64 hex characters)."""
    click.echo(TokenCipher.generate_key())


@cli.command("encrypt-token")
@click.option("--key", envvar="TELEGIT_ENCRYPTION_KEY", required=True, help="Hex encryption key")
@click.option("--token", prompt=True, hide_input=True, help="GitHub token to encrypt")
def encrypt_token(key: str, token: str) -> None:
    """Encrypt a GitHub token for a group's configuration."""
    try:
        click.echo(TokenCipher(key).encrypt(token))
    except TeleGitError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)


async def _run_bot(settings: TeleGitSettings) -> None:
    app = TeleGitApp.from_settings(settings)
    click.echo(f"Starting @{settings.telegram.bot_username} ({len(settings.groups)} group(s))")
    await app.run()


async def _sweep_once(settings: TeleGitSettings) -> None:
    app = TeleGitApp.from_settings(settings)
    try:
        result = await app.lifecycle.sweep()
    finally:
        await app.close()
    click.echo(f"Processed {result.processed} feedback message(s): {result.deleted} deleted, {result.errors} failed")


async def _undo_operation(settings: TeleGitSettings, operation_id: str) -> None:
    app = TeleGitApp.from_settings(settings)
    try:
        # Linked groups' tokens are needed to compensate their operations
        await app.groups.load()
        result = await app.undo.undo(operation_id)
    finally:
        await app.close()

    if not result.success:
        click.echo(result.message, err=True)
        sys.exit(1)
    click.echo(f"✅ Operation {operation_id} undone")


async def _list_operations(settings: TeleGitSettings, group_id: int, limit: int) -> None:
    app = TeleGitApp.from_settings(settings)
    try:
        operations = await app.operations.list_by_group(group_id, limit=limit)
    finally:
        await app.close()

    if not operations:
        click.echo(f"No operations found for group {group_id}.")
        return

    click.echo(f"Operations for group {group_id} ({len(operations)}):\n")
    for operation in operations:
        emoji = STATUS_EMOJI.get(operation.status, "⏳")
        target = f"{operation.repository}#{operation.issue_number}" if operation.issue_number else operation.repository
        click.echo(f"  {emoji} {operation.id}  {operation.action_type}  {target}  {operation.status}")
        click.echo(f"     {operation.created_at.isoformat()}")


if __name__ == "__main__":
    cli()
