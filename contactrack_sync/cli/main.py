"""
Command-line interface for contactrack_sync.

Provides CLI commands for signing in to Google Drive, backing up and
restoring the local contact list, and keeping it in sync automatically.

Usage:
    # Show help
    contactrack-sync --help

    # Sign in and check status
    contactrack-sync auth
    contactrack-sync status

    # Back up, list and restore
    contactrack-sync backup
    contactrack-sync list
    contactrack-sync restore --yes

    # Reconcile local data with the newest backup
    contactrack-sync sync
"""

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import click

from contactrack_sync import __version__
from contactrack_sync.auth.credentials import CredentialStore
from contactrack_sync.auth.session import DEFAULT_AUTH_TIMEOUT, SessionManager
from contactrack_sync.backup.repository import BackupRepository
from contactrack_sync.cli.formatters import show_backup_table, show_outcome
from contactrack_sync.config.loader import ConfigError, ConfigLoader
from contactrack_sync.daemon import (
    DEFAULT_MIN_SYNC_INTERVAL,
    DEFAULT_SYNC_INTERVAL,
    AutoSyncScheduler,
    DaemonAlreadyRunningError,
    DaemonError,
    PIDFileManager,
    parse_interval,
)
from contactrack_sync.storage.local_store import LocalStore
from contactrack_sync.sync.coordinator import SyncCoordinator
from contactrack_sync.utils import resolve_config_dir
from contactrack_sync.utils.logging import cleanup_old_logs, get_logger, setup_logging
from contactrack_sync.utils.paths import (
    CONFIG_FILE_NAME,
    DATA_FILE_NAME,
    PID_FILE_NAME,
    TOKEN_FILE_NAME,
)

# Config keys forwarded to DriveClient
DRIVE_OPTION_KEYS = {
    "api_max_retries": "max_retries",
    "api_initial_retry_delay": "initial_retry_delay",
    "api_max_retry_delay": "max_retry_delay",
}


@dataclass
class Services:
    """Engine components wired for one CLI invocation."""

    store: LocalStore
    session: SessionManager
    repository: BackupRepository
    coordinator: SyncCoordinator


def build_services(config_dir: Path, config: dict[str, Any]) -> Services:
    """
    Wire the engine components from the loaded configuration.

    Args:
        config_dir: Resolved configuration directory
        config: Validated configuration dictionary

    Returns:
        Services sharing one session manager and one local store
    """
    data_file = config.get("data_file")
    db_path = Path(data_file).expanduser() if data_file else config_dir / DATA_FILE_NAME

    drive_options = {
        option: config[key]
        for key, option in DRIVE_OPTION_KEYS.items()
        if key in config
    }

    store = LocalStore(db_path)
    session = SessionManager(
        CredentialStore(config_dir=config_dir, config=config),
        token_path=config_dir / TOKEN_FILE_NAME,
        consent_timeout=config.get("consent_timeout"),
        auth_timeout=config.get("auth_timeout", DEFAULT_AUTH_TIMEOUT),
        drive_options=drive_options,
    )
    repository = BackupRepository(session, store)
    coordinator = SyncCoordinator(session, repository)
    return Services(
        store=store, session=session, repository=repository, coordinator=coordinator
    )


def get_services(ctx: click.Context) -> Services:
    """Get the engine components for this invocation, building them once."""
    services = ctx.obj.get("services")
    if services is None:
        services = build_services(ctx.obj["config_dir"], ctx.obj.get("config", {}))
        ctx.obj["services"] = services
    return services


def get_config_file(config_dir: Path, config_file: Optional[str]) -> Path:
    """Get the configuration file path."""
    if config_file:
        return Path(config_file).expanduser()
    return config_dir / CONFIG_FILE_NAME


def get_pid_file(ctx: click.Context) -> Path:
    """PID file of the daemon serving this configuration directory."""
    return ctx.obj["config_dir"] / PID_FILE_NAME


def ensure_signed_in(services: Services) -> bool:
    """Sign in (interactively if needed) unless already signed in."""
    if services.session.get_sign_in_status():
        return True
    return services.session.sign_in()


def fail(message: str) -> None:
    """Print an error in red and exit with status 1."""
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="contactrack-sync")
@click.option(
    "--verbose", "-v", is_flag=True, help="Enable verbose output with detailed logging."
)
@click.option(
    "--config-dir",
    "-c",
    type=click.Path(exists=False, file_okay=False, dir_okay=True),
    envvar="CONTACTRACK_SYNC_CONFIG_DIR",
    help="Configuration directory path (default: ~/.contactrack-sync).",
)
@click.option(
    "--config-file",
    "-f",
    type=click.Path(exists=False, file_okay=True, dir_okay=False),
    envvar="CONTACTRACK_SYNC_CONFIG_FILE",
    help="Configuration file path (default: <config-dir>/config.yaml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    config_dir: Optional[str],
    config_file: Optional[str],
) -> None:
    """
    ContacTrack Google Drive backup and sync.

    Backs up the local contact list to a dedicated Google Drive folder,
    restores it, and keeps it in sync using last-writer-wins on the whole
    dataset.
    """
    ctx.ensure_object(dict)

    resolved_config_dir = resolve_config_dir(config_dir)
    resolved_config_file = get_config_file(resolved_config_dir, config_file)

    ctx.obj["config_dir"] = resolved_config_dir
    ctx.obj["config_file"] = resolved_config_file

    config: dict[str, Any] = {}
    try:
        loader = ConfigLoader(config_dir=resolved_config_dir)
        config = loader.load_from_file(resolved_config_file)
        if config:
            loader.validate(config)
    except ConfigError as e:
        # Keep working without the config file
        click.echo(
            click.style(f"Warning: Configuration error: {e}", fg="yellow"), err=True
        )
        config = {}

    ctx.obj["config"] = config

    effective_verbose = verbose or config.get("verbose", False)
    ctx.obj["verbose"] = effective_verbose

    log_dir = (
        Path(config["log_dir"]).expanduser()
        if config.get("log_dir")
        else resolved_config_dir / "logs"
    )
    setup_logging(verbose=effective_verbose, log_dir=log_dir, enable_file_logging=True)

    log_retention = config.get("log_retention_count", 10)
    if log_retention > 0:
        cleanup_old_logs(log_dir=log_dir, keep_count=log_retention)


# =============================================================================
# Session Commands
# =============================================================================


@cli.command("auth")
@click.option(
    "--force",
    is_flag=True,
    help="Discard the cached token and consent again.",
)
@click.pass_context
def auth_command(ctx: click.Context, force: bool) -> None:
    """
    Sign in to Google Drive.

    Opens a browser window for consent unless a cached token is still
    usable. The token is cached in the configuration directory.

    Examples:

        contactrack-sync auth

        # Force a fresh consent
        contactrack-sync auth --force
    """
    logger = get_logger(__name__)
    config_dir = ctx.obj["config_dir"]
    services = get_services(ctx)

    if force:
        services.session.sign_out()

    click.echo("Signing in to Google Drive...")
    if not services.session.sign_in():
        click.echo(
            click.style("Error: Could not sign in to Google Drive", fg="red"),
            err=True,
        )
        click.echo("\nCheck that OAuth client credentials are configured:", err=True)
        click.echo(
            "  set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET, or save the client",
            err=True,
        )
        click.echo(f"  secrets file as {config_dir / 'credentials.json'}", err=True)
        sys.exit(1)

    click.echo(click.style("Signed in to Google Drive.", fg="green"))
    logger.info("Sign in completed")


@cli.command("sign-out")
@click.pass_context
def sign_out_command(ctx: click.Context) -> None:
    """
    Sign out of Google Drive.

    Revokes the cached token (best-effort) and deletes it locally.
    """
    services = get_services(ctx)
    services.session.resume()
    services.session.sign_out()
    click.echo(click.style("Signed out of Google Drive.", fg="green"))


@cli.command("status")
@click.pass_context
def status_command(ctx: click.Context) -> None:
    """
    Show sign-in, local data and auto-sync status.

    Example:

        contactrack-sync status
    """
    logger = get_logger(__name__)
    config_dir = ctx.obj["config_dir"]

    try:
        services = get_services(ctx)
        store = services.store

        click.echo("=== ContacTrack Sync Status ===\n")
        click.echo(f"Configuration directory: {config_dir}")

        signed_in = services.session.resume()
        if signed_in:
            sign_in_text = click.style("Signed in", fg="green")
        elif not services.session.session.client_ready:
            sign_in_text = click.style("OAuth credentials not configured", fg="red")
        else:
            sign_in_text = click.style("Not signed in", fg="yellow")
        click.echo(f"Google Drive: {sign_in_text}")
        click.echo()

        if not store.is_storage_available():
            click.echo(click.style("Local storage: Not available", fg="red"))
        else:
            click.echo(f"Local contacts: {len(store.load_people())}")

        last_sync = store.get_last_sync()
        if last_sync is not None:
            last_sync_text = last_sync.astimezone().strftime("%Y-%m-%d %H:%M:%S")
        else:
            last_sync_text = "Never"
        click.echo(f"Last sync: {last_sync_text}")
        click.echo(f"Auto-sync: {'On' if store.get_auto_sync() else 'Off'}")

        pid = AutoSyncScheduler.get_running_pid(get_pid_file(ctx))
        click.echo(f"Daemon: {f'Running (PID {pid})' if pid else 'Stopped'}")

        if not signed_in:
            click.echo("\nRun 'contactrack-sync auth' to sign in.")

    except Exception as e:
        logger.exception(f"Error getting status: {e}")
        fail(str(e))


# =============================================================================
# Backup Commands
# =============================================================================


@cli.command("backup")
@click.pass_context
def backup_command(ctx: click.Context) -> None:
    """
    Upload the local contact list as a new backup.

    Every backup is a new file; existing backups are never modified.
    """
    services = get_services(ctx)
    people = services.store.load_people()

    click.echo(f"Backing up {len(people)} contacts...")
    outcome = services.repository.upload_backup(people)
    show_outcome(outcome)
    if not outcome.succeeded:
        sys.exit(1)


@cli.command("list")
@click.pass_context
def list_command(ctx: click.Context) -> None:
    """
    List backups in Google Drive, newest first.
    """
    services = get_services(ctx)

    if not ensure_signed_in(services):
        fail("Could not sign in to Google Drive")

    backups = services.repository.query_backups()
    if backups is None:
        fail("Could not fetch remote backups")
        return

    if not backups:
        click.echo("No backups found.")
        return

    show_backup_table(backups)
    click.echo("\nTo restore, use: contactrack-sync restore --backup-id <id>")
    if ctx.obj.get("verbose"):
        click.echo()
        for backup in backups:
            click.echo(f"{backup.name}: {backup.id}")


@cli.command("restore")
@click.option(
    "--backup-id",
    "-b",
    default=None,
    help="Identifier of the backup to restore (default: the newest).",
)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def restore_command(ctx: click.Context, backup_id: Optional[str], yes: bool) -> None:
    """
    Replace the local contact list with a backup.

    The local list is overwritten, not merged.

    Examples:

        # Restore the newest backup
        contactrack-sync restore

        # Restore a specific backup without prompting
        contactrack-sync restore --backup-id 1AbC... --yes
    """
    services = get_services(ctx)

    if not ensure_signed_in(services):
        fail("Could not sign in to Google Drive")

    label = backup_id
    if backup_id is None:
        backups = services.repository.query_backups()
        if backups is None:
            fail("Could not fetch remote backups")
            return
        if not backups:
            click.echo("No backups found.")
            sys.exit(1)
        backup_id = backups[0].id
        label = backups[0].name

    local_count = len(services.store.load_people())
    if not yes:
        click.confirm(
            f"Replace {local_count} local contacts with backup {label}?",
            abort=True,
        )

    outcome = services.repository.restore_from_backup(backup_id)
    show_outcome(outcome)
    if not outcome.succeeded:
        sys.exit(1)


# =============================================================================
# Sync Commands
# =============================================================================


@cli.command("sync")
@click.pass_context
def sync_command(ctx: click.Context) -> None:
    """
    Reconcile the local contact list with the newest backup.

    The newer side wins as a whole: newer local data is uploaded as a new
    backup; otherwise the newest backup replaces the local data.
    """
    services = get_services(ctx)

    click.echo("Synchronizing with Google Drive...")
    outcome = services.coordinator.sync_with_local(services.store.load_people())
    show_outcome(outcome)
    if not outcome.succeeded:
        sys.exit(1)

    services.store.set_last_sync()


@cli.command("auto-sync")
@click.argument(
    "state",
    required=False,
    type=click.Choice(["on", "off", "toggle"], case_sensitive=False),
)
@click.pass_context
def auto_sync_command(ctx: click.Context, state: Optional[str]) -> None:
    """
    Show or change the auto-sync switch.

    The switch is read by the daemon before each scheduled sync.

    Examples:

        contactrack-sync auto-sync
        contactrack-sync auto-sync on
        contactrack-sync auto-sync toggle
    """
    services = get_services(ctx)
    store = services.store

    if state is None:
        enabled = store.get_auto_sync()
    elif state.lower() == "toggle":
        scheduler = AutoSyncScheduler(
            services.coordinator, services.session, store, pid_file=get_pid_file(ctx)
        )
        enabled = scheduler.toggle_auto_sync()
    else:
        enabled = state.lower() == "on"
        if not store.set_auto_sync(enabled):
            fail("Could not save the auto-sync setting")

    click.echo(f"Auto-sync: {'On' if enabled else 'Off'}")


# =============================================================================
# Import / Export Commands
# =============================================================================


@cli.command("export")
@click.argument(
    "output",
    required=False,
    type=click.Path(dir_okay=False, writable=True),
)
@click.pass_context
def export_command(ctx: click.Context, output: Optional[str]) -> None:
    """
    Export the local contact list as JSON.

    Writes to OUTPUT, or to standard output when omitted.
    """
    services = get_services(ctx)
    people = services.store.load_people()
    data = services.store.export_people(people)

    if output is None:
        click.echo(data)
        return

    try:
        Path(output).write_text(data + "\n", encoding="utf-8")
    except OSError as e:
        fail(f"Could not write {output}: {e}")
    click.echo(click.style(f"Exported {len(people)} contacts to {output}", fg="green"))


@cli.command("import")
@click.argument(
    "source", type=click.Path(exists=True, dir_okay=False, readable=True)
)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def import_command(ctx: click.Context, source: str, yes: bool) -> None:
    """
    Replace the local contact list with contacts from a JSON file.

    Entries without an id, name or relation are dropped.
    """
    services = get_services(ctx)

    try:
        people = services.store.import_people(Path(source).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        fail(f"Could not import {source}: {e}")
        return

    if not yes:
        local_count = len(services.store.load_people())
        click.confirm(
            f"Replace {local_count} local contacts with {len(people)} "
            f"contacts from {source}?",
            abort=True,
        )

    if not services.store.save_people(people):
        fail("Could not save the imported contacts")
    click.echo(click.style(f"Imported {len(people)} contacts", fg="green"))


# =============================================================================
# Daemon Commands
# =============================================================================


@cli.group("daemon")
@click.pass_context
def daemon_group(ctx: click.Context) -> None:
    """
    Manage the auto-sync daemon.

    The daemon runs in the foreground and syncs at a configurable
    interval while auto-sync is on, and again when the network returns.

    Examples:

        contactrack-sync daemon start --interval 30m
        contactrack-sync daemon status
        contactrack-sync daemon stop
    """
    pass


def _resolve_interval(
    value: Optional[str], config: dict[str, Any], key: str, default: int
) -> int:
    raw = value if value is not None else config.get(key, default)
    try:
        seconds = parse_interval(raw)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e
    if seconds < 1:
        raise click.BadParameter(f"{key} must be at least 1 second")
    return seconds


@daemon_group.command("start")
@click.option(
    "--interval",
    "-i",
    default=None,
    help="Sync interval (e.g., '30m', '1h'). Defaults to config value or '30m'.",
)
@click.option(
    "--min-interval",
    default=None,
    help="Minimum time between syncs (e.g., '5m'). Defaults to config or '5m'.",
)
@click.option(
    "--no-initial-sync",
    is_flag=True,
    help="Skip the initial sync on daemon startup.",
)
@click.pass_context
def daemon_start_command(
    ctx: click.Context,
    interval: Optional[str],
    min_interval: Optional[str],
    no_initial_sync: bool,
) -> None:
    """
    Start the auto-sync daemon in the foreground.

    The daemon will:
    - Sign in (using the cached token when possible)
    - Sync on startup (unless --no-initial-sync) and at each interval
    - Sync when network connectivity returns
    - Handle SIGTERM/SIGINT for graceful shutdown
    """
    logger = get_logger(__name__)
    config = ctx.obj.get("config", {})

    interval_seconds = _resolve_interval(
        interval, config, "sync_interval", DEFAULT_SYNC_INTERVAL
    )
    min_interval_seconds = _resolve_interval(
        min_interval, config, "min_sync_interval", DEFAULT_MIN_SYNC_INTERVAL
    )

    services = get_services(ctx)

    if "auto_sync" in config:
        services.store.set_auto_sync(config["auto_sync"])
    if not services.store.get_auto_sync():
        click.echo(
            click.style(
                "Auto-sync is off; the daemon will idle until it is switched on "
                "with 'contactrack-sync auto-sync on'.",
                fg="yellow",
            )
        )

    if not ensure_signed_in(services):
        fail("Could not sign in to Google Drive")

    try:
        scheduler = AutoSyncScheduler(
            services.coordinator,
            services.session,
            services.store,
            interval=interval_seconds,
            min_sync_interval=min_interval_seconds,
            pid_file=get_pid_file(ctx),
            run_immediately=not no_initial_sync,
        )

        click.echo(f"Starting daemon (interval: {interval_seconds}s)...")
        click.echo("Press Ctrl+C to stop.")
        logger.info(f"Daemon starting (interval={interval_seconds}s)")
        scheduler.run()

        stats = scheduler.stats
        click.echo(
            click.style(
                f"\nDaemon stopped gracefully ({stats.sync_success_count} of "
                f"{stats.sync_count} syncs succeeded).",
                fg="green",
            )
        )

    except DaemonAlreadyRunningError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        click.echo("Use 'contactrack-sync daemon stop' to stop the running daemon.")
        sys.exit(1)

    except DaemonError as e:
        logger.error(f"Daemon error: {e}")
        click.echo(click.style(f"Daemon error: {e}", fg="red"), err=True)
        sys.exit(1)


@daemon_group.command("stop")
@click.pass_context
def daemon_stop_command(ctx: click.Context) -> None:
    """
    Stop the running auto-sync daemon.

    Sends SIGTERM; the daemon finishes any in-progress sync first.
    """
    pid_file = get_pid_file(ctx)
    pid = AutoSyncScheduler.get_running_pid(pid_file)

    if pid is None:
        click.echo("No daemon is currently running.")
        return

    click.echo(f"Stopping daemon (PID: {pid})...")
    if AutoSyncScheduler.stop_running_daemon(pid_file):
        click.echo(click.style("Stop signal sent successfully.", fg="green"))
    else:
        fail("Failed to send stop signal to daemon.")


@daemon_group.command("status")
@click.pass_context
def daemon_status_command(ctx: click.Context) -> None:
    """
    Show whether the auto-sync daemon is running.
    """
    pid_file = get_pid_file(ctx)

    click.echo("=== Daemon Status ===\n")

    try:
        pid = AutoSyncScheduler.get_running_pid(pid_file)
        stale_pid = None if pid is not None else PIDFileManager(pid_file).read()
    except DaemonError as e:
        fail(str(e))
        return

    if pid is not None:
        click.echo(f"Status: {click.style('Running', fg='green')}")
        click.echo(f"Process ID: {pid}")
    else:
        click.echo(f"Status: {click.style('Stopped', fg='yellow')}")
        if stale_pid is not None:
            click.echo(f"Stale PID file exists (PID: {stale_pid})")
            click.echo("It will be cleaned up on next daemon start.")

    if ctx.obj.get("verbose"):
        click.echo(f"\nPID file: {pid_file}")
