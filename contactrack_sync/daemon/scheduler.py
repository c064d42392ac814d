"""
Auto-sync scheduler for background Google Drive synchronization.

Provides an AutoSyncScheduler class that manages:
- Periodic sync of the local dataset at a configurable interval
- A minimum spacing between successful syncs
- Connectivity probing, with a sync when the network comes back
- Signal handling for graceful shutdown (SIGTERM/SIGINT)
- PID file management for daemon control
"""

from __future__ import annotations

import logging
import os
import signal
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import requests

from contactrack_sync.sync.outcome import SyncOutcome
from contactrack_sync.utils.paths import PID_FILE_NAME, resolve_config_dir

if TYPE_CHECKING:
    from contactrack_sync.auth.session import SessionManager
    from contactrack_sync.storage.local_store import LocalStore
    from contactrack_sync.sync.coordinator import SyncCoordinator

logger = logging.getLogger(__name__)


DEFAULT_SYNC_INTERVAL = 30 * 60  # seconds
DEFAULT_MIN_SYNC_INTERVAL = 5 * 60  # seconds
DEFAULT_CONNECTIVITY_CHECK_INTERVAL = 60  # seconds

# Probed with a HEAD request; any HTTP response counts as online
CONNECTIVITY_URL = "https://www.googleapis.com"
CONNECTIVITY_TIMEOUT = 5  # seconds

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def default_pid_file() -> Path:
    """PID file location inside the active configuration directory."""
    return resolve_config_dir() / PID_FILE_NAME


class DaemonError(Exception):
    """Base exception for daemon-related errors."""

    pass


class PIDFileError(DaemonError):
    """Raised when PID file operations fail."""

    pass


class DaemonAlreadyRunningError(DaemonError):
    """Raised when attempting to start a daemon that is already running."""

    pass


@dataclass
class SchedulerStats:
    """
    Statistics from scheduler operation.

    Tracks uptime, sync attempts and connectivity changes.
    """

    started_at: datetime = field(default_factory=datetime.now)
    sync_count: int = 0
    sync_success_count: int = 0
    sync_error_count: int = 0
    skipped_count: int = 0
    reconnect_count: int = 0
    last_sync_at: datetime | None = None
    last_sync_success: bool = False
    last_error: str | None = None


class PIDFileManager:
    """
    PID file guarding one daemon per configuration directory.

    The file holds the decimal PID of the running daemon. A file whose
    process no longer exists is stale and is replaced on the next start.
    """

    def __init__(self, pid_file: Path | None = None):
        self.pid_file = Path(pid_file) if pid_file else default_pid_file()

    def create(self) -> None:
        """
        Record the current process as the running daemon.

        Raises:
            DaemonAlreadyRunningError: If the recorded process is alive
            PIDFileError: If the file cannot be written
        """
        recorded = self.read()
        if recorded is not None and self.is_process_running(recorded):
            raise DaemonAlreadyRunningError(
                f"Daemon already running with PID {recorded}"
            )
        if recorded is not None:
            logger.warning(f"Replacing stale PID file left by process {recorded}")

        pid = os.getpid()
        try:
            self.pid_file.parent.mkdir(parents=True, exist_ok=True)
            self.pid_file.write_text(f"{pid}\n")
        except OSError as e:
            raise PIDFileError(f"Cannot write PID file {self.pid_file}: {e}") from e
        logger.debug(f"Wrote PID {pid} to {self.pid_file}")

    def read(self) -> int | None:
        """
        PID recorded in the file, or None when there is no file.

        Raises:
            PIDFileError: If the file cannot be read or holds no PID
        """
        try:
            text = self.pid_file.read_text()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PIDFileError(f"Cannot read PID file {self.pid_file}: {e}") from e

        try:
            return int(text.strip())
        except ValueError as e:
            raise PIDFileError(
                f"Invalid PID in file {self.pid_file}: {text.strip()!r}"
            ) from e

    def remove(self) -> None:
        """
        Delete the PID file if present.

        Raises:
            PIDFileError: If an existing file cannot be deleted
        """
        try:
            self.pid_file.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise PIDFileError(f"Cannot remove PID file {self.pid_file}: {e}") from e
        logger.debug(f"Removed PID file {self.pid_file}")

    @staticmethod
    def is_process_running(pid: int) -> bool:
        """Whether a process with this PID exists (signal 0 probe)."""
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Alive, owned by another user
            return True
        return True


class AutoSyncScheduler:
    """
    Foreground daemon that keeps the local dataset in sync with Drive.

    Usage:
        scheduler = AutoSyncScheduler(coordinator, session, store)
        scheduler.toggle_auto_sync()

        # Single attempt (returns None when skipped)
        outcome = scheduler.perform_auto_sync()

        # Run (blocks until SIGTERM/SIGINT or stop())
        scheduler.run()

    Attributes:
        interval: Seconds between scheduled syncs
        min_sync_interval: Minimum seconds between successful syncs
        connectivity_check_interval: Seconds between connectivity probes
        stats: Scheduler statistics
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        session: SessionManager,
        store: LocalStore,
        interval: int = DEFAULT_SYNC_INTERVAL,
        min_sync_interval: int = DEFAULT_MIN_SYNC_INTERVAL,
        connectivity_check_interval: int = DEFAULT_CONNECTIVITY_CHECK_INTERVAL,
        pid_file: Path | None = None,
        run_immediately: bool = True,
        connectivity_url: str = CONNECTIVITY_URL,
    ):
        """
        Initialize the scheduler.

        Args:
            coordinator: Sync coordinator performing each sync
            session: Session manager; syncs are skipped while signed out
            store: Local store holding the dataset and sync settings
            interval: Sync interval in seconds (default: 30 minutes)
            min_sync_interval: Minimum spacing between successful syncs in
                               seconds (default: 5 minutes)
            connectivity_check_interval: Seconds between connectivity probes
            pid_file: Path to PID file (default: daemon.pid in config dir)
            run_immediately: Sync once on start before waiting for interval
            connectivity_url: URL probed to detect network availability
        """
        self.coordinator = coordinator
        self.session = session
        self.store = store
        self.interval = interval
        self.min_sync_interval = min_sync_interval
        self.connectivity_check_interval = max(1, connectivity_check_interval)
        self.run_immediately = run_immediately
        self.connectivity_url = connectivity_url
        self._pid_manager = PIDFileManager(pid_file)
        self._last_sync_monotonic: float | None = None
        self._online = True
        self._running = False
        self._shutdown_requested = False
        self._previous_handlers: dict[int, Any] = {}
        self.stats = SchedulerStats()

    @property
    def pid_file(self) -> Path:
        return self._pid_manager.pid_file

    @property
    def enabled(self) -> bool:
        """Whether auto-sync is switched on (persisted in the local store)."""
        return self.store.get_auto_sync()

    @property
    def online(self) -> bool:
        """Result of the most recent connectivity probe."""
        return self._online

    def toggle_auto_sync(self) -> bool:
        """
        Flip and persist the auto-sync switch.

        Returns:
            The new state
        """
        new_state = not self.enabled
        self.store.set_auto_sync(new_state)
        logger.info(f"Auto-sync {'enabled' if new_state else 'disabled'}")
        return new_state

    def _interval_elapsed(self) -> bool:
        if self._last_sync_monotonic is None:
            return True
        elapsed = time.monotonic() - self._last_sync_monotonic
        return elapsed >= self.min_sync_interval

    def perform_auto_sync(self) -> SyncOutcome | None:
        """
        Sync the local dataset unless skipped.

        Skipped when signed out or when the previous successful sync was
        less than ``min_sync_interval`` seconds ago.

        Returns:
            The sync outcome, or None if the attempt was skipped
        """
        if not self.session.get_sign_in_status():
            logger.debug("Auto-sync skipped: not signed in")
            self.stats.skipped_count += 1
            return None

        if not self._interval_elapsed():
            logger.debug("Auto-sync skipped: minimum interval not reached")
            self.stats.skipped_count += 1
            return None

        self.stats.sync_count += 1
        self.stats.last_sync_at = datetime.now()
        logger.info(f"Starting auto-sync (cycle #{self.stats.sync_count})")

        try:
            people = self.store.load_people()
            outcome = self.coordinator.sync_with_local(people)
        except Exception as e:
            self.stats.sync_error_count += 1
            self.stats.last_sync_success = False
            self.stats.last_error = str(e)
            logger.error(f"Auto-sync failed with exception: {e}")
            return SyncOutcome.failure("An error occurred during sync")

        if outcome.succeeded:
            self._last_sync_monotonic = time.monotonic()
            self.store.set_last_sync()
            self.stats.sync_success_count += 1
            self.stats.last_sync_success = True
            self.stats.last_error = None
            logger.info(f"Auto-sync completed: {outcome.message}")
        else:
            self.stats.sync_error_count += 1
            self.stats.last_sync_success = False
            self.stats.last_error = outcome.message
            logger.warning(f"Auto-sync failed: {outcome.message}")

        return outcome

    def check_connectivity(self) -> bool:
        """
        Probe network connectivity.

        An offline to online transition triggers an auto-sync when enabled.

        Returns:
            True if the network is reachable
        """
        try:
            requests.head(self.connectivity_url, timeout=CONNECTIVITY_TIMEOUT)
            online = True
        except requests.RequestException as e:
            logger.debug(f"Connectivity probe failed: {e}")
            online = False

        was_online = self._online
        self._online = online

        if online and not was_online:
            self.stats.reconnect_count += 1
            logger.info("Network connection restored")
            if self.enabled:
                self.perform_auto_sync()
        elif was_online and not online:
            logger.warning("Network connection lost")

        return online

    # =========================================================================
    # Daemon loop
    # =========================================================================

    def _setup_signal_handlers(self) -> None:
        for signum in SHUTDOWN_SIGNALS:
            self._previous_handlers[signum] = signal.signal(
                signum, self._signal_handler
            )
        logger.debug("Installed shutdown handlers for SIGTERM and SIGINT")

    def _restore_signal_handlers(self) -> None:
        while self._previous_handlers:
            signum, handler = self._previous_handlers.popitem()
            if handler is not None:
                signal.signal(signum, handler)

    def _signal_handler(self, signum: int, frame: object) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, shutting down")
        self._shutdown_requested = True

    def _sleep_interruptible(self, seconds: float) -> bool:
        """
        Wait up to ``seconds`` in one-second steps, stopping early on shutdown.

        Measured on the wall clock so the schedule keeps up after a suspend.

        Returns:
            False if the wait ended because shutdown was requested
        """
        deadline = time.time() + seconds
        while not self._shutdown_requested:
            remaining = deadline - time.time()
            if remaining <= 0:
                break
            time.sleep(min(1.0, remaining))
        return not self._shutdown_requested

    def _scheduled_sync(self) -> None:
        if not self.enabled:
            logger.debug("Auto-sync disabled, skipping scheduled sync")
            return
        if not self._online:
            logger.debug("Offline, skipping scheduled sync")
            return
        self.perform_auto_sync()

    def run(self) -> None:
        """
        Run the scheduler until a shutdown signal or stop().

        Raises:
            DaemonAlreadyRunningError: If another daemon is already running.
            PIDFileError: If the PID file cannot be written.
        """
        logger.info(f"Starting auto-sync scheduler (interval: {self.interval}s)")

        self._pid_manager.create()
        logger.info(f"Daemon started (PID: {os.getpid()}, PID file: {self.pid_file})")

        self._setup_signal_handlers()

        self._running = True
        self._shutdown_requested = False
        self.stats = SchedulerStats()

        try:
            if self.run_immediately:
                self._scheduled_sync()

            next_sync = time.time() + self.interval
            while not self._shutdown_requested:
                wait = min(
                    self.connectivity_check_interval,
                    max(0.0, next_sync - time.time()),
                )
                if not self._sleep_interruptible(wait):
                    break

                self.check_connectivity()

                if time.time() >= next_sync and not self._shutdown_requested:
                    self._scheduled_sync()
                    next_sync = time.time() + self.interval

        finally:
            self._running = False
            self._restore_signal_handlers()
            self._pid_manager.remove()
            logger.info("Auto-sync scheduler stopped")

    def stop(self) -> None:
        """Request shutdown; the loop exits within about a second."""
        logger.info("Stop requested")
        self._shutdown_requested = True

    def is_running(self) -> bool:
        return self._running

    @classmethod
    def get_running_pid(cls, pid_file: Path | None = None) -> int | None:
        """
        Get the PID of the currently running daemon.

        Returns:
            PID if a daemon is running, None otherwise.
        """
        manager = PIDFileManager(pid_file)
        pid = manager.read()
        if pid is None:
            return None
        if manager.is_process_running(pid):
            return pid
        return None

    @classmethod
    def stop_running_daemon(cls, pid_file: Path | None = None) -> bool:
        """
        Send SIGTERM to the running daemon.

        Returns:
            True if the signal was sent, False if no daemon is running.
        """
        pid = cls.get_running_pid(pid_file)

        if pid is None:
            logger.info("No running daemon found")
            return False

        try:
            os.kill(pid, signal.SIGTERM)
            logger.info(f"Sent SIGTERM to daemon (PID: {pid})")
            return True
        except ProcessLookupError:
            logger.warning(f"Daemon process {pid} not found")
            return False
        except PermissionError:
            logger.error(f"Permission denied sending signal to PID {pid}")
            return False


__all__ = [
    "AutoSyncScheduler",
    "SchedulerStats",
    "DaemonError",
    "PIDFileError",
    "DaemonAlreadyRunningError",
    "PIDFileManager",
    "default_pid_file",
    "DEFAULT_SYNC_INTERVAL",
    "DEFAULT_MIN_SYNC_INTERVAL",
]
