"""
Tests for the CLI module.

Tests the command-line interface using Click's testing utilities, with the
engine components replaced by mocks around an in-memory local store.
"""

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from contactrack_sync.auth.session import SessionManager
from contactrack_sync.backup.snapshot import BackupDescriptor
from contactrack_sync.cli import Services, build_services, cli
from contactrack_sync.daemon import SchedulerStats
from contactrack_sync.storage.local_store import LocalStore
from contactrack_sync.sync.contact import Contact
from contactrack_sync.sync.outcome import Resolution, SyncOutcome


def make_backup(file_id, day):
    return BackupDescriptor(
        id=file_id,
        name=f"contactrack-backup-2024-01-{day:02d}-{file_id}.json",
        last_modified=datetime(2024, 1, day, 12, 0, tzinfo=timezone.utc),
        size=2048,
    )


@pytest.fixture(autouse=True)
def no_logging_setup():
    """Keep CLI invocations from reconfiguring the package logger."""
    with (
        patch("contactrack_sync.cli.main.setup_logging"),
        patch("contactrack_sync.cli.main.cleanup_old_logs"),
    ):
        yield


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def store():
    store = LocalStore(":memory:")
    store.save_people(
        [
            Contact(id="a", name="Alice", relation="friend"),
            Contact(id="b", name="Bob", relation="coworker"),
        ]
    )
    return store


@pytest.fixture
def services(store):
    session = MagicMock()
    session.get_sign_in_status.return_value = True
    session.sign_in.return_value = True
    session.resume.return_value = True
    return Services(
        store=store,
        session=session,
        repository=MagicMock(),
        coordinator=MagicMock(),
    )


@pytest.fixture
def invoke(runner, services, tmp_path):
    """Invoke the CLI against a temporary config dir with mocked services."""

    def _invoke(*args, input=None):
        return runner.invoke(
            cli,
            ["--config-dir", str(tmp_path), *args],
            obj={"services": services},
            input=input,
        )

    return _invoke


class TestCLIGroup:
    """Tests for the main CLI group."""

    def test_help(self, runner):
        """Help lists the commands."""
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("auth", "backup", "list", "restore", "sync", "daemon"):
            assert command in result.output

    def test_version(self, runner):
        """--version prints the program name."""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "contactrack-sync" in result.output

    def test_invalid_config_warns(self, invoke, tmp_path):
        """A broken config file produces a warning, not a failure."""
        (tmp_path / "config.yaml").write_text("auth_timeout: soon\n")
        result = invoke("auto-sync")
        assert result.exit_code == 0
        assert "Warning: Configuration error" in result.output


class TestBuildServices:
    """Tests for build_services."""

    def test_wires_components(self, tmp_path):
        """All components share one session and one store."""
        services = build_services(
            tmp_path,
            {"api_max_retries": 3, "consent_timeout": 90, "auth_timeout": 4},
        )

        assert isinstance(services.session, SessionManager)
        assert services.repository.session is services.session
        assert services.repository.store is services.store
        assert services.coordinator.repository is services.repository
        assert services.store.db_path == str(tmp_path / "contactrack.db")
        assert services.session.token_path == tmp_path / "token.json"
        assert services.session.consent_timeout == 90
        assert services.session.auth_timeout == 4
        assert services.session.drive_options == {"max_retries": 3}

    def test_custom_data_file(self, tmp_path):
        """data_file overrides the database location."""
        services = build_services(tmp_path, {"data_file": str(tmp_path / "x.db")})
        assert services.store.db_path == str(tmp_path / "x.db")


class TestAuthCommands:
    """Tests for auth and sign-out."""

    def test_auth_success(self, invoke, services):
        """A successful sign-in is reported in green."""
        result = invoke("auth")
        assert result.exit_code == 0
        assert "Signed in to Google Drive." in result.output
        services.session.sign_out.assert_not_called()

    def test_auth_force_signs_out_first(self, invoke, services):
        """--force discards the current token before signing in."""
        result = invoke("auth", "--force")
        assert result.exit_code == 0
        services.session.sign_out.assert_called_once()
        services.session.sign_in.assert_called_once()

    def test_auth_failure(self, invoke, services):
        """A failed sign-in exits with a hint about credentials."""
        services.session.sign_in.return_value = False
        result = invoke("auth")
        assert result.exit_code == 1
        assert "Could not sign in to Google Drive" in result.output
        assert "GOOGLE_CLIENT_ID" in result.output

    def test_sign_out(self, invoke, services):
        """sign-out revokes the cached session."""
        result = invoke("sign-out")
        assert result.exit_code == 0
        services.session.sign_out.assert_called_once()
        assert "Signed out of Google Drive." in result.output


class TestStatusCommand:
    """Tests for the status command."""

    def test_status_signed_in(self, invoke, store):
        """Status shows sign-in, contact count and auto-sync state."""
        store.set_auto_sync(True)
        result = invoke("status")

        assert result.exit_code == 0
        assert "=== ContacTrack Sync Status ===" in result.output
        assert "Google Drive: Signed in" in result.output
        assert "Local contacts: 2" in result.output
        assert "Last sync: Never" in result.output
        assert "Auto-sync: On" in result.output
        assert "Daemon: Stopped" in result.output

    def test_status_not_configured(self, invoke, services):
        """Missing OAuth credentials are called out."""
        services.session.resume.return_value = False
        services.session.session.client_ready = False
        result = invoke("status")

        assert result.exit_code == 0
        assert "OAuth credentials not configured" in result.output
        assert "contactrack-sync auth" in result.output


class TestBackupCommands:
    """Tests for backup, list and restore."""

    def test_backup_uploads_local_data(self, invoke, services, store):
        """backup uploads the stored dataset."""
        services.repository.upload_backup.return_value = SyncOutcome(
            succeeded=True, message="Backup completed (2 contacts)", count=2
        )
        result = invoke("backup")

        assert result.exit_code == 0
        assert "Backing up 2 contacts..." in result.output
        assert "Backup completed (2 contacts)" in result.output
        services.repository.upload_backup.assert_called_once_with(store.load_people())

    def test_backup_failure(self, invoke, services):
        """A failed upload exits with status 1."""
        services.repository.upload_backup.return_value = SyncOutcome.failure(
            "Backup upload failed"
        )
        result = invoke("backup")
        assert result.exit_code == 1
        assert "Error: Backup upload failed" in result.output

    def test_list_backups(self, invoke, services):
        """list shows a table of backups."""
        services.repository.query_backups.return_value = [
            make_backup("f2", 20),
            make_backup("f1", 10),
        ]
        result = invoke("list")

        assert result.exit_code == 0
        assert "contactrack-backup-2024-01-20-f2.json" in result.output
        assert "2.0 KB" in result.output
        assert "Total: 2 backup(s)" in result.output

    def test_list_empty(self, invoke, services):
        """An empty folder is reported plainly."""
        services.repository.query_backups.return_value = []
        result = invoke("list")
        assert result.exit_code == 0
        assert "No backups found." in result.output

    def test_list_failure(self, invoke, services):
        """A failed listing exits with status 1."""
        services.repository.query_backups.return_value = None
        result = invoke("list")
        assert result.exit_code == 1
        assert "Could not fetch remote backups" in result.output

    def test_list_requires_sign_in(self, invoke, services):
        """Listing is not attempted without a token."""
        services.session.get_sign_in_status.return_value = False
        services.session.sign_in.return_value = False
        result = invoke("list")
        assert result.exit_code == 1
        services.repository.query_backups.assert_not_called()

    def test_restore_newest_with_confirmation(self, invoke, services):
        """Without --backup-id the newest backup is restored after confirming."""
        services.repository.query_backups.return_value = [
            make_backup("f2", 20),
            make_backup("f1", 10),
        ]
        services.repository.restore_from_backup.return_value = SyncOutcome(
            succeeded=True, message="Restore completed (5 contacts)", count=5
        )
        result = invoke("restore", input="y\n")

        assert result.exit_code == 0
        assert "Replace 2 local contacts" in result.output
        assert "Restore completed (5 contacts)" in result.output
        services.repository.restore_from_backup.assert_called_once_with("f2")

    def test_restore_declined(self, invoke, services):
        """Declining the prompt leaves local data untouched."""
        result = invoke("restore", "--backup-id", "f1", input="n\n")
        assert result.exit_code == 1
        services.repository.restore_from_backup.assert_not_called()

    def test_restore_specific_backup(self, invoke, services):
        """--backup-id with --yes restores without listing or prompting."""
        services.repository.restore_from_backup.return_value = SyncOutcome(
            succeeded=True, message="Restore completed (1 contacts)", count=1
        )
        result = invoke("restore", "--backup-id", "f1", "--yes")

        assert result.exit_code == 0
        services.repository.query_backups.assert_not_called()
        services.repository.restore_from_backup.assert_called_once_with("f1")

    def test_restore_without_backups(self, invoke, services):
        """Nothing to restore is an error."""
        services.repository.query_backups.return_value = []
        result = invoke("restore", "--yes")
        assert result.exit_code == 1
        assert "No backups found." in result.output


class TestSyncCommands:
    """Tests for sync and auto-sync."""

    def test_sync_success_records_time(self, invoke, services, store):
        """A successful sync shows the kept side and records the time."""
        services.coordinator.sync_with_local.return_value = SyncOutcome(
            succeeded=True,
            message="Backup completed (2 contacts)",
            resolution=Resolution.KEPT_LOCAL,
        )
        result = invoke("sync")

        assert result.exit_code == 0
        assert "Local data was newer" in result.output
        assert store.get_last_sync() is not None

    def test_sync_failure(self, invoke, services, store):
        """A failed sync exits with status 1 and records nothing."""
        services.coordinator.sync_with_local.return_value = SyncOutcome.failure(
            "Could not fetch remote data"
        )
        result = invoke("sync")

        assert result.exit_code == 1
        assert "Error: Could not fetch remote data" in result.output
        assert store.get_last_sync() is None

    def test_auto_sync_show(self, invoke):
        """Without an argument the current state is shown."""
        result = invoke("auto-sync")
        assert result.exit_code == 0
        assert "Auto-sync: Off" in result.output

    def test_auto_sync_on_off(self, invoke, store):
        """on and off set the persisted switch."""
        assert invoke("auto-sync", "on").exit_code == 0
        assert store.get_auto_sync() is True
        assert invoke("auto-sync", "off").exit_code == 0
        assert store.get_auto_sync() is False

    def test_auto_sync_toggle(self, invoke, store):
        """toggle flips the switch."""
        result = invoke("auto-sync", "toggle")
        assert "Auto-sync: On" in result.output
        assert store.get_auto_sync() is True


class TestImportExport:
    """Tests for export and import."""

    def test_export_stdout(self, invoke):
        """Without a path the dataset is printed as JSON."""
        result = invoke("export")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [p["id"] for p in data] == ["a", "b"]

    def test_export_file(self, invoke, tmp_path):
        """With a path the dataset is written to the file."""
        output = tmp_path / "contacts.json"
        result = invoke("export", str(output))

        assert result.exit_code == 0
        assert "Exported 2 contacts" in result.output
        assert len(json.loads(output.read_text(encoding="utf-8"))) == 2

    def test_import_replaces_dataset(self, invoke, store, tmp_path):
        """Imported contacts replace the local list."""
        source = tmp_path / "import.json"
        source.write_text(
            json.dumps(
                [
                    {"id": "x", "name": "Xavier", "relation": "neighbor"},
                    {"id": "bad"},
                ]
            )
        )
        result = invoke("import", str(source), "--yes")

        assert result.exit_code == 0
        assert "Imported 1 contacts" in result.output
        assert [p.id for p in store.load_people()] == ["x"]

    def test_import_invalid_file(self, invoke, store, tmp_path):
        """Invalid JSON is rejected and local data kept."""
        source = tmp_path / "import.json"
        source.write_text("{not json")
        result = invoke("import", str(source), "--yes")

        assert result.exit_code == 1
        assert "Could not import" in result.output
        assert len(store.load_people()) == 2


class TestDaemonCommands:
    """Tests for the daemon command group."""

    @patch("contactrack_sync.cli.main.AutoSyncScheduler")
    def test_start_passes_intervals(self, mock_scheduler_class, invoke, store):
        """start builds the scheduler from the options and runs it."""
        scheduler = mock_scheduler_class.return_value
        scheduler.stats = SchedulerStats()
        store.set_auto_sync(True)

        result = invoke(
            "daemon",
            "start",
            "--interval",
            "10m",
            "--min-interval",
            "2m",
            "--no-initial-sync",
        )

        assert result.exit_code == 0
        kwargs = mock_scheduler_class.call_args.kwargs
        assert kwargs["interval"] == 600
        assert kwargs["min_sync_interval"] == 120
        assert kwargs["run_immediately"] is False
        scheduler.run.assert_called_once()
        assert "Daemon stopped gracefully" in result.output

    @patch("contactrack_sync.cli.main.AutoSyncScheduler")
    def test_start_warns_when_auto_sync_off(self, mock_scheduler_class, invoke):
        """The daemon starts but warns while auto-sync is off."""
        mock_scheduler_class.return_value.stats = SchedulerStats()
        result = invoke("daemon", "start")
        assert result.exit_code == 0
        assert "Auto-sync is off" in result.output

    @patch("contactrack_sync.cli.main.AutoSyncScheduler")
    def test_start_applies_config_auto_sync(
        self, mock_scheduler_class, invoke, store, tmp_path
    ):
        """auto_sync in the config file switches auto-sync on."""
        mock_scheduler_class.return_value.stats = SchedulerStats()
        (tmp_path / "config.yaml").write_text("auto_sync: true\n")

        result = invoke("daemon", "start")

        assert result.exit_code == 0
        assert store.get_auto_sync() is True

    def test_start_invalid_interval(self, invoke):
        """A malformed interval is a usage error."""
        result = invoke("daemon", "start", "--interval", "soon")
        assert result.exit_code == 2
        assert "Invalid interval format" in result.output

    def test_status_stopped(self, invoke):
        """Without a PID file the daemon is reported stopped."""
        result = invoke("daemon", "status")
        assert result.exit_code == 0
        assert "=== Daemon Status ===" in result.output
        assert "Stopped" in result.output

    def test_stop_without_daemon(self, invoke):
        """Stopping with nothing running is not an error."""
        result = invoke("daemon", "stop")
        assert result.exit_code == 0
        assert "No daemon is currently running." in result.output
