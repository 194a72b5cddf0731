"""Unit tests for LaunchOrchestrator."""

import threading
from unittest.mock import MagicMock, PropertyMock

import paramiko
import pytest

from rdlaunch.config_manager import LaunchConfiguration
from rdlaunch.exceptions import INTERNAL_ERROR, ExportFailedError, LaunchAbortError
from rdlaunch.launcher import Launch, LaunchCapabilities, LaunchMonitor, LaunchOrchestrator
from rdlaunch.source_mapping import DIRECT_REMOTE_DEBUG_MAPPING
from rdlaunch.ssh.connection import SSHConnectionError
from rdlaunch.ssh.shell import ShellOutputEvent
from tests.conftest import FakeChannel, FakeConnection, FakeFileService


def _config(project, **overrides):
    values = {"project_root": project, "host": "build", "user": "dev"}
    values.update(overrides)
    return LaunchConfiguration(**values)


def _ready_supervisor():
    """Supervisor mock whose start() delivers the banner to the listeners."""
    supervisor = MagicMock()
    session = MagicMock()
    session.is_active = True

    def start(config, prelaunch, debugger_path, probe_args, listeners=()):
        for listener in listeners:
            listener(ShellOutputEvent(["GNU gdb (GDB) 10.1"]))
        return session

    supervisor.start.side_effect = start
    return supervisor, session


class TestLaunchMonitor:
    """Tests for LaunchMonitor."""

    def test_progress_callback(self):
        messages = []
        monitor = LaunchMonitor(progress_callback=messages.append)
        monitor.sub_task("Uploading")
        assert messages == ["Uploading"]

    def test_cancel_and_done(self):
        monitor = LaunchMonitor()
        assert not monitor.is_cancelled()
        monitor.cancel()
        monitor.done()
        assert monitor.is_cancelled()
        assert monitor.is_done


class TestWaitForInitialization:
    """Tests for the initialization wait."""

    def test_no_event_returns(self):
        LaunchOrchestrator(LaunchCapabilities(start_session=MagicMock())).wait_for_initialization(
            LaunchMonitor()
        )

    def test_waits_for_event(self):
        initialized = threading.Event()
        orchestrator = LaunchOrchestrator(
            LaunchCapabilities(start_session=MagicMock(), initialized=initialized),
            supervisor=MagicMock(),
            poll_interval=0.01,
        )
        threading.Timer(0.05, initialized.set).start()
        orchestrator.wait_for_initialization(LaunchMonitor())
        assert initialized.is_set()

    def test_cancelled_while_waiting(self):
        """Test cancellation interrupts the wait."""
        orchestrator = LaunchOrchestrator(
            LaunchCapabilities(start_session=MagicMock(), initialized=threading.Event()),
            supervisor=MagicMock(),
            poll_interval=0.01,
        )
        monitor = LaunchMonitor()
        monitor.cancel()
        with pytest.raises(LaunchAbortError, match="initialization"):
            orchestrator.wait_for_initialization(monitor)


class TestUploadSources:
    """Tests for LaunchOrchestrator.upload_sources."""

    def test_find_export_description(self, sample_project):
        assert LaunchOrchestrator.find_export_description(sample_project) == (
            sample_project / "proj.rexpfd"
        )

    def test_find_export_description_none(self, tmp_path):
        assert LaunchOrchestrator.find_export_description(tmp_path) is None
        assert LaunchOrchestrator.find_export_description(tmp_path / "missing") is None

    def test_skipped_without_description(self, tmp_path):
        """Test no connection is made when there is nothing to upload."""
        factory = MagicMock()
        orchestrator = LaunchOrchestrator(
            LaunchCapabilities(start_session=MagicMock(), connection_factory=factory),
            supervisor=MagicMock(),
        )
        assert orchestrator.upload_sources(_config(tmp_path), LaunchMonitor()) is None
        factory.assert_not_called()

    def test_upload_closes_resources(self, sample_project):
        """Test the file service and connection are closed after the export."""
        connection = FakeConnection()
        service = FakeFileService()
        orchestrator = LaunchOrchestrator(
            LaunchCapabilities(
                start_session=MagicMock(),
                connection_factory=lambda target: connection,
                file_service_factory=lambda conn, config: service,
            ),
            supervisor=MagicMock(),
        )

        status = orchestrator.upload_sources(_config(sample_project), LaunchMonitor())

        assert status.is_ok()
        assert "/remote/ws/proj/main.c" in service.uploaded_paths
        assert service.closed
        assert connection.close_count == 1

    def test_unreachable_host(self, sample_project):
        connection = FakeConnection()
        connection.connect = MagicMock(side_effect=SSHConnectionError("refused"))
        orchestrator = LaunchOrchestrator(
            LaunchCapabilities(
                start_session=MagicMock(), connection_factory=lambda target: connection
            ),
            supervisor=MagicMock(),
        )
        with pytest.raises(LaunchAbortError, match="refused") as exc_info:
            orchestrator.upload_sources(_config(sample_project), LaunchMonitor())
        assert exc_info.value.code == INTERNAL_ERROR
        assert connection.close_count == 1

    def test_sftp_unavailable(self, sample_project):
        """Test an SFTP failure after connecting aborts and closes the connection."""
        connection = FakeConnection()

        def no_sftp(conn, config):
            raise paramiko.SSHException("subsystem sftp unavailable")

        orchestrator = LaunchOrchestrator(
            LaunchCapabilities(
                start_session=MagicMock(),
                connection_factory=lambda target: connection,
                file_service_factory=no_sftp,
            ),
            supervisor=MagicMock(),
        )
        with pytest.raises(LaunchAbortError, match="sftp") as exc_info:
            orchestrator.upload_sources(_config(sample_project), LaunchMonitor())
        assert exc_info.value.code == INTERNAL_ERROR
        assert connection.close_count == 1


class TestLaunch:
    """Tests for LaunchOrchestrator.launch."""

    def test_successful_launch(self, tmp_path):
        """Test the backend receives a launch with version and mapping."""
        supervisor, session = _ready_supervisor()
        start_session = MagicMock()
        orchestrator = LaunchOrchestrator(
            LaunchCapabilities(start_session=start_session, debugger_path=lambda c: "/opt/gdb"),
            supervisor=supervisor,
        )
        monitor = LaunchMonitor()
        config = _config(tmp_path, remote_workspace="/remote/ws", prerun_commands="cd /remote/ws")

        launch = orchestrator.launch(config, monitor=monitor)

        assert launch.gdb_version == "10.1"
        assert launch.shell is session
        assert launch.console_output == "GNU gdb (GDB) 10.1\n"
        assert [c.name for c in launch.source_locator.containers][-1] == DIRECT_REMOTE_DEBUG_MAPPING
        start_session.assert_called_once_with(config, launch)
        supervisor.start.assert_called_once()
        assert supervisor.start.call_args[0][1:4] == ("cd /remote/ws", "/opt/gdb", "-version")
        session.process.destroy.assert_not_called()
        assert monitor.is_done

    def test_backend_failure_destroys_process(self, tmp_path):
        """Test a failing backend leaves no remote process behind."""
        supervisor, session = _ready_supervisor()
        start_session = MagicMock(side_effect=RuntimeError("backend crashed"))
        orchestrator = LaunchOrchestrator(
            LaunchCapabilities(start_session=start_session), supervisor=supervisor
        )
        monitor = LaunchMonitor()

        with pytest.raises(RuntimeError, match="backend crashed"):
            orchestrator.launch(_config(tmp_path), monitor=monitor)

        session.process.destroy.assert_called_once()
        assert monitor.is_done

    def test_missing_process(self, tmp_path):
        """Test a session without a process handle aborts the launch."""
        supervisor = MagicMock()
        session = supervisor.start.return_value
        type(session).process = PropertyMock(side_effect=ValueError("no channel"))
        orchestrator = LaunchOrchestrator(
            LaunchCapabilities(start_session=MagicMock()), supervisor=supervisor
        )

        with pytest.raises(LaunchAbortError) as exc_info:
            orchestrator.launch(_config(tmp_path))

        assert exc_info.value.code == INTERNAL_ERROR
        session.exit.assert_called_once()

    def test_export_failure_stops_launch(self, sample_project):
        """Test no shell is started when the upload fails."""
        service = FakeFileService()
        service.fail_uploads.add("/remote/ws/proj/main.c")
        supervisor = MagicMock()
        orchestrator = LaunchOrchestrator(
            LaunchCapabilities(
                start_session=MagicMock(),
                connection_factory=lambda target: FakeConnection(),
                file_service_factory=lambda conn, config: service,
            ),
            supervisor=supervisor,
        )
        with pytest.raises(ExportFailedError):
            orchestrator.launch(_config(sample_project))
        supervisor.start.assert_not_called()

    def test_real_session_cancelled(self, tmp_path):
        """Test cancellation with a real shell session destroys it once."""
        channel = FakeChannel()
        connection = FakeConnection(channel)
        start_session = MagicMock()
        orchestrator = LaunchOrchestrator(
            LaunchCapabilities(
                start_session=start_session, connection_factory=lambda target: connection
            ),
            poll_interval=0.01,
        )
        monitor = LaunchMonitor()
        launch = Launch(configuration=_config(tmp_path))
        threading.Timer(0.05, monitor.cancel).start()

        with pytest.raises(LaunchAbortError):
            orchestrator.launch(launch.configuration, launch, monitor)

        start_session.assert_not_called()
        assert launch.process.destroyed
        assert channel.closed
        assert connection.close_count == 1
        launch.debug_session.dispose()
