"""Remote launch orchestration.

A launch runs these steps in order on the calling thread:

1. Wait for subsystem initialization (cancellable)
2. Upload the project using the *.rexpfd description in its root, if any
3. Open a remote shell and send "<prerun> ; <gdb> -version"
4. Block until gdb prints its version banner, the shell dies or the launch
   is cancelled
5. Add the remote->local source mapping and hand off to the debug backend

Once the shell is up, any failure destroys it before the error propagates.
The backend and the lookups it depends on are passed in as
LaunchCapabilities rather than overridden in a subclass.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import paramiko

from rdlaunch.config_manager import LaunchConfiguration
from rdlaunch.debug_session import DebugSession
from rdlaunch.exceptions import INTERNAL_ERROR, LaunchAbortError
from rdlaunch.readiness import POLL_INTERVAL, BannerListener, ReadinessLatch, ReadinessMonitor
from rdlaunch.source_mapping import DirectorySourceContainer, SourceLocator, inject_mapping
from rdlaunch.ssh.connection import SSHConnection, SSHConnectionError, SSHTarget
from rdlaunch.ssh.file_service import RemoteFileService, SFTPFileService
from rdlaunch.ssh.shell import RemoteShellSession, RemoteShellSupervisor, ShellProcessAdapter
from rdlaunch.status import Status
from rdlaunch.upload.description import EXPORT_DESCRIPTION_EXTENSION, ExportDescriptor
from rdlaunch.upload.exporter import ExportCoordinator

logger = logging.getLogger(__name__)


class LaunchMonitor:
    """Progress reporting and cooperative cancellation for one launch."""

    def __init__(self, progress_callback: Callable[[str], None] | None = None):
        self.progress_callback = progress_callback
        self._cancelled = threading.Event()
        self._done = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def sub_task(self, message: str) -> None:
        logger.info(message)
        if self.progress_callback is not None:
            self.progress_callback(message)

    def done(self) -> None:
        self._done.set()

    @property
    def is_done(self) -> bool:
        return self._done.is_set()


def default_source_locator(config: LaunchConfiguration) -> SourceLocator:
    return SourceLocator([DirectorySourceContainer("project", directory=config.project_root)])


def default_local_root(config: LaunchConfiguration) -> Path | None:
    return config.project_root if config.project_root.is_dir() else None


def default_file_service(connection: SSHConnection, config: LaunchConfiguration) -> RemoteFileService:
    return SFTPFileService.open(
        connection, separator=config.remote_separator, encoding=config.remote_encoding
    )


@dataclass
class LaunchCapabilities:
    """What the orchestrator needs from its surroundings.

    Attributes:
        start_session: Debug backend; receives the configuration and the
            prepared Launch once gdb is ready
        debugger_path: Remote gdb path for a configuration
        source_locator: Base source locator before the mapping is added
        local_root: Local project directory, None if it cannot be resolved
        initialized: Set once required subsystems are ready (None = no wait)
        review_flow: Handler for descriptions that ask for review first
        connection_factory: Builds SSH connections
        file_service_factory: Builds the remote file service for uploads
    """

    start_session: Callable[[LaunchConfiguration, "Launch"], None]
    debugger_path: Callable[[LaunchConfiguration], str] = lambda config: config.gdb_path
    source_locator: Callable[[LaunchConfiguration], SourceLocator] = default_source_locator
    local_root: Callable[[LaunchConfiguration], Path | None] = default_local_root
    initialized: threading.Event | None = None
    review_flow: Callable[[ExportDescriptor], None] | None = None
    connection_factory: Callable[[SSHTarget], SSHConnection] = SSHConnection
    file_service_factory: Callable[[SSHConnection, LaunchConfiguration], RemoteFileService] = (
        default_file_service
    )


@dataclass
class Launch:
    """State of one launch, handed to the debug backend."""

    configuration: LaunchConfiguration
    debug_session: DebugSession = field(default_factory=DebugSession)
    mode: str = "debug"
    gdb_version: str = ""
    shell: RemoteShellSession | None = None
    source_locator: SourceLocator | None = None
    export_status: Status | None = None
    banner_listener: BannerListener | None = None

    @property
    def process(self) -> ShellProcessAdapter | None:
        return self.shell.process if self.shell is not None else None

    @property
    def console_output(self) -> str:
        return self.banner_listener.console_output if self.banner_listener else ""


class LaunchOrchestrator:
    """Prepare a remote gdb and hand it to the debug backend.

    Example:
        >>> orchestrator = LaunchOrchestrator(LaunchCapabilities(start_session=backend.start))
        >>> launch = orchestrator.launch(config)
        >>> launch.gdb_version
        '12.1'
    """

    def __init__(
        self,
        capabilities: LaunchCapabilities,
        supervisor: RemoteShellSupervisor | None = None,
        poll_interval: float = POLL_INTERVAL,
    ):
        self.capabilities = capabilities
        self.supervisor = supervisor or RemoteShellSupervisor(
            connection_factory=capabilities.connection_factory
        )
        self.poll_interval = poll_interval

    def launch(
        self,
        config: LaunchConfiguration,
        launch: Launch | None = None,
        monitor: LaunchMonitor | None = None,
    ) -> Launch:
        """Run the whole launch sequence.

        Raises:
            LaunchAbortError: Initialization wait cancelled, shell unreachable
                or gdb never became ready
            ExportFailedError: Upload failed
            Exception: Whatever the debug backend raises
        """
        launch = launch or Launch(configuration=config)
        monitor = monitor or LaunchMonitor()
        try:
            self.wait_for_initialization(monitor)
            launch.export_status = self.upload_sources(config, monitor)

            monitor.sub_task("Starting remote debugger")
            latch = ReadinessLatch()
            launch.banner_listener = BannerListener(latch)
            session = self.supervisor.start(
                config,
                config.prerun_commands,
                self.capabilities.debugger_path(config),
                RemoteShellSupervisor.PROBE_ARGS,
                listeners=[launch.banner_listener],
            )
            launch.shell = session

            try:
                process = session.process
            except ValueError as e:
                session.exit()
                raise LaunchAbortError("Error creating the remote process", INTERNAL_ERROR) from e

            try:
                readiness = ReadinessMonitor(
                    latch,
                    session,
                    monitor.is_cancelled,
                    debug_session=launch.debug_session,
                    poll_interval=self.poll_interval,
                )
                launch.gdb_version = readiness.wait_until_ready()

                launch.source_locator = self.build_source_locator(config)
                monitor.sub_task(f"Starting debug session (gdb {launch.gdb_version})")
                self.capabilities.start_session(config, launch)
            except BaseException:
                # Never leave gdb running on the remote host
                process.destroy()
                raise
        finally:
            monitor.done()
        return launch

    def wait_for_initialization(self, monitor: LaunchMonitor) -> None:
        """Block until capabilities.initialized is set.

        Raises:
            LaunchAbortError: If the launch is cancelled while waiting
        """
        initialized = self.capabilities.initialized
        if initialized is None or initialized.is_set():
            return
        monitor.sub_task("Waiting for remote services to initialize")
        while not initialized.wait(timeout=self.poll_interval):
            if monitor.is_cancelled():
                raise LaunchAbortError("Launch cancelled while waiting for initialization")

    @staticmethod
    def find_export_description(project_root: Path) -> Path | None:
        """First *.rexpfd file directly under the project root."""
        if not project_root.is_dir():
            return None
        candidates = sorted(project_root.glob(f"*.{EXPORT_DESCRIPTION_EXTENSION}"))
        return next((c for c in candidates if c.is_file()), None)

    def upload_sources(self, config: LaunchConfiguration, monitor: LaunchMonitor) -> Status | None:
        """Upload the project if it carries an export description.

        Returns:
            Merged export status, or None when there is nothing to upload

        Raises:
            ExportFailedError: If the export fails
            LaunchAbortError: If the host or its SFTP subsystem cannot be reached
        """
        description = self.find_export_description(config.project_root)
        if description is None:
            logger.info(f"No *.{EXPORT_DESCRIPTION_EXTENSION} in {config.project_root}, skipping upload")
            return None

        monitor.sub_task(f"Uploading sources using {description.name}")
        connection = self.capabilities.connection_factory(config.ssh_target())
        try:
            connection.connect()
            file_service = self.capabilities.file_service_factory(connection, config)
        except (SSHConnectionError, paramiko.SSHException, OSError) as e:
            connection.close()
            raise LaunchAbortError(f"Unable to upload sources: {e}", INTERNAL_ERROR) from e

        try:
            coordinator = ExportCoordinator(
                file_service,
                review_flow=self.capabilities.review_flow,
                is_cancelled=monitor.is_cancelled,
            )
            return coordinator.run([description])
        finally:
            file_service.close()
            connection.close()

    def build_source_locator(self, config: LaunchConfiguration) -> SourceLocator:
        locator = self.capabilities.source_locator(config)
        return inject_mapping(
            locator, config.remote_workspace, self.capabilities.local_root(config)
        )


__all__ = [
    "Launch",
    "LaunchCapabilities",
    "LaunchMonitor",
    "LaunchOrchestrator",
]
