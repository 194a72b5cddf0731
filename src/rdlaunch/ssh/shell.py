"""Remote shell supervision.

Opens an interactive shell on the launch host, sends the gdb version probe
and streams the shell's output to listeners from a background reader thread.

Public API:
    RemoteShellSupervisor: Starts the shell and issues the probe
    RemoteShellSession: Live shell with output listeners
    ShellProcessAdapter: Popen-like view of a session (destroy/poll/wait)
    ShellOutputEvent: One batch of output lines
"""

import codecs
import logging
import shlex
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import paramiko

from rdlaunch.exceptions import INTERNAL_ERROR, LaunchAbortError

from .connection import SSHConnection, SSHConnectionError, SSHTarget

if TYPE_CHECKING:
    from rdlaunch.config_manager import LaunchConfiguration

logger = logging.getLogger(__name__)

RECV_SIZE = 4096


@dataclass
class ShellOutputEvent:
    """Output lines delivered by the shell reader thread."""

    lines: list[str] = field(default_factory=list)  # type: ignore[misc]


ShellOutputListener = Callable[[ShellOutputEvent], None]


class RemoteShellSession:
    """Interactive remote shell bound to a paramiko channel.

    Output is read on a daemon thread and handed to every registered listener
    as ShellOutputEvent batches. Listeners run on that thread.
    """

    def __init__(
        self,
        channel: paramiko.Channel,
        connection: SSHConnection | None = None,
        encoding: str = "utf-8",
    ):
        self.channel = channel
        self.connection = connection
        self.encoding = encoding
        self._listeners: list[ShellOutputListener] = []
        self._listeners_lock = threading.Lock()
        self._reader: threading.Thread | None = None
        self._closed = False
        self._process: ShellProcessAdapter | None = None

    def add_output_listener(self, listener: ShellOutputListener) -> None:
        with self._listeners_lock:
            self._listeners.append(listener)

    def remove_output_listener(self, listener: ShellOutputListener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def start_reader(self) -> None:
        """Start the background thread that drains the channel."""
        if self._reader is not None:
            return
        self._reader = threading.Thread(
            target=self._read_loop, name="rdlaunch-shell-reader", daemon=True
        )
        self._reader.start()

    def _read_loop(self) -> None:
        decoder = codecs.getincrementaldecoder(self.encoding)(errors="replace")
        pending = ""
        while True:
            try:
                data = self.channel.recv(RECV_SIZE)
            except (OSError, EOFError, paramiko.SSHException) as e:
                # Channel closed underneath us, normal during destroy
                logger.debug(f"Shell reader stopped: {e}")
                break
            if not data:
                break
            pending += decoder.decode(data)
            *complete, pending = pending.split("\n")
            if complete:
                self._dispatch([line.rstrip("\r") for line in complete])

        pending += decoder.decode(b"", final=True)
        if pending:
            self._dispatch([pending.rstrip("\r")])
        logger.debug("Remote shell output stream ended")

    def _dispatch(self, lines: list[str]) -> None:
        event = ShellOutputEvent(lines=lines)
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.warning("Shell output listener failed", exc_info=True)

    def write_line(self, command: str) -> None:
        """Send one newline-terminated command to the shell."""
        self.channel.sendall((command + "\n").encode(self.encoding))

    @property
    def is_active(self) -> bool:
        if self._closed or self.channel.closed:
            return False
        if self.channel.exit_status_ready():
            return False
        transport = self.channel.get_transport()
        return transport is not None and transport.is_active()

    @property
    def output_drained(self) -> bool:
        """True once the reader thread has delivered everything the channel sent."""
        return self._reader is None or not self._reader.is_alive()

    @property
    def exit_status(self) -> int | None:
        if self.channel.exit_status_ready():
            return self.channel.recv_exit_status()
        return None

    @property
    def process(self) -> "ShellProcessAdapter":
        """Process handle for this shell, created on first access."""
        if self._process is None:
            self._process = ShellProcessAdapter(self)
        return self._process

    def exit(self) -> None:
        """Close the channel and the owning connection."""
        if self._closed:
            return
        self._closed = True
        try:
            self.channel.close()
        except (OSError, paramiko.SSHException) as e:
            logger.debug(f"Error closing shell channel: {e}")
        if self.connection is not None:
            self.connection.close()


class ShellProcessAdapter:
    """Expose a RemoteShellSession with the subprocess.Popen surface.

    Callers terminate a remote shell the same way they terminate a local
    process. destroy() acts only once.
    """

    def __init__(self, session: RemoteShellSession):
        if session is None or session.channel is None:
            raise ValueError("Shell session has no channel")
        self.session = session
        self._destroyed = False
        self._lock = threading.Lock()

    @property
    def returncode(self) -> int | None:
        return self.poll()

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def poll(self) -> int | None:
        if self.session.is_active:
            return None
        status = self.session.exit_status
        return status if status is not None else -1

    def wait(self, timeout: float | None = None, interval: float = 0.1) -> int:
        """Wait for the shell to finish.

        Raises:
            TimeoutError: If the shell is still active after timeout seconds
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while self.session.is_active:
            if deadline is not None and time.monotonic() >= deadline:
                raise TimeoutError(f"Remote shell still running after {timeout}s")
            time.sleep(interval)
        return self.poll()  # type: ignore[return-value]

    def destroy(self) -> None:
        with self._lock:
            if self._destroyed:
                return
            self._destroyed = True
        logger.debug("Destroying remote shell process")
        self.session.exit()

    terminate = destroy
    kill = destroy


class RemoteShellSupervisor:
    """Start the remote shell that hosts gdb.

    Example:
        >>> supervisor = RemoteShellSupervisor()
        >>> session = supervisor.start(config, "source env.sh", "gdb", "-version")
        >>> session.is_active
        True
    """

    COMMAND_DELIMITER = " ; "
    PROBE_ARGS = "-version"

    def __init__(
        self,
        connection_factory: Callable[[SSHTarget], SSHConnection] = SSHConnection,
        encoding: str = "utf-8",
    ):
        self.connection_factory = connection_factory
        self.encoding = encoding

    @classmethod
    def build_command(cls, prelaunch_command: str, debugger_path: str, probe_args: str) -> str:
        """Compose the single command line sent to the shell.

        Example:
            >>> RemoteShellSupervisor.build_command("cd /ws", "/usr/bin/gdb", "-version")
            'cd /ws ; /usr/bin/gdb -version'
        """
        command = shlex.quote(debugger_path)
        if probe_args:
            command = f"{command} {probe_args}"
        if prelaunch_command.strip():
            command = f"{prelaunch_command.strip()}{cls.COMMAND_DELIMITER}{command}"
        return command

    def start(
        self,
        config: "LaunchConfiguration",
        prelaunch_command: str,
        debugger_path: str,
        probe_args: str = PROBE_ARGS,
        listeners: Iterable[ShellOutputListener] = (),
    ) -> RemoteShellSession:
        """Open the shell, attach listeners and send the probe.

        Listeners are attached before the command is sent so the version
        banner cannot be missed.

        Raises:
            LaunchAbortError: If the host or shell cannot be reached
        """
        target = config.ssh_target()
        connection = self.connection_factory(target)
        try:
            connection.connect()
            channel = connection.invoke_shell()
        except (SSHConnectionError, paramiko.SSHException, OSError) as e:
            connection.close()
            raise LaunchAbortError(
                f"Unable to open a remote shell on {target.host}: {e}", INTERNAL_ERROR
            ) from e

        session = RemoteShellSession(channel, connection=connection, encoding=self.encoding)
        for listener in listeners:
            session.add_output_listener(listener)
        session.start_reader()

        command = self.build_command(prelaunch_command, debugger_path, probe_args)
        logger.info(f"Probing debugger on {target.host}: {command}")
        try:
            session.write_line(command)
        except (OSError, paramiko.SSHException) as e:
            session.exit()
            raise LaunchAbortError(
                f"Unable to send command to remote shell: {e}", INTERNAL_ERROR
            ) from e
        return session


__all__ = [
    "RemoteShellSession",
    "RemoteShellSupervisor",
    "ShellOutputEvent",
    "ShellOutputListener",
    "ShellProcessAdapter",
]
