"""SSH connection wrapper.

Public API:
    SSHTarget: Where to connect
    SSHConnection: paramiko client with liveness checks
    SSHConnectionError: Raised when the host cannot be reached
"""

import logging
import time
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import paramiko

logger = logging.getLogger(__name__)


class SSHConnectionError(Exception):
    """Raised when SSH connection fails."""

    pass


@dataclass
class SSHTarget:
    """SSH connection target.

    Attributes:
        host: Remote host address
        user: SSH username
        key_path: Path to SSH private key (None uses the agent/default keys)
        port: SSH port
        timeout: Connection timeout in seconds
    """

    host: str
    user: str
    key_path: Path | None = None
    port: int = 22
    timeout: int = 30

    def __post_init__(self):
        if not self.host:
            raise ValueError("SSH host cannot be empty")
        if not self.user:
            raise ValueError("SSH user cannot be empty")
        if not (1 <= self.port <= 65535):
            raise ValueError(f"Invalid SSH port: {self.port}")

    @property
    def connection_key(self) -> str:
        return f"{self.user}@{self.host}:{self.port}"


@dataclass
class SSHConnection:
    """Wrapper for a paramiko SSH client.

    Attributes:
        target: Where to connect
        client: Paramiko SSH client (created on connect)
        connected_at: Timestamp of the successful connect
    """

    target: SSHTarget
    client: Any | None = None
    connected_at: float | None = field(default=None, init=False)

    def connect(self) -> "SSHConnection":
        """Establish SSH connection.

        Raises:
            SSHConnectionError: If the connection fails
        """
        if self.client is None:
            self.client = paramiko.SSHClient()
            with suppress(OSError):  # System host keys may not exist
                self.client.load_system_host_keys()
            # Remote build hosts are frequently re-imaged; accept new keys.
            self.client.set_missing_host_key_policy(paramiko.AutoAddPolicy())  # nosec B507

        key_filename = None
        if self.target.key_path is not None:
            key_filename = str(self.target.key_path.expanduser())

        logger.debug(f"Connecting to {self.target.connection_key}")
        try:
            self.client.connect(
                hostname=self.target.host,
                port=self.target.port,
                username=self.target.user,
                key_filename=key_filename,
                timeout=self.target.timeout,
            )
        except (paramiko.SSHException, OSError) as e:
            raise SSHConnectionError(
                f"SSH connection to {self.target.connection_key} failed: {e}"
            ) from e

        self.connected_at = time.time()
        return self

    def is_alive(self) -> bool:
        """Check if the transport is still active."""
        if self.client is None:
            return False
        transport = self.client.get_transport()
        return transport is not None and transport.is_active()

    def open_sftp(self) -> paramiko.SFTPClient:
        if not self.is_alive():
            raise SSHConnectionError(f"Not connected to {self.target.connection_key}")
        return self.client.open_sftp()

    def invoke_shell(self) -> paramiko.Channel:
        if not self.is_alive():
            raise SSHConnectionError(f"Not connected to {self.target.connection_key}")
        return self.client.invoke_shell()

    def close(self) -> None:
        """Close SSH connection."""
        if self.client is not None:
            try:
                self.client.close()
            except (paramiko.SSHException, OSError) as e:
                logger.debug(f"Error closing connection to {self.target.connection_key}: {e}")
            finally:
                self.connected_at = None

    def __enter__(self) -> "SSHConnection":
        if not self.is_alive():
            self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


__all__ = ["SSHConnection", "SSHConnectionError", "SSHTarget"]
