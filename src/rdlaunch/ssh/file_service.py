"""Remote file service over SFTP.

The uploader talks to a RemoteFileService; SFTPFileService implements it on
top of a paramiko SFTP client. Paths handed to the service are already in the
remote separator convention.
"""

import codecs
import logging
import stat
from pathlib import Path
from typing import BinaryIO

import paramiko

from .connection import SSHConnection

logger = logging.getLogger(__name__)


class RemoteFileService:
    """Operations the uploader needs from the remote filesystem."""

    separator = "/"

    def encoding_of(self, remote_path: str) -> str:
        raise NotImplementedError

    def exists(self, remote_path: str) -> bool:
        raise NotImplementedError

    def make_directory(self, remote_path: str, parents: bool = False) -> None:
        raise NotImplementedError

    def upload(
        self,
        local_path: Path,
        local_encoding: str,
        remote_path: str,
        host_encoding: str,
        binary: bool = False,
    ) -> None:
        raise NotImplementedError

    def open_output(self, remote_parent: str, remote_name: str) -> BinaryIO:
        raise NotImplementedError

    def close(self) -> None:
        """Release the underlying session."""


def same_encoding(first: str, second: str) -> bool:
    """Compare two codec names by their canonical form."""
    try:
        return codecs.lookup(first).name == codecs.lookup(second).name
    except LookupError:
        return first.lower() == second.lower()


def translate_encoding(data: bytes, local_encoding: str, host_encoding: str) -> bytes:
    """Re-encode text content for the remote host.

    ASCII-only content and content already in the host encoding are returned
    unchanged.

    Raises:
        UnicodeError: If data cannot be decoded or encoded
    """
    if same_encoding(local_encoding, host_encoding) or data.isascii():
        return data
    return data.decode(local_encoding).encode(host_encoding)


class SFTPFileService(RemoteFileService):
    """RemoteFileService backed by paramiko's SFTP client.

    Example:
        >>> with SSHConnection(target) as conn:
        ...     service = SFTPFileService.open(conn)
        ...     service.make_directory("/home/dev/ws", parents=True)
    """

    def __init__(
        self,
        sftp: paramiko.SFTPClient,
        separator: str = "/",
        encoding: str = "utf-8",
    ):
        self.sftp = sftp
        self.separator = separator
        self.encoding = encoding

    @classmethod
    def open(
        cls, connection: SSHConnection, separator: str = "/", encoding: str = "utf-8"
    ) -> "SFTPFileService":
        return cls(connection.open_sftp(), separator=separator, encoding=encoding)

    def encoding_of(self, remote_path: str) -> str:
        # SFTP has no notion of per-file encoding; the host default applies.
        return self.encoding

    def exists(self, remote_path: str) -> bool:
        try:
            self.sftp.stat(remote_path)
            return True
        except FileNotFoundError:
            return False

    def _is_directory(self, remote_path: str) -> bool:
        try:
            return stat.S_ISDIR(self.sftp.stat(remote_path).st_mode or 0)
        except FileNotFoundError:
            return False

    def make_directory(self, remote_path: str, parents: bool = False) -> None:
        """Create a remote directory; existing directories are left alone.

        Raises:
            OSError: If the directory cannot be created
        """
        if parents:
            sep = self.separator
            prefix = sep if remote_path.startswith(sep) else ""
            current = ""
            for part in [p for p in remote_path.split(sep) if p]:
                current = f"{current}{sep}{part}" if current else f"{prefix}{part}"
                if not self._is_directory(current):
                    self.sftp.mkdir(current)
            return

        if self._is_directory(remote_path):
            return
        self.sftp.mkdir(remote_path)
        logger.debug(f"Created remote directory {remote_path}")

    def upload(
        self,
        local_path: Path,
        local_encoding: str,
        remote_path: str,
        host_encoding: str,
        binary: bool = False,
    ) -> None:
        """Upload a local file, translating text to the host encoding.

        Raises:
            OSError: On read or transfer failure
            UnicodeError: If the content does not decode with local_encoding
        """
        if binary or same_encoding(local_encoding, host_encoding):
            self.sftp.put(str(local_path), remote_path)
            return

        data = translate_encoding(local_path.read_bytes(), local_encoding, host_encoding)
        with self.sftp.open(remote_path, "wb") as remote_file:
            remote_file.write(data)

    def open_output(self, remote_parent: str, remote_name: str) -> BinaryIO:
        remote_path = f"{remote_parent}{self.separator}{remote_name}"
        return self.sftp.open(remote_path, "wb")

    def close(self) -> None:
        try:
            self.sftp.close()
        except (paramiko.SSHException, OSError) as e:
            logger.debug(f"Error closing SFTP session: {e}")


__all__ = ["RemoteFileService", "SFTPFileService", "same_encoding", "translate_encoding"]
