"""SSH utilities for rdlaunch.

This package contains the SSH transport pieces:
- connection: paramiko client wrapper
- file_service: SFTP-backed remote file service
- shell: remote shell supervisor and process adapter
"""

from .connection import SSHConnection, SSHConnectionError, SSHTarget
from .file_service import RemoteFileService, SFTPFileService
from .shell import (
    RemoteShellSession,
    RemoteShellSupervisor,
    ShellOutputEvent,
    ShellProcessAdapter,
)

__all__ = [
    "RemoteFileService",
    "RemoteShellSession",
    "RemoteShellSupervisor",
    "SFTPFileService",
    "SSHConnection",
    "SSHConnectionError",
    "SSHTarget",
    "ShellOutputEvent",
    "ShellProcessAdapter",
]
