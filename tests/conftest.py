"""
Shared test fixtures for rdlaunch tests.

This module provides in-process fakes for the remote side:
- FakeFileService: records directories and files instead of using SFTP
- FakeChannel: scripted paramiko channel for shell tests
- Sample projects with export descriptions
"""

import io
import queue
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from rdlaunch.ssh.file_service import RemoteFileService

# ============================================================================
# REMOTE FILE SERVICE FAKE
# ============================================================================


class RecordingOutput(io.BytesIO):
    """Output stream that keeps its bytes after close."""

    def __init__(self, fail_after: int | None = None):
        super().__init__()
        self.fail_after = fail_after
        self.writes: list[int] = []
        self.closed_flag = False
        self.data = b""

    def write(self, chunk):
        if self.fail_after is not None and len(self.writes) >= self.fail_after:
            raise OSError("remote write failed")
        self.writes.append(len(chunk))
        return super().write(chunk)

    def close(self):
        if not self.closed:
            self.data = self.getvalue()
            self.closed_flag = True
        super().close()


class FakeFileService(RemoteFileService):
    """RemoteFileService that records calls in memory."""

    def __init__(self, separator: str = "/", encoding: str = "utf-8"):
        self.separator = separator
        self.encoding = encoding
        self.directories: list[str] = []
        self.uploads: list[tuple[Path, str, str, str, bool]] = []
        self.outputs: dict[str, RecordingOutput] = {}
        self.fail_uploads: set[str] = set()
        self.output_fail_after: int | None = None
        self.closed = False

    def encoding_of(self, remote_path):
        return self.encoding

    def exists(self, remote_path):
        return remote_path in self.directories or any(u[2] == remote_path for u in self.uploads)

    def make_directory(self, remote_path, parents=False):
        self.directories.append(remote_path)

    def upload(self, local_path, local_encoding, remote_path, host_encoding, binary=False):
        if remote_path in self.fail_uploads:
            raise OSError(f"permission denied: {remote_path}")
        self.uploads.append((local_path, local_encoding, remote_path, host_encoding, binary))

    def open_output(self, remote_parent, remote_name):
        output = RecordingOutput(self.output_fail_after)
        self.outputs[f"{remote_parent}{self.separator}{remote_name}"] = output
        return output

    def close(self):
        self.closed = True

    @property
    def uploaded_paths(self) -> list[str]:
        return [u[2] for u in self.uploads]


@pytest.fixture
def file_service():
    """Recording remote file service using '/' separators."""
    return FakeFileService()


# ============================================================================
# SHELL CHANNEL FAKE
# ============================================================================


class FakeChannel:
    """Scripted stand-in for paramiko.Channel.

    feed() queues bytes for recv(); finish() makes recv() return EOF and
    marks the remote command as exited.
    """

    def __init__(self, responses: dict[str, list[bytes]] | None = None):
        self.responses = responses or {}
        self.sent: list[str] = []
        self.closed = False
        self._exited = False
        self._exit_status = 0
        self._incoming: queue.Queue = queue.Queue()
        self.transport = MagicMock()
        self.transport.is_active.return_value = True

    def feed(self, data: bytes) -> None:
        self._incoming.put(data)

    def finish(self, exit_status: int = 0) -> None:
        self._exit_status = exit_status
        self._exited = True
        self._incoming.put(b"")

    def recv(self, size):
        return self._incoming.get()

    def sendall(self, data):
        command = data.decode().rstrip("\n")
        self.sent.append(command)
        for chunk in self.responses.get(command, []):
            self.feed(chunk)

    def exit_status_ready(self):
        return self._exited

    def recv_exit_status(self):
        return self._exit_status

    def get_transport(self):
        return self.transport

    def close(self):
        self.closed = True
        self._incoming.put(b"")


class FakeConnection:
    """SSHConnection stand-in handing out a FakeChannel and a file service."""

    def __init__(self, channel: FakeChannel | None = None, file_service=None):
        self.channel = channel or FakeChannel()
        self.file_service = file_service
        self.connected = False
        self.close_count = 0

    def connect(self):
        self.connected = True
        return self

    def invoke_shell(self):
        return self.channel

    def close(self):
        self.close_count += 1


@pytest.fixture
def fake_channel():
    return FakeChannel()


# ============================================================================
# PROJECT FIXTURES
# ============================================================================


DESCRIPTION_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<fileexport reviewSynchronize="{review}">
  <project path="."/>
  <destination path="{destination}" encoding="UTF-8"/>
{extra}</fileexport>
"""


def write_description(
    project: Path,
    destination: str,
    name: str = "proj.rexpfd",
    review: bool = False,
    extra: str = "",
) -> Path:
    """Write an export description into project."""
    path = project / name
    path.write_text(
        DESCRIPTION_TEMPLATE.format(
            destination=destination, review=str(review).lower(), extra=extra
        )
    )
    return path


@pytest.fixture
def sample_project(tmp_path):
    """Project with two sources, a nested include dir and a description.

    Layout:
        proj/main.c
        proj/util.c
        proj/include/util.h
        proj/proj.rexpfd -> /remote/ws/proj
    """
    project = tmp_path / "proj"
    (project / "include").mkdir(parents=True)
    (project / "main.c").write_text("int main(void) { return 0; }\n")
    (project / "util.c").write_text("int util(void) { return 1; }\n")
    (project / "include" / "util.h").write_text("int util(void);\n")
    write_description(project, "/remote/ws/proj")
    return project
