"""Mirror a local resource tree onto the remote filesystem.

The walk and the transfer are separate steps: plan() turns a resource tree
into a flat list of MakeDirectory/TransferFile operations, execute() performs
them against a RemoteFileService.
"""

import logging
import time
from dataclasses import dataclass

import paramiko

from rdlaunch.exceptions import UploadError
from rdlaunch.resources import ContainerResource, FileResource, ResourceNode
from rdlaunch.ssh.file_service import RemoteFileService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MakeDirectory:
    """Create remote_path on the remote host."""

    remote_path: str


@dataclass(frozen=True)
class TransferFile:
    """Copy resource to remote_path."""

    resource: FileResource
    remote_path: str


UploadOperation = MakeDirectory | TransferFile


@dataclass
class UploadResult:
    """Statistics for one upload."""

    files_transferred: int = 0
    directories_created: int = 0
    bytes_transferred: int = 0
    duration_seconds: float = 0.0


def join_remote(parent: str, name: str) -> str:
    """Join with '/', the separator used until paths reach the service."""
    return f"{parent.rstrip('/')}/{name}" if parent not in ("", "/") else f"/{name}"


class ResourceUploader:
    """Upload resources through a RemoteFileService.

    Example:
        >>> uploader = ResourceUploader(service)
        >>> uploader.create_remote_directory("/home/dev/ws/proj")
        >>> result = uploader.upload(project, "/home/dev/ws/proj")
        >>> result.files_transferred
        12
    """

    BUFFER_SIZE = 1000

    def __init__(
        self,
        file_service: RemoteFileService,
        local_encoding: str | None = None,
        host_encoding: str | None = None,
        binary_suffixes: tuple[str, ...] = (),
    ):
        self.file_service = file_service
        self.local_encoding = local_encoding
        self.host_encoding = host_encoding
        self.binary_suffixes = tuple(s.lower() for s in binary_suffixes)

    def to_remote(self, path: str) -> str:
        """Translate a '/'-separated path to the remote separator."""
        sep = self.file_service.separator
        if sep != "/":
            return path.replace("/", sep)
        return path

    def create_remote_directory(self, path: str, parents: bool = False) -> None:
        """Create a directory on the remote host.

        Raises:
            UploadError: If the directory cannot be created
        """
        remote_path = self.to_remote(path)
        try:
            self.file_service.make_directory(remote_path, parents=parents)
        except (OSError, paramiko.SSHException) as e:
            raise UploadError(f"Unable to create remote directory {remote_path}: {e}") from e

    def plan(self, resource: ResourceNode, destination: str) -> list[UploadOperation]:
        """Flatten resource into the operations needed to upload it.

        A container passed here is not created itself; its accessible child
        containers are. Inaccessible containers contribute nothing.
        """
        if not isinstance(resource, ContainerResource):
            return [TransferFile(resource, destination)]  # type: ignore[arg-type]

        operations: list[UploadOperation] = []
        if not resource.accessible:
            logger.debug(f"Skipping inaccessible container {resource.name}")
            return operations

        for child in resource.members():
            child_path = join_remote(destination, child.name)
            if isinstance(child, ContainerResource):
                if not child.accessible:
                    logger.debug(f"Skipping inaccessible container {child.name}")
                    continue
                operations.append(MakeDirectory(child_path))
            operations.extend(self.plan(child, child_path))
        return operations

    def execute(self, operations: list[UploadOperation]) -> UploadResult:
        """Run operations in order; the first failure aborts the rest.

        Raises:
            UploadError: On any transfer failure
        """
        result = UploadResult()
        start_time = time.time()
        for operation in operations:
            if isinstance(operation, MakeDirectory):
                self.create_remote_directory(operation.remote_path)
                result.directories_created += 1
            else:
                result.bytes_transferred += self._write_file(
                    operation.resource, self.to_remote(operation.remote_path)
                )
                result.files_transferred += 1
        result.duration_seconds = time.time() - start_time
        return result

    def upload(self, resource: ResourceNode, destination: str) -> UploadResult:
        """Upload a file, or the children of a container, to destination."""
        return self.execute(self.plan(resource, destination))

    def _is_binary(self, resource: FileResource) -> bool:
        return resource.name.lower().endswith(self.binary_suffixes) if self.binary_suffixes else False

    def _write_file(self, resource: FileResource, remote_path: str) -> int:
        local_encoding = self.local_encoding or resource.charset
        try:
            host_encoding = self.host_encoding or self.file_service.encoding_of(remote_path)
            if resource.location is not None:
                logger.debug(f"Uploading {resource.location} -> {remote_path}")
                self.file_service.upload(
                    resource.location,
                    local_encoding,
                    remote_path,
                    host_encoding,
                    binary=self._is_binary(resource),
                )
                return resource.location.stat().st_size
            return self._copy_stream(resource, remote_path)
        except UploadError:
            raise
        except (OSError, UnicodeError, paramiko.SSHException) as e:
            raise UploadError(f"Failed to upload {resource.name} to {remote_path}: {e}") from e

    def _copy_stream(self, resource: FileResource, remote_path: str) -> int:
        """Copy a location-less resource through a remote output stream."""
        sep = self.file_service.separator
        last_sep = remote_path.rfind(sep)
        remote_parent = remote_path[:last_sep]
        remote_name = remote_path[last_sep + 1 :]

        logger.debug(f"Streaming {resource.name} -> {remote_path}")
        outstream = self.file_service.open_output(remote_parent, remote_name)
        total = 0
        try:
            instream = resource.open()
            try:
                while True:
                    chunk = instream.read(self.BUFFER_SIZE)
                    if not chunk:
                        break
                    outstream.write(chunk)
                    total += len(chunk)
            finally:
                instream.close()
        finally:
            outstream.close()
        return total


__all__ = [
    "MakeDirectory",
    "ResourceUploader",
    "TransferFile",
    "UploadOperation",
    "UploadResult",
    "join_remote",
]
