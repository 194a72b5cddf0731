"""Run export descriptions as upload jobs.

ExportCoordinator reads a batch of description files, runs one ExportJob per
description in order and folds everything into a single Status. Read failures
are collected and do not stop the batch; the first failing job does.
"""

import logging
from collections.abc import Callable
from pathlib import Path

from rdlaunch.exceptions import (
    DescriptionReadError,
    ExportFailedError,
    InvalidDescriptionFileError,
    UploadError,
)
from rdlaunch.resources import ContainerResource
from rdlaunch.ssh.file_service import RemoteFileService
from rdlaunch.status import MultiStatus, Severity, Status

from .description import EXPORT_DESCRIPTION_EXTENSION, ExportDescriptionReader, ExportDescriptor
from .uploader import ResourceUploader, join_remote

logger = logging.getLogger(__name__)

READ_FAILED_ONE = "Unable to create export file"
READ_FAILED_MANY = "Unable to create export files"
DESCRIPTION_READ_ERROR = "Unable to read export description {path}: {reason}"
EXPORT_FAILED = "Export failed: {status}"


class ExportJob:
    """Upload the resources named by one ExportDescriptor."""

    def __init__(
        self,
        descriptor: ExportDescriptor,
        file_service: RemoteFileService,
        is_cancelled: Callable[[], bool] | None = None,
    ):
        self.descriptor = descriptor
        self.file_service = file_service
        self.is_cancelled = is_cancelled or (lambda: False)

    def run(self) -> Status:
        """Create the destination and upload into it.

        Returns:
            OK status with a summary, CANCEL if cancelled before starting,
            ERROR status carrying the UploadError otherwise
        """
        descriptor = self.descriptor
        if self.is_cancelled():
            return Status(Severity.CANCEL, f"Export of {descriptor.name} cancelled")

        uploader = ResourceUploader(
            self.file_service,
            local_encoding=descriptor.local_encoding,
            host_encoding=descriptor.host_encoding,
            binary_suffixes=descriptor.binary_suffixes,
        )
        files = 0
        try:
            uploader.create_remote_directory(descriptor.destination, parents=True)
            # Only a description without <element> entries exports the whole project
            if not descriptor.has_selection:
                files += uploader.upload(descriptor.project, descriptor.destination).files_transferred
            for element in descriptor.selected:
                files += self._upload_element(uploader, element)
        except UploadError as e:
            logger.error(f"Export of {descriptor.name} failed: {e}")
            return Status.error(str(e), e)

        logger.info(f"Exported {files} files to {descriptor.destination}")
        return Status.ok(f"Exported {files} files to {descriptor.destination}")

    def _upload_element(self, uploader: ResourceUploader, element: str) -> int:
        node = self.descriptor.project.find(element)
        if node is None:
            return 0
        destination = self.descriptor.destination
        parts = [p for p in element.split("/") if p and p != "."]
        parent_parts = parts if isinstance(node, ContainerResource) else parts[:-1]
        for part in parent_parts:
            destination = join_remote(destination, part)
            uploader.create_remote_directory(destination)
        if not isinstance(node, ContainerResource):
            destination = join_remote(destination, parts[-1])
        return uploader.upload(node, destination).files_transferred


def _log_review_request(descriptor: ExportDescriptor) -> None:
    logger.warning(
        f"{descriptor.name} asks for review before synchronizing; "
        "skipping direct upload (no review flow configured)"
    )


class ExportCoordinator:
    """Read export descriptions and run them as one batch.

    Example:
        >>> coordinator = ExportCoordinator(service)
        >>> status = coordinator.run([project / "proj.rexpfd"])
        >>> status.is_ok()
        True
    """

    def __init__(
        self,
        file_service: RemoteFileService,
        review_flow: Callable[[ExportDescriptor], None] | None = None,
        job_factory: Callable[..., ExportJob] = ExportJob,
        is_cancelled: Callable[[], bool] | None = None,
    ):
        self.file_service = file_service
        self.review_flow = review_flow or _log_review_request
        self.job_factory = job_factory
        self.is_cancelled = is_cancelled

    @staticmethod
    def validate_description_file(description: Path) -> None:
        """Reject files callers should have filtered out.

        Raises:
            InvalidDescriptionFileError: If the file is missing or has the
                wrong extension
        """
        if not description.is_file():
            raise InvalidDescriptionFileError(f"Description file is not accessible: {description}")
        if description.suffix != f".{EXPORT_DESCRIPTION_EXTENSION}":
            raise InvalidDescriptionFileError(
                f"Description file must have the .{EXPORT_DESCRIPTION_EXTENSION} extension: "
                f"{description}"
            )

    def read_one(self, description: Path, read_status: MultiStatus) -> ExportDescriptor | None:
        """Read one description, recording failures in read_status."""
        self.validate_description_file(description)
        reader = ExportDescriptionReader(description)
        try:
            descriptor = reader.read()
            # Settings are never written back from a launch
            descriptor.save_settings = False
            return descriptor
        except DescriptionReadError as e:
            message = DESCRIPTION_READ_ERROR.format(path=description, reason=e)
            logger.warning(message)
            read_status.add(Status.error(message, e))
            return None
        finally:
            read_status.add_all(reader.status)

    def read_all(self, descriptions: list[Path]) -> tuple[list[ExportDescriptor], MultiStatus]:
        """Read every description; unreadable ones are left out."""
        message = READ_FAILED_MANY if len(descriptions) > 1 else READ_FAILED_ONE
        read_status = MultiStatus(Severity.OK, message)
        descriptors = []
        for description in descriptions:
            descriptor = self.read_one(description, read_status)
            if descriptor is not None:
                descriptors.append(descriptor)
        return descriptors, read_status

    def export_all(self, descriptors: list[ExportDescriptor]) -> Status:
        """Run the jobs in order, stopping at the first failure.

        Raises:
            ExportFailedError: As soon as a job returns a non-OK status
        """
        status = Status.ok("Nothing to export")
        for descriptor in descriptors:
            if descriptor.review_synchronize:
                self.review_flow(descriptor)
                continue

            job = self.job_factory(descriptor, self.file_service, is_cancelled=self.is_cancelled)
            status = job.run()
            if not status.is_ok():
                raise ExportFailedError(EXPORT_FAILED.format(status=status), status)
        return status

    def run(self, descriptions: list[Path]) -> Status:
        """Read and export a batch and return the merged outcome.

        Raises:
            ExportFailedError: If a job fails or the merged outcome is an error
            InvalidDescriptionFileError: If a description file is not valid
        """
        if not descriptions:
            return Status.ok("No export descriptions")

        descriptors, read_status = self.read_all(descriptions)
        if descriptors:
            status = self.export_all(descriptors)
            if read_status.severity == Severity.ERROR:
                message = read_status.message
            else:
                message = status.message
            merged = MultiStatus(Severity.OK, message, code=status.code, members=read_status.children)
            merged.merge(status)
        else:
            merged = read_status

        for child in merged.children:
            if child.severity == Severity.WARNING:
                logger.warning(child.message)

        if merged.severity >= Severity.ERROR:
            details = "; ".join(c.message for c in merged.children if c.severity >= Severity.ERROR)
            message = f"{merged.message}: {details}" if details else merged.message
            raise ExportFailedError(message, merged)
        return merged


__all__ = [
    "DESCRIPTION_READ_ERROR",
    "EXPORT_FAILED",
    "READ_FAILED_MANY",
    "READ_FAILED_ONE",
    "ExportCoordinator",
    "ExportJob",
]
