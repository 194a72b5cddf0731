"""Upload a project to the remote workspace before launching gdb."""

from .description import EXPORT_DESCRIPTION_EXTENSION, ExportDescriptionReader, ExportDescriptor
from .exporter import ExportCoordinator, ExportJob
from .uploader import MakeDirectory, ResourceUploader, TransferFile, UploadResult

__all__ = [
    "EXPORT_DESCRIPTION_EXTENSION",
    "ExportCoordinator",
    "ExportDescriptionReader",
    "ExportDescriptor",
    "ExportJob",
    "MakeDirectory",
    "ResourceUploader",
    "TransferFile",
    "UploadResult",
]
