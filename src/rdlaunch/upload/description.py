"""Export description files (*.rexpfd).

An export description is a small XML document stored in the project that
says where the project is uploaded to:

    <fileexport reviewSynchronize="false" saveSettings="true">
      <project path="."/>
      <destination path="/home/dev/ws/proj" encoding="UTF-8"/>
      <encoding local="UTF-8"/>
      <binary suffix=".o"/>
      <element path="src"/>
    </fileexport>

<project> defaults to the directory holding the description. Without any
<element> the whole project is exported.
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path

from rdlaunch.exceptions import DescriptionReadError
from rdlaunch.resources import DEFAULT_CHARSET, ContainerResource, load_tree
from rdlaunch.status import MultiStatus, Severity, Status

logger = logging.getLogger(__name__)

EXPORT_DESCRIPTION_EXTENSION = "rexpfd"

_TRUE_VALUES = ("true", "yes", "1")


@dataclass
class ExportDescriptor:
    """One upload job read from a description file."""

    description_path: Path
    project: ContainerResource
    destination: str
    selected: list[str] = field(default_factory=list)  # type: ignore[misc]
    has_selection: bool = False
    local_encoding: str | None = None
    host_encoding: str | None = None
    binary_suffixes: tuple[str, ...] = ()
    review_synchronize: bool = False
    save_settings: bool = True

    @property
    def name(self) -> str:
        return self.description_path.name


def _flag(element: ET.Element, attribute: str, default: bool) -> bool:
    value = element.get(attribute)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


class ExportDescriptionReader:
    """Parse one description file into an ExportDescriptor.

    Non-fatal problems (for example a selected element missing from the
    project) are recorded as warnings in status.
    """

    def __init__(self, description_path: Path):
        self.description_path = description_path
        self.status = MultiStatus(Severity.OK, f"Reading {description_path.name}")

    def read(self) -> ExportDescriptor:
        """Parse the description.

        Raises:
            DescriptionReadError: If the file is malformed or incomplete
        """
        try:
            root = ET.parse(self.description_path).getroot()
        except ET.ParseError as e:
            raise DescriptionReadError(f"Malformed export description: {e}") from e
        except OSError as e:
            raise DescriptionReadError(f"Cannot read export description: {e}") from e

        if root.tag != "fileexport":
            raise DescriptionReadError(f"Unexpected root element <{root.tag}>")

        destination_el = root.find("destination")
        if destination_el is None or not destination_el.get("path", "").strip():
            raise DescriptionReadError("Export description has no destination path")

        project_el = root.find("project")
        project_rel = project_el.get("path", ".") if project_el is not None else "."
        project_dir = (self.description_path.parent / project_rel).resolve()

        encoding_el = root.find("encoding")
        local_encoding = encoding_el.get("local") if encoding_el is not None else None

        try:
            project = load_tree(project_dir, charset=local_encoding or DEFAULT_CHARSET)
        except NotADirectoryError as e:
            raise DescriptionReadError(str(e)) from e

        selected: list[str] = []
        has_selection = False
        for element in root.findall("element"):
            path = element.get("path", "").strip()
            if not path:
                continue
            has_selection = True
            if project.find(path) is None:
                self.status.add(
                    Status(Severity.WARNING, f"Selected element {path} not found in project")
                )
                continue
            selected.append(path)

        descriptor = ExportDescriptor(
            description_path=self.description_path,
            project=project,
            destination=destination_el.get("path", "").strip(),
            selected=selected,
            has_selection=has_selection,
            local_encoding=local_encoding,
            host_encoding=destination_el.get("encoding"),
            binary_suffixes=tuple(
                b.get("suffix", "") for b in root.findall("binary") if b.get("suffix")
            ),
            review_synchronize=_flag(root, "reviewSynchronize", False),
            save_settings=_flag(root, "saveSettings", True),
        )
        logger.debug(f"Read export description {self.description_path} -> {descriptor.destination}")
        return descriptor


__all__ = [
    "EXPORT_DESCRIPTION_EXTENSION",
    "ExportDescriptionReader",
    "ExportDescriptor",
]
