"""Local resource tree model.

A project is a ContainerResource whose children are files and nested
containers. Leaves are either FileResource (backed by a local path) or
StreamResource (content available only as a byte stream, no local location).
The uploader only reads from these objects.
"""

import io
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

logger = logging.getLogger(__name__)

DEFAULT_CHARSET = "utf-8"


@dataclass
class ResourceNode:
    """Common base for files and containers."""

    name: str

    @property
    def is_container(self) -> bool:
        return False


@dataclass
class FileResource(ResourceNode):
    """Leaf backed by a file on the local filesystem."""

    location: Path | None = None
    charset: str = DEFAULT_CHARSET

    def open(self) -> BinaryIO:
        if self.location is None:
            raise OSError(f"Resource {self.name} has no local location")
        return open(self.location, "rb")


@dataclass
class StreamResource(FileResource):
    """Leaf whose content is only available as a byte stream.

    Used for generated or virtual files. location is always None, so the
    uploader copies it through a remote output stream.
    """

    content: bytes = b""

    def open(self) -> BinaryIO:
        return io.BytesIO(self.content)


@dataclass
class ContainerResource(ResourceNode):
    """Directory-like resource holding child resources."""

    location: Path | None = None
    children: list[ResourceNode] = field(default_factory=list)  # type: ignore[misc]
    accessible: bool = True

    @property
    def is_container(self) -> bool:
        return True

    def members(self) -> list[ResourceNode]:
        """Children sorted by name."""
        return sorted(self.children, key=lambda child: child.name)

    def find(self, relative_path: str) -> ResourceNode | None:
        """Find a descendant by a /-separated path relative to this container."""
        node: ResourceNode = self
        for part in [p for p in relative_path.split("/") if p and p != "."]:
            if not isinstance(node, ContainerResource):
                return None
            match = next((c for c in node.children if c.name == part), None)
            if match is None:
                return None
            node = match
        return node


def load_tree(
    root: Path,
    charset: str = DEFAULT_CHARSET,
    exclude: tuple[str, ...] = (".git", "__pycache__"),
) -> ContainerResource:
    """Build a ContainerResource from a directory on disk.

    Symlinks are not followed. Directories that cannot be listed are kept as
    inaccessible containers so the uploader can skip them.

    Args:
        root: Directory to load
        charset: Charset assigned to every file
        exclude: Entry names left out of the tree

    Returns:
        ContainerResource for root

    Raises:
        NotADirectoryError: If root is not a directory
    """
    root = root.expanduser().resolve()
    if not root.is_dir():
        raise NotADirectoryError(f"Not a directory: {root}")
    return _load_container(root, charset, exclude)


def _load_container(path: Path, charset: str, exclude: tuple[str, ...]) -> ContainerResource:
    container = ContainerResource(name=path.name, location=path)
    if not os.access(path, os.R_OK | os.X_OK):
        container.accessible = False
        return container

    try:
        entries = sorted(path.iterdir())
    except PermissionError:
        logger.debug(f"Cannot list {path}, marking inaccessible")
        container.accessible = False
        return container

    for entry in entries:
        if entry.name in exclude or entry.is_symlink():
            continue
        if entry.is_dir():
            container.children.append(_load_container(entry, charset, exclude))
        elif entry.is_file():
            container.children.append(FileResource(name=entry.name, location=entry, charset=charset))
    return container
