"""Source lookup containers and the remote->local mapping.

gdb reports source files by their path on the remote host. A SourceLocator
asks its containers in order to turn such a path into a local file; the
mapping container added here translates the remote workspace root to the
local project root.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)

DIRECT_REMOTE_DEBUG_MAPPING = "DirectRemoteDebugMapping"


@dataclass
class SourceContainer:
    """Base lookup container."""

    name: str

    def find(self, source_path: str) -> Path | None:
        return None


@dataclass
class DirectorySourceContainer(SourceContainer):
    """Look source paths up relative to one local directory."""

    directory: Path = field(default_factory=Path)

    def find(self, source_path: str) -> Path | None:
        path = PurePosixPath(source_path)
        # Absolute remote paths fall back to a basename lookup
        candidate = self.directory / (path.name if path.is_absolute() else source_path)
        return candidate if candidate.exists() else None


@dataclass(frozen=True)
class MapEntry:
    """Remote directory that corresponds to a local directory."""

    remote_root: str
    local_root: Path

    def translate(self, source_path: str) -> Path | None:
        remote = PurePosixPath(self.remote_root)
        path = PurePosixPath(source_path.replace("\\", "/"))
        try:
            relative = path.relative_to(remote)
        except ValueError:
            return None
        return self.local_root.joinpath(*relative.parts)


@dataclass
class MappingSourceContainer(SourceContainer):
    """Container made of MapEntry translations."""

    entries: list[MapEntry] = field(default_factory=list)  # type: ignore[misc]

    def add_map_entry(self, entry: MapEntry) -> None:
        self.entries.append(entry)

    def find(self, source_path: str) -> Path | None:
        for entry in self.entries:
            local = entry.translate(source_path)
            if local is not None and local.exists():
                return local
        return None


class SourceLocator:
    """Ordered list of source containers."""

    def __init__(self, containers: list[SourceContainer] | None = None):
        self._containers = list(containers or [])

    @property
    def containers(self) -> list[SourceContainer]:
        return list(self._containers)

    def set_containers(self, containers: list[SourceContainer]) -> None:
        self._containers = list(containers)

    def find_source(self, source_path: str) -> Path | None:
        """Return the first local file any container resolves, else None."""
        for container in self._containers:
            found = container.find(source_path)
            if found is not None:
                return found
        return None


def ensure_mapping(
    containers: list[SourceContainer],
    remote_root: str | None,
    local_root: Path | None,
) -> list[SourceContainer]:
    """Return containers with the remote workspace mapping appended once.

    Args:
        containers: Current lookup containers, in order
        remote_root: Remote workspace path (blank means not configured)
        local_root: Local project directory (None if the project is unknown)

    Returns:
        A new list with the mapping appended, or containers itself if the
        mapping is already present or cannot be built
    """
    if any(c.name == DIRECT_REMOTE_DEBUG_MAPPING for c in containers):
        return containers
    if not remote_root or local_root is None:
        return containers

    mapping = MappingSourceContainer(DIRECT_REMOTE_DEBUG_MAPPING)
    mapping.add_map_entry(MapEntry(remote_root, local_root))
    logger.debug(f"Mapping remote sources {remote_root} -> {local_root}")
    return [*containers, mapping]


def inject_mapping(locator: SourceLocator, remote_root: str | None, local_root: Path | None) -> SourceLocator:
    """Install the mapping into locator (idempotent)."""
    updated = ensure_mapping(locator.containers, remote_root, local_root)
    if len(updated) != len(locator.containers):
        locator.set_containers(updated)
    return locator


__all__ = [
    "DIRECT_REMOTE_DEBUG_MAPPING",
    "DirectorySourceContainer",
    "MapEntry",
    "MappingSourceContainer",
    "SourceContainer",
    "SourceLocator",
    "ensure_mapping",
    "inject_mapping",
]
