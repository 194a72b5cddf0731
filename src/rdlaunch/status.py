"""Outcome records for batch operations.

A Status carries a severity and a message; a MultiStatus aggregates children
and reports the worst severity among them. Export jobs and description reads
produce these instead of raising, so the coordinator can decide what to
surface.
"""

from dataclasses import dataclass, field
from enum import IntEnum


class Severity(IntEnum):
    """Status severity, ordered so that max() picks the worst."""

    OK = 0
    INFO = 1
    WARNING = 2
    ERROR = 4
    CANCEL = 8


@dataclass
class Status:
    """Single outcome record."""

    severity: Severity = Severity.OK
    message: str = ""
    exception: BaseException | None = None
    code: int = 0

    @classmethod
    def ok(cls, message: str = "OK") -> "Status":
        return cls(Severity.OK, message)

    @classmethod
    def error(cls, message: str, exception: BaseException | None = None) -> "Status":
        return cls(Severity.ERROR, message, exception)

    @property
    def children(self) -> list["Status"]:
        return []

    def is_ok(self) -> bool:
        return self.severity == Severity.OK

    def __str__(self) -> str:
        return f"Status {self.severity.name}: {self.message}"


@dataclass
class MultiStatus(Status):
    """Status made of child statuses."""

    members: list[Status] = field(default_factory=list)  # type: ignore[misc]

    def __post_init__(self):
        for child in self.members:
            if child.severity > self.severity:
                self.severity = child.severity

    @property
    def children(self) -> list[Status]:
        return list(self.members)

    def add(self, status: Status) -> None:
        """Add a child and raise own severity to match it if needed."""
        self.members.append(status)
        if status.severity > self.severity:
            self.severity = status.severity

    def add_all(self, status: Status) -> None:
        """Add every child of status (not status itself)."""
        for child in status.children:
            self.add(child)

    def merge(self, status: Status) -> None:
        """Fold status in: its children if it is a MultiStatus, otherwise itself."""
        if isinstance(status, MultiStatus):
            self.add_all(status)
        else:
            self.add(status)
