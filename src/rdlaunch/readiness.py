"""Wait for gdb to announce itself on the remote shell.

Two actors share one ReadinessLatch:

- BannerListener runs on the shell reader thread. It watches output lines
  and marks the latch READY on the first gdb version banner.
- ReadinessMonitor runs on the launch thread. It blocks on the latch and
  re-checks every poll interval whether the launch was cancelled or the
  shell died; either one aborts the wait.
  A dead shell first gets up to DRAIN_TIMEOUT seconds for the reader to
  deliver output it already received, so a banner printed just before
  exit still counts.

Only READY is signalled by the producer. Cancellation and shell death are
polled because the reader thread never sees them.
"""

import logging
import re
import threading
import time
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING

from rdlaunch.exceptions import DebuggerNotAvailableError

if TYPE_CHECKING:
    from rdlaunch.debug_session import DebugSession
    from rdlaunch.ssh.shell import RemoteShellSession, ShellOutputEvent

logger = logging.getLogger(__name__)

GDB_BANNER_MARKER = "GNU gdb (GDB"
POLL_INTERVAL = 0.5
DRAIN_TIMEOUT = 2.0

# "GNU gdb (GDB) 10.1", "GNU gdb (Ubuntu 12.1-0ubuntu1~22.04) 12.1",
# "GNU gdb (GDB) Red Hat Enterprise Linux 8.2-15.el8"
_VERSION_PATTERN = re.compile(r"GNU gdb(?: \([^)]*\))?(?: [A-Za-z][\w.~+-]*)* \(?(\d+(?:\.\d+)*)")


def parse_gdb_version(text: str) -> str:
    """Extract the version number from gdb's banner.

    Returns:
        Version string such as "10.1", or "" if none is found
    """
    match = _VERSION_PATTERN.search(text)
    return match.group(1) if match else ""


class ReadinessState(Enum):
    """Readiness of the remote debugger."""

    WAITING = "waiting"
    READY = "ready"
    ABORTED = "aborted"


class ReadinessLatch:
    """Single-assignment readiness state guarded by one condition.

    Transitions are WAITING -> READY or WAITING -> ABORTED, never back.
    """

    def __init__(self):
        self._condition = threading.Condition()
        self._state = ReadinessState.WAITING
        self._version = ""

    @property
    def state(self) -> ReadinessState:
        with self._condition:
            return self._state

    @property
    def version(self) -> str:
        with self._condition:
            return self._version

    def mark_ready(self, version: str) -> bool:
        """Move to READY and wake waiters. Returns False if already terminal."""
        with self._condition:
            if self._state is not ReadinessState.WAITING:
                return False
            self._state = ReadinessState.READY
            self._version = version
            self._condition.notify_all()
            return True

    def abort(self) -> bool:
        """Move to ABORTED and wake waiters. Returns False if already terminal."""
        with self._condition:
            if self._state is not ReadinessState.WAITING:
                return False
            self._state = ReadinessState.ABORTED
            self._condition.notify_all()
            return True

    def wait(
        self, should_abort: Callable[[], bool], poll_interval: float = POLL_INTERVAL
    ) -> ReadinessState:
        """Block until READY or until should_abort() turns true.

        should_abort is evaluated under the lock at least every poll_interval
        seconds while WAITING.
        """
        with self._condition:
            while self._state is ReadinessState.WAITING:
                if should_abort():
                    self._state = ReadinessState.ABORTED
                    self._condition.notify_all()
                    break
                self._condition.wait(timeout=poll_interval)
            return self._state


class BannerListener:
    """Shell output listener that recognizes gdb's version banner.

    All non-empty lines go to the console buffer; only the first banner line
    touches the latch.
    """

    def __init__(self, latch: ReadinessLatch, marker: str = GDB_BANNER_MARKER):
        self.latch = latch
        self.marker = marker
        self.initialized = False
        self._console: list[str] = []
        self._console_lock = threading.Lock()

    @property
    def console_output(self) -> str:
        with self._console_lock:
            return "".join(f"{line}\n" for line in self._console)

    def __call__(self, event: "ShellOutputEvent") -> None:
        lines = []
        for line in event.lines:
            if not line:
                continue
            if not self.initialized and self.marker in line:
                version = parse_gdb_version(line)
                logger.info(f"Remote gdb is ready (version {version or 'unknown'})")
                self.latch.mark_ready(version)
                self.initialized = True
            lines.append(line)

        if lines:
            with self._console_lock:
                self._console.extend(lines)
            for line in lines:
                logger.debug(f"[remote] {line}")


class ReadinessMonitor:
    """Launch-thread side of the readiness handshake.

    Example:
        >>> latch = ReadinessLatch()
        >>> session = supervisor.start(config, "", "gdb", listeners=[BannerListener(latch)])
        >>> version = ReadinessMonitor(latch, session, is_cancelled).wait_until_ready()
    """

    def __init__(
        self,
        latch: ReadinessLatch,
        session: "RemoteShellSession",
        is_cancelled: Callable[[], bool],
        debug_session: "DebugSession | None" = None,
        poll_interval: float = POLL_INTERVAL,
        drain_timeout: float = DRAIN_TIMEOUT,
    ):
        self.latch = latch
        self.session = session
        self.is_cancelled = is_cancelled
        self.debug_session = debug_session
        self.poll_interval = poll_interval
        self.drain_timeout = drain_timeout
        self._ended_at: float | None = None

    def _should_abort(self) -> bool:
        if self.is_cancelled():
            return True
        if self.session.is_active:
            return False
        # A dead shell only aborts once its buffered output reached the listeners
        if self._ended_at is None:
            self._ended_at = time.monotonic()
        if self.session.output_drained:
            return True
        return time.monotonic() - self._ended_at >= self.drain_timeout

    def wait_until_ready(self) -> str:
        """Block until gdb reports its version.

        Returns:
            gdb version string

        Raises:
            DebuggerNotAvailableError: If the launch was cancelled or the
                shell ended before the banner arrived
        """
        state = self.latch.wait(self._should_abort, self.poll_interval)
        if state is ReadinessState.READY:
            return self.latch.version

        reason = "cancelled" if self.is_cancelled() else "remote shell ended"
        logger.error(f"Debugger did not become ready ({reason})")
        self.session.process.destroy()
        self._shutdown_debug_session()
        raise DebuggerNotAvailableError()

    def _shutdown_debug_session(self) -> None:
        if self.debug_session is None:
            return
        try:
            self.debug_session.request_shutdown()
        except RuntimeError as e:
            # Executor already shut down; the abort below is what matters.
            logger.debug(f"Debug session shutdown request rejected: {e}")


__all__ = [
    "DRAIN_TIMEOUT",
    "GDB_BANNER_MARKER",
    "BannerListener",
    "ReadinessLatch",
    "ReadinessMonitor",
    "ReadinessState",
    "parse_gdb_version",
]
