"""Handle for the debug backend's session.

The backend that attaches to the probed gdb is supplied by the caller. What
the launcher needs from it is a way to ask for an asynchronous shutdown on the
session's own executor.
"""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor

logger = logging.getLogger(__name__)


class DebugSession:
    """Debug session with its own single-thread executor."""

    def __init__(
        self,
        session_id: str = "rdlaunch",
        executor: Executor | None = None,
        on_shutdown: Callable[[], None] | None = None,
    ):
        self.session_id = session_id
        self.executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"{session_id}-session"
        )
        self.on_shutdown = on_shutdown
        self._shut_down = threading.Event()

    @property
    def is_shut_down(self) -> bool:
        return self._shut_down.is_set()

    def request_shutdown(self) -> Future:
        """Queue shutdown() on the session executor.

        Raises:
            RuntimeError: If the executor no longer accepts work
        """
        return self.executor.submit(self.shutdown)

    def shutdown(self) -> None:
        if self._shut_down.is_set():
            return
        logger.debug(f"Shutting down debug session {self.session_id}")
        if self.on_shutdown is not None:
            self.on_shutdown()
        self._shut_down.set()

    def dispose(self) -> None:
        """Stop the executor; later shutdown requests are rejected."""
        self.executor.shutdown(wait=False)


__all__ = ["DebugSession"]
