"""Unit tests for DebugSession."""

from unittest.mock import MagicMock

import pytest

from rdlaunch.debug_session import DebugSession


class TestDebugSession:
    """Tests for shutdown requests."""

    def test_request_shutdown_runs_on_executor(self):
        on_shutdown = MagicMock()
        session = DebugSession(on_shutdown=on_shutdown)
        try:
            session.request_shutdown().result(timeout=5)
        finally:
            session.dispose()
        assert session.is_shut_down
        on_shutdown.assert_called_once()

    def test_shutdown_once(self):
        on_shutdown = MagicMock()
        session = DebugSession(on_shutdown=on_shutdown)
        session.shutdown()
        session.shutdown()
        session.dispose()
        on_shutdown.assert_called_once()

    def test_request_after_dispose_rejected(self):
        """Test a disposed session rejects shutdown requests."""
        session = DebugSession()
        session.dispose()
        with pytest.raises(RuntimeError):
            session.request_shutdown()
