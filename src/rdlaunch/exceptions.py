"""Exception hierarchy shared by the launch, upload and shell modules."""

# Launch abort codes
INTERNAL_ERROR = "internal-error"
DEBUGGER_NOT_INSTALLED = "debugger-not-installed"


class RdlaunchError(Exception):
    """Base exception for rdlaunch errors."""

    pass


class InvalidDescriptionFileError(RdlaunchError, ValueError):
    """Description file is missing or does not carry the .rexpfd extension."""

    pass


class DescriptionReadError(RdlaunchError):
    """Export description could not be parsed."""

    pass


class UploadError(RdlaunchError):
    """Transfer to the remote filesystem failed."""

    pass


class ExportFailedError(RdlaunchError):
    """Aggregated export outcome was not OK."""

    def __init__(self, message: str, status=None):
        super().__init__(message)
        self.status = status


class LaunchAbortError(RdlaunchError):
    """Launch aborted before the debug session could start."""

    def __init__(self, message: str, code: str = INTERNAL_ERROR):
        super().__init__(message)
        self.code = code


class DebuggerNotAvailableError(LaunchAbortError):
    """gdb never reported its version banner on the remote shell."""

    def __init__(self, message: str = "Debugger is not available on the remote host"):
        super().__init__(message, code=DEBUGGER_NOT_INSTALLED)
