"""rdlaunch - remote direct debug launcher

Philosophy:
- Upload first, probe second, hand off last
- Brick architecture (self-contained modules)
- Fail fast with one explanatory message
- Never leave a remote process orphaned

rdlaunch mirrors a local project onto a remote host over SSH, starts a remote
shell, waits for gdb to announce itself and then hands the prepared session to
a debug backend supplied by the caller.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
