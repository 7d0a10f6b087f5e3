from mailplane.adapters.shell.command import SubprocessRunner

__all__ = ["SubprocessRunner"]
