"""
Adapters — the only layer allowed to start external programs.

The engine talks to the host exclusively through a ``CommandRunner``.
"""

from mailplane.adapters.base import CommandRunner

__all__ = ["CommandRunner"]
