"""Start the operating system's own shutdown command."""

from __future__ import annotations

import subprocess
import sys


class UnsupportedOSError(Exception):
    """Raised when no shutdown command is known for this platform."""


def _os_name() -> str:
    name = sys.platform.lower()
    return "windows" if name.startswith("win") else name


def shutdown() -> subprocess.Popen:
    """Start an immediate shutdown of this machine and return the started process."""
    name = _os_name()
    if "linux" in name or "darwin" in name:
        return subprocess.Popen(["shutdown", "-h", "now"])
    if "windows" in name:
        return subprocess.Popen(["shutdown.exe", "-s", "-f", "-t", "0"])
    raise UnsupportedOSError(f"unsupported operating system: {sys.platform}")