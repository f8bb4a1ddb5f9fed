"""Build metadata for the alarm button tools."""

VERSION = "1.0.0"
COMMIT = "none"
BUILD_TIME = "unknown"


def short() -> str:
    """Return only the semantic version string."""
    return VERSION


def full() -> str:
    """Return the version together with commit and build time."""
    return f"version: {VERSION}, commit: {COMMIT}, built at: {BUILD_TIME}"