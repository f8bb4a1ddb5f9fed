"""Shared office alarm state: gRPC server, on/off commands, shutdown checker, packager and updater."""

__version__ = "1.0.0"
__all__ = ["__version__"]