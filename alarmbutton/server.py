"""Run the alarm gRPC server until asked to stop."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import grpc

from alarmbutton import config, logger
from alarmbutton.config import _split_host_port
from alarmbutton.repository import FileRepository
from alarmbutton.service import AlarmService
from alarmbutton.transport import AlarmServicer, add_alarm_servicer

_WORKERS = 10
_GRACE_PERIOD = 5.0


@dataclass
class ServerOptions:
    """Settings for one server run; empty values fall back to the settings file."""

    config_path: str = ""
    listen_address: str = ""
    state_file: str = ""


class NoServerAddressError(Exception):
    """Raised when neither an override nor a configured server address exists."""


def resolve_listen_address(config_address: str, override: str) -> str:
    """Return ``override`` if given, otherwise ``":<port>"`` taken from the configured address."""
    if override:
        return override
    if not config_address:
        raise NoServerAddressError("no server address configured")
    try:
        _, port = _split_host_port(config_address)
    except ValueError as err:
        raise ValueError(f"invalid server address format {config_address!r}: {err}") from err
    return ":" + port


def _bind_address(listen_address: str) -> str:
    try:
        host, port = _split_host_port(listen_address)
    except ValueError:
        return listen_address
    return f"[::]:{port}" if not host else listen_address


def run(options: ServerOptions | None = None, stop_event: threading.Event | None = None) -> None:
    """Serve the alarm service until ``stop_event`` is set or the process is interrupted."""
    options = options or ServerOptions()
    with logger.named("alarm-server"):
        settings = config.load(options.config_path)
        state_file = options.state_file or settings.state_file
        listen_address = resolve_listen_address(settings.server_address, options.listen_address)

        service = AlarmService(FileRepository(state_file))

        server = grpc.server(ThreadPoolExecutor(max_workers=_WORKERS))
        add_alarm_servicer(server, AlarmServicer(service))
        try:
            bound = server.add_insecure_port(_bind_address(listen_address))
        except RuntimeError as err:
            raise OSError(f"listen on {listen_address}: {err}") from err
        if bound == 0:
            raise OSError(f"listen on {listen_address}: unable to bind")

        server.start()
        logger.info_kv("Alarm server listening", listen_address=listen_address, state_file=state_file)

        if stop_event is None:
            stop_event = threading.Event()
        try:
            stop_event.wait()
        except KeyboardInterrupt:
            pass
        finally:
            logger.current().info("Shutting down gRPC server")
            server.stop(_GRACE_PERIOD).wait()
        logger.current().info("GRPC server stopped")