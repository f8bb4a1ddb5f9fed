"""Command-line entry points of the alarm tools."""

from __future__ import annotations

import argparse
import contextlib
import signal
import sys
import threading
from collections.abc import Callable, Iterator
from typing import Any

from alarmbutton import button, checker, packager, server, updater, version
from alarmbutton.config import DEFAULT_CONFIG_FILENAME, DEFAULT_STATE_FILENAME


class _UsageError(Exception):
    """Raised by the parser instead of exiting on bad arguments."""


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise _UsageError(message)


def _parser(prog: str, description: str) -> _Parser:
    parser = _Parser(
        prog=prog,
        description=description,
        epilog=f"Run '{prog} version' to print version information.",
    )
    parser.add_argument(
        "-c", "--config", default=DEFAULT_CONFIG_FILENAME, help="path to configuration file"
    )
    return parser


def _add_debug_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-d", "--debug", action="store_true", help=argparse.SUPPRESS)


@contextlib.contextmanager
def _stop_on_signals() -> Iterator[threading.Event]:
    """Yield an event that is set when SIGINT or SIGTERM arrives."""
    stop = threading.Event()
    if threading.current_thread() is not threading.main_thread():
        yield stop
        return
    previous = {
        signum: signal.signal(signum, lambda *_: stop.set())
        for signum in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield stop
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def _execute(
    parser: argparse.ArgumentParser,
    argv: list[str] | None,
    action: Callable[[argparse.Namespace, threading.Event], Any],
) -> int:
    arguments = list(sys.argv[1:] if argv is None else argv)
    if arguments[:1] == ["version"]:
        print(version.full())
        return 0
    try:
        namespace = parser.parse_args(arguments)
    except _UsageError as err:
        print(f"Error: {err}", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 1
    except SystemExit as exit_request:
        return exit_request.code if isinstance(exit_request.code, int) else 0

    try:
        with _stop_on_signals() as stop:
            outcome = action(namespace, stop)
    except Exception as err:
        print(f"Error: {err}", file=sys.stderr)
        return 1
    return 1 if outcome is False else 0


def button_on_main(argv: list[str] | None = None) -> int:
    """Enable the alarm and shut this machine down."""
    parser = _parser(
        "alarm-button-on",
        "Activates the alarm system and shuts down the local machine. Sends alarm enable "
        "requests to the server until confirmation is received, then shuts down this PC.",
    )
    parser.add_argument("server_address", nargs="?", default="", metavar="server-address")
    _add_debug_flag(parser)

    def action(args: argparse.Namespace, stop: threading.Event) -> bool:
        return button.run(
            button.ButtonOptions(
                config_path=args.config,
                server_address=args.server_address,
                desired_state=True,
                debug=args.debug,
            ),
            stop,
        )

    return _execute(parser, argv, action)


def button_off_main(argv: list[str] | None = None) -> int:
    """Disable the alarm without touching this machine."""
    parser = _parser(
        "alarm-button-off",
        "Deactivates the alarm system without affecting this PC. Sends alarm disable "
        "requests to the server until confirmation is received.",
    )
    parser.add_argument("server_address", nargs="?", default="", metavar="server-address")

    def action(args: argparse.Namespace, stop: threading.Event) -> bool:
        return button.run(
            button.ButtonOptions(
                config_path=args.config,
                server_address=args.server_address,
                desired_state=False,
            ),
            stop,
        )

    return _execute(parser, argv, action)


def checker_main(argv: list[str] | None = None) -> int:
    """Monitor the alarm and shut down when it is activated."""
    parser = _parser(
        "alarm-checker",
        "Background service that polls the alarm state at fixed 5-second intervals and "
        "shuts down this PC when the alarm is enabled.",
    )
    parser.add_argument("server_address", nargs="?", default="", metavar="server-address")
    _add_debug_flag(parser)

    def action(args: argparse.Namespace, stop: threading.Event) -> None:
        checker.run(
            checker.CheckerOptions(
                config_path=args.config,
                server_address=args.server_address,
                debug=args.debug,
            ),
            stop,
        )

    return _execute(parser, argv, action)


def server_main(argv: list[str] | None = None) -> int:
    """Run the alarm gRPC server and manage the alarm state."""
    parser = _parser(
        "alarm-server",
        "Starts the gRPC alarm server. Unless a listen address is given, it listens on "
        "all interfaces at the number taken from the configured server address. Alarm "
        "state is persisted to a JSON file for recovery across restarts.",
    )
    parser.add_argument("listen_address", nargs="?", default="", metavar="listen-address")
    parser.add_argument(
        "-s", "--state-file", default=DEFAULT_STATE_FILENAME, help="path to persist alarm state"
    )

    def action(args: argparse.Namespace, stop: threading.Event) -> None:
        server.run(
            server.ServerOptions(
                config_path=args.config,
                listen_address=args.listen_address,
                state_file=args.state_file,
            ),
            stop,
        )

    return _execute(parser, argv, action)


def packager_main(argv: list[str] | None = None) -> int:
    """Prepare update metadata for distribution."""
    parser = _parser("alarm-packager", "Prepare update metadata for distribution")
    parser.add_argument("server_socket", metavar="server-socket")
    parser.add_argument("update_folder", metavar="update-folder")

    def action(args: argparse.Namespace, stop: threading.Event) -> None:
        packager.run(
            packager.PackagerOptions(
                config_path=args.config,
                server_address=args.server_socket,
                update_folder=args.update_folder,
            )
        )

    return _execute(parser, argv, action)


def updater_main(argv: list[str] | None = None) -> int:
    """Download and apply updates from the server."""
    parser = _parser("alarm-updater", "Download and apply updates from the server")
    parser.add_argument("update_type", metavar="{client,server}")

    def action(args: argparse.Namespace, stop: threading.Event) -> None:
        updater.run(updater.UpdaterOptions(config_path=args.config, update_type=args.update_type))

    return _execute(parser, argv, action)