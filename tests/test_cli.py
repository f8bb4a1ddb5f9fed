import socket
import threading
import time

import pytest

from alarmbutton import config, server, version
from alarmbutton.cli import (
    button_off_main,
    button_on_main,
    checker_main,
    packager_main,
    server_main,
    updater_main,
)
from alarmbutton.client import ClientError, dial
from alarmbutton.config import Config
from alarmbutton.messages import SystemActor

ALL_MAINS = [
    button_on_main,
    button_off_main,
    checker_main,
    server_main,
    packager_main,
    updater_main,
]


def _reserve_address() -> str:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        host, port = sock.getsockname()
    return f"{host}:{port}"


def _get_state(address):
    with dial(address, 2.0) as client:
        return client.get_alarm_state(SystemActor(hostname="test-host", username="test-user"))


def _wait_ready(address: str) -> None:
    deadline = time.monotonic() + 10
    while time.monotonic() < deadline:
        try:
            _get_state(address)
            return
        except ClientError:
            time.sleep(0.05)
    raise RuntimeError(f"server at {address} did not start")


@pytest.fixture
def alarm_server(tmp_path):
    address = _reserve_address()
    root = tmp_path / "server"
    root.mkdir()
    cfg_path = root / "settings.yaml"
    config.save(
        str(cfg_path),
        Config(server_address=address, server_update_folder="http://127.0.0.1/", timeout=5.0),
    )
    stop = threading.Event()
    options = server.ServerOptions(config_path=str(cfg_path), state_file=str(root / "state.json"))
    thread = threading.Thread(target=server.run, args=(options, stop), daemon=True)
    thread.start()
    _wait_ready(address)
    yield address
    stop.set()
    thread.join(10)


@pytest.fixture
def client_config(tmp_path, alarm_server):
    path = tmp_path / "client-settings.yaml"
    config.save(str(path), Config(server_address=alarm_server, timeout=2.0))
    return str(path)


@pytest.mark.parametrize("main", ALL_MAINS)
def test_version_subcommand_prints_full_version(main, capsys):
    assert main(["version"]) == 0
    assert capsys.readouterr().out == version.full() + "\n"


@pytest.mark.parametrize(
    "main, prog",
    [
        (button_on_main, "alarm-button-on"),
        (button_off_main, "alarm-button-off"),
        (checker_main, "alarm-checker"),
        (server_main, "alarm-server"),
        (packager_main, "alarm-packager"),
        (updater_main, "alarm-updater"),
    ],
)
def test_help_exits_successfully(main, prog, capsys):
    assert main(["--help"]) == 0
    assert prog in capsys.readouterr().out


@pytest.mark.parametrize("main", [button_on_main, button_off_main, checker_main, server_main])
def test_at_most_one_argument(main, capsys):
    assert main(["first", "second"]) == 1
    assert capsys.readouterr().err.startswith("Error:")


def test_packager_requires_two_arguments(capsys):
    assert packager_main(["127.0.0.1:50051"]) == 1
    assert capsys.readouterr().err.startswith("Error:")


def test_updater_requires_one_argument(capsys):
    assert updater_main([]) == 1
    assert capsys.readouterr().err.startswith("Error:")


@pytest.mark.parametrize("main", [button_on_main, button_off_main, checker_main, server_main])
def test_missing_config_file_fails(main, tmp_path, capsys):
    missing = str(tmp_path / "missing.yaml")
    assert main(["-c", missing]) == 1
    assert "read settings" in capsys.readouterr().err


def test_packager_rejects_bad_server_socket(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert packager_main(["127.0.0.1", "http://localhost/updates"]) == 1
    assert "invalid server socket" in capsys.readouterr().err


def test_button_on_in_debug_enables_alarm(client_config, alarm_server):
    assert button_on_main(["-c", client_config, "--debug"]) == 0
    assert _get_state(alarm_server).is_enabled is True


def test_button_off_disables_alarm(client_config, alarm_server):
    assert button_on_main(["-c", client_config, "-d"]) == 0
    assert button_off_main(["-c", client_config]) == 0
    assert _get_state(alarm_server).is_enabled is False


def test_button_off_uses_address_argument(tmp_path, alarm_server):
    unused = _reserve_address()
    path = tmp_path / "other-settings.yaml"
    config.save(str(path), Config(server_address=unused, timeout=2.0))

    assert button_on_main(["-c", str(path), "-d", alarm_server]) == 0
    state = _get_state(alarm_server)
    assert state.is_enabled is True
    assert state.last_actor is not None