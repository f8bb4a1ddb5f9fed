import socket
import threading
import time
from unittest import mock

import pytest

from alarmbutton import checker, config, server
from alarmbutton.client import ClientError, dial
from alarmbutton.messages import SystemActor


def _reserve_address() -> str:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        host, port = sock.getsockname()
    return f"{host}:{port}"


def _wait_until_serving(address: str) -> None:
    deadline = time.monotonic() + 10
    with dial(address, 1.0) as probe:
        while True:
            try:
                probe.get_alarm_state(None)
                return
            except ClientError:
                if time.monotonic() > deadline:
                    raise
                time.sleep(0.05)


@pytest.fixture
def live_server(tmp_path):
    address = _reserve_address()
    cfg_path = tmp_path / "server-settings.yaml"
    config.save(
        str(cfg_path),
        config.Config(
            server_address=address,
            server_update_folder="http://127.0.0.1/",
            timeout=5.0,
        ),
    )
    stop = threading.Event()
    options = server.ServerOptions(
        config_path=str(cfg_path),
        listen_address=address,
        state_file=str(tmp_path / "state.json"),
    )
    thread = threading.Thread(target=server.run, args=(options, stop), daemon=True)
    thread.start()
    _wait_until_serving(address)
    yield address
    stop.set()
    thread.join(10)


def _checker_config(tmp_path, address: str) -> str:
    path = tmp_path / "checker-settings.yaml"
    config.save(str(path), config.Config(server_address=address, timeout=1.0))
    return str(path)


def _enable_alarm(address: str) -> None:
    with dial(address) as client:
        response = client.set_alarm_state(
            SystemActor(hostname="test-host", username="test-user"), True
        )
    assert response.is_enabled is True


def test_polls_and_returns_on_cancel(tmp_path, live_server, capsys):
    _enable_alarm(live_server)
    cfg_path = _checker_config(tmp_path, live_server)

    stop = threading.Event()
    timer = threading.Timer(0.3, stop.set)
    timer.start()
    started = time.monotonic()
    checker.run(
        checker.CheckerOptions(
            config_path=cfg_path,
            server_address=live_server,
            poll_interval=0.05,
            debug=True,
        ),
        stop,
    )
    timer.cancel()

    assert time.monotonic() - started < 5
    out = capsys.readouterr().out
    assert "Alarm state: enabled" in out
    assert "Alarm enabled but debug mode prevents shutdown" in out
    assert "Context cancelled, exiting" in out


def test_disabled_alarm_keeps_polling(tmp_path, live_server, capsys):
    cfg_path = _checker_config(tmp_path, live_server)
    stop = threading.Event()
    timer = threading.Timer(0.3, stop.set)
    timer.start()
    checker.run(
        checker.CheckerOptions(config_path=cfg_path, poll_interval=0.05), stop
    )
    timer.cancel()

    out = capsys.readouterr().out
    assert "Alarm state: disabled" in out
    assert "initiating shutdown" not in out


def test_enabled_alarm_starts_shutdown(tmp_path, live_server, capsys):
    _enable_alarm(live_server)
    cfg_path = _checker_config(tmp_path, live_server)
    stop = threading.Event()
    safety = threading.Timer(5.0, stop.set)
    safety.start()
    with mock.patch("subprocess.Popen") as popen:
        checker.run(
            checker.CheckerOptions(config_path=cfg_path, poll_interval=0.05), stop
        )
    safety.cancel()

    assert popen.call_count == 1
    assert popen.call_args.args[0][0].startswith("shutdown")
    out = capsys.readouterr().out
    assert "Shutdown initiated, exiting" in out


def test_stop_before_first_poll(tmp_path, capsys):
    cfg_path = _checker_config(tmp_path, _reserve_address())
    stop = threading.Event()
    stop.set()
    checker.run(checker.CheckerOptions(config_path=cfg_path, poll_interval=0.05), stop)
    out = capsys.readouterr().out
    assert "Context cancelled, exiting" in out
    assert "Alarm state" not in out


def test_unreachable_server_is_logged(tmp_path, capsys):
    cfg_path = _checker_config(tmp_path, _reserve_address())
    stop = threading.Event()
    timer = threading.Timer(0.5, stop.set)
    timer.start()
    checker.run(checker.CheckerOptions(config_path=cfg_path, poll_interval=0.05), stop)
    timer.cancel()
    assert "Check state failed" in capsys.readouterr().out


def test_missing_config_is_reported(tmp_path):
    with pytest.raises(config.ConfigError, match="load configuration"):
        checker.run(checker.CheckerOptions(config_path=str(tmp_path / "missing.yaml")))