"""Poll the alarm state and shut this machine down once the alarm is on."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone

from alarmbutton import config, logger, power
from alarmbutton.client import AlarmClient, ClientError, detect_actor, dial
from alarmbutton.config import ConfigError, _format_duration
from alarmbutton.messages import SystemActor
from alarmbutton.power import UnsupportedOSError

DEFAULT_POLL_INTERVAL = 5.0


@dataclass
class CheckerOptions:
    """Settings for one checker run; empty values fall back to the settings file."""

    config_path: str = ""
    server_address: str = ""
    poll_interval: float = 0.0
    timeout: float = 0.0
    debug: bool = False


def _rfc3339(moment: datetime) -> str:
    text = moment.replace(microsecond=0).isoformat()
    return text[:-6] + "Z" if text.endswith("+00:00") else text


def _check_state(client: AlarmClient, actor: SystemActor, debug: bool) -> bool:
    """Fetch and report the alarm state; return True once a shutdown has been started."""
    state = client.get_alarm_state(actor)
    status = "enabled" if state.is_enabled else "disabled"
    if state.timestamp is not None:
        moment = state.timestamp.astimezone(timezone.utc)
    else:
        moment = datetime.now().astimezone()
    logger.info_kv(f"Alarm state: {status} at {_rfc3339(moment)}")

    if not state.is_enabled:
        return False
    if debug:
        logger.info_kv("Alarm enabled but debug mode prevents shutdown")
        return False

    logger.info_kv("Alarm enabled, initiating shutdown")
    power.shutdown()
    return True


def run(options: CheckerOptions | None = None, stop_event: threading.Event | None = None) -> None:
    """Poll the server until ``stop_event`` is set or a shutdown has been started."""
    options = options or CheckerOptions()
    with logger.named("alarm-checker"):
        try:
            settings = config.load(options.config_path)
        except ConfigError as err:
            raise ConfigError(f"load configuration: {err}") from err

        interval = options.poll_interval if options.poll_interval > 0 else DEFAULT_POLL_INTERVAL
        server_address = options.server_address or settings.server_address

        try:
            actor = detect_actor()
        except ClientError as err:
            raise ClientError(f"detect actor: {err}") from err
        try:
            client = dial(server_address, settings.timeout)
        except ClientError as err:
            raise ClientError(f"dial server: {err}") from err

        if stop_event is None:
            stop_event = threading.Event()

        with client:
            logger.info_kv(
                "Polling alarm state",
                server_address=server_address,
                interval=_format_duration(interval),
            )
            while True:
                try:
                    stopped = stop_event.wait(interval)
                except KeyboardInterrupt:
                    stopped = True
                if stopped:
                    logger.info_kv("Context cancelled, exiting")
                    return
                try:
                    if _check_state(client, actor, options.debug):
                        logger.info_kv("Shutdown initiated, exiting")
                        return
                except (ClientError, UnsupportedOSError, OSError) as err:
                    logger.error_kv("Check state failed", error=str(err))