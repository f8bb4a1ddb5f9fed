"""Push a desired alarm state to the server until it is confirmed."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import timezone

from alarmbutton import config, logger, power
from alarmbutton.checker import _rfc3339
from alarmbutton.client import AlarmClient, ClientError, detect_actor, dial
from alarmbutton.messages import AlarmStateResponse, SystemActor

_PUSH_INTERVAL = 1.0


@dataclass
class ButtonOptions:
    """Settings for one button press; empty values fall back to the settings file."""

    config_path: str = ""
    server_address: str = ""
    desired_state: bool = False
    debug: bool = False


def format_state(state: AlarmStateResponse | None) -> str:
    """Render a state response as a readable line for the log."""
    if state is None:
        return "<nil state>"
    timestamp = "<unknown>"
    if state.timestamp is not None:
        timestamp = _rfc3339(state.timestamp.astimezone(timezone.utc))
    actor = "<unknown>"
    if state.last_actor is not None:
        actor = f"{state.last_actor.username}@{state.last_actor.hostname}"
    status = "enabled" if state.is_enabled else "disabled"
    return f"{status} by {actor} ({timestamp})"


def _attempt(client: AlarmClient, actor: SystemActor, options: ButtonOptions) -> bool:
    """Try once to set the state; return True when the server confirmed it."""
    try:
        response = client.set_alarm_state(actor, options.desired_state)
    except ClientError as err:
        logger.error_kv("SetAlarmState failed", error=str(err))
        return False

    if response is None or response.is_enabled != options.desired_state:
        return False

    logger.info_kv(f"Alarm updated: {format_state(response)}")
    if options.desired_state and not options.debug:
        logger.info_kv("Triggering local shutdown...")
        power.shutdown()
    return True


def run(options: ButtonOptions | None = None, stop_event: threading.Event | None = None) -> bool:
    """Retry until the server confirms the desired state.

    Returns True once confirmed, False if ``stop_event`` was set first.
    """
    options = options or ButtonOptions()
    with logger.named("alarm-button-on/off"):
        settings = config.load(options.config_path)
        server_address = options.server_address or settings.server_address
        actor = detect_actor()
        if stop_event is None:
            stop_event = threading.Event()

        with dial(server_address, settings.timeout) as client:
            logger.info_kv(
                "Pushing desired alarm state",
                server_address=server_address,
                desired_state=options.desired_state,
            )
            while True:
                if _attempt(client, actor, options):
                    return True
                try:
                    if stop_event.wait(_PUSH_INTERVAL):
                        return False
                except KeyboardInterrupt:
                    return False