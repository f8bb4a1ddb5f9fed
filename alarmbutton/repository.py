"""JSON file persistence for the alarm state."""

from __future__ import annotations

import json
import os
import threading

from alarmbutton.config import DEFAULT_FILE_PERMISSIONS
from alarmbutton.domain import Actor, State
from alarmbutton.messages import AlarmStateResponse, state_to_message


class StateNotFoundError(Exception):
    """Raised when the state file does not exist yet."""


def _state_from_message(message: AlarmStateResponse) -> State:
    actor = None
    if message.last_actor is not None:
        actor = Actor(hostname=message.last_actor.hostname, username=message.last_actor.username)
    return State(timestamp=message.timestamp, last_actor=actor, is_enabled=message.is_enabled)


class FileRepository:
    """Stores the alarm state as a JSON document on disk."""

    def __init__(self, path: str) -> None:
        self.path = os.path.normpath(path)
        self._lock = threading.Lock()

    def load(self) -> State:
        """Read the state; raises StateNotFoundError when the file is missing."""
        with self._lock:
            try:
                with open(self.path, encoding="utf-8") as handle:
                    contents = handle.read()
            except FileNotFoundError:
                raise StateNotFoundError("state not found") from None
            try:
                message = AlarmStateResponse.from_dict(json.loads(contents))
            except ValueError as err:
                raise ValueError(f"decode state file: {err}") from err
        return _state_from_message(message)

    def save(self, state: State) -> None:
        """Write the state to disk."""
        data = json.dumps(state_to_message(state).to_dict(), ensure_ascii=False)
        with self._lock:
            descriptor = os.open(
                self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, DEFAULT_FILE_PERMISSIONS
            )
            with os.fdopen(descriptor, "w", encoding="utf-8") as handle:
                handle.write(data)