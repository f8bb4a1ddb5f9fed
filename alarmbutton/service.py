"""Alarm business logic: in-memory state with persistence."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Protocol

from alarmbutton import logger
from alarmbutton.domain import Actor, State
from alarmbutton.repository import StateNotFoundError


class _Repository(Protocol):
    def load(self) -> State: ...

    def save(self, state: State) -> None: ...


class AlarmService:
    """Holds the current alarm state and persists every change."""

    def __init__(self, repository: _Repository | None = None) -> None:
        self._repository = repository
        self._lock = threading.Lock()
        self.state = State(timestamp=datetime.now().astimezone(), is_enabled=False)
        if repository is None:
            return
        try:
            loaded = repository.load()
        except StateNotFoundError:
            return
        if loaded is not None:
            self.state = loaded

    def set_alarm_state(self, actor: Actor | None, is_enabled: bool) -> State:
        """Record a new alarm status and persist it; returns a copy of the new state."""
        with self._lock:
            self.state = State(
                timestamp=datetime.now().astimezone(),
                last_actor=actor.clone() if actor is not None else None,
                is_enabled=is_enabled,
            )
            if self._repository is not None:
                try:
                    self._repository.save(self.state)
                except Exception as err:
                    logger.error_kv("Failed to persist alarm state", error=str(err))
                    raise
            logger.info_kv(
                "Alarm state updated", is_enabled=self.state.is_enabled, actor=self.state.last_actor
            )
            return self.state.clone()

    def get_alarm_state(self) -> State:
        """Return a copy of the current alarm status."""
        with self._lock:
            logger.info_kv(
                "Alarm state requested",
                is_enabled=self.state.is_enabled,
                actor=self.state.last_actor,
            )
            return self.state.clone()