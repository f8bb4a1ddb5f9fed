from datetime import datetime, timezone

import pytest

from alarmbutton.domain import Actor, State
from alarmbutton.repository import FileRepository, StateNotFoundError
from alarmbutton.service import AlarmService


class _LoadError(Exception):
    pass


class MemoryRepository:
    def __init__(self, state=None, load_error=None, save_error=None):
        self.state = state
        self.load_error = load_error
        self.save_error = save_error
        self.saved = None

    def load(self):
        if self.load_error is not None:
            raise self.load_error
        return self.state

    def save(self, state):
        if self.save_error is not None:
            raise self.save_error
        self.saved = state


def test_loads_existing_state():
    old = State(
        timestamp=datetime.fromtimestamp(100, timezone.utc),
        last_actor=Actor(hostname="Oleg Shokin", username="o.shokin"),
        is_enabled=True,
    )
    service = AlarmService(MemoryRepository(state=old))
    assert service.state.is_enabled == old.is_enabled
    assert service.state.last_actor == old.last_actor


def test_not_found_keeps_default():
    service = AlarmService(MemoryRepository(load_error=StateNotFoundError("state not found")))
    assert service.state.is_enabled is False
    assert service.state.timestamp is not None and service.state.last_actor is None


def test_other_load_error_propagates():
    with pytest.raises(_LoadError):
        AlarmService(MemoryRepository(load_error=_LoadError("test load error")))


def test_set_and_get():
    repo = MemoryRepository()
    service = AlarmService(repo)
    actor = Actor(hostname="Oleg Shokin", username="o.shokin")

    result = service.set_alarm_state(actor, True)

    assert result.is_enabled is True
    assert result.last_actor == actor
    assert result.last_actor is not actor
    assert repo.saved is not None and repo.saved.is_enabled is True

    assert service.get_alarm_state().is_enabled is True


def test_returned_state_is_a_copy():
    service = AlarmService()
    result = service.set_alarm_state(Actor("h", "u"), True)
    result.last_actor.hostname = "changed"
    assert service.get_alarm_state().last_actor.hostname == "h"


def test_save_failure_raises_but_memory_state_updated():
    repo = MemoryRepository(save_error=OSError("disk full"))
    service = AlarmService(repo)
    with pytest.raises(OSError):
        service.set_alarm_state(Actor("h", "u"), True)
    assert service.get_alarm_state().is_enabled is True


def test_with_file_repository_persists(tmp_path):
    path = tmp_path / "state.json"
    AlarmService(FileRepository(str(path))).set_alarm_state(Actor("h", "u"), True)
    reloaded = AlarmService(FileRepository(str(path)))
    assert reloaded.get_alarm_state().is_enabled is True
    assert reloaded.get_alarm_state().last_actor == Actor("h", "u")