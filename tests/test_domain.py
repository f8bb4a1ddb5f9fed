from datetime import datetime, timezone

from alarmbutton.domain import Actor, State


def test_actor_clone_is_equal_copy():
    actor = Actor(hostname="Oleg Shokin", username="o.shokin")
    copy = actor.clone()
    assert copy == actor
    assert copy is not actor


def test_actor_clone_is_independent():
    actor = Actor(hostname="host", username="user")
    copy = actor.clone()
    copy.username = "other"
    assert actor.username == "user"


def test_state_clone_deep_copies_actor():
    stamp = datetime.now(timezone.utc).replace(microsecond=0)
    state = State(
        timestamp=stamp,
        last_actor=Actor(hostname="Oleg Shokin", username="o.shokin"),
        is_enabled=True,
    )
    copy = state.clone()
    assert copy.timestamp == state.timestamp
    assert copy.is_enabled == state.is_enabled
    assert copy.last_actor == state.last_actor
    assert copy.last_actor is not state.last_actor


def test_state_clone_without_actor():
    copy = State(is_enabled=False).clone()
    assert copy.last_actor is None
    assert copy.timestamp is None
    assert copy.is_enabled is False