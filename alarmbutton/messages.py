"""Wire messages of the alarm service and their JSON encoding."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

from alarmbutton.domain import Actor, State

_TIMESTAMP = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d{1,9}))?([Zz]|[+-]\d{2}:\d{2})"
)

_Message = TypeVar("_Message")


def _read_fields(data: Any, message: str, aliases: dict[str, str]) -> dict[str, Any]:
    """Map JSON keys (camelCase or snake_case) to attribute names, rejecting unknown keys."""
    if not isinstance(data, dict):
        raise ValueError(f"{message}: expected a JSON object")
    fields: dict[str, Any] = {}
    for key, value in data.items():
        if key not in aliases:
            raise ValueError(f"{message}: unknown field {key!r}")
        if value is not None:
            fields[aliases[key]] = value
    return fields


def _check_string(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"field {name} must be a string")
    return value


def _check_bool(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"field {name} must be a boolean")
    return value


def _format_timestamp(moment: datetime) -> str:
    utc = moment.astimezone(timezone.utc)
    text = utc.strftime("%Y-%m-%dT%H:%M:%S")
    micros = utc.microsecond
    if micros % 1000 == 0 and micros:
        text += f".{micros // 1000:03d}"
    elif micros:
        text += f".{micros:06d}"
    return text + "Z"


def _parse_timestamp(text: Any) -> datetime:
    text = _check_string(text, "timestamp")
    match = _TIMESTAMP.fullmatch(text)
    if match is None:
        raise ValueError(f"invalid timestamp {text!r}")
    year, month, day, hour, minute, second, fraction, offset = match.groups()
    micros = int((fraction or "").ljust(9, "0")[:6])
    if offset in ("Z", "z"):
        zone = timezone.utc
    else:
        sign = -1 if offset[0] == "-" else 1
        zone = timezone(sign * timedelta(hours=int(offset[1:3]), minutes=int(offset[4:6])))
    try:
        moment = datetime(
            int(year), int(month), int(day), int(hour), int(minute), int(second), micros, tzinfo=zone
        )
    except ValueError as err:
        raise ValueError(f"invalid timestamp {text!r}: {err}") from err
    return moment.astimezone(timezone.utc)


@dataclass
class SystemActor:
    """The machine and user taking part in a request."""

    hostname: str = ""
    username: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"hostname": self.hostname, "username": self.username}

    @classmethod
    def from_dict(cls, data: Any) -> SystemActor:
        fields = _read_fields(
            data, "SystemActor", {"hostname": "hostname", "username": "username"}
        )
        return cls(
            hostname=_check_string(fields.get("hostname", ""), "hostname"),
            username=_check_string(fields.get("username", ""), "username"),
        )


@dataclass
class AlarmStateResponse:
    """The alarm state as sent to clients and stored on disk."""

    timestamp: datetime | None = None
    last_actor: SystemActor | None = None
    is_enabled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": _format_timestamp(self.timestamp) if self.timestamp is not None else None,
            "lastActor": self.last_actor.to_dict() if self.last_actor is not None else None,
            "isEnabled": self.is_enabled,
        }

    @classmethod
    def from_dict(cls, data: Any) -> AlarmStateResponse:
        fields = _read_fields(
            data,
            "AlarmStateResponse",
            {
                "timestamp": "timestamp",
                "lastActor": "last_actor",
                "last_actor": "last_actor",
                "isEnabled": "is_enabled",
                "is_enabled": "is_enabled",
            },
        )
        timestamp = fields.get("timestamp")
        actor = fields.get("last_actor")
        return cls(
            timestamp=_parse_timestamp(timestamp) if timestamp is not None else None,
            last_actor=SystemActor.from_dict(actor) if actor is not None else None,
            is_enabled=_check_bool(fields.get("is_enabled", False), "is_enabled"),
        )


@dataclass
class SetAlarmStateRequest:
    """A request to switch the alarm on or off."""

    actor: SystemActor | None = None
    is_enabled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "actor": self.actor.to_dict() if self.actor is not None else None,
            "isEnabled": self.is_enabled,
        }

    @classmethod
    def from_dict(cls, data: Any) -> SetAlarmStateRequest:
        fields = _read_fields(
            data,
            "SetAlarmStateRequest",
            {"actor": "actor", "isEnabled": "is_enabled", "is_enabled": "is_enabled"},
        )
        actor = fields.get("actor")
        return cls(
            actor=SystemActor.from_dict(actor) if actor is not None else None,
            is_enabled=_check_bool(fields.get("is_enabled", False), "is_enabled"),
        )


@dataclass
class GetAlarmStateRequest:
    """A request for the current alarm state."""

    requesting_actor: SystemActor | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "requestingActor": (
                self.requesting_actor.to_dict() if self.requesting_actor is not None else None
            )
        }

    @classmethod
    def from_dict(cls, data: Any) -> GetAlarmStateRequest:
        fields = _read_fields(
            data,
            "GetAlarmStateRequest",
            {"requestingActor": "requesting_actor", "requesting_actor": "requesting_actor"},
        )
        actor = fields.get("requesting_actor")
        return cls(requesting_actor=SystemActor.from_dict(actor) if actor is not None else None)


def state_to_message(state: State | None) -> AlarmStateResponse:
    """Convert a domain state into a response message; None gives an empty response."""
    if state is None:
        return AlarmStateResponse()
    actor = None
    if state.last_actor is not None:
        actor = SystemActor(hostname=state.last_actor.hostname, username=state.last_actor.username)
    return AlarmStateResponse(
        timestamp=state.timestamp, last_actor=actor, is_enabled=state.is_enabled
    )


def actor_from_message(actor: SystemActor | None) -> Actor | None:
    """Convert a wire actor into a domain actor."""
    if actor is None:
        return None
    return Actor(hostname=actor.hostname, username=actor.username)


def encode(message: Any) -> bytes:
    """Serialise a message to UTF-8 JSON bytes."""
    return json.dumps(message.to_dict(), ensure_ascii=False).encode("utf-8")


def decode(cls: type[_Message], payload: bytes | str) -> _Message:
    """Parse JSON bytes into a message of type ``cls``; raises ValueError when malformed."""
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    return cls.from_dict(json.loads(payload))