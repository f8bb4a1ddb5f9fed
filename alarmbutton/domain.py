"""Core alarm domain types."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime


@dataclass
class Actor:
    """Who performed an action: machine name and system user."""

    hostname: str = ""
    username: str = ""

    def clone(self) -> Actor:
        """Return an independent copy."""
        return dataclasses.replace(self)


@dataclass
class State:
    """The alarm status at a point in time; ``timestamp`` is None when unset."""

    timestamp: datetime | None = None
    last_actor: Actor | None = None
    is_enabled: bool = False

    def clone(self) -> State:
        """Return a copy that shares no mutable parts with this state."""
        return State(
            timestamp=self.timestamp,
            last_actor=self.last_actor.clone() if self.last_actor is not None else None,
            is_enabled=self.is_enabled,
        )