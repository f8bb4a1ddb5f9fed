"""gRPC client for the alarm service and detection of the local actor."""

from __future__ import annotations

import getpass
import socket
from typing import Any

import grpc

from alarmbutton.config import DEFAULT_TIMEOUT
from alarmbutton.messages import (
    AlarmStateResponse,
    GetAlarmStateRequest,
    SetAlarmStateRequest,
    SystemActor,
    decode,
    encode,
)
from alarmbutton.transport import GET_ALARM_STATE_METHOD, SET_ALARM_STATE_METHOD


class ClientError(Exception):
    """Raised when the alarm server cannot be reached or rejects a call."""


def detect_actor() -> SystemActor:
    """Return the hostname and user name of this machine for the audit trail."""
    try:
        hostname = socket.gethostname()
    except OSError as err:
        raise ClientError(f"hostname: {err}") from err
    try:
        username = getpass.getuser()
    except (OSError, KeyError, ImportError) as err:
        raise ClientError(f"current user: {err}") from err
    return SystemActor(hostname=hostname, username=username)


def _decode_state(payload: bytes) -> AlarmStateResponse:
    return decode(AlarmStateResponse, payload)


def _describe(err: grpc.RpcError) -> str:
    code = getattr(err, "code", None)
    details = getattr(err, "details", None)
    if callable(code) and callable(details):
        status = code()
        name = status.name if status is not None else "UNKNOWN"
        return f"{name}: {details()}"
    return str(err)


class AlarmClient:
    """Calls the AlarmService over a gRPC channel with a per-call timeout."""

    def __init__(self, channel: grpc.Channel | None = None, call_timeout: float = DEFAULT_TIMEOUT) -> None:
        self._channel = channel
        self.call_timeout = call_timeout
        self._get: Any = None
        self._set: Any = None
        if channel is not None:
            self._get = channel.unary_unary(
                GET_ALARM_STATE_METHOD,
                request_serializer=encode,
                response_deserializer=_decode_state,
            )
            self._set = channel.unary_unary(
                SET_ALARM_STATE_METHOD,
                request_serializer=encode,
                response_deserializer=_decode_state,
            )

    def _rpc_timeout(self) -> float | None:
        return self.call_timeout if self.call_timeout > 0 else None

    def close(self) -> None:
        """Release the underlying channel."""
        if self._channel is not None:
            self._channel.close()
            self._channel = None

    def get_alarm_state(self, actor: SystemActor | None) -> AlarmStateResponse:
        """Fetch the current alarm state from the server."""
        if self._get is None:
            raise ClientError("get alarm state: client is not connected")
        try:
            return self._get(GetAlarmStateRequest(requesting_actor=actor), timeout=self._rpc_timeout())
        except grpc.RpcError as err:
            raise ClientError(f"get alarm state: {_describe(err)}") from err

    def set_alarm_state(self, actor: SystemActor | None, is_enabled: bool) -> AlarmStateResponse:
        """Ask the server to switch the alarm on or off."""
        if actor is None:
            raise ClientError("actor must be provided")
        if self._set is None:
            raise ClientError("set alarm state: client is not connected")
        request = SetAlarmStateRequest(actor=actor, is_enabled=is_enabled)
        try:
            return self._set(request, timeout=self._rpc_timeout())
        except grpc.RpcError as err:
            raise ClientError(f"set alarm state: {_describe(err)}") from err

    def __enter__(self) -> AlarmClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def dial(address: str, call_timeout: float | None = None) -> AlarmClient:
    """Open an insecure channel to the alarm server at ``address``."""
    if not address:
        raise ClientError("address must be provided")
    client = AlarmClient(grpc.insecure_channel(address))
    if call_timeout is not None and call_timeout > 0:
        client.call_timeout = call_timeout
    return client