"""gRPC transport for the alarm service."""

from __future__ import annotations

from typing import Any, Protocol

import grpc

from alarmbutton.domain import Actor, State
from alarmbutton.messages import (
    AlarmStateResponse,
    GetAlarmStateRequest,
    SetAlarmStateRequest,
    actor_from_message,
    decode,
    encode,
    state_to_message,
)

SERVICE_NAME = "alarm.v1.AlarmService"
SET_ALARM_STATE_METHOD = f"/{SERVICE_NAME}/SetAlarmState"
GET_ALARM_STATE_METHOD = f"/{SERVICE_NAME}/GetAlarmState"


class _Service(Protocol):
    def set_alarm_state(self, actor: Actor | None, is_enabled: bool) -> State: ...

    def get_alarm_state(self) -> State: ...


class RpcError(Exception):
    """A failure to be reported to the caller with a gRPC status code."""

    def __init__(self, code: grpc.StatusCode, details: str) -> None:
        super().__init__(details)
        self.code = code
        self.details = details


class AlarmServicer:
    """Handles AlarmService requests by calling into the business service."""

    def __init__(self, service: _Service) -> None:
        self.service = service

    def set_alarm_state(self, request: SetAlarmStateRequest | None) -> AlarmStateResponse:
        """Update the alarm status; raises RpcError on bad input or persistence failure."""
        if request is None:
            raise RpcError(grpc.StatusCode.INVALID_ARGUMENT, "request is required")
        if request.actor is None:
            raise RpcError(grpc.StatusCode.INVALID_ARGUMENT, "actor is required")
        try:
            state = self.service.set_alarm_state(
                actor_from_message(request.actor), request.is_enabled
            )
        except Exception as err:
            raise RpcError(grpc.StatusCode.INTERNAL, "unable to persist state") from err
        return state_to_message(state)

    def get_alarm_state(self, request: GetAlarmStateRequest | None) -> AlarmStateResponse:
        """Return the current alarm status."""
        return state_to_message(self.service.get_alarm_state())


def _unary(handler: Any, request_type: type) -> grpc.RpcMethodHandler:
    def behaviour(request: Any, context: grpc.ServicerContext) -> AlarmStateResponse:
        try:
            return handler(request)
        except RpcError as err:
            context.abort(err.code, err.details)
            raise

    return grpc.unary_unary_rpc_method_handler(
        behaviour,
        request_deserializer=lambda payload: decode(request_type, payload),
        response_serializer=encode,
    )


def add_alarm_servicer(server: grpc.Server, servicer: AlarmServicer) -> None:
    """Register ``servicer`` for the AlarmService methods on ``server``."""
    handler = grpc.method_handlers_generic_handler(
        SERVICE_NAME,
        {
            "SetAlarmState": _unary(servicer.set_alarm_state, SetAlarmStateRequest),
            "GetAlarmState": _unary(servicer.get_alarm_state, GetAlarmStateRequest),
        },
    )
    server.add_generic_rpc_handlers((handler,))