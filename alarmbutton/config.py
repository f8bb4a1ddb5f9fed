"""Connection settings shared by the alarm tools, stored as YAML."""

from __future__ import annotations

import os
import re
import socket
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

import yaml

DEFAULT_CONFIG_FILENAME = "alarm-button-settings.yaml"
DEFAULT_STATE_FILENAME = "alarm-button-state.json"
DEFAULT_TIMEOUT = 5.0
DEFAULT_FILE_PERMISSIONS = 0o600

_NULL_VALUES = {"", "~", "null", "Null", "NULL"}
_NANOS_PER_SECOND = 10**9
_DURATION_UNITS = {
    "ns": 1,
    "us": 10**3,
    "µs": 10**3,
    "μs": 10**3,
    "ms": 10**6,
    "s": 10**9,
    "m": 60 * 10**9,
    "h": 3600 * 10**9,
}
_DURATION_PART = re.compile(r"(\d*(?:\.\d*)?)(ns|us|µs|μs|ms|s|m|h)?")


class ConfigError(Exception):
    """Raised when settings cannot be read, written or validated."""


@dataclass
class Config:
    """Connection parameters used by the alarm binaries."""

    server_address: str = ""
    server_update_folder: str = ""
    state_file: str = ""
    timeout: float = 0.0
    # Chosen at run time by the updater; never written to YAML.
    update_type: str = ""


def load(path: str | None = None) -> Config:
    """Read settings from ``path`` and validate them."""
    path = os.path.normpath(path or DEFAULT_CONFIG_FILENAME)
    try:
        with open(path, encoding="utf-8") as handle:
            contents = handle.read()
    except OSError as err:
        raise ConfigError(f"read settings: {err}") from err

    try:
        data = yaml.load(contents, Loader=yaml.BaseLoader)
    except yaml.YAMLError as err:
        raise ConfigError(f"unmarshal settings: {err}") from err

    config = _from_mapping(data)
    validate(config)
    return config


def save(path: str | None, config: Config | None) -> None:
    """Validate ``config`` and write it to ``path`` with restricted permissions."""
    if config is None:
        raise ConfigError("configuration is not set")
    path = os.path.normpath(path or DEFAULT_CONFIG_FILENAME)
    validate(config)

    document = {
        "server_addr": config.server_address,
        "update_folder": config.server_update_folder,
        "state_file": config.state_file,
        "timeout": _format_duration(config.timeout),
    }
    data = yaml.safe_dump(document, sort_keys=False, allow_unicode=True)
    try:
        descriptor = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, DEFAULT_FILE_PERMISSIONS)
        with os.fdopen(descriptor, "w", encoding="utf-8") as handle:
            handle.write(data)
    except OSError as err:
        raise ConfigError(f"write settings: {err}") from err


def validate(config: Config) -> None:
    """Check required fields and fill in defaults for timeout and state file."""
    if not config.server_address:
        raise ConfigError("server address must be provided")
    try:
        _resolve_tcp_address(config.server_address)
    except (ValueError, OSError) as err:
        raise ConfigError(f"invalid server socket: {err}") from err

    if config.timeout <= 0:
        config.timeout = DEFAULT_TIMEOUT
    if not config.state_file:
        config.state_file = DEFAULT_STATE_FILENAME

    if not config.server_update_folder:
        return
    try:
        _check_request_uri(config.server_update_folder)
    except ValueError as err:
        raise ConfigError(f"invalid update folder URI: {err}") from err


def _from_mapping(data: object) -> Config:
    if data is None:
        return Config()
    if not isinstance(data, dict):
        raise ConfigError("unmarshal settings: document is not a mapping")

    def text(key: str) -> str:
        value = data.get(key)
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ConfigError(f"unmarshal settings: field {key} must be a scalar")
        return "" if value in _NULL_VALUES else value

    timeout_text = text("timeout")
    try:
        timeout = _parse_duration(timeout_text) if timeout_text else 0.0
    except ValueError as err:
        raise ConfigError(f"unmarshal settings: {err}") from err

    return Config(
        server_address=text("server_addr"),
        server_update_folder=text("update_folder"),
        state_file=text("state_file"),
        timeout=timeout,
    )


def _parse_duration(text: str) -> float:
    """Parse a duration such as ``5s``, ``1m30s`` or ``250ms`` into seconds."""
    rest = text
    negative = False
    if rest and rest[0] in "+-":
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return 0.0
    if not rest:
        raise ValueError(f'invalid duration "{text}"')

    nanos = Decimal(0)
    position = 0
    while position < len(rest):
        match = _DURATION_PART.match(rest, position)
        number, unit = match.groups()
        if number in ("", "."):
            raise ValueError(f'invalid duration "{text}"')
        if unit is None:
            raise ValueError(f'missing unit in duration "{text}"')
        try:
            nanos += Decimal(number) * _DURATION_UNITS[unit]
        except InvalidOperation as err:
            raise ValueError(f'invalid duration "{text}"') from err
        position = match.end()

    seconds = int(nanos) / _NANOS_PER_SECOND
    return -seconds if negative else seconds


def _format_fraction(whole: int, fraction: int, digits: int) -> str:
    tail = f"{fraction:0{digits}d}".rstrip("0")
    return f"{whole}.{tail}" if tail else str(whole)


def _format_duration(seconds: float) -> str:
    """Render seconds the way durations are written in the settings file."""
    nanos = round(seconds * _NANOS_PER_SECOND)
    if nanos == 0:
        return "0s"
    sign = "-" if nanos < 0 else ""
    nanos = abs(nanos)

    if nanos < _NANOS_PER_SECOND:
        if nanos < 10**3:
            return f"{sign}{nanos}ns"
        if nanos < 10**6:
            return f"{sign}{_format_fraction(*divmod(nanos, 10**3), 3)}µs"
        return f"{sign}{_format_fraction(*divmod(nanos, 10**6), 6)}ms"

    hours, remainder = divmod(nanos, 3600 * _NANOS_PER_SECOND)
    minutes, remainder = divmod(remainder, 60 * _NANOS_PER_SECOND)
    secs = _format_fraction(*divmod(remainder, _NANOS_PER_SECOND), 9)
    if hours:
        return f"{sign}{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{sign}{minutes}m{secs}s"
    return f"{sign}{secs}s"


def _split_host_port(address: str) -> tuple[str, str]:
    colon = address.rfind(":")
    if colon < 0:
        raise ValueError(f"address {address}: missing port in address")
    if address.startswith("["):
        end = address.find("]")
        if end < 0:
            raise ValueError(f"address {address}: missing ']' in address")
        if end + 1 == len(address):
            raise ValueError(f"address {address}: missing port in address")
        if end + 1 != colon:
            raise ValueError(f"address {address}: too many colons in address")
        host = address[1:end]
        if "[" in address[1:] or "]" in address[end + 1:]:
            raise ValueError(f"address {address}: unexpected bracket in address")
    else:
        host = address[:colon]
        if ":" in host:
            raise ValueError(f"address {address}: too many colons in address")
        if "[" in address or "]" in address:
            raise ValueError(f"address {address}: unexpected bracket in address")
    return host, address[colon + 1:]


def _resolve_tcp_address(address: str) -> None:
    host, port = _split_host_port(address)
    if port and not port.isdigit():
        try:
            socket.getservbyname(port, "tcp")
        except OSError as err:
            raise ValueError(f"lookup tcp/{port}: unknown port") from err
    elif port and int(port) > 0xFFFF:
        raise ValueError(f"address {address}: invalid port")
    if host:
        socket.getaddrinfo(host, None, type=socket.SOCK_STREAM)


def _split_scheme(raw: str) -> tuple[str, str]:
    for index, char in enumerate(raw):
        if char.isascii() and char.isalpha():
            continue
        if char.isascii() and (char.isdigit() or char in "+-."):
            if index == 0:
                return "", raw
            continue
        if char == ":":
            if index == 0:
                raise ValueError("missing protocol scheme")
            return raw[:index].lower(), raw[index + 1:]
        return "", raw
    return "", raw


def _check_request_uri(raw: str) -> None:
    if any(ord(char) < 0x20 or ord(char) == 0x7F for char in raw):
        raise ValueError("invalid control character in URL")
    if not raw:
        raise ValueError("empty url")
    if raw == "*":
        return
    scheme, rest = _split_scheme(raw)
    rest = rest.split("?", 1)[0]
    if not rest.startswith("/"):
        if scheme:
            return
        raise ValueError("invalid URI for request")
    if scheme and rest.startswith("//"):
        authority = rest[2:].split("/", 1)[0]
        host = authority.rpartition("@")[2]
        if host.startswith("["):
            end = host.find("]")
            if end < 0:
                raise ValueError("missing ']' in host")
            port = host[end + 1:]
        else:
            colon = host.rfind(":")
            port = host[colon:] if colon >= 0 else ""
        if port and (not port.startswith(":") or not all(c.isdigit() for c in port[1:])):
            raise ValueError(f'invalid port "{port}" after host')