"""The update manifest, the per-platform file lists and the updater marker."""

from __future__ import annotations

import hashlib
import os
import sys
import time
from dataclasses import dataclass, field
from typing import Any

import psutil
import yaml

from alarmbutton import logger, version
from alarmbutton.config import DEFAULT_CONFIG_FILENAME

VERSION_FILENAME = "alarm-button-version.yaml"
MARKER_FILENAME = "alarm-button-update-marker.bin"
DEFAULT_FILE_MODE = 0o755
CHECKSUM_ALGORITHM = "sha512"
MARKER_LIFETIME = 30.0
VERSION_COMMAND_TIMEOUT = 10.0

_BASE_SERVER_EXECUTABLE = "alarm-server"
_BASE_CHECKER_EXECUTABLE = "alarm-checker"
_BASE_UPDATER_EXECUTABLE = "alarm-updater"
_NULL_VALUES = {"", "~", "null", "Null", "NULL"}


def executable_extension() -> str:
    """Return ``.exe`` on Windows and an empty string elsewhere."""
    return ".exe" if sys.platform.lower().startswith("win") else ""


def server_executable() -> str:
    return _BASE_SERVER_EXECUTABLE + executable_extension()


def checker_executable() -> str:
    return _BASE_CHECKER_EXECUTABLE + executable_extension()


def updater_executable() -> str:
    return _BASE_UPDATER_EXECUTABLE + executable_extension()


def allowed_user_roles() -> dict[str, list[str]]:
    """Return the files each role needs on this platform."""
    extension = executable_extension()
    return {
        "client": [
            "alarm-button-on" + extension,
            checker_executable(),
            updater_executable(),
            DEFAULT_CONFIG_FILENAME,
        ],
        "server": [
            "alarm-button-off" + extension,
            server_executable(),
            updater_executable(),
            DEFAULT_CONFIG_FILENAME,
        ],
    }


def executables_by_user_roles() -> dict[str, str]:
    """Return the program each role starts after an update."""
    return {"client": checker_executable(), "server": server_executable()}


def files_with_checksum() -> list[str]:
    """Return every distributed file that gets a checksum in the manifest."""
    extension = executable_extension()
    return [
        "alarm-button-off" + extension,
        "alarm-button-on" + extension,
        checker_executable(),
        server_executable(),
        updater_executable(),
        DEFAULT_CONFIG_FILENAME,
    ]


def _scalar(value: Any, name: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"update description: field {name} must be a scalar")
    return "" if value in _NULL_VALUES else value


def _mapping(value: Any, name: str) -> dict:
    if value is None or (isinstance(value, str) and value in _NULL_VALUES):
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"update description: field {name} must be a mapping")
    return value


def _string_map(value: Any, name: str) -> dict[str, str]:
    return {str(key): _scalar(item, name) for key, item in _mapping(value, name).items()}


def _list_map(value: Any, name: str) -> dict[str, list[str]]:
    result: dict[str, list[str]] = {}
    for key, items in _mapping(value, name).items():
        if items is None or (isinstance(items, str) and items in _NULL_VALUES):
            result[str(key)] = []
        elif isinstance(items, list):
            result[str(key)] = [_scalar(item, name) for item in items]
        else:
            raise ValueError(f"update description: field {name} must hold lists")
    return result


@dataclass
class Description:
    """Metadata about a published release: checksums, role files and executables."""

    version_number: str = field(default_factory=version.short)
    files: dict[str, str] = field(default_factory=dict)
    roles: dict[str, list[str]] = field(default_factory=dict)
    executables: dict[str, str] = field(default_factory=dict)

    def to_yaml(self) -> str:
        """Render the manifest as YAML."""
        document = {
            "version": self.version_number,
            "files": dict(sorted(self.files.items())),
            "roles": {role: list(names) for role, names in sorted(self.roles.items())},
            "executables": dict(sorted(self.executables.items())),
        }
        return yaml.safe_dump(document, sort_keys=False, allow_unicode=True)

    @classmethod
    def from_yaml(cls, text: str | bytes) -> Description:
        """Parse a manifest; raises ValueError when it is malformed."""
        try:
            data = yaml.load(text, Loader=yaml.BaseLoader)
        except yaml.YAMLError as err:
            raise ValueError(f"update description: {err}") from err
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError("update description: document is not a mapping")
        return cls(
            version_number=_scalar(data.get("version"), "version"),
            files=_string_map(data.get("files"), "files"),
            roles=_list_map(data.get("roles"), "roles"),
            executables=_string_map(data.get("executables"), "executables"),
        )


def file_checksum(path: str) -> bytes:
    """Return the SHA-512 digest of the file at ``path``."""
    with open(os.path.normpath(path), "rb") as handle:
        contents = handle.read()
    return hashlib.new(CHECKSUM_ALGORITHM, contents).digest()


def terminate_process_by_name(name: str) -> int:
    """Kill every other process whose executable is ``name``; return how many were killed."""
    own_pid = os.getpid()
    killed = 0
    for process in psutil.process_iter(["pid", "name"]):
        if process.info["pid"] == own_pid or process.info["name"] != name:
            continue
        try:
            process.kill()
        except psutil.NoSuchProcess:
            continue
        killed += 1
    return killed


def is_updater_running_now() -> bool:
    """Tell whether another updater holds the marker, clearing a stale marker first."""
    logger.info_kv("Checking for the presence of an update marker")
    try:
        info = os.stat(MARKER_FILENAME)
    except FileNotFoundError:
        logger.info_kv("Update marker not found, continuing")
        return False
    except OSError as err:
        logger.info_kv(f"Unable to read update marker: {err}")
        return False

    if time.time() - info.st_mtime <= MARKER_LIFETIME:
        return True

    logger.info_kv("The update marker is too old, attempting cleanup")
    try:
        terminate_process_by_name(updater_executable())
        os.remove(MARKER_FILENAME)
    except (OSError, psutil.Error):
        return True
    return False