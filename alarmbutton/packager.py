"""Prepare the update manifest that the updater downloads."""

from __future__ import annotations

import base64
import os
from dataclasses import dataclass

from alarmbutton import config, logger
from alarmbutton.client import detect_actor, dial
from alarmbutton.config import Config
from alarmbutton.manifest import (
    DEFAULT_FILE_MODE,
    VERSION_FILENAME,
    Description,
    allowed_user_roles,
    executables_by_user_roles,
    file_checksum,
    files_with_checksum,
    is_updater_running_now,
)


class UpdaterRunningError(Exception):
    """Raised when the updater holds its marker while packaging is attempted."""


@dataclass
class PackagerOptions:
    """Inputs for one packaging run."""

    config_path: str = ""
    server_address: str = ""
    update_folder: str = ""


def _join_lines(names: list[str]) -> str:
    return ",\n".join(names)


class _Packager:
    """Builds and writes the update description for the current platform."""

    def __init__(self, settings: Config, config_filename: str) -> None:
        self.settings = settings
        self.config_filename = config_filename
        self.description = Description()

    @classmethod
    def create(cls, config_filename: str, settings: Config) -> _Packager:
        """Check the marker, persist the settings and make sure the server answers."""
        if is_updater_running_now():
            raise UpdaterRunningError("the updater is running now")
        config.save(config_filename, settings)
        packager = cls(settings, config_filename)
        packager.ensure_server_reachable()
        return packager

    def ensure_server_reachable(self) -> None:
        actor = detect_actor()
        with dial(self.settings.server_address, self.settings.timeout) as client:
            client.get_alarm_state(actor)
        logger.info_kv(
            "Verified connection to alarm server", server_address=self.settings.server_address
        )

    def run(self) -> Description:
        logger.info_kv("Preparing update description")
        self.fill_description()
        logger.info_kv("Saving update description", path=VERSION_FILENAME)
        self.save_description()
        logger.info_kv(self.next_steps())
        return self.description

    def fill_description(self) -> None:
        for role, names in allowed_user_roles().items():
            self.description.roles[role] = list(names)
        self.description.executables.update(executables_by_user_roles())

        for name in files_with_checksum():
            try:
                os.stat(name)
            except FileNotFoundError:
                raise FileNotFoundError(f"{name}: file does not exist") from None
            checksum = file_checksum(name)
            self.description.files[name] = base64.b64encode(checksum).decode("ascii")

    def save_description(self) -> None:
        contents = self.description.to_yaml()
        descriptor = os.open(
            VERSION_FILENAME, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, DEFAULT_FILE_MODE
        )
        with os.fdopen(descriptor, "w", encoding="utf-8") as handle:
            handle.write(contents)

    def next_steps(self) -> str:
        """Describe which files to upload and which to copy for each role."""
        uploads = sorted([*self.description.files, VERSION_FILENAME])
        parts = [
            f"You should upload the following files to the folder "
            f"{self.settings.server_update_folder}:\n{_join_lines(uploads)}"
        ]
        for role, names in self.description.roles.items():
            parts.append(
                f'\n\nFor a user with the "{role}" role, copy the following files '
                f"to the local computer:\n{_join_lines(names)}"
                f"\nAt system startup, set the command to run: alarm-updater {role}"
            )
        return "".join(parts)


def run(options: PackagerOptions | None = None) -> Description:
    """Save the settings, check the server and write the update manifest; return it."""
    options = options or PackagerOptions()
    with logger.named("alarm-packager"):
        settings = Config(
            server_address=options.server_address,
            server_update_folder=options.update_folder,
        )
        config.validate(settings)
        packager = _Packager.create(options.config_path, settings)
        description = packager.run()
        logger.info_kv("Packager completed successfully")
        return description