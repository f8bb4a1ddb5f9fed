"""Download and apply updates from the update folder, then start the role's program."""

from __future__ import annotations

import base64
import binascii
import contextlib
import hashlib
import os
import posixpath
import shutil
import subprocess
import sys
import tempfile
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Iterator
from dataclasses import dataclass
from typing import IO

import psutil

from alarmbutton import config, logger
from alarmbutton.client import detect_actor, dial
from alarmbutton.config import DEFAULT_CONFIG_FILENAME, Config
from alarmbutton.manifest import (
    CHECKSUM_ALGORITHM,
    DEFAULT_FILE_MODE,
    MARKER_FILENAME,
    VERSION_COMMAND_TIMEOUT,
    VERSION_FILENAME,
    Description,
    checker_executable,
    file_checksum,
    files_with_checksum,
    is_updater_running_now,
    server_executable,
)

_VERSION_PREFIX = "version: "


class UpdaterError(Exception):
    """Raised when an update cannot be prepared, fetched or applied."""


@dataclass
class UpdaterOptions:
    """Settings for one updater run."""

    config_path: str = ""
    update_type: str = ""


def parse_version_output(output: str) -> str:
    """Extract the semantic version from ``version: X, commit: ..., built at: ...``."""
    output = output.strip()
    if output.startswith(_VERSION_PREFIX):
        found = output.split(",")[0].removeprefix(_VERSION_PREFIX).strip()
        if found:
            return found
    raise UpdaterError("invalid version output format")


@contextlib.contextmanager
def _step(description: str) -> Iterator[None]:
    try:
        yield
    except (UpdaterError, OSError, ValueError, psutil.Error) as err:
        raise UpdaterError(f"{description}: {err}") from err


def _file_url(folder: str, name: str) -> str:
    parts = urllib.parse.urlsplit(folder)
    path = posixpath.normpath(posixpath.join(parts.path, name))
    if parts.netloc and not path.startswith("/"):
        path = "/" + path
    return urllib.parse.urlunsplit(
        (parts.scheme, parts.netloc, urllib.parse.quote(path), parts.query, parts.fragment)
    )


@contextlib.contextmanager
def _open_url(url: str) -> Iterator[IO[bytes]]:
    try:
        response = urllib.request.urlopen(url)
    except urllib.error.HTTPError as err:
        err.close()
        raise UpdaterError(f"{url}, {err.code} {err.reason}: unexpected http status") from err
    except urllib.error.URLError as err:
        raise UpdaterError(f"{url}: {err.reason}") from err
    with response:
        if response.status != 200:
            raise UpdaterError(
                f"{url}, {response.status} {response.reason}: unexpected http status"
            )
        yield response


def _decode_checksum(encoded: str, name: str) -> bytes:
    try:
        return base64.b64decode(encoded, validate=True)
    except binascii.Error as err:
        raise UpdaterError(f"checksum for {name}: {err}") from err


def _apply_update(target: str, data: bytes, checksum: bytes) -> None:
    """Replace ``target`` with ``data`` after verifying its checksum."""
    if hashlib.new(CHECKSUM_ALGORITHM, data).digest() != checksum:
        raise UpdaterError(f"updated file {target} has wrong checksum")
    directory, base = os.path.split(os.path.abspath(target))
    new_path = os.path.join(directory, f".{base}.new")
    old_path = os.path.join(directory, f".{base}.old")

    descriptor = os.open(new_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, DEFAULT_FILE_MODE)
    with os.fdopen(descriptor, "wb") as handle:
        handle.write(data)

    with contextlib.suppress(FileNotFoundError):
        os.remove(old_path)
    os.replace(target, old_path)
    try:
        os.replace(new_path, target)
    except OSError:
        os.replace(old_path, target)
        raise
    with contextlib.suppress(OSError):
        os.remove(old_path)


class _Runner:
    """State of a single update execution."""

    def __init__(self, settings: Config) -> None:
        self.settings = settings
        self.description: Description | None = None
        self.is_update_needed = False
        self.temporary_directory = ""
        self.downloaded_files: dict[str, str] = {}

    @classmethod
    def prepare(cls, options: UpdaterOptions) -> _Runner:
        """Claim the marker, load settings and check that the server answers."""
        if is_updater_running_now():
            raise UpdaterError("the updater is already running")
        with open(MARKER_FILENAME, "wb"):
            pass
        settings = config.load(options.config_path or DEFAULT_CONFIG_FILENAME)
        settings.update_type = options.update_type.strip()
        runner = cls(settings)
        runner.ensure_server_reachable()
        return runner

    def ensure_server_reachable(self) -> None:
        actor = detect_actor()
        with dial(self.settings.server_address, self.settings.timeout) as client:
            client.get_alarm_state(actor)
        logger.info_kv("Connected to alarm server", address=self.settings.server_address)

    def run(self) -> None:
        logger.info_kv("Terminating alarm button processes forcibly")
        with _step("terminate alarm button processes"):
            self.terminate_alarm_button_processes()

        logger.info_kv("Detecting local version from installed executable")
        with _step("detect local version"):
            local_version = self.detect_local_version()

        logger.info_kv("Downloading the update description from the server")
        with _step("download update description"):
            self.fill_update_description()

        version_update_needed = self.compare_versions(
            local_version, self.description.version_number
        )

        logger.info_kv("Verifying the checksum of files on the client and server")
        with _step("validate checksum"):
            self.validate_checksum()

        if version_update_needed or self.is_update_needed:
            if version_update_needed:
                logger.info_kv("Version update required", reason="version_mismatch")
            if self.is_update_needed:
                logger.info_kv("File update required", reason="checksum_mismatch")

            logger.info_kv("Downloading update files to a temporary folder")
            with _step("download update files"):
                self.download_files()

            logger.info_kv("Updating files on the client")
            with _step("update files on client"):
                self.update_files()
        else:
            logger.info_kv("No update required - version and files are current")

        logger.info_kv("Starting required executables")
        with _step("start required executables"):
            self.start_required_executable()

    def terminate_alarm_button_processes(self) -> None:
        names = set(files_with_checksum())
        own_pid = os.getpid()
        for process in psutil.process_iter(["pid", "name"]):
            if process.info["pid"] == own_pid or process.info["name"] not in names:
                continue
            with contextlib.suppress(psutil.NoSuchProcess):
                process.kill()

    def detect_local_version(self) -> str:
        update_type = self.settings.update_type
        if update_type == "client":
            executable = checker_executable()
        elif update_type == "server":
            executable = server_executable()
        else:
            raise UpdaterError(f"unknown update type: {update_type}")

        try:
            completed = subprocess.run(
                [executable, "version"],
                capture_output=True,
                timeout=VERSION_COMMAND_TIMEOUT,
                check=True,
            )
        except (OSError, subprocess.SubprocessError) as err:
            logger.warn_kv(f"Could not get local version from {executable}: {err}")
            return ""
        return parse_version_output(completed.stdout.decode("utf-8", errors="replace"))

    def compare_versions(self, local_version: str, remote_version: str) -> bool:
        if not local_version:
            logger.info_kv("No local version detected, update needed")
            return True
        if local_version != remote_version:
            logger.info_kv("Version mismatch detected", local=local_version, remote=remote_version)
            return True
        logger.info_kv("Versions match, checking file integrity", version=local_version)
        return False

    def fill_update_description(self) -> None:
        url = _file_url(self.settings.server_update_folder, VERSION_FILENAME)
        with _open_url(url) as response:
            data = response.read()
        self.description = Description.from_yaml(data)

    def _role_files(self) -> list[str]:
        if self.description is None:
            raise UpdaterError("update description is empty")
        update_type = self.settings.update_type
        try:
            return self.description.roles[update_type]
        except KeyError:
            raise UpdaterError(f"role {update_type}: unable to find files for role") from None

    def _server_checksum(self, name: str) -> bytes:
        try:
            encoded = self.description.files[name]
        except KeyError:
            raise UpdaterError(f"checksum for {name}: checksum missing for file") from None
        return _decode_checksum(encoded, name)

    def validate_checksum(self) -> None:
        """Mark an update as needed at the first file that is missing or differs."""
        for name in self._role_files():
            expected = self._server_checksum(name)
            try:
                actual = file_checksum(name)
            except FileNotFoundError:
                self.is_update_needed = True
                return
            if actual != expected:
                self.is_update_needed = True
                return

    def download_files(self) -> None:
        self.temporary_directory = tempfile.mkdtemp(prefix="alarm-button-updater-")
        for name in self._role_files():
            url = _file_url(self.settings.server_update_folder, name)
            output_name = os.path.normpath(os.path.join(self.temporary_directory, name))
            with _open_url(url) as response, open(output_name, "wb") as output:
                shutil.copyfileobj(response, output)
            self.downloaded_files[name] = output_name
            logger.info_kv("Downloaded file", path=output_name)

    def update_files(self) -> None:
        for name, downloaded in self.downloaded_files.items():
            logger.info_kv("Updating file", file=name)
            with open(downloaded, "rb") as handle:
                data = handle.read()

            logger.debug_kv("Looking for a checksum")
            checksum = self._server_checksum(name)

            if not os.path.exists(name):
                with open(name, "wb"):
                    pass

            logger.debug_kv("Applying update")
            _apply_update(name, data, checksum)

            with contextlib.suppress(OSError):
                os.remove(name + ".old")

    def start_required_executable(self) -> subprocess.Popen:
        if self.description is None:
            raise UpdaterError("update description is empty")
        update_type = self.settings.update_type
        try:
            executable = self.description.executables[update_type]
        except KeyError:
            raise UpdaterError(
                f"role {update_type}: unable to find executable for role"
            ) from None

        logger.info_kv("Starting executable", executable=executable)
        platform = sys.platform.lower()
        if platform.startswith("linux") or platform.startswith("darwin"):
            return subprocess.Popen([executable], start_new_session=True)
        if platform.startswith("win"):
            return subprocess.Popen(["cmd.exe", "/C", "start", executable])
        raise UpdaterError(f"{sys.platform} OS is not supported: os not supported")

    def cleanup(self) -> None:
        with contextlib.suppress(OSError):
            os.remove(MARKER_FILENAME)
        if self.temporary_directory and os.path.exists(self.temporary_directory):
            shutil.rmtree(self.temporary_directory, ignore_errors=True)
        logger.info_kv("The updater has been stopped")


def run(options: UpdaterOptions | None = None) -> None:
    """Bring the files of the chosen role up to date and start its program."""
    options = options or UpdaterOptions()
    with logger.named("alarm-updater"):
        runner = _Runner.prepare(options)
        try:
            runner.run()
        except Exception as err:
            logger.error_kv("Updater run failed", error=str(err))
            raise
        else:
            logger.info_kv("Updater completed")
        finally:
            runner.cleanup()