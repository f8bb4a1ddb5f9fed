import os
import time

import pytest

from alarmbutton import manifest, version
from alarmbutton.config import DEFAULT_CONFIG_FILENAME


def test_executable_names_share_extension():
    extension = manifest.executable_extension()
    assert manifest.checker_executable() == "alarm-checker" + extension
    assert manifest.server_executable() == "alarm-server" + extension
    assert manifest.updater_executable() == "alarm-updater" + extension


def test_roles_cover_exactly_the_checksummed_files():
    roles = manifest.allowed_user_roles()
    assert set(roles) == {"client", "server"}
    union = set(roles["client"]) | set(roles["server"])
    assert union == set(manifest.files_with_checksum())
    assert len(manifest.files_with_checksum()) == len(union)
    assert DEFAULT_CONFIG_FILENAME in roles["client"]
    assert DEFAULT_CONFIG_FILENAME in roles["server"]


def test_role_executables_are_distributed_to_their_role():
    roles = manifest.allowed_user_roles()
    executables = manifest.executables_by_user_roles()
    assert executables["client"] == manifest.checker_executable()
    assert executables["server"] == manifest.server_executable()
    for role, executable in executables.items():
        assert executable in roles[role]


def test_new_description_uses_current_version():
    description = manifest.Description()
    assert description.version_number == version.short()
    assert description.files == {}
    assert description.roles == {}
    assert description.executables == {}


def test_description_yaml_round_trip():
    original = manifest.Description(
        version_number="2.1.3",
        files={"dummy.bin": "Y2hlY2tzdW0="},
        roles={"client": ["dummy.bin", DEFAULT_CONFIG_FILENAME]},
        executables={"client": "nonexistent-binary"},
    )
    assert manifest.Description.from_yaml(original.to_yaml()) == original


def test_description_from_yaml_keeps_version_text():
    parsed = manifest.Description.from_yaml("version: 1.0\nfiles: {}\n")
    assert parsed.version_number == "1.0"
    assert parsed.files == {}


def test_description_from_empty_yaml():
    parsed = manifest.Description.from_yaml("")
    assert parsed == manifest.Description(version_number="")


def test_description_rejects_non_mapping():
    with pytest.raises(ValueError):
        manifest.Description.from_yaml("- a\n- b\n")


def test_description_rejects_bad_roles():
    with pytest.raises(ValueError):
        manifest.Description.from_yaml("roles:\n  client: single\n")


def test_file_checksum_of_empty_file(tmp_path):
    path = tmp_path / "empty.bin"
    path.write_bytes(b"")
    assert manifest.file_checksum(str(path)).hex() == (
        "cf83e1357eefb8bdf1542850d66d8007d620e4050b5715dc83f4a921d36ce9ce"
        "47d0d13c5d85f2b0ff8318d2877eec2f63b931bd47417a81a538327af927da3e"
    )


def test_file_checksum_depends_on_contents(tmp_path):
    first = tmp_path / "a.bin"
    second = tmp_path / "b.bin"
    third = tmp_path / "c.bin"
    first.write_bytes(b"dummy-contents")
    second.write_bytes(b"dummy-contents")
    third.write_bytes(b"other-contents")
    checksum = manifest.file_checksum(str(first))
    assert len(checksum) == 64
    assert checksum == manifest.file_checksum(str(second))
    assert checksum != manifest.file_checksum(str(third))


def test_file_checksum_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        manifest.file_checksum(str(tmp_path / "missing.bin"))


def test_terminate_unknown_process_name():
    assert manifest.terminate_process_by_name("alarm-no-such-program-zz") == 0


def test_updater_not_running_without_marker(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert manifest.is_updater_running_now() is False


def test_fresh_marker_means_running(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / manifest.MARKER_FILENAME).write_bytes(b"")
    assert manifest.is_updater_running_now() is True
    assert (tmp_path / manifest.MARKER_FILENAME).exists()


def test_stale_marker_is_cleared(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    marker = tmp_path / manifest.MARKER_FILENAME
    marker.write_bytes(b"")
    old = time.time() - manifest.MARKER_LIFETIME * 4
    os.utime(marker, (old, old))
    assert manifest.is_updater_running_now() is False
    assert not marker.exists()