# alarmbutton

Tools for an office "alarm button". One machine runs a server that keeps a
shared alarm state (enabled or disabled, who changed it and when) and stores
it in a JSON file. Workstations run a checker that polls the server and shuts
the machine down as soon as the alarm is enabled. Two small commands switch
the alarm on and off, and a packager/updater pair distributes new releases.

## Installation

```
pip install alarmbutton
```

## Configuration

Every command reads `alarm-button-settings.yaml` from the current directory,
or the file given with `-c/--config`:

```yaml
server_addr: alarm.example.com:50051
update_folder: https://updates.example.com/alarm/
state_file: alarm-button-state.json
timeout: 5s
```

- `server_addr` is required and must be a resolvable `host:port` address.
- `update_folder` is optional; when set it must be a valid request URI.
- `state_file` defaults to `alarm-button-state.json`.
- `timeout` is a duration such as `5s`, `1m30s` or `250ms` and applies to
  each call to the server; it defaults to 5 seconds.

## Commands

Every command accepts `version` as its first argument, which prints the
version, commit and build time, for example `alarm-server version`. On
failure a command prints `Error: ...` to stderr and exits with status 1.
Log lines go to standard output.

Run the server:

```
alarm-server
alarm-server :9090 --state-file /var/lib/alarm/state.json
```

Without a listen address it listens on all interfaces at the port of
`server_addr`. The state is loaded from the state file at start-up (a missing
file means "disabled") and rewritten on every change. SIGINT or SIGTERM stops
the server gracefully.

Enable the alarm and shut down this PC:

```
alarm-button-on
```

Disable the alarm (never shuts anything down):

```
alarm-button-off
```

Both send the request at once and then retry every second until the server
confirms the new state. A server address may be given as the only argument
to override the configuration. `alarm-button-on --debug` skips the shutdown.
Interrupting a command before confirmation makes it exit with status 1.

Watch the alarm on a workstation and shut down when it becomes enabled
(polls every 5 seconds):

```
alarm-checker
alarm-checker --debug
```

With `--debug` the checker only logs that the alarm is enabled. Shutdown runs
`shutdown -h now` on Linux and macOS and `shutdown.exe -s -f -t 0` on
Windows; other platforms are refused.

Prepare an update manifest:

```
alarm-packager alarm.example.com:50051 https://updates.example.com/alarm/
```

It refuses to run while an updater holds its marker file, writes the
settings file (to `--config`), checks that the server answers, and then
writes `alarm-button-version.yaml` with the version, base64 SHA-512 checksums
of the distributed files, the files each role needs and the program each role
starts. The distributed files (`alarm-button-on`, `alarm-button-off`,
`alarm-checker`, `alarm-server`, `alarm-updater`, with `.exe` on Windows, and
the settings file) must already be in the current directory. Finally it logs
which files to upload and which to copy to each role.

Update a machine and restart its role's program:

```
alarm-updater client
alarm-updater server
```

The updater creates a marker file so that two runs do not overlap (a marker
older than 30 seconds is treated as stale), checks that the server answers,
kills running processes named like the distributed files, asks the installed
`alarm-checker` or `alarm-server` for its version, and downloads the manifest
from `update_folder`. When the version differs or any of the role's files is
missing or has a different checksum, it downloads the role's files to a
temporary directory, verifies each checksum and replaces the local files.
It then starts the role's program.

## Library use

The building blocks can be imported: `alarmbutton.config` (`Config`, `load`,
`save`, `validate`), `alarmbutton.domain` (`Actor`, `State`),
`alarmbutton.repository.FileRepository`, `alarmbutton.service.AlarmService`,
`alarmbutton.manifest.Description`, and `alarmbutton.client` (`dial`,
`detect_actor`, `AlarmClient`):

```python
from alarmbutton.client import detect_actor, dial

with dial("127.0.0.1:50051", 3.0) as client:
    state = client.set_alarm_state(detect_actor(), True)
    print(state.is_enabled)
```

The runners `alarmbutton.server.run`, `alarmbutton.checker.run` and
`alarmbutton.button.run` take an options dataclass and an optional
`threading.Event` that stops them when set.

## Limitations

- The connection is plain, unencrypted gRPC; run it on a trusted network.
- Messages travel as JSON over the methods
  `/alarm.v1.AlarmService/SetAlarmState` and
  `/alarm.v1.AlarmService/GetAlarmState`, not as protocol-buffer binaries, so
  only clients from this package can talk to the server.
- The packager does not build executables; it only hashes files that are
  already present, and uploading them to the update folder is left to you.