# elite_cs

A pure-Python client library for Elite CS series robot controllers. It needs only the standard library.

## Modules

- `elite_cs.dashboard` holds `DashboardClient`, a line-based client for the dashboard shell server. Its default port is 29999.
  - `connect(ip, port=29999)` returns `False` if the TCP connection fails. It raises `EliteException` with `ErrorCode.SOCKET_CONNECT_FAIL` if `ip` is not an IP address. On success it reads the server's greeting line.
  - The commands include `power_on`, `power_off`, `brake_release`, `load_task`, `play_program`, `pause_program` and `stop_program`, together with `load_configuration`, `set_speed_scaling`, `log`, `popup` and `echo`. Each of these waits for the robot's reply and returns a `bool`.
  - The queries are `robot_mode` (returns `RobotMode`), `safety_mode` (`SafetyMode`), `running_status` and `get_task_status` (`TaskStatus`), `speed_scaling`, `robot_type`, `robot_serial_number`, `robot_id`, `version`, `get_task_path` and `configuration_path`.
  - `send_and_receive(cmd)` sends any command, adding a trailing newline if it is missing, and returns the reply line.
  - A reply that does not match what the command expects raises `EliteException` with `ErrorCode.DASHBOARD_NOT_EXPECT_RECIVE`. A socket error raises `EliteException` with `ErrorCode.SOCKET_FAIL`.
  - Four attributes set how long commands wait: `reply_timeout` (default 30 s), `reply_period` (0.1 s), `power_off_settle` (0.5 s) and `speed_settle` (0.2 s).
  - `DashboardClient` is a context manager. Leaving the `with` block disconnects.
- `elite_cs.primary_port` holds `PrimaryPort`, a client for the primary port (30001).
  - `connect(ip, port)` starts a background thread. The thread reads messages and reconnects when the link drops.
  - `send_script(script)` sends a script program terminated by a newline.
  - `get_package(package, timeout_ms)` waits until the next robot-state message fills the given sub-package.
  - `get_local_ip()` returns the local address of the connection, or an empty string.
  - `disconnect()` closes the socket and stops the thread.
- `elite_cs.primary_package` holds `PrimaryPackage`, the base for primary-port sub-packages. It also holds `RobotConfPackage` and `KinematicsInfo`. `KinematicsInfo` parses the DH parameters `dh_a`, `dh_d` and `dh_alpha` from the RobotConfig sub-package.
- `elite_cs.script_sender` holds `ScriptSender(port, program, host="0.0.0.0")`, a threaded TCP server. It answers every `request_program` line with the control script. It serves several clients at once. Its `port` property gives the bound port, which is useful when it is started on port 0. Use `close()` or a `with` block to stop it.
- `elite_cs.version` holds `VersionInfo`.
  - `VersionInfo.from_string("2.11.0.3")` parses a version with two to four dot-separated parts. A string with fewer than two parts raises `EliteException` with `ErrorCode.ILLEGAL_PARAM`.
  - `str()` always gives four parts.
  - Equality compares all four fields. `a > b` holds only when both the major and the minor number of `a` are greater.
- `elite_cs.log` holds the process-wide logger.
  - `set_log_level(LogLevel.DEBUG)` sets the threshold, which is `INFO` by default.
  - `register_log_handler(handler)` takes a `LogHandler` subclass. `unregister_log_handler()` goes back to writing on standard error.
  - `log(file, line, level, fmt, *args)` formats the message printf-style.
- `elite_cs.exceptions` holds `EliteException`, a `RuntimeError` that carries an `ErrorCode` in its `code` attribute.

## Installation

```
pip install .
```

With the test dependencies:

```
pip install .[test]
```

## Example

```python
from elite_cs.dashboard import DashboardClient, RobotMode

with DashboardClient() as dashboard:
    dashboard.connect("192.0.2.10", 29999)
    if dashboard.robot_mode() is RobotMode.POWER_OFF:
        dashboard.power_on()
        dashboard.brake_release()
    dashboard.load_task("wait_program.task")
    dashboard.play_program()
```

Reading the kinematics from the primary port:

```python
from elite_cs.primary_port import PrimaryPort
from elite_cs.primary_package import KinematicsInfo

with PrimaryPort() as primary:
    primary.connect("192.0.2.10", 30001)
    info = KinematicsInfo()
    if primary.get_package(info, 500):
        print(info.dh_a, info.dh_d, info.dh_alpha)
```

Serving a control script:

```python
from elite_cs.script_sender import ScriptSender

with ScriptSender(50002, "print(\"hello\")") as sender:
    ...  # the robot connects and sends "request_program\n"
```

## What it does not do

- `PrimaryPort` parses only robot-state messages. It skips robot exception messages and offers no callback for them.
- There is no real-time data (RTSI) interface.
- There are no servers for streaming joint, trajectory or force commands to a running control script. `ScriptSender` only hands out the script text.
- There is no single driver object that ties these parts together.
- There is no SSH-based log download or software upgrade.
- The package installs no command-line program.

## Running the tests

```
pytest
```