"""Client for the robot's dashboard shell server."""

from __future__ import annotations

import enum
import functools
import inspect
import ipaddress
import re
import socket
import threading
import time

from .exceptions import EliteException, ErrorCode
from .log import LogLevel, log

DASHBOARD_PORT = 29999
_READ_TIMEOUT_S = 10.0


def _log(level: LogLevel, fmt: str, *args: object) -> None:
    frame = inspect.currentframe()
    line = frame.f_back.f_lineno if frame is not None and frame.f_back is not None else 0
    log(__file__, line, level, fmt, *args)


class RobotMode(enum.Enum):
    """Robot mode as reported by the ``robotMode`` command."""

    UNKNOWN = enum.auto()
    NO_CONTROLLER = enum.auto()
    DISCONNECTED = enum.auto()
    CONFIRM_SAFETY = enum.auto()
    BOOTING = enum.auto()
    POWER_OFF = enum.auto()
    POWER_ON = enum.auto()
    IDLE = enum.auto()
    BACKDRIVE = enum.auto()
    RUNNING = enum.auto()
    UPDATING_FIRMWARE = enum.auto()
    WAITING_CALIBRATION = enum.auto()


class SafetyMode(enum.Enum):
    """Safety status as reported by the ``safety -s`` command."""

    UNKNOWN = enum.auto()
    NORMAL = enum.auto()
    REDUCED = enum.auto()
    PROTECTIVE_STOP = enum.auto()
    RECOVERY = enum.auto()
    SAFEGUARD_STOP = enum.auto()
    SYSTEM_EMERGENCY_STOP = enum.auto()
    ROBOT_EMERGENCY_STOP = enum.auto()
    VIOLATION = enum.auto()
    FAULT = enum.auto()
    VALIDATE_JOINT_ID = enum.auto()
    UNDEFINED_SAFETY_MODE = enum.auto()
    AUTOMATIC_MODE_SAFEGUARD_STOP = enum.auto()
    SYSTEM_THREE_POSITION_ENABLING_STOP = enum.auto()
    TP_THREE_POSITION_ENABLING_STOP = enum.auto()


class TaskStatus(enum.Enum):
    """State of the loaded task."""

    STOPPED = enum.auto()
    PLAYING = enum.auto()
    PAUSED = enum.auto()


_ROBOT_MODES = {
    "NO_CONTROLLER": RobotMode.NO_CONTROLLER,
    "DISCONNECTED": RobotMode.DISCONNECTED,
    "CONFIRM_SAFETY": RobotMode.CONFIRM_SAFETY,
    "BOOTING": RobotMode.BOOTING,
    "POWER_OFF": RobotMode.POWER_OFF,
    "POWER_ON": RobotMode.POWER_ON,
    "IDLE": RobotMode.IDLE,
    "BACK_DRIVE": RobotMode.BACKDRIVE,
    "RUNNING": RobotMode.RUNNING,
    "UPDATING": RobotMode.UPDATING_FIRMWARE,
    "WAITING_CALIBRATION": RobotMode.WAITING_CALIBRATION,
}

_SAFETY_MODES = {
    mode.name: mode for mode in SafetyMode if mode is not SafetyMode.UNKNOWN
}


@functools.lru_cache(maxsize=128)
def _compile(pattern: str) -> re.Pattern[str]:
    """Compile a pattern whose '.' does not match line terminators."""
    out = []
    escape = False
    in_class = False
    for ch in pattern:
        if escape:
            out.append(ch)
            escape = False
        elif ch == "\\":
            out.append(ch)
            escape = True
        elif in_class:
            if ch == "]":
                in_class = False
            out.append(ch)
        elif ch == "[":
            in_class = True
            out.append(ch)
        elif ch == ".":
            out.append(r"[^\n\r]")
        else:
            out.append(ch)
    return re.compile("".join(out))


_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _after_colon(text: str) -> str:
    _, sep, rest = text.partition(": ")
    return rest if sep else text


class DashboardClient:
    """Line-based client of the dashboard shell server."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._socket: socket.socket | None = None
        self._buffer = bytearray()
        self.reply_timeout = 30.0
        self.reply_period = 0.1
        self.power_off_settle = 0.5
        self.speed_settle = 0.2

    def __enter__(self) -> "DashboardClient":
        return self

    def __exit__(self, *args: object) -> None:
        self.disconnect()

    # connection -----------------------------------------------------------

    def connect(self, ip: str, port: int = DASHBOARD_PORT) -> bool:
        """Connect and consume the server's greeting line."""
        with self._lock:
            self._close_socket()
            try:
                address = str(ipaddress.ip_address(ip))
            except ValueError as error:
                _log(LogLevel.ERROR, "Dashboard connect to robot fail: %s", error)
                raise EliteException(ErrorCode.SOCKET_CONNECT_FAIL, str(error)) from error
            try:
                sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                quickack = getattr(socket, "TCP_QUICKACK", None)
                if quickack is not None:
                    sock.setsockopt(socket.IPPROTO_TCP, quickack, 1)
            except OSError as error:
                _log(LogLevel.ERROR, "Dashboard connect to robot fail: %s", error)
                raise EliteException(ErrorCode.SOCKET_CONNECT_FAIL, str(error)) from error
            try:
                sock.connect((address, port))
            except OSError as error:
                _log(LogLevel.ERROR, "Dashboard connect to robot fail: %s", error)
                sock.close()
                return False
            sock.settimeout(_READ_TIMEOUT_S)
            self._socket = sock
        self._read_line()
        return True

    def disconnect(self) -> None:
        with self._lock:
            self._close_socket()

    def _close_socket(self) -> None:
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
        self._socket = None
        self._buffer.clear()

    # low level ------------------------------------------------------------

    def _read_line(self) -> str:
        sock = self._socket
        if sock is None:
            raise EliteException(ErrorCode.SOCKET_FAIL, "not connected")
        while b"\n" not in self._buffer:
            try:
                chunk = sock.recv(4096)
            except socket.timeout:
                continue
            except OSError as error:
                raise EliteException(ErrorCode.SOCKET_FAIL, str(error)) from error
            if not chunk:
                raise EliteException(ErrorCode.SOCKET_FAIL, "End of file")
            self._buffer.extend(chunk)
        end = self._buffer.index(b"\n") + 1
        line = bytes(self._buffer[:end])
        del self._buffer[:end]
        return line.decode("utf-8", errors="replace")

    def _send_command(self, cmd: str) -> None:
        sock = self._socket
        if sock is None:
            raise EliteException(ErrorCode.SOCKET_FAIL, "not connected")
        try:
            sock.sendall(cmd.encode("utf-8"))
        except OSError as error:
            raise EliteException(ErrorCode.SOCKET_FAIL, str(error)) from error

    def _send_and_request(self, cmd: str, expected: str = "") -> str:
        with self._lock:
            if self._socket is None:
                _log(LogLevel.ERROR, "Dashboard not connect to robot")
                return ""
            self._send_command(cmd)
            response = self._read_line()
        if not expected:
            return response
        match = _compile(expected).search(response)
        if match is None:
            raise EliteException(
                ErrorCode.DASHBOARD_NOT_EXPECT_RECIVE,
                f'Dashboard command "{cmd}" response expected: {expected}. But received: {response}',
            )
        return match.group(0)

    def _wait_for_reply(self, cmd: str, expected: str) -> bool:
        pattern = _compile(expected)
        waited = 0.0
        while waited < self.reply_timeout:
            if pattern.fullmatch(self._send_and_request(cmd)):
                return True
            time.sleep(self.reply_period)
            waited += self.reply_period
        return False

    # commands -------------------------------------------------------------

    def brake_release(self) -> bool:
        if not self._send_and_request("brakeRelease\n", "Brake (Releasing.*|is released).*"):
            return False
        return self._wait_for_reply("robotMode\n", "robotMode: RUNNING\r\n")

    def close_safety_dialog(self) -> bool:
        return bool(self._send_and_request("closeSafetyDialog\n", "closing .* dialog\r\n"))

    def echo(self) -> bool:
        return bool(self._send_and_request("echo\n", "Hello ELITE ROBOTS.\r\n"))

    def help(self, cmd: str) -> str:
        return self._send_and_request(f"help {cmd}\n")

    def log(self, message: str) -> bool:
        """Add a log line; CR and LF in the message are sent escaped."""
        escaped = message.replace("\n", "\\n").replace("\r", "\\r")
        return bool(self._send_and_request(f"log -a {escaped}\n", "Log has been added.\r\n"))

    def popup(self, arg: str, message: str = "") -> bool:
        """Show ("-s") or close ("-c") a message box."""
        if arg == "-c":
            command = f"popup {arg}\n"
        elif arg == "-s":
            command = f"popup {arg}{message}\n"
        else:
            raise EliteException(ErrorCode.ILLEGAL_PARAM, "dashboard popup command")
        return bool(
            self._send_and_request(command, "Closing popup\r\n|Showing popup with text:.*\\s*")
        )

    def quit(self) -> None:
        self._send_and_request("quit\n")
        self.disconnect()

    def reboot(self) -> None:
        self._send_and_request("reboot\n")
        self.disconnect()

    def robot_type(self) -> str:
        return self._send_and_request("robot -t\n")

    def robot_serial_number(self) -> str:
        return self._send_and_request("robot -s\n")

    def robot_id(self) -> str:
        return self._send_and_request("robot -id\n")

    def power_on(self) -> bool:
        self._send_and_request("robotControl -on\n", "Powering on\r\n")
        return self._wait_for_reply("robotMode\n", "robotMode: (RUNNING|IDLE)\r\n")

    def power_off(self) -> bool:
        self._send_and_request("robotControl -off\n", "Powering off\r\n")
        # the robot keeps reporting its old mode for a moment after powering off
        time.sleep(self.power_off_settle)
        return self._wait_for_reply("robotMode\n", "robotMode: POWER_OFF\r\n")

    def shutdown(self) -> None:
        self._send_and_request("shutdown\n")
        self.disconnect()

    def speed_scaling(self) -> int:
        response = self._send_and_request("status\n", "Target Speed Fraction:.*")
        value = _after_colon(response)
        match = _LEADING_INT.match(value)
        if match is None:
            raise ValueError(f"invalid speed scaling: {value!r}")
        return int(match.group(1))

    def robot_mode(self) -> RobotMode:
        response = self._send_and_request("robotMode\n", "robotMode:.*")
        return _ROBOT_MODES.get(_after_colon(response), RobotMode.UNKNOWN)

    def safety_mode(self) -> SafetyMode:
        response = self._send_and_request("safety -s\n", "Safety status:.*")
        return _SAFETY_MODES.get(_after_colon(response), SafetyMode.UNKNOWN)

    def safety_system_restart(self) -> bool:
        self._send_and_request("safety -r\n", "Restarting safety board.*")
        return self._wait_for_reply("safety -m\n", "Safety mode: NORMAL\r\n")

    def running_status(self) -> TaskStatus:
        status = _after_colon(self._send_and_request("status\n", "RunningStatus:.*"))
        if "STOP" in status:
            return TaskStatus.STOPPED
        if "RUNNING" in status:
            return TaskStatus.PLAYING
        if "PAUSE" in status:
            return TaskStatus.PAUSED
        return TaskStatus.STOPPED

    def unlock_protective_stop(self) -> bool:
        return bool(
            self._send_and_request("unlockProtectiveStop\n", "Protective stop unlocking...\r\n")
        )

    def usage(self, cmd: str) -> str:
        return self._send_and_request(f"usage {cmd}\n")

    def version(self) -> str:
        return self._send_and_request("version\n")

    def load_configuration(self, path: str) -> bool:
        if not self._send_and_request(f"configuration -p {path}\n", "Loading Configuration :.*"):
            return False
        return self._wait_for_reply("configuration\n", f"configuration: Relative path:{path}\r\n")

    def configuration_path(self) -> str:
        response = self._send_and_request("configuration\n", "configuration: Relative path:.*")
        keyword = "Relative path:"
        return response[response.find(keyword) + len(keyword):]

    def is_configuration_modify(self) -> bool:
        return "not modified" not in self._send_and_request("configuration -s\n")

    def play_program(self) -> bool:
        if self._send_and_request("play\n") != "Starting task\r\n":
            return False
        return self._wait_for_reply("task -s\n", "Task is running\r\n")

    def pause_program(self) -> bool:
        if self._send_and_request("pause\n") != "Pausing task\r\n":
            return False
        return self._wait_for_reply("task -s\n", "Task is paused\r\n")

    def stop_program(self) -> bool:
        if self._send_and_request("stop\n") != "Stopping task\r\n":
            return False
        return self._wait_for_reply("task -s\n", "Task is stopped\r\n")

    def set_speed_scaling(self, scaling: int) -> bool:
        self._send_and_request(f"speed -v {scaling}\n")
        time.sleep(self.speed_settle)
        return self.speed_scaling() == scaling

    def get_task_path(self) -> str:
        """Relative path of the loaded task, or the raw reply if it has none."""
        response = self._send_and_request("task\n")
        keyword = "Relative path:"
        pos = response.find(keyword)
        if pos < 0:
            return response
        start = pos + len(keyword)
        length = max(len(response) - len(keyword) - 2, 0)
        return response[start:start + length]

    def load_task(self, path: str) -> bool:
        self._send_and_request(f"task -p {path}\n", "Loaded task: .*")
        return self._wait_for_reply("task\n", f"Relative path:{path}\r\n")

    def get_task_status(self) -> TaskStatus:
        status = self._send_and_request("task -s\n", "Task is .*")
        if "stopped" in status:
            return TaskStatus.STOPPED
        if "paused" in status:
            return TaskStatus.PAUSED
        if "running" in status:
            return TaskStatus.PLAYING
        return TaskStatus.STOPPED

    def task_is_running(self) -> bool:
        response = self._send_and_request("task -r\n", "Task is .*")
        if "not running" in response:
            return False
        return "is running" in response

    def is_task_saved(self) -> bool:
        return self._send_and_request("task -ss\n", "Task is .*") == "Task is saved"

    def send_and_receive(self, cmd: str) -> str:
        """Send a raw command (newline added if missing) and return the reply line."""
        if not cmd.endswith("\n"):
            cmd += "\n"
        with self._lock:
            self._send_command(cmd)
            return self._read_line()