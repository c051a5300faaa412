"""Client of the robot's primary port.

A background thread keeps reading messages, fills the sub-packages that
callers are waiting on and reconnects when the link drops.
"""

from __future__ import annotations

import inspect
import ipaddress
import select
import socket
import struct
import threading
import time

from .exceptions import EliteException, ErrorCode
from .log import LogLevel, log
from .primary_package import PrimaryPackage

PRIMARY_PORT = 30001
HEAD_LENGTH = 5
ROBOT_STATE_MSG_TYPE = 16
ROBOT_EXCEPTION_MSG_TYPE = 20

_HEAD = struct.Struct(">IB")
_SUB_LEN = struct.Struct(">I")
_IO_TIMEOUT_S = 0.5
_POLL_S = 0.01
_LOOP_PERIOD_S = 0.01


def _log(level: LogLevel, fmt: str, *args: object) -> None:
    frame = inspect.currentframe()
    line = frame.f_back.f_lineno if frame is not None and frame.f_back is not None else 0
    log(__file__, line, level, fmt, *args)


def _recv_exact(sock: socket.socket, size: int) -> bytes:
    chunks = bytearray()
    while len(chunks) < size:
        chunk = sock.recv(size - len(chunks))
        if not chunk:
            raise ConnectionError("End of file")
        chunks.extend(chunk)
    return bytes(chunks)


class PrimaryPort:
    """Connection to the primary port with a background receiving thread."""

    PRIMARY_PORT = PRIMARY_PORT

    def __init__(self) -> None:
        self._socket_lock = threading.Lock()
        self._packages_lock = threading.Lock()
        self._socket: socket.socket | None = None
        self._packages: dict[int, PrimaryPackage] = {}
        self._thread: threading.Thread | None = None
        self._alive = False

    def __enter__(self) -> "PrimaryPort":
        return self

    def __exit__(self, *args: object) -> None:
        self.disconnect()

    # public ---------------------------------------------------------------

    def connect(self, ip: str, port: int = PRIMARY_PORT) -> bool:
        """Connect and start the receiving thread if it is not running.

        Calling it again without disconnect() replaces the active connection.
        """
        with self._socket_lock:
            if not self._socket_connect(ip, port):
                return False
            if self._thread is None:
                self._alive = True
                self._thread = threading.Thread(
                    target=self._async_loop,
                    args=(ip, port),
                    name="primary-port",
                    daemon=True,
                )
                self._thread.start()
        return True

    def disconnect(self) -> None:
        """Close the socket and wait for the receiving thread to finish."""
        with self._socket_lock:
            self._alive = False
            self._socket_disconnect()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._thread = None

    def send_script(self, script: str) -> bool:
        """Send a script program, terminated by a newline, to the robot."""
        with self._socket_lock:
            sock = self._socket
            if sock is None:
                _log(LogLevel.ERROR, "Don't connect to robot primary port")
                return False
            try:
                sock.sendall((script + "\n").encode("utf-8"))
            except OSError as error:
                _log(LogLevel.ERROR, "Send script to robot fail : %s", error)
                return False
            return True

    def get_package(self, package: PrimaryPackage, timeout_ms: int) -> bool:
        """Ask for a sub-package and wait until it has been filled."""
        with self._packages_lock:
            self._packages.setdefault(package.package_type, package)
        return package.wait_update(timeout_ms)

    def get_local_ip(self) -> str:
        """Local address of the connection, or an empty string."""
        with self._socket_lock:
            if self._socket is None:
                return ""
            try:
                return str(self._socket.getsockname()[0])
            except OSError:
                return ""

    # connection -----------------------------------------------------------

    def _socket_connect(self, ip: str, port: int, report: bool = True) -> bool:
        self._socket_disconnect()
        try:
            address = str(ipaddress.ip_address(ip))
        except ValueError as error:
            raise EliteException(ErrorCode.SOCKET_CONNECT_FAIL, str(error)) from error
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 0)
            quickack = getattr(socket, "TCP_QUICKACK", None)
            if quickack is not None:
                sock.setsockopt(socket.IPPROTO_TCP, quickack, 1)
            sock.settimeout(_IO_TIMEOUT_S)
        except OSError as error:
            raise EliteException(ErrorCode.SOCKET_CONNECT_FAIL, str(error)) from error
        try:
            sock.connect((address, port))
        except socket.timeout:
            if report:
                _log(LogLevel.ERROR, "Connect to robot primary port fail: timeout")
            sock.close()
            return False
        except OSError as error:
            if report:
                _log(LogLevel.ERROR, "Connect to robot primary port fail: %s", error)
            sock.close()
            return False
        self._socket = sock
        return True

    def _socket_disconnect(self) -> None:
        sock = self._socket
        self._socket = None
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            sock.close()
        except OSError as error:
            _log(LogLevel.WARN, "Primary port socket disconnect throw exception:%s", error)

    def _socket_reconnect(self, ip: str, port: int, report: bool) -> bool:
        with self._socket_lock:
            if not self._alive:
                return False
            return self._socket_connect(ip, port, report)

    # receiving ------------------------------------------------------------

    def _async_loop(self, ip: str, port: int) -> None:
        last_connect_ok = True
        while self._alive:
            try:
                if not self._read_message():
                    if not self._alive:
                        break
                    last_connect_ok = self._socket_reconnect(ip, port, last_connect_ok)
                time.sleep(_LOOP_PERIOD_S)
            except Exception as error:  # keep the loop alive whatever a package does
                _log(LogLevel.ERROR, "Primary port async loop throw exception:%s", error)

    def _read_message(self) -> bool:
        with self._socket_lock:
            sock = self._socket
        if sock is None:
            return False
        try:
            readable, _, _ = select.select([sock], [], [], _POLL_S)
            if not readable:
                return True
            head = _recv_exact(sock, HEAD_LENGTH)
        except socket.timeout:
            _log(LogLevel.ERROR, "Primary port receive package head had expection: timeout")
            return False
        except (OSError, ValueError) as error:
            _log(LogLevel.ERROR, "Primary port receive package head had expection: %s", error)
            return False
        package_len, message_type = _HEAD.unpack(head)
        if package_len <= HEAD_LENGTH:
            _log(LogLevel.ERROR, "Primary port package len error: %d", package_len)
            return False
        body_len = package_len - HEAD_LENGTH
        try:
            body = _recv_exact(sock, body_len)
        except socket.timeout:
            _log(LogLevel.ERROR, "Primary port receive package body timeout")
            return False
        except (OSError, ValueError) as error:
            _log(LogLevel.ERROR, "Primary port receive package body had expection: %s", error)
            return False
        if message_type == ROBOT_STATE_MSG_TYPE:
            self._dispatch_robot_state(body)
        return True

    def _dispatch_robot_state(self, body: bytes) -> None:
        offset = 0
        while offset + HEAD_LENGTH <= len(body):
            (sub_len,) = _SUB_LEN.unpack_from(body, offset)
            if sub_len == 0:
                _log(LogLevel.ERROR, "Primary port sub-package len error: %d", sub_len)
                return
            sub_type = body[offset + 4]
            with self._packages_lock:
                package = self._packages.get(sub_type)
                if package is not None:
                    package.parse(body[offset:offset + sub_len])
                    package.notify_updated()
                    del self._packages[sub_type]
            offset += sub_len