import select
import socket
import struct
import threading
import time

import pytest

from elite_cs.exceptions import EliteException, ErrorCode
from elite_cs.primary_package import KinematicsInfo
from elite_cs.primary_port import PrimaryPort

DH_A = [0.0, -0.427, -0.3905, 0.0, 0.0, 0.0]
DH_D = [0.1625, 0.0, 0.0, 0.1475, 0.0965, 0.0995]
DH_ALPHA = [1.5707963, 0.0, 0.0, 1.5707963, -1.5707963, 0.0]


def _kinematics_sub() -> bytes:
    payload = (
        bytes(KinematicsInfo.DH_PARAM_OFFSET - 5)
        + struct.pack(">18d", *DH_A, *DH_D, *DH_ALPHA)
        + bytes(6 * 8)
        + struct.pack(">4I", 1, 2, 3, 4)
    )
    return struct.pack(">IB", 5 + len(payload), 6) + payload


def _other_sub() -> bytes:
    return struct.pack(">IB", 10, 0) + bytes(5)


def _message(message_type: int, body: bytes) -> bytes:
    return struct.pack(">IB", 5 + len(body), message_type) + body


STATE_MESSAGE = _message(16, _other_sub() + _kinematics_sub())
EXCEPTION_TYPE_MESSAGE = _message(20, _other_sub() + _kinematics_sub())


class FakeRobot:
    def __init__(self, message: bytes | None) -> None:
        self.message = message
        self.received = bytearray()
        self.accepted = 0
        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self._threads: list[threading.Thread] = []
        self.listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.listener.bind(("127.0.0.1", 0))
        self.listener.listen(8)
        self.listener.settimeout(0.05)
        self.port = self.listener.getsockname()[1]
        accept_thread = threading.Thread(target=self._accept_loop, daemon=True)
        accept_thread.start()
        self._threads.append(accept_thread)

    def _accept_loop(self) -> None:
        while not self._stopped.is_set():
            try:
                conn, _ = self.listener.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            with self._lock:
                self.accepted += 1
            thread = threading.Thread(target=self._serve, args=(conn,), daemon=True)
            thread.start()
            self._threads.append(thread)

    def _serve(self, conn: socket.socket) -> None:
        with conn:
            while not self._stopped.is_set():
                try:
                    readable, _, _ = select.select([conn], [], [], 0.02)
                    if readable:
                        data = conn.recv(4096)
                        if not data:
                            return
                        with self._lock:
                            self.received.extend(data)
                    if self.message:
                        conn.sendall(self.message)
                except OSError:
                    return

    def stop(self) -> None:
        self._stopped.set()
        for thread in self._threads:
            thread.join(timeout=2)
        self.listener.close()


@pytest.fixture
def robot():
    server = FakeRobot(STATE_MESSAGE)
    yield server
    server.stop()


def _wait_for(condition, timeout=2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


def test_get_package_fills_kinematics(robot):
    with PrimaryPort() as primary:
        assert primary.connect("127.0.0.1", robot.port)
        info = KinematicsInfo()
        assert primary.get_package(info, 2000)
        assert info.dh_a == DH_A
        assert info.dh_d == DH_D
        assert info.dh_alpha == DH_ALPHA


def test_get_package_repeated_matches_template(robot):
    with PrimaryPort() as primary:
        assert primary.connect("127.0.0.1", robot.port)
        template = KinematicsInfo()
        assert primary.get_package(template, 2000)
        for _ in range(5):
            info = KinematicsInfo()
            assert primary.get_package(info, 2000)
            assert info.dh_a == template.dh_a
            assert info.dh_d == template.dh_d
            assert info.dh_alpha == template.dh_alpha


def test_multiple_connect(robot):
    with PrimaryPort() as primary:
        for _ in range(3):
            assert primary.connect("127.0.0.1", robot.port)
            info = KinematicsInfo()
            assert primary.get_package(info, 2000)
            assert info.dh_d == DH_D


def test_connect_disconnect(robot):
    primary = PrimaryPort()
    for _ in range(3):
        assert primary.connect("127.0.0.1", robot.port)
        info = KinematicsInfo()
        assert primary.get_package(info, 2000)
        assert info.dh_a == DH_A
        primary.disconnect()
        assert primary.get_local_ip() == ""


def test_connect_refused_returns_false():
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    free_port = probe.getsockname()[1]
    probe.close()
    with PrimaryPort() as primary:
        assert primary.connect("127.0.0.1", free_port) is False
        assert primary.get_local_ip() == ""


def test_connect_invalid_address_raises():
    with PrimaryPort() as primary:
        with pytest.raises(EliteException) as info:
            primary.connect("not-an-ip", 30001)
        assert info.value == ErrorCode.SOCKET_CONNECT_FAIL


def test_send_script_appends_newline(robot):
    with PrimaryPort() as primary:
        assert primary.connect("127.0.0.1", robot.port)
        assert primary.send_script('textmsg("hi")')
        assert _wait_for(lambda: bytes(robot.received) == b'textmsg("hi")\n')


def test_send_script_without_connection_fails():
    with PrimaryPort() as primary:
        assert primary.send_script("noop") is False


def test_local_ip_when_connected(robot):
    with PrimaryPort() as primary:
        assert primary.get_local_ip() == ""
        assert primary.connect("127.0.0.1", robot.port)
        assert primary.get_local_ip() == "127.0.0.1"
    assert primary.get_local_ip() == ""


def test_get_package_times_out_without_data():
    server = FakeRobot(None)
    try:
        with PrimaryPort() as primary:
            assert primary.connect("127.0.0.1", server.port)
            assert primary.get_package(KinematicsInfo(), 200) is False
    finally:
        server.stop()


def test_non_state_messages_do_not_fill_packages():
    server = FakeRobot(EXCEPTION_TYPE_MESSAGE)
    try:
        with PrimaryPort() as primary:
            assert primary.connect("127.0.0.1", server.port)
            info = KinematicsInfo()
            assert primary.get_package(info, 300) is False
            assert info.dh_a == [0.0] * 6
    finally:
        server.stop()


def test_reconnects_after_bad_head():
    server = FakeRobot(struct.pack(">IB", 5, 16))
    try:
        with PrimaryPort() as primary:
            assert primary.connect("127.0.0.1", server.port)
            assert _wait_for(lambda: server.accepted >= 2)
            assert primary.get_package(KinematicsInfo(), 100) is False
    finally:
        server.stop()