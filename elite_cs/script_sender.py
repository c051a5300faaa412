"""TCP server that hands the control script to the robot on request."""

from __future__ import annotations

import inspect
import socket
import socketserver
import threading

from .log import LogLevel, log

PROGRAM_REQUEST = "request_program"


def _log(level: LogLevel, fmt: str, *args: object) -> None:
    frame = inspect.currentframe()
    line = frame.f_back.f_lineno if frame is not None and frame.f_back is not None else 0
    log(__file__, line, level, fmt, *args)


class _RequestHandler(socketserver.StreamRequestHandler):
    def setup(self) -> None:
        super().setup()
        self.server.track(self.request)

    def finish(self) -> None:
        try:
            super().finish()
        except OSError:
            pass
        finally:
            self.server.untrack(self.request)

    def handle(self) -> None:
        program: bytes = self.server.program
        while True:
            try:
                raw = self.rfile.readline()
            except OSError as error:
                _log(LogLevel.INFO, "Connection to script sender interface dropped: %s", error)
                return
            if not raw.endswith(b"\n"):
                return
            _log(LogLevel.INFO, "Robot request external control script.")
            request = raw[:-1].decode("utf-8", errors="replace")
            if request == PROGRAM_REQUEST:
                try:
                    self.request.sendall(program)
                except OSError as error:
                    _log(LogLevel.ERROR, "Script sender send script fail: %s", error)
                    return


class _Server(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True
    block_on_close = False

    def __init__(self, address, program: bytes) -> None:
        self.program = program
        self._connections: set[socket.socket] = set()
        self._connections_lock = threading.Lock()
        super().__init__(address, _RequestHandler)

    def track(self, sock: socket.socket) -> None:
        with self._connections_lock:
            self._connections.add(sock)

    def untrack(self, sock: socket.socket) -> None:
        with self._connections_lock:
            self._connections.discard(sock)

    def drop_connections(self) -> None:
        with self._connections_lock:
            connections = list(self._connections)
            self._connections.clear()
        for sock in connections:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()


class ScriptSender:
    """Answers every "request_program" line with the control script."""

    def __init__(self, port: int, program: str | bytes, host: str = "0.0.0.0") -> None:
        self.program = program.encode("utf-8") if isinstance(program, str) else bytes(program)
        self._server = _Server((host, port), self.program)
        self._closed = False
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            kwargs={"poll_interval": 0.05},
            name="script-sender",
            daemon=True,
        )
        self._thread.start()

    @property
    def port(self) -> int:
        return self._server.server_address[1]

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._server.shutdown()
        self._server.server_close()
        self._server.drop_connections()
        self._thread.join()

    def __enter__(self) -> "ScriptSender":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()