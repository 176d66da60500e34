"""Pipelining RESP client: requests are written in order, replies matched in order."""

from __future__ import annotations

import queue
import socket
import threading
from dataclasses import dataclass, field

from .parser import parse_stream
from .reply import MultiBulkReply, Reply, StandardErrReply

CHAN_SIZE = 256
MAX_WAIT = 3.0
HEARTBEAT_INTERVAL = 10.0
_WRITE_RETRIES = 3


@dataclass(eq=False)
class _Request:
    args: list
    heartbeat: bool = False
    reply: Reply | None = None
    error: Exception | None = None
    done: threading.Event = field(default_factory=threading.Event)


def _dial(addr: str) -> socket.socket:
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"address {addr!r}: missing port in address")
    host = host.strip("[]")
    return socket.create_connection((host, int(port)))


def _shutdown(sock: socket.socket) -> None:
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass
    try:
        sock.close()
    except OSError:
        pass


class Client:
    """A client that keeps one connection open and pipelines requests on it."""

    def __init__(
        self,
        addr: str,
        *,
        max_wait: float = MAX_WAIT,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
    ) -> None:
        self.addr = addr
        self.max_wait = max_wait
        self.heartbeat_interval = heartbeat_interval
        self._sock = _dial(addr)
        self._pending: queue.Queue = queue.Queue(CHAN_SIZE)
        self._waiting: queue.Queue = queue.Queue(CHAN_SIZE)
        self._stop = threading.Event()
        self._idle = threading.Condition()
        self._working = 0
        self._closed = False

    def start(self) -> None:
        """Start the writer, reader and heartbeat threads."""
        threading.Thread(target=self._handle_write, daemon=True).start()
        self._spawn_reader(self._sock)
        threading.Thread(target=self._heartbeat, daemon=True).start()

    def close(self) -> None:
        """Refuse new requests, wait for those in flight, then disconnect."""
        with self._idle:
            if self._closed:
                return
            self._closed = True
        self._stop.set()
        self._pending.put(None)
        with self._idle:
            self._idle.wait_for(lambda: self._working == 0)
        _shutdown(self._sock)
        self._waiting.put(None)

    def send(self, args: list) -> Reply:
        """Send a command and return the server's reply or an error reply."""
        req = _Request(list(args))
        self._enqueue(req)
        try:
            if not req.done.wait(self.max_wait):
                return StandardErrReply("server time out")
        finally:
            self._leave()
        if req.error is not None:
            return StandardErrReply("request failed")
        return req.reply

    def _enqueue(self, req: _Request) -> None:
        with self._idle:
            if self._closed:
                raise ConnectionError("client is closed")
            self._working += 1
        self._pending.put(req)

    def _leave(self) -> None:
        with self._idle:
            self._working -= 1
            self._idle.notify_all()

    def _heartbeat(self) -> None:
        while not self._stop.wait(self.heartbeat_interval):
            try:
                self._do_heartbeat()
            except ConnectionError:
                return

    def _do_heartbeat(self) -> None:
        req = _Request([b"PING"], heartbeat=True)
        self._enqueue(req)
        try:
            req.done.wait(self.max_wait)
        finally:
            self._leave()

    def _handle_write(self) -> None:
        while (req := self._pending.get()) is not None:
            self._do_request(req)

    def _do_request(self, req: _Request) -> None:
        if not req.args:
            req.error = ValueError("empty command")
            req.done.set()
            return
        data = MultiBulkReply(req.args).to_bytes()
        error: Exception | None = None
        for attempt in range(_WRITE_RETRIES + 1):
            try:
                if attempt:
                    self._reconnect()
                self._sock.sendall(data)
            except OSError as exc:
                error = exc
                continue
            self._waiting.put(req)
            return
        req.error = error
        req.done.set()

    def _reconnect(self) -> None:
        _shutdown(self._sock)
        self._sock = _dial(self.addr)
        self._spawn_reader(self._sock)

    def _spawn_reader(self, sock: socket.socket) -> None:
        threading.Thread(target=self._handle_read, args=(sock,), daemon=True).start()

    def _handle_read(self, sock: socket.socket) -> None:
        with sock.makefile("rb") as stream:
            for payload in parse_stream(stream):
                if sock is not self._sock:
                    return
                if payload.error is not None:
                    message = str(payload.error) or type(payload.error).__name__
                    self._finish(StandardErrReply(message))
                else:
                    self._finish(payload.data)

    def _finish(self, reply: Reply | None) -> None:
        req = self._waiting.get()
        if req is None:
            return
        req.reply = reply
        req.done.set()