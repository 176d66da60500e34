"""TCP server that hands every accepted connection to a handler."""

from __future__ import annotations

import logging
import socket
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, NoReturn

_log = logging.getLogger(__name__)

SERVER_CONTEXT_KEY = "tcp-server"
LOCAL_ADDR_CONTEXT_KEY = "local-addr"
REMOTE_ADDR_CONTEXT_KEY = "remote-addr"
FORWARD_ADDR_CONTEXT_KEY = "forward-addr"
CONN_CONTEXT_KEY = "Conn"
CLIENT_CONN_KEY = "client-conn"

_ACCEPT_POLL = 0.2


class ServerClosed(Exception):
    """The server was closed while serving."""

    def __init__(self, message: str = "tcp: Server closed") -> None:
        super().__init__(message)


class AbortHandler(Exception):
    """Raised by a handler to stop serving a connection without logging."""

    def __init__(self, message: str = "tcp: abort TCPHandler") -> None:
        super().__init__(message)


class TCPHandler(ABC):
    """Application logic run for each accepted connection."""

    @abstractmethod
    def serve_tcp(self, ctx: dict, conn: socket.socket) -> None:
        """Serve one connection; ``ctx`` holds values set by the server."""


@dataclass(eq=False)
class ClientState:
    """Per-client state: the remote address and the selected database."""

    remote_addr: str = ""
    selected_db: int = 0


def _split_host_port(addr: str) -> tuple[str, int]:
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"address {addr!r}: missing port in address")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port)


def _format_addr(address: Any) -> str:
    if isinstance(address, tuple):
        host, port = address[0], address[1]
        if ":" in host:
            return f"[{host}]:{port}"
        return f"{host}:{port}"
    return str(address)


def _enable_keepalive(sock: socket.socket, period: float) -> None:
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
    seconds = max(1, int(period))
    if hasattr(socket, "TCP_KEEPIDLE"):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, seconds)
    if hasattr(socket, "TCP_KEEPINTVL"):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, seconds)


class Conn(ClientState):
    """A server-side connection together with its client state."""

    def __init__(self, server: TcpServer, sock: socket.socket) -> None:
        super().__init__()
        self.server = server
        self.sock = sock
        timeouts = [t for t in (server.read_timeout, server.write_timeout) if t]
        if timeouts:
            sock.settimeout(min(timeouts))
        if server.keep_alive_timeout:
            _enable_keepalive(sock, server.keep_alive_timeout)

    def close(self) -> None:
        """Close the underlying socket."""
        try:
            self.sock.close()
        except OSError:
            pass

    def serve(self, ctx: dict) -> None:
        """Run the server's handler on this connection, then close it."""
        try:
            self.remote_addr = _format_addr(self.sock.getpeername())
            ctx = {
                **ctx,
                CONN_CONTEXT_KEY: self,
                REMOTE_ADDR_CONTEXT_KEY: self.remote_addr,
            }
            if self.server.handler is None:
                raise RuntimeError("handler empty")
            self.server.handler.serve_tcp(ctx, self.sock)
        except AbortHandler:
            pass
        except Exception:
            _log.exception("tcp: panic serving %s", self.remote_addr)
        finally:
            self.close()


class _OnceCloseListener:
    def __init__(self, listener: socket.socket) -> None:
        self.listener = listener
        self._lock = threading.Lock()
        self._closed = False

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        try:
            self.listener.close()
        except OSError:
            pass


class TcpServer:
    """Accepts TCP connections and serves each on its own thread."""

    def __init__(
        self,
        addr: str = "",
        handler: TCPHandler | None = None,
        *,
        read_timeout: float = 0.0,
        write_timeout: float = 0.0,
        keep_alive_timeout: float = 0.0,
        notify_started: Callable[[], Any] | None = None,
        ctx: dict | None = None,
    ) -> None:
        self.addr = addr
        self.handler = handler
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self.keep_alive_timeout = keep_alive_timeout
        self.notify_started = notify_started
        self.ctx: dict = dict(ctx or {})
        self.bound_address: Any = None
        self._lock = threading.Lock()
        self._in_shutdown = False
        self._done = threading.Event()
        self._listener: _OnceCloseListener | None = None

    @property
    def shutting_down(self) -> bool:
        return self._in_shutdown

    def listen_and_serve(self) -> NoReturn:
        """Bind to ``addr`` and serve until closed; raises ServerClosed then."""
        if self._in_shutdown:
            raise ServerClosed()
        if not self.addr:
            raise ValueError("need addr")
        host, port = _split_host_port(self.addr)
        listener = socket.create_server((host, port))
        self.serve(listener)

    def serve(self, listener: socket.socket) -> NoReturn:
        """Accept connections on ``listener`` until the server is closed."""
        with self._lock:
            self._listener = _OnceCloseListener(listener)
        self.bound_address = listener.getsockname()
        ctx = {**self.ctx, SERVER_CONTEXT_KEY: self}
        if self.notify_started is not None:
            threading.Thread(target=self.notify_started, daemon=True).start()
        listener.settimeout(_ACCEPT_POLL)
        try:
            while True:
                if self._done.is_set():
                    raise ServerClosed()
                try:
                    sock, _ = listener.accept()
                except socket.timeout:
                    continue
                except OSError as exc:
                    if self._done.is_set():
                        raise ServerClosed() from None
                    _log.warning("accept fail, err: %s", exc)
                    continue
                sock.setblocking(True)
                conn = Conn(self, sock)
                threading.Thread(target=conn.serve, args=(ctx,), daemon=True).start()
        finally:
            self._listener.close()

    def close(self) -> None:
        """Stop accepting connections and close the listener."""
        with self._lock:
            self._in_shutdown = True
            self._done.set()
            listener = self._listener
        if listener is not None:
            listener.close()


def listen_and_serve(addr: str, handler: TCPHandler) -> NoReturn:
    """Serve ``handler`` on ``addr`` until the server is closed."""
    TcpServer(addr, handler).listen_and_serve()