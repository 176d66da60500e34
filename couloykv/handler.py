"""Connection handler that reads RESP requests and answers them from a database."""

from __future__ import annotations

import logging
import socket
import threading
from typing import Any, Callable

from .database import MultiDB
from .parser import parse_stream
from .reply import MultiBulkReply, StandardErrReply
from .router import TcpSliceRouterContext
from .server import REMOTE_ADDR_CONTEXT_KEY

_log = logging.getLogger(__name__)

_UNKNOWN_ERR_REPLY = b"-ERR unknown\r\n"


def _shutdown(conn: socket.socket) -> None:
    try:
        conn.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass
    try:
        conn.close()
    except OSError:
        pass


class RespHandler:
    """Serves RESP requests on each connection using one database."""

    def __init__(self, db: Any = None) -> None:
        self.db = db if db is not None else MultiDB()
        self.shutting_down = False
        self._active: set = set()
        self._lock = threading.Lock()

    def _close_conn(self, conn: socket.socket) -> None:
        _shutdown(conn)
        with self._lock:
            self._active.discard(conn)

    def close(self) -> None:
        """Refuse new work, close every open connection and the database."""
        _log.info("handler shutting down...")
        with self._lock:
            self.shutting_down = True
            conns = list(self._active)
        for conn in conns:
            _shutdown(conn)
        self.db.close()

    def middleware(self) -> Callable[[TcpSliceRouterContext], None]:
        """Return a middleware that serves requests until the peer goes away."""

        def serve(ctx: TcpSliceRouterContext) -> None:
            conn = ctx.conn
            with self._lock:
                self._active.add(conn)
            with conn.makefile("rb") as stream:
                for payload in parse_stream(stream):
                    if payload.error is not None:
                        if isinstance(payload.error, (EOFError, OSError)):
                            _log.info(
                                "connection closed: %s", ctx.get(REMOTE_ADDR_CONTEXT_KEY)
                            )
                            self._close_conn(conn)
                            ctx.abort()
                            return
                        try:
                            ctx.write(StandardErrReply(str(payload.error)).to_bytes())
                        except OSError:
                            _log.info(
                                "connection closed: %s", ctx.get(REMOTE_ADDR_CONTEXT_KEY)
                            )
                            self._close_conn(conn)
                            ctx.abort()
                            return
                        continue
                    if payload.data is None:
                        _log.info("empty payload")
                        continue
                    if not isinstance(payload.data, MultiBulkReply):
                        _log.info("require multi bulk reply")
                        continue
                    result = self.db.exec(ctx.client_conn, payload.data.args)
                    data = result.to_bytes() if result is not None else _UNKNOWN_ERR_REPLY
                    try:
                        ctx.write(data)
                    except OSError:
                        pass
            ctx.abort()

        return serve