"""Middleware chain run over each TCP connection before its core handler."""

from __future__ import annotations

import socket
from dataclasses import dataclass, field
from typing import Any, Callable

from .server import CONN_CONTEXT_KEY, Conn, TCPHandler

ABORT_INDEX = 127 // 2

Middleware = Callable[["TcpSliceRouterContext"], None]


class TcpSliceRouter:
    """Holds the middleware group that is applied to every connection."""

    def __init__(self) -> None:
        self._group: TcpSliceGroup | None = None

    def group(self) -> TcpSliceGroup:
        """Create a new, empty group bound to this router."""
        return TcpSliceGroup(self)


@dataclass(eq=False)
class TcpSliceGroup:
    """An ordered list of middlewares."""

    router: TcpSliceRouter
    path: str = ""
    handlers: list = field(default_factory=list)

    def use(self, *args: Middleware) -> TcpSliceGroup:
        """Append middlewares and make this the router's active group."""
        self.handlers.extend(args)
        self.router._group = self
        return self


class TcpSliceRouterContext:
    """State of one run through the middleware chain."""

    def __init__(
        self, conn: socket.socket, router: TcpSliceRouter, ctx: dict | None = None
    ) -> None:
        self.conn = conn
        self.ctx: dict = dict(ctx or {})
        group = router._group
        self.handlers: list = list(group.handlers) if group is not None else []
        self.index = -1

    @property
    def client_conn(self) -> Conn:
        """The server-side connection this chain is running for."""
        return self.ctx[CONN_CONTEXT_KEY]

    def write(self, data: bytes) -> None:
        """Send all of ``data`` to the peer."""
        self.conn.sendall(data)

    def get(self, key: Any) -> Any:
        """Return the context value for ``key``, or None."""
        return self.ctx.get(key)

    def set(self, key: Any, value: Any) -> None:
        """Bind ``key`` to ``value`` in a fresh copy of the context."""
        self.ctx = {**self.ctx, key: value}

    def next(self) -> None:
        """Run the remaining handlers in order."""
        self.index += 1
        while self.index < len(self.handlers):
            self.handlers[self.index](self)
            self.index += 1

    def abort(self) -> None:
        """Stop the chain after the current handler."""
        self.index = ABORT_INDEX

    def is_aborted(self) -> bool:
        return self.index >= ABORT_INDEX

    def reset(self) -> None:
        """Rewind the chain to its start."""
        self.index = -1


@dataclass(eq=False)
class TcpSliceRouterHandler(TCPHandler):
    """Runs the router's middlewares and then the core handler."""

    core_func: Callable[[TcpSliceRouterContext], TCPHandler]
    router: TcpSliceRouter

    def serve_tcp(self, ctx: dict, conn: socket.socket) -> None:
        chain = TcpSliceRouterContext(conn, self.router, ctx)
        chain.handlers.append(lambda c: self.core_func(c).serve_tcp(ctx, conn))
        chain.reset()
        chain.next()


@dataclass(eq=False)
class TailService(TCPHandler):
    """Core handler placed last in the chain, after the middlewares did the work."""

    ctx: dict = field(default_factory=dict)

    def serve_tcp(self, ctx: dict, conn: socket.socket) -> None:
        """The middlewares have already served the connection; nothing remains."""