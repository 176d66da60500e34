"""Messages of the RESP wire protocol and their serialised form."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

CRLF = b"\r\n"


def _encode(text: str) -> bytes:
    return text.encode("utf-8", "surrogateescape")


class Reply(ABC):
    """A message that can be written to a RESP connection."""

    @abstractmethod
    def to_bytes(self) -> bytes:
        """Serialise the reply to its wire form."""


@dataclass
class PongReply(Reply):
    """The +PONG status."""

    def to_bytes(self) -> bytes:
        return b"+PONG" + CRLF


@dataclass
class OkReply(Reply):
    """The +OK status."""

    def to_bytes(self) -> bytes:
        return b"+OK" + CRLF


@dataclass
class NullBulkReply(Reply):
    """A missing bulk string."""

    def to_bytes(self) -> bytes:
        return b"$-1" + CRLF


@dataclass
class EmptyMultiBulkReply(Reply):
    """An empty array."""

    def to_bytes(self) -> bytes:
        return b"*0" + CRLF


@dataclass
class NoReply(Reply):
    """Writes nothing at all."""

    def to_bytes(self) -> bytes:
        return b""


@dataclass
class BulkReply(Reply):
    """A binary-safe string."""

    arg: bytes

    def to_bytes(self) -> bytes:
        if not self.arg:
            return b"$-1"
        return b"$" + str(len(self.arg)).encode() + CRLF + bytes(self.arg) + CRLF


@dataclass
class MultiBulkReply(Reply):
    """An array of bulk strings; a ``None`` item is written as a null bulk."""

    args: list = field(default_factory=list)

    def to_bytes(self) -> bytes:
        parts = [b"*", str(len(self.args)).encode(), CRLF]
        for arg in self.args:
            if arg is None:
                parts += [b"$-1", CRLF]
            else:
                parts += [b"$", str(len(arg)).encode(), CRLF, bytes(arg), CRLF]
        return b"".join(parts)


@dataclass
class StatusReply(Reply):
    """A simple status line."""

    status: str

    def to_bytes(self) -> bytes:
        return b"+" + _encode(self.status) + CRLF


@dataclass
class IntReply(Reply):
    """A signed integer."""

    code: int

    def to_bytes(self) -> bytes:
        return b":" + str(self.code).encode() + CRLF


class ErrorReply(Reply, Exception):
    """A reply that is also an error and may be raised."""

    def __init__(self, message: str) -> None:
        Exception.__init__(self, message)
        self.message = message

    def __str__(self) -> str:
        return self.message

    def to_bytes(self) -> bytes:
        return b"-" + _encode(self.message) + CRLF

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.to_bytes() == other.to_bytes()

    def __hash__(self) -> int:
        return hash((type(self), self.to_bytes()))


class StandardErrReply(ErrorReply):
    """An error carrying an arbitrary status text."""

    def __init__(self, status: str) -> None:
        super().__init__(status)
        self.status = status


class UnknownErrReply(ErrorReply):
    """An unspecified failure."""

    def __init__(self) -> None:
        super().__init__("Err unknown")


class ArgNumErrReply(ErrorReply):
    """A command was given the wrong number of arguments."""

    def __init__(self, cmd: str) -> None:
        super().__init__(f"ERR wrong number of arguments for '{cmd}' command")
        self.cmd = cmd


class SyntaxErrReply(ErrorReply):
    """Unexpected arguments were met."""

    def __init__(self) -> None:
        super().__init__("Err syntax error")


class WrongTypeErrReply(ErrorReply):
    """An operation against a key holding the wrong kind of value."""

    def __init__(self) -> None:
        super().__init__(
            "WRONGTYPE Operation against a key holding the wrong kind of value"
        )


class ProtocolErrReply(ErrorReply):
    """An unexpected byte was met while parsing a request."""

    def __init__(self, msg: str) -> None:
        super().__init__("ERR Protocol error: '" + msg)
        self.msg = msg

    def to_bytes(self) -> bytes:
        return b"-ERR Protocol error: '" + _encode(self.msg) + b"'" + CRLF


def is_error_reply(reply: Reply) -> bool:
    """Return True if the reply serialises as an error."""
    return reply.to_bytes()[:1] == b"-"