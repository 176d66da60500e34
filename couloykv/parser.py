"""Incremental reader of the RESP wire protocol."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator

from .reply import (
    BulkReply,
    EmptyMultiBulkReply,
    IntReply,
    MultiBulkReply,
    NullBulkReply,
    Reply,
    StandardErrReply,
    StatusReply,
)

_UINT = re.compile(rb"[0-9]+")
_INT = re.compile(rb"[+-]?[0-9]+")
_UINT32_MAX = (1 << 32) - 1
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1


class ProtocolError(ValueError):
    """Malformed input met while parsing."""


@dataclass
class Payload:
    """One parsed reply, or the error met while reading it."""

    data: Reply | None = None
    error: Exception | None = None


@dataclass
class _ReadState:
    reading_multi_line: bool = False
    expected_args: int = 0
    msg_type: bytes = b""
    args: list = field(default_factory=list)
    bulk_len: int = 0

    def finished(self) -> bool:
        return self.expected_args > 0 and len(self.args) == self.expected_args


def _text(msg: bytes) -> str:
    return msg.decode("utf-8", "surrogateescape")


def _protocol_error(msg: bytes) -> ProtocolError:
    return ProtocolError("protocol error: " + msg.decode("utf-8", "replace"))


def _parse_number(text: bytes, pattern: re.Pattern, low: int, high: int) -> int:
    if pattern.fullmatch(text) is None:
        raise ValueError(text)
    value = int(text)
    if not low <= value <= high:
        raise ValueError(text)
    return value


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def _read_line(stream: BinaryIO, state: _ReadState) -> bytes:
    if state.bulk_len == 0:
        msg = stream.readline()
        if not msg.endswith(b"\n"):
            raise EOFError("EOF")
        if len(msg) < 2 or msg[-2:-1] != b"\r":
            raise _protocol_error(msg)
        return msg
    size = state.bulk_len + 2
    msg = _read_exact(stream, size)
    if len(msg) < size:
        raise EOFError("unexpected EOF" if msg else "EOF")
    if not msg.endswith(b"\r\n"):
        raise _protocol_error(msg)
    state.bulk_len = 0
    return msg


def _parse_multi_bulk_header(msg: bytes, state: _ReadState) -> None:
    try:
        expected = _parse_number(msg[1:-2], _UINT, 0, _UINT32_MAX)
    except ValueError:
        raise _protocol_error(msg) from None
    state.expected_args = expected
    if expected > 0:
        state.msg_type = msg[:1]
        state.reading_multi_line = True
        state.args = []


def _parse_bulk_header(msg: bytes, state: _ReadState) -> None:
    try:
        state.bulk_len = _parse_number(msg[1:-2], _INT, _INT64_MIN, _INT64_MAX)
    except ValueError:
        raise _protocol_error(msg) from None
    if state.bulk_len == -1:
        return
    if state.bulk_len > 0:
        state.msg_type = msg[:1]
        state.reading_multi_line = True
        state.expected_args = 1
        state.args = []
        return
    raise _protocol_error(msg)


def _parse_single_line(msg: bytes) -> Reply:
    line = msg[:-2]
    kind = msg[:1]
    if kind == b"+":
        return StatusReply(_text(line[1:]))
    if kind == b"-":
        return StandardErrReply(_text(line[1:]))
    if kind == b":":
        try:
            return IntReply(_parse_number(line[1:], _INT, _INT64_MIN, _INT64_MAX))
        except ValueError:
            raise _protocol_error(msg) from None
    # inline text command
    return MultiBulkReply(line.split(b" "))


def _read_body(msg: bytes, state: _ReadState) -> None:
    line = msg[:-2]
    if line[:1] == b"$":
        try:
            state.bulk_len = _parse_number(line[1:], _INT, _INT64_MIN, _INT64_MAX)
        except ValueError:
            raise _protocol_error(msg) from None
        if state.bulk_len <= 0:
            state.args.append(b"")
            state.bulk_len = 0
    else:
        state.args.append(line)


def parse_stream(stream: BinaryIO) -> Iterator[Payload]:
    """Yield payloads read from a binary stream until it fails or ends.

    Protocol errors are yielded and parsing resumes with a fresh state; the
    last payload carries the I/O error (an ``EOFError`` at end of input).
    """
    state = _ReadState()
    while True:
        try:
            msg = _read_line(stream, state)
        except ProtocolError as exc:
            yield Payload(error=exc)
            state = _ReadState()
            continue
        except (EOFError, OSError) as exc:
            yield Payload(error=exc)
            return

        try:
            if not state.reading_multi_line:
                kind = msg[:1]
                if kind == b"*":
                    _parse_multi_bulk_header(msg, state)
                    if state.expected_args == 0:
                        yield Payload(data=EmptyMultiBulkReply())
                        state = _ReadState()
                elif kind == b"$":
                    _parse_bulk_header(msg, state)
                    if state.bulk_len == -1:
                        yield Payload(data=NullBulkReply())
                        state = _ReadState()
                else:
                    yield Payload(data=_parse_single_line(msg))
                    state = _ReadState()
            else:
                _read_body(msg, state)
                if state.finished():
                    result: Reply | None = None
                    if state.msg_type == b"*":
                        result = MultiBulkReply(state.args)
                    elif state.msg_type == b"$":
                        result = BulkReply(state.args[0])
                    yield Payload(data=result)
                    state = _ReadState()
        except ProtocolError as exc:
            yield Payload(error=exc)
            state = _ReadState()