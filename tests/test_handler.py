import socket
import threading

import pytest

from couloykv.handler import RespHandler
from couloykv.reply import BulkReply, OkReply, PongReply
from couloykv.router import TcpSliceRouter, TcpSliceRouterContext
from couloykv.server import CONN_CONTEXT_KEY, REMOTE_ADDR_CONTEXT_KEY, ClientState


class RecordingDB:
    def __init__(self, result=None):
        self.calls = []
        self.closed = False
        self.result = result

    def exec(self, client, args):
        self.calls.append((client, list(args)))
        return self.result

    def close(self):
        self.closed = True


def _recv(sock, size):
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            break
        data += chunk
    return data


def _recv_until(sock, marker):
    data = b""
    while marker not in data:
        chunk = sock.recv(1024)
        if not chunk:
            break
        data += chunk
    return data


@pytest.fixture
def session():
    started = []

    def start(handler):
        server_side, client_side = socket.socketpair()
        client_side.settimeout(5)
        client = ClientState()
        ctx = TcpSliceRouterContext(
            server_side,
            TcpSliceRouter(),
            {CONN_CONTEXT_KEY: client, REMOTE_ADDR_CONTEXT_KEY: "test"},
        )
        thread = threading.Thread(target=handler.middleware(), args=(ctx,), daemon=True)
        thread.start()
        started.append((client_side, thread))
        return client_side, ctx, thread, client

    yield start
    for client_side, thread in started:
        client_side.close()
        thread.join(2)


def test_ping_gets_pong(session):
    sock, _, _, _ = session(RespHandler())
    sock.sendall(b"*1\r\n$4\r\nPING\r\n")
    expected = PongReply().to_bytes()
    assert _recv(sock, len(expected)) == expected


def test_set_then_get(session):
    sock, _, _, _ = session(RespHandler())
    sock.sendall(b"*3\r\n$3\r\nSET\r\n$1\r\nk\r\n$1\r\nv\r\n")
    ok = OkReply().to_bytes()
    assert _recv(sock, len(ok)) == ok
    sock.sendall(b"*2\r\n$3\r\nGET\r\n$1\r\nk\r\n")
    expected = BulkReply(b"v").to_bytes()
    assert _recv(sock, len(expected)) == expected


def test_inline_command(session):
    sock, _, _, _ = session(RespHandler())
    sock.sendall(b"PING\r\n")
    expected = PongReply().to_bytes()
    assert _recv(sock, len(expected)) == expected


def test_none_result_gives_unknown_error(session):
    db = RecordingDB(result=None)
    sock, _, _, client = session(RespHandler(db))
    sock.sendall(b"*1\r\n$4\r\nPING\r\n")
    assert _recv(sock, len(b"-ERR unknown\r\n")) == b"-ERR unknown\r\n"
    assert db.calls == [(client, [b"PING"])]


def test_protocol_error_is_reported_and_serving_continues(session):
    sock, _, _, _ = session(RespHandler())
    sock.sendall(b"*x\r\n")
    data = _recv_until(sock, b"\r\n\r\n")
    assert data.startswith(b"-protocol error: *x")
    sock.sendall(b"PING\r\n")
    expected = PongReply().to_bytes()
    assert _recv(sock, len(expected)) == expected


def test_non_array_payload_is_ignored(session):
    db = RecordingDB(result=OkReply())
    sock, _, _, _ = session(RespHandler(db))
    sock.sendall(b"+OK\r\nPING\r\n")
    expected = OkReply().to_bytes()
    assert _recv(sock, len(expected)) == expected
    assert [args for _, args in db.calls] == [[b"PING"]]


def test_peer_close_aborts_chain(session):
    handler = RespHandler()
    sock, ctx, thread, _ = session(handler)
    sock.close()
    thread.join(2)
    assert not thread.is_alive()
    assert ctx.is_aborted()
    assert ctx.conn not in handler._active


def test_close_closes_connections_and_db(session):
    db = RecordingDB(result=OkReply())
    handler = RespHandler(db)
    sock, _, thread, _ = session(handler)
    sock.sendall(b"PING\r\n")
    expected = OkReply().to_bytes()
    assert _recv(sock, len(expected)) == expected
    handler.close()
    thread.join(2)
    assert not thread.is_alive()
    assert db.closed is True
    assert handler.shutting_down is True