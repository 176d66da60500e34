import socket

from couloykv.reply import OkReply
from couloykv.router import (
    TailService,
    TcpSliceRouter,
    TcpSliceRouterContext,
    TcpSliceRouterHandler,
)
from couloykv.server import CONN_CONTEXT_KEY, TCPHandler


class RecordingCore(TCPHandler):
    def __init__(self, order):
        self.order = order

    def serve_tcp(self, ctx, conn):
        self.order.append("core")


def recorder(order, name):
    def middleware(c):
        order.append(name)

    return middleware


def test_middlewares_run_in_order_then_core():
    order = []
    router = TcpSliceRouter()
    router.group().use(recorder(order, "first"), recorder(order, "second"))
    handler = TcpSliceRouterHandler(lambda c: RecordingCore(order), router)
    handler.serve_tcp({}, None)
    assert order == ["first", "second", "core"]


def test_abort_stops_the_chain():
    order = []
    captured = []

    def stopper(c):
        order.append("first")
        c.abort()
        captured.append(c)

    router = TcpSliceRouter()
    router.group().use(stopper, recorder(order, "second"))
    TcpSliceRouterHandler(lambda c: RecordingCore(order), router).serve_tcp({}, None)
    assert order == ["first"]
    assert captured[0].is_aborted()


def test_nested_next_wraps_the_rest():
    order = []

    def outer(c):
        order.append("outer-before")
        c.next()
        order.append("outer-after")

    router = TcpSliceRouter()
    router.group().use(outer, recorder(order, "inner"))
    TcpSliceRouterHandler(lambda c: RecordingCore(order), router).serve_tcp({}, None)
    assert order == ["outer-before", "inner", "core", "outer-after"]


def test_without_group_only_core_runs():
    order = []
    TcpSliceRouterHandler(lambda c: RecordingCore(order), TcpSliceRouter()).serve_tcp(
        {}, None
    )
    assert order == ["core"]


def test_serving_does_not_grow_group_handlers():
    order = []
    router = TcpSliceRouter()
    group = router.group().use(recorder(order, "mw"))
    handler = TcpSliceRouterHandler(lambda c: RecordingCore(order), router)
    handler.serve_tcp({}, None)
    handler.serve_tcp({}, None)
    assert len(group.handlers) == 1
    assert order == ["mw", "core", "mw", "core"]


def test_use_returns_group_and_activates_it():
    router = TcpSliceRouter()
    group = router.group()
    mw = recorder([], "x")
    assert group.use(mw) is group
    context = TcpSliceRouterContext(None, router, {})
    assert context.handlers == [mw]


def test_write_sends_bytes():
    left, right = socket.socketpair()
    with left, right:
        context = TcpSliceRouterContext(left, TcpSliceRouter(), {})
        context.write(OkReply().to_bytes())
        received = right.recv(64)
        assert received == OkReply().to_bytes()
        assert received == b"+OK\r\n"


def test_set_copies_context():
    original = {"a": 1}
    context = TcpSliceRouterContext(None, TcpSliceRouter(), original)
    context.set("b", 2)
    assert context.get("b") == 2
    assert context.get("a") == 1
    assert context.get("missing") is None
    assert "b" not in original


def test_client_conn_reads_context():
    marker = object()
    context = TcpSliceRouterContext(None, TcpSliceRouter(), {CONN_CONTEXT_KEY: marker})
    assert context.client_conn is marker


def test_reset_clears_abort():
    context = TcpSliceRouterContext(None, TcpSliceRouter(), {})
    context.abort()
    assert context.is_aborted()
    context.reset()
    assert not context.is_aborted()


def test_tail_service_ends_chain():
    order = []
    tails = []

    def make_tail(c):
        tail = TailService(c.ctx)
        tails.append(tail)
        return tail

    router = TcpSliceRouter()
    router.group().use(recorder(order, "mw"))
    TcpSliceRouterHandler(make_tail, router).serve_tcp({"k": "v"}, None)
    assert order == ["mw"]
    assert tails[0].ctx == {"k": "v"}