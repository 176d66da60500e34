import pytest

from couloykv.reply import (
    ArgNumErrReply,
    BulkReply,
    EmptyMultiBulkReply,
    ErrorReply,
    IntReply,
    MultiBulkReply,
    NoReply,
    NullBulkReply,
    OkReply,
    PongReply,
    ProtocolErrReply,
    StandardErrReply,
    StatusReply,
    SyntaxErrReply,
    UnknownErrReply,
    WrongTypeErrReply,
    is_error_reply,
)


def test_constant_replies():
    assert PongReply().to_bytes() == b"+PONG\r\n"
    assert OkReply().to_bytes() == b"+OK\r\n"
    assert NullBulkReply().to_bytes() == b"$-1\r\n"
    assert EmptyMultiBulkReply().to_bytes() == b"*0\r\n"
    assert NoReply().to_bytes() == b""


def test_bulk_reply():
    assert BulkReply(b"hello").to_bytes() == b"$5\r\nhello\r\n"


def test_empty_bulk_reply_is_null_without_crlf():
    assert BulkReply(b"").to_bytes() == b"$-1"


def test_multi_bulk_with_nil():
    assert MultiBulkReply([b"a", None]).to_bytes() == b"*2\r\n$1\r\na\r\n$-1\r\n"


def test_multi_bulk_empty_list():
    assert MultiBulkReply([]).to_bytes() == b"*0\r\n"


def test_status_and_int_wrap_payload():
    data = StatusReply("fine").to_bytes()
    assert data.startswith(b"+") and data.endswith(b"\r\n")
    assert data[1:-2] == b"fine"
    assert IntReply(42).to_bytes() == b":42\r\n"
    assert IntReply(-7).to_bytes()[1:-2] == b"-7"


def test_error_reply_bytes():
    assert UnknownErrReply().to_bytes() == b"-Err unknown\r\n"
    assert SyntaxErrReply().to_bytes() == b"-Err syntax error\r\n"
    assert WrongTypeErrReply().to_bytes() == (
        b"-WRONGTYPE Operation against a key holding the wrong kind of value\r\n"
    )
    assert ArgNumErrReply("get").to_bytes() == (
        b"-ERR wrong number of arguments for 'get' command\r\n"
    )


def test_protocol_error_message_and_bytes():
    err = ProtocolErrReply("x")
    assert str(err) == "ERR Protocol error: 'x"
    assert err.to_bytes() == b"-ERR Protocol error: 'x'\r\n"


def test_standard_error_can_be_raised():
    err = StandardErrReply("ERR boom")
    assert err.status == "ERR boom"
    assert err.to_bytes() == b"-ERR boom\r\n"
    assert is_error_reply(err) is True
    with pytest.raises(ErrorReply, match="ERR boom"):
        raise err


def test_error_reply_equality():
    assert StandardErrReply("a") == StandardErrReply("a")
    assert StandardErrReply("a") != StandardErrReply("b")
    assert len({UnknownErrReply(), UnknownErrReply()}) == 1


@pytest.mark.parametrize(
    "reply, expected",
    [
        (StandardErrReply("ERR x"), True),
        (UnknownErrReply(), True),
        (ArgNumErrReply("set"), True),
        (OkReply(), False),
        (IntReply(-1), False),
        (BulkReply(b"-abc"), False),
        (NoReply(), False),
    ],
)
def test_is_error_reply(reply, expected):
    assert is_error_reply(reply) is expected