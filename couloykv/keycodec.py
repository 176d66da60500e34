"""Encoding of a hash key and field into one storage key."""

from __future__ import annotations

_MAX_VARINT_LEN = 10


def _put_varint(value: int) -> bytes:
    ux = value << 1 if value >= 0 else ~(value << 1)
    out = bytearray()
    while ux >= 0x80:
        out.append((ux & 0x7F) | 0x80)
        ux >>= 7
    out.append(ux)
    return bytes(out)


def _read_varint(buf: bytes, offset: int) -> tuple[int, int]:
    ux = 0
    shift = 0
    for i, byte in enumerate(buf[offset : offset + _MAX_VARINT_LEN]):
        ux |= (byte & 0x7F) << shift
        if byte < 0x80:
            value = ux >> 1
            if ux & 1:
                value = ~value
            return value, offset + i + 1
        shift += 7
    raise ValueError("malformed varint")


def encode_field_key(key: bytes, field: bytes) -> bytes:
    """Join ``key`` and ``field`` behind a header of their varint lengths."""
    return _put_varint(len(key)) + _put_varint(len(field)) + bytes(key) + bytes(field)


def decode_field_key(buf: bytes) -> tuple[bytes, bytes]:
    """Split a buffer made by ``encode_field_key`` into key and field."""
    key_size, offset = _read_varint(buf, 0)
    _, offset = _read_varint(buf, offset)
    sep = offset + key_size
    if key_size < 0 or sep > len(buf):
        raise ValueError("key length exceeds buffer")
    return bytes(buf[offset:sep]), bytes(buf[sep:])