"""Wire format primitives shared by every generated module.

Generated code imports this module as ``_rt`` and calls ``check_version``
at import time, so a module generated against an incompatible runtime fails
early instead of producing bad bytes.
"""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, NamedTuple, Tuple, Type

from protoc_codec.errors import (
    CodecError,
    DecodeEnd,
    DecodeError,
    EncodeError,
    RequiredFieldError,
)

__all__ = [
    "RUNTIME_VERSION",
    "WireType",
    "CodecError",
    "DecodeEnd",
    "DecodeError",
    "EncodeError",
    "RequiredFieldError",
    "LifecycleHooks",
]

RUNTIME_VERSION = 1

MASK32 = 0xFFFFFFFF
MASK64 = 0xFFFFFFFFFFFFFFFF
MAX_LENGTH = 0x7FFFFFFF

FIXED32 = struct.Struct("<I")
SFIXED32 = struct.Struct("<i")
FLOAT = struct.Struct("<f")
FIXED64 = struct.Struct("<Q")
SFIXED64 = struct.Struct("<q")
DOUBLE = struct.Struct("<d")


class WireType(enum.IntEnum):
    VARINT = 0
    FIXED64 = 1
    LENGTH_DELIMITED = 2
    FIXED32 = 5


def check_version(required: int) -> None:
    """Fail when generated code expects a different runtime version."""
    if required != RUNTIME_VERSION:
        raise ImportError(
            f"generated code requires protoc_codec runtime version {required}, "
            f"installed runtime is version {RUNTIME_VERSION}"
        )


# -- varints --


def _read_byte(stream: BinaryIO) -> int:
    data = stream.read(1)
    if not data:
        raise DecodeError("truncated varint")
    return data[0]


def read_varint(stream: BinaryIO) -> int:
    """Read an unsigned base-128 varint of at most 64 bits."""
    result = 0
    shift = 0
    while True:
        byte = _read_byte(stream)
        result |= (byte & 0x7F) << shift
        if not (byte & 0x80):
            return result & MASK64
        shift += 7
        if shift >= 70:
            raise DecodeError("varint too long")


def write_varint(stream: BinaryIO, value: int) -> None:
    """Write an unsigned varint; negative values must be masked by the caller."""
    if value < 0 or value > MASK64:
        raise EncodeError(f"varint out of range: {value}")
    result = bytearray()
    while value > 0x7F:
        result.append((value & 0x7F) | 0x80)
        value >>= 7
    result.append(value)
    stream.write(bytes(result))


# -- keys --


def read_key(stream: BinaryIO) -> Tuple[int, int]:
    """Read a field key and split it into (tag, wire type).

    Raises DecodeEnd when the stream is exhausted before the first byte of
    the key. A key cut off after its first byte is a DecodeError.
    """
    first = stream.read(1)
    if not first:
        raise DecodeEnd()
    key = first[0] & 0x7F
    if first[0] & 0x80:
        key |= read_varint(stream) << 7
    return key >> 3, key & 0x07


def write_key(stream: BinaryIO, tag: int, wire_type: int) -> None:
    write_varint(stream, (tag << 3) | int(wire_type))


# -- fixed width --


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise DecodeError(
            f"truncated input: expected {size} bytes, got {len(data)}"
        )
    return data


def read_fixed32(stream: BinaryIO) -> bytes:
    return _read_exact(stream, 4)


def read_fixed64(stream: BinaryIO) -> bytes:
    return _read_exact(stream, 8)


def write_fixed32(stream: BinaryIO, data: bytes) -> None:
    if len(data) != 4:
        raise EncodeError(f"fixed32 value must be 4 bytes, got {len(data)}")
    stream.write(data)


def write_fixed64(stream: BinaryIO, data: bytes) -> None:
    if len(data) != 8:
        raise EncodeError(f"fixed64 value must be 8 bytes, got {len(data)}")
    stream.write(data)


# -- length delimited --


def read_length_delimited(stream: BinaryIO) -> bytes:
    """Read a length varint followed by exactly that many bytes."""
    length = read_varint(stream)
    if length > MAX_LENGTH:
        raise DecodeError(f"length-delimited payload of {length} bytes exceeds the 2 GiB limit")
    data = stream.read(length)
    if len(data) != length:
        raise DecodeError(
            f"length-delimited payload declares {length} bytes, "
            f"only {len(data)} available"
        )
    return data


def write_length_delimited(stream: BinaryIO, data: bytes) -> None:
    write_varint(stream, len(data))
    stream.write(data)


def read_string(stream: BinaryIO) -> str:
    data = read_length_delimited(stream)
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        raise DecodeError("invalid utf-8 in string field") from None


def write_string(stream: BinaryIO, value: str) -> None:
    write_length_delimited(stream, value.encode("utf-8"))


# -- integer helpers --


def zigzag_encode32(value: int) -> int:
    return ((value << 1) ^ (value >> 31)) & MASK32


def zigzag_encode64(value: int) -> int:
    return ((value << 1) ^ (value >> 63)) & MASK64


def zigzag_decode(value: int) -> int:
    return (value >> 1) ^ -(value & 1)


class IntRange(NamedTuple):
    """Inclusive bounds of one proto integer type."""

    name: str
    low: int
    high: int

    def check(self, value: int) -> int:
        """Return value unchanged, or raise EncodeError when it does not fit."""
        if not self.low <= value <= self.high:
            raise EncodeError(f"{self.name} value out of range: {value}")
        return value


INT32_RANGE = IntRange("int32", -0x80000000, 0x7FFFFFFF)
INT64_RANGE = IntRange("int64", -0x8000000000000000, 0x7FFFFFFFFFFFFFFF)
UINT32_RANGE = IntRange("uint32", 0, MASK32)


def pack(codec: struct.Struct, value: Any) -> bytes:
    """codec.pack(value), failing with EncodeError instead of struct.error."""
    try:
        return codec.pack(value)
    except (struct.error, OverflowError) as e:
        raise EncodeError(f"cannot encode {value!r} as {codec.format}: {e}") from e


def to_int32(value: int) -> int:
    """Reinterpret the low 32 bits of value as a signed integer."""
    value &= MASK32
    if value > 0x7FFFFFFF:
        value -= 0x100000000
    return value


def to_int64(value: int) -> int:
    """Reinterpret the low 64 bits of value as a signed integer."""
    value &= MASK64
    if value > 0x7FFFFFFFFFFFFFFF:
        value -= 0x10000000000000000
    return value


def decode_enum(enum_type: Type[enum.IntEnum], value: int) -> Any:
    """Map value to a member of enum_type, keeping unknown values as ints."""
    try:
        return enum_type(value)
    except ValueError:
        return value


# -- unknown fields --


def skip_field(stream: BinaryIO, wire_type: int) -> None:
    """Consume the payload of a field nobody asked for."""
    if wire_type == WireType.VARINT:
        read_varint(stream)
    elif wire_type == WireType.FIXED32:
        _read_exact(stream, 4)
    elif wire_type == WireType.FIXED64:
        _read_exact(stream, 8)
    elif wire_type == WireType.LENGTH_DELIMITED:
        read_length_delimited(stream)
    else:
        raise DecodeError(f"unknown wire type: {wire_type}")


# -- lifecycle hooks --


def _no_op(instance: Any) -> None:
    pass


@dataclass
class LifecycleHooks:
    """Callables run around encode and decode of one message type.

    Generated classes compiled with hooks enabled own one instance each;
    replace the callables to customize behavior::

        Person.hooks.after_deserialize = lambda person: person.validate()
    """

    before_serialize: Callable[[Any], None] = _no_op
    after_deserialize: Callable[[Any], None] = _no_op
