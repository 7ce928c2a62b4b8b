#!/usr/bin/env python3
"""
primitive_codec.py - Fixed-width numeric and character decoding

Each Primitive reads sizeof(T) bytes and interprets them big-endian,
little-endian or native per the requested order. Raw integers and floats
have no invalid bit patterns, so the only failure is a short stream
(IoError).

Usage:
    from primitive_codec import U16, F32
    from read_context import Endian

    value = U16.decode(stream, Endian.LITTLE)
    value = F32.read(stream, ctx)          # order taken from ctx
"""

import struct
from typing import Any, Dict

from read_context import Endian, ReadContext
from read_errors import BadMagic
from read_protocol import (
    NO_ARGS, BinType, read_exact, stream_position, trace_read,
)

_FLOAT_FORMATS = {2: 'e', 4: 'f', 8: 'd'}


class Primitive(BinType):
    """Fixed-width integer or float."""

    def __init__(self, name: str, size: int, kind: str):
        if kind not in ('uint', 'int', 'float'):
            raise ValueError(f"Unknown primitive kind: {kind}")
        if kind == 'float' and size not in _FLOAT_FORMATS:
            raise ValueError(f"No {size}-byte float format")
        self.name = name
        self.size = size
        self.kind = kind

    @property
    def signed(self) -> bool:
        return self.kind == 'int'

    def from_bytes(self, data: bytes, endian: Any) -> Any:
        """Interpret exactly self.size bytes."""
        endian = Endian.parse(endian)
        if self.kind == 'float':
            return struct.unpack(endian.struct_prefix + _FLOAT_FORMATS[self.size], data)[0]
        return int.from_bytes(data, endian.byteorder, signed=self.signed)

    def decode(self, stream, endian: Any) -> Any:
        return self.from_bytes(read_exact(stream, self.size), endian)

    def read(self, stream, ctx: ReadContext, args: Any = NO_ARGS) -> Any:
        trace_read(stream, ctx, self.name)
        return self.decode(stream, ctx.endian)


class CharType(BinType):
    """Single byte reinterpreted as a code point (no multi-byte decoding)."""

    name = 'char'
    size = 1

    def decode(self, stream, endian: Any = None) -> str:
        return chr(read_exact(stream, 1)[0])

    def read(self, stream, ctx: ReadContext, args: Any = NO_ARGS) -> str:
        trace_read(stream, ctx, self.name)
        return self.decode(stream)


U8 = Primitive('u8', 1, 'uint')
U16 = Primitive('u16', 2, 'uint')
U24 = Primitive('u24', 3, 'uint')
U32 = Primitive('u32', 4, 'uint')
U64 = Primitive('u64', 8, 'uint')
U128 = Primitive('u128', 16, 'uint')
I8 = Primitive('i8', 1, 'int')
I16 = Primitive('i16', 2, 'int')
I24 = Primitive('i24', 3, 'int')
I32 = Primitive('i32', 4, 'int')
I64 = Primitive('i64', 8, 'int')
I128 = Primitive('i128', 16, 'int')
F16 = Primitive('f16', 2, 'float')
F32 = Primitive('f32', 4, 'float')
F64 = Primitive('f64', 8, 'float')
CHAR = CharType()

# Canonical names plus the aliases schemas commonly use
PRIMITIVES: Dict[str, BinType] = {
    'u8': U8, 'uint8': U8,
    'u16': U16, 'uint16': U16,
    'u24': U24, 'uint24': U24,
    'u32': U32, 'uint32': U32,
    'u64': U64, 'uint64': U64,
    'u128': U128, 'uint128': U128,
    'i8': I8, 's8': I8, 'int8': I8,
    'i16': I16, 's16': I16, 'int16': I16,
    'i24': I24, 's24': I24, 'int24': I24,
    'i32': I32, 's32': I32, 'int32': I32,
    'i64': I64, 's64': I64, 'int64': I64,
    'i128': I128, 's128': I128, 'int128': I128,
    'f16': F16,
    'f32': F32, 'float': F32,
    'f64': F64, 'double': F64,
    'char': CHAR,
}


def read_magic(stream, ctx: ReadContext, magic: Any) -> int:
    """
    Read and check a fixed magic value; return its position.

    magic is either raw bytes or a (primitive, expected_value) pair decoded
    under the context's byte order. Mismatch raises BadMagic at the position
    the magic started.
    """
    pos = stream_position(stream)
    if isinstance(magic, (bytes, bytearray)):
        found = read_exact(stream, len(magic))
        expected = bytes(magic)
    else:
        prim, expected = magic
        found = prim.read(stream, ctx)
    if found != expected:
        raise BadMagic(pos, found, expected)
    return pos
