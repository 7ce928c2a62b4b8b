"""
Tests for fixed-width primitive decoding.
"""

import io
import struct

import pytest
import sys
from pathlib import Path
from hypothesis import given
from hypothesis import strategies as st

sys.path.insert(0, str(Path(__file__).parent.parent / 'tools'))

from primitive_codec import (
    CHAR, F16, F32, F64, I8, I16, I24, I32, PRIMITIVES, U8, U16, U24, U32,
    U64, U128, read_magic,
)
from read_context import Endian, ReadContext
from read_errors import BadMagic, IoError


INT_TYPES = [
    (U8, 1, False), (U16, 2, False), (U24, 3, False), (U32, 4, False),
    (U64, 8, False), (U128, 16, False),
    (I8, 1, True), (I16, 2, True), (I24, 3, True), (I32, 4, True),
]


class TestIntegers:
    """Tests for integer primitives."""

    def test_u16_orders(self):
        data = b'\x01\x02'
        assert U16.decode(io.BytesIO(data), Endian.BIG) == 0x0102
        assert U16.decode(io.BytesIO(data), Endian.LITTLE) == 0x0201

    def test_native_matches_host(self):
        data = b'\x01\x02\x03\x04'
        expected = int.from_bytes(data, sys.byteorder)
        assert U32.decode(io.BytesIO(data), Endian.NATIVE) == expected

    def test_signed(self):
        assert I8.decode(io.BytesIO(b'\xff'), 'big') == -1
        assert I16.decode(io.BytesIO(b'\xff\xfe'), 'big') == -2
        assert I24.decode(io.BytesIO(b'\x00\x00\x80'), 'little') == -0x800000

    def test_read_uses_context_order(self):
        ctx = ReadContext(endian='little')
        assert U32.read(io.BytesIO(b'\x08\0\0\0'), ctx) == 8

    def test_consumes_exact_width(self):
        stream = io.BytesIO(b'\x00\x01\x02\x03\x04')
        U24.decode(stream, 'big')
        assert stream.tell() == 3

    def test_short_read(self):
        with pytest.raises(IoError):
            U32.decode(io.BytesIO(b'\x00\x01'), 'big')

    @given(st.sampled_from(INT_TYPES), st.data(), st.sampled_from(['big', 'little']))
    def test_int_matches_to_bytes(self, case, data, order):
        prim, size, signed = case
        if signed:
            lo, hi = -(1 << (size * 8 - 1)), (1 << (size * 8 - 1)) - 1
        else:
            lo, hi = 0, (1 << (size * 8)) - 1
        value = data.draw(st.integers(min_value=lo, max_value=hi))
        raw = value.to_bytes(size, order, signed=signed)
        assert prim.decode(io.BytesIO(raw), order) == value


class TestFloats:
    """Tests for float primitives."""

    @given(st.floats(allow_nan=False, width=32), st.sampled_from(['>', '<']))
    def test_f32_matches_struct(self, value, prefix):
        order = 'big' if prefix == '>' else 'little'
        raw = struct.pack(prefix + 'f', value)
        assert F32.decode(io.BytesIO(raw), order) == value

    @given(st.floats(allow_nan=False), st.sampled_from(['>', '<']))
    def test_f64_matches_struct(self, value, prefix):
        order = 'big' if prefix == '>' else 'little'
        raw = struct.pack(prefix + 'd', value)
        assert F64.decode(io.BytesIO(raw), order) == value

    def test_f16(self):
        assert F16.decode(io.BytesIO(b'\x3c\x00'), 'big') == 1.0


class TestChar:
    """Tests for single-byte characters."""

    def test_char(self):
        assert CHAR.read(io.BytesIO(b'A'), ReadContext()) == 'A'

    def test_char_is_one_byte(self):
        stream = io.BytesIO(b'\xe9x')
        assert CHAR.read(stream, ReadContext()) == '\xe9'
        assert stream.tell() == 1


class TestAliases:
    """Tests for the primitive name table."""

    @pytest.mark.parametrize("alias,prim", [
        ('uint8', U8), ('s16', I16), ('int32', I32), ('float', F32), ('double', F64),
    ])
    def test_alias(self, alias, prim):
        assert PRIMITIVES[alias] is prim


class TestMagic:
    """Tests for magic checks."""

    def test_bytes_magic(self):
        stream = io.BytesIO(b'DOG\x01')
        assert read_magic(stream, ReadContext(), b'DOG') == 0
        assert stream.tell() == 3

    def test_bytes_magic_mismatch(self):
        with pytest.raises(BadMagic) as exc:
            read_magic(io.BytesIO(b'CAT'), ReadContext(), b'DOG')
        assert exc.value.pos == 0
        assert exc.value.found == b'CAT'

    def test_typed_magic_uses_order(self):
        stream = io.BytesIO(b'\x01\x00')
        read_magic(stream, ReadContext(endian='little'), (U16, 1))
        with pytest.raises(BadMagic):
            read_magic(io.BytesIO(b'\x01\x00'), ReadContext(endian='big'), (U16, 1))
