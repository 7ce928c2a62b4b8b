"""
Tests for counted/punctuated sequences, strings and position tagging.
"""

import io

import pytest
import sys
from pathlib import Path
from hypothesis import given
from hypothesis import strategies as st

sys.path.insert(0, str(Path(__file__).parent.parent / 'tools'))

from binread import Field, Record, decode, read, read_args, to_python
from primitive_codec import U8, U16
from read_context import ReadContext
from read_errors import AssertFail, IoError, MissingArgsError
from read_protocol import read_exact
from sequence_helpers import (
    Bytes, Counted, NullString, NullWideString, PosValue, Punctuated,
    PunctuatedList, PunctuationPolicy, WithPos,
)


class MyList(Record):
    fields = [
        Field('x', Punctuated.separated(U16, U8), count=3),
    ]


class MyTrailingList(Record):
    fields = [
        Field('x', Punctuated.separated_trailing(U16, U8), count=3),
    ]


class TestPunctuated:
    """Tests for separated sequences."""

    def test_separated(self):
        value = read(MyList, io.BytesIO(b'\0\x03\0\0\x02\x01\0\x01'), 'big')
        assert value.x == [3, 2, 1]
        assert value.x.separators == [0, 1]
        assert value.x.into_values() == [3, 2, 1]

    def test_separated_trailing(self):
        value = read(MyTrailingList, io.BytesIO(b'\0\x03\0\0\x02\x01\0\x01\xff'), 'big')
        assert value.x == [3, 2, 1]
        assert value.x.separators == [0, 1, 0xff]

    def test_truncated(self):
        with pytest.raises(IoError):
            read(MyTrailingList, io.BytesIO(b'\0\x03\0\0\x02\x01\0\x01'), 'big')

    def test_zero_count(self):
        result = decode(Punctuated.separated(U8, U8), b'', args=(0, None))
        assert result == []
        assert result.separators == []

    def test_policy_is_explicit(self):
        assert Punctuated.separated(U8, U8).policy is PunctuationPolicy.SEPARATED
        assert Punctuated.separated_trailing(U8, U8).trailing

    def test_count_required(self):
        with pytest.raises(MissingArgsError):
            read(Punctuated.separated(U8, U8), io.BytesIO(b'\x01'))

    def test_separator_takes_no_args(self):
        with pytest.raises(MissingArgsError):
            Punctuated.separated(U8, Counted(U8))

    @given(st.lists(st.integers(min_value=0, max_value=255), min_size=1, max_size=20))
    def test_separator_count(self, items):
        sep = b'\x2c'
        data = sep.join(bytes([i]) for i in items)
        result = decode(Punctuated.separated(U8, U8), data, args=(len(items), None))
        assert list(result) == items
        assert len(result.separators) == len(items) - 1


class TestCounted:
    """Tests for counted sequences."""

    def test_counted(self):
        assert decode(Counted(U16), b'\x00\x01\x00\x02', 'big', args=(2, None)) == [1, 2]

    def test_count_from_context(self):
        ctx = ReadContext(endian='little').with_count(2)
        assert Counted(U16).read(io.BytesIO(b'\x01\x00\x02\x00'), ctx) == [1, 2]

    def test_negative_count(self):
        with pytest.raises(AssertFail) as exc:
            decode(Counted(U8), b'\x01', args=(-1, None))
        assert exc.value.pos == 0
        assert 'negative count -1' in exc.value.message

    def test_inner_count_from_field(self):
        class Grid(Record):
            fields = [Field('rows', Counted(Counted(U8)), count=2, args=(None, None))]
        value = read(Grid, io.BytesIO(b'\x01\x02\x03\x04\x05'))
        assert value.rows == [[1, 2], [3, 4]]

    def test_nested_counted_args(self):
        value = decode(Counted(Counted(U8)), b'\x01\x02\x03\x04', args=(2, (2, None)))
        assert value == [[1, 2], [3, 4]]

    def test_plain_list_result(self):
        assert isinstance(decode(Counted(U8), b'\x01', args=(1, None)), list)


class TestBytes:
    """Tests for raw byte runs."""

    def test_bytes(self):
        stream = io.BytesIO(b'abcdef')
        assert read_args(Bytes, stream, (4,)) == b'abcd'
        assert stream.tell() == 4

    def test_bytes_short(self):
        with pytest.raises(IoError):
            decode(Bytes, b'ab', args=(4,))

    def test_bytes_negative_length(self):
        class Framed(Record):
            fields = [
                Field('total', U8, temp=True),
                Field('data', Bytes, count=lambda s: s['total'] - 2),
            ]
        with pytest.raises(AssertFail) as exc:
            read(Framed, io.BytesIO(b'\x01ABCDE'))
        assert exc.value.pos == 1

    def test_read_exact_negative_size(self):
        stream = io.BytesIO(b'abc')
        stream.seek(1)
        with pytest.raises(AssertFail) as exc:
            read_exact(stream, -1)
        assert exc.value.pos == 1
        assert stream.tell() == 1

    def test_bytes_field(self):
        class Blob(Record):
            fields = [Field('n', U8), Field('data', Bytes, count=lambda s: s['n'])]
        value = read(Blob, io.BytesIO(b'\x03xyzw'))
        assert value.data == b'xyz'
        assert to_python(value) == {'n': 3, 'data': '78797A'}


class TestStrings:
    """Tests for zero-terminated strings."""

    def test_null_string(self):
        stream = io.BytesIO(b'hello\0rest')
        assert read(NullString(), stream) == 'hello'
        assert stream.tell() == 6

    def test_null_string_unterminated(self):
        with pytest.raises(IoError):
            read(NullString(), io.BytesIO(b'abc'))

    def test_null_string_encoding(self):
        assert read(NullString('latin-1'), io.BytesIO(b'caf\xe9\0')) == 'caf\xe9'

    def test_wide_string_little(self):
        data = 'hi'.encode('utf-16-le') + b'\0\0'
        assert read(NullWideString(), io.BytesIO(data), 'little') == 'hi'

    def test_wide_string_big(self):
        data = 'ok'.encode('utf-16-be') + b'\0\0'
        assert read(NullWideString(), io.BytesIO(data), 'big') == 'ok'


class TestPosValue:
    """Tests for position-tagged values."""

    def test_with_pos(self):
        class Tagged(Record):
            fields = [Field('a', U8), Field('b', WithPos(U16))]
        value = read(Tagged, io.BytesIO(b'\x01\x00\x05'), 'big')
        assert value.b == PosValue(5, 1)
        assert to_python(value) == {'a': 1, 'b': {'pos': 1, 'value': 5}}

    def test_with_pos_forwards_args(self):
        wrapped = WithPos(Counted(U8))
        assert wrapped.args_type is tuple
        assert decode(wrapped, b'\x01\x02', args=(2, None)) == PosValue([1, 2], 0)

    def test_punctuated_list_type(self):
        assert isinstance(PunctuatedList([1], [2]), list)
