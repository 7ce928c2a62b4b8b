"""
Tests for variant resolution and representation enums.
"""

import io
from enum import IntEnum

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'tools'))

from binread import Field, Record, read, read_args, read_be, to_python
from file_ptr import AbsPtr8
from primitive_codec import U8, U16
from read_context import ReadContext
from read_errors import BadMagic, EnumErrors, IoError, NoVariantMatch
from sequence_helpers import Counted
from variant_resolver import ErrorPolicy, ReprEnum, Variants, resolve_variant


class Zero(Record):
    magic = (U8, 0)


class Two(Record):
    magic = (U8, 2)
    fields = [Field('a', U16), Field('b', U16)]


class Choice(Variants):
    endian = 'big'
    candidates = [Zero, Two]


class One(Record):
    magic = (U16, 0)


class Two16(Record):
    magic = (U16, 1)
    fields = [Field('x', U8)]


class AllErrors(Variants):
    endian = 'big'
    error_policy = ErrorPolicy.RETURN_ALL_ERRORS
    candidates = [One, Two16]


class Unexpected(Variants):
    endian = 'big'
    error_policy = ErrorPolicy.RETURN_UNEXPECTED_ERROR
    candidates = [One, Two16]


class Fallback(Record):
    fields = [Field('raw', U8)]


class WithFallback(Variants):
    candidates = [Zero, Fallback]


class ShortList(Record):
    magic = (U8, 1)
    fields = [
        Field('n', U8, temp=True),
        Field('items', Counted(U8), count=lambda s: s['n'] - 5),
    ]


class ListOrRaw(Variants):
    candidates = [ShortList, Fallback]


class PointsSomewhere(Record):
    magic = (U8, 7)
    fields = [Field('target', AbsPtr8(U8))]


class Pointing(Variants):
    candidates = [Two, PointsSomewhere]


class Scaled(Record):
    imports = ('factor',)
    magic = (U8, 1)
    fields = [Field('v', calc=lambda s: s['factor'] * 2)]


class ArgVariants(Variants):
    imports = ('factor',)
    candidates = [Scaled]


class Status(IntEnum):
    IDLE = 0
    RUNNING = 1
    DONE = 5


class TestVariants:
    """Tests for candidate selection."""

    def test_no_match_collects_errors(self):
        with pytest.raises(EnumErrors) as exc:
            read(Choice, io.BytesIO(b'\x01'))
        assert exc.value.pos == 0
        assert [name for name, _ in exc.value.variant_errors] == ['Zero', 'Two']

    def test_second_candidate(self):
        value = read(Choice, io.BytesIO(b'\x02\0\x03\0\x04'))
        assert isinstance(value, Two)
        assert (value.a, value.b) == (3, 4)

    def test_first_candidate(self):
        stream = io.BytesIO(b'\x00\x99')
        assert isinstance(read(Choice, stream), Zero)
        assert stream.tell() == 1

    def test_return_all_errors_detail(self):
        with pytest.raises(EnumErrors) as exc:
            read(AllErrors, io.BytesIO(b'\0\x01'))
        errors = exc.value.variant_errors
        assert [name for name, _ in errors] == ['One', 'Two16']
        assert isinstance(errors[0][1], BadMagic)
        assert isinstance(errors[1][1], IoError)

    def test_unexpected_policy(self):
        with pytest.raises(NoVariantMatch) as exc:
            read(Unexpected, io.BytesIO(b'\0\x01'))
        assert exc.value.pos == 0

    def test_describe_lists_candidates(self):
        with pytest.raises(EnumErrors) as exc:
            read(AllErrors, io.BytesIO(b'\0\x01'))
        text = exc.value.describe()
        assert 'One:' in text
        assert 'Two16:' in text

    def test_position_restored_between_candidates(self):
        value = read(WithFallback, io.BytesIO(b'\x05'))
        assert isinstance(value, Fallback)
        assert value.raw == 5

    def test_negative_count_falls_through(self):
        stream = io.BytesIO(b'\x01\x00\x00')
        value = read(ListOrRaw, stream)
        assert isinstance(value, Fallback)
        assert value.raw == 1
        assert stream.tell() == 1

    def test_match_away_from_stream_start(self):
        stream = io.BytesIO(b'\xff\xff\x02\0\x03\0\x04')
        stream.seek(2)
        value = read(Choice, stream)
        assert value.b == 4
        assert stream.tell() == 7

    def test_error_pos_is_variant_start(self):
        stream = io.BytesIO(b'\xff\xff\x01')
        stream.seek(2)
        with pytest.raises(EnumErrors) as exc:
            read(Choice, stream)
        assert exc.value.pos == 2

    def test_committed_candidate_resolves(self):
        value = read(Pointing, io.BytesIO(b'\x07\x02\x2a'))
        assert value.target.value == 0x2a

    def test_args_forwarded(self):
        value = read_args(ArgVariants, io.BytesIO(b'\x01'), (21,))
        assert value.v == 42

    def test_engine_directly(self):
        candidate, value = resolve_variant(
            io.BytesIO(b'\x02\0\x01\0\x02'), ReadContext(endian='big'), [Zero, Two]
        )
        assert candidate is Two
        assert value.a == 1

    def test_not_instantiable(self):
        with pytest.raises(TypeError):
            Choice()

    def test_candidates_must_be_records(self):
        with pytest.raises(TypeError):
            type('Bad', (Variants,), {'candidates': [U8]})

    def test_policy_aliases(self):
        assert ErrorPolicy.RETURN_ALL_ERRORS is ErrorPolicy.COLLECT_ALL
        assert ErrorPolicy.RETURN_UNEXPECTED_ERROR is ErrorPolicy.UNEXPECTED
        assert ErrorPolicy('unexpected') is ErrorPolicy.UNEXPECTED

    def test_candidate_names(self):
        assert Choice.candidate_names() == ['Zero', 'Two']


class TestReprEnum:
    """Tests for unit-only enums stored as primitives."""

    def test_member(self):
        assert read(ReprEnum(U8, Status), io.BytesIO(b'\x05')) is Status.DONE

    def test_unknown_value(self):
        stream = io.BytesIO(b'\x00\x02')
        stream.seek(1)
        with pytest.raises(NoVariantMatch) as exc:
            read(ReprEnum(U8, Status), stream)
        assert exc.value.pos == 1

    def test_wider_repr(self):
        assert read_be(io.BytesIO(b'\x00\x01'), ReprEnum(U16, Status)) is Status.RUNNING

    def test_to_python_uses_name(self):
        class Job(Record):
            fields = [Field('state', ReprEnum(U8, Status))]
        assert to_python(read(Job, io.BytesIO(b'\x01'))) == {'state': 'RUNNING'}
