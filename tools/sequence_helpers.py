#!/usr/bin/env python3
"""
sequence_helpers.py - Counted and punctuated sequences, strings, raw bytes

    Counted(T)                          exactly N items of T
    Punctuated.separated(T, P)          T P T P ... T        (N items, N-1 P)
    Punctuated.separated_trailing(T, P) T P T P ... T P      (N items, N P)
    Bytes                               N raw bytes in one read
    NullString / NullWideString         zero-terminated text
    WithPos(T)                          T plus the position it was read at

Counted and Punctuated take args (count, element_args). Punctuated has no
default policy: parsing it is ambiguous without one, so the caller picks.

Usage:
    class MyList(Record):
        fields = [
            Field('x', Punctuated.separated(U16, U8), count=3),
        ]

    # b'\\0\\x03\\0\\0\\x02\\x01\\0\\x01' read big-endian
    # -> x == [3, 2, 1], x.separators == [0, 1]
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Tuple

from read_context import ReadContext
from read_errors import AssertFail, MissingArgsError
from read_protocol import (
    NO_ARGS, BinType, NoArgs, args_default, read_exact, stream_position,
    takes_no_args, trace_read, type_name,
)
from primitive_codec import U16


def _count_and_args(owner: Any, elem: Any, args: Any, ctx: ReadContext, stream) -> Tuple[int, Any]:
    """Split (count, elem_args), falling back to the context's count."""
    count = None
    elem_args = None
    if isinstance(args, tuple) and len(args) == 2:
        count, elem_args = args
    elif args is not None and args != NO_ARGS:
        raise MissingArgsError(f"{type_name(owner)} expects (count, element_args), got {args!r}")
    if count is None:
        count = ctx.count
    if count is None:
        raise MissingArgsError(f"{type_name(owner)} needs an element count")
    if count < 0:
        raise AssertFail(stream_position(stream), f"{type_name(owner)}: negative count {count}")
    if elem_args is None:
        elem_args = args_default(elem)
    return count, elem_args


class Counted(BinType):
    """A fixed number of items of one type with nothing between them.

    Without an explicit count the context's count is used, so a nested
    Counted with no count of its own reads as many items as the enclosing
    field's count.
    """

    args_type = tuple

    def __init__(self, elem: Any):
        self.elem = elem
        self.name = f"Counted<{type_name(elem)}>"

    def read(self, stream, ctx: ReadContext, args: Any = NO_ARGS) -> List[Any]:
        count, elem_args = _count_and_args(self, self.elem, args, ctx, stream)
        trace_read(stream, ctx, f"{self.name} x{count}")
        return [self.elem.read(stream, ctx, elem_args) for _ in range(count)]

    def resolve(self, value: List[Any], stream, ctx: ReadContext, args: Any = NO_ARGS) -> None:
        _, elem_args = _count_and_args(self, self.elem, args, ctx, stream)
        for item in value:
            self.elem.resolve(item, stream, ctx, elem_args)


class PunctuatedList(list):
    """Decoded items; the separators read between them are kept alongside."""

    def __init__(self, items=(), separators=()):
        super().__init__(items)
        self.separators = list(separators)

    def into_values(self) -> List[Any]:
        return list(self)


class PunctuationPolicy(Enum):
    SEPARATED = 'separated'
    SEPARATED_TRAILING = 'separated_trailing'


class Punctuated(BinType):
    """Items of one type interleaved with separators of another."""

    args_type = tuple

    def __init__(self, elem: Any, separator: Any, policy: PunctuationPolicy):
        if not takes_no_args(separator):
            raise MissingArgsError(f"Separator {type_name(separator)} must take no arguments")
        self.elem = elem
        self.separator = separator
        self.policy = PunctuationPolicy(policy)
        self.name = f"Punctuated<{type_name(elem)}, {type_name(separator)}>"

    @classmethod
    def separated(cls, elem: Any, separator: Any) -> 'Punctuated':
        """count items, count-1 separators, no trailing separator."""
        return cls(elem, separator, PunctuationPolicy.SEPARATED)

    @classmethod
    def separated_trailing(cls, elem: Any, separator: Any) -> 'Punctuated':
        """count items each followed by a separator."""
        return cls(elem, separator, PunctuationPolicy.SEPARATED_TRAILING)

    @property
    def trailing(self) -> bool:
        return self.policy is PunctuationPolicy.SEPARATED_TRAILING

    def read(self, stream, ctx: ReadContext, args: Any = NO_ARGS) -> PunctuatedList:
        count, elem_args = _count_and_args(self, self.elem, args, ctx, stream)
        trace_read(stream, ctx, f"{self.name} x{count} ({self.policy.value})")
        result = PunctuatedList()
        for i in range(count):
            result.append(self.elem.read(stream, ctx, elem_args))
            if self.trailing or i + 1 != count:
                result.separators.append(self.separator.read(stream, ctx, NO_ARGS))
        return result

    def resolve(self, value: PunctuatedList, stream, ctx: ReadContext, args: Any = NO_ARGS) -> None:
        _, elem_args = _count_and_args(self, self.elem, args, ctx, stream)
        for i, item in enumerate(value):
            self.elem.resolve(item, stream, ctx, elem_args)
            if i < len(value.separators):
                self.separator.resolve(value.separators[i], stream, ctx, NO_ARGS)


# =============================================================================
# Raw bytes and strings
# =============================================================================

class BytesType(BinType):
    """N raw bytes read in one call; args are (count,) or (count, _)."""

    name = 'bytes'
    args_type = tuple

    def read(self, stream, ctx: ReadContext, args: Any = NO_ARGS) -> bytes:
        count = args[0] if isinstance(args, tuple) and args else ctx.count
        if count is None:
            raise MissingArgsError("bytes needs a length")
        if count < 0:
            raise AssertFail(stream_position(stream), f"bytes: negative length {count}")
        trace_read(stream, ctx, f"bytes x{count}")
        return read_exact(stream, count)


Bytes = BytesType()


def read_bytes(stream, ctx: ReadContext, args: Tuple) -> bytes:
    """parse_with helper: read args[0] bytes."""
    return Bytes.read(stream, ctx, args)


class NullString(BinType):
    """Bytes up to (and consuming) a zero terminator, decoded as text."""

    def __init__(self, encoding: str = 'utf-8'):
        self.encoding = encoding
        self.name = 'cstring'

    def read(self, stream, ctx: ReadContext, args: Any = NO_ARGS) -> str:
        trace_read(stream, ctx, self.name)
        buf = bytearray()
        while True:
            b = read_exact(stream, 1)[0]
            if b == 0:
                break
            buf.append(b)
        return buf.decode(self.encoding, errors='replace')


class NullWideString(BinType):
    """16-bit code units (context byte order) up to a zero unit, as UTF-16."""

    name = 'wstring'

    def read(self, stream, ctx: ReadContext, args: Any = NO_ARGS) -> str:
        trace_read(stream, ctx, self.name)
        units = []
        while True:
            unit = U16.read(stream, ctx)
            if unit == 0:
                break
            units.append(unit)
        raw = b''.join(u.to_bytes(2, 'little') for u in units)
        return raw.decode('utf-16-le', errors='replace')


# =============================================================================
# Position-tagged values
# =============================================================================

@dataclass
class PosValue:
    """A decoded value and the stream position it started at."""
    val: Any
    pos: int

    def to_python(self) -> Any:
        from binread import to_python
        return {'pos': self.pos, 'value': to_python(self.val)}


class WithPos(BinType):
    """Wraps a type so its value records where it was read."""

    def __init__(self, inner: Any):
        self.inner = inner
        self.args_type = getattr(inner, 'args_type', NoArgs)
        self.name = f"PosValue<{type_name(inner)}>"

    def read(self, stream, ctx: ReadContext, args: Any = NO_ARGS) -> PosValue:
        pos = stream_position(stream)
        return PosValue(self.inner.read(stream, ctx, args), pos)

    def resolve(self, value: PosValue, stream, ctx: ReadContext, args: Any = NO_ARGS) -> None:
        self.inner.resolve(value.val, stream, ctx, args)
