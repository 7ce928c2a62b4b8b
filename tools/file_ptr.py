#!/usr/bin/env python3
"""
file_ptr.py - Pointer indirection within a file

A pointer field is stored as an offset primitive; the value it points to is
read later, in phase 2, once the enclosing structure has been fully read.
That makes forward references (offset tables pointing past the header that
contains them) work without re-entrant stream corruption.

    AbsPtr(U32, T)   target at offset from stream start
    RelPtr(U32, T)   target at offset + ctx.offset (the pushed base)

Example layout (AbsPtr32 -> u8):

              [pointer]           [value]
    00000000: 0000 0008 0000 0000 ff

Usage:
    class Test(Record):
        fields = [Field('pointer', AbsPtr32(U8))]

    test = read_be(io.BytesIO(b'\\0\\0\\0\\x08\\0\\0\\0\\0\\xff'), Test)
    test.pointer.ptr     # 8
    test.pointer.value   # 0xFF
"""

import logging
from typing import Any

from binread import to_python
from read_context import ReadContext
from read_errors import MissingArgsError, UnresolvedPointerError
from read_protocol import (
    NO_ARGS, BinType, NoArgs, seek_absolute, stream_position, takes_no_args,
    trace_read, type_name,
)
from primitive_codec import U8, U16, U32, U64, U128

logger = logging.getLogger(__name__)


class FilePtr:
    """A read pointer: raw offset plus a target slot filled during resolve."""

    __slots__ = ('ptr', 'kind', '_value', '_resolved')

    def __init__(self, ptr: int, kind: str = 'FilePtr'):
        self.ptr = ptr
        self.kind = kind
        self._value = None
        self._resolved = False

    @property
    def is_resolved(self) -> bool:
        return self._resolved

    @property
    def value(self) -> Any:
        if not self._resolved:
            raise UnresolvedPointerError(
                f"Dereferenced {self.kind} before resolving it (run resolve() after read())"
            )
        return self._value

    def set_target(self, value: Any) -> None:
        self._value = value
        self._resolved = True

    def into_inner(self) -> Any:
        return self.value

    def to_python(self) -> Any:
        return to_python(self.value)

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FilePtr):
            return self.value == other.value
        return NotImplemented

    __hash__ = None

    def __repr__(self) -> str:
        if not self._resolved:
            return 'UnreadPointer'
        return repr(self._value)


class PointerType(BinType):
    """Common read/resolve logic for absolute and relative pointers."""

    relative = False
    kind = 'FilePtr'

    def __init__(self, ptr_type: Any, target: Any):
        if not takes_no_args(ptr_type):
            raise MissingArgsError(f"Pointer type {type_name(ptr_type)} must take no arguments")
        self.ptr_type = ptr_type
        self.target = target
        self.args_type = getattr(target, 'args_type', NoArgs)
        self.name = f"{self.kind}<{type_name(ptr_type)}, {type_name(target)}>"

    def read_offset(self, stream, ctx: ReadContext, args: Any) -> int:
        return self.ptr_type.read(stream, ctx, NO_ARGS)

    def read(self, stream, ctx: ReadContext, args: Any = NO_ARGS) -> FilePtr:
        trace_read(stream, ctx, self.name)
        return FilePtr(self.read_offset(stream, ctx, args), self.kind)

    def target_position(self, ptr: int, ctx: ReadContext) -> int:
        if self.relative:
            return ptr + ctx.offset
        return ptr

    def target_args(self, args: Any) -> Any:
        return args

    def resolve(self, value: FilePtr, stream, ctx: ReadContext, args: Any = NO_ARGS) -> None:
        if value.is_resolved:
            return
        saved = stream_position(stream)
        target_pos = self.target_position(value.ptr, ctx)
        logger.debug("%s: following 0x%X from 0x%X", self.name, target_pos, saved)
        seek_absolute(stream, target_pos)
        target_args = self.target_args(args)
        inner = self.target.read(stream, ctx, target_args)
        self.target.resolve(inner, stream, ctx, target_args)
        seek_absolute(stream, saved)
        value.set_target(inner)

    def parse(self, stream, ctx: ReadContext, args: Any = NO_ARGS) -> Any:
        """
        Read the pointer and dereference it immediately.

        Suitable as a parse_with function; leaves the stream just past the
        pointer's own bytes.
        """
        ptr = self.read(stream, ctx, args)
        end = stream_position(stream)
        self.resolve(ptr, stream, ctx, args)
        seek_absolute(stream, end)
        return ptr.into_inner()


class AbsPtr(PointerType):
    relative = False
    kind = 'AbsPtr'


class RelPtr(PointerType):
    relative = True
    kind = 'RelPtr'


class Placement(PointerType):
    """
    A value located at an offset passed in as an argument.

    Reads nothing in phase 1; args are (offset, target_args). With
    relative=True the offset is measured from ctx.offset.
    """

    kind = 'Placement'

    def __init__(self, target: Any, relative: bool = False):
        self.ptr_type = None
        self.target = target
        self.relative = relative
        self.args_type = tuple
        self.name = f"{'Rel' if relative else 'Abs'}Placement<{type_name(target)}>"

    def read_offset(self, stream, ctx: ReadContext, args: Any) -> int:
        if not isinstance(args, tuple) or len(args) != 2:
            raise MissingArgsError(f"{self.name} expects (offset, target_args), got {args!r}")
        return args[0]

    def target_args(self, args: Any) -> Any:
        inner = args[1]
        if inner is None:
            return NO_ARGS
        return inner


def AbsPtr8(target: Any) -> AbsPtr:
    return AbsPtr(U8, target)


def AbsPtr16(target: Any) -> AbsPtr:
    return AbsPtr(U16, target)


def AbsPtr32(target: Any) -> AbsPtr:
    return AbsPtr(U32, target)


def AbsPtr64(target: Any) -> AbsPtr:
    return AbsPtr(U64, target)


def AbsPtr128(target: Any) -> AbsPtr:
    return AbsPtr(U128, target)


def RelPtr8(target: Any) -> RelPtr:
    return RelPtr(U8, target)


def RelPtr16(target: Any) -> RelPtr:
    return RelPtr(U16, target)


def RelPtr32(target: Any) -> RelPtr:
    return RelPtr(U32, target)


def RelPtr64(target: Any) -> RelPtr:
    return RelPtr(U64, target)


def RelPtr128(target: Any) -> RelPtr:
    return RelPtr(U128, target)
