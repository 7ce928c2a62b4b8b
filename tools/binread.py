#!/usr/bin/env python3
"""
binread.py - Declarative records, composites and top-level read entry points

Records are declared as classes with an ordered list of fields. Reading runs
in two phases over the whole value tree: read() decodes every field in
declaration order, then resolve() revisits them in the same order to do
position-dependent work (pointer dereference).

Usage:
    from binread import Record, Field, read_be
    from primitive_codec import U8, U16, U32
    from sequence_helpers import Counted, NullString

    class Dog(Record):
        magic = b'DOG'
        fields = [
            Field('bone_pile_count', U8),
            Field('bone_piles', Counted(U16), endian='big',
                  count=lambda f: f['bone_pile_count']),
            Field('name', NullString(), align_before=0xA),
        ]

    dog = read_be(io.BytesIO(data), Dog)

Field directives:
    endian        byte order for this field only
    count         element count (int or callable(scope)); also sets ctx count
    args          arguments for the field type (value or callable(scope))
    offset        push the relative-pointer base for this field (additive)
    temp          decode, expose to later fields, do not keep
    calc          computed value (callable(scope)); reads nothing
    parse_with    custom parser callable(stream, ctx, args)
    map           transform the decoded value
    magic         literal (bytes or (primitive, value)) that must precede it
    assert_       predicate(scope) or (predicate, message) checked after read
    try_          on failure restore position and store None
    pad_before    skip N bytes first
    align_before  skip forward to a multiple of N first
    set_context   callable(scope) -> {key: value} for the following fields

Scope passed to callables is a dict of every earlier field (temp included)
plus the record's imported argument names.
"""

import io
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from primitive_codec import read_magic
from read_context import Endian, ReadContext, TRACE, default_context
from read_errors import (
    AssertFail, CustomError, MissingArgsError, ReadError, UnresolvedPointerError,
)
from read_protocol import (
    NO_ARGS, BinType, NoArgs, args_default, seek_absolute, seek_relative,
    stream_position, takes_no_args, type_name,
)

logger = logging.getLogger(__name__)

_CONTRACT_ERRORS = (MissingArgsError, UnresolvedPointerError)


def call_user(fn: Callable, pos: int, *args) -> Any:
    """Invoke a user callable, reporting its failures as CustomError."""
    try:
        return fn(*args)
    except ReadError:
        raise
    except _CONTRACT_ERRORS:
        raise
    except Exception as e:
        raise CustomError(pos, e) from e


# =============================================================================
# Composites
# =============================================================================

class Array(BinType):
    """Fixed number of elements of one type; forwards element args."""

    def __init__(self, elem: Any, size: int):
        self.elem = elem
        self.size = size
        self.args_type = getattr(elem, 'args_type', NoArgs)
        self.name = f"{type_name(elem)}[{size}]"

    def read(self, stream, ctx: ReadContext, args: Any = NO_ARGS) -> List[Any]:
        return [self.elem.read(stream, ctx, args) for _ in range(self.size)]

    def resolve(self, value: List[Any], stream, ctx: ReadContext, args: Any = NO_ARGS) -> None:
        for item in value:
            self.elem.resolve(item, stream, ctx, args)


class TupleOf(BinType):
    """Heterogeneous fixed sequence; every element must take no arguments."""

    def __init__(self, *elems: Any):
        for elem in elems:
            if not takes_no_args(elem):
                raise MissingArgsError(f"Tuple element {type_name(elem)} requires arguments")
        self.elems = elems
        self.name = '(' + ', '.join(type_name(e) for e in elems) + ')'

    def read(self, stream, ctx: ReadContext, args: Any = NO_ARGS) -> Tuple:
        return tuple(elem.read(stream, ctx, NO_ARGS) for elem in self.elems)

    def resolve(self, value: Tuple, stream, ctx: ReadContext, args: Any = NO_ARGS) -> None:
        for elem, item in zip(self.elems, value):
            elem.resolve(item, stream, ctx, NO_ARGS)


UNIT = TupleOf()


class Boxed(BinType):
    """Owned indirection in the type tree; reads exactly like its inner type."""

    def __init__(self, inner: Any):
        self.inner = inner
        self.args_type = getattr(inner, 'args_type', NoArgs)
        self.name = f"Box<{type_name(inner)}>"

    def read(self, stream, ctx: ReadContext, args: Any = NO_ARGS) -> Any:
        return self.inner.read(stream, ctx, args)

    def resolve(self, value: Any, stream, ctx: ReadContext, args: Any = NO_ARGS) -> None:
        self.inner.resolve(value, stream, ctx, args)


# =============================================================================
# Records
# =============================================================================

class Field:
    """One declared member of a Record."""

    def __init__(self, name: str, bin_type: Any = None, *,
                 endian: Any = None,
                 count: Any = None,
                 args: Any = None,
                 offset: Any = None,
                 temp: bool = False,
                 calc: Optional[Callable] = None,
                 parse_with: Optional[Callable] = None,
                 map: Optional[Callable] = None,
                 magic: Any = None,
                 assert_: Any = None,
                 try_: bool = False,
                 pad_before: int = 0,
                 align_before: Optional[int] = None,
                 set_context: Optional[Callable] = None):
        if bin_type is None and calc is None and parse_with is None:
            raise ValueError(f"Field '{name}' needs a type, calc or parse_with")
        if calc is not None and (bin_type is not None or parse_with is not None):
            raise ValueError(f"Field '{name}': calc fields do not read")
        if align_before is not None and align_before <= 0:
            raise ValueError(f"Field '{name}': align_before must be positive")
        self.name = name
        self.bin_type = bin_type
        self.endian = None if endian is None else Endian.parse(endian)
        self.count = count
        self.args = args
        self.offset = offset
        self.temp = temp
        self.calc = calc
        self.parse_with = parse_with
        self.map = map
        self.magic = magic
        if assert_ is not None and not isinstance(assert_, tuple):
            assert_ = (assert_, f"{name} failed its check")
        self.assert_ = assert_
        self.try_ = try_
        self.pad_before = pad_before
        self.align_before = align_before
        self.set_context = set_context

    def __repr__(self) -> str:
        return f"Field({self.name!r}, {type_name(self.bin_type) if self.bin_type else None})"

    @property
    def resolvable(self) -> bool:
        """Whether phase 2 has anything to do for this field."""
        return self.bin_type is not None and self.parse_with is None

    def _eval(self, expr: Any, scope: Dict[str, Any], pos: int) -> Any:
        if callable(expr):
            return call_user(expr, pos, scope)
        return expr

    def _field_context(self, stream, ctx: ReadContext, scope: Dict[str, Any]) -> Tuple[ReadContext, Any]:
        pos = stream_position(stream)
        field_ctx = ctx
        if self.endian is not None:
            field_ctx = field_ctx.with_endian(self.endian)
        if self.offset is not None:
            field_ctx = field_ctx.with_offset(ctx.offset + self._eval(self.offset, scope, pos))

        args = None if self.args is None else self._eval(self.args, scope, pos)
        if self.count is not None:
            count = self._eval(self.count, scope, pos)
            field_ctx = field_ctx.with_count(count)
            args = (count, args)
        elif args is None:
            if self.parse_with is not None:
                args = NO_ARGS
            else:
                args = args_default(self.bin_type)
        return field_ctx, args

    def _skip_padding(self, stream) -> None:
        if self.pad_before:
            seek_relative(stream, self.pad_before)
        if self.align_before:
            rem = stream_position(stream) % self.align_before
            if rem:
                seek_relative(stream, self.align_before - rem)

    def read(self, stream, ctx: ReadContext, scope: Dict[str, Any]) -> Tuple[Any, Any, ReadContext, Any]:
        """
        Phase 1 for this field.

        Returns (value, raw, field_ctx, args): raw is what resolve() must be
        applied to (before any map), field_ctx/args are what it was read with.
        """
        if self.calc is not None:
            value = call_user(self.calc, stream_position(stream), scope)
            return value, None, ctx, NO_ARGS

        start = stream_position(stream)
        try:
            self._skip_padding(stream)
            field_ctx, args = self._field_context(stream, ctx, scope)
            if self.magic is not None:
                read_magic(stream, field_ctx, self.magic)
            pos = stream_position(stream)
            if field_ctx.has_flag(TRACE):
                logger.debug("field %s at 0x%X", self.name, pos)
            if self.parse_with is not None:
                raw = call_user(self.parse_with, pos, stream, field_ctx, args)
            else:
                raw = self.bin_type.read(stream, field_ctx, args)
            value = raw if self.map is None else call_user(self.map, pos, raw)
        except ReadError as e:
            if not self.try_:
                raise
            logger.debug("optional field %s skipped at 0x%X: %s", self.name, start, e)
            seek_absolute(stream, start)
            return None, None, ctx, NO_ARGS
        return value, raw, field_ctx, args

    def check(self, scope: Dict[str, Any], pos: int) -> None:
        """Post-read invariant; scope already contains this field."""
        if self.assert_ is None:
            return
        predicate, message = self.assert_
        if not call_user(predicate, pos, scope):
            raise AssertFail(pos, message)


class Record:
    """
    Base class for declared binary structures.

    Class attributes:
        fields      ordered list of Field
        endian      record-level byte order (overrides the caller's)
        magic       bytes or (primitive, value) checked before the fields
        imports     names bound to the positional args tuple
        assertions  [(predicate(scope), message)] checked after all fields
    """

    fields: List[Field] = []
    endian: Any = None
    magic: Any = None
    imports: Tuple[str, ...] = ()
    assertions: List[Tuple[Callable, str]] = []
    args_type: Any = NoArgs

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        names = [f.name for f in cls.fields]
        if len(names) != len(set(names)):
            raise ValueError(f"{cls.__name__}: duplicate field names")
        for f in cls.fields:
            if not isinstance(f, Field):
                raise TypeError(f"{cls.__name__}: fields must be Field instances, got {f!r}")
        cls.args_type = tuple if cls.imports else NoArgs
        if cls.endian is not None:
            cls.endian = Endian.parse(cls.endian)

    def __init__(self, **values):
        for name, value in values.items():
            setattr(self, name, value)

    # -- value behaviour ---------------------------------------------------

    @classmethod
    def kept_fields(cls) -> List[Field]:
        return [f for f in cls.fields if not f.temp]

    def values(self) -> Dict[str, Any]:
        """
        Retained field values in declaration order.

        Field values live in the instance dict, so a field may share its name
        with one of these methods; call them through the class in that case,
        e.g. Record.values(r).
        """
        return {f.name: self.__dict__[f.name] for f in type(self).kept_fields() if f.name in self.__dict__}

    def to_dict(self) -> Dict[str, Any]:
        return {name: to_python(value) for name, value in Record.values(self).items()}

    def __eq__(self, other: Any) -> bool:
        if type(self) is not type(other):
            return NotImplemented
        return Record.values(self) == Record.values(other)

    def __repr__(self) -> str:
        inner = ', '.join(f"{k}={v!r}" for k, v in Record.values(self).items())
        return f"{type(self).__name__}({inner})"

    # -- read/resolve ------------------------------------------------------

    @classmethod
    def _bind_imports(cls, args: Any) -> Dict[str, Any]:
        if not cls.imports:
            return {}
        if not isinstance(args, tuple) or len(args) != len(cls.imports):
            raise MissingArgsError(
                f"{cls.__name__} expects args {cls.imports}, got {args!r}"
            )
        return dict(zip(cls.imports, args))

    @classmethod
    def read(cls, stream, ctx: ReadContext, args: Any = NO_ARGS) -> 'Record':
        if cls.endian is not None:
            ctx = ctx.with_endian(cls.endian)
        scope = cls._bind_imports(args)
        start = stream_position(stream)
        if cls.magic is not None:
            read_magic(stream, ctx, cls.magic)

        kept = {}
        pending = []
        for f in cls.fields:
            pos = stream_position(stream)
            value, raw, field_ctx, field_args = f.read(stream, ctx, scope)
            scope[f.name] = value
            f.check(scope, pos)
            if not f.temp:
                kept[f.name] = value
            if f.resolvable and raw is not None:
                pending.append((f, raw, field_ctx, field_args))
            if f.set_context is not None:
                ctx = ctx.overlay(call_user(f.set_context, pos, scope))

        for predicate, message in cls.assertions:
            if not call_user(predicate, start, scope):
                raise AssertFail(start, message)

        instance = cls(**kept)
        instance._binread_pending = pending
        return instance

    @classmethod
    def resolve(cls, value: 'Record', stream, ctx: ReadContext, args: Any = NO_ARGS) -> None:
        pending = value.__dict__.pop('_binread_pending', None)
        if not pending:
            return
        for f, raw, field_ctx, field_args in pending:
            f.bin_type.resolve(raw, stream, field_ctx, field_args)


def to_python(value: Any) -> Any:
    """Convert a decoded value into plain dict/list/scalar data."""
    if isinstance(value, Record):
        return Record.to_dict(value)
    if hasattr(value, 'to_python'):
        return value.to_python()
    if isinstance(value, Endian):
        return value.value
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex().upper()
    if isinstance(value, (list, tuple)):
        return [to_python(v) for v in value]
    if isinstance(value, dict):
        return {k: to_python(v) for k, v in value.items()}
    return value


# =============================================================================
# Entry points
# =============================================================================

def read_args(bin_type: Any, stream, args: Any, endian: Any = None,
              ctx: Optional[ReadContext] = None) -> Any:
    """
    Read a complete value with explicit arguments.

    Phase 1 runs over the whole tree, then phase 2; the stream is left where
    phase 1 ended.
    """
    if ctx is None:
        ctx = default_context(endian)
    elif endian is not None:
        ctx = ctx.with_endian(endian)
    value = bin_type.read(stream, ctx, args)
    end = stream_position(stream)
    bin_type.resolve(value, stream, ctx, args)
    seek_absolute(stream, end)
    return value


def read(bin_type: Any, stream, endian: Any = None) -> Any:
    """Read a complete value that takes no arguments."""
    return read_args(bin_type, stream, args_default(bin_type), endian)


def read_type(stream, bin_type: Any, endian: Any) -> Any:
    return read(bin_type, stream, endian)


def read_be(stream, bin_type: Any) -> Any:
    return read(bin_type, stream, Endian.BIG)


def read_le(stream, bin_type: Any) -> Any:
    return read(bin_type, stream, Endian.LITTLE)


def read_ne(stream, bin_type: Any) -> Any:
    return read(bin_type, stream, Endian.NATIVE)


def decode(bin_type: Any, data: bytes, endian: Any = None, args: Any = None) -> Any:
    """Convenience: read a value from an in-memory buffer."""
    stream = io.BytesIO(data)
    if args is None:
        return read(bin_type, stream, endian)
    return read_args(bin_type, stream, args, endian)


class BinReader:
    """Wraps a seekable binary stream with typed read helpers."""

    def __init__(self, stream):
        self.stream = stream

    def tell(self) -> int:
        return stream_position(self.stream)

    def seek(self, pos: int) -> int:
        return seek_absolute(self.stream, pos)

    def read_type(self, bin_type: Any, endian: Any) -> Any:
        return read(bin_type, self.stream, endian)

    def read_args(self, bin_type: Any, args: Any, endian: Any = None) -> Any:
        return read_args(bin_type, self.stream, args, endian)

    def read_be(self, bin_type: Any) -> Any:
        return self.read_type(bin_type, Endian.BIG)

    def read_le(self, bin_type: Any) -> Any:
        return self.read_type(bin_type, Endian.LITTLE)

    def read_ne(self, bin_type: Any) -> Any:
        return self.read_type(bin_type, Endian.NATIVE)
