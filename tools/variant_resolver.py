#!/usr/bin/env python3
"""
variant_resolver.py - Variant (enum) resolution engine

A Variants type lists candidate record shapes. Reading tries each candidate
at the same stream position, in declaration order, and commits to the first
one whose read succeeds - usually decided by a magic discriminator at the
start of the candidate. A candidate without a discriminator matches
anything that is long enough, so it belongs last.

When every candidate fails, the error depends on the policy:

    COLLECT_ALL  (default)  EnumErrors(pos, [(name, error), ...])
    UNEXPECTED              NoVariantMatch(pos)

Usage:
    class Zero(Record):
        magic = (U8, 0)

    class Two(Record):
        magic = (U8, 2)
        fields = [Field('a', U16), Field('b', U16)]

    class Test(Variants):
        endian = 'big'
        candidates = [Zero, Two]

    read(Test, io.BytesIO(b'\\x02\\0\\x03\\0\\x04'))   # -> Two(a=3, b=4)
"""

import logging
from enum import Enum, IntEnum
from typing import Any, List, Sequence, Tuple, Type

from binread import Record
from read_context import Endian, ReadContext
from read_errors import EnumErrors, NoVariantMatch, ReadError
from read_protocol import (
    NO_ARGS, BinType, NoArgs, seek_absolute, stream_position, takes_no_args,
    trace_read, type_name,
)

logger = logging.getLogger(__name__)


class ErrorPolicy(Enum):
    COLLECT_ALL = 'collect_all'
    UNEXPECTED = 'unexpected'

    # Spellings used by schema declarations
    RETURN_ALL_ERRORS = 'collect_all'
    RETURN_UNEXPECTED_ERROR = 'unexpected'


def resolve_variant(stream, ctx: ReadContext, candidates: Sequence[Any],
                    policy: ErrorPolicy = ErrorPolicy.COLLECT_ALL,
                    args: Any = NO_ARGS) -> Tuple[Any, Any]:
    """
    Try candidates in order at the current position.

    Returns (candidate, value) for the first successful read. Each failed
    attempt restores the position before the next one is tried.
    """
    pos = stream_position(stream)
    attempts: List[Tuple[str, ReadError]] = []
    for candidate in candidates:
        name = type_name(candidate)
        try:
            value = candidate.read(stream, ctx, args)
        except ReadError as e:
            logger.debug("variant %s rejected at 0x%X: %s", name, pos, e)
            attempts.append((name, e))
            seek_absolute(stream, pos)
            continue
        logger.debug("variant %s matched at 0x%X", name, pos)
        return candidate, value

    if policy is ErrorPolicy.UNEXPECTED:
        raise NoVariantMatch(pos)
    raise EnumErrors(pos, attempts)


class Variants:
    """
    Base class for enum-shaped types whose candidates are Record classes.

    Class attributes:
        candidates    ordered Record subclasses
        endian        byte order applied to every candidate
        error_policy  ErrorPolicy used when nothing matches
        imports       argument names, forwarded to every candidate
    """

    candidates: List[Type[Record]] = []
    endian: Any = None
    error_policy: ErrorPolicy = ErrorPolicy.COLLECT_ALL
    imports: Tuple[str, ...] = ()
    args_type: Any = NoArgs

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        for candidate in cls.candidates:
            if not (isinstance(candidate, type) and issubclass(candidate, Record)):
                raise TypeError(f"{cls.__name__}: candidate {candidate!r} is not a Record")
        cls.error_policy = ErrorPolicy(cls.error_policy)
        cls.args_type = tuple if cls.imports else NoArgs
        if cls.endian is not None:
            cls.endian = Endian.parse(cls.endian)

    def __init__(self):
        raise TypeError(f"{type(self).__name__} is resolved to one of its candidates, not instantiated")

    @classmethod
    def _context(cls, ctx: ReadContext) -> ReadContext:
        if cls.endian is not None:
            return ctx.with_endian(cls.endian)
        return ctx

    @classmethod
    def read(cls, stream, ctx: ReadContext, args: Any = NO_ARGS) -> Record:
        trace_read(stream, ctx, cls.__name__)
        _, value = resolve_variant(stream, cls._context(ctx), cls.candidates,
                                   cls.error_policy, args)
        return value

    @classmethod
    def resolve(cls, value: Record, stream, ctx: ReadContext, args: Any = NO_ARGS) -> None:
        type(value).resolve(value, stream, cls._context(ctx), args)

    @classmethod
    def candidate_names(cls) -> List[str]:
        return [c.__name__ for c in cls.candidates]


class ReprEnum(BinType):
    """
    Unit-only enum stored as a primitive representation.

    The decoded number must be a member of enum_cls; anything else fails
    with NoVariantMatch at the position of the representation.
    """

    def __init__(self, repr_type: Any, enum_cls: Type[IntEnum]):
        if not takes_no_args(repr_type):
            raise TypeError(f"Enum representation {type_name(repr_type)} must take no arguments")
        self.repr_type = repr_type
        self.enum_cls = enum_cls
        self.name = enum_cls.__name__

    def read(self, stream, ctx: ReadContext, args: Any = NO_ARGS) -> IntEnum:
        pos = stream_position(stream)
        raw = self.repr_type.read(stream, ctx, NO_ARGS)
        try:
            return self.enum_cls(raw)
        except ValueError:
            logger.debug("%s: no member for %r at 0x%X", self.name, raw, pos)
            raise NoVariantMatch(pos) from None
