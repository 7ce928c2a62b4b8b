#!/usr/bin/env python3
"""
read_protocol.py - The two-phase read/resolve contract

Every decodable type T exposes:

    T.read(stream, ctx, args)            -> value (phase 1, may be incomplete)
    T.resolve(value, stream, ctx, args)  -> None  (phase 2)
    T.args_type                          -> NoArgs for the empty bundle

Phase 1 consumes exactly the bytes of the value's primary representation at
the current position. Phase 2 runs only after phase 1 of the whole value
tree has finished, visits values in the same order, and must leave the
stream where it found it.

Types are either BinType instances (primitives, arrays, pointers...) or
Record/Variants classes, which implement the same methods as classmethods.

This module also holds the stream helpers every reader goes through, so
that stream failures are reported uniformly as IoError.
"""

import io
import logging
from typing import Any, Tuple

from read_context import TRACE, ReadContext
from read_errors import AssertFail, IoError, MissingArgsError

logger = logging.getLogger(__name__)


class NoArgs:
    """Marker argument type: the type can be read without arguments."""


NO_ARGS: Tuple = ()


def type_name(bin_type: Any) -> str:
    """Display name of a type descriptor or record class."""
    return (getattr(bin_type, 'name', None)
            or getattr(bin_type, '__name__', None)
            or repr(bin_type))


def takes_no_args(bin_type: Any) -> bool:
    return getattr(bin_type, 'args_type', NoArgs) is NoArgs


def args_default(bin_type: Any) -> Tuple:
    """
    Arguments for a zero-argument read.

    Only types whose args_type is NoArgs have one; anything else must be
    given explicit arguments and fails here, at the call boundary.
    """
    if takes_no_args(bin_type):
        return NO_ARGS
    raise MissingArgsError(
        f"{type_name(bin_type)} requires explicit arguments ({type_name(bin_type.args_type)})"
    )


class BinType:
    """Base class for type descriptors."""

    name: str = None
    args_type: Any = NoArgs

    def read(self, stream, ctx: ReadContext, args: Any = NO_ARGS) -> Any:
        raise NotImplementedError

    def resolve(self, value: Any, stream, ctx: ReadContext, args: Any = NO_ARGS) -> None:
        return None

    def __repr__(self) -> str:
        return self.name or type(self).__name__


# =============================================================================
# Stream helpers
# =============================================================================

def stream_position(stream) -> int:
    try:
        return stream.tell()
    except (OSError, ValueError) as e:
        raise IoError(e) from e


def seek_absolute(stream, pos: int) -> int:
    if pos < 0:
        raise IoError(ValueError(f"negative seek position {pos}"))
    try:
        return stream.seek(pos, io.SEEK_SET)
    except (OSError, ValueError) as e:
        raise IoError(e) from e


def seek_relative(stream, delta: int) -> int:
    try:
        return stream.seek(delta, io.SEEK_CUR)
    except (OSError, ValueError) as e:
        raise IoError(e) from e


def read_exact(stream, size: int) -> bytes:
    """Read exactly size bytes or fail with IoError."""
    if size < 0:
        raise AssertFail(stream_position(stream), f"negative length {size}")
    try:
        data = stream.read(size)
    except (OSError, ValueError) as e:
        raise IoError(e) from e
    if data is None or len(data) < size:
        got = 0 if data is None else len(data)
        raise IoError(EOFError(f"unexpected end of stream: need {size} bytes, got {got}"))
    return bytes(data)


def trace_read(stream, ctx: ReadContext, what: Any) -> None:
    """Log a read at DEBUG when the context carries the trace flag."""
    if ctx.has_flag(TRACE) and logger.isEnabledFor(logging.DEBUG):
        logger.debug("read %s at 0x%X (%s)", what, stream_position(stream), ctx.endian.value)
