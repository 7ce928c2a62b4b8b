#!/usr/bin/env python3
"""
read_errors.py - Error taxonomy for the binread runtime

Every failure detected while reading is a ReadError subclass carrying the
stream position at which it was detected (IoError excepted - the stream
itself reports where it failed).

    IoError         stream could not supply bytes / seek
    BadMagic        fixed discriminator mismatch
    EnumErrors      no variant candidate matched (per-candidate detail)
    NoVariantMatch  no variant candidate matched (reduced detail)
    AssertFail      post-read invariant failed
    CustomError     user parser raised

Contract violations are not read errors and derive from the builtin types:

    MissingArgsError        (TypeError)     type needs args, none supplied
    UnresolvedPointerError  (RuntimeError)  pointer used before resolve
"""

from typing import Any, List, Optional, Tuple


class ReadError(Exception):
    """Base class for all read failures."""

    pos: Optional[int] = None

    def describe(self, indent: int = 0) -> str:
        """Human readable, possibly multi-line, description."""
        return ' ' * indent + str(self)


class IoError(ReadError):
    """Wraps a failure of the underlying stream."""

    def __init__(self, cause: BaseException):
        super().__init__(f"I/O error: {cause}")
        self.cause = cause


class BadMagic(ReadError):
    """A fixed magic/discriminator value did not match."""

    def __init__(self, pos: int, found: Any, expected: Any = None):
        msg = f"Bad magic at 0x{pos:X}: found {found!r}"
        if expected is not None:
            msg += f", expected {expected!r}"
        super().__init__(msg)
        self.pos = pos
        self.found = found
        self.expected = expected


class AssertFail(ReadError):
    """A post-read assertion was false."""

    def __init__(self, pos: int, message: str):
        super().__init__(f"Assertion failed at 0x{pos:X}: {message}")
        self.pos = pos
        self.message = message


class CustomError(ReadError):
    """An error raised by a user supplied parser or mapping function."""

    def __init__(self, pos: int, err: BaseException):
        super().__init__(f"Error at 0x{pos:X}: {err}")
        self.pos = pos
        self.err = err


class NoVariantMatch(ReadError):
    """No candidate matched; per-candidate detail was discarded."""

    def __init__(self, pos: int):
        super().__init__(f"No variant matched at 0x{pos:X}")
        self.pos = pos


class EnumErrors(ReadError):
    """No candidate matched; carries every (candidate, error) attempt in order."""

    def __init__(self, pos: int, variant_errors: List[Tuple[str, ReadError]]):
        names = ', '.join(name for name, _ in variant_errors)
        super().__init__(f"No variant matched at 0x{pos:X} (tried: {names})")
        self.pos = pos
        self.variant_errors = variant_errors

    def describe(self, indent: int = 0) -> str:
        pad = ' ' * indent
        lines = [f"{pad}No variant matched at 0x{self.pos:X}:"]
        for name, err in self.variant_errors:
            lines.append(f"{pad}  {name}:")
            lines.append(err.describe(indent + 4))
        return '\n'.join(lines)


class MissingArgsError(TypeError):
    """Raised at the call boundary when a type requires explicit arguments."""


class UnresolvedPointerError(RuntimeError):
    """Raised when a pointer target is accessed before phase 2 resolved it."""
