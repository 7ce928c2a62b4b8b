#!/usr/bin/env python3
"""
read_context.py - Scoped, extensible read configuration

A ReadContext is threaded through every read call. It maps a small set of
built-in keys (byte order, base offset, declared element count, diagnostic
flags) plus any number of extension tags to values.

Contexts are immutable: with_value() returns a new context that shares its
tail with the parent, so overlays are cheap and a parent never changes.

Usage:
    from read_context import ReadContext, Endian, OFFSET

    ctx = ReadContext(endian='big')
    inner = ctx.with_offset(0x40)
    assert ctx.offset == 0 and inner.offset == 0x40

    # Extension slot: any hashable tag works as a key
    VERSION = ContextKey('format_version', default=1)
    v2 = ctx.with_value(VERSION, 2)

Environment:
    BINREAD_TRACE=1   seed top-level contexts with the 'trace' diagnostic flag
"""

import os
import sys
from collections import namedtuple
from enum import Enum
from typing import Any, Dict, Hashable, Iterable, Iterator, Optional, Tuple


class Endian(Enum):
    BIG = 'big'
    LITTLE = 'little'
    NATIVE = 'native'

    @property
    def byteorder(self) -> str:
        """Concrete order for int.from_bytes ('big' or 'little')."""
        if self is Endian.NATIVE:
            return sys.byteorder
        return self.value

    @property
    def struct_prefix(self) -> str:
        return {'big': '>', 'little': '<'}[self.byteorder]

    @classmethod
    def parse(cls, value: Any) -> 'Endian':
        """Accept an Endian or one of big/little/native/be/le/ne."""
        if isinstance(value, cls):
            return value
        aliases = {
            'big': cls.BIG, 'be': cls.BIG,
            'little': cls.LITTLE, 'le': cls.LITTLE,
            'native': cls.NATIVE, 'ne': cls.NATIVE,
        }
        key = str(value).lower()
        if key not in aliases:
            raise ValueError(f"Unknown byte order: {value!r}")
        return aliases[key]

    @staticmethod
    def from_be_bom(bom: int) -> Optional['Endian']:
        """Byte order implied by a BOM that was read big-endian."""
        return {0xFEFF: Endian.BIG, 0xFFFE: Endian.LITTLE}.get(bom)

    @staticmethod
    def from_le_bom(bom: int) -> Optional['Endian']:
        """Byte order implied by a BOM that was read little-endian."""
        return {0xFEFF: Endian.LITTLE, 0xFFFE: Endian.BIG}.get(bom)

    @staticmethod
    def parse_bom(stream, ctx: 'ReadContext' = None, args: Tuple = ()) -> 'Endian':
        """
        Read a 2-byte byte-order mark and return the order it announces.

        Usable as a parse_with function. Raises BadMagic if the mark is
        neither FE FF nor FF FE.
        """
        from primitive_codec import U16
        from read_errors import BadMagic
        from read_protocol import stream_position

        pos = stream_position(stream)
        bom = U16.decode(stream, Endian.BIG)
        endian = Endian.from_be_bom(bom)
        if endian is None:
            raise BadMagic(pos, bom)
        return endian


class ContextKey:
    """Stable tag for one kind of context value, with its default."""

    __slots__ = ('name', 'default')

    def __init__(self, name: str, default: Any = None):
        self.name = name
        self.default = default

    def __repr__(self) -> str:
        return f"ContextKey({self.name!r})"


ENDIAN = ContextKey('endian', Endian.NATIVE)
OFFSET = ContextKey('offset', 0)
COUNT = ContextKey('count', None)
DIAGNOSTICS = ContextKey('diagnostics', frozenset())

BUILTIN_KEYS = (ENDIAN, OFFSET, COUNT, DIAGNOSTICS)

# Diagnostic flags
TRACE = 'trace'

_MISSING = object()

_Node = namedtuple('_Node', 'key value next')


class ReadContext:
    """
    Immutable association list of context values.

    Lookups walk from the newest overlay to the root; the first entry for a
    key wins. Built-in keys are always present in the root node.
    """

    __slots__ = ('_node',)

    def __init__(self, endian: Any = None, offset: int = 0,
                 count: Optional[int] = None, diagnostics: Iterable[str] = ()):
        root = (
            (DIAGNOSTICS, frozenset(diagnostics)),
            (COUNT, count),
            (OFFSET, offset),
            (ENDIAN, ENDIAN.default if endian is None else Endian.parse(endian)),
        )
        node = None
        for key, value in root:
            node = _Node(key, value, node)
        self._node = node

    @classmethod
    def _wrap(cls, node: _Node) -> 'ReadContext':
        ctx = cls.__new__(cls)
        ctx._node = node
        return ctx

    def _find(self, key: Hashable) -> Optional[_Node]:
        node = self._node
        while node is not None:
            if node.key is key or node.key == key:
                return node
            node = node.next
        return None

    # -- core operations ---------------------------------------------------

    def get(self, key: Hashable, default: Any = _MISSING) -> Any:
        """Value for key, falling back to the caller's or the key's default."""
        node = self._find(key)
        if node is not None:
            return node.value
        if default is not _MISSING:
            return default
        if isinstance(key, ContextKey):
            return key.default
        raise KeyError(key)

    def with_value(self, key: Hashable, value: Any) -> 'ReadContext':
        """New context with key overridden; self is unaffected."""
        head = self._node
        # Collapse repeated overrides of the same key.
        tail = head.next if head.key is key else head
        return ReadContext._wrap(_Node(key, value, tail))

    def contains(self, key: Hashable) -> bool:
        return key in BUILTIN_KEYS or self._find(key) is not None

    __contains__ = contains

    def overlay(self, overrides: Dict[Hashable, Any]) -> 'ReadContext':
        ctx = self
        for key, value in overrides.items():
            if key is ENDIAN:
                value = Endian.parse(value)
            ctx = ctx.with_value(key, value)
        return ctx

    def items(self) -> Iterator[Tuple[Hashable, Any]]:
        """Effective (key, value) pairs, newest first."""
        seen = []
        node = self._node
        while node is not None:
            if not any(node.key is k for k in seen):
                seen.append(node.key)
                yield node.key, node.value
            node = node.next

    # -- typed accessors ---------------------------------------------------

    @property
    def endian(self) -> Endian:
        return self.get(ENDIAN)

    @property
    def offset(self) -> int:
        return self.get(OFFSET)

    @property
    def count(self) -> Optional[int]:
        return self.get(COUNT)

    @property
    def diagnostics(self) -> frozenset:
        return self.get(DIAGNOSTICS)

    def has_flag(self, flag: str) -> bool:
        return flag in self.diagnostics

    def with_endian(self, endian: Any) -> 'ReadContext':
        return self.with_value(ENDIAN, Endian.parse(endian))

    def with_offset(self, offset: int) -> 'ReadContext':
        return self.with_value(OFFSET, offset)

    def with_count(self, count: Optional[int]) -> 'ReadContext':
        return self.with_value(COUNT, count)

    def with_flags(self, *flags: str) -> 'ReadContext':
        return self.with_value(DIAGNOSTICS, self.diagnostics | frozenset(flags))

    def __repr__(self) -> str:
        parts = []
        for key, value in self.items():
            name = key.name if isinstance(key, ContextKey) else repr(key)
            if isinstance(value, Endian):
                value = value.value
            elif isinstance(value, frozenset):
                value = sorted(value)
            parts.append(f"{name}={value!r}")
        return f"ReadContext({', '.join(parts)})"


def default_context(endian: Any = None) -> ReadContext:
    """Root context for a top-level read."""
    flags = (TRACE,) if os.environ.get('BINREAD_TRACE') == '1' else ()
    return ReadContext(endian=endian, diagnostics=flags)
