#!/usr/bin/env python3
"""
schema_loader.py - Build runtime record types from YAML schema definitions

Turns a declarative schema (YAML file, YAML text or dict) into Record and
Variants classes that the binread runtime reads directly. Nothing is
generated as source; the schema is reflected into types once, at load time.

Usage:
    from schema_loader import load_schema

    module = load_schema('schemas/archive.yaml')
    value = module.decode(payload)            # root type
    entry = module.decode(payload, 'entry')   # a named definition

Schema format:
    name: archive
    endian: big                  # default byte order for decode()
    magic: "ARC"                 # string -> ASCII bytes, or {type: u16, value: 1}
    definitions:
      entry:
        fields:
          - {name: len, type: u8, temp: true}
          - {name: data, type: u8, count: $len}
      shape:
        variants: [circle, square]
        policy: collect_all      # or: unexpected
    fields:
      - {name: count, type: u16}
      - name: table
        type: {pointer: u32, target: entry, relative: false}

Types:
    u8 .. u128, i8 .. i128 (s8/int8 aliases), f16/f32/f64, char,
    cstring, wstring, bytes, bom, <definition> or '#/definitions/<name>',
    {pointer: T, target: T, relative: bool}
    {array: T, size: N}
    {punctuated: T, separator: T, trailing: bool}   (needs count)
    {enum: T, values: {0: idle, 1: running}}

Field keys:
    name, type, endian, count, offset, temp, calc, expect, try,
    pad_before, align_before, pos

Expressions (count, offset, calc):
    42                           literal
    $field                       earlier field (temp fields included)
    {op: add|sub|mul|div, a: .., b: ..}
"""

import re
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import yaml

from binread import Array, Field, Record, decode as decode_bytes
from file_ptr import AbsPtr, RelPtr
from primitive_codec import PRIMITIVES, U8
from read_context import ENDIAN, Endian
from read_protocol import BinType, NO_ARGS, NoArgs
from sequence_helpers import (
    Bytes, Counted, NullString, NullWideString, Punctuated, WithPos,
)
from variant_resolver import ErrorPolicy, ReprEnum, Variants


class SchemaError(ValueError):
    """The schema itself is malformed."""


FIELD_KEYS = {
    'name', 'type', 'endian', 'count', 'offset', 'temp', 'calc', 'expect',
    'try', 'pad_before', 'align_before', 'pos', 'description', 'unit',
}

SEQUENCE_TYPES = (Counted, Punctuated)


def _class_name(name: str) -> str:
    """archive_entry -> ArchiveEntry"""
    parts = re.split(r'[^0-9A-Za-z]+', str(name))
    result = ''.join(p[:1].upper() + p[1:] for p in parts if p)
    if not result or result[0].isdigit():
        result = 'T' + result
    return result


class DefinitionRef(BinType):
    """Late-bound reference to a named definition (allows recursion)."""

    def __init__(self, module: 'SchemaModule', name: str):
        self.module = module
        self.name = name

    @property
    def target(self) -> Any:
        try:
            return self.module.types[self.name]
        except KeyError:
            raise SchemaError(f"Definition not found: {self.name}") from None

    @property
    def args_type(self) -> Any:
        built = self.module.types.get(self.name)
        if built is not None:
            return getattr(built, 'args_type', NoArgs)
        # Not built yet (forward or recursive reference): decide from the declaration
        declared = self.module.declarations.get(self.name, {})
        return tuple if declared.get('imports') else NoArgs

    def read(self, stream, ctx, args=NO_ARGS):
        return self.target.read(stream, ctx, args)

    def resolve(self, value, stream, ctx, args=NO_ARGS):
        self.target.resolve(value, stream, ctx, args)


# =============================================================================
# Expressions
# =============================================================================

_OPS: Dict[str, Callable[[Any, Any], Any]] = {
    'add': lambda a, b: a + b,
    'sub': lambda a, b: a - b,
    'mul': lambda a, b: a * b,
    'div': lambda a, b: a // b if isinstance(a, int) and isinstance(b, int) else a / b,
}


def compile_expr(expr: Any, where: str) -> Any:
    """Literal stays literal; $refs and compute dicts become callables."""
    if isinstance(expr, str) and expr.startswith('$'):
        ref = expr[1:]

        def lookup(scope: Dict[str, Any]) -> Any:
            if ref not in scope:
                raise KeyError(f"'{ref}' is not decoded before {where}")
            return scope[ref]
        return lookup

    if isinstance(expr, dict):
        op = expr.get('op')
        if op not in _OPS:
            raise SchemaError(f"{where}: compute 'op' must be one of {sorted(_OPS)}")
        a = compile_expr(expr.get('a'), where)
        b = compile_expr(expr.get('b'), where)
        fn = _OPS[op]

        def compute(scope: Dict[str, Any]) -> Any:
            left = a(scope) if callable(a) else a
            right = b(scope) if callable(b) else b
            return fn(left, right)
        return compute

    if isinstance(expr, (int, float)):
        return expr
    raise SchemaError(f"{where}: cannot interpret expression {expr!r}")


def parse_magic(magic: Any, where: str) -> Any:
    """'ABC' -> b'ABC'; [1, 2] -> bytes; {type: u16, value: 1} -> (U16, 1); 7 -> (U8, 7)."""
    if isinstance(magic, bytes):
        return magic
    if isinstance(magic, str):
        return magic.encode('latin-1')
    if isinstance(magic, list):
        return bytes(magic)
    if isinstance(magic, bool):
        raise SchemaError(f"{where}: invalid magic {magic!r}")
    if isinstance(magic, int):
        return (U8, magic)
    if isinstance(magic, dict):
        type_name = magic.get('type', 'u8')
        if type_name not in PRIMITIVES:
            raise SchemaError(f"{where}: magic type must be a primitive, got {type_name!r}")
        if 'value' not in magic:
            raise SchemaError(f"{where}: magic needs a 'value'")
        return (PRIMITIVES[type_name], magic['value'])
    raise SchemaError(f"{where}: invalid magic {magic!r}")


def parse_policy(policy: Any, where: str) -> ErrorPolicy:
    """collect_all / return_all_errors / unexpected / return_unexpected_error"""
    key = str(policy).upper()
    if key not in ErrorPolicy.__members__:
        raise SchemaError(f"{where}: unknown variant policy {policy!r}")
    return ErrorPolicy[key]


# =============================================================================
# Loaded schema
# =============================================================================

@dataclass
class SchemaModule:
    """Types built from one schema document."""
    name: str
    endian: Optional[Endian] = None
    root: Any = None
    types: Dict[str, Any] = field(default_factory=dict)
    test_vectors: List[Dict[str, Any]] = field(default_factory=list)
    declarations: Dict[str, Any] = field(default_factory=dict, repr=False)

    def get(self, definition: Optional[str] = None) -> Any:
        if definition is None:
            if self.root is None:
                raise SchemaError(f"Schema '{self.name}' has no root 'fields' or 'variants'")
            return self.root
        key = definition.split('/')[-1]
        if key not in self.types:
            raise SchemaError(f"Definition not found: {definition}")
        return self.types[key]

    def decode(self, data: bytes, definition: Optional[str] = None,
               endian: Any = None, args: Any = None) -> Any:
        """Decode a complete value from bytes."""
        bin_type = self.get(definition)
        if endian is None:
            endian = self.endian
        return decode_bytes(bin_type, data, endian=endian, args=args)


class SchemaBuilder:
    """Reflects a schema dict into runtime types."""

    def __init__(self, schema: Dict[str, Any]):
        if not isinstance(schema, dict):
            raise SchemaError("Schema must be a mapping")
        self.schema = schema
        endian = schema.get('endian')
        self.module = SchemaModule(
            name=schema.get('name', 'unknown'),
            endian=Endian.parse(endian) if endian is not None else None,
            test_vectors=schema.get('test_vectors', []) or [],
        )
        self.definitions = schema.get('definitions', {}) or {}
        self.module.declarations = self.definitions

    def build(self) -> SchemaModule:
        for def_name, definition in self.definitions.items():
            if def_name not in self.module.types:
                self.module.types[def_name] = self._build_definition(def_name, definition)
        if 'fields' in self.schema or 'variants' in self.schema:
            root_def = {k: v for k, v in self.schema.items()
                        if k in ('fields', 'variants', 'magic', 'imports', 'policy')}
            self.module.root = self._build_definition(self.module.name, root_def)
        elif 'root' in self.schema:
            self.module.root = self._resolve_named(self.schema['root'], 'root')
        return self.module

    # -- definitions -------------------------------------------------------

    def _build_definition(self, name: str, definition: Any) -> Any:
        if not isinstance(definition, dict):
            raise SchemaError(f"definitions.{name}: must be an object")
        if 'variants' in definition:
            return self._build_variants(name, definition)
        if 'fields' in definition or 'magic' in definition:
            return self._build_record(name, definition)
        if 'type' in definition:
            return self._build_type(definition['type'], f"definitions.{name}")
        raise SchemaError(f"definitions.{name}: needs 'fields', 'variants' or 'type'")

    def _build_record(self, name: str, definition: Dict[str, Any]) -> type:
        where = f"definitions.{name}"
        fields = definition.get('fields', []) or []
        if not isinstance(fields, list):
            raise SchemaError(f"{where}.fields: must be an array")
        attrs: Dict[str, Any] = {
            'fields': [self._build_field(fd, f"{where}.fields[{i}]") for i, fd in enumerate(fields)],
            'imports': tuple(definition.get('imports', ()) or ()),
        }
        if definition.get('endian') is not None:
            attrs['endian'] = Endian.parse(definition['endian'])
        if definition.get('magic') is not None:
            attrs['magic'] = parse_magic(definition['magic'], where)
        try:
            return type(_class_name(name), (Record,), attrs)
        except (TypeError, ValueError) as e:
            raise SchemaError(f"{where}: {e}") from e

    def _build_variants(self, name: str, definition: Dict[str, Any]) -> type:
        where = f"definitions.{name}"
        candidates = []
        for i, cand in enumerate(definition['variants'] or []):
            if isinstance(cand, str):
                target = self._definition_type(cand, f"{where}.variants[{i}]")
            elif isinstance(cand, dict):
                cand_name = cand.get('name', f"{name}_{i}")
                target = self._build_record(cand_name, cand)
            else:
                raise SchemaError(f"{where}.variants[{i}]: must be a name or an object")
            candidates.append(target)
        attrs: Dict[str, Any] = {
            'candidates': candidates,
            'error_policy': parse_policy(definition.get('policy', 'collect_all'), where),
            'imports': tuple(definition.get('imports', ()) or ()),
        }
        if definition.get('endian') is not None:
            attrs['endian'] = Endian.parse(definition['endian'])
        try:
            return type(_class_name(name), (Variants,), attrs)
        except (TypeError, ValueError) as e:
            raise SchemaError(f"{where}: {e}") from e

    def _definition_type(self, ref: str, where: str) -> type:
        """Variant candidates must be records, so build them eagerly."""
        key = ref.split('/')[-1]
        if key in self.module.types:
            return self.module.types[key]
        if key not in self.definitions:
            raise SchemaError(f"{where}: definition not found: {ref}")
        built = self._build_definition(key, self.definitions[key])
        self.module.types[key] = built
        return built

    def _resolve_named(self, ref: str, where: str) -> Any:
        key = ref.split('/')[-1]
        if ref.startswith('#') and not ref.startswith('#/definitions/'):
            raise SchemaError(f"{where}: unsupported $ref format: {ref}")
        if key not in self.definitions:
            raise SchemaError(f"{where}: unknown type '{ref}'")
        return DefinitionRef(self.module, key)

    # -- types -------------------------------------------------------------

    def _build_type(self, decl: Any, where: str) -> Any:
        if isinstance(decl, str):
            if decl in PRIMITIVES:
                return PRIMITIVES[decl]
            if decl == 'cstring':
                return NullString()
            if decl == 'wstring':
                return NullWideString()
            if decl == 'bytes':
                return Bytes
            return self._resolve_named(decl, where)

        if not isinstance(decl, dict):
            raise SchemaError(f"{where}: invalid type {decl!r}")

        if 'pointer' in decl:
            ptr_type = self._build_type(decl['pointer'], f"{where}.pointer")
            if 'target' not in decl:
                raise SchemaError(f"{where}: pointer needs a 'target'")
            target = self._build_type(decl['target'], f"{where}.target")
            cls = RelPtr if decl.get('relative', False) else AbsPtr
            return cls(ptr_type, target)

        if 'array' in decl:
            if 'size' not in decl:
                raise SchemaError(f"{where}: array needs a 'size'")
            return Array(self._build_type(decl['array'], f"{where}.array"), int(decl['size']))

        if 'punctuated' in decl:
            if 'separator' not in decl:
                raise SchemaError(f"{where}: punctuated needs a 'separator'")
            elem = self._build_type(decl['punctuated'], f"{where}.punctuated")
            sep = self._build_type(decl['separator'], f"{where}.separator")
            if decl.get('trailing', False):
                return Punctuated.separated_trailing(elem, sep)
            return Punctuated.separated(elem, sep)

        if 'enum' in decl:
            repr_type = self._build_type(decl['enum'], f"{where}.enum")
            values = decl.get('values') or {}
            if isinstance(values, list):
                members = [(str(label), i) for i, label in enumerate(values)]
            elif isinstance(values, dict):
                members = [(str(label), int(k)) for k, label in values.items()]
            else:
                raise SchemaError(f"{where}: enum 'values' must be a list or mapping")
            try:
                enum_cls = IntEnum(_class_name(decl.get('name', 'Enum')), members)
            except (TypeError, ValueError) as e:
                raise SchemaError(f"{where}: {e}") from e
            return ReprEnum(repr_type, enum_cls)

        raise SchemaError(f"{where}: unknown type construct {sorted(decl)}")

    # -- fields ------------------------------------------------------------

    def _build_field(self, fd: Any, where: str) -> Field:
        if not isinstance(fd, dict):
            raise SchemaError(f"{where}: must be an object")
        if 'name' not in fd:
            raise SchemaError(f"{where}: missing 'name'")
        unknown = set(fd) - FIELD_KEYS
        if unknown:
            raise SchemaError(f"{where}: unknown keys {sorted(unknown)}")
        name = fd['name']
        where = f"{where} ({name})"

        kwargs: Dict[str, Any] = {
            'temp': bool(fd.get('temp', False)),
            'try_': bool(fd.get('try', False)),
            'pad_before': int(fd.get('pad_before', 0)),
            'align_before': fd.get('align_before'),
        }
        if fd.get('endian') is not None:
            kwargs['endian'] = Endian.parse(fd['endian'])
        if 'offset' in fd:
            kwargs['offset'] = compile_expr(fd['offset'], where)
        if 'expect' in fd:
            expected = fd['expect']
            kwargs['assert_'] = (lambda scope, n=name, v=expected: scope[n] == v,
                                 f"{name} != {expected!r}")

        if 'calc' in fd:
            if 'type' in fd:
                raise SchemaError(f"{where}: 'calc' fields have no type")
            calc = compile_expr(fd['calc'], where)
            kwargs['calc'] = calc if callable(calc) else (lambda scope, v=calc: v)
            return Field(name, **kwargs)

        if 'type' not in fd:
            raise SchemaError(f"{where}: missing 'type'")

        if fd['type'] == 'bom':
            kwargs['parse_with'] = Endian.parse_bom
            kwargs['set_context'] = lambda scope, n=name: {ENDIAN: scope[n]}
            return Field(name, **kwargs)

        bin_type = self._build_type(fd['type'], where)
        if 'count' in fd:
            kwargs['count'] = compile_expr(fd['count'], where)
            if not isinstance(bin_type, SEQUENCE_TYPES) and bin_type is not Bytes:
                bin_type = Counted(bin_type)
        elif isinstance(bin_type, Punctuated):
            raise SchemaError(f"{where}: punctuated fields need a 'count'")
        if fd.get('pos'):
            bin_type = WithPos(bin_type)
        return Field(name, bin_type, **kwargs)


def load_schema(source: Union[str, Path, Dict[str, Any]]) -> SchemaModule:
    """Load a schema from a dict, a YAML file path, or YAML text."""
    if isinstance(source, dict):
        schema = source
    elif isinstance(source, Path) or (isinstance(source, str) and '\n' not in source
                                      and source.endswith(('.yaml', '.yml'))):
        with open(source, 'r') as f:
            schema = yaml.safe_load(f)
    else:
        schema = yaml.safe_load(source)
    return SchemaBuilder(schema).build()
