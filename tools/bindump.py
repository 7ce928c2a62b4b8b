#!/usr/bin/env python3
"""
bindump.py - Decode binary files with a schema and run embedded test vectors

Usage:
    python tools/bindump.py schema.yaml data.bin
    python tools/bindump.py schema.yaml --hex "00 00 00 08 00 00 00 00 FF"
    python tools/bindump.py schema.yaml data.bin --definition entry --offset 0x40
    python tools/bindump.py schema.yaml --test --json

Features:
    - Decodes a file (or hex payload) into JSON
    - Runs the schema's test_vectors and reports pass/fail
    - Read failures are reported with their stream position
    - -v enables debug logging and per-field read tracing
"""

import argparse
import io
import json
import logging
import sys
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import yaml

from binread import read_args, to_python
from read_context import TRACE, default_context
from read_errors import ReadError
from read_protocol import args_default, seek_absolute
from schema_loader import SchemaError, SchemaModule, load_schema

logger = logging.getLogger(__name__)


@dataclass
class VectorResult:
    """Outcome of one test vector."""
    name: str
    passed: bool = False
    payload_hex: str = ""
    expected: Any = None
    actual: Any = None
    errors: List[str] = field(default_factory=list)


@dataclass
class ValidationResult:
    schema_valid: bool
    schema_errors: List[str] = field(default_factory=list)
    test_results: List[VectorResult] = field(default_factory=list)

    @property
    def tests_passed(self) -> int:
        return sum(1 for t in self.test_results if t.passed)

    @property
    def tests_failed(self) -> int:
        return self.total_tests - self.tests_passed

    @property
    def total_tests(self) -> int:
        return len(self.test_results)

    @property
    def all_passed(self) -> bool:
        return self.schema_valid and self.tests_failed == 0

    def to_dict(self) -> Dict[str, Any]:
        report = asdict(self)
        report.update(tests_passed=self.tests_passed, tests_failed=self.tests_failed,
                      total_tests=self.total_tests, all_passed=self.all_passed)
        return report


def parse_payload(payload: Any) -> bytes:
    """Hex text (spaces, commas and 0x prefixes allowed), a byte list, or bytes."""
    if isinstance(payload, (bytes, list)):
        return bytes(payload)
    if isinstance(payload, str):
        return bytes.fromhex(payload.replace('0x', '').replace(',', ' '))
    raise ValueError(f"Cannot parse payload: {payload!r}")


def values_match(expected: Any, actual: Any, tolerance: float = 0.001) -> Tuple[bool, str]:
    """Compare a vector's expected value with the decoded one.

    Dicts match on the expected keys only, numbers within tolerance, and
    bools only against bools.
    """
    if isinstance(expected, dict) and isinstance(actual, dict):
        for key, want in expected.items():
            if key not in actual:
                return False, f"missing key '{key}'"
            ok, msg = values_match(want, actual[key], tolerance)
            if not ok:
                return False, f"{key}: {msg}"
        return True, ""

    if isinstance(expected, list) and isinstance(actual, list):
        if len(expected) != len(actual):
            return False, f"list length {len(actual)}, expected {len(expected)}"
        for i, (want, got) in enumerate(zip(expected, actual)):
            ok, msg = values_match(want, got, tolerance)
            if not ok:
                return False, f"[{i}]: {msg}"
        return True, ""

    numeric = (int, float)
    if (isinstance(expected, numeric) and isinstance(actual, numeric)
            and not isinstance(expected, bool) and not isinstance(actual, bool)):
        ok = abs(expected - actual) <= tolerance
    else:
        ok = type(expected) is type(actual) and expected == actual
    return ok, "" if ok else f"expected {expected!r}, got {actual!r}"


def _vector_args(raw: Any) -> Optional[Tuple]:
    if raw is None:
        return None
    if isinstance(raw, list):
        return tuple(tuple(a) if isinstance(a, list) else a for a in raw)
    return (raw,)


def decode_stream(module: SchemaModule, stream, definition: Optional[str] = None,
                  endian: Any = None, offset: int = 0, args: Any = None,
                  trace: bool = False) -> Any:
    """Read one value of the chosen definition starting at offset."""
    bin_type = module.get(definition)
    ctx = default_context(endian if endian is not None else module.endian)
    if trace:
        ctx = ctx.with_flags(TRACE)
    if offset:
        seek_absolute(stream, offset)
    if args is None:
        args = args_default(bin_type)
    return read_args(bin_type, stream, args, ctx=ctx)


def run_test_vector(module: SchemaModule, tv: Dict[str, Any]) -> VectorResult:
    """Run a single test vector and return result."""
    name = tv.get('name', 'unnamed')
    expected_error = tv.get('error')
    result = VectorResult(
        name=name,
        expected=expected_error if expected_error else tv.get('expected'),
    )

    try:
        payload = parse_payload(tv.get('payload', ''))
        result.payload_hex = payload.hex().upper()
    except ValueError as e:
        result.errors.append(f"Failed to parse payload: {e}")
        return result

    try:
        value = decode_stream(module, io.BytesIO(payload),
                              definition=tv.get('definition'),
                              endian=tv.get('endian'),
                              args=_vector_args(tv.get('args')))
    except ReadError as e:
        result.actual = type(e).__name__
        if expected_error:
            if type(e).__name__ == expected_error:
                result.passed = True
            else:
                result.errors.append(f"expected {expected_error}, got {type(e).__name__}: {e}")
        else:
            result.errors.append(f"Decode failed: {e}")
        return result
    except (SchemaError, TypeError) as e:
        result.errors.append(f"Decode failed: {e}")
        return result

    result.actual = to_python(value)
    if expected_error:
        result.errors.append(f"expected {expected_error}, but decoding succeeded")
        return result

    match, msg = values_match(result.expected, result.actual)
    if not match:
        result.errors.append(msg)
    result.passed = not result.errors
    return result


def validate_schema(schema: Any) -> ValidationResult:
    """Build the schema and run all of its test vectors."""
    result = ValidationResult(schema_valid=True)
    try:
        module = load_schema(schema)
    except (SchemaError, ValueError, TypeError) as e:
        result.schema_valid = False
        result.schema_errors.append(str(e))
        return result

    for tv in module.test_vectors:
        if not isinstance(tv, dict) or 'payload' not in tv:
            result.schema_valid = False
            result.schema_errors.append(f"Test vector {tv!r}: missing 'payload'")
            continue
        result.test_results.append(run_test_vector(module, tv))
    return result


def print_results(result: ValidationResult, verbose: bool = False):
    """One line per vector, then a summary; failures list their errors."""
    if not result.schema_valid:
        print("Schema: INVALID")
        for error in result.schema_errors:
            print(f"  - {error}")
        return

    for tr in result.test_results:
        print(f"{'PASS' if tr.passed else 'FAIL'} {tr.name} [{tr.payload_hex}]")
        for error in tr.errors:
            print(f"    {error}")
        if verbose and tr.passed:
            print(f"    -> {tr.actual}")

    if result.all_passed:
        print(f"PASSED: All {result.total_tests} tests passed")
    else:
        print(f"FAILED: {result.tests_failed} of {result.total_tests} tests failed")


def _int_arg(text: str) -> int:
    return int(text, 0)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Decode binary data with a schema, or run its test vectors'
    )
    parser.add_argument('schema', help='Path to schema YAML file')
    parser.add_argument('input', nargs='?', help='Binary file to decode')
    parser.add_argument('--hex', dest='hex_payload', help='Decode a hex payload instead of a file')
    parser.add_argument('--definition', help='Named definition to decode (default: root)')
    parser.add_argument('--endian', choices=['big', 'little', 'native'],
                        help='Override the schema byte order')
    parser.add_argument('--offset', type=_int_arg, default=0,
                        help='Start reading at this offset (0x prefix allowed)')
    parser.add_argument('--test', action='store_true',
                        help='Run the embedded test vectors')
    parser.add_argument('--json', action='store_true', help='Output results as JSON')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Debug logging and per-field tracing')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    try:
        with open(args.schema) as f:
            schema = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        print(f"Error loading schema: {e}", file=sys.stderr)
        return 1

    if args.test:
        result = validate_schema(schema)
        if args.json:
            print(json.dumps(result.to_dict(), indent=2))
        else:
            print(f"Validating: {args.schema}")
            print("=" * 50)
            print_results(result, args.verbose)
        return 0 if result.all_passed else 1

    if args.input is None and args.hex_payload is None:
        parser.error('an input file or --hex payload is required unless --test is given')

    try:
        module = load_schema(schema)
    except (SchemaError, ValueError, TypeError) as e:
        print(f"Invalid schema: {e}", file=sys.stderr)
        return 1

    try:
        if args.hex_payload is not None:
            stream = io.BytesIO(parse_payload(args.hex_payload))
        else:
            stream = open(args.input, 'rb')
    except (OSError, ValueError) as e:
        print(f"Error reading input: {e}", file=sys.stderr)
        return 1

    with stream:
        try:
            value = decode_stream(module, stream, definition=args.definition,
                                  endian=args.endian, offset=args.offset,
                                  trace=args.verbose)
        except ReadError as e:
            print(f"Decode failed:\n{e.describe(2)}", file=sys.stderr)
            return 1
        except (SchemaError, TypeError) as e:
            print(f"Decode failed: {e}", file=sys.stderr)
            return 1
        logger.debug("decoded %d bytes", stream.tell() - args.offset)

    data = to_python(value)
    if args.json:
        print(json.dumps(data, indent=2))
    else:
        print(yaml.safe_dump(data, sort_keys=False, default_flow_style=False), end='')
    return 0


if __name__ == '__main__':
    sys.exit(main())
