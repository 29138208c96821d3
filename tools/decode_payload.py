#!/usr/bin/env python3
"""
decode_payload.py - Decode a device payload into a UKHAS sentence

Usage:
    python tools/decode_payload.py "01 67 00 EB" --encoding cayenne --port 1
    python tools/decode_payload.py AWcA6w== --base64 --encoding cayenne --json
    python tools/decode_payload.py PAYLOAD --config decoder.yaml --device BALLOON1
    python tools/decode_payload.py --vectors vectors.yaml

Vector file format:

    encoding: cayenne                 # default for all vectors
    test_vectors:
      - name: temperature
        payload: "01 67 00 EB"
        port: 1
        device: BALLOON1
        counter: 7
        time: "2024-05-01T12:00:00Z"
        expected_fields: ["23.5"]
      - name: truncated
        payload: "01 67 00"
        expected_error: BufferUnderflowError
"""

import argparse
import base64
import binascii
import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from cayenne_types import DEFAULT_REGISTRY, TypeRegistry, load_type_definitions
from decode_errors import DecodeError
from decode_logging import configure_logging
from decoder_config import ConfigError, DecoderConfig, load_config
from payload_decoder import DecodeContext, PayloadDecoder

DEFAULT_DEVICE = 'NOCALL'


def parse_payload(payload: Any, is_base64: bool = False) -> bytes:
    """Parse payload from hex text, base64 text or a list of byte values."""
    if isinstance(payload, bytes):
        return payload

    if isinstance(payload, list):
        return bytes(payload)

    if isinstance(payload, str):
        if is_base64:
            return base64.b64decode(payload, validate=True)
        # Remove spaces, 0x prefixes
        clean = payload.replace(' ', '').replace('0x', '').replace(',', '')
        return bytes.fromhex(clean)

    raise ValueError(f"Cannot parse payload: {payload}")


def parse_time(value: Any) -> datetime:
    """ISO 8601 text (or a YAML timestamp) to an aware datetime, default now."""
    if value is None:
        return datetime.now(timezone.utc)
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# =============================================================================
# Test vectors
# =============================================================================

@dataclass
class VectorResult:
    """Result of a single test vector."""
    name: str
    passed: bool
    payload_hex: str = ""
    expected: Any = None
    actual: Any = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'passed': self.passed,
            'payload': self.payload_hex,
            'expected': self.expected,
            'actual': self.actual,
            'errors': self.errors,
        }


def run_vector(tv: Dict[str, Any], default_encoding: Optional[str],
               registry: TypeRegistry = DEFAULT_REGISTRY) -> VectorResult:
    """Run a single test vector and return its result."""
    result = VectorResult(name=tv.get('name', 'unnamed'), passed=False)
    expected_error = tv.get('expected_error')
    result.expected = expected_error or tv.get('expected_fields')

    try:
        payload = parse_payload(tv.get('payload', ''), tv.get('base64', False))
        result.payload_hex = payload.hex().upper()
        decoder = PayloadDecoder(tv.get('encoding', default_encoding), registry)
        context = DecodeContext(
            device_id=str(tv.get('device', DEFAULT_DEVICE)),
            counter=int(tv.get('counter', 0)),
            receive_time=parse_time(tv.get('time')),
            port=tv.get('port'),
            payload_fields=tv.get('fields'),
        )
    except (ValueError, binascii.Error) as e:
        result.errors.append(f"Invalid test vector: {e}")
        return result

    try:
        sentence = decoder.decode(payload, context)
    except DecodeError as e:
        result.actual = type(e).__name__
        if expected_error != type(e).__name__:
            result.errors.append(f"Decode failed: {type(e).__name__}: {e}")
        result.passed = not result.errors
        return result
    except ValueError as e:
        result.errors.append(f"Invalid test vector: {e}")
        return result

    result.actual = sentence.fields
    if expected_error:
        result.errors.append(f"Expected {expected_error}, got fields {sentence.fields}")
    elif 'expected_fields' in tv:
        expected = [str(v) for v in tv['expected_fields']]
        if expected != sentence.fields:
            result.errors.append(f"Expected fields {expected}, got {sentence.fields}")
    if 'expected_sentence' in tv and sentence.format().strip() != tv['expected_sentence']:
        result.errors.append(f"Expected sentence {tv['expected_sentence']}, got {sentence.format().strip()}")

    result.passed = not result.errors
    return result


def run_vectors(document: Dict[str, Any],
                registry: TypeRegistry = DEFAULT_REGISTRY) -> List[VectorResult]:
    """Run all vectors of a parsed vector file."""
    vectors = document.get('test_vectors', [])
    if not isinstance(vectors, list):
        raise ValueError("'test_vectors' must be an array")
    return [run_vector(tv, document.get('encoding'), registry) for tv in vectors]


def print_vector_results(results: List[VectorResult], verbose: bool = False):
    """Print vector results to console."""
    passed = sum(1 for r in results if r.passed)
    print(f"Test Vectors: {passed}/{len(results)} passed")
    print("-" * 50)

    for r in results:
        status = "PASS" if r.passed else "FAIL"
        print(f"{r.name}: {status}")
        if verbose or not r.passed:
            if r.payload_hex:
                print(f"    Payload: {r.payload_hex}")
            for error in r.errors:
                print(f"    ERROR: {error}")
            if verbose:
                print(f"    Expected: {r.expected}")
                print(f"    Actual: {r.actual}")

    print("-" * 50)
    if passed == len(results):
        print(f"PASSED: All {len(results)} tests passed")
    else:
        print(f"FAILED: {len(results) - passed} of {len(results)} tests failed")


# =============================================================================
# Command line
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Decode a device payload into a UKHAS telemetry sentence'
    )
    parser.add_argument('payload', nargs='?', help='Payload as hex (or base64 with --base64)')
    parser.add_argument('-e', '--encoding',
                        help='Payload encoding: sodaqone, json, cayenne, custom_format_icss')
    parser.add_argument('-p', '--port', type=int, help='LoRaWAN fPort (selects Cayenne framing)')
    parser.add_argument('-d', '--device', default=DEFAULT_DEVICE, help='Device id / call sign')
    parser.add_argument('-c', '--counter', type=int, default=0, help='Frame counter')
    parser.add_argument('-t', '--time', help='Receive time, ISO 8601 (default: now)')
    parser.add_argument('--fields', help='Decoded payload fields as JSON (json encoding)')
    parser.add_argument('--base64', action='store_true', help='Payload is base64 encoded')
    parser.add_argument('--config', help='Path to decoder YAML configuration')
    parser.add_argument('--types', help='Path to YAML file with extra Cayenne type definitions')
    parser.add_argument('--vectors', help='Run the test vectors in this YAML file')
    parser.add_argument('--log-level', help='stderr log level (default: WARNING)')
    parser.add_argument('--json', action='store_true', help='Output results as JSON')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Show detailed output for all test vectors')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config) if args.config else DecoderConfig()
        configure_logging(args.log_level or config.log_level, config.log_file)
        registry = config.build_registry()
        if args.types:
            registry = registry.extend(load_type_definitions(args.types))
    except (ConfigError, DecodeError, OSError, yaml.YAMLError) as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"Error loading type definitions: {e}", file=sys.stderr)
        return 2

    if args.vectors:
        try:
            with open(args.vectors) as f:
                document = yaml.safe_load(f) or {}
            results = run_vectors(document, registry)
        except (OSError, yaml.YAMLError, ValueError, AttributeError) as e:
            print(f"Error loading vectors: {e}", file=sys.stderr)
            return 2
        if args.json:
            print(json.dumps([r.to_dict() for r in results], indent=2))
        else:
            print(f"Vectors: {args.vectors}")
            print("=" * 50)
            print_vector_results(results, args.verbose)
        return 0 if all(r.passed for r in results) else 1

    if args.payload is None:
        parser.error("a payload is required unless --vectors is given")

    try:
        payload = parse_payload(args.payload, args.base64)
        fields = json.loads(args.fields) if args.fields else None
        context = DecodeContext(
            device_id=args.device,
            counter=args.counter,
            receive_time=parse_time(args.time),
            port=args.port if args.port is not None else config.port,
            payload_fields=fields,
        )
        decoder = PayloadDecoder(args.encoding or config.encoding, registry)
        sentence = decoder.decode(payload, context)
    except DecodeError as e:
        print(f"Error: {type(e).__name__}: {e}", file=sys.stderr)
        return 1
    except (ValueError, binascii.Error) as e:
        print(f"Error: invalid input: {e}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps(sentence.to_dict(), indent=2))
    else:
        print(sentence.format(), end='')
    return 0


if __name__ == '__main__':
    sys.exit(main())
