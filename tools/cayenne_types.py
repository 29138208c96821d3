#!/usr/bin/env python3
"""
cayenne_types.py - Type descriptor registry for Cayenne LPP items

Each Cayenne LPP type identifier maps to a TypeDescriptor: a frozen record
holding the value shape (vector length, element size, signedness) and three
function values that parse, format and encode that shape.

Descriptors are built from plain definition dicts, the same format accepted
from YAML files, so adding a type never needs a new class:

    - id: 0x74
      name: voltage
      kind: float          # integer | boolean | float | gps
      length: 1            # elements in the value vector
      size: 2              # bytes per element
      signed: false
      scale: 0.01          # float/gps only, one value or one per element
      decimals: 2          # float/gps only, one value or one per element

Usage:
    from cayenne_types import DEFAULT_REGISTRY, CayenneType

    descriptor = DEFAULT_REGISTRY.get(CayenneType.TEMPERATURE)
    values, pos = descriptor.parse(b'\\x00\\xEB', 0)   # (23.5,), 2
    descriptor.format(values)                       # ['23.5']
    descriptor.encode(values)                       # b'\\x00\\xEB'
"""

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import yaml

from decode_errors import UnknownTypeError, check_available

logger = logging.getLogger(__name__)

Values = Tuple[float, ...]

# Cayenne LPP is big-endian on the wire
BYTE_ORDER = 'big'

KINDS = ('integer', 'boolean', 'float', 'gps')


class CayenneType(IntEnum):
    """Well-known Cayenne LPP type identifiers."""
    DIGITAL_INPUT = 0
    DIGITAL_OUTPUT = 1
    ANALOG_INPUT = 2
    ANALOG_OUTPUT = 3
    ILLUMINANCE = 101
    PRESENCE = 102
    TEMPERATURE = 103
    HUMIDITY = 104
    ACCELEROMETER = 113
    BAROMETER = 115
    VOLTAGE = 116
    PERCENTAGE = 120
    ALTITUDE = 121
    GYROMETER = 134
    GPS_LOCATION = 136


@dataclass(frozen=True)
class TypeDescriptor:
    """Value shape and codec functions for one type identifier."""
    type_id: int
    name: str
    length: int
    size: int
    signed: bool
    parse: Callable[[bytes, int], Tuple[Values, int]] = field(repr=False, compare=False)
    format: Callable[[Sequence[float]], List[str]] = field(repr=False, compare=False)
    encode: Callable[[Sequence[float]], bytes] = field(repr=False, compare=False)

    @property
    def width(self) -> int:
        """Number of value bytes on the wire."""
        return self.length * self.size


# =============================================================================
# Element codecs
# =============================================================================

def _read_int(buf: bytes, pos: int, size: int, signed: bool) -> Tuple[int, int]:
    """Read one big-endian integer, sign extended to its declared width."""
    check_available(buf, pos, size)
    value = int.from_bytes(buf[pos:pos + size], BYTE_ORDER, signed=signed)
    return value, pos + size


def _write_int(value: int, size: int, signed: bool) -> bytes:
    """Write one big-endian integer."""
    try:
        return value.to_bytes(size, BYTE_ORDER, signed=signed)
    except OverflowError:
        kind = 'signed' if signed else 'unsigned'
        raise ValueError(f"Value {value} does not fit in {size} byte {kind} field") from None


def _check_length(values: Sequence[float], length: int, name: str):
    if len(values) != length:
        raise ValueError(f"'{name}' expects {length} values, got {len(values)}")


def _make_parser(length: int, size: int, signed: bool,
                 scales: Sequence[float]) -> Callable[[bytes, int], Tuple[Values, int]]:
    def parse(buf: bytes, pos: int) -> Tuple[Values, int]:
        # whole vector up front, so a short buffer never yields half a value
        check_available(buf, pos, length * size)
        values = []
        for scale in scales:
            raw, pos = _read_int(buf, pos, size, signed)
            values.append(float(raw * scale))
        return tuple(values), pos
    return parse


# =============================================================================
# Descriptor factories
# =============================================================================

def integer_type(type_id: int, name: str, length: int = 1, size: int = 1,
                 signed: bool = False, boolean: bool = False) -> TypeDescriptor:
    """
    Descriptor for integer vectors.

    Formatting truncates toward zero. Boolean-style descriptors narrow every
    element to a single byte on encode: 1 when the value is positive, else 0.
    """
    if boolean and size != 1:
        raise ValueError(f"Type '{name}': boolean elements are one byte, not {size}")
    parse = _make_parser(length, size, signed, [1] * length)

    def format_values(values: Sequence[float]) -> List[str]:
        _check_length(values, length, name)
        return ['%d' % int(v) for v in values]

    def encode(values: Sequence[float]) -> bytes:
        _check_length(values, length, name)
        if boolean:
            return bytes(1 if v > 0.0 else 0 for v in values)
        return b''.join(_write_int(int(v), size, signed) for v in values)

    return TypeDescriptor(type_id, name, length, size, signed, parse, format_values, encode)


def scaled_type(type_id: int, name: str, length: int, size: int, signed: bool,
                scales: Sequence[float], decimals: Sequence[int]) -> TypeDescriptor:
    """Descriptor for fixed-point vectors with a scale and precision per element."""
    if len(scales) != length or len(decimals) != length:
        raise ValueError(f"'{name}' needs {length} scales and decimals")
    scales = tuple(scales)
    formats = tuple(f'%.{d}f' for d in decimals)
    parse = _make_parser(length, size, signed, scales)

    def format_values(values: Sequence[float]) -> List[str]:
        _check_length(values, length, name)
        return [fmt % v for fmt, v in zip(formats, values)]

    def encode(values: Sequence[float]) -> bytes:
        _check_length(values, length, name)
        return b''.join(
            _write_int(int(round(v / scale)), size, signed)
            for v, scale in zip(values, scales)
        )

    return TypeDescriptor(type_id, name, length, size, signed, parse, format_values, encode)


def float_type(type_id: int, name: str, length: int = 1, size: int = 2,
               signed: bool = True, scale: float = 0.01, decimals: int = 2) -> TypeDescriptor:
    """Descriptor for fixed-point vectors sharing one scale."""
    return scaled_type(type_id, name, length, size, signed,
                       [scale] * length, [decimals] * length)


def gps_type(type_id: int = CayenneType.GPS_LOCATION, name: str = 'gps_location') -> TypeDescriptor:
    """Latitude, longitude (0.0001 deg) and altitude (0.01 m) as signed 24-bit."""
    return scaled_type(type_id, name, 3, 3, True, (0.0001, 0.0001, 0.01), (4, 4, 2))


def _per_element(value: Any, length: int, key: str, name: str) -> List[Any]:
    if isinstance(value, (list, tuple)):
        if len(value) != length:
            raise ValueError(f"Type '{name}': '{key}' needs {length} entries")
        return list(value)
    return [value] * length


def descriptor_from_dict(definition: Dict[str, Any]) -> TypeDescriptor:
    """Build a descriptor from a definition dict (see module docstring)."""
    if not isinstance(definition, dict):
        raise ValueError(f"Type definition must be a mapping, got {definition!r}")
    try:
        type_id = int(definition['id'])
        name = str(definition['name'])
    except KeyError as e:
        raise ValueError(f"Type definition missing {e}: {definition!r}") from None

    kind = definition.get('kind', 'integer')
    if kind not in KINDS:
        raise ValueError(f"Type '{name}': unknown kind '{kind}'")
    if kind == 'gps':
        return gps_type(type_id, name)

    length = int(definition.get('length', 1))
    size = int(definition.get('size', 1))
    signed = bool(definition.get('signed', False))
    if length < 1 or size not in (1, 2, 3, 4):
        raise ValueError(f"Type '{name}': invalid length {length} or size {size}")

    if kind in ('integer', 'boolean'):
        return integer_type(type_id, name, length, size, signed, boolean=(kind == 'boolean'))

    scales = [float(s) for s in _per_element(definition.get('scale', 1.0), length, 'scale', name)]
    decimals = [int(d) for d in _per_element(definition.get('decimals', 2), length, 'decimals', name)]
    return scaled_type(type_id, name, length, size, signed, scales, decimals)


# Standard Cayenne LPP types, plus voltage/percentage/altitude from the
# extended LPP table
STANDARD_TYPES = [
    {'id': CayenneType.DIGITAL_INPUT, 'name': 'digital_input', 'kind': 'boolean'},
    {'id': CayenneType.DIGITAL_OUTPUT, 'name': 'digital_output', 'kind': 'boolean'},
    {'id': CayenneType.ANALOG_INPUT, 'name': 'analog_input', 'kind': 'float',
     'size': 2, 'signed': True, 'scale': 0.01, 'decimals': 2},
    {'id': CayenneType.ANALOG_OUTPUT, 'name': 'analog_output', 'kind': 'float',
     'size': 2, 'signed': True, 'scale': 0.01, 'decimals': 2},
    {'id': CayenneType.ILLUMINANCE, 'name': 'illuminance', 'kind': 'integer', 'size': 2},
    {'id': CayenneType.PRESENCE, 'name': 'presence', 'kind': 'boolean'},
    {'id': CayenneType.TEMPERATURE, 'name': 'temperature', 'kind': 'float',
     'size': 2, 'signed': True, 'scale': 0.1, 'decimals': 1},
    {'id': CayenneType.HUMIDITY, 'name': 'humidity', 'kind': 'float',
     'size': 1, 'scale': 0.5, 'decimals': 1},
    {'id': CayenneType.ACCELEROMETER, 'name': 'accelerometer', 'kind': 'float',
     'length': 3, 'size': 2, 'signed': True, 'scale': 0.001, 'decimals': 3},
    {'id': CayenneType.BAROMETER, 'name': 'barometer', 'kind': 'float',
     'size': 2, 'scale': 0.1, 'decimals': 1},
    {'id': CayenneType.VOLTAGE, 'name': 'voltage', 'kind': 'float',
     'size': 2, 'scale': 0.01, 'decimals': 2},
    {'id': CayenneType.PERCENTAGE, 'name': 'percentage', 'kind': 'integer'},
    {'id': CayenneType.ALTITUDE, 'name': 'altitude', 'kind': 'integer', 'size': 2, 'signed': True},
    {'id': CayenneType.GYROMETER, 'name': 'gyrometer', 'kind': 'float',
     'length': 3, 'size': 2, 'signed': True, 'scale': 0.01, 'decimals': 2},
    {'id': CayenneType.GPS_LOCATION, 'name': 'gps_location', 'kind': 'gps'},
]


# =============================================================================
# Registry
# =============================================================================

class TypeRegistry:
    """
    Lookup from type identifier to descriptor.

    A registry never changes after construction; extend() returns a new
    registry, so a shared instance can be read from any thread.
    """

    def __init__(self, descriptors: Iterable[TypeDescriptor] = ()):
        self._types: Dict[int, TypeDescriptor] = {}
        for descriptor in descriptors:
            self._add(descriptor)

    def _add(self, descriptor: TypeDescriptor):
        type_id = descriptor.type_id
        if not 0 <= type_id <= 0xFF:
            raise ValueError(f"Type id {type_id} does not fit in one byte")
        existing = self._types.get(type_id)
        if existing is not None:
            raise ValueError(f"Type id {type_id} already registered as '{existing.name}'")
        self._types[type_id] = descriptor

    def extend(self, descriptors: Iterable[TypeDescriptor]) -> 'TypeRegistry':
        """Return a new registry holding these descriptors and the new ones."""
        return TypeRegistry(list(self) + list(descriptors))

    def get(self, type_id: int) -> TypeDescriptor:
        """Return the descriptor for type_id, or raise UnknownTypeError."""
        try:
            return self._types[type_id]
        except KeyError:
            raise UnknownTypeError(type_id) from None

    def find(self, type_id: int) -> Optional[TypeDescriptor]:
        return self._types.get(type_id)

    def __contains__(self, type_id: int) -> bool:
        return type_id in self._types

    def __iter__(self) -> Iterator[TypeDescriptor]:
        return iter(sorted(self._types.values(), key=lambda d: d.type_id))

    def __len__(self) -> int:
        return len(self._types)


def load_type_definitions(source: Union[str, Path, List[Dict[str, Any]]]) -> List[TypeDescriptor]:
    """
    Load descriptors from a YAML file, or from already parsed definitions.

    The YAML document is either a list of definitions or a mapping with a
    'types' list.
    """
    if isinstance(source, (str, Path)):
        with open(source) as f:
            document = yaml.safe_load(f)
        logger.debug("Loaded type definitions from %s", source)
    else:
        document = source

    if isinstance(document, dict):
        document = document.get('types')
    if not isinstance(document, list):
        raise ValueError("Type definitions must be a list (or a mapping with a 'types' list)")

    return [descriptor_from_dict(definition) for definition in document]


DEFAULT_REGISTRY = TypeRegistry(descriptor_from_dict(d) for d in STANDARD_TYPES)
