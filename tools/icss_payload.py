#!/usr/bin/env python3
"""
icss_payload.py - Decoder for the "custom_format_icss" tracker payload

Layout (little-endian):

    Header (11 bytes)
        byte 0      [7:3] no-load voltage - 18   [2:0] load voltage (high 3 bits)
        byte 1      [7:6] load voltage (low 2 bits)   [5:0] days of playback
        byte 2      [7:1] pressure / 10              [0]   data received flag
        byte 3      [7:3] satellites                 [2:0] reset count
        byte 4      board temperature (s8)
        bytes 5-10  latitude (s16), longitude (s16), altitude (u16)

    Past position record (8 bytes, repeated)
        latitude (s16), longitude (s16), altitude (u16), minutes ago (u16)

The number of records is not stored; it follows from the payload length.

Usage:
    from icss_payload import ICSSPayload

    payload = ICSSPayload.parse(raw, current_time=1700000000)
    print(payload.header.pressure, len(payload.past_positions))
"""

import logging
import struct
from dataclasses import dataclass
from typing import Tuple

from decode_errors import MalformedLengthError, check_available

logger = logging.getLogger(__name__)

HEADER_SIZE = 11
RECORD_SIZE = 8

# Largest LoRaWAN application payload
MAX_PAYLOAD_SIZE = 255

VOLTAGE_OFFSET = 18
PRESSURE_SCALE = 10


@dataclass(frozen=True)
class ICSSHeader:
    """Current readings from the 11 byte header."""
    no_load_voltage: int
    load_voltage: int
    days_of_playback: int
    pressure: int
    data_received_flag: int
    num_sats: int
    reset_count: int
    board_temp: int
    latitude: float
    longitude: float
    altitude: int


@dataclass(frozen=True)
class PastPosition:
    """One historical position; timestamp in epoch seconds."""
    latitude: float
    longitude: float
    altitude: int
    timestamp: int


@dataclass(frozen=True)
class ICSSPayload:
    header: ICSSHeader
    past_positions: Tuple[PastPosition, ...]

    @classmethod
    def parse(cls, raw: bytes, current_time: int) -> 'ICSSPayload':
        """
        Decode a payload received at current_time (epoch seconds).

        Raises MalformedLengthError when the length does not fit the layout and
        BufferUnderflowError when a read runs past the end of the buffer.
        """
        count = record_count(len(raw))
        header, pos = parse_header(raw, 0)

        positions = []
        for _ in range(count):
            position, pos = parse_past_position(raw, pos, current_time)
            positions.append(position)

        for position in positions:
            logger.debug("Past position: %s", position)

        return cls(header, tuple(positions))


def record_count(length: int) -> int:
    """Number of past position records in a payload of this length."""
    if length > MAX_PAYLOAD_SIZE:
        raise MalformedLengthError(f"Payload of {length} bytes exceeds {MAX_PAYLOAD_SIZE} bytes")
    if length < HEADER_SIZE:
        raise MalformedLengthError(f"Payload of {length} bytes is shorter than the {HEADER_SIZE} byte header")
    count, remainder = divmod(length - HEADER_SIZE, RECORD_SIZE)
    if remainder:
        raise MalformedLengthError(
            f"Payload of {length} bytes leaves {remainder} bytes after "
            f"{count} records of {RECORD_SIZE} bytes"
        )
    return count


def _to_float32(value: float) -> float:
    """Coordinates are single precision values."""
    return struct.unpack('<f', struct.pack('<f', value))[0]


def scale_coordinate(raw: int) -> float:
    """Degrees from a signed 16-bit coordinate."""
    # 0xFFFF is a multiplier here, not a mask
    return _to_float32((raw * 0xFFFF) / 1e7)


def scale_altitude(raw: int) -> int:
    """Altitude from an unsigned 16-bit value."""
    return (raw * 0xFF) // 1000


def _read_position(raw: bytes, pos: int) -> Tuple[float, float, int, int]:
    check_available(raw, pos, 6, 'position')
    lat, lon, alt = struct.unpack_from('<hhH', raw, pos)
    return scale_coordinate(lat), scale_coordinate(lon), scale_altitude(alt), pos + 6


def parse_header(raw: bytes, pos: int) -> Tuple[ICSSHeader, int]:
    """Decode the header at pos. Returns (header, new_pos)."""
    check_available(raw, pos, 5, 'header')
    b0, b1, b2, b3 = raw[pos:pos + 4]
    board_temp = struct.unpack_from('<b', raw, pos + 4)[0]

    no_load_voltage = ((b0 >> 3) & 0x1F) + VOLTAGE_OFFSET
    load_voltage = (((b0 << 2) & 0x1C) | ((b1 >> 6) & 0x03)) + VOLTAGE_OFFSET
    days_of_playback = b1 & 0x3F
    pressure = ((b2 >> 1) & 0x7F) * PRESSURE_SCALE
    data_received_flag = b2 & 0x01
    num_sats = (b3 >> 3) & 0x1F
    reset_count = b3 & 0x07

    latitude, longitude, altitude, pos = _read_position(raw, pos + 5)

    header = ICSSHeader(
        no_load_voltage=no_load_voltage,
        load_voltage=load_voltage,
        days_of_playback=days_of_playback,
        pressure=pressure,
        data_received_flag=data_received_flag,
        num_sats=num_sats,
        reset_count=reset_count,
        board_temp=board_temp,
        latitude=latitude,
        longitude=longitude,
        altitude=altitude,
    )
    return header, pos


def parse_past_position(raw: bytes, pos: int, current_time: int) -> Tuple[PastPosition, int]:
    """Decode one past position record at pos. Returns (position, new_pos)."""
    latitude, longitude, altitude, pos = _read_position(raw, pos)
    check_available(raw, pos, 2, 'minutes offset')
    minutes = raw[pos] | (raw[pos + 1] << 8)
    position = PastPosition(latitude, longitude, altitude, current_time - minutes * 60)
    return position, pos + 2
