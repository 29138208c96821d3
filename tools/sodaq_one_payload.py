#!/usr/bin/env python3
"""
sodaq_one_payload.py - Decoder for the SODAQ One tracker raw payload

Layout (little-endian, 21 bytes):
    u32 epoch time, u8 battery, s8 board temperature, s32 latitude,
    s32 longitude, s16 altitude, u16 speed, u8 course, u8 satellites,
    u8 time to fix
"""

import struct
from dataclasses import dataclass

from decode_errors import check_available

PAYLOAD_FORMAT = '<IBbiihHBBB'
PAYLOAD_SIZE = struct.calcsize(PAYLOAD_FORMAT)


@dataclass(frozen=True)
class SodaqOnePayload:
    time_stamp: int
    batt_voltage: float
    board_temp: int
    latitude: float
    longitude: float
    altitude: int
    speed: int
    course: int
    num_sats: int
    time_to_fix: int

    @classmethod
    def parse(cls, raw: bytes) -> 'SodaqOnePayload':
        check_available(raw, 0, PAYLOAD_SIZE, 'sodaqone payload')
        (time_stamp, voltage, board_temp, latitude, longitude, altitude,
         speed, course, num_sats, time_to_fix) = struct.unpack_from(PAYLOAD_FORMAT, raw)
        return cls(
            time_stamp=time_stamp,
            # 3000 mV plus 10 mV steps
            batt_voltage=(3000 + 10 * voltage) / 1000.0,
            board_temp=board_temp,
            latitude=latitude / 1e7,
            longitude=longitude / 1e7,
            altitude=altitude,
            speed=speed,
            course=course,
            num_sats=num_sats,
            time_to_fix=time_to_fix,
        )
