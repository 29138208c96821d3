#!/usr/bin/env python3
"""
ukhas_sentence.py - Normalized telemetry sentence

A sentence is the call sign, a per-device counter, a time and an ordered list
of already formatted fields, rendered in UKHAS form:

    $$CALLSIGN,42,12:34:56,52.123456,4.123456,1234.0*1A2B

The checksum is CRC16-CCITT over everything between '$$' and '*'.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List


def crc16_ccitt(data: bytes, crc: int = 0xFFFF) -> int:
    """CRC16-CCITT (polynomial 0x1021), as used by UKHAS telemetry."""
    for byte in data:
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ 0x1021) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return crc


@dataclass
class Sentence:
    call_sign: str
    counter: int
    time: datetime
    fields: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.call_sign.isascii() or any(c in self.call_sign for c in '$,*\n'):
            raise ValueError(f"Invalid call sign: {self.call_sign!r}")

    def add_field(self, value: str):
        self.fields.append(value)

    def format(self) -> str:
        """Render the sentence, including checksum and trailing newline."""
        time_utc = self.time.astimezone(timezone.utc) if self.time.tzinfo else self.time
        parts = [self.call_sign, str(self.counter), time_utc.strftime('%H:%M:%S')] + self.fields
        basic = ','.join(parts)
        crc = crc16_ccitt(basic.encode('ascii'))
        return f"$${basic}*{crc:04X}\n"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'call_sign': self.call_sign,
            'counter': self.counter,
            'time': self.time.isoformat(),
            'fields': list(self.fields),
            'sentence': self.format().strip(),
        }
