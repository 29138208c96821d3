#!/usr/bin/env python3
"""
decode_errors.py - Error taxonomy for payload decoding

Every failure raised while decoding a payload derives from DecodeError, so
callers can drop, log or retry a single bad message with one except clause.
DecodeError is a ValueError: a malformed payload is a bad value, not a bug.
"""

from typing import Optional


class DecodeError(ValueError):
    """Base class for all payload decode failures."""


class UnknownTypeError(DecodeError):
    """A TLV type identifier has no registered descriptor."""

    def __init__(self, type_id: int):
        super().__init__(f"Unknown type: {type_id} (0x{type_id:02X})")
        self.type_id = type_id


class BufferUnderflowError(DecodeError):
    """Fewer bytes remain than a field requires."""

    def __init__(self, needed: int, pos: int, available: int, what: Optional[str] = None):
        label = f" for {what}" if what else ""
        super().__init__(
            f"Buffer too short{label}: need {needed} bytes at pos {pos}, "
            f"{max(available - pos, 0)} available"
        )
        self.needed = needed
        self.pos = pos
        self.available = available


class MalformedLengthError(DecodeError):
    """Payload length does not match the layout of the format."""


class UnsupportedEncodingError(DecodeError):
    """Encoding name is outside the supported set."""

    def __init__(self, name: str):
        super().__init__(f"Unsupported payload encoding: '{name}'")
        self.name = name


class MissingFieldError(DecodeError):
    """A required field is absent from a structured (JSON) payload."""

    def __init__(self, field_name: str):
        super().__init__(f"Missing field in payload: '{field_name}'")
        self.field_name = field_name


def check_available(buf: bytes, pos: int, size: int, what: Optional[str] = None):
    """Raise BufferUnderflowError unless buf holds size bytes at pos."""
    if pos < 0 or pos + size > len(buf):
        raise BufferUnderflowError(size, pos, len(buf), what)
