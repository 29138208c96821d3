#!/usr/bin/env python3
"""
payload_decoder.py - Decode device payloads into telemetry sentences

The set of payload encodings is closed. Each encoding has one decoder object
with the same capability, decode(raw, context) -> Sentence; PayloadDecoder
selects it once, when constructed from the encoding name.

Usage:
    from payload_decoder import PayloadDecoder, DecodeContext

    decoder = PayloadDecoder('cayenne')
    context = DecodeContext('BALLOON1', counter=42, receive_time=now, port=1)
    sentence = decoder.decode(payload, context)
    print(sentence.format())
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from cayenne_message import CayenneMessage, Framing
from cayenne_types import DEFAULT_REGISTRY, TypeRegistry
from decode_errors import DecodeError, MissingFieldError, UnsupportedEncodingError
from icss_payload import ICSSPayload
from sodaq_one_payload import SodaqOnePayload
from ukhas_sentence import Sentence

logger = logging.getLogger(__name__)


class PayloadEncoding(Enum):
    SODAQ_ONE = 'sodaqone'
    JSON = 'json'
    CAYENNE = 'cayenne'
    CUSTOM_FORMAT_ICSS = 'custom_format_icss'

    @classmethod
    def parse(cls, name: str) -> 'PayloadEncoding':
        """Look up an encoding by name, or raise UnsupportedEncodingError."""
        try:
            return cls(name)
        except ValueError:
            raise UnsupportedEncodingError(name) from None


@dataclass(frozen=True)
class DecodeContext:
    """Message metadata that travels with the raw payload."""
    device_id: str
    counter: int
    receive_time: datetime
    port: Optional[int] = None
    payload_fields: Optional[Dict[str, Any]] = None


def _as_utc(time: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if time.tzinfo is None:
        return time.replace(tzinfo=timezone.utc)
    return time


def epoch_seconds(time: datetime) -> int:
    return int(_as_utc(time).timestamp())


# =============================================================================
# Per-encoding decoders
# =============================================================================

class SodaqOneDecoder:
    encoding = PayloadEncoding.SODAQ_ONE

    def decode(self, raw: bytes, context: DecodeContext) -> Sentence:
        sodaq = SodaqOnePayload.parse(raw)
        time = datetime.fromtimestamp(sodaq.time_stamp, timezone.utc)
        sentence = Sentence(context.device_id, context.counter, time)
        sentence.add_field('%.6f' % sodaq.latitude)
        sentence.add_field('%.6f' % sodaq.longitude)
        sentence.add_field('%.1f' % sodaq.altitude)
        sentence.add_field('%.0f' % sodaq.board_temp)
        sentence.add_field('%.2f' % sodaq.batt_voltage)
        return sentence


class JsonDecoder:
    """Fields already decoded upstream: lat, lon, gpsalt and optional temp, vcc."""
    encoding = PayloadEncoding.JSON

    def _load_fields(self, raw: bytes, context: DecodeContext) -> Dict[str, Any]:
        if context.payload_fields is not None:
            fields = context.payload_fields
        else:
            # ValueError also covers over-long integer literals
            try:
                fields = json.loads(raw.decode('utf-8'))
            except (ValueError, RecursionError) as e:
                raise DecodeError(f"Invalid JSON payload: {e}") from e
        if not isinstance(fields, dict):
            raise DecodeError(f"JSON payload must be an object, got {type(fields).__name__}")
        return fields

    def _number(self, fields: Dict[str, Any], key: str) -> float:
        value = fields.get(key)
        if value is None:
            raise MissingFieldError(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise DecodeError(f"Field '{key}' is not a number: {value!r}")
        try:
            return float(value)
        except OverflowError as e:
            raise DecodeError(f"Field '{key}' is out of range") from e

    def decode(self, raw: bytes, context: DecodeContext) -> Sentence:
        fields = self._load_fields(raw, context)
        latitude = self._number(fields, 'lat')
        longitude = self._number(fields, 'lon')
        altitude = self._number(fields, 'gpsalt')

        sentence = Sentence(context.device_id, context.counter, _as_utc(context.receive_time))
        sentence.add_field('%.6f' % latitude)
        sentence.add_field('%.6f' % longitude)
        sentence.add_field('%.1f' % altitude)
        if fields.get('temp') is not None and fields.get('vcc') is not None:
            sentence.add_field('%.1f' % self._number(fields, 'temp'))
            sentence.add_field('%.3f' % self._number(fields, 'vcc'))
        return sentence


class CayenneDecoder:
    """Every item's formatted values, in wire order."""
    encoding = PayloadEncoding.CAYENNE

    def __init__(self, registry: TypeRegistry = DEFAULT_REGISTRY):
        self.registry = registry

    def decode(self, raw: bytes, context: DecodeContext) -> Sentence:
        framing = Framing.from_port(context.port)
        message = CayenneMessage.decode(raw, framing, self.registry)
        sentence = Sentence(context.device_id, context.counter, _as_utc(context.receive_time))
        for item in message:
            for value in item.format():
                sentence.add_field(value)
        return sentence


class ICSSDecoder:
    encoding = PayloadEncoding.CUSTOM_FORMAT_ICSS

    def decode(self, raw: bytes, context: DecodeContext) -> Sentence:
        icss = ICSSPayload.parse(raw, epoch_seconds(context.receive_time))
        header = icss.header
        sentence = Sentence(context.device_id, context.counter, _as_utc(context.receive_time))
        sentence.add_field('%d' % header.pressure)
        sentence.add_field('%d' % header.board_temp)
        sentence.add_field('%.6f' % header.latitude)
        sentence.add_field('%.6f' % header.longitude)
        sentence.add_field('%d' % header.altitude)
        sentence.add_field('%d' % header.load_voltage)
        sentence.add_field('%d' % header.no_load_voltage)
        sentence.add_field('%d' % header.data_received_flag)
        sentence.add_field('%d' % header.reset_count)
        sentence.add_field('%d' % header.num_sats)
        sentence.add_field('%d' % header.days_of_playback)
        return sentence


DECODER_FACTORIES: Dict[PayloadEncoding, Callable[[TypeRegistry], Any]] = {
    PayloadEncoding.SODAQ_ONE: lambda registry: SodaqOneDecoder(),
    PayloadEncoding.JSON: lambda registry: JsonDecoder(),
    PayloadEncoding.CAYENNE: CayenneDecoder,
    PayloadEncoding.CUSTOM_FORMAT_ICSS: lambda registry: ICSSDecoder(),
}


class PayloadDecoder:
    """Decodes payloads of one configured encoding into sentences."""

    def __init__(self, encoding: Union[str, PayloadEncoding],
                 registry: TypeRegistry = DEFAULT_REGISTRY):
        if not isinstance(encoding, PayloadEncoding):
            encoding = PayloadEncoding.parse(encoding)
        self.encoding = encoding
        self._decoder = DECODER_FACTORIES[encoding](registry)
        logger.info("Payload decoder initialised for '%s' format", encoding.value)

    def decode(self, raw: bytes, context: DecodeContext) -> Sentence:
        """
        Decode one payload.

        Raises a DecodeError subclass when the payload cannot be decoded; no
        partial sentence is ever returned.
        """
        logger.debug("Decoding '%s' message from %s (counter %d)",
                     self.encoding.value, context.device_id, context.counter)
        try:
            return self._decoder.decode(raw, context)
        except DecodeError as e:
            logger.warning("Error decoding '%s' message from %s: %s",
                           self.encoding.value, context.device_id, e)
            raise


def decode_payload(encoding: Union[str, PayloadEncoding], raw: bytes, device_id: str,
                   counter: int, receive_time: datetime, port: Optional[int] = None,
                   payload_fields: Optional[Dict[str, Any]] = None) -> Sentence:
    """Convenience function to decode one payload."""
    context = DecodeContext(device_id, counter, receive_time, port, payload_fields)
    return PayloadDecoder(encoding).decode(raw, context)
