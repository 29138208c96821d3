"""
Tests for the payload decode dispatcher and the SODAQ One layout.
"""

import json
import logging
import pytest
import struct
import sys
from datetime import datetime, timezone
from pathlib import Path

# Add tools to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'tools'))

from cayenne_types import DEFAULT_REGISTRY, integer_type
from decode_errors import (
    BufferUnderflowError, DecodeError, MalformedLengthError, MissingFieldError,
    UnknownTypeError, UnsupportedEncodingError,
)
from payload_decoder import (
    DECODER_FACTORIES, DecodeContext, PayloadDecoder, PayloadEncoding,
    decode_payload, epoch_seconds,
)
from sodaq_one_payload import PAYLOAD_SIZE, SodaqOnePayload

SODAQ_RAW = struct.pack('<IBbiihHBBB', 1714566896, 30, -5, 521234567, 41234567, 120, 10, 90, 7, 30)


class TestPayloadEncoding:

    @pytest.mark.parametrize("name", ['sodaqone', 'json', 'cayenne', 'custom_format_icss'])
    def test_supported_names(self, name):
        assert PayloadEncoding.parse(name).value == name
        assert PayloadDecoder(name).encoding.value == name

    @pytest.mark.parametrize("name", ['', 'CAYENNE', 'icss', 'raw'])
    def test_unsupported_name_at_construction(self, name):
        with pytest.raises(UnsupportedEncodingError) as excinfo:
            PayloadDecoder(name)
        assert excinfo.value.name == name

    def test_every_encoding_has_a_decoder(self):
        assert set(DECODER_FACTORIES) == set(PayloadEncoding)
        for encoding, factory in DECODER_FACTORIES.items():
            assert factory(DEFAULT_REGISTRY).encoding is encoding

    def test_accepts_enum(self):
        assert PayloadDecoder(PayloadEncoding.JSON).encoding is PayloadEncoding.JSON

    def test_construction_logged(self, caplog):
        with caplog.at_level(logging.INFO, logger='payload_decoder'):
            PayloadDecoder('cayenne')
        assert "initialised for 'cayenne' format" in caplog.text


class TestICSSDecoding:

    def test_field_order_and_format(self, context, icss_builder):
        raw = icss_builder(b0=0x50 | 0x05, b1=0x40 | 0x15, b2=0x65, b3=0x4B,
                           temp=-12, lat=1000, lon=-1000, alt=1000)
        sentence = PayloadDecoder('custom_format_icss').decode(raw, context)

        assert sentence.call_sign == 'BALLOON1'
        assert sentence.counter == 42
        assert sentence.time == context.receive_time
        assert sentence.fields == [
            '500',          # pressure
            '-12',          # board temp
            '6.553500',     # latitude
            '-6.553500',    # longitude
            '255',          # altitude
            '39',           # load voltage
            '28',           # no-load voltage
            '1',            # received flag
            '3',            # reset count
            '9',            # satellites
            '21',           # days of playback
        ]

    def test_malformed_length(self, context, icss_builder):
        with pytest.raises(MalformedLengthError):
            PayloadDecoder('custom_format_icss').decode(icss_builder() + b'\x00', context)

    def test_failure_logged_and_raised(self, context, caplog):
        with caplog.at_level(logging.WARNING, logger='payload_decoder'):
            with pytest.raises(MalformedLengthError):
                PayloadDecoder('custom_format_icss').decode(b'\x00\x01', context)
        assert 'BALLOON1' in caplog.text

    def test_epoch_seconds(self):
        assert epoch_seconds(datetime(1970, 1, 1, 0, 1, tzinfo=timezone.utc)) == 60
        assert epoch_seconds(datetime(1970, 1, 1, 0, 1)) == 60


class TestCayenneDecoding:

    def test_channel_framing_all_items_in_wire_order(self, receive_time):
        payload = bytes.fromhex('018806765FF2960A0003E8' '026700EB' '03020154')
        context = DecodeContext('BALLOON1', 7, receive_time, port=1)

        sentence = PayloadDecoder('cayenne').decode(payload, context)

        assert sentence.fields == ['42.3519', '-87.9094', '10.00', '23.5', '3.40']

    def test_packed_port_uses_type_only(self, receive_time):
        payload = bytes.fromhex('6700EB' '6601')
        context = DecodeContext('BALLOON1', 7, receive_time, port=2)

        sentence = PayloadDecoder('cayenne').decode(payload, context)

        assert sentence.fields == ['23.5', '1']

    def test_unknown_type(self, receive_time):
        context = DecodeContext('BALLOON1', 7, receive_time, port=1)
        with pytest.raises(UnknownTypeError):
            PayloadDecoder('cayenne').decode(bytes.fromhex('01FE00'), context)

    def test_custom_registry(self, receive_time):
        registry = DEFAULT_REGISTRY.extend([integer_type(0xC8, 'counter', size=2)])
        context = DecodeContext('BALLOON1', 7, receive_time, port=1)
        sentence = PayloadDecoder('cayenne', registry).decode(bytes.fromhex('01C80102'), context)
        assert sentence.fields == ['258']


class TestSodaqOne:

    def test_parse_layout(self):
        sodaq = SodaqOnePayload.parse(SODAQ_RAW)
        assert len(SODAQ_RAW) == PAYLOAD_SIZE == 21
        assert sodaq.time_stamp == 1714566896
        assert sodaq.batt_voltage == pytest.approx(3.3)
        assert sodaq.board_temp == -5
        assert sodaq.latitude == pytest.approx(52.1234567)
        assert sodaq.longitude == pytest.approx(4.1234567)
        assert sodaq.altitude == 120
        assert (sodaq.speed, sodaq.course, sodaq.num_sats, sodaq.time_to_fix) == (10, 90, 7, 30)

    def test_trailing_bytes_ignored(self):
        assert SodaqOnePayload.parse(SODAQ_RAW + b'\xAA').altitude == 120

    def test_short_payload(self):
        with pytest.raises(BufferUnderflowError):
            SodaqOnePayload.parse(SODAQ_RAW[:-1])

    def test_sentence(self, context):
        sentence = PayloadDecoder('sodaqone').decode(SODAQ_RAW, context)
        assert sentence.time == datetime(2024, 5, 1, 12, 34, 56, tzinfo=timezone.utc)
        assert sentence.fields == ['52.123457', '4.123457', '120.0', '-5', '3.30']


class TestJsonDecoding:

    def test_fields_from_context(self, receive_time):
        fields = {'lat': 52.1, 'lon': 4.2, 'gpsalt': 1234, 'temp': -20.56, 'vcc': 3.3}
        context = DecodeContext('BALLOON1', 1, receive_time, payload_fields=fields)

        sentence = PayloadDecoder('json').decode(b'', context)

        assert sentence.fields == ['52.100000', '4.200000', '1234.0', '-20.6', '3.300']

    def test_fields_from_raw_bytes(self, context):
        raw = json.dumps({'lat': 1, 'lon': 2, 'gpsalt': 3}).encode()
        sentence = PayloadDecoder('json').decode(raw, context)
        assert sentence.fields == ['1.000000', '2.000000', '3.0']

    def test_optional_pair_needs_both(self, receive_time):
        fields = {'lat': 1, 'lon': 2, 'gpsalt': 3, 'temp': 20}
        context = DecodeContext('BALLOON1', 1, receive_time, payload_fields=fields)
        assert len(PayloadDecoder('json').decode(b'', context).fields) == 3

    def test_missing_required_field(self, receive_time):
        context = DecodeContext('BALLOON1', 1, receive_time, payload_fields={'lat': 1, 'lon': 2})
        with pytest.raises(MissingFieldError) as excinfo:
            PayloadDecoder('json').decode(b'', context)
        assert excinfo.value.field_name == 'gpsalt'

    @pytest.mark.parametrize("raw", [b'not json', b'[1, 2]', b'\xFF\xFE'])
    def test_invalid_json(self, context, raw):
        with pytest.raises(DecodeError):
            PayloadDecoder('json').decode(raw, context)

    @pytest.mark.parametrize("raw", [
        b'{"lat": ' + b'9' * 5000 + b', "lon": 2, "gpsalt": 3}',
        b'[' * 100000,
    ])
    def test_pathological_json(self, context, raw):
        with pytest.raises(DecodeError):
            PayloadDecoder('json').decode(raw, context)

    def test_non_numeric_field(self, receive_time):
        fields = {'lat': 'north', 'lon': 2, 'gpsalt': 3}
        context = DecodeContext('BALLOON1', 1, receive_time, payload_fields=fields)
        with pytest.raises(DecodeError, match="not a number"):
            PayloadDecoder('json').decode(b'', context)


class TestConvenience:

    def test_decode_payload(self, receive_time):
        sentence = decode_payload('cayenne', bytes.fromhex('016700EB'), 'BALLOON1', 3,
                                  receive_time, port=1)
        assert sentence.format().startswith('$$BALLOON1,3,12:34:56,23.5*')

    def test_decode_payload_unsupported(self, receive_time):
        with pytest.raises(UnsupportedEncodingError):
            decode_payload('xml', b'', 'BALLOON1', 3, receive_time)
