#!/usr/bin/env python3
"""
cayenne_message.py - Cayenne LPP message decoder/encoder

A Cayenne LPP payload is a sequence of items, each a type byte followed by a
value whose width is fixed by the type. Two framings exist:

    CHANNEL_TYPE (dynamic sensor payload):  channel(1) type(1) value(n) ...
    TYPE_ONLY    (packed sensor payload):   type(1) value(n) ...

Usage:
    from cayenne_message import CayenneMessage, Framing
    from cayenne_types import CayenneType

    message = CayenneMessage(Framing.from_port(fport))
    message.parse(payload)
    gps = message.of_type(CayenneType.GPS_LOCATION)
    for item in message:
        print(item.name, item.format())
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from cayenne_types import DEFAULT_REGISTRY, TypeDescriptor, TypeRegistry
from decode_errors import DecodeError, check_available

logger = logging.getLogger(__name__)

# fPort of the Cayenne "packed sensor payload"
PACKED_PAYLOAD_PORT = 2


class Framing(Enum):
    TYPE_ONLY = 'type'
    CHANNEL_TYPE = 'channel+type'

    @classmethod
    def from_port(cls, port: Optional[int]) -> 'Framing':
        """Packed payloads (port 2) carry no channel byte; everything else does."""
        if port == PACKED_PAYLOAD_PORT:
            return cls.TYPE_ONLY
        return cls.CHANNEL_TYPE


class MessageState(Enum):
    EMPTY = 'empty'
    PARSING = 'parsing'
    PARSED = 'parsed'
    FAILED = 'failed'


@dataclass(frozen=True)
class CayenneItem:
    """One decoded item. channel is None in type-only framing."""
    channel: Optional[int]
    type_id: int
    values: Tuple[float, ...]
    descriptor: TypeDescriptor = field(repr=False, compare=False)

    @classmethod
    def create(cls, type_id: int, values: Sequence[float], channel: Optional[int] = None,
               registry: TypeRegistry = DEFAULT_REGISTRY) -> 'CayenneItem':
        """Build an item for encoding, checking the vector length."""
        descriptor = registry.get(type_id)
        if len(values) != descriptor.length:
            raise ValueError(f"'{descriptor.name}' expects {descriptor.length} values, got {len(values)}")
        if channel is not None and not 0 <= channel <= 0xFF:
            raise ValueError(f"Channel {channel} does not fit in one byte")
        return cls(channel, descriptor.type_id, tuple(float(v) for v in values), descriptor)

    @classmethod
    def parse(cls, buf: bytes, pos: int, framing: Framing,
              registry: TypeRegistry = DEFAULT_REGISTRY) -> Tuple['CayenneItem', int]:
        """Decode one item at pos. Returns (item, new_pos)."""
        channel = None
        if framing is Framing.CHANNEL_TYPE:
            check_available(buf, pos, 2, 'channel and type')
            channel = buf[pos]
            pos += 1
        else:
            check_available(buf, pos, 1, 'type')

        descriptor = registry.get(buf[pos])
        pos += 1
        values, pos = descriptor.parse(buf, pos)
        return cls(channel, descriptor.type_id, values, descriptor), pos

    @property
    def name(self) -> str:
        return self.descriptor.name

    def encode(self, framing: Framing) -> bytes:
        """Encode this item in the given framing."""
        header = bytearray()
        if framing is Framing.CHANNEL_TYPE:
            if self.channel is None:
                raise ValueError(f"Item '{self.name}' has no channel for channel+type framing")
            header.append(self.channel)
        header.append(self.type_id)
        return bytes(header) + self.descriptor.encode(self.values)

    def format(self) -> List[str]:
        return self.descriptor.format(self.values)


class CayenneMessage:
    """
    Ordered sequence of items decoded from one payload.

    Parsing is all-or-nothing: the whole buffer must decode into complete
    items, otherwise the message ends FAILED with no items.
    """

    def __init__(self, framing: Framing = Framing.CHANNEL_TYPE,
                 registry: TypeRegistry = DEFAULT_REGISTRY,
                 items: Iterable[CayenneItem] = ()):
        self.framing = framing
        self.registry = registry
        self.state = MessageState.EMPTY
        self._items: List[CayenneItem] = []
        for item in items:
            self.add_item(item)

    @classmethod
    def decode(cls, payload: bytes, framing: Framing = Framing.CHANNEL_TYPE,
               registry: TypeRegistry = DEFAULT_REGISTRY) -> 'CayenneMessage':
        """Convenience: create a message and parse payload into it."""
        message = cls(framing, registry)
        message.parse(payload)
        return message

    def parse(self, payload: bytes):
        """Decode the whole payload into items, in wire order."""
        if self.state is not MessageState.EMPTY or self._items:
            raise ValueError(f"Cannot parse into a message in state '{self.state.value}'")

        self.state = MessageState.PARSING
        items = []
        pos = 0
        try:
            while pos < len(payload):
                item, pos = CayenneItem.parse(payload, pos, self.framing, self.registry)
                items.append(item)
        except DecodeError as e:
            self.state = MessageState.FAILED
            logger.debug("Cayenne parse failed at pos %d after %d items: %s", pos, len(items), e)
            raise

        self._items = items
        self.state = MessageState.PARSED

    def add_item(self, item: CayenneItem):
        """Append an item for encoding."""
        if self.state is not MessageState.EMPTY:
            raise ValueError(f"Cannot add items to a message in state '{self.state.value}'")
        if self.framing is Framing.CHANNEL_TYPE and item.channel is None:
            raise ValueError(f"Item '{item.name}' has no channel for channel+type framing")
        self._items.append(item)

    def encode(self) -> bytes:
        return b''.join(item.encode(self.framing) for item in self._items)

    def of_type(self, type_id: int) -> Optional[CayenneItem]:
        """Return the first item of the given type, or None."""
        for item in self._items:
            if item.type_id == type_id:
                return item
        return None

    @property
    def items(self) -> Tuple[CayenneItem, ...]:
        return tuple(self._items)

    def __iter__(self) -> Iterator[CayenneItem]:
        return iter(tuple(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return (f"CayenneMessage(framing={self.framing.value}, "
                f"state={self.state.value}, items={self._items!r})")
