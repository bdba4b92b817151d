#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Abstraction of an OSC message as exchanged with AbletonOSC, and the codec that
converts it to and from the raw UDP datagram payload.

Wire layout (big-endian throughout):

    [address: C-string, zero-padded to a multiple of 4]
    [type tags: "," + one char per argument, C-string, zero-padded to a multiple of 4]
    [argument payloads in order: i=int32, f=float32, s=padded C-string, T/F=no bytes]
"""

from __future__ import annotations

import math
import struct

from .internal_types import *
from .constants import INT32_MIN, INT32_MAX
from .exceptions import OscEncodeError, OscDecodeError

TYPE_TAG_PREFIX = ','

_INT32 = struct.Struct('>i')
_FLOAT32 = struct.Struct('>f')

def pad4(n: int) -> int:
    """Returns the number of zero bytes needed to bring a length of n up to a multiple of 4."""
    return (4 - (n % 4)) % 4

def encode_osc_string(value: str) -> bytes:
    """Encodes a str as UTF-8, NUL-terminated and zero-padded to a multiple of 4 bytes."""
    if '\0' in value:
        raise OscEncodeError(f"OSC strings may not contain NUL characters: {value!r}")
    raw = value.encode('utf-8') + b'\0'
    return raw + b'\0' * pad4(len(raw))

def decode_osc_string(data: bytes, start: int) -> Tuple[str, int]:
    """Decodes a padded C-string beginning at offset start.

    Returns a tuple of (value: str, next_offset: int), where next_offset is 4-byte aligned.
    """
    end = data.find(b'\0', start)
    if end < 0:
        raise OscDecodeError(f"Unterminated OSC string at offset {start}")
    try:
        value = data[start:end].decode('utf-8')
    except UnicodeDecodeError as e:
        raise OscDecodeError(f"OSC string at offset {start} is not valid UTF-8") from e
    i = end + 1
    return value, i + pad4(i)

def _is_int32_float(value: float) -> bool:
    return math.isfinite(value) and value.is_integer() and INT32_MIN <= value <= INT32_MAX

def osc_type_tag(arg: OscArg) -> str:
    """Returns the single-character OSC type tag used to encode an argument.

    bool values map to 'T'/'F' and carry no payload. Any numeric value that is an exact
    integer within the int32 range (including floats such as 3.0 or -0.0) maps to 'i';
    any other float maps to 'f'.
    """
    if isinstance(arg, bool):
        return 'T' if arg else 'F'
    if isinstance(arg, int):
        if not INT32_MIN <= arg <= INT32_MAX:
            raise OscEncodeError(f"Integer argument out of int32 range: {arg}")
        return 'i'
    if isinstance(arg, float):
        return 'i' if _is_int32_float(arg) else 'f'
    if isinstance(arg, str):
        return 's'
    raise OscEncodeError(f"Unsupported OSC argument type {type(arg).__name__}: {arg!r}")

def _encode_arg(tag: str, arg: OscArg) -> bytes:
    if tag == 'i':
        return _INT32.pack(int(arg))
    if tag == 'f':
        try:
            return _FLOAT32.pack(arg)
        except OverflowError as e:
            raise OscEncodeError(f"Float argument out of float32 range: {arg}") from e
    if tag == 's':
        return encode_osc_string(str(arg))
    return b''

def encode_osc_message(address: str, *args: OscArg) -> bytes:
    """Encodes an address and arguments into a raw OSC datagram payload."""
    if not isinstance(address, str) or len(address) == 0:
        raise OscEncodeError(f"OSC address must be a non-empty string: {address!r}")
    tags = [osc_type_tag(arg) for arg in args]
    parts = [
        encode_osc_string(address),
        encode_osc_string(TYPE_TAG_PREFIX + ''.join(tags)),
      ]
    parts.extend(_encode_arg(tag, arg) for tag, arg in zip(tags, args))
    return b''.join(parts)

def decode_osc_message(data: bytes) -> OscMessage:
    """Decodes a raw OSC datagram payload into an OscMessage.

    Raises OscDecodeError if the datagram is malformed. A datagram with no type tag
    string after the address decodes to a message with no arguments.
    """
    if len(data) == 0:
        raise OscDecodeError("Empty OSC datagram")
    if data.startswith(b'#bundle'):
        raise OscDecodeError("OSC bundles are not supported")
    address, pos = decode_osc_string(data, 0)
    if len(address) == 0:
        raise OscDecodeError("OSC datagram has an empty address")
    args: List[OscArg] = []
    if pos < len(data) and data[pos] == ord(TYPE_TAG_PREFIX):
        type_tags, pos = decode_osc_string(data, pos)
        for tag in type_tags[1:]:
            if tag == 'i' or tag == 'f':
                if pos + 4 > len(data):
                    raise OscDecodeError(f"Truncated '{tag}' argument at offset {pos} in message to {address}")
                codec = _INT32 if tag == 'i' else _FLOAT32
                args.append(codec.unpack_from(data, pos)[0])
                pos += 4
            elif tag == 's':
                value, pos = decode_osc_string(data, pos)
                args.append(value)
            elif tag == 'T':
                args.append(True)
            elif tag == 'F':
                args.append(False)
            else:
                raise OscDecodeError(f"Unsupported OSC type tag '{tag}' in message to {address}")
        return OscMessage(address, args, raw_data=data, type_tags=type_tags[1:])
    return OscMessage(address, args, raw_data=data, type_tags='')

class OscMessage:
    """An OSC message: an address plus an ordered list of typed arguments.

    Instances are immutable. The encoded datagram is available as raw_data; for decoded
    messages it is the datagram that was received.
    """

    _address: str
    _args: Tuple[OscArg, ...]
    _raw_data: Optional[bytes] = None
    _type_tags: Optional[str] = None
    """The type tags as received on the wire; None for locally constructed messages."""

    def __init__(
            self,
            address: str,
            args: Optional[Iterable[OscArg]]=None,
            raw_data: Optional[bytes]=None,
            type_tags: Optional[str]=None
          ):
        self._address = address
        self._args = () if args is None else tuple(args)
        self._raw_data = raw_data
        self._type_tags = type_tags

    @classmethod
    def from_raw_data(cls, raw_data: bytes) -> OscMessage:
        return decode_osc_message(raw_data)

    @property
    def address(self) -> str:
        """The slash-delimited address naming the remote operation or property."""
        return self._address

    @property
    def args(self) -> Tuple[OscArg, ...]:
        return self._args

    @property
    def type_tags(self) -> str:
        """The wire type tag of each argument, without the leading ','."""
        if self._type_tags is None:
            self._type_tags = ''.join(osc_type_tag(arg) for arg in self._args)
        return self._type_tags

    @property
    def raw_data(self) -> bytes:
        """The raw UDP datagram contents"""
        if self._raw_data is None:
            self._raw_data = encode_osc_message(self._address, *self._args)
        return self._raw_data

    def arg(self, i: int, default: Optional[OscArg]=None) -> Optional[OscArg]:
        """Returns argument i, or default if the message has fewer arguments."""
        return self._args[i] if i < len(self._args) else default

    def __len__(self) -> int:
        return len(self._args)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OscMessage):
            return NotImplemented
        return (
            self._address == other._address and
            self.type_tags == other.type_tags and
            self._args == other._args
          )

    def __hash__(self) -> int:
        return hash((self._address, self._args))

    def __str__(self) -> str:
        return f"OscMessage('{self._address}', args={list(self._args)!r})"

    def __repr__(self) -> str:
        return str(self)

    def to_jsonable(self) -> JsonableDict:
        return { "address": self._address, "args": list(self._args) }
