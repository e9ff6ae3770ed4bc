#!/usr/bin/env python3
"""
Meter <-> Reflector wire protocol
Control integers, handshake ack framing and shared protocol constants

All control integers travel as 4-byte signed values in network byte order.
"""

import struct

# Control integer framing (probe size, duration, per-round packet count)
INT_FORMAT = '!i'
INT_SIZE = struct.calcsize(INT_FORMAT)

ACK_MARKER = b'OK'

# Largest UDP payload over IPv4 (65535 - 8 byte UDP header - 20 byte IP header)
MAX_PROBE_SIZE = 65507
# Must differ from INT_SIZE so an echo can never be read as a round count
MIN_PROBE_SIZE = INT_SIZE + 1

# Receive buffer large enough for any datagram
MAX_DATAGRAM = 65535

# Length of the counting window / paced burst (seconds)
BURST_WINDOW_SEC = 1.0

# Delay between the two handshake datagrams
HANDSHAKE_PACING_SEC = 0.05

FILLER_BYTE = b'X'


class MTripError(Exception):
    """Base class for all measurement errors"""


class TransportError(MTripError):
    """Socket creation, bind or name resolution failed"""


class ProtocolError(MTripError):
    """Peer sent something the protocol does not allow"""


class HandshakeError(ProtocolError):
    """Session negotiation failed"""


class FeedbackTimeout(MTripError):
    """A timing echo or round packet count never arrived from the reflector"""


def encode_int(value: int) -> bytes:
    return struct.pack(INT_FORMAT, value)


def decode_int(data: bytes) -> int:
    """Decode a control integer, rejecting datagrams of the wrong width"""
    if len(data) != INT_SIZE:
        raise ProtocolError(f"Expected {INT_SIZE}-byte control integer, got {len(data)} bytes")
    return struct.unpack(INT_FORMAT, data)[0]


def build_ack(probe_size: int) -> bytes:
    """Handshake acknowledgement: marker followed by zero padding up to probe_size"""
    return ACK_MARKER + bytes(probe_size - len(ACK_MARKER))


def is_ack(data: bytes) -> bool:
    return data[:len(ACK_MARKER)] == ACK_MARKER


def filler_payload(probe_size: int) -> bytes:
    return FILLER_BYTE * probe_size


def valid_probe_size(probe_size: int) -> bool:
    return MIN_PROBE_SIZE <= probe_size <= MAX_PROBE_SIZE
