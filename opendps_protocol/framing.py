# SPDX-License-Identifier: MIT
# Copyright (c) 2026 The opendps-protocol authors

"""
Frame encoder/decoder for the DPS serial protocol.

Frame layout::

    SOF | escaped(opcode | payload | crc_hi | crc_lo) | EOF

The CRC-16 covers the unescaped opcode and payload only. Any SOF, DLE or
EOF byte inside the frame is sent as DLE followed by the byte XOR 0x20.
"""

from typing import Tuple

from .crc16 import crc16
from .errors import CrcMismatch, FramingError

SOF = 0x7E  # Start of frame
DLE = 0x7D  # Escape
EOF = 0x7F  # End of frame
XOR = 0x20

MAX_PAYLOAD_SIZE = 4096

_RESERVED = (SOF, DLE, EOF)


def stuff(data: bytes) -> bytes:
    """
    Escape reserved bytes.

    Args:
        data: Raw bytes

    Returns:
        Bytes with every SOF, DLE and EOF replaced by DLE, byte ^ 0x20
    """
    output = bytearray()
    for byte in data:
        if byte in _RESERVED:
            output.append(DLE)
            output.append(byte ^ XOR)
        else:
            output.append(byte)
    return bytes(output)


def encode_frame(opcode: int, payload: bytes = b"") -> bytes:
    """
    Build a complete frame ready to write to the wire.

    Args:
        opcode: Command opcode byte
        payload: Command-specific payload bytes

    Returns:
        SOF-delimited, escaped frame including CRC and EOF

    Raises:
        ValueError: If the payload is too large or opcode is not a byte
    """
    if not 0 <= opcode <= 0xFF:
        raise ValueError(f"Opcode out of range: {opcode}")
    if len(payload) > MAX_PAYLOAD_SIZE:
        raise ValueError(
            f"Payload too large: {len(payload)} bytes (max {MAX_PAYLOAD_SIZE})"
        )

    body = bytes([opcode]) + bytes(payload)
    crc = crc16(body)
    return (
        bytes([SOF])
        + stuff(body + bytes([crc >> 8, crc & 0xFF]))
        + bytes([EOF])
    )


def decode_frame(data: bytes) -> Tuple[int, bytes]:
    """
    Extract and verify one frame from raw received bytes.

    Noise before the frame is skipped: a later SOF always restarts the
    frame. Decoding stops at the first EOF inside a frame.

    Args:
        data: Raw bytes as read from the transport

    Returns:
        Tuple of (opcode, payload)

    Raises:
        FramingError: If no complete frame is found
        CrcMismatch: If the frame CRC does not verify
    """
    body = None
    escaped = False

    for byte in data:
        if byte == SOF:
            body = bytearray()
            escaped = False
        elif body is None:
            continue  # Noise before the first SOF
        elif byte == EOF:
            if escaped:
                raise FramingError("Frame ends inside an escape sequence")
            return _check_frame(bytes(body))
        elif byte == DLE:
            escaped = True
        elif escaped:
            body.append(byte ^ XOR)
            escaped = False
        else:
            body.append(byte)

    if body is None:
        raise FramingError("No start of frame found")
    raise FramingError("Unterminated frame")


def _check_frame(body: bytes) -> Tuple[int, bytes]:
    """Verify the trailing CRC and split off the opcode."""
    if len(body) < 3:
        raise FramingError(f"Frame too short: {len(body)} bytes")

    expected = (body[-2] << 8) | body[-1]
    actual = crc16(body[:-2])
    if expected != actual:
        raise CrcMismatch(expected, actual)

    return body[0], body[1:-2]
