# SPDX-License-Identifier: MIT
# Copyright (c) 2026 The opendps-protocol authors

"""
DPS protocol definitions and payload serialization.

This module defines the opcode and status tables used by the DPS
firmware, the response data model, and the per-command payload
encoders and response decoders. Framing lives in :mod:`.framing`.
"""

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from .errors import ProtocolError

RESPONSE_BIT = 0x80


class Opcode(IntEnum):
    """Command opcodes (fixed by the device firmware)."""
    PING = 0x01
    QUERY = 0x04
    WIFI_STATUS = 0x06
    LOCK = 0x07
    OCP_EVENT = 0x08
    UPGRADE_START = 0x09
    UPGRADE_DATA = 0x0A
    SET_FUNCTION = 0x0B
    ENABLE_OUTPUT = 0x0C
    LIST_FUNCTIONS = 0x0D
    SET_PARAMETERS = 0x0E
    LIST_PARAMETERS = 0x0F
    TEMPERATURE_REPORT = 0x10
    VERSION = 0x11
    CAL_REPORT = 0x12
    SET_CALIBRATION = 0x13
    CLEAR_CALIBRATION = 0x14
    CHANGE_SCREEN = 0x15
    SET_BRIGHTNESS = 0x16

    def __str__(self) -> str:
        return self.name

    @property
    def response(self) -> int:
        """Opcode the device answers this command with."""
        return self | RESPONSE_BIT


class Status(IntEnum):
    """Status byte of ordinary command responses."""
    SUCCESS = 0x01

    def __str__(self) -> str:
        return self.name


class UpgradeStatus(IntEnum):
    """Status byte of upgrade-start and upgrade-data responses."""
    CONTINUE = 0
    BOOTCOM_ERROR = 1
    CRC_ERROR = 2
    ERASE_ERROR = 3
    FLASH_ERROR = 4
    OVERFLOW_ERROR = 5
    SUCCESS = 16

    def __str__(self) -> str:
        return self.name


class Screen(IntEnum):
    """Screens selectable with CHANGE_SCREEN."""
    MAIN = 0
    SETTINGS = 1

    def __str__(self) -> str:
        return self.name


@dataclass
class Response:
    """A decoded response frame."""
    opcode: int
    status: int
    payload: bytes = b""

    @classmethod
    def from_frame(cls, opcode: int, body: bytes) -> "Response":
        """Split a decoded frame body into status and payload."""
        if len(body) < 1:
            raise ProtocolError(f"Response 0x{opcode:02x} has no status byte")
        return cls(opcode=opcode, status=body[0], payload=bytes(body[1:]))

    def is_response_to(self, opcode: int) -> bool:
        return self.opcode == (opcode | RESPONSE_BIT)


@dataclass
class QueryStatus:
    """Live readings returned by QUERY."""
    v_in: int
    v_out: int
    i_out: int
    output_enabled: bool
    temp1: Optional[float]
    temp2: Optional[float]
    temp_shutdown: bool

    @property
    def output_state(self) -> str:
        if not self.output_enabled:
            return "OFF"
        return "temperature shutdown" if self.temp_shutdown else "ON"


@dataclass
class VersionInfo:
    """Bootloader and firmware version strings."""
    bootloader: str
    firmware: str


# v_in, v_out, i_out, output_enabled, temp1, temp2, temp_shutdown
_QUERY_FORMAT = ">HHHBHHB"
QUERY_PAYLOAD_SIZE = struct.calcsize(_QUERY_FORMAT)

TEMPERATURE_ABSENT = 0xFFFF


def encode_ping() -> bytes:
    """Encode a PING payload."""
    return b""


def encode_lock(locked: bool) -> bytes:
    """Encode a LOCK payload."""
    return bytes([1 if locked else 0])


def encode_brightness(brightness: int) -> bytes:
    """Encode a SET_BRIGHTNESS payload."""
    if not 0 <= brightness <= 0xFF:
        raise ValueError(f"Brightness out of range: {brightness}")
    return bytes([brightness])


def encode_enable_output(enabled: bool) -> bytes:
    """Encode an ENABLE_OUTPUT payload."""
    return bytes([1 if enabled else 0])


def encode_parameter(tag: str, value: int) -> bytes:
    """
    Encode a SET_PARAMETERS payload.

    The firmware expects this command as text: the parameter tag, a NUL,
    then the value as ASCII decimal.

    Args:
        tag: Single-character parameter name ('u' voltage, 'i' current)
        value: Value in mV or mA

    Returns:
        Payload bytes, e.g. b"u\\x005000"
    """
    if len(tag) != 1:
        raise ValueError(f"Parameter tag must be one character: {tag!r}")
    if value < 0:
        raise ValueError(f"Parameter value must not be negative: {value}")
    return tag.encode("ascii") + b"\x00" + str(int(value)).encode("ascii")


def encode_voltage(millivolts: int) -> bytes:
    """Encode a SET_PARAMETERS payload for output voltage."""
    return encode_parameter("u", millivolts)


def encode_current(milliamps: int) -> bytes:
    """Encode a SET_PARAMETERS payload for current limit."""
    return encode_parameter("i", milliamps)


def encode_change_screen(screen: Screen) -> bytes:
    """Encode a CHANGE_SCREEN payload."""
    return bytes([Screen(screen)])


def encode_upgrade_start(chunk_size: int, crc: int) -> bytes:
    """Encode an UPGRADE_START payload (chunk size and firmware CRC)."""
    return struct.pack(">HH", chunk_size, crc)


def decode_temperature(raw: int) -> Optional[float]:
    """
    Decode a temperature reading in tenths of a degree.

    0xFFFF means the sensor is absent. Only values with bit 15 set are
    sign adjusted; anything else is used as is.
    """
    if raw == TEMPERATURE_ABSENT:
        return None
    if raw & 0x8000:
        raw -= 0x10000
    return raw / 10


def decode_query(payload: bytes) -> QueryStatus:
    """
    Decode a QUERY response payload.

    Args:
        payload: Response payload (after the status byte)

    Returns:
        QueryStatus

    Raises:
        ProtocolError: If the payload is truncated
    """
    if len(payload) < QUERY_PAYLOAD_SIZE:
        raise ProtocolError(
            f"Truncated query response: {len(payload)} bytes, "
            f"expected {QUERY_PAYLOAD_SIZE}"
        )

    v_in, v_out, i_out, enabled, temp1, temp2, shutdown = struct.unpack_from(
        _QUERY_FORMAT, payload
    )
    return QueryStatus(
        v_in=v_in,
        v_out=v_out,
        i_out=i_out,
        output_enabled=enabled == 1,
        temp1=decode_temperature(temp1),
        temp2=decode_temperature(temp2),
        temp_shutdown=shutdown == 1,
    )


def decode_version(payload: bytes) -> VersionInfo:
    """
    Decode a VERSION response payload.

    The payload holds two NUL-terminated strings: bootloader version,
    then firmware version.

    Raises:
        ProtocolError: If either string is missing its terminator
    """
    parts = payload.split(b"\x00")
    if len(parts) < 3:
        raise ProtocolError("Truncated version response")
    return VersionInfo(
        bootloader=parts[0].decode("ascii", errors="replace"),
        firmware=parts[1].decode("ascii", errors="replace"),
    )


def decode_upgrade_start(payload: bytes) -> int:
    """
    Decode the chunk size selected by the device in an UPGRADE_START response.

    Raises:
        ProtocolError: If the chunk size is missing or zero
    """
    if len(payload) < 2:
        raise ProtocolError("Upgrade start response carries no chunk size")
    (chunk_size,) = struct.unpack_from(">H", payload)
    if chunk_size == 0:
        raise ProtocolError("Device selected a chunk size of 0")
    return chunk_size
