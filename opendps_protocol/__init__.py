# SPDX-License-Identifier: MIT
# Copyright (c) 2026 The opendps-protocol authors

"""
OpenDPS Protocol - Python client library.

This package provides a Python interface to control and upgrade a DPS
power supply running OpenDPS over its serial port.

Example usage:
    from opendps_protocol import Device

    with Device.open("/dev/ttyUSB0") as dps:
        dps.set_voltage_mv(5000)
        dps.set_current_ma(500)
        dps.set_output(True)

        status = dps.query()
        print(f"Output: {status.v_out} mV, {status.i_out} mA")

        # Upgrade firmware
        dps.upgrade("opendps.bin", progress_callback=lambda p: print(f"{p}%"))
"""

from .channel import CommandChannel, MAX_RETRY
from .crc16 import crc16
from .device import Device, open_device
from .errors import (
    DPSError,
    TransportError,
    TransportWriteError,
    TimeoutError,
    FramingError,
    CrcMismatch,
    BufferOverflow,
    ProtocolError,
    UpgradeError,
    UpgradeErrorKind,
)
from .framing import encode_frame, decode_frame
from .protocol import (
    Opcode,
    Status,
    UpgradeStatus,
    Screen,
    Response,
    QueryStatus,
    VersionInfo,
    decode_query,
    decode_version,
)
from .receiver import ResponseReceiver
from .transport import SerialTransport
from .upgrade import UpgradePhase, UpgradeSession, UpgradeState

__version__ = "0.1.0"

__all__ = [
    # CRC
    "crc16",
    # Framing
    "encode_frame",
    "decode_frame",
    # Protocol types
    "Opcode",
    "Status",
    "UpgradeStatus",
    "Screen",
    "Response",
    "QueryStatus",
    "VersionInfo",
    "decode_query",
    "decode_version",
    # Exchange
    "ResponseReceiver",
    "CommandChannel",
    "MAX_RETRY",
    "SerialTransport",
    # Device
    "Device",
    "open_device",
    # Upgrade
    "UpgradePhase",
    "UpgradeSession",
    "UpgradeState",
    # Errors
    "DPSError",
    "TransportError",
    "TransportWriteError",
    "TimeoutError",
    "FramingError",
    "CrcMismatch",
    "BufferOverflow",
    "ProtocolError",
    "UpgradeError",
    "UpgradeErrorKind",
]
