# SPDX-License-Identifier: MIT
# Copyright (c) 2026 The opendps-protocol authors

"""
High-level handle for a DPS power supply.

Every operation is a single command/response exchange through a
:class:`CommandChannel`; firmware upgrades run an :class:`UpgradeSession`.
"""

import logging
from pathlib import Path
from typing import Callable, Optional, Union

from .channel import MAX_RETRY, CommandChannel
from .protocol import (
    Opcode,
    QueryStatus,
    Screen,
    VersionInfo,
    decode_query,
    decode_version,
    encode_brightness,
    encode_change_screen,
    encode_current,
    encode_enable_output,
    encode_lock,
    encode_ping,
    encode_voltage,
)
from .receiver import LARGE_BUFFER_SIZE, MAX_EMPTY_READS
from .transport import DEFAULT_BAUDRATE, DEFAULT_TIMEOUT, SerialTransport
from .upgrade import DEFAULT_CHUNK_SIZE, UpgradeSession

logger = logging.getLogger(__name__)


class Device:
    """
    A DPS device reached over a byte-stream transport.

    Can be used as a context manager:
        with Device.open("/dev/ttyUSB0") as dps:
            dps.ping()
            print(dps.query())
    """

    def __init__(
        self,
        transport,
        max_retry: int = MAX_RETRY,
        max_empty_reads: int = MAX_EMPTY_READS,
    ):
        """
        Args:
            transport: Object providing ``write``, ``read`` and ``flush``
            max_retry: Extra attempts per command (default 3)
            max_empty_reads: Consecutive empty reads that count as a timeout
        """
        self.transport = transport
        self.channel = CommandChannel(transport, max_retry, max_empty_reads)

    @classmethod
    def open(
        cls,
        port: str,
        baudrate: int = DEFAULT_BAUDRATE,
        timeout: float = DEFAULT_TIMEOUT,
        max_retry: int = MAX_RETRY,
    ) -> "Device":
        """
        Open a serial port and return a device handle.

        Raises:
            TransportError: If the port cannot be opened
        """
        return cls(SerialTransport(port, baudrate, timeout), max_retry=max_retry)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self):
        """Close the underlying transport, if it can be closed."""
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()

    def ping(self) -> None:
        """Check that the device answers."""
        self.channel.send_command(Opcode.PING, encode_ping())

    def set_lock(self, locked: bool) -> None:
        """Lock or unlock the front panel."""
        self.channel.send_command(Opcode.LOCK, encode_lock(locked))

    def set_brightness(self, brightness: int) -> None:
        """Set the display brightness."""
        self.channel.send_command(
            Opcode.SET_BRIGHTNESS, encode_brightness(brightness)
        )

    def set_output(self, enabled: bool) -> None:
        """Enable or disable the power output."""
        self.channel.send_command(
            Opcode.ENABLE_OUTPUT, encode_enable_output(enabled)
        )

    def set_voltage_mv(self, millivolts: int) -> None:
        """Set the output voltage in millivolts."""
        self.channel.send_command(
            Opcode.SET_PARAMETERS, encode_voltage(millivolts)
        )

    def set_current_ma(self, milliamps: int) -> None:
        """Set the current limit in milliamps."""
        self.channel.send_command(
            Opcode.SET_PARAMETERS, encode_current(milliamps)
        )

    def query(self) -> QueryStatus:
        """Read voltages, current, output state and temperatures."""
        return self.channel.send_command(
            Opcode.QUERY, max_size=LARGE_BUFFER_SIZE, decode=decode_query
        )

    def change_screen(self, screen: Screen) -> None:
        """Switch the device display to another screen."""
        self.channel.send_command(
            Opcode.CHANGE_SCREEN, encode_change_screen(screen)
        )

    def get_version(self) -> VersionInfo:
        """Read the bootloader and firmware version strings."""
        return self.channel.send_command(
            Opcode.VERSION, max_size=LARGE_BUFFER_SIZE, decode=decode_version
        )

    def upgrade(
        self,
        firmware: Union[bytes, str, Path],
        progress_callback: Optional[Callable[[int], None]] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """
        Upload new firmware.

        Args:
            firmware: Firmware image, or path to the image file
            progress_callback: Optional callback(percent), 0-100
            chunk_size: Proposed chunk size (device may choose another)

        Raises:
            UpgradeError: If the device rejects the firmware
            DPSError: On any transport or protocol failure
            FileNotFoundError: If the firmware file does not exist
        """
        if not isinstance(firmware, (bytes, bytearray)):
            firmware = Path(firmware).read_bytes()

        session = UpgradeSession(self.channel, firmware, chunk_size)
        session.start()
        session.transfer(progress_callback)
        logger.debug("Upgrade complete: %d bytes", session.state.bytes_sent)


def open_device(transport, max_retry: int = MAX_RETRY) -> Device:
    """Wrap an already open transport in a device handle."""
    return Device(transport, max_retry=max_retry)
