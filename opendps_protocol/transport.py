# SPDX-License-Identifier: MIT
# Copyright (c) 2026 The opendps-protocol authors

"""
Serial byte-stream transport for DPS communication.

Any object with ``write(bytes) -> int``, ``read(size) -> bytes`` and
``flush()`` can stand in for :class:`SerialTransport`; reads may return
no bytes when the per-read inactivity timeout expires.
"""

import logging

import serial

from .errors import TransportError, TransportWriteError

logger = logging.getLogger(__name__)

DEFAULT_BAUDRATE = 115200
DEFAULT_TIMEOUT = 0.1


class SerialTransport:
    """
    Serial port transport (8N1, no flow control).

    Can be used as a context manager:
        with SerialTransport("/dev/ttyUSB0") as t:
            t.write(frame)
    """

    def __init__(
        self,
        port: str,
        baudrate: int = DEFAULT_BAUDRATE,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Open the serial device.

        Args:
            port: Serial port path (e.g., "/dev/ttyUSB0")
            baudrate: Baud rate (default 115200)
            timeout: Per-read inactivity timeout in seconds (default 0.1)

        Raises:
            TransportError: If the port cannot be opened
        """
        try:
            self._ser = serial.Serial(
                port,
                baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=timeout,
                rtscts=False,
            )
        except serial.SerialException as e:
            raise TransportError(f"Error opening {port}: {e}") from e
        self._ser.reset_input_buffer()
        self._ser.reset_output_buffer()
        logger.debug("Opened %s at %d baud", port, baudrate)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self):
        """Close the serial connection."""
        if self._ser and self._ser.is_open:
            self._ser.close()

    @property
    def port(self) -> str:
        """Return the serial port name."""
        return self._ser.port

    def write(self, data: bytes) -> int:
        """
        Write raw bytes.

        Raises:
            TransportWriteError: If the write fails
        """
        try:
            return self._ser.write(data)
        except serial.SerialException as e:
            raise TransportWriteError(f"Write failed: {e}") from e

    def read(self, size: int) -> bytes:
        """
        Read up to ``size`` bytes; returns b"" on inactivity timeout.

        Returns as soon as any bytes are available instead of waiting
        for all ``size`` bytes.

        Raises:
            TransportError: If the read fails
        """
        try:
            return self._ser.read(max(1, min(size, self._ser.in_waiting)))
        except serial.SerialException as e:
            raise TransportError(f"Read failed: {e}") from e

    def reset_input_buffer(self):
        """Discard bytes received but not yet read."""
        try:
            self._ser.reset_input_buffer()
        except serial.SerialException as e:
            raise TransportError(f"Input reset failed: {e}") from e

    def flush(self):
        """Wait until all written data has been transmitted."""
        try:
            self._ser.flush()
        except serial.SerialException as e:
            raise TransportWriteError(f"Flush failed: {e}") from e
