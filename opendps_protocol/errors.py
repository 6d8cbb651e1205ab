# SPDX-License-Identifier: MIT
# Copyright (c) 2026 The opendps-protocol authors

"""
Exception hierarchy for the DPS protocol client.

DPSError (base)
├── TransportError - serial open/read/write failure
│   └── TransportWriteError - write failed, link presumed unusable
├── TimeoutError - no end-of-frame within the read budget
├── FramingError - malformed or unterminated frame
│   └── CrcMismatch - frame CRC does not verify
├── BufferOverflow - response larger than the receive buffer
├── ProtocolError - unexpected opcode, status or payload
└── UpgradeError - device rejected a firmware chunk
"""

from enum import Enum
from typing import Optional


class DPSError(Exception):
    """Base exception for all protocol client errors."""
    pass


class TransportError(DPSError):
    """The byte stream could not be opened, read or written."""
    pass


class TransportWriteError(TransportError):
    """Writing to the byte stream failed or was short."""
    pass


class TimeoutError(DPSError):
    """Timeout waiting for a complete response frame."""
    pass


class FramingError(DPSError):
    """No well-formed frame in the received bytes."""
    pass


class CrcMismatch(FramingError):
    """Frame CRC does not match its contents."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"CRC mismatch: frame carries 0x{expected:04x}, computed 0x{actual:04x}"
        )
        self.expected = expected
        self.actual = actual


class BufferOverflow(DPSError):
    """Response exceeded the receive buffer."""
    pass


class ProtocolError(DPSError):
    """Protocol-level error (unexpected response, bad payload, etc.)."""
    pass


class UpgradeErrorKind(Enum):
    """Reasons the device can reject a firmware upgrade."""
    BOOTCOM_ERROR = "bootcom error"
    CRC_REJECTED = "firmware CRC rejected"
    ERASE_FAILED = "flash erase failed"
    FLASH_FAILED = "flash write failed"
    OVERFLOW = "firmware too large"
    UNKNOWN_STATUS = "unknown status"

    def __str__(self) -> str:
        return self.value


class UpgradeError(DPSError):
    """The device reported a fatal status during firmware upgrade."""

    def __init__(self, kind: UpgradeErrorKind, status: Optional[int] = None):
        message = f"Upgrade failed: {kind}"
        if status is not None:
            message += f" (status {status})"
        super().__init__(message)
        self.kind = kind
        self.status = status
