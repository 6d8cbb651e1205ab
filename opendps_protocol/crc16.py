# SPDX-License-Identifier: MIT
# Copyright (c) 2026 The opendps-protocol authors

"""
CRC-16 (CCITT, XMODEM variant) implementation.

Polynomial 0x1021, initial value 0, MSB-first, no reflection. This is the
checksum the DPS firmware uses both for frames and for firmware images.
"""

# Pre-computed CRC-16 lookup table
_CRC16_TABLE = []


def _init_table():
    """Initialize the CRC-16 lookup table."""
    global _CRC16_TABLE
    poly = 0x1021
    for i in range(256):
        crc = i << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ poly) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
        _CRC16_TABLE.append(crc)


_init_table()


def crc16(data: bytes, crc: int = 0) -> int:
    """
    Compute CRC-16-CCITT checksum.

    Args:
        data: Bytes to compute checksum for
        crc: Running CRC value to continue from (default 0)

    Returns:
        16-bit CRC value
    """
    for byte in data:
        crc = ((crc << 8) & 0xFFFF) ^ _CRC16_TABLE[((crc >> 8) ^ byte) & 0xFF]
    return crc
