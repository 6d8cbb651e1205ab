# SPDX-License-Identifier: MIT
# Copyright (c) 2026 The opendps-protocol authors

"""
Firmware upgrade sub-protocol.

The client proposes a chunk size and sends the CRC-16 of the whole image
with UPGRADE_START; the device answers with the chunk size it accepts.
The image is then streamed as UPGRADE_DATA frames, one chunk each, and
every chunk is acknowledged with an upgrade status. Chunks are never
retried: any failure aborts the session and the upgrade has to be
started again from the beginning.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, Optional

from .channel import CommandChannel
from .crc16 import crc16
from .errors import DPSError, ProtocolError, UpgradeError, UpgradeErrorKind
from .framing import MAX_PAYLOAD_SIZE
from .protocol import (
    Opcode,
    UpgradeStatus,
    decode_upgrade_start,
    encode_upgrade_start,
)

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024

_FATAL_STATUS = {
    UpgradeStatus.BOOTCOM_ERROR: UpgradeErrorKind.BOOTCOM_ERROR,
    UpgradeStatus.CRC_ERROR: UpgradeErrorKind.CRC_REJECTED,
    UpgradeStatus.ERASE_ERROR: UpgradeErrorKind.ERASE_FAILED,
    UpgradeStatus.FLASH_ERROR: UpgradeErrorKind.FLASH_FAILED,
    UpgradeStatus.OVERFLOW_ERROR: UpgradeErrorKind.OVERFLOW,
}


def _decode_chunk_size(payload: bytes) -> int:
    chunk_size = decode_upgrade_start(payload)
    if chunk_size > MAX_PAYLOAD_SIZE:
        raise ProtocolError(
            f"Device selected chunk size {chunk_size}, max {MAX_PAYLOAD_SIZE}"
        )
    return chunk_size


class UpgradePhase(Enum):
    """Upgrade session state."""
    START = "start"
    NEGOTIATED = "negotiated"
    TRANSFERRING = "transferring"
    DONE = "done"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


@dataclass
class UpgradeState:
    """Progress of one firmware transfer."""
    chunk_size: int
    file_size: int
    crc: int
    bytes_sent: int = 0
    last_status: Optional[int] = None
    phase: UpgradePhase = UpgradePhase.START

    @property
    def is_terminal(self) -> bool:
        return self.phase in (UpgradePhase.DONE, UpgradePhase.FAILED)

    @property
    def percent(self) -> int:
        if self.file_size == 0:
            return 0
        return 100 * self.bytes_sent // self.file_size


class UpgradeSession:
    """
    One firmware transfer to the device.

    Usage::

        session = UpgradeSession(channel, firmware)
        session.start()
        session.transfer(progress_callback=lambda p: print(f"{p}%"))
    """

    def __init__(
        self,
        channel: CommandChannel,
        firmware: bytes,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        """
        Args:
            channel: Command channel to the device
            firmware: Complete firmware image
            chunk_size: Proposed chunk size (device may choose another)

        Raises:
            ValueError: If the firmware image is empty
        """
        if not firmware:
            raise ValueError("Firmware image is empty")
        if not 0 < chunk_size <= 0xFFFF:
            raise ValueError(f"Chunk size out of range: {chunk_size}")
        self.channel = channel
        self.firmware = bytes(firmware)
        self.state = UpgradeState(
            chunk_size=chunk_size,
            file_size=len(self.firmware),
            crc=crc16(self.firmware),
        )

    def start(self) -> int:
        """
        Negotiate the upgrade with the device.

        Returns:
            Chunk size selected by the device

        Raises:
            DPSError: If the device does not accept the upgrade
        """
        self._expect_phase(UpgradePhase.START)
        state = self.state
        logger.debug(
            "Firmware: %d bytes, CRC 0x%04x", state.file_size, state.crc
        )
        try:
            chunk_size = self.channel.send_command(
                Opcode.UPGRADE_START,
                encode_upgrade_start(state.chunk_size, state.crc),
                expected_status=UpgradeStatus.CONTINUE,
                decode=_decode_chunk_size,
            )
        except DPSError:
            state.phase = UpgradePhase.FAILED
            raise

        if chunk_size != state.chunk_size:
            logger.debug("Device selected chunk size %d", chunk_size)
            state.chunk_size = chunk_size
        state.last_status = UpgradeStatus.CONTINUE
        state.phase = UpgradePhase.NEGOTIATED
        return chunk_size

    def iter_progress(self) -> Iterator[int]:
        """
        Stream the firmware, yielding the completion percentage per chunk.

        The last value yielded on success is 100.

        Raises:
            UpgradeError: If the device rejects a chunk
            DPSError: On any transport or protocol failure
        """
        self._expect_phase(UpgradePhase.NEGOTIATED)
        state = self.state
        state.phase = UpgradePhase.TRANSFERRING

        try:
            for offset in range(0, state.file_size, state.chunk_size):
                chunk = self.firmware[offset:offset + state.chunk_size]
                resp = self.channel.exchange(Opcode.UPGRADE_DATA, chunk)
                state.bytes_sent = offset + len(chunk)
                state.last_status = resp.status
                logger.debug(
                    "Chunk at %d (%d bytes): status %d",
                    offset, len(chunk), resp.status,
                )

                if resp.status == UpgradeStatus.CONTINUE:
                    yield state.percent
                elif resp.status == UpgradeStatus.SUCCESS:
                    state.phase = UpgradePhase.DONE
                    yield 100
                    return
                elif resp.status in _FATAL_STATUS:
                    raise UpgradeError(_FATAL_STATUS[resp.status], resp.status)
                else:
                    logger.warning("Device reported unknown status %d", resp.status)
                    raise UpgradeError(UpgradeErrorKind.UNKNOWN_STATUS, resp.status)

            raise ProtocolError("Device did not confirm the upgrade")
        except GeneratorExit:
            if not state.is_terminal:
                logger.warning(
                    "Upgrade abandoned after %d of %d bytes",
                    state.bytes_sent, state.file_size,
                )
                state.phase = UpgradePhase.FAILED
            raise
        except DPSError:
            state.phase = UpgradePhase.FAILED
            raise

    def transfer(
        self,
        progress_callback: Optional[Callable[[int], None]] = None,
    ) -> None:
        """
        Stream the firmware, calling ``progress_callback(percent)`` per chunk.

        Raises:
            UpgradeError: If the device rejects a chunk
            DPSError: On any transport or protocol failure
        """
        progress = self.iter_progress()
        try:
            for percent in progress:
                if progress_callback:
                    progress_callback(percent)
        finally:
            progress.close()

    def _expect_phase(self, phase: UpgradePhase):
        if self.state.phase != phase:
            raise RuntimeError(
                f"Upgrade session is {self.state.phase}, expected {phase}"
            )
