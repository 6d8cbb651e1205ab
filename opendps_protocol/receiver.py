# SPDX-License-Identifier: MIT
# Copyright (c) 2026 The opendps-protocol authors

"""
Response frame reassembly from a raw byte stream.
"""

import logging
from typing import Optional, Tuple

from .errors import BufferOverflow, TimeoutError
from .framing import EOF, decode_frame

logger = logging.getLogger(__name__)

INPUT_BUFFER_SIZE = 128
LARGE_BUFFER_SIZE = 256
MAX_EMPTY_READS = 10


class ResponseReceiver:
    """
    Accumulates transport reads until an end-of-frame byte arrives.

    Each transport read blocks for at most the transport's own inactivity
    timeout. ``max_empty_reads`` consecutive empty reads end the wait.
    """

    def __init__(
        self,
        max_size: int = INPUT_BUFFER_SIZE,
        max_empty_reads: int = MAX_EMPTY_READS,
    ):
        self.max_size = max_size
        self.max_empty_reads = max_empty_reads

    def read_frame(
        self,
        transport,
        expected_opcode: Optional[int] = None,
    ) -> Tuple[int, bytes]:
        """
        Receive and decode one frame.

        A frame whose opcode is not ``expected_opcode`` is a late reply to
        an earlier request: it is dropped and reading continues within the
        same read budget.

        Args:
            transport: Object providing ``read(size)``
            expected_opcode: Response opcode to wait for (any if None)

        Returns:
            Tuple of (opcode, body) where body starts with the status byte

        Raises:
            TimeoutError: If the read budget runs out before a frame
            BufferOverflow: If more than ``max_size`` bytes accumulate
            FramingError, CrcMismatch: If the frame is malformed
            TransportError: If the transport read fails
        """
        buffer = bytearray()
        empty_reads = 0

        while empty_reads < self.max_empty_reads:
            data = transport.read(self.max_size - len(buffer) + 1)
            if not data:
                empty_reads += 1
                continue

            empty_reads = 0
            buffer.extend(data)
            if len(buffer) > self.max_size:
                raise BufferOverflow(
                    f"Response exceeds {self.max_size} byte buffer"
                )

            while EOF in buffer:
                end = buffer.index(EOF) + 1
                raw = bytes(buffer[:end])
                del buffer[:end]
                logger.debug("RX %d bytes [%s]", len(raw), raw.hex(" "))

                opcode, body = decode_frame(raw)
                if expected_opcode is None or opcode == expected_opcode:
                    return opcode, body
                logger.debug(
                    "Dropping frame 0x%02x, waiting for 0x%02x",
                    opcode, expected_opcode,
                )

        if buffer:
            logger.debug("RX %d bytes, no EOF [%s]", len(buffer), buffer.hex(" "))
        raise TimeoutError("Timeout waiting for response")
