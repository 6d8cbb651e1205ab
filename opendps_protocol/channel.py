# SPDX-License-Identifier: MIT
# Copyright (c) 2026 The opendps-protocol authors

"""
Command/response exchange with bounded retry.
"""

import logging
from typing import Any, Callable, Optional

from .errors import DPSError, ProtocolError, TransportWriteError
from .framing import encode_frame
from .protocol import RESPONSE_BIT, Opcode, Response, Status
from .receiver import INPUT_BUFFER_SIZE, MAX_EMPTY_READS, ResponseReceiver

logger = logging.getLogger(__name__)

MAX_RETRY = 3


def _opcode_name(opcode: int) -> str:
    try:
        return str(Opcode(opcode))
    except ValueError:
        return f"0x{opcode:02x}"


class CommandChannel:
    """
    Sends one command at a time over a transport and checks the response.

    The channel owns no locking; the transport must not be shared with
    another caller while a command is in flight.
    """

    def __init__(
        self,
        transport,
        max_retry: int = MAX_RETRY,
        max_empty_reads: int = MAX_EMPTY_READS,
    ):
        """
        Args:
            transport: Object providing ``write``, ``read`` and ``flush``,
                and optionally ``reset_input_buffer``
            max_retry: Extra attempts after the first one (default 3)
            max_empty_reads: Consecutive empty reads that count as a timeout
        """
        self.transport = transport
        self.max_retry = max_retry
        self.max_empty_reads = max_empty_reads

    def send(self, opcode: int, payload: bytes = b"") -> None:
        """
        Discard pending input, then encode and write one frame.

        Raises:
            TransportWriteError: If the frame could not be written in full
        """
        frame = encode_frame(opcode, payload)
        reset_input = getattr(self.transport, "reset_input_buffer", None)
        if reset_input is not None:
            reset_input()
        logger.debug("TX %d bytes [%s]", len(frame), frame.hex(" "))
        written = self.transport.write(frame)
        if written is not None and written != len(frame):
            raise TransportWriteError(
                f"Short write: {written} of {len(frame)} bytes"
            )
        self.transport.flush()

    def exchange(
        self,
        opcode: int,
        payload: bytes = b"",
        max_size: int = INPUT_BUFFER_SIZE,
    ) -> Response:
        """
        Send one frame and receive its response, without retry.

        Frames that do not answer ``opcode`` are skipped; the status is
        left to the caller.

        Raises:
            TransportError, TimeoutError, FramingError, BufferOverflow,
            ProtocolError
        """
        self.send(opcode, payload)
        receiver = ResponseReceiver(max_size, self.max_empty_reads)
        resp_opcode, body = receiver.read_frame(
            self.transport, expected_opcode=opcode | RESPONSE_BIT
        )
        return Response.from_frame(resp_opcode, body)

    def send_command(
        self,
        opcode: int,
        payload: bytes = b"",
        expected_status: int = Status.SUCCESS,
        max_size: int = INPUT_BUFFER_SIZE,
        decode: Optional[Callable[[bytes], Any]] = None,
    ) -> Any:
        """
        Send a command and return the (decoded) response payload.

        The whole send/receive cycle is repeated up to ``1 + max_retry``
        times. A failed write is raised at once.

        Args:
            opcode: Command opcode
            payload: Command payload
            expected_status: Status byte that marks success
            max_size: Receive buffer size for the response
            decode: Optional payload decoder; a ProtocolError it raises
                uses up one attempt

        Returns:
            Response payload (after the status byte), or ``decode(payload)``

        Raises:
            TransportWriteError: Immediately, if the write fails
            DPSError: The last error observed once all attempts fail
        """
        last_error: Optional[DPSError] = None
        attempts = 1 + self.max_retry

        for attempt in range(1, attempts + 1):
            try:
                resp = self.exchange(opcode, payload, max_size)
                if resp.status != expected_status:
                    raise ProtocolError(
                        f"{_opcode_name(opcode)} failed: status {resp.status}, "
                        f"expected {expected_status}"
                    )
                if decode is not None:
                    return decode(resp.payload)
                return resp.payload
            except TransportWriteError:
                raise
            except DPSError as e:
                last_error = e
                logger.warning(
                    "%s attempt %d/%d failed: %s",
                    _opcode_name(opcode), attempt, attempts, e,
                )

        raise last_error
