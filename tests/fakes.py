# SPDX-License-Identifier: MIT
# Copyright (c) 2026 The opendps-protocol authors

"""Transport doubles and frame builders shared by the tests."""

from opendps_protocol.crc16 import crc16
from opendps_protocol.framing import EOF, SOF, encode_frame, stuff
from opendps_protocol.protocol import RESPONSE_BIT


def make_response(opcode: int, status: int, payload: bytes = b"") -> bytes:
    """Create a framed response to ``opcode``."""
    return encode_frame(opcode | RESPONSE_BIT, bytes([status]) + payload)


def make_corrupt_response(opcode: int, status: int, payload: bytes = b"") -> bytes:
    """Create a framed response whose CRC is wrong."""
    body = bytes([opcode | RESPONSE_BIT, status]) + payload
    crc = crc16(body) ^ 0xFFFF
    return bytes([SOF]) + stuff(body + bytes([crc >> 8, crc & 0xFF])) + bytes([EOF])


class FakeTransport:
    """
    Fake device link.

    Each write queues the next scripted response for reading; ``None``
    stands for a device that stays silent. Reads return queued bytes,
    at most ``chunk_size`` at a time, or b"" when nothing is queued.
    """

    def __init__(self, responses=None, chunk_size=None):
        self.responses = list(responses or [])
        self.chunk_size = chunk_size
        self.written = []
        self.flushes = 0
        self.reads = 0
        self.write_error = None
        self.closed = False
        self._pending = bytearray()

    def write(self, data: bytes) -> int:
        if self.write_error is not None:
            raise self.write_error
        self.written.append(bytes(data))
        if self.responses:
            resp = self.responses.pop(0)
            if resp:
                self._pending.extend(resp)
        return len(data)

    def read(self, size: int) -> bytes:
        self.reads += 1
        if not self._pending:
            return b""
        n = min(size, self.chunk_size or size)
        data = bytes(self._pending[:n])
        del self._pending[:n]
        return data

    def flush(self):
        self.flushes += 1

    def close(self):
        self.closed = True


class ScriptedReader:
    """Transport whose reads return a fixed sequence of results."""

    def __init__(self, reads):
        self.script = list(reads)
        self.reads = 0

    def read(self, size: int) -> bytes:
        self.reads += 1
        if not self.script:
            return b""
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class DelayedReplyTransport(FakeTransport):
    """
    Fake device link whose replies arrive late.

    The reply to the n-th write becomes readable ``delays[n]`` reads
    after the write; missing delays mean an immediate reply.
    """

    def __init__(self, responses=None, delays=None, chunk_size=None):
        super().__init__(responses, chunk_size)
        self.delays = list(delays or [])
        self._scheduled = []

    def write(self, data: bytes) -> int:
        if self.write_error is not None:
            raise self.write_error
        self.written.append(bytes(data))
        if self.responses:
            resp = self.responses.pop(0)
            delay = self.delays.pop(0) if self.delays else 0
            if resp:
                self._scheduled.append((self.reads + delay, resp))
        return len(data)

    def read(self, size: int) -> bytes:
        due = [item for item in self._scheduled if item[0] <= self.reads]
        for item in due:
            self._scheduled.remove(item)
            self._pending.extend(item[1])
        return super().read(size)
