# SPDX-License-Identifier: MIT
# Copyright (c) 2026 The opendps-protocol authors

"""Tests for the firmware upgrade session."""

import logging

import pytest

from opendps_protocol.channel import CommandChannel
from opendps_protocol.crc16 import crc16
from opendps_protocol.errors import (
    CrcMismatch,
    ProtocolError,
    TimeoutError,
    UpgradeError,
    UpgradeErrorKind,
)
from opendps_protocol.framing import decode_frame
from opendps_protocol.protocol import Opcode, UpgradeStatus
from opendps_protocol.upgrade import UpgradePhase, UpgradeSession

from fakes import (
    DelayedReplyTransport,
    FakeTransport,
    make_corrupt_response,
    make_response,
)

FIRMWARE = bytes(i & 0xFF for i in range(2500))


def start_response(chunk_size: int) -> bytes:
    return make_response(
        Opcode.UPGRADE_START, UpgradeStatus.CONTINUE, chunk_size.to_bytes(2, "big")
    )


def data_response(status: int) -> bytes:
    return make_response(Opcode.UPGRADE_DATA, status)


def make_session(responses, firmware=FIRMWARE, **kwargs):
    transport = FakeTransport(responses)
    channel = CommandChannel(transport, max_empty_reads=2)
    return UpgradeSession(channel, firmware, **kwargs), transport


def data_frames(transport):
    """Decoded UPGRADE_DATA frames written to the transport."""
    frames = [decode_frame(f) for f in transport.written]
    return [payload for opcode, payload in frames if opcode == Opcode.UPGRADE_DATA]


class TestStart:
    """Tests for upgrade negotiation."""

    def test_sends_chunk_size_and_crc(self):
        session, transport = make_session([start_response(1024)])
        session.start()

        opcode, payload = decode_frame(transport.written[0])
        crc = crc16(FIRMWARE)
        assert opcode == Opcode.UPGRADE_START
        assert payload == bytes([0x04, 0x00, crc >> 8, crc & 0xFF])

    def test_keeps_chunk_size(self):
        session, _ = make_session([start_response(1024)])

        assert session.start() == 1024
        assert session.state.chunk_size == 1024
        assert session.state.phase == UpgradePhase.NEGOTIATED

    def test_adopts_device_chunk_size(self):
        session, _ = make_session([start_response(1000)])

        assert session.start() == 1000
        assert session.state.chunk_size == 1000

    def test_start_retried(self):
        session, transport = make_session([
            make_corrupt_response(Opcode.UPGRADE_START, 0, b"\x04\x00"),
            start_response(1024),
        ])

        session.start()
        assert len(transport.written) == 2

    def test_rejected(self):
        """A start response with another status fails the session."""
        session, _ = make_session(
            [make_response(Opcode.UPGRADE_START, UpgradeStatus.BOOTCOM_ERROR)] * 4
        )

        with pytest.raises(ProtocolError, match="UPGRADE_START failed"):
            session.start()
        assert session.state.phase == UpgradePhase.FAILED
        assert session.state.is_terminal

    def test_missing_chunk_size(self):
        """A truncated start response is retried, then fails the session."""
        session, transport = make_session([make_response(Opcode.UPGRADE_START, 0)] * 4)

        with pytest.raises(ProtocolError, match="no chunk size"):
            session.start()
        assert session.state.phase == UpgradePhase.FAILED
        assert len(transport.written) == 4

    def test_chunk_size_too_large(self):
        session, _ = make_session([start_response(0xFFFF)] * 4)

        with pytest.raises(ProtocolError, match="chunk size 65535"):
            session.start()

    def test_start_twice(self):
        session, _ = make_session([start_response(1024)])
        session.start()

        with pytest.raises(RuntimeError, match="expected start"):
            session.start()

    def test_empty_firmware(self):
        with pytest.raises(ValueError, match="empty"):
            make_session([], firmware=b"")

    def test_bad_chunk_size(self):
        with pytest.raises(ValueError, match="Chunk size out of range"):
            make_session([], chunk_size=0)


class TestTransfer:
    """Tests for chunked transfer."""

    def test_three_chunks(self):
        """2500 bytes at chunk size 1000 go out as 1000, 1000, 500."""
        session, transport = make_session([
            start_response(1000),
            data_response(UpgradeStatus.CONTINUE),
            data_response(UpgradeStatus.CONTINUE),
            data_response(UpgradeStatus.SUCCESS),
        ])
        progress = []

        session.start()
        session.transfer(progress.append)

        chunks = data_frames(transport)
        assert [len(c) for c in chunks] == [1000, 1000, 500]
        assert b"".join(chunks) == FIRMWARE
        assert progress == [40, 80, 100]
        assert session.state.phase == UpgradePhase.DONE
        assert session.state.bytes_sent == 2500

    def test_progress_non_decreasing(self):
        firmware = b"\xAA" * 1000
        responses = [start_response(64)]
        responses += [data_response(UpgradeStatus.CONTINUE)] * 15
        responses += [data_response(UpgradeStatus.SUCCESS)]
        session, _ = make_session(responses, firmware=firmware)
        progress = []

        session.start()
        session.transfer(progress.append)

        assert len(progress) == 16
        assert progress == sorted(progress)
        assert progress[0] == 6
        assert progress[-1] == 100

    def test_crc_error_aborts(self):
        """A CRC error on the second chunk stops the transfer."""
        session, transport = make_session([
            start_response(1000),
            data_response(UpgradeStatus.CONTINUE),
            data_response(UpgradeStatus.CRC_ERROR),
            data_response(UpgradeStatus.SUCCESS),
        ])
        progress = []

        session.start()
        with pytest.raises(UpgradeError) as excinfo:
            session.transfer(progress.append)

        assert excinfo.value.kind == UpgradeErrorKind.CRC_REJECTED
        assert excinfo.value.status == UpgradeStatus.CRC_ERROR
        assert len(data_frames(transport)) == 2
        assert progress == [40]
        assert session.state.phase == UpgradePhase.FAILED

    @pytest.mark.parametrize("status,kind", [
        (UpgradeStatus.BOOTCOM_ERROR, UpgradeErrorKind.BOOTCOM_ERROR),
        (UpgradeStatus.ERASE_ERROR, UpgradeErrorKind.ERASE_FAILED),
        (UpgradeStatus.FLASH_ERROR, UpgradeErrorKind.FLASH_FAILED),
        (UpgradeStatus.OVERFLOW_ERROR, UpgradeErrorKind.OVERFLOW),
    ])
    def test_fatal_status(self, status, kind):
        session, transport = make_session([start_response(1000), data_response(status)])

        session.start()
        with pytest.raises(UpgradeError) as excinfo:
            session.transfer()

        assert excinfo.value.kind == kind
        assert len(data_frames(transport)) == 1

    def test_unknown_status_is_fatal(self):
        session, transport = make_session([
            start_response(1000),
            data_response(0x42),
            data_response(UpgradeStatus.CONTINUE),
        ])

        session.start()
        with pytest.raises(UpgradeError, match="unknown status") as excinfo:
            session.transfer()

        assert excinfo.value.kind == UpgradeErrorKind.UNKNOWN_STATUS
        assert excinfo.value.status == 0x42
        assert len(data_frames(transport)) == 1

    def test_chunks_not_retried(self):
        """A corrupted acknowledgement aborts without resending."""
        session, transport = make_session([
            start_response(1000),
            make_corrupt_response(Opcode.UPGRADE_DATA, UpgradeStatus.CONTINUE),
            data_response(UpgradeStatus.CONTINUE),
        ])

        session.start()
        with pytest.raises(CrcMismatch):
            session.transfer()

        assert len(data_frames(transport)) == 1
        assert session.state.phase == UpgradePhase.FAILED

    def test_timeout_aborts(self):
        session, transport = make_session([start_response(1000), None])

        session.start()
        with pytest.raises(TimeoutError):
            session.transfer()
        assert len(data_frames(transport)) == 1

    def test_wrong_opcode_not_an_acknowledgement(self):
        """A frame answering another command never acknowledges a chunk."""
        session, transport = make_session([
            start_response(1000),
            make_response(Opcode.PING, UpgradeStatus.CONTINUE),
            data_response(UpgradeStatus.CONTINUE),
        ])

        session.start()
        with pytest.raises(TimeoutError):
            session.transfer()
        assert len(data_frames(transport)) == 1
        assert session.state.phase == UpgradePhase.FAILED

    def test_late_start_reply_ignored(self):
        """
        A start reply arriving after its attempt timed out is not taken
        as the acknowledgement of the first chunk.
        """
        transport = DelayedReplyTransport(
            [start_response(1024), start_response(1024), data_response(UpgradeStatus.SUCCESS)],
            delays=[3, 0, 1],
        )
        channel = CommandChannel(transport, max_empty_reads=2)
        session = UpgradeSession(channel, b"\x5A" * 100)

        assert session.start() == 1024
        session.transfer()

        opcodes = [decode_frame(f)[0] for f in transport.written]
        assert opcodes == [Opcode.UPGRADE_START, Opcode.UPGRADE_START, Opcode.UPGRADE_DATA]
        assert session.state.phase == UpgradePhase.DONE
        assert session.state.last_status == UpgradeStatus.SUCCESS

    def test_no_success_status(self):
        """Running out of firmware without SUCCESS fails."""
        session, _ = make_session(
            [start_response(1000)] + [data_response(UpgradeStatus.CONTINUE)] * 3
        )

        session.start()
        with pytest.raises(ProtocolError, match="did not confirm"):
            session.transfer()
        assert session.state.phase == UpgradePhase.FAILED

    def test_transfer_before_start(self):
        session, _ = make_session([])

        with pytest.raises(RuntimeError, match="expected negotiated"):
            session.transfer()

    def test_iter_progress(self):
        session, _ = make_session([
            start_response(1000),
            data_response(UpgradeStatus.CONTINUE),
            data_response(UpgradeStatus.CONTINUE),
            data_response(UpgradeStatus.SUCCESS),
        ])

        session.start()
        assert list(session.iter_progress()) == [40, 80, 100]

    def test_chunks_with_reserved_bytes(self):
        """Chunk bytes equal to frame delimiters arrive intact."""
        firmware = bytes([0x7E, 0x7D, 0x7F]) * 100
        session, transport = make_session(
            [start_response(128)] + [data_response(UpgradeStatus.CONTINUE)] * 2
            + [data_response(UpgradeStatus.SUCCESS)],
            firmware=firmware,
        )

        session.start()
        session.transfer()
        assert b"".join(data_frames(transport)) == firmware


class TestAbandon:
    """Tests for a transfer stopped by the caller."""

    def make_started(self):
        session, transport = make_session([
            start_response(1000),
            data_response(UpgradeStatus.CONTINUE),
            data_response(UpgradeStatus.CONTINUE),
            data_response(UpgradeStatus.SUCCESS),
        ])
        session.start()
        return session, transport

    def test_close_midway_fails_session(self):
        session, transport = self.make_started()
        progress = session.iter_progress()

        assert next(progress) == 40
        progress.close()

        assert session.state.phase == UpgradePhase.FAILED
        assert session.state.bytes_sent == 1000
        assert len(data_frames(transport)) == 1

    def test_callback_error_fails_session(self):
        session, transport = self.make_started()

        def callback(percent):
            raise RuntimeError("cancelled")

        with pytest.raises(RuntimeError, match="cancelled"):
            session.transfer(callback)

        assert session.state.phase == UpgradePhase.FAILED
        assert len(data_frames(transport)) == 1

    def test_close_after_success_stays_done(self):
        session, _ = self.make_started()
        progress = session.iter_progress()

        assert [next(progress) for _ in range(3)] == [40, 80, 100]
        progress.close()

        assert session.state.phase == UpgradePhase.DONE

    def test_logs_abandon(self, caplog):
        session, _ = self.make_started()
        progress = session.iter_progress()
        next(progress)

        with caplog.at_level(logging.WARNING, logger="opendps_protocol.upgrade"):
            progress.close()
        assert "Upgrade abandoned after 1000 of 2500 bytes" in caplog.text
