"""Unit tests for frame construction and parsing."""

import struct

from paramsync_gateway.protocol.constants import (
    BEGIN_FRAME,
    END_FRAME,
    GCS_COMPONENT_ID,
    GCS_SYSTEM_ID,
    MessageId,
)
from paramsync_gateway.protocol.crc import calculate_crc16
from paramsync_gateway.protocol.frames import Frame


class TestFrameConstruction:
    """Tests for frame construction (to_bytes)."""

    def test_frame_basic_structure(self):
        """Frame starts with BEGIN and ends with END."""
        frame_bytes = Frame(MessageId.PARAM_REQUEST_LIST, b"\x01\x00").to_bytes()

        assert frame_bytes[0] == BEGIN_FRAME
        assert frame_bytes[-1] == END_FRAME

    def test_frame_with_no_data(self):
        """An empty frame has the minimum length."""
        assert len(Frame(MessageId.PARAM_VALUE).to_bytes()) == 9

    def test_frame_with_data(self):
        """Payload adds exactly its own length."""
        data = b"\x01\x02\x03\x04"
        assert len(Frame(MessageId.PARAM_SET, data).to_bytes()) == 9 + len(data)

    def test_length_little_endian(self):
        """LEN field is little-endian payload length."""
        frame_bytes = Frame(MessageId.PARAM_SET, bytes(300)).to_bytes()

        assert struct.unpack("<H", frame_bytes[1:3])[0] == 300

    def test_header_ids(self):
        """System, component and message ids follow the length."""
        frame_bytes = Frame(MessageId.PARAM_REQUEST_READ, b"", system_id=7, component_id=9).to_bytes()

        assert frame_bytes[3] == 7
        assert frame_bytes[4] == 9
        assert frame_bytes[5] == MessageId.PARAM_REQUEST_READ

    def test_default_ids(self):
        """Frames default to the ground station's ids."""
        frame_bytes = Frame(MessageId.PARAM_REQUEST_LIST).to_bytes()

        assert frame_bytes[3] == GCS_SYSTEM_ID
        assert frame_bytes[4] == GCS_COMPONENT_ID

    def test_crc_big_endian_over_len_to_data(self):
        """CRC is big-endian and covers everything between BEGIN and CRC."""
        frame_bytes = Frame(MessageId.PARAM_SET, b"\xaa\xbb").to_bytes()

        crc = struct.unpack(">H", frame_bytes[-3:-1])[0]
        assert crc == calculate_crc16(frame_bytes[1:-3])

    def test_total_length(self):
        """total_length adds the fixed overhead."""
        assert Frame.total_length(0) == 9
        assert Frame.total_length(27) == 36


class TestFrameParsing:
    """Tests for frame parsing (from_bytes)."""

    def test_parse_roundtrip(self):
        """A built frame parses back to the same fields."""
        original = Frame(MessageId.PARAM_VALUE, b"\x10\x20\x30", system_id=1, component_id=1)

        parsed = Frame.from_bytes(original.to_bytes())

        assert parsed is not None
        assert parsed.message_id == MessageId.PARAM_VALUE
        assert parsed.data == b"\x10\x20\x30"
        assert parsed.system_id == 1
        assert parsed.component_id == 1

    def test_parse_too_short(self):
        """Data shorter than a minimal frame is rejected."""
        assert Frame.from_bytes(b"\xfd\x00\x00") is None

    def test_parse_bad_markers(self):
        """Wrong BEGIN or END marker is rejected."""
        frame_bytes = bytearray(Frame(MessageId.PARAM_VALUE, b"\x01").to_bytes())
        bad_begin = bytes([0x00]) + bytes(frame_bytes[1:])
        bad_end = bytes(frame_bytes[:-1]) + b"\x00"

        assert Frame.from_bytes(bad_begin) is None
        assert Frame.from_bytes(bad_end) is None

    def test_parse_bad_crc(self):
        """A corrupted payload byte fails the CRC check."""
        frame_bytes = bytearray(Frame(MessageId.PARAM_VALUE, b"\x01\x02").to_bytes())
        frame_bytes[6] ^= 0xFF

        assert Frame.from_bytes(bytes(frame_bytes)) is None

    def test_parse_length_mismatch(self):
        """A LEN field disagreeing with the data size is rejected."""
        frame_bytes = Frame(MessageId.PARAM_VALUE, b"\x01\x02").to_bytes()

        assert Frame.from_bytes(frame_bytes[:-3] + b"\x00" + frame_bytes[-3:]) is None

    def test_repr(self):
        """repr shows ids and payload length."""
        text = repr(Frame(MessageId.PARAM_SET, b"\x00\x01", system_id=1, component_id=2))

        assert "sys=1" in text
        assert "comp=2" in text
        assert "msg=23" in text
        assert "data_len=2" in text
