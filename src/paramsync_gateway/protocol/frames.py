"""Frame construction and parsing for the parameter link."""

import struct
from typing import Optional

from paramsync_gateway.protocol.constants import (
    BEGIN_FRAME,
    END_FRAME,
    FRAME_HEADER_LEN,
    FRAME_MIN_LEN,
    GCS_COMPONENT_ID,
    GCS_SYSTEM_ID,
)
from paramsync_gateway.protocol.crc import calculate_crc16


class Frame:
    """
    Represents a link frame.

    Frame structure:
    [BEGIN][LEN_L][LEN_H][SYS][COMP][MSG][DATA...][CRC_H][CRC_L][END]

    Attributes:
        message_id: Message id byte
        data: Payload data
        system_id: Sender system id
        component_id: Sender component id
    """

    def __init__(
        self,
        message_id: int,
        data: bytes = b"",
        system_id: int = GCS_SYSTEM_ID,
        component_id: int = GCS_COMPONENT_ID,
    ):
        self.message_id = message_id
        self.data = data
        self.system_id = system_id
        self.component_id = component_id

    def to_bytes(self) -> bytes:
        """
        Convert frame to bytes for transmission.

        Returns:
            Complete frame as bytes

        Example:
            >>> frame = Frame(message_id=21, data=b'\\x01\\x00')
            >>> frame.to_bytes()[0] == 0xFD  # BEGIN_FRAME
            True
        """
        frame = bytearray()
        frame.append(BEGIN_FRAME)
        frame.extend(struct.pack("<H", len(self.data)))
        frame.append(self.system_id & 0xFF)
        frame.append(self.component_id & 0xFF)
        frame.append(self.message_id & 0xFF)
        frame.extend(self.data)

        # CRC covers LEN through the end of the payload (not BEGIN)
        crc = calculate_crc16(bytes(frame[1:]))
        frame.extend(struct.pack(">H", crc))
        frame.append(END_FRAME)

        return bytes(frame)

    @staticmethod
    def total_length(payload_length: int) -> int:
        """Total frame size on the wire for a payload of the given length."""
        return FRAME_MIN_LEN + payload_length

    @classmethod
    def from_bytes(cls, data: bytes) -> Optional["Frame"]:
        """
        Parse a frame from received bytes.

        Args:
            data: Raw frame bytes

        Returns:
            Parsed Frame object, or None if invalid
        """
        if len(data) < FRAME_MIN_LEN:
            return None

        if data[0] != BEGIN_FRAME or data[-1] != END_FRAME:
            return None

        length = struct.unpack("<H", data[1:3])[0]
        if len(data) != cls.total_length(length):
            return None

        expected_crc = struct.unpack(">H", data[-3:-1])[0]
        if calculate_crc16(data[1:-3]) != expected_crc:
            return None

        return cls(
            message_id=data[5],
            data=bytes(data[FRAME_HEADER_LEN:-3]),
            system_id=data[3],
            component_id=data[4],
        )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"Frame(sys={self.system_id}, comp={self.component_id}, "
            f"msg={self.message_id}, data_len={len(self.data)})"
        )
