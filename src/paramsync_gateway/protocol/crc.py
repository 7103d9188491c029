"""Checksums for link frames and parameter sets."""

import zlib
from collections.abc import Iterable

from .codec import RawValue, encode_value


def calculate_crc16(data: bytes) -> int:
    """
    Calculate the CRC-16/MCRF4XX (X.25 accumulate) checksum of a frame.

    Args:
        data: Bytes to calculate CRC over

    Returns:
        16-bit CRC value

    Example:
        >>> hex(calculate_crc16(b"123456789"))
        '0x6f91'
    """
    crc = 0xFFFF

    for byte in data:
        tmp = byte ^ (crc & 0xFF)
        tmp = (tmp ^ (tmp << 4)) & 0xFF
        crc = ((crc >> 8) ^ (tmp << 8) ^ (tmp << 3) ^ (tmp >> 4)) & 0xFFFF

    return crc


def verify_crc16(data: bytes, expected_crc: int) -> bool:
    """
    Verify CRC-16 matches expected value.

    Args:
        data: Data bytes (excluding CRC)
        expected_crc: Expected CRC value

    Returns:
        True if CRC matches, False otherwise
    """
    return calculate_crc16(data) == expected_crc


def parameter_set_hash(entries: Iterable[tuple[int, str, int, RawValue]]) -> int:
    """Compute the content fingerprint of a parameter set.

    CRC-32 accumulated over the name bytes followed by the encoded value
    bytes of every parameter, ordered by component id and then name, so the
    result does not depend on arrival order.

    Args:
        entries: ``(component_id, name, type_code, value)`` tuples.

    Returns:
        Unsigned 32-bit hash.
    """
    crc = 0
    for _component_id, name, type_code, value in sorted(entries, key=lambda e: (e[0], e[1])):
        crc = zlib.crc32(name.encode("utf-8"), crc)
        crc = zlib.crc32(encode_value(value, type_code), crc)
    return crc & 0xFFFFFFFF
