"""Parameter message payloads.

Builds the outbound request payloads and parses inbound PARAM_VALUE
notifications. Names occupy a fixed 16-byte, null-padded field; values
occupy a fixed 8-byte little-endian slot encoded according to the type.
"""

import logging
import struct

from paramsync_gateway.protocol.codec import RawValue, decode_value, encode_value_slot
from paramsync_gateway.protocol.constants import PARAM_NAME_LEN, PARAM_VALUE_LEN, STORAGE_WRITE, ParamType

logger = logging.getLogger(__name__)

_REQUEST_LIST = struct.Struct("<BB")
_REQUEST_READ = struct.Struct("<BBh")
_PARAM_SET = struct.Struct("<BBB")
_PARAM_VALUE = struct.Struct("<HHB")
_PARAM_STORAGE = struct.Struct("<BBB")

# Index used by PARAM_REQUEST_READ / PARAM_VALUE when the name is authoritative
INDEX_BY_NAME = -1


class ParamValueMessage:
    """A decoded PARAM_VALUE notification."""

    def __init__(
        self,
        name: str,
        value: RawValue,
        param_type: int,
        count: int,
        index: int,
    ):
        self.name = name
        self.value = value
        self.param_type = param_type
        self.count = count
        self.index = index

    def __repr__(self) -> str:
        return (
            f"ParamValueMessage(name={self.name!r}, value={self.value!r}, "
            f"type={self.param_type}, index={self.index}/{self.count})"
        )


def encode_name(name: str) -> bytes:
    """Encode a parameter name into its fixed-width field.

    Raises:
        ValueError: If the name is empty or longer than the field.
    """
    raw = name.encode("ascii")
    if not raw or len(raw) > PARAM_NAME_LEN:
        raise ValueError(f"Invalid parameter name length: {name!r}")
    return raw.ljust(PARAM_NAME_LEN, b"\x00")


def decode_name(data: bytes) -> str:
    """Decode a fixed-width name field, stopping at the first null."""
    null_pos = data.find(b"\x00")
    if null_pos != -1:
        data = data[:null_pos]
    return data.decode("ascii", errors="replace")


def build_request_list(target_system: int, target_component: int) -> bytes:
    """Build PARAM_REQUEST_LIST payload."""
    return _REQUEST_LIST.pack(target_system, target_component)


def build_request_read(target_system: int, target_component: int, index: int = INDEX_BY_NAME, name: str = "") -> bytes:
    """Build PARAM_REQUEST_READ payload.

    With ``index == INDEX_BY_NAME`` the remote looks the parameter up by
    ``name``; otherwise the name field is ignored and sent empty.
    """
    name_field = encode_name(name) if index == INDEX_BY_NAME else b"\x00" * PARAM_NAME_LEN
    return _REQUEST_READ.pack(target_system, target_component, index) + name_field


def build_param_set(target_system: int, target_component: int, name: str, value: RawValue, param_type: int) -> bytes:
    """Build PARAM_SET payload."""
    return (
        _PARAM_SET.pack(target_system, target_component, param_type)
        + encode_value_slot(value, param_type)
        + encode_name(name)
    )


def build_param_storage(target_system: int, target_component: int, action: int = STORAGE_WRITE) -> bytes:
    """Build PARAM_STORAGE payload."""
    return _PARAM_STORAGE.pack(target_system, target_component, action)


def build_param_value(name: str, value: RawValue, param_type: int, count: int, index: int) -> bytes:
    """Build PARAM_VALUE payload (as sent by a vehicle)."""
    return _PARAM_VALUE.pack(count, index, param_type) + encode_value_slot(value, param_type) + encode_name(name)


def parse_request_read(data: bytes) -> tuple[int, int, int, str]:
    """Parse PARAM_REQUEST_READ payload.

    Returns:
        Tuple of (target_system, target_component, index, name).

    Raises:
        ValueError: If data is too short.
    """
    expected = _REQUEST_READ.size + PARAM_NAME_LEN
    if len(data) < expected:
        raise ValueError(f"PARAM_REQUEST_READ too short: {len(data)} bytes")
    target_system, target_component, index = _REQUEST_READ.unpack_from(data)
    return target_system, target_component, index, decode_name(data[_REQUEST_READ.size : expected])


def parse_param_set(data: bytes) -> tuple[int, int, str, RawValue, int]:
    """Parse PARAM_SET payload.

    Returns:
        Tuple of (target_system, target_component, name, value, param_type).

    Raises:
        ValueError: If data is too short or the type is unknown.
    """
    expected = _PARAM_SET.size + PARAM_VALUE_LEN + PARAM_NAME_LEN
    if len(data) < expected:
        raise ValueError(f"PARAM_SET too short: {len(data)} bytes")
    target_system, target_component, param_type = _PARAM_SET.unpack_from(data)
    offset = _PARAM_SET.size
    value = decode_value(data[offset : offset + PARAM_VALUE_LEN], param_type)
    name = decode_name(data[offset + PARAM_VALUE_LEN : expected])
    return target_system, target_component, name, value, param_type


def parse_param_value(data: bytes) -> ParamValueMessage:
    """Parse a PARAM_VALUE payload.

    Raises:
        ValueError: If the payload is malformed.
    """
    expected = _PARAM_VALUE.size + PARAM_VALUE_LEN + PARAM_NAME_LEN
    if len(data) < expected:
        raise ValueError(f"PARAM_VALUE too short: {len(data)} bytes")

    count, index, type_code = _PARAM_VALUE.unpack_from(data)
    try:
        param_type = ParamType(type_code)
    except ValueError:
        raise ValueError(f"PARAM_VALUE with unknown type code {type_code}") from None

    offset = _PARAM_VALUE.size
    value = decode_value(data[offset : offset + PARAM_VALUE_LEN], param_type)
    name = decode_name(data[offset + PARAM_VALUE_LEN : expected])
    if not name:
        raise ValueError("PARAM_VALUE with empty name")

    return ParamValueMessage(name=name, value=value, param_type=param_type, count=count, index=index)


def parse_param_storage(data: bytes) -> tuple[int, int, int]:
    """Parse PARAM_STORAGE payload into (target_system, target_component, action)."""
    if len(data) < _PARAM_STORAGE.size:
        raise ValueError(f"PARAM_STORAGE too short: {len(data)} bytes")
    return _PARAM_STORAGE.unpack_from(data)
