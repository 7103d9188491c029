"""Parameter link protocol implementation."""

from paramsync_gateway.protocol.codec import coerce_value, decode_value, encode_value, values_match
from paramsync_gateway.protocol.constants import (
    BEGIN_FRAME,
    COMPONENT_ALL,
    DEFAULT_COMPONENT,
    END_FRAME,
    HASH_CHECK_PARAM,
    TYPE_NAMES,
    MessageId,
    ParamType,
)
from paramsync_gateway.protocol.crc import calculate_crc16, parameter_set_hash, verify_crc16
from paramsync_gateway.protocol.frames import Frame

__all__ = [
    "Frame",
    "calculate_crc16",
    "verify_crc16",
    "parameter_set_hash",
    "encode_value",
    "decode_value",
    "coerce_value",
    "values_match",
    "BEGIN_FRAME",
    "END_FRAME",
    "COMPONENT_ALL",
    "DEFAULT_COMPONENT",
    "HASH_CHECK_PARAM",
    "MessageId",
    "ParamType",
    "TYPE_NAMES",
]
