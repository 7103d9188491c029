"""Raw value encoding, decoding and coercion for parameter types."""

import math
import struct
from typing import Any, Union

from paramsync_gateway.core.errors import ParameterConversionError

from .constants import FLOAT_TYPES, INTEGER_TYPES, PARAM_VALUE_LEN, TYPE_NAMES, ParamType

RawValue = Union[int, float]

_STRUCT_FORMATS = {
    ParamType.UINT8: "<B",
    ParamType.INT8: "<b",
    ParamType.UINT16: "<H",
    ParamType.INT16: "<h",
    ParamType.UINT32: "<I",
    ParamType.INT32: "<i",
    ParamType.UINT64: "<Q",
    ParamType.INT64: "<q",
    ParamType.REAL32: "<f",
    ParamType.REAL64: "<d",
}

FLOAT32_MAX = 3.4028234663852886e38

# Inclusive (min, max) representable by each type
TYPE_LIMITS: dict[ParamType, tuple[RawValue, RawValue]] = {
    ParamType.UINT8: (0, 0xFF),
    ParamType.INT8: (-0x80, 0x7F),
    ParamType.UINT16: (0, 0xFFFF),
    ParamType.INT16: (-0x8000, 0x7FFF),
    ParamType.UINT32: (0, 0xFFFFFFFF),
    ParamType.INT32: (-0x80000000, 0x7FFFFFFF),
    ParamType.UINT64: (0, 0xFFFFFFFFFFFFFFFF),
    ParamType.INT64: (-0x8000000000000000, 0x7FFFFFFFFFFFFFFF),
    ParamType.REAL32: (-FLOAT32_MAX, FLOAT32_MAX),
    ParamType.REAL64: (-math.inf, math.inf),
}


def _struct_format(type_code: int) -> str:
    try:
        return _STRUCT_FORMATS[ParamType(type_code)]
    except ValueError:
        raise ValueError(f"Unsupported type code: {type_code}") from None


def encode_value(value: RawValue, type_code: int) -> bytes:
    """
    Encode a raw value into its wire bytes (little-endian, unpadded).

    Args:
        value: Raw value, already coerced to the type
        type_code: Parameter type code

    Returns:
        Encoded bytes

    Raises:
        ValueError: If type code is unsupported
        struct.error: If value does not fit the type

    Example:
        >>> encode_value(45, ParamType.INT16)
        b'-\\x00'
    """
    fmt = _struct_format(type_code)
    if type_code in FLOAT_TYPES:
        return struct.pack(fmt, float(value))
    return struct.pack(fmt, int(value))


def encode_value_slot(value: RawValue, type_code: int) -> bytes:
    """Encode a value into the fixed-size value slot used by messages."""
    return encode_value(value, type_code).ljust(PARAM_VALUE_LEN, b"\x00")


def decode_value(data: bytes, type_code: int) -> RawValue:
    """
    Decode wire bytes into a raw value.

    Unlike display formatting, floats are returned at full precision so
    echoes and cache hashes compare exactly.

    Raises:
        ValueError: If type code is unsupported or data is too short
    """
    fmt = _struct_format(type_code)
    size = struct.calcsize(fmt)
    if len(data) < size:
        raise ValueError(f"Insufficient data for {TYPE_NAMES[ParamType(type_code)]}")
    return struct.unpack(fmt, data[:size])[0]


def type_from_string(text: str) -> ParamType:
    """Map a metadata type name (e.g. ``FLOAT``, ``INT32``) to a type code."""
    key = text.strip().upper()
    for type_code, name in TYPE_NAMES.items():
        if name == key:
            return type_code
    aliases = {"REAL32": ParamType.REAL32, "REAL64": ParamType.REAL64}
    if key in aliases:
        return aliases[key]
    raise ValueError(f"Unknown parameter type: {text}")


def coerce_value(value: Any, type_code: int, name: str = "") -> RawValue:
    """Convert an arbitrary value to the raw Python value of a parameter type.

    Accepts ints, floats, bools and numeric strings. Values that cannot be
    represented exactly by the type are rejected, never clamped: negative
    numbers for unsigned types, out-of-range numbers, and non-integral
    numbers for integer types.

    Raises:
        ParameterConversionError: If the value cannot be converted.
    """
    try:
        param_type = ParamType(type_code)
    except ValueError:
        raise ParameterConversionError(f"Unsupported type code: {type_code}", name=name, value=value) from None

    type_name = TYPE_NAMES[param_type]
    number: RawValue

    if isinstance(value, bool):
        number = int(value)
    elif isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            number = int(text, 0) if param_type in INTEGER_TYPES else float(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                raise ParameterConversionError(
                    f"Value '{value}' is not a valid {type_name}", name=name, value=value
                ) from None
    else:
        raise ParameterConversionError(f"Value {value!r} is not a valid {type_name}", name=name, value=value)

    if isinstance(number, float) and math.isnan(number):
        raise ParameterConversionError(f"NaN is not a valid {type_name}", name=name, value=value)

    low, high = TYPE_LIMITS[param_type]

    if param_type in INTEGER_TYPES:
        if isinstance(number, float):
            if not number.is_integer():
                raise ParameterConversionError(
                    f"Value {value} is not an integer for {type_name}", name=name, value=value
                )
            number = int(number)
        if number < low or number > high:
            raise ParameterConversionError(
                f"Value {value} out of range for {type_name} [{low}, {high}]", name=name, value=value
            )
        return number

    number = float(number)
    if number < low or number > high:
        raise ParameterConversionError(f"Value {value} out of range for {type_name}", name=name, value=value)
    return number


def wire_value(value: RawValue, type_code: int) -> RawValue:
    """Return ``value`` as it reads back after a trip over the wire."""
    return decode_value(encode_value(value, type_code), type_code)


def values_match(a: RawValue, b: RawValue, type_code: int) -> bool:
    """Compare two raw values at the precision the wire carries for the type."""
    try:
        return wire_value(a, type_code) == wire_value(b, type_code)
    except (ValueError, struct.error, OverflowError):
        return a == b


def format_value(value: RawValue, type_code: int) -> str:
    """Format a raw value for the text parameter file."""
    if type_code in FLOAT_TYPES:
        if type_code == ParamType.REAL32:
            # Shortest text that survives a float32 round trip
            for digits in range(6, 10):
                text = f"{float(value):.{digits}g}"
                if wire_value(float(text), type_code) == wire_value(value, type_code):
                    return text
        return repr(float(value))
    return str(int(value))
