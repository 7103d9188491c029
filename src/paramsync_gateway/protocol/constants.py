"""Protocol constants for the parameter link."""

from enum import IntEnum

# ============================================================================
# Frame Structure
# ============================================================================

BEGIN_FRAME = 0xFD
END_FRAME = 0x16
FRAME_HEADER_LEN = 6  # BEGIN(1) + LEN(2) + SYS(1) + COMP(1) + MSG(1)
FRAME_MIN_LEN = 9  # header + CRC(2) + END(1)
FRAME_MAX_LEN = 512

# ============================================================================
# Addresses
# ============================================================================

GCS_SYSTEM_ID = 255  # Our own system id on the link
GCS_COMPONENT_ID = 190  # Our own component id on the link
DEFAULT_VEHICLE_ID = 1

COMPONENT_ALL = 0  # Broadcast to every component of a vehicle
DEFAULT_COMPONENT = -1  # Resolves to the heuristically chosen primary component

# ============================================================================
# Message IDs
# ============================================================================


class MessageId(IntEnum):
    """Parameter protocol message ids."""

    PARAM_REQUEST_READ = 20
    PARAM_REQUEST_LIST = 21
    PARAM_VALUE = 22
    PARAM_SET = 23
    PARAM_STORAGE = 24


PARAM_NAME_LEN = 16  # Names are null padded to this length on the wire
PARAM_VALUE_LEN = 8  # Value slot, little-endian, encoded per type
HASH_CHECK_PARAM = "_HASH_CHECK"  # Pseudo-parameter carrying the parameter-set hash
STORAGE_WRITE = 1  # PARAM_STORAGE action: persist current values to non-volatile storage

# ============================================================================
# Parameter Types
# ============================================================================


class ParamType(IntEnum):
    """Parameter raw value type codes."""

    UINT8 = 1
    INT8 = 2
    UINT16 = 3
    INT16 = 4
    UINT32 = 5
    INT32 = 6
    UINT64 = 7
    INT64 = 8
    REAL32 = 9
    REAL64 = 10


# Type metadata
TYPE_NAMES = {
    ParamType.UINT8: "UINT8",
    ParamType.INT8: "INT8",
    ParamType.UINT16: "UINT16",
    ParamType.INT16: "INT16",
    ParamType.UINT32: "UINT32",
    ParamType.INT32: "INT32",
    ParamType.UINT64: "UINT64",
    ParamType.INT64: "INT64",
    ParamType.REAL32: "FLOAT",
    ParamType.REAL64: "DOUBLE",
}

INTEGER_TYPES = frozenset(
    {
        ParamType.UINT8,
        ParamType.INT8,
        ParamType.UINT16,
        ParamType.INT16,
        ParamType.UINT32,
        ParamType.INT32,
        ParamType.UINT64,
        ParamType.INT64,
    }
)

FLOAT_TYPES = frozenset({ParamType.REAL32, ParamType.REAL64})

# ============================================================================
# Synchronization Settings
# ============================================================================

CACHE_TIMEOUT = 2.5  # Wait for the remote hash before falling back (seconds)
INITIAL_REQUEST_TIMEOUT = 6.0  # Wait for the first parameter after a list request
WAITING_PARAM_TIMEOUT = 1.0  # Quiet period before pending entries are re-issued
MAX_READ_RETRIES = 10  # Re-issues per pending read before it is declared failed
MAX_WRITE_RETRIES = 5  # Re-issues per pending write before it is abandoned
MAX_BATCH_SIZE = 10  # Index reads re-issued per waiting-timer tick
