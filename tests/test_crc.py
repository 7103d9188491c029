"""Unit tests for frame CRC-16 and parameter set hashing."""

from paramsync_gateway.protocol.constants import ParamType
from paramsync_gateway.protocol.crc import calculate_crc16, parameter_set_hash, verify_crc16


def test_crc_empty_data():
    """Empty input leaves the initial value untouched."""
    assert calculate_crc16(b"") == 0xFFFF


def test_crc_check_value():
    """Standard check string matches the published CRC-16/MCRF4XX value."""
    assert calculate_crc16(b"123456789") == 0x6F91


def test_crc_deterministic():
    """Test that CRC calculation is deterministic."""
    data = b"\x04\x00\xff\xbe\x15\x01\x00"
    assert calculate_crc16(data) == calculate_crc16(data)


def test_crc_different_data():
    """Test that different data produces different CRC."""
    assert calculate_crc16(b"\x01\x02\x03") != calculate_crc16(b"\x01\x02\x04")


def test_verify_crc_valid():
    """Test CRC verification with valid CRC."""
    data = b"\x04\x00\xff\xbe\x15\x01\x00"
    crc = calculate_crc16(data)
    assert verify_crc16(data, crc) is True


def test_verify_crc_invalid():
    """Test CRC verification with invalid CRC."""
    data = b"\x04\x00\xff\xbe\x15\x01\x00"
    crc = calculate_crc16(data)
    assert verify_crc16(data, crc ^ 0x0001) is False


def test_crc_range():
    """Test that CRC is always 16-bit."""
    for i in range(256):
        assert 0 <= calculate_crc16(bytes([i])) <= 0xFFFF


class TestParameterSetHash:
    """Tests for the parameter set content hash."""

    ENTRIES = [
        (1, "CRUISE_SPEED", ParamType.REAL32, 10.0),
        (1, "BAT_N_CELLS", ParamType.UINT8, 4),
        (100, "CAM_MODE", ParamType.UINT8, 1),
    ]

    def test_order_independent(self):
        """Arrival order does not change the hash."""
        assert parameter_set_hash(self.ENTRIES) == parameter_set_hash(list(reversed(self.ENTRIES)))

    def test_value_change_changes_hash(self):
        """Any value change produces a different hash."""
        changed = [*self.ENTRIES[:2], (100, "CAM_MODE", ParamType.UINT8, 2)]
        assert parameter_set_hash(changed) != parameter_set_hash(self.ENTRIES)

    def test_name_change_changes_hash(self):
        """Renaming a parameter produces a different hash."""
        changed = [(1, "CRUISE_SPEEDX", ParamType.REAL32, 10.0), *self.ENTRIES[1:]]
        assert parameter_set_hash(changed) != parameter_set_hash(self.ENTRIES)

    def test_unsigned_32_bit(self):
        """The hash fits an unsigned 32-bit integer."""
        assert 0 <= parameter_set_hash(self.ENTRIES) <= 0xFFFFFFFF

    def test_empty_set(self):
        """An empty set hashes to zero."""
        assert parameter_set_hash([]) == 0
