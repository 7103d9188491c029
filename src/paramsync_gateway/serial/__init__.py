"""Serial communication layer."""

from paramsync_gateway.serial.connection import SerialLinkTransport
from paramsync_gateway.serial.protocol import LinkProtocol

__all__ = ["LinkProtocol", "SerialLinkTransport"]
