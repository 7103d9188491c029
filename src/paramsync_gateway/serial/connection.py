"""Serial link transport for the synchronization engine.

Opens the port with serial_asyncio, frames traffic through ``LinkProtocol``,
dispatches inbound PARAM_VALUE notifications and sends the engine's
outbound parameter commands.
"""

import asyncio
import logging
import struct
from collections.abc import Callable

import serial_asyncio
from serial import SerialException

from paramsync_gateway.protocol.codec import RawValue
from paramsync_gateway.protocol.constants import (
    DEFAULT_VEHICLE_ID,
    GCS_COMPONENT_ID,
    GCS_SYSTEM_ID,
    HASH_CHECK_PARAM,
    MessageId,
)
from paramsync_gateway.protocol.frames import Frame
from paramsync_gateway.protocol.messages import (
    INDEX_BY_NAME,
    build_param_set,
    build_param_storage,
    build_request_list,
    build_request_read,
    parse_param_value,
)
from paramsync_gateway.serial.protocol import LinkProtocol

logger = logging.getLogger(__name__)

ParameterValueHandler = Callable[[int, int, str, int, int, int, RawValue], None]


class SerialLinkTransport:
    """Manages the serial link with automatic reconnection.

    Implements the engine's outbound transport contract. Every send is
    fire-and-forget: a False return only means the frame was not queued,
    and the engine's retry timers cover lost requests either way.
    """

    def __init__(
        self,
        port: str,
        baudrate: int = 57600,
        vehicle_id: int = DEFAULT_VEHICLE_ID,
        system_id: int = GCS_SYSTEM_ID,
        component_id: int = GCS_COMPONENT_ID,
        reconnect_delay: float = 5.0,
    ):
        """
        Initialize the transport.

        Args:
            port: Serial port path (e.g., '/dev/ttyACM0')
            baudrate: Communication speed
            vehicle_id: System id of the vehicle requests are addressed to
            system_id: Our own system id
            component_id: Our own component id
            reconnect_delay: Delay between reconnection attempts in seconds
        """
        self.port = port
        self.baudrate = baudrate
        self.vehicle_id = vehicle_id
        self.system_id = system_id
        self.component_id = component_id
        self.reconnect_delay = reconnect_delay

        self._transport: asyncio.Transport | None = None
        self._protocol: LinkProtocol | None = None
        self._reader_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._lock = asyncio.Lock()

        self.on_parameter_value: ParameterValueHandler | None = None
        self.on_connected: Callable[[], None] | None = None
        self.on_disconnected: Callable[[], None] | None = None

    @property
    def connected(self) -> bool:
        """Check if currently connected."""
        return self._protocol is not None and self._protocol.connected

    @property
    def protocol(self) -> LinkProtocol | None:
        return self._protocol

    async def connect(self) -> bool:
        """
        Open the serial port and start reading.

        Returns:
            True if connection successful, False otherwise
        """
        async with self._lock:
            if self.connected:
                logger.debug("Already connected to %s", self.port)
                return True

            try:
                logger.info("Connecting to serial port %s at %d baud", self.port, self.baudrate)
                loop = asyncio.get_running_loop()
                self._transport, self._protocol = await serial_asyncio.create_serial_connection(
                    loop,
                    LinkProtocol,
                    url=self.port,
                    baudrate=self.baudrate,
                )
            except (OSError, SerialException) as e:
                logger.error("Failed to connect to %s: %s", self.port, e)
                self._transport = None
                self._protocol = None
                return False

            logger.info("Successfully connected to %s", self.port)
            self._reader_task = asyncio.create_task(self._read_loop(self._protocol))

        self._notify(self.on_connected)
        return True

    async def disconnect(self) -> None:
        """Close the serial port."""
        async with self._lock:
            if self._transport is None:
                return

            logger.info("Disconnecting from %s", self.port)
            try:
                self._transport.close()
            except Exception as e:
                logger.error("Error closing serial port: %s", e)
            self._transport = None

            if self._reader_task is not None:
                self._reader_task.cancel()
                try:
                    await self._reader_task
                except asyncio.CancelledError:
                    pass
                self._reader_task = None

            was_connected = self._protocol is not None
            self._protocol = None

        if was_connected:
            self._notify(self.on_disconnected)
        logger.info("Disconnected from %s", self.port)

    async def reconnect(self) -> bool:
        """
        Reconnect to serial port.

        Returns:
            True if reconnection successful, False otherwise
        """
        await self.disconnect()
        await asyncio.sleep(self.reconnect_delay)
        return await self.connect()

    async def start_reconnect_loop(self) -> None:
        """Start automatic reconnection loop."""
        if self._reconnect_task and not self._reconnect_task.done():
            logger.warning("Reconnect loop already running")
            return

        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def stop_reconnect_loop(self) -> None:
        """Stop automatic reconnection loop."""
        if self._reconnect_task:
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
            self._reconnect_task = None

    async def _reconnect_loop(self) -> None:
        """Internal reconnection loop."""
        while True:
            try:
                if not self.connected:
                    logger.info("Connection lost, attempting to reconnect...")
                    if await self.reconnect():
                        logger.info("Reconnection successful")
                    else:
                        logger.warning("Reconnection failed, will retry in %ss", self.reconnect_delay)

                await asyncio.sleep(self.reconnect_delay)

            except asyncio.CancelledError:
                logger.info("Reconnect loop cancelled")
                break
            except Exception as e:
                logger.error("Error in reconnect loop: %s", e)
                await asyncio.sleep(self.reconnect_delay)

    async def _read_loop(self, protocol: LinkProtocol) -> None:
        """Dispatch inbound frames until the protocol reports disconnect."""
        while True:
            frame = await protocol.receive_frame()
            if frame is None:
                if not protocol.connected:
                    logger.warning("Serial link to %s lost", self.port)
                    break
                continue
            self.handle_frame(frame)

    def handle_frame(self, frame: Frame) -> None:
        """Decode one inbound frame and forward parameter values."""
        if frame.message_id != MessageId.PARAM_VALUE:
            logger.debug("Ignoring message %d from %d:%d", frame.message_id, frame.system_id, frame.component_id)
            return

        try:
            message = parse_param_value(frame.data)
        except ValueError as e:
            logger.warning("Malformed PARAM_VALUE from %d:%d: %s", frame.system_id, frame.component_id, e)
            return

        if self.on_parameter_value is None:
            return

        try:
            self.on_parameter_value(
                frame.system_id,
                frame.component_id,
                message.name,
                message.count,
                message.index,
                message.param_type,
                message.value,
            )
        except Exception:
            logger.exception("Parameter value handler failed for %s", message.name)

    # -- outbound ------------------------------------------------------------

    def request_parameter_list(self, component_id: int) -> bool:
        return self._send(MessageId.PARAM_REQUEST_LIST, build_request_list, self.vehicle_id, component_id)

    def request_parameter_hash(self, component_id: int) -> bool:
        return self.read_parameter_by_name(component_id, HASH_CHECK_PARAM)

    def read_parameter_by_index(self, component_id: int, index: int) -> bool:
        return self._send(MessageId.PARAM_REQUEST_READ, build_request_read, self.vehicle_id, component_id, index)

    def read_parameter_by_name(self, component_id: int, name: str) -> bool:
        return self._send(
            MessageId.PARAM_REQUEST_READ,
            build_request_read,
            self.vehicle_id,
            component_id,
            INDEX_BY_NAME,
            name,
        )

    def write_parameter(self, component_id: int, name: str, value: RawValue, param_type: int) -> bool:
        return self._send(
            MessageId.PARAM_SET,
            build_param_set,
            self.vehicle_id,
            component_id,
            name,
            value,
            param_type,
        )

    def save_to_storage(self, component_id: int) -> bool:
        return self._send(MessageId.PARAM_STORAGE, build_param_storage, self.vehicle_id, component_id)

    def _send(self, message_id: int, builder: Callable[..., bytes], *args) -> bool:
        try:
            payload = builder(*args)
        except (ValueError, struct.error) as e:
            logger.error("Cannot build message %d%r: %s", message_id, args, e)
            return False

        protocol = self._protocol
        if protocol is None or not protocol.send_frame(
            Frame(message_id, payload, system_id=self.system_id, component_id=self.component_id)
        ):
            logger.debug("Link not connected, dropping message %d", message_id)
            return False
        return True

    @staticmethod
    def _notify(callback: Callable[[], None] | None) -> None:
        if callback is None:
            return
        try:
            callback()
        except Exception:
            logger.exception("Connection callback failed")

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()
