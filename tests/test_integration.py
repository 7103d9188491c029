"""Integration tests: engine -> transport -> simulated vehicle over real frames.

Replaces the serial protocol with a fake that decodes every outbound frame
from its wire bytes and answers with PARAM_VALUE frames. SerialLinkTransport,
the message codec, SyncEngine and the cache store all use real code.
"""

import asyncio

import pytest

from paramsync_gateway.protocol.codec import wire_value
from paramsync_gateway.protocol.constants import HASH_CHECK_PARAM, STORAGE_WRITE, MessageId, ParamType
from paramsync_gateway.protocol.crc import parameter_set_hash
from paramsync_gateway.protocol.frames import Frame
from paramsync_gateway.protocol.messages import (
    _REQUEST_LIST,
    build_param_value,
    parse_param_set,
    parse_param_storage,
    parse_request_read,
)
from paramsync_gateway.serial.connection import SerialLinkTransport
from paramsync_gateway.sync.engine import SyncEngine

VEHICLE_ID = 1
AUTOPILOT = 1

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class SimulatedVehicleLink:
    """Stands in for LinkProtocol and plays the vehicle side of the exchange."""

    def __init__(self, transport: SerialLinkTransport, params: list[tuple[str, ParamType, float | int]]):
        self.transport = transport
        self.params = [[name, param_type, wire_value(value, param_type)] for name, param_type, value in params]
        self.connected = True
        self.received: list[Frame] = []

    @property
    def hash(self) -> int:
        return parameter_set_hash((AUTOPILOT, name, param_type, value) for name, param_type, value in self.params)

    def send_frame(self, frame: Frame) -> bool:
        decoded = Frame.from_bytes(frame.to_bytes())
        assert decoded is not None
        self.received.append(decoded)

        if decoded.message_id == MessageId.PARAM_REQUEST_LIST:
            for index in range(len(self.params)):
                self._reply(index)
        elif decoded.message_id == MessageId.PARAM_REQUEST_READ:
            _system, _component, index, name = parse_request_read(decoded.data)
            if name == HASH_CHECK_PARAM:
                self._reply_payload(build_param_value(HASH_CHECK_PARAM, self.hash, ParamType.UINT32, 0, 0xFFFF))
            elif index >= 0:
                self._reply(index)
            else:
                self._reply(self._index_of(name))
        elif decoded.message_id == MessageId.PARAM_SET:
            _system, _component, name, value, _param_type = parse_param_set(decoded.data)
            index = self._index_of(name)
            self.params[index][2] = value
            self._reply(index)
        return True

    def messages(self, message_id: MessageId) -> list[Frame]:
        return [frame for frame in self.received if frame.message_id == message_id]

    def _index_of(self, name: str) -> int:
        return next(i for i, entry in enumerate(self.params) if entry[0] == name)

    def _reply(self, index: int) -> None:
        name, param_type, value = self.params[index]
        self._reply_payload(build_param_value(name, value, param_type, len(self.params), index))

    def _reply_payload(self, payload: bytes) -> None:
        frame = Frame(MessageId.PARAM_VALUE, payload, system_id=VEHICLE_ID, component_id=AUTOPILOT)
        inbound = Frame.from_bytes(frame.to_bytes())
        asyncio.get_running_loop().call_soon(self.transport.handle_frame, inbound)


PARAMS = [
    ("CRUISE_SPEED", ParamType.REAL32, 10.0),
    ("MIS_TAKEOFF_ALT", ParamType.REAL32, 2.5),
    ("SYS_AUTOSTART", ParamType.INT32, 4001),
    ("BAT_N_CELLS", ParamType.UINT8, 4),
]


def build_stack(metadata, cache_store=None) -> tuple[SyncEngine, SimulatedVehicleLink]:
    transport = SerialLinkTransport(port="/dev/null", vehicle_id=VEHICLE_ID)
    link = SimulatedVehicleLink(transport, PARAMS)
    transport._protocol = link

    engine = SyncEngine(
        transport=transport,
        cache_store=cache_store,
        metadata=metadata,
        vehicle_id=VEHICLE_ID,
        cache_timeout=0.2,
        initial_request_timeout=0.5,
        waiting_param_timeout=0.1,
    )
    transport.on_parameter_value = engine.handle_parameter_value
    return engine, link


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestFullStack:
    """Engine and transport exchanging real frames with a simulated vehicle."""

    @pytest.mark.asyncio
    async def test_load_over_wire(self, metadata, wait_until):
        engine, link = build_stack(metadata)
        engine.start()

        await wait_until(lambda: engine.parameters_ready)

        assert engine.missing_parameters is False
        assert engine.parameter_count == 4
        assert engine.get_fact(AUTOPILOT, "CRUISE_SPEED").value == 10.0
        assert engine.get_fact(AUTOPILOT, "SYS_AUTOSTART").value == 4001
        assert engine.default_component_id == AUTOPILOT
        # The stream, then one more request before readiness
        assert len(link.messages(MessageId.PARAM_REQUEST_LIST)) == 2
        engine.stop()

    @pytest.mark.asyncio
    async def test_write_round_trip(self, metadata, wait_until):
        """A write goes out as PARAM_SET, is confirmed by the echoed value, then stored."""
        engine, link = build_stack(metadata)
        engine.start()
        await wait_until(lambda: engine.parameters_ready)

        engine.write_parameter_raw(AUTOPILOT, "CRUISE_SPEED", "12.5")
        await wait_until(lambda: not engine.has_pending_write(AUTOPILOT, "CRUISE_SPEED"))

        assert engine.get_fact(AUTOPILOT, "CRUISE_SPEED").value == 12.5
        assert link.params[0][2] == 12.5
        assert len(link.messages(MessageId.PARAM_SET)) == 1
        storage = link.messages(MessageId.PARAM_STORAGE)
        assert [parse_param_storage(frame.data) for frame in storage] == [(VEHICLE_ID, AUTOPILOT, STORAGE_WRITE)]
        engine.stop()

    @pytest.mark.asyncio
    async def test_refresh_by_name(self, metadata, wait_until):
        engine, link = build_stack(metadata)
        engine.start()
        await wait_until(lambda: engine.parameters_ready)
        link.params[3][2] = 6

        engine.refresh_parameter(AUTOPILOT, "BAT_N_CELLS")
        await wait_until(lambda: engine.get_fact(AUTOPILOT, "BAT_N_CELLS").value == 6)

        reads = [parse_request_read(f.data) for f in link.messages(MessageId.PARAM_REQUEST_READ)]
        assert (VEHICLE_ID, AUTOPILOT, -1, "BAT_N_CELLS") in reads
        engine.stop()

    @pytest.mark.asyncio
    async def test_second_session_uses_cache(self, metadata, cache_store, wait_until):
        """After one complete load, a reconnect with an unchanged set skips the list request."""
        first, _ = build_stack(metadata, cache_store)
        first.start()
        await wait_until(lambda: first.parameters_ready)
        first.stop()
        assert cache_store.load(VEHICLE_ID) is not None

        second, link = build_stack(metadata, cache_store)
        second.start()
        await wait_until(lambda: second.parameters_ready)

        assert link.messages(MessageId.PARAM_REQUEST_LIST) == []
        assert second.get_fact(AUTOPILOT, "MIS_TAKEOFF_ALT").value == 2.5
        assert second.parameter_count == 4
        second.stop()

    @pytest.mark.asyncio
    async def test_changed_set_falls_back_to_full_load(self, metadata, cache_store, wait_until):
        first, _ = build_stack(metadata, cache_store)
        first.start()
        await wait_until(lambda: first.parameters_ready)
        first.stop()

        second, link = build_stack(metadata, cache_store)
        link.params[0][2] = 20.0
        second.start()
        await wait_until(lambda: second.parameters_ready)

        assert len(link.messages(MessageId.PARAM_REQUEST_LIST)) == 2
        assert second.get_fact(AUTOPILOT, "CRUISE_SPEED").value == 20.0
        second.stop()

    @pytest.mark.asyncio
    async def test_request_list_targets_all_components(self, metadata):
        _engine, link = build_stack(metadata)

        link.transport.request_parameter_list(0)

        frame = link.messages(MessageId.PARAM_REQUEST_LIST)[0]
        assert _REQUEST_LIST.unpack(frame.data) == (VEHICLE_ID, 0)
        assert frame.system_id == 255
