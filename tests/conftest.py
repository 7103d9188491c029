"""Shared test fixtures."""

import asyncio
from collections.abc import Callable
from pathlib import Path

import pytest

from paramsync_gateway.core.cache import ParameterCacheStore
from paramsync_gateway.core.models import CachedParameter
from paramsync_gateway.metadata.provider import MetadataProvider, reset_metadata_provider
from paramsync_gateway.protocol.codec import RawValue, wire_value
from paramsync_gateway.protocol.constants import HASH_CHECK_PARAM, ParamType
from paramsync_gateway.protocol.crc import parameter_set_hash
from paramsync_gateway.sync.engine import SyncEngine

TEST_VEHICLE_ID = 1

METADATA_XML = """<?xml version="1.0" encoding="UTF-8"?>
<parameters>
  <version>3</version>
  <group name="Mission">
    <parameter name="CRUISE_SPEED" type="FLOAT" default="10.0">
      <short_desc>Cruise speed</short_desc>
      <min>0</min>
      <max>50</max>
      <unit>m/s</unit>
    </parameter>
    <parameter name="MIS_TAKEOFF_ALT" type="FLOAT" default="2.5">
      <min>0</min>
      <max>80</max>
      <unit>m</unit>
    </parameter>
  </group>
  <group name="System">
    <parameter name="SYS_AUTOSTART" type="INT32" default="0">
      <reboot_required>true</reboot_required>
      <values>
        <value code="0">Disabled</value>
        <value code="4001">Quadrotor</value>
      </values>
    </parameter>
  </group>
</parameters>
"""


class FakeVehicle:
    """Scriptable stand-in for the link and the vehicle behind it.

    Records every outbound command. With ``auto_respond`` set, requests are
    answered on the next loop iterations the way a vehicle would answer them;
    otherwise tests push notifications explicitly with ``send_param``.
    """

    def __init__(self, params: dict[int, list[tuple[str, ParamType, RawValue]]], vehicle_id: int = TEST_VEHICLE_ID):
        self.params = {cid: [list(entry) for entry in entries] for cid, entries in params.items()}
        self.vehicle_id = vehicle_id
        self.engine: SyncEngine | None = None
        self.sent: list[tuple] = []
        self.auto_respond = False
        self.answer_hash = False
        self.echo_writes = True
        self.drop_once: set[tuple[int, int]] = set()
        self.write_adjust: Callable[[str, RawValue], RawValue] | None = None

    # -- ParameterTransport --------------------------------------------------

    def request_parameter_list(self, component_id: int) -> bool:
        self.sent.append(("list", component_id))
        if self.auto_respond:
            # Components stream concurrently, so interleave them
            targets = self._targets(component_id)
            longest = max((len(self.params[cid]) for cid in targets), default=0)
            for index in range(longest):
                for cid in targets:
                    if index >= len(self.params[cid]):
                        continue
                    if (cid, index) in self.drop_once:
                        self.drop_once.discard((cid, index))
                        continue
                    self._later(self.send_param, cid, index)
        return True

    def request_parameter_hash(self, component_id: int) -> bool:
        self.sent.append(("hash", component_id))
        if self.answer_hash:
            self._later(self.send_hash)
        return True

    def read_parameter_by_index(self, component_id: int, index: int) -> bool:
        self.sent.append(("read_index", component_id, index))
        if self.auto_respond:
            self._later(self.send_param, component_id, index)
        return True

    def read_parameter_by_name(self, component_id: int, name: str) -> bool:
        self.sent.append(("read_name", component_id, name))
        if self.auto_respond and component_id in self.params:
            index = self.index_of(component_id, name)
            if index is not None:
                self._later(self.send_param, component_id, index)
        return True

    def write_parameter(self, component_id: int, name: str, value: RawValue, param_type: int) -> bool:
        self.sent.append(("write", component_id, name, value, param_type))
        if self.echo_writes:
            index = self.index_of(component_id, name)
            if index is not None:
                stored = wire_value(value, param_type)
                if self.write_adjust is not None:
                    stored = self.write_adjust(name, stored)
                self.params[component_id][index][2] = stored
                self._later(self.send_param, component_id, index)
        return True

    def save_to_storage(self, component_id: int) -> bool:
        self.sent.append(("save", component_id))
        return True

    # -- vehicle side --------------------------------------------------------

    @property
    def hash(self) -> int:
        return parameter_set_hash(
            (cid, name, param_type, wire_value(value, param_type))
            for cid, entries in self.params.items()
            for name, param_type, value in entries
        )

    def cache_components(self) -> dict[int, dict[str, CachedParameter]]:
        """The parameter set as the engine would persist it."""
        return {
            cid: {
                name: CachedParameter(index=index, type=int(param_type), value=wire_value(value, param_type))
                for index, (name, param_type, value) in enumerate(entries)
            }
            for cid, entries in self.params.items()
        }

    def index_of(self, component_id: int, name: str) -> int | None:
        for index, entry in enumerate(self.params.get(component_id, [])):
            if entry[0] == name:
                return index
        return None

    def send_param(self, component_id: int, index: int) -> None:
        name, param_type, value = self.params[component_id][index]
        self.engine.handle_parameter_value(
            self.vehicle_id,
            component_id,
            name,
            len(self.params[component_id]),
            index,
            int(param_type),
            wire_value(value, param_type),
        )

    def send_all(self, component_id: int | None = None, skip: tuple[int, ...] = ()) -> None:
        for cid in self._targets(component_id or 0):
            for index in range(len(self.params[cid])):
                if index not in skip:
                    self.send_param(cid, index)

    def send_hash(self, value: int | None = None) -> None:
        hash_value = self.hash if value is None else value
        self.engine.handle_parameter_value(
            self.vehicle_id, 1, HASH_CHECK_PARAM, 0, 0xFFFF, int(ParamType.UINT32), hash_value
        )

    def sent_of(self, kind: str) -> list[tuple]:
        return [entry for entry in self.sent if entry[0] == kind]

    def _targets(self, component_id: int) -> list[int]:
        if component_id == 0:
            return sorted(self.params)
        return [component_id] if component_id in self.params else []

    def _later(self, func, *args) -> None:
        asyncio.get_running_loop().call_soon(func, *args)


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met within timeout")
        await asyncio.sleep(0.005)


@pytest.fixture(autouse=True)
def _reset_metadata():
    """Keep the process-wide metadata provider from leaking between tests."""
    reset_metadata_provider()
    yield
    reset_metadata_provider()


@pytest.fixture
def wait_until():
    """Poll an async predicate until it holds (fails after a timeout)."""
    return _wait_until


@pytest.fixture
def metadata() -> MetadataProvider:
    return MetadataProvider(xml_text=METADATA_XML)


@pytest.fixture
def cache_store(tmp_path: Path) -> ParameterCacheStore:
    return ParameterCacheStore(tmp_path / "param_cache")


@pytest.fixture
def vehicle() -> FakeVehicle:
    """Vehicle with a flight controller (component 1) and a camera (component 100)."""
    return FakeVehicle(
        {
            1: [
                ("CRUISE_SPEED", ParamType.REAL32, 10.0),
                ("MIS_TAKEOFF_ALT", ParamType.REAL32, 2.5),
                ("SYS_AUTOSTART", ParamType.INT32, 4001),
                ("BAT_N_CELLS", ParamType.UINT8, 4),
            ],
            100: [
                ("CAM_MODE", ParamType.UINT8, 1),
            ],
        }
    )


@pytest.fixture
def make_engine(metadata):
    """Factory for engines wired to a FakeVehicle with short timers."""
    engines: list[SyncEngine] = []

    def factory(vehicle: FakeVehicle, cache_store=None, **kwargs) -> SyncEngine:
        options = dict(
            cache_timeout=0.05,
            initial_request_timeout=0.1,
            waiting_param_timeout=0.02,
            max_read_retries=3,
            max_write_retries=2,
        )
        options.update(kwargs)
        engine = SyncEngine(vehicle, cache_store=cache_store, metadata=metadata, vehicle_id=vehicle.vehicle_id, **options)
        vehicle.engine = engine
        engines.append(engine)
        return engine

    yield factory

    for engine in engines:
        engine.stop()
