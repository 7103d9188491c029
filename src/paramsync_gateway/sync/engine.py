"""Parameter synchronization engine.

Keeps a local mirror of every component's parameters in step with the
vehicle over an unreliable link. A full load is a sweep by index: the
vehicle streams its list after one request, and a quiet-period timer
re-requests whatever is still missing until each index either arrives or
exhausts its retry budget. A cached parameter set whose hash matches the
one the vehicle reports skips the sweep entirely.

All state is owned by one asyncio event loop. Transport notifications and
timer callbacks both run on it; writes from other threads are handed over
with ``write_parameter_threadsafe``.
"""

import asyncio
import concurrent.futures
import logging
from collections.abc import Callable, Iterator
from typing import Any, TextIO

from paramsync_gateway.core.errors import MissingParameterError
from paramsync_gateway.core.models import CachedParameter, CachedParameterSet
from paramsync_gateway.metadata.provider import MetadataProvider, ParameterMetaData, get_metadata_provider
from paramsync_gateway.protocol.codec import RawValue, values_match
from paramsync_gateway.protocol.constants import (
    CACHE_TIMEOUT,
    COMPONENT_ALL,
    DEFAULT_COMPONENT,
    DEFAULT_VEHICLE_ID,
    HASH_CHECK_PARAM,
    INITIAL_REQUEST_TIMEOUT,
    MAX_BATCH_SIZE,
    MAX_READ_RETRIES,
    MAX_WRITE_RETRIES,
    WAITING_PARAM_TIMEOUT,
    ParamType,
)
from paramsync_gateway.protocol.crc import parameter_set_hash
from paramsync_gateway.sync import paramfile
from paramsync_gateway.sync.fact import Fact
from paramsync_gateway.sync.interfaces import ParameterCacheStore, ParameterTransport
from paramsync_gateway.sync.state import ComponentState, PendingWrite, SyncState, determine_default_component

logger = logging.getLogger(__name__)


class _Timer:
    """Re-armable one-shot timer on the running event loop."""

    def __init__(self, interval: float, callback: Callable[[], None], name: str):
        self.interval = interval
        self._callback = callback
        self._name = name
        self._handle: asyncio.TimerHandle | None = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        """(Re)start the countdown; a non-positive interval disables the timer."""
        self.stop()
        if self.interval <= 0:
            return
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.interval, self._fire)

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        logger.debug("%s timer fired", self._name)
        self._callback()


class SyncEngine:
    """Synchronizes one vehicle's parameters with a local mirror.

    Lifecycle: ``IDLE`` -> ``CACHE_PROBE`` -> ``BULK_LOADING`` -> ``READY``.
    ``refresh_all_parameters`` re-enters ``BULK_LOADING`` at any time.
    Readiness (``on_parameters_ready``) fires exactly once per load epoch.
    """

    def __init__(
        self,
        transport: ParameterTransport,
        cache_store: ParameterCacheStore | None = None,
        metadata: MetadataProvider | None = None,
        vehicle_id: int = DEFAULT_VEHICLE_ID,
        cache_timeout: float = CACHE_TIMEOUT,
        initial_request_timeout: float = INITIAL_REQUEST_TIMEOUT,
        waiting_param_timeout: float = WAITING_PARAM_TIMEOUT,
        refresh_all_interval: float = 0.0,
        max_read_retries: int = MAX_READ_RETRIES,
        max_write_retries: int = MAX_WRITE_RETRIES,
        max_batch_size: int = MAX_BATCH_SIZE,
        default_component_param: str | None = None,
    ):
        """Initialize the engine.

        Args:
            transport: Sends outbound parameter commands.
            cache_store: Stores complete parameter sets; None disables the fast path.
            metadata: Metadata provider (defaults to the process-wide one).
            vehicle_id: System id of the vehicle to synchronize.
            cache_timeout: Seconds to wait for the vehicle's hash.
            initial_request_timeout: Seconds to wait for the first parameter
                after a list request before asking again.
            waiting_param_timeout: Quiet period before pending entries are re-issued.
            refresh_all_interval: Seconds between periodic full refreshes once
                ready (0 disables).
            max_read_retries: Re-issues per read before it is declared failed.
            max_write_retries: Re-issues per write before it is abandoned.
            max_batch_size: Index reads re-issued per waiting-timer tick.
            default_component_param: Parameter whose presence marks the
                primary component.
        """
        self._transport = transport
        self._cache_store = cache_store
        self._metadata = metadata if metadata is not None else get_metadata_provider()
        self._vehicle_id = vehicle_id
        self._max_read_retries = max_read_retries
        self._max_write_retries = max_write_retries
        self._max_batch_size = max_batch_size
        self._default_component_param = default_component_param

        self._components: dict[int, ComponentState] = {}
        self._facts: dict[tuple[int, str], Fact] = {}

        self._state = SyncState.IDLE
        self._ready = False
        self._missing_parameters = False
        self._params_received = False
        self._initial_request_retried = False
        self._bulk_target = COMPONENT_ALL
        self._target_missing = False
        self._settling = False
        self._settled = False
        self._default_component_id: int | None = None
        self._progress = 0.0
        self._epoch = 0
        self._loop: asyncio.AbstractEventLoop | None = None

        self._cache_timer = _Timer(cache_timeout, self._cache_timeout, "cache")
        self._initial_request_timer = _Timer(initial_request_timeout, self._initial_request_timeout, "initial request")
        self._waiting_param_timer = _Timer(waiting_param_timeout, self._waiting_param_timeout, "waiting param")
        self._refresh_all_timer = _Timer(refresh_all_interval, self._timeout_refresh_all, "refresh all")
        # Quiet period after the final list request of a broadcast load
        self._settle_timer = _Timer(waiting_param_timeout, self._settle_timeout, "settle")

        self.on_parameters_ready: Callable[[bool], None] | None = None
        self.on_progress: Callable[[float], None] | None = None
        self.on_write_failed: Callable[[int, str, RawValue], None] | None = None
        self.on_write_adjusted: Callable[[int, str, RawValue, RawValue], None] | None = None

    # -- properties ------------------------------------------------------------

    @property
    def vehicle_id(self) -> int:
        return self._vehicle_id

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def parameters_ready(self) -> bool:
        """Whether readiness has been declared in the current epoch.

        True even when parameters are missing; check ``missing_parameters``
        to tell a complete load from one that gave up on some indices.
        """
        return self._ready

    @property
    def missing_parameters(self) -> bool:
        """Whether the last completed load had failed indices."""
        return self._missing_parameters

    @property
    def progress(self) -> float:
        return self._progress

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def default_component_id(self) -> int | None:
        return self._default_component_id

    @property
    def component_ids(self) -> list[int]:
        return sorted(self._components)

    @property
    def parameter_count(self) -> int:
        return len(self._facts)

    @property
    def expected_count(self) -> int:
        """Total parameter count announced across components."""
        return sum(comp.expected_count or 0 for comp in self._components.values())

    def component_state(self, component_id: int) -> ComponentState | None:
        """Bookkeeping for a component (read-only use)."""
        return self._components.get(component_id)

    def iter_facts(self) -> Iterator[Fact]:
        """All facts ordered by component id, then name."""
        for key in sorted(self._facts):
            yield self._facts[key]

    # -- lifecycle -------------------------------------------------------------

    def start(self) -> None:
        """React to the vehicle connection starting: probe the cache, then load."""
        if self._state is not SyncState.IDLE:
            logger.debug("Engine already started (state=%s)", self._state.value)
            return

        self._loop = asyncio.get_running_loop()
        self._epoch += 1

        if self._cache_store is None:
            logger.info("No parameter cache configured, loading from vehicle %d", self._vehicle_id)
            self.refresh_all_parameters()
            return

        self._state = SyncState.CACHE_PROBE
        logger.info("Requesting parameter hash from vehicle %d", self._vehicle_id)
        self._transport.request_parameter_hash(COMPONENT_ALL)
        self._cache_timer.start()

    def stop(self) -> None:
        """React to the vehicle connection ending: disarm timers and reset state."""
        for timer in (
            self._cache_timer,
            self._initial_request_timer,
            self._waiting_param_timer,
            self._refresh_all_timer,
            self._settle_timer,
        ):
            timer.stop()

        for comp in self._components.values():
            comp.reset()
        self._components.clear()
        self._facts.clear()
        self._state = SyncState.IDLE
        self._ready = False
        self._missing_parameters = False
        self._params_received = False
        self._initial_request_retried = False
        self._target_missing = False
        self._settling = False
        self._settled = False
        self._default_component_id = None
        self._progress = 0.0
        logger.info("Parameter synchronization stopped for vehicle %d", self._vehicle_id)

    # -- public operations -----------------------------------------------------

    def refresh_all_parameters(self, component_id: int = COMPONENT_ALL) -> None:
        """Re-request the full parameter list for one component or all of them.

        Pending and failed reads of the targeted scope are discarded before the
        new request goes out, so retries from an earlier epoch never count as
        progress. Readiness is re-armed. ``DEFAULT_COMPONENT`` targets the
        default component, or every component while none is known yet.
        """
        self._cache_timer.stop()
        self._refresh_all_timer.stop()
        self._settle_timer.stop()

        if component_id == DEFAULT_COMPONENT:
            component_id = self._actual_component_id(component_id)
            if component_id == DEFAULT_COMPONENT:
                logger.info("No default component known yet, requesting every component")
                component_id = COMPONENT_ALL

        for comp in self._components.values():
            if component_id in (COMPONENT_ALL, comp.component_id):
                comp.mark_all_pending()

        if self._state is not SyncState.CACHE_PROBE and self._state is not SyncState.IDLE:
            self._epoch += 1
        elif self._loop is None:
            self._loop = asyncio.get_running_loop()
            self._epoch += 1

        self._state = SyncState.BULK_LOADING
        self._ready = False
        self._params_received = False
        self._initial_request_retried = False
        self._target_missing = False
        self._settling = False
        self._settled = False
        self._bulk_target = component_id
        self._progress = 0.0
        self._update_progress()

        logger.info("Requesting parameter list (component %d, epoch %d)", component_id, self._epoch)
        self._transport.request_parameter_list(component_id)
        self._initial_request_timer.start()
        if self._has_pending():
            self._waiting_param_timer.start()

    def refresh_parameter(self, component_id: int, name: str) -> bool:
        """Re-read one parameter by name without touching the load state.

        Returns:
            False if ``DEFAULT_COMPONENT`` cannot be resolved yet; nothing is
            sent then.
        """
        component_id = self._actual_component_id(component_id)
        if component_id == DEFAULT_COMPONENT:
            logger.warning("Cannot refresh %s, no default component known yet", name)
            return False
        comp = self._component(component_id)
        comp.pending_read_name[name] = 0
        logger.debug("Refreshing parameter %d:%s", component_id, name)
        self._transport.read_parameter_by_name(component_id, name)
        self._waiting_param_timer.start()
        return True

    def refresh_parameters_prefix(self, component_id: int, prefix: str) -> list[str]:
        """Re-read every known parameter whose name starts with ``prefix``.

        Returns:
            The names that were requested.
        """
        component_id = self._actual_component_id(component_id)
        names = sorted(name for cid, name in self._facts if cid == component_id and name.startswith(prefix))
        for name in names:
            self.refresh_parameter(component_id, name)
        return names

    def parameter_exists(self, component_id: int, name: str) -> bool:
        """True iff a confirmed value exists for the parameter."""
        fact = self._facts.get((self._actual_component_id(component_id), name))
        return fact is not None and fact.value is not None

    def parameter_names(self, component_id: int) -> list[str]:
        """Sorted parameter names of a component."""
        component_id = self._actual_component_id(component_id)
        return sorted(name for cid, name in self._facts if cid == component_id)

    def get_fact(self, component_id: int, name: str) -> Fact:
        """Return the live Fact for a parameter.

        Raises:
            MissingParameterError: If the parameter does not exist. Callers
                must check ``parameter_exists`` first.
        """
        component_id = self._actual_component_id(component_id)
        fact = self._facts.get((component_id, name))
        if fact is None or fact.value is None:
            raise MissingParameterError(component_id, name)
        return fact

    def has_pending_write(self, component_id: int, name: str) -> bool:
        comp = self._components.get(self._actual_component_id(component_id))
        return comp is not None and name in comp.pending_write

    def write_parameter_raw(self, component_id: int, name: str, value: Any) -> RawValue:
        """Validate a value and send it to the vehicle.

        A newer write for the same name replaces the pending one and restarts
        its retry count. Completion shows up as the echo clearing the
        pending entry.

        Returns:
            The coerced raw value that was sent.

        Raises:
            MissingParameterError: If the parameter does not exist.
            ParameterConversionError: If the value fails validation; nothing is sent.
        """
        fact = self.get_fact(component_id, name)
        raw = fact.metadata.convert_and_validate(value)

        comp = self._component(fact.component_id)
        if name in comp.pending_write:
            logger.debug("Superseding pending write of %d:%s", fact.component_id, name)
        comp.pending_write[name] = PendingWrite(raw, fact.type)

        fact._container_set_raw_value(raw)
        logger.info("Writing parameter %d:%s = %s", fact.component_id, name, raw)
        self._transport.write_parameter(fact.component_id, name, raw, fact.type)
        self._waiting_param_timer.start()
        return raw

    def write_parameter_threadsafe(self, component_id: int, name: str, value: Any) -> concurrent.futures.Future:
        """Hand a write from another thread to the engine's event loop.

        Returns:
            Future resolving to the coerced value, or raising the validation error.

        Raises:
            RuntimeError: If the engine has not been started.
        """
        if self._loop is None:
            raise RuntimeError("Engine not started")

        async def apply() -> RawValue:
            return self.write_parameter_raw(component_id, name, value)

        return asyncio.run_coroutine_threadsafe(apply(), self._loop)

    def get_group_map(self) -> dict[int, dict[str, list[str]]]:
        """Component id to group name to sorted parameter names (best effort mid-load)."""
        result: dict[int, dict[str, list[str]]] = {}
        for component_id in sorted(self._components):
            comp = self._components[component_id]
            if comp.groups_dirty:
                self._rebuild_groups(comp)
            result[component_id] = {group: list(names) for group, names in comp.groups.items()}
        return result

    def write_parameters_to_stream(self, stream: TextIO) -> None:
        """Export every parameter in the text parameter file format."""
        paramfile.write_parameters(self, stream)

    def read_parameters_from_stream(self, stream: TextIO) -> str:
        """Import a text parameter file through the normal write path.

        Returns:
            Newline-separated errors for rejected lines (empty if none).
        """
        return paramfile.read_parameters(self, stream)

    # -- inbound ---------------------------------------------------------------

    def handle_parameter_value(
        self,
        vehicle_id: int,
        component_id: int,
        name: str,
        count: int,
        index: int,
        param_type: int,
        value: RawValue,
    ) -> None:
        """Process one PARAM_VALUE notification from the transport."""
        if vehicle_id != self._vehicle_id:
            logger.debug("Ignoring parameter %s from vehicle %d", name, vehicle_id)
            return

        if self._state is SyncState.IDLE:
            logger.debug("Ignoring parameter %s, synchronization not started", name)
            return

        if name == HASH_CHECK_PARAM:
            self._handle_hash(component_id, value)
            return

        try:
            param_type = ParamType(param_type)
        except ValueError:
            logger.warning("Ignoring parameter %d:%s with unknown type %s", component_id, name, param_type)
            return

        if self._bulk_target in (COMPONENT_ALL, component_id):
            self._initial_request_timer.stop()
            self._params_received = True
        if self._settling and not self._ready:
            self._settled = False
            self._settle_timer.start()

        comp = self._component(component_id)
        if not comp.count_known:
            logger.debug("Component %d announced %d parameters", component_id, count)
            comp.set_expected_count(count)
        elif count != comp.expected_count:
            logger.warning(
                "Component %d announced %d parameters, expected %d; keeping first count",
                component_id,
                count,
                comp.expected_count,
            )

        if comp.expected_count == 0:
            logger.debug("Component %d has no parameters", component_id)
            self._check_load_complete()
            return

        duplicate = False
        has_index = comp.expected_count is not None and 0 <= index < comp.expected_count
        if has_index:
            known_name = comp.index_to_name.get(index)
            if known_name is None:
                previous_index = comp.name_to_index.get(name)
                if previous_index is not None and previous_index != index:
                    duplicate = True
                    logger.warning(
                        "Duplicate parameter name %d:%s at indices %d and %d, using generic metadata",
                        component_id,
                        name,
                        previous_index,
                        index,
                    )
                else:
                    comp.name_to_index[name] = index
                comp.index_to_name[index] = name
            elif known_name != name:
                logger.warning(
                    "Index %d of component %d is %s, ignoring report naming it %s",
                    index,
                    component_id,
                    known_name,
                    name,
                )
            comp.resolve_index(index)

        comp.pending_read_name.pop(name, None)
        self._check_pending_write(comp, name, value)

        fact = self._facts.get((component_id, name))
        if fact is None:
            metadata = (
                ParameterMetaData.generic_for(param_type, name)
                if duplicate
                else self._metadata.get(name, param_type)
            )
            fact = Fact(component_id, name, param_type, metadata, on_edit=self.write_parameter_raw)
            self._facts[(component_id, name)] = fact
            comp.groups_dirty = True
            logger.debug("Adding parameter %d:%s", component_id, name)
        else:
            if fact.type != param_type:
                logger.warning(
                    "Parameter %d:%s changed type from %s to %s",
                    component_id,
                    name,
                    fact.type.name,
                    param_type.name,
                )
                fact.type = param_type
                fact.metadata = self._metadata.get(name, param_type)
                comp.groups_dirty = True
            if duplicate and not fact.metadata.generic:
                fact.metadata = ParameterMetaData.generic_for(param_type, name)
                comp.groups_dirty = True

        if has_index and fact.index is None:
            fact.index = comp.name_to_index.get(name, index)
        fact._container_set_raw_value(value)

        self._update_progress()
        if self._has_pending():
            self._waiting_param_timer.start()
        self._check_load_complete()

    def _check_pending_write(self, comp: ComponentState, name: str, value: RawValue) -> None:
        pending = comp.pending_write.get(name)
        if pending is None:
            return

        if values_match(pending.value, value, pending.param_type):
            del comp.pending_write[name]
            comp.save_required = True
            logger.info("Write of %d:%s = %s confirmed", comp.component_id, name, value)
            self._save_if_drained(comp)
            return

        # Either a stale echo of a superseded write or an adjustment by the
        # vehicle; the entry stays pending for the latest value.
        pending.last_echo = value
        logger.warning(
            "Vehicle reports %d:%s = %s while write of %s is pending",
            comp.component_id,
            name,
            value,
            pending.value,
        )

    def _handle_hash(self, component_id: int, value: RawValue) -> None:
        if self._state is not SyncState.CACHE_PROBE:
            logger.debug("Ignoring parameter hash outside cache probe")
            return

        self._cache_timer.stop()
        hash_value = int(value) & 0xFFFFFFFF
        logger.debug("Vehicle %d component %d reports hash 0x%08X", self._vehicle_id, component_id, hash_value)

        if not self._try_cache_hash_load(hash_value):
            self.refresh_all_parameters()

    def _try_cache_hash_load(self, hash_value: int) -> bool:
        if self._cache_store is None:
            return False

        cached = self._cache_store.load(self._vehicle_id)
        if cached is None:
            logger.info("No cached parameters for vehicle %d", self._vehicle_id)
            return False

        if cached.hash != hash_value:
            logger.info(
                "Parameter cache hash 0x%08X does not match vehicle hash 0x%08X",
                cached.hash,
                hash_value,
            )
            return False

        if not self._cache_is_consistent(cached):
            logger.warning("Parameter cache for vehicle %d is corrupt, ignoring", self._vehicle_id)
            return False

        self._load_from_cache(cached)
        logger.info("Loaded %d parameters from cache (hash 0x%08X)", cached.count, hash_value)
        self._declare_ready(missing=False, save_cache=False)
        return True

    @staticmethod
    def _cache_is_consistent(cached: CachedParameterSet) -> bool:
        if parameter_set_hash(cached.entries()) != cached.hash:
            return False
        for params in cached.components.values():
            indices = sorted(param.index for param in params.values())
            if indices != list(range(len(params))):
                return False
        return True

    def _load_from_cache(self, cached: CachedParameterSet) -> None:
        for component_id, params in cached.components.items():
            comp = self._component(component_id)
            comp.expected_count = len(params)
            comp.pending_read_index.clear()
            comp.pending_read_name.clear()
            comp.failed_indices.clear()

            for name, entry in params.items():
                param_type = ParamType(entry.type)
                comp.index_to_name[entry.index] = name
                comp.name_to_index[name] = entry.index

                fact = self._facts.get((component_id, name))
                if fact is None:
                    fact = Fact(
                        component_id,
                        name,
                        param_type,
                        self._metadata.get(name, param_type),
                        on_edit=self.write_parameter_raw,
                    )
                    self._facts[(component_id, name)] = fact
                fact.index = entry.index
                fact._container_set_raw_value(entry.value)
            comp.groups_dirty = True

    # -- timers ----------------------------------------------------------------

    def _cache_timeout(self) -> None:
        if self._state is not SyncState.CACHE_PROBE:
            return
        logger.info("Vehicle %d did not report a parameter hash, loading from vehicle", self._vehicle_id)
        self.refresh_all_parameters()

    def _initial_request_timeout(self) -> None:
        if self._state is not SyncState.BULK_LOADING or self._params_received:
            return

        if not self._initial_request_retried:
            self._initial_request_retried = True
            logger.warning("No parameters received, requesting parameter list again")
            self._transport.request_parameter_list(self._bulk_target)
            self._initial_request_timer.start()
            return

        if self._bulk_target == COMPONENT_ALL and any(comp.count_known for comp in self._components.values()):
            # Known indices are pending; the waiting timer bounds them.
            return

        logger.error(
            "Vehicle %d never answered the parameter list request for component %d",
            self._vehicle_id,
            self._bulk_target,
        )
        self._target_missing = True
        self._check_load_complete()

    def _waiting_param_timeout(self) -> None:
        requested = False
        batch = 0

        for comp in list(self._components.values()):
            component_id = comp.component_id

            # Index reads belong to the bulk sweep; never issue them while
            # a cached set might still make them unnecessary.
            if self._state is not SyncState.CACHE_PROBE:
                for index in sorted(comp.pending_read_index):
                    if batch >= self._max_batch_size:
                        break
                    retries = comp.pending_read_index[index]
                    if retries >= self._max_read_retries:
                        comp.fail_index(index)
                        logger.warning(
                            "Giving up on parameter index %d:%d after %d retries",
                            component_id,
                            index,
                            retries,
                        )
                        continue
                    comp.pending_read_index[index] = retries + 1
                    logger.debug("Re-requesting parameter index %d:%d (retry %d)", component_id, index, retries + 1)
                    self._transport.read_parameter_by_index(component_id, index)
                    batch += 1
                    requested = True

            for name in list(comp.pending_write):
                pending = comp.pending_write[name]
                if pending.retries >= self._max_write_retries:
                    del comp.pending_write[name]
                    if pending.last_echo is not None:
                        comp.save_required = True
                    self._abandon_write(component_id, name, pending)
                    self._save_if_drained(comp)
                    continue
                pending.retries += 1
                logger.debug("Re-sending write %d:%s = %s (retry %d)", component_id, name, pending.value, pending.retries)
                self._transport.write_parameter(component_id, name, pending.value, pending.param_type)
                requested = True

            for name in list(comp.pending_read_name):
                retries = comp.pending_read_name[name]
                if retries >= self._max_read_retries:
                    del comp.pending_read_name[name]
                    logger.warning("Giving up on reading %d:%s after %d retries", component_id, name, retries)
                    continue
                comp.pending_read_name[name] = retries + 1
                self._transport.read_parameter_by_name(component_id, name)
                requested = True

        if requested or self._has_pending():
            self._waiting_param_timer.start()

        self._update_progress()
        self._check_load_complete()

    def _timeout_refresh_all(self) -> None:
        if self._state is not SyncState.READY:
            return
        logger.info("Periodic refresh of all parameters")
        self.refresh_all_parameters()

    def _settle_timeout(self) -> None:
        if not self._settling or self._ready:
            return
        self._settled = True
        self._check_load_complete()

    def _abandon_write(self, component_id: int, name: str, pending: PendingWrite) -> None:
        if pending.last_echo is not None:
            logger.warning(
                "Write of %d:%s = %s accepted with adjustment, vehicle reports %s",
                component_id,
                name,
                pending.value,
                pending.last_echo,
            )
            self._emit(self.on_write_adjusted, component_id, name, pending.value, pending.last_echo)
        else:
            logger.error("Giving up on writing %d:%s = %s after %d retries", component_id, name, pending.value, pending.retries)
            self._emit(self.on_write_failed, component_id, name, pending.value)

    # -- completion --------------------------------------------------------------

    def _check_load_complete(self) -> None:
        if self._ready or self._state is not SyncState.BULK_LOADING:
            return

        known = [comp for comp in self._components.values() if comp.count_known]
        if not self._target_missing:
            if self._bulk_target == COMPONENT_ALL:
                if not known:
                    return
            else:
                target = self._components.get(self._bulk_target)
                if target is None or not target.count_known:
                    return

        if not all(comp.complete for comp in known):
            return

        missing = self._target_missing or any(comp.failed_indices for comp in known)
        if self._bulk_target == COMPONENT_ALL and not self._target_missing and not self._settle():
            return
        self._declare_ready(missing=missing)

    def _settle(self) -> bool:
        """Ask for the list once more before a broadcast load is declared.

        A component whose every report was lost is otherwise invisible. It
        gets one more chance to announce itself, and readiness waits for a
        quiet period after the last notification.

        Returns:
            True once the quiet period has passed.
        """
        if self._settled or self._settle_timer.interval <= 0:
            return True
        if not self._settling:
            self._settling = True
            logger.debug("Every announced component is complete, requesting parameter list once more")
            self._transport.request_parameter_list(COMPONENT_ALL)
            self._settle_timer.start()
        return False

    def _declare_ready(self, missing: bool, save_cache: bool = True) -> None:
        self._ready = True
        self._missing_parameters = missing
        self._state = SyncState.READY
        self._initial_request_timer.stop()
        self._cache_timer.stop()
        self._settle_timer.stop()

        self._determine_default_component()
        for comp in self._components.values():
            self._rebuild_groups(comp)

        if missing:
            failed = sum(len(comp.failed_indices) for comp in self._components.values())
            logger.warning("Parameter load complete with %d missing parameters", failed)
        else:
            self._progress = 1.0
            logger.info(
                "Parameter load complete: %d parameters, default component %s",
                len(self._facts),
                self._default_component_id,
            )
            if save_cache:
                self._write_local_cache()

        self._refresh_all_timer.start()
        self._emit(self.on_parameters_ready, missing)

    def _write_local_cache(self) -> None:
        if self._cache_store is None:
            return

        components: dict[int, dict[str, CachedParameter]] = {}
        for (component_id, name), fact in self._facts.items():
            if fact.index is None or fact.value is None:
                continue
            components.setdefault(component_id, {})[name] = CachedParameter(
                index=fact.index,
                type=int(fact.type),
                value=fact.value,
            )

        entries = [
            (component_id, name, param.type, param.value)
            for component_id, params in components.items()
            for name, param in params.items()
        ]
        self._cache_store.save(self._vehicle_id, parameter_set_hash(entries), components)

    # -- helpers -----------------------------------------------------------------

    def _component(self, component_id: int) -> ComponentState:
        comp = self._components.get(component_id)
        if comp is None:
            comp = ComponentState(component_id)
            self._components[component_id] = comp
        return comp

    def _actual_component_id(self, component_id: int) -> int:
        if component_id != DEFAULT_COMPONENT:
            return component_id
        if self._default_component_id is None:
            self._determine_default_component()
        if self._default_component_id is None:
            return DEFAULT_COMPONENT
        return self._default_component_id

    def _determine_default_component(self) -> None:
        counts: dict[int, int] = {}
        for component_id, _name in self._facts:
            counts[component_id] = counts.get(component_id, 0) + 1

        markers = []
        if self._default_component_param:
            markers = [cid for cid in counts if (cid, self._default_component_param) in self._facts]

        self._default_component_id = determine_default_component(counts, markers)

    def _rebuild_groups(self, comp: ComponentState) -> None:
        comp.rebuild_groups(
            {name: fact.group for (cid, name), fact in self._facts.items() if cid == comp.component_id}
        )

    def _save_if_drained(self, comp: ComponentState) -> None:
        if comp.pending_write or not comp.save_required:
            return
        comp.save_required = False
        logger.info("Saving parameters of component %d to storage", comp.component_id)
        self._transport.save_to_storage(comp.component_id)

    def _has_pending(self) -> bool:
        return any(
            comp.pending_read_index or comp.pending_read_name or comp.pending_write
            for comp in self._components.values()
        )

    def _update_progress(self) -> None:
        if self._state is not SyncState.BULK_LOADING:
            return
        total = self.expected_count
        if total == 0:
            return
        pending = sum(len(comp.pending_read_index) for comp in self._components.values())
        progress = (total - pending) / total
        if progress != self._progress:
            self._progress = progress
            self._emit(self.on_progress, progress)

    @staticmethod
    def _emit(callback: Callable[..., None] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Engine callback %r failed", callback)
