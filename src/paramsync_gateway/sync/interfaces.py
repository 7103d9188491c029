"""Contracts the synchronization engine consumes."""

from typing import Protocol

from paramsync_gateway.core.models import CachedParameter, CachedParameterSet
from paramsync_gateway.protocol.codec import RawValue


class ParameterTransport(Protocol):
    """Outbound parameter commands.

    Every method is fire-and-forget: it returns once the request is queued
    for sending, True on success, and never waits for a reply. Replies come
    back through ``SyncEngine.handle_parameter_value``.
    """

    def request_parameter_list(self, component_id: int) -> bool: ...

    def request_parameter_hash(self, component_id: int) -> bool: ...

    def read_parameter_by_index(self, component_id: int, index: int) -> bool: ...

    def read_parameter_by_name(self, component_id: int, name: str) -> bool: ...

    def write_parameter(self, component_id: int, name: str, value: RawValue, param_type: int) -> bool: ...

    def save_to_storage(self, component_id: int) -> bool:
        """Ask the component to persist its current values across reboots."""
        ...


class ParameterCacheStore(Protocol):
    """Per-vehicle blob store for complete parameter sets."""

    def load(self, vehicle_id: int) -> CachedParameterSet | None: ...

    def save(
        self,
        vehicle_id: int,
        hash_value: int,
        components: dict[int, dict[str, CachedParameter]],
    ) -> bool: ...
