"""Per-component synchronization bookkeeping."""

from collections.abc import Iterable, Mapping
from enum import Enum

from paramsync_gateway.protocol.codec import RawValue


class SyncState(str, Enum):
    """Synchronization engine lifecycle states."""

    IDLE = "idle"
    CACHE_PROBE = "cache_probe"
    BULK_LOADING = "bulk_loading"
    READY = "ready"


class PendingWrite:
    """A value sent to the vehicle and not yet echoed back."""

    def __init__(self, value: RawValue, param_type: int):
        self.value = value
        self.param_type = param_type
        self.retries = 0
        # Last echo that did not match the requested value
        self.last_echo: RawValue | None = None

    def __repr__(self) -> str:
        return f"PendingWrite(value={self.value!r}, retries={self.retries}, last_echo={self.last_echo!r})"


class ComponentState:
    """Everything the engine tracks for one component.

    Index bookkeeping keeps this invariant once ``expected_count`` is known:
    every index in ``range(expected_count)`` is either resolved (in
    ``index_to_name`` and not pending), pending in ``pending_read_index``,
    or in ``failed_indices`` -- never both pending and failed.
    """

    def __init__(self, component_id: int):
        self.component_id = component_id
        self.expected_count: int | None = None
        self.index_to_name: dict[int, str] = {}
        self.name_to_index: dict[str, int] = {}
        self.pending_read_index: dict[int, int] = {}
        self.pending_read_name: dict[str, int] = {}
        self.pending_write: dict[str, PendingWrite] = {}
        # Set by a write the vehicle accepted; cleared once storage is asked to persist it
        self.save_required = False
        self.failed_indices: set[int] = set()
        self.groups: dict[str, list[str]] = {}
        self.groups_dirty = False

    @property
    def count_known(self) -> bool:
        return self.expected_count is not None

    @property
    def resolved_count(self) -> int:
        """Indices confirmed in the current epoch."""
        if self.expected_count is None:
            return 0
        return self.expected_count - len(self.pending_read_index) - len(self.failed_indices)

    @property
    def complete(self) -> bool:
        """True once every index is resolved or failed."""
        return self.expected_count is not None and not self.pending_read_index

    def set_expected_count(self, count: int) -> None:
        """Record the announced count and mark every index pending."""
        self.expected_count = count
        self.mark_all_pending()

    def mark_all_pending(self) -> None:
        """Discard pending/failed read state and re-request every index."""
        self.pending_read_index.clear()
        self.pending_read_name.clear()
        self.failed_indices.clear()
        if self.expected_count is not None:
            self.pending_read_index = {index: 0 for index in range(self.expected_count)}

    def resolve_index(self, index: int) -> None:
        self.pending_read_index.pop(index, None)
        self.failed_indices.discard(index)

    def fail_index(self, index: int) -> None:
        self.pending_read_index.pop(index, None)
        self.failed_indices.add(index)

    def reset(self) -> None:
        """Drop all bookkeeping (disconnect)."""
        self.expected_count = None
        self.index_to_name.clear()
        self.name_to_index.clear()
        self.pending_read_index.clear()
        self.pending_read_name.clear()
        self.pending_write.clear()
        self.save_required = False
        self.failed_indices.clear()
        self.groups.clear()
        self.groups_dirty = False

    def rebuild_groups(self, name_to_group: Mapping[str, str]) -> None:
        """Rebuild the group index from parameter name to group name."""
        groups: dict[str, list[str]] = {}
        for name in sorted(name_to_group):
            groups.setdefault(name_to_group[name], []).append(name)
        self.groups = groups
        self.groups_dirty = False

    def __repr__(self) -> str:
        return (
            f"ComponentState(id={self.component_id}, expected={self.expected_count}, "
            f"pending={len(self.pending_read_index)}, failed={len(self.failed_indices)})"
        )


def score_component(component_id: int, param_count: int, has_marker: bool) -> tuple[bool, int, int]:
    """Score a component as default-component candidate (higher is better).

    A component holding the configured marker parameter wins outright;
    otherwise the richest parameter set wins, and lower ids break ties.
    """
    return (has_marker, param_count, -component_id)


def determine_default_component(
    param_counts: Mapping[int, int],
    marker_components: Iterable[int] = (),
) -> int | None:
    """Pick the primary component from observed per-component parameter counts.

    This is a heuristic: the protocol does not declare which component is
    primary, so the choice reflects what was observed, not a guarantee.

    Args:
        param_counts: Component id to number of parameters seen.
        marker_components: Components that report the marker parameter.

    Returns:
        The chosen component id, or None if no component is known.
    """
    if not param_counts:
        return None
    markers = set(marker_components)
    return max(
        param_counts,
        key=lambda component_id: score_component(component_id, param_counts[component_id], component_id in markers),
    )
