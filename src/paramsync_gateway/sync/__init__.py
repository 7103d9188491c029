"""Parameter synchronization engine."""

from paramsync_gateway.sync.engine import SyncEngine
from paramsync_gateway.sync.fact import Fact
from paramsync_gateway.sync.state import ComponentState, PendingWrite, SyncState

__all__ = ["ComponentState", "Fact", "PendingWrite", "SyncEngine", "SyncState"]
