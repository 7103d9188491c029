"""Parameter synchronization gateway for vehicle telemetry links."""

__version__ = "0.1.0"
