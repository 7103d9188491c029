"""FastAPI dependency injection for shared application state."""

from paramsync_gateway.core.cache import ParameterCacheStore
from paramsync_gateway.core.config import Settings
from paramsync_gateway.serial.connection import SerialLinkTransport
from paramsync_gateway.sync.engine import SyncEngine


class AppState:
    """Holds shared application state instances.

    Created during app startup and accessed via FastAPI dependencies.
    """

    def __init__(self) -> None:
        self.settings: Settings | None = None
        self.connection: SerialLinkTransport | None = None
        self.cache_store: ParameterCacheStore | None = None
        self.engine: SyncEngine | None = None


# Global app state singleton
app_state = AppState()


def get_engine() -> SyncEngine:
    """Get the synchronization engine instance."""
    assert app_state.engine is not None, "App not initialized"
    return app_state.engine


def get_connection() -> SerialLinkTransport:
    """Get the serial link transport instance."""
    assert app_state.connection is not None, "App not initialized"
    return app_state.connection


def get_settings() -> Settings:
    """Get the settings instance."""
    assert app_state.settings is not None, "App not initialized"
    return app_state.settings
