"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from paramsync_gateway import __version__
from paramsync_gateway.api.dependencies import app_state
from paramsync_gateway.api.routes import router as api_router
from paramsync_gateway.core.cache import ParameterCacheStore
from paramsync_gateway.core.config import Settings, setup_logging
from paramsync_gateway.core.models import HealthResponse
from paramsync_gateway.metadata.provider import get_metadata_provider
from paramsync_gateway.serial.connection import SerialLinkTransport
from paramsync_gateway.sync.engine import SyncEngine

logger = logging.getLogger(__name__)


def build_engine(settings: Settings, connection: SerialLinkTransport, cache_store: ParameterCacheStore) -> SyncEngine:
    """Create the engine and wire it to the link's notifications."""
    engine = SyncEngine(
        transport=connection,
        cache_store=cache_store,
        metadata=get_metadata_provider(settings.metadata_file),
        vehicle_id=settings.vehicle_id,
        cache_timeout=settings.cache_timeout,
        initial_request_timeout=settings.initial_request_timeout,
        waiting_param_timeout=settings.waiting_param_timeout,
        refresh_all_interval=settings.refresh_all_interval,
        max_read_retries=settings.max_read_retries,
        max_write_retries=settings.max_write_retries,
        max_batch_size=settings.max_batch_size,
        default_component_param=settings.default_component_param,
    )

    connection.on_parameter_value = engine.handle_parameter_value
    connection.on_connected = engine.start
    connection.on_disconnected = engine.stop

    engine.on_parameters_ready = lambda missing: logger.info("Parameters ready (missing=%s)", missing)
    engine.on_write_failed = lambda cid, name, value: logger.error("Write failed: %d:%s = %s", cid, name, value)
    return engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    settings = app_state.settings or Settings()
    app_state.settings = settings

    setup_logging(settings.log_level)
    logger.info("Starting ParamSync Gateway v%s", __version__)

    # Initialize components
    app_state.cache_store = ParameterCacheStore(settings.cache_dir)
    app_state.connection = SerialLinkTransport(
        port=settings.serial_port,
        baudrate=settings.serial_baud,
        vehicle_id=settings.vehicle_id,
        system_id=settings.gcs_system_id,
        component_id=settings.gcs_component_id,
    )
    app_state.engine = build_engine(settings, app_state.connection, app_state.cache_store)

    # Connecting starts the engine through on_connected
    connected = await app_state.connection.connect()
    if connected:
        logger.info("Connected to %s", settings.serial_port)
    else:
        logger.warning("Failed to connect to %s, will retry in background", settings.serial_port)

    # Start reconnect loop (handles connection drops and initial failures)
    await app_state.connection.start_reconnect_loop()

    yield

    # Shutdown
    logger.info("Shutting down...")
    if app_state.connection is not None:
        await app_state.connection.stop_reconnect_loop()
        await app_state.connection.disconnect()
    if app_state.engine is not None:
        app_state.engine.stop()


app = FastAPI(
    title="ParamSync Gateway",
    description="Local REST API for synchronizing vehicle parameters over a telemetry link",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(api_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "ParamSync Gateway",
        "version": __version__,
        "status": "running",
    }


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check endpoint."""
    engine = app_state.engine
    connection = app_state.connection

    if engine is None or connection is None:
        return HealthResponse(
            status="unhealthy",
            vehicle_connected=False,
            parameters_ready=False,
            parameters_count=0,
        )

    connected = connection.connected
    ready = engine.parameters_ready
    status = "healthy" if connected and ready else ("degraded" if connected else "unhealthy")

    return HealthResponse(
        status=status,
        vehicle_connected=connected,
        parameters_ready=ready,
        parameters_count=engine.parameter_count,
    )


def main():
    """Run the application (for CLI entry point)."""
    import uvicorn

    settings = Settings()
    setup_logging(settings.log_level)
    app_state.settings = settings

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
