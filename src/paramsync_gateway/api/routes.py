"""API route handlers."""

import io

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse

from paramsync_gateway.api.dependencies import get_connection, get_engine
from paramsync_gateway.core.errors import ParameterConversionError
from paramsync_gateway.core.models import (
    ErrorResponse,
    ImportResponse,
    ParameterInfo,
    ParameterSetRequest,
    ParameterSetResponse,
    ParametersResponse,
    PrefixRefreshRequest,
    RefreshResponse,
    StatusResponse,
)
from paramsync_gateway.protocol.constants import COMPONENT_ALL
from paramsync_gateway.serial.connection import SerialLinkTransport
from paramsync_gateway.sync.engine import SyncEngine
from paramsync_gateway.sync.fact import Fact

router = APIRouter(prefix="/api")


def _parameter_info(engine: SyncEngine, fact: Fact) -> ParameterInfo:
    metadata = fact.metadata
    return ParameterInfo(
        component_id=fact.component_id,
        name=fact.name,
        index=fact.index,
        value=fact.value,
        type=int(fact.type),
        group=fact.group,
        units=metadata.units,
        min=metadata.raw_min,
        max=metadata.raw_max,
        default=metadata.raw_default,
        enum={str(value): label for value, label in metadata.enum.items()} or None,
        reboot_required=metadata.reboot_required,
        pending_write=engine.has_pending_write(fact.component_id, fact.name),
    )


def _require_connected(connection: SerialLinkTransport) -> None:
    if not connection.connected:
        raise HTTPException(status_code=503, detail="Vehicle not connected")


@router.get("/status", response_model=StatusResponse)
async def get_status(engine: SyncEngine = Depends(get_engine)):
    """Get the synchronization state."""
    return StatusResponse(
        state=engine.state.value,
        ready=engine.parameters_ready,
        missing_parameters=engine.missing_parameters,
        progress=engine.progress,
        default_component_id=engine.default_component_id,
        parameters_count=engine.parameter_count,
        expected_count=engine.expected_count,
    )


@router.get("/parameters", response_model=ParametersResponse)
async def get_parameters(engine: SyncEngine = Depends(get_engine)):
    """Get all known parameter values."""
    return ParametersResponse(
        ready=engine.parameters_ready,
        missing_parameters=engine.missing_parameters,
        parameters=[_parameter_info(engine, fact) for fact in engine.iter_facts() if fact.value is not None],
    )


@router.get(
    "/parameters/{component_id}/{name}",
    response_model=ParameterInfo,
    responses={404: {"model": ErrorResponse}},
)
async def get_parameter(component_id: int, name: str, engine: SyncEngine = Depends(get_engine)):
    """Get one parameter (component id -1 selects the default component)."""
    if not engine.parameter_exists(component_id, name):
        raise HTTPException(status_code=404, detail=f"Parameter not found: {component_id}:{name}")
    return _parameter_info(engine, engine.get_fact(component_id, name))


@router.post(
    "/parameters/{component_id}/{name}",
    response_model=ParameterSetResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def set_parameter(
    component_id: int,
    name: str,
    request: ParameterSetRequest,
    engine: SyncEngine = Depends(get_engine),
    connection: SerialLinkTransport = Depends(get_connection),
):
    """Set a parameter value.

    The write is sent immediately; acknowledgement is tracked by the engine.
    """
    _require_connected(connection)

    if not engine.parameter_exists(component_id, name):
        raise HTTPException(status_code=404, detail=f"Parameter not found: {component_id}:{name}")

    fact = engine.get_fact(component_id, name)
    old_value = fact.value

    try:
        new_value = engine.write_parameter_raw(fact.component_id, name, request.value)
    except ParameterConversionError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None

    return ParameterSetResponse(
        success=True,
        component_id=fact.component_id,
        name=name,
        old_value=old_value,
        new_value=new_value,
    )


@router.post(
    "/parameters/{component_id}/{name}/refresh",
    response_model=RefreshResponse,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def refresh_parameter(
    component_id: int,
    name: str,
    engine: SyncEngine = Depends(get_engine),
    connection: SerialLinkTransport = Depends(get_connection),
):
    """Re-read one parameter from the vehicle."""
    _require_connected(connection)
    if not engine.refresh_parameter(component_id, name):
        raise HTTPException(status_code=404, detail=f"No default component known for {name}")
    return RefreshResponse(success=True, requested=[name])


@router.post("/refresh", response_model=RefreshResponse, responses={503: {"model": ErrorResponse}})
async def refresh_all(
    component_id: int = COMPONENT_ALL,
    engine: SyncEngine = Depends(get_engine),
    connection: SerialLinkTransport = Depends(get_connection),
):
    """Reload the full parameter list (all components by default)."""
    _require_connected(connection)
    engine.refresh_all_parameters(component_id)
    return RefreshResponse(success=True)


@router.post("/refresh/prefix", response_model=RefreshResponse, responses={503: {"model": ErrorResponse}})
async def refresh_prefix(
    request: PrefixRefreshRequest,
    engine: SyncEngine = Depends(get_engine),
    connection: SerialLinkTransport = Depends(get_connection),
):
    """Re-read every parameter whose name starts with a prefix."""
    _require_connected(connection)
    names = engine.refresh_parameters_prefix(request.component_id, request.prefix)
    return RefreshResponse(success=True, requested=names)


@router.get("/groups")
async def get_groups(engine: SyncEngine = Depends(get_engine)) -> dict[int, dict[str, list[str]]]:
    """Get parameter names grouped by component and metadata group."""
    return engine.get_group_map()


@router.get("/export", response_class=PlainTextResponse)
async def export_parameters(engine: SyncEngine = Depends(get_engine)):
    """Export all parameters as a tab-separated parameter file."""
    buffer = io.StringIO()
    engine.write_parameters_to_stream(buffer)
    return PlainTextResponse(buffer.getvalue())


@router.post("/import", response_model=ImportResponse, responses={503: {"model": ErrorResponse}})
async def import_parameters(
    request: Request,
    engine: SyncEngine = Depends(get_engine),
    connection: SerialLinkTransport = Depends(get_connection),
):
    """Apply a tab-separated parameter file sent as the request body."""
    _require_connected(connection)
    body = await request.body()
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="Parameter file must be UTF-8 text") from None

    errors = engine.read_parameters_from_stream(io.StringIO(text))
    return ImportResponse(success=not errors, errors=errors)
